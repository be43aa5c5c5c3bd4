"""
Dependency injection interfaces for the analytics services.

The engine is read-only over externally owned pool, token and
price-history state. These protocols are the contracts it consumes; the
in-memory implementations live in repositories.py and cache.py.
"""

import asyncio
import time
from typing import Any, List, Optional, Protocol, runtime_checkable

from dex.types import Pool, PricePoint, Token


@runtime_checkable
class TimeProvider(Protocol):
    """Protocol for time-related operations."""

    def current_timestamp(self) -> float:
        """Get current Unix timestamp."""
        ...

    def current_time_ms(self) -> int:
        """Get current time in milliseconds."""
        ...

    async def sleep(self, duration: float) -> None:
        """Sleep for specified duration in seconds."""
        ...


@runtime_checkable
class PoolRepository(Protocol):
    """Read-only pool store. Returns the latest known snapshot."""

    async def get_all_by_chain_id(self, chain_id: int) -> List[Pool]: ...

    async def get_pools_by_token(self, token: str, chain_id: int) -> List[Pool]: ...

    async def get_by_address(self, address: str, chain_id: int) -> Optional[Pool]: ...


@runtime_checkable
class TokenRepository(Protocol):
    """Read-only token metadata store."""

    async def get_by_address(self, address: str, chain_id: int) -> Optional[Token]: ...


@runtime_checkable
class PriceHistoryRepository(Protocol):
    """Price samples ordered by timestamp ascending."""

    async def get_for_twap(
        self, token: str, quote: str, start: float, end: float
    ) -> List[PricePoint]: ...

    async def get_by_token(
        self, token: str, quote: str, start: float, end: float, limit: int
    ) -> List[PricePoint]: ...


@runtime_checkable
class VolumeRepository(Protocol):
    """Trailing 24h traded volume per pool, in USD."""

    async def get_volume_24h_usd(self, pool_address: str) -> Any: ...


@runtime_checkable
class CacheService(Protocol):
    """
    Best-effort key/value cache.

    A miss is never an error; callers fall through to the source.
    """

    async def get(self, key: str) -> Optional[Any]: ...

    async def set(self, key: str, value: Any, ttl: float) -> None: ...

    async def remove(self, key: str) -> None: ...


class SystemTimeProvider:
    """Production time provider using system time."""

    def current_timestamp(self) -> float:
        """Get current Unix timestamp."""
        return time.time()

    def current_time_ms(self) -> int:
        """Get current time in milliseconds."""
        return int(time.time() * 1000)

    async def sleep(self, duration: float) -> None:
        """Sleep for specified duration in seconds."""
        await asyncio.sleep(duration)


class DeterministicTimeProvider:
    """Deterministic time provider for tests and replays."""

    def __init__(self, start_time: float = 1640995200.0):  # 2022-01-01
        self._current_time = start_time
        self.sleeps: List[float] = []

    def current_timestamp(self) -> float:
        """Get current timestamp."""
        return self._current_time

    def current_time_ms(self) -> int:
        """Get current time in milliseconds."""
        return int(self._current_time * 1000)

    async def sleep(self, duration: float) -> None:
        """Advance time by duration instead of actually sleeping."""
        self.sleeps.append(duration)
        self._current_time += duration
        # Yield so cancellation can land
        await asyncio.sleep(0)

    def advance_time(self, seconds: float) -> None:
        """Manually advance time by specified seconds."""
        self._current_time += seconds

    def set_time(self, timestamp: float) -> None:
        """Set current time to specific timestamp."""
        self._current_time = timestamp


_time_provider: TimeProvider = SystemTimeProvider()


def get_time_provider() -> TimeProvider:
    """Get the global time provider instance."""
    return _time_provider


def set_time_provider(provider: TimeProvider) -> None:
    """Set the global time provider instance."""
    global _time_provider
    _time_provider = provider
