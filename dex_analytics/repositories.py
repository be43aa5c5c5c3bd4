"""
Repository implementations for pool, token, price-history and volume data.

Two layers compose explicitly at construction:

    store = snapshot_from_dict(data).pools
    pools = CachedPoolRepository(store, cache, ttl=300)

The in-memory stores double as the snapshot loader for CLI runs and as
fixtures in tests.
"""

import bisect
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml

from dex.types import Pool, PricePoint, Token
from dex_analytics.constants import (
    POOL_ADDRESS_CACHE_KEY,
    POOLS_BY_CHAIN_CACHE_KEY,
    POOLS_BY_TOKEN_CACHE_KEY,
    TOKEN_ADDRESS_CACHE_KEY,
    resolve_quote_address,
)
from dex_analytics.exceptions import DataError
from dex_analytics.interfaces import CacheService, PoolRepository, TokenRepository
from dex_analytics.utils import (
    is_valid_address,
    iso_to_timestamp,
    normalize_address,
    to_decimal,
)

logger = logging.getLogger(__name__)


class InMemoryPoolRepository:
    """Pools indexed by address and by token."""

    def __init__(self, pools: Optional[List[Pool]] = None):
        self._pools: Dict[Tuple[int, str], Pool] = {}
        for pool in pools or []:
            self.upsert(pool)

    def upsert(self, pool: Pool) -> None:
        self._pools[(pool.chain_id, pool.address)] = pool

    def remove(self, address: str, chain_id: int) -> None:
        self._pools.pop((chain_id, normalize_address(address)), None)

    async def get_all_by_chain_id(self, chain_id: int) -> List[Pool]:
        return [p for (chain, _), p in self._pools.items() if chain == chain_id]

    async def get_pools_by_token(self, token: str, chain_id: int) -> List[Pool]:
        token = normalize_address(token)
        return [
            p
            for (chain, _), p in self._pools.items()
            if chain == chain_id and p.contains(token)
        ]

    async def get_by_address(self, address: str, chain_id: int) -> Optional[Pool]:
        return self._pools.get((chain_id, normalize_address(address)))

    def __len__(self) -> int:
        return len(self._pools)


class InMemoryTokenRepository:
    def __init__(self, tokens: Optional[List[Token]] = None):
        self._tokens: Dict[Tuple[int, str], Token] = {}
        for token in tokens or []:
            self.upsert(token)

    def upsert(self, token: Token) -> None:
        self._tokens[(token.chain_id, token.address)] = token

    async def get_by_address(self, address: str, chain_id: int) -> Optional[Token]:
        return self._tokens.get((chain_id, normalize_address(address)))

    def __len__(self) -> int:
        return len(self._tokens)


class InMemoryPriceHistoryRepository:
    """Samples per (token, quote address), kept sorted by timestamp."""

    def __init__(self):
        self._series: Dict[Tuple[str, str], List[PricePoint]] = {}

    @staticmethod
    def _key(token: str, quote: str) -> Tuple[str, str]:
        quote_address = resolve_quote_address(quote) or normalize_address(quote)
        return normalize_address(token), quote_address

    def add(self, token: str, quote: str, point: PricePoint) -> None:
        series = self._series.setdefault(self._key(token, quote), [])
        timestamps = [p.timestamp for p in series]
        series.insert(bisect.bisect_right(timestamps, point.timestamp), point)

    async def get_for_twap(
        self, token: str, quote: str, start: float, end: float
    ) -> List[PricePoint]:
        series = self._series.get(self._key(token, quote), [])
        return [p for p in series if start <= p.timestamp <= end]

    async def get_by_token(
        self, token: str, quote: str, start: float, end: float, limit: int
    ) -> List[PricePoint]:
        points = await self.get_for_twap(token, quote, start, end)
        # Most recent samples win when truncated
        return points[-limit:] if limit > 0 else []


class InMemoryVolumeRepository:
    def __init__(self, volumes: Optional[Dict[str, Decimal]] = None):
        self._volumes: Dict[str, Decimal] = {}
        for address, volume in (volumes or {}).items():
            self.set_volume(address, volume)

    def set_volume(self, pool_address: str, volume_usd) -> None:
        self._volumes[normalize_address(pool_address)] = to_decimal(volume_usd)

    async def get_volume_24h_usd(self, pool_address: str) -> Decimal:
        return self._volumes.get(normalize_address(pool_address), Decimal("0"))


class CachedPoolRepository:
    """Cache-then-store decorator over any PoolRepository."""

    def __init__(self, inner: PoolRepository, cache: CacheService, ttl: float = 300):
        self.inner = inner
        self.cache = cache
        self.ttl = ttl

    async def get_all_by_chain_id(self, chain_id: int) -> List[Pool]:
        key = POOLS_BY_CHAIN_CACHE_KEY.format(chain_id=chain_id)
        cached = await self.cache.get(key)
        if cached is not None:
            return list(cached)
        pools = await self.inner.get_all_by_chain_id(chain_id)
        await self.cache.set(key, tuple(pools), self.ttl)
        return pools

    async def get_pools_by_token(self, token: str, chain_id: int) -> List[Pool]:
        key = POOLS_BY_TOKEN_CACHE_KEY.format(
            token=normalize_address(token), chain_id=chain_id
        )
        cached = await self.cache.get(key)
        if cached is not None:
            return list(cached)
        pools = await self.inner.get_pools_by_token(token, chain_id)
        await self.cache.set(key, tuple(pools), self.ttl)
        return pools

    async def get_by_address(self, address: str, chain_id: int) -> Optional[Pool]:
        key = POOL_ADDRESS_CACHE_KEY.format(
            address=normalize_address(address), chain_id=chain_id
        )
        cached = await self.cache.get(key)
        if cached is not None:
            return cached
        pool = await self.inner.get_by_address(address, chain_id)
        if pool is not None:
            await self.cache.set(key, pool, self.ttl)
        return pool


class CachedTokenRepository:
    """Cache-then-store decorator over any TokenRepository."""

    def __init__(self, inner: TokenRepository, cache: CacheService, ttl: float = 600):
        self.inner = inner
        self.cache = cache
        self.ttl = ttl

    async def get_by_address(self, address: str, chain_id: int) -> Optional[Token]:
        key = TOKEN_ADDRESS_CACHE_KEY.format(
            address=normalize_address(address), chain_id=chain_id
        )
        cached = await self.cache.get(key)
        if cached is not None:
            return cached
        token = await self.inner.get_by_address(address, chain_id)
        if token is not None:
            await self.cache.set(key, token, self.ttl)
        return token


# ============================================================================
# Snapshot loading
# ============================================================================


@dataclass
class Snapshot:
    """Stores populated from a snapshot file."""

    chain_id: int
    pools: InMemoryPoolRepository
    tokens: InMemoryTokenRepository
    price_history: InMemoryPriceHistoryRepository
    volumes: InMemoryVolumeRepository


def _require_address(entry: Dict[str, Any], key: str, context: str) -> str:
    value = entry.get(key)
    if not isinstance(value, str) or not is_valid_address(value):
        raise DataError(f"{context}: invalid or missing '{key}'", source="snapshot")
    return normalize_address(value)


def _require_amount(entry: Dict[str, Any], key: str, context: str) -> Decimal:
    if key not in entry:
        raise DataError(f"{context}: missing '{key}'", source="snapshot")
    try:
        return to_decimal(entry[key])
    except (InvalidOperation, ValueError) as e:
        raise DataError(
            f"{context}: '{key}' is not a number", source="snapshot"
        ) from e


def _require_timestamp(entry: Dict[str, Any], context: str) -> float:
    """Unix seconds, an ISO 8601 string, or a datetime YAML already parsed."""
    value = entry.get("timestamp")
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.timestamp()
    if isinstance(value, str) and not value.replace(".", "", 1).isdigit():
        try:
            return iso_to_timestamp(value)
        except ValueError as e:
            raise DataError(
                f"{context}: bad timestamp '{value}'", source="snapshot"
            ) from e
    return float(_require_amount(entry, "timestamp", context))


def snapshot_from_dict(data: Dict[str, Any]) -> Snapshot:
    """
    Build in-memory stores from a parsed snapshot.

    Expected shape:
        chain_id: 1
        tokens:  [{address, symbol, decimals}]
        pools:   [{address, factory, token0, token1, reserve0, reserve1,
                   fee_bps?, volume_24h_usd?}]
        price_history: [{token, quote, price, timestamp, volume?}]
            (timestamp in Unix seconds or ISO 8601)

    Raises:
        DataError: If an entry is malformed
    """
    if not isinstance(data, dict):
        raise DataError("Snapshot must be a mapping", source="snapshot")

    chain_id = int(data.get("chain_id", 1))
    tokens = InMemoryTokenRepository()
    pools = InMemoryPoolRepository()
    history = InMemoryPriceHistoryRepository()
    volumes = InMemoryVolumeRepository()

    for i, entry in enumerate(data.get("tokens") or []):
        context = f"tokens[{i}]"
        try:
            tokens.upsert(
                Token(
                    address=_require_address(entry, "address", context),
                    symbol=str(entry.get("symbol", "???")),
                    decimals=int(entry.get("decimals", 18)),
                    chain_id=chain_id,
                    is_placeholder=bool(entry.get("is_placeholder", False)),
                    name=str(entry.get("name", "")),
                )
            )
        except ValueError as e:
            raise DataError(f"{context}: {e}", source="snapshot") from e

    for i, entry in enumerate(data.get("pools") or []):
        context = f"pools[{i}]"
        address = _require_address(entry, "address", context)
        try:
            pools.upsert(
                Pool(
                    address=address,
                    factory=_require_address(entry, "factory", context),
                    chain_id=chain_id,
                    token0=_require_address(entry, "token0", context),
                    token1=_require_address(entry, "token1", context),
                    reserve0=_require_amount(entry, "reserve0", context),
                    reserve1=_require_amount(entry, "reserve1", context),
                    fee_bps=int(entry.get("fee_bps", 30)),
                )
            )
        except ValueError as e:
            raise DataError(f"{context}: {e}", source="snapshot", address=address) from e
        if "volume_24h_usd" in entry:
            volumes.set_volume(address, _require_amount(entry, "volume_24h_usd", context))

    for i, entry in enumerate(data.get("price_history") or []):
        context = f"price_history[{i}]"
        history.add(
            _require_address(entry, "token", context),
            str(entry.get("quote", "ETH")),
            PricePoint(
                price=_require_amount(entry, "price", context),
                timestamp=_require_timestamp(entry, context),
                volume=to_decimal(entry.get("volume", 0)),
            ),
        )

    logger.info(
        f"Loaded snapshot: chain {chain_id}, {len(tokens)} tokens, {len(pools)} pools"
    )
    return Snapshot(chain_id, pools, tokens, history, volumes)


def load_snapshot(path: Union[str, Path]) -> Snapshot:
    """
    Load a YAML snapshot file.

    Raises:
        DataError: If the file is missing, unparseable or malformed
    """
    path = Path(path)
    if not path.exists():
        raise DataError(f"Snapshot file not found: {path}", source=str(path))
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise DataError(f"Invalid YAML in {path}: {e}", source=str(path)) from e
    return snapshot_from_dict(data or {})
