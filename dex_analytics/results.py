"""
Typed success/failure values for expected outcomes.

Operations on the public surface return Result instead of raising for
conditions a caller is expected to branch on (token not found, no
liquidity, no TWAP data). Exceptions stay reserved for faults.
"""

from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar

from dex_analytics.exceptions import ResultError

T = TypeVar("T")
U = TypeVar("U")


@dataclass(frozen=True)
class Error:
    """Failure code (e.g. "Price.NoPool") with a human-readable message."""

    code: str
    message: str

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


@dataclass(frozen=True)
class Result(Generic[T]):
    value: Optional[T] = None
    error: Optional[Error] = None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: Error) -> "Result[T]":
        return cls(error=error)

    @property
    def is_success(self) -> bool:
        return self.error is None

    @property
    def is_failure(self) -> bool:
        return self.error is not None

    def unwrap(self) -> T:
        """Return the value or raise ResultError."""
        if self.error is not None:
            raise ResultError(self.error.code, self.error.message)
        return self.value

    def value_or(self, default: T) -> T:
        return default if self.error is not None else self.value

    def map(self, func: Callable[[T], U]) -> "Result[U]":
        if self.error is not None:
            return Result.failure(self.error)
        return Result.success(func(self.value))


class Errors:
    """Factories for every failure code the engine returns."""

    class Token:
        @staticmethod
        def not_found(address: str) -> Error:
            return Error("Token.NotFound", f"Token {address} not found")

    class Price:
        @staticmethod
        def no_liquidity(address: str) -> Error:
            return Error("Price.NoLiquidity", f"No liquidity pools found for {address}")

        @staticmethod
        def no_pool(address: str, quote: str) -> Error:
            return Error(
                "Price.NoPool", f"No pool routes {address} to {quote}"
            )

        @staticmethod
        def no_eth_usd() -> Error:
            return Error("Price.NoEthUsd", "Could not resolve ETH/USD price")

    class Twap:
        @staticmethod
        def no_data(address: str) -> Error:
            return Error("Twap.NoData", f"No price history in window for {address}")

    class Arbitrage:
        @staticmethod
        def pool_not_found(address: str) -> Error:
            return Error("Arbitrage.PoolNotFound", f"Pool {address} not found")

    class Liquidity:
        @staticmethod
        def pool_not_found(address: str) -> Error:
            return Error("Liquidity.PoolNotFound", f"Pool {address} not found")

        @staticmethod
        def token_not_found(address: str) -> Error:
            return Error("Liquidity.TokenNotFound", f"Token {address} not found")

        @staticmethod
        def price_unavailable(address: str) -> Error:
            return Error(
                "Liquidity.PriceUnavailable",
                f"USD prices unavailable for pool {address}",
            )

        @staticmethod
        def invalid_price(address: str) -> Error:
            return Error(
                "Liquidity.InvalidPrice", f"Non-positive USD price in pool {address}"
            )
