"""
Core data types for DEX price and arbitrage analytics.

All value types are immutable snapshots built fresh per request or scan
cycle. Amounts are Decimal; timestamps are Unix seconds.
"""

import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Tuple

from dex.opportunity_math import depth_score, round_cents
from dex_analytics.utils import timestamp_to_iso

MAX_TOKEN_DECIMALS = 18


class ArbitrageKind(Enum):
    """Shape of an arbitrage path."""

    TWO_POOL = "two_pool"
    TRIANGULAR = "triangular"


def _num(value: Decimal) -> float:
    return float(value)


@dataclass(frozen=True)
class Token:
    """
    ERC-20 token metadata.

    Attributes:
        address: Lower-cased token address (identity within a chain)
        symbol: Ticker symbol (e.g., "WETH")
        decimals: On-chain decimals, 0 through 18
        chain_id: Chain the token lives on
        is_placeholder: True when metadata could not be resolved on-chain
        name: Optional display name
    """

    address: str
    symbol: str
    decimals: int
    chain_id: int = 1
    is_placeholder: bool = False
    name: str = ""

    def __post_init__(self):
        object.__setattr__(self, "address", self.address.lower())
        if not 0 <= self.decimals <= MAX_TOKEN_DECIMALS:
            raise ValueError(
                f"Token {self.symbol} decimals must be in [0, 18], got {self.decimals}"
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "symbol": self.symbol,
            "decimals": self.decimals,
            "chain_id": self.chain_id,
            "is_placeholder": self.is_placeholder,
        }


@dataclass(frozen=True)
class Pool:
    """
    Constant-product liquidity pool snapshot.

    token0/token1 ordering is the pair contract's storage convention and
    says nothing about price direction.

    Attributes:
        address: Lower-cased pair contract address
        factory: Lower-cased factory address (identifies the venue)
        chain_id: Chain the pool lives on
        token0: Address of token0
        token1: Address of token1
        reserve0: Raw on-chain reserve of token0
        reserve1: Raw on-chain reserve of token1
        fee_bps: Swap fee in basis points (30 = 0.3%)
    """

    address: str
    factory: str
    chain_id: int
    token0: str
    token1: str
    reserve0: Decimal
    reserve1: Decimal
    fee_bps: int = 30

    def __post_init__(self):
        object.__setattr__(self, "address", self.address.lower())
        object.__setattr__(self, "factory", self.factory.lower())
        object.__setattr__(self, "token0", self.token0.lower())
        object.__setattr__(self, "token1", self.token1.lower())
        object.__setattr__(self, "reserve0", Decimal(str(self.reserve0)))
        object.__setattr__(self, "reserve1", Decimal(str(self.reserve1)))
        if self.token0 == self.token1:
            raise ValueError(f"Pool {self.address} has identical tokens")
        if self.reserve0 < 0 or self.reserve1 < 0:
            raise ValueError(f"Pool {self.address} has negative reserves")

    @property
    def total_reserves(self) -> Decimal:
        return self.reserve0 + self.reserve1

    @property
    def pair_key(self) -> str:
        """Order-independent key shared by every pool of the same token pair."""
        return ":".join(sorted((self.token0, self.token1)))

    def contains(self, token: str) -> bool:
        token = token.lower()
        return token in (self.token0, self.token1)

    def other_token(self, token: str) -> str:
        token = token.lower()
        if token == self.token0:
            return self.token1
        if token == self.token1:
            return self.token0
        raise ValueError(f"Token {token} not in pool {self.address}")

    def reserve_of(self, token: str) -> Decimal:
        token = token.lower()
        if token == self.token0:
            return self.reserve0
        if token == self.token1:
            return self.reserve1
        raise ValueError(f"Token {token} not in pool {self.address}")


@dataclass(frozen=True)
class TokenPrice:
    """Point-in-time price of a token in a quote currency."""

    token_address: str
    quote_token_address: str
    quote_symbol: str
    price: Decimal
    price_usd: Decimal
    pool_address: str
    liquidity: Decimal
    timestamp: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "token_address": self.token_address,
            "quote_token_address": self.quote_token_address,
            "quote_symbol": self.quote_symbol,
            "price": _num(self.price),
            "price_usd": _num(self.price_usd),
            "pool_address": self.pool_address,
            "liquidity": _num(self.liquidity),
            "timestamp": timestamp_to_iso(self.timestamp),
        }


@dataclass(frozen=True)
class PricePoint:
    """A single historical price sample."""

    price: Decimal
    timestamp: float
    volume: Decimal = Decimal("0")


@dataclass(frozen=True)
class TwapResult:
    """
    Time-weighted average price over a window.

    Attributes:
        token_address: Token that was priced
        quote_symbol: Quote currency symbol
        twap_price: Time-weighted average over the window
        spot_price: Latest sample in the window
        deviation_percent: |twap - spot| / spot * 100 (0 when spot is 0)
        period: Window length in seconds
        data_points: Number of samples used
        calculated_at: Evaluation time
    """

    token_address: str
    quote_symbol: str
    twap_price: Decimal
    spot_price: Decimal
    deviation_percent: Decimal
    period: float
    data_points: int
    calculated_at: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "token_address": self.token_address,
            "quote_symbol": self.quote_symbol,
            "twap_price": _num(self.twap_price),
            "spot_price": _num(self.spot_price),
            "deviation_percent": _num(self.deviation_percent),
            "period_sec": self.period,
            "data_points": self.data_points,
            "calculated_at": timestamp_to_iso(self.calculated_at),
        }


@dataclass(frozen=True)
class ArbitrageLeg:
    """One swap in an arbitrage path."""

    pool_address: str
    venue_name: str
    token_in: str
    token_out: str
    rate: Decimal
    liquidity: Decimal
    price_impact_percent: Decimal = Decimal("0")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pool_address": self.pool_address,
            "venue_name": self.venue_name,
            "token_in": self.token_in,
            "token_out": self.token_out,
            "rate": _num(self.rate),
            "liquidity": _num(self.liquidity),
            "price_impact_percent": _num(self.price_impact_percent),
        }


@dataclass(frozen=True)
class ArbitrageOpportunity:
    """
    A detected arbitrage opportunity.

    Spread, net profit, ROI and profitability are derived from the stored
    inputs and cannot be set independently.

    Attributes:
        id: Unique identifier
        token_address: Token being arbitraged (base token for triangular paths)
        token_symbol: Symbol of that token
        path: Ordered legs of the trade
        buy_price: Price in the cheaper pool (1 for triangular paths)
        sell_price: Price in the dearer pool (rate product for triangular paths)
        optimal_input_amount: Trade size in input-token units
        optimal_input_usd: Trade size in USD (0 when unpriced)
        expected_profit_usd: Gross profit before gas
        estimated_gas_cost_usd: Gas for all legs
        confidence_score: Heuristic reliability in [0, 100]
        detected_at: Detection time
        kind: Two-pool or triangular
    """

    id: str
    token_address: str
    token_symbol: str
    path: Tuple[ArbitrageLeg, ...]
    buy_price: Decimal
    sell_price: Decimal
    optimal_input_amount: Decimal
    optimal_input_usd: Decimal
    expected_profit_usd: Decimal
    estimated_gas_cost_usd: Decimal
    confidence_score: int
    detected_at: float
    kind: ArbitrageKind = ArbitrageKind.TWO_POOL

    @classmethod
    def create(
        cls,
        token_address: str,
        token_symbol: str,
        path,
        buy_price: Decimal,
        sell_price: Decimal,
        optimal_input_amount: Decimal,
        expected_profit_usd: Decimal,
        estimated_gas_cost_usd: Decimal,
        confidence_score: int,
        detected_at: float,
        optimal_input_usd: Decimal = Decimal("0"),
        kind: ArbitrageKind = ArbitrageKind.TWO_POOL,
    ) -> "ArbitrageOpportunity":
        return cls(
            id=str(uuid.uuid4()),
            token_address=token_address.lower(),
            token_symbol=token_symbol,
            path=tuple(path),
            buy_price=buy_price,
            sell_price=sell_price,
            optimal_input_amount=optimal_input_amount,
            optimal_input_usd=optimal_input_usd,
            expected_profit_usd=expected_profit_usd,
            estimated_gas_cost_usd=estimated_gas_cost_usd,
            confidence_score=confidence_score,
            detected_at=detected_at,
            kind=kind,
        )

    @property
    def spread_percent(self) -> Decimal:
        if self.buy_price <= 0:
            return Decimal("0")
        return (self.sell_price - self.buy_price) / self.buy_price * 100

    @property
    def net_profit_usd(self) -> Decimal:
        return self.expected_profit_usd - self.estimated_gas_cost_usd

    @property
    def roi_percent(self) -> Decimal:
        if self.optimal_input_usd <= 0:
            return Decimal("0")
        return self.net_profit_usd / self.optimal_input_usd * 100

    @property
    def is_profitable(self) -> bool:
        return self.net_profit_usd > 0

    @property
    def path_length(self) -> int:
        return len(self.path)

    @property
    def pool_addresses(self) -> Tuple[str, ...]:
        return tuple(leg.pool_address for leg in self.path)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "token_address": self.token_address,
            "token_symbol": self.token_symbol,
            "path": [leg.to_dict() for leg in self.path],
            "buy_price": _num(self.buy_price),
            "sell_price": _num(self.sell_price),
            "spread_percent": _num(self.spread_percent),
            "optimal_input_amount": _num(self.optimal_input_amount),
            "optimal_input_usd": _num(self.optimal_input_usd),
            "expected_profit_usd": _num(round_cents(self.expected_profit_usd)),
            "estimated_gas_cost_usd": _num(round_cents(self.estimated_gas_cost_usd)),
            "net_profit_usd": _num(round_cents(self.net_profit_usd)),
            "roi_percent": _num(self.roi_percent),
            "is_profitable": self.is_profitable,
            "confidence_score": self.confidence_score,
            "detected_at": timestamp_to_iso(self.detected_at),
        }


@dataclass(frozen=True)
class LiquidityMetrics:
    """
    Per-pool liquidity snapshot.

    Attributes:
        reserve0/reserve1: Reserves in token units (decimals applied)
        reserve0_usd/reserve1_usd: USD value of each side (0 when unpriced)
        volume_24h_usd: Trailing 24h volume
        fee_percent: Swap fee in percent (0.3 for 30 bps)
    """

    pool_address: str
    token0_address: str
    token0_symbol: str
    token1_address: str
    token1_symbol: str
    reserve0: Decimal
    reserve1: Decimal
    reserve0_usd: Decimal
    reserve1_usd: Decimal
    volume_24h_usd: Decimal
    fee_percent: Decimal
    timestamp: float

    @property
    def tvl_usd(self) -> Decimal:
        return self.reserve0_usd + self.reserve1_usd

    @property
    def fees_24h_usd(self) -> Decimal:
        return self.volume_24h_usd * self.fee_percent / 100

    @property
    def apr_percent(self) -> Decimal:
        if self.tvl_usd <= 0:
            return Decimal("0")
        return self.fees_24h_usd * 365 / self.tvl_usd * 100

    @property
    def depth_score(self) -> int:
        return depth_score(self.tvl_usd, self.volume_24h_usd)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pool_address": self.pool_address,
            "token0": {"address": self.token0_address, "symbol": self.token0_symbol},
            "token1": {"address": self.token1_address, "symbol": self.token1_symbol},
            "reserve0": _num(self.reserve0),
            "reserve1": _num(self.reserve1),
            "reserve0_usd": _num(self.reserve0_usd),
            "reserve1_usd": _num(self.reserve1_usd),
            "tvl_usd": _num(self.tvl_usd),
            "volume_24h_usd": _num(self.volume_24h_usd),
            "fees_24h_usd": _num(self.fees_24h_usd),
            "apr_percent": _num(self.apr_percent),
            "depth_score": self.depth_score,
            "timestamp": timestamp_to_iso(self.timestamp),
        }


@dataclass(frozen=True)
class ImpermanentLossResult:
    """Impermanent loss of a hypothetical 50/50 position."""

    pool_address: str
    initial_price_ratio: Decimal
    current_price_ratio: Decimal
    price_change_percent: Decimal
    impermanent_loss_percent: Decimal
    hodl_value_usd: Decimal
    lp_value_usd: Decimal
    difference_usd: Decimal
    calculated_at: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pool_address": self.pool_address,
            "initial_price_ratio": _num(self.initial_price_ratio),
            "current_price_ratio": _num(self.current_price_ratio),
            "price_change_percent": _num(self.price_change_percent),
            "impermanent_loss_percent": _num(self.impermanent_loss_percent),
            "hodl_value_usd": _num(self.hodl_value_usd),
            "lp_value_usd": _num(self.lp_value_usd),
            "difference_usd": _num(self.difference_usd),
            "calculated_at": timestamp_to_iso(self.calculated_at),
        }


@dataclass(frozen=True)
class PoolLiquiditySummary:
    """One pool's share of a token's liquidity."""

    pool_address: str
    paired_token_address: str
    paired_token_symbol: str
    liquidity_usd: Decimal
    share_percent: Decimal


@dataclass(frozen=True)
class TokenLiquiditySummary:
    """Aggregate liquidity across every pool containing a token."""

    token_address: str
    token_symbol: str
    total_liquidity_usd: Decimal
    pool_count: int
    top_pools: Tuple[PoolLiquiditySummary, ...]
    average_liquidity_per_pool: Decimal
    total_volume_24h_usd: Decimal
    timestamp: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "token_address": self.token_address,
            "token_symbol": self.token_symbol,
            "total_liquidity_usd": _num(self.total_liquidity_usd),
            "pool_count": self.pool_count,
            "top_pools": [
                {
                    "pool_address": p.pool_address,
                    "paired_token": p.paired_token_symbol,
                    "liquidity_usd": _num(p.liquidity_usd),
                    "share_percent": _num(p.share_percent),
                }
                for p in self.top_pools
            ],
            "average_liquidity_per_pool": _num(self.average_liquidity_per_pool),
            "total_volume_24h_usd": _num(self.total_volume_24h_usd),
            "timestamp": timestamp_to_iso(self.timestamp),
        }


@dataclass(frozen=True)
class LiquidityConcentration:
    """
    Herfindahl concentration of a token's liquidity.

    hhi is a fraction in [0, 1] (0.38 for shares of 50/30/20).
    """

    token_address: str
    total_liquidity_usd: Decimal
    top_pool_percent: Decimal
    top3_pools_percent: Decimal
    top5_pools_percent: Decimal
    hhi: Decimal
    level: str
    pool_count: int
    shares: Tuple[Decimal, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "token_address": self.token_address,
            "total_liquidity_usd": _num(self.total_liquidity_usd),
            "top_pool_percent": _num(self.top_pool_percent),
            "top3_pools_percent": _num(self.top3_pools_percent),
            "top5_pools_percent": _num(self.top5_pools_percent),
            "hhi": _num(self.hhi),
            "level": self.level,
            "pool_count": self.pool_count,
        }
