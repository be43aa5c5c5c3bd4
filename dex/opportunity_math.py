"""
Single source of truth for opportunity and liquidity scoring math.

Every heuristic score and risk formula used by the detector and the
liquidity analytics lives here as a pure function so that the scanner,
the CLI table and the tests all agree on the numbers.

Conversion policy:
- Internal: Decimal with 50 digits precision
- Output: round_cents() for USD, integer scores for 0-100 heuristics
- No inline /100 for fees - use bps_to_pct()
"""

import logging
from dataclasses import dataclass
from decimal import ROUND_FLOOR, Decimal, getcontext
from typing import Iterable, List, Sequence

from web3 import Web3

getcontext().prec = 50

logger = logging.getLogger(__name__)

BASE_SWAP_GAS = 150_000
FALLBACK_GAS_COST_USD = Decimal("50")

SCORE_MIN = 0
SCORE_MAX = 100

# Depth score: (TVL floor, points), highest first
TVL_DEPTH_TIERS = (
    (Decimal("10000000"), 50),
    (Decimal("1000000"), 40),
    (Decimal("100000"), 30),
    (Decimal("10000"), 20),
    (Decimal("1000"), 10),
)
# Volume/TVL ratio floor, points
VOLUME_RATIO_TIERS = (
    (Decimal("0.5"), 30),
    (Decimal("0.1"), 20),
    (Decimal("0.01"), 10),
)
# Reserve-balance credit. Reserves of a constant-product pool are balanced
# in value by construction, so this is a fixed partial credit.
BALANCE_CREDIT = 15

# HHI thresholds on fractional shares (sum of share^2, 0..1)
HHI_HIGHLY_CONCENTRATED = Decimal("0.25")
HHI_MODERATELY_CONCENTRATED = Decimal("0.15")
HHI_MODERATELY_COMPETITIVE = Decimal("0.10")

LEVEL_NO_LIQUIDITY = "No Liquidity"
LEVEL_HIGHLY_CONCENTRATED = "Highly Concentrated"
LEVEL_MODERATELY_CONCENTRATED = "Moderately Concentrated"
LEVEL_MODERATELY_COMPETITIVE = "Moderately Competitive"
LEVEL_COMPETITIVE = "Competitive"


# ============================================================================
# Conversion helpers
# ============================================================================


def bps_to_pct(bps: Decimal) -> Decimal:
    """Convert basis points to percent. 30 bps -> 0.3%"""
    return Decimal(bps) / Decimal("100")


def round_cents(value: Decimal) -> Decimal:
    """Round USD value to nearest cent."""
    return value.quantize(Decimal("0.01"))


def clamp_score(score: int) -> int:
    return max(SCORE_MIN, min(SCORE_MAX, score))


def profit_bucket(net_profit_usd: Decimal, bucket_usd: Decimal = Decimal("10")) -> int:
    """Floor a USD profit to its bucket: 27.5 -> 20, -3 -> -10."""
    units = (Decimal(net_profit_usd) / bucket_usd).to_integral_value(rounding=ROUND_FLOOR)
    return int(units * bucket_usd)


# ============================================================================
# Arbitrage scoring
# ============================================================================


def confidence_score(
    liquidity_buy: Decimal, liquidity_sell: Decimal, spread_percent: Decimal
) -> int:
    """
    Heuristic 0-100 reliability of a detected spread.

    Deep pools raise confidence; thin pools and implausibly wide spreads
    (likely stale reserves) lower it.
    """
    score = 50
    min_liquidity = min(Decimal(liquidity_buy), Decimal(liquidity_sell))
    spread_percent = Decimal(spread_percent)

    if min_liquidity > 1_000_000:
        score += 20
    elif min_liquidity > 100_000:
        score += 10
    elif min_liquidity < 10_000:
        score -= 20

    if spread_percent > 10:
        score -= 20
    elif spread_percent > 5:
        score -= 10
    elif spread_percent < 2:
        score += 10

    return clamp_score(score)


def gas_cost_eth(leg_count: int, gas_price_gwei: Decimal) -> Decimal:
    """Gas for a path of leg_count swaps, in ETH."""
    gas_wei = Web3.to_wei(Decimal(str(gas_price_gwei)), "gwei") * BASE_SWAP_GAS * leg_count
    return Decimal(Web3.from_wei(gas_wei, "ether"))


def gas_cost_usd(leg_count: int, gas_price_gwei: Decimal, eth_usd: Decimal) -> Decimal:
    """Gas for a path in USD; the flat fallback when ETH/USD is unknown."""
    if eth_usd is None or eth_usd <= 0:
        logger.warning(
            f"ETH/USD unavailable, using flat gas estimate ${FALLBACK_GAS_COST_USD}"
        )
        return FALLBACK_GAS_COST_USD
    return gas_cost_eth(leg_count, gas_price_gwei) * Decimal(eth_usd)


# ============================================================================
# Liquidity scoring
# ============================================================================


def depth_score(tvl_usd: Decimal, volume_24h_usd: Decimal) -> int:
    """
    Market depth score in [0, 100].

    TVL tier (max 50) + volume/TVL activity tier (max 30) + fixed balance
    credit, clamped to 100.
    """
    tvl_usd = Decimal(tvl_usd)
    score = 0

    for floor, points in TVL_DEPTH_TIERS:
        if tvl_usd >= floor:
            score += points
            break

    if tvl_usd > 0:
        ratio = Decimal(volume_24h_usd) / tvl_usd
        for floor, points in VOLUME_RATIO_TIERS:
            if ratio >= floor:
                score += points
                break

    score += BALANCE_CREDIT
    return clamp_score(score)


@dataclass(frozen=True)
class ImpermanentLoss:
    """Raw impermanent-loss figures for a price-ratio move."""

    ratio: Decimal
    price_change_percent: Decimal
    il_factor: Decimal
    il_percent: Decimal
    hodl_value: Decimal
    lp_value: Decimal

    @property
    def difference(self) -> Decimal:
        return self.lp_value - self.hodl_value


def calculate_impermanent_loss(
    initial_ratio: Decimal, current_ratio: Decimal, initial_investment: Decimal
) -> ImpermanentLoss:
    """
    Impermanent loss of a 50/50 constant-product position.

    il_factor = 2*sqrt(r)/(1+r) with r = current/initial, so the loss is 0
    at r == 1 and negative for any other ratio. HODL value treats the
    position as half exposed to the price move.

    Raises:
        ValueError: If either ratio is not positive
    """
    initial_ratio = Decimal(initial_ratio)
    current_ratio = Decimal(current_ratio)
    initial_investment = Decimal(initial_investment)
    if initial_ratio <= 0 or current_ratio <= 0:
        raise ValueError("Price ratios must be positive")

    ratio = current_ratio / initial_ratio
    il_factor = 2 * ratio.sqrt() / (1 + ratio)
    # Exact equality at r == 1 regardless of sqrt rounding
    if ratio == 1:
        il_factor = Decimal("1")
    price_change_percent = (ratio - 1) * 100

    hodl_value = initial_investment * (1 + price_change_percent / 200)
    lp_value = initial_investment * il_factor

    return ImpermanentLoss(
        ratio=ratio,
        price_change_percent=price_change_percent,
        il_factor=il_factor,
        il_percent=min((il_factor - 1) * 100, Decimal("0")),
        hodl_value=hodl_value,
        lp_value=lp_value,
    )


def share_fractions(liquidities: Iterable[Decimal]) -> List[Decimal]:
    """Each value's fraction of the total; empty when the total is 0."""
    values = [Decimal(v) for v in liquidities]
    total = sum(values, Decimal("0"))
    if total <= 0:
        return []
    return [v / total for v in values]


def herfindahl_index(shares: Sequence[Decimal]) -> Decimal:
    """Sum of squared fractional shares (0.38 for 0.5/0.3/0.2)."""
    return sum((s * s for s in shares), Decimal("0"))


def concentration_level(hhi: Decimal, pool_count: int) -> str:
    if pool_count == 0:
        return LEVEL_NO_LIQUIDITY
    if hhi >= HHI_HIGHLY_CONCENTRATED:
        return LEVEL_HIGHLY_CONCENTRATED
    if hhi >= HHI_MODERATELY_CONCENTRATED:
        return LEVEL_MODERATELY_CONCENTRATED
    if hhi >= HHI_MODERATELY_COMPETITIVE:
        return LEVEL_MODERATELY_COMPETITIVE
    return LEVEL_COMPETITIVE
