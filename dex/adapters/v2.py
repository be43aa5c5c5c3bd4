"""
Uniswap V2 style reserve math for constant-product AMM pools.

Pure functions over Decimal reserves: spot price with decimal
normalization, the x*y=k swap output with the fee taken from the input,
and the closed-form two-pool arbitrage size. No I/O.
"""

from decimal import Decimal, getcontext

getcontext().prec = 50

NORMALIZED_DECIMALS = 18
BPS_DENOMINATOR = Decimal("10000")
DEFAULT_FEE_BPS = 30
DEFAULT_MAX_INPUT_FRACTION = Decimal("0.10")

ZERO = Decimal("0")


def normalize_reserve(reserve: Decimal, decimals: int) -> Decimal:
    """Scale a raw reserve to 18 decimals."""
    return Decimal(reserve) * (Decimal(10) ** (NORMALIZED_DECIMALS - decimals))


def to_units(raw: Decimal, decimals: int) -> Decimal:
    """Convert a raw on-chain amount to token units (1e18 wei -> 1)."""
    return Decimal(raw) / (Decimal(10) ** decimals)


def price_from_reserves(
    reserve0: Decimal,
    reserve1: Decimal,
    decimals0: int,
    decimals1: int,
    is_token0_base: bool,
) -> Decimal:
    """
    Spot price of the base token in terms of the other token.

    Both reserves are brought to a common 18-decimal scale first so tokens
    with different decimals compare correctly.

    Args:
        reserve0: Raw reserve of token0
        reserve1: Raw reserve of token1
        decimals0: Decimals of token0
        decimals1: Decimals of token1
        is_token0_base: True to price token0 in token1, False for the reverse

    Returns:
        Price as Decimal, or 0 when either reserve is empty (no price)
    """
    reserve0 = Decimal(reserve0)
    reserve1 = Decimal(reserve1)
    if reserve0 <= 0 or reserve1 <= 0:
        return ZERO

    normalized0 = normalize_reserve(reserve0, decimals0)
    normalized1 = normalize_reserve(reserve1, decimals1)

    if is_token0_base:
        return normalized1 / normalized0
    return normalized0 / normalized1


def amount_out(
    amount_in: Decimal,
    reserve_in: Decimal,
    reserve_out: Decimal,
    fee_bps: int = DEFAULT_FEE_BPS,
) -> Decimal:
    """
    Constant-product output amount with the fee taken from the input.

    amount_in_net = amount_in * (10000 - fee_bps)
    amount_out = amount_in_net * reserve_out / (reserve_in * 10000 + amount_in_net)

    Returns 0 for non-positive input or an empty denominator.
    """
    amount_in = Decimal(amount_in)
    if amount_in <= 0:
        return ZERO

    amount_in_net = amount_in * (BPS_DENOMINATOR - Decimal(fee_bps))
    denominator = Decimal(reserve_in) * BPS_DENOMINATOR + amount_in_net
    if denominator == 0:
        return ZERO

    return amount_in_net * Decimal(reserve_out) / denominator


def exchange_rate(reserve_in: Decimal, reserve_out: Decimal) -> Decimal:
    """Mid-market rate (output per unit of input), 0 on an empty input side."""
    reserve_in = Decimal(reserve_in)
    if reserve_in <= 0:
        return ZERO
    return Decimal(reserve_out) / reserve_in


def price_impact_percent(
    amount_in: Decimal,
    reserve_in: Decimal,
    reserve_out: Decimal,
    fee_bps: int = DEFAULT_FEE_BPS,
) -> Decimal:
    """
    Shortfall of the executed rate against the mid rate, in percent.

    Includes the swap fee. 0 when nothing can be quoted.
    """
    mid = exchange_rate(reserve_in, reserve_out)
    amount_in = Decimal(amount_in)
    if mid <= 0 or amount_in <= 0:
        return ZERO

    executed = amount_out(amount_in, reserve_in, reserve_out, fee_bps) / amount_in
    return (mid - executed) / mid * 100


def optimal_input(
    reserve_in_buy: Decimal,
    reserve_out_buy: Decimal,
    reserve_in_sell: Decimal,
    reserve_out_sell: Decimal,
    max_fraction: Decimal = DEFAULT_MAX_INPUT_FRACTION,
) -> Decimal:
    """
    Closed-form profit-maximizing size for a two-pool arbitrage.

    Prices are expressed as input token per target token in each pool:
    price_buy = reserve_in_buy / reserve_out_buy and likewise for the sell
    pool. The raw optimum

        sqrt(k_buy * k_sell / (price_buy * price_sell)) - reserve_in_buy

    is clamped to [0, max_fraction * reserve_in_buy]. The cap is a fixed
    risk bound; callers must not size above it. The raw optimum depends on
    the scale of the reserves: pass them at on-chain scale (see
    normalize_reserve), not in token units.

    Returns:
        Input amount in the same units as reserve_in_buy, 0 when the buy
        pool is not cheaper or any reserve is empty
    """
    reserve_in_buy = Decimal(reserve_in_buy)
    reserve_out_buy = Decimal(reserve_out_buy)
    reserve_in_sell = Decimal(reserve_in_sell)
    reserve_out_sell = Decimal(reserve_out_sell)

    if min(reserve_in_buy, reserve_out_buy, reserve_in_sell, reserve_out_sell) <= 0:
        return ZERO

    price_buy = reserve_in_buy / reserve_out_buy
    price_sell = reserve_in_sell / reserve_out_sell
    if price_buy >= price_sell:
        return ZERO

    k_buy = reserve_in_buy * reserve_out_buy
    k_sell = reserve_in_sell * reserve_out_sell
    amount = (k_buy * k_sell / (price_buy * price_sell)).sqrt() - reserve_in_buy
    if amount <= 0:
        return ZERO

    cap = Decimal(max_fraction) * reserve_in_buy
    return min(amount, cap)
