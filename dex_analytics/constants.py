"""
Constants and enums for the DEX analytics engine.

Well-known mainnet addresses, quote-currency routing tables, venue names
and cache key templates.
"""

from enum import Enum
from typing import Dict, FrozenSet


class ScannerState(Enum):
    """Phases of one scan cycle."""

    IDLE = "idle"
    SCANNING = "scanning"
    DEDUPLICATING = "deduplicating"
    PUBLISHING = "publishing"


WETH_ADDRESS = "0xc02aaa39b223fe8d0a0e5c4f27ead9083c756cc2"
USDC_ADDRESS = "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48"
USDT_ADDRESS = "0xdac17f958d2ee523a2206206994597c13d831ec7"
DAI_ADDRESS = "0x6b175474e89094c44da98b954eedeac495271d0f"
BUSD_ADDRESS = "0x4fabb145d64652a948d72533023f6e7a623c7c53"
TUSD_ADDRESS = "0x0000000000085d4780b73119b644ae5ecd22b376"

# Quote symbol -> token address. "USD" is deliberately absent: an unmapped
# quote matches any pool.
QUOTE_TOKEN_ADDRESSES: Dict[str, str] = {
    "ETH": WETH_ADDRESS,
    "WETH": WETH_ADDRESS,
    "USDC": USDC_ADDRESS,
    "USDT": USDT_ADDRESS,
    "DAI": DAI_ADDRESS,
}

SUPPORTED_QUOTE_CURRENCIES = ("ETH", "WETH", "USDC", "USDT", "DAI", "USD")

STABLECOIN_ADDRESSES: FrozenSet[str] = frozenset(
    {USDC_ADDRESS, USDT_ADDRESS, DAI_ADDRESS, BUSD_ADDRESS, TUSD_ADDRESS}
)

# Tried in order for direct USD pricing
USD_PAIRING_SYMBOLS = ("USDC", "USDT", "DAI")

DEFAULT_TOKEN_DECIMALS = 18

FACTORY_NAMES: Dict[str, str] = {
    "0x5c69bee701ef814a2b6a3edd4b1652cb9cc5aa6f": "Uniswap V2",
    "0xc0aee478e3658e2610c5f7a4a2e1777ce9e4f2ac": "SushiSwap",
    "0x1f98431c8ad98523631ae4a59f267346ea31f984": "Uniswap V3",
}
UNKNOWN_VENUE = "Unknown DEX"


def venue_name(factory: str) -> str:
    """Human-readable venue for a factory address."""
    return FACTORY_NAMES.get(factory.lower(), UNKNOWN_VENUE)


def resolve_quote_address(quote_currency: str) -> str:
    """Address for a quote symbol, or "" when the quote accepts any pool."""
    return QUOTE_TOKEN_ADDRESSES.get(quote_currency.upper(), "")


# Cache key templates
PRICE_CACHE_KEY = "price:{token}:{quote}"
USD_PRICE_CACHE_KEY = "price:{token}:usd-value"
SCAN_CACHE_KEY = "arbitrage:scan:{min_profit}"
POOL_METRICS_CACHE_KEY = "liquidity:pool:{pool}"
TOKEN_SUMMARY_CACHE_KEY = "liquidity:token:{token}"
TOP_POOLS_CACHE_KEY = "liquidity:top:{limit}"
POOL_ADDRESS_CACHE_KEY = "pool:address:{address}:chain:{chain_id}"
POOLS_BY_TOKEN_CACHE_KEY = "pool:token:{token}:chain:{chain_id}"
POOLS_BY_CHAIN_CACHE_KEY = "pool:chain:{chain_id}"
TOKEN_ADDRESS_CACHE_KEY = "token:address:{address}:chain:{chain_id}"
