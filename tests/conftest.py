"""
Shared fixtures: a small mainnet-like market with WETH priced at $2000.
"""

from decimal import Decimal

import pytest
from prometheus_client import CollectorRegistry

from dex.types import Pool, Token
from dex_analytics.cache import InMemoryCacheService
from dex_analytics.config_schema import DetectorConfig
from dex_analytics.constants import (
    DAI_ADDRESS,
    TUSD_ADDRESS,
    USDC_ADDRESS,
    USDT_ADDRESS,
    WETH_ADDRESS,
)
from dex_analytics.detector import ArbitrageDetector
from dex_analytics.interfaces import DeterministicTimeProvider
from dex_analytics.liquidity import LiquidityAnalytics
from dex_analytics.metrics import ScannerMetrics
from dex_analytics.price_oracle import PriceOracle
from dex_analytics.repositories import (
    InMemoryPoolRepository,
    InMemoryPriceHistoryRepository,
    InMemoryTokenRepository,
    InMemoryVolumeRepository,
)

E18 = 10**18
E6 = 10**6

UNISWAP_V2_FACTORY = "0x5c69bee701ef814a2b6a3edd4b1652cb9cc5aa6f"
SUSHISWAP_FACTORY = "0xc0aee478e3658e2610c5f7a4a2e1777ce9e4f2ac"

TKN_ADDRESS = "0x1111111111111111111111111111111111111111"
TKB_ADDRESS = "0x2222222222222222222222222222222222222222"
UNPRICED_ADDRESS = "0x3333333333333333333333333333333333333333"

WETH_USDC_POOL = "0x00000000000000000000000000000000000000a1"
NOW = 1_700_000_000.0


def pool_address(n: int) -> str:
    return f"0x{n:040x}"


def make_pool(
    address, token0, token1, reserve0, reserve1, factory=UNISWAP_V2_FACTORY, fee_bps=30
) -> Pool:
    return Pool(
        address=address,
        factory=factory,
        chain_id=1,
        token0=token0,
        token1=token1,
        reserve0=Decimal(reserve0),
        reserve1=Decimal(reserve1),
        fee_bps=fee_bps,
    )


class Market:
    """Stores and services wired over one deterministic clock."""

    def __init__(self, clock: DeterministicTimeProvider):
        self.clock = clock
        self.tokens = InMemoryTokenRepository(
            [
                Token(WETH_ADDRESS, "WETH", 18),
                Token(USDC_ADDRESS, "USDC", 6),
                Token(USDT_ADDRESS, "USDT", 6),
                Token(DAI_ADDRESS, "DAI", 18),
                Token(TUSD_ADDRESS, "TUSD", 18),
                Token(TKN_ADDRESS, "TKN", 18),
                Token(TKB_ADDRESS, "TKB", 18),
                Token(UNPRICED_ADDRESS, "NOPE", 18),
            ]
        )
        self.pools = InMemoryPoolRepository(
            [
                make_pool(
                    WETH_USDC_POOL,
                    WETH_ADDRESS,
                    USDC_ADDRESS,
                    1000 * E18,
                    2_000_000 * E6,
                )
            ]
        )
        self.history = InMemoryPriceHistoryRepository()
        self.volumes = InMemoryVolumeRepository()
        self.cache = InMemoryCacheService(clock)
        self.settings = DetectorConfig()

        self.oracle = PriceOracle(
            self.pools, self.tokens, self.history, self.cache, time_provider=clock
        )
        self.detector = ArbitrageDetector(
            self.pools,
            self.tokens,
            self.oracle,
            self.cache,
            settings=self.settings,
            time_provider=clock,
        )
        self.liquidity = LiquidityAnalytics(
            self.pools,
            self.tokens,
            self.volumes,
            self.oracle,
            self.cache,
            time_provider=clock,
        )

    def add_pool(self, *args, **kwargs) -> Pool:
        pool = make_pool(*args, **kwargs)
        self.pools.upsert(pool)
        return pool


@pytest.fixture
def clock():
    return DeterministicTimeProvider(start_time=NOW)


@pytest.fixture
def market(clock):
    return Market(clock)


@pytest.fixture
def scanner_metrics():
    return ScannerMetrics(CollectorRegistry())
