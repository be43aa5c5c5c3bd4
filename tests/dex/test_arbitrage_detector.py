"""
Tests for dex_analytics/detector.py

Two-pool pricing, sizing and netting, the triangular graph scan, and
scan caching.
"""

from decimal import Decimal

import pytest
from conftest import (
    E6,
    E18,
    SUSHISWAP_FACTORY,
    TKB_ADDRESS,
    TKN_ADDRESS,
    UNPRICED_ADDRESS,
    WETH_USDC_POOL,
    pool_address,
)

from dex.types import ArbitrageKind
from dex_analytics.constants import USDC_ADDRESS, WETH_ADDRESS
from dex_analytics.detector import group_pools_by_pair, orient_pair
from dex_analytics.exceptions import NetworkError

POOL_A = pool_address(0xA)
POOL_B = pool_address(0xB)


def add_token_pools(market, sell_weth_reserve):
    """TKN at 0.001 WETH in pool A and at the given WETH reserve per 1000 TKN in B."""
    pool_a = market.add_pool(POOL_A, TKN_ADDRESS, WETH_ADDRESS, 1000 * E18, 1 * E18)
    pool_b = market.add_pool(
        POOL_B,
        TKN_ADDRESS,
        WETH_ADDRESS,
        1000 * E18,
        int(Decimal(sell_weth_reserve) * E18),
        factory=SUSHISWAP_FACTORY,
    )
    return pool_a, pool_b


def add_dear_weth_usdc_pool(market, usdc_reserve=2_040_000):
    """A second 1000 WETH pool next to the fixture's 2000 USDC/WETH pool."""
    return market.add_pool(
        POOL_B,
        WETH_ADDRESS,
        USDC_ADDRESS,
        1000 * E18,
        usdc_reserve * E6,
        factory=SUSHISWAP_FACTORY,
    )


class TestPairHelpers:
    def test_orient_pair_prefers_stable_then_weth(self, market):
        weth_usdc = market.add_pool(pool_address(1), USDC_ADDRESS, WETH_ADDRESS, 1, 1)
        tkn_weth = market.add_pool(pool_address(2), WETH_ADDRESS, TKN_ADDRESS, 1, 1)
        tkn_tkb = market.add_pool(pool_address(3), TKN_ADDRESS, TKB_ADDRESS, 1, 1)
        assert orient_pair(weth_usdc) == (WETH_ADDRESS, USDC_ADDRESS)
        assert orient_pair(tkn_weth) == (TKN_ADDRESS, WETH_ADDRESS)
        assert orient_pair(tkn_tkb) == (TKN_ADDRESS, TKB_ADDRESS)

    def test_group_pools_by_pair(self, market):
        pool_a, pool_b = add_token_pools(market, "1.01")
        other = market.add_pool(pool_address(3), WETH_ADDRESS, TKN_ADDRESS, 1, 1)
        groups = group_pools_by_pair([pool_a, pool_b, other])
        assert len(groups) == 1
        assert len(groups[pool_a.pair_key]) == 3


class TestAnalyzePoolPair:
    @pytest.mark.asyncio
    async def test_one_percent_spread(self, market):
        pool_a, pool_b = add_token_pools(market, "1.01")
        opp = await market.detector.analyze_pool_pair(pool_a, pool_b)

        assert opp is not None
        assert opp.token_address == TKN_ADDRESS
        assert opp.token_symbol == "TKN"
        assert opp.kind == ArbitrageKind.TWO_POOL
        assert opp.buy_price == Decimal("0.001")
        assert opp.sell_price == Decimal("0.00101")
        assert opp.spread_percent == Decimal("1")
        # Capped at 10% of the 1 WETH buy-side reserve
        assert opp.optimal_input_amount == Decimal("0.1")
        assert opp.optimal_input_usd == Decimal("200")
        assert opp.expected_profit_usd == Decimal("2")
        assert opp.estimated_gas_cost_usd == Decimal("0.3")
        assert opp.net_profit_usd == Decimal("1.7")
        assert opp.is_profitable
        assert opp.confidence_score == 40

        buy_leg, sell_leg = opp.path
        assert buy_leg.pool_address == POOL_A
        assert buy_leg.venue_name == "Uniswap V2"
        assert buy_leg.token_in == WETH_ADDRESS
        assert buy_leg.token_out == TKN_ADDRESS
        assert buy_leg.liquidity == Decimal("4000")
        assert buy_leg.price_impact_percent > 0
        assert sell_leg.pool_address == POOL_B
        assert sell_leg.venue_name == "SushiSwap"
        assert sell_leg.token_out == WETH_ADDRESS

    @pytest.mark.asyncio
    async def test_argument_order_does_not_matter(self, market):
        pool_a, pool_b = add_token_pools(market, "1.01")
        opp = await market.detector.analyze_pool_pair(pool_b, pool_a)
        assert opp.pool_addresses == (POOL_A, POOL_B)

    @pytest.mark.asyncio
    async def test_spread_just_above_minimum(self, market):
        pool_a, pool_b = add_token_pools(market, "1.006")
        opp = await market.detector.analyze_pool_pair(pool_a, pool_b)
        assert opp is not None
        assert opp.spread_percent == Decimal("0.6")

    @pytest.mark.asyncio
    async def test_spread_below_minimum(self, market):
        pool_a, pool_b = add_token_pools(market, "1.004")
        assert await market.detector.analyze_pool_pair(pool_a, pool_b) is None

    @pytest.mark.asyncio
    async def test_equal_prices(self, market):
        pool_a, pool_b = add_token_pools(market, "1")
        assert await market.detector.analyze_pool_pair(pool_a, pool_b) is None

    @pytest.mark.asyncio
    async def test_different_pairs(self, market):
        pool_a, _ = add_token_pools(market, "1.01")
        weth_usdc = await market.pools.get_by_address(WETH_USDC_POOL, 1)
        assert await market.detector.analyze_pool_pair(pool_a, weth_usdc) is None

    @pytest.mark.asyncio
    async def test_missing_token_metadata(self, market):
        unknown = "0x" + "4" * 40
        pool_a = market.add_pool(pool_address(1), unknown, WETH_ADDRESS, 1000 * E18, E18)
        pool_b = market.add_pool(pool_address(2), unknown, WETH_ADDRESS, 1000 * E18, 2 * E18)
        assert await market.detector.analyze_pool_pair(pool_a, pool_b) is None

    @pytest.mark.asyncio
    async def test_empty_pool(self, market):
        _, pool_b = add_token_pools(market, "1.01")
        pool_a = market.add_pool(POOL_A, TKN_ADDRESS, WETH_ADDRESS, 0, 0)
        assert await market.detector.analyze_pool_pair(pool_a, pool_b) is None

    @pytest.mark.asyncio
    async def test_gas_fallback_without_eth_price(self, market):
        market.pools.remove(WETH_USDC_POOL, 1)
        pool_a, pool_b = add_token_pools(market, "1.01")
        opp = await market.detector.analyze_pool_pair(pool_a, pool_b)
        assert opp.estimated_gas_cost_usd == Decimal("50")
        # Profit stays in WETH units when WETH cannot be priced
        assert opp.expected_profit_usd == Decimal("0.001")
        assert not opp.is_profitable


class TestStableQuotedPair:
    @pytest.mark.asyncio
    async def test_two_percent_spread_on_weth_usdc(self, market):
        cheap = await market.pools.get_by_address(WETH_USDC_POOL, 1)
        dear = add_dear_weth_usdc_pool(market)
        opp = await market.detector.analyze_pool_pair(cheap, dear)

        assert opp is not None
        assert opp.token_symbol == "WETH"
        assert opp.buy_price == Decimal("2000")
        assert opp.sell_price == Decimal("2040")
        assert opp.spread_percent == Decimal("2")
        # Capped at 10% of the 2,000,000 USDC buy-side reserve
        assert opp.optimal_input_amount == Decimal("200000")
        assert opp.optimal_input_usd == Decimal("200000")
        assert opp.expected_profit_usd == Decimal("4000")
        assert opp.net_profit_usd == opp.expected_profit_usd - opp.estimated_gas_cost_usd
        assert opp.is_profitable
        assert opp.confidence_score == 70

        buy_leg, sell_leg = opp.path
        assert buy_leg.pool_address == WETH_USDC_POOL
        assert buy_leg.token_in == USDC_ADDRESS
        assert sell_leg.pool_address == POOL_B
        assert sell_leg.token_out == USDC_ADDRESS

    @pytest.mark.asyncio
    async def test_minimum_spread_on_small_pools(self, market):
        market.pools.remove(WETH_USDC_POOL, 1)
        cheap = market.add_pool(POOL_A, WETH_ADDRESS, USDC_ADDRESS, 10 * E18, 20_000 * E6)
        dear = market.add_pool(POOL_B, WETH_ADDRESS, USDC_ADDRESS, 10 * E18, 20_100 * E6)
        opp = await market.detector.analyze_pool_pair(cheap, dear)

        assert opp is not None
        assert opp.spread_percent == Decimal("0.5")
        assert opp.optimal_input_amount == Decimal("2000")
        assert opp.expected_profit_usd == Decimal("10")

    @pytest.mark.asyncio
    async def test_scan_finds_weth_usdc(self, market):
        add_dear_weth_usdc_pool(market)
        result = await market.detector.scan(Decimal("0"))
        assert [o.token_symbol for o in result.value] == ["WETH"]

    @pytest.mark.asyncio
    async def test_calculate_optimal_amount_on_weth_usdc(self, market):
        add_dear_weth_usdc_pool(market)
        size, profit = (
            await market.detector.calculate_optimal_amount(
                WETH_USDC_POOL, POOL_B, WETH_ADDRESS
            )
        ).value
        assert size == Decimal("200000")
        assert profit == Decimal("4000")


class TestScan:
    @pytest.mark.asyncio
    async def test_min_profit_filter(self, market):
        add_token_pools(market, "1.01")
        found = await market.detector.scan(Decimal("1"))
        assert len(found.value) == 1
        assert found.value[0].net_profit_usd == Decimal("1.7")

        none = await market.detector.scan(Decimal("10"))
        assert none.value == []

    @pytest.mark.asyncio
    async def test_results_cached_for_scan_ttl(self, market, clock):
        add_token_pools(market, "1.01")
        first = await market.detector.scan(Decimal("1"))
        market.pools.remove(POOL_B, 1)

        cached = await market.detector.scan(Decimal("1"))
        assert [o.id for o in cached.value] == [o.id for o in first.value]

        clock.advance_time(11)
        assert (await market.detector.scan(Decimal("1"))).value == []

    @pytest.mark.asyncio
    async def test_failing_comparison_is_skipped(self, market):
        add_token_pools(market, "1.01")
        bad_a = market.add_pool(pool_address(0xC1), TKB_ADDRESS, WETH_ADDRESS, 1000 * E18, E18)
        market.add_pool(pool_address(0xC2), TKB_ADDRESS, WETH_ADDRESS, 1000 * E18, 2 * E18)

        original = market.detector.analyze_pool_pair

        async def flaky(pool_a, pool_b):
            if bad_a.address in (pool_a.address, pool_b.address):
                raise NetworkError("RPC timeout")
            return await original(pool_a, pool_b)

        market.detector.analyze_pool_pair = flaky
        result = await market.detector.scan(Decimal("1"))
        assert result.is_success
        assert [o.token_symbol for o in result.value] == ["TKN"]

    @pytest.mark.asyncio
    async def test_sorted_by_net_profit(self, market):
        add_token_pools(market, "1.01")
        market.add_pool(pool_address(0xC1), TKB_ADDRESS, WETH_ADDRESS, 1000 * E18, 10 * E18)
        market.add_pool(pool_address(0xC2), TKB_ADDRESS, WETH_ADDRESS, 1000 * E18, 11 * E18)
        result = await market.detector.scan(Decimal("0"))
        profits = [o.net_profit_usd for o in result.value]
        assert profits == sorted(profits, reverse=True)
        assert result.value[0].token_symbol == "TKB"

    @pytest.mark.asyncio
    async def test_find_opportunities_for_token(self, market):
        add_token_pools(market, "1.01")
        result = await market.detector.find_opportunities_for_token(TKN_ADDRESS)
        assert len(result.value) == 1
        assert (await market.detector.find_opportunities_for_token(TKB_ADDRESS)).value == []


class TestTriangular:
    def build_triangle(self, market, closing_weth="102"):
        market.add_pool(pool_address(0x31), WETH_ADDRESS, TKN_ADDRESS, 100 * E18, 100_000 * E18)
        market.add_pool(pool_address(0x32), TKN_ADDRESS, TKB_ADDRESS, 100_000 * E18, 100_000 * E18)
        market.add_pool(
            pool_address(0x33),
            TKB_ADDRESS,
            WETH_ADDRESS,
            100_000 * E18,
            int(Decimal(closing_weth) * E18),
        )

    @pytest.mark.asyncio
    async def test_profitable_cycle(self, market):
        self.build_triangle(market)
        result = await market.detector.scan_triangular(WETH_ADDRESS)

        assert len(result.value) == 1
        opp = result.value[0]
        assert opp.kind == ArbitrageKind.TRIANGULAR
        assert opp.token_symbol == "WETH"
        assert opp.path_length == 3
        assert opp.pool_addresses == (pool_address(0x31), pool_address(0x32), pool_address(0x33))
        assert [leg.token_in for leg in opp.path] == [WETH_ADDRESS, TKN_ADDRESS, TKB_ADDRESS]
        assert opp.sell_price == Decimal("1.02")
        # 5% of the shallowest leg, 100 WETH deep
        assert opp.optimal_input_amount == Decimal("5")
        assert opp.expected_profit_usd == Decimal("200")
        assert opp.estimated_gas_cost_usd == Decimal("0.45")
        assert opp.confidence_score == 60

    @pytest.mark.asyncio
    async def test_below_margin(self, market):
        self.build_triangle(market, closing_weth="100.4")
        assert (await market.detector.scan_triangular(WETH_ADDRESS)).value == []

    @pytest.mark.asyncio
    async def test_unknown_base(self, market):
        result = await market.detector.scan_triangular("0x" + "5" * 40)
        assert result.error.code == "Token.NotFound"

    @pytest.mark.asyncio
    async def test_base_without_pools(self, market):
        self.build_triangle(market)
        result = await market.detector.scan_triangular(UNPRICED_ADDRESS)
        assert result.value == []


class TestAdHocQueries:
    @pytest.mark.asyncio
    async def test_calculate_optimal_amount(self, market):
        add_token_pools(market, "1.01")
        size, profit = (
            await market.detector.calculate_optimal_amount(POOL_A, POOL_B, TKN_ADDRESS)
        ).value
        assert size == Decimal("0.1")
        assert profit == Decimal("2")

    @pytest.mark.asyncio
    async def test_calculate_optimal_amount_wrong_direction(self, market):
        add_token_pools(market, "1.01")
        result = await market.detector.calculate_optimal_amount(POOL_B, POOL_A, TKN_ADDRESS)
        assert result.value == (0, 0)

    @pytest.mark.asyncio
    async def test_calculate_optimal_amount_unknown_pool(self, market):
        add_token_pools(market, "1.01")
        result = await market.detector.calculate_optimal_amount(
            POOL_A, pool_address(0xFF), TKN_ADDRESS
        )
        assert result.error.code == "Arbitrage.PoolNotFound"

    @pytest.mark.asyncio
    async def test_estimate_gas_cost(self, market):
        assert (await market.detector.estimate_gas_cost(2)).value == Decimal("0.3")
        pool_a, pool_b = add_token_pools(market, "1.01")
        opp = await market.detector.analyze_pool_pair(pool_a, pool_b)
        assert (await market.detector.estimate_gas_cost(opp)).value == Decimal("0.3")
