"""
Unit tests for dex/opportunity_math.py

Scores, gas and risk formulas shared by the detector and liquidity
analytics.
"""

import unittest
from decimal import Decimal

import pytest

from dex.opportunity_math import (
    FALLBACK_GAS_COST_USD,
    LEVEL_COMPETITIVE,
    LEVEL_HIGHLY_CONCENTRATED,
    LEVEL_MODERATELY_COMPETITIVE,
    LEVEL_MODERATELY_CONCENTRATED,
    LEVEL_NO_LIQUIDITY,
    bps_to_pct,
    calculate_impermanent_loss,
    clamp_score,
    concentration_level,
    confidence_score,
    depth_score,
    gas_cost_eth,
    gas_cost_usd,
    herfindahl_index,
    profit_bucket,
    round_cents,
    share_fractions,
)


class TestConversionHelpers(unittest.TestCase):
    """Test bps/percent conversion helpers."""

    def test_bps_to_pct(self):
        self.assertEqual(bps_to_pct(30), Decimal("0.3"))
        self.assertEqual(bps_to_pct(Decimal("5")), Decimal("0.05"))

    def test_round_cents(self):
        self.assertEqual(round_cents(Decimal("1.504")), Decimal("1.50"))
        # Decimal rounds half to even
        self.assertEqual(round_cents(Decimal("1.505")), Decimal("1.50"))

    def test_clamp_score(self):
        self.assertEqual(clamp_score(-20), 0)
        self.assertEqual(clamp_score(130), 100)
        self.assertEqual(clamp_score(55), 55)

    def test_profit_bucket(self):
        self.assertEqual(profit_bucket(Decimal("27.5")), 20)
        self.assertEqual(profit_bucket(Decimal("10")), 10)
        self.assertEqual(profit_bucket(Decimal("0")), 0)
        self.assertEqual(profit_bucket(Decimal("-3")), -10)


class TestConfidenceScore(unittest.TestCase):
    def test_deep_pools_tight_spread(self):
        self.assertEqual(confidence_score(Decimal(2_000_000), Decimal(3_000_000), Decimal(1)), 80)

    def test_thin_pools_wide_spread(self):
        self.assertEqual(confidence_score(Decimal(5000), Decimal(5000), Decimal(12)), 10)

    def test_neutral_band(self):
        self.assertEqual(confidence_score(Decimal(50_000), Decimal(80_000), Decimal(3)), 50)

    def test_uses_shallower_pool(self):
        self.assertEqual(confidence_score(Decimal(5_000_000), Decimal(500_000), Decimal(6)), 50)


class TestGasCost(unittest.TestCase):
    def test_two_legs_in_eth(self):
        # 0.5 gwei * 150k gas * 2 legs
        self.assertEqual(gas_cost_eth(2, Decimal("0.5")), Decimal("0.00015"))

    def test_usd_conversion(self):
        self.assertEqual(gas_cost_usd(2, Decimal("0.5"), Decimal(2000)), Decimal("0.3"))
        self.assertEqual(gas_cost_usd(3, Decimal("0.5"), Decimal(2000)), Decimal("0.45"))

    def test_fallback_without_eth_price(self):
        self.assertEqual(gas_cost_usd(2, Decimal("0.5"), None), FALLBACK_GAS_COST_USD)
        self.assertEqual(gas_cost_usd(2, Decimal("0.5"), Decimal(0)), FALLBACK_GAS_COST_USD)


class TestDepthScore(unittest.TestCase):
    def test_top_tiers(self):
        self.assertEqual(depth_score(Decimal(15_000_000), Decimal(10_000_000)), 95)

    def test_mid_tier(self):
        # TVL >= 1M (40) + volume ratio 0.5 (30) + balance credit (15)
        self.assertEqual(depth_score(Decimal(4_000_000), Decimal(2_000_000)), 85)

    def test_empty_pool(self):
        self.assertEqual(depth_score(Decimal(0), Decimal(0)), 15)

    def test_no_volume(self):
        self.assertEqual(depth_score(Decimal(5000), Decimal(0)), 25)


class TestImpermanentLoss(unittest.TestCase):
    def test_no_move_no_loss(self):
        il = calculate_impermanent_loss(Decimal("0.5"), Decimal("0.5"), Decimal(1000))
        self.assertEqual(il.il_factor, Decimal(1))
        self.assertEqual(il.il_percent, 0)
        self.assertEqual(il.lp_value, Decimal(1000))

    def test_price_doubles(self):
        il = calculate_impermanent_loss(Decimal(1), Decimal(2), Decimal(1000))
        self.assertAlmostEqual(float(il.il_percent), -5.719, places=3)
        self.assertEqual(il.price_change_percent, Decimal(100))
        self.assertEqual(il.hodl_value, Decimal(1500))
        self.assertLess(il.difference, 0)

    def test_price_quadruples(self):
        il = calculate_impermanent_loss(Decimal(1), Decimal(4), Decimal(1000))
        self.assertEqual(il.il_factor, Decimal("0.8"))
        self.assertEqual(il.il_percent, Decimal("-20"))

    def test_loss_is_symmetric_in_ratio(self):
        up = calculate_impermanent_loss(Decimal(1), Decimal(4), Decimal(1000))
        down = calculate_impermanent_loss(Decimal(4), Decimal(1), Decimal(1000))
        self.assertAlmostEqual(up.il_factor, down.il_factor, places=30)

    def test_non_positive_ratio_rejected(self):
        with self.assertRaises(ValueError):
            calculate_impermanent_loss(Decimal(0), Decimal(1), Decimal(1000))
        with self.assertRaises(ValueError):
            calculate_impermanent_loss(Decimal(1), Decimal(-1), Decimal(1000))


class TestConcentration(unittest.TestCase):
    def test_share_fractions(self):
        shares = share_fractions([Decimal(50), Decimal(30), Decimal(20)])
        self.assertEqual(shares, [Decimal("0.5"), Decimal("0.3"), Decimal("0.2")])

    def test_empty_and_zero_totals(self):
        self.assertEqual(share_fractions([]), [])
        self.assertEqual(share_fractions([Decimal(0), Decimal(0)]), [])

    def test_herfindahl(self):
        shares = [Decimal("0.5"), Decimal("0.3"), Decimal("0.2")]
        self.assertEqual(herfindahl_index(shares), Decimal("0.38"))
        self.assertEqual(herfindahl_index([Decimal(1)]), Decimal(1))

    def test_levels(self):
        self.assertEqual(concentration_level(Decimal("0.38"), 3), LEVEL_HIGHLY_CONCENTRATED)
        self.assertEqual(concentration_level(Decimal("0.20"), 5), LEVEL_MODERATELY_CONCENTRATED)
        self.assertEqual(concentration_level(Decimal("0.12"), 9), LEVEL_MODERATELY_COMPETITIVE)
        self.assertEqual(concentration_level(Decimal("0.05"), 20), LEVEL_COMPETITIVE)
        self.assertEqual(concentration_level(Decimal("0"), 0), LEVEL_NO_LIQUIDITY)


LIQUIDITY_SWEEP = ["0", "9999", "10000", "100000", "100001", "1000000", "1000001", "1e12"]
SPREAD_SWEEP = ["0", "0.5", "1.99", "2", "5", "5.01", "10", "10.01", "250"]


@pytest.mark.parametrize("liquidity_buy", LIQUIDITY_SWEEP)
@pytest.mark.parametrize("liquidity_sell", LIQUIDITY_SWEEP)
@pytest.mark.parametrize("spread", SPREAD_SWEEP)
def test_confidence_stays_in_bounds(liquidity_buy, liquidity_sell, spread):
    score = confidence_score(Decimal(liquidity_buy), Decimal(liquidity_sell), Decimal(spread))
    assert isinstance(score, int)
    assert 0 <= score <= 100


@pytest.mark.parametrize("spread", SPREAD_SWEEP)
def test_confidence_never_drops_with_deeper_pools(spread):
    scores = [
        confidence_score(Decimal(liquidity), Decimal(liquidity), Decimal(spread))
        for liquidity in LIQUIDITY_SWEEP
    ]
    assert scores == sorted(scores)


if __name__ == "__main__":
    unittest.main()
