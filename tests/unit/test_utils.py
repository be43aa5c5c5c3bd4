"""
Unit tests for dex_analytics.utils module.
"""

import logging
from decimal import Decimal

from dex_analytics.utils import (
    calculate_percentage,
    clamp,
    format_duration,
    format_usd,
    get_logger,
    is_valid_address,
    iso_to_timestamp,
    normalize_address,
    timestamp_to_iso,
    to_decimal,
)


class TestTimestampUtils:
    def test_round_trip(self):
        iso = timestamp_to_iso(1700000000)
        assert iso == "2023-11-14T22:13:20+00:00"
        assert iso_to_timestamp(iso) == 1700000000

    def test_zulu_suffix(self):
        assert iso_to_timestamp("2023-11-14T22:13:20Z") == 1700000000

    def test_format_duration(self):
        assert format_duration(30) == "30.00s"
        assert format_duration(90) == "1.5m"
        assert format_duration(7200) == "2.0h"


class TestMathUtils:
    def test_calculate_percentage(self):
        assert calculate_percentage(Decimal(25), Decimal(200)) == Decimal("12.5")
        assert calculate_percentage(Decimal(5), Decimal(0)) == 0

    def test_clamp(self):
        assert clamp(5, 0, 10) == 5
        assert clamp(-1, 0, 10) == 0
        assert clamp(11, 0, 10) == 10

    def test_to_decimal_avoids_float_artifacts(self):
        assert to_decimal(0.1) == Decimal("0.1")
        assert to_decimal("20000000000000") == Decimal("20000000000000")
        value = Decimal("1.5")
        assert to_decimal(value) is value


class TestAddressUtils:
    def test_normalize_address(self):
        assert normalize_address("  0xABCdef ") == "0xabcdef"

    def test_is_valid_address(self):
        assert is_valid_address("0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2")
        assert is_valid_address("0xc02aaa39b223fe8d0a0e5c4f27ead9083c756cc2")
        assert not is_valid_address("0x123")
        assert not is_valid_address("WETH")
        assert not is_valid_address(None)

    def test_format_usd(self):
        assert format_usd(Decimal("1234.5")) == "$1,234.50"
        assert format_usd(Decimal("-3.1")) == "-$3.10"


class TestGetLogger:
    def test_returns_named_logger(self):
        log = get_logger("dex_analytics.tests.plain")
        assert isinstance(log, logging.Logger)
        assert log.name == "dex_analytics.tests.plain"

    def test_extra_context_adapter(self):
        log = get_logger("dex_analytics.tests.extra", extra={"chain_id": 1})
        assert isinstance(log, logging.LoggerAdapter)
        assert log.extra == {"chain_id": 1}
