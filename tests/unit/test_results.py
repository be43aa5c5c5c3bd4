"""Tests for Result/Error values."""

import pytest

from dex_analytics.exceptions import ResultError
from dex_analytics.results import Error, Errors, Result


def test_success():
    result = Result.success(42)
    assert result.is_success
    assert not result.is_failure
    assert result.unwrap() == 42
    assert result.value_or(0) == 42


def test_success_with_none_value():
    result = Result.success(None)
    assert result.is_success
    assert result.unwrap() is None


def test_failure():
    result = Result.failure(Errors.Token.not_found("0xabc"))
    assert result.is_failure
    assert result.error.code == "Token.NotFound"
    assert result.value_or("fallback") == "fallback"
    with pytest.raises(ResultError) as exc_info:
        result.unwrap()
    assert exc_info.value.code == "Token.NotFound"


def test_map():
    assert Result.success(2).map(lambda v: v * 10).unwrap() == 20
    failed = Result.failure(Errors.Price.no_eth_usd()).map(lambda v: v * 10)
    assert failed.error.code == "Price.NoEthUsd"


def test_error_str():
    assert str(Error("Twap.NoData", "nothing")) == "Twap.NoData: nothing"


@pytest.mark.parametrize(
    "error,code",
    [
        (Errors.Token.not_found("0x1"), "Token.NotFound"),
        (Errors.Price.no_liquidity("0x1"), "Price.NoLiquidity"),
        (Errors.Price.no_pool("0x1", "USD"), "Price.NoPool"),
        (Errors.Price.no_eth_usd(), "Price.NoEthUsd"),
        (Errors.Twap.no_data("0x1"), "Twap.NoData"),
        (Errors.Arbitrage.pool_not_found("0x1"), "Arbitrage.PoolNotFound"),
        (Errors.Liquidity.pool_not_found("0x1"), "Liquidity.PoolNotFound"),
        (Errors.Liquidity.token_not_found("0x1"), "Liquidity.TokenNotFound"),
        (Errors.Liquidity.price_unavailable("0x1"), "Liquidity.PriceUnavailable"),
        (Errors.Liquidity.invalid_price("0x1"), "Liquidity.InvalidPrice"),
    ],
)
def test_error_codes(error, code):
    assert error.code == code
    assert error.message
