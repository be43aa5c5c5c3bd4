"""Tests for the exceptions module."""

import pytest

from dex.config import ConfigError
from dex_analytics.exceptions import (
    AnalyticsError,
    ConfigurationError,
    DataError,
    NetworkError,
    ResultError,
)


def test_base_exception():
    """Test the base exception class."""
    error = AnalyticsError("Test error")
    assert str(error) == "Test error"
    assert error.details == {}

    error_with_details = AnalyticsError("Test error", {"key": "value"})
    assert error_with_details.details == {"key": "value"}


def test_configuration_error():
    error = ConfigurationError("Config error", {"config_file": "test.yaml"})
    assert str(error) == "Config error"
    assert isinstance(error, AnalyticsError)


def test_config_error_is_configuration_error():
    assert issubclass(ConfigError, ConfigurationError)


def test_data_error():
    error = DataError("Bad reserve", source="snapshot.yaml", address="0xpool")
    assert error.source == "snapshot.yaml"
    assert error.address == "0xpool"
    assert isinstance(error, AnalyticsError)


def test_network_error():
    error = NetworkError("RPC down", endpoint="https://rpc", status_code=503)
    assert error.endpoint == "https://rpc"
    assert error.status_code == 503


def test_result_error_carries_code():
    error = ResultError("Price.NoPool", "No pool routes 0xa to USD")
    assert error.code == "Price.NoPool"
    assert str(error) == "Price.NoPool: No pool routes 0xa to USD"
    assert error.details == {"code": "Price.NoPool"}


def test_exception_hierarchy():
    """All errors can be caught with the base class."""
    for exc in (
        ConfigurationError("x"),
        DataError("x"),
        NetworkError("x"),
        ResultError("A.B", "x"),
    ):
        with pytest.raises(AnalyticsError):
            raise exc
