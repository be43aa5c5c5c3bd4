"""
Common utilities for the DEX analytics engine.

Timestamp handling, percentage math, address helpers and the structured
logger factory shared by every module.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional, Union

from web3 import Web3


# Timestamp utilities
def timestamp_to_iso(timestamp: float) -> str:
    """Convert Unix timestamp to ISO 8601 string."""
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


def iso_to_timestamp(iso_string: str) -> float:
    """Convert ISO 8601 string to Unix timestamp."""
    return datetime.fromisoformat(iso_string.replace("Z", "+00:00")).timestamp()


def format_duration(seconds: float) -> str:
    """Format duration in seconds to human-readable string."""
    if seconds < 60:
        return f"{seconds:.2f}s"
    elif seconds < 3600:
        minutes = seconds / 60
        return f"{minutes:.1f}m"
    else:
        hours = seconds / 3600
        return f"{hours:.1f}h"


# Math utilities
def calculate_percentage(value: Decimal, total: Decimal) -> Decimal:
    """Calculate percentage with zero-division protection."""
    if total == 0:
        return Decimal("0")
    return Decimal(value) / Decimal(total) * 100


def clamp(value, min_val, max_val):
    """Clamp value between min and max bounds."""
    return max(min_val, min(value, max_val))


def to_decimal(value: Any) -> Decimal:
    """Convert ints, floats and strings to Decimal without float artifacts."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


# Address utilities
def normalize_address(address: str) -> str:
    """Lower-case an address; addresses are case-insensitive identities."""
    return address.strip().lower()


def is_valid_address(address: str) -> bool:
    """Check that a string is a 20-byte hex address (any casing)."""
    return isinstance(address, str) and Web3.is_address(address.strip().lower())


def format_usd(value: Decimal) -> str:
    """Format a USD amount for tables: 1234.5 -> '$1,234.50'."""
    sign = "-" if value < 0 else ""
    return f"{sign}${abs(float(value)):,.2f}"


# Logging utilities
def get_logger(
    name: str,
    level: Union[str, int] = logging.INFO,
    extra: Optional[Dict[str, Any]] = None,
) -> logging.Logger:
    """
    Get a structured logger with consistent formatting and extra context.

    Handlers are only attached when the root logger has none, so CLI runs
    that call logging_config.setup() are not double-logged.

    Args:
        name: Logger name (typically __name__)
        level: Logging level
        extra: Additional context fields to include in all log messages

    Returns:
        Configured logger (a LoggerAdapter when extra is given)
    """
    logger = logging.getLogger(name)

    if logger.level == logging.NOTSET:
        logger.setLevel(level)

    if not logger.handlers and not logging.getLogger().handlers:
        handler = logging.StreamHandler()
        format_str = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"
        handler.setFormatter(logging.Formatter(format_str, datefmt="%H:%M:%S"))
        logger.addHandler(handler)
        logger.propagate = False

    if extra:
        return logging.LoggerAdapter(logger, extra)
    return logger
