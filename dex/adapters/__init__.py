"""
DEX adapter modules for different AMM types.
"""

from .v2 import (
    amount_out,
    exchange_rate,
    optimal_input,
    price_from_reserves,
    price_impact_percent,
    to_units,
)

__all__ = [
    "amount_out",
    "exchange_rate",
    "optimal_input",
    "price_from_reserves",
    "price_impact_percent",
    "to_units",
]
