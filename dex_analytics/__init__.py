"""
DEX Price & Arbitrage Analytics.

Reserve-based token pricing, TWAP, cross-pool and triangular arbitrage
detection, and liquidity risk metrics over constant-product pools.
"""

from dex_analytics.version import __version__

__all__ = ["__version__"]
