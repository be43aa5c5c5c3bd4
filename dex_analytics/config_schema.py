"""
Configuration schema validation using Pydantic
"""

from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from dex_analytics.constants import WETH_ADDRESS, resolve_quote_address
from dex_analytics.utils import is_valid_address, normalize_address


def _address_or_symbol(value: str) -> str:
    resolved = resolve_quote_address(value)
    if resolved:
        return resolved
    if not is_valid_address(value):
        raise ValueError(f"'{value}' is neither a known symbol nor an address")
    return normalize_address(value)


class ScannerConfig(BaseModel):
    """Periodic arbitrage scanner settings"""

    enabled: bool = True
    scan_interval_sec: float = Field(
        default=30.0, gt=0, le=3600, description="Seconds between scan cycles"
    )
    initial_delay_sec: float = Field(default=10.0, ge=0, le=600)
    error_retry_delay_sec: float = Field(
        default=5.0, gt=0, le=600, description="Back-off after a failed cycle"
    )
    operation_timeout_sec: float = Field(default=30.0, gt=0, le=600)
    min_profit_usd: Decimal = Field(default=Decimal("10"), ge=0)
    large_opportunity_threshold_usd: Decimal = Field(default=Decimal("100"), ge=0)
    min_confidence_score: int = Field(default=60, ge=0, le=100)
    enable_triangular_scan: bool = True
    triangular_base_token: str = Field(
        default=WETH_ADDRESS, description="Symbol (WETH, USDC...) or token address"
    )
    max_cached_opportunities: int = Field(
        default=10000, ge=1, description="Dedup set size that triggers a bulk clear"
    )
    price_watch_tokens: List[str] = Field(default_factory=list)
    significant_price_change_pct: Decimal = Field(default=Decimal("5"), gt=0, le=1000)
    price_change_window_sec: float = Field(default=3600.0, gt=0)

    @field_validator("triangular_base_token")
    @classmethod
    def validate_base_token(cls, v: str) -> str:
        return _address_or_symbol(v)

    @field_validator("price_watch_tokens")
    @classmethod
    def validate_watch_tokens(cls, v: List[str]) -> List[str]:
        return [_address_or_symbol(token) for token in v]


class DetectorConfig(BaseModel):
    """Arbitrage math knobs"""

    gas_price_gwei: Decimal = Field(
        default=Decimal("0.5"),
        ge=0,
        le=10000,
        description=(
            "Gas price for cost estimates. Deployment knob: the default suits a "
            "quiet chain; set the live mainnet price (often 30+) per deployment"
        ),
    )
    min_spread_percent: Decimal = Field(
        default=Decimal("0.5"), ge=0, le=100, description="Spreads below are noise"
    )
    max_input_fraction: Decimal = Field(
        default=Decimal("0.10"), gt=0, le=1, description="Cap on two-pool size"
    )
    triangular_min_product: Decimal = Field(default=Decimal("1.005"), gt=1)
    triangular_size_fraction: Decimal = Field(default=Decimal("0.05"), gt=0, le=1)


class CacheConfig(BaseModel):
    """Per-entity cache TTLs in seconds (0 disables)"""

    price_ttl_sec: float = Field(default=30.0, ge=0)
    scan_ttl_sec: float = Field(default=10.0, ge=0)
    pool_metrics_ttl_sec: float = Field(default=60.0, ge=0)
    token_summary_ttl_sec: float = Field(default=120.0, ge=0)
    top_pools_ttl_sec: float = Field(default=300.0, ge=0)
    pool_ttl_sec: float = Field(default=300.0, ge=0)
    token_ttl_sec: float = Field(default=600.0, ge=0)

    @model_validator(mode="after")
    def validate_scan_ttl(self):
        if self.scan_ttl_sec > self.price_ttl_sec > 0:
            raise ValueError("scan_ttl_sec must not exceed price_ttl_sec")
        return self


class AnalyticsConfig(BaseModel):
    top_pools_limit: int = Field(default=10, ge=1, le=1000)
    twap_period_sec: float = Field(default=3600.0, gt=0)


class MetricsConfig(BaseModel):
    enabled: bool = False
    host: str = "0.0.0.0"
    port: int = Field(default=9100, ge=1, le=65535)


class AppConfig(BaseModel):
    """Root configuration"""

    chain_id: int = Field(default=1, ge=1)
    snapshot_path: Optional[str] = None
    scanner: ScannerConfig = Field(default_factory=ScannerConfig)
    detector: DetectorConfig = Field(default_factory=DetectorConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    analytics: AnalyticsConfig = Field(default_factory=AnalyticsConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
