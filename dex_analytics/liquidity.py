"""
Liquidity risk analytics: pool TVL/APR/depth, impermanent loss, and
per-token liquidity distribution and concentration.

USD values come from the PriceOracle; a side that cannot be priced counts
as $0 rather than failing the whole metric.
"""

import logging
from decimal import Decimal
from typing import List, Optional, Tuple

from dex.adapters.v2 import to_units
from dex.opportunity_math import (
    LEVEL_NO_LIQUIDITY,
    bps_to_pct,
    calculate_impermanent_loss,
    concentration_level,
    herfindahl_index,
    share_fractions,
)
from dex.types import (
    ImpermanentLossResult,
    LiquidityConcentration,
    LiquidityMetrics,
    Pool,
    PoolLiquiditySummary,
    TokenLiquiditySummary,
)
from dex_analytics.constants import (
    DEFAULT_TOKEN_DECIMALS,
    POOL_METRICS_CACHE_KEY,
    TOKEN_SUMMARY_CACHE_KEY,
    TOP_POOLS_CACHE_KEY,
)
from dex_analytics.interfaces import (
    CacheService,
    PoolRepository,
    TimeProvider,
    TokenRepository,
    VolumeRepository,
    get_time_provider,
)
from dex_analytics.price_oracle import PriceOracle
from dex_analytics.results import Errors, Result
from dex_analytics.utils import calculate_percentage, normalize_address, to_decimal

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
TOP_POOLS_IN_SUMMARY = 10


class LiquidityAnalytics:
    """Pool and token liquidity metrics."""

    def __init__(
        self,
        pool_repository: PoolRepository,
        token_repository: TokenRepository,
        volume_repository: VolumeRepository,
        price_oracle: PriceOracle,
        cache: CacheService,
        chain_id: int = 1,
        time_provider: Optional[TimeProvider] = None,
        pool_metrics_ttl: float = 60.0,
        token_summary_ttl: float = 120.0,
        top_pools_ttl: float = 300.0,
    ):
        self.pools = pool_repository
        self.tokens = token_repository
        self.volumes = volume_repository
        self.oracle = price_oracle
        self.cache = cache
        self.chain_id = chain_id
        self.time_provider = time_provider or get_time_provider()
        self.pool_metrics_ttl = pool_metrics_ttl
        self.token_summary_ttl = token_summary_ttl
        self.top_pools_ttl = top_pools_ttl

    async def pool_metrics(self, pool_address: str) -> Result[LiquidityMetrics]:
        """TVL, fees, APR and depth score of one pool. Failure: Liquidity.PoolNotFound."""
        pool_address = normalize_address(pool_address)
        key = POOL_METRICS_CACHE_KEY.format(pool=pool_address)
        cached = await self.cache.get(key)
        if cached is not None:
            return Result.success(cached)

        pool = await self.pools.get_by_address(pool_address, self.chain_id)
        if pool is None:
            return Result.failure(Errors.Liquidity.pool_not_found(pool_address))

        metrics = await self._build_metrics(pool)
        await self.cache.set(key, metrics, self.pool_metrics_ttl)
        return Result.success(metrics)

    async def _build_metrics(self, pool: Pool) -> LiquidityMetrics:
        sides = []
        for address, raw in ((pool.token0, pool.reserve0), (pool.token1, pool.reserve1)):
            token = await self.tokens.get_by_address(address, self.chain_id)
            decimals = token.decimals if token else DEFAULT_TOKEN_DECIMALS
            symbol = token.symbol if token else "UNKNOWN"
            units = to_units(raw, decimals)
            usd = await self.oracle.get_usd_price(address)
            usd_value = units * usd.value if usd.is_success else ZERO
            sides.append((symbol, units, usd_value))

        volume = to_decimal(await self.volumes.get_volume_24h_usd(pool.address))
        (symbol0, units0, usd0), (symbol1, units1, usd1) = sides
        return LiquidityMetrics(
            pool_address=pool.address,
            token0_address=pool.token0,
            token0_symbol=symbol0,
            token1_address=pool.token1,
            token1_symbol=symbol1,
            reserve0=units0,
            reserve1=units1,
            reserve0_usd=usd0,
            reserve1_usd=usd1,
            volume_24h_usd=volume,
            fee_percent=bps_to_pct(Decimal(pool.fee_bps)),
            timestamp=self.time_provider.current_timestamp(),
        )

    async def impermanent_loss(
        self,
        pool_address: str,
        entry_price_ratio: Decimal,
        initial_investment_usd: Decimal = Decimal("1000"),
    ) -> Result[ImpermanentLossResult]:
        """
        IL of a position entered at entry_price_ratio (token1 USD / token0 USD).

        Failures: Liquidity.PoolNotFound, Liquidity.PriceUnavailable,
        Liquidity.InvalidPrice.
        """
        pool_address = normalize_address(pool_address)
        pool = await self.pools.get_by_address(pool_address, self.chain_id)
        if pool is None:
            return Result.failure(Errors.Liquidity.pool_not_found(pool_address))

        price0 = await self.oracle.get_usd_price(pool.token0)
        price1 = await self.oracle.get_usd_price(pool.token1)
        if price0.is_failure or price1.is_failure:
            return Result.failure(Errors.Liquidity.price_unavailable(pool_address))

        entry_price_ratio = to_decimal(entry_price_ratio)
        if price0.value <= 0 or price1.value <= 0 or entry_price_ratio <= 0:
            return Result.failure(Errors.Liquidity.invalid_price(pool_address))

        current_ratio = price1.value / price0.value
        il = calculate_impermanent_loss(
            entry_price_ratio, current_ratio, to_decimal(initial_investment_usd)
        )
        return Result.success(
            ImpermanentLossResult(
                pool_address=pool_address,
                initial_price_ratio=entry_price_ratio,
                current_price_ratio=current_ratio,
                price_change_percent=il.price_change_percent,
                impermanent_loss_percent=il.il_percent,
                hodl_value_usd=il.hodl_value,
                lp_value_usd=il.lp_value,
                difference_usd=il.difference,
                calculated_at=self.time_provider.current_timestamp(),
            )
        )

    async def _pool_liquidity(self, token: str) -> List[Tuple[Pool, LiquidityMetrics]]:
        pools = await self.pools.get_pools_by_token(token, self.chain_id)
        rows = []
        for pool in pools:
            metrics = await self.pool_metrics(pool.address)
            if metrics.is_success:
                rows.append((pool, metrics.value))
        return rows

    async def token_liquidity_summary(self, token: str) -> Result[TokenLiquiditySummary]:
        """
        Liquidity of a token across all its pools with the top pools' shares.

        Failure: Liquidity.TokenNotFound.
        """
        token = normalize_address(token)
        key = TOKEN_SUMMARY_CACHE_KEY.format(token=token)
        cached = await self.cache.get(key)
        if cached is not None:
            return Result.success(cached)

        entity = await self.tokens.get_by_address(token, self.chain_id)
        if entity is None:
            return Result.failure(Errors.Liquidity.token_not_found(token))

        rows = await self._pool_liquidity(token)
        total = sum((m.tvl_usd for _, m in rows), ZERO)
        volume = sum((m.volume_24h_usd for _, m in rows), ZERO)

        rows.sort(key=lambda row: row[1].tvl_usd, reverse=True)
        top = []
        for pool, metrics in rows[:TOP_POOLS_IN_SUMMARY]:
            paired = pool.other_token(token)
            paired_symbol = (
                metrics.token1_symbol if paired == pool.token1 else metrics.token0_symbol
            )
            top.append(
                PoolLiquiditySummary(
                    pool_address=pool.address,
                    paired_token_address=paired,
                    paired_token_symbol=paired_symbol,
                    liquidity_usd=metrics.tvl_usd,
                    share_percent=calculate_percentage(metrics.tvl_usd, total),
                )
            )

        summary = TokenLiquiditySummary(
            token_address=token,
            token_symbol=entity.symbol,
            total_liquidity_usd=total,
            pool_count=len(rows),
            top_pools=tuple(top),
            average_liquidity_per_pool=total / len(rows) if rows else ZERO,
            total_volume_24h_usd=volume,
            timestamp=self.time_provider.current_timestamp(),
        )
        await self.cache.set(key, summary, self.token_summary_ttl)
        return Result.success(summary)

    async def liquidity_concentration(self, token: str) -> Result[LiquidityConcentration]:
        """
        Herfindahl index of a token's liquidity over all its pools.

        No pools (or no priced liquidity) is the "No Liquidity" level with
        HHI 0, not a failure.
        """
        token = normalize_address(token)
        rows = await self._pool_liquidity(token)
        liquidities = sorted((m.tvl_usd for _, m in rows), reverse=True)
        total = sum(liquidities, ZERO)
        shares = share_fractions(liquidities)

        if not shares:
            return Result.success(
                LiquidityConcentration(
                    token_address=token,
                    total_liquidity_usd=ZERO,
                    top_pool_percent=ZERO,
                    top3_pools_percent=ZERO,
                    top5_pools_percent=ZERO,
                    hhi=ZERO,
                    level=LEVEL_NO_LIQUIDITY,
                    pool_count=0,
                )
            )

        hhi = herfindahl_index(shares)
        return Result.success(
            LiquidityConcentration(
                token_address=token,
                total_liquidity_usd=total,
                top_pool_percent=shares[0] * 100,
                top3_pools_percent=sum(shares[:3], ZERO) * 100,
                top5_pools_percent=sum(shares[:5], ZERO) * 100,
                hhi=hhi,
                level=concentration_level(hhi, len(shares)),
                pool_count=len(shares),
                shares=tuple(shares),
            )
        )

    async def top_pools_by_tvl(self, limit: int = 10) -> Result[List[LiquidityMetrics]]:
        """Deepest pools on the chain by USD TVL."""
        limit = max(1, limit)
        key = TOP_POOLS_CACHE_KEY.format(limit=limit)
        cached = await self.cache.get(key)
        if cached is not None:
            return Result.success(list(cached))

        pools = await self.pools.get_all_by_chain_id(self.chain_id)
        metrics = []
        for pool in pools:
            result = await self.pool_metrics(pool.address)
            if result.is_success:
                metrics.append(result.value)

        metrics.sort(key=lambda m: m.tvl_usd, reverse=True)
        top = metrics[:limit]
        await self.cache.set(key, tuple(top), self.top_pools_ttl)
        return Result.success(top)
