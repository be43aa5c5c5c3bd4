"""
Periodic arbitrage scanner.

Each cycle moves Idle -> Scanning -> Deduplicating -> Publishing -> Idle
and holds a lock for its whole duration, so cycles never overlap. The run
loop is the recovery boundary: a failed cycle is logged and retried after
a back-off, and cancellation propagates.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from dex.route_deduplication import OpportunityDeduplicator, opportunity_hash
from dex.types import ArbitrageKind, ArbitrageOpportunity
from dex_analytics.cache import InMemoryCacheService
from dex_analytics.config_schema import AppConfig, ScannerConfig
from dex_analytics.constants import ScannerState
from dex_analytics.detector import ArbitrageDetector
from dex_analytics.events import (
    ArbitrageOpportunityDetected,
    EventPublisher,
    LargeArbitrageAlert,
    LoggingEventPublisher,
)
from dex_analytics.interfaces import TimeProvider, get_time_provider
from dex_analytics.liquidity import LiquidityAnalytics
from dex_analytics.metrics import ScannerMetrics, get_metrics
from dex_analytics.pipeline import (
    Middleware,
    compose,
    logging_middleware,
    metrics_middleware,
    timeout_middleware,
)
from dex_analytics.price_oracle import PriceOracle
from dex_analytics.repositories import (
    CachedPoolRepository,
    CachedTokenRepository,
    Snapshot,
)
from dex_analytics.utils import format_duration

logger = logging.getLogger(__name__)


@dataclass
class CycleReport:
    """Outcome of one scan cycle."""

    cycle: int
    detected: int = 0
    triangular: int = 0
    published: int = 0
    suppressed: int = 0
    large_alerts: int = 0
    price_changes: int = 0
    cleared: int = 0
    pruned: int = 0
    duration_sec: float = 0.0
    opportunities: List[ArbitrageOpportunity] = field(default_factory=list)


class ArbitrageScanner:
    """
    Runs scan cycles and publishes new opportunities.

    Operations on the detector and the oracle are wrapped once, at
    construction, by the middleware chain (logging, metrics, timeout by
    default).
    """

    def __init__(
        self,
        detector: ArbitrageDetector,
        price_oracle: PriceOracle,
        publisher: EventPublisher,
        settings: Optional[ScannerConfig] = None,
        deduplicator: Optional[OpportunityDeduplicator] = None,
        metrics: Optional[ScannerMetrics] = None,
        time_provider: Optional[TimeProvider] = None,
        middlewares: Optional[Sequence[Middleware]] = None,
        cache: Optional[InMemoryCacheService] = None,
    ):
        self.settings = settings or ScannerConfig()
        self.cache = cache
        self.publisher = publisher
        self.dedup = deduplicator or OpportunityDeduplicator(
            self.settings.max_cached_opportunities
        )
        self.metrics = metrics or get_metrics()
        self.time_provider = time_provider or get_time_provider()

        if middlewares is None:
            middlewares = (
                logging_middleware,
                metrics_middleware(self.metrics),
                timeout_middleware(self.settings.operation_timeout_sec),
            )
        self._scan = compose("arbitrage.scan", detector.scan, *middlewares)
        self._scan_triangular = compose(
            "arbitrage.scan_triangular", detector.scan_triangular, *middlewares
        )
        self._detect_change = compose(
            "price.significant_change",
            price_oracle.detect_significant_change,
            *middlewares,
        )

        self.state = ScannerState.IDLE
        self.cycle_count = 0
        self._cycle_lock = asyncio.Lock()

    async def run_cycle(self) -> CycleReport:
        """
        Scan, de-duplicate and publish once.

        Raises whatever the scan raises; the caller decides whether to retry.
        """
        async with self._cycle_lock:
            self.cycle_count += 1
            report = CycleReport(cycle=self.cycle_count)
            start = time.perf_counter()
            outcome = "cancelled"
            try:
                self.state = ScannerState.SCANNING
                opportunities = await self._collect(report)
                report.opportunities = opportunities

                self.state = ScannerState.DEDUPLICATING
                candidates = []
                batch_hashes = set()
                for opp in opportunities:
                    opp_hash = opportunity_hash(opp)
                    if opp_hash in self.dedup or opp_hash in batch_hashes:
                        report.suppressed += 1
                        self.metrics.record_suppressed(opp.kind.value)
                        continue
                    batch_hashes.add(opp_hash)
                    candidates.append(opp)

                self.state = ScannerState.PUBLISHING
                for opp in candidates:
                    # Marking and publishing one opportunity is never split
                    await asyncio.shield(self._publish_one(opp, report))

                await self._publish_price_changes(report)

                report.cleared = await self.dedup.cleanup()
                self.metrics.set_dedup_size(len(self.dedup))
                if self.cache is not None:
                    report.pruned = self.cache.prune()
                outcome = "success"
            except Exception:
                outcome = "error"
                raise
            finally:
                report.duration_sec = time.perf_counter() - start
                self.metrics.record_cycle(outcome, report.duration_sec)
                self.state = ScannerState.IDLE

            return report

    async def _collect(self, report: CycleReport) -> List[ArbitrageOpportunity]:
        min_profit = self.settings.min_profit_usd
        result = await self._scan(min_profit)
        if result.is_failure:
            logger.warning(f"Scan returned failure: {result.error}")
            opportunities = []
        else:
            opportunities = list(result.value)
        report.detected = len(opportunities)
        self.metrics.record_detected(ArbitrageKind.TWO_POOL.value, len(opportunities))

        if self.settings.enable_triangular_scan:
            tri = await self._scan_triangular(self.settings.triangular_base_token)
            if tri.is_failure:
                logger.debug(f"Triangular scan skipped: {tri.error}")
            else:
                found = [o for o in tri.value if o.net_profit_usd >= min_profit]
                report.triangular = len(found)
                self.metrics.record_detected(ArbitrageKind.TRIANGULAR.value, len(found))
                opportunities.extend(found)

        opportunities.sort(key=lambda o: o.net_profit_usd, reverse=True)
        if opportunities:
            self.metrics.set_best_net_profit(float(opportunities[0].net_profit_usd))
        return opportunities

    def is_large(self, opp: ArbitrageOpportunity) -> bool:
        return (
            opp.net_profit_usd >= self.settings.large_opportunity_threshold_usd
            and opp.confidence_score >= self.settings.min_confidence_score
        )

    async def _publish_one(self, opp: ArbitrageOpportunity, report: CycleReport) -> None:
        if not await self.dedup.is_new(opp):
            report.suppressed += 1
            self.metrics.record_suppressed(opp.kind.value)
            return

        now = self.time_provider.current_timestamp()
        await self.publisher.publish(ArbitrageOpportunityDetected.from_opportunity(opp, now))
        large = self.is_large(opp)
        if large:
            await self.publisher.publish(LargeArbitrageAlert.from_opportunity(opp, now))
            report.large_alerts += 1
        report.published += 1
        self.metrics.record_published(opp.kind.value, large=large)

    async def _publish_price_changes(self, report: CycleReport) -> None:
        for token in self.settings.price_watch_tokens:
            result = await self._detect_change(
                token,
                "USD",
                self.settings.price_change_window_sec,
                self.settings.significant_price_change_pct,
            )
            if result.is_failure:
                logger.debug(f"Price watch {token}: {result.error}")
                continue
            if result.value is not None:
                await asyncio.shield(self.publisher.publish(result.value))
                report.price_changes += 1
                self.metrics.record_price_change()

    async def run(self, max_cycles: Optional[int] = None) -> int:
        """
        Main loop: cycle, sleep, repeat.

        Args:
            max_cycles: Stop after this many cycles (None runs until cancelled)

        Returns:
            Number of cycles attempted
        """
        if not self.settings.enabled:
            logger.info("Arbitrage scanner disabled")
            return 0

        logger.info(
            f"Arbitrage scanner started: every {self.settings.scan_interval_sec}s, "
            f"min profit ${self.settings.min_profit_usd}"
        )
        if self.settings.initial_delay_sec > 0:
            await self.time_provider.sleep(self.settings.initial_delay_sec)

        attempted = 0
        while max_cycles is None or attempted < max_cycles:
            attempted += 1
            try:
                report = await self.run_cycle()
            except Exception as e:
                logger.error(f"Scan cycle {self.cycle_count} failed: {e}", exc_info=True)
                delay = self.settings.error_retry_delay_sec
            else:
                logger.info(
                    f"Cycle {report.cycle}: {report.detected} two-pool, "
                    f"{report.triangular} triangular, {report.published} published, "
                    f"{report.suppressed} suppressed in {format_duration(report.duration_sec)}"
                )
                delay = self.settings.scan_interval_sec

            if max_cycles is not None and attempted >= max_cycles:
                break
            await self.time_provider.sleep(delay)

        logger.info(f"Arbitrage scanner stopped after {attempted} cycles")
        return attempted


@dataclass
class AnalyticsEngine:
    """Fully wired services over one snapshot."""

    config: AppConfig
    cache: InMemoryCacheService
    price_oracle: PriceOracle
    detector: ArbitrageDetector
    liquidity: LiquidityAnalytics
    scanner: ArbitrageScanner


def create_engine(
    config: AppConfig,
    snapshot: Snapshot,
    publisher: Optional[EventPublisher] = None,
    metrics: Optional[ScannerMetrics] = None,
    time_provider: Optional[TimeProvider] = None,
) -> AnalyticsEngine:
    """Compose stores, caches and services for a config and snapshot."""
    time_provider = time_provider or get_time_provider()
    if snapshot.chain_id != config.chain_id:
        logger.warning(
            f"Snapshot is for chain {snapshot.chain_id} but config targets chain "
            f"{config.chain_id}; scans will find no pools"
        )
    cache = InMemoryCacheService(time_provider)
    pools = CachedPoolRepository(snapshot.pools, cache, config.cache.pool_ttl_sec)
    tokens = CachedTokenRepository(snapshot.tokens, cache, config.cache.token_ttl_sec)

    oracle = PriceOracle(
        pools,
        tokens,
        snapshot.price_history,
        cache,
        chain_id=config.chain_id,
        time_provider=time_provider,
        price_ttl=config.cache.price_ttl_sec,
    )
    detector = ArbitrageDetector(
        pools,
        tokens,
        oracle,
        cache,
        chain_id=config.chain_id,
        settings=config.detector,
        scan_ttl=config.cache.scan_ttl_sec,
        time_provider=time_provider,
    )
    liquidity = LiquidityAnalytics(
        pools,
        tokens,
        snapshot.volumes,
        oracle,
        cache,
        chain_id=config.chain_id,
        time_provider=time_provider,
        pool_metrics_ttl=config.cache.pool_metrics_ttl_sec,
        token_summary_ttl=config.cache.token_summary_ttl_sec,
        top_pools_ttl=config.cache.top_pools_ttl_sec,
    )
    scanner = ArbitrageScanner(
        detector,
        oracle,
        publisher or LoggingEventPublisher(),
        settings=config.scanner,
        metrics=metrics,
        time_provider=time_provider,
        cache=cache,
    )
    return AnalyticsEngine(config, cache, oracle, detector, liquidity, scanner)
