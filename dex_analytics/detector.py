"""
Cross-pool arbitrage detection over constant-product pools.

Two-pool scan: pools are grouped by their unordered token pair and every
pair of pools in a group is compared. The cheaper pool is the buy side,
the dearer the sell side. Size comes from the closed-form optimum capped
at a fraction of the buy pool, and profit is the mid-price edge on that
size, converted to USD and netted against gas.

Triangular scan: pools form a token multigraph (networkx); every
base -> mid -> third -> base cycle over three distinct pools whose mid
rate product clears the margin is sized at a fraction of its shallowest
leg.
"""

import itertools
import logging
from collections import defaultdict
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple, Union

import networkx as nx

from dex.adapters.v2 import (
    NORMALIZED_DECIMALS,
    amount_out,
    exchange_rate,
    normalize_reserve,
    optimal_input,
    price_from_reserves,
    price_impact_percent,
    to_units,
)
from dex.opportunity_math import confidence_score, gas_cost_usd
from dex.types import ArbitrageKind, ArbitrageLeg, ArbitrageOpportunity, Pool, Token
from dex_analytics.config_schema import DetectorConfig
from dex_analytics.constants import (
    DEFAULT_TOKEN_DECIMALS,
    SCAN_CACHE_KEY,
    STABLECOIN_ADDRESSES,
    WETH_ADDRESS,
    venue_name,
)
from dex_analytics.interfaces import (
    CacheService,
    PoolRepository,
    TimeProvider,
    TokenRepository,
    get_time_provider,
)
from dex_analytics.price_oracle import PriceOracle
from dex_analytics.results import Errors, Result
from dex_analytics.utils import normalize_address

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
ONE = Decimal("1")

DEFAULT_SCAN_TTL_SEC = 10.0


def group_pools_by_pair(pools: Iterable[Pool]) -> Dict[str, List[Pool]]:
    """Group pools under their order-independent pair key."""
    groups: Dict[str, List[Pool]] = defaultdict(list)
    for pool in pools:
        groups[pool.pair_key].append(pool)
    return groups


def _quote_rank(address: str) -> int:
    if address in STABLECOIN_ADDRESSES:
        return 2
    if address == WETH_ADDRESS:
        return 1
    return 0


def orient_pair(pool: Pool) -> Tuple[str, str]:
    """
    (target, quote) for a pool.

    The quote side is the stablecoin, else WETH, else token1, so that
    TOKEN/WETH prices TOKEN in WETH and WETH/USDC prices WETH in USDC.
    """
    if _quote_rank(pool.token0) > _quote_rank(pool.token1):
        return pool.token1, pool.token0
    return pool.token0, pool.token1


class ArbitrageDetector:
    """
    Detects two-pool and triangular arbitrage.

    Expected gaps (unknown pools, unpriced tokens) surface as None or
    Result failures. A comparison that raises is logged and skipped so one
    bad pool never aborts a scan.
    """

    def __init__(
        self,
        pool_repository: PoolRepository,
        token_repository: TokenRepository,
        price_oracle: PriceOracle,
        cache: CacheService,
        chain_id: int = 1,
        settings: Optional[DetectorConfig] = None,
        scan_ttl: float = DEFAULT_SCAN_TTL_SEC,
        time_provider: Optional[TimeProvider] = None,
    ):
        self.pools = pool_repository
        self.tokens = token_repository
        self.oracle = price_oracle
        self.cache = cache
        self.chain_id = chain_id
        self.settings = settings or DetectorConfig()
        self.scan_ttl = scan_ttl
        self.time_provider = time_provider or get_time_provider()

    # ------------------------------------------------------------------
    # Two-pool scanning
    # ------------------------------------------------------------------

    async def scan(
        self, min_profit_usd: Decimal = Decimal("10")
    ) -> Result[List[ArbitrageOpportunity]]:
        """
        Compare every pool pair on the chain.

        Returns opportunities with net profit >= min_profit_usd, best first.
        """
        min_profit_usd = Decimal(min_profit_usd)
        key = SCAN_CACHE_KEY.format(min_profit=min_profit_usd)
        cached = await self.cache.get(key)
        if cached is not None:
            return Result.success(list(cached))

        pools = await self.pools.get_all_by_chain_id(self.chain_id)
        groups = group_pools_by_pair(pools)

        opportunities = []
        comparisons = 0
        for group in groups.values():
            if len(group) < 2:
                continue
            ordered = sorted(group, key=lambda p: p.total_reserves, reverse=True)
            for pool_a, pool_b in itertools.combinations(ordered, 2):
                comparisons += 1
                opp = await self._safe_analyze(pool_a, pool_b)
                if opp is not None and opp.net_profit_usd >= min_profit_usd:
                    opportunities.append(opp)

        opportunities.sort(key=lambda o: o.net_profit_usd, reverse=True)
        logger.debug(
            f"Scanned {len(pools)} pools in {len(groups)} pairs: "
            f"{comparisons} comparisons, {len(opportunities)} opportunities"
        )
        await self.cache.set(key, tuple(opportunities), self.scan_ttl)
        return Result.success(opportunities)

    async def find_opportunities_for_token(
        self, token: str
    ) -> Result[List[ArbitrageOpportunity]]:
        """Profitable two-pool opportunities among pools containing token."""
        token = normalize_address(token)
        pools = await self.pools.get_pools_by_token(token, self.chain_id)

        opportunities = []
        for group in group_pools_by_pair(pools).values():
            for pool_a, pool_b in itertools.combinations(group, 2):
                opp = await self._safe_analyze(pool_a, pool_b)
                if opp is not None and opp.is_profitable:
                    opportunities.append(opp)

        opportunities.sort(key=lambda o: o.net_profit_usd, reverse=True)
        return Result.success(opportunities)

    async def _safe_analyze(
        self, pool_a: Pool, pool_b: Pool
    ) -> Optional[ArbitrageOpportunity]:
        try:
            return await self.analyze_pool_pair(pool_a, pool_b)
        except Exception as e:
            logger.warning(
                f"Skipping comparison {pool_a.address} vs {pool_b.address}: "
                f"{type(e).__name__}: {e}"
            )
            return None

    async def analyze_pool_pair(
        self, pool_a: Pool, pool_b: Pool
    ) -> Optional[ArbitrageOpportunity]:
        """
        Two-leg opportunity between two pools of the same pair, or None.

        None means no edge: different pairs, missing token metadata, an
        empty pool, a spread under min_spread_percent, or no positive size.
        """
        if pool_a.pair_key != pool_b.pair_key or pool_a.address == pool_b.address:
            return None

        target_address, quote_address = orient_pair(pool_a)
        target = await self.tokens.get_by_address(target_address, self.chain_id)
        quote = await self.tokens.get_by_address(quote_address, self.chain_id)
        if target is None or quote is None:
            logger.debug(f"Missing token metadata for pair {pool_a.pair_key}")
            return None

        price_a = self._pool_price(pool_a, target, quote)
        price_b = self._pool_price(pool_b, target, quote)
        if price_a <= 0 or price_b <= 0:
            return None

        if price_a <= price_b:
            buy_pool, buy_price, sell_pool, sell_price = pool_a, price_a, pool_b, price_b
        else:
            buy_pool, buy_price, sell_pool, sell_price = pool_b, price_b, pool_a, price_a

        spread = (sell_price - buy_price) / buy_price * 100
        if spread < self.settings.min_spread_percent:
            return None

        # Input is the quote token: buy target cheaply, sell it back dearly
        in_buy = to_units(buy_pool.reserve_of(quote.address), quote.decimals)
        out_buy = to_units(buy_pool.reserve_of(target.address), target.decimals)
        in_sell = to_units(sell_pool.reserve_of(quote.address), quote.decimals)
        out_sell = to_units(sell_pool.reserve_of(target.address), target.decimals)

        size = self._optimal_size(buy_pool, sell_pool, target, quote)
        if size <= 0:
            return None

        profit_in_quote = size * (sell_price / buy_price - 1)
        if profit_in_quote <= 0:
            return None

        quote_usd = await self.oracle.get_usd_price(quote.address)
        if quote_usd.is_success and quote_usd.value > 0:
            usd_rate = quote_usd.value
        else:
            logger.debug(f"No USD price for {quote.symbol}, profit left in quote units")
            usd_rate = ONE

        bought = amount_out(size, in_buy, out_buy, buy_pool.fee_bps)
        liquidity_buy = 2 * in_buy * usd_rate
        liquidity_sell = 2 * in_sell * usd_rate
        path = [
            ArbitrageLeg(
                pool_address=buy_pool.address,
                venue_name=venue_name(buy_pool.factory),
                token_in=quote.address,
                token_out=target.address,
                rate=exchange_rate(in_buy, out_buy),
                liquidity=liquidity_buy,
                price_impact_percent=price_impact_percent(
                    size, in_buy, out_buy, buy_pool.fee_bps
                ),
            ),
            ArbitrageLeg(
                pool_address=sell_pool.address,
                venue_name=venue_name(sell_pool.factory),
                token_in=target.address,
                token_out=quote.address,
                rate=exchange_rate(out_sell, in_sell),
                liquidity=liquidity_sell,
                price_impact_percent=price_impact_percent(
                    bought, out_sell, in_sell, sell_pool.fee_bps
                ),
            ),
        ]

        gas = (await self.estimate_gas_cost(len(path))).value
        return ArbitrageOpportunity.create(
            token_address=target.address,
            token_symbol=target.symbol,
            path=path,
            buy_price=buy_price,
            sell_price=sell_price,
            optimal_input_amount=size,
            optimal_input_usd=size * usd_rate,
            expected_profit_usd=profit_in_quote * usd_rate,
            estimated_gas_cost_usd=gas,
            confidence_score=confidence_score(liquidity_buy, liquidity_sell, spread),
            detected_at=self.time_provider.current_timestamp(),
        )

    @staticmethod
    def _pool_price(pool: Pool, target: Token, quote: Token) -> Decimal:
        """Price of target in quote units from one pool's reserves."""
        is_token0 = pool.token0 == target.address
        if is_token0:
            decimals0, decimals1 = target.decimals, quote.decimals
        else:
            decimals0, decimals1 = quote.decimals, target.decimals
        return price_from_reserves(
            pool.reserve0, pool.reserve1, decimals0, decimals1, is_token0
        )

    def _optimal_size(
        self, buy_pool: Pool, sell_pool: Pool, target: Token, quote: Token
    ) -> Decimal:
        """
        Capped two-pool size in quote-token units.

        The closed form is not scale invariant, so it runs on reserves at
        18-decimal on-chain scale and the result is converted back.
        """
        size = optimal_input(
            normalize_reserve(buy_pool.reserve_of(quote.address), quote.decimals),
            normalize_reserve(buy_pool.reserve_of(target.address), target.decimals),
            normalize_reserve(sell_pool.reserve_of(quote.address), quote.decimals),
            normalize_reserve(sell_pool.reserve_of(target.address), target.decimals),
            self.settings.max_input_fraction,
        )
        return to_units(size, NORMALIZED_DECIMALS)

    # ------------------------------------------------------------------
    # Triangular scanning
    # ------------------------------------------------------------------

    async def scan_triangular(
        self, base_token: str = WETH_ADDRESS
    ) -> Result[List[ArbitrageOpportunity]]:
        """Profitable base -> mid -> third -> base cycles, best first."""
        base = normalize_address(base_token)
        base_entity = await self.tokens.get_by_address(base, self.chain_id)
        if base_entity is None:
            return Result.failure(Errors.Token.not_found(base))

        pools = await self.pools.get_all_by_chain_id(self.chain_id)
        graph = nx.MultiGraph()
        for pool in pools:
            if pool.reserve0 > 0 and pool.reserve1 > 0:
                graph.add_edge(pool.token0, pool.token1, key=pool.address, pool=pool)

        if base not in graph:
            return Result.success([])

        decimals: Dict[str, int] = {}
        for node in graph.nodes:
            token = await self.tokens.get_by_address(node, self.chain_id)
            decimals[node] = token.decimals if token else DEFAULT_TOKEN_DECIMALS

        base_usd = await self.oracle.get_usd_price(base)
        usd_rate = base_usd.value if base_usd.is_success and base_usd.value > 0 else ONE

        opportunities = []
        for mid in list(graph.neighbors(base)):
            for third in list(graph.neighbors(mid)):
                if third in (base, mid) or not graph.has_edge(third, base):
                    continue
                for pool1, pool2, pool3 in self._distinct_pool_triples(
                    graph, base, mid, third
                ):
                    try:
                        opp = await self._evaluate_triangle(
                            base_entity, (mid, third), (pool1, pool2, pool3), decimals, usd_rate
                        )
                    except Exception as e:
                        logger.warning(
                            f"Skipping triangle {pool1.address}/{pool2.address}/"
                            f"{pool3.address}: {type(e).__name__}: {e}"
                        )
                        continue
                    if opp is not None and opp.is_profitable:
                        opportunities.append(opp)

        opportunities.sort(key=lambda o: o.net_profit_usd, reverse=True)
        return Result.success(opportunities)

    @staticmethod
    def _distinct_pool_triples(graph: nx.MultiGraph, base: str, mid: str, third: str):
        legs1 = [d["pool"] for d in graph[base][mid].values()]
        legs2 = [d["pool"] for d in graph[mid][third].values()]
        legs3 = [d["pool"] for d in graph[third][base].values()]
        for pool1, pool2, pool3 in itertools.product(legs1, legs2, legs3):
            if len({pool1.address, pool2.address, pool3.address}) == 3:
                yield pool1, pool2, pool3

    async def _evaluate_triangle(
        self,
        base: Token,
        hops: Tuple[str, str],
        pools: Tuple[Pool, Pool, Pool],
        decimals: Dict[str, int],
        usd_rate: Decimal,
    ) -> Optional[ArbitrageOpportunity]:
        route = [base.address, hops[0], hops[1], base.address]
        reserves = []
        for pool, token_in, token_out in zip(pools, route, route[1:]):
            reserves.append(
                (
                    to_units(pool.reserve_of(token_in), decimals[token_in]),
                    to_units(pool.reserve_of(token_out), decimals[token_out]),
                )
            )

        rates = [exchange_rate(r_in, r_out) for r_in, r_out in reserves]
        product = rates[0] * rates[1] * rates[2]
        if product <= self.settings.triangular_min_product:
            return None

        # Each leg's input reserve expressed in base-token units
        depth_in_base = []
        cumulative = ONE
        for (r_in, _), rate in zip(reserves, rates):
            depth_in_base.append(r_in / cumulative)
            cumulative *= rate
        size = self.settings.triangular_size_fraction * min(depth_in_base)
        if size <= 0:
            return None

        path = []
        amount = size
        for pool, token_in, token_out, (r_in, r_out), rate, depth in zip(
            pools, route, route[1:], reserves, rates, depth_in_base
        ):
            path.append(
                ArbitrageLeg(
                    pool_address=pool.address,
                    venue_name=venue_name(pool.factory),
                    token_in=token_in,
                    token_out=token_out,
                    rate=rate,
                    liquidity=2 * depth * usd_rate,
                    price_impact_percent=price_impact_percent(
                        amount, r_in, r_out, pool.fee_bps
                    ),
                )
            )
            amount = amount_out(amount, r_in, r_out, pool.fee_bps)

        spread = (product - 1) * 100
        min_liquidity = 2 * min(depth_in_base) * usd_rate
        gas = (await self.estimate_gas_cost(len(path))).value
        return ArbitrageOpportunity.create(
            token_address=base.address,
            token_symbol=base.symbol,
            path=path,
            buy_price=ONE,
            sell_price=product,
            optimal_input_amount=size,
            optimal_input_usd=size * usd_rate,
            expected_profit_usd=size * (product - 1) * usd_rate,
            estimated_gas_cost_usd=gas,
            confidence_score=confidence_score(min_liquidity, min_liquidity, spread),
            detected_at=self.time_provider.current_timestamp(),
            kind=ArbitrageKind.TRIANGULAR,
        )

    # ------------------------------------------------------------------
    # Ad-hoc queries
    # ------------------------------------------------------------------

    async def calculate_optimal_amount(
        self, buy_pool_address: str, sell_pool_address: str, token: str
    ) -> Result[Tuple[Decimal, Decimal]]:
        """
        (optimal input in quote units, expected profit in USD) for buying
        token in one named pool and selling it in the other.

        (0, 0) when there is no edge in that direction. Failure:
        Arbitrage.PoolNotFound.
        """
        buy_pool = await self.pools.get_by_address(buy_pool_address, self.chain_id)
        if buy_pool is None:
            return Result.failure(Errors.Arbitrage.pool_not_found(buy_pool_address))
        sell_pool = await self.pools.get_by_address(sell_pool_address, self.chain_id)
        if sell_pool is None:
            return Result.failure(Errors.Arbitrage.pool_not_found(sell_pool_address))

        token = normalize_address(token)
        no_edge = Result.success((ZERO, ZERO))
        if buy_pool.pair_key != sell_pool.pair_key or not buy_pool.contains(token):
            return no_edge

        target = await self.tokens.get_by_address(token, self.chain_id)
        quote = await self.tokens.get_by_address(
            buy_pool.other_token(token), self.chain_id
        )
        if target is None or quote is None:
            return no_edge

        buy_price = self._pool_price(buy_pool, target, quote)
        sell_price = self._pool_price(sell_pool, target, quote)
        size = self._optimal_size(buy_pool, sell_pool, target, quote)
        if size <= 0 or buy_price <= 0:
            return no_edge

        quote_usd = await self.oracle.get_usd_price(quote.address)
        usd_rate = quote_usd.value if quote_usd.is_success else ONE
        profit = size * (sell_price / buy_price - 1) * usd_rate
        return Result.success((size, profit))

    async def estimate_gas_cost(
        self, legs: Union[int, ArbitrageOpportunity]
    ) -> Result[Decimal]:
        """
        Gas for a path in USD.

        Falls back to a flat $50 when ETH/USD cannot be resolved.
        """
        leg_count = legs.path_length if isinstance(legs, ArbitrageOpportunity) else int(legs)
        eth_usd = await self.oracle.get_usd_price(WETH_ADDRESS)
        eth_price = eth_usd.value if eth_usd.is_success else None
        return Result.success(
            gas_cost_usd(leg_count, self.settings.gas_price_gwei, eth_price)
        )
