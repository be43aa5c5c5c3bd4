"""
Reserve-based price oracle.

Resolves a token's price in a quote currency from the deepest matching
pool, falling back to a two-hop route through WETH. USD prices come from
stablecoin pairings first, then the token/ETH and ETH/USD composition.
TWAPs are computed from stored price history.

Results are cached briefly under "price:<token>:<quote>". The cache only
accelerates reads; failures are never cached.
"""

import logging
from decimal import Decimal
from typing import List, Optional

from dex.adapters.v2 import price_from_reserves, to_units
from dex.types import Pool, PricePoint, Token, TokenPrice, TwapResult
from dex_analytics.constants import (
    DEFAULT_TOKEN_DECIMALS,
    PRICE_CACHE_KEY,
    USD_PRICE_CACHE_KEY,
    STABLECOIN_ADDRESSES,
    SUPPORTED_QUOTE_CURRENCIES,
    USD_PAIRING_SYMBOLS,
    WETH_ADDRESS,
    resolve_quote_address,
)
from dex_analytics.events import SignificantPriceChange
from dex_analytics.interfaces import (
    CacheService,
    PoolRepository,
    PriceHistoryRepository,
    TimeProvider,
    TokenRepository,
    get_time_provider,
)
from dex_analytics.results import Errors, Result
from dex_analytics.utils import clamp, normalize_address

logger = logging.getLogger(__name__)

ONE = Decimal("1")
ZERO = Decimal("0")

DEFAULT_PRICE_TTL_SEC = 30.0
DEFAULT_TWAP_PERIOD_SEC = 3600.0
MAX_HISTORY_LIMIT = 1000


class PriceOracle:
    """
    Prices tokens from pool reserves.

    Every public method returns a Result; expected gaps (unknown token, no
    pools, no route, no history) are failures, not exceptions.
    """

    def __init__(
        self,
        pool_repository: PoolRepository,
        token_repository: TokenRepository,
        price_history_repository: PriceHistoryRepository,
        cache: CacheService,
        chain_id: int = 1,
        time_provider: Optional[TimeProvider] = None,
        price_ttl: float = DEFAULT_PRICE_TTL_SEC,
    ):
        """
        Args:
            pool_repository: Source of pool snapshots
            token_repository: Source of token metadata (decimals)
            price_history_repository: Ordered price samples for TWAP
            cache: Best-effort cache for resolved prices
            chain_id: Chain to price on
            time_provider: Clock (defaults to the global provider)
            price_ttl: Seconds a resolved price stays cached
        """
        self.pools = pool_repository
        self.tokens = token_repository
        self.history = price_history_repository
        self.cache = cache
        self.chain_id = chain_id
        self.time_provider = time_provider or get_time_provider()
        self.price_ttl = price_ttl

    @staticmethod
    def supported_quote_currencies() -> List[str]:
        return list(SUPPORTED_QUOTE_CURRENCIES)

    # ------------------------------------------------------------------
    # Spot prices
    # ------------------------------------------------------------------

    async def get_price(self, token: str, quote_currency: str = "ETH") -> Result[TokenPrice]:
        """
        Price of token in quote_currency.

        Failures: Token.NotFound, Price.NoLiquidity, Price.NoPool.
        """
        token = normalize_address(token)
        quote = quote_currency.upper()
        key = PRICE_CACHE_KEY.format(token=token, quote=quote)

        cached = await self.cache.get(key)
        if cached is not None:
            return Result.success(cached)

        result = await self._resolve_price(token, quote, allow_multi_hop=True, with_usd=True)
        if result.is_success:
            await self.cache.set(key, result.value, self.price_ttl)
        return result

    async def get_usd_price(self, token: str) -> Result[Decimal]:
        """
        USD price of a token.

        Stablecoins are 1:1. Otherwise the first direct USDC/USDT/DAI pool
        wins, then token->ETH x ETH->USD. Resolved prices share the spot
        price TTL. Failures: Token.NotFound, Price.NoPool, Price.NoEthUsd.
        """
        token = normalize_address(token)
        if token in STABLECOIN_ADDRESSES:
            return Result.success(ONE)

        key = USD_PRICE_CACHE_KEY.format(token=token)
        cached = await self.cache.get(key)
        if cached is not None:
            return Result.success(cached)

        result = await self._resolve_usd_price(token)
        if result.is_success:
            await self.cache.set(key, result.value, self.price_ttl)
        return result

    async def _resolve_usd_price(self, token: str) -> Result[Decimal]:
        for symbol in USD_PAIRING_SYMBOLS:
            direct = await self._resolve_price(token, symbol, allow_multi_hop=False, with_usd=False)
            if direct.is_success:
                return Result.success(direct.value.price)

        if token == WETH_ADDRESS:
            return Result.failure(Errors.Price.no_eth_usd())

        eth_leg = await self._resolve_price(token, "WETH", allow_multi_hop=False, with_usd=False)
        if eth_leg.is_failure:
            return Result.failure(eth_leg.error)

        eth_usd = await self.get_usd_price(WETH_ADDRESS)
        if eth_usd.is_failure:
            return Result.failure(Errors.Price.no_eth_usd())

        return Result.success(eth_leg.value.price * eth_usd.value)

    async def _resolve_price(
        self, token: str, quote: str, allow_multi_hop: bool, with_usd: bool
    ) -> Result[TokenPrice]:
        token_entity = await self.tokens.get_by_address(token, self.chain_id)
        if token_entity is None:
            return Result.failure(Errors.Token.not_found(token))

        quote_address = resolve_quote_address(quote)
        if quote_address and token == quote_address:
            price_usd = await self._usd_value(quote_address, ONE) if with_usd else ZERO
            return Result.success(
                TokenPrice(
                    token_address=token,
                    quote_token_address=quote_address,
                    quote_symbol=quote,
                    price=ONE,
                    price_usd=price_usd,
                    pool_address="",
                    liquidity=ZERO,
                    timestamp=self.time_provider.current_timestamp(),
                )
            )

        pools = await self.pools.get_pools_by_token(token, self.chain_id)
        if not pools:
            return Result.failure(Errors.Price.no_liquidity(token))

        candidates = [
            p
            for p in pools
            if (not quote_address or p.contains(quote_address))
            and p.reserve0 > 0
            and p.reserve1 > 0
        ]
        if candidates:
            best = max(candidates, key=lambda p: p.total_reserves)
            return await self._price_from_pool(token_entity, best, quote, with_usd)

        if allow_multi_hop and quote_address != WETH_ADDRESS and token != WETH_ADDRESS:
            hop = await self._price_via_weth(token, quote, quote_address, with_usd)
            if hop is not None:
                return hop

        return Result.failure(Errors.Price.no_pool(token, quote))

    async def _price_from_pool(
        self, token: Token, pool: Pool, quote: str, with_usd: bool
    ) -> Result[TokenPrice]:
        other = pool.other_token(token.address)
        other_decimals = await self._decimals(other)
        is_token0 = pool.token0 == token.address
        if is_token0:
            decimals0, decimals1 = token.decimals, other_decimals
        else:
            decimals0, decimals1 = other_decimals, token.decimals

        price = price_from_reserves(
            pool.reserve0, pool.reserve1, decimals0, decimals1, is_token0
        )
        if price <= 0:
            return Result.failure(Errors.Price.no_liquidity(token.address))

        price_usd = await self._usd_value(other, price) if with_usd else ZERO
        return Result.success(
            TokenPrice(
                token_address=token.address,
                quote_token_address=other,
                quote_symbol=quote,
                price=price,
                price_usd=price_usd,
                pool_address=pool.address,
                liquidity=to_units(pool.reserve_of(other), other_decimals) * 2,
                timestamp=self.time_provider.current_timestamp(),
            )
        )

    async def _price_via_weth(
        self, token: str, quote: str, quote_address: str, with_usd: bool
    ) -> Optional[Result[TokenPrice]]:
        to_weth = await self._resolve_price(token, "WETH", allow_multi_hop=False, with_usd=False)
        if to_weth.is_failure:
            return None
        from_weth = await self._resolve_price(
            WETH_ADDRESS, quote, allow_multi_hop=False, with_usd=False
        )
        if from_weth.is_failure:
            return None

        price = to_weth.value.price * from_weth.value.price
        quote_token = quote_address or from_weth.value.quote_token_address
        price_usd = await self._usd_value(quote_token, price) if with_usd else ZERO
        logger.debug(f"Priced {token} in {quote} via WETH: {price}")
        return Result.success(
            TokenPrice(
                token_address=token,
                quote_token_address=quote_token,
                quote_symbol=quote,
                price=price,
                price_usd=price_usd,
                pool_address=to_weth.value.pool_address,
                liquidity=to_weth.value.liquidity,
                timestamp=self.time_provider.current_timestamp(),
            )
        )

    async def _usd_value(self, quote_token: str, amount: Decimal) -> Decimal:
        """amount of quote_token in USD, 0 when the quote cannot be priced."""
        if quote_token in STABLECOIN_ADDRESSES:
            return amount
        usd = await self.get_usd_price(quote_token)
        if usd.is_failure:
            logger.debug(f"No USD price for {quote_token}: {usd.error}")
            return ZERO
        return amount * usd.value

    async def _decimals(self, address: str) -> int:
        token = await self.tokens.get_by_address(address, self.chain_id)
        return token.decimals if token is not None else DEFAULT_TOKEN_DECIMALS

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    async def get_twap(
        self,
        token: str,
        quote_currency: str = "ETH",
        period: float = DEFAULT_TWAP_PERIOD_SEC,
    ) -> Result[TwapResult]:
        """
        Time-weighted average over [now - period, now].

        Each sample is weighted by the time until the next sample; the
        last sample is weighted up to now. Failure: Twap.NoData.
        """
        token = normalize_address(token)
        now = self.time_provider.current_timestamp()
        points = await self.history.get_for_twap(token, quote_currency, now - period, now)
        if not points:
            return Result.failure(Errors.Twap.no_data(token))

        points = sorted(points, key=lambda p: p.timestamp)
        weighted_sum = ZERO
        total_duration = ZERO
        for i, point in enumerate(points):
            end = points[i + 1].timestamp if i + 1 < len(points) else now
            duration = Decimal(str(max(end - point.timestamp, 0.0)))
            weighted_sum += point.price * duration
            total_duration += duration

        spot = points[-1].price
        twap = weighted_sum / total_duration if total_duration > 0 else spot
        deviation = abs(twap - spot) / spot * 100 if spot > 0 else ZERO

        return Result.success(
            TwapResult(
                token_address=token,
                quote_symbol=quote_currency.upper(),
                twap_price=twap,
                spot_price=spot,
                deviation_percent=deviation,
                period=period,
                data_points=len(points),
                calculated_at=now,
            )
        )

    async def get_price_history(
        self,
        token: str,
        quote_currency: str,
        start: float,
        end: float,
        limit: int = 100,
    ) -> Result[List[PricePoint]]:
        """Stored samples in [start, end]; limit is clamped to [1, 1000]."""
        limit = clamp(limit, 1, MAX_HISTORY_LIMIT)
        points = await self.history.get_by_token(
            normalize_address(token), quote_currency, start, end, limit
        )
        return Result.success(points)

    async def detect_significant_change(
        self,
        token: str,
        quote_currency: str = "USD",
        period: float = DEFAULT_TWAP_PERIOD_SEC,
        threshold_percent: Decimal = Decimal("5"),
    ) -> Result[Optional[SignificantPriceChange]]:
        """
        Compare the oldest sample in the window with the current price.

        Returns an event when |change| >= threshold_percent, None when the
        move is smaller. Failures: Twap.NoData or any get_price failure.
        """
        token = normalize_address(token)
        now = self.time_provider.current_timestamp()
        points = await self.history.get_for_twap(token, quote_currency, now - period, now)
        if not points:
            return Result.failure(Errors.Twap.no_data(token))

        old_price = min(points, key=lambda p: p.timestamp).price
        if quote_currency.upper() == "USD":
            current = await self.get_usd_price(token)
            if current.is_failure:
                return Result.failure(current.error)
            new_price = current.value
        else:
            current = await self.get_price(token, quote_currency)
            if current.is_failure:
                return Result.failure(current.error)
            new_price = current.value.price

        if old_price <= 0:
            return Result.success(None)

        change = (new_price - old_price) / old_price * 100
        if abs(change) < Decimal(threshold_percent):
            return Result.success(None)

        token_entity = await self.tokens.get_by_address(token, self.chain_id)
        return Result.success(
            SignificantPriceChange(
                token_address=token,
                token_symbol=token_entity.symbol if token_entity else "",
                old_price=old_price,
                new_price=new_price,
                price_change_percent=change,
                time_period=period,
                occurred_at=now,
            )
        )
