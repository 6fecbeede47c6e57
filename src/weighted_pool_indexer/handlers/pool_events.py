"""Folds decoded pool events into token, day bucket and price records."""

from __future__ import annotations

from decimal import Decimal
from typing import Optional, Sequence, Tuple

from ..aggregation.daily_statistics import DailyStatisticsAccumulator
from ..aggregation.swap_statistics import DailySwapStatistics
from ..datalake.schemas import (
    Balancer,
    DailyStatisticsDelta,
    ExitEvent,
    JoinEvent,
    Pool,
    PoolEvent,
    SwapEvent,
    Token,
    TokenPrice,
)
from ..datalake.storage import EntityStore
from ..errors import MissingEntityError
from ..ingestion.token_registry import TokenRegistry
from ..monitoring.logger import correlation_scope, get_logger
from ..monitoring.metrics import METRICS
from ..pricing.reference_price import ReferencePriceResolver
from ..utils.addresses import normalize_address
from ..utils.numeric import ZERO_BD, add, multiply, scale_amount


class PoolEventProcessor:
    """Runs the registry, accumulators and price resolver for one event at a time."""

    def __init__(
        self,
        store: EntityStore,
        registry: TokenRegistry,
        accumulator: DailyStatisticsAccumulator,
        resolver: ReferencePriceResolver,
        swap_statistics: Optional[DailySwapStatistics] = None,
    ) -> None:
        self._store = store
        self._registry = registry
        self._accumulator = accumulator
        self._resolver = resolver
        self._swap_statistics = swap_statistics or DailySwapStatistics(accumulator)
        self._logger = get_logger(__name__)

    def process(self, event: PoolEvent) -> None:
        if isinstance(event, SwapEvent):
            handler = self.handle_swap
        elif isinstance(event, JoinEvent):
            handler = self.handle_join
        elif isinstance(event, ExitEvent):
            handler = self.handle_exit
        else:
            raise TypeError(f"Unsupported pool event: {type(event).__name__}")
        with correlation_scope(event.event_id), self._store.transaction():
            handler(event)
        METRICS.increment(f"events.{type(event).__name__}")

    def _load_pool(self, event: PoolEvent) -> Pool:
        pool = self._store.load(Pool, normalize_address(event.pool_id))
        if pool is None:
            raise MissingEntityError("Pool", event.pool_id)
        return pool

    def _load_factory(self) -> Balancer:
        factory = self._store.load(Balancer, self._registry.factory_id)
        if factory is None:
            raise MissingEntityError("Balancer", self._registry.factory_id)
        return factory

    def _usd_value(self, token: Token, units: Decimal) -> Decimal:
        token_price = self._store.load(TokenPrice, token.id)
        if token_price is None:
            return ZERO_BD
        return multiply(units, token_price.price)

    def handle_swap(self, event: SwapEvent) -> None:
        pool = self._load_pool(event)
        token_in = self._registry.get_or_create_token(event.token_in)
        token_out = self._registry.get_or_create_token(event.token_out)

        for token in (token_in, token_out):
            token.swap_tx_count += 1
            token.tx_count += 1
            self._store.save(token)

        amount_in = scale_amount(event.token_amount_in, token_in.decimals)
        self._swap_statistics.record_swap(token_in, event.block_timestamp, amount_in, event.volume_usd)

        pool.swaps_count += 1
        pool.tx_count += 1
        pool.total_swap_volume = add(pool.total_swap_volume, event.volume_usd)
        self._store.save(pool)

        factory = self._load_factory()
        factory.tx_count += 1
        factory.total_swap_volume = add(factory.total_swap_volume, event.volume_usd)
        self._store.save(factory)

        self._resolver.upsert_token_price(pool, event.pool_liquidity, event.has_usd_price)
        self._logger.debug(
            "Swap %s -> %s in %s",
            token_in.id,
            token_out.id,
            pool.id,
            extra={"amount_in": str(amount_in), "volume_usd": str(event.volume_usd)},
        )

    def handle_join(self, event: JoinEvent) -> None:
        self._handle_liquidity_change(event, event.token_amounts_in, sign=1)

    def handle_exit(self, event: ExitEvent) -> None:
        self._handle_liquidity_change(event, event.token_amounts_out, sign=-1)

    def _handle_liquidity_change(
        self,
        event: PoolEvent,
        token_amounts: Sequence[Tuple[str, int]],
        *,
        sign: int,
    ) -> None:
        pool = self._load_pool(event)
        self._registry.ensure_tokens_exist([address for address, _ in token_amounts])

        for address, raw_amount in token_amounts:
            token = self._registry.get_or_create_token(address)
            units = multiply(scale_amount(raw_amount, token.decimals), Decimal(sign))
            token.total_liquidity = add(token.total_liquidity, units)
            token.tx_count += 1
            self._store.save(token)
            self._accumulator.update_token_daily_statistics(
                token,
                event.block_timestamp,
                DailyStatisticsDelta(
                    increase_liquidity_in_units_by=units,
                    increase_liquidity_in_usd_by=self._usd_value(token, units),
                    increase_tx_count_by=1,
                ),
            )

        pool.tx_count += 1
        pool.liquidity = event.pool_liquidity
        self._store.save(pool)

        factory = self._load_factory()
        factory.tx_count += 1
        self._store.save(factory)

        self._resolver.upsert_token_price(pool, event.pool_liquidity, event.has_usd_price)


__all__ = ["PoolEventProcessor"]
