"""Wiring for the aggregation engine inside an event-sourcing runtime."""

from __future__ import annotations

from typing import Optional

from .aggregation import DailyStatisticsAccumulator, DailySwapStatistics
from .config.settings import AppConfig, StorageBackend, get_app_config
from .datalake.schemas import Balancer
from .datalake.storage import EntityStore, InMemoryEntityStore, SQLiteEntityStore
from .handlers import PoolEventProcessor
from .ingestion.contracts import ERC20Caller, Web3ERC20Caller
from .ingestion.token_registry import TokenRegistry
from .monitoring import bootstrap_observability
from .monitoring.logger import get_logger
from .pricing import ReferencePriceResolver

logger = get_logger(__name__)


def build_store(config: AppConfig) -> EntityStore:
    if config.storage.backend == StorageBackend.MEMORY:
        return InMemoryEntityStore()
    return SQLiteEntityStore(config.storage.database_path)


def ensure_factory(store: EntityStore, factory_address: str) -> Balancer:
    """Load the protocol factory record, creating it on first start."""

    factory = store.load(Balancer, factory_address)
    if factory is None:
        factory = Balancer(id=factory_address)
        store.save(factory)
        logger.info("Created factory record %s", factory_address)
    return factory


def build_processor(
    config: Optional[AppConfig] = None,
    *,
    store: Optional[EntityStore] = None,
    caller: Optional[ERC20Caller] = None,
) -> PoolEventProcessor:
    app_config = config or get_app_config()
    bootstrap_observability(app_config)
    entity_store = store if store is not None else build_store(app_config)
    factory = ensure_factory(entity_store, app_config.network.factory_address)
    registry = TokenRegistry(entity_store, caller or Web3ERC20Caller(app_config.chain), factory)
    accumulator = DailyStatisticsAccumulator(entity_store)
    resolver = ReferencePriceResolver(entity_store, app_config.numeraires.addresses)
    logger.info(
        "Pool indexer ready",
        extra={"network": app_config.network.name, "storage": app_config.storage.backend.value},
    )
    return PoolEventProcessor(
        entity_store,
        registry,
        accumulator,
        resolver,
        DailySwapStatistics(accumulator),
    )


__all__ = ["build_processor", "build_store", "ensure_factory"]
