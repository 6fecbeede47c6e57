"""Per token daily buckets seeded from the previous day's closing liquidity."""

from __future__ import annotations

from dataclasses import replace
from typing import Optional

from ..datalake.schemas import DailyStatisticsDelta, DailyTokenStatistics, Token
from ..datalake.storage import EntityStore
from ..monitoring.logger import get_logger
from ..monitoring.metrics import METRICS
from ..utils.numeric import ZERO_BD, ZERO_BI, add, day_id, to_decimal


def bucket_id(token_id: str, day: int) -> str:
    return f"{token_id}-{day}"


class DailyStatisticsAccumulator:
    """Maintains one DailyTokenStatistics record per (token, day).

    Buckets are created lazily on the first event of a day. A new bucket's
    liquidity fields start from the previous day's closing values so that a
    reader of day ``N`` sees the latest known liquidity even when the token
    was idle on intermediate days.
    """

    def __init__(self, store: EntityStore) -> None:
        self._store = store
        self._logger = get_logger(__name__)

    def get_or_create_day_bucket(self, token: Token, timestamp: int) -> DailyTokenStatistics:
        day = day_id(timestamp)
        bucket = self._store.load(DailyTokenStatistics, bucket_id(token.id, day))
        if bucket is not None:
            return bucket

        yesterday = self._store.load(DailyTokenStatistics, bucket_id(token.id, day - 1))
        liquidity_in_units = ZERO_BD
        liquidity_in_usd = ZERO_BD
        if yesterday is not None and yesterday.liquidity_in_units is not None:
            liquidity_in_units = yesterday.liquidity_in_units
        if yesterday is not None and yesterday.liquidity_in_usd is not None:
            liquidity_in_usd = yesterday.liquidity_in_usd

        bucket = DailyTokenStatistics(
            id=bucket_id(token.id, day),
            date=int(timestamp),
            token=token.id,
            swap_volume_in_usd=ZERO_BD,
            swap_volume_in_units=ZERO_BD,
            swap_tx_count=ZERO_BI,
            liquidity_in_units=liquidity_in_units,
            liquidity_in_usd=liquidity_in_usd,
            tx_count=ZERO_BI,
        )
        # Persisted before any increment so later lookups in the same event see it.
        self._store.save(bucket)
        METRICS.increment("daily_buckets.created")
        self._logger.debug("Opened day bucket %s", bucket.id, extra={"seeded": yesterday is not None})
        return bucket

    def apply_increments(self, bucket: DailyTokenStatistics, delta: DailyStatisticsDelta) -> DailyTokenStatistics:
        """Return ``bucket`` with every present delta added, and persist it."""

        changes = {}
        if delta.increase_swap_tx_count_by is not None:
            changes["swap_tx_count"] = bucket.swap_tx_count + int(delta.increase_swap_tx_count_by)
        if delta.increase_swap_volume_in_usd_by is not None:
            changes["swap_volume_in_usd"] = add(
                bucket.swap_volume_in_usd, to_decimal(delta.increase_swap_volume_in_usd_by)
            )
        if delta.increase_swap_volume_in_units_by is not None:
            changes["swap_volume_in_units"] = add(
                bucket.swap_volume_in_units, to_decimal(delta.increase_swap_volume_in_units_by)
            )
        if delta.increase_liquidity_in_units_by is not None:
            changes["liquidity_in_units"] = add(
                to_decimal(bucket.liquidity_in_units), to_decimal(delta.increase_liquidity_in_units_by)
            )
        if delta.increase_liquidity_in_usd_by is not None:
            changes["liquidity_in_usd"] = add(
                to_decimal(bucket.liquidity_in_usd), to_decimal(delta.increase_liquidity_in_usd_by)
            )
        if delta.increase_tx_count_by is not None:
            changes["tx_count"] = bucket.tx_count + int(delta.increase_tx_count_by)

        updated = replace(bucket, **changes)
        self._store.save(updated)
        return updated

    def update_token_daily_statistics(
        self,
        token: Token,
        timestamp: int,
        delta: Optional[DailyStatisticsDelta] = None,
    ) -> DailyTokenStatistics:
        bucket = self.get_or_create_day_bucket(token, timestamp)
        return self.apply_increments(bucket, delta or DailyStatisticsDelta())


__all__ = ["DailyStatisticsAccumulator", "bucket_id"]
