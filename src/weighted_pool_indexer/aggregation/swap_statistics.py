"""Daily statistics updates driven by swap events only."""

from __future__ import annotations

from decimal import Decimal

from ..datalake.schemas import DailyStatisticsDelta, DailyTokenStatistics, Token
from ..monitoring.metrics import METRICS
from ..utils.numeric import ZERO_BD
from .daily_statistics import DailyStatisticsAccumulator


class DailySwapStatistics:
    """Counts a swap against the day bucket of the token that was sold into the pool.

    Buckets are opened through the shared accumulator, so swap-only days
    carry the same six metrics and the same liquidity seeding.
    """

    def __init__(self, accumulator: DailyStatisticsAccumulator) -> None:
        self._accumulator = accumulator

    def record_swap(
        self,
        token: Token,
        timestamp: int,
        amount_in_units: Decimal,
        volume_usd: Decimal = ZERO_BD,
    ) -> DailyTokenStatistics:
        bucket = self._accumulator.get_or_create_day_bucket(token, timestamp)
        METRICS.increment("swaps.recorded")
        return self._accumulator.apply_increments(
            bucket,
            DailyStatisticsDelta(
                increase_swap_tx_count_by=1,
                increase_swap_volume_in_units_by=amount_in_units,
                increase_swap_volume_in_usd_by=volume_usd,
                increase_tx_count_by=1,
            ),
        )


__all__ = ["DailySwapStatistics"]
