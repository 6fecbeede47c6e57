"""Aggregation package exports."""

from .daily_statistics import DailyStatisticsAccumulator, bucket_id
from .swap_statistics import DailySwapStatistics

__all__ = ["DailyStatisticsAccumulator", "DailySwapStatistics", "bucket_id"]
