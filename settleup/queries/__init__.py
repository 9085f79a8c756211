"""Statistics queries package."""

from settleup.queries.statistics import StatisticsExecutor, range_cutoff

__all__ = ["StatisticsExecutor", "range_cutoff"]
