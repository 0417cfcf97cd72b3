"""Cross-table query package."""

from src.queries.dashboard import DashboardAggregator

__all__ = ["DashboardAggregator"]
