"""
Dashboard statistics.
"""

from sentinel.dashboard.stats import (
    DashboardService,
    DashboardTab,
    bucket_days,
    days_remaining,
    greet,
    greeting,
)

__all__ = [
    "DashboardService",
    "DashboardTab",
    "bucket_days",
    "days_remaining",
    "greet",
    "greeting",
]
