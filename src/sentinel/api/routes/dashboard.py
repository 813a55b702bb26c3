"""
Dashboard API routes.

Provides aggregated statistics for the dashboard tabs.
"""

from fastapi import APIRouter, Query

from sentinel.api.deps import Dashboard, User
from sentinel.cases.views import DashboardView
from sentinel.dashboard.stats import DashboardTab

router = APIRouter()


@router.get("", response_model=DashboardView)
async def get_dashboard(
    dashboard: Dashboard,
    user: User,
    tab: DashboardTab = Query(DashboardTab.CTRS, description="CTRs, 8300s or PSAs"),
):
    """
    Get dashboard statistics for one tab.

    Returns the greeting, status counts, owner workload and the
    days-to-file histogram.
    """
    return await dashboard.build(tab, user)
