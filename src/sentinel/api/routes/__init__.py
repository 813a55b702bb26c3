"""
API route modules.
"""

from sentinel.api.routes.archive import router as archive_router
from sentinel.api.routes.auth import router as auth_router
from sentinel.api.routes.cases import router as cases_router
from sentinel.api.routes.dashboard import router as dashboard_router
from sentinel.api.routes.files import router as files_router
from sentinel.api.routes.patrons import router as patrons_router
from sentinel.api.routes.realtime import router as realtime_router
from sentinel.api.routes.reports import router as reports_router
from sentinel.api.routes.settings import router as settings_router
from sentinel.api.routes.storage import router as storage_router
from sentinel.api.routes.team import router as team_router

__all__ = [
    "archive_router",
    "auth_router",
    "cases_router",
    "dashboard_router",
    "files_router",
    "patrons_router",
    "realtime_router",
    "reports_router",
    "settings_router",
    "storage_router",
    "team_router",
]
