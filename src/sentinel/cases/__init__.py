"""
Case queries, sorting and per-screen views.
"""

from sentinel.cases.queries import (
    ArchiveFolder,
    ArchiveGroup,
    CaseQueryService,
    group_by_month,
    month_label,
)
from sentinel.cases.sorting import SortField, SortOrder, SortState, sort_cases
from sentinel.cases.views import (
    ArchiveGroupView,
    ArchiveView,
    CaseListView,
    CaseRow,
    DashboardView,
    PatronView,
    StoredFileView,
)

__all__ = [
    "ArchiveFolder",
    "ArchiveGroup",
    "ArchiveGroupView",
    "ArchiveView",
    "CaseListView",
    "CaseQueryService",
    "CaseRow",
    "DashboardView",
    "PatronView",
    "SortField",
    "SortOrder",
    "SortState",
    "StoredFileView",
    "group_by_month",
    "month_label",
    "sort_cases",
]
