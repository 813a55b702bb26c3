"""
Archive API routes.

Approved cases by folder, grouped by gaming-day month.
"""

from fastapi import APIRouter, Query

from sentinel.api.deps import Queries, User
from sentinel.cases.queries import ArchiveFolder
from sentinel.cases.views import ArchiveGroupView, ArchiveView, CaseRow

router = APIRouter()


@router.get("", response_model=ArchiveView)
async def get_archive(
    queries: Queries,
    user: User,
    folder: ArchiveFolder = Query(ArchiveFolder.CTRS, description="CTRs, 8300s or PSAs"),
):
    groups = await queries.archive(folder)
    return ArchiveView(
        folder=folder.value,
        groups=[
            ArchiveGroupView(label=g.label, cases=[CaseRow.from_record(c) for c in g.cases])
            for g in groups
        ],
        total=sum(len(g.cases) for g in groups),
    )
