"""
Report API routes.
"""

from fastapi import APIRouter
from fastapi.responses import Response

from sentinel.api.deps import CTRTemplates, Queries
from sentinel.workflow.states import CaseKind

router = APIRouter()


@router.get("/ctr/{case_id}")
async def download_ctr(case_id: str, queries: Queries, templates: CTRTemplates):
    """
    Fill the CTR template for a case.

    The generated PDF is also saved into the case's files.
    """
    case = await queries.get_case(CaseKind.CTR, case_id)
    filename, data = await templates.generate_ctr(case)
    return Response(
        content=data,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
