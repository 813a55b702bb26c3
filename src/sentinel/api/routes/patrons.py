"""
Patron database API routes.
"""

import logging
from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, status
from fastapi.responses import Response
from pydantic import BaseModel, Field

from sentinel.api.deps import Patrons, User
from sentinel.cases.views import PatronView
from sentinel.reports.pdf import generate_patron_report

logger = logging.getLogger(__name__)

router = APIRouter()


class PatronCreate(BaseModel):
    """Request model for patron intake."""

    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    date_of_birth: Optional[date] = None
    phone_number: Optional[str] = Field(None, max_length=50)
    email_address: Optional[str] = Field(None, max_length=255)
    address_line: Optional[str] = Field(None, max_length=255)
    city: Optional[str] = Field(None, max_length=100)
    state: Optional[str] = Field(None, max_length=100)
    country: Optional[str] = Field(None, max_length=100)
    occupation: Optional[str] = Field(None, max_length=100)
    ssn: Optional[str] = Field(None, max_length=11)
    id_type: Optional[str] = Field(None, max_length=20)
    id_number: Optional[str] = Field(None, max_length=40)
    id_state: Optional[str] = Field(None, max_length=100)
    id_country: Optional[str] = Field(None, max_length=100)


@router.get("", response_model=list[PatronView])
async def search_patrons(
    patrons: Patrons,
    user: User,
    q: str = Query("", description="First name, last name, or 'first last'"),
    limit: int = Query(50, ge=1, le=200),
):
    """Search by name prefix; results are masked."""
    results = await patrons.search_patrons(q, limit=limit)
    return [patrons.patron_view(p, user) for p in results]


@router.post("", response_model=PatronView, status_code=status.HTTP_201_CREATED)
async def create_patron(body: PatronCreate, patrons: Patrons, user: User):
    details = body.model_dump(exclude={"first_name", "last_name", "date_of_birth"})
    patron = await patrons.create_patron(
        body.first_name, body.last_name, body.date_of_birth, **details
    )
    return patrons.patron_view(patron, user)


@router.get("/{patron_id}", response_model=PatronView)
async def get_patron(
    patron_id: UUID,
    patrons: Patrons,
    user: User,
    reveal: bool = Query(False, description="Show unmasked identifiers (Admin/Manager)"),
):
    patron = await patrons.get_patron(patron_id)
    return patrons.patron_view(patron, user, reveal=reveal)


@router.get("/{patron_id}/report")
async def patron_report(patron_id: UUID, patrons: Patrons, user: User):
    """Patron Profile Report as PDF."""
    patron = await patrons.get_patron(patron_id)
    data = generate_patron_report(patron)
    filename = f"patron_{patron.first_name}_{patron.last_name}.pdf"
    return Response(
        content=data,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
