"""
Patron database: search, intake and masked profile views.
"""

import logging
from datetime import date
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from sentinel.cases.views import PatronView
from sentinel.db.orm import Patron
from sentinel.db.repositories import PatronRepository
from sentinel.security.auth import AuthorizationError, User

logger = logging.getLogger(__name__)


class PatronService:
    """Patron lookups for the Database screen."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.patrons = PatronRepository(session)

    async def search_patrons(self, query: Optional[str], limit: int = 50) -> list[Patron]:
        """
        Search by name prefix, newest patrons first.

        A blank query returns nothing rather than the whole table.
        """
        if not query or not query.strip():
            return []
        results = await self.patrons.search(query, limit=limit)
        logger.debug(f"Patron search {query!r}: {len(results)} result(s)")
        return results

    async def get_patron(self, patron_id: UUID) -> Patron:
        return await self.patrons.require(patron_id)

    async def create_patron(
        self,
        first_name: str,
        last_name: str,
        date_of_birth: Optional[date] = None,
        **details,
    ) -> Patron:
        if not first_name.strip() or not last_name.strip():
            raise ValueError("First and last name are required")
        patron = await self.patrons.create(
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            date_of_birth=date_of_birth,
            **details,
        )
        logger.info(f"Created patron {patron.id}")
        return patron

    @staticmethod
    def patron_view(patron: Patron, user: User, reveal: bool = False) -> PatronView:
        """
        Build the profile view, masked unless reveal is requested.

        Raises:
            AuthorizationError: If reveal is requested without Admin or Manager role
        """
        if reveal and not user.can_view_sensitive:
            raise AuthorizationError("Viewing unmasked patron details requires Admin or Manager")
        if reveal:
            logger.info(f"User {user.id} revealed sensitive fields of patron {patron.id}")
        return PatronView.from_record(patron, reveal=reveal)
