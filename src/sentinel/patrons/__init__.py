"""
Patron database.
"""

from sentinel.patrons.service import PatronService

__all__ = ["PatronService"]
