"""
Database module for Sentinel.
"""

from sentinel.db.orm import (
    CASE_MODELS,
    CTR,
    Base,
    CaseFile,
    CaseRecord,
    Form8300,
    Patron,
    PatronFile,
    Profile,
)

__all__ = [
    "Base",
    "CASE_MODELS",
    "CTR",
    "CaseFile",
    "CaseRecord",
    "Form8300",
    "Patron",
    "PatronFile",
    "Profile",
]
