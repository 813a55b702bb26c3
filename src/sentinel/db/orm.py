"""
SQLAlchemy database models for Sentinel.

Tables:
- profiles: team members (authentication + roles)
- patrons: subjects of cases, with long-lived PII
- ctrs / form_8300s: the two case kinds, sharing one shape
- case_files / patron_files: metadata for stored blobs

Security:
- Patron SSN and government ID numbers are encrypted at rest
- Case rows carry a version counter for compare-and-swap updates
"""

import uuid
from datetime import date, datetime, timezone
from typing import ClassVar, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column, relationship

from sentinel.db.types import EncryptedString
from sentinel.workflow.states import CaseKind, CaseStatus, is_psa


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the naive DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


Money = Numeric(14, 2, asdecimal=False)


class Profile(Base):
    """
    A team member.

    Created on sign-up, edited from the Settings and Team screens.
    """

    __tablename__ = "profiles"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # Credentials
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    # Profile
    full_name: Mapped[Optional[str]] = mapped_column(String(255))
    first_name: Mapped[Optional[str]] = mapped_column(String(100))
    last_name: Mapped[Optional[str]] = mapped_column(String(100))
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    avatar_url: Mapped[Optional[str]] = mapped_column(String(500))

    # Authorization
    roles: Mapped[list[str]] = mapped_column(JSON, default=lambda: ["Analyst"])
    is_admin: Mapped[bool] = mapped_column(Boolean, default=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_profiles_created_at", "created_at"),
    )

    @property
    def display_name(self) -> str:
        if self.full_name:
            return self.full_name
        parts = [p for p in (self.first_name, self.last_name) if p]
        return " ".join(parts) if parts else "Unknown"


class Patron(Base):
    """
    The individual subject of one or more cases.

    Never deleted by the application; accumulates case history over time.
    """

    __tablename__ = "patrons"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    date_of_birth: Mapped[Optional[date]] = mapped_column(Date)

    # Contact
    phone_number: Mapped[Optional[str]] = mapped_column(String(50))
    email_address: Mapped[Optional[str]] = mapped_column(String(255))
    address_line: Mapped[Optional[str]] = mapped_column(String(255))
    city: Mapped[Optional[str]] = mapped_column(String(100))
    state: Mapped[Optional[str]] = mapped_column(String(100))
    country: Mapped[Optional[str]] = mapped_column(String(100))
    occupation: Mapped[Optional[str]] = mapped_column(String(100))

    # Identification (encrypted at rest)
    ssn: Mapped[Optional[str]] = mapped_column(EncryptedString(11))
    id_type: Mapped[Optional[str]] = mapped_column(String(20))  # DL | Passport
    id_number: Mapped[Optional[str]] = mapped_column(EncryptedString(40))
    id_state: Mapped[Optional[str]] = mapped_column(String(100))
    id_country: Mapped[Optional[str]] = mapped_column(String(100))

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    # Case history
    ctrs: Mapped[list["CTR"]] = relationship(
        "CTR", lazy="selectin", order_by="CTR.gaming_day.desc()", viewonly=True
    )
    form_8300s: Mapped[list["Form8300"]] = relationship(
        "Form8300", lazy="selectin", order_by="Form8300.gaming_day.desc()", viewonly=True
    )

    __table_args__ = (
        Index("idx_patrons_name", "last_name", "first_name"),
        Index("idx_patrons_created_at", "created_at"),
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class CaseRecord:
    """
    Columns shared by CTRs and Form 8300s.

    Subclasses add their business id column (ctr_id / form_id) and set kind.
    """

    kind: ClassVar[CaseKind]

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    gaming_day: Mapped[Optional[date]] = mapped_column(Date)
    ship: Mapped[str] = mapped_column(String(100), default="")

    # Patron snapshot
    first_name: Mapped[str] = mapped_column(String(100), default="")
    last_name: Mapped[str] = mapped_column(String(100), default="")
    date_of_birth: Mapped[Optional[date]] = mapped_column(Date)
    embark_date: Mapped[Optional[date]] = mapped_column(Date)
    debark_date: Mapped[Optional[date]] = mapped_column(Date)

    # Totals
    cash_in_total: Mapped[float] = mapped_column(Money, default=0)
    cash_out_total: Mapped[float] = mapped_column(Money, default=0)

    # Workflow
    status: Mapped[CaseStatus] = mapped_column(
        SQLEnum(
            CaseStatus,
            native_enum=False,
            values_callable=lambda e: [m.value for m in e],
            length=20,
        ),
        default=CaseStatus.NEW,
        nullable=False,
    )
    recommendation: Mapped[Optional[str]] = mapped_column(String(100))
    current_owner: Mapped[Optional[uuid.UUID]] = mapped_column(ForeignKey("profiles.id"))
    approver: Mapped[Optional[uuid.UUID]] = mapped_column(ForeignKey("profiles.id"))
    patron_id: Mapped[Optional[uuid.UUID]] = mapped_column(ForeignKey("patrons.id"))

    # Compare-and-swap counter
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    @declared_attr
    def owner(cls) -> Mapped[Optional["Profile"]]:
        return relationship(
            "Profile", foreign_keys=f"[{cls.__name__}.current_owner]", lazy="selectin"
        )

    @declared_attr
    def approver_profile(cls) -> Mapped[Optional["Profile"]]:
        return relationship(
            "Profile", foreign_keys=f"[{cls.__name__}.approver]", lazy="selectin"
        )

    @property
    def case_id(self) -> str:
        return getattr(self, self.kind.id_field)

    @property
    def owner_name(self) -> Optional[str]:
        return self.owner.display_name if self.owner else None

    @property
    def approver_name(self) -> Optional[str]:
        return self.approver_profile.display_name if self.approver_profile else None

    @property
    def is_psa(self) -> bool:
        return is_psa(self.recommendation)


class CTR(CaseRecord, Base):
    """Currency Transaction Report case."""

    __tablename__ = "ctrs"
    kind = CaseKind.CTR

    ctr_id: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)

    __table_args__ = (
        Index("idx_ctrs_status", "status"),
        Index("idx_ctrs_owner", "current_owner"),
        Index("idx_ctrs_approver", "approver"),
        Index("idx_ctrs_gaming_day", "gaming_day"),
    )


class Form8300(CaseRecord, Base):
    """Form 8300 case, tied to a voyage folio."""

    __tablename__ = "form_8300s"
    kind = CaseKind.FORM_8300

    form_id: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    folio_number: Mapped[Optional[str]] = mapped_column(String(50))
    voyage_total: Mapped[Optional[float]] = mapped_column(Money)

    __table_args__ = (
        Index("idx_form_8300s_status", "status"),
        Index("idx_form_8300s_owner", "current_owner"),
        Index("idx_form_8300s_approver", "approver"),
        Index("idx_form_8300s_gaming_day", "gaming_day"),
    )


CASE_MODELS: dict[CaseKind, type[CaseRecord]] = {
    CaseKind.CTR: CTR,
    CaseKind.FORM_8300: Form8300,
}


class StoredFileMixin:
    """Blob reference plus descriptive metadata."""

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, default=0)
    file_type: Mapped[str] = mapped_column(String(255), default="application/octet-stream")
    file_path: Mapped[str] = mapped_column(String(500), nullable=False)
    last_modified: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(ForeignKey("profiles.id"))
    description: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class CaseFile(StoredFileMixin, Base):
    """A file attached to exactly one CTR or Form 8300."""

    __tablename__ = "case_files"

    ctr_id: Mapped[Optional[str]] = mapped_column(
        String(50), ForeignKey("ctrs.ctr_id", ondelete="CASCADE")
    )
    form_id: Mapped[Optional[str]] = mapped_column(
        String(50), ForeignKey("form_8300s.form_id", ondelete="CASCADE")
    )

    __table_args__ = (
        CheckConstraint(
            "(ctr_id IS NULL) <> (form_id IS NULL)",
            name="ck_case_files_single_case",
        ),
        Index("idx_case_files_ctr_id", "ctr_id"),
        Index("idx_case_files_form_id", "form_id"),
    )

    @property
    def kind(self) -> CaseKind:
        return CaseKind.CTR if self.ctr_id else CaseKind.FORM_8300

    @property
    def case_id(self) -> str:
        return self.ctr_id or self.form_id


class PatronFile(StoredFileMixin, Base):
    """A file in a patron's durable record."""

    __tablename__ = "patron_files"

    patron_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("patrons.id"), nullable=False)

    __table_args__ = (
        Index("idx_patron_files_patron_id", "patron_id"),
    )
