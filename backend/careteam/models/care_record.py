"""Care record model with its embedded assignment ledger and share grants.

A care record is a patient or dependent profile shared between a guardian
and care professionals. The assignment ledger (``CareAssignment`` rows) is the
single source of truth for professional relationships; the ``legacy_*``
columns only exist until the one-shot migration has run.
"""

from __future__ import annotations

import enum
import uuid
from datetime import date, datetime
from typing import Any

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from careteam.clock import utcnow
from careteam.database import Base
from careteam.models.types import JSONType, enum_type


class RecordType(str, enum.Enum):
    """How the record came to exist."""

    DEPENDENT = "dependent"
    REGULAR = "regular"


class Gender(str, enum.Enum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"
    PREFER_NOT_TO_SAY = "prefer-not-to-say"


class CareRole(str, enum.Enum):
    """Professional roles that can hold an assignment."""

    DOCTOR = "doctor"
    THERAPIST = "therapist"


class Standing(str, enum.Enum):
    """Provenance and priority of an assignment."""

    ONBOARDING = "onboarding"
    PRIMARY = "primary"
    ASSIGNED = "assigned"


class RemovalReason(str, enum.Enum):
    REMOVED = "removed"
    INACTIVE = "inactive"
    OTHER = "other"


class CareRecord(Base):
    """Patient or dependent profile.

    Every ledger mutation touches ``updated_at``, which bumps ``version``;
    a writer holding a stale copy fails with StaleDataError on flush.
    """

    __tablename__ = "care_records"

    # === Identity ===
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    record_type: Mapped[RecordType] = mapped_column(
        enum_type(RecordType, "record_type"),
        nullable=False,
        default=RecordType.REGULAR,
    )

    # === Demographics ===
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    date_of_birth: Mapped[date | None] = mapped_column(Date, nullable=True)
    gender: Mapped[Gender | None] = mapped_column(enum_type(Gender, "gender"), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(30), nullable=True)
    guardian_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    guardian_relation: Mapped[str | None] = mapped_column(String(30), nullable=True)
    guardian_phone: Mapped[str | None] = mapped_column(String(30), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # === Ownership ===
    owner_id: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        index=True,
        comment="Patient user, or the guardian of the linked dependent",
    )
    linked_dependent_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("dependents.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    onboarded_by: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    onboarded_by_role: Mapped[str | None] = mapped_column(String(20), nullable=True)

    # === Status ===
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    archived_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    archived_by: Mapped[str | None] = mapped_column(Text, nullable=True)

    # === Legacy (pre-ledger) fields, read only by the access fallback ===
    legacy_primary_doctor_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    legacy_primary_therapist_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    legacy_assignees: Mapped[list[dict[str, Any]] | None] = mapped_column(
        JSONType,
        nullable=True,
        comment="[{professional_id, role, active}] from the pre-ledger schema",
    )

    # === Timing ===
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    # === Relationships ===
    assignments: Mapped[list[CareAssignment]] = relationship(
        back_populates="record",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="CareAssignment.assigned_at",
    )
    share_grants: Mapped[list[ShareGrant]] = relationship(
        back_populates="record",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("idx_care_record_owner_active", "owner_id", "active"),
        Index("idx_care_record_type_active", "record_type", "active"),
    )

    def __repr__(self) -> str:
        return f"<CareRecord(id={self.id}, type={self.record_type}, name={self.name!r})>"


class CareAssignment(Base):
    """One (professional, role) entry in a record's assignment ledger."""

    __tablename__ = "care_assignments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    record_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("care_records.id", ondelete="CASCADE"),
        nullable=False,
    )
    professional_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    role: Mapped[CareRole] = mapped_column(enum_type(CareRole, "care_role"), nullable=False)
    standing: Mapped[Standing] = mapped_column(
        enum_type(Standing, "assignment_standing"),
        nullable=False,
        default=Standing.ASSIGNED,
    )
    specialization: Mapped[str | None] = mapped_column(String(100), nullable=True)

    assigned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    assigned_by: Mapped[str | None] = mapped_column(Text, nullable=True)

    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    removed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    removed_by: Mapped[str | None] = mapped_column(Text, nullable=True)
    removal_reason: Mapped[RemovalReason | None] = mapped_column(
        enum_type(RemovalReason, "removal_reason"),
        nullable=True,
    )

    record: Mapped[CareRecord] = relationship(back_populates="assignments")

    __table_args__ = (
        UniqueConstraint("record_id", "professional_id", "role", name="uq_assignment_professional_role"),
        Index(
            "uq_assignment_active_primary",
            "record_id",
            "role",
            unique=True,
            postgresql_where=text("active AND standing = 'primary'"),
            sqlite_where=text("active AND standing = 'primary'"),
        ),
        Index("idx_assignment_professional_active", "professional_id", "role", "active"),
    )

    def __repr__(self) -> str:
        return (
            f"<CareAssignment(record_id={self.record_id}, professional_id={self.professional_id}, "
            f"role={self.role}, standing={self.standing}, active={self.active})>"
        )


class ShareGrant(Base):
    """Explicit read access to a record for a user outside the care team."""

    __tablename__ = "care_record_shares"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    record_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("care_records.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    granted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    granted_by: Mapped[str | None] = mapped_column(Text, nullable=True)

    record: Mapped[CareRecord] = relationship(back_populates="share_grants")

    __table_args__ = (UniqueConstraint("record_id", "user_id", name="uq_share_record_user"),)
