"""Appointment model and its status state machine values."""

import enum
import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from careteam.clock import utcnow
from careteam.constants import DEFAULT_SESSION_MINUTES
from careteam.database import Base
from careteam.models.types import enum_type


class AppointmentStatus(str, enum.Enum):
    """Appointment lifecycle states."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no-show"


class ConsultationType(str, enum.Enum):
    ONLINE = "online"
    OFFLINE = "offline"


class CancelledBy(str, enum.Enum):
    PROFESSIONAL = "professional"
    PATIENT = "patient"
    SYSTEM = "system"


class Appointment(Base):
    """A booked slot with a professional.

    ``slot_bucket`` is the 30-minute bucket of ``scheduled_at``; together with
    the partial unique index it stops two concurrent bookings of the same
    bucket from both committing.
    """

    __tablename__ = "appointments"

    # === Identity ===
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # === References ===
    professional_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    patient_id: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        index=True,
        comment="User who booked: the patient or the dependent's guardian",
    )
    dependent_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("dependents.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    care_record_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("care_records.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # === Schedule ===
    appointment_date: Mapped[date] = mapped_column(Date, nullable=False)
    appointment_time: Mapped[str] = mapped_column(String(5), nullable=False, comment="HH:MM")
    scheduled_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    slot_bucket: Mapped[int] = mapped_column(BigInteger, nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=DEFAULT_SESSION_MINUTES)

    # === Details ===
    consultation_type: Mapped[ConsultationType] = mapped_column(
        enum_type(ConsultationType, "consultation_type"),
        nullable=False,
    )
    consultation_fee: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    patient_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # === Status ===
    status: Mapped[AppointmentStatus] = mapped_column(
        enum_type(AppointmentStatus, "appointment_status"),
        nullable=False,
        default=AppointmentStatus.PENDING,
        index=True,
    )
    cancelled_by: Mapped[CancelledBy | None] = mapped_column(
        enum_type(CancelledBy, "cancelled_by"),
        nullable=True,
    )
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # === Timing ===
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
    )

    __table_args__ = (
        Index("idx_appointment_professional_scheduled", "professional_id", "scheduled_at"),
        Index("idx_appointment_patient_scheduled", "patient_id", "scheduled_at"),
        Index("idx_appointment_status_scheduled", "status", "scheduled_at"),
        Index(
            "uq_appointment_active_slot",
            "professional_id",
            "slot_bucket",
            unique=True,
            postgresql_where=text("status IN ('pending', 'confirmed')"),
            sqlite_where=text("status IN ('pending', 'confirmed')"),
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<Appointment(id={self.id}, professional_id={self.professional_id}, "
            f"scheduled_at={self.scheduled_at}, status={self.status})>"
        )
