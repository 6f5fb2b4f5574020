"""Professional profile backing the professional directory."""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from careteam.clock import utcnow
from careteam.constants import DEFAULT_SESSION_MINUTES
from careteam.database import Base


class ProfessionalProfile(Base):
    """Bookable profile of a doctor or therapist.

    One row per professional user; carries published rates, session length
    and the lifetime appointment counter.
    """

    __tablename__ = "professional_profiles"

    user_id: Mapped[str] = mapped_column(Text, primary_key=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    specialization: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # === Rates ===
    fee_online: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    fee_offline: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    session_duration_minutes: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
        default=DEFAULT_SESSION_MINUTES,
    )

    # === Stats ===
    total_appointments: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
    )

    def __repr__(self) -> str:
        return f"<ProfessionalProfile(user_id={self.user_id}, role={self.role}, active={self.is_active})>"
