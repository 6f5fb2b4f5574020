"""Dependent model: a child or other person a guardian books care for."""

import uuid
from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from careteam.clock import utcnow
from careteam.database import Base
from careteam.models.types import enum_type
from careteam.models.care_record import Gender


class Dependent(Base):
    """A person without their own account, managed by a guardian."""

    __tablename__ = "dependents"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    guardian_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    date_of_birth: Mapped[date] = mapped_column(Date, nullable=False)
    gender: Mapped[Gender] = mapped_column(enum_type(Gender, "gender"), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (Index("idx_dependent_guardian_active", "guardian_id", "active"),)

    def __repr__(self) -> str:
        return f"<Dependent(id={self.id}, guardian_id={self.guardian_id})>"
