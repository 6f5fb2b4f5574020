"""Professional directory port and its SQL implementation."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Protocol

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from careteam.actors import PROFESSIONAL_ROLES
from careteam.constants import DEFAULT_SESSION_MINUTES
from careteam.models.appointment import ConsultationType
from careteam.models.professional import ProfessionalProfile


@dataclass(frozen=True)
class ProfessionalInfo:
    """What the scheduler and ledger need to know about a professional."""

    id: str
    role: str
    active: bool
    rates: dict[str, Decimal] = field(default_factory=dict)
    session_length_minutes: int = DEFAULT_SESSION_MINUTES
    specialization: str | None = None

    def published_rate(self, consultation_type: str | ConsultationType) -> Decimal:
        """Fee for a consultation type; zero when none is published."""
        return self.rates.get(ConsultationType(consultation_type).value, Decimal("0"))


class ProfessionalDirectory(Protocol):
    async def get_professional(self, professional_id: str) -> ProfessionalInfo | None: ...

    async def record_booking(self, professional_id: str) -> None: ...


class SqlProfessionalDirectory:
    """Directory backed by the ``professional_profiles`` table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_professional(self, professional_id: str) -> ProfessionalInfo | None:
        """Look up a doctor or therapist profile.

        Returns None when there is no profile or its role is not a care role.
        """
        result = await self.db.execute(
            select(ProfessionalProfile).where(ProfessionalProfile.user_id == str(professional_id))
        )
        profile = result.scalar_one_or_none()
        if profile is None or profile.role not in PROFESSIONAL_ROLES:
            return None

        return ProfessionalInfo(
            id=profile.user_id,
            role=profile.role,
            active=profile.is_active,
            rates={
                ConsultationType.ONLINE.value: profile.fee_online or Decimal("0"),
                ConsultationType.OFFLINE.value: profile.fee_offline or Decimal("0"),
            },
            session_length_minutes=profile.session_duration_minutes or DEFAULT_SESSION_MINUTES,
            specialization=profile.specialization,
        )

    async def record_booking(self, professional_id: str) -> None:
        """Increment the lifetime appointment counter atomically."""
        await self.db.execute(
            update(ProfessionalProfile)
            .where(ProfessionalProfile.user_id == str(professional_id))
            .values(total_appointments=ProfessionalProfile.total_appointments + 1)
        )
