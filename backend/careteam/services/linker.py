"""Record linker: resolve or provision the care record behind a booking.

Runs after the appointment row is written. The scheduler wraps ``link`` in
a best-effort step, so any error raised here degrades the booking outcome
instead of failing it.
"""

from __future__ import annotations

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from careteam.clock import Clock, utcnow
from careteam.errors import NotFoundError
from careteam.models.appointment import Appointment
from careteam.models.auth import AuthUser
from careteam.models.care_record import CareRecord, Gender, RecordType, Standing
from careteam.repositories.care_record import CareRecordRepository
from careteam.services.access import can_access
from careteam.services.directory import ProfessionalInfo
from careteam.services.ledger import add_assignment
from careteam.services.notifications import NotificationDispatcher, NotificationEvent
from careteam.services.outcome import Outcome, run_best_effort

logger = logging.getLogger(__name__)


class RecordLinker:
    """Links bookings to care records and grants the booked professional access."""

    def __init__(
        self,
        db: AsyncSession,
        notifier: NotificationDispatcher,
        *,
        clock: Clock = utcnow,
    ):
        self.db = db
        self.notifier = notifier
        self.clock = clock
        self.records = CareRecordRepository(db)

    async def link(
        self,
        appointment: Appointment,
        professional: ProfessionalInfo,
        outcome: Outcome | None = None,
    ) -> CareRecord:
        """Attach ``appointment`` to a care record, creating one if needed.

        The booked professional ends up with at least an ``assigned`` ledger
        entry unless they could already access the record.
        """
        record, created = await self._resolve_record(appointment, professional)

        granted = False
        if created or not can_access(record, professional.id, professional.role):
            add_assignment(
                record,
                professional.id,
                professional.role,
                Standing.ASSIGNED,
                specialization=professional.specialization,
                granted_by=appointment.patient_id,
                now=self.clock(),
            )
            granted = True

        await self.records.save(record)

        appointment.care_record_id = record.id
        await self.db.flush()

        logger.info(
            "Linked appointment %s to care record %s",
            appointment.id,
            record.id,
            extra={"created": created, "granted": granted},
        )

        if granted:
            payload = {
                "care_record_id": str(record.id),
                "record_name": record.name,
                "appointment_id": str(appointment.id),
            }
            await run_best_effort(
                outcome if outcome is not None else Outcome(record),
                "notify_care_team_assigned",
                lambda: self.notifier.notify(
                    NotificationEvent.CARE_TEAM_ASSIGNED.value, professional.id, payload
                ),
                context={"care_record_id": str(record.id)},
            )
        return record

    async def _resolve_record(
        self,
        appointment: Appointment,
        professional: ProfessionalInfo,
    ) -> tuple[CareRecord, bool]:
        if appointment.care_record_id is not None:
            return await self.records.get_or_raise(appointment.care_record_id), False

        if appointment.dependent_id is not None:
            record = await self.records.find_by_dependent(appointment.dependent_id)
            if record is not None:
                return record, False
            dependent = await self.records.get_dependent(appointment.dependent_id)
            if dependent is None:
                raise NotFoundError(f"Dependent {appointment.dependent_id} not found")
            record = CareRecord(
                id=uuid.uuid4(),
                record_type=RecordType.DEPENDENT,
                name=dependent.name,
                date_of_birth=dependent.date_of_birth,
                gender=dependent.gender,
                owner_id=dependent.guardian_id,
                linked_dependent_id=dependent.id,
                assignments=[],
                share_grants=[],
            )
        else:
            record = await self.records.find_regular_for_user(appointment.patient_id)
            if record is not None:
                return record, False
            result = await self.db.execute(select(AuthUser).where(AuthUser.id == appointment.patient_id))
            user = result.scalar_one_or_none()
            if user is None:
                raise NotFoundError(f"User {appointment.patient_id} not found")
            record = CareRecord(
                id=uuid.uuid4(),
                record_type=RecordType.REGULAR,
                name=user.name,
                email=user.email,
                date_of_birth=user.dateOfBirth,
                gender=_parse_gender(user.gender),
                owner_id=user.id,
                assignments=[],
                share_grants=[],
            )

        record.onboarded_by = professional.id
        record.onboarded_by_role = professional.role
        record.active = True
        self.db.add(record)
        return record, True


def _parse_gender(value: str | None) -> Gender | None:
    try:
        return Gender(value) if value else None
    except ValueError:
        return None
