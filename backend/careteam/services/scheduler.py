"""Appointment scheduler.

Books slots without double-booking a professional and drives the
appointment status state machine:

    pending   -> confirmed | cancelled
    confirmed -> completed | cancelled | no-show

The ±30 minute conflict check runs in the application; the partial unique
index on ``(professional_id, slot_bucket)`` catches the concurrent
check-then-insert race and is reported as the same SlotTakenError.
"""

from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass
from datetime import date, datetime, time, timezone, tzinfo
from zoneinfo import ZoneInfo

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from careteam.actors import Actor
from careteam.clock import Clock, utcnow
from careteam.constants import (
    DEFAULT_PAGE_SIZE,
    MAX_CANCELLATION_REASON_LENGTH,
    MAX_PAGE_SIZE,
    SLOT_BUCKET_SECONDS,
)
from careteam.errors import (
    InvalidScheduleError,
    InvalidTransitionError,
    NotFoundError,
    ProfileInactiveError,
    SlotTakenError,
    UnauthorizedError,
    ValidationError,
)
from careteam.models.appointment import Appointment, AppointmentStatus, CancelledBy, ConsultationType
from careteam.repositories.appointment import ACTIVE_STATUSES, AppointmentRepository
from careteam.repositories.care_record import CareRecordRepository
from careteam.services.directory import ProfessionalDirectory
from careteam.services.linker import RecordLinker
from careteam.services.notifications import NotificationDispatcher, NotificationEvent
from careteam.services.outcome import Outcome, run_best_effort

logger = logging.getLogger(__name__)

TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset({AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED}),
    AppointmentStatus.CONFIRMED: frozenset(
        {AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW}
    ),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
    AppointmentStatus.NO_SHOW: frozenset(),
}

_TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


@dataclass
class BookingRequest:
    """Everything needed to book a slot.

    ``patient_id`` is the booking user: the patient themselves or the
    guardian of ``dependent_id``.
    """

    professional_id: str
    patient_id: str
    appointment_date: date
    appointment_time: str
    consultation_type: str
    dependent_id: uuid.UUID | None = None
    care_record_id: uuid.UUID | None = None
    patient_notes: str | None = None


def parse_slot(appointment_date: date, appointment_time: str, tz: tzinfo) -> datetime:
    """Combine a date and an ``HH:MM`` string in ``tz`` into a UTC timestamp.

    Raises:
        InvalidScheduleError: If the time is not a valid 24-hour ``HH:MM``.
    """
    match = _TIME_PATTERN.match(appointment_time or "")
    if match is None:
        raise InvalidScheduleError(f"Invalid time format {appointment_time!r}. Use HH:MM")
    local = datetime.combine(
        appointment_date,
        time(int(match.group(1)), int(match.group(2))),
        tzinfo=tz,
    )
    return local.astimezone(timezone.utc)


def slot_bucket(scheduled_at: datetime) -> int:
    """30-minute bucket index of a timestamp."""
    return int(scheduled_at.timestamp()) // SLOT_BUCKET_SECONDS


class AppointmentScheduler:
    """Books, reschedules and transitions appointments."""

    def __init__(
        self,
        db: AsyncSession,
        directory: ProfessionalDirectory,
        notifier: NotificationDispatcher,
        *,
        linker: RecordLinker | None = None,
        clock: Clock = utcnow,
        tz: tzinfo | str | None = None,
    ):
        self.db = db
        self.directory = directory
        self.notifier = notifier
        self.linker = linker
        self.clock = clock
        self.tz = ZoneInfo(tz) if isinstance(tz, str) else (tz or timezone.utc)
        self.appointments = AppointmentRepository(db)
        self.records = CareRecordRepository(db)

    # ------------------------------------------------------------------ #
    # Booking
    # ------------------------------------------------------------------ #

    async def book(self, request: BookingRequest) -> Outcome[Appointment]:
        """Book a pending appointment.

        Raises:
            NotFoundError: Unknown professional, dependent or care record.
            ProfileInactiveError: The professional is not accepting bookings.
            InvalidScheduleError: Malformed time or a slot in the past.
            ValidationError: Unknown consultation type, or a dependent that
                does not belong to the booking user.
            SlotTakenError: Another booking sits within the conflict window.
        """
        professional = await self.directory.get_professional(request.professional_id)
        if professional is None:
            raise NotFoundError(f"Professional {request.professional_id} not found")
        if not professional.active:
            raise ProfileInactiveError(
                f"Professional {request.professional_id} is not accepting bookings"
            )

        consultation_type = _parse_consultation_type(request.consultation_type)
        scheduled_at = self._future_slot(request.appointment_date, request.appointment_time)

        if request.dependent_id is not None:
            dependent = await self.records.get_dependent(request.dependent_id)
            if dependent is None:
                raise NotFoundError(f"Dependent {request.dependent_id} not found")
            if dependent.guardian_id != str(request.patient_id):
                raise ValidationError("Dependent does not belong to the booking user")
        if request.care_record_id is not None:
            await self.records.get_or_raise(request.care_record_id)

        await self._ensure_slot_free(professional.id, scheduled_at)

        appointment = Appointment(
            id=uuid.uuid4(),
            professional_id=professional.id,
            patient_id=str(request.patient_id),
            dependent_id=request.dependent_id,
            care_record_id=request.care_record_id,
            appointment_date=request.appointment_date,
            appointment_time=request.appointment_time,
            scheduled_at=scheduled_at,
            slot_bucket=slot_bucket(scheduled_at),
            duration_minutes=professional.session_length_minutes,
            consultation_type=consultation_type,
            consultation_fee=professional.published_rate(consultation_type),
            patient_notes=request.patient_notes,
            status=AppointmentStatus.PENDING,
        )
        await self._write_slot(appointment, lambda: self.db.add(appointment))

        logger.info(
            "Booked appointment %s with %s at %s",
            appointment.id,
            professional.id,
            scheduled_at.isoformat(),
        )

        outcome: Outcome[Appointment] = Outcome(appointment)
        context = {"appointment_id": str(appointment.id), "professional_id": professional.id}

        await run_best_effort(
            outcome,
            "record_booking",
            lambda: self.directory.record_booking(professional.id),
            db=self.db,
            context=context,
        )
        if self.linker is not None:
            await run_best_effort(
                outcome,
                "link_care_record",
                lambda: self.linker.link(appointment, professional, outcome),
                db=self.db,
                context=context,
            )
        await run_best_effort(
            outcome,
            "notify_appointment_created",
            lambda: self.notifier.notify(
                NotificationEvent.APPOINTMENT_CREATED.value,
                professional.id,
                _payload(appointment),
            ),
            context=context,
        )

        # A rolled-back savepoint expires what it touched
        await self.db.refresh(appointment)
        return outcome

    async def check_availability(
        self,
        professional_id: str,
        appointment_date: date,
        appointment_time: str,
        exclude_id: uuid.UUID | None = None,
    ) -> bool:
        """True when no pending/confirmed booking sits within the conflict window."""
        scheduled_at = parse_slot(appointment_date, appointment_time, self.tz)
        conflict = await self.appointments.find_conflict(
            str(professional_id), scheduled_at, exclude_id=exclude_id
        )
        return conflict is None

    # ------------------------------------------------------------------ #
    # State machine
    # ------------------------------------------------------------------ #

    async def update_status(
        self,
        appointment_id: uuid.UUID,
        new_status: str | AppointmentStatus,
        actor: Actor,
        cancellation_reason: str | None = None,
    ) -> Outcome[Appointment]:
        """Move an appointment along the state machine.

        Raises:
            NotFoundError: If the appointment does not exist.
            UnauthorizedError: If the actor is not a party to it or an admin.
            InvalidTransitionError: If the transition is not allowed.
            ValidationError: Unknown status or an over-long reason.
        """
        appointment = await self.appointments.get_or_raise(appointment_id)
        try:
            new_status = AppointmentStatus(new_status)
        except ValueError:
            raise ValidationError(f"Invalid status {new_status!r}") from None

        is_professional = appointment.professional_id == actor.id
        is_patient = appointment.patient_id == actor.id
        if not (is_professional or is_patient or actor.is_admin):
            raise UnauthorizedError("Not authorized to update this appointment")

        previous = appointment.status
        if new_status not in TRANSITIONS[previous]:
            raise InvalidTransitionError(previous.value, new_status.value)

        now = self.clock()
        if new_status == AppointmentStatus.CANCELLED:
            if cancellation_reason and len(cancellation_reason) > MAX_CANCELLATION_REASON_LENGTH:
                raise ValidationError(
                    f"Cancellation reason cannot exceed {MAX_CANCELLATION_REASON_LENGTH} characters"
                )
            if actor.is_admin and not (is_professional or is_patient):
                appointment.cancelled_by = CancelledBy.SYSTEM
            elif is_professional:
                appointment.cancelled_by = CancelledBy.PROFESSIONAL
            else:
                appointment.cancelled_by = CancelledBy.PATIENT
            appointment.cancelled_at = now
            appointment.cancellation_reason = cancellation_reason
        elif new_status == AppointmentStatus.COMPLETED:
            appointment.completed_at = now

        appointment.status = new_status
        appointment.updated_at = now
        await self.db.flush()

        logger.info(
            "Appointment %s: %s -> %s",
            appointment.id,
            previous.value,
            new_status.value,
            extra={"actor_id": actor.id},
        )

        outcome: Outcome[Appointment] = Outcome(appointment)
        if previous == AppointmentStatus.PENDING and new_status == AppointmentStatus.CONFIRMED:
            await run_best_effort(
                outcome,
                "notify_appointment_confirmed",
                lambda: self.notifier.notify(
                    NotificationEvent.APPOINTMENT_CONFIRMED.value,
                    appointment.patient_id,
                    _payload(appointment),
                ),
                context={"appointment_id": str(appointment.id)},
            )
        return outcome

    async def cancel(
        self,
        appointment_id: uuid.UUID,
        actor: Actor,
        reason: str | None = None,
    ) -> Outcome[Appointment]:
        return await self.update_status(appointment_id, AppointmentStatus.CANCELLED, actor, reason)

    async def reschedule(
        self,
        appointment_id: uuid.UUID,
        appointment_date: date,
        appointment_time: str,
        actor: Actor,
    ) -> Outcome[Appointment]:
        """Move a pending or confirmed appointment to a new slot.

        Only the professional or an admin may reschedule. Status is unchanged.
        """
        appointment = await self.appointments.get_or_raise(appointment_id)
        if not (appointment.professional_id == actor.id or actor.is_admin):
            raise UnauthorizedError("Only the professional or an admin can reschedule")
        if appointment.status not in ACTIVE_STATUSES:
            raise InvalidTransitionError(appointment.status.value, "rescheduled")

        scheduled_at = self._future_slot(appointment_date, appointment_time)
        await self._ensure_slot_free(appointment.professional_id, scheduled_at, exclude_id=appointment.id)

        def _move() -> None:
            appointment.appointment_date = appointment_date
            appointment.appointment_time = appointment_time
            appointment.scheduled_at = scheduled_at
            appointment.slot_bucket = slot_bucket(scheduled_at)
            appointment.updated_at = self.clock()

        await self._write_slot(appointment, _move)

        logger.info("Rescheduled appointment %s to %s", appointment.id, scheduled_at.isoformat())

        outcome: Outcome[Appointment] = Outcome(appointment)
        await run_best_effort(
            outcome,
            "notify_appointment_rescheduled",
            lambda: self.notifier.notify(
                NotificationEvent.APPOINTMENT_RESCHEDULED.value,
                appointment.patient_id,
                _payload(appointment),
            ),
            context={"appointment_id": str(appointment.id)},
        )
        return outcome

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    async def get_appointment(self, appointment_id: uuid.UUID) -> Appointment:
        return await self.appointments.get_or_raise(appointment_id)

    async def list_appointments(
        self,
        *,
        professional_id: str | None = None,
        patient_id: str | None = None,
        include_dependents: bool = False,
        statuses: list[str] | None = None,
        consultation_type: str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        skip: int = 0,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> tuple[list[Appointment], int]:
        """Filtered, paginated appointments ordered by start time.

        With ``include_dependents`` a patient filter also matches bookings
        for the patient's dependents.
        """
        try:
            parsed_statuses = [AppointmentStatus(s) for s in statuses or []]
        except ValueError as e:
            raise ValidationError(str(e)) from None

        dependent_ids: list[uuid.UUID] = []
        if patient_id is not None and include_dependents:
            dependent_ids = await self.records.list_dependent_ids(patient_id)

        return await self.appointments.list(
            skip=max(skip, 0),
            limit=min(max(limit, 1), MAX_PAGE_SIZE),
            professional_id=professional_id,
            patient_id=patient_id,
            dependent_ids=dependent_ids,
            statuses=parsed_statuses,
            consultation_type=(
                _parse_consultation_type(consultation_type) if consultation_type else None
            ),
            start_date=start_date,
            end_date=end_date,
        )

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    def _future_slot(self, appointment_date: date, appointment_time: str) -> datetime:
        scheduled_at = parse_slot(appointment_date, appointment_time, self.tz)
        if scheduled_at <= self.clock():
            raise InvalidScheduleError("Appointment date/time must be in the future")
        return scheduled_at

    async def _ensure_slot_free(
        self,
        professional_id: str,
        scheduled_at: datetime,
        exclude_id: uuid.UUID | None = None,
    ) -> None:
        conflict = await self.appointments.find_conflict(
            professional_id, scheduled_at, exclude_id=exclude_id
        )
        if conflict is not None:
            raise SlotTakenError(
                f"Professional {professional_id} already has an appointment "
                f"at {conflict.appointment_date} {conflict.appointment_time}"
            )

    async def _write_slot(self, appointment: Appointment, apply) -> None:
        try:
            async with self.db.begin_nested():
                apply()
        except IntegrityError:
            raise SlotTakenError(
                f"Professional {appointment.professional_id} already has an appointment in this slot"
            ) from None


def _parse_consultation_type(value: str | ConsultationType) -> ConsultationType:
    try:
        return ConsultationType(value)
    except ValueError:
        raise ValidationError(
            f"Invalid consultation type {value!r}. Must be online or offline"
        ) from None


def _payload(appointment: Appointment) -> dict[str, str]:
    return {
        "appointment_id": str(appointment.id),
        "appointment_date": appointment.appointment_date.isoformat(),
        "appointment_time": appointment.appointment_time,
        "consultation_type": appointment.consultation_type.value,
    }
