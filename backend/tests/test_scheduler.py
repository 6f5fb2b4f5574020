"""Tests for the appointment scheduler."""

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import select

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
from careteam.models.care_record import CareRecord, Standing
from careteam.models.professional import ProfessionalProfile
from careteam.repositories.appointment import AppointmentRepository
from careteam.services.directory import SqlProfessionalDirectory
from careteam.services.scheduler import (
    TRANSITIONS,
    AppointmentScheduler,
    BookingRequest,
    parse_slot,
    slot_bucket,
)

from tests.conftest import (
    ADMIN_ID,
    DOCTOR_ID,
    GUARDIAN_ID,
    INACTIVE_THERAPIST_ID,
    OTHER_GUARDIAN_ID,
    PATIENT_ID,
    THERAPIST_ID,
    RecordingNotifier,
    actor,
    fixed_clock,
)

BOOK_DATE = date(2025, 3, 1)


def booking(**overrides) -> BookingRequest:
    fields = dict(
        professional_id=THERAPIST_ID,
        patient_id=GUARDIAN_ID,
        appointment_date=BOOK_DATE,
        appointment_time="10:00",
        consultation_type="online",
    )
    fields.update(overrides)
    return BookingRequest(**fields)


class FailingDirectory(SqlProfessionalDirectory):
    """Directory whose booking counter is down."""

    async def record_booking(self, professional_id: str) -> None:
        raise RuntimeError("counter store unavailable")


class TestParseSlot:
    """Tests for slot parsing helpers."""

    def test_converts_local_time_to_utc(self):
        from zoneinfo import ZoneInfo

        scheduled = parse_slot(date(2025, 7, 1), "10:00", ZoneInfo("America/New_York"))
        assert scheduled == datetime(2025, 7, 1, 14, 0, tzinfo=timezone.utc)

    @pytest.mark.parametrize("value", ["24:00", "9:00", "10:60", "10-00", "", "10:00:00"])
    def test_rejects_malformed_time(self, value):
        with pytest.raises(InvalidScheduleError):
            parse_slot(BOOK_DATE, value, timezone.utc)

    def test_slot_bucket_is_thirty_minutes_wide(self):
        base = parse_slot(BOOK_DATE, "10:00", timezone.utc)
        assert slot_bucket(base) == slot_bucket(parse_slot(BOOK_DATE, "10:29", timezone.utc))
        assert slot_bucket(base) + 1 == slot_bucket(parse_slot(BOOK_DATE, "10:30", timezone.utc))


class TestBook:
    """Tests for AppointmentScheduler.book."""

    @pytest.mark.asyncio
    async def test_books_for_dependent_and_links_new_record(self, scheduler, seeded, db_session, notifier):
        dependent = seeded["dependent"]

        outcome = await scheduler.book(booking(dependent_id=dependent.id))

        appointment = outcome.value
        assert not outcome.degraded
        assert appointment.status == AppointmentStatus.PENDING
        assert appointment.consultation_fee == Decimal("40.00")
        assert appointment.duration_minutes == 60
        assert appointment.care_record_id is not None

        record = await db_session.get(CareRecord, appointment.care_record_id)
        assert record.linked_dependent_id == dependent.id
        assert record.owner_id == GUARDIAN_ID
        assert record.name == "Sam Rivera"
        assert record.onboarded_by == THERAPIST_ID
        assert [(a.professional_id, a.standing, a.active) for a in record.assignments] == [
            (THERAPIST_ID, Standing.ASSIGNED, True)
        ]

        assert notifier.kinds() == ["care_team_assigned", "appointment_created"]
        assert notifier.events[1][1] == THERAPIST_ID

    @pytest.mark.asyncio
    async def test_conflict_within_thirty_minutes(self, scheduler, seeded):
        await scheduler.book(booking(dependent_id=seeded["dependent"].id))

        with pytest.raises(SlotTakenError):
            await scheduler.book(booking(dependent_id=seeded["dependent"].id, appointment_time="10:20"))

    @pytest.mark.asyncio
    async def test_conflict_window_is_inclusive(self, scheduler, seeded):
        await scheduler.book(booking())

        with pytest.raises(SlotTakenError):
            await scheduler.book(booking(appointment_time="10:30"))
        with pytest.raises(SlotTakenError):
            await scheduler.book(booking(appointment_time="09:30"))

    @pytest.mark.asyncio
    async def test_just_outside_window_books(self, scheduler, seeded):
        await scheduler.book(booking())
        outcome = await scheduler.book(booking(appointment_time="10:31"))

        assert outcome.value.status == AppointmentStatus.PENDING

    @pytest.mark.asyncio
    async def test_other_professional_not_blocked(self, scheduler, seeded):
        await scheduler.book(booking())
        outcome = await scheduler.book(booking(professional_id=DOCTOR_ID, consultation_type="offline"))

        assert outcome.value.consultation_fee == Decimal("100.00")
        assert outcome.value.duration_minutes == 30

    @pytest.mark.asyncio
    async def test_cancelled_slot_can_be_rebooked(self, scheduler, seeded):
        first = await scheduler.book(booking())
        await scheduler.cancel(first.value.id, actor(GUARDIAN_ID))

        outcome = await scheduler.book(booking())
        assert outcome.value.id != first.value.id

    @pytest.mark.asyncio
    async def test_unknown_professional(self, scheduler, seeded):
        with pytest.raises(NotFoundError):
            await scheduler.book(booking(professional_id="nobody"))

    @pytest.mark.asyncio
    async def test_non_professional_is_not_found(self, scheduler, seeded, db_session):
        db_session.add(ProfessionalProfile(user_id="teacher-1", role="teacher"))
        await db_session.flush()

        with pytest.raises(NotFoundError):
            await scheduler.book(booking(professional_id="teacher-1"))

    @pytest.mark.asyncio
    async def test_inactive_professional(self, scheduler, seeded):
        with pytest.raises(ProfileInactiveError):
            await scheduler.book(booking(professional_id=INACTIVE_THERAPIST_ID))

    @pytest.mark.asyncio
    async def test_past_slot(self, scheduler, seeded):
        with pytest.raises(InvalidScheduleError, match="future"):
            await scheduler.book(booking(appointment_date=date(2025, 1, 31)))

    @pytest.mark.asyncio
    async def test_malformed_time(self, scheduler, seeded):
        with pytest.raises(InvalidScheduleError):
            await scheduler.book(booking(appointment_time="25:00"))

    @pytest.mark.asyncio
    async def test_unknown_consultation_type(self, scheduler, seeded):
        with pytest.raises(ValidationError):
            await scheduler.book(booking(consultation_type="phone"))

    @pytest.mark.asyncio
    async def test_unknown_dependent(self, scheduler, seeded):
        with pytest.raises(NotFoundError):
            await scheduler.book(booking(dependent_id=uuid.uuid4()))

    @pytest.mark.asyncio
    async def test_dependent_of_another_guardian(self, scheduler, seeded):
        with pytest.raises(ValidationError, match="does not belong"):
            await scheduler.book(booking(dependent_id=seeded["other_dependent"].id))

    @pytest.mark.asyncio
    async def test_unknown_care_record(self, scheduler, seeded):
        with pytest.raises(NotFoundError):
            await scheduler.book(booking(care_record_id=uuid.uuid4()))

    @pytest.mark.asyncio
    async def test_increments_booking_counter(self, scheduler, seeded, db_session):
        await scheduler.book(booking())

        result = await db_session.execute(
            select(ProfessionalProfile.total_appointments).where(ProfessionalProfile.user_id == THERAPIST_ID)
        )
        assert result.scalar_one() == 1


class TestBookDegraded:
    """Enrichment failures degrade the outcome without failing the booking."""

    @pytest.mark.asyncio
    async def test_notification_failure(self, db_session, seeded):
        scheduler = AppointmentScheduler(
            db_session,
            SqlProfessionalDirectory(db_session),
            RecordingNotifier(fail=True),
            clock=fixed_clock,
        )

        outcome = await scheduler.book(booking())

        assert outcome.degraded
        assert [f.step for f in outcome.failures] == ["notify_appointment_created"]
        assert outcome.failures[0].error_type == "RuntimeError"
        assert await db_session.get(Appointment, outcome.value.id) is not None

    @pytest.mark.asyncio
    async def test_counter_failure_keeps_linking(self, db_session, seeded, notifier):
        from careteam.services.linker import RecordLinker

        scheduler = AppointmentScheduler(
            db_session,
            FailingDirectory(db_session),
            notifier,
            linker=RecordLinker(db_session, notifier, clock=fixed_clock),
            clock=fixed_clock,
        )

        outcome = await scheduler.book(booking(dependent_id=seeded["dependent"].id))

        assert [f.step for f in outcome.failures] == ["record_booking"]
        assert outcome.value.care_record_id is not None

    @pytest.mark.asyncio
    async def test_link_failure_leaves_appointment_unlinked(self, scheduler, seeded):
        outcome = await scheduler.book(booking(patient_id="ghost-user"))

        assert [f.step for f in outcome.failures] == ["link_care_record"]
        assert outcome.failures[0].error_type == "NotFoundError"
        assert outcome.value.status == AppointmentStatus.PENDING
        assert outcome.value.care_record_id is None


class TestCheckAvailability:
    """Tests for check_availability."""

    @pytest.mark.asyncio
    async def test_free_slot(self, scheduler, seeded):
        assert await scheduler.check_availability(THERAPIST_ID, BOOK_DATE, "10:00")

    @pytest.mark.asyncio
    async def test_follows_booking_lifecycle(self, scheduler, seeded):
        outcome = await scheduler.book(booking())

        assert not await scheduler.check_availability(THERAPIST_ID, BOOK_DATE, "10:15")
        await scheduler.update_status(outcome.value.id, "confirmed", actor(THERAPIST_ID))
        assert not await scheduler.check_availability(THERAPIST_ID, BOOK_DATE, "10:15")

        await scheduler.cancel(outcome.value.id, actor(THERAPIST_ID))
        assert await scheduler.check_availability(THERAPIST_ID, BOOK_DATE, "10:15")

    @pytest.mark.asyncio
    async def test_has_no_side_effects(self, scheduler, seeded, db_session, notifier):
        await scheduler.check_availability(THERAPIST_ID, BOOK_DATE, "10:00")

        result = await db_session.execute(select(Appointment))
        assert result.scalars().all() == []
        assert notifier.events == []


class TestUpdateStatus:
    """Tests for the status state machine."""

    LEGAL = {
        ("pending", "confirmed"),
        ("pending", "cancelled"),
        ("confirmed", "completed"),
        ("confirmed", "cancelled"),
        ("confirmed", "no-show"),
    }

    def test_transition_table(self):
        table = {(a.value, b.value) for a, targets in TRANSITIONS.items() for b in targets}
        assert table == self.LEGAL

    @pytest.mark.asyncio
    async def test_completing_pending_is_invalid(self, scheduler, seeded):
        outcome = await scheduler.book(booking())

        with pytest.raises(InvalidTransitionError) as exc_info:
            await scheduler.update_status(outcome.value.id, "completed", actor(THERAPIST_ID))

        assert exc_info.value.from_status == "pending"
        assert exc_info.value.to_status == "completed"
        assert "pending to completed" in exc_info.value.message

    @pytest.mark.asyncio
    @pytest.mark.parametrize("start", [s.value for s in AppointmentStatus])
    @pytest.mark.parametrize("target", [s.value for s in AppointmentStatus])
    async def test_every_pair(self, scheduler, seeded, db_session, start, target):
        appointment = await _insert_appointment(db_session, AppointmentStatus(start))

        if (start, target) in self.LEGAL:
            outcome = await scheduler.update_status(appointment.id, target, actor(THERAPIST_ID))
            assert outcome.value.status == AppointmentStatus(target)
        else:
            with pytest.raises(InvalidTransitionError):
                await scheduler.update_status(appointment.id, target, actor(THERAPIST_ID))

    @pytest.mark.asyncio
    async def test_confirm_notifies_booking_user(self, scheduler, seeded, notifier):
        outcome = await scheduler.book(booking())
        notifier.events.clear()

        await scheduler.update_status(outcome.value.id, "confirmed", actor(THERAPIST_ID))

        assert notifier.kinds() == ["appointment_confirmed"]
        assert notifier.events[0][1] == GUARDIAN_ID

    @pytest.mark.asyncio
    async def test_complete_stamps_time(self, scheduler, seeded):
        outcome = await scheduler.book(booking())
        await scheduler.update_status(outcome.value.id, "confirmed", actor(THERAPIST_ID))

        result = await scheduler.update_status(outcome.value.id, "completed", actor(THERAPIST_ID))

        assert result.value.completed_at == fixed_clock()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "user_id, expected",
        [
            (THERAPIST_ID, CancelledBy.PROFESSIONAL),
            (GUARDIAN_ID, CancelledBy.PATIENT),
            (ADMIN_ID, CancelledBy.SYSTEM),
        ],
    )
    async def test_cancel_records_who(self, scheduler, seeded, user_id, expected):
        outcome = await scheduler.book(booking())

        result = await scheduler.cancel(outcome.value.id, actor(user_id), "Feeling better")

        appointment = result.value
        assert appointment.status == AppointmentStatus.CANCELLED
        assert appointment.cancelled_by == expected
        assert appointment.cancelled_at == fixed_clock()
        assert appointment.cancellation_reason == "Feeling better"

    @pytest.mark.asyncio
    async def test_cancel_reason_limit(self, scheduler, seeded):
        outcome = await scheduler.book(booking())

        with pytest.raises(ValidationError):
            await scheduler.cancel(outcome.value.id, actor(GUARDIAN_ID), "x" * 501)

    @pytest.mark.asyncio
    async def test_outsider_is_unauthorized(self, scheduler, seeded):
        outcome = await scheduler.book(booking())

        with pytest.raises(UnauthorizedError):
            await scheduler.update_status(outcome.value.id, "confirmed", actor(DOCTOR_ID))

    @pytest.mark.asyncio
    async def test_unknown_appointment(self, scheduler, seeded):
        with pytest.raises(NotFoundError):
            await scheduler.update_status(uuid.uuid4(), "confirmed", actor(ADMIN_ID))

    @pytest.mark.asyncio
    async def test_unknown_status(self, scheduler, seeded):
        outcome = await scheduler.book(booking())

        with pytest.raises(ValidationError):
            await scheduler.update_status(outcome.value.id, "archived", actor(THERAPIST_ID))


class TestReschedule:
    """Tests for AppointmentScheduler.reschedule."""

    @pytest.mark.asyncio
    async def test_moves_slot_and_notifies(self, scheduler, seeded, notifier):
        outcome = await scheduler.book(booking())
        notifier.events.clear()

        result = await scheduler.reschedule(outcome.value.id, BOOK_DATE, "14:00", actor(THERAPIST_ID))

        assert result.value.appointment_time == "14:00"
        assert result.value.status == AppointmentStatus.PENDING
        assert notifier.kinds() == ["appointment_rescheduled"]
        assert await scheduler.check_availability(THERAPIST_ID, BOOK_DATE, "10:00")
        assert not await scheduler.check_availability(THERAPIST_ID, BOOK_DATE, "14:00")

    @pytest.mark.asyncio
    async def test_small_shift_ignores_own_slot(self, scheduler, seeded):
        outcome = await scheduler.book(booking())

        result = await scheduler.reschedule(outcome.value.id, BOOK_DATE, "10:15", actor(ADMIN_ID))

        assert result.value.appointment_time == "10:15"

    @pytest.mark.asyncio
    async def test_conflict_with_other_booking(self, scheduler, seeded):
        await scheduler.book(booking(appointment_time="14:00"))
        outcome = await scheduler.book(booking())

        with pytest.raises(SlotTakenError):
            await scheduler.reschedule(outcome.value.id, BOOK_DATE, "14:10", actor(THERAPIST_ID))

    @pytest.mark.asyncio
    async def test_patient_cannot_reschedule(self, scheduler, seeded):
        outcome = await scheduler.book(booking())

        with pytest.raises(UnauthorizedError):
            await scheduler.reschedule(outcome.value.id, BOOK_DATE, "14:00", actor(GUARDIAN_ID))

    @pytest.mark.asyncio
    async def test_terminal_appointment(self, scheduler, seeded):
        outcome = await scheduler.book(booking())
        await scheduler.cancel(outcome.value.id, actor(GUARDIAN_ID))

        with pytest.raises(InvalidTransitionError):
            await scheduler.reschedule(outcome.value.id, BOOK_DATE, "14:00", actor(THERAPIST_ID))

    @pytest.mark.asyncio
    async def test_past_target(self, scheduler, seeded):
        outcome = await scheduler.book(booking())

        with pytest.raises(InvalidScheduleError):
            await scheduler.reschedule(outcome.value.id, date(2025, 1, 1), "14:00", actor(THERAPIST_ID))


class TestListAppointments:
    """Tests for list_appointments."""

    @pytest.mark.asyncio
    async def test_guardian_sees_dependent_bookings(self, scheduler, seeded, db_session):
        await scheduler.book(booking(dependent_id=seeded["dependent"].id))
        # Booked by someone else on the dependent's behalf
        db_session.add(
            Appointment(
                professional_id=DOCTOR_ID,
                patient_id=OTHER_GUARDIAN_ID,
                dependent_id=seeded["dependent"].id,
                appointment_date=BOOK_DATE,
                appointment_time="11:00",
                scheduled_at=parse_slot(BOOK_DATE, "11:00", timezone.utc),
                slot_bucket=slot_bucket(parse_slot(BOOK_DATE, "11:00", timezone.utc)),
                consultation_type=ConsultationType.ONLINE,
            )
        )
        await scheduler.book(booking(patient_id=PATIENT_ID, professional_id=DOCTOR_ID, appointment_time="15:00"))
        await db_session.flush()

        own, own_total = await scheduler.list_appointments(patient_id=GUARDIAN_ID)
        everything, total = await scheduler.list_appointments(patient_id=GUARDIAN_ID, include_dependents=True)

        assert own_total == 1
        assert total == 2
        assert [a.appointment_time for a in everything] == ["10:00", "11:00"]

    @pytest.mark.asyncio
    async def test_filters_and_pagination(self, scheduler, seeded):
        for time in ("09:00", "10:00", "11:00"):
            await scheduler.book(booking(appointment_time=time))
        first = await scheduler.book(booking(professional_id=DOCTOR_ID, appointment_time="09:00"))
        await scheduler.cancel(first.value.id, actor(GUARDIAN_ID))

        page, total = await scheduler.list_appointments(professional_id=THERAPIST_ID, skip=1, limit=1)
        assert total == 3
        assert [a.appointment_time for a in page] == ["10:00"]

        cancelled, _ = await scheduler.list_appointments(statuses=["cancelled"])
        assert [a.professional_id for a in cancelled] == [DOCTOR_ID]

        none_after, _ = await scheduler.list_appointments(start_date=date(2025, 3, 2))
        assert none_after == []

    @pytest.mark.asyncio
    async def test_rejects_unknown_status_filter(self, scheduler, seeded):
        with pytest.raises(ValidationError):
            await scheduler.list_appointments(statuses=["archived"])


async def _insert_appointment(db_session, status: AppointmentStatus) -> Appointment:
    scheduled_at = parse_slot(BOOK_DATE, "10:00", timezone.utc)
    appointment = Appointment(
        professional_id=THERAPIST_ID,
        patient_id=GUARDIAN_ID,
        appointment_date=BOOK_DATE,
        appointment_time="10:00",
        scheduled_at=scheduled_at,
        slot_bucket=slot_bucket(scheduled_at),
        consultation_type=ConsultationType.ONLINE,
        status=status,
    )
    db_session.add(appointment)
    await db_session.flush()
    return appointment


class TestSlotIndex:
    """The active-slot index rejects bookings the conflict query missed."""

    @pytest.fixture
    def blind_conflict_check(self, monkeypatch):
        async def no_conflict(self, *args, **kwargs):
            return None

        monkeypatch.setattr(AppointmentRepository, "find_conflict", no_conflict)

    @pytest.mark.asyncio
    async def test_booking_in_same_bucket_is_slot_taken(self, scheduler, seeded, db_session, blind_conflict_check):
        await scheduler.book(booking(appointment_time="10:00"))

        with pytest.raises(SlotTakenError):
            await scheduler.book(booking(patient_id=PATIENT_ID, appointment_time="10:20"))

        # The session is still usable after the rejected insert
        outcome = await scheduler.book(booking(patient_id=PATIENT_ID, appointment_time="11:00"))
        assert outcome.value.status == AppointmentStatus.PENDING

        result = await db_session.execute(select(Appointment.appointment_time).order_by(Appointment.scheduled_at))
        assert result.scalars().all() == ["10:00", "11:00"]

    @pytest.mark.asyncio
    async def test_reschedule_into_taken_bucket_is_slot_taken(
        self, scheduler, seeded, db_session, blind_conflict_check
    ):
        await scheduler.book(booking(appointment_time="10:00"))
        moved = (await scheduler.book(booking(patient_id=PATIENT_ID, appointment_time="11:00"))).value

        with pytest.raises(SlotTakenError):
            await scheduler.reschedule(moved.id, BOOK_DATE, "10:15", actor(THERAPIST_ID))

        await db_session.refresh(moved)
        assert moved.appointment_time == "11:00"

    @pytest.mark.asyncio
    async def test_cancelled_booking_frees_bucket(self, scheduler, seeded, blind_conflict_check):
        first = (await scheduler.book(booking(appointment_time="10:00"))).value
        await scheduler.cancel(first.id, actor(GUARDIAN_ID))

        outcome = await scheduler.book(booking(patient_id=PATIENT_ID, appointment_time="10:20"))

        assert outcome.value.status == AppointmentStatus.PENDING
