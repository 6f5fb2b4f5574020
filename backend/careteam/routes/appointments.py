"""Appointment API routes.

Booking, availability, status transitions and rescheduling. Booking and
transitions return the appointment together with any best-effort steps
that failed, so a client can tell a degraded success from an error.
"""

import uuid
from datetime import date

from fastapi import APIRouter, Depends, Query, status

from careteam.actors import Actor
from careteam.auth import get_current_actor
from careteam.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from careteam.dependencies import get_scheduler
from careteam.errors import UnauthorizedError
from careteam.models.appointment import AppointmentStatus, ConsultationType
from careteam.schemas.appointment import (
    AppointmentCreate,
    AppointmentListResponse,
    AppointmentOutcomeResponse,
    AppointmentReschedule,
    AppointmentResponse,
    AppointmentStatusUpdate,
    AvailabilityResponse,
)
from careteam.schemas.care_record import EnrichmentFailureResponse
from careteam.services.scheduler import AppointmentScheduler, BookingRequest

router = APIRouter(prefix="/appointments", tags=["appointments"])


def _outcome_response(outcome) -> AppointmentOutcomeResponse:
    return AppointmentOutcomeResponse(
        appointment=AppointmentResponse.model_validate(outcome.value),
        degraded=outcome.degraded,
        failures=[EnrichmentFailureResponse.model_validate(f) for f in outcome.failures],
    )


@router.get("", response_model=AppointmentListResponse)
async def list_appointments(
    actor: Actor = Depends(get_current_actor),
    scheduler: AppointmentScheduler = Depends(get_scheduler),
    skip: int = Query(0, ge=0),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    status_filter: list[AppointmentStatus] | None = Query(None, alias="status"),
    consultation_type: ConsultationType | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
) -> AppointmentListResponse:
    """List the actor's appointments.

    Professionals see bookings made with them; admins see everything;
    anyone else sees what they booked, including bookings for their
    dependents.
    """
    filters: dict = {}
    if actor.is_professional:
        filters["professional_id"] = actor.id
    elif not actor.is_admin:
        filters["patient_id"] = actor.id
        filters["include_dependents"] = True

    items, total = await scheduler.list_appointments(
        statuses=[s.value for s in status_filter or []],
        consultation_type=consultation_type.value if consultation_type else None,
        start_date=start_date,
        end_date=end_date,
        skip=skip,
        limit=limit,
        **filters,
    )
    return AppointmentListResponse(
        items=[AppointmentResponse.model_validate(a) for a in items],
        total=total,
        skip=skip,
        limit=limit,
    )


@router.get("/availability", response_model=AvailabilityResponse)
async def check_availability(
    professional_id: str,
    appointment_date: date,
    appointment_time: str,
    _actor: Actor = Depends(get_current_actor),
    scheduler: AppointmentScheduler = Depends(get_scheduler),
) -> AvailabilityResponse:
    available = await scheduler.check_availability(professional_id, appointment_date, appointment_time)
    return AvailabilityResponse(
        professional_id=professional_id,
        appointment_date=appointment_date,
        appointment_time=appointment_time,
        available=available,
    )


@router.post("", response_model=AppointmentOutcomeResponse, status_code=status.HTTP_201_CREATED)
async def book_appointment(
    booking: AppointmentCreate,
    actor: Actor = Depends(get_current_actor),
    scheduler: AppointmentScheduler = Depends(get_scheduler),
) -> AppointmentOutcomeResponse:
    """Book a pending appointment for the actor or one of their dependents."""
    outcome = await scheduler.book(
        BookingRequest(
            professional_id=booking.professional_id,
            patient_id=actor.id,
            appointment_date=booking.appointment_date,
            appointment_time=booking.appointment_time,
            consultation_type=booking.consultation_type.value,
            dependent_id=booking.dependent_id,
            care_record_id=booking.care_record_id,
            patient_notes=booking.patient_notes,
        )
    )
    return _outcome_response(outcome)


@router.get("/{appointment_id}", response_model=AppointmentResponse)
async def get_appointment(
    appointment_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    scheduler: AppointmentScheduler = Depends(get_scheduler),
) -> AppointmentResponse:
    appointment = await scheduler.get_appointment(appointment_id)
    if not (actor.is_admin or actor.id in (appointment.professional_id, appointment.patient_id)):
        raise UnauthorizedError("Not authorized to view this appointment")
    return AppointmentResponse.model_validate(appointment)


@router.patch("/{appointment_id}/status", response_model=AppointmentOutcomeResponse)
async def update_appointment_status(
    appointment_id: uuid.UUID,
    status_data: AppointmentStatusUpdate,
    actor: Actor = Depends(get_current_actor),
    scheduler: AppointmentScheduler = Depends(get_scheduler),
) -> AppointmentOutcomeResponse:
    outcome = await scheduler.update_status(
        appointment_id,
        status_data.status,
        actor,
        status_data.cancellation_reason,
    )
    return _outcome_response(outcome)


@router.patch("/{appointment_id}/schedule", response_model=AppointmentOutcomeResponse)
async def reschedule_appointment(
    appointment_id: uuid.UUID,
    schedule_data: AppointmentReschedule,
    actor: Actor = Depends(get_current_actor),
    scheduler: AppointmentScheduler = Depends(get_scheduler),
) -> AppointmentOutcomeResponse:
    outcome = await scheduler.reschedule(
        appointment_id,
        schedule_data.appointment_date,
        schedule_data.appointment_time,
        actor,
    )
    return _outcome_response(outcome)
