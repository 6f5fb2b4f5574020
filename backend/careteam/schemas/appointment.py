"""Pydantic schemas for the Appointment API."""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from careteam.models.appointment import AppointmentStatus, CancelledBy, ConsultationType
from careteam.schemas.care_record import EnrichmentFailureResponse

_TIME_FIELD = Field(description="Local clinic time, 24-hour HH:MM", examples=["10:00"])


class AppointmentCreate(BaseModel):
    """Schema for booking an appointment.

    The booking user is taken from the bearer token. Pass ``dependent_id``
    when booking for a dependent.
    """

    professional_id: str = Field(min_length=1)
    appointment_date: date
    appointment_time: str = _TIME_FIELD
    consultation_type: ConsultationType
    dependent_id: UUID | None = None
    care_record_id: UUID | None = None
    patient_notes: str | None = Field(default=None, max_length=2000)


class AppointmentStatusUpdate(BaseModel):
    """Schema for a status transition."""

    status: AppointmentStatus
    cancellation_reason: str | None = Field(default=None, max_length=500)


class AppointmentReschedule(BaseModel):
    appointment_date: date
    appointment_time: str = _TIME_FIELD


class AppointmentResponse(BaseModel):
    """Schema for an appointment in API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    professional_id: str
    patient_id: str
    dependent_id: UUID | None
    care_record_id: UUID | None
    appointment_date: date
    appointment_time: str
    scheduled_at: datetime
    duration_minutes: int
    consultation_type: ConsultationType
    consultation_fee: Decimal
    patient_notes: str | None
    status: AppointmentStatus
    cancelled_by: CancelledBy | None
    cancelled_at: datetime | None
    cancellation_reason: str | None
    completed_at: datetime | None
    created_at: datetime
    updated_at: datetime


class AppointmentOutcomeResponse(BaseModel):
    """An appointment plus any best-effort steps that failed.

    ``degraded`` is true when the booking or transition succeeded but an
    enrichment (record linking, counters, notifications) did not.
    """

    appointment: AppointmentResponse
    degraded: bool = False
    failures: list[EnrichmentFailureResponse] = []


class AppointmentListResponse(BaseModel):
    """Paginated list of appointments."""

    items: list[AppointmentResponse]
    total: int
    skip: int
    limit: int


class AvailabilityResponse(BaseModel):
    professional_id: str
    appointment_date: date
    appointment_time: str
    available: bool
