"""Pydantic schemas."""

from careteam.schemas.appointment import (
    AppointmentCreate,
    AppointmentListResponse,
    AppointmentOutcomeResponse,
    AppointmentReschedule,
    AppointmentResponse,
    AppointmentStatusUpdate,
    AvailabilityResponse,
)
from careteam.schemas.care_record import (
    AssignmentCreate,
    AssignmentOutcomeResponse,
    AssignmentResponse,
    CareRecordCreate,
    CareRecordListResponse,
    CareRecordResponse,
    CareRecordUpdate,
    EnrichmentFailureResponse,
    PrimaryUpdate,
    ShareCreate,
    ShareResponse,
)

__all__ = [
    "AppointmentCreate",
    "AppointmentListResponse",
    "AppointmentOutcomeResponse",
    "AppointmentReschedule",
    "AppointmentResponse",
    "AppointmentStatusUpdate",
    "AssignmentCreate",
    "AssignmentOutcomeResponse",
    "AssignmentResponse",
    "AvailabilityResponse",
    "CareRecordCreate",
    "CareRecordListResponse",
    "CareRecordResponse",
    "CareRecordUpdate",
    "EnrichmentFailureResponse",
    "PrimaryUpdate",
    "ShareCreate",
    "ShareResponse",
]
