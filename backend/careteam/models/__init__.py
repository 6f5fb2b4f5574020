"""SQLAlchemy models."""

from careteam.models.appointment import Appointment, AppointmentStatus, CancelledBy, ConsultationType
from careteam.models.auth import AuthSession, AuthUser
from careteam.models.care_record import (
    CareAssignment,
    CareRecord,
    CareRole,
    Gender,
    RecordType,
    RemovalReason,
    ShareGrant,
    Standing,
)
from careteam.models.dependent import Dependent
from careteam.models.professional import ProfessionalProfile

__all__ = [
    "Appointment",
    "AppointmentStatus",
    "AuthSession",
    "AuthUser",
    "CancelledBy",
    "CareAssignment",
    "CareRecord",
    "CareRole",
    "ConsultationType",
    "Dependent",
    "Gender",
    "ProfessionalProfile",
    "RecordType",
    "RemovalReason",
    "ShareGrant",
    "Standing",
]
