"""Authenticated actor identity passed into the core services."""

import enum
from dataclasses import dataclass


class ActorRole(str, enum.Enum):
    """Roles a user account can hold."""

    PATIENT = "patient"
    GUARDIAN = "guardian"
    DOCTOR = "doctor"
    THERAPIST = "therapist"
    TEACHER = "teacher"
    ADMIN = "admin"


PROFESSIONAL_ROLES = frozenset({ActorRole.DOCTOR.value, ActorRole.THERAPIST.value})


@dataclass(frozen=True)
class Actor:
    """The user performing an operation."""

    id: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.ADMIN.value

    @property
    def is_professional(self) -> bool:
        return self.role in PROFESSIONAL_ROLES
