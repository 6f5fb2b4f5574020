"""Domain error taxonomy.

Every error carries a stable ``code`` and the HTTP status the API layer
maps it to, so callers never need to match on message text.
"""

from fastapi import status


class CareTeamError(Exception):
    """Base class for errors raised by the care-team core."""

    code = "care_team_error"
    http_status = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(CareTeamError):
    """Record, professional, dependent or appointment is absent."""

    code = "not_found"
    http_status = status.HTTP_404_NOT_FOUND


class AccessDeniedError(CareTeamError):
    """The access resolver denied the actor."""

    code = "access_denied"
    http_status = status.HTTP_403_FORBIDDEN


class UnauthorizedError(CareTeamError):
    """The actor lacks standing to perform a mutation."""

    code = "unauthorized"
    http_status = status.HTTP_403_FORBIDDEN


class InvalidScheduleError(CareTeamError):
    """Past date or malformed time."""

    code = "invalid_schedule"
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY


class SlotTakenError(CareTeamError):
    """The professional already has a booking inside the conflict window."""

    code = "slot_taken"
    http_status = status.HTTP_409_CONFLICT


class InvalidTransitionError(CareTeamError):
    """Appointment status change not allowed by the state machine."""

    code = "invalid_transition"
    http_status = status.HTTP_409_CONFLICT

    def __init__(self, from_status: str, to_status: str):
        super().__init__(f"Cannot change status from {from_status} to {to_status}")
        self.from_status = from_status
        self.to_status = to_status


class ValidationError(CareTeamError):
    """Malformed role, standing, specialization or a violated ledger invariant."""

    code = "validation_error"
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY


class ProfileInactiveError(CareTeamError):
    """The professional's profile is not accepting bookings."""

    code = "profile_inactive"
    http_status = status.HTTP_409_CONFLICT


class RecordInactiveError(CareTeamError):
    """The care record is archived and can only be viewed."""

    code = "record_inactive"
    http_status = status.HTTP_409_CONFLICT


class ConcurrentModificationError(CareTeamError):
    """Another writer changed the record between read and write."""

    code = "concurrent_modification"
    http_status = status.HTTP_409_CONFLICT
