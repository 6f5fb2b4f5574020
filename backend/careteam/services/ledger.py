"""Assignment ledger operations.

Pure functions over a loaded ``CareRecord``: they mutate ``record.assignments``
in memory and never touch the session. Persisting is the repository's job,
which also runs ``check_primary_invariant`` before every flush.

Standing priority decides upgrades of an already-active entry:
onboarding (3) > primary (2) > assigned (1).
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy.orm.attributes import flag_modified

from careteam.clock import utcnow
from careteam.constants import MAX_SPECIALIZATION_LENGTH
from careteam.errors import ValidationError
from careteam.models.care_record import CareAssignment, CareRecord, CareRole, RemovalReason, Standing

STANDING_PRIORITY = {
    Standing.ONBOARDING: 3,
    Standing.PRIMARY: 2,
    Standing.ASSIGNED: 1,
}


def validate_role(role: str | CareRole) -> CareRole:
    """Coerce a role string, raising ValidationError if it is not doctor/therapist."""
    try:
        return CareRole(role)
    except ValueError:
        raise ValidationError(f"Invalid role {role!r}. Must be doctor or therapist") from None


def validate_standing(standing: str | Standing) -> Standing:
    try:
        return Standing(standing)
    except ValueError:
        raise ValidationError(
            f"Invalid standing {standing!r}. Must be onboarding, primary or assigned"
        ) from None


def validate_specialization(specialization: str | None) -> str | None:
    if specialization is None:
        return None
    specialization = specialization.strip()
    if len(specialization) > MAX_SPECIALIZATION_LENGTH:
        raise ValidationError(
            f"Specialization cannot exceed {MAX_SPECIALIZATION_LENGTH} characters"
        )
    return specialization or None


def find_assignment(
    record: CareRecord,
    professional_id: str,
    role: str | CareRole,
    *,
    active_only: bool = False,
) -> CareAssignment | None:
    """Return the ledger entry for (professional, role), if any."""
    role = CareRole(role)
    for assignment in record.assignments:
        if assignment.professional_id == str(professional_id) and assignment.role == role:
            if active_only and not assignment.active:
                continue
            return assignment
    return None


def active_assignments(record: CareRecord, role: str | CareRole | None = None) -> list[CareAssignment]:
    role = CareRole(role) if role is not None else None
    return [
        a for a in record.assignments
        if a.active and (role is None or a.role == role)
    ]


def active_primaries(record: CareRecord, role: str | CareRole) -> list[CareAssignment]:
    return [a for a in active_assignments(record, role) if a.standing == Standing.PRIMARY]


def primary_for(record: CareRecord, role: str | CareRole) -> CareAssignment | None:
    """The active primary professional of a role, or None."""
    primaries = active_primaries(record, role)
    return primaries[0] if primaries else None


def add_assignment(
    record: CareRecord,
    professional_id: str,
    role: str | CareRole,
    standing: str | Standing = Standing.ASSIGNED,
    specialization: str | None = None,
    granted_by: str | None = None,
    *,
    now: datetime | None = None,
) -> CareAssignment:
    """Grant (professional, role) on the record.

    Idempotent: an inactive entry is reactivated with the new standing and
    its removal metadata cleared; an active entry is only upgraded when the
    new standing outranks it; otherwise a new active entry is appended.
    """
    role = validate_role(role)
    standing = validate_standing(standing)
    specialization = validate_specialization(specialization)
    now = now or utcnow()

    existing = find_assignment(record, professional_id, role)
    if existing is not None:
        if not existing.active:
            existing.active = True
            existing.standing = standing
            existing.assigned_at = now
            existing.assigned_by = granted_by
            existing.removed_at = None
            existing.removed_by = None
            existing.removal_reason = None
            if specialization:
                existing.specialization = specialization
            _touch(record, now)
        elif STANDING_PRIORITY[standing] > STANDING_PRIORITY[existing.standing]:
            existing.standing = standing
            if specialization:
                existing.specialization = specialization
            _touch(record, now)
        return existing

    assignment = CareAssignment(
        professional_id=str(professional_id),
        role=role,
        standing=standing,
        specialization=specialization,
        assigned_at=now,
        assigned_by=granted_by,
        active=True,
    )
    record.assignments.append(assignment)
    _touch(record, now)
    return assignment


def remove_assignment(
    record: CareRecord,
    professional_id: str,
    role: str | CareRole,
    removed_by: str | None = None,
    reason: str | RemovalReason = RemovalReason.REMOVED,
    *,
    now: datetime | None = None,
) -> bool:
    """Deactivate the active entry for (professional, role).

    Returns False when no active entry matches.
    """
    role = validate_role(role)
    try:
        reason = RemovalReason(reason)
    except ValueError:
        raise ValidationError(f"Invalid removal reason {reason!r}") from None

    assignment = find_assignment(record, professional_id, role, active_only=True)
    if assignment is None:
        return False

    now = now or utcnow()
    assignment.active = False
    assignment.removed_at = now
    assignment.removed_by = removed_by
    assignment.removal_reason = reason
    _touch(record, now)
    return True


def remove_primary(
    record: CareRecord,
    role: str | CareRole,
    *,
    now: datetime | None = None,
) -> bool:
    """Demote the active primary of ``role`` to assigned. False if there is none."""
    role = validate_role(role)
    demoted = False
    for assignment in active_primaries(record, role):
        assignment.standing = Standing.ASSIGNED
        demoted = True
    if demoted:
        _touch(record, now)
    return demoted


def set_primary(
    record: CareRecord,
    professional_id: str,
    role: str | CareRole,
    granted_by: str | None = None,
    *,
    now: datetime | None = None,
) -> CareAssignment:
    """Make ``professional_id`` the single primary of ``role``.

    The current primary (if another professional) is demoted to assigned.
    """
    role = validate_role(role)
    now = now or utcnow()
    remove_primary(record, role, now=now)

    assignment = find_assignment(record, professional_id, role)
    if assignment is None:
        return add_assignment(record, professional_id, role, Standing.PRIMARY, granted_by=granted_by, now=now)

    if not assignment.active:
        assignment.active = True
        assignment.assigned_at = now
        assignment.assigned_by = granted_by
        assignment.removed_at = None
        assignment.removed_by = None
        assignment.removal_reason = None
    assignment.standing = Standing.PRIMARY
    _touch(record, now)
    return assignment


def check_primary_invariant(record: CareRecord) -> None:
    """Reject a ledger holding more than one active primary for a role."""
    for role in CareRole:
        if len(active_primaries(record, role)) > 1:
            raise ValidationError(f"Cannot have multiple primary {role.value}s")


def _touch(record: CareRecord, now: datetime | None = None) -> None:
    # The parent row must be UPDATEd, even with an unchanged timestamp, so
    # the version check runs when only child assignment rows changed.
    record.updated_at = now or utcnow()
    flag_modified(record, "updated_at")
