"""Access resolver for care records.

Decides who may read (``can_access``) and who may manage (``can_manage``)
a record. Both functions are total: they return False rather than raise,
and callers turn False into AccessDeniedError / UnauthorizedError.
"""

from careteam.actors import PROFESSIONAL_ROLES, ActorRole
from careteam.models.care_record import CareRecord


def can_access(record: CareRecord, actor_id: str | None, actor_role: str | None) -> bool:
    """Whether the actor may view the record.

    Order: owner/guardian, admin, care team (ledger, or legacy fields when
    the ledger is empty), explicit share grant.
    """
    if not actor_id:
        return False
    actor_id = str(actor_id)

    if can_manage(record, actor_id, actor_role):
        return True

    return any(grant.user_id == actor_id for grant in record.share_grants or [])


def can_manage(record: CareRecord, actor_id: str | None, actor_role: str | None) -> bool:
    """Whether the actor may edit the record and its care team.

    Same as ``can_access`` minus share grants, which only confer read access.
    """
    if not actor_id:
        return False
    actor_id = str(actor_id)

    if record.owner_id is not None and record.owner_id == actor_id:
        return True

    if actor_role == ActorRole.ADMIN.value:
        return True

    if actor_role in PROFESSIONAL_ROLES:
        return is_on_care_team(record, actor_id, actor_role)

    return False


def is_on_care_team(record: CareRecord, professional_id: str, role: str) -> bool:
    """Active ledger entry for (professional, role), regardless of standing.

    The legacy fields are consulted only while the ledger is empty; once any
    entry exists, a removal recorded in the ledger is final.
    """
    assignments = record.assignments or []
    if assignments:
        return any(
            a.active and a.professional_id == professional_id and a.role == role
            for a in assignments
        )
    return _legacy_grants_access(record, professional_id, role)


def _legacy_grants_access(record: CareRecord, professional_id: str, role: str) -> bool:
    if record.onboarded_by == professional_id and record.onboarded_by_role == role:
        return True

    if role == ActorRole.DOCTOR.value and record.legacy_primary_doctor_id == professional_id:
        return True
    if role == ActorRole.THERAPIST.value and record.legacy_primary_therapist_id == professional_id:
        return True

    for entry in record.legacy_assignees or []:
        if (
            str(entry.get("professional_id")) == professional_id
            and entry.get("role") == role
            and entry.get("active", True)
        ):
            return True
    return False
