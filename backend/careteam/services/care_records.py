"""Care record service.

Binds the ledger functions and the access resolver to persisted records.
Every mutation loads the record, checks the actor, applies the change in
memory and hands the record to ``CareRecordRepository.save``.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from careteam.actors import Actor, ActorRole
from careteam.clock import Clock, utcnow
from careteam.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from careteam.errors import (
    AccessDeniedError,
    NotFoundError,
    RecordInactiveError,
    UnauthorizedError,
    ValidationError,
)
from careteam.models.care_record import (
    CareAssignment,
    CareRecord,
    CareRole,
    RecordType,
    RemovalReason,
    ShareGrant,
    Standing,
)
from careteam.repositories.care_record import CareRecordRepository
from careteam.services import ledger
from careteam.services.access import can_access, can_manage
from careteam.services.directory import ProfessionalDirectory
from careteam.services.notifications import NotificationDispatcher, NotificationEvent
from careteam.services.outcome import Outcome, run_best_effort

logger = logging.getLogger(__name__)

SHAREABLE_ROLES = frozenset({ActorRole.DOCTOR.value, ActorRole.THERAPIST.value, ActorRole.TEACHER.value})

# Columns a manager may change through update_care_record
EDITABLE_FIELDS = frozenset(
    {
        "name",
        "date_of_birth",
        "gender",
        "email",
        "phone",
        "guardian_name",
        "guardian_relation",
        "guardian_phone",
        "notes",
    }
)


class CareTeamService:
    """Care record CRUD, sharing and care-team (ledger) management."""

    def __init__(
        self,
        db: AsyncSession,
        directory: ProfessionalDirectory,
        notifier: NotificationDispatcher,
        *,
        clock: Clock = utcnow,
    ):
        self.db = db
        self.directory = directory
        self.notifier = notifier
        self.clock = clock
        self.records = CareRecordRepository(db)

    # ------------------------------------------------------------------ #
    # Records
    # ------------------------------------------------------------------ #

    async def create_care_record(self, data: dict[str, Any], actor: Actor) -> CareRecord:
        """Onboard a patient or dependent.

        The creating professional receives an ``onboarding`` ledger entry.

        Raises:
            UnauthorizedError: If the actor is not a professional or admin.
            NotFoundError: If ``linked_dependent_id`` names no dependent.
        """
        if not (actor.is_professional or actor.is_admin):
            raise UnauthorizedError("Only doctors, therapists and admins can create care records")

        fields = {k: v for k, v in data.items() if k in EDITABLE_FIELDS}
        record = CareRecord(
            id=uuid.uuid4(),
            record_type=RecordType.REGULAR,
            owner_id=data.get("owner_id"),
            active=True,
            assignments=[],
            share_grants=[],
            **fields,
        )

        dependent_id = data.get("linked_dependent_id")
        if dependent_id is not None:
            dependent = await self.records.get_dependent(dependent_id)
            if dependent is None:
                raise NotFoundError(f"Dependent {dependent_id} not found")
            record.record_type = RecordType.DEPENDENT
            record.linked_dependent_id = dependent.id
            record.owner_id = dependent.guardian_id

        now = self.clock()
        if actor.is_professional:
            record.onboarded_by = actor.id
            record.onboarded_by_role = actor.role
            ledger.add_assignment(
                record,
                actor.id,
                actor.role,
                Standing.ONBOARDING,
                specialization=data.get("specialization"),
                granted_by=actor.id,
                now=now,
            )

        self.db.add(record)
        await self.records.save(record)
        logger.info("Created care record %s", record.id, extra={"actor_id": actor.id})
        return record

    async def get_care_record(self, record_id: uuid.UUID, actor: Actor) -> CareRecord:
        """Load a record the actor may view.

        Raises:
            NotFoundError: If the record does not exist.
            AccessDeniedError: If the access resolver denies the actor.
        """
        record = await self.records.get_or_raise(record_id)
        if not can_access(record, actor.id, actor.role):
            raise AccessDeniedError("You do not have access to this care record")
        return record

    async def update_care_record(
        self,
        record_id: uuid.UUID,
        changes: dict[str, Any],
        actor: Actor,
    ) -> CareRecord:
        record = await self._load_for_edit(record_id, actor)
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

        for key, value in changes.items():
            setattr(record, key, value)
        record.updated_at = self.clock()
        return await self.records.save(record)

    async def archive_care_record(self, record_id: uuid.UUID, actor: Actor) -> CareRecord:
        """Deactivate a record. Archived records stay readable."""
        record = await self._load_for_edit(record_id, actor)
        now = self.clock()
        record.active = False
        record.archived_at = now
        record.archived_by = actor.id
        record.updated_at = now
        await self.records.save(record)
        logger.info("Archived care record %s", record.id, extra={"actor_id": actor.id})
        return record

    async def list_care_records_for(
        self,
        actor: Actor,
        skip: int = 0,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> list[CareRecord]:
        """Records visible in the actor's own list.

        Admins see every record. Professionals see their care-team records;
        everyone sees records they own.
        """
        skip = max(skip, 0)
        limit = min(max(limit, 1), MAX_PAGE_SIZE)
        if actor.is_admin:
            return await self.records.list_all(skip=skip, limit=limit)

        visible = [
            record
            for record in await self.records.list_for_user(actor.id, actor.role)
            if can_access(record, actor.id, actor.role)
        ]
        return visible[skip : skip + limit]

    # ------------------------------------------------------------------ #
    # Sharing
    # ------------------------------------------------------------------ #

    async def share_care_record(
        self,
        record_id: uuid.UUID,
        user_id: str,
        role: str,
        actor: Actor,
    ) -> ShareGrant:
        """Grant read access to a user. Re-sharing returns the existing grant."""
        if role not in SHAREABLE_ROLES:
            raise ValidationError(f"Invalid share role {role!r}. Must be doctor, therapist or teacher")

        record = await self._load_for_edit(record_id, actor)
        for grant in record.share_grants:
            if grant.user_id == str(user_id):
                return grant

        now = self.clock()
        grant = ShareGrant(user_id=str(user_id), role=role, granted_at=now, granted_by=actor.id)
        record.share_grants.append(grant)
        record.updated_at = now
        await self.records.save(record)
        return grant

    async def revoke_share(self, record_id: uuid.UUID, user_id: str, actor: Actor) -> None:
        record = await self._load_for_edit(record_id, actor)
        for grant in list(record.share_grants):
            if grant.user_id == str(user_id):
                record.share_grants.remove(grant)
                record.updated_at = self.clock()
                await self.records.save(record)
                return
        raise NotFoundError(f"User {user_id} has no share on care record {record_id}")

    # ------------------------------------------------------------------ #
    # Care team (assignment ledger)
    # ------------------------------------------------------------------ #

    async def add_assignment(
        self,
        record_id: uuid.UUID,
        professional_id: str,
        role: str,
        actor: Actor,
        standing: str = Standing.ASSIGNED.value,
        specialization: str | None = None,
    ) -> Outcome[CareAssignment]:
        """Grant a professional a place on the care team."""
        role = await self._verify_professional(professional_id, role)
        record = await self._load_for_edit(record_id, actor)

        was_active = ledger.find_assignment(record, professional_id, role, active_only=True) is not None
        assignment = ledger.add_assignment(
            record,
            professional_id,
            role,
            standing,
            specialization=specialization,
            granted_by=actor.id,
            now=self.clock(),
        )
        await self.records.save(record)

        outcome: Outcome[CareAssignment] = Outcome(assignment)
        if not was_active:
            await self._notify_assigned(outcome, record, professional_id, role)
        return outcome

    async def remove_assignment(
        self,
        record_id: uuid.UUID,
        professional_id: str,
        role: str,
        actor: Actor,
        reason: str = RemovalReason.REMOVED.value,
    ) -> bool:
        """Deactivate a care-team entry. False if there was no active entry."""
        record = await self._load_for_edit(record_id, actor)
        removed = ledger.remove_assignment(
            record, professional_id, role, removed_by=actor.id, reason=reason, now=self.clock()
        )
        if removed:
            await self.records.save(record)
        return removed

    async def set_primary(
        self,
        record_id: uuid.UUID,
        professional_id: str,
        role: str,
        actor: Actor,
    ) -> Outcome[CareAssignment]:
        """Make a professional the single primary of a role."""
        role = await self._verify_professional(professional_id, role)
        record = await self._load_for_edit(record_id, actor)

        was_active = ledger.find_assignment(record, professional_id, role, active_only=True) is not None

        # Flush the demotion first so the primary index never sees two rows
        if ledger.remove_primary(record, role, now=self.clock()):
            await self.records.save(record)

        assignment = ledger.set_primary(record, professional_id, role, granted_by=actor.id, now=self.clock())
        await self.records.save(record)
        logger.info(
            "Set primary %s for care record %s",
            role.value,
            record.id,
            extra={"professional_id": professional_id, "actor_id": actor.id},
        )

        outcome: Outcome[CareAssignment] = Outcome(assignment)
        if not was_active:
            await self._notify_assigned(outcome, record, professional_id, role)
        return outcome

    async def remove_primary(self, record_id: uuid.UUID, role: str, actor: Actor) -> bool:
        record = await self._load_for_edit(record_id, actor)
        demoted = ledger.remove_primary(record, role, now=self.clock())
        if demoted:
            await self.records.save(record)
        return demoted

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    async def _load_for_edit(self, record_id: uuid.UUID, actor: Actor) -> CareRecord:
        record = await self.records.get_or_raise(record_id)
        if not can_manage(record, actor.id, actor.role):
            if can_access(record, actor.id, actor.role):
                raise UnauthorizedError("You can view this care record but not modify it")
            raise AccessDeniedError("You do not have access to this care record")
        if not record.active:
            raise RecordInactiveError(f"Care record {record_id} is archived")
        return record

    async def _verify_professional(self, professional_id: str, role: str) -> CareRole:
        role = ledger.validate_role(role)
        professional = await self.directory.get_professional(professional_id)
        if professional is None:
            raise NotFoundError(f"Professional {professional_id} not found")
        if professional.role != role.value:
            raise ValidationError(f"User {professional_id} is not a {role.value}")
        return role

    async def _notify_assigned(
        self,
        outcome: Outcome[Any],
        record: CareRecord,
        professional_id: str,
        role: CareRole,
    ) -> None:
        await run_best_effort(
            outcome,
            "notify_care_team_assigned",
            lambda: self.notifier.notify(
                NotificationEvent.CARE_TEAM_ASSIGNED.value,
                str(professional_id),
                {"care_record_id": str(record.id), "record_name": record.name, "role": role.value},
            ),
            context={"care_record_id": str(record.id)},
        )

