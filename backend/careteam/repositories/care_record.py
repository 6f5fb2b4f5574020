"""Care record repository.

Single entry point for care-record persistence. ``save`` enforces the
one-primary-per-role guard before flushing and translates storage-level
conflicts (stale version, unique index violations) into domain errors.
"""

from __future__ import annotations

import uuid

from sqlalchemy import and_, exists, inspect, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.orm.exc import StaleDataError

from careteam.actors import PROFESSIONAL_ROLES
from careteam.errors import ConcurrentModificationError, NotFoundError
from careteam.models.care_record import CareAssignment, CareRecord, RecordType
from careteam.models.dependent import Dependent
from careteam.services.ledger import check_primary_invariant


class CareRecordRepository:
    """Repository for CareRecord and Dependent lookups and writes."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, record_id: uuid.UUID) -> CareRecord | None:
        result = await self.db.execute(select(CareRecord).where(CareRecord.id == record_id))
        return result.scalar_one_or_none()

    async def get_or_raise(self, record_id: uuid.UUID) -> CareRecord:
        """Get a record by ID.

        Raises:
            NotFoundError: If the record does not exist.
        """
        record = await self.get_by_id(record_id)
        if record is None:
            raise NotFoundError(f"Care record {record_id} not found")
        return record

    async def find_by_dependent(self, dependent_id: uuid.UUID) -> CareRecord | None:
        """The record linked to a dependent, oldest first if several exist."""
        result = await self.db.execute(
            select(CareRecord)
            .where(CareRecord.linked_dependent_id == dependent_id)
            .order_by(CareRecord.created_at)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def find_regular_for_user(self, user_id: str) -> CareRecord | None:
        """The patient's own (non-dependent) record."""
        result = await self.db.execute(
            select(CareRecord)
            .where(
                CareRecord.owner_id == str(user_id),
                CareRecord.record_type == RecordType.REGULAR,
            )
            .order_by(CareRecord.created_at)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_dependent(self, dependent_id: uuid.UUID) -> Dependent | None:
        result = await self.db.execute(select(Dependent).where(Dependent.id == dependent_id))
        return result.scalar_one_or_none()

    async def list_dependent_ids(self, guardian_id: str) -> list[uuid.UUID]:
        result = await self.db.execute(
            select(Dependent.id).where(Dependent.guardian_id == str(guardian_id))
        )
        return list(result.scalars().all())

    def _care_team_condition(self, professional_id: str, role: str):
        """Records where the professional has an active ledger entry.

        Records with an empty ledger are matched through the legacy fields;
        the access resolver re-checks each candidate.
        """
        has_entry = exists().where(
            CareAssignment.record_id == CareRecord.id,
            CareAssignment.professional_id == professional_id,
            CareAssignment.role == role,
            CareAssignment.active.is_(True),
        )
        ledger_empty = ~exists().where(CareAssignment.record_id == CareRecord.id)
        legacy_primary = (
            CareRecord.legacy_primary_doctor_id if role == "doctor" else CareRecord.legacy_primary_therapist_id
        )
        legacy_candidate = and_(
            ledger_empty,
            or_(
                and_(CareRecord.onboarded_by == professional_id, CareRecord.onboarded_by_role == role),
                legacy_primary == professional_id,
                CareRecord.legacy_assignees.is_not(None),
            ),
        )
        return or_(has_entry, legacy_candidate)

    async def list_for_user(self, user_id: str, role: str) -> list[CareRecord]:
        """Owned records, plus care-team candidates for doctors and therapists.

        Newest first. Not paginated: callers filter legacy candidates first.
        """
        condition = CareRecord.owner_id == str(user_id)
        if role in PROFESSIONAL_ROLES:
            condition = or_(condition, self._care_team_condition(str(user_id), role))
        result = await self.db.execute(
            select(CareRecord).where(condition).order_by(CareRecord.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_all(self, skip: int = 0, limit: int = 50) -> list[CareRecord]:
        result = await self.db.execute(
            select(CareRecord).order_by(CareRecord.created_at.desc()).offset(skip).limit(limit)
        )
        return list(result.scalars().all())

    async def list_with_legacy_fields(self) -> list[CareRecord]:
        """Records still carrying pre-ledger assignment data."""
        result = await self.db.execute(
            select(CareRecord).where(
                or_(
                    CareRecord.legacy_primary_doctor_id.is_not(None),
                    CareRecord.legacy_primary_therapist_id.is_not(None),
                    CareRecord.legacy_assignees.is_not(None),
                    CareRecord.onboarded_by.is_not(None),
                )
            )
        )
        return list(result.scalars().all())

    async def save(self, record: CareRecord) -> CareRecord:
        """Validate the ledger and flush the record.

        Raises:
            ValidationError: If a role would have more than one active primary.
            ConcurrentModificationError: If another writer updated the record
                first, or a storage uniqueness constraint rejected the write.
        """
        check_primary_invariant(record)
        # Any change, including one to child rows only, must UPDATE the
        # parent row so the version check runs
        if inspect(record).persistent and self.db.is_modified(record):
            flag_modified(record, "updated_at")
        try:
            async with self.db.begin_nested():
                self.db.add(record)
        except StaleDataError:
            raise ConcurrentModificationError(
                f"Care record {record.id} was modified concurrently; reload and retry"
            ) from None
        except IntegrityError as e:
            raise ConcurrentModificationError(
                f"Care record {record.id} conflicts with a concurrent write: {e.orig}"
            ) from None
        return record
