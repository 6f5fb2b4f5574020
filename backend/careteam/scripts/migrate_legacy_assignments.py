"""Move pre-ledger assignment fields into the assignment ledger.

Converts, per care record:
- onboarded_by + onboarded_by_role -> ``onboarding`` entry
- legacy primary doctor/therapist -> ``primary`` entry (or upgrades the
  onboarding entry when it is the same professional)
- legacy_assignees -> ``assigned`` entries, keeping inactive ones inactive

then clears the legacy columns. Records whose ledger already has entries
are skipped, so re-running is safe.

Usage:
    python -m careteam.scripts.migrate_legacy_assignments
"""

import asyncio
import logging

from sqlalchemy import text

from careteam.clock import utcnow
from careteam.database import async_session_maker, engine
from careteam.models.care_record import CareRecord, CareRole, RemovalReason, Standing
from careteam.repositories.care_record import CareRecordRepository
from careteam.services.ledger import add_assignment, find_assignment

logger = logging.getLogger(__name__)


def migrate_record(record: CareRecord) -> int:
    """Build ledger entries from a record's legacy fields.

    Returns:
        Number of ledger entries created. Zero when the record already has
        a ledger or carries no legacy data.
    """
    if record.assignments:
        return 0

    since = record.created_at or utcnow()
    roles = {r.value for r in CareRole}

    if record.onboarded_by and record.onboarded_by_role in roles:
        add_assignment(
            record,
            record.onboarded_by,
            record.onboarded_by_role,
            Standing.ONBOARDING,
            granted_by=record.onboarded_by,
            now=since,
        )

    for role, professional_id in (
        (CareRole.DOCTOR, record.legacy_primary_doctor_id),
        (CareRole.THERAPIST, record.legacy_primary_therapist_id),
    ):
        if not professional_id:
            continue
        existing = find_assignment(record, professional_id, role)
        if existing is not None:
            existing.standing = Standing.PRIMARY
        else:
            add_assignment(record, professional_id, role, Standing.PRIMARY, now=since)

    for entry in record.legacy_assignees or []:
        professional_id = entry.get("professional_id")
        role = entry.get("role")
        if not professional_id or role not in roles:
            continue
        if find_assignment(record, str(professional_id), role) is not None:
            continue
        assignment = add_assignment(
            record,
            str(professional_id),
            role,
            Standing.ASSIGNED,
            specialization=entry.get("specialization"),
            now=since,
        )
        if entry.get("active", True) is False:
            assignment.active = False
            assignment.removed_at = since
            assignment.removal_reason = RemovalReason.INACTIVE

    created = len(record.assignments)
    if created:
        record.legacy_primary_doctor_id = None
        record.legacy_primary_therapist_id = None
        record.legacy_assignees = None
    return created


async def migrate_all() -> tuple[int, int, int]:
    """Run ``migrate_record`` over every record with legacy data.

    Returns:
        (migrated, skipped, errors)
    """
    migrated = skipped = errors = 0

    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    print("  Database: connected")

    async with async_session_maker() as session:
        repo = CareRecordRepository(session)
        records = await repo.list_with_legacy_fields()
        print(f"  Found {len(records)} records with legacy fields")

        for record in records:
            try:
                async with session.begin_nested():
                    created = migrate_record(record)
                    if created:
                        await repo.save(record)
            except Exception:
                errors += 1
                logger.exception("Failed to migrate care record %s", record.id)
                print(f"  Error migrating care record {record.id}")
                continue

            if created:
                migrated += 1
                print(f"  Migrated care record {record.id}: {created} assignments")
            else:
                skipped += 1

        await session.commit()

    print("\n=== Migration Summary ===")
    print(f"Migrated: {migrated}")
    print(f"Skipped: {skipped}")
    print(f"Errors: {errors}")
    return migrated, skipped, errors


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(migrate_all())
