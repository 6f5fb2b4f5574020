"""create care team tables

Professional profiles, dependents, care records with their assignment
ledger and share grants, and appointments.

Revision ID: create_care_team_tables
Revises: create_auth_tables
Create Date: 2026-10-12
"""

from collections.abc import Sequence
from typing import Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "create_care_team_tables"
down_revision: Union[str, Sequence[str], None] = "create_auth_tables"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ENUMS = {
    "gender": ("male", "female", "other", "prefer-not-to-say"),
    "record_type": ("dependent", "regular"),
    "care_role": ("doctor", "therapist"),
    "assignment_standing": ("onboarding", "primary", "assigned"),
    "removal_reason": ("removed", "inactive", "other"),
    "appointment_status": ("pending", "confirmed", "completed", "cancelled", "no-show"),
    "consultation_type": ("online", "offline"),
    "cancelled_by": ("professional", "patient", "system"),
}


def _enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def upgrade() -> None:
    """Create enum types, tables and indexes."""
    for name, values in ENUMS.items():
        postgresql.ENUM(*values, name=name).create(op.get_bind(), checkfirst=True)

    # --- professional_profiles ---
    op.create_table(
        "professional_profiles",
        sa.Column("user_id", sa.Text(), nullable=False),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("specialization", sa.String(100), nullable=True),
        sa.Column("fee_online", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("fee_offline", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("session_duration_minutes", sa.Integer(), nullable=True, server_default="60"),
        sa.Column("total_appointments", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("user_id"),
    )
    op.create_index("ix_professional_profiles_role", "professional_profiles", ["role"])

    # --- dependents ---
    op.create_table(
        "dependents",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("guardian_id", sa.Text(), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("date_of_birth", sa.Date(), nullable=False),
        sa.Column("gender", _enum("gender"), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_dependents_guardian_id", "dependents", ["guardian_id"])
    op.create_index("idx_dependent_guardian_active", "dependents", ["guardian_id", "active"])

    # --- care_records ---
    op.create_table(
        "care_records",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("record_type", _enum("record_type"), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("date_of_birth", sa.Date(), nullable=True),
        sa.Column("gender", _enum("gender"), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(30), nullable=True),
        sa.Column("guardian_name", sa.String(100), nullable=True),
        sa.Column("guardian_relation", sa.String(30), nullable=True),
        sa.Column("guardian_phone", sa.String(30), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column(
            "owner_id",
            sa.Text(),
            nullable=True,
            comment="Patient user, or the guardian of the linked dependent",
        ),
        sa.Column("linked_dependent_id", sa.Uuid(), nullable=True),
        sa.Column("onboarded_by", sa.Text(), nullable=True),
        sa.Column("onboarded_by_role", sa.String(20), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("archived_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("archived_by", sa.Text(), nullable=True),
        sa.Column("legacy_primary_doctor_id", sa.Text(), nullable=True),
        sa.Column("legacy_primary_therapist_id", sa.Text(), nullable=True),
        sa.Column(
            "legacy_assignees",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=True,
            comment="[{professional_id, role, active}] from the pre-ledger schema",
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["linked_dependent_id"], ["dependents.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_care_records_owner_id", "care_records", ["owner_id"])
    op.create_index("ix_care_records_linked_dependent_id", "care_records", ["linked_dependent_id"])
    op.create_index("ix_care_records_onboarded_by", "care_records", ["onboarded_by"])
    op.create_index("idx_care_record_owner_active", "care_records", ["owner_id", "active"])
    op.create_index("idx_care_record_type_active", "care_records", ["record_type", "active"])

    # --- care_assignments (the ledger) ---
    op.create_table(
        "care_assignments",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("record_id", sa.Uuid(), nullable=False),
        sa.Column("professional_id", sa.Text(), nullable=False),
        sa.Column("role", _enum("care_role"), nullable=False),
        sa.Column("standing", _enum("assignment_standing"), nullable=False),
        sa.Column("specialization", sa.String(100), nullable=True),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("assigned_by", sa.Text(), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("removed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("removed_by", sa.Text(), nullable=True),
        sa.Column("removal_reason", _enum("removal_reason"), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["record_id"], ["care_records.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("record_id", "professional_id", "role", name="uq_assignment_professional_role"),
    )
    op.create_index("ix_care_assignments_professional_id", "care_assignments", ["professional_id"])
    op.create_index(
        "idx_assignment_professional_active",
        "care_assignments",
        ["professional_id", "role", "active"],
    )
    op.create_index(
        "uq_assignment_active_primary",
        "care_assignments",
        ["record_id", "role"],
        unique=True,
        postgresql_where=sa.text("active AND standing = 'primary'"),
    )

    # --- care_record_shares ---
    op.create_table(
        "care_record_shares",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("record_id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Text(), nullable=False),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column("granted_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("granted_by", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["record_id"], ["care_records.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("record_id", "user_id", name="uq_share_record_user"),
    )
    op.create_index("ix_care_record_shares_user_id", "care_record_shares", ["user_id"])

    # --- appointments ---
    op.create_table(
        "appointments",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("professional_id", sa.Text(), nullable=False),
        sa.Column(
            "patient_id",
            sa.Text(),
            nullable=False,
            comment="User who booked: the patient or the dependent's guardian",
        ),
        sa.Column("dependent_id", sa.Uuid(), nullable=True),
        sa.Column("care_record_id", sa.Uuid(), nullable=True),
        sa.Column("appointment_date", sa.Date(), nullable=False),
        sa.Column("appointment_time", sa.String(5), nullable=False, comment="HH:MM"),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("slot_bucket", sa.BigInteger(), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False, server_default="60"),
        sa.Column("consultation_type", _enum("consultation_type"), nullable=False),
        sa.Column("consultation_fee", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("patient_notes", sa.Text(), nullable=True),
        sa.Column("status", _enum("appointment_status"), nullable=False, server_default="pending"),
        sa.Column("cancelled_by", _enum("cancelled_by"), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.String(500), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["dependent_id"], ["dependents.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["care_record_id"], ["care_records.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_appointments_professional_id", "appointments", ["professional_id"])
    op.create_index("ix_appointments_patient_id", "appointments", ["patient_id"])
    op.create_index("ix_appointments_dependent_id", "appointments", ["dependent_id"])
    op.create_index("ix_appointments_care_record_id", "appointments", ["care_record_id"])
    op.create_index("ix_appointments_status", "appointments", ["status"])
    op.create_index(
        "idx_appointment_professional_scheduled",
        "appointments",
        ["professional_id", "scheduled_at"],
    )
    op.create_index("idx_appointment_patient_scheduled", "appointments", ["patient_id", "scheduled_at"])
    op.create_index("idx_appointment_status_scheduled", "appointments", ["status", "scheduled_at"])
    op.create_index(
        "uq_appointment_active_slot",
        "appointments",
        ["professional_id", "slot_bucket"],
        unique=True,
        postgresql_where=sa.text("status IN ('pending', 'confirmed')"),
    )


def downgrade() -> None:
    """Drop tables and enum types."""
    op.drop_table("appointments")
    op.drop_table("care_record_shares")
    op.drop_table("care_assignments")
    op.drop_table("care_records")
    op.drop_table("dependents")
    op.drop_table("professional_profiles")

    for name in reversed(list(ENUMS)):
        postgresql.ENUM(name=name).drop(op.get_bind(), checkfirst=True)
