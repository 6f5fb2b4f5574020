"""Pydantic schemas for the Care Record API."""

from datetime import date, datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from careteam.models.care_record import CareRole, Gender, RecordType, RemovalReason, Standing


# === Care team ===


class AssignmentResponse(BaseModel):
    """One entry of a record's care team."""

    model_config = ConfigDict(from_attributes=True)

    professional_id: str
    role: CareRole
    standing: Standing
    specialization: str | None
    assigned_at: datetime
    assigned_by: str | None
    active: bool
    removed_at: datetime | None
    removed_by: str | None
    removal_reason: RemovalReason | None


class AssignmentCreate(BaseModel):
    """Schema for adding a professional to a care team."""

    professional_id: str = Field(min_length=1)
    role: CareRole
    standing: Standing = Standing.ASSIGNED
    specialization: str | None = Field(default=None, max_length=100)


class PrimaryUpdate(BaseModel):
    """Schema for setting the primary professional of a role."""

    professional_id: str = Field(min_length=1)


class ShareCreate(BaseModel):
    """Schema for sharing a record with a user outside the care team."""

    user_id: str = Field(min_length=1)
    role: Literal["doctor", "therapist", "teacher"]


class ShareResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    role: str
    granted_at: datetime
    granted_by: str | None


# === Records ===


class CareRecordCreate(BaseModel):
    """Schema for onboarding a patient or dependent."""

    name: str = Field(min_length=1, max_length=100)
    date_of_birth: date | None = None
    gender: Gender | None = None
    email: str | None = Field(default=None, max_length=255)
    phone: str | None = Field(default=None, max_length=30)
    guardian_name: str | None = Field(default=None, max_length=100)
    guardian_relation: str | None = Field(default=None, max_length=30)
    guardian_phone: str | None = Field(default=None, max_length=30)
    notes: str | None = None
    owner_id: str | None = Field(default=None, description="Patient user ID for regular records")
    linked_dependent_id: UUID | None = None
    specialization: str | None = Field(
        default=None,
        max_length=100,
        description="Specialization recorded on the creator's onboarding entry",
    )


class CareRecordUpdate(BaseModel):
    """Schema for editing a record's demographics. Only set fields change."""

    name: str | None = Field(default=None, min_length=1, max_length=100)
    date_of_birth: date | None = None
    gender: Gender | None = None
    email: str | None = Field(default=None, max_length=255)
    phone: str | None = Field(default=None, max_length=30)
    guardian_name: str | None = Field(default=None, max_length=100)
    guardian_relation: str | None = Field(default=None, max_length=30)
    guardian_phone: str | None = Field(default=None, max_length=30)
    notes: str | None = None


class CareRecordResponse(BaseModel):
    """Schema for a care record in API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    record_type: RecordType
    name: str
    date_of_birth: date | None
    gender: Gender | None
    email: str | None
    phone: str | None
    guardian_name: str | None
    guardian_relation: str | None
    guardian_phone: str | None
    notes: str | None
    owner_id: str | None
    linked_dependent_id: UUID | None
    onboarded_by: str | None
    onboarded_by_role: str | None
    active: bool
    archived_at: datetime | None
    archived_by: str | None
    assignments: list[AssignmentResponse]
    share_grants: list[ShareResponse]
    created_at: datetime
    updated_at: datetime
    version: int


class CareRecordListResponse(BaseModel):
    """Paginated list of care records."""

    items: list[CareRecordResponse]
    skip: int
    limit: int


class EnrichmentFailureResponse(BaseModel):
    """A best-effort step that failed after the primary write succeeded."""

    model_config = ConfigDict(from_attributes=True)

    step: str
    error_type: str
    message: str


class AssignmentOutcomeResponse(BaseModel):
    assignment: AssignmentResponse
    failures: list[EnrichmentFailureResponse] = []
