"""Care record API routes.

Record CRUD, sharing and care-team management. Access rules live in the
service layer; these handlers only translate between HTTP and the service.
"""

import uuid

from fastapi import APIRouter, Depends, Query, status

from careteam.actors import Actor
from careteam.auth import get_current_actor
from careteam.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from careteam.dependencies import get_care_team_service
from careteam.errors import NotFoundError
from careteam.models.care_record import CareRole, RemovalReason
from careteam.schemas.care_record import (
    AssignmentCreate,
    AssignmentOutcomeResponse,
    AssignmentResponse,
    CareRecordCreate,
    CareRecordListResponse,
    CareRecordResponse,
    CareRecordUpdate,
    EnrichmentFailureResponse,
    PrimaryUpdate,
    ShareCreate,
    ShareResponse,
)
from careteam.services.care_records import CareTeamService

router = APIRouter(prefix="/care-records", tags=["care-records"])


def _assignment_outcome(outcome) -> AssignmentOutcomeResponse:
    return AssignmentOutcomeResponse(
        assignment=AssignmentResponse.model_validate(outcome.value),
        failures=[EnrichmentFailureResponse.model_validate(f) for f in outcome.failures],
    )


@router.get("", response_model=CareRecordListResponse)
async def list_care_records(
    actor: Actor = Depends(get_current_actor),
    service: CareTeamService = Depends(get_care_team_service),
    skip: int = Query(0, ge=0),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
) -> CareRecordListResponse:
    """List records on the actor's care team, records they own, or all for admins."""
    records = await service.list_care_records_for(actor, skip=skip, limit=limit)
    return CareRecordListResponse(
        items=[CareRecordResponse.model_validate(r) for r in records],
        skip=skip,
        limit=limit,
    )


@router.post("", response_model=CareRecordResponse, status_code=status.HTTP_201_CREATED)
async def create_care_record(
    record_data: CareRecordCreate,
    actor: Actor = Depends(get_current_actor),
    service: CareTeamService = Depends(get_care_team_service),
) -> CareRecordResponse:
    """Onboard a patient or dependent. The creator joins the care team."""
    record = await service.create_care_record(record_data.model_dump(), actor)
    return CareRecordResponse.model_validate(record)


@router.get("/{record_id}", response_model=CareRecordResponse)
async def get_care_record(
    record_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    service: CareTeamService = Depends(get_care_team_service),
) -> CareRecordResponse:
    record = await service.get_care_record(record_id, actor)
    return CareRecordResponse.model_validate(record)


@router.patch("/{record_id}", response_model=CareRecordResponse)
async def update_care_record(
    record_id: uuid.UUID,
    record_data: CareRecordUpdate,
    actor: Actor = Depends(get_current_actor),
    service: CareTeamService = Depends(get_care_team_service),
) -> CareRecordResponse:
    """Update demographics. Only fields present in the body change."""
    record = await service.update_care_record(
        record_id, record_data.model_dump(exclude_unset=True), actor
    )
    return CareRecordResponse.model_validate(record)


@router.post("/{record_id}/archive", response_model=CareRecordResponse)
async def archive_care_record(
    record_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    service: CareTeamService = Depends(get_care_team_service),
) -> CareRecordResponse:
    record = await service.archive_care_record(record_id, actor)
    return CareRecordResponse.model_validate(record)


# === Sharing ===


@router.post("/{record_id}/shares", response_model=ShareResponse, status_code=status.HTTP_201_CREATED)
async def share_care_record(
    record_id: uuid.UUID,
    share_data: ShareCreate,
    actor: Actor = Depends(get_current_actor),
    service: CareTeamService = Depends(get_care_team_service),
) -> ShareResponse:
    grant = await service.share_care_record(record_id, share_data.user_id, share_data.role, actor)
    return ShareResponse.model_validate(grant)


@router.delete("/{record_id}/shares/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_share(
    record_id: uuid.UUID,
    user_id: str,
    actor: Actor = Depends(get_current_actor),
    service: CareTeamService = Depends(get_care_team_service),
) -> None:
    await service.revoke_share(record_id, user_id, actor)


# === Care team ===


@router.post(
    "/{record_id}/assignments",
    response_model=AssignmentOutcomeResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_assignment(
    record_id: uuid.UUID,
    assignment_data: AssignmentCreate,
    actor: Actor = Depends(get_current_actor),
    service: CareTeamService = Depends(get_care_team_service),
) -> AssignmentOutcomeResponse:
    """Add a professional to the care team (idempotent)."""
    outcome = await service.add_assignment(
        record_id,
        assignment_data.professional_id,
        assignment_data.role.value,
        actor,
        standing=assignment_data.standing.value,
        specialization=assignment_data.specialization,
    )
    return _assignment_outcome(outcome)


@router.delete(
    "/{record_id}/assignments/{role}/{professional_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def remove_assignment(
    record_id: uuid.UUID,
    role: CareRole,
    professional_id: str,
    reason: RemovalReason = RemovalReason.REMOVED,
    actor: Actor = Depends(get_current_actor),
    service: CareTeamService = Depends(get_care_team_service),
) -> None:
    removed = await service.remove_assignment(record_id, professional_id, role.value, actor, reason.value)
    if not removed:
        raise NotFoundError(f"No active {role.value} assignment for {professional_id}")


@router.put("/{record_id}/primary/{role}", response_model=AssignmentOutcomeResponse)
async def set_primary(
    record_id: uuid.UUID,
    role: CareRole,
    primary_data: PrimaryUpdate,
    actor: Actor = Depends(get_current_actor),
    service: CareTeamService = Depends(get_care_team_service),
) -> AssignmentOutcomeResponse:
    """Make a professional the primary of a role, demoting the current one."""
    outcome = await service.set_primary(record_id, primary_data.professional_id, role.value, actor)
    return _assignment_outcome(outcome)


@router.delete("/{record_id}/primary/{role}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_primary(
    record_id: uuid.UUID,
    role: CareRole,
    actor: Actor = Depends(get_current_actor),
    service: CareTeamService = Depends(get_care_team_service),
) -> None:
    demoted = await service.remove_primary(record_id, role.value, actor)
    if not demoted:
        raise NotFoundError(f"Care record {record_id} has no primary {role.value}")
