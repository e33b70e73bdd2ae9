"""Financial pods with their members and mapped projects."""

from __future__ import annotations

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from margindesk.core.auth import RequestUserContext, get_current_user_context, require_admin
from margindesk.db.dependencies import get_db_session
from margindesk.models.entities import PodStatus
from margindesk.services.pod_service import (
    MembershipCreateData,
    PodCreateData,
    PodService,
    PodUpdateData,
    ProjectMappingCreateData,
)

router = APIRouter(prefix="/pods", tags=["pods"])


class PodCreatePayload(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    leader_id: UUID
    description: str | None = Field(default=None, max_length=2000)
    status: PodStatus = PodStatus.ACTIVE


class PodUpdatePayload(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    leader_id: UUID | None = None
    description: str | None = Field(default=None, max_length=2000)
    status: PodStatus | None = None


class MembershipCreatePayload(BaseModel):
    person_id: UUID
    start_date: date
    end_date: date | None = None
    allocation_pct: int = Field(default=100, ge=0, le=100)


class ProjectMappingCreatePayload(BaseModel):
    project_id: UUID
    start_date: date
    end_date: date | None = None


def _service(db: Session) -> PodService:
    return PodService(db)


@router.get("")
def list_pods(
    status_filter: PodStatus | None = Query(default=None, alias="status"),
    leader_id: UUID | None = None,
    _: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    rows = service.list_pods(status_filter=status_filter, leader_id=leader_id)
    return {"items": [service.serialize_pod(row) for row in rows]}


@router.get("/{pod_id}")
def get_pod(
    pod_id: UUID,
    _: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    return service.serialize_pod(service.get_pod(pod_id))


@router.post("", status_code=201)
def create_pod(
    payload: PodCreatePayload,
    _: RequestUserContext = Depends(require_admin),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    return service.serialize_pod(service.create_pod(PodCreateData(**payload.model_dump())))


@router.put("/{pod_id}")
def update_pod(
    pod_id: UUID,
    payload: PodUpdatePayload,
    _: RequestUserContext = Depends(require_admin),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    return service.serialize_pod(service.update_pod(pod_id, PodUpdateData(**payload.model_dump())))


@router.delete("/{pod_id}", status_code=204)
def delete_pod(
    pod_id: UUID,
    _: RequestUserContext = Depends(require_admin),
    db: Session = Depends(get_db_session),
) -> Response:
    _service(db).delete_pod(pod_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------- Members ----------
@router.get("/{pod_id}/members")
def list_members(
    pod_id: UUID,
    active_only: bool = False,
    _: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    rows = service.list_members(pod_id, active_only=active_only)
    return {"items": [service.serialize_membership(row) for row in rows]}


@router.post("/{pod_id}/members", status_code=201)
def add_member(
    pod_id: UUID,
    payload: MembershipCreatePayload,
    _: RequestUserContext = Depends(require_admin),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    membership, warning = service.add_member(pod_id, MembershipCreateData(**payload.model_dump()))
    return {"membership": service.serialize_membership(membership), "warning": warning}


@router.delete("/{pod_id}/members/{membership_id}")
def end_member(
    pod_id: UUID,
    membership_id: UUID,
    end_date: date | None = None,
    _: RequestUserContext = Depends(require_admin),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    return service.serialize_membership(service.end_member(pod_id, membership_id, end_date))


# ---------- Project mappings ----------
@router.get("/{pod_id}/projects")
def list_project_mappings(
    pod_id: UUID,
    active_only: bool = False,
    _: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    rows = service.list_project_mappings(pod_id, active_only=active_only)
    return {"items": [service.serialize_mapping(row) for row in rows]}


@router.post("/{pod_id}/projects", status_code=201)
def add_project_mapping(
    pod_id: UUID,
    payload: ProjectMappingCreatePayload,
    _: RequestUserContext = Depends(require_admin),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    mapping = service.add_project_mapping(pod_id, ProjectMappingCreateData(**payload.model_dump()))
    return service.serialize_mapping(mapping)


@router.delete("/{pod_id}/projects/{mapping_id}")
def end_project_mapping(
    pod_id: UUID,
    mapping_id: UUID,
    end_date: date | None = None,
    _: RequestUserContext = Depends(require_admin),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    return service.serialize_mapping(service.end_project_mapping(pod_id, mapping_id, end_date))
