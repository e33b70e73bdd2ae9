"""Clients, projects, people and products."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from margindesk.core.auth import RequestUserContext, get_current_user_context, require_editor
from margindesk.db.dependencies import get_db_session
from margindesk.models.entities import PricingModel, ProductType, ProjectStatus, StaffCategory
from margindesk.services.directory_service import (
    ClientCreateData,
    ClientUpdateData,
    DirectoryService,
    PersonCreateData,
    PersonUpdateData,
    ProductCreateData,
    ProductUpdateData,
    ProjectCreateData,
    ProjectUpdateData,
)

router = APIRouter(tags=["directory"])


class ClientCreatePayload(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    billing_currency: str = Field(default="INR", min_length=3, max_length=3)
    tags: list[str] = Field(default_factory=list)


class ClientUpdatePayload(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    billing_currency: str | None = Field(default=None, min_length=3, max_length=3)
    tags: list[str] | None = None


class ProjectCreatePayload(BaseModel):
    client_id: UUID
    name: str = Field(min_length=1, max_length=255)
    pricing_model: PricingModel = PricingModel.TNM
    status: ProjectStatus = ProjectStatus.DRAFT
    start_date: date | None = None
    end_date: date | None = None
    currency: str = Field(default="INR", min_length=3, max_length=3)
    budget: Decimal | None = Field(default=None, ge=0)


class ProjectUpdatePayload(BaseModel):
    client_id: UUID | None = None
    name: str | None = Field(default=None, min_length=1, max_length=255)
    pricing_model: PricingModel | None = None
    status: ProjectStatus | None = None
    start_date: date | None = None
    end_date: date | None = None
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    budget: Decimal | None = Field(default=None, ge=0)


class PersonCreatePayload(BaseModel):
    email: str = Field(min_length=3, max_length=320)
    name: str = Field(min_length=1, max_length=255)
    start_date: date
    role: str = Field(default="Employee", min_length=1, max_length=128)
    department: str | None = Field(default=None, max_length=128)
    staff_category: StaffCategory | None = None
    billable: bool = True
    ctc_monthly: Decimal = Field(default=Decimal("0.00"), ge=0)
    utilization_target: Decimal = Field(default=Decimal("0.80"), ge=0, le=1)
    end_date: date | None = None
    employee_code: str | None = Field(default=None, max_length=64)
    manager_id: UUID | None = None


class PersonUpdatePayload(BaseModel):
    email: str | None = Field(default=None, min_length=3, max_length=320)
    name: str | None = Field(default=None, min_length=1, max_length=255)
    role: str | None = Field(default=None, min_length=1, max_length=128)
    department: str | None = Field(default=None, max_length=128)
    staff_category: StaffCategory | None = None
    billable: bool | None = None
    ctc_monthly: Decimal | None = Field(default=None, ge=0)
    utilization_target: Decimal | None = Field(default=None, ge=0, le=1)
    start_date: date | None = None
    end_date: date | None = None
    employee_code: str | None = Field(default=None, max_length=64)
    manager_id: UUID | None = None


class ProductCreatePayload(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    type: ProductType
    description: str | None = Field(default=None, max_length=2000)


class ProductUpdatePayload(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    type: ProductType | None = None
    description: str | None = Field(default=None, max_length=2000)


def _service(db: Session) -> DirectoryService:
    return DirectoryService(db)


# ---------- Clients ----------
@router.get("/clients")
def list_clients(
    _: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    return {"items": [service.serialize_client(client, count) for client, count in service.list_clients()]}


@router.get("/clients/{client_id}")
def get_client(
    client_id: UUID,
    _: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    return service.serialize_client(service.get_client(client_id))


@router.post("/clients", status_code=201)
def create_client(
    payload: ClientCreatePayload,
    _: RequestUserContext = Depends(require_editor),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    client = service.create_client(ClientCreateData(**payload.model_dump()))
    return service.serialize_client(client, 0)


@router.put("/clients/{client_id}")
def update_client(
    client_id: UUID,
    payload: ClientUpdatePayload,
    _: RequestUserContext = Depends(require_editor),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    client = service.update_client(client_id, ClientUpdateData(**payload.model_dump()))
    return service.serialize_client(client)


@router.delete("/clients/{client_id}", status_code=204)
def delete_client(
    client_id: UUID,
    _: RequestUserContext = Depends(require_editor),
    db: Session = Depends(get_db_session),
) -> Response:
    _service(db).delete_client(client_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------- Projects ----------
@router.get("/projects")
def list_projects(
    status_filter: ProjectStatus | None = Query(default=None, alias="status"),
    client_id: UUID | None = None,
    _: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    rows = service.list_projects(status_filter=status_filter, client_id=client_id)
    return {"items": [service.serialize_project(row) for row in rows]}


@router.get("/projects/{project_id}")
def get_project(
    project_id: UUID,
    _: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    return service.serialize_project(service.get_project(project_id))


@router.post("/projects", status_code=201)
def create_project(
    payload: ProjectCreatePayload,
    _: RequestUserContext = Depends(require_editor),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    return service.serialize_project(service.create_project(ProjectCreateData(**payload.model_dump())))


@router.put("/projects/{project_id}")
def update_project(
    project_id: UUID,
    payload: ProjectUpdatePayload,
    _: RequestUserContext = Depends(require_editor),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    project = service.update_project(project_id, ProjectUpdateData(**payload.model_dump()))
    return service.serialize_project(project)


@router.delete("/projects/{project_id}", status_code=204)
def delete_project(
    project_id: UUID,
    _: RequestUserContext = Depends(require_editor),
    db: Session = Depends(get_db_session),
) -> Response:
    _service(db).delete_project(project_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------- People ----------
@router.get("/people")
def list_people(
    active: bool | None = None,
    billable: bool | None = None,
    department: str | None = None,
    staff_category: StaffCategory | None = None,
    _: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    rows = service.list_people(
        active=active,
        billable=billable,
        department=department,
        staff_category=staff_category,
    )
    return {"items": [service.serialize_person(row) for row in rows]}


@router.get("/people/{person_id}")
def get_person(
    person_id: UUID,
    _: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    return service.serialize_person(service.get_person(person_id))


@router.post("/people", status_code=201)
def create_person(
    payload: PersonCreatePayload,
    _: RequestUserContext = Depends(require_editor),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    return service.serialize_person(service.create_person(PersonCreateData(**payload.model_dump())))


@router.put("/people/{person_id}")
def update_person(
    person_id: UUID,
    payload: PersonUpdatePayload,
    _: RequestUserContext = Depends(require_editor),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    person = service.update_person(person_id, PersonUpdateData(**payload.model_dump()))
    return service.serialize_person(person)


@router.delete("/people/{person_id}", status_code=204)
def delete_person(
    person_id: UUID,
    _: RequestUserContext = Depends(require_editor),
    db: Session = Depends(get_db_session),
) -> Response:
    _service(db).delete_person(person_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/people/{person_id}/manager-history")
def get_manager_history(
    person_id: UUID,
    _: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    return {"items": [service.serialize_manager_history(row) for row in service.manager_history(person_id)]}


# ---------- Products ----------
@router.get("/products")
def list_products(
    _: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    return {"items": [service.serialize_product(row) for row in service.list_products()]}


@router.post("/products", status_code=201)
def create_product(
    payload: ProductCreatePayload,
    _: RequestUserContext = Depends(require_editor),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    return service.serialize_product(service.create_product(ProductCreateData(**payload.model_dump())))


@router.put("/products/{product_id}")
def update_product(
    product_id: UUID,
    payload: ProductUpdatePayload,
    _: RequestUserContext = Depends(require_editor),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    product = service.update_product(product_id, ProductUpdateData(**payload.model_dump()))
    return service.serialize_product(product)


@router.delete("/products/{product_id}", status_code=204)
def delete_product(
    product_id: UUID,
    _: RequestUserContext = Depends(require_editor),
    db: Session = Depends(get_db_session),
) -> Response:
    _service(db).delete_product(product_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
