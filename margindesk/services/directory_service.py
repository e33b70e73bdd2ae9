"""Application service for clients, projects, people and products."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from margindesk.core.config import get_settings
from margindesk.models.entities import (
    Client,
    ManagerHistory,
    Person,
    PricingModel,
    Product,
    ProductType,
    Project,
    ProjectStatus,
    StaffCategory,
)
from margindesk.repositories.directory_repository import DirectoryRepository
from margindesk.services.money import money_str

UNKNOWN_CLIENT_NAME = "Unknown Client"


@dataclass(slots=True)
class ClientCreateData:
    name: str
    billing_currency: str = "INR"
    tags: list[str] = field(default_factory=list)


@dataclass(slots=True)
class ClientUpdateData:
    name: str | None = None
    billing_currency: str | None = None
    tags: list[str] | None = None


@dataclass(slots=True)
class ProjectCreateData:
    client_id: UUID
    name: str
    pricing_model: PricingModel = PricingModel.TNM
    status: ProjectStatus = ProjectStatus.DRAFT
    start_date: date | None = None
    end_date: date | None = None
    currency: str = "INR"
    budget: Decimal | None = None


@dataclass(slots=True)
class ProjectUpdateData:
    client_id: UUID | None = None
    name: str | None = None
    pricing_model: PricingModel | None = None
    status: ProjectStatus | None = None
    start_date: date | None = None
    end_date: date | None = None
    currency: str | None = None
    budget: Decimal | None = None


@dataclass(slots=True)
class PersonCreateData:
    email: str
    name: str
    start_date: date
    role: str = "Employee"
    department: str | None = None
    staff_category: StaffCategory | None = None
    billable: bool = True
    ctc_monthly: Decimal = Decimal("0.00")
    utilization_target: Decimal = Decimal("0.80")
    end_date: date | None = None
    employee_code: str | None = None
    zoho_employee_id: str | None = None
    manager_id: UUID | None = None


@dataclass(slots=True)
class PersonUpdateData:
    email: str | None = None
    name: str | None = None
    role: str | None = None
    department: str | None = None
    staff_category: StaffCategory | None = None
    billable: bool | None = None
    ctc_monthly: Decimal | None = None
    utilization_target: Decimal | None = None
    start_date: date | None = None
    end_date: date | None = None
    employee_code: str | None = None
    manager_id: UUID | None = None


@dataclass(slots=True)
class ProductCreateData:
    name: str
    type: ProductType
    description: str | None = None


@dataclass(slots=True)
class ProductUpdateData:
    name: str | None = None
    type: ProductType | None = None
    description: str | None = None


def classify_department(department: str | None, support_departments: list[str]) -> StaffCategory:
    """Default staff category: overhead departments (or none) are support."""

    if not department or not department.strip():
        return StaffCategory.SUPPORT
    normalized = {item.strip().lower() for item in support_departments}
    if department.strip().lower() in normalized:
        return StaffCategory.SUPPORT
    return StaffCategory.OPERATIONAL


class DirectoryService:
    """CRUD rules for reference entities."""

    def __init__(self, db: Session) -> None:
        self.db = db
        self.repo = DirectoryRepository(db)
        self.settings = get_settings()

    # ---------- Serializers ----------
    @staticmethod
    def serialize_client(client: Client, project_count: int | None = None) -> dict[str, object]:
        payload: dict[str, object] = {
            "id": str(client.id),
            "name": client.name,
            "billing_currency": client.billing_currency,
            "tags": list(client.tags or []),
            "created_at": client.created_at.isoformat(),
        }
        if project_count is not None:
            payload["project_count"] = project_count
        return payload

    @staticmethod
    def serialize_project(project: Project) -> dict[str, object]:
        return {
            "id": str(project.id),
            "client_id": str(project.client_id),
            "name": project.name,
            "pricing_model": project.pricing_model.value,
            "status": project.status.value,
            "start_date": project.start_date.isoformat() if project.start_date else None,
            "end_date": project.end_date.isoformat() if project.end_date else None,
            "currency": project.currency,
            "budget": money_str(project.budget),
        }

    @staticmethod
    def serialize_person(person: Person) -> dict[str, object]:
        return {
            "id": str(person.id),
            "email": person.email,
            "name": person.name,
            "role": person.role,
            "department": person.department,
            "staff_category": person.staff_category.value,
            "billable": person.billable,
            "ctc_monthly": money_str(person.ctc_monthly),
            "utilization_target": str(person.utilization_target),
            "start_date": person.start_date.isoformat(),
            "end_date": person.end_date.isoformat() if person.end_date else None,
            "employee_code": person.employee_code,
            "zoho_employee_id": person.zoho_employee_id,
            "manager_id": str(person.manager_id) if person.manager_id else None,
        }

    @staticmethod
    def serialize_manager_history(row: ManagerHistory) -> dict[str, object]:
        return {
            "id": str(row.id),
            "person_id": str(row.person_id),
            "manager_id": str(row.manager_id),
            "start_date": row.start_date.isoformat(),
            "end_date": row.end_date.isoformat() if row.end_date else None,
        }

    @staticmethod
    def serialize_product(product: Product) -> dict[str, object]:
        return {
            "id": str(product.id),
            "name": product.name,
            "type": product.type.value,
            "description": product.description,
        }

    def _commit_or_conflict(self, message: str, write: Callable[[], object] | None = None) -> None:
        try:
            if write is not None:
                write()
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=message) from exc

    # ---------- Clients ----------
    def list_clients(self) -> list[tuple[Client, int]]:
        counts = self.repo.count_projects_by_client()
        return [(client, counts.get(client.id, 0)) for client in self.repo.list_clients()]

    def get_client(self, client_id: UUID) -> Client:
        client = self.repo.get_client(client_id)
        if client is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Client not found")
        return client

    def create_client(self, data: ClientCreateData) -> Client:
        now = datetime.utcnow()
        client = Client(
            name=data.name.strip(),
            billing_currency=data.billing_currency.strip().upper(),
            tags=[tag.strip() for tag in data.tags if tag.strip()],
            created_at=now,
            updated_at=now,
        )
        self.repo.add_client(client)
        self.db.commit()
        self.db.refresh(client)
        return client

    def get_or_create_unknown_client(self) -> Client:
        """Placeholder client for projects auto-created by imports; caller commits."""

        client = self.repo.get_client_by_name(UNKNOWN_CLIENT_NAME)
        if client is None:
            now = datetime.utcnow()
            client = Client(
                name=UNKNOWN_CLIENT_NAME,
                billing_currency="INR",
                tags=["auto-created"],
                created_at=now,
                updated_at=now,
            )
            self.repo.add_client(client)
        return client

    def update_client(self, client_id: UUID, data: ClientUpdateData) -> Client:
        client = self.get_client(client_id)
        if data.name is not None:
            client.name = data.name.strip()
        if data.billing_currency is not None:
            client.billing_currency = data.billing_currency.strip().upper()
        if data.tags is not None:
            client.tags = [tag.strip() for tag in data.tags if tag.strip()]
        client.updated_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(client)
        return client

    def delete_client(self, client_id: UUID) -> None:
        client = self.get_client(client_id)
        if self.repo.list_projects(client_id=client.id):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Client has projects and cannot be deleted.",
            )
        self.repo.delete_client(client)
        self.db.commit()

    # ---------- Projects ----------
    def list_projects(self, *, status_filter: ProjectStatus | None, client_id: UUID | None) -> list[Project]:
        return self.repo.list_projects(status=status_filter, client_id=client_id)

    def get_project(self, project_id: UUID) -> Project:
        project = self.repo.get_project(project_id)
        if project is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")
        return project

    @staticmethod
    def _validate_date_order(start: date | None, end: date | None) -> None:
        if start is not None and end is not None and end < start:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="end_date must be greater than or equal to start_date.",
            )

    def create_project(self, data: ProjectCreateData) -> Project:
        self.get_client(data.client_id)
        self._validate_date_order(data.start_date, data.end_date)

        now = datetime.utcnow()
        project = Project(
            client_id=data.client_id,
            name=data.name.strip(),
            pricing_model=data.pricing_model,
            status=data.status,
            start_date=data.start_date,
            end_date=data.end_date,
            currency=data.currency.strip().upper(),
            budget=data.budget,
            created_at=now,
            updated_at=now,
        )
        self.repo.add_project(project)
        self.db.commit()
        self.db.refresh(project)
        return project

    def update_project(self, project_id: UUID, data: ProjectUpdateData) -> Project:
        project = self.get_project(project_id)
        if data.client_id is not None:
            self.get_client(data.client_id)
            project.client_id = data.client_id
        if data.name is not None:
            project.name = data.name.strip()
        if data.pricing_model is not None:
            project.pricing_model = data.pricing_model
        if data.status is not None:
            project.status = data.status
        if data.start_date is not None:
            project.start_date = data.start_date
        if data.end_date is not None:
            project.end_date = data.end_date
        if data.currency is not None:
            project.currency = data.currency.strip().upper()
        if data.budget is not None:
            project.budget = data.budget
        self._validate_date_order(project.start_date, project.end_date)

        project.updated_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(project)
        return project

    def delete_project(self, project_id: UUID) -> None:
        project = self.get_project(project_id)
        self._commit_or_conflict(
            write=lambda: self.repo.delete_project(project),
            message="Project is referenced by other records and cannot be deleted.",
        )

    # ---------- People ----------
    def list_people(
        self,
        *,
        active: bool | None,
        billable: bool | None,
        department: str | None,
        staff_category: StaffCategory | None,
    ) -> list[Person]:
        people = self.repo.list_people(
            active_on=date.today() if active else None,
            billable=billable,
            department=department,
            staff_category=staff_category,
        )
        if active is False:
            today = date.today()
            people = [person for person in people if person.end_date is not None and person.end_date < today]
        return people

    def get_person(self, person_id: UUID) -> Person:
        person = self.repo.get_person(person_id)
        if person is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Person not found")
        return person

    def build_person(self, data: PersonCreateData) -> Person:
        """Construct and stage a person; the caller commits."""

        now = datetime.utcnow()
        person = Person(
            email=data.email.strip().lower(),
            name=data.name.strip(),
            role=data.role.strip() or "Employee",
            department=data.department.strip() if data.department else None,
            staff_category=data.staff_category
            or classify_department(data.department, self.settings.support_departments),
            billable=data.billable,
            ctc_monthly=data.ctc_monthly,
            utilization_target=data.utilization_target,
            start_date=data.start_date,
            end_date=data.end_date,
            employee_code=data.employee_code.strip() if data.employee_code else None,
            zoho_employee_id=data.zoho_employee_id,
            manager_id=data.manager_id,
            created_at=now,
            updated_at=now,
        )
        self.repo.add_person(person)
        if data.manager_id is not None:
            self.repo.add_manager_history(
                ManagerHistory(person_id=person.id, manager_id=data.manager_id, start_date=date.today())
            )
        return person

    def create_person(self, data: PersonCreateData) -> Person:
        self._validate_date_order(data.start_date, data.end_date)
        if data.manager_id is not None:
            self.get_person(data.manager_id)
        try:
            person = self.build_person(data)
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="A person with this email or employee code already exists.",
            ) from exc
        self.db.refresh(person)
        return person

    def change_manager(self, person: Person, manager_id: UUID | None, *, effective: date | None = None) -> None:
        """Close the open manager-history row and open a new one; caller commits."""

        if person.manager_id == manager_id:
            return
        effective = effective or date.today()
        open_row = self.repo.get_open_manager_history(person.id)
        if open_row is not None:
            open_row.end_date = effective
        if manager_id is not None:
            self.repo.add_manager_history(
                ManagerHistory(person_id=person.id, manager_id=manager_id, start_date=effective)
            )
        person.manager_id = manager_id

    def update_person(self, person_id: UUID, data: PersonUpdateData) -> Person:
        person = self.get_person(person_id)
        if data.email is not None:
            person.email = data.email.strip().lower()
        if data.name is not None:
            person.name = data.name.strip()
        if data.role is not None:
            person.role = data.role.strip()
        if data.department is not None:
            person.department = data.department.strip() or None
        if data.staff_category is not None:
            person.staff_category = data.staff_category
        if data.billable is not None:
            person.billable = data.billable
        if data.ctc_monthly is not None:
            person.ctc_monthly = data.ctc_monthly
        if data.utilization_target is not None:
            person.utilization_target = data.utilization_target
        if data.start_date is not None:
            person.start_date = data.start_date
        if data.end_date is not None:
            person.end_date = data.end_date
        if data.employee_code is not None:
            person.employee_code = data.employee_code.strip() or None
        if data.manager_id is not None:
            if data.manager_id == person.id:
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="A person cannot manage themselves.")
            self.get_person(data.manager_id)
            self.change_manager(person, data.manager_id)
        self._validate_date_order(person.start_date, person.end_date)

        person.updated_at = datetime.utcnow()
        self._commit_or_conflict("A person with this email or employee code already exists.")
        self.db.refresh(person)
        return person

    def delete_person(self, person_id: UUID) -> None:
        person = self.get_person(person_id)
        self._commit_or_conflict(
            write=lambda: self.repo.delete_person(person),
            message="Person is referenced by other records; set end_date instead.",
        )

    def manager_history(self, person_id: UUID) -> list[ManagerHistory]:
        person = self.get_person(person_id)
        return self.repo.list_manager_history(person.id)

    # ---------- Products ----------
    def list_products(self) -> list[Product]:
        return self.repo.list_products()

    def get_product(self, product_id: UUID) -> Product:
        product = self.repo.get_product(product_id)
        if product is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
        return product

    def create_product(self, data: ProductCreateData) -> Product:
        product = Product(
            name=data.name.strip(),
            type=data.type,
            description=data.description,
            created_at=datetime.utcnow(),
        )
        self._commit_or_conflict("Product name already exists.", write=lambda: self.repo.add_product(product))
        self.db.refresh(product)
        return product

    def update_product(self, product_id: UUID, data: ProductUpdateData) -> Product:
        product = self.get_product(product_id)
        if data.name is not None:
            product.name = data.name.strip()
        if data.type is not None:
            product.type = data.type
        if data.description is not None:
            product.description = data.description or None
        self._commit_or_conflict("Product name already exists.")
        self.db.refresh(product)
        return product

    def delete_product(self, product_id: UUID) -> None:
        product = self.get_product(product_id)
        self._commit_or_conflict(
            write=lambda: self.repo.delete_product(product),
            message="Product is referenced by reselling records and cannot be deleted.",
        )
