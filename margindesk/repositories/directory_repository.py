"""Repository helpers for clients, projects, people and products."""

from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy import and_, func, or_, select
from sqlalchemy.orm import Session

from margindesk.models.entities import (
    Client,
    ManagerHistory,
    Person,
    Product,
    Project,
    ProjectStatus,
    StaffCategory,
)


class DirectoryRepository:
    """Persistence operations for reference entities."""

    def __init__(self, db: Session) -> None:
        self.db = db

    # ---------- Clients ----------
    def list_clients(self) -> list[Client]:
        return self.db.scalars(select(Client).order_by(Client.name.asc())).all()

    def get_client(self, client_id: UUID) -> Client | None:
        return self.db.scalar(select(Client).where(Client.id == client_id))

    def get_client_by_name(self, name: str) -> Client | None:
        return self.db.scalar(select(Client).where(Client.name == name))

    def count_projects_by_client(self) -> dict[UUID, int]:
        rows = self.db.execute(select(Project.client_id, func.count(Project.id)).group_by(Project.client_id)).all()
        return {client_id: count for client_id, count in rows}

    def add_client(self, client: Client) -> Client:
        self.db.add(client)
        self.db.flush()
        return client

    def delete_client(self, client: Client) -> None:
        self.db.delete(client)
        self.db.flush()

    # ---------- Projects ----------
    def list_projects(
        self,
        *,
        status: ProjectStatus | None = None,
        client_id: UUID | None = None,
    ) -> list[Project]:
        query = select(Project)
        if status is not None:
            query = query.where(Project.status == status)
        if client_id is not None:
            query = query.where(Project.client_id == client_id)
        return self.db.scalars(query.order_by(Project.name.asc())).all()

    def get_project(self, project_id: UUID) -> Project | None:
        return self.db.scalar(select(Project).where(Project.id == project_id))

    def get_project_by_name(self, name: str) -> Project | None:
        return self.db.scalar(select(Project).where(Project.name == name).order_by(Project.created_at.asc()).limit(1))

    def list_projects_by_ids(self, project_ids: set[UUID]) -> list[Project]:
        if not project_ids:
            return []
        return self.db.scalars(select(Project).where(Project.id.in_(project_ids))).all()

    def add_project(self, project: Project) -> Project:
        self.db.add(project)
        self.db.flush()
        return project

    def delete_project(self, project: Project) -> None:
        self.db.delete(project)
        self.db.flush()

    # ---------- People ----------
    def list_people(
        self,
        *,
        active_on: date | None = None,
        billable: bool | None = None,
        department: str | None = None,
        staff_category: StaffCategory | None = None,
    ) -> list[Person]:
        query = select(Person)
        if active_on is not None:
            query = query.where(or_(Person.end_date.is_(None), Person.end_date >= active_on))
        if billable is not None:
            query = query.where(Person.billable.is_(billable))
        if department is not None:
            query = query.where(Person.department == department)
        if staff_category is not None:
            query = query.where(Person.staff_category == staff_category)
        return self.db.scalars(query.order_by(Person.name.asc())).all()

    def list_people_employed_in(self, first_day: date) -> list[Person]:
        """People whose employment has not ended before ``first_day``."""

        return self.db.scalars(
            select(Person)
            .where(or_(Person.end_date.is_(None), Person.end_date >= first_day))
            .order_by(Person.name.asc())
        ).all()

    def list_people_by_ids(self, person_ids: set[UUID]) -> list[Person]:
        if not person_ids:
            return []
        return self.db.scalars(select(Person).where(Person.id.in_(person_ids))).all()

    def get_person(self, person_id: UUID) -> Person | None:
        return self.db.scalar(select(Person).where(Person.id == person_id))

    def get_person_by_email(self, email: str) -> Person | None:
        return self.db.scalar(select(Person).where(func.lower(Person.email) == email.lower()))

    def get_person_by_employee_code(self, employee_code: str) -> Person | None:
        return self.db.scalar(select(Person).where(Person.employee_code == employee_code))

    def get_person_by_zoho_id(self, zoho_employee_id: str) -> Person | None:
        return self.db.scalar(select(Person).where(Person.zoho_employee_id == zoho_employee_id))

    def add_person(self, person: Person) -> Person:
        self.db.add(person)
        self.db.flush()
        return person

    def delete_person(self, person: Person) -> None:
        self.db.delete(person)
        self.db.flush()

    # ---------- Manager history ----------
    def list_manager_history(self, person_id: UUID) -> list[ManagerHistory]:
        return self.db.scalars(
            select(ManagerHistory)
            .where(ManagerHistory.person_id == person_id)
            .order_by(ManagerHistory.start_date.desc())
        ).all()

    def get_open_manager_history(self, person_id: UUID) -> ManagerHistory | None:
        return self.db.scalar(
            select(ManagerHistory).where(
                and_(ManagerHistory.person_id == person_id, ManagerHistory.end_date.is_(None))
            )
        )

    def add_manager_history(self, row: ManagerHistory) -> ManagerHistory:
        self.db.add(row)
        self.db.flush()
        return row

    # ---------- Products ----------
    def list_products(self) -> list[Product]:
        return self.db.scalars(select(Product).order_by(Product.name.asc())).all()

    def get_product(self, product_id: UUID) -> Product | None:
        return self.db.scalar(select(Product).where(Product.id == product_id))

    def list_products_by_ids(self, product_ids: set[UUID]) -> list[Product]:
        if not product_ids:
            return []
        return self.db.scalars(select(Product).where(Product.id.in_(product_ids))).all()

    def add_product(self, product: Product) -> Product:
        self.db.add(product)
        self.db.flush()
        return product

    def delete_product(self, product: Product) -> None:
        self.db.delete(product)
        self.db.flush()
