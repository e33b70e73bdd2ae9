from __future__ import annotations

from collections.abc import Callable, Generator
from datetime import date, datetime
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from margindesk.core.auth import USER_ROLE_TO_APP_ROLE, AppRole, RequestUserContext, ensure_user_principal
from margindesk.db.base import Base
from margindesk.db.dependencies import get_db_session
import margindesk.models.entities  # noqa: F401
from margindesk.main import create_app
from margindesk.models.entities import (
    Bill,
    BillStatus,
    Client,
    Person,
    PersonSalary,
    PricingModel,
    Product,
    ProductType,
    Project,
    ProjectStatus,
    StaffCategory,
)


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )

    # pysqlite needs explicit BEGIN for SAVEPOINT (begin_nested) to behave.
    @event.listens_for(engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn) -> None:
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    app = create_app()

    def override_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db_session] = override_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def identity_headers(subject: str, email: str, display_name: str) -> dict[str, str]:
    return {
        "X-User-Sub": subject,
        "X-User-Email": email,
        "X-User-Name": display_name,
    }


@pytest.fixture()
def auth_headers(db_session: Session) -> Callable[..., dict[str, str]]:
    """Build identity headers for a persisted user holding ``role``."""

    def build(role: AppRole = AppRole.OWNER, *, subject: str | None = None) -> dict[str, str]:
        subject = subject or f"sub-{role.value}"
        email = f"{subject}@test.local"
        ensure_user_principal(db_session, subject=subject, email=email, display_name=subject, role=role)
        return identity_headers(subject, email, subject)

    return build


@pytest.fixture()
def owner_context(db_session: Session) -> RequestUserContext:
    user = ensure_user_principal(
        db_session,
        subject="svc-owner",
        email="svc.owner@test.local",
        display_name="Service Owner",
        role=AppRole.OWNER,
    )
    return RequestUserContext(
        user_id=user.id,
        subject=user.subject,
        email=user.email,
        display_name=user.display_name,
        status=user.status,
        role=USER_ROLE_TO_APP_ROLE[user.role],
    )


class Seed:
    """Direct ORM inserts for test arrangement."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def _save(self, row):
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return row

    def client(self, name: str = "Acme") -> Client:
        now = datetime.utcnow()
        return self._save(Client(name=name, billing_currency="INR", tags=[], created_at=now, updated_at=now))

    def project(self, name: str = "Platform Build", client: Client | None = None) -> Project:
        client = client or self.client()
        now = datetime.utcnow()
        return self._save(
            Project(
                client_id=client.id,
                name=name,
                pricing_model=PricingModel.TNM,
                status=ProjectStatus.ACTIVE,
                currency="INR",
                created_at=now,
                updated_at=now,
            )
        )

    def person(
        self,
        email: str = "dev@test.local",
        *,
        name: str = "Dev One",
        department: str | None = "Engineering",
        staff_category: StaffCategory = StaffCategory.OPERATIONAL,
        start_date: date = date(2024, 1, 1),
        end_date: date | None = None,
        employee_code: str | None = None,
        zoho_employee_id: str | None = None,
    ) -> Person:
        now = datetime.utcnow()
        return self._save(
            Person(
                email=email,
                name=name,
                role="Engineer",
                department=department,
                staff_category=staff_category,
                billable=True,
                ctc_monthly=Decimal("100000.00"),
                utilization_target=Decimal("0.80"),
                start_date=start_date,
                end_date=end_date,
                employee_code=employee_code,
                zoho_employee_id=zoho_employee_id,
                created_at=now,
                updated_at=now,
            )
        )

    def product(self, name: str = "Cloud Licenses", type_: ProductType = ProductType.RESELLING) -> Product:
        return self._save(Product(name=name, type=type_, created_at=datetime.utcnow()))

    def bill(
        self,
        *,
        vendor_name: str = "OEM Vendor",
        total: Decimal = Decimal("11800.00"),
        sub_total: Decimal | None = Decimal("10000.00"),
        bill_date: date = date(2026, 3, 10),
        billed_for_month: date | None = date(2026, 3, 1),
        include_in_calculation: bool = True,
        zoho_bill_id: str | None = None,
    ) -> Bill:
        now = datetime.utcnow()
        return self._save(
            Bill(
                zoho_bill_id=zoho_bill_id,
                vendor_name=vendor_name,
                bill_date=bill_date,
                status=BillStatus.OPEN,
                currency_code="INR",
                total=total,
                balance=total,
                sub_total=sub_total,
                tax_total=(total - sub_total) if sub_total is not None else None,
                billed_for_month=billed_for_month,
                include_in_calculation=include_in_calculation,
                created_at=now,
                updated_at=now,
            )
        )

    def salary(self, person: Person, month: date, total: Decimal, *, is_support_staff: bool = False) -> PersonSalary:
        now = datetime.utcnow()
        return self._save(
            PersonSalary(
                person_id=person.id,
                month=month,
                base_salary=total,
                bonus=Decimal("0.00"),
                deductions=Decimal("0.00"),
                overtime=Decimal("0.00"),
                total=total,
                is_support_staff=is_support_staff,
                created_at=now,
                updated_at=now,
            )
        )


@pytest.fixture()
def seed(db_session: Session) -> Seed:
    return Seed(db_session)
