from __future__ import annotations

import csv
import io
from collections.abc import Callable
from datetime import date, datetime
from decimal import Decimal

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient
from openpyxl import load_workbook
from sqlalchemy.orm import Session

from margindesk.models.entities import Expense, ExpenseStatus, ProjectCost, ProjectCostType, StaffCategory
from margindesk.services.profit_loss_service import ProfitLossService
from margindesk.services.reselling_service import ResellingInvoiceCreateData, ResellingService

MARCH = date(2026, 3, 1)


def _expense(db: Session, amount: str, expense_date: date, *, include: bool = True) -> None:
    now = datetime.utcnow()
    db.add(
        Expense(
            account_name="Office Rent",
            expense_date=expense_date,
            amount=Decimal(amount),
            total=Decimal(amount),
            status=ExpenseStatus.NON_BILLABLE,
            include_in_calculation=include,
            created_at=now,
            updated_at=now,
        )
    )
    db.commit()


@pytest.fixture()
def march_books(db_session: Session, seed, owner_context) -> None:
    support = seed.person("hr@test.local", name="HR Lead", department="HR", staff_category=StaffCategory.SUPPORT)
    engineer = seed.person("eng@test.local", name="Engineer")
    seed.salary(support, MARCH, Decimal("50000.00"), is_support_staff=True)
    seed.salary(engineer, MARCH, Decimal("200000.00"))
    seed.salary(engineer, date(2026, 4, 1), Decimal("999999.00"))

    _expense(db_session, "3000", date(2026, 3, 15))
    _expense(db_session, "999", date(2026, 3, 16), include=False)
    _expense(db_session, "700", date(2026, 4, 2))

    seed.bill(vendor_name="Cloud Host")
    seed.bill(vendor_name="Skipped Vendor", include_in_calculation=False)
    seed.bill(vendor_name="Next Month", billed_for_month=date(2026, 4, 1))

    project = seed.project("Managed Services")
    now = datetime.utcnow()
    db_session.add(
        ProjectCost(
            project_id=project.id,
            period_month=MARCH,
            type=ProjectCostType.OTHER,
            amount=Decimal("400000.00"),
            created_at=now,
            updated_at=now,
        )
    )
    db_session.commit()

    ResellingService(db_session).create_invoice(
        context=owner_context,
        project_id=project.id,
        data=ResellingInvoiceCreateData(
            product_id=seed.product("Security Suite").id,
            period_month=MARCH,
            invoice_date=date(2026, 3, 30),
            invoice_amount=Decimal("20000"),
            resource_cost=Decimal("1000"),
            other_expenses=Decimal("500"),
        ),
    )


@pytest.mark.usefixtures("march_books")
def test_report_combines_revenue_overheads_and_reselling(db_session: Session) -> None:
    report = ProfitLossService(db_session).report(MARCH)

    assert report["month"] == "2026-03"
    assert report["summary"] == {
        "revenue": "420000.00",
        "total_costs": "264500.00",
        "profit_loss": "155500.00",
        "profit_margin_percentage": "37.02",
        "project_revenue": "400000.00",
        "reselling_revenue": "20000.00",
    }
    assert report["overheads"]["total"] == "63000.00"
    assert report["overheads"]["breakdown"] == {
        "support_staff_salaries": "50000.00",
        "expenses": "3000.00",
        "bills": "10000.00",
    }
    assert report["operational_costs"] == {"total": "200000.00", "staff_count": 1}
    assert report["reselling_revenue"]["invoice_count"] == 1
    assert report["reselling_revenue"]["gross_profit"] == "18500.00"
    assert report["reselling_revenue"]["by_product"][0]["product_name"] == "Security Suite"
    assert report["revenue_details"]["projects"][0]["client_name"] == "Acme"
    assert [row["vendor_name"] for row in report["detailed_breakdown"]["bills"]] == ["Cloud Host"]


def test_empty_month_has_zero_margin(db_session: Session) -> None:
    report = ProfitLossService(db_session).report(date(2025, 1, 1))

    assert report["summary"]["revenue"] == "0.00"
    assert report["summary"]["profit_margin_percentage"] == "0.00"


@pytest.mark.usefixtures("march_books")
def test_csv_export(client: TestClient, auth_headers: Callable[..., dict[str, str]]) -> None:
    response = client.get(
        "/api/v1/reports/profit-loss/export",
        headers=auth_headers(),
        params={"month": "2026-03", "format": "csv"},
    )

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert 'filename="profit-loss-2026-03.csv"' in response.headers["content-disposition"]
    rows = list(csv.DictReader(io.StringIO(response.text)))
    assert {"section": "summary", "item": "revenue", "amount": "420000.00"} in rows
    assert {"section": "project_revenue", "item": "Managed Services", "amount": "400000.00"} in rows


@pytest.mark.usefixtures("march_books")
def test_xlsx_export(db_session: Session) -> None:
    exported = ProfitLossService(db_session).export(MARCH, "XLSX")

    assert exported.filename == "profit-loss-2026-03.xlsx"
    workbook = load_workbook(io.BytesIO(exported.content))
    sheet = workbook["profit-loss"]
    rows = list(sheet.iter_rows(values_only=True))
    assert rows[0] == ("section", "item", "amount")
    assert rows[1][:2] == ("summary", "revenue")
    assert Decimal(str(rows[1][2])) == Decimal("420000")


def test_export_rejects_unknown_format(db_session: Session) -> None:
    with pytest.raises(HTTPException) as exc_info:
        ProfitLossService(db_session).export(MARCH, "pdf")

    assert exc_info.value.status_code == 400
    assert exc_info.value.detail == "format must be one of: csv, xlsx."


def test_report_requires_month(client: TestClient, auth_headers: Callable[..., dict[str, str]]) -> None:
    headers = auth_headers()

    missing = client.get("/api/v1/reports/profit-loss", headers=headers)
    malformed = client.get("/api/v1/reports/profit-loss", headers=headers, params={"month": "March"})

    assert missing.status_code == 400
    assert missing.json()["error"] == "month parameter is required (format: YYYY-MM)"
    assert malformed.status_code == 400
    assert malformed.json()["error"] == "Invalid month format. Use YYYY-MM"
