from __future__ import annotations

from collections.abc import Callable
from datetime import date, datetime
from decimal import Decimal

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from margindesk.core.auth import AppRole
from margindesk.models.entities import Allocation, AuditLog, ResellingBillAllocation
from margindesk.services.reselling_service import BatchInvoiceRow, ResellingService, bill_base_amount


def _create_invoice(client: TestClient, headers: dict[str, str], project_id, product_id, amount: str = "20000") -> dict:
    response = client.post(
        f"/api/v1/projects/{project_id}/reselling-invoices",
        headers=headers,
        json={
            "product_id": str(product_id),
            "period_month": "2026-03",
            "invoice_date": "2026-03-28",
            "invoice_amount": amount,
            "invoice_id": "INV-0042",
            "resource_cost": "1000",
            "other_expenses": "500",
        },
    )
    assert response.status_code == 201
    return response.json()


def test_bill_base_amount_prefers_sub_total(seed) -> None:
    assert bill_base_amount(seed.bill()) == Decimal("10000.00")
    assert bill_base_amount(seed.bill(vendor_name="No Sub", sub_total=None)) == Decimal("11800.00")


def test_invoice_totals_follow_allocations(
    client: TestClient,
    seed,
    auth_headers: Callable[..., dict[str, str]],
) -> None:
    headers = auth_headers()
    project = seed.project()
    product = seed.product()
    bill = seed.bill()

    invoice = _create_invoice(client, headers, project.id, product.id)
    assert invoice["invoice_id"] == "INV-0042"
    assert invoice["total_cost"] == "1500.00"
    assert invoice["gross_profit"] == "18500.00"

    added = client.post(
        f"/api/v1/reselling-invoices/{invoice['id']}/allocations",
        headers=headers,
        json={"bill_id": str(bill.id), "product_id": str(product.id), "allocation_percentage": "60"},
    )
    assert added.status_code == 201
    assert added.json()["allocated_amount"] == "6000.00"
    assert added.json()["bill"]["vendor_name"] == "OEM Vendor"

    refreshed = client.get(f"/api/v1/reselling-invoices/{invoice['id']}", headers=headers).json()
    assert refreshed["total_oem_cost"] == "6000.00"
    assert refreshed["total_cost"] == "7500.00"
    assert refreshed["gross_profit"] == "12500.00"
    assert refreshed["profit_margin_pct"] == "62.50"

    lowered = client.put(
        f"/api/v1/bill-allocations/{added.json()['id']}",
        headers=headers,
        json={"allocation_percentage": "50"},
    )
    assert lowered.status_code == 200
    assert lowered.json()["allocated_amount"] == "5000.00"

    refreshed = client.get(f"/api/v1/reselling-invoices/{invoice['id']}", headers=headers).json()
    assert refreshed["total_oem_cost"] == "5000.00"
    assert refreshed["profit_margin_pct"] == "67.50"

    listed = client.get(f"/api/v1/reselling-invoices/{invoice['id']}/allocations", headers=headers).json()
    assert listed["count"] == 1
    assert listed["total_allocated_amount"] == "5000.00"

    removed = client.delete(f"/api/v1/bill-allocations/{added.json()['id']}", headers=headers)
    assert removed.status_code == 204
    refreshed = client.get(f"/api/v1/reselling-invoices/{invoice['id']}", headers=headers).json()
    assert refreshed["total_oem_cost"] == "0.00"
    assert refreshed["total_cost"] == "1500.00"


def test_bill_cannot_be_allocated_beyond_one_hundred_percent(
    client: TestClient,
    db_session: Session,
    seed,
    auth_headers: Callable[..., dict[str, str]],
) -> None:
    headers = auth_headers()
    product = seed.product()
    bill = seed.bill()
    first = _create_invoice(client, headers, seed.project("Alpha").id, product.id)
    second = _create_invoice(client, headers, seed.project("Beta").id, product.id)
    third = _create_invoice(client, headers, seed.project("Gamma").id, product.id)

    def allocate(invoice_id: str, pct: str):
        return client.post(
            f"/api/v1/reselling-invoices/{invoice_id}/allocations",
            headers=headers,
            json={"bill_id": str(bill.id), "product_id": str(product.id), "allocation_percentage": pct},
        )

    assert allocate(first["id"], "60").status_code == 201
    assert allocate(second["id"], "40").status_code == 201

    rejected = allocate(third["id"], "10")
    assert rejected.status_code == 400
    body = rejected.json()
    assert body["error"] == "Over-allocation"
    assert body["message"] == (
        "Over-allocation: Total 110.00% exceeds 100%. Currently allocated: 100.00%, attempting to add: 10.00%"
    )
    assert body["current_total"] == "100.00"
    assert db_session.query(ResellingBillAllocation).count() == 2

    untouched = client.get(f"/api/v1/reselling-invoices/{third['id']}", headers=headers).json()
    assert untouched["total_oem_cost"] == "0.00"

    summary = client.get(f"/api/v1/bills/{bill.id}/allocations", headers=headers).json()
    assert summary["total_allocated_percentage"] == "100.00"
    assert summary["remaining_percentage"] == "0.00"


def test_raising_existing_allocation_checks_capacity_without_itself(
    client: TestClient,
    seed,
    auth_headers: Callable[..., dict[str, str]],
) -> None:
    headers = auth_headers()
    product = seed.product()
    bill = seed.bill()
    first = _create_invoice(client, headers, seed.project("Alpha").id, product.id)
    second = _create_invoice(client, headers, seed.project("Beta").id, product.id)
    allocation = client.post(
        f"/api/v1/reselling-invoices/{first['id']}/allocations",
        headers=headers,
        json={"bill_id": str(bill.id), "product_id": str(product.id), "allocation_percentage": "60"},
    ).json()
    client.post(
        f"/api/v1/reselling-invoices/{second['id']}/allocations",
        headers=headers,
        json={"bill_id": str(bill.id), "product_id": str(product.id), "allocation_percentage": "30"},
    )

    within = client.put(f"/api/v1/bill-allocations/{allocation['id']}", headers=headers, json={"allocation_percentage": "70"})
    beyond = client.put(f"/api/v1/bill-allocations/{allocation['id']}", headers=headers, json={"allocation_percentage": "75"})

    assert within.status_code == 200
    assert beyond.status_code == 400
    assert beyond.json()["error"] == "Over-allocation"


def test_same_bill_twice_on_one_invoice_is_rejected(
    client: TestClient,
    seed,
    auth_headers: Callable[..., dict[str, str]],
) -> None:
    headers = auth_headers()
    product = seed.product()
    bill = seed.bill()
    invoice = _create_invoice(client, headers, seed.project().id, product.id)
    payload = {"bill_id": str(bill.id), "product_id": str(product.id), "allocation_percentage": "20"}

    client.post(f"/api/v1/reselling-invoices/{invoice['id']}/allocations", headers=headers, json=payload)
    duplicate = client.post(f"/api/v1/reselling-invoices/{invoice['id']}/allocations", headers=headers, json=payload)

    assert duplicate.status_code == 400
    assert duplicate.json()["error"] == "Bill already allocated to this invoice. Use PUT to update."


def test_percentage_outside_range_is_rejected(
    client: TestClient,
    seed,
    auth_headers: Callable[..., dict[str, str]],
) -> None:
    headers = auth_headers()
    product = seed.product()
    invoice = _create_invoice(client, headers, seed.project().id, product.id)

    response = client.post(
        f"/api/v1/reselling-invoices/{invoice['id']}/allocations",
        headers=headers,
        json={"bill_id": str(seed.bill().id), "product_id": str(product.id), "allocation_percentage": "120"},
    )

    assert response.status_code == 400


def test_deleting_invoice_removes_allocations(
    client: TestClient,
    db_session: Session,
    seed,
    auth_headers: Callable[..., dict[str, str]],
) -> None:
    headers = auth_headers()
    product = seed.product()
    invoice = _create_invoice(client, headers, seed.project().id, product.id)
    client.post(
        f"/api/v1/reselling-invoices/{invoice['id']}/allocations",
        headers=headers,
        json={"bill_id": str(seed.bill().id), "product_id": str(product.id), "allocation_percentage": "25"},
    )

    response = client.delete(f"/api/v1/reselling-invoices/{invoice['id']}", headers=headers)

    assert response.json() == {"success": True, "bill_allocations_deleted": 1}
    assert db_session.query(ResellingBillAllocation).count() == 0
    assert db_session.query(AuditLog).filter(AuditLog.action == "delete").count() == 1


def test_pm_cannot_create_invoice(
    client: TestClient,
    seed,
    auth_headers: Callable[..., dict[str, str]],
) -> None:
    response = client.post(
        f"/api/v1/projects/{seed.project().id}/reselling-invoices",
        headers=auth_headers(AppRole.PM),
        json={
            "product_id": str(seed.product().id),
            "period_month": "2026-03",
            "invoice_date": "2026-03-28",
            "invoice_amount": "100",
        },
    )

    assert response.status_code == 403


def test_batch_upsert_computes_resource_cost_and_reports_row_errors(
    db_session: Session,
    seed,
    owner_context,
) -> None:
    project = seed.project()
    product = seed.product()
    person = seed.person()
    seed.salary(person, date(2026, 3, 1), Decimal("200000.00"))
    now = datetime.utcnow()
    db_session.add(
        Allocation(
            person_id=person.id,
            project_id=project.id,
            period_month=date(2026, 3, 1),
            pct_effort=Decimal("25.00"),
            created_at=now,
            updated_at=now,
        )
    )
    db_session.commit()
    service = ResellingService(db_session)

    first = service.batch_upsert(
        context=owner_context,
        rows=[
            BatchInvoiceRow(project.id, product.id, "2026-03", Decimal("90000"), Decimal("1000")),
            BatchInvoiceRow(project.id, product.id, "2026/03", Decimal("100")),
            BatchInvoiceRow(project.id, product.id, "2026-04", Decimal("0")),
        ],
    )
    assert first["created"] == 1
    assert first["updated"] == 0
    assert [error["index"] for error in first["errors"]] == [1, 2]
    assert first["errors"][0]["error"] == "Invalid month format. Use YYYY-MM"

    second = service.batch_upsert(
        context=owner_context,
        rows=[BatchInvoiceRow(project.id, product.id, "2026-03", Decimal("95000"))],
    )
    assert second == {"created": 0, "updated": 1, "errors": []}

    invoices = service.list_invoices(project_id=project.id)
    assert len(invoices) == 1
    assert invoices[0].resource_cost == Decimal("50000.00")
    assert invoices[0].invoice_amount == Decimal("95000.00")
    assert invoices[0].total_cost == Decimal("50000.00")
    assert invoices[0].gross_profit == Decimal("45000.00")
