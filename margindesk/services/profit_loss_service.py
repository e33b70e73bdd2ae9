"""Monthly profit and loss aggregation and export."""

from __future__ import annotations

import csv
import io
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from io import BytesIO
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from margindesk.core.periods import format_month, month_bounds
from margindesk.models.entities import Client, Person, Product, Project
from margindesk.repositories.directory_repository import DirectoryRepository
from margindesk.repositories.finance_repository import FinanceRepository
from margindesk.services.money import ZERO, percent_of, q2
from margindesk.services.reselling_service import bill_base_amount


@dataclass(slots=True)
class ExportFilePayload:
    media_type: str
    filename: str
    content: bytes


def _s(value: Decimal) -> str:
    return str(q2(value))


class ProfitLossService:
    """Read-only aggregation over salaries, expenses, bills, project costs and reselling."""

    def __init__(self, db: Session) -> None:
        self.db = db
        self.repo = FinanceRepository(db)
        self.directory = DirectoryRepository(db)

    def report(self, month: date) -> dict[str, object]:
        first_day, last_day = month_bounds(month)

        salaries = self.repo.list_salaries(month=first_day)
        people: dict[UUID, Person] = {
            person.id: person for person in self.directory.list_people_by_ids({row.person_id for row in salaries})
        }
        support = [row for row in salaries if row.is_support_staff]
        operational = [row for row in salaries if not row.is_support_staff]
        support_total = sum((row.total for row in support), ZERO)
        operational_total = sum((row.total for row in operational), ZERO)

        expenses = self.repo.list_expenses(start=first_day, end=last_day, include_in_calculation=True)
        expenses_total = sum((row.amount for row in expenses), ZERO)

        bills = self.repo.list_bills(billed_for_month=first_day, include_in_calculation=True)
        bills_total = sum((bill_base_amount(bill) for bill in bills), ZERO)

        project_costs = self.repo.list_project_costs(start=first_day, end=first_day)
        projects: dict[UUID, Project] = {
            project.id: project
            for project in self.directory.list_projects_by_ids({row.project_id for row in project_costs})
        }
        clients: dict[UUID, Client] = {}
        for project in projects.values():
            if project.client_id not in clients:
                client = self.directory.get_client(project.client_id)
                if client is not None:
                    clients[client.id] = client
        project_revenue = sum((row.amount for row in project_costs), ZERO)

        invoices = self.repo.list_reselling_invoices(period_month=first_day)
        products: dict[UUID, Product] = {
            product.id: product
            for product in self.directory.list_products_by_ids({row.product_id for row in invoices})
        }
        reselling_revenue = sum((row.invoice_amount for row in invoices), ZERO)
        reselling_oem = sum((row.total_oem_cost for row in invoices), ZERO)
        reselling_resource = sum((row.resource_cost for row in invoices), ZERO)
        reselling_other = sum((row.other_expenses for row in invoices), ZERO)
        reselling_costs = sum((row.total_cost for row in invoices), ZERO)

        by_product: dict[UUID, dict[str, Decimal]] = {}
        for invoice in invoices:
            bucket = by_product.setdefault(
                invoice.product_id,
                {"revenue": ZERO, "oem_costs": ZERO, "resource_costs": ZERO, "other_expenses": ZERO, "total_costs": ZERO},
            )
            bucket["revenue"] += invoice.invoice_amount
            bucket["oem_costs"] += invoice.total_oem_cost
            bucket["resource_costs"] += invoice.resource_cost
            bucket["other_expenses"] += invoice.other_expenses
            bucket["total_costs"] += invoice.total_cost

        product_rows = []
        for product_id, bucket in sorted(by_product.items(), key=lambda item: item[1]["revenue"], reverse=True):
            product = products.get(product_id)
            gross = bucket["revenue"] - bucket["total_costs"]
            product_rows.append(
                {
                    "product_id": str(product_id),
                    "product_name": product.name if product else None,
                    "revenue": _s(bucket["revenue"]),
                    "oem_costs": _s(bucket["oem_costs"]),
                    "resource_costs": _s(bucket["resource_costs"]),
                    "other_expenses": _s(bucket["other_expenses"]),
                    "total_costs": _s(bucket["total_costs"]),
                    "gross_profit": _s(gross),
                    "margin_pct": _s(percent_of(gross, bucket["revenue"])),
                }
            )

        overheads = support_total + expenses_total + bills_total
        total_costs = overheads + operational_total + reselling_costs
        revenue = project_revenue + reselling_revenue
        profit_loss = revenue - total_costs

        def salary_line(row) -> dict[str, object]:
            person = people.get(row.person_id)
            return {
                "person_id": str(row.person_id),
                "name": person.name if person else None,
                "department": person.department if person else None,
                "amount": _s(row.total),
            }

        return {
            "month": format_month(first_day),
            "summary": {
                "revenue": _s(revenue),
                "total_costs": _s(total_costs),
                "profit_loss": _s(profit_loss),
                "profit_margin_percentage": _s(percent_of(profit_loss, revenue)),
                "project_revenue": _s(project_revenue),
                "reselling_revenue": _s(reselling_revenue),
            },
            "overheads": {
                "total": _s(overheads),
                "breakdown": {
                    "support_staff_salaries": _s(support_total),
                    "expenses": _s(expenses_total),
                    "bills": _s(bills_total),
                },
                "details": {
                    "support_staff_count": len(support),
                    "expense_count": len(expenses),
                    "bill_count": len(bills),
                },
            },
            "operational_costs": {
                "total": _s(operational_total),
                "staff_count": len(operational),
            },
            "reselling_revenue": {
                "total": _s(reselling_revenue),
                "total_costs": _s(reselling_costs),
                "gross_profit": _s(reselling_revenue - reselling_costs),
                "invoice_count": len(invoices),
                "breakdown": {
                    "oem_costs": _s(reselling_oem),
                    "resource_costs": _s(reselling_resource),
                    "other_expenses": _s(reselling_other),
                },
                "by_product": product_rows,
                "invoices": [
                    {
                        "id": str(invoice.id),
                        "project_id": str(invoice.project_id),
                        "product_name": products[invoice.product_id].name
                        if invoice.product_id in products
                        else None,
                        "invoice_date": invoice.invoice_date.isoformat(),
                        "revenue": _s(invoice.invoice_amount),
                        "oem_costs": _s(invoice.total_oem_cost),
                        "resource_costs": _s(invoice.resource_cost),
                        "other_expenses": _s(invoice.other_expenses),
                        "total_costs": _s(invoice.total_cost),
                        "gross_profit": _s(invoice.gross_profit),
                        "margin_pct": _s(invoice.profit_margin_pct),
                    }
                    for invoice in invoices
                ],
            },
            "revenue_details": {
                "total": _s(project_revenue),
                "project_count": len({row.project_id for row in project_costs}),
                "projects": [
                    {
                        "project_id": str(row.project_id),
                        "project_name": projects[row.project_id].name if row.project_id in projects else None,
                        "client_name": clients[projects[row.project_id].client_id].name
                        if row.project_id in projects and projects[row.project_id].client_id in clients
                        else None,
                        "type": row.type.value,
                        "amount": _s(row.amount),
                    }
                    for row in project_costs
                ],
            },
            "detailed_breakdown": {
                "support_staff": [salary_line(row) for row in support],
                "operational_staff": [salary_line(row) for row in operational],
                "expenses": [
                    {
                        "id": str(row.id),
                        "account_name": row.account_name,
                        "expense_date": row.expense_date.isoformat(),
                        "description": row.description,
                        "amount": _s(row.amount),
                    }
                    for row in expenses
                ],
                "bills": [
                    {
                        "id": str(bill.id),
                        "vendor_name": bill.vendor_name,
                        "bill_number": bill.bill_number,
                        "bill_date": bill.bill_date.isoformat(),
                        "sub_total": _s(bill_base_amount(bill)),
                        "tax_total": _s(bill.tax_total or ZERO),
                    }
                    for bill in bills
                ],
            },
        }

    @staticmethod
    def _flatten(report: dict[str, object]) -> list[dict[str, object]]:
        summary = report["summary"]
        overheads = report["overheads"]
        reselling = report["reselling_revenue"]
        rows: list[dict[str, object]] = [
            {"section": "summary", "item": key, "amount": value} for key, value in summary.items()
        ]
        rows.extend(
            {"section": "overheads", "item": key, "amount": value} for key, value in overheads["breakdown"].items()
        )
        rows.append({"section": "operational_costs", "item": "salaries", "amount": report["operational_costs"]["total"]})
        rows.extend(
            {"section": "reselling", "item": key, "amount": value} for key, value in reselling["breakdown"].items()
        )
        rows.extend(
            {"section": "reselling_by_product", "item": row["product_name"], "amount": row["revenue"]}
            for row in reselling["by_product"]
        )
        rows.extend(
            {"section": "project_revenue", "item": row["project_name"], "amount": row["amount"]}
            for row in report["revenue_details"]["projects"]
        )
        return rows

    def export(self, month: date, format_name: str) -> ExportFilePayload:
        normalized_format = format_name.strip().lower()
        if normalized_format not in {"csv", "xlsx"}:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="format must be one of: csv, xlsx.",
            )

        report = self.report(month)
        rows = self._flatten(report)
        fieldnames = ["section", "item", "amount"]
        base_filename = f"profit-loss-{report['month']}"

        if normalized_format == "csv":
            sio = io.StringIO()
            writer = csv.DictWriter(sio, fieldnames=fieldnames)
            writer.writeheader()
            writer.writerows(rows)
            return ExportFilePayload(
                media_type="text/csv; charset=utf-8",
                filename=f"{base_filename}.csv",
                content=sio.getvalue().encode("utf-8"),
            )

        from openpyxl import Workbook

        workbook = Workbook()
        sheet = workbook.active
        sheet.title = "profit-loss"
        sheet.append(fieldnames)
        for row in rows:
            sheet.append([row["section"], row["item"], Decimal(str(row["amount"]))])

        output = BytesIO()
        workbook.save(output)
        return ExportFilePayload(
            media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            filename=f"{base_filename}.xlsx",
            content=output.getvalue(),
        )
