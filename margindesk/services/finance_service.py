"""Salaries, vendor bills, expenses, bill exclusion rules and project costs."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from margindesk.core.auth import RequestUserContext
from margindesk.core.periods import format_month, month_start, parse_month
from margindesk.models.entities import (
    Bill,
    BillLineItem,
    Expense,
    IntegrationSettings,
    PersonSalary,
    ProjectCost,
    ProjectCostType,
    StaffCategory,
)
from margindesk.repositories.directory_repository import DirectoryRepository
from margindesk.repositories.finance_repository import FinanceRepository
from margindesk.repositories.integration_repository import IntegrationRepository
from margindesk.services.audit_service import AuditService
from margindesk.services.money import ZERO, money_str, q2

logger = logging.getLogger(__name__)

EXCLUSION_RULES_KEY = "bill_exclusion_rules"
RULE_FIELDS = ("vendor_name", "bill_number", "account_name", "description", "notes", "total")
RULE_OPERATORS = (
    "equals",
    "contains",
    "contains_any_of",
    "starts_with",
    "ends_with",
    "greater_than",
    "less_than",
)


@dataclass(slots=True)
class SalaryUpsertData:
    person_id: UUID
    month: date
    base_salary: Decimal
    bonus: Decimal = ZERO
    deductions: Decimal = ZERO
    overtime: Decimal = ZERO
    notes: str | None = None


@dataclass(slots=True)
class ProjectCostRow:
    project_id: UUID
    period_month: str
    amount: Decimal
    type: ProjectCostType = ProjectCostType.OTHER
    notes: str | None = None


def salary_total(base_salary: Decimal, bonus: Decimal, overtime: Decimal, deductions: Decimal) -> Decimal:
    return q2(base_salary + bonus + overtime - deductions)


def _to_decimal(value: object) -> Decimal | None:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def rule_matches(rule: dict[str, object], bill: Bill) -> bool:
    """Evaluate one exclusion rule against a bill, case-insensitively."""

    field = str(rule.get("field") or "")
    operator = str(rule.get("operator") or "")
    raw_value = rule.get("value")
    if field not in RULE_FIELDS or raw_value is None:
        return False

    bill_value = getattr(bill, field, None)
    if bill_value is None:
        return False

    if operator in ("greater_than", "less_than"):
        left = _to_decimal(bill_value)
        right = _to_decimal(raw_value)
        if left is None or right is None:
            return False
        return left > right if operator == "greater_than" else left < right

    text = str(bill_value).lower()
    if operator == "contains_any_of":
        if isinstance(raw_value, list):
            candidates = [str(item).strip().lower() for item in raw_value]
        else:
            candidates = [part.strip().lower() for part in str(raw_value).split(",")]
        return any(candidate and candidate in text for candidate in candidates)

    needle = str(raw_value).lower()
    if operator == "equals":
        return text == needle
    if operator == "contains":
        return needle in text
    if operator == "starts_with":
        return text.startswith(needle)
    if operator == "ends_with":
        return text.endswith(needle)
    return False


def should_exclude_bill(rules: list[dict[str, object]], bill: Bill) -> str | None:
    """Return the exclusion reason of the first enabled matching rule."""

    for rule in rules:
        if not rule.get("enabled", True):
            continue
        if rule_matches(rule, bill):
            return f"Auto-excluded: {rule.get('reason') or rule.get('name') or 'matched rule'}"
    return None


class FinanceService:
    def __init__(self, db: Session) -> None:
        self.db = db
        self.repo = FinanceRepository(db)
        self.directory = DirectoryRepository(db)
        self.integrations = IntegrationRepository(db)
        self.audit = AuditService(db)

    @staticmethod
    def serialize_salary(row: PersonSalary) -> dict[str, object]:
        return {
            "id": str(row.id),
            "person_id": str(row.person_id),
            "month": format_month(row.month),
            "base_salary": money_str(row.base_salary),
            "bonus": money_str(row.bonus),
            "deductions": money_str(row.deductions),
            "overtime": money_str(row.overtime),
            "total": money_str(row.total),
            "is_support_staff": row.is_support_staff,
            "notes": row.notes,
        }

    @staticmethod
    def serialize_bill(row: Bill) -> dict[str, object]:
        return {
            "id": str(row.id),
            "zoho_bill_id": row.zoho_bill_id,
            "vendor_id": row.vendor_id,
            "vendor_name": row.vendor_name,
            "bill_number": row.bill_number,
            "bill_date": row.bill_date.isoformat(),
            "due_date": row.due_date.isoformat() if row.due_date else None,
            "status": row.status.value,
            "currency_code": row.currency_code,
            "total": money_str(row.total),
            "balance": money_str(row.balance),
            "sub_total": money_str(row.sub_total),
            "tax_total": money_str(row.tax_total),
            "account_name": row.account_name,
            "description": row.description,
            "reference_number": row.reference_number,
            "billed_for_month": format_month(row.billed_for_month) if row.billed_for_month else None,
            "include_in_calculation": row.include_in_calculation,
            "exclusion_reason": row.exclusion_reason,
            "synced_at": row.synced_at.isoformat() if row.synced_at else None,
        }

    @staticmethod
    def serialize_line_item(row: BillLineItem) -> dict[str, object]:
        return {
            "id": str(row.id),
            "description": row.description,
            "account_name": row.account_name,
            "quantity": money_str(row.quantity),
            "rate": money_str(row.rate),
            "item_total": money_str(row.item_total),
        }

    @staticmethod
    def serialize_expense(row: Expense) -> dict[str, object]:
        return {
            "id": str(row.id),
            "zoho_expense_id": row.zoho_expense_id,
            "account_name": row.account_name,
            "expense_date": row.expense_date.isoformat(),
            "amount": money_str(row.amount),
            "total": money_str(row.total),
            "status": row.status.value,
            "is_billable": row.is_billable,
            "customer_name": row.customer_name,
            "currency_code": row.currency_code,
            "description": row.description,
            "include_in_calculation": row.include_in_calculation,
            "exclusion_reason": row.exclusion_reason,
        }

    @staticmethod
    def serialize_project_cost(row: ProjectCost) -> dict[str, object]:
        return {
            "id": str(row.id),
            "project_id": str(row.project_id),
            "period_month": format_month(row.period_month),
            "type": row.type.value,
            "amount": money_str(row.amount),
            "notes": row.notes,
        }

    # ---------- Salaries ----------
    def list_salaries(self, *, month: date | None, person_id: UUID | None) -> list[PersonSalary]:
        return self.repo.list_salaries(month=month_start(month) if month else None, person_id=person_id)

    def upsert_salary(self, data: SalaryUpsertData) -> tuple[PersonSalary, bool]:
        person = self.directory.get_person(data.person_id)
        if person is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Person not found")
        for label, value in (
            ("base_salary", data.base_salary),
            ("bonus", data.bonus),
            ("deductions", data.deductions),
            ("overtime", data.overtime),
        ):
            if value < ZERO:
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"{label} must be >= 0")

        month = month_start(data.month)
        now = datetime.utcnow()
        salary = self.repo.get_salary_for(person.id, month)
        created = salary is None
        if salary is None:
            salary = PersonSalary(person_id=person.id, month=month, created_at=now)
            self.db.add(salary)

        salary.base_salary = data.base_salary
        salary.bonus = data.bonus
        salary.deductions = data.deductions
        salary.overtime = data.overtime
        salary.total = salary_total(data.base_salary, data.bonus, data.overtime, data.deductions)
        salary.is_support_staff = person.staff_category == StaffCategory.SUPPORT
        salary.notes = data.notes
        salary.updated_at = now
        self.db.commit()
        self.db.refresh(salary)
        return salary, created

    def delete_salary(self, salary_id: UUID) -> None:
        salary = self.repo.get_salary(salary_id)
        if salary is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Salary record not found")
        self.repo.delete_salary(salary)
        self.db.commit()

    # ---------- Bills ----------
    def list_bills(
        self,
        *,
        month: date | None,
        vendor: str | None,
        include: bool | None,
    ) -> list[Bill]:
        return self.repo.list_bills(
            billed_for_month=month_start(month) if month else None,
            vendor_name=vendor.strip() if vendor else None,
            include_in_calculation=include,
        )

    def _get_bill(self, bill_id: UUID) -> Bill:
        bill = self.repo.get_bill(bill_id)
        if bill is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Bill not found")
        return bill

    def get_bill_detail(self, bill_id: UUID) -> dict[str, object]:
        bill = self._get_bill(bill_id)
        payload = self.serialize_bill(bill)
        payload["line_items"] = [self.serialize_line_item(row) for row in self.repo.list_bill_line_items(bill.id)]
        return payload

    def set_bill_inclusion(self, bill_id: UUID, include: bool, exclusion_reason: str | None) -> Bill:
        bill = self._get_bill(bill_id)
        bill.include_in_calculation = include
        bill.exclusion_reason = None if include else (exclusion_reason or "Manually excluded")
        bill.updated_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(bill)
        return bill

    def set_billed_month(self, bill_id: UUID, month: date | None) -> Bill:
        bill = self._get_bill(bill_id)
        bill.billed_for_month = month_start(month) if month else None
        bill.updated_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(bill)
        return bill

    # ---------- Expenses ----------
    def list_expenses(self, *, start: date | None, end: date | None, include: bool | None) -> list[Expense]:
        if start is not None and end is not None and end < start:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="end_date must be greater than or equal to start_date.",
            )
        return self.repo.list_expenses(start=start, end=end, include_in_calculation=include)

    def set_expense_inclusion(self, expense_id: UUID, include: bool, exclusion_reason: str | None) -> Expense:
        expense = self.repo.get_expense(expense_id)
        if expense is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Expense not found")
        expense.include_in_calculation = include
        expense.exclusion_reason = None if include else (exclusion_reason or "Manually excluded")
        expense.updated_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(expense)
        return expense

    # ---------- Bill exclusion rules ----------
    def get_exclusion_rules(self) -> list[dict[str, object]]:
        row = self.integrations.get_settings(EXCLUSION_RULES_KEY)
        if row is None:
            return []
        return list(row.config.get("rules", []))

    @staticmethod
    def _normalize_rule(rule: dict[str, object]) -> dict[str, object]:
        field = str(rule.get("field") or "").strip()
        operator = str(rule.get("operator") or "").strip()
        if field not in RULE_FIELDS:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Invalid rule field '{field}'. Allowed: {', '.join(RULE_FIELDS)}",
            )
        if operator not in RULE_OPERATORS:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Invalid rule operator '{operator}'. Allowed: {', '.join(RULE_OPERATORS)}",
            )
        return {
            "id": str(rule.get("id") or uuid.uuid4()),
            "name": str(rule.get("name") or "").strip(),
            "enabled": bool(rule.get("enabled", True)),
            "field": field,
            "operator": operator,
            "value": rule.get("value"),
            "reason": str(rule.get("reason") or "").strip(),
        }

    def save_exclusion_rules(self, rules: list[dict[str, object]]) -> list[dict[str, object]]:
        normalized = [self._normalize_rule(rule) for rule in rules]
        now = datetime.utcnow()
        row = self.integrations.get_settings(EXCLUSION_RULES_KEY)
        if row is None:
            self.integrations.add_settings(
                IntegrationSettings(key=EXCLUSION_RULES_KEY, config={"rules": normalized}, created_at=now, updated_at=now)
            )
        else:
            row.config = {"rules": normalized}
            row.updated_at = now
        self.db.commit()
        logger.info("Saved %d bill exclusion rules", len(normalized))
        return normalized

    # ---------- Project costs ----------
    def list_project_costs(self, *, start_month: date, end_month: date) -> list[ProjectCost]:
        start = month_start(start_month)
        end = month_start(end_month)
        if end < start:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="end_month must be greater than or equal to start_month.",
            )
        return self.repo.list_project_costs(start=start, end=end)

    def bulk_upsert_project_costs(
        self,
        *,
        context: RequestUserContext,
        rows: list[ProjectCostRow],
    ) -> dict[str, object]:
        if not rows:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="updates must not be empty")

        created = 0
        updated = 0
        now = datetime.utcnow()
        try:
            with self.db.begin_nested():
                for row in rows:
                    period = parse_month(row.period_month, field="period_month")
                    if self.directory.get_project(row.project_id) is None:
                        raise HTTPException(
                            status_code=status.HTTP_404_NOT_FOUND,
                            detail=f"Project {row.project_id} not found",
                        )
                    if row.amount < ZERO:
                        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="amount must be >= 0")

                    cost = self.repo.get_project_cost(row.project_id, period, row.type)
                    if cost is None:
                        self.repo.add_project_cost(
                            ProjectCost(
                                project_id=row.project_id,
                                period_month=period,
                                type=row.type,
                                amount=row.amount,
                                notes=row.notes,
                                created_at=now,
                                updated_at=now,
                            )
                        )
                        created += 1
                    else:
                        cost.amount = row.amount
                        cost.notes = row.notes
                        cost.updated_at = now
                        updated += 1

                self.audit.record(
                    actor_id=context.user_id,
                    entity="project_cost",
                    entity_id=None,
                    action="bulk_upsert",
                    after={
                        "created": created,
                        "updated": updated,
                        "rows": [
                            {
                                "project_id": row.project_id,
                                "period_month": row.period_month,
                                "type": row.type.value,
                                "amount": row.amount,
                            }
                            for row in rows
                        ],
                    },
                )
            self.db.commit()
        except HTTPException:
            self.db.rollback()
            raise

        return {"success": True, "created": created, "updated": updated}
