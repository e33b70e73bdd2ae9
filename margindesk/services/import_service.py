"""CSV timesheet and salary imports.

Timesheet imports replace every entry inside the imported work-date range:
the old entries are deleted and the parsed rows inserted in one transaction.
Salary imports upsert one salary row per employee for the selected month.
Malformed rows are skipped and reported; they never abort the whole file.
"""

from __future__ import annotations

import csv
import hashlib
import io
import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from margindesk.core.auth import RequestUserContext
from margindesk.core.periods import format_month
from margindesk.models.entities import (
    Person,
    PersonSalary,
    PricingModel,
    Project,
    ProjectStatus,
    StaffCategory,
    TimesheetEntry,
    TimesheetImportBatch,
)
from margindesk.repositories.directory_repository import DirectoryRepository
from margindesk.repositories.finance_repository import FinanceRepository
from margindesk.repositories.time_repository import TimeRepository
from margindesk.services.audit_service import AuditService
from margindesk.services.directory_service import DirectoryService, PersonCreateData
from margindesk.services.finance_service import salary_total
from margindesk.services.money import ZERO, q2

logger = logging.getLogger(__name__)

TASK_COLUMNS = ("Task/General/subtask name", "Task")
TASK_TYPE_COLUMNS = ("Task type", "Task Type")
_CURRENCY_NOISE = re.compile(r"[₹$€£,\s]")


@dataclass(slots=True)
class TimesheetImportStats:
    total_rows: int = 0
    processed_rows: int = 0
    skipped_rows: int = 0
    new_projects: int = 0
    new_contractors: int = 0
    deleted_entries: int = 0
    new_entries: int = 0
    errors: list[str] = field(default_factory=list)

    def skip(self, message: str) -> None:
        self.skipped_rows += 1
        self.errors.append(message)

    def as_dict(self) -> dict[str, object]:
        return {
            "total_rows": self.total_rows,
            "processed_rows": self.processed_rows,
            "skipped_rows": self.skipped_rows,
            "new_projects": self.new_projects,
            "new_contractors": self.new_contractors,
            "deleted_entries": self.deleted_entries,
            "new_entries": self.new_entries,
            "errors": list(self.errors),
        }


@dataclass(slots=True)
class SalaryImportStats:
    total_rows: int = 0
    processed_rows: int = 0
    skipped_rows: int = 0
    new_records: int = 0
    updated_records: int = 0
    new_employees: int = 0
    errors: list[str] = field(default_factory=list)

    def skip(self, message: str) -> None:
        self.skipped_rows += 1
        self.errors.append(message)

    def as_dict(self) -> dict[str, object]:
        return {
            "total_rows": self.total_rows,
            "processed_rows": self.processed_rows,
            "skipped_rows": self.skipped_rows,
            "new_records": self.new_records,
            "updated_records": self.updated_records,
            "new_employees": self.new_employees,
            "errors": list(self.errors),
        }


def parse_work_date(raw: str) -> date:
    """Parse ``DD/MM/YY`` or ``DD/MM/YYYY``; two-digit years below 50 are 20xx."""

    parts = raw.strip().split("/")
    if len(parts) != 3:
        raise ValueError("Invalid date format (expected DD/MM/YY)")
    day, month, year = (int(part) for part in parts)
    if year < 100:
        year += 2000 if year < 50 else 1900
    return date(year, month, day)


def parse_salary_amount(raw: str) -> Decimal | None:
    """Strip currency symbols and separators; ``None`` means the cell is blank."""

    cleaned = _CURRENCY_NOISE.sub("", raw or "")
    if cleaned in ("", "-"):
        return None
    amount = Decimal(cleaned)
    if not amount.is_finite():
        raise InvalidOperation(cleaned)
    return amount


def row_hash(*parts: str) -> str:
    return hashlib.md5("|".join(parts).encode("utf-8")).hexdigest()


def read_csv_rows(content: bytes) -> list[dict[str, str]]:
    text = content.decode("utf-8-sig", errors="replace")
    reader = csv.DictReader(io.StringIO(text))
    rows: list[dict[str, str]] = []
    for record in reader:
        normalized = {
            (key or "").strip(): (value or "").strip() if isinstance(value, str) else ""
            for key, value in record.items()
            if key is not None
        }
        if any(normalized.values()):
            rows.append(normalized)
    return rows


def _first_value(record: dict[str, str], columns: tuple[str, ...]) -> str:
    for column in columns:
        value = record.get(column)
        if value:
            return value
    return ""


class ImportService:
    def __init__(self, db: Session) -> None:
        self.db = db
        self.time_repo = TimeRepository(db)
        self.finance_repo = FinanceRepository(db)
        self.directory_repo = DirectoryRepository(db)
        self.directory = DirectoryService(db)
        self.audit = AuditService(db)

    @staticmethod
    def serialize_batch(batch: TimesheetImportBatch, entry_count: int | None = None) -> dict[str, object]:
        payload: dict[str, object] = {
            "id": str(batch.id),
            "file_name": batch.file_name,
            "imported_by": str(batch.imported_by) if batch.imported_by else None,
            "period_start": batch.period_start.isoformat(),
            "period_end": batch.period_end.isoformat(),
            "total_rows": batch.total_rows,
            "imported_rows": batch.imported_rows,
            "skipped_rows": batch.skipped_rows,
            "deleted_entries": batch.deleted_entries,
            "error_messages": list(batch.error_messages or []),
            "created_at": batch.created_at.isoformat(),
        }
        if entry_count is not None:
            payload["entry_count"] = entry_count
        return payload

    def list_batches(self, limit: int) -> list[TimesheetImportBatch]:
        return self.time_repo.list_import_batches(limit)

    def get_batch(self, batch_id: UUID) -> dict[str, object]:
        batch = self.time_repo.get_import_batch(batch_id)
        if batch is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Import batch not found")
        return self.serialize_batch(batch, self.time_repo.count_batch_entries(batch.id))

    # ---------- Timesheets ----------
    def _person_for_email(
        self,
        email: str,
        user_name: str,
        work_date: date,
        cache: dict[str, Person],
        stats: TimesheetImportStats,
    ) -> Person:
        person = cache.get(email)
        if person is None:
            person = self.directory_repo.get_person_by_email(email)
        if person is None:
            person = self.directory.build_person(
                PersonCreateData(
                    email=email,
                    name=user_name or email.split("@")[0],
                    start_date=work_date,
                    role="Contractor",
                    staff_category=StaffCategory.OPERATIONAL,
                    billable=True,
                    ctc_monthly=ZERO,
                    utilization_target=Decimal("1.00"),
                )
            )
            stats.new_contractors += 1
            logger.info("Auto-created contractor %s", email)
        cache[email] = person
        return person

    def _project_for_name(
        self,
        name: str,
        work_date: date,
        cache: dict[str, Project],
        stats: TimesheetImportStats,
    ) -> Project:
        project = cache.get(name)
        if project is None:
            project = self.directory_repo.get_project_by_name(name)
        if project is None:
            client = self.directory.get_or_create_unknown_client()
            now = datetime.utcnow()
            project = Project(
                client_id=client.id,
                name=name,
                pricing_model=PricingModel.TNM,
                status=ProjectStatus.ACTIVE,
                start_date=work_date,
                currency=client.billing_currency,
                created_at=now,
                updated_at=now,
            )
            self.directory_repo.add_project(project)
            stats.new_projects += 1
            logger.info("Auto-created project %s", name)
        cache[name] = project
        return project

    def import_timesheet(
        self,
        *,
        context: RequestUserContext,
        file_name: str,
        content: bytes,
    ) -> dict[str, object]:
        records = read_csv_rows(content)
        if not records:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="CSV file is empty")

        stats = TimesheetImportStats(total_rows=len(records))
        people: dict[str, Person] = {}
        projects: dict[str, Project] = {}
        seen: set[tuple[UUID, UUID, date, str]] = set()
        entries: list[TimesheetEntry] = []
        min_date: date | None = None
        max_date: date | None = None

        try:
            for index, record in enumerate(records):
                line = index + 2
                raw_date = record.get("Date", "")
                email = record.get("Email Id", "").lower()
                project_name = record.get("Project name", "")
                if not raw_date or not email or not project_name:
                    stats.skip(f"Row {line}: Missing required fields (Date, Email Id, or Project name)")
                    continue

                try:
                    work_date = parse_work_date(raw_date)
                except ValueError as exc:
                    stats.skip(f"Row {line}: Invalid date: {raw_date} ({exc})")
                    continue

                raw_hours = record.get("Hours(For Calculation)", "")
                try:
                    hours = q2(Decimal(raw_hours)) if raw_hours else ZERO
                except InvalidOperation:
                    stats.skip(f"Row {line}: Invalid hours value: {raw_hours}")
                    continue
                if hours < ZERO:
                    stats.skip(f"Row {line}: Hours must not be negative")
                    continue

                person = self._person_for_email(email, record.get("User Name", ""), work_date, people, stats)
                project = self._project_for_name(project_name, work_date, projects, stats)

                task_name = _first_value(record, TASK_COLUMNS)
                notes = record.get("Notes", "")
                source_hash = row_hash(
                    raw_date,
                    record.get("Email Id", ""),
                    project_name,
                    task_name,
                    record.get("Hours") or raw_hours,
                    notes,
                )
                key = (person.id, project.id, work_date, source_hash)
                if key in seen:
                    stats.skip(f"Row {line}: Duplicate entry")
                    continue
                seen.add(key)

                entries.append(
                    TimesheetEntry(
                        person_id=person.id,
                        project_id=project.id,
                        work_date=work_date,
                        hours_logged=hours,
                        is_billable=_first_value(record, TASK_TYPE_COLUMNS).lower() == "billable",
                        task_name=task_name or None,
                        notes=notes or None,
                        source_row_hash=source_hash,
                    )
                )
                stats.processed_rows += 1
                min_date = work_date if min_date is None or work_date < min_date else min_date
                max_date = work_date if max_date is None or work_date > max_date else max_date

            if not entries or min_date is None or max_date is None:
                self.db.rollback()
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail={
                        "success": False,
                        "error": "No valid timesheet entries to import",
                        "message": "No valid timesheet entries to import",
                        "stats": stats.as_dict(),
                    },
                )

            batch = self.time_repo.add_import_batch(
                TimesheetImportBatch(
                    imported_by=context.user_id,
                    file_name=file_name,
                    period_start=min_date,
                    period_end=max_date,
                    total_rows=stats.total_rows,
                    imported_rows=stats.processed_rows,
                    skipped_rows=stats.skipped_rows,
                    error_messages=list(stats.errors),
                    created_at=datetime.utcnow(),
                )
            )
            stats.deleted_entries = self.time_repo.delete_timesheet_entries_between(min_date, max_date)
            for entry in entries:
                entry.batch_id = batch.id
            self.time_repo.add_timesheet_entries(entries)
            stats.new_entries = len(entries)
            batch.deleted_entries = stats.deleted_entries

            self.audit.record(
                actor_id=context.user_id,
                entity="timesheet_entry",
                entity_id=batch.id,
                action="import",
                after={
                    **stats.as_dict(),
                    "batch_id": str(batch.id),
                    "period": f"{min_date.isoformat()} to {max_date.isoformat()}",
                },
            )
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Timesheet import of %s failed", file_name)
            raise

        logger.info(
            "Imported %d timesheet entries from %s, replaced %d",
            stats.new_entries,
            file_name,
            stats.deleted_entries,
        )
        return {
            "success": True,
            "message": f"Imported {stats.new_entries} timesheet entries",
            "batch_id": str(batch.id),
            "stats": stats.as_dict(),
        }

    # ---------- Salaries ----------
    def import_salaries(
        self,
        *,
        context: RequestUserContext,
        file_name: str,
        content: bytes,
        month: date,
    ) -> dict[str, object]:
        records = read_csv_rows(content)
        if not records:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="CSV file is empty")

        stats = SalaryImportStats(total_rows=len(records))
        now = datetime.utcnow()
        start_for_new = date(now.year - 3, now.month, 1)

        try:
            for index, record in enumerate(records):
                line = index + 2
                code = record.get("Emp Code", "")
                name = record.get("Name", "")
                if not code or not name:
                    stats.skip(f"Row {line}: Missing Emp Code or Name")
                    continue

                amount_column = next((column for column in record if column not in ("Emp Code", "Name")), None)
                if amount_column is None:
                    stats.skip(f"Row {line}: No salary column found")
                    continue
                raw_amount = record.get(amount_column, "")
                try:
                    amount = parse_salary_amount(raw_amount)
                except InvalidOperation:
                    stats.skip(f"Row {line}: Invalid salary amount: {raw_amount}")
                    continue
                if amount is None:
                    stats.skip(f"Row {line}: Empty salary amount: {raw_amount}")
                    continue
                if amount < ZERO:
                    stats.skip(f"Row {line}: Invalid salary amount: {raw_amount}")
                    continue

                try:
                    with self.db.begin_nested():
                        person = self.directory_repo.get_person_by_employee_code(code)
                        created_person = person is None
                        if person is None:
                            person = self.directory.build_person(
                                PersonCreateData(
                                    email=f"{code.lower()}@temp.local",
                                    name=name,
                                    start_date=start_for_new,
                                    employee_code=code,
                                )
                            )

                        is_support = person.staff_category == StaffCategory.SUPPORT
                        salary = self.finance_repo.get_salary_for(person.id, month)
                        created_salary = salary is None
                        if salary is None:
                            self.finance_repo.add_salary(
                                PersonSalary(
                                    person_id=person.id,
                                    month=month,
                                    base_salary=q2(amount),
                                    bonus=ZERO,
                                    deductions=ZERO,
                                    overtime=ZERO,
                                    total=q2(amount),
                                    is_support_staff=is_support,
                                    created_at=now,
                                    updated_at=now,
                                )
                            )
                        else:
                            salary.base_salary = q2(amount)
                            salary.total = salary_total(
                                salary.base_salary, salary.bonus, salary.overtime, salary.deductions
                            )
                            salary.is_support_staff = is_support
                            salary.updated_at = now
                except IntegrityError as exc:
                    stats.skip(f"Row {line}: Could not save employee {code}: {exc.orig}")
                    continue

                if created_person:
                    stats.new_employees += 1
                    logger.info("Auto-created employee %s (%s)", name, code)
                if created_salary:
                    stats.new_records += 1
                else:
                    stats.updated_records += 1
                stats.processed_rows += 1

            self.audit.record(
                actor_id=context.user_id,
                entity="person_salary",
                entity_id=format_month(month),
                action="import",
                after={**stats.as_dict(), "month": format_month(month), "file_name": file_name},
            )
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Salary import of %s failed", file_name)
            raise

        logger.info("Salary import for %s: %d processed", format_month(month), stats.processed_rows)
        return {
            "success": stats.processed_rows > 0,
            "message": f"Processed {stats.processed_rows} of {stats.total_rows} salary rows",
            "month": format_month(month),
            "stats": stats.as_dict(),
        }
