"""Zoho Books and Zoho People connection and data sync.

Every sync run writes a ``sync_logs`` row. Record-level failures are collected
and reported with status ``completed_with_errors``; an upstream failure marks
the run ``failed`` and raises ``IntegrationError``.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from uuid import UUID

import httpx
from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from margindesk.core.auth import RequestUserContext
from margindesk.core.errors import IntegrationError
from margindesk.core.periods import add_months, month_end, month_start
from margindesk.integrations.token_manager import (
    ZOHO_BOOKS_KEY,
    ZOHO_PEOPLE_KEY,
    ZohoTokenManager,
    ZohoTokens,
    get_token_manager,
)
from margindesk.integrations.zoho_config import people_domain, region_config
from margindesk.models.entities import (
    Bill,
    BillStatus,
    Expense,
    ExpenseStatus,
    Holiday,
    HolidayType,
    IntegrationSettings,
    Leave,
    LeaveStatus,
    SyncLog,
)
from margindesk.repositories.directory_repository import DirectoryRepository
from margindesk.repositories.finance_repository import FinanceRepository
from margindesk.repositories.integration_repository import IntegrationRepository
from margindesk.repositories.time_repository import TimeRepository
from margindesk.services.audit_service import AuditService
from margindesk.services.directory_service import DirectoryService, PersonCreateData
from margindesk.services.finance_service import FinanceService, should_exclude_bill

logger = logging.getLogger(__name__)

BOOKS_PER_PAGE = 200
BOOKS_MAX_PAGES = 100
PEOPLE_PAGE_SIZE = 200
DATE_RANGES = ("last_month", "this_month", "last_quarter", "this_quarter", "this_fiscal_year", "custom")
PEOPLE_SYNC_TYPES = ("employees", "leaves", "holidays", "all")
INTEGRATION_KEYS = {"zoho": ZOHO_BOOKS_KEY, "zoho-people": ZOHO_PEOPLE_KEY}

_RECORD_ERRORS = (KeyError, TypeError, ValueError, InvalidOperation, SQLAlchemyError)


def resolve_date_range(
    range_name: str,
    *,
    today: date,
    from_date: date | None = None,
    to_date: date | None = None,
) -> tuple[date, date]:
    """Translate a named sync window into inclusive dates; fiscal years start 1 April."""

    current_month = month_start(today)
    quarter_start = date(today.year, (today.month - 1) // 3 * 3 + 1, 1)
    if range_name == "last_month":
        previous = add_months(current_month, -1)
        return previous, month_end(previous)
    if range_name == "this_month":
        return current_month, today
    if range_name == "last_quarter":
        previous = add_months(quarter_start, -3)
        return previous, month_end(add_months(previous, 2))
    if range_name == "this_quarter":
        return quarter_start, today
    if range_name == "this_fiscal_year":
        fiscal_year = today.year if today.month >= 4 else today.year - 1
        return date(fiscal_year, 4, 1), today
    if range_name == "custom":
        if from_date is None or to_date is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="from_date and to_date are required for a custom range",
            )
        if to_date < from_date:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="to_date must be greater than or equal to from_date.",
            )
        return from_date, to_date
    raise HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail=f"Invalid range. Use one of: {', '.join(DATE_RANGES)}",
    )


def map_bill_status(value: str | None) -> BillStatus:
    try:
        return BillStatus((value or "").strip().lower())
    except ValueError:
        return BillStatus.OPEN


def map_expense_status(value: str | None) -> ExpenseStatus:
    normalized = (value or "").strip().lower().replace("-", "_")
    try:
        return ExpenseStatus(normalized)
    except ValueError:
        return ExpenseStatus.UNBILLED


def parse_zoho_date(value: str | None) -> date | None:
    """Parse Zoho People ``dd-Mon-yyyy`` dates."""

    if not value:
        return None
    try:
        return datetime.strptime(value.strip(), "%d-%b-%Y").date()
    except ValueError:
        return None


def _decimal(value: object, default: Decimal | None = Decimal("0.00")) -> Decimal | None:
    if value is None or value == "":
        return default
    return Decimal(str(value))


def _first_item(record: dict) -> tuple[str, dict] | None:
    """Zoho People form records look like ``{"<record id>": [{...fields}]}``."""

    if not record:
        return None
    record_id = next(iter(record))
    items = record[record_id]
    if not isinstance(items, list) or not items:
        return None
    return str(record_id), items[0]


class SyncService:
    def __init__(
        self,
        db: Session,
        *,
        token_manager: ZohoTokenManager | None = None,
        today: date | None = None,
    ) -> None:
        self.db = db
        self.tokens = token_manager or get_token_manager()
        self.settings = self.tokens.settings
        self.today = today or date.today()
        self.repo = IntegrationRepository(db)
        self.finance = FinanceRepository(db)
        self.time = TimeRepository(db)
        self.directory_repo = DirectoryRepository(db)
        self.directory = DirectoryService(db)
        self.audit = AuditService(db)

    @staticmethod
    def serialize_log(row: SyncLog) -> dict[str, object]:
        return {
            "id": str(row.id),
            "sync_type": row.sync_type,
            "status": row.status,
            "records_synced": row.records_synced,
            "details": row.details,
            "triggered_by": str(row.triggered_by) if row.triggered_by else None,
            "started_at": row.started_at.isoformat(),
            "completed_at": row.completed_at.isoformat() if row.completed_at else None,
        }

    def list_logs(self, limit: int) -> list[SyncLog]:
        return self.repo.list_sync_logs(limit)

    # ---------- OAuth and connection state ----------
    @staticmethod
    def integration_key(kind: str) -> str:
        key = INTEGRATION_KEYS.get(kind)
        if key is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown integration '{kind}'")
        return key

    def authorize_url(self, kind: str) -> str:
        key = self.integration_key(kind)
        accounts_url = region_config(self.settings.zoho_region).accounts_url
        is_books = key == ZOHO_BOOKS_KEY
        params = {
            "scope": self.settings.zoho_books_scope if is_books else self.settings.zoho_people_scope,
            "client_id": self.settings.zoho_client_id,
            "response_type": "code",
            "access_type": "offline",
            "prompt": "consent",
            "redirect_uri": self.settings.zoho_redirect_uri if is_books else self.settings.zoho_people_redirect_uri,
        }
        return str(httpx.URL(f"{accounts_url}/oauth/v2/auth", params=params))

    def _resolve_organization(self, client: httpx.Client, api_domain: str, access_token: str) -> tuple[str, str]:
        organization_id = self.settings.zoho_organization_id
        organization_name = "Zoho Books Organization"
        if organization_id:
            return organization_id, organization_name
        response = client.get(
            f"{api_domain}/books/v3/organizations",
            headers={"Authorization": f"Zoho-oauthtoken {access_token}"},
        )
        if response.status_code >= 400:
            logger.warning("Could not resolve Zoho Books organization: %s", response.text)
            return "", organization_name
        organizations = response.json().get("organizations") or []
        if organizations:
            organization_id = str(organizations[0].get("organization_id") or "")
            organization_name = organizations[0].get("name") or organization_name
        return organization_id, organization_name

    def exchange_code(self, kind: str, code: str) -> dict[str, object]:
        """Trade an OAuth authorization code for tokens and store them."""

        key = self.integration_key(kind)
        is_books = key == ZOHO_BOOKS_KEY
        region = region_config(self.settings.zoho_region)
        try:
            with self.tokens.http_client() as client:
                response = client.post(
                    f"{region.accounts_url}/oauth/v2/token",
                    data={
                        "code": code,
                        "client_id": self.settings.zoho_client_id,
                        "client_secret": self.settings.zoho_client_secret,
                        "redirect_uri": self.settings.zoho_redirect_uri
                        if is_books
                        else self.settings.zoho_people_redirect_uri,
                        "grant_type": "authorization_code",
                    },
                )
                if response.status_code >= 400:
                    raise IntegrationError("Zoho token exchange failed", response.text)
                token_data = response.json()
                if not token_data.get("access_token"):
                    raise IntegrationError("Zoho token exchange failed", str(token_data.get("error") or token_data))
                if not token_data.get("refresh_token"):
                    logger.warning("Zoho did not return a refresh token for %s", key)

                api_domain = token_data.get("api_domain") or region.api_domain
                config: dict[str, object] = {
                    "access_token": token_data["access_token"],
                    "refresh_token": token_data.get("refresh_token"),
                    "api_domain": api_domain,
                    "expires_at": self.tokens.now_ms() + int(token_data.get("expires_in") or 3600) * 1000,
                }
                if is_books:
                    organization_id, organization_name = self._resolve_organization(
                        client, api_domain, token_data["access_token"]
                    )
                    config["organization_id"] = organization_id
                    config["organization_name"] = organization_name
                else:
                    config["organization_name"] = "Zoho People"
        except httpx.HTTPError as exc:
            raise IntegrationError("Zoho token exchange failed", str(exc)) from exc

        now = datetime.utcnow()
        row = self.repo.get_settings(key)
        if row is None:
            self.repo.add_settings(IntegrationSettings(key=key, config=config, created_at=now, updated_at=now))
        else:
            row.config = config
            row.updated_at = now
        self.db.commit()
        logger.info("Connected %s", key)
        return self.connection_status(kind)

    def connection_status(self, kind: str) -> dict[str, object]:
        row = self.repo.get_settings(self.integration_key(kind))
        if row is None:
            return {"connected": False, "organization_name": None, "organization_id": None, "connected_at": None}
        config = row.config or {}
        return {
            "connected": True,
            "organization_name": config.get("organization_name"),
            "organization_id": config.get("organization_id"),
            "connected_at": row.created_at.isoformat(),
        }

    def disconnect(self, kind: str) -> None:
        key = self.integration_key(kind)
        row = self.repo.get_settings(key)
        if row is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Integration is not connected")
        self.repo.delete_settings(row)
        self.db.commit()
        logger.info("Disconnected %s", key)

    # ---------- Sync bookkeeping ----------
    def _write_log(
        self,
        *,
        sync_type: str,
        context: RequestUserContext,
        started_at: datetime,
        status_value: str,
        records_synced: int,
        details: dict[str, object],
    ) -> SyncLog:
        return self.repo.add_sync_log(
            SyncLog(
                sync_type=sync_type,
                status=status_value,
                records_synced=records_synced,
                details=details,
                triggered_by=context.user_id,
                started_at=started_at,
                completed_at=datetime.utcnow(),
            )
        )

    def _record_failure(self, sync_type: str, context: RequestUserContext, started_at: datetime, exc: Exception) -> None:
        self.db.rollback()
        logger.error("Sync %s failed: %s", sync_type, exc)
        details: dict[str, object] = {"error": str(exc)}
        if isinstance(exc, IntegrationError) and exc.upstream:
            details["upstream"] = exc.upstream
        self._write_log(
            sync_type=sync_type,
            context=context,
            started_at=started_at,
            status_value="failed",
            records_synced=0,
            details=details,
        )
        self.db.commit()

    def _finish(
        self,
        *,
        sync_type: str,
        context: RequestUserContext,
        started_at: datetime,
        total: int,
        created: int,
        updated: int,
        errors: list[str],
        extra: dict[str, object] | None = None,
    ) -> dict[str, object]:
        details: dict[str, object] = {
            "created": created,
            "updated": updated,
            "errors": len(errors),
            "total": total,
            **(extra or {}),
        }
        if errors:
            details["error_messages"] = errors
        log = self._write_log(
            sync_type=sync_type,
            context=context,
            started_at=started_at,
            status_value="completed_with_errors" if errors else "success",
            records_synced=created + updated,
            details=details,
        )
        self.audit.record(
            actor_id=context.user_id,
            entity="sync_log",
            entity_id=log.id,
            action="create",
            after=self.serialize_log(log),
        )
        self.db.commit()
        logger.info("Sync %s finished: %d created, %d updated, %d errors", sync_type, created, updated, len(errors))
        return {
            "success": True,
            "sync_log": {
                "id": str(log.id),
                "status": log.status,
                "processed": total,
                "synced": created + updated,
                "created": created,
                "updated": updated,
                "errors": len(errors),
                "duration_ms": int((log.completed_at - started_at).total_seconds() * 1000),
            },
            "details": errors or None,
        }

    def _require_tokens(self, key: str, label: str) -> ZohoTokens:
        tokens = self.tokens.get_access_token(self.db, key)
        if tokens is None:
            raise IntegrationError(f"{label} not connected. Please connect in Settings.")
        return tokens

    # ---------- Zoho Books ----------
    def _fetch_books(self, tokens: ZohoTokens, resource: str, start: date, end: date) -> tuple[list[dict], int]:
        records: list[dict] = []
        page = 1
        try:
            with self.tokens.http_client() as client:
                while True:
                    response = client.get(
                        f"{tokens.api_domain}/books/v3/{resource}",
                        params={
                            "organization_id": tokens.organization_id or "",
                            "date_start": start.isoformat(),
                            "date_end": end.isoformat(),
                            "page": page,
                            "per_page": BOOKS_PER_PAGE,
                        },
                        headers={"Authorization": f"Zoho-oauthtoken {tokens.access_token}"},
                    )
                    if response.status_code >= 400:
                        raise IntegrationError(f"Failed to fetch {resource} from Zoho Books", response.text)
                    payload = response.json()
                    records.extend(payload.get(resource) or [])
                    if not (payload.get("page_context") or {}).get("has_more_page"):
                        break
                    if page >= BOOKS_MAX_PAGES:
                        logger.warning("Reached page limit of %d fetching %s", BOOKS_MAX_PAGES, resource)
                        break
                    page += 1
        except httpx.HTTPError as exc:
            raise IntegrationError(f"Failed to fetch {resource} from Zoho Books", str(exc)) from exc
        return records, page

    def _upsert_bill(self, record: dict, rules: list[dict[str, object]], now: datetime) -> bool:
        zoho_id = str(record["bill_id"])
        bill = self.finance.get_bill_by_zoho_id(zoho_id)
        created = bill is None
        if bill is None:
            bill = Bill(zoho_bill_id=zoho_id, created_at=now)

        bill.vendor_id = record.get("vendor_id") or None
        bill.vendor_name = record.get("vendor_name") or "Unknown vendor"
        bill.bill_number = record.get("bill_number") or None
        bill.bill_date = date.fromisoformat(record["date"])
        bill.due_date = date.fromisoformat(record["due_date"]) if record.get("due_date") else None
        bill.status = map_bill_status(record.get("status"))
        bill.currency_code = record.get("currency_code") or "INR"
        bill.total = _decimal(record.get("total"))
        bill.balance = _decimal(record.get("balance"))
        bill.sub_total = _decimal(record.get("sub_total"), None)
        bill.tax_total = _decimal(record.get("tax_total"), None)
        bill.account_name = record.get("account_name") or None
        bill.description = record.get("description") or None
        bill.reference_number = record.get("reference_number") or None
        bill.notes = record.get("notes") or None
        bill.synced_at = now
        bill.updated_at = now

        billed_for = record.get("cf_billed_for_month_unformatted")
        if bill.billed_for_month is None:
            bill.billed_for_month = month_start(date.fromisoformat(billed_for[:10]) if billed_for else bill.bill_date)

        if created:
            reason = should_exclude_bill(rules, bill)
            bill.include_in_calculation = reason is None
            bill.exclusion_reason = reason
            self.finance.add_bill(bill)
        return created

    def sync_bills(
        self,
        *,
        context: RequestUserContext,
        range_name: str,
        from_date: date | None = None,
        to_date: date | None = None,
    ) -> dict[str, object]:
        start, end = resolve_date_range(range_name, today=self.today, from_date=from_date, to_date=to_date)
        started_at = datetime.utcnow()
        try:
            tokens = self._require_tokens(ZOHO_BOOKS_KEY, "Zoho Books")
            records, pages = self._fetch_books(tokens, "bills", start, end)
        except IntegrationError as exc:
            self._record_failure("zoho_bills", context, started_at, exc)
            raise

        rules = FinanceService(self.db).get_exclusion_rules()
        created = updated = 0
        errors: list[str] = []
        now = datetime.utcnow()
        for record in records:
            try:
                with self.db.begin_nested():
                    if self._upsert_bill(record, rules, now):
                        created += 1
                    else:
                        updated += 1
            except _RECORD_ERRORS as exc:
                errors.append(f"Failed to sync bill {record.get('bill_id')}: {exc}")

        result = self._finish(
            sync_type="zoho_bills",
            context=context,
            started_at=started_at,
            total=len(records),
            created=created,
            updated=updated,
            errors=errors,
            extra={"pages": pages, "from_date": start.isoformat(), "to_date": end.isoformat()},
        )
        result["count"] = created + updated
        return result

    def _upsert_expense(self, record: dict, now: datetime) -> bool:
        zoho_id = str(record["expense_id"])
        expense = self.finance.get_expense_by_zoho_id(zoho_id)
        created = expense is None
        if expense is None:
            expense = Expense(zoho_expense_id=zoho_id, include_in_calculation=True, created_at=now)

        total = _decimal(record.get("total"))
        expense.account_name = record.get("account_name") or None
        expense.expense_date = date.fromisoformat(record["date"])
        expense.amount = _decimal(record.get("total_without_tax"), None) or total
        expense.total = total
        expense.status = map_expense_status(record.get("status"))
        expense.is_billable = bool(record.get("is_billable"))
        expense.customer_name = record.get("customer_name") or None
        expense.currency_code = record.get("currency_code") or "INR"
        expense.description = record.get("description") or None
        expense.reference_number = record.get("reference_number") or None
        expense.notes = record.get("notes") or None
        expense.updated_at = now
        if created:
            self.finance.add_expense(expense)
        return created

    def sync_expenses(
        self,
        *,
        context: RequestUserContext,
        range_name: str,
        from_date: date | None = None,
        to_date: date | None = None,
    ) -> dict[str, object]:
        start, end = resolve_date_range(range_name, today=self.today, from_date=from_date, to_date=to_date)
        started_at = datetime.utcnow()
        try:
            tokens = self._require_tokens(ZOHO_BOOKS_KEY, "Zoho Books")
            records, pages = self._fetch_books(tokens, "expenses", start, end)
        except IntegrationError as exc:
            self._record_failure("zoho_expenses", context, started_at, exc)
            raise

        created = updated = 0
        errors: list[str] = []
        now = datetime.utcnow()
        for record in records:
            try:
                with self.db.begin_nested():
                    if self._upsert_expense(record, now):
                        created += 1
                    else:
                        updated += 1
            except _RECORD_ERRORS as exc:
                errors.append(f"Failed to sync expense {record.get('expense_id')}: {exc}")

        result = self._finish(
            sync_type="zoho_expenses",
            context=context,
            started_at=started_at,
            total=len(records),
            created=created,
            updated=updated,
            errors=errors,
            extra={"pages": pages, "from_date": start.isoformat(), "to_date": end.isoformat()},
        )
        result["count"] = created + updated
        return result

    # ---------- Zoho People ----------
    def _fetch_people_form(self, tokens: ZohoTokens, form: str) -> list[dict]:
        base = people_domain(self.settings.zoho_region)
        records: list[dict] = []
        start_index = 1
        try:
            with self.tokens.http_client() as client:
                while True:
                    response = client.get(
                        f"{base}/people/api/forms/{form}/getRecords",
                        params={"sIndex": start_index, "limit": PEOPLE_PAGE_SIZE},
                        headers={"Authorization": f"Zoho-oauthtoken {tokens.access_token}"},
                    )
                    if response.status_code >= 400:
                        raise IntegrationError(f"Failed to fetch {form} records from Zoho People", response.text)
                    payload = response.json()
                    if payload.get("status") not in (None, 0):
                        raise IntegrationError("Zoho People API error", payload.get("message") or "Unknown error")
                    batch = (payload.get("response") or {}).get("result") or []
                    records.extend(batch)
                    if len(batch) < PEOPLE_PAGE_SIZE:
                        break
                    start_index += PEOPLE_PAGE_SIZE
        except httpx.HTTPError as exc:
            raise IntegrationError(f"Failed to fetch {form} records from Zoho People", str(exc)) from exc
        return records

    def _upsert_employee(self, zoho_id: str, employee: dict) -> bool | None:
        email = (employee.get("EmailID") or "").strip().lower()
        if not email:
            return None
        name = f"{employee.get('FirstName') or ''} {employee.get('LastName') or ''}".strip() or email
        code = (employee.get("EmployeeID") or "").strip() or None
        designation = employee.get("Designation") or None
        department = employee.get("Department") or None
        exit_date = parse_zoho_date(employee.get("Dateofexit"))

        person = self.directory_repo.get_person_by_email(email)
        if person is None:
            self.directory.build_person(
                PersonCreateData(
                    email=email,
                    name=name,
                    start_date=parse_zoho_date(employee.get("Dateofjoining")) or self.today,
                    role=designation or "Employee",
                    department=department,
                    utilization_target=Decimal("0.85"),
                    end_date=exit_date,
                    employee_code=code,
                    zoho_employee_id=zoho_id,
                )
            )
            return True

        person.name = name
        person.zoho_employee_id = zoho_id
        person.employee_code = code or person.employee_code
        person.role = designation or person.role
        person.department = department or person.department
        person.end_date = exit_date
        person.updated_at = datetime.utcnow()
        self.db.flush()
        return False

    def _link_manager(self, zoho_id: str, employee: dict) -> bool:
        manager_email = (employee.get("Reporting_To.MailID") or "").strip().lower()
        person = self.directory_repo.get_person_by_zoho_id(zoho_id)
        if person is None:
            return False
        manager = self.directory_repo.get_person_by_email(manager_email) if manager_email else None
        if manager is None or manager.id == person.id or person.manager_id == manager.id:
            return False
        self.directory.change_manager(person, manager.id, effective=self.today)
        self.db.flush()
        return True

    def sync_employees(self, context: RequestUserContext) -> dict[str, object]:
        started_at = datetime.utcnow()
        try:
            tokens = self._require_tokens(ZOHO_PEOPLE_KEY, "Zoho People")
            records = self._fetch_people_form(tokens, "employee")
        except IntegrationError as exc:
            self._record_failure("zoho_people_employees", context, started_at, exc)
            raise

        created = updated = managers = 0
        errors: list[str] = []
        parsed = [item for item in (_first_item(record) for record in records) if item is not None]
        for zoho_id, employee in parsed:
            try:
                with self.db.begin_nested():
                    outcome = self._upsert_employee(zoho_id, employee)
            except _RECORD_ERRORS as exc:
                errors.append(f"Employee {zoho_id}: {exc}")
                continue
            if outcome is True:
                created += 1
            elif outcome is False:
                updated += 1

        for zoho_id, employee in parsed:
            try:
                with self.db.begin_nested():
                    if self._link_manager(zoho_id, employee):
                        managers += 1
            except _RECORD_ERRORS as exc:
                errors.append(f"Manager of {zoho_id}: {exc}")

        return self._finish(
            sync_type="zoho_people_employees",
            context=context,
            started_at=started_at,
            total=len(parsed),
            created=created,
            updated=updated,
            errors=errors,
            extra={"managers_updated": managers},
        )

    def _upsert_leave(self, leave_id: str, record: dict) -> bool | None:
        if (record.get("ApprovalStatus") or "").strip().lower() != LeaveStatus.APPROVED.value:
            return None
        person = self.directory_repo.get_person_by_zoho_id(str(record.get("Employee_ID.ID") or ""))
        start = parse_zoho_date(record.get("From"))
        end = parse_zoho_date(record.get("To"))
        if person is None or start is None or end is None:
            return None

        leave = self.time.get_leave_by_zoho_id(leave_id)
        created = leave is None
        if leave is None:
            leave = Leave(person_id=person.id, zoho_leave_id=leave_id, created_at=datetime.utcnow())
        leave.leave_type = record.get("Leavetype") or "Leave"
        leave.start_date = start
        leave.end_date = end
        leave.days = _decimal(record.get("Daystaken"))
        leave.status = LeaveStatus.APPROVED
        leave.reason = record.get("Reasonforleave") or None
        if created:
            self.time.add_leave(leave)
        else:
            self.db.flush()
        return created

    def sync_leaves(self, context: RequestUserContext) -> dict[str, object]:
        started_at = datetime.utcnow()
        try:
            tokens = self._require_tokens(ZOHO_PEOPLE_KEY, "Zoho People")
            records = self._fetch_people_form(tokens, "leave")
        except IntegrationError as exc:
            self._record_failure("zoho_people_leaves", context, started_at, exc)
            raise

        created = updated = 0
        errors: list[str] = []
        for record in records:
            item = _first_item(record)
            if item is None:
                continue
            leave_id, data = item
            try:
                with self.db.begin_nested():
                    outcome = self._upsert_leave(leave_id, data)
            except _RECORD_ERRORS as exc:
                errors.append(f"Leave {leave_id}: {exc}")
                continue
            if outcome is True:
                created += 1
            elif outcome is False:
                updated += 1

        return self._finish(
            sync_type="zoho_people_leaves",
            context=context,
            started_at=started_at,
            total=len(records),
            created=created,
            updated=updated,
            errors=errors,
        )

    def _fetch_holidays(self, tokens: ZohoTokens) -> list[dict]:
        base = people_domain(self.settings.zoho_region)
        holidays: list[dict] = []
        try:
            with self.tokens.http_client() as client:
                for year in (self.today.year - 1, self.today.year, self.today.year + 1):
                    response = client.get(
                        f"{base}/people/api/leave/v2/holidays/get",
                        params={"dateFormat": "dd-MMM-yyyy", "from": f"01-Jan-{year}", "to": f"31-Dec-{year}"},
                        headers={"Authorization": f"Zoho-oauthtoken {tokens.access_token}"},
                    )
                    if response.status_code >= 400:
                        logger.warning("Holiday fetch for %d failed: %s", year, response.text)
                        continue
                    payload = response.json()
                    if payload.get("status") != 1 or not payload.get("data"):
                        continue
                    holidays.extend(payload["data"])
        except httpx.HTTPError as exc:
            raise IntegrationError("Failed to fetch holidays from Zoho People", str(exc)) from exc
        return holidays

    def _upsert_holiday(self, record: dict) -> bool | None:
        holiday_date = parse_zoho_date(record.get("Date"))
        name = (record.get("Name") or "").strip()
        if holiday_date is None or not name:
            return None
        holiday = self.time.get_holiday_by_date(holiday_date)
        created = holiday is None
        if holiday is None:
            holiday = Holiday(holiday_date=holiday_date)
        holiday.name = name
        holiday.type = HolidayType.RESTRICTED if record.get("isRestrictedHoliday") else HolidayType.PUBLIC
        holiday.description = record.get("Remarks") or None
        holiday.zoho_holiday_id = str(record["ID"]) if record.get("ID") else None
        if created:
            self.time.add_holiday(holiday)
        else:
            self.db.flush()
        return created

    def sync_holidays(self, context: RequestUserContext) -> dict[str, object]:
        started_at = datetime.utcnow()
        try:
            tokens = self._require_tokens(ZOHO_PEOPLE_KEY, "Zoho People")
            records = self._fetch_holidays(tokens)
        except IntegrationError as exc:
            self._record_failure("zoho_people_holidays", context, started_at, exc)
            raise

        created = updated = 0
        errors: list[str] = []
        for record in records:
            try:
                with self.db.begin_nested():
                    outcome = self._upsert_holiday(record)
            except _RECORD_ERRORS as exc:
                errors.append(f"Holiday {record.get('Date')}: {exc}")
                continue
            if outcome is True:
                created += 1
            elif outcome is False:
                updated += 1

        return self._finish(
            sync_type="zoho_people_holidays",
            context=context,
            started_at=started_at,
            total=len(records),
            created=created,
            updated=updated,
            errors=errors,
        )

    def sync_zoho_people(self, *, context: RequestUserContext, sync_type: str) -> dict[str, object]:
        if sync_type not in PEOPLE_SYNC_TYPES:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid sync type. Use 'employees', 'leaves', 'holidays', or 'all'",
            )
        if sync_type == "employees":
            return self.sync_employees(context)
        if sync_type == "leaves":
            return self.sync_leaves(context)
        if sync_type == "holidays":
            return self.sync_holidays(context)
        return {
            "success": True,
            "results": {
                "employees": self.sync_employees(context),
                "leaves": self.sync_leaves(context),
                "holidays": self.sync_holidays(context),
            },
        }

    def get_log(self, log_id: UUID) -> SyncLog:
        row = self.db.get(SyncLog, log_id)
        if row is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Sync log not found")
        return row
