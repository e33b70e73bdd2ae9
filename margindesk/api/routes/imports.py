"""CSV imports for timesheets and salaries."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from sqlalchemy.orm import Session

from margindesk.core.auth import RequestUserContext, require_admin
from margindesk.core.periods import parse_month
from margindesk.db.dependencies import get_db_session
from margindesk.services.import_service import ImportService

router = APIRouter(prefix="/import", tags=["imports"])


def _read_csv_upload(file: UploadFile) -> tuple[str, bytes]:
    file_name = file.filename or "upload.csv"
    if not file_name.lower().endswith(".csv"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Only CSV files are supported")
    return file_name, file.file.read()


@router.post("/timesheet")
def import_timesheet(
    file: UploadFile = File(...),
    context: RequestUserContext = Depends(require_admin),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    file_name, content = _read_csv_upload(file)
    return ImportService(db).import_timesheet(context=context, file_name=file_name, content=content)


@router.get("/timesheet/batches")
def list_timesheet_batches(
    limit: int = Query(default=50, ge=1, le=500),
    _: RequestUserContext = Depends(require_admin),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = ImportService(db)
    return {"items": [service.serialize_batch(row) for row in service.list_batches(limit)]}


@router.get("/timesheet/batches/{batch_id}")
def get_timesheet_batch(
    batch_id: UUID,
    _: RequestUserContext = Depends(require_admin),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return ImportService(db).get_batch(batch_id)


@router.post("/salary")
def import_salaries(
    file: UploadFile = File(...),
    month: str = Form(...),
    context: RequestUserContext = Depends(require_admin),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    file_name, content = _read_csv_upload(file)
    return ImportService(db).import_salaries(
        context=context,
        file_name=file_name,
        content=content,
        month=parse_month(month),
    )
