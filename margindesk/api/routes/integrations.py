"""Zoho OAuth connection, settings and sync endpoints."""

from __future__ import annotations

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from margindesk.core.auth import RequestUserContext, get_current_user_context, require_admin
from margindesk.db.dependencies import get_db_session
from margindesk.services.sync_service import SyncService

router = APIRouter(tags=["integrations"])


class BooksSyncPayload(BaseModel):
    range: str = "this_fiscal_year"
    from_date: date | None = None
    to_date: date | None = None


class PeopleSyncPayload(BaseModel):
    sync_type: str = "all"


def _service(db: Session) -> SyncService:
    return SyncService(db)


# ---------- OAuth ----------
@router.get("/integrations/{kind}/authorize")
def authorize(
    kind: str,
    _: RequestUserContext = Depends(require_admin),
    db: Session = Depends(get_db_session),
) -> dict[str, str]:
    return {"url": _service(db).authorize_url(kind)}


@router.get("/integrations/{kind}/callback")
def oauth_callback(
    kind: str,
    code: str | None = None,
    error: str | None = None,
    _: RequestUserContext = Depends(require_admin),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    if error:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Authorization failed: {error}")
    if not code:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No authorization code received")
    return _service(db).exchange_code(kind, code)


# ---------- Settings ----------
@router.get("/settings/{kind}")
def connection_status(
    kind: str,
    _: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return _service(db).connection_status(kind)


@router.delete("/settings/{kind}", status_code=204)
def disconnect(
    kind: str,
    _: RequestUserContext = Depends(require_admin),
    db: Session = Depends(get_db_session),
) -> Response:
    _service(db).disconnect(kind)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------- Sync ----------
@router.post("/sync/bills")
def sync_bills(
    payload: BooksSyncPayload,
    context: RequestUserContext = Depends(require_admin),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return _service(db).sync_bills(
        context=context,
        range_name=payload.range,
        from_date=payload.from_date,
        to_date=payload.to_date,
    )


@router.post("/sync/expenses")
def sync_expenses(
    payload: BooksSyncPayload,
    context: RequestUserContext = Depends(require_admin),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return _service(db).sync_expenses(
        context=context,
        range_name=payload.range,
        from_date=payload.from_date,
        to_date=payload.to_date,
    )


@router.post("/sync/zoho-people")
def sync_zoho_people(
    payload: PeopleSyncPayload,
    context: RequestUserContext = Depends(require_admin),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return _service(db).sync_zoho_people(context=context, sync_type=payload.sync_type)


@router.get("/sync/logs")
def list_sync_logs(
    limit: int = Query(default=20, ge=1, le=200),
    _: RequestUserContext = Depends(require_admin),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    return {"items": [service.serialize_log(row) for row in service.list_logs(limit)]}


@router.get("/sync/logs/{log_id}")
def get_sync_log(
    log_id: UUID,
    _: RequestUserContext = Depends(require_admin),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    return service.serialize_log(service.get_log(log_id))
