"""Utilization calculation and reporting endpoints."""

from __future__ import annotations

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from margindesk.core.auth import RequestUserContext, get_current_user_context, require_admin
from margindesk.core.periods import format_month, month_start, parse_month
from margindesk.db.dependencies import get_db_session
from margindesk.services.utilization_service import BatchResult, UtilizationService

router = APIRouter(prefix="/utilization", tags=["utilization"])


class CalculatePayload(BaseModel):
    mode: str = "current"
    months_count: int = Field(default=6, ge=1, le=36)


def _serialize_batch(batch: BatchResult) -> dict[str, object]:
    return {
        "month": format_month(batch.month),
        "success": batch.success,
        "errors": batch.errors,
        "failed_person_ids": [str(person_id) for person_id in batch.failed_person_ids],
    }


@router.post("/calculate")
def calculate_utilization(
    payload: CalculatePayload,
    _: RequestUserContext = Depends(require_admin),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = UtilizationService(db)
    if payload.mode == "current":
        batches = [service.calculate_for_all(month_start(date.today()))]
        message = "Utilization calculated for current month"
    elif payload.mode == "last_n_months":
        batches = service.calculate_last_n_months(payload.months_count)
        message = f"Utilization calculated for last {payload.months_count} months"
    else:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid mode. Use 'current' or 'last_n_months'",
        )
    return {"success": True, "message": message, "results": [_serialize_batch(batch) for batch in batches]}


@router.get("/summary")
def utilization_summary(
    month: str | None = None,
    _: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    target = parse_month(month) if month else month_start(date.today())
    return UtilizationService(db).summary(target)


@router.get("/{person_id}")
def person_utilization(
    person_id: UUID,
    months: int = Query(default=6, ge=1, le=36),
    _: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return UtilizationService(db).person_history(person_id, months)
