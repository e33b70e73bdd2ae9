"""Profit and loss, exports and pod financial reports."""

from __future__ import annotations

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from margindesk.core.auth import RequestUserContext, get_current_user_context
from margindesk.core.periods import parse_month
from margindesk.db.dependencies import get_db_session
from margindesk.services.pod_service import PodService
from margindesk.services.profit_loss_service import ProfitLossService

router = APIRouter(prefix="/reports", tags=["reports"])


@router.get("/profit-loss")
def get_profit_loss(
    month: str | None = None,
    _: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return ProfitLossService(db).report(parse_month(month))


@router.get("/profit-loss/export")
def export_profit_loss(
    month: str | None = None,
    format: str = Query(default="xlsx"),
    _: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> Response:
    exported = ProfitLossService(db).export(parse_month(month), format)
    return Response(
        content=exported.content,
        media_type=exported.media_type,
        headers={"Content-Disposition": f'attachment; filename="{exported.filename}"'},
    )


@router.get("/pod-financials")
def get_pod_financials(
    pod_id: UUID,
    start_date: date,
    end_date: date,
    _: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return PodService(db).financials(pod_id, start_date, end_date)
