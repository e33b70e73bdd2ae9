"""Audit log browsing."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from margindesk.core.auth import RequestUserContext, require_admin
from margindesk.db.dependencies import get_db_session
from margindesk.services.audit_service import AuditService

router = APIRouter(prefix="/audit-logs", tags=["audit"])


@router.get("")
def list_audit_logs(
    entity: str | None = None,
    limit: int = Query(default=100, ge=1, le=1000),
    _: RequestUserContext = Depends(require_admin),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = AuditService(db)
    return {"items": [service.serialize_log(row) for row in service.list_logs(entity=entity, limit=limit)]}
