"""Audit trail writes and queries."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

from margindesk.models.entities import AuditLog
from margindesk.repositories.integration_repository import IntegrationRepository


class AuditService:
    def __init__(self, db: Session) -> None:
        self.db = db
        self.repo = IntegrationRepository(db)

    def record(
        self,
        *,
        actor_id: UUID | None,
        entity: str,
        entity_id: UUID | str | None,
        action: str,
        before: dict[str, object] | None = None,
        after: dict[str, object] | None = None,
    ) -> AuditLog:
        """Stage an audit row in the caller's transaction; the caller commits."""

        row = AuditLog(
            actor_id=actor_id,
            entity=entity,
            entity_id=str(entity_id) if entity_id is not None else None,
            action=action,
            before_json=jsonable_encoder(before) if before is not None else None,
            after_json=jsonable_encoder(after) if after is not None else None,
            created_at=datetime.utcnow(),
        )
        return self.repo.add_audit_log(row)

    def list_logs(self, *, entity: str | None, limit: int) -> list[AuditLog]:
        return self.repo.list_audit_logs(entity=entity, limit=limit)

    @staticmethod
    def serialize_log(row: AuditLog) -> dict[str, object]:
        return {
            "id": str(row.id),
            "actor_id": str(row.actor_id) if row.actor_id else None,
            "entity": row.entity,
            "entity_id": row.entity_id,
            "action": row.action,
            "before": row.before_json,
            "after": row.after_json,
            "created_at": row.created_at.isoformat(),
        }
