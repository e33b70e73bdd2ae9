"""Repository helpers for integration settings, sync runs and audit rows."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from margindesk.models.entities import AuditLog, IntegrationSettings, SyncLog


class IntegrationRepository:
    """Persistence operations for integration state and audit trail."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def get_settings(self, key: str) -> IntegrationSettings | None:
        return self.db.scalar(select(IntegrationSettings).where(IntegrationSettings.key == key))

    def add_settings(self, row: IntegrationSettings) -> IntegrationSettings:
        self.db.add(row)
        self.db.flush()
        return row

    def delete_settings(self, row: IntegrationSettings) -> None:
        self.db.delete(row)
        self.db.flush()

    def list_sync_logs(self, limit: int) -> list[SyncLog]:
        return self.db.scalars(select(SyncLog).order_by(SyncLog.started_at.desc()).limit(limit)).all()

    def add_sync_log(self, row: SyncLog) -> SyncLog:
        self.db.add(row)
        self.db.flush()
        return row

    def list_audit_logs(self, *, entity: str | None, limit: int) -> list[AuditLog]:
        query = select(AuditLog)
        if entity is not None:
            query = query.where(AuditLog.entity == entity)
        return self.db.scalars(query.order_by(AuditLog.created_at.desc()).limit(limit)).all()

    def add_audit_log(self, row: AuditLog) -> AuditLog:
        self.db.add(row)
        self.db.flush()
        return row
