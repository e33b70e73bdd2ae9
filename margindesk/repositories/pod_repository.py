"""Repository helpers for financial pods."""

from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy import and_, delete, or_, select
from sqlalchemy.orm import Session

from margindesk.models.entities import FinancialPod, PodMembership, PodProjectMapping, PodStatus


class PodRepository:
    """Persistence operations for pods, memberships and project mappings."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def list_pods(self, *, status: PodStatus | None = None, leader_id: UUID | None = None) -> list[FinancialPod]:
        query = select(FinancialPod)
        if status is not None:
            query = query.where(FinancialPod.status == status)
        if leader_id is not None:
            query = query.where(FinancialPod.leader_id == leader_id)
        return self.db.scalars(query.order_by(FinancialPod.name.asc())).all()

    def get_pod(self, pod_id: UUID) -> FinancialPod | None:
        return self.db.scalar(select(FinancialPod).where(FinancialPod.id == pod_id))

    def add_pod(self, pod: FinancialPod) -> FinancialPod:
        self.db.add(pod)
        self.db.flush()
        return pod

    def delete_pod(self, pod: FinancialPod) -> None:
        self.db.execute(delete(PodMembership).where(PodMembership.pod_id == pod.id))
        self.db.execute(delete(PodProjectMapping).where(PodProjectMapping.pod_id == pod.id))
        self.db.delete(pod)
        self.db.flush()

    # ---------- Memberships ----------
    def list_members(
        self,
        pod_id: UUID,
        *,
        active_only: bool = False,
        window: tuple[date, date] | None = None,
    ) -> list[PodMembership]:
        query = select(PodMembership).where(PodMembership.pod_id == pod_id)
        if active_only:
            query = query.where(PodMembership.end_date.is_(None))
        if window is not None:
            start, end = window
            query = query.where(
                and_(
                    PodMembership.start_date <= end,
                    or_(PodMembership.end_date.is_(None), PodMembership.end_date >= start),
                )
            )
        return self.db.scalars(query.order_by(PodMembership.start_date.asc())).all()

    def list_active_memberships_for_person(self, person_id: UUID) -> list[PodMembership]:
        return self.db.scalars(
            select(PodMembership).where(
                and_(PodMembership.person_id == person_id, PodMembership.end_date.is_(None))
            )
        ).all()

    def get_membership(self, membership_id: UUID) -> PodMembership | None:
        return self.db.scalar(select(PodMembership).where(PodMembership.id == membership_id))

    def add_membership(self, membership: PodMembership) -> PodMembership:
        self.db.add(membership)
        self.db.flush()
        return membership

    # ---------- Project mappings ----------
    def list_project_mappings(
        self,
        pod_id: UUID,
        *,
        active_only: bool = False,
        window: tuple[date, date] | None = None,
    ) -> list[PodProjectMapping]:
        query = select(PodProjectMapping).where(PodProjectMapping.pod_id == pod_id)
        if active_only:
            query = query.where(PodProjectMapping.end_date.is_(None))
        if window is not None:
            start, end = window
            query = query.where(
                and_(
                    PodProjectMapping.start_date <= end,
                    or_(PodProjectMapping.end_date.is_(None), PodProjectMapping.end_date >= start),
                )
            )
        return self.db.scalars(query.order_by(PodProjectMapping.start_date.asc())).all()

    def get_project_mapping(self, mapping_id: UUID) -> PodProjectMapping | None:
        return self.db.scalar(select(PodProjectMapping).where(PodProjectMapping.id == mapping_id))

    def add_project_mapping(self, mapping: PodProjectMapping) -> PodProjectMapping:
        self.db.add(mapping)
        self.db.flush()
        return mapping
