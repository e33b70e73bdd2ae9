"""Financial pods: membership, project mapping and pod financials."""

from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from margindesk.core.config import get_settings
from margindesk.core.periods import business_days, format_month, month_end, month_sequence, month_start
from margindesk.models.entities import FinancialPod, PodMembership, PodProjectMapping, PodStatus
from margindesk.repositories.directory_repository import DirectoryRepository
from margindesk.repositories.finance_repository import FinanceRepository
from margindesk.repositories.pod_repository import PodRepository
from margindesk.repositories.time_repository import TimeRepository
from margindesk.services.money import HUNDRED, ZERO, money_str, percent_of, q2

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PodCreateData:
    name: str
    leader_id: UUID
    description: str | None = None
    status: PodStatus = PodStatus.ACTIVE


@dataclass(slots=True)
class PodUpdateData:
    name: str | None = None
    leader_id: UUID | None = None
    description: str | None = None
    status: PodStatus | None = None


@dataclass(slots=True)
class MembershipCreateData:
    person_id: UUID
    start_date: date
    end_date: date | None = None
    allocation_pct: int = 100


@dataclass(slots=True)
class ProjectMappingCreateData:
    project_id: UUID
    start_date: date
    end_date: date | None = None


class PodService:
    def __init__(self, db: Session) -> None:
        self.db = db
        self.repo = PodRepository(db)
        self.directory = DirectoryRepository(db)
        self.finance = FinanceRepository(db)
        self.time = TimeRepository(db)
        self.settings = get_settings()

    def serialize_pod(self, pod: FinancialPod) -> dict[str, object]:
        leader = self.directory.get_person(pod.leader_id)
        return {
            "id": str(pod.id),
            "name": pod.name,
            "description": pod.description,
            "status": pod.status.value,
            "leader": {
                "id": str(pod.leader_id),
                "name": leader.name if leader else None,
                "employee_code": leader.employee_code if leader else None,
            },
            "member_count": len(self.repo.list_members(pod.id, active_only=True)),
            "active_project_count": len(self.repo.list_project_mappings(pod.id, active_only=True)),
            "created_at": pod.created_at.isoformat(),
        }

    def serialize_membership(self, membership: PodMembership) -> dict[str, object]:
        person = self.directory.get_person(membership.person_id)
        return {
            "id": str(membership.id),
            "pod_id": str(membership.pod_id),
            "person_id": str(membership.person_id),
            "person_name": person.name if person else None,
            "start_date": membership.start_date.isoformat(),
            "end_date": membership.end_date.isoformat() if membership.end_date else None,
            "allocation_pct": membership.allocation_pct,
        }

    def serialize_mapping(self, mapping: PodProjectMapping) -> dict[str, object]:
        project = self.directory.get_project(mapping.project_id)
        return {
            "id": str(mapping.id),
            "pod_id": str(mapping.pod_id),
            "project_id": str(mapping.project_id),
            "project_name": project.name if project else None,
            "start_date": mapping.start_date.isoformat(),
            "end_date": mapping.end_date.isoformat() if mapping.end_date else None,
        }

    # ---------- Pods ----------
    def list_pods(self, *, status_filter: PodStatus | None, leader_id: UUID | None) -> list[FinancialPod]:
        return self.repo.list_pods(status=status_filter, leader_id=leader_id)

    def get_pod(self, pod_id: UUID) -> FinancialPod:
        pod = self.repo.get_pod(pod_id)
        if pod is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Pod not found")
        return pod

    def _require_person(self, person_id: UUID, label: str = "Person") -> None:
        if self.directory.get_person(person_id) is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{label} not found")

    def create_pod(self, data: PodCreateData) -> FinancialPod:
        self._require_person(data.leader_id, "Leader")
        now = datetime.utcnow()
        pod = FinancialPod(
            name=data.name.strip(),
            leader_id=data.leader_id,
            description=data.description,
            status=data.status,
            created_at=now,
            updated_at=now,
        )
        try:
            self.repo.add_pod(pod)
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Pod name already exists.") from exc
        self.db.refresh(pod)
        return pod

    def update_pod(self, pod_id: UUID, data: PodUpdateData) -> FinancialPod:
        pod = self.get_pod(pod_id)
        if data.leader_id is not None:
            self._require_person(data.leader_id, "Leader")
            pod.leader_id = data.leader_id
        if data.name is not None:
            pod.name = data.name.strip()
        if data.description is not None:
            pod.description = data.description or None
        if data.status is not None:
            pod.status = data.status
        pod.updated_at = datetime.utcnow()
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Pod name already exists.") from exc
        self.db.refresh(pod)
        return pod

    def delete_pod(self, pod_id: UUID) -> None:
        pod = self.get_pod(pod_id)
        self.repo.delete_pod(pod)
        self.db.commit()
        logger.info("Deleted pod %s", pod_id)

    # ---------- Members ----------
    def list_members(self, pod_id: UUID, *, active_only: bool) -> list[PodMembership]:
        self.get_pod(pod_id)
        return self.repo.list_members(pod_id, active_only=active_only)

    def add_member(self, pod_id: UUID, data: MembershipCreateData) -> tuple[PodMembership, str | None]:
        self.get_pod(pod_id)
        person = self.directory.get_person(data.person_id)
        if person is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Person not found")
        if not 0 <= data.allocation_pct <= 100:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="allocation_pct must be between 0 and 100",
            )
        if data.end_date is not None and data.end_date < data.start_date:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="end_date must be greater than or equal to start_date.",
            )

        active = self.repo.list_active_memberships_for_person(person.id)
        if any(row.pod_id == pod_id for row in active):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Person is already an active member of this pod",
            )

        new_total = sum(row.allocation_pct for row in active) + data.allocation_pct
        warning = None
        if new_total > 100:
            warning = f"Total allocation for {person.name} will be {new_total}% across {len(active) + 1} pods"

        membership = PodMembership(
            pod_id=pod_id,
            person_id=person.id,
            start_date=data.start_date,
            end_date=data.end_date,
            allocation_pct=data.allocation_pct,
            created_at=datetime.utcnow(),
        )
        try:
            self.repo.add_membership(membership)
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Membership with this start date already exists.",
            ) from exc
        self.db.refresh(membership)
        return membership, warning

    def end_member(self, pod_id: UUID, membership_id: UUID, end_date: date | None) -> PodMembership:
        membership = self.repo.get_membership(membership_id)
        if membership is None or membership.pod_id != pod_id:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Membership not found")
        effective = end_date or date.today()
        if effective < membership.start_date:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="end_date must be greater than or equal to start_date.",
            )
        membership.end_date = effective
        self.db.commit()
        self.db.refresh(membership)
        return membership

    # ---------- Project mappings ----------
    def list_project_mappings(self, pod_id: UUID, *, active_only: bool) -> list[PodProjectMapping]:
        self.get_pod(pod_id)
        return self.repo.list_project_mappings(pod_id, active_only=active_only)

    def add_project_mapping(self, pod_id: UUID, data: ProjectMappingCreateData) -> PodProjectMapping:
        self.get_pod(pod_id)
        if self.directory.get_project(data.project_id) is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")
        if data.end_date is not None and data.end_date < data.start_date:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="end_date must be after start_date")
        if any(row.project_id == data.project_id for row in self.repo.list_project_mappings(pod_id, active_only=True)):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Project is already actively mapped to this pod",
            )

        mapping = PodProjectMapping(
            pod_id=pod_id,
            project_id=data.project_id,
            start_date=data.start_date,
            end_date=data.end_date,
            created_at=datetime.utcnow(),
        )
        self.repo.add_project_mapping(mapping)
        self.db.commit()
        self.db.refresh(mapping)
        return mapping

    def end_project_mapping(self, pod_id: UUID, mapping_id: UUID, end_date: date | None) -> PodProjectMapping:
        mapping = self.repo.get_project_mapping(mapping_id)
        if mapping is None or mapping.pod_id != pod_id:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project mapping not found")
        effective = end_date or date.today()
        if effective < mapping.start_date:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="end_date must be after start_date")
        mapping.end_date = effective
        self.db.commit()
        self.db.refresh(mapping)
        return mapping

    # ---------- Financials ----------
    def financials(self, pod_id: UUID, start: date, end: date) -> dict[str, object]:
        """Revenue, prorated salary cost and member utilization for a date window."""

        if end < start:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="end_date must be greater than or equal to start_date.",
            )
        pod = self.get_pod(pod_id)
        window = (start, end)
        months = month_sequence(start, end)

        mappings = self.repo.list_project_mappings(pod.id, window=window)
        project_ids = {mapping.project_id for mapping in mappings}
        projects = {project.id: project for project in self.directory.list_projects_by_ids(project_ids)}
        costs = self.finance.list_project_costs(
            start=month_start(start),
            end=month_start(end),
            project_ids=project_ids,
        )

        revenue_by_month: dict[str, Decimal] = {format_month(month): ZERO for month in months}
        revenue_by_project: dict[UUID, Decimal] = {}
        for cost in costs:
            key = format_month(cost.period_month)
            revenue_by_month[key] = revenue_by_month.get(key, ZERO) + cost.amount
            revenue_by_project[cost.project_id] = revenue_by_project.get(cost.project_id, ZERO) + cost.amount

        members = self.repo.list_members(pod.id, window=window)
        person_ids = {member.person_id for member in members}
        people = {person.id: person for person in self.directory.list_people_by_ids(person_ids)}
        salaries = {
            (row.person_id, row.month): row.total
            for row in self.finance.list_salaries_in_range(person_ids, month_start(start), month_start(end))
        }

        cost_by_month: dict[str, Decimal] = {}
        for month in months:
            first_day = month_start(month)
            last_day = month_end(month)
            days_in_month = calendar.monthrange(month.year, month.month)[1]
            month_cost = ZERO
            for member in members:
                salary = salaries.get((member.person_id, first_day))
                if salary is None:
                    continue
                effective_start = max(member.start_date, start, first_day)
                effective_end = min(member.end_date or end, end, last_day)
                days_in_pod = (effective_end - effective_start).days + 1
                if days_in_pod <= 0:
                    continue
                month_cost += (
                    salary * Decimal(member.allocation_pct) / HUNDRED * Decimal(days_in_pod) / Decimal(days_in_month)
                )
            cost_by_month[format_month(month)] = q2(month_cost)

        entries = self.time.list_timesheet_entries(person_ids=person_ids, start=start, end=end) if person_ids else []
        entry_projects = {
            project.id: project
            for project in self.directory.list_projects_by_ids({entry.project_id for entry in entries})
        }
        day_hours = Decimal(self.settings.standard_day_hours)
        utilization = []
        for member in members:
            effective_start = max(member.start_date, start)
            effective_end = min(member.end_date or end, end)
            billable = ZERO
            non_billable = ZERO
            by_project: dict[UUID, Decimal] = {}
            for entry in entries:
                if entry.person_id != member.person_id:
                    continue
                if entry.work_date < effective_start or entry.work_date > effective_end:
                    continue
                if entry.is_billable:
                    billable += entry.hours_logged
                    by_project[entry.project_id] = by_project.get(entry.project_id, ZERO) + entry.hours_logged
                else:
                    non_billable += entry.hours_logged
            working = Decimal(business_days(effective_start, effective_end)) * day_hours
            worked = billable + non_billable
            person = people.get(member.person_id)
            utilization.append(
                {
                    "person": {
                        "id": str(member.person_id),
                        "name": person.name if person else None,
                        "employee_code": person.employee_code if person else None,
                    },
                    "allocation_pct": money_str(member.allocation_pct),
                    "billable_hours": money_str(billable),
                    "non_billable_hours": money_str(non_billable),
                    "working_hours": money_str(working),
                    "worked_hours": money_str(worked),
                    "unutilized_hours": money_str(working - worked),
                    "utilization_pct": money_str(percent_of(worked, working)),
                    "billable_pct": money_str(percent_of(billable, working)),
                    "projects": [
                        {
                            "project_id": str(project_id),
                            "name": entry_projects[project_id].name if project_id in entry_projects else None,
                            "hours": money_str(hours),
                        }
                        for project_id, hours in by_project.items()
                    ],
                }
            )

        total_revenue = sum(revenue_by_month.values(), ZERO)
        total_cost = sum(cost_by_month.values(), ZERO)
        gross_profit = total_revenue - total_cost
        leader = self.directory.get_person(pod.leader_id)

        return {
            "pod": {
                "id": str(pod.id),
                "name": pod.name,
                "leader": {"id": str(pod.leader_id), "name": leader.name if leader else None},
            },
            "period": {"start_date": start.isoformat(), "end_date": end.isoformat()},
            "summary": {
                "total_revenue": money_str(total_revenue),
                "total_salary_costs": money_str(total_cost),
                "gross_profit": money_str(gross_profit),
                "gross_margin_pct": money_str(percent_of(gross_profit, total_revenue)),
                "member_count": len(members),
                "project_count": len(project_ids),
            },
            "revenue_by_month": {key: money_str(value) for key, value in revenue_by_month.items()},
            "revenue_by_project": [
                {
                    "project_id": str(project_id),
                    "name": projects[project_id].name if project_id in projects else None,
                    "total": money_str(amount),
                }
                for project_id, amount in revenue_by_project.items()
                if amount > ZERO
            ],
            "costs_by_month": {key: money_str(value) for key, value in cost_by_month.items()},
            "utilization": utilization,
        }
