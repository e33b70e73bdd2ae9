from __future__ import annotations

from collections.abc import Callable
from datetime import date, datetime
from decimal import Decimal

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from margindesk.models.entities import ProjectCost, ProjectCostType, TimesheetEntry
from margindesk.services.pod_service import MembershipCreateData, PodCreateData, PodService, ProjectMappingCreateData


def _pod(client: TestClient, headers: dict[str, str], name: str, leader_id) -> dict:
    response = client.post("/api/v1/pods", headers=headers, json={"name": name, "leader_id": str(leader_id)})
    assert response.status_code == 201
    return response.json()


def test_pod_names_are_unique(client: TestClient, seed, auth_headers: Callable[..., dict[str, str]]) -> None:
    headers = auth_headers()
    leader = seed.person("lead@test.local", name="Lead")

    created = _pod(client, headers, "Platform Pod", leader.id)
    duplicate = client.post("/api/v1/pods", headers=headers, json={"name": "Platform Pod", "leader_id": str(leader.id)})

    assert created["leader"]["name"] == "Lead"
    assert created["member_count"] == 0
    assert duplicate.status_code == 409
    assert duplicate.json()["error"] == "Pod name already exists."


def test_membership_over_allocation_warns_but_succeeds(
    client: TestClient,
    seed,
    auth_headers: Callable[..., dict[str, str]],
) -> None:
    headers = auth_headers()
    leader = seed.person("lead@test.local", name="Lead")
    member = seed.person("asha@test.local", name="Asha")
    first = _pod(client, headers, "Data Pod", leader.id)
    second = _pod(client, headers, "Web Pod", leader.id)

    joined = client.post(
        f"/api/v1/pods/{first['id']}/members",
        headers=headers,
        json={"person_id": str(member.id), "start_date": "2026-01-01", "allocation_pct": 60},
    )
    assert joined.status_code == 201
    assert joined.json()["warning"] is None

    stretched = client.post(
        f"/api/v1/pods/{second['id']}/members",
        headers=headers,
        json={"person_id": str(member.id), "start_date": "2026-01-01", "allocation_pct": 50},
    )
    assert stretched.status_code == 201
    assert stretched.json()["warning"] == "Total allocation for Asha will be 110% across 2 pods"

    again = client.post(
        f"/api/v1/pods/{second['id']}/members",
        headers=headers,
        json={"person_id": str(member.id), "start_date": "2026-02-01", "allocation_pct": 10},
    )
    assert again.status_code == 400

    membership_id = stretched.json()["membership"]["id"]
    ended = client.delete(
        f"/api/v1/pods/{second['id']}/members/{membership_id}",
        headers=headers,
        params={"end_date": "2026-05-31"},
    )
    assert ended.json()["end_date"] == "2026-05-31"
    active = client.get(f"/api/v1/pods/{second['id']}/members", headers=headers, params={"active_only": True})
    assert active.json()["items"] == []


def test_membership_cannot_end_before_it_starts(db_session: Session, seed) -> None:
    service = PodService(db_session)
    leader = seed.person("lead@test.local", name="Lead")
    pod = service.create_pod(PodCreateData(name="Ops Pod", leader_id=leader.id))
    membership, _ = service.add_member(pod.id, MembershipCreateData(person_id=leader.id, start_date=date(2026, 3, 1)))

    with pytest.raises(HTTPException) as exc_info:
        service.end_member(pod.id, membership.id, date(2026, 2, 1))

    assert exc_info.value.status_code == 400


def test_project_can_only_be_actively_mapped_once(
    client: TestClient,
    seed,
    auth_headers: Callable[..., dict[str, str]],
) -> None:
    headers = auth_headers()
    pod = _pod(client, headers, "Infra Pod", seed.person("lead@test.local", name="Lead").id)
    project = seed.project()
    payload = {"project_id": str(project.id), "start_date": "2026-01-01"}

    first = client.post(f"/api/v1/pods/{pod['id']}/projects", headers=headers, json=payload)
    second = client.post(f"/api/v1/pods/{pod['id']}/projects", headers=headers, json=payload)

    assert first.status_code == 201
    assert first.json()["project_name"] == "Platform Build"
    assert second.status_code == 400
    assert second.json()["error"] == "Project is already actively mapped to this pod"


def test_pod_financials_prorate_salary_and_measure_utilization(
    client: TestClient,
    db_session: Session,
    seed,
    auth_headers: Callable[..., dict[str, str]],
) -> None:
    service = PodService(db_session)
    leader = seed.person("lead@test.local", name="Lead")
    member = seed.person("asha@test.local", name="Asha", employee_code="E100")
    project = seed.project()
    pod = service.create_pod(PodCreateData(name="Delivery Pod", leader_id=leader.id))
    service.add_member(
        pod.id,
        MembershipCreateData(person_id=member.id, start_date=date(2026, 3, 16), allocation_pct=50),
    )
    service.add_project_mapping(pod.id, ProjectMappingCreateData(project_id=project.id, start_date=date(2026, 1, 1)))
    seed.salary(member, date(2026, 3, 1), Decimal("100000.00"))
    seed.salary(member, date(2026, 4, 1), Decimal("100000.00"))

    now = datetime.utcnow()
    for month, amount in ((date(2026, 3, 1), "120000"), (date(2026, 4, 1), "80000")):
        db_session.add(
            ProjectCost(
                project_id=project.id,
                period_month=month,
                type=ProjectCostType.OTHER,
                amount=Decimal(amount),
                created_at=now,
                updated_at=now,
            )
        )
    for work_date, hours, billable in (
        (date(2026, 3, 10), "8", True),
        (date(2026, 3, 17), "8", True),
        (date(2026, 3, 18), "4", False),
    ):
        db_session.add(
            TimesheetEntry(
                person_id=member.id,
                project_id=project.id,
                work_date=work_date,
                hours_logged=Decimal(hours),
                is_billable=billable,
                source_row_hash=f"hash-{work_date.isoformat()}",
                created_at=now,
            )
        )
    db_session.commit()

    response = client.get(
        "/api/v1/reports/pod-financials",
        headers=auth_headers(),
        params={"pod_id": str(pod.id), "start_date": "2026-03-01", "end_date": "2026-04-30"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["summary"] == {
        "total_revenue": "200000.00",
        "total_salary_costs": "75806.45",
        "gross_profit": "124193.55",
        "gross_margin_pct": "62.10",
        "member_count": 1,
        "project_count": 1,
    }
    assert body["revenue_by_month"] == {"2026-03": "120000.00", "2026-04": "80000.00"}
    assert body["costs_by_month"] == {"2026-03": "25806.45", "2026-04": "50000.00"}

    [usage] = body["utilization"]
    assert usage["person"]["employee_code"] == "E100"
    assert usage["allocation_pct"] == "50.00"
    assert usage["working_hours"] == "272.00"
    assert usage["billable_hours"] == "8.00"
    assert usage["worked_hours"] == "12.00"
    assert usage["utilization_pct"] == "4.41"
    assert usage["projects"] == [{"project_id": str(project.id), "name": "Platform Build", "hours": "8.00"}]


def test_pod_financials_reject_inverted_window(
    client: TestClient,
    seed,
    auth_headers: Callable[..., dict[str, str]],
) -> None:
    headers = auth_headers()
    pod = _pod(client, headers, "Empty Pod", seed.person("lead@test.local", name="Lead").id)

    response = client.get(
        "/api/v1/reports/pod-financials",
        headers=headers,
        params={"pod_id": pod["id"], "start_date": "2026-04-01", "end_date": "2026-03-01"},
    )

    assert response.status_code == 400
