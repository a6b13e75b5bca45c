from __future__ import annotations

from fastapi.testclient import TestClient
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import pharmacy_rota.api as api
from pharmacy_rota.database import PolicyBase, list_audit_log


@pytest.fixture()
def api_client(monkeypatch):
    engine = create_engine(
        "sqlite://",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Session = sessionmaker(bind=engine, expire_on_commit=False, future=True)
    PolicyBase.metadata.create_all(engine)

    # Keep the API off the on-disk policy database.
    monkeypatch.setattr(api, "PolicySessionLocal", Session)
    monkeypatch.setattr(api, "init_database", lambda: None)

    with TestClient(api.app) as client:
        yield client, Session
    engine.dispose()


def test_health(api_client) -> None:
    client, _ = api_client

    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_generate_returns_days_hours_and_validation(api_client) -> None:
    client, Session = api_client

    response = client.post(
        "/api/v1/schedules/generate",
        json={
            "month": "2025-07",
            "actor": "tester",
            "publicHolidays": ["2025-07-07"],
            "annualLeave": [{"staffId": "fatimah", "date": "2025-07-09"}],
            "swaps": [],
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert body["month"] == "2025-07"
    assert len(body["days"]) == 35
    wednesday = next(day for day in body["days"] if day["date"] == "2025-07-09")
    assert wednesday["staff"]["fatimah"]["event"] == "AL"
    assert wednesday["staff"]["amal"]["isSwapCoverage"] is True
    assert body["validation"]["issues"] == []
    assert any(row["staffId"] == "fatimah" and row["weekNumber"] == 28 for row in body["weeklyHours"])
    with Session() as session:
        entries = list_audit_log(session, action="schedule_generate")
    assert entries[0].user_id == "tester"


def test_generate_rejects_bad_input(api_client) -> None:
    client, _ = api_client

    assert client.post("/api/v1/schedules/generate", json={}).status_code == 400
    assert client.post("/api/v1/schedules/generate", json={"month": "July"}).status_code == 400
    response = client.post(
        "/api/v1/schedules/generate",
        json={"month": "2025-07", "annualLeave": [{"staffId": "fatimah", "date": "soon"}]},
    )
    assert response.status_code == 400
    assert "leave date" in response.json()["detail"]


def test_weekly_hours_filters_by_staff(api_client) -> None:
    client, _ = api_client

    response = client.post(
        "/api/v1/schedules/weekly-hours?staff_id=amal",
        json={"month": "2025-07-01", "annualLeave": [{"staffId": "fatimah", "date": "2025-07-09"}]},
    )

    assert response.status_code == 200
    rows = response.json()["weeklyHours"]
    assert {row["staffId"] for row in rows} == {"amal"}
    week_28 = next(row for row in rows if row["weekNumber"] == 28)
    assert week_28["scheduledHours"] == 40


def test_holidays_can_be_filtered_by_month(api_client) -> None:
    client, _ = api_client

    response = client.get("/api/v1/holidays", params={"month": "2025-06"})

    assert response.status_code == 200
    names = [holiday["name"] for holiday in response.json()["holidays"]]
    assert names[0] == "Agong Birthday"
    assert len(names) == 4


def test_policy_round_trip(api_client) -> None:
    client, _ = api_client

    seeded = client.get("/api/v1/policy/active")
    assert seeded.status_code == 200
    assert seeded.json()["name"] == "Pharmacy Baseline"

    updated = client.put(
        "/api/v1/policy/active",
        json={"name": "Late Close", "params": {"global": {"operational_end": "22:30"}}, "actor": "manager"},
    )
    assert updated.status_code == 200
    assert updated.json()["lastEditedBy"] == "manager"

    active = client.get("/api/v1/policy/active").json()
    assert active["name"] == "Late Close"
    assert active["params"]["global"]["operational_end"] == "22:30"

    assert client.put("/api/v1/policy/active", json={"params": {}}).status_code == 400
