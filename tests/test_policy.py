from __future__ import annotations

import datetime
import json
import unittest

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from pharmacy_rota.database import (
    PolicyBase,
    delete_policy,
    get_active_policy,
    get_policies,
    list_audit_log,
    record_audit_log,
    upsert_policy,
)
from pharmacy_rota.generator import generate_schedule, generate_schedule_for_month
from pharmacy_rota.models import AnnualLeaveRecord
from pharmacy_rota.policy import (
    BASELINE_POLICY,
    build_default_policy,
    coverage_settings,
    ensure_default_policy,
    load_active_policy,
    normalize_policy,
    parse_time_label,
    reallocation_settings,
    safety_limits,
)
from pharmacy_rota.roles import ASSISTANT_PHARMACIST, PHARMACIST


class PolicyNormalizationTests(unittest.TestCase):
    def test_default_policy_is_a_copy(self) -> None:
        policy = build_default_policy()
        policy["global"]["max_daily_hours"] = 99

        self.assertEqual(BASELINE_POLICY["global"]["max_daily_hours"], 11.0)

    def test_normalize_repairs_bad_values(self) -> None:
        policy = normalize_policy(
            {
                "global": {"max_daily_hours": "lots", "operational_start": "22:00", "operational_end": "08:00"},
                "reallocation": {"max_hours_per_round": -1},
                "coverage": {"working_swap_roles": ["asst", "nonsense"], "minimum_consecutive_off_days": 12},
            }
        )

        self.assertEqual(policy["global"]["max_daily_hours"], 11.0)
        self.assertEqual(policy["global"]["operational_start"], "09:15")
        self.assertEqual(policy["global"]["operational_end"], "21:45")
        self.assertEqual(policy["reallocation"]["max_hours_per_round"], 2.0)
        self.assertEqual(policy["coverage"]["working_swap_roles"], [ASSISTANT_PHARMACIST])
        self.assertEqual(policy["coverage"]["minimum_consecutive_off_days"], 6)

    def test_views_read_policy_sections(self) -> None:
        policy = normalize_policy(
            {
                "global": {"max_daily_hours": 12, "operational_end": "22:00"},
                "reallocation": {"max_hours_per_round": 1},
                "coverage": {"suggest_off_day_shifts": False},
            }
        )

        limits = safety_limits(policy)
        self.assertEqual(limits.max_daily_hours, 12)
        self.assertEqual(limits.operational_end, "22:00")
        self.assertEqual(reallocation_settings(policy)["max_hours_per_round"], 1)
        self.assertFalse(coverage_settings(policy)["suggest_off_day_shifts"])
        self.assertEqual(coverage_settings(policy)["working_swap_roles"], [PHARMACIST])

    def test_parse_time_label(self) -> None:
        self.assertEqual(parse_time_label("09:15"), 555)
        self.assertEqual(parse_time_label("21:45"), 1305)
        self.assertIsNone(parse_time_label("9.15"))
        self.assertIsNone(parse_time_label("25:00"))
        self.assertIsNone(parse_time_label(None))

    def test_policy_can_disable_working_swaps(self) -> None:
        leave_day = datetime.date(2025, 7, 7)
        schedule = generate_schedule(
            datetime.date(2025, 7, 1),
            annual_leave=[AnnualLeaveRecord("fatimah", leave_day)],
            policy={"coverage": {"working_swap_roles": []}},
        )

        day = next(day for day in schedule if day.date == leave_day)
        self.assertTrue(day.staff["fatimah"].warning.startswith("Coverage gap"))
        self.assertFalse(day.staff["amal"].is_swap_coverage)


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite://",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    PolicyBase.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, expire_on_commit=False, future=True)
    try:
        yield factory
    finally:
        engine.dispose()


def test_ensure_default_policy_seeds_once(session_factory) -> None:
    ensure_default_policy(session_factory)
    ensure_default_policy(session_factory)

    with session_factory() as session:
        policies = get_policies(session)
    assert len(policies) == 1
    assert policies[0].name == "Pharmacy Baseline"
    assert "name" not in policies[0].params_dict()


def test_load_active_policy_prefers_latest_edit(session_factory) -> None:
    ensure_default_policy(session_factory)
    with session_factory() as session:
        upsert_policy(session, "Late Close", {"global": {"operational_end": "22:30"}}, edited_by="tests")

    policy = load_active_policy(session_factory)

    assert policy["global"]["operational_end"] == "22:30"
    assert policy["global"]["max_daily_hours"] == 11.0


def test_load_active_policy_without_rows_falls_back(session_factory) -> None:
    with session_factory() as session:
        policy = load_active_policy(session)

    assert policy == normalize_policy({})


def test_upsert_policy_requires_name(session_factory) -> None:
    with session_factory() as session:
        with pytest.raises(ValueError):
            upsert_policy(session, "  ", {})


def test_delete_policy_falls_back_to_remaining(session_factory) -> None:
    ensure_default_policy(session_factory)
    with session_factory() as session:
        late = upsert_policy(session, "Late Close", {"global": {"operational_end": "22:30"}}, edited_by="tests")
        delete_policy(session, late.id)
        names = [policy.name for policy in get_policies(session)]

    assert names == ["Pharmacy Baseline"]
    assert load_active_policy(session_factory)["global"]["operational_end"] == "21:45"


def test_audit_log_round_trip(session_factory) -> None:
    with session_factory() as session:
        record_audit_log(session, "tests", "POLICY_EDIT", target_type="Policy", target_id="1", payload={"a": 1})
        record_audit_log(session, "tests", "schedule_generate", target_id="2025-07")
        entries = list_audit_log(session, action="POLICY_EDIT")

    assert len(entries) == 1
    assert json.loads(entries[0].payloadJSON) == {"a": 1}


def test_generate_for_month_uses_stored_policy_and_logs(session_factory) -> None:
    ensure_default_policy(session_factory)
    with session_factory() as session:
        active = get_active_policy(session)
        params = active.params_dict()
        params["coverage"]["working_swap_roles"] = []
        upsert_policy(session, active.name, params, edited_by="tests")

    leave_day = datetime.date(2025, 7, 7)
    result = generate_schedule_for_month(
        session_factory,
        datetime.date(2025, 7, 15),
        [datetime.date(2025, 7, 14)],
        [AnnualLeaveRecord("fatimah", leave_day)],
        actor="tests",
    )

    assert result["month"] == "2025-07"
    assert result["days"] == 35
    assert len(result["coverage_gaps"]) == 1
    assert result["validation"]["issues"] == []
    assert any(warning["type"] == "coverage_gap" for warning in result["validation"]["warnings"])
    with session_factory() as session:
        entries = list_audit_log(session, action="schedule_generate")
    assert len(entries) == 1
    assert entries[0].user_id == "tests"
    assert entries[0].target_id == "2025-07"
    assert json.loads(entries[0].payloadJSON)["coverage_gaps"] == 1
