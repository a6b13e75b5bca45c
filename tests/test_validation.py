from __future__ import annotations

import datetime
import unittest

from pharmacy_rota.generator import generate_schedule
from pharmacy_rota.models import AnnualLeaveRecord, ShiftDefinition, SwapRecord
from pharmacy_rota.policy import SafetyLimits
from pharmacy_rota.roster import SHIFT_DEFINITIONS
from pharmacy_rota.validation import (
    calculate_break_time,
    max_feasible_addition,
    validate_daily_safety_limits,
    validate_operational_hours,
    validate_schedule,
)

JULY = datetime.date(2025, 7, 1)


def _shift(key: str, *, reallocated: float = 0.0) -> ShiftDefinition:
    shift = SHIFT_DEFINITIONS[key].clone()
    shift.reallocated_hours = reallocated
    return shift


class SafetyLimitTests(unittest.TestCase):
    def test_break_time_depends_on_shift_length(self) -> None:
        self.assertEqual(calculate_break_time(11), 1.5)
        self.assertEqual(calculate_break_time(12), 1.5)
        self.assertEqual(calculate_break_time(10.75), 1.0)
        self.assertEqual(calculate_break_time(7), 1.0)

    def test_accepts_addition_within_every_limit(self) -> None:
        check = validate_daily_safety_limits(_shift("8h_early"), 3)

        self.assertTrue(check.is_valid)
        self.assertEqual(check.max_allowed, 3)

    def test_rejects_addition_past_daily_cap(self) -> None:
        check = validate_daily_safety_limits(_shift("11h"), 1)

        self.assertFalse(check.is_valid)
        self.assertIn("daily maximum of 11h", check.reason)
        self.assertEqual(check.max_allowed, 0)

    def test_daily_cap_reports_largest_feasible_part(self) -> None:
        check = validate_daily_safety_limits(_shift("9h_early"), 3)

        self.assertFalse(check.is_valid)
        self.assertEqual(check.max_allowed, 2)

    def test_rejects_addition_past_extra_hour_cap(self) -> None:
        shift = ShiftDefinition(type="6h", timing="early", start_time="09:15", end_time="15:15", work_hours=6)
        shift.reallocated_hours = 3

        check = validate_daily_safety_limits(shift, 1.5)

        self.assertFalse(check.is_valid)
        self.assertIn("maximum extra hours per shift of 4h", check.reason)
        self.assertEqual(check.max_allowed, 1)

    def test_rejects_early_start_for_late_shift(self) -> None:
        shift = ShiftDefinition(type="9h", timing="late", start_time="13:00", end_time="20:00", work_hours=9)

        check = validate_daily_safety_limits(shift, 2)

        self.assertFalse(check.is_valid)
        self.assertIn("before operational hours", check.reason)
        # 20:00 less 09:15 leaves 10.75h for work plus a 1h break.
        self.assertEqual(check.max_allowed, 0.75)

    def test_rejects_late_finish_for_early_shift(self) -> None:
        shift = ShiftDefinition(type="7h", timing="early", start_time="12:00", end_time="20:00", work_hours=7)

        check = validate_daily_safety_limits(shift, 3)

        self.assertFalse(check.is_valid)
        self.assertIn("beyond operational hours", check.reason)
        self.assertEqual(check.max_allowed, 1.75)
        self.assertEqual(max_feasible_addition(shift, 3), 1.75)

    def test_long_shift_break_applies_at_eleven_hours(self) -> None:
        self.assertTrue(validate_operational_hours(_shift("9h_late"), 2).is_valid)
        self.assertTrue(validate_operational_hours(_shift("9h_early"), 2).is_valid)
        tight = ShiftDefinition(type="9h", timing="early", start_time="09:30", end_time="19:30", work_hours=9)
        self.assertFalse(validate_operational_hours(tight, 2).is_valid)

    def test_limits_follow_policy(self) -> None:
        limits = SafetyLimits(max_daily_hours=12, max_extra_hours_per_shift=5, operational_end="23:00")

        check = validate_daily_safety_limits(_shift("8h_early"), 4, limits)

        self.assertTrue(check.is_valid)


class ScheduleAuditTests(unittest.TestCase):
    def test_clean_schedule_passes_every_check(self) -> None:
        schedule = generate_schedule(JULY, [datetime.date(2025, 7, 7)])

        report = validate_schedule(schedule)

        self.assertEqual(report["month"], "2025-07")
        self.assertEqual(report["issues"], [])
        self.assertTrue(all(check["status"] == "pass" for check in report["checks"]))

    def test_flags_overfilled_shift(self) -> None:
        schedule = generate_schedule(JULY)
        entry = next(day for day in schedule if day.date == datetime.date(2025, 7, 9)).staff["fatimah"]
        entry.details.reallocated_hours = 5

        report = validate_schedule(schedule)

        types = {issue["type"] for issue in report["issues"]}
        self.assertIn("daily_cap", types)
        self.assertIn("extra_hours", types)
        self.assertIn("operational_window", types)
        failed = [check["label"] for check in report["checks"] if check["status"] == "fail"]
        self.assertIn("Daily hours within limit?", failed)

    def test_flags_unbalanced_banked_hours(self) -> None:
        holiday = datetime.date(2025, 7, 7)
        schedule = generate_schedule(JULY, [holiday])
        entry = next(day for day in schedule if day.date == holiday).staff["fatimah"]
        entry.total_reallocated_hours = 3

        report = validate_schedule(schedule)

        issues = [issue for issue in report["issues"] if issue["type"] == "banked_hours"]
        self.assertEqual(len(issues), 1)
        self.assertEqual(issues[0]["staff_id"], "fatimah")

    def test_reports_coverage_gap_as_warning(self) -> None:
        leave_day = datetime.date(2025, 7, 9)
        leave = [AnnualLeaveRecord("mathilda", leave_day)]
        schedule = generate_schedule(JULY, annual_leave=leave)

        report = validate_schedule(schedule, annual_leave=leave)

        self.assertEqual(report["issues"], [])
        gaps = [warning for warning in report["warnings"] if warning["type"] == "coverage_gap"]
        self.assertEqual(len(gaps), 1)
        self.assertEqual(gaps[0]["date"], leave_day.isoformat())
        self.assertEqual(gaps[0]["day"], "Wed")

    def test_flags_cross_role_leave_cover(self) -> None:
        leave_day = datetime.date(2025, 7, 9)
        schedule = generate_schedule(JULY, annual_leave=[AnnualLeaveRecord("fatimah", leave_day)])
        day = next(day for day in schedule if day.date == leave_day)
        day.staff["mathilda"] = day.staff.pop("amal")

        report = validate_schedule(schedule)

        self.assertTrue(any(issue["type"] == "role_match" for issue in report["issues"]))

    def test_agreed_swaps_may_cross_roles(self) -> None:
        swap = SwapRecord.create("fatimah", "mathilda", datetime.date(2025, 7, 7), datetime.date(2025, 7, 9))
        schedule = generate_schedule(JULY, swaps=[swap])

        report = validate_schedule(schedule)

        self.assertEqual(report["issues"], [])

    def test_flags_leave_left_as_shift(self) -> None:
        schedule = generate_schedule(JULY)

        report = validate_schedule(schedule, annual_leave=[AnnualLeaveRecord("fatimah", datetime.date(2025, 7, 9))])

        self.assertTrue(any(issue["type"] == "annual_leave" for issue in report["issues"]))


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
