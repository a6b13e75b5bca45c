from __future__ import annotations

import datetime
import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from pharmacy_rota.models import (
    EVENT_ANNUAL_LEAVE,
    EVENT_PUBLIC_HOLIDAY,
    EVENT_SHIFT,
    AnnualLeaveRecord,
    ScheduledDay,
    ShiftDefinition,
    StaffMember,
)
from pharmacy_rota.policy import SafetyLimits, format_minutes, parse_time_label
from pharmacy_rota.roles import role_group, role_matches
from pharmacy_rota.roster import STAFF_MEMBERS, WEEKDAY_TOKENS

EPSILON = 1e-6
DEFAULT_LIMITS = SafetyLimits()


@dataclass(frozen=True)
class SafetyCheck:
    is_valid: bool
    reason: Optional[str] = None
    max_allowed: float = 0.0


def _hours(value: float) -> str:
    return f"{value:g}h"


def calculate_break_time(total_work_hours: float, limits: SafetyLimits = DEFAULT_LIMITS) -> float:
    """Break owed for a shift of the given length (1.5h at 11h and above, else 1h)."""
    if total_work_hours + EPSILON >= limits.long_shift_hours:
        return limits.long_shift_break_hours
    return limits.standard_break_hours


def shift_window(
    details: ShiftDefinition,
    hours_to_add: float = 0.0,
    limits: SafetyLimits = DEFAULT_LIMITS,
) -> Tuple[float, float]:
    """Return (start, end) in minutes after midnight for the shift, break included.

    Late shifts keep their end time and grow earlier; every other shift keeps
    its start time and grows later.
    """
    total = details.total_hours + hours_to_add
    span = (total + calculate_break_time(total, limits)) * 60
    if details.timing == "late":
        end = parse_time_label(details.end_time)
        if end is None:
            end = parse_time_label(limits.operational_end) or 0
        return end - span, float(end)
    start = parse_time_label(details.start_time)
    if start is None:
        start = parse_time_label(limits.operational_start) or 0
    return float(start), start + span


def validate_operational_hours(
    details: ShiftDefinition,
    hours_to_add: float,
    limits: SafetyLimits = DEFAULT_LIMITS,
) -> SafetyCheck:
    start, end = shift_window(details, hours_to_add, limits)
    open_minutes = parse_time_label(limits.operational_start)
    close_minutes = parse_time_label(limits.operational_end)
    total = details.total_hours + hours_to_add
    break_time = calculate_break_time(total, limits)
    if start + EPSILON < open_minutes:
        return SafetyCheck(
            False,
            f"Would start shift before operational hours (calculated start: {format_minutes(start)} "
            f"with {_hours(break_time)} break, limit: {limits.operational_start})",
        )
    if end - EPSILON > close_minutes:
        return SafetyCheck(
            False,
            f"Would extend shift beyond operational hours (calculated end: {format_minutes(end)} "
            f"with {_hours(break_time)} break, limit: {limits.operational_end})",
        )
    return SafetyCheck(True)


def max_feasible_addition(
    details: ShiftDefinition,
    requested: float,
    limits: SafetyLimits = DEFAULT_LIMITS,
) -> float:
    """Largest amount up to ``requested`` that passes every safety rule."""
    room = min(
        requested,
        limits.max_daily_hours - details.total_hours,
        limits.max_extra_hours_per_shift - (details.reallocated_hours or 0.0),
    )
    if room <= EPSILON:
        return 0.0
    step = limits.allocation_step_hours
    candidate = math.floor(room / step + EPSILON) * step
    while candidate > EPSILON:
        if validate_operational_hours(details, candidate, limits).is_valid:
            return round(candidate, 4)
        candidate -= step
    return 0.0


def validate_daily_safety_limits(
    details: ShiftDefinition,
    hours_to_add: float,
    limits: SafetyLimits = DEFAULT_LIMITS,
) -> SafetyCheck:
    """Check a proposed reallocation against the daily cap, extra-hour cap and opening window."""
    current_total = details.total_hours
    current_extra = details.reallocated_hours or 0.0
    new_total = current_total + hours_to_add
    if new_total > limits.max_daily_hours + EPSILON:
        return SafetyCheck(
            False,
            f"Would exceed daily maximum of {_hours(limits.max_daily_hours)} "
            f"(current: {_hours(current_total)}, trying to add: {_hours(hours_to_add)})",
            max_feasible_addition(details, hours_to_add, limits),
        )
    if current_extra + hours_to_add > limits.max_extra_hours_per_shift + EPSILON:
        return SafetyCheck(
            False,
            f"Would exceed maximum extra hours per shift of {_hours(limits.max_extra_hours_per_shift)} "
            f"(current extra: {_hours(current_extra)}, trying to add: {_hours(hours_to_add)})",
            max_feasible_addition(details, hours_to_add, limits),
        )
    operational = validate_operational_hours(details, hours_to_add, limits)
    if not operational.is_valid:
        return SafetyCheck(False, operational.reason, max_feasible_addition(details, hours_to_add, limits))
    return SafetyCheck(True, None, hours_to_add)


# ---------------------------------------------------------------------------
# Schedule audit


def validate_schedule(
    schedule: Sequence[ScheduledDay],
    *,
    roster: Sequence[StaffMember] = STAFF_MEMBERS,
    annual_leave: Iterable[AnnualLeaveRecord] = (),
    limits: SafetyLimits = DEFAULT_LIMITS,
    target_month: Optional[datetime.date] = None,
) -> Dict[str, Any]:
    """Return audit findings for a generated schedule."""
    staff_map = {member.id: member for member in roster}
    issues: List[Dict[str, Any]] = []
    warnings: List[Dict[str, Any]] = []
    issues.extend(_daily_cap_issues(schedule, staff_map, limits))
    issues.extend(_extra_hours_issues(schedule, staff_map, limits))
    issues.extend(_operational_window_issues(schedule, staff_map, limits))
    issues.extend(_role_integrity_issues(schedule, staff_map))
    issues.extend(_conservation_issues(schedule, staff_map))
    issues.extend(_leave_honoured_issues(schedule, staff_map, annual_leave))
    warnings.extend(_staff_day_warnings(schedule, staff_map))
    checks = _build_validation_checklist(issues)
    month = target_month or _infer_month(schedule)
    return {
        "month": month.strftime("%Y-%m") if month else None,
        "checks": checks,
        "issues": issues,
        "warnings": warnings,
    }


def _infer_month(schedule: Sequence[ScheduledDay]) -> Optional[datetime.date]:
    for day in schedule:
        if day.is_current_month:
            return day.date.replace(day=1)
    return None


def _label(day: ScheduledDay, member: Optional[StaffMember], staff_id: str) -> Dict[str, Any]:
    return {
        "date": day.date.isoformat(),
        "day": WEEKDAY_TOKENS[day.date.weekday()],
        "staff_id": staff_id,
        "staff": member.name if member else staff_id,
    }


def _working_entries(schedule: Sequence[ScheduledDay]):
    for day in schedule:
        for staff_id, entry in day.staff.items():
            if entry.event == EVENT_SHIFT and entry.details is not None:
                yield day, staff_id, entry


def _daily_cap_issues(schedule, staff_map, limits: SafetyLimits) -> List[Dict[str, Any]]:
    issues: List[Dict[str, Any]] = []
    for day, staff_id, entry in _working_entries(schedule):
        total = entry.details.total_hours
        if total <= limits.max_daily_hours + EPSILON:
            continue
        member = staff_map.get(staff_id)
        payload = _label(day, member, staff_id)
        payload.update(
            {
                "type": "daily_cap",
                "severity": "error",
                "message": f"{payload['staff']} is scheduled {_hours(total)} on {day.date.isoformat()} "
                f"(limit {_hours(limits.max_daily_hours)}).",
            }
        )
        issues.append(payload)
    return issues


def _extra_hours_issues(schedule, staff_map, limits: SafetyLimits) -> List[Dict[str, Any]]:
    issues: List[Dict[str, Any]] = []
    for day, staff_id, entry in _working_entries(schedule):
        extra = entry.details.reallocated_hours or 0.0
        if extra <= limits.max_extra_hours_per_shift + EPSILON:
            continue
        member = staff_map.get(staff_id)
        payload = _label(day, member, staff_id)
        payload.update(
            {
                "type": "extra_hours",
                "severity": "error",
                "message": f"{payload['staff']} carries {_hours(extra)} reallocated hours on "
                f"{day.date.isoformat()} (limit {_hours(limits.max_extra_hours_per_shift)}).",
            }
        )
        issues.append(payload)
    return issues


def _operational_window_issues(schedule, staff_map, limits: SafetyLimits) -> List[Dict[str, Any]]:
    issues: List[Dict[str, Any]] = []
    for day, staff_id, entry in _working_entries(schedule):
        if entry.temp_staff_name:
            continue
        check = validate_operational_hours(entry.details, 0.0, limits)
        if check.is_valid:
            continue
        member = staff_map.get(staff_id)
        payload = _label(day, member, staff_id)
        payload.update({"type": "operational_window", "severity": "error", "message": check.reason})
        issues.append(payload)
    return issues


def _role_integrity_issues(schedule, staff_map) -> List[Dict[str, Any]]:
    issues: List[Dict[str, Any]] = []
    for day in schedule:
        for staff_id, entry in day.staff.items():
            if not entry.is_swap_coverage or entry.swap_info is None:
                continue
            # Agreed swaps may cross roles; only leave cover must match.
            if entry.swap_info.swap_id:
                continue
            covering = staff_map.get(staff_id)
            original = staff_map.get(entry.swap_info.original_staff_id)
            if covering is None or original is None:
                continue
            if role_matches(covering.role, original.role):
                continue
            payload = _label(day, covering, staff_id)
            payload.update(
                {
                    "type": "role_match",
                    "severity": "error",
                    "group": role_group(original.role),
                    "message": f"{covering.name} ({covering.role}) covers {original.name} ({original.role}).",
                }
            )
            issues.append(payload)
    return issues


def _conservation_issues(schedule, staff_map) -> List[Dict[str, Any]]:
    issues: List[Dict[str, Any]] = []
    for day in schedule:
        for staff_id, entry in day.staff.items():
            if entry.event != EVENT_PUBLIC_HOLIDAY or entry.original_banked_hours is None:
                continue
            placed = entry.total_reallocated_hours or 0.0
            remaining = entry.remaining_unallocated_hours or 0.0
            if abs(entry.original_banked_hours - (placed + remaining)) <= EPSILON:
                continue
            member = staff_map.get(staff_id)
            payload = _label(day, member, staff_id)
            payload.update(
                {
                    "type": "banked_hours",
                    "severity": "error",
                    "message": f"Banked hours do not balance for {payload['staff']} on {day.date.isoformat()}: "
                    f"{entry.original_banked_hours:g} != {placed:g} + {remaining:g}.",
                }
            )
            issues.append(payload)
    return issues


def _leave_honoured_issues(schedule, staff_map, annual_leave) -> List[Dict[str, Any]]:
    issues: List[Dict[str, Any]] = []
    days = {day.date: day for day in schedule}
    for record in annual_leave:
        day = days.get(record.date)
        if day is None or record.staff_id not in staff_map:
            continue
        entry = day.staff.get(record.staff_id)
        if entry is None:
            continue
        if entry.event == EVENT_ANNUAL_LEAVE or entry.temp_staff_name:
            continue
        payload = _label(day, staff_map[record.staff_id], record.staff_id)
        payload.update(
            {
                "type": "annual_leave",
                "severity": "error",
                "message": f"Leave for {payload['staff']} on {day.date.isoformat()} was not applied.",
            }
        )
        issues.append(payload)
    return issues


def _staff_day_warnings(schedule, staff_map) -> List[Dict[str, Any]]:
    warnings: List[Dict[str, Any]] = []
    for day in schedule:
        for staff_id, entry in day.staff.items():
            if not entry.warning:
                continue
            member = staff_map.get(staff_id)
            payload = _label(day, member, staff_id)
            if entry.warning.startswith("Coverage gap"):
                kind = "coverage_gap"
            elif entry.warning.startswith("Coverage pending"):
                kind = "coverage_pending"
            elif entry.warning.startswith("Could not reallocate"):
                kind = "banked_hours"
            else:
                kind = "schedule"
            payload.update({"type": kind, "severity": "warning", "message": entry.warning})
            warnings.append(payload)
    return warnings


def _build_validation_checklist(issues: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    labels = [
        ("daily_cap", "Daily hours within limit?"),
        ("extra_hours", "Reallocated hours per shift within limit?"),
        ("operational_window", "Shifts inside opening hours?"),
        ("role_match", "Coverage matches roles?"),
        ("banked_hours", "Banked hours conserved?"),
        ("annual_leave", "Leave requests applied?"),
    ]
    checks: List[Dict[str, Any]] = []
    for issue_type, label in labels:
        matching = [issue for issue in issues if issue["type"] == issue_type]
        checks.append(
            {
                "label": label,
                "status": "fail" if matching else "pass",
                "details": matching[0]["message"] if matching else "",
            }
        )
    return checks
