from __future__ import annotations

import datetime
from typing import Dict, List, Optional, Sequence

from pharmacy_rota.models import ShiftDefinition, ShiftPattern, StaffMember
from pharmacy_rota.roles import ASSISTANT_PHARMACIST, PHARMACIST

WEEKDAY_TOKENS = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
MON, TUE, WED, THU, FRI, SAT, SUN = range(7)


STAFF_MEMBERS: List[StaffMember] = [
    StaffMember(
        id="fatimah",
        name="Fatimah",
        role=PHARMACIST,
        weekly_hours=45,
        default_off_days=frozenset({SAT, SUN}),
    ),
    StaffMember(
        id="mathilda",
        name="Mathilda",
        role=ASSISTANT_PHARMACIST,
        weekly_hours=45,
        default_off_days=frozenset({MON, TUE}),
    ),
    StaffMember(
        id="pah",
        name="Pah",
        role=ASSISTANT_PHARMACIST,
        weekly_hours=45,
        default_off_days=frozenset({MON, TUE}),
    ),
    StaffMember(
        id="amal",
        name="Amal",
        role=PHARMACIST,
        weekly_hours=32,
        default_off_days=frozenset({WED, THU, FRI}),
    ),
]

# Templates only. The engine clones these per day; never mutate them.
SHIFT_DEFINITIONS: Dict[str, ShiftDefinition] = {
    "11h": ShiftDefinition(type="11h", timing=None, start_time="09:15", end_time="21:45", work_hours=11),
    "9h_early": ShiftDefinition(type="9h", timing="early", start_time="09:15", end_time="19:15", work_hours=9),
    "9h_late": ShiftDefinition(type="9h", timing="late", start_time="11:45", end_time="21:45", work_hours=9),
    "8h_early": ShiftDefinition(type="8h", timing="early", start_time="09:15", end_time="18:15", work_hours=8),
    "8h_late": ShiftDefinition(type="8h", timing="late", start_time="12:45", end_time="21:45", work_hours=8),
    "7h_early": ShiftDefinition(type="7h", timing="early", start_time="09:15", end_time="17:15", work_hours=7),
    "7h_late": ShiftDefinition(type="7h", timing="late", start_time="14:45", end_time="21:45", work_hours=7),
}


def _week(
    mon: Optional[str],
    tue: Optional[str],
    wed: Optional[str],
    thu: Optional[str],
    fri: Optional[str],
    sat: Optional[str],
    sun: Optional[str],
) -> Dict[int, Optional[ShiftDefinition]]:
    keys = (mon, tue, wed, thu, fri, sat, sun)
    return {day: (SHIFT_DEFINITIONS[key] if key else None) for day, key in enumerate(keys)}


# Pattern 0 runs in even ISO weeks, pattern 1 in odd ISO weeks.
PATTERN_EVEN_WEEKS = ShiftPattern(
    pattern_id=0,
    daily_shifts={
        "fatimah": _week("11h", "11h", "8h_early", "8h_early", "7h_early", None, None),
        "mathilda": _week(None, None, "11h", "9h_early", "9h_early", "9h_early", "7h_late"),
        "pah": _week(None, None, "9h_late", "9h_late", "9h_late", "9h_late", "9h_early"),
        "amal": _week("8h_late", "8h_late", None, None, None, "8h_late", "8h_late"),
    },
)

PATTERN_ODD_WEEKS = ShiftPattern(
    pattern_id=1,
    daily_shifts={
        "fatimah": _week("11h", "11h", "8h_early", "8h_early", "7h_late", None, None),
        "mathilda": _week(None, None, "9h_late", "9h_late", "9h_late", "9h_late", "9h_early"),
        "pah": _week(None, None, "11h", "9h_early", "9h_early", "9h_early", "7h_late"),
        "amal": _week("8h_early", "8h_early", None, None, None, "8h_early", "8h_early"),
    },
)

SHIFT_PATTERNS: List[ShiftPattern] = [PATTERN_EVEN_WEEKS, PATTERN_ODD_WEEKS]


def iso_week(date_value: datetime.date) -> int:
    return date_value.isocalendar()[1]


def pattern_for_date(date_value: datetime.date, patterns: Sequence[ShiftPattern] = SHIFT_PATTERNS) -> ShiftPattern:
    return patterns[iso_week(date_value) % len(patterns)]


def staff_lookup(roster: Sequence[StaffMember] = STAFF_MEMBERS) -> Dict[str, StaffMember]:
    return {member.id: member for member in roster}


def staff_name(staff_id: str, roster: Sequence[StaffMember] = STAFF_MEMBERS) -> str:
    member = staff_lookup(roster).get(staff_id)
    return member.name if member else staff_id
