from __future__ import annotations

import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from pharmacy_rota.models import ScheduledDay, StaffMember, WeeklyHourLog
from pharmacy_rota.roster import STAFF_MEMBERS


def is_current_month(date_value: datetime.date, target_month: datetime.date) -> bool:
    return (date_value.year, date_value.month) == (target_month.year, target_month.month)


def calculate_weekly_hours(
    schedule: Sequence[ScheduledDay],
    roster: Optional[Sequence[StaffMember]] = None,
) -> List[WeeklyHourLog]:
    """One log per staff member per ISO week in the schedule.

    Scheduled hours count base plus reallocated hours on worked shifts; banked
    hours are the unplaced remainder left on holiday entries.
    """
    members = list(roster if roster is not None else STAFF_MEMBERS)
    logs: Dict[Tuple[str, int], WeeklyHourLog] = {}
    weeks: List[int] = []
    for day in schedule:
        week = day.iso_week
        if week not in weeks:
            weeks.append(week)
        for member in members:
            key = (member.id, week)
            log = logs.get(key)
            if log is None:
                log = WeeklyHourLog(staff_id=member.id, week_number=week, target_hours=member.weekly_hours)
                logs[key] = log
            entry = day.staff.get(member.id)
            if entry is None:
                continue
            log.scheduled_hours += entry.worked_hours
            if entry.banked_hours and entry.banked_hours > 0:
                log.banked_hours += entry.banked_hours
    return [logs[(member.id, week)] for week in weeks for member in members]


def get_staff_weekly_hours(schedule: Sequence[ScheduledDay], staff_id: str, week_number: int) -> float:
    total = 0.0
    for day in schedule:
        if day.iso_week != week_number:
            continue
        entry = day.staff.get(staff_id)
        if entry is not None:
            total += entry.worked_hours
    return total
