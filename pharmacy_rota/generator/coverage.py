from __future__ import annotations

import datetime
import logging
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Set, Tuple

from pharmacy_rota.models import (
    COVERAGE_DECIDE_LATER,
    EVENT_ANNUAL_LEAVE,
    EVENT_OFF,
    EVENT_SHIFT,
    SWAP_COVERING,
    AnnualLeaveRecord,
    ScheduledDay,
    ShiftDefinition,
    ShiftPattern,
    StaffDaySchedule,
    StaffMember,
    SwapInfo,
    clone_shift,
)
from pharmacy_rota.roles import canonical_role, role_in, role_matches

logger = logging.getLogger(__name__)

LeaveIndex = Dict[Tuple[str, datetime.date], AnnualLeaveRecord]


def coverage_gap_warning(role: str) -> str:
    return f"Coverage gap: No available {canonical_role(role) or role} to cover annual leave request"


def coverage_pending_warning(role: str) -> str:
    return f"Coverage pending: decision deferred for {canonical_role(role) or role} shift"


# ---------------------------------------------------------------------------
# Off-day shifting helpers


def has_consecutive_days(days: Iterable[int], required: int) -> bool:
    """True if ``days`` holds a run of ``required`` consecutive weekdays (Sun wraps to Mon)."""
    day_set = {day % 7 for day in days}
    if required <= 0:
        return True
    if len(day_set) < required:
        return False
    for start in day_set:
        run = 1
        current = start
        while (current + 1) % 7 in day_set and run < 7:
            current = (current + 1) % 7
            run += 1
        if run >= required:
            return True
    return False


def find_alternative_off_days(
    staff: StaffMember,
    current_off_days: Iterable[int],
    day_to_work: int,
    minimum_consecutive: int = 2,
) -> Set[int]:
    """Return an off-day set without ``day_to_work`` that keeps a consecutive rest block if possible."""
    remaining = set(current_off_days)
    remaining.discard(day_to_work)
    if has_consecutive_days(remaining, minimum_consecutive):
        return remaining
    for offset in (-1, 1):
        shifted = {(day + offset) % 7 for day in staff.default_off_days}
        shifted.discard(day_to_work)
        if has_consecutive_days(shifted, minimum_consecutive):
            return shifted
    return remaining


def calculate_dynamic_off_days(
    roster: Sequence[StaffMember],
    annual_leave: Iterable[AnnualLeaveRecord],
    target_date: datetime.date,
    minimum_consecutive: int = 2,
) -> Dict[str, FrozenSet[int]]:
    """Off-day sets per staff member after pulling same-role colleagues in for leave on ``target_date``."""
    dynamic: Dict[str, FrozenSet[int]] = {member.id: frozenset(member.default_off_days) for member in roster}
    staff_map = {member.id: member for member in roster}
    weekday = target_date.weekday()
    for record in annual_leave:
        if record.date != target_date:
            continue
        on_leave = staff_map.get(record.staff_id)
        if on_leave is None:
            continue
        for colleague in roster:
            if colleague.id == on_leave.id or not role_matches(colleague.role, on_leave.role):
                continue
            current = dynamic[colleague.id]
            if weekday not in current:
                continue
            shifted = find_alternative_off_days(colleague, current, weekday, minimum_consecutive)
            if len(shifted) >= minimum_consecutive:
                dynamic[colleague.id] = frozenset(shifted)
    return dynamic


# ---------------------------------------------------------------------------
# Resolver


class CoverageResolver:
    """Grants annual leave and finds same-role cover for the shift it vacates.

    Leave is never rejected. Search order: colleagues already off, then (for
    roles allowed to swap out of a working shift) a colleague on an equal or
    shorter shift, then a recorded coverage gap.
    """

    def __init__(
        self,
        roster: Sequence[StaffMember],
        leave_index: LeaveIndex,
        *,
        holidays: Iterable[datetime.date] = (),
        swap_ids: Iterable[str] = (),
        working_swap_roles: Iterable[str] = (),
        suggest_off_day_shifts: bool = False,
        minimum_consecutive_off_days: int = 2,
    ) -> None:
        self.roster = list(roster)
        self.leave_index = leave_index
        self.holidays: Set[datetime.date] = set(holidays)
        self.swap_ids: Set[str] = set(swap_ids)
        self.working_swap_roles: List[str] = list(working_swap_roles)
        self.suggest_off_day_shifts = suggest_off_day_shifts
        self.minimum_consecutive_off_days = minimum_consecutive_off_days
        self.coverage_gaps: List[Dict[str, str]] = []

    def on_leave(self, staff_id: str, date_value: datetime.date) -> bool:
        return (staff_id, date_value) in self.leave_index

    def resolve(
        self,
        day: ScheduledDay,
        staff: StaffMember,
        pattern: ShiftPattern,
        record: AnnualLeaveRecord,
    ) -> None:
        weekday = day.date.weekday()
        original_shift = pattern.shift_for(staff.id, weekday)
        if original_shift is None or day.date in self.holidays:
            day.staff[staff.id] = StaffDaySchedule(event=EVENT_ANNUAL_LEAVE)
            return

        if record.temp_staff is not None:
            temp = record.temp_staff
            details = ShiftDefinition(
                type=original_shift.type,
                timing=original_shift.timing,
                start_time=temp.start_time or original_shift.start_time,
                end_time=temp.end_time or original_shift.end_time,
                work_hours=original_shift.work_hours,
            )
            day.staff[staff.id] = StaffDaySchedule(
                event=EVENT_SHIFT,
                details=details,
                temp_staff_name=temp.name,
            )
            logger.info("%s on leave %s; temp cover %s", staff.id, day.date.isoformat(), temp.name)
            return

        if record.coverage_method == COVERAGE_DECIDE_LATER:
            day.staff[staff.id] = StaffDaySchedule(
                event=EVENT_ANNUAL_LEAVE,
                warning=coverage_pending_warning(staff.role),
            )
            return

        if record.swap_id and record.swap_id in self.swap_ids:
            day.staff[staff.id] = StaffDaySchedule(event=EVENT_ANNUAL_LEAVE)
            return

        cover = self._find_off_colleague(day, staff, pattern)
        if cover is None and role_in(staff.role, self.working_swap_roles):
            cover = self._find_working_colleague(day, staff, pattern, original_shift)
        if cover is None:
            warning = coverage_gap_warning(staff.role)
            day.staff[staff.id] = StaffDaySchedule(event=EVENT_ANNUAL_LEAVE, warning=warning)
            self.coverage_gaps.append({"date": day.date.isoformat(), "staff_id": staff.id, "message": warning})
            logger.warning("%s on %s: %s", staff.id, day.date.isoformat(), warning)
            return

        colleague, suggested = cover
        day.staff[colleague.id] = StaffDaySchedule(
            event=EVENT_SHIFT,
            details=clone_shift(original_shift),
            is_swap_coverage=True,
            swap_info=SwapInfo(
                original_staff_id=staff.id,
                original_staff_name=staff.name,
                swap_type=SWAP_COVERING,
                covering_staff_id=colleague.id,
                covering_staff_name=colleague.name,
                suggested_off_days=suggested,
            ),
        )
        day.staff[staff.id] = StaffDaySchedule(event=EVENT_ANNUAL_LEAVE)
        logger.info("%s covers %s on %s", colleague.id, staff.id, day.date.isoformat())

    def _colleagues(self, day: ScheduledDay, staff: StaffMember) -> List[StaffMember]:
        return [
            member
            for member in self.roster
            if member.id != staff.id
            and role_matches(member.role, staff.role)
            and not self.on_leave(member.id, day.date)
        ]

    def _find_off_colleague(
        self,
        day: ScheduledDay,
        staff: StaffMember,
        pattern: ShiftPattern,
    ) -> Optional[Tuple[StaffMember, Optional[List[int]]]]:
        weekday = day.date.weekday()
        for colleague in self._colleagues(day, staff):
            if pattern.shift_for(colleague.id, weekday) is not None:
                continue
            slot = day.staff.get(colleague.id)
            if slot is not None and (slot.event != EVENT_OFF or slot.is_swap_coverage or slot.is_swap_result):
                continue
            suggested = None
            if self.suggest_off_day_shifts:
                suggested = sorted(
                    find_alternative_off_days(
                        colleague,
                        colleague.default_off_days,
                        weekday,
                        self.minimum_consecutive_off_days,
                    )
                )
            return colleague, suggested
        return None

    def _find_working_colleague(
        self,
        day: ScheduledDay,
        staff: StaffMember,
        pattern: ShiftPattern,
        original_shift: ShiftDefinition,
    ) -> Optional[Tuple[StaffMember, Optional[List[int]]]]:
        weekday = day.date.weekday()
        for colleague in self._colleagues(day, staff):
            own_shift = pattern.shift_for(colleague.id, weekday)
            if own_shift is None or own_shift.work_hours > original_shift.work_hours:
                continue
            slot = day.staff.get(colleague.id)
            if slot is not None and (
                slot.event != EVENT_SHIFT or slot.is_swap_coverage or slot.temp_staff_name
            ):
                continue
            return colleague, None
        return None
