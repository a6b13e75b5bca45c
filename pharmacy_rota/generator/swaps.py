from __future__ import annotations

import datetime
import logging
from typing import Dict, Iterable, List, Optional, Sequence

from pharmacy_rota.generator.coverage import LeaveIndex
from pharmacy_rota.models import (
    EVENT_ANNUAL_LEAVE,
    EVENT_OFF,
    EVENT_PUBLIC_HOLIDAY,
    EVENT_SHIFT,
    SWAP_COVERING,
    SWAP_ORIGINAL_OFF,
    ScheduledDay,
    ShiftDefinition,
    StaffDaySchedule,
    StaffMember,
    SwapInfo,
    SwapRecord,
    clone_shift,
)

logger = logging.getLogger(__name__)

ShiftSnapshots = Dict[str, Optional[ShiftDefinition]]


def snapshot_key(staff_id: str, date_value: datetime.date) -> str:
    return f"{staff_id}-{date_value.isoformat()}"


def _holds_leave(entry: StaffDaySchedule) -> bool:
    return entry.event == EVENT_ANNUAL_LEAVE or bool(entry.temp_staff_name)


class SwapReconciler:
    """Rewrites a built schedule so each agreed swap shows both sides of the trade.

    Works from per-day pattern snapshots taken before leave and coverage were
    applied, so a swap always exchanges the shifts each person was rostered for.
    """

    def __init__(
        self,
        roster: Sequence[StaffMember],
        snapshots: ShiftSnapshots,
        leave_index: Optional[LeaveIndex] = None,
    ) -> None:
        self.staff_map = {member.id: member for member in roster}
        self.snapshots = snapshots
        self.leave_index: LeaveIndex = leave_index or {}
        self.applied: List[str] = []
        self.skipped: List[str] = []

    def apply(self, schedule: Sequence[ScheduledDay], swaps: Iterable[SwapRecord]) -> List[str]:
        days = {day.date: day for day in schedule}
        for swap in swaps:
            if self._apply_one(days, swap):
                self.applied.append(swap.id)
            else:
                self.skipped.append(swap.id)
        return self.applied

    def _apply_one(self, days: Dict[datetime.date, ScheduledDay], swap: SwapRecord) -> bool:
        staff1 = self.staff_map.get(swap.staff_id1)
        staff2 = self.staff_map.get(swap.staff_id2)
        if staff1 is None or staff2 is None:
            logger.warning("Skipping swap %s: unknown staff member", swap.id)
            return False
        if staff1.id == staff2.id:
            logger.warning("Skipping swap %s: a swap needs two different staff members", swap.id)
            return False
        day1 = days.get(swap.date1)
        day2 = days.get(swap.date2)
        if day1 is None or day2 is None:
            # Swaps outside the displayed range belong to another month.
            return False

        keys = [
            snapshot_key(staff1.id, swap.date1),
            snapshot_key(staff2.id, swap.date1),
            snapshot_key(staff1.id, swap.date2),
            snapshot_key(staff2.id, swap.date2),
        ]
        missing = [key for key in keys if key not in self.snapshots]
        if missing:
            logger.warning("Skipping swap %s: no shift snapshot for %s", swap.id, ", ".join(missing))
            return False
        for day in (day1, day2):
            if any(
                (day.staff.get(member.id) or StaffDaySchedule(event=EVENT_OFF)).event == EVENT_PUBLIC_HOLIDAY
                for member in (staff1, staff2)
            ):
                logger.warning("Skipping swap %s: %s is a public holiday", swap.id, day.date.isoformat())
                return False

        conflict = self._leave_conflict(swap, day1, day2, staff1, staff2)
        if conflict:
            logger.warning("Skipping swap %s: %s", swap.id, conflict)
            return False

        staff1_shift_day1 = self.snapshots[keys[0]]
        staff2_shift_day2 = self.snapshots[keys[3]]

        day1.staff[staff2.id] = self._covering_entry(
            staff1_shift_day1, original=staff1, covering=staff2, swap_id=swap.id
        )
        day1.staff[staff1.id] = self._released_entry(
            day1.staff.get(staff1.id), original=staff1, covering=staff2, swap_id=swap.id
        )
        day2.staff[staff1.id] = self._covering_entry(
            staff2_shift_day2, original=staff2, covering=staff1, swap_id=swap.id
        )
        day2.staff[staff2.id] = self._released_entry(
            day2.staff.get(staff2.id), original=staff2, covering=staff1, swap_id=swap.id, is_result=True
        )
        logger.info(
            "Applied swap %s: %s covers %s on %s, %s covers %s on %s",
            swap.id,
            staff2.id,
            staff1.id,
            swap.date1.isoformat(),
            staff1.id,
            staff2.id,
            swap.date2.isoformat(),
        )
        return True

    def _leave_conflict(
        self,
        swap: SwapRecord,
        day1: ScheduledDay,
        day2: ScheduledDay,
        staff1: StaffMember,
        staff2: StaffMember,
    ) -> Optional[str]:
        """Describe why the swap would overwrite leave or leave cover, if it would."""
        # Each side takes over the partner's slot and gives up its own.
        slots = ((staff2, day1, True), (staff1, day2, True), (staff1, day1, False), (staff2, day2, False))
        for member, day, taking in slots:
            entry = day.staff.get(member.id)
            if entry is None:
                continue
            when = day.date.isoformat()
            if entry.is_swap_coverage:
                return f"{member.id} already covers a colleague on {when}"
            if not _holds_leave(entry):
                continue
            record = self.leave_index.get((member.id, day.date))
            linked = record is not None and record.swap_id == swap.id
            if taking or not linked or entry.temp_staff_name:
                return f"{member.id} is on annual leave on {when}"
        return None

    @staticmethod
    def _released_entry(
        current: Optional[StaffDaySchedule],
        *,
        original: StaffMember,
        covering: StaffMember,
        swap_id: str,
        is_result: bool = False,
    ) -> StaffDaySchedule:
        info = SwapInfo(
            original_staff_id=original.id,
            original_staff_name=original.name,
            swap_type=SWAP_ORIGINAL_OFF,
            covering_staff_id=covering.id,
            covering_staff_name=covering.name,
            swap_id=swap_id,
        )
        if current is not None and current.event == EVENT_ANNUAL_LEAVE:
            # Leave booked against this swap stays on the grid as leave.
            return StaffDaySchedule(
                event=EVENT_ANNUAL_LEAVE,
                warning=current.warning,
                is_swap_result=is_result,
                swap_info=info,
            )
        return StaffDaySchedule(event=EVENT_OFF, is_swap_result=is_result, swap_info=info)

    @staticmethod
    def _covering_entry(
        shift: Optional[ShiftDefinition],
        *,
        original: StaffMember,
        covering: StaffMember,
        swap_id: str,
    ) -> StaffDaySchedule:
        details = clone_shift(shift)
        return StaffDaySchedule(
            event=EVENT_SHIFT if details is not None else EVENT_OFF,
            details=details,
            is_swap_coverage=True,
            swap_info=SwapInfo(
                original_staff_id=original.id,
                original_staff_name=original.name,
                swap_type=SWAP_COVERING,
                covering_staff_id=covering.id,
                covering_staff_name=covering.name,
                swap_id=swap_id,
            ),
        )
