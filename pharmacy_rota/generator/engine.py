from __future__ import annotations

import datetime
import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence

from pharmacy_rota.generator.coverage import CoverageResolver, LeaveIndex
from pharmacy_rota.generator.reallocation import BankedHourReallocator
from pharmacy_rota.generator.swaps import ShiftSnapshots, SwapReconciler, snapshot_key
from pharmacy_rota.models import (
    EVENT_OFF,
    EVENT_PUBLIC_HOLIDAY,
    EVENT_SHIFT,
    AnnualLeaveRecord,
    ScheduledDay,
    ShiftPattern,
    StaffDaySchedule,
    StaffMember,
    SwapRecord,
    clone_shift,
)
from pharmacy_rota.policy import coverage_settings, normalize_policy, reallocation_settings, safety_limits
from pharmacy_rota.roster import SHIFT_PATTERNS, STAFF_MEMBERS, pattern_for_date

logger = logging.getLogger(__name__)


def month_start(value: datetime.date) -> datetime.date:
    if isinstance(value, datetime.datetime):
        value = value.date()
    return value.replace(day=1)


def month_end(value: datetime.date) -> datetime.date:
    first = month_start(value)
    following = (first + datetime.timedelta(days=32)).replace(day=1)
    return following - datetime.timedelta(days=1)


def display_range(target_month: datetime.date) -> List[datetime.date]:
    """Every date of the Monday-to-Sunday weeks that overlap the target month."""
    first = month_start(target_month)
    last = month_end(target_month)
    start = first - datetime.timedelta(days=first.weekday())
    end = last + datetime.timedelta(days=6 - last.weekday())
    return [start + datetime.timedelta(days=offset) for offset in range((end - start).days + 1)]


def _holiday_date(value: Any) -> datetime.date:
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    holiday = getattr(value, "date", None)
    if isinstance(holiday, datetime.date):
        return holiday
    return datetime.date.fromisoformat(str(value))


class ScheduleGenerator:
    """Builds a month's rota in four stages.

    1. Day assignment: one ScheduledDay per displayed date, each staff slot
       cloned from the week's pattern, with leave taking precedence over
       holidays. Pre-swap shift snapshots are captured here.
    2. Leave resolution runs inside stage 1 whenever a slot has leave.
    3. Swap reconciliation rewrites the built grid from the stage 1 snapshots.
    4. Banked-hour reallocation runs last, over the final Shift entries.
    """

    def __init__(
        self,
        policy: Optional[Dict[str, Any]] = None,
        *,
        roster: Optional[Sequence[StaffMember]] = None,
        patterns: Optional[Sequence[ShiftPattern]] = None,
    ) -> None:
        self.policy = normalize_policy(policy)
        self.roster: List[StaffMember] = list(roster if roster is not None else STAFF_MEMBERS)
        self.patterns: List[ShiftPattern] = list(patterns if patterns is not None else SHIFT_PATTERNS)
        if not self.patterns:
            raise ValueError("At least one shift pattern is required.")
        self.staff_map = {member.id: member for member in self.roster}
        self.limits = safety_limits(self.policy)
        self.coverage_cfg = coverage_settings(self.policy)
        self.realloc_cfg = reallocation_settings(self.policy)
        self.snapshots: ShiftSnapshots = {}
        self.applied_swaps: List[str] = []
        self.skipped_swaps: List[str] = []
        self.coverage_gaps: List[Dict[str, str]] = []
        self.shortfalls: List[Dict[str, Any]] = []
        self.skipped_records: List[Dict[str, str]] = []

    def generate(
        self,
        target_month: datetime.date,
        public_holidays: Iterable[Any] = (),
        annual_leave: Iterable[AnnualLeaveRecord] = (),
        swaps: Iterable[SwapRecord] = (),
    ) -> List[ScheduledDay]:
        if target_month is None:
            raise ValueError("target_month is required.")
        self.skipped_records = []
        first = month_start(target_month)
        holidays = {_holiday_date(value) for value in public_holidays}
        swap_list = self._known_swaps(swaps)
        leave_index = self._index_leave(annual_leave)

        resolver = CoverageResolver(
            self.roster,
            leave_index,
            holidays=holidays,
            swap_ids=[swap.id for swap in swap_list],
            working_swap_roles=self.coverage_cfg.get("working_swap_roles", []),
            suggest_off_day_shifts=bool(self.coverage_cfg.get("suggest_off_day_shifts")),
            minimum_consecutive_off_days=int(self.coverage_cfg.get("minimum_consecutive_off_days", 2)),
        )
        schedule = self._build_days(first, holidays, leave_index, resolver)
        self.coverage_gaps = list(resolver.coverage_gaps)

        reconciler = SwapReconciler(self.roster, self.snapshots, leave_index)
        reconciler.apply(schedule, swap_list)
        self.applied_swaps = list(reconciler.applied)
        self.skipped_swaps = list(reconciler.skipped)

        reallocator = BankedHourReallocator(self.roster, self.limits, self.realloc_cfg)
        self.shortfalls = reallocator.reallocate(schedule)

        logger.info(
            "Generated %s: %d days, %d coverage gaps, %d swaps applied, %d banked shortfalls",
            first.strftime("%Y-%m"),
            len(schedule),
            len(self.coverage_gaps),
            len(self.applied_swaps),
            len(self.shortfalls),
        )
        return schedule

    def summary(self, schedule: Sequence[ScheduledDay]) -> Dict[str, Any]:
        warnings = [
            {"date": day.date.isoformat(), "staff_id": staff_id, "message": entry.warning}
            for day in schedule
            for staff_id, entry in day.staff.items()
            if entry.warning
        ]
        return {
            "days": len(schedule),
            "shifts": sum(
                1 for day in schedule for entry in day.staff.values() if entry.event == EVENT_SHIFT
            ),
            "coverage_gaps": list(self.coverage_gaps),
            "swaps_applied": list(self.applied_swaps),
            "swaps_skipped": list(self.skipped_swaps),
            "banked_shortfalls": list(self.shortfalls),
            "skipped_records": list(self.skipped_records),
            "warnings": warnings,
        }

    # ------------------------------------------------------------------
    # Input normalisation

    def _index_leave(self, annual_leave: Iterable[AnnualLeaveRecord]) -> LeaveIndex:
        index: LeaveIndex = {}
        for record in annual_leave:
            if record.staff_id not in self.staff_map:
                logger.warning("Ignoring leave for unknown staff member %s", record.staff_id)
                self.skipped_records.append(
                    {"kind": "annual_leave", "staff_id": record.staff_id, "date": record.date.isoformat()}
                )
                continue
            key = (record.staff_id, record.date)
            if key in index:
                logger.debug("Duplicate leave for %s on %s; keeping the later record", *key)
            index[key] = record
        return index

    def _known_swaps(self, swaps: Iterable[SwapRecord]) -> List[SwapRecord]:
        known: List[SwapRecord] = []
        for swap in swaps:
            unknown = [sid for sid in (swap.staff_id1, swap.staff_id2) if sid not in self.staff_map]
            if unknown:
                logger.warning("Ignoring swap %s for unknown staff %s", swap.id, ", ".join(unknown))
                self.skipped_records.append({"kind": "swap", "staff_id": unknown[0], "date": swap.date1.isoformat()})
                continue
            known.append(swap)
        return known

    # ------------------------------------------------------------------
    # Stage 1: day assignment

    def _build_days(
        self,
        first: datetime.date,
        holidays: set,
        leave_index: LeaveIndex,
        resolver: CoverageResolver,
    ) -> List[ScheduledDay]:
        self.snapshots = {}
        schedule: List[ScheduledDay] = []
        for date_value in display_range(first):
            day = ScheduledDay(
                date=date_value,
                is_current_month=(date_value.year, date_value.month) == (first.year, first.month),
            )
            pattern = pattern_for_date(date_value, self.patterns)
            weekday = date_value.weekday()
            for member in self.roster:
                self.snapshots[snapshot_key(member.id, date_value)] = clone_shift(
                    pattern.shift_for(member.id, weekday)
                )
            for member in self.roster:
                if member.id in day.staff:
                    # Already filled as cover for a colleague's leave.
                    continue
                record = leave_index.get((member.id, date_value))
                if record is not None:
                    resolver.resolve(day, member, pattern, record)
                    continue
                day.staff[member.id] = self._base_entry(pattern, member, weekday, date_value in holidays)
            schedule.append(day)
        return schedule

    @staticmethod
    def _base_entry(
        pattern: ShiftPattern,
        member: StaffMember,
        weekday: int,
        is_holiday: bool,
    ) -> StaffDaySchedule:
        shift = clone_shift(pattern.shift_for(member.id, weekday))
        if shift is None:
            return StaffDaySchedule(event=EVENT_OFF)
        if is_holiday:
            entry = StaffDaySchedule(event=EVENT_PUBLIC_HOLIDAY, details=shift)
            entry.start_hour_tracking(float(shift.work_hours))
            return entry
        return StaffDaySchedule(event=EVENT_SHIFT, details=shift)
