from __future__ import annotations

import datetime
import logging
import math
from typing import Dict, List, Optional, Sequence, Tuple

from pharmacy_rota.models import EVENT_PUBLIC_HOLIDAY, ScheduledDay, StaffDaySchedule, StaffMember
from pharmacy_rota.policy import SafetyLimits
from pharmacy_rota.validation import EPSILON, validate_daily_safety_limits

logger = logging.getLogger(__name__)

WeekKey = Tuple[int, int]


def week_key(date_value: datetime.date) -> WeekKey:
    iso = date_value.isocalendar()
    return iso[0], iso[1]


def unallocated_warning(remaining: float, original: float) -> str:
    return f"Could not reallocate {remaining:g} of {original:g} banked hours."


class BankedHourReallocator:
    """Moves hours banked on public holidays onto the same person's other shifts.

    Phase 1 fills the holiday's own week, phase 2 the rest of the holiday's
    month (nearest weeks first), both capped by each week's shortfall against
    the contracted hours. Phase 3 spreads what is left one hour at a time.
    """

    def __init__(
        self,
        roster: Sequence[StaffMember],
        limits: SafetyLimits,
        settings: Dict[str, float],
    ) -> None:
        self.roster = list(roster)
        self.limits = limits
        self.max_hours_per_round = settings.get("max_hours_per_round", 2.0)
        self.fallback_step_hours = settings.get("fallback_step_hours", 1.0)

    def reallocate(self, schedule: Sequence[ScheduledDay]) -> List[Dict[str, object]]:
        """Process every banked holiday in date order; return the shortfalls."""
        shortfalls: List[Dict[str, object]] = []
        for day in sorted(schedule, key=lambda item: item.date):
            for member in self.roster:
                entry = day.staff.get(member.id)
                if entry is None or entry.event != EVENT_PUBLIC_HOLIDAY:
                    continue
                if not entry.original_banked_hours:
                    continue
                remaining = self._reallocate_holiday(schedule, day, member, entry)
                if remaining > EPSILON:
                    shortfalls.append(
                        {
                            "date": day.date.isoformat(),
                            "staff_id": member.id,
                            "remaining": remaining,
                            "original": entry.original_banked_hours,
                        }
                    )
        return shortfalls

    def _reallocate_holiday(
        self,
        schedule: Sequence[ScheduledDay],
        holiday: ScheduledDay,
        member: StaffMember,
        entry: StaffDaySchedule,
    ) -> float:
        banked = float(entry.original_banked_hours or 0.0)
        holiday_week = week_key(holiday.date)

        week_entries = [
            (day, day.staff[member.id])
            for day in schedule
            if day is not holiday and week_key(day.date) == holiday_week and self._can_receive(day, member)
        ]
        month_entries = [
            (day, day.staff[member.id])
            for day in schedule
            if week_key(day.date) != holiday_week
            and (day.date.year, day.date.month) == (holiday.date.year, holiday.date.month)
            and self._can_receive(day, member)
        ]
        month_entries.sort(key=lambda item: (abs((item[0].date - holiday.date).days), item[0].date))

        remaining = banked
        remaining = self.distribute_hours(schedule, member, week_entries, remaining, holiday.date)
        if remaining > EPSILON:
            remaining = self.distribute_hours(schedule, member, month_entries, remaining, holiday.date)
        if remaining > EPSILON:
            remaining = self.distribute_hours_evenly(member, week_entries + month_entries, remaining)

        remaining = round(max(remaining, 0.0), 4)
        placed = round(banked - remaining, 4)
        entry.finish_hour_tracking(placed, remaining)
        if remaining > EPSILON:
            entry.warning = unallocated_warning(remaining, banked)
            logger.warning(
                "%s on %s: %s", member.id, holiday.date.isoformat(), entry.warning
            )
        else:
            entry.warning = None
        return remaining

    @staticmethod
    def _can_receive(day: ScheduledDay, member: StaffMember) -> bool:
        entry = day.staff.get(member.id)
        return entry is not None and entry.is_working

    def _week_hours(self, schedule: Sequence[ScheduledDay], member: StaffMember, key: WeekKey) -> float:
        total = 0.0
        for day in schedule:
            if week_key(day.date) != key:
                continue
            entry = day.staff.get(member.id)
            if entry is not None:
                total += entry.worked_hours
        return total

    def distribute_hours(
        self,
        schedule: Sequence[ScheduledDay],
        member: StaffMember,
        entries: List[Tuple[ScheduledDay, StaffDaySchedule]],
        hours: float,
        anchor: datetime.date,
    ) -> float:
        """Fill each week up to its shortfall, holiday week first then by distance. Returns hours left."""
        by_week: Dict[WeekKey, List[Tuple[ScheduledDay, StaffDaySchedule]]] = {}
        for day, entry in entries:
            by_week.setdefault(week_key(day.date), []).append((day, entry))
        anchor_key = week_key(anchor)
        anchor_monday = anchor - datetime.timedelta(days=anchor.weekday())

        def _order(key: WeekKey) -> Tuple[bool, int]:
            monday = datetime.date.fromisocalendar(key[0], key[1], 1)
            return key != anchor_key, abs((monday - anchor_monday).days)

        remaining = hours
        for key in sorted(by_week, key=_order):
            if remaining <= EPSILON:
                break
            deficit = member.weekly_hours - self._week_hours(schedule, member, key)
            if deficit <= EPSILON:
                continue
            budget = min(remaining, deficit)
            placed = self.distribute_hours_in_week(member, by_week[key], budget)
            remaining = round(remaining - placed, 4)
        return remaining

    def distribute_hours_in_week(
        self,
        member: StaffMember,
        entries: List[Tuple[ScheduledDay, StaffDaySchedule]],
        hours: float,
    ) -> float:
        """Spread ``hours`` over one week's shifts in rounds. Returns the amount placed."""
        limits = self.limits
        active = [
            (day, entry)
            for day, entry in entries
            if limits.max_daily_hours - entry.details.total_hours > EPSILON
        ]
        # Roomiest shifts first; ties keep date order.
        active.sort(key=lambda item: -(limits.max_daily_hours - item[1].details.total_hours))

        placed = 0.0
        remaining = hours
        while remaining > EPSILON and active:
            placed_this_round = 0.0
            still_open = []
            for day, entry in active:
                if remaining <= EPSILON:
                    still_open.append((day, entry))
                    continue
                capacity = limits.max_daily_hours - entry.details.total_hours
                to_add = min(self.max_hours_per_round, remaining, capacity)
                added = self._add_hours(day, member, entry, to_add)
                if added > EPSILON:
                    placed_this_round += added
                    remaining = round(remaining - added, 4)
                    still_open.append((day, entry))
            placed += placed_this_round
            active = still_open
            if placed_this_round <= EPSILON:
                break
        return round(placed, 4)

    def distribute_hours_evenly(
        self,
        member: StaffMember,
        entries: List[Tuple[ScheduledDay, StaffDaySchedule]],
        hours: float,
    ) -> float:
        """Round-robin fallback, one step at a time with bounded attempts. Returns hours left."""
        if not entries:
            return hours
        remaining = hours
        max_attempts = len(entries) * int(math.ceil(self.limits.max_extra_hours_per_shift))
        attempt = 0
        while remaining > EPSILON and attempt < max_attempts:
            day, entry = entries[attempt % len(entries)]
            step = min(self.fallback_step_hours, remaining)
            check = validate_daily_safety_limits(entry.details, step, self.limits)
            if check.is_valid:
                self._apply(day, member, entry, step)
                remaining = round(remaining - step, 4)
            attempt += 1
        return remaining

    def _add_hours(
        self,
        day: ScheduledDay,
        member: StaffMember,
        entry: StaffDaySchedule,
        requested: float,
    ) -> float:
        if requested <= EPSILON:
            return 0.0
        check = validate_daily_safety_limits(entry.details, requested, self.limits)
        amount: Optional[float] = requested if check.is_valid else check.max_allowed
        if not amount or amount <= EPSILON:
            logger.debug("%s on %s: %s", member.id, day.date.isoformat(), check.reason)
            return 0.0
        self._apply(day, member, entry, amount)
        return amount

    @staticmethod
    def _apply(day: ScheduledDay, member: StaffMember, entry: StaffDaySchedule, amount: float) -> None:
        details = entry.details
        details.reallocated_hours = round((details.reallocated_hours or 0.0) + amount, 4)
        logger.debug(
            "Reallocated %gh to %s on %s (now %gh)",
            amount,
            member.id,
            day.date.isoformat(),
            details.total_hours,
        )
