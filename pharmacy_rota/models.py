from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional

EVENT_SHIFT = "Shift"
EVENT_ANNUAL_LEAVE = "AL"
EVENT_PUBLIC_HOLIDAY = "PH"
EVENT_OFF = "OFF"
EVENTS = (EVENT_SHIFT, EVENT_ANNUAL_LEAVE, EVENT_PUBLIC_HOLIDAY, EVENT_OFF)

COVERAGE_AUTO_SWAP = "auto-swap"
COVERAGE_TEMP_STAFF = "temp-staff"
COVERAGE_DECIDE_LATER = "decide-later"
COVERAGE_METHODS = (COVERAGE_AUTO_SWAP, COVERAGE_TEMP_STAFF, COVERAGE_DECIDE_LATER)

SWAP_COVERING = "covering"
SWAP_ORIGINAL_OFF = "original_off"


@dataclass(frozen=True)
class StaffMember:
    id: str
    name: str
    role: str
    weekly_hours: float
    default_off_days: FrozenSet[int] = frozenset()  # 0 = Monday


@dataclass
class ShiftDefinition:
    type: str
    timing: Optional[str]
    start_time: str
    end_time: str
    work_hours: float
    reallocated_hours: float = 0.0

    @property
    def total_hours(self) -> float:
        return (self.work_hours or 0.0) + (self.reallocated_hours or 0.0)

    def clone(self) -> "ShiftDefinition":
        """Return a fresh per-day copy; reallocated hours never carry over."""
        return ShiftDefinition(
            type=self.type,
            timing=self.timing,
            start_time=self.start_time,
            end_time=self.end_time,
            work_hours=self.work_hours,
        )


def clone_shift(shift: Optional[ShiftDefinition]) -> Optional[ShiftDefinition]:
    if shift is None:
        return None
    return shift.clone()


@dataclass(frozen=True)
class ShiftPattern:
    pattern_id: int
    daily_shifts: Dict[str, Dict[int, Optional[ShiftDefinition]]]

    def shift_for(self, staff_id: str, weekday: int) -> Optional[ShiftDefinition]:
        return self.daily_shifts.get(staff_id, {}).get(weekday)


@dataclass
class SwapInfo:
    original_staff_id: str
    original_staff_name: str
    swap_type: str
    covering_staff_id: Optional[str] = None
    covering_staff_name: Optional[str] = None
    suggested_off_days: Optional[List[int]] = None
    swap_id: Optional[str] = None


@dataclass
class StaffDaySchedule:
    event: str
    details: Optional[ShiftDefinition] = None
    warning: Optional[str] = None
    banked_hours: Optional[float] = None
    original_banked_hours: Optional[float] = None
    total_reallocated_hours: Optional[float] = None
    remaining_unallocated_hours: Optional[float] = None
    is_swap_coverage: bool = False
    is_swap_result: bool = False
    swap_info: Optional[SwapInfo] = None
    temp_staff_name: Optional[str] = None

    @property
    def is_working(self) -> bool:
        return self.event == EVENT_SHIFT and self.details is not None and not self.temp_staff_name

    @property
    def worked_hours(self) -> float:
        if not self.is_working:
            return 0.0
        return self.details.total_hours

    def start_hour_tracking(self, banked: float) -> None:
        self.original_banked_hours = banked
        self.banked_hours = banked
        self.total_reallocated_hours = 0.0
        self.remaining_unallocated_hours = 0.0

    def finish_hour_tracking(self, reallocated: float, remaining: float) -> None:
        if self.original_banked_hours is None:
            return
        self.total_reallocated_hours = reallocated
        self.remaining_unallocated_hours = remaining
        self.banked_hours = remaining


@dataclass
class ScheduledDay:
    date: datetime.date
    is_current_month: bool
    staff: Dict[str, StaffDaySchedule] = field(default_factory=dict)

    @property
    def iso_week(self) -> int:
        return self.date.isocalendar()[1]


@dataclass
class TempStaffConfig:
    name: str
    role: str
    start_time: str
    end_time: str
    hourly_rate: float = 0.0
    notes: str = ""


@dataclass
class AnnualLeaveRecord:
    staff_id: str
    date: datetime.date
    coverage_method: Optional[str] = None
    temp_staff: Optional[TempStaffConfig] = None
    swap_id: Optional[str] = None
    reason: Optional[str] = None


@dataclass
class SwapRecord:
    id: str
    staff_id1: str
    date1: datetime.date
    staff_id2: str
    date2: datetime.date
    created_at: datetime.datetime = field(
        default_factory=lambda: datetime.datetime.now(datetime.timezone.utc)
    )

    @staticmethod
    def make_id(staff_id1: str, staff_id2: str, date1: datetime.date, date2: datetime.date) -> str:
        return f"{staff_id1}-{staff_id2}-{date1.isoformat()}-{date2.isoformat()}"

    @classmethod
    def create(
        cls,
        staff_id1: str,
        staff_id2: str,
        date1: datetime.date,
        date2: datetime.date,
        *,
        created_at: Optional[datetime.datetime] = None,
    ) -> "SwapRecord":
        record = cls(
            id=cls.make_id(staff_id1, staff_id2, date1, date2),
            staff_id1=staff_id1,
            date1=date1,
            staff_id2=staff_id2,
            date2=date2,
        )
        if created_at is not None:
            record.created_at = created_at
        return record


@dataclass
class WeeklyHourLog:
    staff_id: str
    week_number: int
    target_hours: float
    scheduled_hours: float = 0.0
    banked_hours: float = 0.0
