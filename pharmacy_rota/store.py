from __future__ import annotations

import copy
import datetime
import logging
from typing import Any, Dict, List, Optional, Sequence

from pharmacy_rota.generator.api import generate_schedule
from pharmacy_rota.holidays import PublicHoliday
from pharmacy_rota.models import (
    COVERAGE_METHODS,
    AnnualLeaveRecord,
    ScheduledDay,
    StaffMember,
    SwapRecord,
    TempStaffConfig,
)
from pharmacy_rota.roster import STAFF_MEMBERS

logger = logging.getLogger(__name__)

MAX_HISTORY = 50


class ScheduleStore:
    """In-memory holiday, leave and swap records with undo/redo.

    Every mutating call snapshots the previous state first, so ``undo`` walks
    back one change at a time.
    """

    def __init__(
        self,
        *,
        roster: Optional[Sequence[StaffMember]] = None,
        policy: Optional[Dict[str, Any]] = None,
        public_holidays: Sequence[PublicHoliday] = (),
        target_month: Optional[datetime.date] = None,
    ) -> None:
        self.roster = list(roster if roster is not None else STAFF_MEMBERS)
        self.policy = policy
        self.target_month = target_month or datetime.date.today().replace(day=1)
        self.public_holidays: List[PublicHoliday] = []
        self.annual_leave: List[AnnualLeaveRecord] = []
        self.swaps: List[SwapRecord] = []
        self._undo: List[Dict[str, list]] = []
        self._redo: List[Dict[str, list]] = []
        for holiday in public_holidays:
            self._put_holiday(holiday)

    # ------------------------------------------------------------------
    # History

    def _state(self) -> Dict[str, list]:
        return {
            "public_holidays": list(self.public_holidays),
            "annual_leave": copy.deepcopy(self.annual_leave),
            "swaps": copy.deepcopy(self.swaps),
        }

    def _restore(self, state: Dict[str, list]) -> None:
        self.public_holidays = list(state["public_holidays"])
        self.annual_leave = list(state["annual_leave"])
        self.swaps = list(state["swaps"])

    def _checkpoint(self) -> None:
        self._undo.append(self._state())
        if len(self._undo) > MAX_HISTORY:
            self._undo.pop(0)
        self._redo.clear()

    @property
    def can_undo(self) -> bool:
        return bool(self._undo)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo)

    def undo(self) -> bool:
        if not self._undo:
            return False
        self._redo.append(self._state())
        self._restore(self._undo.pop())
        return True

    def redo(self) -> bool:
        if not self._redo:
            return False
        self._undo.append(self._state())
        self._restore(self._redo.pop())
        return True

    # ------------------------------------------------------------------
    # Public holidays

    def _put_holiday(self, holiday: PublicHoliday) -> None:
        self.public_holidays = [item for item in self.public_holidays if item.date != holiday.date]
        self.public_holidays.append(holiday)
        self.public_holidays.sort(key=lambda item: item.date)

    def add_public_holiday(self, date_value: datetime.date, name: str = "Public Holiday") -> PublicHoliday:
        holiday = PublicHoliday(date=date_value, name=name)
        self._checkpoint()
        self._put_holiday(holiday)
        return holiday

    def remove_public_holiday(self, date_value: datetime.date) -> bool:
        if not any(item.date == date_value for item in self.public_holidays):
            return False
        self._checkpoint()
        self.public_holidays = [item for item in self.public_holidays if item.date != date_value]
        return True

    # ------------------------------------------------------------------
    # Annual leave

    def add_annual_leave(
        self,
        staff_id: str,
        date_value: datetime.date,
        coverage_method: Optional[str] = None,
        temp_staff: Optional[TempStaffConfig] = None,
        swap_id: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> AnnualLeaveRecord:
        if staff_id not in {member.id for member in self.roster}:
            raise ValueError(f"Unknown staff member: {staff_id}")
        if coverage_method is not None and coverage_method not in COVERAGE_METHODS:
            raise ValueError(f"Unknown coverage method: {coverage_method}")
        record = AnnualLeaveRecord(
            staff_id=staff_id,
            date=date_value,
            coverage_method=coverage_method,
            temp_staff=temp_staff,
            swap_id=swap_id,
            reason=reason,
        )
        self._checkpoint()
        self.annual_leave = [
            item for item in self.annual_leave if (item.staff_id, item.date) != (staff_id, date_value)
        ]
        self.annual_leave.append(record)
        return record

    def remove_annual_leave(self, staff_id: str, date_value: datetime.date) -> bool:
        if not any((item.staff_id, item.date) == (staff_id, date_value) for item in self.annual_leave):
            return False
        self._checkpoint()
        self.annual_leave = [
            item for item in self.annual_leave if (item.staff_id, item.date) != (staff_id, date_value)
        ]
        return True

    # ------------------------------------------------------------------
    # Swaps

    def add_swap(
        self,
        staff_id1: str,
        staff_id2: str,
        date1: datetime.date,
        date2: datetime.date,
    ) -> str:
        known = {member.id for member in self.roster}
        for staff_id in (staff_id1, staff_id2):
            if staff_id not in known:
                raise ValueError(f"Unknown staff member: {staff_id}")
        if staff_id1 == staff_id2:
            raise ValueError("A swap needs two different staff members.")
        record = SwapRecord.create(staff_id1, staff_id2, date1, date2)
        self._checkpoint()
        self.swaps = [item for item in self.swaps if item.id != record.id]
        self.swaps.append(record)
        return record.id

    def remove_swap(self, swap_id: str) -> bool:
        if not any(item.id == swap_id for item in self.swaps):
            return False
        self._checkpoint()
        self.swaps = [item for item in self.swaps if item.id != swap_id]
        return True

    # ------------------------------------------------------------------

    def generate(self, target_month: Optional[datetime.date] = None) -> List[ScheduledDay]:
        month = target_month or self.target_month
        logger.debug(
            "Generating %s from %d holidays, %d leave records, %d swaps",
            month.strftime("%Y-%m"),
            len(self.public_holidays),
            len(self.annual_leave),
            len(self.swaps),
        )
        return generate_schedule(
            month,
            [holiday.date for holiday in self.public_holidays],
            list(self.annual_leave),
            list(self.swaps),
            policy=self.policy,
            roster=self.roster,
        )
