from __future__ import annotations

import datetime
import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

from pharmacy_rota.database import DATA_DIR
from pharmacy_rota.holidays import PublicHoliday
from pharmacy_rota.models import (
    COVERAGE_METHODS,
    AnnualLeaveRecord,
    ScheduledDay,
    ShiftDefinition,
    StaffDaySchedule,
    SwapInfo,
    SwapRecord,
    TempStaffConfig,
    WeeklyHourLog,
)
from pharmacy_rota.policy import parse_time_label
from pharmacy_rota.roles import canonical_role, defined_roles

EXPORT_DIR = DATA_DIR / "exports"


def _timestamp() -> str:
    return datetime.datetime.now().strftime("%Y%m%d_%H%M%S")


def _parse_date(value: Any, field: str) -> datetime.date:
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    try:
        return datetime.date.fromisoformat(str(value)[:10])
    except (TypeError, ValueError):
        raise ValueError(f"{field} must be YYYY-MM-DD") from None


# ---------------------------------------------------------------------------
# Schedule output


def _serialize_shift(details: Optional[ShiftDefinition]) -> Optional[Dict[str, Any]]:
    if details is None:
        return None
    return {
        "type": details.type,
        "timing": details.timing,
        "startTime": details.start_time,
        "endTime": details.end_time,
        "workHours": details.work_hours,
        "reallocatedHours": details.reallocated_hours,
        "totalHours": details.total_hours,
    }


def _serialize_swap_info(info: Optional[SwapInfo]) -> Optional[Dict[str, Any]]:
    if info is None:
        return None
    return {
        "originalStaffId": info.original_staff_id,
        "originalStaffName": info.original_staff_name,
        "swapType": info.swap_type,
        "coveringStaffId": info.covering_staff_id,
        "coveringStaffName": info.covering_staff_name,
        "suggestedOffDays": info.suggested_off_days,
        "swapId": info.swap_id,
    }


def _serialize_entry(entry: StaffDaySchedule) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "event": entry.event,
        "details": _serialize_shift(entry.details),
    }
    optional = {
        "warning": entry.warning,
        "bankedHours": entry.banked_hours,
        "originalBankedHours": entry.original_banked_hours,
        "totalReallocatedHours": entry.total_reallocated_hours,
        "remainingUnallocatedHours": entry.remaining_unallocated_hours,
        "swapInfo": _serialize_swap_info(entry.swap_info),
        "tempStaffName": entry.temp_staff_name,
    }
    payload.update({key: value for key, value in optional.items() if value is not None})
    if entry.is_swap_coverage:
        payload["isSwapCoverage"] = True
    if entry.is_swap_result:
        payload["isSwapResult"] = True
    return payload


def serialize_schedule(schedule: Sequence[ScheduledDay]) -> List[Dict[str, Any]]:
    return [
        {
            "date": day.date.isoformat(),
            "isCurrentMonth": day.is_current_month,
            "isoWeek": day.iso_week,
            "staff": {staff_id: _serialize_entry(entry) for staff_id, entry in day.staff.items()},
        }
        for day in schedule
    ]


def serialize_weekly_hours(logs: Iterable[WeeklyHourLog]) -> List[Dict[str, Any]]:
    return [
        {
            "staffId": log.staff_id,
            "weekNumber": log.week_number,
            "targetHours": log.target_hours,
            "scheduledHours": round(log.scheduled_hours, 4),
            "bankedHours": round(log.banked_hours, 4),
        }
        for log in logs
    ]


def export_schedule(
    schedule: Sequence[ScheduledDay],
    directory: Optional[Path] = None,
    *,
    month_label: Optional[str] = None,
) -> Path:
    target = Path(directory) if directory is not None else EXPORT_DIR
    target.mkdir(parents=True, exist_ok=True)
    if month_label is None:
        current = [day.date for day in schedule if day.is_current_month]
        month_label = current[0].strftime("%Y-%m") if current else "schedule"
    filename = target / f"rota_{month_label}_{_timestamp()}.json"
    filename.write_text(
        json.dumps({"month": month_label, "days": serialize_schedule(schedule)}, indent=2),
        encoding="utf-8",
    )
    return filename


# ---------------------------------------------------------------------------
# Request input


def parse_holidays(payload: Iterable[Any]) -> List[PublicHoliday]:
    holidays: List[PublicHoliday] = []
    for entry in payload or []:
        if isinstance(entry, dict):
            holidays.append(
                PublicHoliday(
                    date=_parse_date(entry.get("date"), "holiday date"),
                    name=str(entry.get("name") or "Public Holiday"),
                )
            )
        else:
            holidays.append(PublicHoliday(date=_parse_date(entry, "holiday date"), name="Public Holiday"))
    return holidays


def _parse_temp_staff(entry: Any) -> Optional[TempStaffConfig]:
    if not isinstance(entry, dict):
        return None
    name = (entry.get("name") or "").strip()
    if not name:
        raise ValueError("tempStaff.name is required")
    role = str(entry.get("role") or "")
    if role and canonical_role(role) not in defined_roles():
        raise ValueError(f"Unknown tempStaff role: {role}")
    start_time = str(entry.get("startTime") or entry.get("start_time") or "")
    end_time = str(entry.get("endTime") or entry.get("end_time") or "")
    start, end = parse_time_label(start_time), parse_time_label(end_time)
    if start is not None and end is not None and end <= start:
        raise ValueError("tempStaff hours must be positive (endTime after startTime)")
    hourly_rate = float(entry.get("hourlyRate") or entry.get("hourly_rate") or 0.0)
    if hourly_rate < 0:
        raise ValueError("tempStaff.hourlyRate cannot be negative")
    return TempStaffConfig(
        name=name,
        role=canonical_role(role) or role,
        start_time=start_time,
        end_time=end_time,
        hourly_rate=hourly_rate,
        notes=str(entry.get("notes") or ""),
    )


def parse_leave_records(payload: Iterable[Dict[str, Any]]) -> List[AnnualLeaveRecord]:
    records: List[AnnualLeaveRecord] = []
    for entry in payload or []:
        if not isinstance(entry, dict):
            raise ValueError("Each leave record must be an object.")
        staff_id = entry.get("staffId") or entry.get("staff_id")
        if not staff_id:
            raise ValueError("staffId is required for leave records")
        method = entry.get("coverageMethod") or entry.get("coverage_method")
        if method is not None and method not in COVERAGE_METHODS:
            raise ValueError(f"Unknown coverage method: {method}")
        records.append(
            AnnualLeaveRecord(
                staff_id=str(staff_id),
                date=_parse_date(entry.get("date"), "leave date"),
                coverage_method=method,
                temp_staff=_parse_temp_staff(entry.get("tempStaff") or entry.get("temp_staff")),
                swap_id=entry.get("swapId") or entry.get("swap_id"),
                reason=entry.get("reason"),
            )
        )
    return records


def parse_swaps(payload: Iterable[Dict[str, Any]]) -> List[SwapRecord]:
    swaps: List[SwapRecord] = []
    for entry in payload or []:
        if not isinstance(entry, dict):
            raise ValueError("Each swap must be an object.")
        staff_id1 = entry.get("staffId1") or entry.get("staff_id1")
        staff_id2 = entry.get("staffId2") or entry.get("staff_id2")
        if not staff_id1 or not staff_id2:
            raise ValueError("staffId1 and staffId2 are required for swaps")
        date1 = _parse_date(entry.get("date1"), "date1")
        date2 = _parse_date(entry.get("date2"), "date2")
        record = SwapRecord.create(str(staff_id1), str(staff_id2), date1, date2)
        if entry.get("id"):
            record.id = str(entry["id"])
        swaps.append(record)
    return swaps
