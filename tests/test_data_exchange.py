from __future__ import annotations

import datetime
import json

import pytest

from pharmacy_rota.data_exchange import (
    export_schedule,
    parse_holidays,
    parse_leave_records,
    parse_swaps,
    serialize_schedule,
    serialize_weekly_hours,
)
from pharmacy_rota.generator import generate_schedule
from pharmacy_rota.hours import calculate_weekly_hours
from pharmacy_rota.models import COVERAGE_TEMP_STAFF, AnnualLeaveRecord

JULY = datetime.date(2025, 7, 1)


def test_serialized_schedule_uses_camel_case() -> None:
    holiday = datetime.date(2025, 7, 7)
    schedule = generate_schedule(
        JULY,
        [holiday],
        [AnnualLeaveRecord("fatimah", datetime.date(2025, 7, 9))],
    )

    days = serialize_schedule(schedule)

    assert days[0]["date"] == "2025-06-30"
    assert days[0]["isCurrentMonth"] is False
    monday = next(day for day in days if day["date"] == holiday.isoformat())
    banked = monday["staff"]["fatimah"]
    assert banked["event"] == "PH"
    assert banked["originalBankedHours"] == 11
    assert banked["totalReallocatedHours"] + banked["remainingUnallocatedHours"] == 11
    wednesday = next(day for day in days if day["date"] == "2025-07-09")
    cover = wednesday["staff"]["amal"]
    assert cover["isSwapCoverage"] is True
    assert cover["details"]["startTime"] == "09:15"
    assert cover["swapInfo"]["originalStaffId"] == "fatimah"
    assert "warning" not in wednesday["staff"]["fatimah"]
    json.dumps(days)


def test_serialized_weekly_hours() -> None:
    logs = calculate_weekly_hours(generate_schedule(JULY))

    rows = serialize_weekly_hours(logs)

    assert rows[0] == {
        "staffId": "fatimah",
        "weekNumber": 27,
        "targetHours": 45,
        "scheduledHours": 45,
        "bankedHours": 0,
    }


def test_export_schedule_writes_timestamped_file(tmp_path) -> None:
    schedule = generate_schedule(JULY)

    path = export_schedule(schedule, tmp_path)

    assert path.parent == tmp_path
    assert path.name.startswith("rota_2025-07_")
    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["month"] == "2025-07"
    assert len(payload["days"]) == 35


def test_parse_leave_records_reads_temp_staff() -> None:
    records = parse_leave_records(
        [
            {"staffId": "fatimah", "date": "2025-07-09"},
            {
                "staffId": "amal",
                "date": "2025-07-12T00:00:00",
                "coverageMethod": COVERAGE_TEMP_STAFF,
                "tempStaff": {"name": "Locum Lee", "role": "Pharmacist", "startTime": "10:00", "endTime": "19:00"},
            },
        ]
    )

    assert records[0].date == datetime.date(2025, 7, 9)
    assert records[0].temp_staff is None
    assert records[1].date == datetime.date(2025, 7, 12)
    assert records[1].temp_staff.name == "Locum Lee"
    assert records[1].temp_staff.start_time == "10:00"


@pytest.mark.parametrize(
    "payload",
    [
        [{"date": "2025-07-09"}],
        [{"staffId": "fatimah", "date": "July 9th"}],
        [{"staffId": "fatimah", "date": "2025-07-09", "coverageMethod": "teleport"}],
        [{"staffId": "fatimah", "date": "2025-07-09", "tempStaff": {"role": "Pharmacist"}}],
        [{"staffId": "amal", "date": "2025-07-12", "tempStaff": {"name": "Locum", "startTime": "18:00", "endTime": "10:00"}}],
        ["fatimah"],
    ],
)
def test_parse_leave_records_rejects_bad_rows(payload) -> None:
    with pytest.raises(ValueError):
        parse_leave_records(payload)


def test_parse_swaps_builds_deterministic_ids() -> None:
    swaps = parse_swaps([{"staffId1": "fatimah", "staffId2": "amal", "date1": "2025-07-07", "date2": "2025-07-09"}])

    assert swaps[0].id == "fatimah-amal-2025-07-07-2025-07-09"
    with pytest.raises(ValueError):
        parse_swaps([{"staffId1": "fatimah", "date1": "2025-07-07", "date2": "2025-07-09"}])


def test_parse_holidays_accepts_strings_and_objects() -> None:
    holidays = parse_holidays(["2025-07-07", {"date": "2025-08-31", "name": "Merdeka Day"}])

    assert [holiday.date for holiday in holidays] == [datetime.date(2025, 7, 7), datetime.date(2025, 8, 31)]
    assert holidays[1].name == "Merdeka Day"
