from __future__ import annotations

import datetime
from dataclasses import dataclass
from typing import Iterable, List, Optional


@dataclass(frozen=True)
class PublicHoliday:
    date: datetime.date
    name: str = ""


# Selangor calendar.
PUBLIC_HOLIDAYS_2025: List[PublicHoliday] = [
    PublicHoliday(datetime.date(2025, 3, 31), "Raya Puasa 1"),
    PublicHoliday(datetime.date(2025, 4, 1), "Raya Puasa 2"),
    PublicHoliday(datetime.date(2025, 4, 2), "Raya Puasa 3 (replaces Nuzul Quran)"),
    PublicHoliday(datetime.date(2025, 5, 1), "Labour Day"),
    PublicHoliday(datetime.date(2025, 6, 2), "Agong Birthday"),
    PublicHoliday(datetime.date(2025, 6, 7), "Hari Raya Haji Day 1"),
    PublicHoliday(datetime.date(2025, 6, 8), "Hari Raya Haji Day 2 (replaces Maulidur Rasul)"),
    PublicHoliday(datetime.date(2025, 6, 27), "Awal Muharam"),
    PublicHoliday(datetime.date(2025, 8, 31), "Merdeka Day"),
    PublicHoliday(datetime.date(2025, 9, 16), "Hari Malaysia"),
    PublicHoliday(datetime.date(2025, 12, 11), "Sultan Selangor's Birthday"),
]


def holiday_dates(
    holidays: Iterable[PublicHoliday] = PUBLIC_HOLIDAYS_2025,
    month: Optional[datetime.date] = None,
) -> List[datetime.date]:
    """Sorted, de-duplicated holiday dates, optionally limited to one calendar month."""
    dates = {holiday.date for holiday in holidays}
    if month is not None:
        dates = {value for value in dates if (value.year, value.month) == (month.year, month.month)}
    return sorted(dates)
