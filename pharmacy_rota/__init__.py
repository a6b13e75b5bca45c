"""Monthly rota generation for a small community pharmacy."""

from pharmacy_rota.generator import generate_schedule, generate_schedule_for_month
from pharmacy_rota.hours import calculate_weekly_hours, get_staff_weekly_hours, is_current_month

__all__ = [
    "calculate_weekly_hours",
    "generate_schedule",
    "generate_schedule_for_month",
    "get_staff_weekly_hours",
    "is_current_month",
]

__version__ = "0.1.0"
