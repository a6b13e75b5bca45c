from .api import generate_schedule, generate_schedule_for_month
from .engine import ScheduleGenerator

__all__ = ["ScheduleGenerator", "generate_schedule", "generate_schedule_for_month"]
