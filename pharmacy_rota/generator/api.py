from __future__ import annotations

import datetime
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from pharmacy_rota.database import record_audit_log
from pharmacy_rota.models import AnnualLeaveRecord, ScheduledDay, ShiftPattern, StaffMember, SwapRecord
from pharmacy_rota.policy import load_active_policy, safety_limits
from pharmacy_rota.validation import validate_schedule

from .engine import ScheduleGenerator, month_start

logger = logging.getLogger(__name__)


def generate_schedule(
    target_month: datetime.date,
    public_holidays: Iterable[Any] = (),
    annual_leave: Iterable[AnnualLeaveRecord] = (),
    swaps: Iterable[SwapRecord] = (),
    *,
    policy: Optional[Dict[str, Any]] = None,
    roster: Optional[Sequence[StaffMember]] = None,
    patterns: Optional[Sequence[ShiftPattern]] = None,
) -> List[ScheduledDay]:
    """Return the full-week grid for ``target_month`` with leave, swaps and banked hours resolved."""
    engine = ScheduleGenerator(policy, roster=roster, patterns=patterns)
    return engine.generate(target_month, public_holidays, annual_leave, swaps)


def generate_schedule_for_month(
    session_factory: Callable,
    target_month: datetime.date,
    public_holidays: Iterable[Any] = (),
    annual_leave: Iterable[AnnualLeaveRecord] = (),
    swaps: Iterable[SwapRecord] = (),
    *,
    actor: str = "system",
    roster: Optional[Sequence[StaffMember]] = None,
) -> Dict[str, Any]:
    """Generate with the stored policy, audit the result and log the run."""
    if target_month is None:
        raise ValueError("target_month is required.")
    first = month_start(target_month)
    leave_list = list(annual_leave)
    with session_factory() as session:
        policy = load_active_policy(session)
        engine = ScheduleGenerator(policy, roster=roster)
        schedule = engine.generate(first, public_holidays, leave_list, swaps)
        summary = engine.summary(schedule)
        try:
            validation_report = validate_schedule(
                schedule,
                roster=engine.roster,
                annual_leave=leave_list,
                limits=safety_limits(engine.policy),
                target_month=first,
            )
        except Exception:  # noqa: BLE001
            logger.exception("Schedule audit failed for %s", first.strftime("%Y-%m"))
            validation_report = {"issues": [], "warnings": [], "checks": [], "month": first.strftime("%Y-%m")}
        record_audit_log(
            session,
            actor or "system",
            "schedule_generate",
            target_id=first.strftime("%Y-%m"),
            payload={
                "days": summary["days"],
                "coverage_gaps": len(summary["coverage_gaps"]),
                "swaps_applied": len(summary["swaps_applied"]),
                "banked_shortfalls": len(summary["banked_shortfalls"]),
            },
        )
    summary["month"] = first.strftime("%Y-%m")
    summary["schedule"] = schedule
    summary["validation"] = validation_report
    return summary
