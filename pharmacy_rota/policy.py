from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from pharmacy_rota.database import PolicyBase, get_active_policy, upsert_policy
from pharmacy_rota.roles import PHARMACIST, canonical_role


BASELINE_POLICY: Dict[str, Any] = {
    "name": "Pharmacy Baseline",
    "global": {
        "max_daily_hours": 11.0,
        "max_extra_hours_per_shift": 4.0,
        "operational_start": "09:15",
        "operational_end": "21:45",
        "long_shift_hours": 11.0,
        "long_shift_break_hours": 1.5,
        "standard_break_hours": 1.0,
    },
    "reallocation": {
        "max_hours_per_round": 2.0,
        "fallback_step_hours": 1.0,
        "allocation_step_hours": 0.25,
    },
    "coverage": {
        "working_swap_roles": [PHARMACIST],
        "suggest_off_day_shifts": True,
        "minimum_consecutive_off_days": 2,
    },
}


@dataclass(frozen=True)
class SafetyLimits:
    max_daily_hours: float = 11.0
    max_extra_hours_per_shift: float = 4.0
    operational_start: str = "09:15"
    operational_end: str = "21:45"
    long_shift_hours: float = 11.0
    long_shift_break_hours: float = 1.5
    standard_break_hours: float = 1.0
    allocation_step_hours: float = 0.25


def build_default_policy() -> Dict[str, Any]:
    """Return a deepcopy so callers can mutate the policy safely."""
    return copy.deepcopy(BASELINE_POLICY)


def load_active_policy(conn) -> Dict:
    """Return the active policy payload as a dict, falling back to the baseline."""
    if conn is None:
        return normalize_policy({})
    if callable(conn):
        with conn() as session:
            policy = get_active_policy(session)
            return normalize_policy(policy.params_dict() if policy else {})
    policy = get_active_policy(conn)
    return normalize_policy(policy.params_dict() if policy else {})


def ensure_default_policy(session_factory) -> None:
    """Seed the baseline policy exactly once so the generator can run end-to-end."""

    with session_factory() as session:
        PolicyBase.metadata.create_all(session.get_bind())
        if get_active_policy(session):
            return
        spec = build_default_policy()
        name = spec.get("name", "Pharmacy Baseline")
        params = {key: value for key, value in spec.items() if key != "name"}
        upsert_policy(session, name, params, edited_by="system")


def _deep_update(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_update(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _coerce_float(value: Any, default: float, *, minimum: float = 0.0) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if number < minimum:
        return default
    return number


def _coerce_time_label(value: Any, default: str) -> str:
    if parse_time_label(value) is None:
        return default
    return str(value).strip()


def normalize_policy(policy: Optional[Dict]) -> Dict:
    """Merge stored params over the baseline and repair values the engine cannot use."""
    if not isinstance(policy, dict):
        policy = {}
    normalized = _deep_update(BASELINE_POLICY, policy)
    defaults = BASELINE_POLICY["global"]
    global_cfg = normalized["global"]
    for key in (
        "max_daily_hours",
        "max_extra_hours_per_shift",
        "long_shift_hours",
        "long_shift_break_hours",
        "standard_break_hours",
    ):
        global_cfg[key] = _coerce_float(global_cfg.get(key), defaults[key])
    for key in ("operational_start", "operational_end"):
        global_cfg[key] = _coerce_time_label(global_cfg.get(key), defaults[key])
    if parse_time_label(global_cfg["operational_end"]) <= parse_time_label(global_cfg["operational_start"]):
        global_cfg["operational_start"] = defaults["operational_start"]
        global_cfg["operational_end"] = defaults["operational_end"]

    realloc_defaults = BASELINE_POLICY["reallocation"]
    realloc_cfg = normalized["reallocation"]
    for key, default in realloc_defaults.items():
        value = _coerce_float(realloc_cfg.get(key), default)
        realloc_cfg[key] = value if value > 0 else default

    coverage_cfg = normalized["coverage"]
    roles = coverage_cfg.get("working_swap_roles")
    if not isinstance(roles, list):
        roles = list(BASELINE_POLICY["coverage"]["working_swap_roles"])
    coverage_cfg["working_swap_roles"] = [canonical_role(role) for role in roles if canonical_role(role)]
    coverage_cfg["suggest_off_day_shifts"] = bool(coverage_cfg.get("suggest_off_day_shifts", True))
    try:
        minimum_off = int(coverage_cfg.get("minimum_consecutive_off_days", 2))
    except (TypeError, ValueError):
        minimum_off = 2
    coverage_cfg["minimum_consecutive_off_days"] = max(1, min(minimum_off, 6))
    return normalized


def safety_limits(policy: Optional[Dict]) -> SafetyLimits:
    global_cfg = (policy or {}).get("global") or {}
    realloc_cfg = (policy or {}).get("reallocation") or {}
    defaults = SafetyLimits()
    return SafetyLimits(
        max_daily_hours=_coerce_float(global_cfg.get("max_daily_hours"), defaults.max_daily_hours),
        max_extra_hours_per_shift=_coerce_float(
            global_cfg.get("max_extra_hours_per_shift"), defaults.max_extra_hours_per_shift
        ),
        operational_start=_coerce_time_label(global_cfg.get("operational_start"), defaults.operational_start),
        operational_end=_coerce_time_label(global_cfg.get("operational_end"), defaults.operational_end),
        long_shift_hours=_coerce_float(global_cfg.get("long_shift_hours"), defaults.long_shift_hours),
        long_shift_break_hours=_coerce_float(
            global_cfg.get("long_shift_break_hours"), defaults.long_shift_break_hours
        ),
        standard_break_hours=_coerce_float(global_cfg.get("standard_break_hours"), defaults.standard_break_hours),
        allocation_step_hours=_coerce_float(
            realloc_cfg.get("allocation_step_hours"), defaults.allocation_step_hours, minimum=0.01
        ),
    )


def reallocation_settings(policy: Optional[Dict]) -> Dict[str, float]:
    settings = copy.deepcopy(BASELINE_POLICY["reallocation"])
    payload = (policy or {}).get("reallocation")
    if isinstance(payload, dict):
        for key, default in list(settings.items()):
            value = _coerce_float(payload.get(key), default)
            settings[key] = value if value > 0 else default
    return settings


def coverage_settings(policy: Optional[Dict]) -> Dict[str, Any]:
    payload = (policy or {}).get("coverage")
    merged = _deep_update(BASELINE_POLICY["coverage"], payload if isinstance(payload, dict) else {})
    roles: List[str] = merged.get("working_swap_roles") or []
    merged["working_swap_roles"] = [canonical_role(role) for role in roles if canonical_role(role)]
    return merged


def parse_time_label(value: Optional[str]) -> Optional[int]:
    """Return minutes after midnight for an ``HH:MM`` label."""
    if value is None:
        return None
    label = str(value).strip()
    if ":" not in label:
        return None
    hour_str, minute_str = label.split(":", 1)
    try:
        hours = int(hour_str)
        minutes = int(minute_str)
    except ValueError:
        return None
    if hours < 0 or minutes < 0 or minutes >= 60 or hours > 24:
        return None
    return hours * 60 + minutes


def format_minutes(value: float) -> str:
    total = int(round(value))
    sign = "-" if total < 0 else ""
    total = abs(total)
    return f"{sign}{total // 60:02d}:{total % 60:02d}"
