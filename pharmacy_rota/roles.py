from __future__ import annotations

from typing import Dict, Iterable, List, Tuple


PHARMACIST = "Pharmacist"
ASSISTANT_PHARMACIST = "Assistant Pharmacist"

ROLE_GROUPS: Dict[str, List[str]] = {
    "Pharmacists": [
        PHARMACIST,
    ],
    "Assistants": [
        ASSISTANT_PHARMACIST,
    ],
}

_KEYWORD_RULES: List[Tuple[str, str]] = [
    ("assistant", ASSISTANT_PHARMACIST),
    ("asst", ASSISTANT_PHARMACIST),
    ("pharmacist", PHARMACIST),
    ("rph", PHARMACIST),
]


def normalize_role(role: str) -> str:
    return (role or "").strip().lower()


def canonical_role(role: str) -> str:
    """Return the roster label for a free-form role string, or "" when unknown."""
    label = normalize_role(role).replace("_", " ").replace("-", " ")
    if not label:
        return ""
    for names in ROLE_GROUPS.values():
        for name in names:
            if label == normalize_role(name):
                return name
    # "assistant" must win over "pharmacist" for labels like "Assistant Pharmacist".
    for keyword, target in _KEYWORD_RULES:
        if keyword in label:
            return target
    return ""


def role_group(role: str) -> str:
    target = canonical_role(role)
    for group, names in ROLE_GROUPS.items():
        if target in names:
            return group
    return "Other"


def defined_roles() -> List[str]:
    """Return a sorted list of roles explicitly supported by the roster."""
    roles: List[str] = []
    for names in ROLE_GROUPS.values():
        roles.extend(names)
    return sorted(set(roles))


def role_matches(candidate_role: str, target_role: str) -> bool:
    """Return True if staff holding ``candidate_role`` may cover ``target_role``.

    Substitution is strict: an assistant never fills a pharmacist slot and
    vice versa.
    """
    candidate = canonical_role(candidate_role)
    target = canonical_role(target_role)
    if not candidate or not target:
        return False
    return candidate == target


def role_in(role: str, allowed: Iterable[str]) -> bool:
    target = canonical_role(role)
    return bool(target) and any(canonical_role(entry) == target for entry in allowed)
