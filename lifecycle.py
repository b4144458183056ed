from typing import Dict, FrozenSet

from database import now_utc
from errors import IllegalStatusTransition, ValidationFailed

Transitions = Dict[str, FrozenSet[str]]


def can_transition(table: Transitions, current: str, new: str) -> bool:
    # rewriting the current status is allowed, it just records another note
    return new == current or new in table.get(current, frozenset())


def check_transition(table: Transitions, current: str, new: str) -> None:
    if new not in table:
        raise ValidationFailed(f"Unknown status: {new}")
    if not can_transition(table, current, new):
        raise IllegalStatusTransition(f"Cannot move from {current} to {new}")


def history_entry(status: str, note: str = "") -> dict:
    return {"status": status, "timestamp": now_utc(), "note": note or ""}
