"""
Status transition rules.

Whitelists of allowed status changes for the three record lifecycles
of the portal:

* ``program`` – training programs (upcoming -> active -> ongoing ->
  completed, with cancel/archive/restore paths);
* ``application`` – job applications;
* ``training_application`` – enrolments in a training program.

Anything not listed is rejected.  Requesting the current status again
is a valid no-op.  Rejections come back as a `TransitionResult`; this
module never raises for an invalid request.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

PROGRAM = "program"
APPLICATION = "application"
TRAINING_APPLICATION = "training_application"


@dataclass(frozen=True)
class TransitionRule:
    allowed: Tuple[str, ...]
    description: str


RULES: Dict[str, Dict[str, TransitionRule]] = {
    PROGRAM: {
        "upcoming": TransitionRule(("active", "cancelled"), "Upcoming programs can be activated or cancelled"),
        "active": TransitionRule(
            ("upcoming", "ongoing", "cancelled"),
            "Active programs can be reverted to upcoming, begin (ongoing), or be cancelled",
        ),
        "ongoing": TransitionRule(
            ("active", "completed", "cancelled"),
            "Ongoing programs can be reverted to active, completed, or cancelled",
        ),
        "completed": TransitionRule(("archived",), "Completed programs can only be archived"),
        "cancelled": TransitionRule(("archived",), "Cancelled programs can only be archived"),
        "archived": TransitionRule(("active",), "Archived programs can be restored to active status"),
    },
    APPLICATION: {
        "pending": TransitionRule(
            ("under_review", "withdrawn", "archived"),
            "Pending applications can be reviewed, withdrawn or archived",
        ),
        "under_review": TransitionRule(
            ("shortlisted", "approved", "denied", "withdrawn", "archived"),
            "Applications under review can be shortlisted, decided, withdrawn or archived",
        ),
        "shortlisted": TransitionRule(
            ("interviewed", "approved", "denied", "withdrawn", "archived"),
            "Shortlisted applications can be interviewed, decided, withdrawn or archived",
        ),
        "interviewed": TransitionRule(
            ("approved", "denied", "withdrawn", "archived"),
            "Interviewed applications can be decided, withdrawn or archived",
        ),
        "approved": TransitionRule(
            ("hired", "denied", "withdrawn", "archived"),
            "Approved applications can be hired, reversed to denied, withdrawn or archived",
        ),
        "denied": TransitionRule(("re_routed", "archived"), "Denied applications can be re-routed or archived"),
        "re_routed": TransitionRule(("archived",), "Re-routed applications can only be archived"),
        "hired": TransitionRule(("archived",), "Hired applications can only be archived"),
        "withdrawn": TransitionRule((), "Withdrawn applications cannot be changed"),
        "archived": TransitionRule((), "Archived applications cannot be changed"),
    },
    TRAINING_APPLICATION: {
        "pending": TransitionRule(
            ("under_review", "approved", "denied", "withdrawn", "archived"),
            "Pending enrolments can be reviewed, decided, withdrawn or archived",
        ),
        "under_review": TransitionRule(
            ("approved", "denied", "withdrawn", "archived"),
            "Enrolments under review can be decided, withdrawn or archived",
        ),
        "approved": TransitionRule(
            ("enrolled", "denied", "withdrawn", "archived"),
            "Approved enrolments can be enrolled, denied, withdrawn or archived",
        ),
        "enrolled": TransitionRule(
            ("in_progress", "withdrawn", "archived"),
            "Enrolled trainees can start, withdraw or be archived",
        ),
        "in_progress": TransitionRule(
            ("completed", "failed", "withdrawn"),
            "Trainees in progress can complete, fail or withdraw",
        ),
        "completed": TransitionRule(("certified", "archived"), "Completed trainees can be certified or archived"),
        "certified": TransitionRule(("archived",), "Certified trainees can only be archived"),
        "failed": TransitionRule(("archived",), "Failed trainees can only be archived"),
        "denied": TransitionRule(("archived",), "Denied enrolments can only be archived"),
        "withdrawn": TransitionRule((), "Withdrawn enrolments cannot be changed"),
        "archived": TransitionRule((), "Archived enrolments cannot be changed"),
    },
}

INITIAL_STATUS = {
    PROGRAM: "upcoming",
    APPLICATION: "pending",
    TRAINING_APPLICATION: "pending",
}

_NOUN = {
    PROGRAM: "program",
    APPLICATION: "application",
    TRAINING_APPLICATION: "training application",
}


@dataclass(frozen=True)
class TransitionResult:
    is_valid: bool
    error: Optional[str] = None
    allowed: Tuple[str, ...] = field(default_factory=tuple)
    suggestion: Optional[str] = None


def _rules(lifecycle: str) -> Dict[str, TransitionRule]:
    try:
        return RULES[lifecycle]
    except KeyError:
        raise ValueError(f"Unknown lifecycle '{lifecycle}'; expected one of {sorted(RULES)}") from None


def lifecycles() -> List[str]:
    return sorted(RULES)


def statuses(lifecycle: str) -> List[str]:
    return list(_rules(lifecycle))


def is_valid_status(lifecycle: str, status: Optional[str]) -> bool:
    return status is not None and status in _rules(lifecycle)


def valid_transitions(lifecycle: str, status: str) -> List[str]:
    """Statuses reachable from ``status`` in one step (empty if unknown)."""
    rule = _rules(lifecycle).get(status)
    return list(rule.allowed) if rule else []


def is_terminal(lifecycle: str, status: str) -> bool:
    return is_valid_status(lifecycle, status) and not valid_transitions(lifecycle, status)


def validate_transition(lifecycle: str, current: str, requested: str) -> TransitionResult:
    """Check whether ``current -> requested`` is allowed for ``lifecycle``.

    Raises:
        ValueError: only for an unknown lifecycle name (a programming
            error); bad statuses are reported in the result.
    """
    rules = _rules(lifecycle)
    known = ", ".join(rules)
    if current not in rules:
        return TransitionResult(False, f'Unknown {_NOUN[lifecycle]} status "{current}". Valid statuses: {known}')
    if requested not in rules:
        return TransitionResult(
            False,
            f'Unknown {_NOUN[lifecycle]} status "{requested}". Valid statuses: {known}',
            rules[current].allowed,
        )
    rule = rules[current]
    if current == requested or requested in rule.allowed:
        return TransitionResult(True, None, rule.allowed)
    allowed_list = ", ".join(rule.allowed) if rule.allowed else "none (final state)"
    suggestion = f'Valid transitions from "{current}": {allowed_list}'
    return TransitionResult(
        False,
        f'Cannot change status from "{current}" to "{requested}". {rule.description}. {suggestion}',
        rule.allowed,
        suggestion,
    )


def describe_transitions(lifecycle: str, status: str) -> str:
    """Human-readable sentence about where ``status`` can go next."""
    noun = _NOUN[lifecycle] if lifecycle in _NOUN else lifecycle
    allowed = valid_transitions(lifecycle, status)
    if not is_valid_status(lifecycle, status):
        return f'"{status}" is not a valid {noun} status.'
    if not allowed:
        return f"This {noun} is {status} and cannot be changed (final state)."
    options = " or ".join(f'"{s}"' for s in allowed)
    return f"You can change this {status} {noun} to {options}."
