"""Deletion lifecycle state machine shared by items and users

State flow:
ACTIVE -> MARKED_FOR_DELETION -> (WARNED) -> PURGED
MARKED_FOR_DELETION and WARNED can return to ACTIVE (cancellation / login).
PURGED is terminal: the row no longer exists.
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, List

ONE_DAY = timedelta(days=1)


class DeletionState(str, Enum):
    """Lifecycle state of an item or user with respect to retention"""
    ACTIVE = "ACTIVE"
    MARKED_FOR_DELETION = "MARKED_FOR_DELETION"
    WARNED = "WARNED"
    PURGED = "PURGED"


ALLOWED_TRANSITIONS: Dict[DeletionState, List[DeletionState]] = {
    DeletionState.ACTIVE: [DeletionState.MARKED_FOR_DELETION],
    DeletionState.MARKED_FOR_DELETION: [
        DeletionState.WARNED,
        DeletionState.PURGED,
        DeletionState.ACTIVE,
    ],
    DeletionState.WARNED: [DeletionState.PURGED, DeletionState.ACTIVE],
    DeletionState.PURGED: [],  # Terminal
}


def can_transition(from_state: DeletionState, to_state: DeletionState) -> bool:
    """Validate if a lifecycle transition is allowed

    Example:
        >>> can_transition(DeletionState.WARNED, DeletionState.ACTIVE)
        True
        >>> can_transition(DeletionState.ACTIVE, DeletionState.PURGED)
        False
    """
    return to_state in ALLOWED_TRANSITIONS.get(from_state, [])


def get_allowed_transitions(from_state: DeletionState) -> List[DeletionState]:
    return ALLOWED_TRANSITIONS.get(from_state, [])


def days_elapsed(scheduled_at: datetime, now: datetime) -> int:
    """Whole days since scheduling, floored."""
    return (now - scheduled_at) // ONE_DAY


def days_remaining(scheduled_at: datetime, now: datetime, grace_period_days: int) -> int:
    """Days left in the grace period; zero or negative once it has elapsed."""
    return grace_period_days - days_elapsed(scheduled_at, now)


def deletion_due_at(scheduled_at: datetime, grace_period_days: int) -> datetime:
    """Earliest instant after which the purge sweep will select the entity."""
    return scheduled_at + timedelta(days=grace_period_days)


def user_state(user) -> DeletionState:
    """Derive a user's state from its persisted flags."""
    if not user.scheduled_for_deletion:
        return DeletionState.ACTIVE
    if user.deletion_warning_email_sent:
        return DeletionState.WARNED
    return DeletionState.MARKED_FOR_DELETION


def item_state(item, now: datetime, grace_period_days: int) -> DeletionState:
    """Derive an item's state.

    Items carry no warning flag: an item counts as WARNED once its schedule
    has reached the warning window (the last day of the grace period).
    """
    if not item.scheduled_for_deletion:
        return DeletionState.ACTIVE
    if days_elapsed(item.deletion_scheduled_at, now) >= grace_period_days - 1:
        return DeletionState.WARNED
    return DeletionState.MARKED_FOR_DELETION
