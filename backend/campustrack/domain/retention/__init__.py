"""Retention domain module - lifecycle states, user strategies, collaborator ports"""

from .lifecycle import (
    DeletionState,
    ALLOWED_TRANSITIONS,
    can_transition,
    days_remaining,
    deletion_due_at,
    item_state,
    user_state,
)
from .ports import AssetDeletionResult, EmailSenderPort, ImageStorePort
from .strategies import (
    DeactivationStrategy,
    InactivityStrategy,
    UserDeletionStrategy,
    get_strategy,
)

__all__ = [
    "DeletionState",
    "ALLOWED_TRANSITIONS",
    "can_transition",
    "days_remaining",
    "deletion_due_at",
    "item_state",
    "user_state",
    "AssetDeletionResult",
    "EmailSenderPort",
    "ImageStorePort",
    "DeactivationStrategy",
    "InactivityStrategy",
    "UserDeletionStrategy",
    "get_strategy",
]
