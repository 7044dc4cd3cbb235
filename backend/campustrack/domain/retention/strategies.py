"""User deletion strategies

A strategy decides which timestamp qualifies a user as inactive. Exactly one
strategy is active per process, chosen from configuration at construction
time. Both strategies exclude admins and users already scheduled.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Dict, Type

from sqlalchemy import and_
from sqlalchemy.sql.elements import ColumnElement

from ...models.user import User, UserRole


class UserDeletionStrategy(ABC):
    """Base class for user candidate selection."""

    name: str = ""

    def __init__(self, inactivity_days: int):
        self.inactivity_days = inactivity_days

    def threshold(self, now: datetime) -> datetime:
        return now - timedelta(days=self.inactivity_days)

    def select_candidates(self, now: datetime) -> ColumnElement:
        """Build the filter selecting users eligible for marking.

        Args:
            now: Reference time for the inactivity threshold

        Returns:
            SQLAlchemy boolean clause usable in query.filter()
        """
        return and_(
            User.scheduled_for_deletion.is_(False),
            User.role != UserRole.ADMIN.value,
            self._criteria(self.threshold(now)),
        )

    @abstractmethod
    def _criteria(self, threshold: datetime) -> ColumnElement:
        """Strategy-specific part of the candidate filter."""


class InactivityStrategy(UserDeletionStrategy):
    """Active accounts whose last login is older than the threshold."""

    name = "inactivity"

    def _criteria(self, threshold: datetime) -> ColumnElement:
        return and_(
            User.is_active.is_(True),
            User.last_login_date < threshold,
        )


class DeactivationStrategy(UserDeletionStrategy):
    """Deactivated accounts whose deactivation is older than the threshold."""

    name = "deactivation"

    def _criteria(self, threshold: datetime) -> ColumnElement:
        return and_(
            User.is_active.is_(False),
            User.deactivated_at.isnot(None),
            User.deactivated_at < threshold,
        )


STRATEGIES: Dict[str, Type[UserDeletionStrategy]] = {
    InactivityStrategy.name: InactivityStrategy,
    DeactivationStrategy.name: DeactivationStrategy,
}


def get_strategy(name: str, inactivity_days: int) -> UserDeletionStrategy:
    """Instantiate the configured strategy.

    Raises:
        ValueError: If name is not a known strategy
    """
    try:
        strategy_cls = STRATEGIES[name]
    except KeyError:
        raise ValueError(
            f"Unknown user deletion strategy '{name}'. "
            f"Expected one of: {', '.join(sorted(STRATEGIES))}"
        )
    return strategy_cls(inactivity_days)
