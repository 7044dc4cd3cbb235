"""Collaborator ports consumed by the retention engine.

Architecture: Hexagonal - Port interfaces in domain layer, adapters live in
notifications/ (email) and infrastructure/images/ (image hosting).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional


class EmailSenderPort(ABC):
    """Port interface for sending rendered HTML emails."""

    @abstractmethod
    def send_email(self, to: str, subject: str, html: str) -> None:
        """Send one email.

        Raises:
            Exception: Any transport failure. Callers treat it as a
                per-recipient failure.
        """


@dataclass
class AssetDeletionResult:
    """Outcome of deleting one hosted image.

    Attributes:
        asset_id: Storage identifier passed to delete_assets()
        success: True if deleted or already gone
        error: Error message when success is False
    """
    asset_id: str
    success: bool
    error: Optional[str] = None


class ImageStorePort(ABC):
    """Port interface for the image hosting service."""

    @abstractmethod
    def extract_asset_id(self, url: Optional[str]) -> Optional[str]:
        """Parse a hosted image URL into a deletable identifier.

        Returns:
            The identifier, or None if url is empty or not recognised
        """

    @abstractmethod
    def delete_assets(self, asset_ids: List[str]) -> List[AssetDeletionResult]:
        """Delete assets one by one, reporting each outcome.

        A failure for one asset never prevents deleting the others.
        """
