"""
Tracking store interface.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from parcelwatch.models import Tracking


class TrackingStorage(ABC):
    """Persistence operations required by the tracking service."""

    @abstractmethod
    async def save_tracking(self, tracking: Tracking) -> Tracking:
        """
        Insert or update a tracking keyed on (user_id, tracking_number).

        A tracking without an id only refreshes the display name of an
        existing row; a tracking with an id also overwrites the snapshot
        and last_polled_at.

        Returns:
            The tracking with its id assigned
        """
        pass

    @abstractmethod
    async def get_tracking(self, user_id: int, tracking_number: str) -> Optional[Tracking]:
        pass

    @abstractmethod
    async def list_trackings_by_user(self, user_id: int) -> list[Tracking]:
        pass

    @abstractmethod
    async def list_trackings_last_polled_before(self, before: datetime) -> list[Tracking]:
        """Trackings never polled or last polled before the given time."""
        pass

    @abstractmethod
    async def delete_tracking(self, user_id: int, tracking_number: str) -> bool:
        """Returns True if a tracking was removed."""
        pass
