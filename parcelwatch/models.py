"""
Data models for ParcelWatch.

A Tracking is one user's subscription to one tracking number. Its snapshot
is the list of TrackingInfo blocks last reported by the provider, one block
per carrier/provider that has seen the parcel.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from parcelwatch.exceptions import FetchError, TrackingNotFoundError


class TrackingEvent(BaseModel):
    """One status entry in a provider's timeline."""

    time: datetime
    status: str
    description: str = ""

    class Config:
        populate_by_name = True

    @property
    def identity(self) -> tuple[str, datetime]:
        """Two events are the same event iff status and time both match."""
        return self.status, self.time


class TrackingInfo(BaseModel):
    """One provider's view of a parcel's journey."""

    api_name: str = Field(alias="apiName")
    events: list[TrackingEvent] = Field(default_factory=list)

    class Config:
        populate_by_name = True


class Tracking(BaseModel):
    """A user's subscription to updates for one parcel."""

    id: Optional[int] = None
    user_id: int
    tracking_number: str
    display_name: str = ""
    tracking_infos: list[TrackingInfo] = Field(default_factory=list)
    last_polled_at: Optional[datetime] = None

    @property
    def key(self) -> tuple[int, str]:
        return self.user_id, self.tracking_number


class TrackingUpdate(BaseModel):
    """Result of a reconciliation pass, handed to the update consumer."""

    tracking_number: str = ""
    user_id: int = 0
    display_name: str = ""
    new_tracking_infos: list[TrackingInfo] = Field(default_factory=list)
    new_tracking_events: list[TrackingEvent] = Field(default_factory=list)
    error: Optional[FetchError] = None

    class Config:
        arbitrary_types_allowed = True

    @property
    def has_changes(self) -> bool:
        return bool(self.new_tracking_infos or self.new_tracking_events)

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @property
    def is_not_found(self) -> bool:
        """Provider does not know the parcel yet; tell the user to keep waiting."""
        return isinstance(self.error, TrackingNotFoundError)
