"""
Tracking persistence.
"""

from parcelwatch.storage.base import TrackingStorage
from parcelwatch.storage.sqlite_storage import SQLiteTrackingStorage

__all__ = ["TrackingStorage", "SQLiteTrackingStorage"]
