"""
Tracking integration module.
Fetches tracking info from the provider and diffs it against stored snapshots.
"""

from parcelwatch.tracking.diff import get_tracking_update
from parcelwatch.tracking.parcels_api import ParcelsAPI, ProviderClient

__all__ = ["ParcelsAPI", "ProviderClient", "get_tracking_update"]
