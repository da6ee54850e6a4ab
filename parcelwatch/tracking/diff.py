"""
Snapshot diffing.
Turns the stored snapshot and a freshly fetched one into the facts that are new.
"""

from typing import Optional, Sequence

from parcelwatch.models import TrackingEvent, TrackingInfo, TrackingUpdate


def _find_by_api_name(
    infos: Sequence[TrackingInfo],
    api_name: str,
) -> Optional[TrackingInfo]:
    for info in infos:
        if info.api_name == api_name:
            return info
    return None


def _new_events(
    existing: TrackingInfo,
    fetched: TrackingInfo,
) -> list[TrackingEvent]:
    known = [event.identity for event in existing.events]
    return [event for event in fetched.events if event.identity not in known]


def get_tracking_update(
    existing: Sequence[TrackingInfo],
    fetched: Sequence[TrackingInfo],
) -> Optional[TrackingUpdate]:
    """
    Compare a stored snapshot with a fetched one.

    Provider blocks are matched by api_name, events by (status, time).
    A matched block whose event count did not change is treated as unchanged
    without looking at the events; description-only edits and one-for-one
    event replacements are therefore not reported.

    Args:
        existing: Last persisted snapshot
        fetched: Snapshot just returned by the provider

    Returns:
        TrackingUpdate with the new blocks/events (identity fields left
        empty), or None when there is nothing new.
    """
    result = TrackingUpdate()

    if not existing:
        result.new_tracking_infos = list(fetched)
    else:
        # O(n*m), but a parcel only ever has a handful of providers and events
        for fetched_info in fetched:
            existing_info = _find_by_api_name(existing, fetched_info.api_name)

            if existing_info is None:
                result.new_tracking_infos.append(fetched_info)
                continue

            if len(existing_info.events) == len(fetched_info.events):
                continue

            result.new_tracking_events.extend(_new_events(existing_info, fetched_info))

    if not result.has_changes:
        return None

    return result
