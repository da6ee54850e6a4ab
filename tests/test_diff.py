"""Tests for snapshot diffing."""

from datetime import datetime, timezone

from parcelwatch.models import TrackingEvent, TrackingInfo
from parcelwatch.tracking.diff import get_tracking_update


def _event(status: str, hour: int, description: str = "") -> TrackingEvent:
    return TrackingEvent(
        time=datetime(2024, 3, 1, hour, 0, tzinfo=timezone.utc),
        status=status,
        description=description,
    )


def _info(api_name: str, *events: TrackingEvent) -> TrackingInfo:
    return TrackingInfo(api_name=api_name, events=list(events))


class TestFirstFetch:
    """Tests for diffing against an empty snapshot."""

    def test_everything_is_new(self):
        """All fetched blocks are reported as new providers."""
        fetched = [
            _info("cainiao", _event("accepted", 1)),
            _info("belpost", _event("arrived", 5), _event("sorting", 6)),
        ]

        update = get_tracking_update([], fetched)

        assert update is not None
        assert update.new_tracking_infos == fetched
        assert update.new_tracking_events == []

    def test_empty_fetch_is_no_change(self):
        """Nothing fetched and nothing stored means nothing to report."""
        assert get_tracking_update([], []) is None


class TestNoChange:
    """Tests for identical snapshots."""

    def test_identical_snapshot(self):
        """diff(X, X) is always no change."""
        snapshot = [
            _info("cainiao", _event("accepted", 1), _event("departed", 2)),
            _info("belpost", _event("arrived", 5)),
        ]

        assert get_tracking_update(snapshot, snapshot) is None

    def test_identical_copy(self):
        """Equal content in different objects is no change too."""
        existing = [_info("cainiao", _event("accepted", 1))]
        fetched = [_info("cainiao", _event("accepted", 1))]

        assert get_tracking_update(existing, fetched) is None

    def test_provider_dropped_from_fetch(self):
        """A provider missing from the fetch is not reported."""
        existing = [_info("cainiao", _event("accepted", 1)), _info("belpost")]
        fetched = [_info("cainiao", _event("accepted", 1))]

        assert get_tracking_update(existing, fetched) is None


class TestNewProvider:
    """Tests for providers seen for the first time."""

    def test_new_provider_detected(self):
        """A block with an unknown api_name is new as a whole."""
        a = _info("cainiao", _event("accepted", 1))
        b = _info("belpost", _event("arrived", 5))

        update = get_tracking_update([a], [a, b])

        assert update is not None
        assert update.new_tracking_infos == [b]
        assert update.new_tracking_events == []

    def test_new_provider_and_new_events(self):
        """New providers and new events are reported together."""
        existing = [_info("cainiao", _event("accepted", 1))]
        fetched = [
            _info("cainiao", _event("accepted", 1), _event("departed", 2)),
            _info("belpost", _event("arrived", 5)),
        ]

        update = get_tracking_update(existing, fetched)

        assert [info.api_name for info in update.new_tracking_infos] == ["belpost"]
        assert [event.status for event in update.new_tracking_events] == ["departed"]


class TestNewEvents:
    """Tests for new events within known providers."""

    def test_new_event_detected(self):
        """An event with a new (status, time) is reported."""
        e1 = _event("accepted", 1)
        e2 = _event("departed", 2)

        update = get_tracking_update([_info("cainiao", e1)], [_info("cainiao", e1, e2)])

        assert update is not None
        assert update.new_tracking_infos == []
        assert update.new_tracking_events == [e2]

    def test_new_events_keep_fetched_order(self):
        """New events are reported in the order the provider returned them."""
        e1 = _event("accepted", 1)
        fetched = [_info("cainiao", _event("customs", 4), e1, _event("departed", 2))]

        update = get_tracking_update([_info("cainiao", e1)], fetched)

        assert [event.status for event in update.new_tracking_events] == ["customs", "departed"]

    def test_same_status_different_time_is_new(self):
        """Identity includes the timestamp."""
        update = get_tracking_update(
            [_info("cainiao", _event("in_transit", 1))],
            [_info("cainiao", _event("in_transit", 1), _event("in_transit", 3))],
        )

        assert [event.time.hour for event in update.new_tracking_events] == [3]

    def test_description_is_not_identity(self):
        """A changed description does not make an event new."""
        update = get_tracking_update(
            [_info("cainiao", _event("accepted", 1, "Shanghai"))],
            [_info("cainiao", _event("accepted", 1, "Shanghai hub"), _event("departed", 2))],
        )

        assert [event.status for event in update.new_tracking_events] == ["departed"]

    def test_fewer_events_without_new_ones_is_no_change(self):
        """Events vanishing from the provider are not reported."""
        existing = [_info("cainiao", _event("accepted", 1), _event("departed", 2))]
        fetched = [_info("cainiao", _event("accepted", 1))]

        assert get_tracking_update(existing, fetched) is None


class TestEventCountUnchanged:
    """
    A known provider whose event count did not change is skipped without
    comparing events. These tests pin that accepted limitation.
    """

    def test_changed_descriptions_ignored(self):
        """Same count, different descriptions: no change."""
        existing = [_info("cainiao", _event("accepted", 1, "a"), _event("departed", 2, "b"))]
        fetched = [_info("cainiao", _event("accepted", 1, "x"), _event("departed", 2, "y"))]

        assert get_tracking_update(existing, fetched) is None

    def test_replaced_event_ignored(self):
        """Same count with one event swapped for another: still no change."""
        existing = [_info("cainiao", _event("accepted", 1), _event("departed", 2))]
        fetched = [_info("cainiao", _event("accepted", 1), _event("customs", 3))]

        assert get_tracking_update(existing, fetched) is None
