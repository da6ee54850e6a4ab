"""
Tracking service.

Owns the reconciliation cycle for tracked parcels:
1. Fetch the provider's current tracking info
2. Diff it against the stored snapshot
3. Persist the new snapshot if anything changed
4. Publish the new facts on the update stream

Reconciliation runs from two places: once right after a track request
(errors are reported to the user), and from the poll loop for every tracking
that is due (errors are only logged, the next poll retries).
"""

import asyncio
import weakref
from collections.abc import Callable, Coroutine
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from loguru import logger

from parcelwatch.exceptions import FetchError, PersistenceError, TrackingNotFoundError
from parcelwatch.logging_config import TrackingLogger
from parcelwatch.models import Tracking, TrackingUpdate
from parcelwatch.storage.base import TrackingStorage
from parcelwatch.stream import UpdateStream
from parcelwatch.tracking.diff import get_tracking_update
from parcelwatch.tracking.parcels_api import ProviderClient


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ParcelService:
    """
    Tracks parcels for users and publishes what changed.

    Features:
    - Immediate fetch after a track request
    - Periodic polling of trackings not polled within the polling interval
    - Per-tracking serialisation of reconciliations
    - Supervised background work, drained or cancelled on stop()
    """

    def __init__(
        self,
        storage: TrackingStorage,
        provider: ProviderClient,
        polling_interval: float = 600.0,
        updates: Optional[UpdateStream] = None,
        shutdown_grace_seconds: float = 10.0,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.storage = storage
        self.provider = provider
        self.polling_interval = polling_interval
        self.shutdown_grace_seconds = shutdown_grace_seconds
        self._updates = updates or UpdateStream()
        self._clock = clock

        self._running = False
        self._stopping: Optional[asyncio.Event] = None
        self._poll_task: Optional[asyncio.Task] = None
        self._background: set[asyncio.Task] = set()
        # entries vanish once no reconciliation references the lock
        self._locks: weakref.WeakValueDictionary[tuple[int, str], asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    @property
    def updates(self) -> UpdateStream:
        return self._updates

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def background_tasks(self) -> frozenset[asyncio.Task]:
        """Reconciliations started by track() that have not finished yet."""
        return frozenset(self._background)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self):
        """Start the poll loop. The first pass runs immediately."""
        if self._running:
            return

        logger.debug("Tracking service starting")
        self._running = True
        self._stopping = asyncio.Event()
        self._poll_task = asyncio.create_task(self._poll_loop(), name="parcelwatch-poll")
        logger.info(f"Polling started (interval: {self.polling_interval:g}s)")

    async def stop(self):
        """
        Stop polling.

        The current poll pass and pending track reconciliations get
        shutdown_grace_seconds to finish; whatever is left is cancelled.
        """
        if not self._running:
            return

        logger.info("Stopping tracking service...")
        self._running = False
        self._stopping.set()

        pending = set(self._background)
        if self._poll_task:
            pending.add(self._poll_task)

        if pending:
            _, unfinished = await asyncio.wait(pending, timeout=self.shutdown_grace_seconds)
            if unfinished:
                logger.warning(f"Cancelling {len(unfinished)} unfinished task(s)")
                for task in unfinished:
                    task.cancel()
                await asyncio.gather(*unfinished, return_exceptions=True)

        self._poll_task = None
        logger.info("Tracking service stopped")

    async def _poll_loop(self):
        await self._safe_poll()

        while not self._stopping.is_set():
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.polling_interval)
            except asyncio.TimeoutError:
                await self._safe_poll()

        logger.debug("Polling stopped")

    async def _safe_poll(self):
        try:
            await self.poll()
        except Exception as e:
            logger.exception(f"Poll pass failed: {e}")

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    async def poll(self) -> int:
        """
        Reconcile every tracking not polled within the polling interval.

        Trackings are processed one after another in store order. Errors are
        logged and never reported to users.

        Returns:
            Number of trackings reconciled
        """
        cutoff = self._clock() - timedelta(seconds=self.polling_interval)

        try:
            trackings = await self.storage.list_trackings_last_polled_before(cutoff)
        except PersistenceError as e:
            logger.error(f"Polling failed: {e}")
            return 0

        logger.info(f"Polling {len(trackings)} tracking(s)")

        processed = 0
        for tracking in trackings:
            if self._stopping is not None and self._stopping.is_set():
                logger.debug("Stop requested, ending poll pass early")
                break

            try:
                await self.reconcile(tracking, report_errors=False)
            except Exception as e:
                logger.exception(f"Reconciliation of {tracking.tracking_number} failed: {e}")
            processed += 1

        return processed

    # ------------------------------------------------------------------
    # User operations
    # ------------------------------------------------------------------

    async def track(
        self,
        user_id: int,
        tracking_number: str,
        display_name: str = "",
    ) -> Tracking:
        """
        Start tracking a parcel for a user.

        Re-tracking a number the user already tracks only updates its display
        name. Either way the tracking info is fetched right away in the
        background, against an empty snapshot, so the user receives the full
        current state (or the fetch error).

        Raises:
            PersistenceError: the tracking could not be saved
        """
        logger.info(f"Got track command: user={user_id} tracking_number={tracking_number}")

        tracking = Tracking(
            user_id=user_id,
            tracking_number=tracking_number,
            display_name=display_name,
        )
        saved = await self.storage.save_tracking(tracking)
        logger.info(f"Tracking added: id={saved.id} user={user_id} tracking_number={tracking_number}")

        self._spawn(
            self.reconcile(saved, report_errors=True),
            name=f"track-{user_id}-{tracking_number}",
        )
        return saved

    async def get_tracking(self, user_id: int, tracking_number: str) -> Optional[Tracking]:
        return await self.storage.get_tracking(user_id, tracking_number)

    async def list_trackings(self, user_id: int) -> list[Tracking]:
        return await self.storage.list_trackings_by_user(user_id)

    async def delete_tracking(self, user_id: int, tracking_number: str) -> bool:
        deleted = await self.storage.delete_tracking(user_id, tracking_number)
        if deleted:
            logger.info(f"Tracking removed: user={user_id} tracking_number={tracking_number}")
        return deleted

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    async def reconcile(self, tracking: Tracking, report_errors: bool):
        """
        Fetch, diff, persist and publish for one tracking.

        Runs for the same tracking are serialised. Polls diff against the
        stored row as it is once the lock is held, and skip trackings that
        were deleted meanwhile. Track requests diff against the snapshot
        they were given.

        Args:
            tracking: Tracking to reconcile
            report_errors: Publish fetch errors as updates instead of only logging them
        """
        lock = self._locks.setdefault(tracking.key, asyncio.Lock())
        async with lock:
            if not report_errors:
                try:
                    current = await self.storage.get_tracking(*tracking.key)
                except PersistenceError as e:
                    logger.error(f"Failed to reload {tracking.tracking_number}: {e}")
                    return
                if current is None:
                    logger.debug(f"{tracking.tracking_number} was removed, skipping")
                    return
                tracking = current
            await self._reconcile(tracking, report_errors)

    async def _reconcile(self, tracking: Tracking, report_errors: bool):
        log = TrackingLogger(tracking.user_id, tracking.tracking_number)
        log.debug("Fetching tracking info")

        try:
            fetched = await self.provider.get_tracking_info(tracking.tracking_number)
        except TrackingNotFoundError as e:
            log.info(f"Not known to the provider yet: {e}")
            if report_errors:
                await self._publish_error(tracking, e)
            return
        except FetchError as e:
            log.error(f"Failed to fetch tracking info: {e}")
            if report_errors:
                await self._publish_error(tracking, e)
            return

        update = get_tracking_update(tracking.tracking_infos, fetched)
        if update is None:
            log.debug("Tracking info is up to date")
            return

        log.info(
            f"Tracking info changed: {len(update.new_tracking_infos)} new provider(s), "
            f"{len(update.new_tracking_events)} new event(s)"
        )

        changed = tracking.model_copy(
            update={"tracking_infos": list(fetched), "last_polled_at": self._clock()}
        )
        try:
            await self.storage.save_tracking(changed)
        except PersistenceError as e:
            log.error(f"Failed to update tracking: {e}")
            return

        update.tracking_number = tracking.tracking_number
        update.user_id = tracking.user_id
        update.display_name = tracking.display_name
        await self._updates.publish(update)

    async def _publish_error(self, tracking: Tracking, error: FetchError):
        await self._updates.publish(
            TrackingUpdate(
                tracking_number=tracking.tracking_number,
                user_id=tracking.user_id,
                display_name=tracking.display_name,
                error=error,
            )
        )

    # ------------------------------------------------------------------
    # Background work
    # ------------------------------------------------------------------

    def _spawn(self, coro: Coroutine[Any, Any, None], name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._background.add(task)
        task.add_done_callback(self._on_background_done)
        return task

    def _on_background_done(self, task: asyncio.Task):
        self._background.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.opt(exception=error).error(f"Background task {task.get_name()} failed")

    async def wait_for_background(self):
        """Wait until every reconciliation started by track() has finished."""
        while self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
