"""
SQLite tracking store.

Each call opens its own connection and runs in a single transaction on a
worker thread, so concurrent writers are serialised by SQLite itself rather
than by a process-wide lock.
"""

import asyncio
import sqlite3
from datetime import datetime, timezone
from typing import Optional
from loguru import logger
from pydantic import TypeAdapter, ValidationError

from parcelwatch.exceptions import PersistenceError
from parcelwatch.models import Tracking, TrackingInfo
from parcelwatch.storage.base import TrackingStorage


_TRACKING_INFOS = TypeAdapter(list[TrackingInfo])

_INSERT = """
    INSERT INTO trackings
        (user_id, tracking_number, display_name, payload, last_polled_at)
    VALUES
        (:user_id, :tracking_number, :display_name, :payload, :last_polled_at)
"""

# A new track request must not wipe the snapshot of an already tracked parcel
_ON_CONFLICT_RENAME = """
    ON CONFLICT (user_id, tracking_number) DO UPDATE SET
        display_name = excluded.display_name
"""

_ON_CONFLICT_OVERWRITE = """
    ON CONFLICT (user_id, tracking_number) DO UPDATE SET
        payload = excluded.payload,
        last_polled_at = excluded.last_polled_at,
        display_name = excluded.display_name
"""


def _to_timestamp(value: Optional[datetime]) -> Optional[int]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp())


def _from_timestamp(value: Optional[int]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


class SQLiteTrackingStorage(TrackingStorage):
    """Tracking store backed by a SQLite file."""

    def __init__(self, db_path: str):
        self._db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, timeout=30)
        conn.row_factory = sqlite3.Row
        return conn

    async def _run(self, func, *args):
        try:
            return await asyncio.to_thread(func, *args)
        except sqlite3.Error as e:
            raise PersistenceError(f"Tracking store failure: {e}") from e

    def init_db(self) -> None:
        """Create tables if they do not exist."""
        conn = self._connect()
        try:
            with conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS trackings (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        user_id INTEGER NOT NULL,
                        tracking_number TEXT NOT NULL,
                        display_name TEXT,
                        last_polled_at INTEGER,
                        payload TEXT
                    )
                    """
                )
                conn.execute(
                    """
                    CREATE UNIQUE INDEX IF NOT EXISTS trackings_user_id_tracking_number
                    ON trackings (user_id, tracking_number)
                    """
                )
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to initialise tracking store: {e}") from e
        finally:
            conn.close()
        logger.debug(f"Tracking store ready at {self._db_path}")

    @staticmethod
    def _row_to_tracking(row: sqlite3.Row) -> Tracking:
        infos: list[TrackingInfo] = []
        payload = row["payload"]
        if payload:
            try:
                infos = _TRACKING_INFOS.validate_json(payload) or []
            except ValidationError as e:
                logger.warning(
                    f"Unreadable snapshot for tracking {row['id']}, treating as empty: "
                    f"{e.error_count()} error(s)"
                )

        return Tracking(
            id=row["id"],
            user_id=row["user_id"],
            tracking_number=row["tracking_number"],
            display_name=row["display_name"] or "",
            tracking_infos=infos,
            last_polled_at=_from_timestamp(row["last_polled_at"]),
        )

    def _save(self, tracking: Tracking) -> Tracking:
        params = {
            "user_id": tracking.user_id,
            "tracking_number": tracking.tracking_number,
            "display_name": tracking.display_name,
            "payload": _TRACKING_INFOS.dump_json(tracking.tracking_infos, by_alias=True).decode(),
            "last_polled_at": _to_timestamp(tracking.last_polled_at),
        }
        conflict = _ON_CONFLICT_RENAME if tracking.id is None else _ON_CONFLICT_OVERWRITE

        conn = self._connect()
        try:
            with conn:
                conn.execute(_INSERT + conflict, params)
                row = conn.execute(
                    "SELECT id FROM trackings WHERE user_id = ? AND tracking_number = ?",
                    (tracking.user_id, tracking.tracking_number),
                ).fetchone()
        finally:
            conn.close()

        return tracking.model_copy(update={"id": row["id"]})

    def _select(self, query: str, params: tuple) -> list[Tracking]:
        conn = self._connect()
        try:
            rows = conn.execute(query, params).fetchall()
        finally:
            conn.close()
        return [self._row_to_tracking(row) for row in rows]

    def _delete(self, user_id: int, tracking_number: str) -> bool:
        conn = self._connect()
        try:
            with conn:
                cur = conn.execute(
                    "DELETE FROM trackings WHERE user_id = ? AND tracking_number = ?",
                    (user_id, tracking_number),
                )
        finally:
            conn.close()
        return cur.rowcount > 0

    async def save_tracking(self, tracking: Tracking) -> Tracking:
        return await self._run(self._save, tracking)

    async def get_tracking(self, user_id: int, tracking_number: str) -> Optional[Tracking]:
        trackings = await self._run(
            self._select,
            "SELECT * FROM trackings WHERE user_id = ? AND tracking_number = ?",
            (user_id, tracking_number),
        )
        return trackings[0] if trackings else None

    async def list_trackings_by_user(self, user_id: int) -> list[Tracking]:
        return await self._run(
            self._select,
            "SELECT * FROM trackings WHERE user_id = ? ORDER BY id",
            (user_id,),
        )

    async def list_trackings_last_polled_before(self, before: datetime) -> list[Tracking]:
        return await self._run(
            self._select,
            "SELECT * FROM trackings WHERE last_polled_at IS NULL OR last_polled_at < ? ORDER BY id",
            (_to_timestamp(before),),
        )

    async def delete_tracking(self, user_id: int, tracking_number: str) -> bool:
        return await self._run(self._delete, user_id, tracking_number)
