"""SQLite-backed durable queue of files waiting to be uploaded.

Items survive process restarts. Only the sync engine changes an item's state;
``synced`` items are kept for a retention window and then purged.
"""

import errno
import sqlite3
import threading
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum
from pathlib import Path

from papierkraken.errors import StorageExhausted
from papierkraken.logging.logger import Log

MEMORY_DB = ":memory:"


class SyncState(str, Enum):
    PENDING = "pending"
    UPLOADING = "uploading"
    SYNCED = "synced"
    FAILED = "failed"


@dataclass(frozen=True)
class QueueItem:
    local_id: str
    file_name: str
    mime_type: str
    byte_size: int
    payload: bytes
    enqueued_at: datetime
    updated_at: datetime
    sync_state: SyncState
    last_error: str | None = None
    captured_offline: bool = False
    retryable: bool = True


_SCHEMA = """
CREATE TABLE IF NOT EXISTS queue_items (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    local_id TEXT NOT NULL UNIQUE,
    file_name TEXT NOT NULL,
    mime_type TEXT NOT NULL,
    byte_size INTEGER NOT NULL,
    payload BLOB NOT NULL,
    enqueued_at REAL NOT NULL,
    updated_at REAL NOT NULL,
    sync_state TEXT NOT NULL,
    last_error TEXT,
    captured_offline INTEGER NOT NULL DEFAULT 0,
    retryable INTEGER NOT NULL DEFAULT 1
);

CREATE INDEX IF NOT EXISTS idx_queue_items_state
    ON queue_items(sync_state, updated_at);
"""

_COLUMNS = (
    "local_id, file_name, mime_type, byte_size, payload, enqueued_at, "
    "updated_at, sync_state, last_error, captured_offline"
)
_SELECT_COLUMNS = f"{_COLUMNS}, retryable"


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _to_item(row: tuple) -> QueueItem:
    return QueueItem(
        local_id=row[0],
        file_name=row[1],
        mime_type=row[2],
        byte_size=row[3],
        payload=bytes(row[4]),
        enqueued_at=datetime.fromtimestamp(row[5], UTC),
        updated_at=datetime.fromtimestamp(row[6], UTC),
        sync_state=SyncState(row[7]),
        last_error=row[8],
        captured_offline=bool(row[9]),
        retryable=bool(row[10]),
    )


def _is_disk_full(exc: Exception) -> bool:
    if isinstance(exc, OSError):
        return exc.errno == errno.ENOSPC
    code = getattr(exc, "sqlite_errorcode", None)
    if code is not None:
        return code == sqlite3.SQLITE_FULL
    return "full" in str(exc).lower()


class LocalQueue:
    """Durable upload queue. Safe to call from worker threads."""

    def __init__(
        self,
        db_path: str | Path,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._clock = clock
        path = str(db_path)
        if path != MEMORY_DB:
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(path, check_same_thread=False)
        if path != MEMORY_DB:
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._lock = threading.Lock()
        with self._lock, self._conn:
            self._conn.executescript(_SCHEMA)
            columns = {row[1] for row in self._conn.execute("PRAGMA table_info(queue_items)")}
            if "retryable" not in columns:
                self._conn.execute(
                    "ALTER TABLE queue_items ADD COLUMN retryable INTEGER NOT NULL DEFAULT 1"
                )
        Log.debug(f"Local queue opened at {path}")

    def enqueue(
        self,
        payload: bytes,
        file_name: str,
        mime_type: str,
        captured_offline: bool = False,
    ) -> str:
        """Persist a new ``pending`` item and return its local id.

        Raises:
            StorageExhausted: if the local store has no space left.
        """
        local_id = uuid.uuid4().hex
        now = self._clock().timestamp()
        try:
            with self._lock, self._conn:
                self._conn.execute(
                    f"INSERT INTO queue_items ({_COLUMNS}) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, NULL, ?)",
                    (
                        local_id,
                        file_name,
                        mime_type,
                        len(payload),
                        sqlite3.Binary(payload),
                        now,
                        now,
                        SyncState.PENDING.value,
                        int(captured_offline),
                    ),
                )
        except (sqlite3.OperationalError, OSError) as exc:
            if _is_disk_full(exc):
                raise StorageExhausted(f"Local queue is full: {exc}") from exc
            raise
        Log.info(f"Queued '{file_name}' ({len(payload)} bytes) as {local_id}")
        return local_id

    def list_by_state(self, *states: SyncState) -> list[QueueItem]:
        """Snapshot of items in the given states, in insertion order."""
        if not states:
            return []
        placeholders = ",".join("?" * len(states))
        with self._lock:
            rows = self._conn.execute(
                f"SELECT {_SELECT_COLUMNS} FROM queue_items "
                f"WHERE sync_state IN ({placeholders}) ORDER BY seq",
                tuple(state.value for state in states),
            ).fetchall()
        return [_to_item(row) for row in rows]

    def get(self, local_id: str) -> QueueItem | None:
        with self._lock:
            row = self._conn.execute(
                f"SELECT {_SELECT_COLUMNS} FROM queue_items WHERE local_id = ?",
                (local_id,),
            ).fetchone()
        return _to_item(row) if row else None

    def mark_state(
        self,
        local_id: str,
        state: SyncState,
        error: str | None = None,
        retryable: bool = True,
    ) -> bool:
        """Move one item to ``state``.

        ``last_error`` is only written on ``failed``. ``retryable=False`` marks a
        failure that drains must leave alone; any other transition re-arms the item.
        """
        failed = state is SyncState.FAILED
        with self._lock, self._conn:
            cursor = self._conn.execute(
                """
                UPDATE queue_items
                SET sync_state = ?,
                    updated_at = ?,
                    last_error = CASE WHEN ? THEN ? ELSE last_error END,
                    retryable = ?
                WHERE local_id = ?
                """,
                (
                    state.value,
                    self._clock().timestamp(),
                    int(failed),
                    error,
                    int(retryable or not failed),
                    local_id,
                ),
            )
        return cursor.rowcount > 0

    def requeue_interrupted(self) -> int:
        """Return items left ``uploading`` by an interrupted run to ``pending``."""
        with self._lock, self._conn:
            cursor = self._conn.execute(
                "UPDATE queue_items SET sync_state = ?, updated_at = ? WHERE sync_state = ?",
                (
                    SyncState.PENDING.value,
                    self._clock().timestamp(),
                    SyncState.UPLOADING.value,
                ),
            )
        if cursor.rowcount:
            Log.warning(f"Requeued {cursor.rowcount} interrupted uploads")
        return cursor.rowcount

    def remove(self, local_id: str) -> bool:
        with self._lock, self._conn:
            cursor = self._conn.execute(
                "DELETE FROM queue_items WHERE local_id = ?", (local_id,)
            )
        return cursor.rowcount > 0

    def purge_older_than(
        self,
        state: SyncState,
        age: timedelta,
        now: datetime | None = None,
    ) -> int:
        """Delete ``synced`` items whose last update is older than ``age``.

        Raises:
            ValueError: for any state other than ``synced``.
        """
        if state is not SyncState.SYNCED:
            raise ValueError(f"Refusing to purge items in state '{state.value}'")
        cutoff = ((now or self._clock()) - age).timestamp()
        with self._lock, self._conn:
            cursor = self._conn.execute(
                "DELETE FROM queue_items WHERE sync_state = ? AND updated_at < ?",
                (state.value, cutoff),
            )
        if cursor.rowcount:
            Log.info(f"Purged {cursor.rowcount} synced items older than {age}")
        return cursor.rowcount

    def count_by_state(self, state: SyncState) -> int:
        with self._lock:
            row = self._conn.execute(
                "SELECT COUNT(*) FROM queue_items WHERE sync_state = ?",
                (state.value,),
            ).fetchone()
        return int(row[0])

    def close(self) -> None:
        with self._lock:
            self._conn.close()
