"""Moves queued files to the server one at a time.

Per-item state machine::

    pending -> uploading -> synced | failed
    failed  -> uploading            (next drain, network and server faults)
    failed  -> pending              (retry, rejected uploads)

Drains are serialized: a trigger arriving while a drain runs is coalesced
into a single follow-up drain. Failed items wait for the next trigger, except
those the server rejected, which wait for an explicit retry.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum

import httpx

from papierkraken.api.schemas import DocumentOut
from papierkraken.client.connectivity import ConnectivityMonitor
from papierkraken.client.queue import LocalQueue, SyncState
from papierkraken.client.transport import UploadTransport
from papierkraken.client.upload_task import UploadTask
from papierkraken.config.settings import ClientSettings
from papierkraken.errors import AuthError, UploadAborted, ValidationError
from papierkraken.ingestion.validator import UploadValidator
from papierkraken.logging.logger import Log


class DrainTrigger(str, Enum):
    STARTUP = "startup"
    REACHABLE = "reachable"
    MANUAL = "manual"


class SyncEventKind(str, Enum):
    QUEUED = "queued"
    UPLOADING = "uploading"
    SYNCED = "synced"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class SyncEvent:
    kind: SyncEventKind
    local_id: str
    document: DocumentOut | None = None
    error: str | None = None


@dataclass
class DrainReport:
    trigger: DrainTrigger
    skipped: bool = False
    attempted: int = 0
    synced: int = 0
    failed: int = 0
    cancelled: int = 0
    purged: int = 0


@dataclass(frozen=True)
class TransientDocument:
    """A not-yet-synced upload as shown next to server documents."""

    local_id: str
    file_name: str
    mime_type: str
    byte_size: int
    sync_state: SyncState
    progress: int = 0
    error: str | None = None
    retryable: bool = True


SyncListener = Callable[[SyncEvent], None]


class SyncEngine:
    def __init__(
        self,
        queue: LocalQueue,
        transport: UploadTransport,
        monitor: ConnectivityMonitor,
        settings: ClientSettings,
    ) -> None:
        self._queue = queue
        self._transport = transport
        self._monitor = monitor
        self._settings = settings
        self._validator = UploadValidator(
            settings.max_upload_bytes, settings.allowed_mime_types
        )
        self._listeners: list[SyncListener] = []
        self._active: dict[str, UploadTask] = {}
        self._drain_tasks: set[asyncio.Task[DrainReport | None]] = set()
        self._draining = False
        self._rerun: DrainTrigger | None = None
        self._scheduled = 0
        self._loop: asyncio.AbstractEventLoop | None = None
        self._unsubscribe_monitor: Callable[[], None] | None = None

    @property
    def monitor(self) -> ConnectivityMonitor:
        """The engine's monitor, for platform hooks that feed ``report``."""
        return self._monitor

    async def start(self) -> None:
        """Recover interrupted uploads, check the server once, then watch it and drain."""
        self._loop = asyncio.get_running_loop()
        await asyncio.to_thread(self._queue.requeue_interrupted)
        await self._monitor.check_once()
        self._unsubscribe_monitor = self._monitor.subscribe(self._on_reachable)
        await self._monitor.start()
        self._schedule(DrainTrigger.STARTUP)

    async def dispose(self) -> None:
        """Stop the monitor and any drains, then release the transport and the queue."""
        if self._unsubscribe_monitor is not None:
            self._unsubscribe_monitor()
            self._unsubscribe_monitor = None
        await self._monitor.stop()
        tasks = list(self._drain_tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._drain_tasks.clear()
        self._rerun = None
        await self._transport.close()
        self._queue.close()

    def subscribe(self, listener: SyncListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def submit(self, payload: bytes, file_name: str, mime_type: str) -> str:
        """Queue a file for upload and kick off a drain when the server is reachable.

        Raises:
            ValidationError: if the type is not allowed or the file is empty or too large.
            StorageExhausted: if the local queue is full.
        """
        self._validator.validate(mime_type, len(payload))
        reachable = self._monitor.is_reachable()
        local_id = await asyncio.to_thread(
            self._queue.enqueue,
            payload,
            file_name,
            mime_type,
            not reachable,
        )
        self._emit(SyncEvent(SyncEventKind.QUEUED, local_id))
        if reachable:
            self._schedule(DrainTrigger.MANUAL)
        return local_id

    async def flush(self) -> DrainReport | None:
        return await self.drain(DrainTrigger.MANUAL)

    async def drain(self, trigger: DrainTrigger) -> DrainReport | None:
        """Upload every pending item and every retryable failed item, one at a time.

        Returns None when coalesced into a drain that is already running.
        """
        if self._draining:
            Log.debug(f"Drain ({trigger.value}) coalesced into running drain")
            self._rerun = self._rerun or trigger
            return None
        if not self._monitor.is_reachable():
            Log.info(f"Drain ({trigger.value}) skipped: server unreachable")
            return DrainReport(trigger=trigger, skipped=True)

        self._draining = True
        report = DrainReport(trigger=trigger)
        try:
            items = await asyncio.to_thread(
                self._queue.list_by_state, SyncState.PENDING, SyncState.FAILED
            )
            items = [item for item in items if item.retryable]
            Log.info(f"Drain ({trigger.value}) started with {len(items)} items")
            for snapshot in items:
                item = await asyncio.to_thread(self._queue.get, snapshot.local_id)
                if item is None:
                    report.cancelled += 1
                    continue
                report.attempted += 1
                await self._upload_one(item.local_id, report)
            report.purged = await asyncio.to_thread(
                self._queue.purge_older_than,
                SyncState.SYNCED,
                timedelta(days=self._settings.synced_retention_days),
            )
        finally:
            self._draining = False
        Log.info(
            f"Drain ({trigger.value}) finished: {report.synced} synced, "
            f"{report.failed} failed, {report.cancelled} cancelled"
        )
        if self._rerun is not None:
            rerun, self._rerun = self._rerun, None
            self._schedule(rerun)
        return report

    async def cancel(self, local_id: str) -> bool:
        """Abort an in-flight upload and drop the item from the queue."""
        task = self._active.get(local_id)
        aborted = task.cancel() if task is not None else False
        removed = await asyncio.to_thread(self._queue.remove, local_id)
        if aborted or removed:
            Log.info(f"Upload {local_id} cancelled")
            self._emit(SyncEvent(SyncEventKind.CANCELLED, local_id))
        return aborted or removed

    async def retry(self, local_id: str) -> bool:
        """Re-arm a failed item, including one the server rejected.

        Returns False when the item is unknown or not failed.
        """
        item = await asyncio.to_thread(self._queue.get, local_id)
        if item is None or item.sync_state is not SyncState.FAILED:
            return False
        await asyncio.to_thread(self._queue.mark_state, local_id, SyncState.PENDING)
        Log.info(f"Upload {local_id} re-armed for the next drain")
        if self._monitor.is_reachable():
            self._schedule(DrainTrigger.MANUAL)
        return True

    async def transient_documents(self) -> list[TransientDocument]:
        items = await asyncio.to_thread(
            self._queue.list_by_state,
            SyncState.PENDING,
            SyncState.UPLOADING,
            SyncState.FAILED,
        )
        result = []
        for item in items:
            task = self._active.get(item.local_id)
            result.append(
                TransientDocument(
                    local_id=item.local_id,
                    file_name=item.file_name,
                    mime_type=item.mime_type,
                    byte_size=item.byte_size,
                    sync_state=item.sync_state,
                    progress=task.progress if task is not None else 0,
                    error=item.last_error if item.sync_state is SyncState.FAILED else None,
                    retryable=item.retryable,
                )
            )
        return result

    async def wait_idle(self) -> None:
        """Wait until no drain is scheduled or running."""
        while self._scheduled or self._drain_tasks:
            if self._drain_tasks:
                await asyncio.gather(*list(self._drain_tasks), return_exceptions=True)
            else:
                await asyncio.sleep(0)

    async def _upload_one(self, local_id: str, report: DrainReport) -> None:
        await asyncio.to_thread(self._queue.mark_state, local_id, SyncState.UPLOADING)
        item = await asyncio.to_thread(self._queue.get, local_id)
        if item is None:
            report.cancelled += 1
            return
        self._emit(SyncEvent(SyncEventKind.UPLOADING, local_id))
        task = self._transport.send(item)
        self._active[local_id] = task
        try:
            document = await task
        except UploadAborted:
            report.cancelled += 1
            return
        except (ValidationError, AuthError) as exc:
            error = f"{type(exc).__name__}: {exc}"
            Log.warning(f"Upload {local_id} rejected, held until retried: {error}")
            await asyncio.to_thread(
                self._queue.mark_state, local_id, SyncState.FAILED, error, False
            )
            report.failed += 1
            self._emit(SyncEvent(SyncEventKind.FAILED, local_id, error=error))
            return
        except Exception as exc:
            error = f"{type(exc).__name__}: {exc}"
            Log.warning(f"Upload {local_id} failed, will retry on next drain: {error}")
            await asyncio.to_thread(
                self._queue.mark_state, local_id, SyncState.FAILED, error
            )
            report.failed += 1
            self._emit(SyncEvent(SyncEventKind.FAILED, local_id, error=error))
            return
        finally:
            self._active.pop(local_id, None)
        await asyncio.to_thread(self._queue.mark_state, local_id, SyncState.SYNCED)
        report.synced += 1
        self._emit(SyncEvent(SyncEventKind.SYNCED, local_id, document=document))

    def _on_reachable(self) -> None:
        if self._loop is None or self._loop.is_closed():
            return
        self._scheduled += 1
        self._loop.call_soon_threadsafe(self._run_scheduled, DrainTrigger.REACHABLE)

    def _run_scheduled(self, trigger: DrainTrigger) -> None:
        self._scheduled -= 1
        self._schedule(trigger)

    def _schedule(self, trigger: DrainTrigger) -> None:
        task = asyncio.get_running_loop().create_task(self.drain(trigger))
        self._drain_tasks.add(task)
        task.add_done_callback(self._on_drain_done)

    def _on_drain_done(self, task: asyncio.Task[DrainReport | None]) -> None:
        self._drain_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            Log.error(f"Drain crashed: {task.exception()}")

    def _emit(self, event: SyncEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                Log.exception(f"Sync listener failed on {event.kind.value}")


def build_sync_engine(
    settings: ClientSettings, client: httpx.AsyncClient | None = None
) -> SyncEngine:
    """Wire queue, transport and connectivity monitor from client settings.

    A given ``client`` is shared by the transport and the monitor and stays open on
    dispose. Otherwise each builds its own and closes it on dispose.
    """
    return SyncEngine(
        queue=LocalQueue(settings.queue_db_path),
        transport=UploadTransport(settings, client=client),
        monitor=ConnectivityMonitor(settings, client=client),
        settings=settings,
    )
