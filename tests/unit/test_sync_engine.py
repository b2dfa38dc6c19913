import asyncio
import sqlite3
from datetime import UTC, datetime, timedelta
from pathlib import Path

import httpx
import pytest

from papierkraken.api.schemas import DocumentOut
from papierkraken.client.connectivity import ConnectivityMonitor
from papierkraken.client.queue import MEMORY_DB, LocalQueue, QueueItem, SyncState
from papierkraken.client.sync_engine import (
    DrainTrigger,
    SyncEngine,
    SyncEvent,
    SyncEventKind,
    build_sync_engine,
)
from papierkraken.client.upload_task import ProgressCallback, UploadTask
from papierkraken.config.settings import ClientSettings
from papierkraken.database.models import DocumentCategory, DocumentStatus
from papierkraken.errors import AuthError, TransientNetworkError, ValidationError

PDF = "application/pdf"


class FakeTransport:
    """Stands in for UploadTransport; records sends and tracks concurrency."""

    def __init__(self) -> None:
        self.sent: list[str] = []
        self.failures: dict[str, Exception] = {}
        self.gate: asyncio.Event | None = None
        self.in_flight = 0
        self.max_in_flight = 0
        self.closed = False

    def send(self, item: QueueItem, category: str | None = None) -> UploadTask:
        self.sent.append(item.file_name)

        async def runner(on_progress: ProgressCallback) -> DocumentOut:
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
            try:
                if self.gate is not None:
                    await self.gate.wait()
                on_progress(50)
                failure = self.failures.pop(item.file_name, None)
                if failure is not None:
                    raise failure
                return DocumentOut(
                    id=len(self.sent),
                    owner_id=1,
                    storage_key=f"users/dev/1/documents/{item.file_name}",
                    original_name=item.file_name,
                    mime_type=item.mime_type,
                    byte_size=item.byte_size,
                    category=DocumentCategory.OTHER,
                    status=DocumentStatus.COMPLETED,
                    is_offline=item.captured_offline,
                )
            finally:
                self.in_flight -= 1

        return UploadTask(item.local_id, runner)

    async def close(self) -> None:
        self.closed = True


class _Clock:
    def __init__(self) -> None:
        self.now = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now


def _make_engine(
    reachable: bool = True,
    queue: LocalQueue | None = None,
) -> tuple[SyncEngine, LocalQueue, FakeTransport, ConnectivityMonitor]:
    settings = ClientSettings(synced_retention_days=7)
    queue = queue or LocalQueue(MEMORY_DB)
    transport = FakeTransport()

    # Health answers mirror the monitor, so background checks never change it.
    def health(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200 if monitor.is_reachable() else 503)

    client = httpx.AsyncClient(
        base_url="http://ingest.test", transport=httpx.MockTransport(health)
    )
    monitor = ConnectivityMonitor(settings, client=client, initially_reachable=reachable)
    engine = SyncEngine(queue, transport, monitor, settings)  # type: ignore[arg-type]
    return engine, queue, transport, monitor


async def _until(predicate, timeout: float = 2.0) -> None:  # type: ignore[no-untyped-def]
    async def poll() -> None:
        while not predicate():
            await asyncio.sleep(0)

    await asyncio.wait_for(poll(), timeout)


class TestSubmit:
    async def test_rejects_disallowed_type(self) -> None:
        engine, queue, transport, _ = _make_engine()
        with pytest.raises(ValidationError):
            await engine.submit(b"data", "notes.txt", "text/plain")
        assert queue.count_by_state(SyncState.PENDING) == 0

    async def test_rejects_empty_payload(self) -> None:
        engine, queue, _, _ = _make_engine()
        with pytest.raises(ValidationError):
            await engine.submit(b"", "a.pdf", PDF)
        assert queue.count_by_state(SyncState.PENDING) == 0

    async def test_offline_submit_stays_pending(self) -> None:
        engine, queue, transport, _ = _make_engine(reachable=False)
        local_id = await engine.submit(b"%PDF", "a.pdf", PDF)
        await engine.wait_idle()

        item = queue.get(local_id)
        assert item is not None
        assert item.sync_state is SyncState.PENDING
        assert item.captured_offline is True
        assert transport.sent == []

    async def test_online_submit_uploads_immediately(self) -> None:
        engine, queue, transport, _ = _make_engine(reachable=True)
        events: list[SyncEvent] = []
        engine.subscribe(events.append)

        local_id = await engine.submit(b"%PDF", "a.pdf", PDF)
        await engine.wait_idle()

        item = queue.get(local_id)
        assert item is not None
        assert item.sync_state is SyncState.SYNCED
        assert item.captured_offline is False
        assert [e.kind for e in events] == [
            SyncEventKind.QUEUED,
            SyncEventKind.UPLOADING,
            SyncEventKind.SYNCED,
        ]
        assert events[-1].document is not None
        assert events[-1].document.original_name == "a.pdf"


class TestDrain:
    async def test_unreachable_drain_is_skipped(self) -> None:
        engine, queue, transport, _ = _make_engine(reachable=False)
        queue.enqueue(b"%PDF", "a.pdf", PDF, captured_offline=True)

        report = await engine.drain(DrainTrigger.MANUAL)

        assert report is not None
        assert report.skipped is True
        assert transport.sent == []

    async def test_uploads_in_fifo_order(self) -> None:
        engine, queue, transport, monitor = _make_engine(reachable=False)
        for name in ("a.pdf", "b.pdf", "c.pdf"):
            await engine.submit(b"%PDF", name, PDF)
        monitor.report(True)

        report = await engine.flush()

        assert report is not None
        assert report.synced == 3
        assert transport.sent == ["a.pdf", "b.pdf", "c.pdf"]
        assert queue.count_by_state(SyncState.SYNCED) == 3

    async def test_failure_is_recorded_and_drain_continues(self) -> None:
        engine, queue, transport, monitor = _make_engine(reachable=False)
        bad = await engine.submit(b"%PDF", "bad.pdf", PDF)
        good = await engine.submit(b"%PDF", "good.pdf", PDF)
        transport.failures["bad.pdf"] = TransientNetworkError("connection reset")
        events: list[SyncEvent] = []
        engine.subscribe(events.append)
        monitor.report(True)

        report = await engine.drain(DrainTrigger.MANUAL)

        assert report is not None
        assert (report.attempted, report.synced, report.failed) == (2, 1, 1)
        failed = queue.get(bad)
        assert failed is not None
        assert failed.sync_state is SyncState.FAILED
        assert "TransientNetworkError" in (failed.last_error or "")
        assert queue.get(good).sync_state is SyncState.SYNCED  # type: ignore[union-attr]
        assert any(e.kind is SyncEventKind.FAILED and e.local_id == bad for e in events)

    async def test_failed_item_retried_on_next_drain(self) -> None:
        engine, queue, transport, monitor = _make_engine(reachable=False)
        local_id = await engine.submit(b"%PDF", "a.pdf", PDF)
        transport.failures["a.pdf"] = TransientNetworkError("timeout")
        monitor.report(True)

        await engine.drain(DrainTrigger.MANUAL)
        report = await engine.drain(DrainTrigger.MANUAL)

        assert report is not None
        assert report.synced == 1
        assert transport.sent == ["a.pdf", "a.pdf"]
        item = queue.get(local_id)
        assert item is not None
        assert item.sync_state is SyncState.SYNCED
        assert item.last_error == "TransientNetworkError: timeout"

    @pytest.mark.parametrize(
        "rejection",
        [
            ValidationError("unsupported file type", status_code=415),
            AuthError("token expired", status_code=401),
        ],
    )
    async def test_rejected_upload_is_held_until_retried(self, rejection: Exception) -> None:
        engine, queue, transport, monitor = _make_engine(reachable=False)
        local_id = await engine.submit(b"%PDF", "a.pdf", PDF)
        transport.failures["a.pdf"] = rejection
        monitor.report(True)

        first = await engine.drain(DrainTrigger.MANUAL)
        second = await engine.drain(DrainTrigger.MANUAL)

        assert first is not None and first.failed == 1
        assert second is not None and second.attempted == 0
        assert transport.sent == ["a.pdf"]
        item = queue.get(local_id)
        assert item is not None
        assert item.sync_state is SyncState.FAILED
        assert item.retryable is False
        assert (item.last_error or "").startswith(type(rejection).__name__)

        assert await engine.retry(local_id) is True
        await engine.wait_idle()

        assert transport.sent == ["a.pdf", "a.pdf"]
        assert queue.get(local_id).sync_state is SyncState.SYNCED  # type: ignore[union-attr]

    async def test_retry_ignores_items_that_are_not_failed(self) -> None:
        engine, _, transport, _ = _make_engine(reachable=False)
        local_id = await engine.submit(b"%PDF", "a.pdf", PDF)

        assert await engine.retry(local_id) is False
        assert await engine.retry("missing") is False
        assert transport.sent == []

    async def test_retry_while_offline_waits_for_next_drain(self) -> None:
        engine, queue, transport, monitor = _make_engine(reachable=False)
        local_id = await engine.submit(b"%PDF", "a.pdf", PDF)
        transport.failures["a.pdf"] = ValidationError("too large", status_code=413)
        monitor.report(True)
        await engine.drain(DrainTrigger.MANUAL)
        monitor.report(False)

        assert await engine.retry(local_id) is True
        await engine.wait_idle()

        assert transport.sent == ["a.pdf"]
        assert queue.get(local_id).sync_state is SyncState.PENDING  # type: ignore[union-attr]

    async def test_overlapping_triggers_never_upload_concurrently(self) -> None:
        engine, queue, transport, monitor = _make_engine(reachable=False)
        await engine.submit(b"%PDF", "a.pdf", PDF)
        await engine.submit(b"%PDF", "b.pdf", PDF)
        transport.gate = asyncio.Event()
        await engine.start()
        await engine.wait_idle()

        monitor.report(True)
        await _until(lambda: transport.in_flight == 1)
        monitor.report(False)
        monitor.report(True)
        assert await engine.drain(DrainTrigger.MANUAL) is None

        transport.gate.set()
        await engine.wait_idle()

        assert transport.max_in_flight == 1
        assert transport.sent == ["a.pdf", "b.pdf"]
        assert queue.count_by_state(SyncState.SYNCED) == 2
        await engine.dispose()

    async def test_listener_failure_does_not_stop_drain(self) -> None:
        engine, queue, _, _ = _make_engine(reachable=True)

        def broken(event: SyncEvent) -> None:
            raise RuntimeError("listener bug")

        engine.subscribe(broken)
        local_id = await engine.submit(b"%PDF", "a.pdf", PDF)
        await engine.wait_idle()

        assert queue.get(local_id).sync_state is SyncState.SYNCED  # type: ignore[union-attr]

    async def test_purges_synced_items_past_retention(self) -> None:
        clock = _Clock()
        engine, queue, _, _ = _make_engine(
            reachable=True, queue=LocalQueue(MEMORY_DB, clock=clock)
        )
        local_id = await engine.submit(b"%PDF", "a.pdf", PDF)
        await engine.wait_idle()
        assert queue.get(local_id) is not None

        clock.now += timedelta(days=8)
        report = await engine.flush()

        assert report is not None
        assert report.purged == 1
        assert queue.get(local_id) is None


class TestCancel:
    async def test_cancel_pending_item(self) -> None:
        engine, queue, _, _ = _make_engine(reachable=False)
        local_id = await engine.submit(b"%PDF", "a.pdf", PDF)

        assert await engine.cancel(local_id) is True
        assert queue.get(local_id) is None

    async def test_cancel_unknown_item(self) -> None:
        engine, _, _, _ = _make_engine(reachable=False)
        assert await engine.cancel("missing") is False

    async def test_cancel_in_flight_upload(self) -> None:
        engine, queue, transport, _ = _make_engine(reachable=True)
        transport.gate = asyncio.Event()
        events: list[SyncEvent] = []
        engine.subscribe(events.append)

        local_id = await engine.submit(b"%PDF", "a.pdf", PDF)
        await _until(lambda: transport.in_flight == 1)

        assert await engine.cancel(local_id) is True
        await engine.wait_idle()

        assert queue.get(local_id) is None
        assert SyncEventKind.CANCELLED in [e.kind for e in events]
        assert SyncEventKind.SYNCED not in [e.kind for e in events]


class TestTransientDocuments:
    async def test_lists_unsynced_items_with_errors(self) -> None:
        engine, _, transport, monitor = _make_engine(reachable=False)
        await engine.submit(b"%PDF", "ok.pdf", PDF)
        failed_id = await engine.submit(b"%PDF", "bad.pdf", PDF)
        transport.failures["bad.pdf"] = TransientNetworkError("reset")
        monitor.report(True)
        await engine.drain(DrainTrigger.MANUAL)

        documents = await engine.transient_documents()

        assert [d.local_id for d in documents] == [failed_id]
        assert documents[0].sync_state is SyncState.FAILED
        assert documents[0].error is not None

    async def test_rejected_item_is_marked_not_retryable(self) -> None:
        engine, _, transport, monitor = _make_engine(reachable=False)
        local_id = await engine.submit(b"%PDF", "a.pdf", PDF)
        transport.failures["a.pdf"] = AuthError("forbidden", status_code=403)
        monitor.report(True)
        await engine.drain(DrainTrigger.MANUAL)

        documents = await engine.transient_documents()

        assert [d.local_id for d in documents] == [local_id]
        assert documents[0].retryable is False
        assert documents[0].error == "AuthError: forbidden"

    async def test_pending_items_have_zero_progress(self) -> None:
        engine, _, _, _ = _make_engine(reachable=False)
        await engine.submit(b"%PDF", "a.pdf", PDF)

        documents = await engine.transient_documents()

        assert len(documents) == 1
        assert documents[0].sync_state is SyncState.PENDING
        assert documents[0].progress == 0
        assert documents[0].error is None


class TestLifecycle:
    async def test_start_requeues_interrupted_uploads(self) -> None:
        queue = LocalQueue(MEMORY_DB)
        local_id = queue.enqueue(b"%PDF", "a.pdf", PDF)
        queue.mark_state(local_id, SyncState.UPLOADING)
        engine, _, transport, _ = _make_engine(reachable=True, queue=queue)

        await engine.start()
        await engine.wait_idle()

        assert transport.sent == ["a.pdf"]
        assert queue.get(local_id).sync_state is SyncState.SYNCED  # type: ignore[union-attr]
        await engine.dispose()

    async def test_reachable_edge_triggers_drain(self) -> None:
        engine, queue, transport, monitor = _make_engine(reachable=False)
        await engine.submit(b"%PDF", "a.pdf", PDF)
        await engine.start()
        await engine.wait_idle()
        assert transport.sent == []

        monitor.report(True)
        await _until(lambda: queue.count_by_state(SyncState.SYNCED) == 1)
        await engine.wait_idle()

        assert transport.sent == ["a.pdf"]
        await engine.dispose()

    async def test_dispose_releases_monitor_transport_and_queue(self) -> None:
        engine, queue, transport, monitor = _make_engine(reachable=False)
        local_id = await engine.submit(b"%PDF", "a.pdf", PDF)
        await engine.start()
        await engine.wait_idle()

        await engine.dispose()
        monitor.report(True)
        for _ in range(5):
            await asyncio.sleep(0)

        assert transport.sent == []
        assert transport.closed is True
        with pytest.raises(sqlite3.ProgrammingError):
            queue.get(local_id)


class _IngestServer:
    """MockTransport handler answering /health and /upload."""

    def __init__(self, up: bool) -> None:
        self.up = up
        self.health_checks = 0
        self.uploads: list[bytes] = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/health":
            self.health_checks += 1
            return httpx.Response(200 if self.up else 503)
        body = await request.aread()
        self.uploads.append(body)
        return httpx.Response(
            201,
            json={
                "document": {
                    "id": len(self.uploads),
                    "owner_id": 7,
                    "storage_key": f"users/dev/7/documents/{len(self.uploads)}-a.pdf",
                    "original_name": "a.pdf",
                    "mime_type": PDF,
                    "byte_size": 8,
                    "category": "OTHER",
                    "status": "COMPLETED",
                }
            },
        )


def _build(tmp_path: Path, server: _IngestServer) -> tuple[SyncEngine, httpx.AsyncClient]:
    settings = ClientSettings(
        queue_db_path=str(tmp_path / "queue.db"),
        api_token="tok",
        health_check_interval_seconds=0.01,
    )
    client = httpx.AsyncClient(
        base_url="http://ingest.test", transport=httpx.MockTransport(server)
    )
    return build_sync_engine(settings, client=client), client


class TestBuildSyncEngine:
    async def test_offline_submission_uploads_after_start(self, tmp_path: Path) -> None:
        server = _IngestServer(up=False)
        engine, client = _build(tmp_path, server)
        local_id = await engine.submit(b"%PDF-1.4", "a.pdf", PDF)
        server.up = True

        await engine.start()
        await engine.wait_idle()

        assert len(server.uploads) == 1
        assert b"%PDF-1.4" in server.uploads[0]
        assert b'name="is_offline"\r\n\r\ntrue' in server.uploads[0]
        assert await engine.transient_documents() == []
        await engine.dispose()
        assert client.is_closed is False
        await client.aclose()

    async def test_server_coming_back_drains_without_manual_trigger(
        self, tmp_path: Path
    ) -> None:
        server = _IngestServer(up=False)
        engine, client = _build(tmp_path, server)
        await engine.start()
        await engine.wait_idle()
        await engine.submit(b"%PDF-1.4", "a.pdf", PDF)
        assert server.uploads == []

        server.up = True
        await _until(lambda: len(server.uploads) == 1)
        await engine.wait_idle()

        assert await engine.transient_documents() == []
        await engine.dispose()
        await client.aclose()

    async def test_dispose_stops_health_checks(self, tmp_path: Path) -> None:
        server = _IngestServer(up=True)
        engine, client = _build(tmp_path, server)
        await engine.start()
        await _until(lambda: server.health_checks >= 3)

        await engine.dispose()
        seen = server.health_checks
        await asyncio.sleep(0.05)

        assert server.health_checks == seen
        await client.aclose()
