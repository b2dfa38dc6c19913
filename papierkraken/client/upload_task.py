import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable, Generator
from typing import Any

from papierkraken.api.schemas import DocumentOut
from papierkraken.errors import UploadAborted

ProgressCallback = Callable[[int], None]
UploadRunner = Callable[[ProgressCallback], Awaitable[DocumentOut]]


class UploadTask:
    """Cancellable, observable handle for one in-flight upload.

    ``await task`` yields the created document or raises the transport's typed
    error; after ``cancel()`` it raises ``UploadAborted``. Progress is an integer
    percentage that never decreases.
    """

    def __init__(self, local_id: str, runner: UploadRunner) -> None:
        self.local_id = local_id
        self._progress = 0
        self._cancel_requested = False
        self._watchers: list[asyncio.Queue[int | None]] = []
        self._task: asyncio.Task[DocumentOut] = asyncio.create_task(
            runner(self._report_progress)
        )
        self._task.add_done_callback(self._on_done)

    @property
    def progress(self) -> int:
        return self._progress

    def done(self) -> bool:
        return self._task.done()

    def cancel(self) -> bool:
        if self._task.done():
            return False
        self._cancel_requested = True
        return self._task.cancel()

    async def progress_updates(self) -> AsyncIterator[int]:
        """Yield the current progress, then every increase until the upload ends."""
        last = self._progress
        yield last
        if self._task.done():
            return
        watcher: asyncio.Queue[int | None] = asyncio.Queue()
        self._watchers.append(watcher)
        try:
            if self._progress > last:
                last = self._progress
                yield last
            if self._task.done():
                return
            while (value := await watcher.get()) is not None:
                if value > last:
                    last = value
                    yield value
        finally:
            if watcher in self._watchers:
                self._watchers.remove(watcher)

    def __await__(self) -> Generator[Any, None, DocumentOut]:
        return self._result().__await__()

    async def _result(self) -> DocumentOut:
        try:
            return await self._task
        except asyncio.CancelledError:
            if self._cancel_requested:
                raise UploadAborted(f"Upload {self.local_id} cancelled") from None
            raise

    def _report_progress(self, value: int) -> None:
        value = max(0, min(100, value))
        if value <= self._progress:
            return
        self._progress = value
        for watcher in self._watchers:
            watcher.put_nowait(value)

    def _on_done(self, task: asyncio.Task[DocumentOut]) -> None:
        if not task.cancelled() and task.exception() is None:
            self._report_progress(100)
        for watcher in self._watchers:
            watcher.put_nowait(None)
