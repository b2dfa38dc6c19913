"""Tracks whether the ingest server is reachable and announces offline->online edges."""

import asyncio
import threading
from collections.abc import Callable

import httpx

from papierkraken.config.settings import ClientSettings
from papierkraken.logging.logger import Log

Listener = Callable[[], None]


class ConnectivityMonitor:
    """Holds the latest reachability observation.

    Listeners fire once per offline->online transition; repeated online
    observations are ignored. Observations come from ``report`` (platform hooks,
    tests) or from the ``/health`` check loop started with ``start``.
    """

    def __init__(
        self,
        settings: ClientSettings,
        client: httpx.AsyncClient | None = None,
        initially_reachable: bool = False,
    ) -> None:
        self._settings = settings
        self._client = client
        self._owns_client = client is None
        self._reachable = initially_reachable
        self._listeners: list[Listener] = []
        self._lock = threading.Lock()
        self._check_task: asyncio.Task[None] | None = None

    def is_reachable(self) -> bool:
        return self._reachable

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a reachable-edge listener. Returns a function that removes it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def report(self, reachable: bool) -> None:
        with self._lock:
            became_reachable = reachable and not self._reachable
            changed = reachable != self._reachable
            self._reachable = reachable
            listeners = list(self._listeners) if became_reachable else []
        if changed:
            Log.info(f"Server {'reachable' if reachable else 'unreachable'}")
        for listener in listeners:
            try:
                listener()
            except Exception:
                Log.exception("Connectivity listener failed")

    async def check_once(self) -> bool:
        """GET /health once and report the outcome."""
        client = self._ensure_client()
        try:
            response = await client.get(
                "/health", timeout=self._settings.health_check_timeout_seconds
            )
            reachable = response.is_success
        except httpx.HTTPError as exc:
            Log.debug(f"Health check failed: {exc}")
            reachable = False
        self.report(reachable)
        return reachable

    async def start(self) -> None:
        """Check /health every interval until stopped. The first check runs one interval in."""
        if self._check_task is None:
            self._check_task = asyncio.create_task(self._check_loop())

    async def stop(self) -> None:
        task, self._check_task = self._check_task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _check_loop(self) -> None:
        while True:
            await asyncio.sleep(self._settings.health_check_interval_seconds)
            await self.check_once()

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self._settings.api_base_url)
        return self._client
