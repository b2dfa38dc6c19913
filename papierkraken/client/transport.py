"""Streams queued files to ``POST /upload`` and maps responses to typed errors."""

import uuid
from collections.abc import AsyncIterator

import httpx
from pydantic import ValidationError as SchemaValidationError

from papierkraken.api.schemas import DocumentOut, DocumentResponse
from papierkraken.client.queue import QueueItem
from papierkraken.client.upload_task import ProgressCallback, UploadTask
from papierkraken.config.settings import ClientSettings
from papierkraken.errors import AuthError, ServerError, TransientNetworkError, ValidationError
from papierkraken.logging.logger import Log

VALIDATION_STATUSES = frozenset({400, 413, 415, 422})
AUTH_STATUSES = frozenset({401, 403})


class MultipartBody:
    """A multipart/form-data body with a file part, streamed in fixed-size chunks."""

    def __init__(
        self,
        item: QueueItem,
        chunk_size: int,
        category: str | None = None,
    ) -> None:
        self.boundary = uuid.uuid4().hex
        self._chunk_size = max(1, chunk_size)
        self._payload = item.payload
        fields = {"is_offline": "true" if item.captured_offline else "false"}
        if category:
            fields["category"] = category
        head = b"".join(self._field(name, value) for name, value in fields.items())
        file_name = item.file_name.replace('"', "%22")
        head += (
            f"--{self.boundary}\r\n"
            f'Content-Disposition: form-data; name="file"; filename="{file_name}"\r\n'
            f"Content-Type: {item.mime_type}\r\n\r\n"
        ).encode()
        self._head = head
        self._tail = f"\r\n--{self.boundary}--\r\n".encode()

    @property
    def content_type(self) -> str:
        return f"multipart/form-data; boundary={self.boundary}"

    @property
    def length(self) -> int:
        return len(self._head) + len(self._payload) + len(self._tail)

    async def stream(self, on_progress: ProgressCallback) -> AsyncIterator[bytes]:
        total = self.length
        sent = 0
        for chunk in self._chunks():
            yield chunk
            sent += len(chunk)
            # 100 is reserved for the server's answer
            on_progress(min(99, sent * 100 // total))

    def _chunks(self) -> list[bytes]:
        chunks = [self._head]
        view = memoryview(self._payload)
        for start in range(0, len(view), self._chunk_size):
            chunks.append(bytes(view[start:start + self._chunk_size]))
        chunks.append(self._tail)
        return chunks

    def _field(self, name: str, value: str) -> bytes:
        return (
            f"--{self.boundary}\r\n"
            f'Content-Disposition: form-data; name="{name}"\r\n\r\n'
            f"{value}\r\n"
        ).encode()


class UploadTransport:
    """Sends queue items to the ingest server over ``httpx.AsyncClient``."""

    def __init__(
        self,
        settings: ClientSettings,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=settings.api_base_url,
            timeout=settings.upload_timeout_seconds,
        )

    def send(self, item: QueueItem, category: str | None = None) -> UploadTask:
        """Start uploading ``item``. Must be called from a running event loop."""
        return UploadTask(
            item.local_id,
            lambda on_progress: self._upload(item, category, on_progress),
        )

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _upload(
        self,
        item: QueueItem,
        category: str | None,
        on_progress: ProgressCallback,
    ) -> DocumentOut:
        body = MultipartBody(item, self._settings.upload_chunk_bytes, category)
        headers = {
            "Content-Type": body.content_type,
            "Content-Length": str(body.length),
        }
        if self._settings.api_token:
            headers["Authorization"] = f"Bearer {self._settings.api_token}"
        Log.info(f"Uploading {item.local_id} '{item.file_name}' ({item.byte_size} bytes)")
        try:
            response = await self._client.post(
                "/upload",
                content=body.stream(on_progress),
                headers=headers,
            )
        except httpx.TransportError as exc:
            raise TransientNetworkError(
                f"Upload of {item.local_id} failed: {type(exc).__name__}: {exc}"
            ) from exc
        document = _parse_response(response)
        Log.info(f"Uploaded {item.local_id} as document {document.id}")
        return document


def _parse_response(response: httpx.Response) -> DocumentOut:
    status = response.status_code
    if response.is_success:
        try:
            return DocumentResponse.model_validate(response.json()).document
        except (ValueError, SchemaValidationError) as exc:
            raise ServerError(
                f"Unreadable upload response: {exc}", status_code=status
            ) from exc
    message = _error_message(response)
    if status in VALIDATION_STATUSES:
        raise ValidationError(message, status_code=status)
    if status in AUTH_STATUSES:
        raise AuthError(message, status_code=status)
    raise ServerError(message, status_code=status)


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        return str(body.get("message") or body.get("detail") or body)
    return str(body)
