"""Error taxonomy shared by the ingestion server and the offline upload client.

Every error carries the HTTP status it maps to on the server side. Client-only
errors (network, abort, local storage) use ``status_code = None``.
"""


class IngestError(Exception):
    """Base class for all typed ingestion errors."""

    status_code: int | None = 500

    def __init__(self, message: str = "", *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(IngestError):
    """Bad file type or size. User-fixable, never retried automatically."""

    status_code = 400


class AuthError(IngestError):
    """Missing, invalid or expired credential, or access outside the owner's namespace.

    Not retried automatically. The client holds the upload until the user retries it.
    """

    status_code = 401


class DocumentNotFoundError(IngestError):
    """Raised when a document does not exist (or no longer exists)."""

    status_code = 404


class StorageError(IngestError):
    """Object storage write, read or delete failed."""

    status_code = 500


class ClassificationDegraded(IngestError):
    """Advisory classification failed and a fallback result was substituted.

    Never surfaced to users; only logged.
    """

    status_code = None


class TransientNetworkError(IngestError):
    """Transport-level failure. Retried on the next drain trigger."""

    status_code = None


class ServerError(IngestError):
    """Server answered with an unexpected non-2xx status."""

    def __init__(self, message: str = "", *, status_code: int | None = 500) -> None:
        super().__init__(message, status_code=status_code)


class UploadAborted(IngestError):
    """The user cancelled an in-flight upload. Never retried automatically."""

    status_code = None


class StorageExhausted(IngestError):
    """The local durable queue has no space left for another item."""

    status_code = None
