from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class StagedUpload:
    """A multipart upload spooled to local disk, awaiting ingestion."""

    path: Path
    original_name: str
    mime_type: str
    byte_size: int


@dataclass(frozen=True)
class UploadRequest:
    """A file posted through ``POST /upload`` by an authenticated owner."""

    owner_id: int
    staged: StagedUpload
    category: str | None = None
    is_offline: bool = False


@dataclass(frozen=True)
class CompleteUploadRequest:
    """Client claim that it has PUT an object through a signed upload reference."""

    owner_id: int
    storage_key: str
    original_name: str
    byte_size: int
    content_type: str
    category: str | None = None
