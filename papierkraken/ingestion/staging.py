import uuid
from pathlib import Path
from typing import BinaryIO

from papierkraken.errors import StorageError
from papierkraken.ingestion.models import StagedUpload
from papierkraken.logging.logger import Log

CHUNK_SIZE = 1024 * 1024


class UploadStager:
    """Spools incoming uploads to a local staging directory and removes them afterwards.

    Reading stops one byte past ``limit_bytes``: the staged size is then enough for the
    validator to reject the file without copying all of it.
    """

    def __init__(self, staging_dir: Path, chunk_size: int = CHUNK_SIZE) -> None:
        self._staging_dir = staging_dir
        self._chunk_size = chunk_size

    def stage(
        self,
        stream: BinaryIO,
        original_name: str,
        mime_type: str,
        limit_bytes: int,
    ) -> StagedUpload:
        self._staging_dir.mkdir(parents=True, exist_ok=True)
        path = self._staging_dir / f"{uuid.uuid4().hex}.upload"
        written = 0
        try:
            with path.open("wb") as target:
                while written <= limit_bytes:
                    chunk = stream.read(min(self._chunk_size, limit_bytes + 1 - written))
                    if not chunk:
                        break
                    target.write(chunk)
                    written += len(chunk)
        except OSError as exc:
            path.unlink(missing_ok=True)
            raise StorageError(f"Failed to stage upload '{original_name}': {exc}") from exc
        Log.debug(f"Staged {written} bytes of '{original_name}' at {path}")
        return StagedUpload(
            path=path,
            original_name=original_name,
            mime_type=mime_type,
            byte_size=written,
        )

    def load(self, staged: StagedUpload) -> bytes:
        """Read staged bytes back.

        Raises:
            StorageError: if the staged file is gone or unreadable.
        """
        try:
            return staged.path.read_bytes()
        except OSError as exc:
            raise StorageError(f"Staged upload missing: {staged.path}") from exc

    def discard(self, staged: StagedUpload) -> None:
        try:
            staged.path.unlink(missing_ok=True)
        except OSError as exc:
            Log.warning(f"Could not remove staged upload {staged.path}: {exc}")
