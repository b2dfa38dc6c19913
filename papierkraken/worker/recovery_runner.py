from papierkraken.database.models import DocumentRecord, DocumentStatus
from papierkraken.database.repositories.document_repository import DocumentRepository
from papierkraken.errors import StorageError
from papierkraken.ingestion.processor import IngestionService
from papierkraken.logging.logger import Log
from papierkraken.storage.base import BaseObjectStorage


class RecoveryRunner:
    """Re-run extract -> classify -> persist for one document stuck in PROCESSING."""

    def __init__(
        self,
        ingestion: IngestionService,
        storage: BaseObjectStorage,
        doc_repo: DocumentRepository,
        max_attempts: int,
    ) -> None:
        self._ingestion = ingestion
        self._storage = storage
        self._doc_repo = doc_repo
        self._max_attempts = max_attempts

    def run(self, document: DocumentRecord) -> None:
        """Recover a single claimed document. Storage read failure marks it ERROR."""
        Log.info(
            f"Recovering document {document.id} "
            f"(attempt {document.recovery_attempts}/{self._max_attempts})"
        )
        try:
            raw_bytes = self._storage.get(document.storage_key)
        except StorageError as exc:
            Log.error(f"Document {document.id} unreadable in storage: {exc}")
            self._doc_repo.mark_error(document.id, str(exc))
            return

        try:
            result = self._ingestion.enrich(document, raw_bytes)
        except Exception as exc:
            self._handle_failure(document, exc)
            return

        if result.status is DocumentStatus.COMPLETED:
            Log.info(f"Document {document.id} recovered as {result.category.value}")
        else:
            self._handle_failure(document, None)

    def _handle_failure(self, document: DocumentRecord, exc: Exception | None) -> None:
        reason = f": {exc}" if exc is not None else ""
        if document.recovery_attempts >= self._max_attempts:
            Log.error(
                f"Document {document.id} still PROCESSING after "
                f"{document.recovery_attempts} recovery attempts{reason}"
            )
        else:
            Log.warning(f"Document {document.id} recovery failed, will retry{reason}")
