from unittest.mock import MagicMock

from papierkraken.database.models import DocumentRecord, DocumentStatus
from papierkraken.errors import StorageError
from papierkraken.worker.recovery_runner import RecoveryRunner


def _make_document(status: DocumentStatus = DocumentStatus.PROCESSING, attempts: int = 1) -> DocumentRecord:
    return DocumentRecord(
        id=5,
        owner_id=7,
        storage_key="users/dev/7/documents/1-a.pdf",
        original_name="a.pdf",
        mime_type="application/pdf",
        byte_size=4,
        status=status,
        recovery_attempts=attempts,
    )


def _make_runner() -> tuple[RecoveryRunner, MagicMock, MagicMock, MagicMock]:
    ingestion = MagicMock()
    storage = MagicMock()
    doc_repo = MagicMock()
    storage.get.return_value = b"%PDF"
    runner = RecoveryRunner(ingestion, storage, doc_repo, max_attempts=3)
    return runner, ingestion, storage, doc_repo


class TestRecoveryRunner:
    def test_reruns_enrichment_with_stored_bytes(self) -> None:
        runner, ingestion, storage, doc_repo = _make_runner()
        document = _make_document()
        ingestion.enrich.return_value = _make_document(DocumentStatus.COMPLETED)

        runner.run(document)

        storage.get.assert_called_once_with(document.storage_key)
        ingestion.enrich.assert_called_once_with(document, b"%PDF")
        doc_repo.mark_error.assert_not_called()

    def test_unreadable_object_marks_error(self) -> None:
        runner, ingestion, storage, doc_repo = _make_runner()
        storage.get.side_effect = StorageError("NoSuchKey")

        runner.run(_make_document())

        doc_repo.mark_error.assert_called_once()
        assert doc_repo.mark_error.call_args.args[0] == 5
        ingestion.enrich.assert_not_called()

    def test_persist_failure_leaves_document_processing(self) -> None:
        runner, ingestion, _storage, doc_repo = _make_runner()
        ingestion.enrich.return_value = _make_document(DocumentStatus.PROCESSING, attempts=3)

        runner.run(_make_document(attempts=3))

        doc_repo.mark_error.assert_not_called()

    def test_unexpected_error_is_contained(self) -> None:
        runner, ingestion, _storage, doc_repo = _make_runner()
        ingestion.enrich.side_effect = RuntimeError("boom")

        runner.run(_make_document())  # Should not raise

        doc_repo.mark_error.assert_not_called()

