import time

from papierkraken.config.settings import Settings
from papierkraken.database.connection import get_connection
from papierkraken.database.models import DocumentRecord
from papierkraken.database.repositories.document_repository import DocumentRepository
from papierkraken.logging.logger import Log
from papierkraken.worker.recovery_runner import RecoveryRunner


class RecoveryWorker:
    """Poll loop: sleep -> claim stuck document -> recover."""

    def __init__(
        self,
        doc_repo: DocumentRepository,
        runner: RecoveryRunner,
        settings: Settings,
    ) -> None:
        self._doc_repo = doc_repo
        self._runner = runner
        self._settings = settings

    def run(self, max_documents: int | None = None) -> None:
        """Main poll loop. Runs forever until interrupted.

        If max_documents is set, stop after recovering that many documents (for testing).
        """
        Log.info("Recovery worker started, polling for stuck documents")
        done = 0
        try:
            while True:
                if max_documents is not None and done >= max_documents:
                    break
                document = self._try_claim()
                if document:
                    self._runner.run(document)
                    done += 1
                else:
                    Log.debug("No stuck documents, sleeping")
                    time.sleep(self._settings.recovery_poll_interval_seconds)
        except KeyboardInterrupt:
            Log.info("Recovery worker shutting down gracefully")

    def _try_claim(self) -> DocumentRecord | None:
        """Attempt to claim the next stuck document. Gracefully handle DB errors."""
        try:
            with get_connection() as conn:
                return self._doc_repo.claim_stuck(
                    conn,
                    self._settings.recovery_stale_after_seconds,
                    self._settings.max_recovery_attempts,
                )
        except Exception as exc:
            Log.warning(f"Database error, will retry: {exc}")
            return None
