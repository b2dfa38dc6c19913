from pathlib import Path

from papierkraken.access.broker import AccessBroker
from papierkraken.classification.base import BaseClassifier
from papierkraken.classification.factory import ClassifierFactory
from papierkraken.config.settings import Settings
from papierkraken.database.models import DocumentRecord
from papierkraken.database.repositories.document_repository import DocumentRepository
from papierkraken.extraction.extractor import TextExtractor
from papierkraken.extraction.factory import TextExtractorFactory
from papierkraken.ingestion.models import CompleteUploadRequest, UploadRequest
from papierkraken.ingestion.pipeline import PipelineContext, PipelineStep
from papierkraken.ingestion.staging import UploadStager
from papierkraken.ingestion.steps import (
    ClassifyStep,
    ExtractTextStep,
    FetchStoredStep,
    LoadStagedStep,
    PersistStep,
    RegisterStoredStep,
    ReuseRegisteredStep,
    StoreStep,
    ValidateStep,
    VerifyOwnershipStep,
)
from papierkraken.ingestion.validator import UploadValidator, build_upload_validator
from papierkraken.logging.logger import Log
from papierkraken.storage.base import BaseObjectStorage


class Processor:
    """Runs pipeline steps in order over one context.

    Before a Document row exists every failure propagates to the caller. Once the row
    exists the upload is committed: a later failure is logged and the Document is
    returned as it stands (PROCESSING) instead of raising.
    """

    def __init__(self, steps: list[PipelineStep], stager: UploadStager | None = None) -> None:
        self._steps = steps
        self._stager = stager

    def process(self, context: PipelineContext) -> DocumentRecord:
        try:
            for step in self._steps:
                try:
                    context = step.run(context)
                except Exception as exc:
                    if not context.committed:
                        Log.error(
                            f"Ingestion of '{context.original_name}' failed at {step.name}: {exc}"
                        )
                        raise
                    Log.error(
                        f"Document {context.document.id} left in PROCESSING: "  # type: ignore[union-attr]
                        f"{step.name} failed: {exc}"
                    )
                    break
                if context.finished:
                    Log.info(f"Pipeline for '{context.original_name}' finished at {step.name}")
                    break
            if context.document is None:
                raise RuntimeError("Pipeline finished without producing a document")
            return context.document
        finally:
            if context.staged is not None and self._stager is not None:
                self._stager.discard(context.staged)


class IngestionService:
    """Entry points of the server ingestion pipeline."""

    def __init__(
        self,
        upload_processor: Processor,
        complete_processor: Processor,
        enrich_processor: Processor,
    ) -> None:
        self._upload_processor = upload_processor
        self._complete_processor = complete_processor
        self._enrich_processor = enrich_processor

    def ingest_upload(self, request: UploadRequest) -> DocumentRecord:
        """validate -> store -> extract -> classify -> persist for a multipart upload."""
        staged = request.staged
        Log.info(
            f"Ingesting '{staged.original_name}' ({staged.byte_size} bytes) "
            f"for owner {request.owner_id}"
        )
        context = PipelineContext(
            owner_id=request.owner_id,
            original_name=staged.original_name,
            mime_type=staged.mime_type,
            byte_size=staged.byte_size,
            category_hint=request.category,
            is_offline=request.is_offline,
            staged=staged,
        )
        return self._upload_processor.process(context)

    def complete_upload(self, request: CompleteUploadRequest) -> DocumentRecord:
        """Register an object the client PUT through a signed upload reference."""
        Log.info(f"Completing direct upload {request.storage_key} for owner {request.owner_id}")
        context = PipelineContext(
            owner_id=request.owner_id,
            original_name=request.original_name,
            mime_type=request.content_type,
            byte_size=request.byte_size,
            category_hint=request.category,
            storage_key=request.storage_key,
        )
        return self._complete_processor.process(context)

    def enrich(self, document: DocumentRecord, raw_bytes: bytes) -> DocumentRecord:
        """Re-run extract -> classify -> persist for an already stored document."""
        context = PipelineContext(
            owner_id=document.owner_id,
            original_name=document.original_name,
            mime_type=document.mime_type,
            byte_size=document.byte_size,
            storage_key=document.storage_key,
            raw_bytes=raw_bytes,
            document=document,
        )
        return self._enrich_processor.process(context)


def build_ingestion_service(
    settings: Settings,
    storage: BaseObjectStorage,
    broker: AccessBroker,
    doc_repo: DocumentRepository | None = None,
    extractor: TextExtractor | None = None,
    classifier: BaseClassifier | None = None,
    validator: UploadValidator | None = None,
    stager: UploadStager | None = None,
) -> IngestionService:
    """Build an IngestionService with all required adapters."""
    doc_repo = doc_repo or DocumentRepository()
    extractor = extractor or TextExtractorFactory.create(settings)
    classifier = classifier or ClassifierFactory.create(settings)
    validator = validator or build_upload_validator(settings)
    stager = stager or UploadStager(Path(settings.staging_dir))

    enrich_steps: list[PipelineStep] = [
        ExtractTextStep(extractor),
        ClassifyStep(classifier),
        PersistStep(doc_repo),
    ]
    upload_steps: list[PipelineStep] = [
        ValidateStep(validator),
        LoadStagedStep(stager),
        StoreStep(broker, storage, doc_repo),
        *enrich_steps,
    ]
    complete_steps: list[PipelineStep] = [
        VerifyOwnershipStep(broker),
        ReuseRegisteredStep(doc_repo),
        FetchStoredStep(storage, validator),
        RegisterStoredStep(storage, doc_repo),
        *enrich_steps,
    ]
    return IngestionService(
        upload_processor=Processor(upload_steps, stager=stager),
        complete_processor=Processor(complete_steps),
        enrich_processor=Processor(enrich_steps),
    )
