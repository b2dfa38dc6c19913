from datetime import date, datetime

from papierkraken.access.broker import AccessBroker
from papierkraken.classification.base import BaseClassifier
from papierkraken.classification.models import ClassificationResult
from papierkraken.database.models import DocumentCompletion, DocumentRecord, NewDocument
from papierkraken.database.repositories.document_repository import DocumentRepository
from papierkraken.errors import AuthError, StorageError, ValidationError
from papierkraken.extraction.exceptions import ExtractionError
from papierkraken.extraction.extractor import TextExtractor
from papierkraken.ingestion.pipeline import PipelineContext, PipelineStep
from papierkraken.ingestion.staging import UploadStager
from papierkraken.ingestion.validator import UploadValidator
from papierkraken.logging.logger import Log
from papierkraken.storage.base import BaseObjectStorage

_DUE_DATE_FORMATS = ("%Y-%m-%d", "%d.%m.%Y", "%d/%m/%Y")


class VerifyOwnershipStep(PipelineStep):
    def __init__(self, broker: AccessBroker) -> None:
        self._broker = broker

    def run(self, context: PipelineContext) -> PipelineContext:
        if context.storage_key is None or not self._broker.verify_ownership(
            context.owner_id, context.storage_key
        ):
            raise AuthError(
                "Access denied: storage key is outside the caller's namespace",
                status_code=403,
            )
        return context


class ValidateStep(PipelineStep):
    def __init__(self, validator: UploadValidator) -> None:
        self._validator = validator

    def run(self, context: PipelineContext) -> PipelineContext:
        self._validator.validate(context.mime_type, context.byte_size)
        return context


class LoadStagedStep(PipelineStep):
    def __init__(self, stager: UploadStager) -> None:
        self._stager = stager

    def run(self, context: PipelineContext) -> PipelineContext:
        if context.staged is None:
            raise ValueError("PipelineContext.staged must be set before loading")
        context.raw_bytes = self._stager.load(context.staged)
        return context


class StoreStep(PipelineStep):
    """Writes the object, then inserts the PROCESSING row. The insert is the durability point."""

    def __init__(
        self,
        broker: AccessBroker,
        storage: BaseObjectStorage,
        doc_repo: DocumentRepository,
    ) -> None:
        self._broker = broker
        self._storage = storage
        self._doc_repo = doc_repo

    def run(self, context: PipelineContext) -> PipelineContext:
        key = self._broker.generate_key(
            context.owner_id,
            context.category_hint,
            context.original_name,
            context.mime_type,
        )
        self._storage.put(key, context.raw_bytes, context.mime_type)
        context.storage_key = key
        context.document = _create_row(self._storage, self._doc_repo, context, key)
        Log.info(f"Document {context.document.id} stored at {key} (PROCESSING)")
        return context


class ReuseRegisteredStep(PipelineStep):
    """Returns the Document already registered for this key so a repeated completion is a no-op."""

    def __init__(self, doc_repo: DocumentRepository) -> None:
        self._doc_repo = doc_repo

    def run(self, context: PipelineContext) -> PipelineContext:
        if context.storage_key is None:
            raise ValueError("PipelineContext.storage_key must be set before lookup")
        existing = _find_owned(self._doc_repo, context)
        if existing is not None:
            Log.info(
                f"Document {existing.id} already registered for {context.storage_key}"
            )
            context.document = existing
            context.finished = True
        return context


class FetchStoredStep(PipelineStep):
    """Reads a directly-uploaded object back and validates its declared and real size.

    The object was written by the client and no Document refers to it yet, so an
    object that fails validation is deleted before the error propagates.
    """

    def __init__(self, storage: BaseObjectStorage, validator: UploadValidator) -> None:
        self._storage = storage
        self._validator = validator

    def run(self, context: PipelineContext) -> PipelineContext:
        if context.storage_key is None:
            raise ValueError("PipelineContext.storage_key must be set before fetching")
        key = context.storage_key
        try:
            self._validator.validate(context.mime_type, context.byte_size)
            context.raw_bytes = self._storage.get(key)
            actual = len(context.raw_bytes)
            if actual != context.byte_size:
                Log.warning(
                    f"Declared size {context.byte_size} differs from stored size {actual} "
                    f"for {key}"
                )
            context.byte_size = actual
            self._validator.validate(context.mime_type, actual)
        except ValidationError as exc:
            Log.warning(f"Rejected direct upload {key}: {exc}")
            _discard_object(self._storage, key)
            raise
        return context


class RegisterStoredStep(PipelineStep):
    """Creates the PROCESSING row for an object the client wrote.

    The object is never deleted here: on a lost race with a concurrent completion
    of the same key, the row that won is returned instead.
    """

    def __init__(self, storage: BaseObjectStorage, doc_repo: DocumentRepository) -> None:
        self._storage = storage
        self._doc_repo = doc_repo

    def run(self, context: PipelineContext) -> PipelineContext:
        if context.storage_key is None:
            raise ValueError("PipelineContext.storage_key must be set before registering")
        try:
            context.document = _create_row(
                self._storage,
                self._doc_repo,
                context,
                context.storage_key,
                delete_on_failure=False,
            )
        except StorageError:
            existing = _find_owned(self._doc_repo, context)
            if existing is None:
                raise
            context.document = existing
            context.finished = True
            return context
        Log.info(
            f"Document {context.document.id} registered for {context.storage_key} (PROCESSING)"
        )
        return context


class ExtractTextStep(PipelineStep):
    def __init__(self, extractor: TextExtractor) -> None:
        self._extractor = extractor

    def run(self, context: PipelineContext) -> PipelineContext:
        try:
            context.extracted_text = self._extractor.extract(
                context.raw_bytes, context.mime_type
            )
        except ExtractionError as exc:
            Log.warning(f"Text extraction skipped for '{context.original_name}': {exc}")
            context.extracted_text = ""
        Log.info(
            f"Extracted {len(context.extracted_text)} chars from '{context.original_name}'"
        )
        return context


class ClassifyStep(PipelineStep):
    def __init__(self, classifier: BaseClassifier) -> None:
        self._classifier = classifier

    def run(self, context: PipelineContext) -> PipelineContext:
        try:
            context.classification = self._classifier.classify(
                context.extracted_text, context.original_name
            )
        except Exception as exc:  # classification is advisory
            Log.warning(
                f"Classification degraded for '{context.original_name}': "
                f"{type(exc).__name__}: {exc}"
            )
            context.classification = ClassificationResult.fallback()
        return context


class PersistStep(PipelineStep):
    def __init__(self, doc_repo: DocumentRepository) -> None:
        self._doc_repo = doc_repo

    def run(self, context: PipelineContext) -> PipelineContext:
        if context.document is None:
            raise ValueError("PipelineContext.document must be set before persist")
        classification = context.classification or ClassificationResult.fallback()
        metadata = classification.metadata
        payload: dict[str, object] = {
            **metadata.to_payload(),
            "confidence_score": classification.confidence,
        }
        completion = DocumentCompletion(
            extracted_text=context.extracted_text,
            category=classification.category,
            confidence=classification.confidence,
            classification_metadata=payload if not classification.degraded else {},
            vendor_name=metadata.extracted_vendor,
            amount=metadata.extracted_amount,
            due_date=parse_due_date(metadata.extracted_due_date),
        )
        context.document = self._doc_repo.complete(context.document.id, completion)
        Log.info(
            f"Document {context.document.id} completed as {classification.category.value}"
        )
        return context


def parse_due_date(raw: str | None) -> date | None:
    if not raw:
        return None
    for fmt in _DUE_DATE_FORMATS:
        try:
            return datetime.strptime(raw.strip(), fmt).date()
        except ValueError:
            continue
    Log.debug(f"Ignoring unparseable due date {raw!r}")
    return None


def _create_row(
    storage: BaseObjectStorage,
    doc_repo: DocumentRepository,
    context: PipelineContext,
    key: str,
    delete_on_failure: bool = True,
) -> DocumentRecord:
    """Insert the PROCESSING row.

    With ``delete_on_failure`` the object this request just wrote is removed when the
    insert fails, so no orphan remains.
    """
    try:
        return doc_repo.create_processing(
            NewDocument(
                owner_id=context.owner_id,
                storage_key=key,
                original_name=context.original_name,
                mime_type=context.mime_type,
                byte_size=context.byte_size,
                is_offline=context.is_offline,
            )
        )
    except Exception as exc:
        Log.error(f"Could not create document row for {key}: {exc}")
        if delete_on_failure:
            _discard_object(storage, key)
        raise StorageError(f"Failed to record document for {key}: {exc}") from exc


def _find_owned(doc_repo: DocumentRepository, context: PipelineContext) -> DocumentRecord | None:
    existing = doc_repo.find_by_storage_key(context.storage_key)  # type: ignore[arg-type]
    if existing is not None and existing.owner_id != context.owner_id:
        raise AuthError(
            "Access denied: storage key belongs to another owner", status_code=403
        )
    return existing


def _discard_object(storage: BaseObjectStorage, key: str) -> None:
    try:
        storage.delete(key)
    except StorageError as exc:
        Log.error(f"Orphaned object {key} left in storage: {exc}")
