from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status

from papierkraken.access.broker import AccessBroker
from papierkraken.api.dependencies import (
    Identity,
    get_access_broker,
    get_current_user,
    get_document_repository,
    get_ingestion_service,
    get_object_storage,
    get_upload_stager,
    get_upload_validator,
)
from papierkraken.api.schemas import (
    CompleteUploadBody,
    DocumentListResponse,
    DocumentOut,
    DocumentResponse,
    HealthResponse,
    PresignedUploadRequest,
    PresignedUploadResponse,
    SignedReferenceOut,
)
from papierkraken.database.models import DocumentCategory, DocumentRecord
from papierkraken.database.repositories.document_repository import DocumentRepository
from papierkraken.errors import AuthError, DocumentNotFoundError, ValidationError
from papierkraken.ingestion.models import CompleteUploadRequest, UploadRequest
from papierkraken.ingestion.processor import IngestionService
from papierkraken.ingestion.staging import UploadStager
from papierkraken.ingestion.validator import UploadValidator
from papierkraken.logging.logger import Log
from papierkraken.storage.base import BaseObjectStorage

router = APIRouter(tags=["documents"])

STATUS_TYPES = ("due", "pending", "offline")


@router.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    return HealthResponse()


@router.post("/upload", response_model=DocumentResponse, status_code=status.HTTP_201_CREATED)
def upload_document(
    file: UploadFile = File(...),
    category: str | None = Form(None),
    is_offline: bool = Form(False),
    user: Identity = Depends(get_current_user),
    ingestion: IngestionService = Depends(get_ingestion_service),
    stager: UploadStager = Depends(get_upload_stager),
    validator: UploadValidator = Depends(get_upload_validator),
    broker: AccessBroker = Depends(get_access_broker),
) -> DocumentResponse:
    original_name = file.filename or "upload"
    mime_type = file.content_type or "application/octet-stream"
    validator.validate_mime_type(mime_type)
    staged = stager.stage(file.file, original_name, mime_type, validator.max_bytes)
    document = ingestion.ingest_upload(
        UploadRequest(
            owner_id=user.owner_id,
            staged=staged,
            category=category,
            is_offline=is_offline,
        )
    )
    return _single(document, broker)


@router.post("/presigned-upload", response_model=PresignedUploadResponse)
def presigned_upload(
    body: PresignedUploadRequest,
    user: Identity = Depends(get_current_user),
    broker: AccessBroker = Depends(get_access_broker),
    validator: UploadValidator = Depends(get_upload_validator),
) -> PresignedUploadResponse:
    validator.validate_mime_type(body.content_type)
    key = broker.generate_key(user.owner_id, body.category, body.file_name, body.content_type)
    reference = broker.issue_upload_reference(user.owner_id, key, body.content_type)
    return PresignedUploadResponse(
        upload_ref=SignedReferenceOut.from_reference(reference),
        storage_key=key,
        expires=reference.expires_at,
    )


@router.post(
    "/complete-upload",
    response_model=DocumentResponse,
    status_code=status.HTTP_201_CREATED,
)
def complete_upload(
    body: CompleteUploadBody,
    user: Identity = Depends(get_current_user),
    ingestion: IngestionService = Depends(get_ingestion_service),
    broker: AccessBroker = Depends(get_access_broker),
) -> DocumentResponse:
    document = ingestion.complete_upload(
        CompleteUploadRequest(
            owner_id=user.owner_id,
            storage_key=body.storage_key,
            original_name=body.original_name,
            byte_size=body.byte_size,
            content_type=body.content_type,
            category=body.category,
        )
    )
    return _single(document, broker)


@router.get("/documents", response_model=DocumentListResponse)
def list_documents(
    category: str | None = Query(None),
    user: Identity = Depends(get_current_user),
    doc_repo: DocumentRepository = Depends(get_document_repository),
) -> DocumentListResponse:
    parsed = _parse_category(category) if category else None
    return _many(doc_repo.list_for_owner(user.owner_id, parsed))


@router.get("/documents/search", response_model=DocumentListResponse)
def search_documents(
    q: str = Query(""),
    user: Identity = Depends(get_current_user),
    doc_repo: DocumentRepository = Depends(get_document_repository),
) -> DocumentListResponse:
    if not q.strip():
        raise ValidationError("Search query is required")
    return _many(doc_repo.search(user.owner_id, q.strip()))


@router.get("/documents/status", response_model=DocumentListResponse)
def documents_by_status(
    type: str = Query(...),  # noqa: A002
    user: Identity = Depends(get_current_user),
    doc_repo: DocumentRepository = Depends(get_document_repository),
) -> DocumentListResponse:
    if type == "due":
        documents = doc_repo.list_due(user.owner_id)
    elif type == "pending":
        documents = doc_repo.list_processing(user.owner_id)
    elif type == "offline":
        documents = doc_repo.list_offline(user.owner_id)
    else:
        raise ValidationError(f"Unknown status type '{type}'. Expected one of {STATUS_TYPES}")
    return _many(documents)


@router.get("/documents/{document_id}", response_model=DocumentResponse)
def get_document(
    document_id: int,
    user: Identity = Depends(get_current_user),
    doc_repo: DocumentRepository = Depends(get_document_repository),
    broker: AccessBroker = Depends(get_access_broker),
) -> DocumentResponse:
    document = _owned(doc_repo, document_id, user)
    return _single(document, broker)


@router.delete("/documents/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_document(
    document_id: int,
    user: Identity = Depends(get_current_user),
    doc_repo: DocumentRepository = Depends(get_document_repository),
    storage: BaseObjectStorage = Depends(get_object_storage),
) -> None:
    """Remove the stored object first, then the row."""
    document = _owned(doc_repo, document_id, user)
    storage.delete(document.storage_key)
    if not doc_repo.delete(document.id):
        raise DocumentNotFoundError(f"Document {document_id} not found")
    Log.info(f"Document {document.id} deleted by owner {user.owner_id}")


def _owned(doc_repo: DocumentRepository, document_id: int, user: Identity) -> DocumentRecord:
    document = doc_repo.find_by_id(document_id)
    if document.owner_id != user.owner_id:
        raise AuthError("Access denied", status_code=403)
    return document


def _parse_category(raw: str) -> DocumentCategory:
    try:
        return DocumentCategory(raw.strip().upper())
    except ValueError as exc:
        raise ValidationError(f"Unknown category '{raw}'") from exc


def _single(document: DocumentRecord, broker: AccessBroker) -> DocumentResponse:
    reference = broker.issue_download_reference(document.storage_key)
    return DocumentResponse(document=DocumentOut.from_record(document, reference))


def _many(documents: list[DocumentRecord]) -> DocumentListResponse:
    return DocumentListResponse(documents=[DocumentOut.from_record(doc) for doc in documents])
