from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, Field

from papierkraken.access.broker import SignedReference
from papierkraken.database.models import DocumentCategory, DocumentRecord, DocumentStatus


class SignedReferenceOut(BaseModel):
    url: str
    method: str
    expires_at: datetime
    headers: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_reference(cls, reference: SignedReference) -> "SignedReferenceOut":
        return cls(
            url=reference.url,
            method=reference.method,
            expires_at=reference.expires_at,
            headers=dict(reference.headers),
        )


class DocumentOut(BaseModel):
    """Document as returned to clients. ``download_ref`` is set on single-document responses."""

    id: int
    owner_id: int
    storage_key: str
    original_name: str
    mime_type: str
    byte_size: int
    category: DocumentCategory
    status: DocumentStatus
    extracted_text: str | None = None
    classification_metadata: dict[str, Any] | None = None
    confidence: float = 0.0
    vendor_name: str | None = None
    amount: str | None = None
    due_date: date | None = None
    is_offline: bool = False
    is_paid: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None
    download_ref: SignedReferenceOut | None = None

    @classmethod
    def from_record(
        cls,
        record: DocumentRecord,
        download_ref: SignedReference | None = None,
    ) -> "DocumentOut":
        return cls(
            id=record.id,
            owner_id=record.owner_id,
            storage_key=record.storage_key,
            original_name=record.original_name,
            mime_type=record.mime_type,
            byte_size=record.byte_size,
            category=record.category,
            status=record.status,
            extracted_text=record.extracted_text,
            classification_metadata=record.classification_metadata,
            confidence=record.confidence,
            vendor_name=record.vendor_name,
            amount=record.amount,
            due_date=record.due_date,
            is_offline=record.is_offline,
            is_paid=record.is_paid,
            created_at=record.created_at,
            updated_at=record.updated_at,
            download_ref=(
                SignedReferenceOut.from_reference(download_ref) if download_ref else None
            ),
        )


class DocumentResponse(BaseModel):
    document: DocumentOut


class DocumentListResponse(BaseModel):
    documents: list[DocumentOut]


class PresignedUploadRequest(BaseModel):
    file_name: str = Field(min_length=1)
    content_type: str = Field(min_length=1)
    category: str | None = None


class PresignedUploadResponse(BaseModel):
    upload_ref: SignedReferenceOut
    storage_key: str
    expires: datetime


class CompleteUploadBody(BaseModel):
    storage_key: str = Field(min_length=1)
    original_name: str = Field(min_length=1)
    byte_size: int
    content_type: str = Field(min_length=1)
    category: str | None = None


class HealthResponse(BaseModel):
    status: str = "ok"
