from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any


class DocumentCategory(str, Enum):
    INVOICE = "INVOICE"
    TAX = "TAX"
    COMPLAINT = "COMPLAINT"
    OTHER = "OTHER"


class DocumentStatus(str, Enum):
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    ERROR = "ERROR"


@dataclass
class DocumentRecord:
    """Represents a row from the documents table."""

    id: int
    owner_id: int
    storage_key: str
    original_name: str
    mime_type: str
    byte_size: int
    category: DocumentCategory = DocumentCategory.OTHER
    status: DocumentStatus = DocumentStatus.PROCESSING
    extracted_text: str | None = None
    classification_metadata: dict[str, Any] | None = None
    confidence: float = 0.0
    vendor_name: str | None = None
    amount: str | None = None
    due_date: date | None = None
    is_offline: bool = False
    is_paid: bool = False
    recovery_attempts: int = 0
    error_message: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class NewDocument:
    """Column values for the row inserted at the durability point."""

    owner_id: int
    storage_key: str
    original_name: str
    mime_type: str
    byte_size: int
    category: DocumentCategory = DocumentCategory.OTHER
    is_offline: bool = False


@dataclass(frozen=True)
class DocumentCompletion:
    """Column values written by the final persist stage."""

    extracted_text: str
    category: DocumentCategory
    confidence: float
    classification_metadata: dict[str, Any] = field(default_factory=dict)
    vendor_name: str | None = None
    amount: str | None = None
    due_date: date | None = None
