from dataclasses import dataclass, field

from papierkraken.database.models import DocumentCategory


@dataclass(frozen=True)
class ClassificationMetadata:
    """Fields pulled out of the document text. Values are kept as the provider wrote them."""

    extracted_date: str | None = None
    extracted_amount: str | None = None
    extracted_vendor: str | None = None
    extracted_due_date: str | None = None
    extracted_invoice_number: str | None = None

    def to_payload(self) -> dict[str, str]:
        """JSONB-ready dict without empty fields."""
        payload = {
            "extracted_date": self.extracted_date,
            "extracted_amount": self.extracted_amount,
            "extracted_vendor": self.extracted_vendor,
            "extracted_due_date": self.extracted_due_date,
            "extracted_invoice_number": self.extracted_invoice_number,
        }
        return {key: value for key, value in payload.items() if value}


@dataclass(frozen=True)
class ClassificationResult:
    """Output of the classify stage."""

    category: DocumentCategory
    confidence: float
    metadata: ClassificationMetadata = field(default_factory=ClassificationMetadata)
    degraded: bool = False

    @classmethod
    def fallback(cls) -> "ClassificationResult":
        return cls(
            category=DocumentCategory.OTHER,
            confidence=0.0,
            metadata=ClassificationMetadata(),
            degraded=True,
        )
