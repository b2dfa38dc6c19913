"""Validates a provider's parsed JSON against the classification contract."""

import math
from typing import Any

from papierkraken.classification.exceptions import ClassificationValidationError
from papierkraken.classification.models import ClassificationMetadata, ClassificationResult
from papierkraken.database.models import DocumentCategory

_VALID_CATEGORIES = frozenset(category.value for category in DocumentCategory)

_METADATA_FIELDS = {
    "extractedDate": "extracted_date",
    "extractedAmount": "extracted_amount",
    "extractedVendor": "extracted_vendor",
    "extractedDueDate": "extracted_due_date",
    "extractedInvoiceNumber": "extracted_invoice_number",
}


def validate_and_build(data: dict[str, Any]) -> ClassificationResult:
    """Validate raw parsed JSON and build a ClassificationResult.

    An unknown category is a contract violation, not something to coerce.

    Raises:
        ClassificationValidationError: on any validation failure.
    """
    category = _build_category(data.get("category"))
    confidence = _build_confidence(data.get("confidence"))
    metadata = _build_metadata(data.get("metadata"))
    return ClassificationResult(category=category, confidence=confidence, metadata=metadata)


def _build_category(raw: Any) -> DocumentCategory:
    if not isinstance(raw, str):
        raise ClassificationValidationError("'category' must be a string")
    normalized = raw.strip().upper()
    if normalized not in _VALID_CATEGORIES:
        raise ClassificationValidationError(
            f"'category' must be one of {sorted(_VALID_CATEGORIES)}, got {raw!r}"
        )
    return DocumentCategory(normalized)


def _build_confidence(raw: Any) -> float:
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        raise ClassificationValidationError("'confidence' must be a number")
    value = float(raw)
    if math.isnan(value) or not 0.0 <= value <= 1.0:
        raise ClassificationValidationError(f"'confidence' must be within [0, 1], got {raw}")
    return value


def _build_metadata(raw: Any) -> ClassificationMetadata:
    if raw is None:
        return ClassificationMetadata()
    if not isinstance(raw, dict):
        raise ClassificationValidationError("'metadata' must be an object or null")
    values: dict[str, str | None] = {}
    for source, target in _METADATA_FIELDS.items():
        value = raw.get(source)
        if value is not None and not isinstance(value, str):
            raise ClassificationValidationError(f"'metadata.{source}' must be a string or null")
        values[target] = value.strip() or None if value is not None else None
    return ClassificationMetadata(**values)
