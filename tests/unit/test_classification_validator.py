import pytest

from papierkraken.classification.exceptions import ClassificationValidationError
from papierkraken.classification.validator import validate_and_build
from papierkraken.database.models import DocumentCategory


def _make_payload(**overrides: object) -> dict[str, object]:
    payload: dict[str, object] = {
        "category": "INVOICE",
        "confidence": 0.92,
        "metadata": {
            "extractedDate": "2024-03-01",
            "extractedAmount": "89.90",
            "extractedVendor": "Telekom",
            "extractedDueDate": "2024-03-15",
            "extractedInvoiceNumber": "R-123",
        },
    }
    payload.update(overrides)
    return payload


class TestValidateAndBuild:
    def test_builds_result(self) -> None:
        result = validate_and_build(_make_payload())
        assert result.category is DocumentCategory.INVOICE
        assert result.confidence == 0.92
        assert result.metadata.extracted_vendor == "Telekom"
        assert result.metadata.extracted_invoice_number == "R-123"
        assert not result.degraded

    def test_category_is_case_insensitive(self) -> None:
        assert validate_and_build(_make_payload(category=" tax ")).category is DocumentCategory.TAX

    def test_null_metadata_is_empty(self) -> None:
        result = validate_and_build(_make_payload(metadata=None))
        assert result.metadata.to_payload() == {}

    def test_blank_strings_become_none(self) -> None:
        result = validate_and_build(_make_payload(metadata={"extractedVendor": "  "}))
        assert result.metadata.extracted_vendor is None

    @pytest.mark.parametrize("category", ["RECEIPT", "", None, 3])
    def test_rejects_unsupported_category(self, category: object) -> None:
        with pytest.raises(ClassificationValidationError, match="category"):
            validate_and_build(_make_payload(category=category))

    @pytest.mark.parametrize("confidence", [-0.1, 1.5, "0.9", None, True, float("nan")])
    def test_rejects_bad_confidence(self, confidence: object) -> None:
        with pytest.raises(ClassificationValidationError, match="confidence"):
            validate_and_build(_make_payload(confidence=confidence))

    def test_accepts_confidence_bounds(self) -> None:
        assert validate_and_build(_make_payload(confidence=0)).confidence == 0.0
        assert validate_and_build(_make_payload(confidence=1)).confidence == 1.0

    def test_rejects_non_string_metadata_value(self) -> None:
        with pytest.raises(ClassificationValidationError, match="extractedAmount"):
            validate_and_build(_make_payload(metadata={"extractedAmount": 89.9}))

    def test_rejects_non_object_metadata(self) -> None:
        with pytest.raises(ClassificationValidationError, match="metadata"):
            validate_and_build(_make_payload(metadata=["x"]))
