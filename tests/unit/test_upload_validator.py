import pytest

from papierkraken.config.settings import Settings
from papierkraken.errors import ValidationError
from papierkraken.ingestion.validator import UploadValidator, build_upload_validator

CEILING = 50 * 1024 * 1024


def _make_validator() -> UploadValidator:
    return UploadValidator(CEILING, ["application/pdf", "image/png"])


class TestUploadValidator:
    def test_accepts_exactly_the_ceiling(self) -> None:
        _make_validator().validate("application/pdf", CEILING)

    def test_rejects_one_byte_over_the_ceiling(self) -> None:
        with pytest.raises(ValidationError, match="too large"):
            _make_validator().validate("application/pdf", CEILING + 1)

    def test_rejects_empty_file(self) -> None:
        with pytest.raises(ValidationError, match="empty"):
            _make_validator().validate("application/pdf", 0)

    def test_rejects_disallowed_type(self) -> None:
        with pytest.raises(ValidationError, match="Unsupported file type"):
            _make_validator().validate("application/x-msdownload", 10)

    def test_ignores_mime_parameters_and_case(self) -> None:
        _make_validator().validate("Image/PNG; charset=binary", 10)

    def test_validation_error_is_400(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            _make_validator().validate("text/html", 10)
        assert exc_info.value.status_code == 400


class TestBuildUploadValidator:
    def test_uses_settings(self) -> None:
        validator = build_upload_validator(Settings(max_upload_bytes=10))
        assert validator.max_bytes == 10
        validator.validate("application/pdf", 10)
