from papierkraken.config.settings import Settings
from papierkraken.errors import ValidationError


class UploadValidator:
    """Enforces the mime allow-list and the byte-size ceiling (inclusive)."""

    def __init__(self, max_bytes: int, allowed_mime_types: list[str]) -> None:
        self._max_bytes = max_bytes
        self._allowed = frozenset(mime.lower() for mime in allowed_mime_types)

    @property
    def max_bytes(self) -> int:
        return self._max_bytes

    def validate(self, mime_type: str, byte_size: int) -> None:
        """Raise ValidationError unless the file may be ingested."""
        self.validate_mime_type(mime_type)
        if byte_size <= 0:
            raise ValidationError("File is empty")
        if byte_size > self._max_bytes:
            raise ValidationError(
                f"File too large: {byte_size} bytes (max {self._max_bytes})"
            )

    def validate_mime_type(self, mime_type: str) -> None:
        normalized = mime_type.split(";")[0].strip().lower()
        if normalized not in self._allowed:
            raise ValidationError(
                f"Unsupported file type '{mime_type}'. Allowed: {sorted(self._allowed)}"
            )


def build_upload_validator(settings: Settings) -> UploadValidator:
    return UploadValidator(settings.max_upload_bytes, settings.allowed_mime_types)
