class ExtractionError(Exception):
    """Raised when text cannot be extracted from a document."""


class UnsupportedFormatError(ExtractionError):
    """Raised when no extractor is registered for a mime type."""
