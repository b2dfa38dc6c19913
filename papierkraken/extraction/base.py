from abc import ABC, abstractmethod


class BaseTextExtractor(ABC):
    """Contract for all text extraction adapters."""

    @abstractmethod
    def extract(self, data: bytes, mime_type: str) -> str:
        """Extract plain text from raw file bytes.

        Args:
            data: Raw file content.
            mime_type: Declared mime type of the content.

        Returns:
            Extracted text as a single stripped string.

        Raises:
            ExtractionError: if extraction fails for any reason.
        """
