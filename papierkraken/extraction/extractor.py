from papierkraken.extraction.base import BaseTextExtractor
from papierkraken.extraction.exceptions import UnsupportedFormatError


class TextExtractor:
    """Dispatches extraction to the adapter registered for a mime type.

    Exact mime types win over ``type/*`` wildcard registrations.
    """

    def __init__(self, adapters: dict[str, BaseTextExtractor]) -> None:
        self._adapters = {key.lower(): adapter for key, adapter in adapters.items()}

    def supports(self, mime_type: str) -> bool:
        return self._resolve(mime_type) is not None

    def extract(self, data: bytes, mime_type: str) -> str:
        """Extract text with the matching adapter.

        Raises:
            UnsupportedFormatError: if no adapter is registered for ``mime_type``.
            ExtractionError: if the adapter fails.
        """
        adapter = self._resolve(mime_type)
        if adapter is None:
            raise UnsupportedFormatError(f"No text extractor for '{mime_type}'")
        return adapter.extract(data, mime_type)

    def _resolve(self, mime_type: str) -> BaseTextExtractor | None:
        normalized = mime_type.split(";")[0].strip().lower()
        adapter = self._adapters.get(normalized)
        if adapter is not None:
            return adapter
        family = normalized.split("/")[0]
        return self._adapters.get(f"{family}/*")
