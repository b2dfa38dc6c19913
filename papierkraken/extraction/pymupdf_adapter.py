import pymupdf

from papierkraken.extraction.base import BaseTextExtractor
from papierkraken.extraction.exceptions import ExtractionError


class PyMuPdfAdapter(BaseTextExtractor):
    """Extracts text from PDF using PyMuPDF."""

    def extract(self, data: bytes, mime_type: str = "application/pdf") -> str:
        try:
            with pymupdf.open(stream=data, filetype="pdf") as doc:  # type: ignore[no-untyped-call]
                pages = [page.get_text() for page in doc]
            return "\n".join(pages).strip()
        except Exception as exc:
            raise ExtractionError(f"pymupdf extraction failed: {exc}") from exc
