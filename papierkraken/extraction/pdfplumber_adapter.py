import io

import pdfplumber

from papierkraken.extraction.base import BaseTextExtractor
from papierkraken.extraction.exceptions import ExtractionError


class PdfPlumberAdapter(BaseTextExtractor):
    """Extracts text from PDF using pdfplumber."""

    def extract(self, data: bytes, mime_type: str = "application/pdf") -> str:
        try:
            with pdfplumber.open(io.BytesIO(data)) as pdf:
                pages = [page.extract_text() or "" for page in pdf.pages]
            return "\n".join(pages).strip()
        except Exception as exc:
            raise ExtractionError(f"pdfplumber extraction failed: {exc}") from exc
