import io
import zipfile
from xml.etree import ElementTree

from papierkraken.extraction.base import BaseTextExtractor
from papierkraken.extraction.exceptions import ExtractionError

_WORD_NS = "{http://schemas.openxmlformats.org/wordprocessingml/2006/main}"


class DocxAdapter(BaseTextExtractor):
    """Reads paragraph text from the main part of a .docx package."""

    def extract(self, data: bytes, mime_type: str = "") -> str:
        try:
            with zipfile.ZipFile(io.BytesIO(data)) as package:
                body = package.read("word/document.xml")
            root = ElementTree.fromstring(body)
        except (zipfile.BadZipFile, KeyError, ElementTree.ParseError) as exc:
            raise ExtractionError(f"docx extraction failed: {exc}") from exc

        paragraphs = []
        for paragraph in root.iter(f"{_WORD_NS}p"):
            text = "".join(node.text or "" for node in paragraph.iter(f"{_WORD_NS}t"))
            if text:
                paragraphs.append(text)
        return "\n".join(paragraphs).strip()


class PlainTextAdapter(BaseTextExtractor):
    """Decodes text-based formats (XML, plain text) as UTF-8."""

    def extract(self, data: bytes, mime_type: str = "") -> str:
        return data.decode("utf-8", errors="replace").strip()
