import io
import zipfile
from unittest.mock import MagicMock

import httpx
import pytest

from papierkraken.extraction.exceptions import ExtractionError, UnsupportedFormatError
from papierkraken.extraction.extractor import TextExtractor
from papierkraken.extraction.office_adapter import DocxAdapter, PlainTextAdapter
from papierkraken.extraction.openai_ocr_adapter import OpenAIVisionOcrAdapter

_DOCUMENT_XML = (
    '<?xml version="1.0" encoding="UTF-8"?>'
    '<w:document xmlns:w="http://schemas.openxmlformats.org/wordprocessingml/2006/main">'
    "<w:body>"
    "<w:p><w:r><w:t>Beschwerde</w:t></w:r></w:p>"
    "<w:p><w:r><w:t>Sehr geehrte </w:t></w:r><w:r><w:t>Damen und Herren</w:t></w:r></w:p>"
    "</w:body></w:document>"
)


def _make_docx(document_xml: str = _DOCUMENT_XML) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as package:
        package.writestr("word/document.xml", document_xml)
    return buf.getvalue()


def _make_ocr_response(content: str | None) -> MagicMock:
    choice = MagicMock()
    choice.message.content = content
    response = MagicMock()
    response.choices = [choice]
    return response


class TestTextExtractor:
    def test_exact_match_wins_over_wildcard(self) -> None:
        exact, wildcard = MagicMock(), MagicMock()
        exact.extract.return_value = "exact"
        extractor = TextExtractor({"text/xml": exact, "text/*": wildcard})
        assert extractor.extract(b"<a/>", "text/xml") == "exact"
        wildcard.extract.assert_not_called()

    def test_wildcard_match(self) -> None:
        wildcard = MagicMock()
        wildcard.extract.return_value = "ocr"
        extractor = TextExtractor({"image/*": wildcard})
        assert extractor.extract(b"\x89PNG", "image/png") == "ocr"

    def test_unsupported_type_raises(self) -> None:
        extractor = TextExtractor({"application/pdf": MagicMock()})
        assert not extractor.supports("application/msword")
        with pytest.raises(UnsupportedFormatError):
            extractor.extract(b"", "application/msword")

    def test_unsupported_is_an_extraction_error(self) -> None:
        assert issubclass(UnsupportedFormatError, ExtractionError)


class TestDocxAdapter:
    def test_reads_paragraphs(self) -> None:
        text = DocxAdapter().extract(_make_docx())
        assert text == "Beschwerde\nSehr geehrte Damen und Herren"

    def test_not_a_zip_raises(self) -> None:
        with pytest.raises(ExtractionError, match="docx"):
            DocxAdapter().extract(b"plain bytes")

    def test_missing_body_raises(self) -> None:
        buf = io.BytesIO()
        with zipfile.ZipFile(buf, "w") as package:
            package.writestr("other.xml", "<x/>")
        with pytest.raises(ExtractionError):
            DocxAdapter().extract(buf.getvalue())


class TestPlainTextAdapter:
    def test_decodes_utf8(self) -> None:
        assert PlainTextAdapter().extract("  Steuerbescheid 2023 \n".encode()) == "Steuerbescheid 2023"

    def test_replaces_invalid_bytes(self) -> None:
        assert PlainTextAdapter().extract(b"ok\xff") == "ok�"


class TestOpenAIVisionOcrAdapter:
    def test_sends_image_as_data_url(self) -> None:
        client = MagicMock()
        client.chat.completions.create.return_value = _make_ocr_response(" Rechnung 42 ")
        adapter = OpenAIVisionOcrAdapter(client=client, model="gpt-4o", max_tokens=500)

        text = adapter.extract(b"\x89PNG", "image/png")

        assert text == "Rechnung 42"
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o"
        assert kwargs["max_tokens"] == 500
        image_part = kwargs["messages"][0]["content"][1]
        assert image_part["image_url"]["url"].startswith("data:image/png;base64,")

    def test_empty_content_is_empty_text(self) -> None:
        client = MagicMock()
        client.chat.completions.create.return_value = _make_ocr_response(None)
        adapter = OpenAIVisionOcrAdapter(client=client, model="m")
        assert adapter.extract(b"x", "image/jpeg") == ""

    def test_provider_failure_raises_extraction_error(self) -> None:
        client = MagicMock()
        client.chat.completions.create.side_effect = httpx.TimeoutException("slow")
        adapter = OpenAIVisionOcrAdapter(client=client, model="m")
        with pytest.raises(ExtractionError, match="OCR provider error"):
            adapter.extract(b"x", "image/jpeg")
