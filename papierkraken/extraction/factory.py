from typing import ClassVar

import openai

from papierkraken.config.settings import Settings
from papierkraken.extraction.base import BaseTextExtractor
from papierkraken.extraction.extractor import TextExtractor
from papierkraken.extraction.office_adapter import DocxAdapter, PlainTextAdapter
from papierkraken.extraction.openai_ocr_adapter import OpenAIVisionOcrAdapter
from papierkraken.extraction.pdfplumber_adapter import PdfPlumberAdapter
from papierkraken.extraction.pymupdf_adapter import PyMuPdfAdapter

DOCX_MIME_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


class PdfExtractorFactory:
    """Creates the correct PDF extractor based on settings."""

    ADAPTERS: ClassVar[dict[str, type[BaseTextExtractor]]] = {
        "pdfplumber": PdfPlumberAdapter,
        "pymupdf": PyMuPdfAdapter,
    }

    @classmethod
    def create(cls, settings: Settings) -> BaseTextExtractor:
        engine = settings.pdf_engine.lower()
        adapter_cls = cls.ADAPTERS.get(engine)
        if adapter_cls is None:
            raise ValueError(
                f"Unknown PDF engine '{engine}'. Choose from: {list(cls.ADAPTERS)}"
            )
        return adapter_cls()


class TextExtractorFactory:
    """Assembles the mime-type router used by the extract stage."""

    OCR_PROVIDERS: ClassVar[tuple[str, ...]] = ("openai", "none")

    @classmethod
    def create(cls, settings: Settings) -> TextExtractor:
        plain_text = PlainTextAdapter()
        adapters: dict[str, BaseTextExtractor] = {
            "application/pdf": PdfExtractorFactory.create(settings),
            DOCX_MIME_TYPE: DocxAdapter(),
            "application/xml": plain_text,
            "text/xml": plain_text,
            "text/*": plain_text,
        }
        ocr = cls._create_ocr(settings)
        if ocr is not None:
            adapters["image/*"] = ocr
        return TextExtractor(adapters)

    @classmethod
    def _create_ocr(cls, settings: Settings) -> BaseTextExtractor | None:
        provider = settings.ocr_provider.lower()
        if provider == "none":
            return None
        if provider == "openai":
            client = openai.OpenAI(
                api_key=settings.classification_openai_api_key,
                timeout=settings.classification_openai_timeout_seconds,
            )
            return OpenAIVisionOcrAdapter(
                client=client,
                model=settings.classification_openai_model_name,
                max_tokens=settings.ocr_max_tokens,
            )
        raise ValueError(
            f"Unknown OCR provider '{provider}'. Choose from: {list(cls.OCR_PROVIDERS)}"
        )
