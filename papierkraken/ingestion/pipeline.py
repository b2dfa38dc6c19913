from abc import ABC, abstractmethod
from dataclasses import dataclass

from papierkraken.classification.models import ClassificationResult
from papierkraken.database.models import DocumentRecord
from papierkraken.ingestion.models import StagedUpload


@dataclass(slots=True)
class PipelineContext:
    owner_id: int
    original_name: str
    mime_type: str
    byte_size: int
    category_hint: str | None = None
    is_offline: bool = False
    staged: StagedUpload | None = None
    storage_key: str | None = None
    raw_bytes: bytes = b""
    document: DocumentRecord | None = None
    extracted_text: str = ""
    classification: ClassificationResult | None = None
    finished: bool = False

    @property
    def committed(self) -> bool:
        """True once a Document row exists for this upload."""
        return self.document is not None


class PipelineStep(ABC):
    @abstractmethod
    def run(self, context: PipelineContext) -> PipelineContext:
        raise NotImplementedError

    @property
    def name(self) -> str:
        return type(self).__name__
