from abc import ABC, abstractmethod

from papierkraken.classification.models import ClassificationResult


class BaseClassifier(ABC):
    """Contract for all document classifiers."""

    @abstractmethod
    def classify(self, text: str, file_name: str) -> ClassificationResult:
        """Assign a category and pull payment metadata out of a document.

        Args:
            text: Text extracted from the document (may be empty).
            file_name: Original file name as uploaded.

        Returns:
            ClassificationResult with category, confidence and metadata.

        Raises:
            ClassificationError: on any failure.
        """
