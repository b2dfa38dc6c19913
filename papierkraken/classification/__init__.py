from papierkraken.classification.base import BaseClassifier
from papierkraken.classification.classifier import Classifier
from papierkraken.classification.factory import ClassifierFactory
from papierkraken.classification.models import ClassificationMetadata, ClassificationResult

__all__ = [
    "BaseClassifier",
    "ClassificationMetadata",
    "ClassificationResult",
    "Classifier",
    "ClassifierFactory",
]
