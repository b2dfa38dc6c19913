from papierkraken.errors import ClassificationDegraded


class ClassificationError(ClassificationDegraded):
    """Raised when classification fails. Callers degrade to the fallback result."""


class ClassificationValidationError(ClassificationError):
    """Raised when the provider response violates the classification contract."""


class ClassificationNetworkError(ClassificationError):
    """Raised when the AI provider call fails due to network/infrastructure issues."""
