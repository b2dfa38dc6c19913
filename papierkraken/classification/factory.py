from typing import ClassVar

from papierkraken.classification.base import BaseClassifier
from papierkraken.classification.classifier import Classifier
from papierkraken.classification.client_base import BaseClassificationClient
from papierkraken.classification.example_client_adapter import ExampleClientAdapter
from papierkraken.classification.openai_client_adapter import (
    AzureOpenAIClientAdapter,
    OpenAIClientAdapter,
)
from papierkraken.config.settings import Settings


class ClassifierFactory:
    """Creates the configured classifier."""

    PROVIDERS: ClassVar[tuple[str, ...]] = ("example", "openai", "azure", "openai_compatible")

    @classmethod
    def create(cls, settings: Settings) -> BaseClassifier:
        """Create a configured classifier from application settings."""
        provider = settings.classification_provider.lower()
        return Classifier(
            client=cls._create_client(provider, settings),
            model=cls._resolve_model_name(provider, settings),
            temperature=settings.classification_openai_temperature
            if provider == "openai"
            else 0.0,
            max_text_chars=settings.classification_max_text_chars,
        )

    @classmethod
    def _create_client(cls, provider: str, settings: Settings) -> BaseClassificationClient:
        if provider == "example":
            return ExampleClientAdapter()
        if provider == "openai":
            return OpenAIClientAdapter(
                api_key=settings.classification_openai_api_key,
                timeout_seconds=settings.classification_openai_timeout_seconds,
                base_url=None,
            )
        if provider == "azure":
            endpoint = settings.classification_azure_endpoint.strip()
            if not endpoint:
                raise ValueError(
                    "classification_azure_endpoint is required for classification_provider=azure"
                )
            return AzureOpenAIClientAdapter(
                api_key=settings.classification_azure_api_key,
                timeout_seconds=settings.classification_azure_timeout_seconds,
                endpoint=endpoint,
                api_version=settings.classification_azure_api_version,
            )
        if provider == "openai_compatible":
            url = settings.classification_openai_compatible_base_url.strip()
            if not url:
                raise ValueError(
                    "classification_openai_compatible_base_url is required for "
                    "classification_provider=openai_compatible"
                )
            return OpenAIClientAdapter(
                api_key=settings.classification_openai_compatible_api_key,
                timeout_seconds=settings.classification_openai_compatible_timeout_seconds,
                base_url=url,
            )
        raise ValueError(
            f"Unknown classification provider '{provider}'. Choose from: {list(cls.PROVIDERS)}"
        )

    @classmethod
    def _resolve_model_name(cls, provider: str, settings: Settings) -> str:
        key_map = {
            "example": "example",
            "openai": settings.classification_openai_model_name,
            "azure": settings.classification_azure_deployment_name,
            "openai_compatible": settings.classification_openai_compatible_model_name,
        }
        return key_map.get(provider, "") or ""
