from typing import Any

import httpx
import openai

from papierkraken.classification.client_base import BaseClassificationClient
from papierkraken.classification.exceptions import (
    ClassificationError,
    ClassificationNetworkError,
)
from papierkraken.logging.logger import Log


class OpenAIClientAdapter(BaseClassificationClient):
    """Classification AI client adapter built on the OpenAI-compatible chat API."""

    def __init__(
        self,
        *,
        api_key: str,
        timeout_seconds: int,
        base_url: str | None = None,
    ) -> None:
        self._client = self._build_client(
            api_key=api_key,
            timeout_seconds=timeout_seconds,
            base_url=base_url,
        )

    @staticmethod
    def _build_client(
        *,
        api_key: str,
        timeout_seconds: int,
        base_url: str | None,
    ) -> openai.OpenAI:
        return openai.OpenAI(
            api_key=api_key,
            timeout=timeout_seconds,
            base_url=base_url,
            max_retries=0,
        )

    def create_chat_completion(
        self,
        *,
        model: str,
        temperature: float,
        system_prompt: str,
        user_prompt: str,
        json_schema: dict[str, object],
    ) -> str:
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]
        try:
            response = self._client.chat.completions.create(
                model=model,
                temperature=temperature,
                response_format=_strict_schema_format(json_schema),
                messages=messages,
            )
        except (openai.APIConnectionError, httpx.ConnectError, httpx.TimeoutException) as exc:
            raise ClassificationNetworkError(
                f"Classification provider network error: {type(exc).__name__}: {exc}"
            ) from exc
        except openai.APIError as exc:
            raise ClassificationNetworkError(
                f"Classification provider API error: {exc}"
            ) from exc
        return _first_message_content(response)


class AzureOpenAIClientAdapter(OpenAIClientAdapter):
    """Same chat contract against an Azure OpenAI deployment."""

    def __init__(
        self,
        *,
        api_key: str,
        timeout_seconds: int,
        endpoint: str,
        api_version: str,
    ) -> None:
        self._client = openai.AzureOpenAI(
            api_key=api_key,
            azure_endpoint=endpoint,
            api_version=api_version,
            timeout=timeout_seconds,
            max_retries=0,
        )


def _strict_schema_format(json_schema: dict[str, object]) -> dict[str, object]:
    return {
        "type": "json_schema",
        "json_schema": {
            "name": "document_classification",
            "strict": True,
            "schema": json_schema,
        },
    }


def _first_message_content(response: Any) -> str:
    if not response.choices:
        raise ClassificationError("Classification provider returned no choices")
    content = response.choices[0].message.content
    if content is None:
        raise ClassificationError("Classification provider returned an empty response")
    Log.debug(f"Classification raw response: {content}")
    return content
