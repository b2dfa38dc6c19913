"""AI-backed document classifier."""

import json
from pathlib import Path

from papierkraken.classification.base import BaseClassifier
from papierkraken.classification.client_base import BaseClassificationClient
from papierkraken.classification.exceptions import ClassificationError
from papierkraken.classification.models import ClassificationResult
from papierkraken.classification.prompt_loader import load_json_schema, load_prompt_template
from papierkraken.classification.validator import validate_and_build
from papierkraken.logging.logger import Log

DEFAULT_SYSTEM_PROMPT = (
    "You are a document classification system that processes German and English documents."
)


class Classifier(BaseClassifier):
    """Classifies documents into INVOICE/TAX/COMPLAINT/OTHER using an AI provider."""

    def __init__(
        self,
        *,
        client: BaseClassificationClient,
        model: str,
        temperature: float = 0.0,
        max_text_chars: int = 12000,
        prompt_template_path: Path | None = None,
        json_schema_path: Path | None = None,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
    ) -> None:
        self._client = client
        self._model = model
        self._temperature = max(0.0, min(0.2, temperature))
        self._max_text_chars = max_text_chars
        self._system_prompt = system_prompt
        self._prompt_template = load_prompt_template(prompt_template_path)
        schema_str = load_json_schema(json_schema_path)
        self._json_schema = schema_str
        self._json_schema_dict = json.loads(schema_str)

    def classify(self, text: str, file_name: str) -> ClassificationResult:
        prompt = self._build_prompt(text, file_name)
        Log.debug(f"Classification prompt:\n{prompt}")

        raw_response = self._call_ai(prompt)
        Log.debug(f"AI raw response:\n{raw_response}")

        parsed = self._parse_json(raw_response)
        result = validate_and_build(parsed)

        Log.info(
            f"Classified '{file_name}' as {result.category.value} "
            f"(confidence {result.confidence:.2f})"
        )
        return result

    def _build_prompt(self, text: str, file_name: str) -> str:
        return self._prompt_template.format(
            extracted_text=text[: self._max_text_chars],
            file_name=file_name,
            json_schema=self._json_schema,
        )

    def _call_ai(self, prompt: str) -> str:
        return self._client.create_chat_completion(
            model=self._model,
            temperature=self._temperature,
            system_prompt=self._system_prompt,
            user_prompt=prompt,
            json_schema=self._json_schema_dict,
        )

    @staticmethod
    def _parse_json(raw: str) -> dict[str, object]:
        cleaned = raw.strip()
        if cleaned.startswith("```"):
            lines = cleaned.splitlines()
            if lines and lines[0].startswith("```"):
                lines = lines[1:]
            if lines and lines[-1].strip() == "```":
                lines = lines[:-1]
            cleaned = "\n".join(lines)

        try:
            parsed = json.loads(cleaned)
        except json.JSONDecodeError as exc:
            raise ClassificationError(f"Invalid JSON response: {exc}") from exc

        if not isinstance(parsed, dict):
            raise ClassificationError("JSON response must be an object")
        return parsed
