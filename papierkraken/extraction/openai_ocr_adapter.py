import base64

import httpx
import openai

from papierkraken.extraction.base import BaseTextExtractor
from papierkraken.extraction.exceptions import ExtractionError

OCR_INSTRUCTION = (
    "Extract all text from the following document. Ignore watermarks and "
    "format the text clearly. Keep the original structure as far as possible."
)


class OpenAIVisionOcrAdapter(BaseTextExtractor):
    """Image OCR through a vision-capable chat completion model."""

    def __init__(self, *, client: openai.OpenAI, model: str, max_tokens: int = 1000) -> None:
        self._client = client
        self._model = model
        self._max_tokens = max_tokens

    def extract(self, data: bytes, mime_type: str) -> str:
        encoded = base64.b64encode(data).decode("ascii")
        try:
            response = self._client.chat.completions.create(
                model=self._model,
                max_tokens=self._max_tokens,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": OCR_INSTRUCTION},
                            {
                                "type": "image_url",
                                "image_url": {"url": f"data:{mime_type};base64,{encoded}"},
                            },
                        ],
                    }
                ],
            )
        except (openai.APIError, httpx.HTTPError) as exc:
            raise ExtractionError(f"OCR provider error: {exc}") from exc

        if not response.choices:
            raise ExtractionError("OCR provider returned no choices")
        return (response.choices[0].message.content or "").strip()
