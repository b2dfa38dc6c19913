"""Offline classification client adapter.

Use this module as a reference when implementing new provider adapters.
Implement BaseClassificationClient and register the provider in ClassifierFactory.
"""

import json
from typing import ClassVar

from papierkraken.classification.client_base import BaseClassificationClient


class ExampleClientAdapter(BaseClassificationClient):
    """Returns a fixed, valid OTHER classification. No network calls."""

    DEFAULT_RESPONSE: ClassVar[dict[str, object]] = {
        "category": "OTHER",
        "confidence": 0.0,
        "metadata": {
            "extractedDate": None,
            "extractedAmount": None,
            "extractedVendor": None,
            "extractedDueDate": None,
            "extractedInvoiceNumber": None,
        },
    }

    def create_chat_completion(
        self,
        *,
        model: str,
        temperature: float,
        system_prompt: str,
        user_prompt: str,
        json_schema: dict[str, object],
    ) -> str:
        _ = model, temperature, system_prompt, user_prompt, json_schema
        return json.dumps(self.DEFAULT_RESPONSE)
