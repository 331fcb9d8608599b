"""LLM provider protocol and shared JSON-response parsing."""

import json
import re
from typing import Any, Protocol, TypeVar

from pydantic import BaseModel

T = TypeVar("T", bound=BaseModel)

JSON_INSTRUCTION = (
    "Respond with a single JSON object that conforms to the schema. "
    "No markdown, no code fence, only raw JSON."
)


class LLMProvider(Protocol):
    """Protocol for script-generation backends (OpenAI, Anthropic)."""

    def complete(self, prompt: str, **kwargs: Any) -> str:
        """Return raw text completion."""
        ...

    def complete_structured(self, prompt: str, schema: type[T], **kwargs: Any) -> T:
        """Return completion parsed into the given Pydantic model (JSON)."""
        ...


def structured_prompt(prompt: str, schema: type[BaseModel]) -> str:
    """Append the JSON-only instruction and the target schema to *prompt*."""
    return f"{prompt}\n\nJSON schema:\n{json.dumps(schema.model_json_schema())}\n\n{JSON_INSTRUCTION}"


def parse_json_response(raw: str, schema: type[T]) -> T:
    text = raw.strip()
    # Strip possible markdown code block
    if text.startswith("```"):
        text = re.sub(r"^```\w*\n?", "", text)
        text = re.sub(r"\n?```\s*$", "", text)
    return schema.model_validate(json.loads(text))
