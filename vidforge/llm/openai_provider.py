"""OpenAI provider; structured output via JSON mode."""

from typing import Any

from openai import OpenAI

from vidforge.llm.base import T, parse_json_response, structured_prompt


class OpenAIProvider:
    def __init__(
        self,
        api_key: str | None = None,
        model: str = "gpt-4o-mini",
    ):
        self._client = OpenAI(api_key=api_key)
        self._model = model

    def complete(self, prompt: str, **kwargs: Any) -> str:
        response = self._client.chat.completions.create(
            model=kwargs.pop("model", None) or self._model,
            messages=[{"role": "user", "content": prompt}],
            **kwargs,
        )
        return response.choices[0].message.content or ""

    def complete_structured(self, prompt: str, schema: type[T], **kwargs: Any) -> T:
        raw = self.complete(
            structured_prompt(prompt, schema),
            response_format={"type": "json_object"},
            **kwargs,
        )
        return parse_json_response(raw, schema)
