"""Anthropic provider; structured output by JSON instruction and parse."""

from typing import Any

from anthropic import Anthropic

from vidforge.llm.base import T, parse_json_response, structured_prompt


class AnthropicProvider:
    def __init__(
        self,
        api_key: str | None = None,
        model: str = "claude-3-5-sonnet-20241022",
    ):
        self._client = Anthropic(api_key=api_key)
        self._model = model

    def complete(self, prompt: str, **kwargs: Any) -> str:
        response = self._client.messages.create(
            model=kwargs.get("model") or self._model,
            max_tokens=kwargs.get("max_tokens", 4096),
            messages=[{"role": "user", "content": prompt}],
        )
        return "".join(block.text for block in response.content if block.type == "text")

    def complete_structured(self, prompt: str, schema: type[T], **kwargs: Any) -> T:
        raw = self.complete(structured_prompt(prompt, schema), **kwargs)
        return parse_json_response(raw, schema)
