"""LLM adapter layer: OpenAI and Anthropic behind a common protocol."""

from vidforge.config import Settings
from vidforge.llm.anthropic_provider import AnthropicProvider
from vidforge.llm.base import LLMProvider, parse_json_response
from vidforge.llm.openai_provider import OpenAIProvider


def get_provider(provider_name: str, **kwargs: object) -> LLMProvider:
    """Return the configured LLM provider. provider_name: 'openai' | 'anthropic'."""
    if provider_name.lower() == "anthropic":
        return AnthropicProvider(**kwargs)
    return OpenAIProvider(**kwargs)


def get_provider_from_settings(settings: Settings) -> LLMProvider:
    name = settings.vidforge_llm_provider.lower()
    if name == "anthropic":
        return get_provider(name, api_key=settings.anthropic_api_key, model=settings.vidforge_anthropic_model)
    return get_provider(name, api_key=settings.openai_api_key, model=settings.vidforge_openai_model)


__all__ = [
    "AnthropicProvider",
    "LLMProvider",
    "OpenAIProvider",
    "get_provider",
    "get_provider_from_settings",
    "parse_json_response",
]
