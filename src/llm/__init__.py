"""Pluggable LLM backends, imported on first use so only the chosen SDK is needed.

    provider = get_provider("anthropic")
    data = parse_json_object(provider.complete(prompt, system=EVALUATOR_PROMPT))
"""

import importlib

from src.llm.base import LLMProvider, parse_json_object

__all__ = ["LLMProvider", "available_providers", "get_provider", "parse_json_object"]

_REGISTRY: dict[str, str] = {
    "anthropic": "src.llm.anthropic:AnthropicProvider",
    "openai": "src.llm.openai:OpenAIProvider",
    "gemini": "src.llm.gemini:GeminiProvider",
    "ollama": "src.llm.ollama:OllamaProvider",
}


def get_provider(name: str) -> LLMProvider:
    """Instantiate a registered provider. Raises ValueError for unknown names."""
    target = _REGISTRY.get(name)
    if target is None:
        msg = f"Unknown LLM provider '{name}'. Available: {', '.join(available_providers())}"
        raise ValueError(msg)
    module_path, class_name = target.split(":")
    provider_cls = getattr(importlib.import_module(module_path), class_name)
    return provider_cls()  # type: ignore[no-any-return]


def available_providers() -> list[str]:
    return sorted(_REGISTRY)
