"""Anthropic Claude LLM provider."""

import logging

from src.llm.base import LLMProvider

logger = logging.getLogger(__name__)

_MAX_TOKENS = 1024


class AnthropicProvider(LLMProvider):
    """Messages API backend."""

    provider_id = "anthropic"
    default_model = "claude-sonnet-4-20250514"
    env_var = "ANTHROPIC_API_KEY"
    extra = "anthropic"

    def complete(self, prompt: str, model: str | None = None, *, system: str | None = None) -> str:
        api_key = self._api_key()
        try:
            import anthropic
        except ImportError:
            raise self._missing_sdk("anthropic") from None

        chosen = model or self.default_model
        logger.debug("Anthropic request (%s, %d chars)", chosen, len(prompt))
        message = anthropic.Anthropic(api_key=api_key).messages.create(
            model=chosen,
            max_tokens=_MAX_TOKENS,
            temperature=0,
            system=self._system(system),
            messages=[{"role": "user", "content": prompt}],
        )
        return message.content[0].text  # type: ignore[union-attr]
