"""Ollama local LLM provider (OpenAI-compatible API)."""

import logging
import os

from src.llm.base import LLMProvider

logger = logging.getLogger(__name__)

_DEFAULT_BASE_URL = "http://localhost:11434/v1"


class OllamaProvider(LLMProvider):
    """Self-hosted backend; no API key. OLLAMA_BASE_URL points at the server."""

    provider_id = "ollama"
    default_model = "llama3"
    extra = "openai"

    def complete(self, prompt: str, model: str | None = None, *, system: str | None = None) -> str:
        try:
            import openai
        except ImportError:
            raise self._missing_sdk("openai") from None

        base_url = os.environ.get("OLLAMA_BASE_URL", _DEFAULT_BASE_URL)
        chosen = model or self.default_model
        logger.debug("Ollama request (%s at %s)", chosen, base_url)
        response = openai.OpenAI(base_url=base_url, api_key="ollama").chat.completions.create(
            model=chosen,
            temperature=0,
            messages=[
                {"role": "system", "content": self._system(system)},
                {"role": "user", "content": prompt},
            ],
        )
        return response.choices[0].message.content or ""
