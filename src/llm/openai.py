"""OpenAI LLM provider."""

import logging

from src.llm.base import LLMProvider

logger = logging.getLogger(__name__)


class OpenAIProvider(LLMProvider):
    """Chat Completions backend in JSON mode."""

    provider_id = "openai"
    default_model = "gpt-4o-mini"
    env_var = "OPENAI_API_KEY"
    extra = "openai"

    def complete(self, prompt: str, model: str | None = None, *, system: str | None = None) -> str:
        api_key = self._api_key()
        try:
            import openai
        except ImportError:
            raise self._missing_sdk("openai") from None

        chosen = model or self.default_model
        logger.debug("OpenAI request (%s, %d chars)", chosen, len(prompt))
        response = openai.OpenAI(api_key=api_key).chat.completions.create(
            model=chosen,
            temperature=0,
            response_format={"type": "json_object"},
            messages=[
                {"role": "system", "content": self._system(system)},
                {"role": "user", "content": prompt},
            ],
        )
        return response.choices[0].message.content or ""
