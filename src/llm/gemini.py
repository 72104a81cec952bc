"""Google Gemini LLM provider (google-genai SDK)."""

import logging

from src.llm.base import LLMProvider

logger = logging.getLogger(__name__)


class GeminiProvider(LLMProvider):
    """generate_content backend with a JSON response MIME type."""

    provider_id = "gemini"
    default_model = "gemini-2.5-flash"
    env_var = "GOOGLE_API_KEY"
    extra = "gemini"

    def complete(self, prompt: str, model: str | None = None, *, system: str | None = None) -> str:
        api_key = self._api_key()
        try:
            from google import genai
            from google.genai import types as genai_types
        except ImportError:
            raise self._missing_sdk("google-genai") from None

        chosen = model or self.default_model
        logger.debug("Gemini request (%s, %d chars)", chosen, len(prompt))
        response = genai.Client(api_key=api_key).models.generate_content(
            model=chosen,
            contents=prompt,
            config=genai_types.GenerateContentConfig(
                system_instruction=self._system(system),
                temperature=0,
                response_mime_type="application/json",
            ),
        )
        return response.text or ""
