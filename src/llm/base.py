"""Abstract base class for LLM providers and shared response parsing."""

import json
import os
import re
from abc import ABC, abstractmethod
from typing import Any, ClassVar

SYSTEM_PROMPT = (
    "You are an assistant inside a technical hiring platform. "
    "Answer strictly in the JSON shape the user message asks for.\n"
    "Return ONLY a JSON object (no markdown, no explanation)."
)

_FENCE_OPEN = re.compile(r"^```(?:json)?\s*\n?")
_FENCE_CLOSE = re.compile(r"\n?```\s*$")


def parse_json_object(raw_text: str) -> dict[str, Any]:
    """Decode a model reply into a dict, tolerating a ```json fence around it.

    Raises ValueError on malformed output or a non-object payload.
    """
    body = _FENCE_CLOSE.sub("", _FENCE_OPEN.sub("", raw_text.strip()))
    try:
        data = json.loads(body)
    except json.JSONDecodeError as e:
        msg = f"Failed to parse LLM response as JSON: {e}"
        raise ValueError(msg) from e

    if not isinstance(data, dict):
        msg = f"Expected a JSON object from LLM, got {type(data).__name__}"
        raise ValueError(msg)
    return data


class LLMProvider(ABC):
    """One chat-completion backend. Subclasses set the class attributes and ``complete``.

    Attributes:
        provider_id: Registry name (e.g. 'anthropic').
        default_model: Model used when ``complete`` gets no override.
        env_var: Environment variable holding the API key, None for keyless backends.
        extra: pyproject extra that installs the SDK.
    """

    provider_id: ClassVar[str]
    default_model: ClassVar[str]
    env_var: ClassVar[str | None] = None
    extra: ClassVar[str]

    @abstractmethod
    def complete(
        self,
        prompt: str,
        model: str | None = None,
        *,
        system: str | None = None,
    ) -> str:
        """Send one user message and return the raw reply text (expected to be JSON).

        ``model`` overrides ``default_model``; ``system`` overrides SYSTEM_PROMPT.
        """

    def _api_key(self) -> str:
        key = os.environ.get(self.env_var or "")
        if not key:
            msg = f"{self.env_var} environment variable is required"
            raise ValueError(msg)
        return key

    @staticmethod
    def _system(system: str | None) -> str:
        return SYSTEM_PROMPT if system is None else system

    def _missing_sdk(self, package: str) -> ImportError:
        msg = (
            f"{package} is required for the {self.provider_id} provider. "
            f"Install with: pip install 'assessment-pipeline[{self.extra}]'"
        )
        return ImportError(msg)
