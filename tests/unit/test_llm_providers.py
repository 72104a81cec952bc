"""Tests for LLM provider adapter pattern, registry and JSON parsing."""

from unittest.mock import MagicMock, patch

import pytest

from src.llm import available_providers, get_provider, parse_json_object
from src.llm.base import SYSTEM_PROMPT, LLMProvider


# ---------------------------------------------------------------------------
# Registry tests
# ---------------------------------------------------------------------------
class TestProviderRegistry:
    @pytest.mark.parametrize("name", ["anthropic", "openai", "gemini", "ollama"])
    def test_get_provider(self, name: str) -> None:
        provider = get_provider(name)
        assert isinstance(provider, LLMProvider)
        assert provider.provider_id == name

    def test_unknown_provider_raises(self) -> None:
        with pytest.raises(ValueError, match="Unknown LLM provider 'nope'"):
            get_provider("nope")

    def test_available_providers_sorted(self) -> None:
        assert available_providers() == ["anthropic", "gemini", "ollama", "openai"]


# ---------------------------------------------------------------------------
# JSON parsing
# ---------------------------------------------------------------------------
class TestParseJsonObject:
    def test_plain_json(self) -> None:
        assert parse_json_object('{"score": 7}') == {"score": 7}

    def test_markdown_fenced(self) -> None:
        raw = '```json\n{"score": 7, "feedback": "ok"}\n```'
        assert parse_json_object(raw) == {"score": 7, "feedback": "ok"}

    def test_malformed_raises(self) -> None:
        with pytest.raises(ValueError, match="Failed to parse LLM response"):
            parse_json_object("not json at all")

    def test_non_object_raises(self) -> None:
        with pytest.raises(ValueError, match="Expected a JSON object"):
            parse_json_object("[1, 2, 3]")


# ---------------------------------------------------------------------------
# Base class helpers
# ---------------------------------------------------------------------------
class _EchoProvider(LLMProvider):
    provider_id = "echo"
    default_model = "echo-1"
    env_var = "ECHO_KEY"
    extra = "echo"

    def complete(self, prompt: str, model: str | None = None, *, system: str | None = None) -> str:
        return f"{self._api_key()}|{self._system(system)}|{prompt}"


class TestProviderBase:
    def test_key_and_system_fallback(self) -> None:
        with patch.dict("os.environ", {"ECHO_KEY": "k"}):
            assert _EchoProvider().complete("hi") == f"k|{SYSTEM_PROMPT}|hi"
            assert _EchoProvider().complete("hi", system="") == "k||hi"

    def test_missing_sdk_names_extra(self) -> None:
        err = _EchoProvider()._missing_sdk("echo-sdk")
        assert isinstance(err, ImportError)
        assert "pip install 'assessment-pipeline[echo]'" in str(err)


# ---------------------------------------------------------------------------
# Missing key / SDK handling
# ---------------------------------------------------------------------------
class TestAnthropicProvider:
    def test_metadata(self) -> None:
        provider = get_provider("anthropic")
        assert provider.default_model == "claude-sonnet-4-20250514"
        assert provider.env_var == "ANTHROPIC_API_KEY"

    def test_missing_api_key(self) -> None:
        provider = get_provider("anthropic")
        with (
            patch.dict("os.environ", {}, clear=True),
            pytest.raises(ValueError, match="ANTHROPIC_API_KEY"),
        ):
            provider.complete("answer text")

    def test_missing_sdk(self) -> None:
        provider = get_provider("anthropic")
        with (
            patch.dict("os.environ", {"ANTHROPIC_API_KEY": "test-key"}),
            patch.dict("sys.modules", {"anthropic": None}),
            pytest.raises(ImportError, match="anthropic is required"),
        ):
            provider.complete("answer text")


class TestOpenAIProvider:
    def test_metadata(self) -> None:
        provider = get_provider("openai")
        assert provider.env_var == "OPENAI_API_KEY"

    def test_missing_api_key(self) -> None:
        provider = get_provider("openai")
        with (
            patch.dict("os.environ", {}, clear=True),
            pytest.raises(ValueError, match="OPENAI_API_KEY"),
        ):
            provider.complete("answer text")

    def test_missing_sdk(self) -> None:
        provider = get_provider("openai")
        with (
            patch.dict("os.environ", {"OPENAI_API_KEY": "test-key"}),
            patch.dict("sys.modules", {"openai": None}),
            pytest.raises(ImportError, match="openai is required"),
        ):
            provider.complete("answer text")


class TestGeminiProvider:
    def test_metadata(self) -> None:
        provider = get_provider("gemini")
        assert provider.default_model == "gemini-2.5-flash"
        assert provider.env_var == "GOOGLE_API_KEY"

    def test_missing_api_key(self) -> None:
        provider = get_provider("gemini")
        with (
            patch.dict("os.environ", {}, clear=True),
            pytest.raises(ValueError, match="GOOGLE_API_KEY"),
        ):
            provider.complete("answer text")

    def test_missing_sdk(self) -> None:
        provider = get_provider("gemini")
        with (
            patch.dict("os.environ", {"GOOGLE_API_KEY": "test-key"}),
            patch.dict("sys.modules", {"google": None}),
            pytest.raises(ImportError, match="google-genai is required"),
        ):
            provider.complete("answer text")


class TestOllamaProvider:
    def test_no_api_key_needed(self) -> None:
        provider = get_provider("ollama")
        assert provider.default_model == "llama3"
        assert provider.env_var is None

    def test_missing_sdk(self) -> None:
        provider = get_provider("ollama")
        with (
            patch.dict("sys.modules", {"openai": None}),
            pytest.raises(ImportError, match="openai is required"),
        ):
            provider.complete("answer text")


# ---------------------------------------------------------------------------
# system kwarg and request shape
# ---------------------------------------------------------------------------
class TestCompleteSystemKwarg:
    def _mock_anthropic(self) -> tuple[MagicMock, MagicMock]:
        mock_client = MagicMock()
        mock_message = MagicMock()
        mock_message.content = [MagicMock(text="ok")]
        mock_client.messages.create.return_value = mock_message
        mock_anthropic = MagicMock()
        mock_anthropic.Anthropic.return_value = mock_client
        return mock_anthropic, mock_client

    def test_anthropic_uses_custom_system(self) -> None:
        provider = get_provider("anthropic")
        mock_anthropic, mock_client = self._mock_anthropic()

        with (
            patch.dict("os.environ", {"ANTHROPIC_API_KEY": "key"}),
            patch.dict("sys.modules", {"anthropic": mock_anthropic}),
        ):
            assert provider.complete("text", system="grade this") == "ok"

        call_kwargs = mock_client.messages.create.call_args.kwargs
        assert call_kwargs["system"] == "grade this"
        assert call_kwargs["temperature"] == 0

    def test_anthropic_falls_back_to_system_prompt(self) -> None:
        provider = get_provider("anthropic")
        mock_anthropic, mock_client = self._mock_anthropic()

        with (
            patch.dict("os.environ", {"ANTHROPIC_API_KEY": "key"}),
            patch.dict("sys.modules", {"anthropic": mock_anthropic}),
        ):
            provider.complete("text")

        assert mock_client.messages.create.call_args.kwargs["system"] == SYSTEM_PROMPT

    def test_anthropic_model_override(self) -> None:
        provider = get_provider("anthropic")
        mock_anthropic, mock_client = self._mock_anthropic()

        with (
            patch.dict("os.environ", {"ANTHROPIC_API_KEY": "key"}),
            patch.dict("sys.modules", {"anthropic": mock_anthropic}),
        ):
            provider.complete("text", "claude-haiku")

        assert mock_client.messages.create.call_args.kwargs["model"] == "claude-haiku"

    def test_openai_requests_json_object(self) -> None:
        provider = get_provider("openai")
        mock_openai = MagicMock()
        mock_resp = MagicMock()
        mock_resp.choices[0].message.content = "ok"
        mock_openai.OpenAI.return_value.chat.completions.create.return_value = mock_resp

        with (
            patch.dict("os.environ", {"OPENAI_API_KEY": "key"}),
            patch.dict("sys.modules", {"openai": mock_openai}),
        ):
            provider.complete("text", system="grade this")

        kwargs = mock_openai.OpenAI.return_value.chat.completions.create.call_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}
        system_msg = next(m for m in kwargs["messages"] if m["role"] == "system")
        assert system_msg["content"] == "grade this"

    def test_gemini_uses_custom_system(self) -> None:
        provider = get_provider("gemini")
        mock_genai = MagicMock()
        mock_genai.Client.return_value.models.generate_content.return_value.text = "ok"
        mock_google = MagicMock()
        mock_google.genai = mock_genai

        with (
            patch.dict("os.environ", {"GOOGLE_API_KEY": "key"}),
            patch.dict(
                "sys.modules",
                {"google": mock_google, "google.genai": mock_genai, "google.genai.types": mock_genai.types},
            ),
        ):
            assert provider.complete("text", system="grade this") == "ok"

        mock_genai.types.GenerateContentConfig.assert_called_once()
        config_kwargs = mock_genai.types.GenerateContentConfig.call_args.kwargs
        assert config_kwargs["system_instruction"] == "grade this"
        assert config_kwargs["response_mime_type"] == "application/json"

    def test_ollama_uses_base_url_env(self) -> None:
        provider = get_provider("ollama")
        mock_openai = MagicMock()
        mock_resp = MagicMock()
        mock_resp.choices[0].message.content = "ok"
        mock_openai.OpenAI.return_value.chat.completions.create.return_value = mock_resp

        with (
            patch.dict("os.environ", {"OLLAMA_BASE_URL": "http://gpu-box:11434/v1"}),
            patch.dict("sys.modules", {"openai": mock_openai}),
        ):
            provider.complete("text", system="grade this")

        assert mock_openai.OpenAI.call_args.kwargs["base_url"] == "http://gpu-box:11434/v1"
        messages = mock_openai.OpenAI.return_value.chat.completions.create.call_args.kwargs[
            "messages"
        ]
        system_msg = next(m for m in messages if m["role"] == "system")
        assert system_msg["content"] == "grade this"
