"""LLM-based resume parsing into the skill list the reconciler consumes."""

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

from src.llm import LLMProvider, get_provider, parse_json_object

logger = logging.getLogger(__name__)

_RESUME_SYSTEM_PROMPT = (
    "You are a resume analyzer for a technical hiring platform. Extract "
    "structured professional data from the resume text provided.\n\n"
    "Return ONLY a JSON object (no markdown, no explanation) with these fields:\n"
    "- name (string): the candidate's full name\n"
    "- email (string or null): contact email if present\n"
    "- skills (list[str]): 5-25 concrete technical skills, languages, frameworks "
    "and tools the candidate claims. Use short canonical names "
    '(e.g. "Python", "React", "PostgreSQL").\n'
    "- years_of_experience (int or null): total years of professional experience\n\n"
    "Only list skills the resume states; do not infer skills from job titles."
)


class ResumeProfile(BaseModel):
    """Structured candidate data extracted from a resume."""

    name: str = ""
    email: str | None = None
    skills: list[str] = Field(default_factory=list)
    years_of_experience: int | None = Field(default=None, ge=0)

    @field_validator("skills")
    @classmethod
    def dedupe_skills(cls, v: list[str]) -> list[str]:
        seen: set[str] = set()
        result: list[str] = []
        for skill in v:
            cleaned = skill.strip()
            if cleaned and cleaned.lower() not in seen:
                seen.add(cleaned.lower())
                result.append(cleaned)
        return result

    @classmethod
    def from_yaml(cls, path: str | Path) -> "ResumeProfile":
        """Load a previously parsed profile from a YAML file."""
        path = Path(path)
        if not path.exists():
            msg = f"Resume profile not found: {path}"
            raise FileNotFoundError(msg)
        raw: dict[str, Any] = yaml.safe_load(path.read_text()) or {}
        return cls.model_validate(raw)

    def to_yaml(self, path: str | Path) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(yaml.dump(self.model_dump(), default_flow_style=False, sort_keys=False))


def _parse_response(raw_text: str) -> ResumeProfile:
    return ResumeProfile.model_validate(parse_json_object(raw_text))


def parse_resume(
    resume_text: str,
    provider: str | LLMProvider = "anthropic",
    model: str | None = None,
) -> ResumeProfile:
    """Analyze resume text with an LLM provider and return a ResumeProfile.

    Args:
        resume_text: Plain text extracted from a resume.
        provider: Registered provider name or an LLMProvider instance.
        model: Override the provider's default model.

    Raises:
        ValueError: If the text is empty, the provider is unknown, its API key
            is missing, or the response is malformed.
        ImportError: If the provider's SDK is not installed.
    """
    if not resume_text.strip():
        msg = "resume text is empty"
        raise ValueError(msg)

    llm = get_provider(provider) if isinstance(provider, str) else provider
    logger.info("Sending resume to %s (%s)...", llm.provider_id, model or llm.default_model)
    raw_text = llm.complete(resume_text, model, system=_RESUME_SYSTEM_PROMPT)
    profile = _parse_response(raw_text)
    logger.info("Parsed resume: %d skills", len(profile.skills))
    return profile
