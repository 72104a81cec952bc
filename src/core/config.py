"""Configuration models and YAML loader for the assessment pipeline."""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

ALLOWED_PROVIDERS = {"anthropic", "openai", "gemini", "ollama"}


class DatabaseConfig(BaseModel):
    """Database configuration."""

    path: str = "data/assessments.db"


class GradingConfig(BaseModel):
    """External evaluation collaborators and their time budgets."""

    provider: str = "anthropic"
    model: str | None = None
    evaluator_timeout_s: float = Field(default=30.0, gt=0.0)
    executor_timeout_s: float = Field(default=20.0, gt=0.0)
    executor_url: str | None = None
    executor_api_key_env: str = "JUDGE0_API_KEY"

    @field_validator("provider")
    @classmethod
    def provider_known(cls, v: str) -> str:
        v = v.lower().strip()
        if v not in ALLOWED_PROVIDERS:
            msg = f"provider must be one of {sorted(ALLOWED_PROVIDERS)}, got '{v}'"
            raise ValueError(msg)
        return v


class SeverityPenalties(BaseModel):
    """Credibility deduction per flagged activity, keyed by declared severity."""

    low: float = Field(default=2.0, ge=0.0)
    medium: float = Field(default=5.0, ge=0.0)
    high: float = Field(default=10.0, ge=0.0)
    critical: float = Field(default=20.0, ge=0.0)


class ProctoringConfig(BaseModel):
    """Deduction and review-flag policy for proctoring telemetry."""

    tab_switch_penalty: float = Field(default=2.0, ge=0.0)
    copy_paste_penalty: float = Field(default=5.0, ge=0.0)
    severity_penalties: SeverityPenalties = Field(default_factory=SeverityPenalties)
    tab_switch_threshold: int = Field(default=5, ge=0)
    copy_paste_threshold: int = Field(default=3, ge=0)
    rapid_answer_seconds: float = Field(default=5.0, ge=0.0)
    rapid_answer_limit: int = Field(default=3, ge=0)
    early_completion_ratio: float = Field(default=0.3, ge=0.0, le=1.0)


class SkillGapConfig(BaseModel):
    """Severity thresholds (percent) for resume-vs-assessment reconciliation."""

    low_threshold: float = Field(default=50.0, ge=0.0, le=100.0)
    moderate_threshold: float = Field(default=70.0, ge=0.0, le=100.0)
    surface_unclaimed: bool = True

    @model_validator(mode="after")
    def thresholds_ordered(self) -> "SkillGapConfig":
        if self.low_threshold > self.moderate_threshold:
            msg = "low_threshold must not exceed moderate_threshold"
            raise ValueError(msg)
        return self


class SimilarityConfig(BaseModel):
    """Cross-candidate code comparison for coding answers."""

    threshold: float = Field(default=0.7, gt=0.0, lt=1.0)
    min_code_length: int = Field(default=20, ge=1)


class RecommendationConfig(BaseModel):
    """Internal thresholds for the advisory hiring recommendation."""

    integrity_floor: float = Field(default=70.0, ge=0.0, le=100.0)
    strong_hire_score: float = Field(default=85.0, ge=0.0, le=100.0)


class Settings(BaseModel):
    """Top-level settings loaded from YAML."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    grading: GradingConfig = Field(default_factory=GradingConfig)
    proctoring: ProctoringConfig = Field(default_factory=ProctoringConfig)
    skill_gaps: SkillGapConfig = Field(default_factory=SkillGapConfig)
    similarity: SimilarityConfig = Field(default_factory=SimilarityConfig)
    recommendation: RecommendationConfig = Field(default_factory=RecommendationConfig)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file."""
        path = Path(path)
        if not path.exists():
            msg = f"Config file not found: {path}"
            raise FileNotFoundError(msg)
        raw: dict[str, Any] = yaml.safe_load(path.read_text()) or {}
        return cls.model_validate(raw)
