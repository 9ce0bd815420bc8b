"""
Configuration management for the exam grading pipeline.

Uses Pydantic Settings for type-safe configuration loading from environment variables.
All configuration is validated at startup to fail fast on misconfiguration.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RelevanceFailurePolicy(str, Enum):
    """What the relevance gate does when its backend cannot answer."""

    FAIL_OPEN = "fail_open"  # Treat the answer as relevant and keep grading
    FAIL_CLOSED = "fail_closed"  # Treat the answer as irrelevant


class BackendConfig(BaseModel):
    """Connection details for one OpenAI-compatible scoring backend."""

    model_config = ConfigDict(frozen=True)

    name: str
    api_key: str
    base_url: str
    model: str
    temperature: float = 0.0
    max_tokens: int = 2048
    max_retries: int = 3
    timeout_seconds: float = 60.0


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings are validated at startup. Missing required fields
    will raise clear validation errors.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # Rule-backed Backend (structured, low-variance evaluations)
    # ==========================================================================
    rule_backend_api_key: str = Field(
        default="ollama",
        min_length=1,
        description="API key for the rule-backed backend (local hosts accept any value)",
    )

    rule_backend_base_url: str = Field(
        default="http://localhost:11434/v1",
        description="Base URL of the rule-backed backend's OpenAI-compatible API",
    )

    rule_backend_model: str = Field(
        default="llama3.2",
        description="Model used for relevance, marks, points, numerical and diagram checks",
    )

    rule_backend_temperature: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Sampling temperature for the rule-backed backend",
    )

    # ==========================================================================
    # Reasoning Backend (point of view, originality, career mapping)
    # ==========================================================================
    reasoning_backend_api_key: str = Field(
        ...,
        min_length=10,
        description="API key for the reasoning backend",
    )

    reasoning_backend_base_url: str = Field(
        default="https://api.sarvam.ai/v1",
        description="Base URL of the reasoning backend's OpenAI-compatible API",
    )

    reasoning_backend_model: str = Field(
        default="sarvam-m",
        description="Model used for point-of-view, originality and career analysis",
    )

    reasoning_backend_temperature: float = Field(
        default=0.2,
        ge=0.0,
        le=1.0,
        description="Sampling temperature for the reasoning backend",
    )

    # ==========================================================================
    # Shared Backend Configuration
    # ==========================================================================
    backend_max_retries: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Retries for rate-limited or unreachable backends",
    )

    backend_timeout_seconds: float = Field(
        default=60.0,
        gt=0.0,
        description="Per-request timeout for backend calls",
    )

    backend_max_tokens: int = Field(
        default=2048,
        ge=64,
        description="Maximum tokens a backend may return per call",
    )

    # ==========================================================================
    # Scoring Configuration
    # ==========================================================================
    relevance_threshold: float = Field(
        default=40.0,
        ge=0.0,
        le=100.0,
        description="Relevance score at or above which an answer is graded",
    )

    relevance_failure_policy: RelevanceFailurePolicy = Field(
        default=RelevanceFailurePolicy.FAIL_OPEN,
        description="Outcome of the relevance gate when its backend fails",
    )

    keyword_stuffing_threshold: float = Field(
        default=8.0,
        gt=0.0,
        le=100.0,
        description="Keyword density (percent of words) above which stuffing is flagged",
    )

    default_min_words: int = Field(
        default=20,
        ge=1,
        description="Minimum word count assumed when a question declares none",
    )

    ai_quality_base_weight: float = Field(
        default=0.05,
        ge=0.0,
        le=1.0,
        description="Share of max points the AI-quality component gets with no keyword evidence",
    )

    ai_quality_coverage_weight: float = Field(
        default=0.15,
        ge=0.0,
        le=1.0,
        description="Extra share of max points the AI-quality component gains at full keyword coverage",
    )

    # ==========================================================================
    # Attempt Aggregation Configuration
    # ==========================================================================
    career_subject_terms: tuple[str, ...] = Field(
        default=("ai", "career", "industry"),
        description="Subject-tag words that route a question into career mapping",
    )

    # ==========================================================================
    # Runtime Configuration
    # ==========================================================================
    max_workers: int = Field(
        default=4,
        ge=1,
        le=32,
        description="Answers graded concurrently within one attempt",
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level for the grading pipeline",
    )

    output_directory: Path = Field(
        default=Path("./output"),
        description="Directory for attempt reports",
    )

    @field_validator("rule_backend_base_url", "reasoning_backend_base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Ensure base URL doesn't have trailing slash."""
        return v.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize and check the logging level name."""
        level = v.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator("career_subject_terms")
    @classmethod
    def validate_career_terms(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        """Lower-case terms and drop blanks."""
        return tuple(t.strip().lower() for t in v if t.strip())

    def rule_backend(self) -> BackendConfig:
        """Connection details for the rule-backed backend."""
        return BackendConfig(
            name="rule-backed",
            api_key=self.rule_backend_api_key,
            base_url=self.rule_backend_base_url,
            model=self.rule_backend_model,
            temperature=self.rule_backend_temperature,
            max_tokens=self.backend_max_tokens,
            max_retries=self.backend_max_retries,
            timeout_seconds=self.backend_timeout_seconds,
        )

    def reasoning_backend(self) -> BackendConfig:
        """Connection details for the reasoning backend."""
        return BackendConfig(
            name="reasoning",
            api_key=self.reasoning_backend_api_key,
            base_url=self.reasoning_backend_base_url,
            model=self.reasoning_backend_model,
            temperature=self.reasoning_backend_temperature,
            max_tokens=self.backend_max_tokens,
            max_retries=self.backend_max_retries,
            timeout_seconds=self.backend_timeout_seconds,
        )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses LRU cache to ensure settings are only loaded once.
    """
    return Settings()
