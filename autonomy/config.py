"""
Configuration for autonomy.

Settings are read from environment variables (prefix ``AUTONOMY_``, nested
sections separated by ``__``) and an optional ``.env`` file, e.g.::

    AUTONOMY_LLM__MODEL=ollama/llama3.1:8b
    AUTONOMY_SCHEDULER__REASONING_TIMEOUT=60
    AUTONOMY_EXPERIENCE__SIMILARITY_THRESHOLD=0.75
"""

from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMConfig(BaseModel):
    """Backend used for the reasoning operation."""

    provider: str = "litellm"
    model: str = "gpt-4o-mini"
    api_key: Optional[str] = None
    api_base: Optional[str] = None
    max_tokens: int = Field(default=4096, ge=1)
    temperature: float = Field(default=0.2, ge=0.0, le=2.0)
    timeout: int = Field(default=120, ge=1)


class SchedulerConfig(BaseModel):
    """Orchestration scheduler settings."""

    # Ready-set wait: exponential backoff between these bounds (seconds)
    poll_initial_delay: float = Field(default=0.05, gt=0)
    poll_max_delay: float = Field(default=2.0, gt=0)

    reasoning_timeout: float = Field(default=120.0, gt=0)
    reasoning_max_retries: int = Field(default=2, ge=0)
    reasoning_retry_delay: float = Field(default=1.0, ge=0)

    max_parallel_tasks: int = Field(default=4, ge=1)

    # Store the synthesized answer back into the experience network
    record_experiences: bool = True


class ExperienceConfig(BaseModel):
    """Collective experience network settings."""

    similarity_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    # Fraction of the threshold needed to connect two nodes
    connection_ratio: float = Field(default=0.5, ge=0.0, le=1.0)
    feedback_scale: int = Field(default=5, ge=0)
    prediction_window: int = Field(default=5, ge=1)
    max_predicted_needs: int = Field(default=3, ge=1)
    suggestions_per_need: int = Field(default=3, ge=1)
    report_size: int = Field(default=10, ge=1)

    @property
    def connection_threshold(self) -> float:
        return self.similarity_threshold * self.connection_ratio


class AutonomyConfig(BaseSettings):
    """Top-level settings."""

    model_config = SettingsConfigDict(
        env_prefix="AUTONOMY_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
    )

    llm: LLMConfig = Field(default_factory=LLMConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    experience: ExperienceConfig = Field(default_factory=ExperienceConfig)
    log_level: str = "INFO"


_config: Optional[AutonomyConfig] = None


def get_config(reload: bool = False) -> AutonomyConfig:
    """
    Get the process-wide configuration.

    Args:
        reload: Re-read the environment even if already loaded

    Returns:
        AutonomyConfig
    """
    global _config
    if _config is None or reload:
        _config = AutonomyConfig()
    return _config


def reset_config():
    """Forget the cached configuration (used by tests)."""
    global _config
    _config = None
