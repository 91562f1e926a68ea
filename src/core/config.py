"""
Application settings management.

Settings are loaded from environment variables with .env file support.
Story session tuning (retry policy, pacing, durations) is loaded from
config/story_config.yaml. All configuration is validated using Pydantic.
"""

from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, ValidationInfo
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment.

    Environment variables take precedence over .env file values.
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # ==========================================================================
    # Paths
    # ==========================================================================

    config_dir: Optional[Path] = Field(
        default=None,
        description="Directory containing YAML configuration files "
        "(default: <project root>/config)",
    )
    data_dir: Path = Field(
        default=Path("data"), description="Directory for database and other data files"
    )

    # ==========================================================================
    # Database
    # ==========================================================================

    database_path: Path = Field(
        default=Path("data/stories.db"), description="Path to SQLite database file"
    )
    story_ttl_hours: int = Field(
        default=24, ge=1, description="Hours before a saved story expires"
    )
    auto_persist_analysis: bool = Field(
        default=True,
        description="Save finished stories through the persistence gateway",
    )

    # ==========================================================================
    # LLM Configuration
    # ==========================================================================
    #
    # Two-client architecture:
    # - story: generates opening and turn lines (creative, higher temperature)
    # - analysis: title, quote, mood, style match, keywords and script polish
    #
    # Defaults are defined in src/llm/client.py. Set environment variables
    # below only to override defaults (e.g., LLM_ANALYSIS_PROVIDER=deepseek)

    llm_story_provider: Optional[str] = Field(
        default=None, description="Override story LLM provider (default: anthropic)"
    )
    llm_analysis_provider: Optional[str] = Field(
        default=None,
        description="Override analysis LLM provider (default: anthropic)",
    )
    llm_timeout_seconds: Optional[float] = Field(
        default=None,
        gt=0,
        description="Network timeout for LLM calls (default: none, retry delays "
        "are the only bounded waits)",
    )

    # API Keys (required for providers you use)
    anthropic_api_key: Optional[str] = Field(
        default=None, description="Anthropic API key"
    )
    kimi_api_key: Optional[str] = Field(
        default=None, description="Kimi (Moonshot AI) API key"
    )
    deepseek_api_key: Optional[str] = Field(
        default=None, description="DeepSeek API key"
    )

    # ==========================================================================
    # Server Configuration
    # ==========================================================================

    host: str = Field(default="127.0.0.1", description="Server host address")
    port: int = Field(default=8000, ge=1, le=65535, description="Server port")
    debug: bool = Field(default=False, description="Enable debug mode")
    cors_origins: List[str] = Field(
        default_factory=lambda: ["http://localhost:3000"],
        description="Origins allowed to call the API from a browser",
    )

    # ==========================================================================
    # Live sessions
    # ==========================================================================

    session_idle_ttl_minutes: int = Field(
        default=30, ge=1, description="Minutes of inactivity before a session is evicted"
    )
    session_sweep_interval_seconds: float = Field(
        default=60.0, gt=0, description="Seconds between idle-session sweeps"
    )


# ============================================================================
# Story Configuration (from YAML)
# ============================================================================


class RetryConfig(BaseModel):
    """Bounded retry policy for generator calls."""

    max_attempts: int = Field(default=3, ge=1, le=10)
    rate_limit_delay_seconds: float = Field(
        default=5.0, ge=0, description="Fixed wait after a rate-limit failure"
    )
    unavailable_base_delay_seconds: float = Field(
        default=1.0, ge=0, description="First wait after a service-unavailable failure"
    )
    backoff_multiplier: float = Field(default=2.0, ge=1.0)


class MirroringConfig(BaseModel):
    """Word-count mirroring guidance passed to the story prompt."""

    tolerance: float = Field(default=0.15, ge=0, le=1)
    opening_min_words: int = Field(default=20, ge=1)
    opening_max_words: int = Field(default=40, ge=1)

    @field_validator("opening_max_words")
    @classmethod
    def max_not_below_min(cls, v: int, info: ValidationInfo) -> int:
        """Reject an opening range whose upper bound is below its lower bound."""
        minimum = info.data.get("opening_min_words")
        if minimum is not None and v < minimum:
            raise ValueError("opening_max_words must be >= opening_min_words")
        return v


class SessionConfig(BaseModel):
    """Interactive session configuration."""

    duration_options: List[int] = Field(
        default_factory=lambda: [30, 60, 120],
        description="Allowed session lengths in seconds",
    )
    default_duration_seconds: int = Field(default=60, ge=1)
    onboarding_steps: int = Field(default=3, ge=1)


class DuologueConfig(BaseModel):
    """Automated duologue configuration."""

    pacing_seconds: float = Field(
        default=3.0, ge=0, description="Delay between persona turns"
    )
    duration_seconds: int = Field(default=30, ge=1)
    temperature: float = Field(default=0.75, ge=0, le=2)


class PublishConfig(BaseModel):
    """Public gallery publishing rules."""

    forbidden_words: List[str] = Field(default_factory=list)


class StoryConfig(BaseModel):
    """
    Complete story configuration loaded from story_config.yaml.
    """

    retry: RetryConfig = Field(default_factory=RetryConfig)
    mirroring: MirroringConfig = Field(default_factory=MirroringConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    duologue: DuologueConfig = Field(default_factory=DuologueConfig)
    publish: PublishConfig = Field(default_factory=PublishConfig)


def get_config_dir() -> Path:
    """
    Resolve the directory holding YAML configuration.

    Returns:
        settings.config_dir when set, otherwise <project root>/config
    """
    if settings.config_dir is not None:
        return Path(settings.config_dir)
    return Path(__file__).resolve().parent.parent.parent / "config"


def load_story_config(config_path: Optional[Path] = None) -> StoryConfig:
    """
    Load story configuration from YAML file.

    Args:
        config_path: Path to story_config.yaml. If None, uses default path.

    Returns:
        StoryConfig with validated settings (defaults if the file is missing)

    Raises:
        ValueError: If config validation fails
    """
    if config_path is None:
        config_path = get_config_dir() / "story_config.yaml"

    config_path = Path(config_path).resolve()

    if not config_path.exists():
        return StoryConfig()

    with open(str(config_path)) as f:
        config_data = yaml.safe_load(f)

    if not config_data:
        return StoryConfig()

    return StoryConfig(**config_data)


# Global settings instance
settings = Settings()

# Global story config instance
story_config = load_story_config()
