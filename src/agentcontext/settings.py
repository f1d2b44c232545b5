import logging
from typing import Dict, Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import CompactionStrategy, ContextThresholds

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application configuration."""

    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    context_hard_limit: int = Field(default=1_000_000, ge=0)
    context_rot_threshold: int = Field(default=200_000, ge=0)
    context_compaction_trigger: int = Field(default=128_000, ge=0)
    context_summarization_trigger: int = Field(default=150_000, ge=0)
    context_preserve_recent_tool_calls: int = Field(default=5, ge=0)

    compaction_keep_aggressive: int = Field(default=5, ge=0)
    compaction_keep_balanced: int = Field(default=10, ge=0)
    compaction_keep_conservative: int = Field(default=20, ge=0)
    auto_compact: bool = False

    chars_per_token: int = Field(default=4, gt=0)
    summary_goal_preview_chars: int = Field(default=200, gt=0)
    summary_stop_point_preview_chars: int = Field(default=100, gt=0)

    summarizer: Literal["heuristic", "openai"] = "heuristic"
    openai_api_key: str | None = None
    openai_base_url: str | None = "https://api.openai.com/v1"
    summary_model: str = "gpt-4o-mini"
    summary_request_timeout_seconds: float = 60.0
    summary_transcript_chars: int = Field(default=2000, gt=0)

    summarize_state_system_prompt: str = (
        "You are a helpful assistant that creates concise summaries of agent "
        "sessions so the agent can continue where it left off. Analyze the "
        "conversation and return a JSON object with keys: modified_files (array "
        "of file paths), user_goal (string), last_stop_point (string), "
        "key_decisions (array), unresolved_issues (array), next_steps (array). "
        "Only include information that is present in the conversation."
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="",
        extra="ignore",
    )

    @model_validator(mode="after")
    def _warn_on_threshold_order(self) -> "Settings":
        ordered = [
            self.context_compaction_trigger,
            self.context_summarization_trigger,
            self.context_rot_threshold,
            self.context_hard_limit,
        ]
        if ordered != sorted(ordered):
            logger.warning(
                "Context thresholds are not increasing "
                "(compaction=%s summarization=%s rot=%s hard=%s)",
                *ordered,
            )
        return self

    def context_thresholds(self) -> ContextThresholds:
        """Watermarks for a new session."""
        return ContextThresholds(
            compaction_trigger=self.context_compaction_trigger,
            summarization_trigger=self.context_summarization_trigger,
            rot_threshold=self.context_rot_threshold,
            hard_limit=self.context_hard_limit,
            preserve_recent_tool_calls=self.context_preserve_recent_tool_calls,
        )

    def keep_windows(self) -> Dict[CompactionStrategy, int]:
        return {
            CompactionStrategy.AGGRESSIVE: self.compaction_keep_aggressive,
            CompactionStrategy.BALANCED: self.compaction_keep_balanced,
            CompactionStrategy.CONSERVATIVE: self.compaction_keep_conservative,
        }


def get_settings() -> Settings:
    """Return the application settings singleton (loaded from env / .env)."""
    global _SETTINGS
    try:
        return _SETTINGS
    except NameError:
        _SETTINGS = Settings()
        return _SETTINGS


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    global _SETTINGS
    try:
        del _SETTINGS
    except NameError:
        pass
