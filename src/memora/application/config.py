from pathlib import Path
from typing import Any, Literal

from pydantic import Field, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from memora.domain import constants as c
from memora.domain.srs.policy import PolicyConfig

CONFIG_FILES = [
    Path.home() / ".config/memora/config.toml",
    Path.home() / ".memora.toml",
]


class AppConfig(BaseSettings):
    """
    Configuration model for memora.
    Supports loading from:
    1. Environment variables (MEMORA_*)
    2. Config file (~/.config/memora/config.toml)
    3. Manual overrides (CLI / API)
    """

    model_config = SettingsConfigDict(
        env_prefix="MEMORA_",
        extra="ignore",
    )

    # Interval bounds (days)
    min_interval_days: int = Field(default=c.MIN_INTERVAL_DAYS, ge=1)
    initial_interval_days: int = Field(default=c.INITIAL_INTERVAL_DAYS, ge=1)
    max_interval_days: int = Field(default=c.MAX_INTERVAL_DAYS, le=c.MAX_INTERVAL_DAYS)

    # Ease factor bounds
    min_ease_factor: float = Field(default=c.MIN_EASE_FACTOR, ge=c.MIN_EASE_FACTOR)
    default_ease_factor: float = c.DEFAULT_EASE_FACTOR
    max_ease_factor: float = Field(default=c.MAX_EASE_FACTOR, le=c.MAX_EASE_FACTOR)

    # Feedback tuning
    hard_interval_multiplier: float = Field(default=c.HARD_INTERVAL_MULTIPLIER, gt=0, le=1)
    easy_bonus_multiplier: float = Field(default=c.EASY_BONUS_MULTIPLIER, ge=1)
    again_ease_penalty: float = Field(default=c.AGAIN_EASE_PENALTY, ge=0)
    hard_ease_penalty: float = Field(default=c.HARD_EASE_PENALTY, ge=0)
    easy_ease_bonus: float = Field(default=c.EASY_EASE_BONUS, ge=0)
    late_ease_penalty_per_day: float = Field(default=c.LATE_EASE_PENALTY_PER_DAY, ge=0)
    late_ease_penalty_cap: float = Field(default=c.LATE_EASE_PENALTY_CAP, ge=0)
    reset_threshold_failures: int = Field(default=c.RESET_THRESHOLD_FAILURES, ge=1)

    # Reminders
    default_reminder_minutes: int = Field(default=c.DEFAULT_REMINDER_MINUTES, ge=1)
    early_reminder_minutes: int = Field(default=c.EARLY_REMINDER_MINUTES, ge=1)
    extra_reminder_failure_threshold: int = Field(default=c.EXTRA_REMINDER_FAILURE_THRESHOLD, ge=1)
    extra_reminder_ease_threshold: float = c.EXTRA_REMINDER_EASE_THRESHOLD
    intermediate_ease_threshold: float = c.INTERMEDIATE_EASE_THRESHOLD

    # Runtime
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    host: str = "127.0.0.1"
    port: int = 8777

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        from pydantic_settings import TomlConfigSettingsSource

        toml_file = next((f for f in CONFIG_FILES if f.exists()), None)

        # Highest priority first: explicit overrides, then env, then file.
        if toml_file:
            return (
                init_settings,
                env_settings,
                TomlConfigSettingsSource(settings_cls, toml_file=toml_file),
            )
        return (init_settings, env_settings)

    @model_validator(mode="after")
    def check_policy_bounds(self) -> "AppConfig":
        # PolicyConfig owns the cross-field rules; surface them at load time.
        self.to_policy_config()
        return self

    def to_policy_config(self) -> PolicyConfig:
        return PolicyConfig(
            min_interval_days=self.min_interval_days,
            initial_interval_days=self.initial_interval_days,
            max_interval_days=self.max_interval_days,
            min_ease_factor=self.min_ease_factor,
            default_ease_factor=self.default_ease_factor,
            max_ease_factor=self.max_ease_factor,
            hard_interval_multiplier=self.hard_interval_multiplier,
            easy_bonus_multiplier=self.easy_bonus_multiplier,
            again_ease_penalty=self.again_ease_penalty,
            hard_ease_penalty=self.hard_ease_penalty,
            easy_ease_bonus=self.easy_ease_bonus,
            late_ease_penalty_per_day=self.late_ease_penalty_per_day,
            late_ease_penalty_cap=self.late_ease_penalty_cap,
            reset_threshold_failures=self.reset_threshold_failures,
            default_reminder_minutes=self.default_reminder_minutes,
            early_reminder_minutes=self.early_reminder_minutes,
            extra_reminder_failure_threshold=self.extra_reminder_failure_threshold,
            extra_reminder_ease_threshold=self.extra_reminder_ease_threshold,
            intermediate_ease_threshold=self.intermediate_ease_threshold,
        )


def resolve_config(cli_overrides: dict[str, Any] | None = None) -> AppConfig:
    """
    Multi-layered configuration resolution.
    1. Defaults in AppConfig
    2. ~/.config/memora/config.toml (if exists)
    3. Environment variables (MEMORA_*)
    4. cli_overrides (None values are ignored)
    """
    overrides = {k: v for k, v in (cli_overrides or {}).items() if v is not None}
    return AppConfig(**overrides)
