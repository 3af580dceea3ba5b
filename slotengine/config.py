"""
Configuration management using Pydantic models loaded from YAML.
"""

from __future__ import annotations

from pathlib import Path
from typing import List

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from .domain.exceptions import InvalidTimezone
from .domain.timezones import resolve_timezone

GOOGLE_CALENDAR_SCOPES = ["https://www.googleapis.com/auth/calendar"]


class SearchDefaults(BaseModel):
    """Default settings for slot search."""
    duration_minutes: int = 30
    start_hour: int = 9
    end_hour: int = 18
    step_minutes: int = 30
    result_cap: int = 5
    exploration_cap: int = 10
    window_days: int = 7
    search_days: int = 30

    @field_validator(
        "duration_minutes",
        "step_minutes",
        "result_cap",
        "exploration_cap",
        "window_days",
        "search_days",
    )
    @classmethod
    def validate_positive(cls, value: int) -> int:
        """Ensure counts and durations are positive."""
        if value <= 0:
            raise ValueError("value must be greater than zero")
        return value

    @field_validator("start_hour", "end_hour")
    @classmethod
    def validate_hour(cls, v: int) -> int:
        """Validate hour is between 0 and 23."""
        if not 0 <= v <= 23:
            raise ValueError(f"Hour must be between 0 and 23, got {v}")
        return v

    @model_validator(mode="after")
    def validate_caps(self) -> "SearchDefaults":
        """The scan must be allowed to collect at least as many slots as it returns."""
        if self.exploration_cap < self.result_cap:
            raise ValueError("exploration_cap must not be smaller than result_cap")
        return self


class GoogleConfig(BaseModel):
    """Google Calendar OAuth client and calendar selection."""
    client_id: str = ""
    client_secret: str = ""
    calendar_id: str = "primary"
    token_file: Path | None = None
    scopes: List[str] = Field(default_factory=lambda: list(GOOGLE_CALENDAR_SCOPES))


class AppConfig(BaseModel):
    """Application configuration."""
    timezone: str = "Asia/Kolkata"
    google: GoogleConfig = Field(default_factory=GoogleConfig)
    defaults: SearchDefaults = Field(default_factory=SearchDefaults)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        """Reject unknown zones up front instead of mid-search."""
        try:
            resolve_timezone(value)
        except InvalidTimezone as exc:
            raise ValueError(str(exc)) from exc
        return value

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to the YAML config file

        Returns:
            AppConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Please create a config.yaml file. See config.example.yaml for reference."
            )

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError("Config file must contain a mapping at the root level.")

        return cls(**data)


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for config.yaml in current directory
    current_dir = Path.cwd()
    config_path = current_dir / "config.yaml"

    if not config_path.exists():
        # Try in the project root (parent of slotengine/)
        project_root = Path(__file__).parent.parent
        config_path = project_root / "config.yaml"

    return config_path
