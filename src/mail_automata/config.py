"""Application configuration management."""

import csv
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from mail_automata.errors import ConfigError


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_prefix="MAIL_AUTOMATA_",
        env_file=[
            ".env",  # Project-level defaults (lower priority)
            Path.home() / ".config" / "mail-automata" / ".env",  # User config (higher priority)
        ],
        env_file_encoding="utf-8",
    )

    # Paths
    config_dir: Path = Field(
        default=Path.home() / ".config" / "mail-automata",
        description="Configuration directory",
    )
    rules_file: str = Field(default="rules.csv", description="Rule table filename")
    config_file: str = Field(
        default="config.yaml", description="Processing config filename"
    )
    stats_file: str = Field(default="stats.db", description="Statistics database filename")

    # Processing
    dry_run: bool = Field(
        default=True, description="Default to dry-run mode (don't apply actions)"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_dir: Path = Field(
        default=Path.home() / ".local" / "state" / "mail-automata",
        description="Directory for log files",
    )
    log_rotation_size_mb: int = Field(
        default=5, ge=1, description="Max size per log file in MB before rotation"
    )
    log_backup_count: int = Field(
        default=3, ge=0, description="Number of rotated log files to keep"
    )

    @property
    def rules_path(self) -> Path:
        """Full path to the rule table."""
        return self.config_dir / self.rules_file

    @property
    def config_path(self) -> Path:
        """Full path to the processing config."""
        return self.config_dir / self.config_file

    @property
    def stats_path(self) -> Path:
        """Path to SQLite database for run statistics."""
        return self.config_dir / self.stats_file

    def ensure_config_dir(self) -> None:
        """Create config directory if it doesn't exist."""
        self.config_dir.mkdir(parents=True, exist_ok=True)


class ProcessingConfig(BaseModel):
    """Options controlling how threads are fetched, labeled and processed."""

    model_config = ConfigDict(extra="forbid")

    unprocessed_label: str = Field(
        default="unprocessed", min_length=1, description="Label marking threads to process"
    )
    processed_label: str = Field(
        default="processed", min_length=1, description="Label added once processed"
    )
    processing_failed_label: str = Field(
        default="error", min_length=1, description="Label for threads that failed processing"
    )
    processing_frequency_in_minutes: int = Field(
        default=5, ge=5, description="Minutes between processing runs"
    )
    hour_of_day_to_run_sanity_checking: int = Field(
        default=0, ge=0, le=23, description="Hour of day to collapse statistics"
    )
    go_link: str = Field(default="", description="Short link to the rule spreadsheet")
    max_threads: int = Field(
        default=50, ge=1, le=100, description="Maximum threads per processing run"
    )
    auto_labeling_parent_label: str = Field(
        default="", description="Parent label for automatic list labels"
    )
    parent_labeling: bool = Field(
        default=True, description="Also add parent labels of nested labels"
    )

    @field_validator(
        "unprocessed_label", "processed_label", "processing_failed_label", mode="before"
    )
    @classmethod
    def strip_label(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value


def load_processing_config(path: Path) -> ProcessingConfig:
    """
    Load processing config from a YAML file.

    A missing file yields the defaults.

    Raises:
        ConfigError: If a key is unknown or a value is invalid.
    """
    if not path.exists():
        return ProcessingConfig()

    with open(path) as f:
        data: dict[str, Any] = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} should contain a mapping")

    try:
        return ProcessingConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid config in {path}: {e}") from e


def save_processing_config(path: Path, config: ProcessingConfig) -> None:
    """Save processing config to a YAML file."""
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w") as f:
        yaml.dump(config.model_dump(), f, default_flow_style=False, sort_keys=False)


def load_rule_rows(path: Path) -> list[list[str]]:
    """Load the rule table from a CSV file, header row first."""
    if not path.exists():
        return []

    with open(path, newline="", encoding="utf-8") as f:
        return [[cell.strip() for cell in row] for row in csv.reader(f)]
