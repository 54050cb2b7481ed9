from __future__ import annotations

import os
from pathlib import Path

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

from filefusion.cleaner import CleanerOptions
from filefusion.config import (
    DEFAULT_MAX_FILE_SIZE,
    DEFAULT_MAX_OUTPUT_SIZE,
    DEFAULT_PATTERN,
    OutputType,
)
from filefusion.manager import parse_size

ENV_FILE = find_dotenv(usecwd=True)
ENV_PREFIX = "FILEFUSION_"


def env_default(name: str, default: str) -> str:
    """Read ``FILEFUSION_<name>`` from the environment, after loading the nearest .env."""
    if ENV_FILE:
        load_dotenv(ENV_FILE, override=False)
    return os.environ.get(f"{ENV_PREFIX}{name}", default)


class Settings(BaseModel):
    """Options of one filefusion run."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    input_paths: list[Path] = Field(
        default_factory=lambda: [Path()],
        description="Files or directories to search.",
    )
    outputs: list[Path] = Field(
        default_factory=list,
        description="Output files (derived from the inputs when empty).",
    )
    pattern: str = Field(
        default_factory=lambda: env_default("PATTERN", DEFAULT_PATTERN),
        description="Comma-separated include globs.",
    )
    exclude: str = Field(
        default_factory=lambda: env_default("EXCLUDE", ""),
        description="Comma-separated exclude globs.",
    )
    max_file_size: int = Field(
        default_factory=lambda: parse_size(env_default("MAX_FILE_SIZE", DEFAULT_MAX_FILE_SIZE)),
        gt=0,
        description="Per-file ceiling in bytes (accepts size strings).",
    )
    max_output_size: int = Field(
        default_factory=lambda: parse_size(
            env_default("MAX_OUTPUT_SIZE", DEFAULT_MAX_OUTPUT_SIZE),
        ),
        gt=0,
        description="Output ceiling in bytes (accepts size strings).",
    )
    format: OutputType | None = Field(default=None, description="Force the output format.")
    follow_symlinks: bool = Field(default=True, description="Follow symbolic links.")
    dry_run: bool = Field(default=False, description="Report without writing.")
    log_file: str = Field(default="", description="Log file path.")
    verbose: bool = Field(default=False, description="Enable debug logging.")

    clean: bool = Field(default=False, description="Clean sources before mixing.")
    clean_options: CleanerOptions = Field(
        default_factory=CleanerOptions,
        description="Cleaner toggles, used when clean is set.",
    )

    @field_validator("pattern")
    @classmethod
    def _pattern_not_empty(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("pattern cannot be empty")
        return value

    @field_validator("max_file_size", "max_output_size", mode="before")
    @classmethod
    def _parse_size(cls, value: object) -> object:
        if isinstance(value, str):
            return parse_size(value)
        return value

    @field_validator("format", mode="before")
    @classmethod
    def _upper_format(cls, value: object) -> object:
        if isinstance(value, str):
            return value.upper() or None
        return value

    @property
    def cleaner_options(self) -> CleanerOptions | None:
        """Cleaner configuration, or None when cleaning is off."""
        return self.clean_options if self.clean else None
