"""Application configuration: settings schema and config.yaml loader"""

import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, field_validator


CONFIG_FILE = "config.yaml"


class Settings(BaseModel):
    app_name:         str = "wordmd"
    debounce_ms:      int = Field(default=500, ge=0,  description="Minimum gap between accepted change events")
    poll_interval_ms: int = Field(default=100, ge=10, description="Staging directory scan interval")
    staging_root:     Optional[str] = Field(default=None, description="Parent of staging dirs; system temp when unset")
    parser_config:    str = Field(default="commonmark", description="MarkdownIt parser preset name")
    code_font:        str = Field(default="Courier New", description="Fixed-width font for code runs")
    editor_order:     list[str] = Field(default_factory=list, description="Preferred editor ids, first wins")
    default_editor:   Optional[str] = Field(default=None, description="Editor id used when none is given")
    log_level:        str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")

    @field_validator("editor_order", mode="before")
    @classmethod
    def _split_order(cls, value):
        """Accept 'vscode,rider' (env var form) as well as a list."""
        if isinstance(value, str):
            return [v.strip().lower() for v in value.split(",") if v.strip()]
        return value


def load_config(overrides: dict[str, Any] = None) -> Settings:
    """Load Settings from config.yaml, then WORDMD_<FIELD> env vars, then non-None CLI overrides."""
    data: dict[str, Any] = {}
    if Path(CONFIG_FILE).exists():
        try:
            data = yaml.safe_load(Path(CONFIG_FILE).read_text()) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid {CONFIG_FILE}: {e}") from e

    for name in Settings.model_fields:
        if val := os.getenv(f"WORDMD_{name.upper()}"):
            data[name] = val

    if overrides:
        data.update({k: v for k, v in overrides.items() if v is not None})
    return Settings(**data)
