"""Application configuration: settings schema and config.yaml loader"""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator


CONFIG_FILE = "config.yaml"
ENV_PREFIX = "STREAM2MD_"

DEFAULT_INLINE_TAGS = ["u", "mark", "sub", "sup", "kbd", "span", "details", "summary", "br"]
DEFAULT_BLOCK_TAGS = ["details", "summary"]


class Settings(BaseModel):
    app_name:         str = "stream2md"
    chunk_size:       int = Field(default=16, ge=1, description="Characters per chunk when replaying a file")
    html_inline_tags: list[str] = Field(default_factory=lambda: list(DEFAULT_INLINE_TAGS),
                                        description="Raw inline HTML tags passed through verbatim")
    html_block_tags:  list[str] = Field(default_factory=lambda: list(DEFAULT_BLOCK_TAGS),
                                        description="Tags that open a raw HTML block at line start")
    autolinks:        bool = Field(default=True, description="Turn bare http(s):// and www. URLs into links")
    strict_boundary:  bool = Field(default=False, description="Raise instead of rebuilding on boundary regression")
    tab_width:        int = Field(default=4, ge=1, description="Columns per tab when measuring indentation")
    log_level:        str = Field(default="WARNING", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")

    @field_validator("html_inline_tags", "html_block_tags", mode="before")
    @classmethod
    def _split_tags(cls, value: Any) -> Any:
        """Accept comma-separated strings (env vars) as well as lists; tag names are lowercased."""
        if isinstance(value, str):
            value = [t for t in (part.strip() for part in value.split(",")) if t]
        if isinstance(value, (list, tuple)):
            return [str(t).lower() for t in value]
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_level(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value


def load_config(overrides: dict[str, Any] = None) -> Settings:
    """Load Settings from config.yaml, then STREAM2MD_<FIELD> env vars, then non-None overrides."""
    data: dict[str, Any] = {}
    if Path(CONFIG_FILE).exists():
        try:
            data = yaml.safe_load(Path(CONFIG_FILE).read_text()) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid {CONFIG_FILE}: {e}") from e
        if not isinstance(data, dict):
            raise ValueError(f"Invalid {CONFIG_FILE}: expected a mapping, got {type(data).__name__}")

    for name in Settings.model_fields:
        if val := os.getenv(f"{ENV_PREFIX}{name.upper()}"):
            data[name] = val

    if overrides:
        data.update({k: v for k, v in overrides.items() if v is not None})
    return Settings(**data)
