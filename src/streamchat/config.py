"""Configuration for streamchat.

Config discovery (first match wins):
  1. Explicit path passed to ``load_config``
  2. ``./streamchat.yaml``
  3. ``~/.config/streamchat/config.yaml``
  4. Built-in defaults
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

_logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 11434
DEFAULT_MODEL = "nemotron-3-nano"
DEFAULT_TIMEOUT = 60  # seconds
DEFAULT_API_PATH = "/api/chat"

THINKING_MODES = ("always", "never", "auto")


class ChatConfig(BaseModel):
    """Connection and request settings for one chat context.

    Empty host/model and non-positive port/timeout fall back to defaults,
    so callers can pass through unset values without checking them.
    """

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    model: str = DEFAULT_MODEL
    timeout: int = DEFAULT_TIMEOUT
    thinking_mode: str = "always"  # "always" | "never" | "auto"
    api_path: str = DEFAULT_API_PATH
    output_filters: list[str] = Field(default_factory=list)  # regexes stripped from tokens

    @field_validator("host", mode="before")
    @classmethod
    def _default_host(cls, v: Any) -> Any:
        return v or DEFAULT_HOST

    @field_validator("model", mode="before")
    @classmethod
    def _default_model(cls, v: Any) -> Any:
        return v or DEFAULT_MODEL

    @field_validator("port", mode="before")
    @classmethod
    def _default_port(cls, v: Any) -> Any:
        if v is None or (isinstance(v, (int, float)) and v <= 0):
            return DEFAULT_PORT
        return v

    @field_validator("timeout", mode="before")
    @classmethod
    def _default_timeout(cls, v: Any) -> Any:
        return resolve_timeout(v)

    @field_validator("thinking_mode")
    @classmethod
    def _check_thinking_mode(cls, v: str) -> str:
        if v not in THINKING_MODES:
            raise ValueError(
                f"thinking_mode must be one of {', '.join(THINKING_MODES)}, got {v!r}")
        return v

    @field_validator("api_path", mode="before")
    @classmethod
    def _default_api_path(cls, v: Any) -> Any:
        if not v:
            return DEFAULT_API_PATH
        return v if str(v).startswith("/") else f"/{v}"


def resolve_timeout(seconds: Any) -> Any:
    """Return *seconds*, or the default timeout when unset or non-positive."""
    if seconds is None or (isinstance(seconds, (int, float)) and seconds <= 0):
        return DEFAULT_TIMEOUT
    return seconds


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

_SEARCH_PATHS = [
    Path("./streamchat.yaml"),
    Path.home() / ".config" / "streamchat" / "config.yaml",
]


def load_config(path: str | Path | None = None) -> ChatConfig:
    """Load configuration from YAML.

    Parameters
    ----------
    path:
        Explicit config path.  If *None*, search default locations.

    Returns
    -------
    ChatConfig
    """
    config_path: Path | None = None

    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
    else:
        for candidate in _SEARCH_PATHS:
            if candidate.exists():
                config_path = candidate
                break

    if config_path is None:
        _logger.info("No config file found, using defaults")
        return ChatConfig()

    _logger.info("Loading config from %s", config_path)
    with open(config_path) as f:
        raw: dict[str, Any] = yaml.safe_load(f) or {}

    known = {k: v for k, v in raw.items() if k in ChatConfig.model_fields}
    return ChatConfig.model_validate(known)
