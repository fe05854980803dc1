"""Configuration loading for console-ext."""

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

log = structlog.get_logger()

ENV_PREFIX = "CONSOLE_EXT_"

DEFAULT_KEYWORDS = ("error", "fatal", "critical", "exception")

# Keyword list shipped with the presets
PRESET_KEYWORDS = (
    "error",
    "fatal",
    "critical",
    "exception",
    "crash",
    "fail",
    "timeout",
    "unauthorized",
    "forbidden",
    "server error",
    "database error",
    "connection lost",
)

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

# Fields the dashboard is allowed to display
_PUBLIC_FIELDS = {
    "phone_number",
    "webhook_url",
    "critical_keywords",
    "enable_text",
    "enable_call",
    "rate_limit_window",
    "rate_limit_max",
}


class ConfigError(ValueError):
    """Raised when configuration is invalid or contains unknown options."""

    pass


class Config(BaseModel):
    """Relay configuration.

    Every recognized option is declared here. Unknown options are rejected
    rather than carried along, and instances are immutable; use
    ``with_changes`` to derive an updated copy.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    phone_number: str | None = None  # Destination for text and call notifications
    webhook_url: str | None = None  # Receives text, call and raw notification payloads
    datadog_api_key: str | None = None  # Enables the DataDog logs channel
    critical_keywords: tuple[str, ...] = DEFAULT_KEYWORDS
    enable_text: bool = False
    enable_call: bool = False
    rate_limit_window: int = Field(60_000, gt=0)  # Milliseconds
    rate_limit_max: int = Field(5, ge=0)  # Admitted notifications per window and key
    request_timeout: float = Field(10.0, gt=0)  # Seconds, per channel request
    log_level: str = "INFO"

    @field_validator("critical_keywords", mode="before")
    @classmethod
    def normalize_keywords(cls, v: Any) -> Any:
        """Accept comma-separated strings; drop blanks and case-insensitive duplicates."""
        if v is None:
            return ()
        if isinstance(v, str):
            v = v.split(",")
        if not isinstance(v, (list, tuple, set, frozenset)):
            return v

        keywords: list[str] = []
        seen: set[str] = set()
        for keyword in v:
            keyword = str(keyword).strip()
            if keyword and keyword.lower() not in seen:
                seen.add(keyword.lower())
                keywords.append(keyword)
        return tuple(keywords)

    @field_validator("log_level")
    @classmethod
    def valid_log_level(cls, v: str) -> str:
        """Ensure the log level is one the logging module knows."""
        level = v.upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {sorted(_LOG_LEVELS)}")
        return level

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Config":
        """Build a config from a plain mapping, raising ConfigError on bad input."""
        try:
            return cls.model_validate(dict(data))
        except ValidationError as e:
            raise ConfigError(str(e)) from e

    def with_changes(self, changes: Mapping[str, Any]) -> "Config":
        """Return a copy with whole fields replaced.

        The result is validated like a fresh config, so unknown fields and
        invalid values raise ConfigError.
        """
        return Config.from_mapping({**self.model_dump(), **changes})

    def public_view(self) -> dict[str, Any]:
        """Return the JSON-safe subset of fields shown on the dashboard."""
        return self.model_dump(mode="json", include=_PUBLIC_FIELDS)

    @classmethod
    def from_env(cls, preset: str = "default") -> "Config":
        """Load configuration from a preset plus CONSOLE_EXT_* environment variables."""
        return create_config(preset, env_overrides())

    @classmethod
    def from_file(cls, path: Path, preset: str = "default") -> "Config":
        """Load configuration from YAML file, with env var overrides."""
        data: dict[str, Any] = {}

        if path.exists():
            with open(path) as f:
                loaded = yaml.safe_load(f)

            if loaded is not None and not isinstance(loaded, dict):
                raise ConfigError(f"{path}: expected a mapping of config options")
            data = loaded or {}

        return create_config(preset, {**data, **env_overrides()})


# Preset name -> options layered under user overrides
PRESETS: dict[str, dict[str, Any]] = {
    "default": {
        "critical_keywords": PRESET_KEYWORDS,
    },
    "production": {
        "critical_keywords": PRESET_KEYWORDS,
        "enable_text": True,
        "enable_call": True,
        "log_level": "ERROR",
    },
    "development": {
        "critical_keywords": PRESET_KEYWORDS,
        "enable_text": False,
        "enable_call": False,
        "log_level": "DEBUG",
    },
}


def create_config(preset: str = "default", overrides: Mapping[str, Any] | None = None) -> Config:
    """Create a config from a named preset and optional overrides.

    Unknown preset names fall back to the default preset.
    """
    base = PRESETS.get(preset)
    if base is None:
        log.warning("Unknown config preset, using default", preset=preset)
        base = PRESETS["default"]

    return Config.from_mapping({**base, **(overrides or {})})


def _env_flag(value: str) -> bool:
    return value.strip().lower() in ("true", "1", "yes", "on")


def env_overrides() -> dict[str, Any]:
    """Collect config options set through CONSOLE_EXT_* environment variables.

    Variables that are unset are left out. Numbers that do not parse are
    ignored with a warning so the preset value applies.
    """
    env = os.environ
    overrides: dict[str, Any] = {}

    for field in ("phone_number", "webhook_url", "datadog_api_key", "log_level"):
        value = env.get(ENV_PREFIX + field.upper())
        if value:
            overrides[field] = value

    for field in ("enable_text", "enable_call"):
        value = env.get(ENV_PREFIX + field.upper())
        if value is not None:
            overrides[field] = _env_flag(value)

    for field in ("rate_limit_max", "rate_limit_window"):
        name = ENV_PREFIX + field.upper()
        value = env.get(name)
        if value is None:
            continue
        try:
            overrides[field] = int(value)
        except ValueError:
            log.warning("Ignoring non-numeric environment value", variable=name, value=value)

    keywords = env.get(ENV_PREFIX + "CRITICAL_KEYWORDS")
    if keywords:
        overrides["critical_keywords"] = keywords

    return overrides
