"""Configuration management for Tune Out."""

from __future__ import annotations

import os
import tomllib
from pathlib import Path

from pydantic import BaseModel, Field

from tuneout import __version__

# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

_BASE_DIR_NAME = ".tuneout"
_CONFIG_FILE = "config.toml"
_LOG_DIR = "logs"


def get_base_dir() -> Path:
    """Return the base directory for all Tune Out files (~/.tuneout/)."""
    return Path.home() / _BASE_DIR_NAME


# ---------------------------------------------------------------------------
# Config models
# ---------------------------------------------------------------------------


class LibraryConfig(BaseModel):
    """Settings for the local station library store."""

    database_file: str = Field(default="library.db", description="SQLite file name inside the base directory")
    rebalance_epsilon: float = Field(
        default=1e-9,
        gt=0.0,
        description="Renumber siblings when two sort keys get closer than this",
    )
    log_sql: bool = Field(default=False, description="Trace every SQL statement at debug level")


class LoggingConfig(BaseModel):
    """Settings for log output."""

    level: str = Field(default="info", description="Logging level")


class DirectoryConfig(BaseModel):
    """Remote station directory (radio-browser.info API)."""

    base_url: str = Field(default="https://de1.api.radio-browser.info/json", description="API root URL")
    user_agent: str = Field(default=f"Tune-Out/{__version__}", description="User-Agent sent with every request")
    timeout_seconds: int = Field(default=30, description="HTTP timeout in seconds")
    hide_broken: bool = Field(default=True, description="Skip stations whose last check failed")


class AppConfig(BaseModel):
    """Top-level application configuration."""

    library: LibraryConfig = Field(default_factory=LibraryConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    directory: DirectoryConfig = Field(default_factory=DirectoryConfig)

    # -- derived paths (not stored in TOML) --------------------------------

    @property
    def base_dir(self) -> Path:
        return get_base_dir()

    @property
    def database_path(self) -> Path:
        return self.base_dir / self.library.database_file

    @property
    def log_dir(self) -> Path:
        return self.base_dir / _LOG_DIR


# ---------------------------------------------------------------------------
# Filesystem helpers
# ---------------------------------------------------------------------------


def ensure_dirs() -> None:
    """Create the base directory and log directory if they don't already exist."""
    base = get_base_dir()
    base.mkdir(mode=0o700, parents=True, exist_ok=True)
    (base / _LOG_DIR).mkdir(mode=0o700, parents=True, exist_ok=True)


def config_exists() -> bool:
    """Return True if a config file is present on disk."""
    return (get_base_dir() / _CONFIG_FILE).is_file()


# ---------------------------------------------------------------------------
# Load / save
# ---------------------------------------------------------------------------


def load_config() -> AppConfig:
    """Load configuration from TOML, falling back to defaults if the file is missing."""
    path = get_base_dir() / _CONFIG_FILE
    if not path.is_file():
        return AppConfig()

    with open(path, "rb") as f:
        raw = tomllib.load(f)

    return AppConfig.model_validate(raw)


def _format_toml_value(value: object) -> str:
    """Format a single Python value as a TOML literal."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return repr(value)
    if isinstance(value, str):
        escaped = value.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    msg = f"Unsupported TOML value type: {type(value)}"
    raise TypeError(msg)


def _dump_toml(config: AppConfig) -> str:
    """Serialize an AppConfig to a minimal TOML string (tables of scalars only)."""
    lines: list[str] = []
    sections = [
        ("library", config.library),
        ("logging", config.logging),
        ("directory", config.directory),
    ]
    for section_name, section_model in sections:
        lines.append(f"[{section_name}]")
        for key, value in section_model.model_dump(mode="python").items():
            lines.append(f"{key} = {_format_toml_value(value)}")
        lines.append("")
    return "\n".join(lines)


def save_config(config: AppConfig) -> None:
    """Save configuration to TOML and restrict file permissions to owner-only."""
    ensure_dirs()
    path = get_base_dir() / _CONFIG_FILE
    path.write_text(_dump_toml(config), encoding="utf-8")
    os.chmod(path, 0o600)
