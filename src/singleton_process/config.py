"""Typed configuration for singleton_process.

Loading priority (highest to lowest):
  1. Explicit init kwargs (programmatic overrides, tests)
  2. Environment variables: SINGLETON_<SECTION>__<KEY>  (double-underscore separator)
  3. Config file: SINGLETON_CONFIG_FILE env var, or conf/settings.toml at project root
  4. Model field defaults

Example env overrides:
  SINGLETON_PATHS__ROOT_PATH=/srv/app
  SINGLETON_PATHS__PID_DIR=run
  SINGLETON_LOGGING__LEVEL=DEBUG
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)

# src/singleton_process/config.py → ../../..
_PROJECT_ROOT = Path(__file__).parent.parent.parent
_DEFAULT_CONFIG = _PROJECT_ROOT / "conf" / "settings.toml"


def _config_file() -> Path:
    """Resolve the config file path.

    Returns SINGLETON_CONFIG_FILE if set (raises FileNotFoundError if missing),
    otherwise returns the bundled default at conf/settings.toml.
    """
    if env_val := os.environ.get("SINGLETON_CONFIG_FILE"):
        p = Path(env_val)
        if not p.is_file():
            raise FileNotFoundError(f"SINGLETON_CONFIG_FILE not found: {p}")
        return p
    return _DEFAULT_CONFIG


# ---------------------------------------------------------------------------
# Section models — each maps to a [section] in conf/settings.toml
# ---------------------------------------------------------------------------


class PathsSettings(BaseModel):
    """Where pid files live."""

    # Base directory; relative values resolve against the working directory.
    root_path: Path = Path(".")
    # Relative to root_path.
    pid_dir: Path = Path("tmp/pids")

    @field_validator("pid_dir")
    @classmethod
    def _relative_pid_dir(cls, v: Path) -> Path:
        if v.is_absolute():
            raise ValueError(f"pid_dir must be relative to root_path, got {str(v)!r}")
        return v


class ProcessSettings(BaseModel):
    """Behaviour of ``lock_or_exit()`` when another holder exists."""

    abort_exit_code: int = Field(default=0, ge=0, le=255)


class LoggingSettings(BaseModel):
    """Logging verbosity and output format."""

    level: str = "INFO"
    format: Literal["json", "text"] = "json"

    @field_validator("level", mode="before")
    @classmethod
    def _normalise_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"level must be one of {sorted(valid)}, got {v!r}")
        return v.upper()


# ---------------------------------------------------------------------------
# Root settings class
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    """All singleton_process runtime settings, fully resolved and validated."""

    paths: PathsSettings = PathsSettings()
    process: ProcessSettings = ProcessSettings()
    logging: LoggingSettings = LoggingSettings()

    model_config = SettingsConfigDict(
        env_prefix="SINGLETON_",
        env_nested_delimiter="__",  # SINGLETON_PATHS__ROOT_PATH → paths.root_path
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # TOML + env only; no dotenv or secrets directory.
        return (
            init_settings,
            env_settings,
            TomlConfigSettingsSource(settings_cls, toml_file=_config_file()),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide Settings instance (loaded once, cached thereafter).

    Tests should call ``get_settings.cache_clear()`` before each test that
    patches environment variables or the config file.
    """
    return Settings()
