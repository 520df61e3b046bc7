"""Configuration loader — reads an optional config.yaml, validates with Pydantic.

Environment variables win over the file: PORT, HOST, HMAC_KEY and LOG_LEVEL.
RUNTASK_CONFIG points at a different YAML file.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

DEFAULT_HMAC_KEY = "abc123"  # placeholder, never use outside local testing


class RedirectPolicy(BaseModel):
    """How a GET fetch treats redirects from the platform."""

    follow: bool = True
    max_redirects: int = Field(default=20, ge=0)


class ReportConfig(BaseModel):
    """Message and link attached to every task result sent back."""

    message: str = "Hello World"
    url: str = "http://example.com/runtask/QxZyl"


class RunTaskConfig(BaseModel):
    """Top-level receiver configuration."""

    host: str = "0.0.0.0"
    port: int = 3000
    hmac_key: str = DEFAULT_HMAC_KEY
    log_level: str = "INFO"

    # Where pre_plan archives land. {run_id} in the name gives one file per run.
    archive_dir: Path = Path(".")
    archive_name: str = "config.tar.gz"

    config_redirects: RedirectPolicy = RedirectPolicy(max_redirects=20)
    plan_redirects: RedirectPolicy = RedirectPolicy(max_redirects=1)
    http_timeout: float | None = None  # None = no deadline

    report: ReportConfig = ReportConfig()
    report_failures: bool = True

    @field_validator("archive_name")
    @classmethod
    def must_be_file_name(cls, v: str) -> str:
        if not v or "/" in v or "\\" in v:
            raise ValueError("archive_name must be a bare file name")
        try:
            v.format(run_id="run")
        except (KeyError, IndexError, ValueError) as e:
            raise ValueError(f"archive_name only supports the {{run_id}} placeholder: {e}") from e
        return v

    @field_validator("log_level")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        level = v.upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown log level '{v}'")
        return level

    @property
    def uses_default_hmac_key(self) -> bool:
        return self.hmac_key == DEFAULT_HMAC_KEY

    def archive_path(self, run_id: str | None = None) -> Path:
        """Return the download target for one run's configuration archive."""
        safe_run = (run_id or "unknown").replace("/", "_").replace("\\", "_")
        return self.archive_dir / self.archive_name.format(run_id=safe_run)


# ---------------------------------------------------------------------------
# Module-level config cache
# ---------------------------------------------------------------------------

_config: RunTaskConfig | None = None

_ENV_OVERRIDES = {
    "PORT": "port",
    "HOST": "host",
    "HMAC_KEY": "hmac_key",
    "LOG_LEVEL": "log_level",
}


def load_config(path: str | None = None) -> RunTaskConfig:
    """Read the YAML file (if present), apply env overrides, validate, and cache."""
    global _config

    config_file = Path(path or os.environ.get("RUNTASK_CONFIG", "config.yaml"))
    raw: dict = {}
    if config_file.exists():
        loaded = yaml.safe_load(config_file.read_text())
        if loaded is not None and not isinstance(loaded, dict):
            raise ValueError(f"Config file {config_file} must contain a mapping")
        raw = loaded or {}
    else:
        logger.info(f"No config file at {config_file.resolve()}, using defaults")

    for env_name, field_name in _ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value:
            raw[field_name] = value

    _config = RunTaskConfig(**raw)

    if _config.uses_default_hmac_key:
        logger.warning("HMAC_KEY is not set — using the placeholder key, do not deploy like this")
    logger.info(
        f"Loaded config: port={_config.port}, archive_dir={_config.archive_dir}, "
        f"archive_name={_config.archive_name}"
    )
    return _config


def get_config() -> RunTaskConfig:
    """Return cached config. Raises if not yet loaded."""
    if _config is None:
        raise RuntimeError("Config not loaded — call load_config() first")
    return _config
