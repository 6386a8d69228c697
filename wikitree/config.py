import os
import re
from functools import lru_cache
from pathlib import Path
from typing import Literal

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env early so env vars are available for YAML interpolation
load_dotenv(Path.cwd() / ".env")

# Pattern to match $VAR_NAME environment variable references
ENV_VAR_PATTERN = re.compile(r"\$([A-Z_][A-Z0-9_]*)")

CONFIG_PATH_ENV = "WIKITREE_CONFIG"


def interpolate_env_vars(value):
    """Recursively replace $VAR_NAME with os.environ values."""
    if isinstance(value, str):

        def replace(match):
            var = match.group(1)
            val = os.environ.get(var)
            if val is None:
                raise ValueError(f"Environment variable ${var} not set")
            return val

        return ENV_VAR_PATTERN.sub(replace, value)
    elif isinstance(value, dict):
        return {k: interpolate_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [interpolate_env_vars(item) for item in value]
    return value


def get_config_path() -> Path:
    """Path of the YAML config file (``$WIKITREE_CONFIG`` or ./app.yaml)."""
    override = os.environ.get(CONFIG_PATH_ENV)
    if override:
        return Path(override)
    return Path.cwd() / "app.yaml"


def load_app_config(config_path: Path | None = None) -> dict:
    """Load and parse app.yaml with environment variable interpolation."""
    config_path = config_path or get_config_path()

    if not config_path.exists():
        raise FileNotFoundError(f"app.yaml not found at {config_path}")

    with open(config_path, "r") as f:
        config = yaml.safe_load(f) or {}

    return interpolate_env_vars(config)


class DatabaseConfig(BaseModel):
    """Database connection configuration."""

    url: str = "sqlite+aiosqlite:///./wiki.db"
    pool_size: int = 5
    pool_overflow: int = 10
    pool_timeout: int = 30
    echo: bool = False


class ShareConfig(BaseModel):
    """Share link configuration."""

    base_url: str = "http://localhost:8000"

    def build_url(self, token: str) -> str:
        """Public URL handed to the creator of a share link."""
        return f"{self.base_url.rstrip('/')}/s/{token}"


class BackupConfig(BaseModel):
    """Markdown file mirror of every page."""

    enabled: bool = False
    path: Path = Path("./backups")


class SearchConfig(BaseModel):
    """Page search configuration."""

    strategy: Literal["substring", "index"] = "substring"
    default_limit: int = Field(default=20, ge=1)
    max_limit: int = Field(default=100, ge=1)


class LogfireConfig(BaseModel):
    """Pydantic Logfire tracing (needs the optional `logfire` extra)."""

    enabled: bool = False
    service_name: str = "wikitree"
    environment: str | None = None
    sample_rate: float = Field(default=1.0, ge=0.0, le=1.0)
    console: bool = False


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="WIKITREE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    debug: bool = False
    site_name: str = "wikitree"
    log_level: str = "info"

    # Sections (loaded from app.yaml)
    db: DatabaseConfig = DatabaseConfig()
    share: ShareConfig = ShareConfig()
    backup: BackupConfig = BackupConfig()
    search: SearchConfig = SearchConfig()
    logfire: LogfireConfig = LogfireConfig()


_SECTIONS = {
    "db": DatabaseConfig,
    "share": ShareConfig,
    "backup": BackupConfig,
    "search": SearchConfig,
    "logfire": LogfireConfig,
}


@lru_cache
def get_settings() -> Settings:
    """Load settings from the environment, .env and app.yaml."""
    base_settings = Settings()

    try:
        app_config = load_app_config()
    except FileNotFoundError:
        return base_settings

    updates = {}
    for key, model in _SECTIONS.items():
        if key in app_config:
            updates[key] = model(**(app_config[key] or {}))

    for key in ("debug", "site_name", "log_level"):
        if key in app_config:
            updates[key] = app_config[key]

    if updates:
        return base_settings.model_copy(update=updates)

    return base_settings


def clear_settings_cache() -> None:
    """Forget cached settings so the next get_settings() reloads them."""
    get_settings.cache_clear()
