"""
Configuration management for grantsync.

Loads configuration from config.yaml, .env file, and environment variables.
Priority: Environment variables > .env file > config.yaml
"""

import os
from pathlib import Path
from typing import Any

import yaml


# Load .env file if it exists (before reading os.environ)
def _load_dotenv():
    """Load .env file from project root."""
    current = Path.cwd()
    for path in [current] + list(current.parents):
        env_path = path / ".env"
        if env_path.exists():
            with open(env_path) as f:
                for line in f:
                    line = line.strip()
                    if line and not line.startswith("#") and "=" in line:
                        key, _, value = line.partition("=")
                        key = key.strip()
                        value = value.strip().strip('"').strip("'")
                        # Only set if not already in environment
                        if key not in os.environ:
                            os.environ[key] = value
            break

_load_dotenv()


class Config:
    """Application configuration singleton."""

    _instance = None
    _config: dict = {}

    # Keys under these paths are converted to numbers when set from the environment
    _INT_KEYS = {"port"}
    _FLOAT_KEYS = {"request_delay_seconds", "retry_delay_seconds"}

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._load_config()
        return cls._instance

    def _find_config_file(self) -> Path | None:
        """Find config.yaml in current directory or parent directories."""
        explicit = os.environ.get("GRANTSYNC_CONFIG")
        if explicit:
            return Path(explicit)

        current = Path.cwd()
        for path in [current] + list(current.parents):
            config_path = path / "config.yaml"
            if config_path.exists():
                return config_path
        return None

    def _load_config(self) -> None:
        """Load configuration from file and environment."""
        config_path = self._find_config_file()

        if config_path and config_path.exists():
            with open(config_path) as f:
                self._config = yaml.safe_load(f) or {}
        else:
            self._config = {}

        # Apply environment variable overrides
        self._apply_env_overrides()

    def _apply_env_overrides(self) -> None:
        """Override config values with environment variables."""
        env_mappings = {
            "GRANTSYNC_DB_URL": ("database", "url"),
            "GRANTSYNC_DB_HOST": ("database", "host"),
            "GRANTSYNC_DB_PORT": ("database", "port"),
            "GRANTSYNC_DB_NAME": ("database", "name"),
            "GRANTSYNC_DB_USER": ("database", "user"),
            "GRANTSYNC_DB_PASSWORD": ("database", "password"),
            "GRANTSYNC_GRANTS_GOV_API_KEY": ("api_keys", "grants_gov"),
            "GRANTSYNC_FOUNDATION_FEED_URL": ("sources", "foundation", "base_url"),
            "GRANTSYNC_REQUEST_DELAY": ("scheduler", "request_delay_seconds"),
            "GRANTSYNC_RETRY_DELAY": ("scheduler", "retry_delay_seconds"),
            "GRANTSYNC_LOG_LEVEL": ("logging", "level"),
        }

        for env_var, path in env_mappings.items():
            value = os.environ.get(env_var)
            if value is not None:
                self._set_nested(path, value)

    def _set_nested(self, path: tuple, value: Any) -> None:
        """Set a nested config value."""
        current = self._config
        for key in path[:-1]:
            if key not in current or not isinstance(current[key], dict):
                current[key] = {}
            current = current[key]

        # Type conversion for known numeric fields
        if path[-1] in self._INT_KEYS:
            value = int(value)
        elif path[-1] in self._FLOAT_KEYS:
            value = float(value)

        current[path[-1]] = value

    def _get_nested(self, path: tuple, default: Any = None) -> Any:
        """Get a nested config value."""
        current = self._config
        for key in path:
            if not isinstance(current, dict) or key not in current:
                return default
            current = current[key]
        return current

    @property
    def database_url(self) -> str:
        """Get SQLAlchemy database URL."""
        db = self._config.get("database", {})
        if db.get("url"):
            return db["url"]

        host = db.get("host", "localhost")
        port = db.get("port", 5432)
        name = db.get("name", "grantsync")
        user = db.get("user", "postgres")
        password = db.get("password", "")

        # Handle Unix socket paths (start with /)
        if host.startswith("/"):
            if password:
                return f"postgresql://{user}:{password}@/{name}?host={host}"
            return f"postgresql://{user}@/{name}?host={host}"

        # TCP connection
        if password:
            return f"postgresql://{user}:{password}@{host}:{port}/{name}"
        return f"postgresql://{user}@{host}:{port}/{name}"

    @property
    def grants_gov_api_key(self) -> str | None:
        """Get Grants.gov API key (optional, the search API is public)."""
        return self._get_nested(("api_keys", "grants_gov"))

    @property
    def full_update_hours(self) -> float:
        """Hours between full updates."""
        return self._get_nested(("scheduler", "full_update_hours"), 24)

    @property
    def quick_update_hours(self) -> float:
        """Hours between quick updates."""
        return self._get_nested(("scheduler", "quick_update_hours"), 6)

    @property
    def cleanup_minutes(self) -> float:
        """Minutes between cleanup passes."""
        return self._get_nested(("scheduler", "cleanup_minutes"), 60)

    @property
    def request_delay_seconds(self) -> float:
        """Delay before each source in an update run."""
        return self._get_nested(("scheduler", "request_delay_seconds"), 2.0)

    @property
    def max_retries(self) -> int:
        """Retries after the first failed fetch attempt."""
        return self._get_nested(("scheduler", "max_retries"), 3)

    @property
    def retry_delay_seconds(self) -> float:
        """Base delay for linear retry backoff."""
        return self._get_nested(("scheduler", "retry_delay_seconds"), 5.0)

    @property
    def history_retention_days(self) -> int:
        """Days of update history kept by the cleanup pass."""
        return self._get_nested(("scheduler", "history_retention_days"), 30)

    @property
    def initial_update(self) -> bool:
        """Whether starting the scheduler queues an immediate update."""
        return self._get_nested(("scheduler", "initial_update"), True)

    @property
    def source_overrides(self) -> dict:
        """Per-source settings keyed by source name."""
        return self._get_nested(("sources",), {}) or {}

    @property
    def match_thresholds(self) -> dict:
        """Match reason thresholds."""
        return self._get_nested(("matching", "thresholds"), {}) or {}

    @property
    def quality_thresholds(self) -> dict:
        """Quality recommendation/strength thresholds."""
        return self._get_nested(("quality", "thresholds"), {}) or {}

    @property
    def log_level(self) -> str:
        """Root log level for the CLI."""
        return str(self._get_nested(("logging", "level"), "INFO")).upper()

    def reload(self) -> None:
        """Reload configuration from file."""
        self._load_config()

    def get(self, *path: str, default: Any = None) -> Any:
        """Get a config value by path."""
        return self._get_nested(path, default)


# Global config instance
config = Config()
