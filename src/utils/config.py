"""
Configuration management for the WIP Tracker application.

This module handles:
- Database location configuration
- Persistence timeout
- Workflow tuning (workload warning threshold, dashboard limits, estimates)
- Environment-specific configuration (production, development, test)

Environment variables:
    WIP_TRACKER_ENV: production | development | test (default: production)
    WIP_TRACKER_DATABASE_URL: full SQLAlchemy URL overriding the derived path
    WIP_TRACKER_PERSISTENCE_TIMEOUT: seconds to wait on a locked database
    WIP_TRACKER_WORKLOAD_THRESHOLD: active orders per worker before warning
"""

import logging
import os
from pathlib import Path
from typing import Optional

from .constants import (
    APP_NAME,
    APP_VERSION,
    DATABASE_FILENAME,
    DATABASE_VERSION,
    DEFAULT_HOURS_PER_UNIT,
    DEFAULT_PERSISTENCE_TIMEOUT,
    DEFAULT_RECENT_ORDERS_LIMIT,
    DEFAULT_WORKLOAD_WARNING_THRESHOLD,
)

logger = logging.getLogger(__name__)

VALID_ENVIRONMENTS = ("production", "development", "test")


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring non-numeric {name}={raw!r}; using {default}")
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring non-integer {name}={raw!r}; using {default}")
        return default


class Config:
    """
    Application configuration manager.

    Handles all configuration settings including database location,
    persistence timeout and workflow tuning values.
    """

    def __init__(self, environment: str = "production"):
        """
        Initialize configuration.

        Args:
            environment: Environment mode - 'production', 'development' or 'test'

        Raises:
            ValueError: If environment is not a known mode
        """
        if environment not in VALID_ENVIRONMENTS:
            raise ValueError(
                f"Unknown environment '{environment}'; expected one of {VALID_ENVIRONMENTS}"
            )

        self.environment = environment
        self._app_name = APP_NAME
        self._app_version = APP_VERSION
        self._database_version = DATABASE_VERSION

        if environment == "development":
            self._base_dir = self._get_project_data_dir()
        else:
            self._base_dir = self._get_user_data_dir()

        self._database_path = self._base_dir / DATABASE_FILENAME
        self._database_url_override = os.environ.get("WIP_TRACKER_DATABASE_URL")

        self.persistence_timeout = _env_float(
            "WIP_TRACKER_PERSISTENCE_TIMEOUT", DEFAULT_PERSISTENCE_TIMEOUT
        )
        self.workload_warning_threshold = _env_int(
            "WIP_TRACKER_WORKLOAD_THRESHOLD", DEFAULT_WORKLOAD_WARNING_THRESHOLD
        )
        self.recent_orders_limit = DEFAULT_RECENT_ORDERS_LIMIT
        self.default_hours_per_unit = DEFAULT_HOURS_PER_UNIT

    def _get_project_data_dir(self) -> Path:
        """
        Get the project's data directory for development.

        Returns:
            Path to project data/ directory
        """
        project_root = Path(__file__).parent.parent.parent
        return project_root / "data"

    def _get_user_data_dir(self) -> Path:
        """
        Get the per-user data directory for production.

        Returns:
            Path to ~/.wip_tracker
        """
        return Path.home() / ".wip_tracker"

    def ensure_directories(self) -> None:
        """Create the database directory if a file-based database is used."""
        if self.uses_file_database:
            self._database_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def app_name(self) -> str:
        """Application name."""
        return self._app_name

    @property
    def app_version(self) -> str:
        """Application version."""
        return self._app_version

    @property
    def database_version(self) -> str:
        """Database schema version."""
        return self._database_version

    @property
    def database_path(self) -> Path:
        """Full path to the database file."""
        return self._database_path

    @property
    def database_url(self) -> str:
        """
        SQLAlchemy database URL.

        The test environment always uses an in-memory database unless an
        explicit URL override is set.

        Returns:
            Database URL string for SQLAlchemy
        """
        if self._database_url_override:
            return self._database_url_override
        if self.environment == "test":
            return "sqlite:///:memory:"
        db_path_str = str(self._database_path).replace("\\", "/")
        return f"sqlite:///{db_path_str}"

    @property
    def uses_file_database(self) -> bool:
        """True when the database lives in a file on disk."""
        return ":memory:" not in self.database_url and self.database_url.startswith("sqlite")

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"

    def database_exists(self) -> bool:
        """
        Check if database file exists.

        Returns:
            True if database file exists, False otherwise
        """
        return self._database_path.exists()

    def __repr__(self) -> str:
        """String representation of config."""
        return f"Config(environment='{self.environment}', database_url='{self.database_url}')"


# Global configuration instance
_config_instance: Optional[Config] = None


def get_config(environment: Optional[str] = None) -> Config:
    """
    Get the global configuration instance.

    Once created, the singleton's environment cannot be changed by passing
    a different environment argument - this prevents accidental database
    switching mid-session.

    Args:
        environment: Optional environment for initial creation. If None, uses
                    WIP_TRACKER_ENV or defaults to production. Ignored if
                    singleton already exists.

    Returns:
        Config instance
    """
    global _config_instance

    if _config_instance is None:
        if environment is None:
            environment = os.environ.get("WIP_TRACKER_ENV", "production")
        _config_instance = Config(environment)
    elif environment is not None and environment != _config_instance.environment:
        logger.warning(
            f"get_config() called with environment='{environment}' but singleton "
            f"already exists with environment='{_config_instance.environment}'. "
            f"Returning existing singleton to prevent database switching."
        )

    return _config_instance


def reset_config():
    """
    Reset the global configuration instance.

    Useful for testing.
    """
    global _config_instance
    _config_instance = None


def get_database_url() -> str:
    """
    Get the database URL.

    Returns:
        SQLAlchemy database URL string
    """
    return get_config().database_url
