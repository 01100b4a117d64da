"""Utilities package for the wip-tracker application."""

from .config import Config, get_config, reset_config
from .datetime_utils import ensure_utc, utc_now

__all__ = [
    "Config",
    "get_config",
    "reset_config",
    "ensure_utc",
    "utc_now",
]
