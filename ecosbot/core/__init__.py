"""
Core utilities: configuration, constants, logging, metrics and caching.
"""
from .config import AppConfig
from .constants import utc_now, ensure_utc

__all__ = ["AppConfig", "utc_now", "ensure_utc"]
