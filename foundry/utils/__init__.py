"""Shared utilities: settings and domain normalization."""

from .config import Settings, get_settings
from .domains import normalize_domain

__all__ = [
    "Settings",
    "get_settings",
    "normalize_domain",
]
