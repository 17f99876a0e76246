"""Configuration error types."""

from __future__ import annotations


class ConfigError(Exception):
    """Raised when settings fail loading or validation."""
