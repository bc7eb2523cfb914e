# PipePulse Utilities
"""Utility functions and decorators for PipePulse."""

from .logging_config import setup_logging, log_with_fields
from .decorators import require_webhook_token, retry, Debouncer

__all__ = ["setup_logging", "log_with_fields", "require_webhook_token", "retry", "Debouncer"]
