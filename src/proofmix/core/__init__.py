"""
proofmix core infrastructure: settings, logging, retry and output helpers.
"""

from .config import ProofmixSettings, get_settings, reset_settings
from .formatters import format_datetime, format_share, get_utc_now, get_utc_timestamp
from .logging import get_logger, reset_logging, set_log_level
from .retry import NonRetryableHTTPError, RetryableHTTPError, http_retry

__all__ = [
    # Settings
    "ProofmixSettings",
    "get_settings",
    "reset_settings",
    # Logging
    "get_logger",
    "set_log_level",
    "reset_logging",
    # Retry
    "http_retry",
    "RetryableHTTPError",
    "NonRetryableHTTPError",
    # Formatting
    "format_datetime",
    "format_share",
    "get_utc_now",
    "get_utc_timestamp",
]
