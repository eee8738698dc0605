"""
Core primitives for omnimap.

Nothing in here knows about record sources or transports. Domain code
imports these; they never import domain code.
"""

from omnimap.core.errors import (
    CacheUnavailableError,
    ConfigError,
    DefinitionParseError,
    ErrorCategory,
    ErrorContext,
    NotAuthenticatedError,
    NotFoundError,
    OmnimapError,
    UpstreamQueryError,
    UpstreamTimeoutError,
    ValidationError,
)
from omnimap.core.logging import LogContext, configure_logging, get_logger
from omnimap.core.result import Err, Ok, Result, try_result
from omnimap.core.settings import OmnimapSettings, get_settings

__all__ = [
    # errors
    "ErrorCategory",
    "ErrorContext",
    "OmnimapError",
    "NotAuthenticatedError",
    "NotFoundError",
    "ValidationError",
    "UpstreamQueryError",
    "UpstreamTimeoutError",
    "DefinitionParseError",
    "CacheUnavailableError",
    "ConfigError",
    # result
    "Ok",
    "Err",
    "Result",
    "try_result",
    # logging
    "configure_logging",
    "get_logger",
    "LogContext",
    # settings
    "OmnimapSettings",
    "get_settings",
]
