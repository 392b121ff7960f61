"""rulem logging utilities.

All modules log through children of the ``rulem`` logger. Core operations
also accept an explicit ``logger`` so callers can route a single batch
somewhere else.

Tokens must never reach a log record; ``RedactingFilter`` masks anything
that still looks like one.
"""

from __future__ import annotations

import logging
import re

_root_logger = logging.getLogger("rulem")

# GitHub token shapes and basic-auth headers
_SENSITIVE_PATTERNS = [
    (re.compile(r"\b(?:ghp|gho|ghu|ghs)_[A-Za-z0-9]+"), "[TOKEN_REDACTED]"),
    (re.compile(r"\bgithub_pat_[A-Za-z0-9_]+"), "[TOKEN_REDACTED]"),
    (re.compile(r"(Authorization:\s*Basic\s+)[A-Za-z0-9+/=]+", re.IGNORECASE), r"\1[REDACTED]"),
    (re.compile(r"(https?://)[^/@\s]+:[^/@\s]+@"), r"\1[REDACTED]@"),
]

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def mask_sensitive_data(text: str) -> str:
    """Replace token-like substrings with redacted placeholders.

    Args:
        text: Text that may contain credentials

    Returns:
        Text with credentials masked
    """
    result = text
    for pattern, replacement in _SENSITIVE_PATTERNS:
        result = pattern.sub(replacement, result)
    return result


class RedactingFilter(logging.Filter):
    """Logging filter that masks credentials in the rendered message."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        masked = mask_sensitive_data(message)
        if masked != message:
            record.msg = masked
            record.args = None
        return True


def configure_logging(
    level: int = logging.INFO,
    handler: logging.Handler | None = None,
    format_string: str | None = None,
) -> logging.Handler:
    """Configure the ``rulem`` logger.

    Calling this again replaces the handler installed by the previous call,
    so the CLI can reconfigure without duplicating output.

    Args:
        level: Log level for all rulem loggers
        handler: Handler to attach (default: StreamHandler to stderr)
        format_string: Format for the handler (ignored if the handler has one)

    Returns:
        The handler that was attached
    """
    for existing in list(_root_logger.handlers):
        if getattr(existing, "_rulem_handler", False):
            _root_logger.removeHandler(existing)

    if handler is None:
        handler = logging.StreamHandler()
    if handler.formatter is None:
        handler.setFormatter(logging.Formatter(format_string or DEFAULT_FORMAT))
    if not any(isinstance(f, RedactingFilter) for f in handler.filters):
        handler.addFilter(RedactingFilter())
    handler._rulem_handler = True  # type: ignore[attr-defined]

    _root_logger.setLevel(level)
    _root_logger.addHandler(handler)
    return handler


def get_logger(name: str | None = None) -> logging.Logger:
    """Get a rulem logger.

    Args:
        name: Logger name suffix (e.g. "repository.git"). None returns the root.

    Returns:
        Logger instance
    """
    if name is None:
        return _root_logger
    return logging.getLogger(f"rulem.{name}")
