"""
Log Sanitization

Redacts provider credentials from log output. Several providers take their
key as a query parameter, so request URLs that end up in exception messages
would otherwise leak it.
"""

from __future__ import annotations

import logging
import re
from re import Pattern
from typing import Any

# (label, pattern) pairs; every match is replaced with "<label>=[REDACTED]"
SENSITIVE_PATTERNS: list[tuple[str, Pattern[str]]] = [
    # Query-string credentials: ?key=..., &access_token=...
    (
        "URL_KEY",
        re.compile(r"(?<=[?&])(key|api_key|access_token|token)=[^&\s'\"]+", re.IGNORECASE),
    ),
    # Google API keys (Gemini, Maps)
    ("GOOGLE_KEY", re.compile(r"AIza[0-9A-Za-z\-_]{30,}")),
    # Mapbox tokens
    ("MAPBOX_TOKEN", re.compile(r"\b[ps]k\.[A-Za-z0-9\-_]{20,}\.[A-Za-z0-9\-_]{10,}")),
    (
        "API_KEY",
        re.compile(r"(api[_-]?key|apikey)\s*[=:]\s*['\"]?[\w\-]{20,}['\"]?", re.IGNORECASE),
    ),
    (
        "SECRET",
        re.compile(
            r"(secret|password|passwd|pwd)\s*[=:]\s*['\"]?[^\s'\"]{8,}['\"]?", re.IGNORECASE
        ),
    ),
    # PostgreSQL connection strings with password
    ("PG_CONN", re.compile(r"postgres(ql)?://[^:/\s]+:[^@\s]+@", re.IGNORECASE)),
    # Redis URLs with password
    ("REDIS_URL", re.compile(r"rediss?://[^:/\s]*:[^@\s]+@", re.IGNORECASE)),
    ("BEARER", re.compile(r"Bearer\s+[a-zA-Z0-9\-_\.]+", re.IGNORECASE)),
]

REDACTION_PLACEHOLDER = "[REDACTED]"


class SanitizingFilter(logging.Filter):
    """
    A logging filter that redacts credentials from log records.

    Usage:
        logger = logging.getLogger(__name__)
        logger.addFilter(SanitizingFilter())
    """

    def __init__(
        self,
        name: str = "",
        additional_patterns: list[tuple[str, Pattern[str]]] | None = None,
        redaction_placeholder: str = REDACTION_PLACEHOLDER,
    ):
        """
        Args:
            name: Filter name (passed to parent)
            additional_patterns: Extra patterns to redact beyond defaults
            redaction_placeholder: Text to replace sensitive data with
        """
        super().__init__(name)
        self._patterns = list(SENSITIVE_PATTERNS)
        if additional_patterns:
            self._patterns.extend(additional_patterns)
        self._placeholder = redaction_placeholder

    def filter(self, record: logging.LogRecord) -> bool:
        """Sanitize the record in place; never drops it."""
        if record.msg:
            record.msg = self.sanitize(str(record.msg))

        if record.args:
            if isinstance(record.args, dict):
                record.args = {k: self._sanitize_value(v) for k, v in record.args.items()}
            elif isinstance(record.args, tuple):
                record.args = tuple(self._sanitize_value(arg) for arg in record.args)

        return True

    def sanitize(self, text: str) -> str:
        """Return text with every sensitive pattern redacted."""
        result = text
        for pattern_name, pattern in self._patterns:
            result = pattern.sub(f"{pattern_name}={self._placeholder}", result)
        return result

    def _sanitize_value(self, value: Any) -> Any:
        if isinstance(value, str):
            return self.sanitize(value)
        return value


def configure_sanitized_logging(
    level: int | str = logging.INFO,
    format_string: str | None = None,
    additional_patterns: list[tuple[str, Pattern[str]]] | None = None,
) -> None:
    """
    Configure the root logger with sanitization enabled.

    Adds the SanitizingFilter to the root logger and all of its handlers.

    Args:
        level: Logging level (int or name such as "INFO")
        format_string: Log format string (uses default if not specified)
        additional_patterns: Extra patterns to redact
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)
    if format_string is None:
        format_string = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(level=level, format=format_string)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    sanitizing_filter = SanitizingFilter(additional_patterns=additional_patterns)
    if not any(isinstance(f, SanitizingFilter) for f in root_logger.filters):
        root_logger.addFilter(sanitizing_filter)

    for handler in root_logger.handlers:
        if not any(isinstance(f, SanitizingFilter) for f in handler.filters):
            handler.addFilter(sanitizing_filter)


def get_sanitized_logger(name: str) -> logging.Logger:
    """
    Get a logger with the sanitization filter attached.

    Args:
        name: Logger name (typically __name__)
    """
    logger = logging.getLogger(name)

    has_sanitizing_filter = any(isinstance(f, SanitizingFilter) for f in logger.filters)
    if not has_sanitizing_filter:
        logger.addFilter(SanitizingFilter())

    return logger
