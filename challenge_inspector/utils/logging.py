"""Logging configuration with correlation IDs and cookie/token redaction.

This module provides centralized logging configuration with support for
structured logging, per-run session tracking, sensitive value protection,
and multiple output formats.
"""

import logging
import logging.handlers
import re
import uuid
import contextvars
from pathlib import Path
from typing import Optional, Dict, Any, List, Pattern
from datetime import datetime, timezone

import structlog
from rich.logging import RichHandler
from rich.console import Console

# Global logger registry
_loggers = {}
_configured = False

# Context variable for correlation ID
correlation_id: contextvars.ContextVar[str] = contextvars.ContextVar(
    'correlation_id', default=''
)

# Context variable for the capture session (one per inspected URL)
session_id: contextvars.ContextVar[str] = contextvars.ContextVar(
    'session_id', default=''
)


class SensitiveDataRedactor:
    """Redacts tokens and cookie values from log messages."""

    def __init__(self):
        self.patterns: List[tuple[Pattern, str]] = [
            # JWT tokens
            (re.compile(r'\beyJ[A-Za-z0-9_/+\-=]+\.eyJ[A-Za-z0-9_/+\-=]+\.[A-Za-z0-9_/+\-=]*\b'), '[JWT_TOKEN]'),

            # Auth tokens in headers
            (re.compile(r'(authorization\s*[:=]\s*(?:bearer\s+|basic\s+)?)([a-zA-Z0-9+/=._\-]+)', re.IGNORECASE),
             r'\1[AUTH_TOKEN]'),

            # Cookie values in Cookie / Set-Cookie text
            (re.compile(r'((?:set-)?cookie\s*[:=]\s*[^=;\s]+=)([^;\s]+)', re.IGNORECASE),
             r'\1[COOKIE]'),

            # Anti-bot client identifiers sent as headers
            (re.compile(r'(clientid\s*[:=]\s*["\']?)([A-Za-z0-9_~\-]+)', re.IGNORECASE),
             r'\1[CLIENT_ID]'),

            # Password fields in JSON/form data
            (re.compile(r'(["\']?password["\']?\s*[=:]\s*["\']?)([^"\',}\s]+)(["\']?)', re.IGNORECASE),
             r'\1[PASSWORD]\3'),
        ]

    def redact(self, message: str) -> str:
        """Redact sensitive information from a message.

        Args:
            message: Original log message

        Returns:
            Message with sensitive data redacted
        """
        redacted = message
        for pattern, replacement in self.patterns:
            redacted = pattern.sub(replacement, redacted)
        return redacted


class CorrelationProcessor:
    """Processor to add correlation information to log records."""

    def __call__(self, logger, method_name, event_dict):
        """Add correlation information to event dictionary.

        Args:
            logger: Logger instance
            method_name: Log method name
            event_dict: Event dictionary

        Returns:
            Modified event dictionary
        """
        corr_id = correlation_id.get()
        if corr_id:
            event_dict['correlation_id'] = corr_id

        session = session_id.get()
        if session:
            event_dict['session_id'] = session

        event_dict['timestamp'] = datetime.now(timezone.utc).isoformat()

        return event_dict


class SensitiveDataProcessor:
    """Processor to redact sensitive data from log records."""

    def __init__(self):
        self.redactor = SensitiveDataRedactor()

    def __call__(self, logger, method_name, event_dict):
        """Redact sensitive data from event dictionary.

        Args:
            logger: Logger instance
            method_name: Log method name
            event_dict: Event dictionary

        Returns:
            Event dictionary with sensitive data redacted
        """
        for key, value in event_dict.items():
            if isinstance(value, str):
                event_dict[key] = self.redactor.redact(value)
            elif isinstance(value, dict):
                event_dict[key] = self._redact_dict(value)

        return event_dict

    def _redact_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        redacted = {}
        for key, value in data.items():
            if isinstance(value, str):
                redacted[key] = self.redactor.redact(value)
            elif isinstance(value, dict):
                redacted[key] = self._redact_dict(value)
            else:
                redacted[key] = value
        return redacted


def _parse_size(max_size: str) -> int:
    """Convert a size string such as ``"100MB"`` to bytes."""
    size_multipliers = {
        'KB': 1024,
        'MB': 1024 * 1024,
        'GB': 1024 * 1024 * 1024
    }

    for suffix, multiplier in size_multipliers.items():
        if max_size.upper().endswith(suffix):
            return int(max_size[:-len(suffix)].strip()) * multiplier
    return 100 * 1024 * 1024


def setup_logging(level: str = "INFO",
                 log_file: Optional[str] = None,
                 format_type: str = "structured",
                 max_size: str = "100MB",
                 backup_count: int = 5,
                 enable_sensitive_data_redaction: bool = True,
                 force: bool = False) -> None:
    """Set up logging configuration for the application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional log file path
        format_type: Log format type (structured, simple)
        max_size: Maximum log file size before rotation
        backup_count: Number of backup files to keep
        enable_sensitive_data_redaction: Whether to redact cookies and tokens
        force: Reconfigure even if logging was already set up
    """
    global _configured

    if _configured and not force:
        return

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        CorrelationProcessor(),
        structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if enable_sensitive_data_redaction:
        processors.insert(-2, SensitiveDataProcessor())

    if format_type == "structured":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.processors.KeyValueRenderer())

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers.clear()

    # Console handler on stderr so the narrative on stdout stays clean
    console = Console(stderr=True)
    console_handler = RichHandler(
        console=console,
        show_path=False,
        show_time=True,
        rich_tracebacks=True,
        tracebacks_show_locals=False
    )
    console_handler.setLevel(getattr(logging, level.upper()))

    if format_type == "simple":
        console_handler.setFormatter(logging.Formatter('%(name)s - %(message)s'))

    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=_parse_size(max_size),
            backupCount=backup_count,
            encoding='utf-8'
        )
        file_handler.setLevel(getattr(logging, level.upper()))
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        ))
        root_logger.addHandler(file_handler)

    # Suppress noisy third-party loggers
    logging.getLogger('playwright').setLevel(logging.WARNING)
    logging.getLogger('asyncio').setLevel(logging.WARNING)

    _configured = True

    logger = get_logger("logging")
    logger.debug(
        f"Logging configured: level={level}, format={format_type}, "
        f"file={log_file}, redaction={enable_sensitive_data_redaction}"
    )


def get_logger(name: str):
    """Get a logger instance with the specified name.

    Args:
        name: Logger name

    Returns:
        Bound structlog logger
    """
    if name not in _loggers:
        _loggers[name] = structlog.get_logger(name)

    return _loggers[name]


def generate_correlation_id() -> str:
    """Generate a new correlation ID.

    Returns:
        New correlation ID
    """
    return str(uuid.uuid4())[:8]


def get_session_id() -> str:
    """Get the current capture session ID, or an empty string."""
    return session_id.get()


class LogContext:
    """Context manager for adding correlation and session IDs to logs."""

    def __init__(self, correlation_id: Optional[str] = None,
                 session_id: Optional[str] = None):
        """Initialize log context.

        Args:
            correlation_id: Correlation ID for operation tracking
            session_id: Capture session ID
        """
        self.correlation_id = correlation_id
        self.session_id = session_id
        self._tokens: List[tuple[contextvars.ContextVar, contextvars.Token]] = []

    def __enter__(self):
        if self.correlation_id:
            self._tokens.append((correlation_id, correlation_id.set(self.correlation_id)))
        if self.session_id:
            self._tokens.append((session_id, session_id.set(self.session_id)))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()
