"""Structured logging helpers: correlation IDs, timing and privacy masking."""

import logging
import time
import uuid
import re
import hashlib
from contextvars import ContextVar
from typing import Any, Optional, Dict
from contextlib import contextmanager
from datetime import datetime, timezone

from unpair.utils.logging_config import LoggingConfig, get_logger


_correlation_id_var: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)

_EMAIL_RE = re.compile(r'[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}', re.IGNORECASE)
_PHONE_RE = re.compile(r'\+?\d[\d\s().-]{7,}\d')
_JWT_RE = re.compile(r'eyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+')
_SECRET_RE = re.compile(r'(?i)(api[_-]?key|token|secret|password)[\s:=]+(\S{8,})')


def generate_correlation_id() -> str:
    """Generate a unique correlation ID for request tracing."""
    return f"req_{uuid.uuid4().hex[:12]}"


def get_correlation_id() -> Optional[str]:
    return _correlation_id_var.get()


def set_correlation_id(correlation_id: Optional[str]) -> None:
    _correlation_id_var.set(correlation_id)


@contextmanager
def correlation_context(correlation_id: Optional[str] = None):
    """Context manager for correlation ID propagation."""
    if correlation_id is None:
        correlation_id = generate_correlation_id()

    old_id = get_correlation_id()
    set_correlation_id(correlation_id)
    try:
        yield correlation_id
    finally:
        set_correlation_id(old_id)


def mask_sensitive_data(text: str) -> str:
    """Mask emails, phone numbers, JWTs and inline secrets."""
    if not text or not LoggingConfig.LOG_MASK_SENSITIVE:
        return text

    # JWTs first, the phone pattern would otherwise eat digits inside them
    text = _JWT_RE.sub('[REDACTED_JWT]', text)
    text = _SECRET_RE.sub(r'\1=[REDACTED]', text)
    text = _EMAIL_RE.sub('[REDACTED_EMAIL]', text)
    text = _PHONE_RE.sub('[REDACTED_PHONE]', text)
    return text


def mask_user_id(user_id: Optional[str]) -> Optional[str]:
    """Shorten a user ID to a stable, non-reversible tag."""
    if not LoggingConfig.LOG_MASK_SENSITIVE or not user_id:
        return user_id

    if len(user_id) > 12:
        hashed = hashlib.sha256(user_id.encode()).hexdigest()[:8]
        return f"{user_id[:4]}...{hashed}"
    return user_id


def sanitize_message_text(text: Optional[str], max_length: int = 500) -> Optional[str]:
    """Sanitize chat text for logging."""
    if not LoggingConfig.LOG_MESSAGE_CONTENT or not text:
        return None

    if len(text) > max_length:
        text = text[:max_length] + "..."

    return mask_sensitive_data(text)


class StructuredLogger:
    """Logger wrapper that takes structured fields as keyword arguments."""

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def _get_extra(self, **kwargs: Any) -> Dict[str, Any]:
        extra = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

        correlation_id = get_correlation_id()
        if correlation_id:
            extra["correlation_id"] = correlation_id

        extra.update(kwargs)
        return extra

    def debug(self, message: str, **kwargs: Any) -> None:
        self.logger.debug(message, extra=self._get_extra(**kwargs))

    def info(self, message: str, **kwargs: Any) -> None:
        self.logger.info(message, extra=self._get_extra(**kwargs))

    def warning(self, message: str, **kwargs: Any) -> None:
        self.logger.warning(message, extra=self._get_extra(**kwargs))

    def error(self, message: str, exc_info: bool = False, **kwargs: Any) -> None:
        self.logger.error(message, extra=self._get_extra(**kwargs), exc_info=exc_info)

    def exception(self, message: str, **kwargs: Any) -> None:
        self.logger.exception(message, extra=self._get_extra(**kwargs))


def get_structured_logger(name: str) -> StructuredLogger:
    """Get a structured logger instance."""
    return StructuredLogger(get_logger(name))


@contextmanager
def log_timing(operation_name: str, logger: Optional[StructuredLogger] = None, **context: Any):
    """Log how long the wrapped block took, warning when it was slow."""
    if logger is None:
        logger = get_structured_logger(__name__)

    start_time = time.perf_counter()
    logger.debug(f"Starting {operation_name}", operation=operation_name, **context)

    try:
        yield
    finally:
        elapsed_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            f"Completed {operation_name}",
            operation=operation_name,
            processing_time_ms=round(elapsed_ms, 2),
            **context
        )

        if elapsed_ms > LoggingConfig.LOG_SLOW_OPERATION_THRESHOLD_MS:
            logger.warning(
                f"Slow operation detected: {operation_name}",
                operation=operation_name,
                processing_time_ms=round(elapsed_ms, 2),
                threshold_ms=LoggingConfig.LOG_SLOW_OPERATION_THRESHOLD_MS,
                **context
            )
