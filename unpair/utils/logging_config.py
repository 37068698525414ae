"""Centralized logging configuration with environment variable support."""

import os
import logging
import sys
from pythonjsonlogger.json import JsonFormatter


class LoggingConfig:
    """Centralized logging configuration."""

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "json").lower()
    LOG_MESSAGE_CONTENT = os.environ.get("LOG_MESSAGE_CONTENT", "true").lower() == "true"
    LOG_MASK_SENSITIVE = os.environ.get("LOG_MASK_SENSITIVE", "true").lower() == "true"
    LOG_CORRELATION_ID_HEADER = os.environ.get("LOG_CORRELATION_ID_HEADER", "X-Correlation-ID")
    LOG_SLOW_OPERATION_THRESHOLD_MS = int(os.environ.get("LOG_SLOW_OPERATION_THRESHOLD_MS", "1000"))

    _configured = False

    @classmethod
    def setup_logging(cls) -> None:
        """Configure the root logger once per process (stdout for serverless)."""
        if cls._configured:
            return

        root_logger = logging.getLogger()
        level = getattr(logging, cls.LOG_LEVEL, logging.INFO)
        root_logger.setLevel(level)
        root_logger.handlers.clear()

        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(level)

        if cls.LOG_FORMAT == "json":
            formatter = JsonFormatter(
                "%(timestamp)s %(levelname)s %(name)s %(message)s",
                timestamp=True
            )
        else:
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )

        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

        # Suppress noisy third-party loggers
        for noisy in ("httpx", "httpcore", "hpack", "supabase", "postgrest"):
            logging.getLogger(noisy).setLevel(logging.WARNING)

        cls._configured = True


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the given name."""
    return logging.getLogger(name)
