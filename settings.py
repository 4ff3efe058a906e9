"""
Application settings and shared logger.

All configuration is read from environment variables once at import time.
"""

import os
import sys
import logging


_RESERVED_LOG_ATTRS = set(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class ExtraFormatter(logging.Formatter):
    """Formatter that appends ``extra={...}`` context as key=value pairs."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        extras = {
            key: value for key, value in record.__dict__.items()
            if key not in _RESERVED_LOG_ATTRS
        }
        if not extras:
            return base
        context = " ".join(f"{key}={value!r}" for key, value in sorted(extras.items()))
        return f"{base} | {context}"


def _build_logger(level: str) -> logging.Logger:
    log = logging.getLogger("kanban")
    if not log.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(ExtraFormatter("%(asctime)s %(levelname)s [%(name)s] %(message)s"))
        log.addHandler(handler)
    log.setLevel(getattr(logging, level.upper(), logging.INFO))
    return log


class Settings:
    """Runtime configuration of the board mutation service."""

    def __init__(self):
        self.database_url = os.getenv("DATABASE_URL", "sqlite:///./kanban.db")
        self.environment = os.getenv("ENVIRONMENT", "development")
        self.log_level = os.getenv("LOG_LEVEL", "INFO")
        self.move_max_attempts = int(os.getenv("MOVE_MAX_ATTEMPTS", "5"))
        self.move_base_delay_ms = int(os.getenv("MOVE_BASE_DELAY_MS", "200"))
        self.transaction_timeout_seconds = float(os.getenv("TRANSACTION_TIMEOUT_SECONDS", "5"))
        self.request_timeout_seconds = float(os.getenv("REQUEST_TIMEOUT_SECONDS", "30"))
        self.validate()

    @property
    def move_base_delay_seconds(self) -> float:
        return self.move_base_delay_ms / 1000.0

    def worst_case_move_seconds(self) -> float:
        """Upper bound of one move request: every attempt times out, plus all backoff delays."""
        backoff = sum(
            self.move_base_delay_seconds * (2 ** attempt)
            for attempt in range(self.move_max_attempts - 1)
        )
        return self.move_max_attempts * self.transaction_timeout_seconds + backoff

    def validate(self):
        if self.move_max_attempts < 1:
            raise ValueError("MOVE_MAX_ATTEMPTS must be at least 1")
        if self.move_base_delay_ms < 0:
            raise ValueError("MOVE_BASE_DELAY_MS cannot be negative")
        if self.transaction_timeout_seconds <= 0:
            raise ValueError("TRANSACTION_TIMEOUT_SECONDS must be positive")
        if self.worst_case_move_seconds() >= self.request_timeout_seconds:
            raise ValueError(
                "Move retry budget exceeds REQUEST_TIMEOUT_SECONDS: "
                f"{self.worst_case_move_seconds():.1f}s >= {self.request_timeout_seconds:.1f}s"
            )


settings = Settings()
logger = _build_logger(settings.log_level)
