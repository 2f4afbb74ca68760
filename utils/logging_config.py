"""
Structured logging for the help desk: JSON records, interaction and
conversation events, and a process-wide error tracker.
"""

import json
import logging
import logging.handlers
import threading
import time
import traceback
from collections import deque
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Deque, Dict, Optional

import streamlit as st

from config.app_config import get_config


# Attributes every LogRecord carries; anything else came in through `extra`
_RESERVED_RECORD_FIELDS = {
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname',
    'filename', 'module', 'lineno', 'funcName', 'created',
    'msecs', 'relativeCreated', 'thread', 'threadName',
    'processName', 'process', 'getMessage', 'exc_info',
    'exc_text', 'stack_info', 'taskName', 'message', 'asctime'
}

# Extra fields lifted to the top level of a JSON record
_PROMOTED_FIELDS = ("event_type", "conversation_id", "interaction_type")

# Chatty client libraries held at WARNING
_QUIET_LOGGERS = ("urllib3", "google", "grpc", "watchdog", "firebase_admin")


def mask_email(email: Optional[str]) -> Optional[str]:
    """``juan.cruz@barangay.ph`` -> ``j***@barangay.ph``"""
    if not email or "@" not in email:
        return email
    local, domain = email.split("@", 1)
    return f"{local[:1]}***@{domain}"


class StructuredFormatter(logging.Formatter):
    """
    One JSON object per record. Event fields (conversation id, event type)
    sit next to the message so log queries can filter on them.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }

        extra_fields = {
            key: value for key, value in record.__dict__.items()
            if key not in _RESERVED_RECORD_FIELDS
        }
        for key in _PROMOTED_FIELDS:
            if key in extra_fields:
                log_data[key] = extra_fields.pop(key)
        if extra_fields:
            log_data["extra"] = extra_fields

        if record.exc_info and record.exc_info[0] is not None:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": traceback.format_exception(*record.exc_info),
            }

        return json.dumps(log_data, ensure_ascii=False, default=str)


class StreamlitLogHandler(logging.Handler):
    """Shows errors on the page while debugging locally"""

    def emit(self, record: logging.LogRecord):
        try:
            st.error(record.getMessage())
        except Exception:
            self.handleError(record)


def setup_logging() -> logging.Logger:
    """
    Configure the root logger from the logging section of the app config.

    Debug runs get a readable console format; everything else logs JSON.
    """
    config = get_config()
    level = getattr(logging, config.logging.level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    if config.debug:
        console_handler.setFormatter(logging.Formatter(config.logging.format))
    else:
        console_handler.setFormatter(StructuredFormatter())
    root_logger.addHandler(console_handler)

    if config.logging.enable_file_logging:
        log_file_path = Path(config.logging.log_file)
        log_file_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file_path,
            maxBytes=5 * 1024 * 1024,
            backupCount=3,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(StructuredFormatter())
        root_logger.addHandler(file_handler)

    if config.debug and config.environment == "development":
        streamlit_handler = StreamlitLogHandler()
        streamlit_handler.setLevel(logging.ERROR)
        root_logger.addHandler(streamlit_handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    return root_logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the specified name (typically ``__name__``)"""
    return logging.getLogger(name)


@contextmanager
def log_execution_time(logger: logging.Logger, operation: str, **extra_fields):
    """
    Log how long the wrapped block took, or how long it ran before failing.
    Exceptions propagate unchanged.
    """
    started = time.perf_counter()
    logger.debug(f"Starting {operation}", extra={"operation": operation, **extra_fields})
    try:
        yield
    except Exception as e:
        logger.error(f"Failed {operation}: {e}", extra={
            "operation": operation,
            "duration_seconds": round(time.perf_counter() - started, 4),
            "status": "error",
            "error_type": type(e).__name__,
            **extra_fields
        })
        raise

    logger.info(f"Completed {operation}", extra={
        "operation": operation,
        "duration_seconds": round(time.perf_counter() - started, 4),
        "status": "success",
        **extra_fields
    })


def log_user_interaction(logger: logging.Logger, interaction_type: str, **details):
    """
    Log something a visitor or staff member did (bot reply, sign-in, send)

    An ``email`` detail is masked before it is written.
    """
    if "email" in details:
        details["email"] = mask_email(details["email"])
    logger.info(f"User interaction: {interaction_type}", extra={
        "event_type": "user_interaction",
        "interaction_type": interaction_type,
        **details
    })


def log_conversation_event(logger: logging.Logger, event_type: str, conversation_id: str, **details):
    """Log a hand-off lifecycle event (created, claimed, ended...)"""
    logger.info(f"Conversation {conversation_id}: {event_type}", extra={
        "event_type": "conversation_event",
        "conversation_event_type": event_type,
        "conversation_id": conversation_id,
        **details
    })


class ErrorTracker:
    """
    Counts errors per (type, context) and keeps the most recent ones for the
    staff console's diagnostics.
    """

    def __init__(self, logger: logging.Logger, history_size: int = 50):
        self.logger = logger
        self.error_counts: Dict[str, int] = {}
        self.recent_errors: Deque[Dict[str, Any]] = deque(maxlen=history_size)
        self._lock = threading.Lock()

    def track_error(self, error: Exception, context: str = "", **extra_info):
        """
        Count and log ``error``

        Args:
            error: Exception that occurred
            context: Operation it occurred in, e.g. ``claim`` or ``message_feed``
            **extra_info: Identifiers worth keeping (conversation_id, staff_id)
        """
        error_type = type(error).__name__
        error_key = f"{error_type}:{context}"

        with self._lock:
            count = self.error_counts.get(error_key, 0) + 1
            self.error_counts[error_key] = count
            self.recent_errors.append({
                "error_type": error_type,
                "context": context,
                "message": str(error),
                "at": datetime.now().isoformat(),
                **extra_info
            })

        self.logger.error(f"Error in {context}: {error}", extra={
            "event_type": "error",
            "error_type": error_type,
            "context": context,
            "error_count": count,
            **extra_info
        }, exc_info=error)

    def get_error_summary(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "total_errors": sum(self.error_counts.values()),
                "unique_errors": len(self.error_counts),
                "error_breakdown": dict(self.error_counts),
                "recent": list(self.recent_errors),
            }

    def reset(self):
        with self._lock:
            self.error_counts.clear()
            self.recent_errors.clear()


# Global instances
_logger_setup = False
_error_tracker: Optional[ErrorTracker] = None


def initialize_logging() -> ErrorTracker:
    """Configure logging once per process and return the error tracker"""
    global _logger_setup

    if not _logger_setup:
        setup_logging()
        _logger_setup = True

    return get_error_tracker()


def get_error_tracker() -> ErrorTracker:
    """Get the global error tracker without touching handler setup"""
    global _error_tracker
    if _error_tracker is None:
        _error_tracker = ErrorTracker(logging.getLogger("barangay.errors"))
    return _error_tracker
