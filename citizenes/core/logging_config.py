"""
Structured logging configuration for the CitizenES service.

Loguru handles sinks, structlog renders events with the request context
(request id, user id) merged in from context variables.
"""

import logging
import os
import sys
import uuid
from contextvars import ContextVar
from typing import Optional

import structlog
from loguru import logger

from .config import settings

# Context variables for request tracking
request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
user_id_var: ContextVar[Optional[str]] = ContextVar('user_id', default=None)


def add_context_processor(logger, method_name, event_dict):
    """Add context variables to log events."""
    if request_id := request_id_var.get():
        event_dict["request_id"] = request_id
    if user_id := user_id_var.get():
        event_dict["user_id"] = user_id

    event_dict["service"] = settings.SERVICE_NAME
    return event_dict


class LoguruLoggerFactory:
    """structlog logger factory that hands rendered events to loguru sinks."""

    def __call__(self, *args):
        return _LoguruLogger()


class _LoguruLogger:
    def _log(self, level: str, message: str):
        logger.opt(depth=3).log(level, message)

    def debug(self, message):
        self._log("DEBUG", message)

    def info(self, message):
        self._log("INFO", message)

    def warning(self, message):
        self._log("WARNING", message)

    def error(self, message):
        self._log("ERROR", message)

    def critical(self, message):
        self._log("CRITICAL", message)

    msg = info
    exception = error


def setup_logging(log_level: str = None, json_logs: bool = None, log_file: Optional[str] = None) -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_logs: Whether to output JSON logs (auto-detected if None)
        log_file: Optional log file path
    """
    if log_level is None:
        log_level = os.getenv("LOG_LEVEL", settings.LOG_LEVEL).upper()

    if json_logs is None:
        json_logs = os.getenv("ENVIRONMENT", settings.ENVIRONMENT).lower() == "production"

    # Remove default Loguru logger
    logger.remove()

    if json_logs:
        logger.add(
            sys.stdout,
            format="{message}",
            level=log_level,
            backtrace=True,
            diagnose=False
        )
        renderer = structlog.processors.JSONRenderer()
    else:
        logger.add(
            sys.stdout,
            format="<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
                   "<cyan>citizenes</cyan> | <level>{message}</level>",
            level=log_level,
            colorize=True,
            backtrace=True,
            diagnose=True
        )
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    if log_file:
        logger.add(
            log_file,
            level=log_level,
            rotation="100 MB",
            retention="30 days",
            compression="gz"
        )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            add_context_processor,
            renderer
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level, logging.INFO)
        ),
        logger_factory=LoguruLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.getLogger().setLevel(getattr(logging, log_level, logging.INFO))


def get_logger(name: str = None):
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def set_request_context(request_id: str = None, user_id: str = None):
    """Set context variables for the current request."""
    if request_id:
        request_id_var.set(request_id)
    if user_id:
        user_id_var.set(user_id)


def clear_request_context():
    """Clear all request context variables."""
    request_id_var.set(None)
    user_id_var.set(None)


def generate_request_id() -> str:
    """Generate a unique request ID."""
    return str(uuid.uuid4())


def log_websocket_connection(action: str, channel: str, **kwargs):
    """Log WebSocket connection events."""
    get_logger("websocket").info(
        "WebSocket connection",
        action=action,
        channel=channel,
        **kwargs
    )


def log_chat_message(feedback_id: str, author_id: str, message_length: int = None, **kwargs):
    """Log chat relay messages."""
    get_logger("chat").info(
        "Chat message",
        feedback_id=feedback_id,
        author_id=author_id,
        message_length=message_length,
        **kwargs
    )


def log_api_request(method: str, path: str, user_agent: str = None, client_ip: str = None, **kwargs):
    """Log API request events."""
    if path == "/health":
        return

    get_logger("api").info(
        "API request",
        method=method,
        path=path,
        user_agent=user_agent,
        client_ip=client_ip,
        **kwargs
    )


def log_api_response(method: str, path: str, status_code: int, duration_ms: float, **kwargs):
    """Log API response events."""
    if path == "/health":
        return

    get_logger("api").info(
        "API response",
        method=method,
        path=path,
        status_code=status_code,
        duration_ms=round(duration_ms, 2),
        **kwargs
    )
