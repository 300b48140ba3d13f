"""
Logging for the Behavioral Sandbox

structlog on top of the standard logging module. Event names are
snake_case verbs ("signal_computed", "consent_revoked"); everything else
goes in as keyword fields.

Usage:
    from behavioral_sandbox.logging_config import get_logger

    logger = get_logger(__name__)
    logger.info("signal_computed", signal_id=signal.signal_id, signal_key=key)
"""

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import structlog


# Root handlers installed by setup_logging; nothing else on the root logger is touched
_installed_handlers: list[logging.Handler] = []

_SHARED_PROCESSORS = [
    structlog.stdlib.filter_by_level,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.stdlib.PositionalArgumentsFormatter(),
    structlog.processors.TimeStamper(fmt="iso", utc=True),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
    structlog.processors.UnicodeDecoder(),
]


def setup_logging(
    level: str = "INFO",
    log_file: str | None = None,
    json_logs: bool = False
) -> None:
    """
    Configure structlog and the root logger.

    Call once at startup. Calling again replaces only the handlers a
    previous call installed; handlers added by the host application stay.

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        log_file: also append records to this file
        json_logs: one JSON object per line instead of console output
    """
    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer(colors=False)
    )

    structlog.configure(
        processors=[*_SHARED_PROCESSORS, renderer],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    log_level = getattr(logging, level.upper(), logging.INFO)
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    root = logging.getLogger()
    for handler in _installed_handlers:
        root.removeHandler(handler)
        handler.close()
    _installed_handlers[:] = handlers

    for handler in handlers:
        handler.setFormatter(logging.Formatter("%(message)s"))
        handler.setLevel(log_level)
        root.addHandler(handler)
    root.setLevel(log_level)


def get_logger(name: str | None = None) -> Any:
    """structlog logger bound to `name`. Never configures anything."""
    return structlog.get_logger(name)


def log_signal_transition(
    signal_id: str,
    from_status: str,
    to_status: str,
    actor: str,
    reason: str
) -> None:
    """One line per candidate signal status change"""
    get_logger("signal_transition").info(
        "signal_transition",
        signal_id=signal_id,
        from_status=from_status,
        to_status=to_status,
        actor=actor,
        reason=reason,
        transitioned_at=datetime.now(timezone.utc).isoformat()
    )


def log_error(
    error: Exception,
    context: dict | None = None,
    level: str = "ERROR"
) -> None:
    """Log `error` with its traceback and any extra context fields"""
    logger = get_logger("error_handler")
    log_func = getattr(logger, level.lower(), logger.error)

    fields = {
        "error_type": type(error).__name__,
        "error_message": str(error),
        **(context or {}),
    }
    details = getattr(error, "details", None)
    if details:
        fields["error_details"] = details

    log_func("error_occurred", **fields, exc_info=error)
