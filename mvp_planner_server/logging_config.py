"""
Structured logging configuration with request tracking and rotation.
"""
import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import structlog
from structlog.types import EventDict, Processor


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Add application context to all log entries."""
    event_dict["app"] = "mvp-planner"
    return event_dict


def mask_secret(secret: Optional[str]) -> str:
    """Mask a credential down to its first 8 characters."""
    if not secret:
        return "***"
    return f"{secret[:8]}..." if len(secret) > 8 else "***"


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    log_file: str = None,
    log_max_bytes: int = 10485760,  # 10MB
    log_backup_count: int = 5,
) -> None:
    """
    Configure structured logging with rotation.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Output format ('json' or 'console')
        log_file: Optional log file path
        log_max_bytes: Max log file size before rotation
        log_backup_count: Number of backup files to keep
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=numeric_level,
    )

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        add_app_context,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
    ]

    if log_format == "json":
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer()
        ]
    else:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(colors=True)
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            filename=log_file,
            maxBytes=log_max_bytes,
            backupCount=log_backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(numeric_level)

        root_logger = logging.getLogger()
        root_logger.addHandler(file_handler)


def get_logger(name: str = None) -> structlog.stdlib.BoundLogger:
    """
    Get a configured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger instance
    """
    return structlog.get_logger(name)


def log_request_start(
    method: str,
    path: str,
    request_id: str,
    client_ip: str = None,
    **kwargs
) -> None:
    """
    Log incoming API request.

    Args:
        method: HTTP method
        path: Request path
        request_id: Unique request ID
        client_ip: Client IP address
        **kwargs: Additional context
    """
    logger = get_logger("api")
    logger.info(
        "request_start",
        method=method,
        path=path,
        request_id=request_id,
        client_ip=client_ip,
        **kwargs
    )


def log_request_end(
    method: str,
    path: str,
    request_id: str,
    status_code: int,
    duration_ms: float,
    **kwargs
) -> None:
    """
    Log completed API request.

    Args:
        method: HTTP method
        path: Request path
        request_id: Unique request ID
        status_code: HTTP status code
        duration_ms: Request duration in milliseconds
        **kwargs: Additional context
    """
    logger = get_logger("api")
    logger.info(
        "request_end",
        method=method,
        path=path,
        request_id=request_id,
        status_code=status_code,
        duration_ms=duration_ms,
        **kwargs
    )


def log_key_selected(
    provider: str,
    key_id: Any,
    daily_usage: int,
    quota: int,
    **kwargs
) -> None:
    """Log which key a request is about to use."""
    logger = get_logger("key_manager")
    logger.debug(
        "key_selected",
        provider=provider,
        key_id=key_id,
        daily_usage=daily_usage,
        quota=quota,
        **kwargs
    )


def log_key_rotation(
    provider: str,
    old_key_id: Any,
    new_key_id: Any,
    reason: str,
    **kwargs
) -> None:
    """
    Log key rotation event.

    Args:
        provider: Provider name
        old_key_id: Key that failed
        new_key_id: Key tried next (None when nothing is left)
        reason: Reason for rotation
        **kwargs: Additional context
    """
    logger = get_logger("rotating_client")
    logger.info(
        "key_rotation",
        provider=provider,
        old_key_id=old_key_id,
        new_key_id=new_key_id,
        reason=reason,
        **kwargs
    )


def log_key_deactivated(
    provider: str,
    key_id: Any,
    daily_usage: int,
    quota: int,
    **kwargs
) -> None:
    """Log a key reaching its daily quota."""
    logger = get_logger("key_manager")
    logger.warning(
        "key_quota_reached",
        provider=provider,
        key_id=key_id,
        daily_usage=daily_usage,
        quota=quota,
        **kwargs
    )


def log_key_reset(provider: str, key_id: Any, **kwargs) -> None:
    """Log a daily usage reset."""
    logger = get_logger("key_manager")
    logger.info("key_usage_reset", provider=provider, key_id=key_id, **kwargs)


def log_fallback_used(
    provider: str,
    reason: str,
    attempts: int,
    **kwargs
) -> None:
    """
    Log that a request was served by the offline fallback.

    Args:
        provider: Provider name
        reason: Why no provider call succeeded
        attempts: Underlying call attempts made before falling back
        **kwargs: Additional context
    """
    logger = get_logger("rotating_client")
    logger.warning(
        "fallback_used",
        provider=provider,
        reason=reason,
        attempts=attempts,
        **kwargs
    )


def log_accounting_failure(
    provider: str,
    key_id: Any,
    error: str,
    **kwargs
) -> None:
    """Log a key store write that failed during usage accounting."""
    logger = get_logger("key_manager")
    logger.warning(
        "usage_accounting_failed",
        provider=provider,
        key_id=key_id,
        error=error,
        **kwargs
    )


def log_exception(
    exception: Exception,
    context: Dict[str, Any] = None,
    **kwargs
) -> None:
    """
    Log exception with full context.

    Args:
        exception: Exception instance
        context: Additional context dictionary
        **kwargs: Additional context
    """
    logger = get_logger("exception")

    log_data = {
        "exception_type": type(exception).__name__,
        "exception_message": str(exception),
        **(context or {}),
        **kwargs
    }

    logger.exception(
        "exception_occurred",
        **log_data
    )
