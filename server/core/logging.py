"""Modern structured logging configuration."""

import sys
import structlog
import logging
from pathlib import Path
from typing import Optional
from core.config import Settings


def configure_logging(settings: Settings) -> None:
    """Configure structured logging based on settings."""
    level = getattr(logging, settings.log_level.upper())

    if settings.log_file:
        log_path = Path(settings.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path)
        file_handler.setLevel(level)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)

        logging.basicConfig(
            level=level,
            handlers=[console_handler, file_handler],
            format="%(message)s"
        )
    else:
        logging.basicConfig(
            format="%(message)s",
            stream=sys.stdout,
            level=level
        )

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.log_format == "json":
        processors.insert(0, structlog.processors.TimeStamper(fmt="iso"))
        processors.insert(0, structlog.stdlib.add_logger_name)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.insert(0, structlog.processors.TimeStamper(fmt="%H:%M:%S"))
        processors.append(structlog.dev.ConsoleRenderer(
            colors=False,
            pad_event=35,
            exception_formatter=structlog.dev.plain_traceback
        ))

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def log_execution_time(logger: structlog.BoundLogger, operation: str,
                      start_time: float, end_time: float, **kwargs) -> None:
    """Log execution time with additional context."""
    execution_time = end_time - start_time
    logger.info(
        "Operation completed",
        operation=operation,
        execution_time_seconds=round(execution_time, 4),
        **kwargs
    )


def log_store_operation(logger: structlog.BoundLogger, operation: str,
                        key: str, hit: Optional[bool] = None, **kwargs) -> None:
    """Log key-value store operations."""
    log_data = {
        "operation": operation,
        "store_key": key,
        **kwargs
    }

    if hit is not None:
        log_data["cache_hit"] = hit

    logger.debug("Store operation", **log_data)


def mask_phone(phone: Optional[str]) -> str:
    """Mask all but the last four digits of a phone number."""
    if not phone:
        return ""
    if len(phone) <= 4:
        return "*" * len(phone)
    prefix = phone[:2] if phone.startswith("+") and len(phone) > 6 else ""
    return prefix + "*" * (len(phone) - len(prefix) - 4) + phone[-4:]
