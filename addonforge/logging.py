"""Structured logging configuration."""

import logging
import sys
from typing import Any

import structlog

SENSITIVE_FIELDS = (
    "api_key",
    "ibmcloud_api_key",
    "password",
    "secret",
    "token",
)


def configure_logging(log_level: str = "INFO", log_format: str = "json") -> None:
    """Configure structured logging."""
    level = getattr(logging, log_level.upper())

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    # Redact before the final renderer
    processors.insert(-1, filter_sensitive_data)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> Any:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def filter_sensitive_data(logger: Any, method_name: str, event_dict: dict) -> dict:
    """Redact credential-like values from log events."""
    for key in list(event_dict):
        if any(field in key.lower() for field in SENSITIVE_FIELDS):
            event_dict[key] = "[REDACTED]"

    inputs = event_dict.get("inputs")
    if isinstance(inputs, dict):
        event_dict["inputs"] = {
            k: "[REDACTED]" if any(f in k.lower() for f in SENSITIVE_FIELDS) else v
            for k, v in inputs.items()
        }

    return event_dict
