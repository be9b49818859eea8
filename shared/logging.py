"""
Shared logging configuration for the Edge Gateway.
"""

import sys
import structlog
import logging
import uuid
import time
from typing import Any, Dict, Optional
from contextvars import ContextVar

# Context variables for request correlation
request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
request_method_var: ContextVar[Optional[str]] = ContextVar('request_method', default=None)
request_path_var: ContextVar[Optional[str]] = ContextVar('request_path', default=None)

_service_name: Optional[str] = None


def configure_logging(service_name: str, log_level: str = "info") -> None:
    """Configure structured logging for a service."""
    global _service_name
    _service_name = service_name

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            add_service_context,
            add_request_context,
            add_timestamp,
            structlog.processors.JSONRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )


def add_service_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Tag events with the configured service, falling back to the logger prefix."""
    if _service_name:
        event_dict.setdefault("service", _service_name)
    else:
        logger_name = event_dict.get("logger", "")
        if "." in logger_name:
            event_dict.setdefault("service", logger_name.split(".")[0])
    return event_dict


def add_request_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Attach the current request id, method and path to log events."""
    request_id = request_id_var.get()
    if request_id:
        event_dict["request_id"] = request_id

    method = request_method_var.get()
    if method:
        event_dict.setdefault("method", method)

    path = request_path_var.get()
    if path:
        event_dict.setdefault("path", path)
    return event_dict


def add_timestamp(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add high-precision timestamp to log events."""
    event_dict["timestamp"] = time.time()
    return event_dict


def set_request_id(request_id: Optional[str] = None) -> str:
    """Set request ID in context."""
    if request_id is None:
        request_id = str(uuid.uuid4())
    request_id_var.set(request_id)
    return request_id


def bind_request(method: str, path: str, request_id: Optional[str] = None) -> str:
    """Bind the inbound request to the logging context; returns the request id."""
    request_method_var.set(method)
    request_path_var.set(path)
    return set_request_id(request_id)


def clear_context():
    """Clear all context variables."""
    request_id_var.set(None)
    request_method_var.set(None)
    request_path_var.set(None)


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
