"""
Observability: structured logging, request log records and tracing.

Provides:
- Contextual logging with request id / feature tag
- Log rotation and file management
- Third-party library log level control
- Per-request structured log records with masked credentials
- Optional Opik spans
"""

from infrastructure.observability.logging import (
    REQUEST_LOGGER_NAME,
    clear_request_context,
    configure_logging,
    get_log_context,
    request_tag,
    set_log_context,
)
from infrastructure.observability.request_log import (
    LoggingRequestLogWriter,
    RequestLogRecord,
    RequestLogWriter,
    generate_request_id,
    mask_api_key,
)

__all__ = [
    "configure_logging",
    "set_log_context",
    "get_log_context",
    "clear_request_context",
    "request_tag",
    "REQUEST_LOGGER_NAME",
    "RequestLogRecord",
    "RequestLogWriter",
    "LoggingRequestLogWriter",
    "generate_request_id",
    "mask_api_key",
]
