"""
Structured per-request log records.

The orchestrator builds one RequestLogRecord per request attempt and hands it to
an injected RequestLogWriter. Where records end up is the writer's business;
LoggingRequestLogWriter just emits them as JSON through the logging module.
"""

import logging
import secrets
import string
import time
from typing import Protocol

from pydantic import BaseModel, ConfigDict, Field

from infrastructure.observability.logging import REQUEST_LOGGER_NAME

_BASE36 = string.digits + string.ascii_lowercase


def mask_api_key(api_key: str | None) -> str:
    """Keep the first 7 and last 4 characters; short keys are fully masked."""
    if not api_key or len(api_key) < 12:
        return "****"
    return f"{api_key[:7]}****{api_key[-4:]}"


def generate_request_id() -> str:
    """Return an id of the form req_<epoch ms>_<7 base36 chars>."""
    suffix = "".join(secrets.choice(_BASE36) for _ in range(7))
    return f"req_{int(time.time() * 1000)}_{suffix}"


class LoggedMessage(BaseModel):
    role: str
    content: str


class RequestSection(BaseModel):
    model: str
    temperature: float | None = None
    max_tokens: int | None = None
    system: str | None = None
    messages: list[LoggedMessage] = Field(default_factory=list)


class ResponseSection(BaseModel):
    content: str
    filtered_content: str | None = None


class PerformanceSection(BaseModel):
    duration_ms: int
    started_at: str
    completed_at: str


class ConfigSection(BaseModel):
    api_key: str = Field(..., description="Masked credential.")
    base_url: str


class FilteringSection(BaseModel):
    changed: bool
    applied_rules_count: int = 0
    original_length: int
    filtered_length: int
    failed_stages: list[str] = Field(default_factory=list)


class RequestLogRecord(BaseModel):
    """One structured record per request attempt."""

    model_config = ConfigDict(use_enum_values=True)

    timestamp: str
    request_id: str
    feature: str
    provider: str
    outcome: str = Field(..., description="completed | cancelled | failed")
    cancel_cause: str | None = None
    error: str | None = None
    request: RequestSection
    response: ResponseSection | None = None
    performance: PerformanceSection
    config: ConfigSection
    filtering: FilteringSection | None = None


class RequestLogWriter(Protocol):
    """Sink for request log records. Failures are logged by the caller, never propagated."""

    def write(self, record: RequestLogRecord) -> None: ...


class LoggingRequestLogWriter:
    """Writes each record as one JSON line to a dedicated logger."""

    def __init__(self, logger_name: str = REQUEST_LOGGER_NAME, level: int = logging.INFO) -> None:
        self._logger = logging.getLogger(logger_name)
        self._level = level

    def write(self, record: RequestLogRecord) -> None:
        self._logger.log(self._level, "%s", record.model_dump_json(exclude_none=True))
