"""
Logging setup for the chat core.

Every line carries the short request tag, the feature and the provider of the
request being served, taken from contextvars that the orchestrator sets per
request. Request log records (JSON) can be split into their own rotating file.
"""

import contextvars
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

REQUEST_LOGGER_NAME = "chat_core.requests"

_NO_VALUE = "-"

cv_request_id = contextvars.ContextVar("request_id", default=_NO_VALUE)
cv_feature = contextvars.ContextVar("feature", default=_NO_VALUE)
cv_provider = contextvars.ContextVar("provider", default=_NO_VALUE)
cv_model = contextvars.ContextVar("model", default=_NO_VALUE)

_CONTEXT_VARS: dict[str, contextvars.ContextVar] = {
    "request_id": cv_request_id,
    "feature": cv_feature,
    "provider": cv_provider,
    "model": cv_model,
}


def request_tag(request_id: str) -> str:
    """Random suffix of a req_<ms>_<suffix> id; enough to correlate lines."""
    if request_id == _NO_VALUE:
        return request_id
    return request_id.rsplit("_", 1)[-1]


class ContextInjectFilter(logging.Filter):
    """Copy the request context onto each record as req / feat / prov."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.req = request_tag(cv_request_id.get())
        record.feat = cv_feature.get()
        record.prov = cv_provider.get()
        return True


def set_log_context(
    *,
    request_id: str | None = None,
    feature: str | None = None,
    provider: str | None = None,
    model: str | None = None,
) -> None:
    """Set any of the request context fields; None leaves a field as is."""
    values = {"request_id": request_id, "feature": feature, "provider": provider, "model": model}
    for key, value in values.items():
        if value is not None:
            _CONTEXT_VARS[key].set(str(value))


def get_log_context() -> dict[str, str]:
    """Current request context, e.g. for span metadata."""
    return {key: var.get() for key, var in _CONTEXT_VARS.items()}


def clear_request_context() -> None:
    for var in _CONTEXT_VARS.values():
        var.set(_NO_VALUE)


def _rotating_handler(path: Path, level: int, fmt: logging.Formatter, max_bytes: int, backup_count: int):
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(fmt)
    return handler


def configure_logging(
    *,
    log_file: Path | None = None,
    request_log_file: Path | None = None,
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
    max_bytes: int = 10_000_000,  # 10MB
    backup_count: int = 5,
) -> None:
    """
    Configure root logging.

    Args:
        log_file: Application log (console only when None)
        request_log_file: JSON-lines file for request log records; when set,
            those records no longer reach the console or the application log
        console_level: Minimum level for console output
        file_level: Minimum level for file output
        max_bytes: Max size of each log file before rotation
        backup_count: Rotated files to keep
    """
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(logging.DEBUG)  # handlers enforce levels

    ctx_filter = ContextInjectFilter()

    # stderr, so a reply streamed to stdout stays clean
    console = logging.StreamHandler()
    console.setLevel(console_level)
    console.setFormatter(
        logging.Formatter("%(asctime)s [%(levelname)s] req=%(req)s feat=%(feat)s | %(message)s", datefmt="%H:%M:%S")
    )
    console.addFilter(ctx_filter)
    root.addHandler(console)

    if log_file is not None:
        fmt = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s | req=%(req)s feat=%(feat)s prov=%(prov)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        fh = _rotating_handler(log_file, file_level, fmt, max_bytes, backup_count)
        fh.addFilter(ctx_filter)
        root.addHandler(fh)

    requests_logger = logging.getLogger(REQUEST_LOGGER_NAME)
    requests_logger.handlers.clear()
    requests_logger.propagate = request_log_file is None
    if request_log_file is not None:
        requests_logger.addHandler(
            _rotating_handler(request_log_file, logging.DEBUG, logging.Formatter("%(message)s"), max_bytes, backup_count)
        )

    for name in ("httpx", "httpcore", "openai", "anthropic"):
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger("opik").setLevel(logging.INFO)

    logging.getLogger(__name__).info(
        "Logging configured (console_level=%s, file=%s, request_log=%s)",
        logging.getLevelName(console_level),
        log_file,
        request_log_file,
    )
