import json
import logging
import os
import sys
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

# Exposed so callers can tag log lines with the current chat turn / request id
req_id_var: ContextVar[str] = ContextVar("req_id", default="-")

# Lightweight in-process error ring buffer for health reporting
_ERRORS: list[dict[str, Any]] = []
_MAX_ERRORS = 200


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "req_id": getattr(record, "req_id", req_id_var.get()),
            "level": record.levelname,
            "component": record.name,
            "msg": record.getMessage(),
        }
        payload["env"] = os.getenv("ENV", "").strip()
        if hasattr(record, "meta"):
            payload["meta"] = record.meta
            # Surface the session id for easy searching
            if isinstance(record.meta, dict) and record.meta.get("session_id"):
                payload["session_id"] = record.meta.get("session_id")
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        try:
            return json.dumps(payload, ensure_ascii=False, default=str)
        except (TypeError, ValueError):
            return payload.get("msg", "")


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        # Propagate request id from context-var into every log line
        record.req_id = req_id_var.get()
        return True


class _ErrorBufferHandler(logging.Handler):
    def emit(self, record: logging.LogRecord) -> None:  # pragma: no cover - IO free
        if record.levelno < logging.ERROR:
            return
        _ERRORS.append(
            {
                "timestamp": datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ"),
                "level": record.levelname,
                "component": record.name,
                "msg": record.getMessage(),
            }
        )
        if len(_ERRORS) > _MAX_ERRORS:
            # keep newest
            del _ERRORS[: len(_ERRORS) - _MAX_ERRORS]


def configure_logging() -> None:
    """
    Call once at process startup.
    LOG_LEVEL env var controls verbosity (default INFO).
    LOG_TO_STDOUT switches to plain text lines on stdout for local runs.
    """
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    force_stdout = os.getenv("LOG_TO_STDOUT", "").lower() in {"1", "true", "yes", "on"}

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level, logging.INFO))

    # Clear existing handlers so repeated calls stay idempotent
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    for flt in root_logger.filters[:]:
        if isinstance(flt, RequestIdFilter):
            root_logger.removeFilter(flt)
    root_logger.addFilter(RequestIdFilter())

    json_formatter = JsonFormatter()
    if force_stdout:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
        root_logger.addHandler(console_handler)
    else:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(json_formatter)
        root_logger.addHandler(stderr_handler)

    error_handler = _ErrorBufferHandler()
    error_handler.setFormatter(json_formatter)
    root_logger.addHandler(error_handler)

    # Reduce third-party verbosity unless LOG_LEVEL is DEBUG
    if level != "DEBUG":
        for name in ("httpx", "httpcore", "urllib3", "asyncio", "sentence_transformers"):
            logging.getLogger(name).setLevel(logging.WARNING)


def get_last_errors(n: int) -> list[dict[str, Any]]:
    """Return the last ``n`` buffered error records."""
    return _ERRORS[-int(n) :] if n > 0 else []


def clear_errors() -> None:
    """Clear the error buffer."""
    _ERRORS.clear()


__all__ = [
    "req_id_var",
    "JsonFormatter",
    "RequestIdFilter",
    "configure_logging",
    "get_last_errors",
    "clear_errors",
]
