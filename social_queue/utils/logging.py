"""
Structured logging for social-queue.

Provides:
- One-line JSON records in production, readable colored lines in development
- Per-task operation context (principal, platform, correlation id)
- Redaction of OAuth credentials before records reach a handler
- Timing of adapter calls
"""

import json
import logging
import re
import sys
import time
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

SERVICE_NAME = "social-queue"

CONTEXT_FIELDS = ("principal_id", "platform", "correlation_id")

_context: Dict[str, ContextVar] = {
    name: ContextVar(name, default=None) for name in CONTEXT_FIELDS
}

# OAuth credentials that must never reach a log sink
SENSITIVE_PATTERNS: list[re.Pattern] = [
    re.compile(r'bearer\s+[\w.~+/=-]+', re.IGNORECASE),
    re.compile(r'authorization["\']?\s*[:=]\s*["\']?(?:(?:basic|bearer)\s+)?[^\s,}"\']+', re.IGNORECASE),
    re.compile(
        r'(access_token|refresh_token|fb_exchange_token|client_secret|code_verifier)'
        r'["\']?\s*[:=]\s*["\']?[^\s&,"\'}]+',
        re.IGNORECASE,
    ),
    re.compile(r'encryption_key["\']?\s*[:=]\s*["\']?[^\s,}]+', re.IGNORECASE),
    re.compile(r'eyJ[\w-]+\.eyJ[\w-]+\.[\w-]+'),  # JWT
]

REDACTED = "[REDACTED]"

# Attributes every LogRecord carries; anything else came in through ``extra``
_STANDARD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__
) | {"message", "asctime", "taskName", *CONTEXT_FIELDS}


def redact_sensitive_data(message: str) -> str:
    """Replace OAuth credentials in ``message`` with ``[REDACTED]``."""
    if not message:
        return message
    for pattern in SENSITIVE_PATTERNS:
        message = pattern.sub(REDACTED, message)
    return message


def _redact(value: Any) -> Any:
    return redact_sensitive_data(value) if isinstance(value, str) else value


def extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    """Fields attached to ``record`` through ``extra=``."""
    return {
        key: value for key, value in record.__dict__.items()
        if key not in _STANDARD_ATTRS and not key.startswith("_")
    }


class OperationContextFilter(logging.Filter):
    """Stamp the current operation context onto every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        for name, var in _context.items():
            setattr(record, name, var.get() or "-")
        return True


class SensitiveDataFilter(logging.Filter):
    """Redact credentials from the message, its arguments and string extras."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.msg:
            record.msg = redact_sensitive_data(str(record.msg))
        if isinstance(record.args, dict):
            record.args = {k: _redact(v) for k, v in record.args.items()}
        elif record.args:
            record.args = tuple(_redact(arg) for arg in record.args)
        for key, value in extra_fields(record).items():
            setattr(record, key, _redact(value))
        return True


class JSONFormatter(logging.Formatter):
    """
    Single-line JSON records:

    {"ts": ..., "level": "INFO", "logger": "social_queue.social.service",
     "msg": "...", "service": "social-queue", "principal_id": ...,
     "platform": ..., "correlation_id": ..., "extra": {...}}
    """

    def __init__(self, service_name: str = SERVICE_NAME):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "service": self.service_name,
        }
        payload.update({name: getattr(record, name, "-") for name in CONTEXT_FIELDS})

        if record.levelno >= logging.ERROR:
            payload["where"] = f"{record.pathname}:{record.lineno} in {record.funcName}"
        if record.exc_info:
            payload["exception"] = redact_sensitive_data(self.formatException(record.exc_info))

        extra = extra_fields(record)
        if extra:
            payload["extra"] = extra

        return json.dumps(payload, default=str, ensure_ascii=False)


class DevelopmentFormatter(logging.Formatter):
    """``HH:MM:SS LEVEL platform principal logger: message {extra}`` lines."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[1;31m",
    }
    RESET = "\033[0m"

    def __init__(self, use_color: bool = True):
        super().__init__()
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        level = record.levelname.ljust(8)
        if self.use_color:
            level = f"{self.LEVEL_COLORS.get(record.levelno, '')}{level}{self.RESET}"

        line = "{time} {level} {platform:>9} {principal:>12} {logger}: {message}".format(
            time=datetime.fromtimestamp(record.created).strftime("%H:%M:%S"),
            level=level,
            platform=getattr(record, "platform", "-"),
            principal=str(getattr(record, "principal_id", "-"))[:12],
            logger=record.name,
            message=record.getMessage(),
        )

        extra = extra_fields(record)
        if extra:
            line += f" {extra}"
        if record.exc_info:
            line += "\n" + redact_sensitive_data(self.formatException(record.exc_info))
        return line


def setup_logging(
    service_name: str = SERVICE_NAME,
    log_level: Optional[int] = None,
    force_json: bool = False,
) -> logging.Logger:
    """
    Configure the root logger once at process startup.

    Level and format default to the ``LoggingSettings`` group of the
    application settings (``LOG_LEVEL``, ``LOG_FORMAT_JSON``,
    ``ENVIRONMENT``).

    Args:
        service_name: Name reported in JSON records
        log_level: Override for the configured level
        force_json: Emit JSON even outside production

    Returns:
        The configured root logger
    """
    from social_queue.config import get_settings

    settings = get_settings()
    level = log_level if log_level is not None else settings.logging.level
    use_json = force_json or settings.logging.use_json(settings.security.environment)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(OperationContextFilter())
    handler.addFilter(SensitiveDataFilter())
    handler.setFormatter(
        JSONFormatter(service_name) if use_json else DevelopmentFormatter(sys.stdout.isatty())
    )

    root = logging.getLogger()
    for existing in root.handlers[:]:
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    # httpx logs full request URLs, which carry authorization codes
    for noisy in ("httpx", "httpcore", "asyncio"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    root.debug(
        "Logging configured",
        extra={"format": "json" if use_json else "text", "service": service_name},
    )
    return root


def set_operation_context(
    principal_id: Optional[str] = None,
    platform: Optional[str] = None,
    correlation_id: Optional[str] = None,
) -> None:
    """Set context included in every log record of the current task."""
    values = {
        "principal_id": principal_id,
        "platform": platform,
        "correlation_id": correlation_id,
    }
    for name, value in values.items():
        if value is not None:
            _context[name].set(value)


def clear_operation_context() -> None:
    for var in _context.values():
        var.set(None)


class Timer:
    """
    Context manager logging how long an adapter call took.

        with Timer("linkedin.publish", logger):
            await adapter.post_content(token, content)
    """

    def __init__(
        self,
        name: str,
        logger: Optional[logging.Logger] = None,
        log_level: int = logging.DEBUG,
    ):
        self.name = name
        self.logger = logger
        self.log_level = log_level
        self.elapsed_ms: float = 0.0
        self._started = 0.0

    def __enter__(self) -> "Timer":
        self._started = time.monotonic()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.elapsed_ms = (time.monotonic() - self._started) * 1000
        if self.logger is None:
            return
        self.logger.log(
            self.log_level,
            "%s took %.1fms",
            self.name,
            self.elapsed_ms,
            extra={
                "operation": self.name,
                "duration_ms": round(self.elapsed_ms, 1),
                "success": exc_type is None,
            },
        )
