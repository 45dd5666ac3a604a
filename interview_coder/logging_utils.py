"""Structured logging for the configuration layer.

Log lines carry a short headline plus ``key=value`` details so that a
support request can be answered from a pasted log excerpt. Values logged
under an API key field are masked before the record is created.
"""
from __future__ import annotations

import json
import logging
import os
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Iterator, Mapping

from .app_identity import APP_LOG_NAMESPACE

LOG_LEVEL_ENV = "INTERVIEW_CODER_LOG_LEVEL"
LOG_DIR_ENV = "INTERVIEW_CODER_LOG_DIR"
LOG_MAX_BYTES_ENV = "INTERVIEW_CODER_LOG_MAX_BYTES"
LOG_BACKUP_COUNT_ENV = "INTERVIEW_CODER_LOG_BACKUP_COUNT"
LOG_FORMAT_ENV = "INTERVIEW_CODER_LOG_FORMAT"
DEFAULT_LOG_FILENAME = "interview-coder.log"
DEFAULT_LOG_MAX_BYTES = 2 * 1024 * 1024  # 2 MiB
DEFAULT_LOG_BACKUP_COUNT = 3

FORMAT_STRUCTURED = "structured"
FORMAT_JSON = "json"
_SUPPORTED_FORMATS = (FORMAT_STRUCTURED, FORMAT_JSON)

# Detail keys whose values are API keys and must never be written verbatim.
SECRET_DETAIL_KEYS = frozenset({"api_key", "apiKey"})

_RUN_ID = f"{datetime.now(timezone.utc):%Y%m%d-%H%M%S}-{uuid.uuid4().hex[:6]}"
_LAST_LOG_FILE: Path | None = None


def mask_secret(value: Any) -> str:
    """Return a printable form of an API key that never exposes the secret."""

    if not isinstance(value, str) or not value.strip():
        return "<empty>"
    stripped = value.strip()
    if len(stripped) <= 8:
        return "***"
    return f"{stripped[:3]}...{stripped[-4:]}"


def _format_value(value: Any) -> str:
    if value is None:
        return "<none>"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return f"{value:.2f}"
    if isinstance(value, (list, tuple, set, frozenset)):
        return "[" + ", ".join(_format_value(item) for item in value) + "]"
    return str(value)


def _render_details(details: Mapping[str, Any]) -> str:
    return " ".join(f"{key}={_format_value(details[key])}" for key in sorted(details))


def _jsonable(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Mapping):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_jsonable(item) for item in value]
    return str(value)


class StructuredMessage:
    """A log headline with an optional event name and detail fields.

    Fields whose value is ``None`` are dropped so that call sites can pass
    optional context without branching.
    """

    __slots__ = ("headline", "event", "details")

    def __init__(
        self,
        headline: str,
        /,
        *,
        event: str | None = None,
        details: Mapping[str, Any] | None = None,
        **fields: Any,
    ) -> None:
        self.headline = headline
        self.event = event
        self.details = {
            key: value
            for key, value in {**dict(details or {}), **fields}.items()
            if value is not None
        }

    def __str__(self) -> str:
        parts = [self.headline]
        if self.event:
            parts.append(f"event={self.event}")
        if self.details:
            parts.append(_render_details(self.details))
        return " | ".join(parts)


class _RuntimeContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:  # pragma: no cover - trivial
        record.process_id = os.getpid()
        record.run_id = _RUN_ID
        return True


class _StructuredLogFormatter(logging.Formatter):
    """``timestamp | LEVEL | logger:component [run, func] | headline | event | details``."""

    default_time_format = "%Y-%m-%dT%H:%M:%S"
    default_msec_format = "%s.%03d"

    def format(self, record: logging.LogRecord) -> str:
        origin = record.name
        component = getattr(record, "component", None)
        if component:
            origin = f"{origin}:{component}"
        markers = [f"run={record.run_id}"] if getattr(record, "run_id", None) else []
        if record.funcName:
            markers.append(f"func={record.funcName}")
        if markers:
            origin = f"{origin} [{', '.join(markers)}]"

        head, *rest = super().format(record).splitlines() or [""]
        message = "\n".join([head, *(f"    {line}" for line in rest)])

        line = f"{self.formatTime(record, self.datefmt)} | {record.levelname:<8} | {origin} | {message}"
        event = getattr(record, "event", None)
        if event:
            line += f" | event={event}"
        details = getattr(record, "details", None)
        if isinstance(details, Mapping) and details:
            line += f" | {_render_details(details)}"
        return line


class _JsonLogFormatter(logging.Formatter):
    """One JSON object per line, for log shippers."""

    default_time_format = "%Y-%m-%dT%H:%M:%S"
    default_msec_format = "%s.%03d"

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for attribute in ("component", "event", "run_id", "process_id"):
            value = getattr(record, attribute, None)
            if value is not None:
                payload[attribute] = value
        details = getattr(record, "details", None)
        if isinstance(details, Mapping) and details:
            payload["details"] = _jsonable(details)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, sort_keys=True)


class ContextualLoggerAdapter(logging.LoggerAdapter):
    """Unpack :class:`StructuredMessage` objects into record attributes.

    The headline becomes the log message; ``event``, ``details`` and the
    adapter's ``component`` land on the record for the formatters. Detail
    fields named in ``SECRET_DETAIL_KEYS`` are masked with :func:`mask_secret`.
    """

    def __init__(
        self,
        logger: logging.Logger,
        *,
        component: str | None = None,
        defaults: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(logger, extra={})
        self.component = component
        self.defaults = dict(defaults or {})

    def process(self, msg: Any, kwargs: Mapping[str, Any]) -> tuple[Any, Mapping[str, Any]]:
        kwargs = dict(kwargs)
        extra = dict(kwargs.get("extra") or {})
        details = dict(self.defaults)
        if isinstance(msg, StructuredMessage):
            if msg.event is not None:
                extra.setdefault("event", msg.event)
            details.update(msg.details)
            msg = msg.headline
        if self.component:
            extra.setdefault("component", self.component)
        if details:
            extra["details"] = {
                key: mask_secret(value) if key in SECRET_DETAIL_KEYS else value
                for key, value in details.items()
            }
        if extra:
            kwargs["extra"] = extra
        return msg, kwargs


def _env_int(environ: Mapping[str, str], name: str, default: int) -> int:
    try:
        parsed = int(environ.get(name, ""))
    except ValueError:
        return default
    return parsed if parsed >= 0 else default


@dataclass(frozen=True)
class LogSettings:
    """Logging options read from ``INTERVIEW_CODER_LOG_*`` variables."""

    level: int = logging.INFO
    log_format: str = FORMAT_STRUCTURED
    directory: Path = Path("logs")
    max_bytes: int = DEFAULT_LOG_MAX_BYTES
    backup_count: int = DEFAULT_LOG_BACKUP_COUNT
    rejected_format: str | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "LogSettings":
        environ = os.environ if environ is None else environ
        level = logging.getLevelName(environ.get(LOG_LEVEL_ENV, "INFO").strip().upper())
        requested = environ.get(LOG_FORMAT_ENV, "").strip().lower()
        supported = requested in _SUPPORTED_FORMATS
        return cls(
            level=level if isinstance(level, int) else logging.INFO,
            log_format=requested if supported else FORMAT_STRUCTURED,
            directory=Path(environ.get(LOG_DIR_ENV) or "logs").expanduser(),
            max_bytes=_env_int(environ, LOG_MAX_BYTES_ENV, DEFAULT_LOG_MAX_BYTES),
            backup_count=_env_int(environ, LOG_BACKUP_COUNT_ENV, DEFAULT_LOG_BACKUP_COUNT),
            rejected_format=requested if requested and not supported else None,
        )

    def formatter(self) -> logging.Formatter:
        return _JsonLogFormatter() if self.log_format == FORMAT_JSON else _StructuredLogFormatter()


def _file_handler(settings: LogSettings) -> logging.Handler | None:
    global _LAST_LOG_FILE
    try:
        settings.directory.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            settings.directory / DEFAULT_LOG_FILENAME,
            maxBytes=settings.max_bytes,
            backupCount=settings.backup_count,
            encoding="utf-8",
        )
    except OSError:
        logging.getLogger(__name__).warning(
            "Unable to write logs to %s; logging to the console only.",
            settings.directory,
            exc_info=True,
        )
        return None
    _LAST_LOG_FILE = Path(handler.baseFilename)
    return handler


def setup_logging(*, log_to_file: bool = True, settings: LogSettings | None = None) -> LogSettings:
    """Install console (and optionally rotating file) handlers on the root logger."""

    settings = settings or LogSettings.from_env()
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_to_file:
        file_handler = _file_handler(settings)
        if file_handler is not None:
            handlers.append(file_handler)
    for handler in handlers:
        handler.setFormatter(settings.formatter())
        handler.addFilter(_RuntimeContextFilter())

    logging.basicConfig(level=settings.level, handlers=handlers, force=True)
    logging.captureWarnings(True)
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    logger = get_logger(f"{APP_LOG_NAMESPACE}.logging", component="Logging")
    if settings.rejected_format:
        logger.warning(
            log_context(
                "Unsupported log format requested; using the default.",
                event="logging.format_rejected",
                requested=settings.rejected_format,
                log_format=settings.log_format,
            )
        )
    logger.info(
        log_context(
            "Logging configured.",
            event="logging.configured",
            level=logging.getLevelName(settings.level),
            run_id=_RUN_ID,
            log_file=str(_LAST_LOG_FILE) if log_to_file and _LAST_LOG_FILE else None,
            log_format=settings.log_format,
        )
    )
    return settings


def log_context(
    headline: str,
    /,
    *,
    event: str | None = None,
    details: Mapping[str, Any] | None = None,
    **fields: Any,
) -> StructuredMessage:
    """Shorthand for building a :class:`StructuredMessage`."""

    return StructuredMessage(headline, event=event, details=details, **fields)


@contextmanager
def log_duration(
    logger: logging.Logger | ContextualLoggerAdapter,
    headline: str,
    /,
    *,
    event: str | None = None,
    details: Mapping[str, Any] | None = None,
    level: int = logging.INFO,
    failure_level: int = logging.ERROR,
) -> Iterator[dict[str, Any]]:
    """Time the wrapped block and log one entry when it finishes.

    The yielded ``dict`` collects extra fields for that entry. An exception
    is logged at ``failure_level`` and re-raised.
    """

    collected: dict[str, Any] = {}
    started = time.perf_counter()

    def _emit(log_level: int, status: str, **extra: Any) -> None:
        fields = {**dict(details or {}), **collected, **extra}
        fields.setdefault("status", status)
        fields["duration_ms"] = int((time.perf_counter() - started) * 1000)
        logger.log(
            log_level,
            StructuredMessage(headline, event=event, details=fields),
            exc_info=status == "failure",
        )

    try:
        yield collected
    except Exception as exc:
        _emit(failure_level, "failure", error=repr(exc))
        raise
    _emit(level, "success")


def get_logger(name: str, *, component: str | None = None, **default_fields: Any) -> ContextualLoggerAdapter:
    """Return a :class:`ContextualLoggerAdapter` for ``name``."""

    return ContextualLoggerAdapter(logging.getLogger(name), component=component, defaults=default_fields)


__all__ = [
    "ContextualLoggerAdapter",
    "LogSettings",
    "StructuredMessage",
    "get_logger",
    "log_context",
    "log_duration",
    "mask_secret",
    "setup_logging",
]
