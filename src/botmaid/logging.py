from __future__ import annotations

import errno
import io
import os
import re
import sys
from typing import Any, TextIO, cast

import structlog
from structlog.types import Processor

# Telegram puts the bot token in every request URL.
TELEGRAM_TOKEN_RE = re.compile(r"bot\d+:[A-Za-z0-9_-]+")
TELEGRAM_BARE_TOKEN_RE = re.compile(r"\b\d+:[A-Za-z0-9_-]{10,}\b")
BEARER_RE = re.compile(r"(?i)(bearer\s+)[^\s\"',]+")

SECRET_FIELDS = frozenset({"token", "access_token", "password", "authorization"})
REDACTED = "[REDACTED]"

_LEVELS: dict[str, int] = {
    "debug": 10,
    "info": 20,
    "warning": 30,
    "error": 40,
    "exception": 40,
    "critical": 50,
}

_min_level = _LEVELS["info"]
_log_file: TextIO | None = None


def _truthy(value: str | None) -> bool:
    return value is not None and value.strip().lower() in {"1", "true", "yes", "on"}


def _drop_below_level(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    if _LEVELS.get(method_name, 0) < _min_level:
        raise structlog.DropEvent
    return event_dict


def redact_text(value: str) -> str:
    value = TELEGRAM_TOKEN_RE.sub("bot" + REDACTED, value)
    value = TELEGRAM_BARE_TOKEN_RE.sub(REDACTED, value)
    return BEARER_RE.sub(r"\1" + REDACTED, value)


def _redact(value: Any, seen: set[int]) -> Any:
    if isinstance(value, str):
        return redact_text(value)
    if isinstance(value, (bytes, bytearray)):
        return redact_text(value.decode("utf-8", errors="replace"))
    if id(value) in seen:
        return "<cycle>"
    if isinstance(value, dict):
        seen.add(id(value))
        redacted = {
            key: REDACTED
            if isinstance(key, str) and key.lower() in SECRET_FIELDS and val
            else _redact(val, seen)
            for key, val in value.items()
        }
        seen.discard(id(value))
        return redacted
    if isinstance(value, (list, tuple)):
        seen.add(id(value))
        items = [_redact(item, seen) for item in value]
        seen.discard(id(value))
        return tuple(items) if isinstance(value, tuple) else items
    return value


def _redact_secrets(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    return _redact(event_dict, set())


def _write_log_file(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    if _log_file is None:
        return event_dict
    line = structlog.processors.JSONRenderer(default=str)(
        logger, method_name, dict(event_dict)
    )
    if isinstance(line, bytes):
        line = line.decode("utf-8", errors="replace")
    try:
        _log_file.write(line + "\n")
        _log_file.flush()
    except OSError:
        pass
    return event_dict


def _add_logger_name(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    name = event_dict.pop("logger_name", None)
    if name and "logger" not in event_dict:
        event_dict["logger"] = name
    return event_dict


def get_logger(name: str | None = None) -> Any:
    if name:
        return structlog.get_logger(logger_name=name)
    return structlog.get_logger()


def bind_bot_context(**fields: Any) -> None:
    """Attach fields (bot id, platform) to every event logged from this task."""
    structlog.contextvars.bind_contextvars(**fields)


class SafeWriter(io.TextIOBase):
    """stdout wrapper that goes quiet once the reading end of a pipe is gone."""

    def __init__(self, stream: Any) -> None:
        self._stream = stream
        self._broken = False

    def write(self, message: str) -> int:
        if self._broken:
            return 0
        try:
            return self._stream.write(message)
        except (BrokenPipeError, ValueError):
            self._broken = True
            return 0
        except OSError as exc:
            if exc.errno != errno.EPIPE:
                raise
            self._broken = True
            return 0

    def flush(self) -> None:
        if self._broken:
            return
        try:
            self._stream.flush()
        except (BrokenPipeError, ValueError):
            self._broken = True

    def isatty(self) -> bool:
        isatty = getattr(self._stream, "isatty", None)
        return bool(isatty()) if callable(isatty) else False


def _renderer(format_value: str) -> Processor:
    if format_value == "json":
        return structlog.processors.JSONRenderer(default=str)
    color = os.environ.get("BOTMAID_LOG_COLOR")
    colors = sys.stdout.isatty() if color is None else _truthy(color)
    return structlog.dev.ConsoleRenderer(colors=colors)


def _open_log_file(path: str | None) -> TextIO | None:
    if not path:
        return None
    try:
        return open(path, "a", encoding="utf-8")
    except OSError:
        return None


def setup_logging(
    *, debug: bool = False, cache_logger_on_first_use: bool = True
) -> None:
    """Configure structlog from BOTMAID_LOG_* environment variables.

    BOTMAID_LOG_LEVEL sets the threshold (``--debug`` forces debug),
    BOTMAID_LOG_FORMAT picks ``console`` or ``json``, BOTMAID_LOG_COLOR
    overrides tty detection and BOTMAID_LOG_FILE adds a JSON lines sink.
    """
    global _min_level, _log_file

    level = "debug" if debug else os.environ.get("BOTMAID_LOG_LEVEL", "info")
    _min_level = _LEVELS.get(level.strip().lower(), _LEVELS["info"])

    format_value = os.environ.get("BOTMAID_LOG_FORMAT", "console").strip().lower()

    if _log_file is not None:
        _log_file.close()
    _log_file = _open_log_file(os.environ.get("BOTMAID_LOG_FILE"))

    processors: list[Processor] = [
        _drop_below_level,
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.add_log_level,
        _add_logger_name,
    ]
    if format_value == "json":
        processors.append(structlog.processors.format_exc_info)
    processors.extend([_redact_secrets, _write_log_file, _renderer(format_value)])

    structlog.configure(
        processors=processors,
        logger_factory=structlog.PrintLoggerFactory(
            file=cast(TextIO, SafeWriter(sys.stdout))
        ),
        cache_logger_on_first_use=cache_logger_on_first_use,
    )
