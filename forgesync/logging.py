"""femtologging helpers shared by every forgesync module.

Messages are formatted before they reach femtologging, so callers pass
percent-style templates and the helpers interpolate them. Structured
reconciliation events use :func:`log_event`, which renders
``[event] key=value`` lines that log aggregators can split on whitespace.

Example:
>>> from forgesync.logging import get_logger, log_event
>>> logger = get_logger(__name__)
>>> log_event(logger, "sync.run.started", org="acme", dry_run=True)

"""

from __future__ import annotations

import enum
import typing as typ

from femtologging import basicConfig, get_logger


class LogLevel(enum.StrEnum):
    """Log levels understood by femtologging."""

    TRACE = "TRACE"
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


_DEFAULT_LEVEL = LogLevel.INFO.value


def normalize_log_level(level: str | None) -> tuple[str, bool]:
    """Return ``(normalized_level, invalid)`` for a raw level string.

    Unknown or empty values fall back to ``INFO`` with ``invalid`` set so the
    caller can warn once logging is configured.
    """
    if not level:
        return (_DEFAULT_LEVEL, True)

    normalized = level.strip().upper()
    if normalized in LogLevel.__members__:
        return (normalized, False)

    return (_DEFAULT_LEVEL, True)


def configure_logging(level: str, *, force: bool = False) -> tuple[str, bool]:
    """Configure femtologging and return the normalized level.

    Parameters
    ----------
    level : str
        Raw log level string, typically from ``FORGESYNC_LOG_LEVEL``.
    force : bool, optional
        Whether to replace any existing handler configuration.

    Returns
    -------
    tuple[str, bool]
        The normalized log level and a flag indicating invalid input.

    """
    normalized, invalid = normalize_log_level(level)
    basicConfig(level=normalized, force=force)
    return (normalized, invalid)


def format_log_message(template: str, *args: object) -> str:
    """Interpolate ``args`` into a percent-style ``template``."""
    if not args:
        return template
    return template % args


def _format_field(value: object) -> str:
    if isinstance(value, str):
        return value if value and " " not in value else repr(value)
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "-"
    return str(value)


def format_event(event: str, fields: typ.Mapping[str, object]) -> str:
    """Render a structured event line.

    Examples
    --------
    >>> format_event("sync.action.applied", {"repo": "acme/core", "ok": True})
    '[sync.action.applied] repo=acme/core ok=true'

    """
    parts = [f"[{event}]"]
    parts.extend(f"{key}={_format_field(value)}" for key, value in fields.items())
    return " ".join(parts)


class _SupportsLog(typ.Protocol):
    """Protocol for femtologging-compatible loggers."""

    def log(
        self,
        level: str,
        message: str,
        /,
        *,
        exc_info: object | None = None,
        stack_info: bool = False,
    ) -> str | None: ...


def _emit(
    logger: _SupportsLog,
    level: str,
    message: str,
    *,
    exc_info: object | None = None,
) -> None:
    logger.log(level, message, exc_info=exc_info, stack_info=False)


def log_debug(logger: _SupportsLog, template: str, *args: object) -> None:
    """Log a DEBUG message with percent-style formatting."""
    _emit(logger, "DEBUG", format_log_message(template, *args))


def log_info(
    logger: _SupportsLog,
    template: str,
    *args: object,
    exc_info: object | None = None,
) -> None:
    """Log an INFO message with percent-style formatting."""
    _emit(logger, "INFO", format_log_message(template, *args), exc_info=exc_info)


def log_warning(
    logger: _SupportsLog,
    template: str,
    *args: object,
    exc_info: object | None = None,
) -> None:
    """Log a WARNING message with percent-style formatting.

    Parameters
    ----------
    logger : _SupportsLog
        Logger that receives the formatted message.
    template : str
        Message template using percent-style placeholders.
    *args : object
        Values to interpolate into the template.
    exc_info : object | None, optional
        Exception information to attach to the log record.

    """
    _emit(logger, "WARNING", format_log_message(template, *args), exc_info=exc_info)


def log_error(
    logger: _SupportsLog,
    template: str,
    *args: object,
    exc_info: object | None = None,
) -> None:
    """Log an ERROR message with percent-style formatting."""
    _emit(logger, "ERROR", format_log_message(template, *args), exc_info=exc_info)


def log_event(
    logger: _SupportsLog,
    event: str,
    *,
    level: str = "INFO",
    exc_info: object | None = None,
    **fields: object,
) -> None:
    """Log a structured ``[event] key=value`` line at ``level``."""
    _emit(logger, level, format_event(event, fields), exc_info=exc_info)


__all__ = [
    "LogLevel",
    "configure_logging",
    "format_event",
    "format_log_message",
    "get_logger",
    "log_debug",
    "log_error",
    "log_event",
    "log_info",
    "log_warning",
    "normalize_log_level",
]
