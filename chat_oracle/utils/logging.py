"""Logging configuration utilities."""

from __future__ import annotations

import logging
import sys
from collections import deque
from pathlib import Path
from typing import Any, Deque, List, MutableMapping, Optional

import structlog

DEFAULT_DEBUG_BUFFER_SIZE = 200


class RecentEvents:
    """structlog processor that remembers the last events for ``/debug``.

    Events are kept whatever the configured log level, so the REPL can show
    debug detail without a restart with ``-v``.
    """

    def __init__(self, size: int = DEFAULT_DEBUG_BUFFER_SIZE) -> None:
        self._lines: Deque[str] = deque(maxlen=size)

    def __call__(
        self, logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
    ) -> MutableMapping[str, Any]:
        fields = " ".join(
            f"{key}={value}"
            for key, value in event_dict.items()
            if key not in ("event", "timestamp", "level")
        )
        timestamp = event_dict.get("timestamp", "-")
        line = f"{timestamp} {method_name} {event_dict.get('event')} {fields}"
        self._lines.append(line.rstrip())
        return event_dict

    def resize(self, size: int) -> None:
        self._lines = deque(self._lines, maxlen=size)

    def lines(self, limit: Optional[int] = None) -> List[str]:
        """Oldest first; ``limit`` keeps only the newest entries."""
        lines = list(self._lines)
        if limit is not None:
            lines = lines[-limit:] if limit > 0 else []
        return lines

    def clear(self) -> None:
        self._lines.clear()


recent_events = RecentEvents()


_METHOD_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "warn": logging.WARNING,
    "error": logging.ERROR,
    "exception": logging.ERROR,
    "critical": logging.CRITICAL,
    "fatal": logging.CRITICAL,
}


class _DropBelow:
    """Stop events under the configured level after they reach the buffer."""

    def __init__(self, level: int) -> None:
        self.level = level

    def __call__(
        self, logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
    ) -> MutableMapping[str, Any]:
        if _METHOD_LEVELS.get(method_name, logging.INFO) < self.level:
            raise structlog.DropEvent
        return event_dict


def configure_logging(
    level: str = "INFO",
    log_file: Optional[Path] = None,
    console: bool = True,
    debug_buffer_size: int = DEFAULT_DEBUG_BUFFER_SIZE,
) -> None:
    """Configure stdlib logging + structlog for structured output.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR).
        log_file: Optional path to write logs to file.
        console: Whether to output logs to stderr (default True). The CLI
            keeps stdout for the transcript.
        debug_buffer_size: Number of recent events kept in memory for the
            ``/debug`` command, at every level. 0 disables the buffer.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    if console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(log_level)
        console_handler.setFormatter(logging.Formatter("%(message)s"))
        root_logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="w")
        file_handler.setLevel(log_level)
        file_handler.setFormatter(logging.Formatter("%(message)s"))
        root_logger.addHandler(file_handler)

    processors: List[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    filter_level = log_level
    if debug_buffer_size > 0:
        recent_events.resize(debug_buffer_size)
        processors += [recent_events, _DropBelow(log_level)]
        filter_level = logging.DEBUG
    processors += [
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.JSONRenderer(),
    ]

    # Route structlog through stdlib so both handlers receive every event
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(filter_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str) -> "structlog.stdlib.BoundLogger":
    """Return a structlog logger with consistent defaults."""
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind contextual information (user address, chain) to later log lines."""
    structlog.contextvars.bind_contextvars(**kwargs)
