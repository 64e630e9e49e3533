"""Logging system with per-operation log capture.

This module handles all logging-related functionality:
- SessionLogger: Per-send logger with context-aware buffering
- Structured log event building
- Cleanup of stale operation buffers

The SessionLogger uses contextvars to track request_id and conversation_id,
so every record emitted while a send operation runs can be traced back to it
even though all operations share one event loop.
"""

from __future__ import annotations

import logging
import sys
import threading
import time
import traceback
from collections import deque
from contextvars import ContextVar
from typing import Any, Dict, Optional

LOGGER = logging.getLogger(__name__)


class SessionLogger:
    """Per-operation logger that writes to the console and an in-memory buffer.

    The logger tracks two identifiers via contextvars:
    - request_id: Unique id of one send operation, keys the in-memory buffer.
    - conversation_id: Conversation the operation writes to.

    Cleanup is explicit: callers drain a buffer with ``pop_events`` or prune
    old ones with ``cleanup``.

    Attributes:
        request_id:      ContextVar storing the per-operation buffer key.
        conversation_id: ContextVar storing the target conversation id.
        log_level:       ContextVar storing the minimum console level.
        logs:            Map of request_id -> fixed-size deque of structured events.
    """

    request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
    conversation_id: ContextVar[Optional[str]] = ContextVar("conversation_id", default=None)
    log_level: ContextVar[int] = ContextVar("log_level", default=logging.INFO)
    max_lines: int = 2000
    logs: Dict[str, deque[dict[str, Any]]] = {}
    _last_seen: Dict[str, float] = {}
    _state_lock = threading.Lock()
    _console_formatter = logging.Formatter(
        "%(asctime)s.%(msecs)03d | %(levelname)-8s | %(name)s:%(funcName)s:%(lineno)d - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    @classmethod
    def _build_event(cls, record: logging.LogRecord) -> dict[str, Any]:
        """Return a structured log event extracted from a LogRecord."""
        try:
            message = record.getMessage()
        except Exception:
            message = str(getattr(record, "msg", "") or "")

        event: dict[str, Any] = {
            "created": float(getattr(record, "created", time.time())),
            "level": str(getattr(record, "levelname", "INFO") or "INFO"),
            "logger": str(getattr(record, "name", "") or ""),
            "request_id": getattr(record, "request_id", None),
            "conversation_id": getattr(record, "conversation_id", None),
            "func": str(getattr(record, "funcName", "") or ""),
            "lineno": int(getattr(record, "lineno", 0) or 0),
            "message": message,
        }
        exc_info = getattr(record, "exc_info", None)
        if exc_info:
            event["exception"] = {"text": "".join(traceback.format_exception(*exc_info))}
        return event

    @classmethod
    def get_logger(cls, name: str = __name__) -> logging.Logger:
        """Create a logger wired to the current SessionLogger context.

        Args:
            name: Logger name; defaults to the current module name.

        Returns:
            logging.Logger: A logger that writes both to stdout and the
            in-memory ``SessionLogger.logs`` buffer keyed by the current
            ``SessionLogger.request_id``.
        """
        logger = logging.getLogger(name)
        logger.handlers.clear()
        logger.filters.clear()
        logger.setLevel(logging.DEBUG)
        logger.propagate = False

        def _attach_context(record: logging.LogRecord) -> bool:
            record.request_id = cls.request_id.get()
            record.conversation_id = cls.conversation_id.get()
            record.session_log_level = cls.log_level.get()
            return True

        logger.addFilter(_attach_context)

        handler = logging.Handler()
        handler.emit = cls.process_record  # type: ignore[method-assign]
        logger.addHandler(handler)
        return logger

    @classmethod
    def set_max_lines(cls, value: int) -> None:
        """Set the maximum in-memory lines retained per operation."""
        cls.max_lines = max(100, min(200000, int(value)))

    @classmethod
    def process_record(cls, record: logging.LogRecord) -> None:
        try:
            session_log_level = getattr(record, "session_log_level", logging.INFO)
            if record.levelno >= int(session_log_level):
                sys.stdout.write(cls._console_formatter.format(record) + "\n")
                sys.stdout.flush()
            request_id = getattr(record, "request_id", None)
            if not request_id:
                return
            event = cls._build_event(record)
            with cls._state_lock:
                buffer = cls.logs.get(request_id)
                if buffer is None or buffer.maxlen != cls.max_lines:
                    buffer = deque(buffer or (), maxlen=cls.max_lines)
                    cls.logs[request_id] = buffer
                buffer.append(event)
                cls._last_seen[request_id] = time.time()
        except Exception:
            # Logging must never break request handling.
            return

    @classmethod
    def pop_events(cls, request_id: str) -> list[dict[str, Any]]:
        """Return and forget the buffered events of one operation."""
        with cls._state_lock:
            cls._last_seen.pop(request_id, None)
            buffer = cls.logs.pop(request_id, None)
        return list(buffer or ())

    @classmethod
    def cleanup(cls, max_age_seconds: float = 3600) -> None:
        """Remove stale operation logs to avoid unbounded growth."""
        cutoff = time.time() - max_age_seconds
        with cls._state_lock:
            stale = [rid for rid, ts in cls._last_seen.items() if ts < cutoff]
            for rid in stale:
                cls.logs.pop(rid, None)
                cls._last_seen.pop(rid, None)
