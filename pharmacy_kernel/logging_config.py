"""
Structured JSON logging for the pharmacy kernel.

Every record under the ``pharmacy_kernel`` logger becomes one JSON line:
``ts``, ``level``, ``logger``, ``message``, the fields bound on the current
unit of work, then the record's ``extra`` fields.

Context fields are the ones the kernel binds:

* the coordinator binds ``unit_of_work_id``, ``operation``, ``actor_id``
  and ``correlation_id`` for each attempt;
* OrderService binds ``order_id``, StockService binds ``medicine_id``.

A record logged with ``exc_info`` carries ``exc_type`` and ``exc_message``.
For a PharmacyKernelError it also carries ``error_code``, ``retryable``
and the error's structured attributes under ``error_detail``.
"""

__all__ = [
    "CONTEXT_FIELDS",
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Any, Iterator, Mapping

from pharmacy_kernel.exceptions import PharmacyKernelError
from pharmacy_kernel.utils.serialization import json_safe

ROOT_LOGGER = "pharmacy_kernel"

CONTEXT_FIELDS = (
    "correlation_id",
    "actor_id",
    "operation",
    "unit_of_work_id",
    "order_id",
    "medicine_id",
)

_EMPTY: Mapping[str, str] = MappingProxyType({})
_context: ContextVar[Mapping[str, str]] = ContextVar("pharmacy_log_context", default=_EMPTY)


class LogContext:
    """Fields attached to every record logged in the current context."""

    @staticmethod
    def get_all() -> dict[str, str]:
        return dict(_context.get())

    @staticmethod
    @contextmanager
    def bind(**fields: Any) -> Iterator[None]:
        """
        Layer ``fields`` over the current context for the ``with`` block.

        None values leave the outer value in place; other values are
        stored as strings.

        Raises:
            ValueError: a name outside CONTEXT_FIELDS.
        """
        unknown = set(fields) - set(CONTEXT_FIELDS)
        if unknown:
            raise ValueError(f"Unknown log context fields: {sorted(unknown)}")
        merged = dict(_context.get())
        merged.update({k: str(v) for k, v in fields.items() if v is not None})
        token = _context.set(MappingProxyType(merged))
        try:
            yield
        finally:
            _context.reset(token)

    @staticmethod
    def clear() -> None:
        _context.set(_EMPTY)


# Attributes every LogRecord has; anything else came from ``extra``.
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _encode(obj: Any) -> Any:
    try:
        return json_safe(obj)
    except TypeError:
        return str(obj)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    if isinstance(exc, PharmacyKernelError):
        fields["error_code"] = exc.code
        fields["retryable"] = exc.retryable
        fields["error_detail"] = {
            k: v for k, v in vars(exc).items() if not k.startswith("_")
        }
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(_context.get())
        for key, val in vars(record).items():
            if key not in _RECORD_ATTRS and key not in payload:
                payload[key] = val

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_encode)


def get_logger(name: str) -> logging.Logger:
    """Logger ``pharmacy_kernel.<name>``."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


_lock = threading.Lock()


def _structured_handlers(logger: logging.Logger) -> list[logging.Handler]:
    return [h for h in logger.handlers if isinstance(h.formatter, StructuredFormatter)]


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach one JSON handler to the ``pharmacy_kernel`` logger.

    A no-op while a structured handler is already attached.
    """
    root = logging.getLogger(ROOT_LOGGER)
    with _lock:
        if _structured_handlers(root):
            return
        h = handler or logging.StreamHandler(stream or sys.stderr)
        h.setFormatter(StructuredFormatter())
        root.addHandler(h)
        root.setLevel(level)
        root.propagate = False


def reset_logging() -> None:
    """Detach the JSON handlers. Tests only."""
    root = logging.getLogger(ROOT_LOGGER)
    with _lock:
        for h in _structured_handlers(root):
            root.removeHandler(h)
        root.setLevel(logging.WARNING)
