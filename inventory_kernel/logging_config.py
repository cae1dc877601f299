"""
Structured JSON logging for the inventory core.

Every record is rendered as one JSON object: ``ts``, ``level``, ``logger``
and ``message``, then the action scope bound by the service that emitted
it (``correlation_id``, ``actor_id``, ``entity_type``, ``entity_id``,
``action``), then the ``extra`` payload.  Kernel errors attached with
``exc_info`` add ``exc_code`` and their structured attributes as
``exc_<name>``.

Services open one scope per public operation with ``action_scope``; the
scope lives in a single ContextVar, so it follows the calling thread but
not work submitted to a thread pool (pool workers open their own scope).
"""

from __future__ import annotations

__all__ = [
    "SCOPE_FIELDS",
    "StructuredFormatter",
    "LogContext",
    "action_scope",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any
from uuid import UUID

from inventory_kernel.exceptions import InventoryKernelError

if TYPE_CHECKING:
    from inventory_kernel.domain.context import ActorContext

SCOPE_FIELDS = ("correlation_id", "actor_id", "entity_type", "entity_id", "action")

_EMPTY_SCOPE: Mapping[str, str] = MappingProxyType({})
_scope: ContextVar[Mapping[str, str]] = ContextVar("inventory_log_scope", default=_EMPTY_SCOPE)


def _merged(fields: Mapping[str, Any]) -> Mapping[str, str]:
    merged = dict(_scope.get())
    for name, value in fields.items():
        if name in SCOPE_FIELDS and value is not None:
            merged[name] = str(value)
    return MappingProxyType(merged)


class LogContext:
    """
    The log scope of the current thread or task.

    Unknown field names are ignored and ``None`` leaves a field unchanged.
    """

    @staticmethod
    def get_all() -> dict[str, str]:
        return dict(_scope.get())

    @staticmethod
    def set(**fields: Any) -> None:
        _scope.set(_merged(fields))

    @staticmethod
    def clear() -> None:
        _scope.set(_EMPTY_SCOPE)

    @staticmethod
    @contextmanager
    def bind(**fields: Any) -> Iterator[None]:
        """Overlay ``fields`` for the duration of the block."""
        token = _scope.set(_merged(fields))
        try:
            yield
        finally:
            _scope.reset(token)


def action_scope(
    actor: ActorContext, entity_type: str, entity_id: UUID | None, action: str
):
    """Bind the log scope of one service operation."""
    return LogContext.bind(
        correlation_id=actor.correlation_id,
        actor_id=actor.actor_id,
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
    )


# ---------------------------------------------------------------------------
# JSON Formatter
# ---------------------------------------------------------------------------

_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}


def _json_default(obj: Any) -> Any:
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    # UUID, Decimal and ScaledDecimal render exactly through str()
    return str(obj)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {"exc_type": type(exc).__name__, "exc_message": str(exc)}
    if isinstance(exc, InventoryKernelError):
        fields["exc_code"] = exc.code
        fields.update((f"exc_{k}", v) for k, v in exc.log_fields().items())
    return fields


class StructuredFormatter(logging.Formatter):
    """Formats each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(_scope.get())
        for key, val in vars(record).items():
            if key not in _RECORD_ATTRS and key not in payload:
                payload[key] = val

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


# ---------------------------------------------------------------------------
# Logger factory and setup
# ---------------------------------------------------------------------------

LOGGER_PREFIX = "inventory_kernel"

# Set on handlers installed by configure_logging
_OWNED_HANDLER = "_inventory_structured_handler"
_setup_lock = threading.Lock()


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the inventory_kernel namespace."""
    return logging.getLogger(f"{LOGGER_PREFIX}.{name}")


def _owned_handlers(logger: logging.Logger) -> list[logging.Handler]:
    return [h for h in logger.handlers if getattr(h, _OWNED_HANDLER, False)]


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> logging.Logger:
    """
    Install the structured handler on the ``inventory_kernel`` logger.

    Idempotent: once a structured handler is installed, later calls
    change nothing.  Handlers added by others (test capture, APM agents)
    are left alone.
    """
    root = logging.getLogger(LOGGER_PREFIX)
    with _setup_lock:
        if _owned_handlers(root):
            return root
        installed = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
        installed.setFormatter(StructuredFormatter())
        setattr(installed, _OWNED_HANDLER, True)
        root.addHandler(installed)
        root.setLevel(level)
        root.propagate = False
    return root


def reset_logging() -> None:
    """Remove the structured handler. FOR TESTING ONLY."""
    root = logging.getLogger(LOGGER_PREFIX)
    with _setup_lock:
        for handler in _owned_handlers(root):
            root.removeHandler(handler)
        root.setLevel(logging.WARNING)
