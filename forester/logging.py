"""Logging helpers for forester.

forester logs through loguru and is disabled on import. Call
``enable_logging()`` to route its records to stderr.
"""

from __future__ import annotations

import contextlib
import sys
import threading
from typing import TYPE_CHECKING, ClassVar, Final, Literal

from loguru import logger

if TYPE_CHECKING:
    from types import TracebackType

    from loguru import Record

PACKAGE_NAME: Final[str] = __name__.split(".")[0]

LogLevel = Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
LogFormat = Literal["short", "full"]

_SHORT_FORMAT: Final[str] = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{function}</cyan> - "
    "<level>{message}</level>"
)
_FULL_FORMAT: Final[str] = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)


class LoggingHandle:
    """Owns one loguru handler added by ``enable_logging``.

    Use ``disable()`` or the context manager protocol to remove it. When the
    last handle goes away the forester logger is disabled again.
    """

    _active_ids: ClassVar[set[int]] = set()
    _lock: ClassVar[threading.Lock] = threading.Lock()

    def __init__(self, handler_id: int) -> None:
        self.handler_id: int | None = handler_id
        with LoggingHandle._lock:
            LoggingHandle._active_ids.add(handler_id)

    def disable(self) -> None:
        with LoggingHandle._lock:
            if self.handler_id is None:
                return
            LoggingHandle._active_ids.discard(self.handler_id)
            with contextlib.suppress(ValueError):
                logger.remove(self.handler_id)
            self.handler_id = None
            if not LoggingHandle._active_ids:
                logger.disable(PACKAGE_NAME)

    def __enter__(self) -> LoggingHandle:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.disable()

    @classmethod
    def get_active_handle_count(cls) -> int:
        with cls._lock:
            return len(cls._active_ids)


def enable_logging(
    *,
    level: LogLevel = "INFO",
    log_format: LogFormat = "short",
    sink=sys.stderr,
) -> LoggingHandle:
    """Enable forester log output.

    Args:
        level (LogLevel): Minimum level to emit. "DEBUG" shows per-tree growth
            and rotation fallbacks; "INFO" shows fit/predict summaries.
        log_format (LogFormat): "short" shows the function name only, "full"
            adds module and line.
        sink: Any loguru sink. Defaults to stderr.

    Returns:
        LoggingHandle: Handle that removes the handler when disabled.
    """
    logger.enable(PACKAGE_NAME)
    handler_id = logger.add(
        sink,
        level=level,
        filter=_is_forester_record,
        format=_SHORT_FORMAT if log_format == "short" else _FULL_FORMAT,
    )
    return LoggingHandle(handler_id)


def _is_forester_record(record: Record) -> bool:
    name = record["name"]
    return name is not None and name.startswith(PACKAGE_NAME)
