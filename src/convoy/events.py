"""Observer registration for invalidation and logging events.

Packagers, copiers and the pipeline all expose the same small surface:
``on(event, handler)`` / ``off(event, handler)`` plus ``warn``/``error``/``info``
helpers that write to the ``convoy`` logger and notify listeners.

Events used by convoy:
    invalidate: a target dropped its cached state
    warn / error / info: log records, passed as (message,) or (error,)
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import logging
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

Handler = Callable[..., Any]


class EventEmitter:
    """Minimal synchronous event emitter.

    Handlers run in registration order. A handler that raises is logged and
    does not stop the remaining handlers. Handlers returning an awaitable are
    scheduled on the running loop.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Handler]] = {}
        self._tasks: set[asyncio.Future[Any]] = set()

    def on(self, event: str, handler: Handler) -> Handler:
        """Register ``handler`` for ``event``. Returns the handler."""
        self._listeners.setdefault(event, []).append(handler)
        return handler

    def off(self, event: str, handler: Handler) -> None:
        """Remove a previously registered handler."""
        handlers = self._listeners.get(event)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def listeners(self, event: str) -> list[Handler]:
        return list(self._listeners.get(event, ()))

    def emit(self, event: str, *args: Any) -> bool:
        """Invoke every handler for ``event``. Returns True if any were called."""
        handlers = self.listeners(event)
        for handler in handlers:
            try:
                result = handler(*args)
            except Exception:
                logger.exception(f"Error in '{event}' listener {handler!r}")
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._tasks.add(task)
                task.add_done_callback(functools.partial(self._task_done, event))
        return bool(handlers)

    def _task_done(self, event: str, task: asyncio.Future[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Error in '{event}' listener: {error}", exc_info=error)


class LoggedEventEmitter(EventEmitter):
    """Event emitter whose warn/error/info events are also logged."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        super().__init__()
        self.log = log or logger

    def warn(self, *args: Any) -> None:
        message = _join(args)
        self.log.warning(message)
        self.emit("warn", message)

    def error(self, err: BaseException | str) -> None:
        self.log.error(str(err))
        self.emit("error", err)

    def info(self, *args: Any) -> None:
        message = _join(args)
        self.log.info(message)
        self.emit("info", message)

    def pipe_logging(
        self, source: LoggedEventEmitter, prefix: str | None = None
    ) -> Callable[[], None]:
        """Re-emit ``source``'s warn/error/info events from this emitter.

        Piped events are not logged a second time; ``source`` already logged them.
        Returns a function that detaches the relays again.
        """

        def relay(event: str) -> Handler:
            def handler(payload: Any) -> None:
                if prefix and event != "error":
                    payload = f"{prefix} {payload}"
                self.emit(event, payload)

            return handler

        relays = [(event, source.on(event, relay(event))) for event in ("warn", "error", "info")]

        def detach() -> None:
            for event, handler in relays:
                source.off(event, handler)

        return detach


def _join(args: tuple[Any, ...]) -> str:
    return " ".join(str(a) for a in args)


__all__ = ["EventEmitter", "Handler", "LoggedEventEmitter"]
