"""In-process event emitter keyed by [DomainKind][ravensync.models.constants.DomainKind].

Handlers receive the emitted payload: a tuple of domain objects, both for
reconstruction batches and for a publisher echo (a one-element tuple holding
the synthesized object), and nothing for the ``ready``/``dms_done``/
``sync_done`` lifecycle signals.
Handlers may be plain functions or coroutine functions. A failing handler is
logged and does not prevent the remaining handlers from running.
"""

from __future__ import annotations

import inspect
from typing import TYPE_CHECKING, Any

from ravensync.core.logger import Logger


if TYPE_CHECKING:
    from collections.abc import Callable

    from ravensync.models.constants import DomainKind


class EventEmitter:
    """Minimal ``on``/``off``/``once``/``emit`` registry."""

    def __init__(self) -> None:
        # (handler, once) pairs in registration order
        self._handlers: dict[DomainKind, list[tuple[Callable[..., Any], bool]]] = {}
        self._logger = Logger("ravensync.emitter")

    def on(self, kind: DomainKind, handler: Callable[..., Any]) -> Callable[..., Any]:
        """Register *handler* for *kind* and return it."""
        self._handlers.setdefault(kind, []).append((handler, False))
        return handler

    def once(self, kind: DomainKind, handler: Callable[..., Any]) -> Callable[..., Any]:
        """Register *handler* to run on the next emission of *kind* only."""
        self._handlers.setdefault(kind, []).append((handler, True))
        return handler

    def off(self, kind: DomainKind, handler: Callable[..., Any]) -> None:
        """Remove every registration of *handler*; unknown handlers are ignored."""
        entries = self._handlers.get(kind)
        if entries:
            self._handlers[kind] = [e for e in entries if e[0] != handler]

    def listener_count(self, kind: DomainKind) -> int:
        return len(self._handlers.get(kind, []))

    async def emit(self, kind: DomainKind, *args: Any) -> int:
        """Call every handler registered for *kind*.

        Returns:
            Number of handlers that completed without raising.
        """
        entries = self._handlers.get(kind, [])
        if any(once for _, once in entries):
            self._handlers[kind] = [e for e in entries if not e[1]]

        succeeded = 0
        for handler, _ in entries:
            try:
                result = handler(*args)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                self._logger.exception("handler_failed", kind=kind)
                continue
            succeeded += 1
        return succeeded
