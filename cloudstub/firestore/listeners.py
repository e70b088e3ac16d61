"""Watch (on_snapshot) delivery.

Every delivery is scheduled with ``loop.call_soon`` so watcher code never runs
inline with the call that caused it. Query watchers carry no dependency
tracking: any committed mutation re-evaluates all of them.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

Unsubscribe = Callable[[], None]


@dataclass(eq=False)
class Watcher:
    target: str
    on_next: Callable[[Any], Any]
    on_error: Optional[Callable[[Exception], Any]]
    loop: asyncio.AbstractEventLoop
    # Produces the current snapshot for this watcher.
    evaluate: Callable[[], Any]
    active: bool = True


def _running_loop() -> asyncio.AbstractEventLoop:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        raise RuntimeError("on_snapshot() must be called with a running event loop") from None


class ListenerHub:
    def __init__(self) -> None:
        self._document_watchers: Dict[str, List[Watcher]] = {}
        self._query_watchers: List[Watcher] = []

    @property
    def has_query_watchers(self) -> bool:
        return bool(self._query_watchers)

    def watch_document(
        self,
        path: str,
        evaluate: Callable[[], Any],
        on_next: Callable[[Any], Any],
        on_error: Optional[Callable[[Exception], Any]] = None,
    ) -> Unsubscribe:
        watcher = Watcher(path, on_next, on_error, _running_loop(), evaluate)
        self._document_watchers.setdefault(path, []).append(watcher)
        self._schedule(watcher, evaluate)

        def unsubscribe() -> None:
            watcher.active = False
            watchers = self._document_watchers.get(path)
            if not watchers:
                return
            if watcher in watchers:
                watchers.remove(watcher)
            if not watchers:
                self._document_watchers.pop(path, None)

        return unsubscribe

    def watch_query(
        self,
        description: str,
        evaluate: Callable[[], Any],
        on_next: Callable[[Any], Any],
        on_error: Optional[Callable[[Exception], Any]] = None,
    ) -> Unsubscribe:
        watcher = Watcher(description, on_next, on_error, _running_loop(), evaluate)
        self._query_watchers.append(watcher)
        self._schedule(watcher, evaluate)

        def unsubscribe() -> None:
            watcher.active = False
            if watcher in self._query_watchers:
                self._query_watchers.remove(watcher)

        return unsubscribe

    def notify_document(self, path: str, snapshot: Any) -> None:
        """Schedule delivery of a committed document state."""
        for watcher in list(self._document_watchers.get(path, [])):
            self._schedule(watcher, lambda: snapshot)

    def notify_queries(self) -> None:
        """Schedule re-evaluation of every active query watcher."""
        for watcher in list(self._query_watchers):
            self._schedule(watcher, watcher.evaluate)

    def _schedule(self, watcher: Watcher, produce: Callable[[], Any]) -> None:
        watcher.loop.call_soon(self._deliver, watcher, produce)

    @staticmethod
    def _deliver(watcher: Watcher, produce: Callable[[], Any]) -> None:
        if not watcher.active:
            return
        try:
            watcher.on_next(produce())
        except Exception as exc:
            if watcher.on_error is None:
                logger.exception("Snapshot listener for %s failed", watcher.target)
                return
            try:
                watcher.on_error(exc)
            except Exception:
                logger.exception("Snapshot error callback for %s failed", watcher.target)
