"""Atomic operation frames.

A frame buffers everything a transaction or batch commit produces (trigger
events, dirtied document paths, the query-watchers-dirty flag) plus an undo
log of the first-touched original document per path. Frames live on an
explicit stack owned by a single store; on success a nested frame merges into
its parent and only the outermost frame is flushed.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from cloudstub.firestore.errors import FrameInterleavingError
from cloudstub.firestore.models import StoredDocument


@dataclass
class WriteEvent:
    """Before/after state of one applied write, kept for trigger dispatch."""

    path: str
    before: Optional[StoredDocument]
    after: Optional[StoredDocument]


@dataclass
class AtomicFrame:
    owner: Optional[asyncio.Task] = None
    events: List[WriteEvent] = field(default_factory=list)
    # Ordered set of dirtied paths.
    dirty_paths: Dict[str, None] = field(default_factory=dict)
    queries_dirty: bool = False
    undo: Dict[str, Optional[StoredDocument]] = field(default_factory=dict)
    # Key order of the document map before the first delete in this frame.
    key_order: Optional[List[str]] = None

    def remember(self, path: str, original: Optional[StoredDocument]) -> None:
        if path not in self.undo:
            self.undo[path] = original

    def record(self, event: WriteEvent) -> None:
        self.events.append(event)
        self.touch(event.path)

    def touch(self, path: str) -> None:
        self.dirty_paths[path] = None
        self.queries_dirty = True

    def merge_into(self, parent: "AtomicFrame") -> None:
        parent.events.extend(self.events)
        parent.dirty_paths.update(self.dirty_paths)
        if parent.key_order is None:
            parent.key_order = self.key_order
        parent.queries_dirty = parent.queries_dirty or self.queries_dirty
        for path, original in self.undo.items():
            parent.remember(path, original)


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


class FrameStack:
    def __init__(self) -> None:
        self._frames: List[AtomicFrame] = []

    def __len__(self) -> int:
        return len(self._frames)

    @property
    def top(self) -> Optional[AtomicFrame]:
        return self._frames[-1] if self._frames else None

    def push(self) -> AtomicFrame:
        owner = _current_task()
        top = self.top
        if top is not None and top.owner is not owner:
            raise FrameInterleavingError(
                message="Another task holds an open atomic frame on this store; "
                "overlapping transactions are not supported",
            )
        frame = AtomicFrame(owner=owner)
        self._frames.append(frame)
        return frame

    def pop(self, frame: AtomicFrame) -> Optional[AtomicFrame]:
        """Pop ``frame`` and return the new top (the parent), if any."""
        if self.top is not frame:
            raise FrameInterleavingError(message="Atomic frames must be closed in nested order")
        self._frames.pop()
        return self.top
