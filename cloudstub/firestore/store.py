"""Path-addressed document store.

The store owns the path -> document map and the atomic frame stack; both are
private to one instance, so independent stores never share state. Every
write, including a plain ``set``, runs inside a frame: the mutation is applied
synchronously and the frame is popped. Only then are document deliveries
scheduled with the committed state; trigger handlers are awaited after that,
and query watchers are re-evaluated last.
"""
from __future__ import annotations

import copy
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Dict, Iterable, List, Literal, Mapping, Optional

from cloudstub.config import runtime_config
from cloudstub.firestore import query as query_engine
from cloudstub.firestore.errors import DocumentAlreadyExists, DocumentNotFound, TransactionConflict
from cloudstub.firestore.field_values import (
    Clock,
    apply_update,
    deep_merge,
    merge_fields,
    project,
    resolve_transforms,
    utc_now,
)
from cloudstub.firestore.frames import AtomicFrame, FrameStack, WriteEvent
from cloudstub.firestore.listeners import ListenerHub, Unsubscribe
from cloudstub.firestore.models import QueryConfig, SetOptions, StoredDocument
from cloudstub.firestore.snapshots import DocumentSnapshot, QuerySnapshot
from cloudstub.firestore.triggers import TriggerRegistry

logger = logging.getLogger(__name__)

WriteKind = Literal["set", "update", "delete", "create"]


@dataclass
class WriteOp:
    kind: WriteKind
    path: str
    data: Optional[Mapping[str, Any]] = None
    options: Optional[SetOptions] = None


def _state(doc: Optional[StoredDocument]) -> Optional[Dict[str, Any]]:
    if doc is None or not doc.exists:
        return None
    return doc.data


class DocumentStore:
    def __init__(self, clock: Optional[Clock] = None, id_prefix: Optional[str] = None) -> None:
        self._documents: Dict[str, StoredDocument] = {}
        self._frames = FrameStack()
        self._clock: Clock = clock or utc_now
        self._id_prefix = runtime_config.get_auto_id_prefix() if id_prefix is None else id_prefix
        self._id_counter = 0
        self.triggers = TriggerRegistry()
        self.listeners = ListenerHub()

    # --- reads ---

    def read(self, path: str) -> Optional[StoredDocument]:
        doc = self._documents.get(path)
        return doc.clone() if doc is not None else None

    def snapshot(self, path: str) -> DocumentSnapshot:
        return self._snapshot_of(path, self._documents.get(path))

    def _snapshot_of(self, path: str, doc: Optional[StoredDocument]) -> DocumentSnapshot:
        data = _state(doc)
        return DocumentSnapshot(path, data is not None, copy.deepcopy(data), store=self)

    def run_query(self, config: QueryConfig) -> QuerySnapshot:
        results = query_engine.evaluate(list(self._documents.values()), config)
        snapshots = []
        for doc in results:
            data = project(doc.data, config.selected_fields) if config.selected_fields is not None else doc.data
            snapshots.append(DocumentSnapshot(doc.path, True, copy.deepcopy(data), store=self))
        return QuerySnapshot(snapshots)

    def count_query(self, config: QueryConfig) -> int:
        return query_engine.count(list(self._documents.values()), config)

    def paths(self) -> List[str]:
        return [path for path, doc in self._documents.items() if doc.exists]

    def allocate_id(self, collection_path: str) -> str:
        while True:
            self._id_counter += 1
            doc_id = f"{self._id_prefix}{self._id_counter:06d}"
            if f"{collection_path}/{doc_id}" not in self._documents:
                return doc_id

    # --- writes ---

    async def set(self, path: str, data: Mapping[str, Any], options: Optional[SetOptions] = None) -> None:
        await self.commit([WriteOp("set", path, data, options)])

    async def update(self, path: str, data: Mapping[str, Any]) -> None:
        await self.commit([WriteOp("update", path, data)])

    async def create(self, path: str, data: Mapping[str, Any]) -> None:
        await self.commit([WriteOp("create", path, data)])

    async def delete(self, path: str) -> None:
        await self.commit([WriteOp("delete", path)])

    async def commit(
        self,
        writes: Iterable[WriteOp],
        reads: Optional[Mapping[str, Optional[StoredDocument]]] = None,
    ) -> None:
        """Validate ``reads`` and apply ``writes`` as one atomic unit."""
        writes = list(writes)
        async with self.atomic():
            if reads:
                self._validate(reads)
            for write in writes:
                self._apply(write)
        logger.debug(f"Committed {len(writes)} write(s)")

    @asynccontextmanager
    async def atomic(self) -> AsyncIterator[AtomicFrame]:
        """Open an atomic frame.

        On error the frame's writes are rolled back and nothing is flushed.
        On success a nested frame merges into its parent; the outermost frame
        dispatches triggers and schedules listener deliveries.
        """
        frame = self._frames.push()
        try:
            yield frame
        except BaseException:
            self._frames.pop(frame)
            self._rollback(frame)
            raise
        parent = self._frames.pop(frame)
        if parent is not None:
            frame.merge_into(parent)
            return
        await self._flush(frame)

    def _validate(self, reads: Mapping[str, Optional[StoredDocument]]) -> None:
        for path, baseline in reads.items():
            if _state(self._documents.get(path)) != _state(baseline):
                logger.warning(f"Transaction conflict on {path}: document changed since it was read")
                raise TransactionConflict(message=f"Transaction failed: document {path} was modified", path=path)

    def _apply(self, write: WriteOp) -> None:
        path = write.path
        before = self._documents.get(path)
        existing = _state(before)

        if write.kind == "delete":
            if existing is not None:
                self._put(path, None, before)
            return
        if write.kind == "update":
            if existing is None:
                raise DocumentNotFound(message=f"Document {path} does not exist", path=path)
            data = apply_update(existing, write.data or {}, self._clock)
        elif write.kind == "create":
            if existing is not None:
                raise DocumentAlreadyExists(message=f"Document {path} already exists", path=path)
            data = resolve_transforms(write.data or {}, None, self._clock)
        else:
            options = write.options or SetOptions()
            payload = write.data or {}
            if options.merge_fields is not None:
                data = merge_fields(existing or {}, payload, options.merge_fields, self._clock)
            elif options.merge and existing is not None:
                data = deep_merge(existing, payload, self._clock)
            else:
                data = resolve_transforms(payload, None, self._clock)

        self._put(path, StoredDocument.model_construct(path=path, data=data, exists=True), before)

    def _put(self, path: str, doc: Optional[StoredDocument], before: Optional[StoredDocument]) -> None:
        frame = self._frames.top
        frame.remember(path, before)
        if doc is None:
            if frame.key_order is None:
                frame.key_order = list(self._documents)
            self._documents.pop(path, None)
        else:
            self._documents[path] = doc
        frame.record(WriteEvent(path, before, doc))

    def _rollback(self, frame: AtomicFrame) -> None:
        for path, original in frame.undo.items():
            if original is None:
                self._documents.pop(path, None)
            else:
                self._documents[path] = original
        if frame.key_order is not None:
            ordered = {path: self._documents[path] for path in frame.key_order if path in self._documents}
            ordered.update(self._documents)
            self._documents = ordered
        logger.warning(f"Atomic frame aborted; rolled back {len(frame.undo)} document(s)")

    async def _flush(self, frame: AtomicFrame) -> None:
        # Document deliveries carry the state this commit wrote, even if a
        # trigger handler writes the same document afterwards.
        self._notify_documents(frame.dirty_paths)
        try:
            if len(self.triggers):
                for event in frame.events:
                    await self.triggers.dispatch(
                        event.path,
                        self._snapshot_of(event.path, event.before),
                        self._snapshot_of(event.path, event.after),
                    )
        finally:
            if frame.queries_dirty:
                self._notify_queries()

    def _notify_documents(self, paths: Iterable[str]) -> None:
        for path in paths:
            self.listeners.notify_document(path, self.snapshot(path))

    def _notify_queries(self) -> None:
        if self.listeners.has_query_watchers:
            self.listeners.notify_queries()

    # --- watchers ---

    def watch_document(
        self,
        path: str,
        on_next: Callable[[DocumentSnapshot], Any],
        on_error: Optional[Callable[[Exception], Any]] = None,
    ) -> Unsubscribe:
        return self.listeners.watch_document(path, lambda: self.snapshot(path), on_next, on_error)

    def watch_query(
        self,
        config: QueryConfig,
        on_next: Callable[[QuerySnapshot], Any],
        on_error: Optional[Callable[[Exception], Any]] = None,
    ) -> Unsubscribe:
        return self.listeners.watch_query(config.scope_path, lambda: self.run_query(config), on_next, on_error)

    # --- fixtures ---

    def seed(self, path: str, data: Mapping[str, Any]) -> None:
        """Write ``data`` verbatim, bypassing sentinels, merge logic and triggers."""
        before = self._documents.get(path)
        doc = StoredDocument.model_construct(path=path, data=copy.deepcopy(dict(data)), exists=True)
        self._documents[path] = doc
        frame = self._frames.top
        if frame is not None:
            frame.remember(path, before)
            frame.touch(path)
            return
        self._notify_documents([path])
        self._notify_queries()

    def clear(self) -> None:
        self._documents.clear()
        self._id_counter = 0

    def get_all_documents(self) -> Dict[str, Dict[str, Any]]:
        return {path: copy.deepcopy(doc.data) for path, doc in self._documents.items() if doc.exists}
