"""Document, collection and query references.

References are immutable views: a store handle plus a path or a frozen
``QueryConfig``. Every builder call returns a new view.
"""
from __future__ import annotations

from typing import Any, AsyncIterator, Callable, Mapping, Optional, Sequence, Union

from cloudstub.firestore.errors import InvalidPath
from cloudstub.firestore.models import (
    DOCUMENT_ID_FIELD,
    OrderDirection,
    QueryConfig,
    QueryFilter,
    QueryOrder,
    SetOptions,
)
from cloudstub.firestore.listeners import Unsubscribe
from cloudstub.firestore.query import parse_operator
from cloudstub.firestore.snapshots import AggregateQuerySnapshot, DocumentSnapshot, QuerySnapshot
from cloudstub.firestore.store import DocumentStore


class FieldPath:
    @staticmethod
    def document_id() -> str:
        return DOCUMENT_ID_FIELD


def normalize_path(path: str, kind: str) -> str:
    """Validate a collection (odd segment count) or document (even) path."""
    if not isinstance(path, str):
        raise InvalidPath(message=f"{kind} path must be a string, got {type(path).__name__}")
    segments = path.strip("/").split("/")
    if not segments[0] or any(not segment for segment in segments):
        raise InvalidPath(message=f"Invalid {kind} path '{path}'", path=path)
    expected_odd = kind == "collection"
    if (len(segments) % 2 == 1) != expected_odd:
        parity = "odd" if expected_odd else "even"
        raise InvalidPath(
            message=f"A {kind} path needs an {parity} number of segments, got '{path}'",
            path=path,
        )
    return "/".join(segments)


def _set_options(merge: bool, merge_fields: Optional[Sequence[str]]) -> Optional[SetOptions]:
    if not merge and merge_fields is None:
        return None
    return SetOptions(merge=merge, merge_fields=list(merge_fields) if merge_fields is not None else None)


class DocumentReference:
    def __init__(self, store: DocumentStore, path: str) -> None:
        self._store = store
        self._path = path

    @property
    def id(self) -> str:
        return self._path.rsplit("/", 1)[-1]

    @property
    def path(self) -> str:
        return self._path

    @property
    def parent(self) -> "CollectionReference":
        return CollectionReference(self._store, self._path.rsplit("/", 1)[0])

    def collection(self, collection_path: str) -> "CollectionReference":
        return CollectionReference(
            self._store, normalize_path(f"{self._path}/{collection_path.strip('/')}", "collection")
        )

    async def get(self) -> DocumentSnapshot:
        return self._store.snapshot(self._path)

    async def set(
        self,
        data: Mapping[str, Any],
        merge: bool = False,
        merge_fields: Optional[Sequence[str]] = None,
    ) -> None:
        await self._store.set(self._path, data, _set_options(merge, merge_fields))

    async def update(self, data: Mapping[str, Any]) -> None:
        await self._store.update(self._path, data)

    async def create(self, data: Mapping[str, Any]) -> None:
        await self._store.create(self._path, data)

    async def delete(self) -> None:
        await self._store.delete(self._path)

    def on_snapshot(
        self,
        on_next: Callable[[DocumentSnapshot], Any],
        on_error: Optional[Callable[[Exception], Any]] = None,
    ) -> Unsubscribe:
        return self._store.watch_document(self._path, on_next, on_error)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DocumentReference):
            return NotImplemented
        return self._store is other._store and self._path == other._path

    def __hash__(self) -> int:
        return hash(self._path)

    def __repr__(self) -> str:
        return f"DocumentReference({self._path!r})"


class Query:
    def __init__(self, store: DocumentStore, config: QueryConfig) -> None:
        self._store = store
        self._config = config

    @property
    def config(self) -> QueryConfig:
        return self._config

    def _derive(self, **changes: Any) -> "Query":
        return Query(self._store, self._config.model_copy(update=changes))

    def where(self, field_path: str, op: str, value: Any) -> "Query":
        query_filter = QueryFilter(field=field_path, op=parse_operator(op), value=value)
        return self._derive(filters=self._config.filters + (query_filter,))

    def order_by(self, field_path: str, direction: Union[str, OrderDirection] = OrderDirection.ASCENDING) -> "Query":
        order = QueryOrder(field=field_path, direction=OrderDirection(direction))
        return self._derive(orders=self._config.orders + (order,))

    def limit(self, count: int) -> "Query":
        if count < 0:
            raise ValueError("limit must be >= 0")
        return self._derive(limit=count)

    def offset(self, count: int) -> "Query":
        if count < 0:
            raise ValueError("offset must be >= 0")
        return self._derive(offset=count)

    def start_after(self, *values: Any) -> "Query":
        """Resume after a document (snapshot or reference) or after literal order values."""
        if not values:
            return self._derive(start_after=None, start_after_path=None)
        anchor = values[0]
        if isinstance(anchor, (DocumentSnapshot, DocumentReference)):
            return self._derive(start_after=None, start_after_path=anchor.path)
        return self._derive(start_after=tuple(values), start_after_path=None)

    def select(self, *field_paths: str) -> "Query":
        return self._derive(selected_fields=tuple(field_paths))

    async def get(self) -> QuerySnapshot:
        return self._store.run_query(self._config)

    async def stream(self) -> AsyncIterator[DocumentSnapshot]:
        for snapshot in self._store.run_query(self._config):
            yield snapshot

    def count(self) -> "AggregateQuery":
        return AggregateQuery(self._store, self._config)

    def on_snapshot(
        self,
        on_next: Callable[[QuerySnapshot], Any],
        on_error: Optional[Callable[[Exception], Any]] = None,
    ) -> Unsubscribe:
        return self._store.watch_query(self._config, on_next, on_error)


class AggregateQuery:
    def __init__(self, store: DocumentStore, config: QueryConfig) -> None:
        self._store = store
        self._config = config

    async def get(self) -> AggregateQuerySnapshot:
        return AggregateQuerySnapshot(self._store.count_query(self._config))


class CollectionReference(Query):
    def __init__(self, store: DocumentStore, path: str) -> None:
        super().__init__(store, QueryConfig(scope_path=path))
        self._path = path

    @property
    def id(self) -> str:
        return self._path.rsplit("/", 1)[-1]

    @property
    def path(self) -> str:
        return self._path

    @property
    def parent(self) -> Optional[DocumentReference]:
        if "/" not in self._path:
            return None
        return DocumentReference(self._store, self._path.rsplit("/", 1)[0])

    def doc(self, document_id: Optional[str] = None) -> DocumentReference:
        if document_id is None:
            document_id = self._store.allocate_id(self._path)
        return DocumentReference(self._store, normalize_path(f"{self._path}/{document_id}", "document"))

    document = doc

    async def add(self, data: Mapping[str, Any]) -> DocumentReference:
        ref = self.doc()
        await ref.set(data)
        return ref

    def __repr__(self) -> str:
        return f"CollectionReference({self._path!r})"
