"""Read-only snapshots handed to callers, triggers and watchers."""
from __future__ import annotations

import copy
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterator, List, Optional

from cloudstub.firestore.field_values import get_field

if TYPE_CHECKING:  # pragma: no cover
    from cloudstub.firestore.references import DocumentReference
    from cloudstub.firestore.store import DocumentStore


class DocumentSnapshot:
    """State of one document at a point in time.

    The snapshot owns a private copy of the data; ``data()`` returns a fresh
    copy on every call so callers can mutate it freely.
    """

    def __init__(
        self,
        path: str,
        exists: bool,
        data: Optional[Dict[str, Any]],
        store: Optional["DocumentStore"] = None,
    ) -> None:
        self._path = path
        self._exists = exists
        self._data = data if exists else None
        self._store = store

    @property
    def exists(self) -> bool:
        return self._exists

    @property
    def id(self) -> str:
        return self._path.rsplit("/", 1)[-1]

    @property
    def path(self) -> str:
        return self._path

    @property
    def reference(self) -> "DocumentReference":
        from cloudstub.firestore.references import DocumentReference  # local import to avoid circular

        if self._store is None:
            raise RuntimeError(f"Snapshot of {self._path} is not bound to a store")
        return DocumentReference(self._store, self._path)

    ref = reference

    def data(self) -> Optional[Dict[str, Any]]:
        if not self._exists:
            return None
        return copy.deepcopy(self._data)

    to_dict = data

    def get(self, field_path: str, default: Any = None) -> Any:
        if not self._exists:
            return default
        return copy.deepcopy(get_field(self._data, field_path, default))

    def __repr__(self) -> str:
        return f"DocumentSnapshot(path={self._path!r}, exists={self._exists})"


class QuerySnapshot:
    def __init__(self, documents: List[DocumentSnapshot]) -> None:
        self._documents = documents

    @property
    def docs(self) -> List[DocumentSnapshot]:
        return list(self._documents)

    @property
    def size(self) -> int:
        return len(self._documents)

    @property
    def empty(self) -> bool:
        return not self._documents

    def for_each(self, callback: Callable[[DocumentSnapshot], Any]) -> None:
        for document in self._documents:
            callback(document)

    def __iter__(self) -> Iterator[DocumentSnapshot]:
        return iter(list(self._documents))

    def __len__(self) -> int:
        return len(self._documents)


class AggregateQuerySnapshot:
    def __init__(self, count: int) -> None:
        self._count = count

    @property
    def count(self) -> int:
        return self._count

    def data(self) -> Dict[str, int]:
        return {"count": self._count}
