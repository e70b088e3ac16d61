"""In-memory Firestore facade.

Usage::

    db = InMemoryFirestore()
    await db.collection("users").doc("42").set({"name": "Ada"})
    snap = await db.doc("users/42").get()

Each instance owns an independent store; nothing is shared between instances.
"""
from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, TypeVar, Union

from cloudstub.firestore.errors import InvalidPath
from cloudstub.firestore.field_values import Clock
from cloudstub.firestore.models import QueryConfig
from cloudstub.firestore.references import CollectionReference, DocumentReference, Query, normalize_path
from cloudstub.firestore.store import DocumentStore
from cloudstub.firestore.transaction import Transaction, WriteBatch, run_transaction
from cloudstub.firestore.triggers import TriggerHandler, TriggerHandlers

logger = logging.getLogger(__name__)

T = TypeVar("T")


class InMemoryFirestore:
    def __init__(self, clock: Optional[Clock] = None, id_prefix: Optional[str] = None) -> None:
        self._store = DocumentStore(clock=clock, id_prefix=id_prefix)

    @property
    def store(self) -> DocumentStore:
        return self._store

    # --- references ---

    def collection(self, path: str) -> CollectionReference:
        return CollectionReference(self._store, normalize_path(path, "collection"))

    def doc(self, path: str) -> DocumentReference:
        return DocumentReference(self._store, normalize_path(path, "document"))

    document = doc

    def collection_group(self, collection_id: str) -> Query:
        if not collection_id or "/" in collection_id:
            raise InvalidPath(
                message=f"Collection group id must be a bare collection name, got '{collection_id}'",
                path=collection_id,
            )
        return Query(self._store, QueryConfig(scope_path=collection_id, collection_group=True))

    async def list_collections(self) -> List[CollectionReference]:
        """Root collections that currently hold at least one document."""
        names: Dict[str, None] = {}
        for path in self._store.paths():
            names[path.split("/", 1)[0]] = None
        return [CollectionReference(self._store, name) for name in names]

    # --- atomic writes ---

    def batch(self) -> WriteBatch:
        return WriteBatch(self._store)

    def transaction(self) -> Transaction:
        return Transaction(self._store)

    async def run_transaction(self, update_function: Callable[[Transaction], Union[T, Awaitable[T]]]) -> T:
        return await run_transaction(self._store, update_function)

    # --- triggers ---

    def register_trigger(
        self,
        pattern: str,
        handlers: Optional[TriggerHandlers] = None,
        *,
        on_create: Optional[TriggerHandler] = None,
        on_update: Optional[TriggerHandler] = None,
        on_delete: Optional[TriggerHandler] = None,
    ) -> Callable[[], None]:
        """Register handlers for documents matching ``pattern``; returns an unregister callable."""
        if handlers is None:
            handlers = TriggerHandlers(on_create=on_create, on_update=on_update, on_delete=on_delete)
        return self._store.triggers.register(pattern, handlers)

    def clear_triggers(self) -> None:
        self._store.triggers.clear()

    # --- fixtures ---

    def seed(self, path: str, data: Mapping[str, Any]) -> None:
        self._store.seed(normalize_path(path, "document"), data)

    def clear(self) -> None:
        self._store.clear()
        logger.debug("In-memory store cleared")

    def get_all_documents(self) -> Dict[str, Dict[str, Any]]:
        return self._store.get_all_documents()
