"""Optimistic-concurrency transactions and write batches."""
from __future__ import annotations

import inspect
import logging
from typing import Annotated, Any, Awaitable, Callable, Dict, List, Literal, Mapping, Optional, Sequence, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field

from cloudstub.firestore.models import StoredDocument
from cloudstub.firestore.references import DocumentReference, Query, _set_options
from cloudstub.firestore.snapshots import DocumentSnapshot, QuerySnapshot
from cloudstub.firestore.store import DocumentStore, WriteOp

logger = logging.getLogger(__name__)

T = TypeVar("T")


class _Read(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)


class DocumentRead(_Read):
    kind: Literal["document"] = "document"
    reference: DocumentReference


class QueryRead(_Read):
    kind: Literal["query"] = "query"
    query: Query


ReadRequest = Annotated[Union[DocumentRead, QueryRead], Field(discriminator="kind")]


def read_request(target: Union[ReadRequest, DocumentReference, Query]) -> ReadRequest:
    if isinstance(target, (DocumentRead, QueryRead)):
        return target
    if isinstance(target, DocumentReference):
        return DocumentRead(reference=target)
    if isinstance(target, Query):
        return QueryRead(query=target)
    raise TypeError(f"Cannot read {type(target).__name__} in a transaction")


class _WriteQueue:
    """Queued writes shared by transactions and batches."""

    def __init__(self) -> None:
        self._writes: List[WriteOp] = []

    def set(
        self,
        reference: DocumentReference,
        data: Mapping[str, Any],
        merge: bool = False,
        merge_fields: Optional[Sequence[str]] = None,
    ):
        self._writes.append(WriteOp("set", reference.path, data, _set_options(merge, merge_fields)))
        return self

    def update(self, reference: DocumentReference, data: Mapping[str, Any]):
        self._writes.append(WriteOp("update", reference.path, data))
        return self

    def create(self, reference: DocumentReference, data: Mapping[str, Any]):
        self._writes.append(WriteOp("create", reference.path, data))
        return self

    def delete(self, reference: DocumentReference):
        self._writes.append(WriteOp("delete", reference.path))
        return self

    def __len__(self) -> int:
        return len(self._writes)


class Transaction(_WriteQueue):
    """Reads record a baseline per path; writes are queued until commit.

    Commit fails with ``TransactionConflict`` if any document read by the
    transaction changed in the meantime; no write is applied in that case.
    """

    def __init__(self, store: DocumentStore) -> None:
        super().__init__()
        self._store = store
        self._reads: Dict[str, Optional[StoredDocument]] = {}

    async def get(
        self, target: Union[ReadRequest, DocumentReference, Query]
    ) -> Union[DocumentSnapshot, QuerySnapshot]:
        request = read_request(target)
        if request.kind == "document":
            path = request.reference.path
            if path not in self._reads:
                self._reads[path] = self._store.read(path)
            return self._store.snapshot(path)
        return self._store.run_query(request.query.config)

    async def commit(self) -> None:
        await self._store.commit(self._writes, reads=self._reads)


class WriteBatch(_WriteQueue):
    def __init__(self, store: DocumentStore) -> None:
        super().__init__()
        self._store = store

    async def commit(self) -> None:
        await self._store.commit(self._writes)


async def run_transaction(
    store: DocumentStore,
    update_function: Callable[[Transaction], Union[T, Awaitable[T]]],
) -> T:
    """Run ``update_function`` and commit its transaction. No automatic retry."""
    transaction = Transaction(store)
    result = update_function(transaction)
    if inspect.isawaitable(result):
        result = await result
    await transaction.commit()
    logger.debug(f"Transaction committed ({len(transaction)} write(s), {len(transaction._reads)} read(s))")
    return result
