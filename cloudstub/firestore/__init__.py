"""In-memory Firestore-compatible document engine."""

from cloudstub.firestore.database import InMemoryFirestore
from cloudstub.firestore.errors import (
    DocumentAlreadyExists,
    DocumentNotFound,
    FirestoreStubError,
    FrameInterleavingError,
    InvalidPath,
    InvalidTriggerPattern,
    TransactionConflict,
    UnsupportedOperator,
)
from cloudstub.firestore.field_values import FieldValue
from cloudstub.firestore.models import ChangeType, OrderDirection, WhereOp
from cloudstub.firestore.references import CollectionReference, DocumentReference, FieldPath, Query
from cloudstub.firestore.snapshots import AggregateQuerySnapshot, DocumentSnapshot, QuerySnapshot
from cloudstub.firestore.transaction import DocumentRead, QueryRead, Transaction, WriteBatch
from cloudstub.firestore.trigger_definitions import (
    TriggerDefinition,
    TriggerEvent,
    attach_triggers_to_stub,
    determine_change_type,
    register_trigger_with_stub,
)
from cloudstub.firestore.triggers import TriggerChange, TriggerHandlers

__all__ = [
    "AggregateQuerySnapshot",
    "ChangeType",
    "CollectionReference",
    "DocumentAlreadyExists",
    "DocumentNotFound",
    "DocumentRead",
    "DocumentReference",
    "DocumentSnapshot",
    "FieldPath",
    "FieldValue",
    "FirestoreStubError",
    "FrameInterleavingError",
    "InMemoryFirestore",
    "InvalidPath",
    "InvalidTriggerPattern",
    "OrderDirection",
    "Query",
    "QueryRead",
    "QuerySnapshot",
    "Transaction",
    "TransactionConflict",
    "TriggerChange",
    "TriggerDefinition",
    "TriggerEvent",
    "TriggerHandlers",
    "UnsupportedOperator",
    "WhereOp",
    "WriteBatch",
    "attach_triggers_to_stub",
    "determine_change_type",
    "register_trigger_with_stub",
]
