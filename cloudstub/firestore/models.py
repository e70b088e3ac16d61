"""Schemas for the in-memory Firestore engine."""
from __future__ import annotations

import copy
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

DOCUMENT_ID_FIELD = "__name__"


class WhereOp(str, Enum):
    EQ = "=="
    NE = "!="
    LT = "<"
    LTE = "<="
    GT = ">"
    GTE = ">="
    ARRAY_CONTAINS = "array-contains"
    IN = "in"
    NOT_IN = "not-in"
    ARRAY_CONTAINS_ANY = "array-contains-any"


class OrderDirection(str, Enum):
    ASCENDING = "asc"
    DESCENDING = "desc"


class ChangeType(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"

    @classmethod
    def classify(cls, before_exists: bool, after_exists: bool) -> "ChangeType":
        if not before_exists and after_exists:
            return cls.CREATE
        if before_exists and not after_exists:
            return cls.DELETE
        return cls.UPDATE


class SetOptions(BaseModel):
    merge: bool = False
    merge_fields: Optional[List[str]] = None


class StoredDocument(BaseModel):
    """A document as held by the store. Never handed out without cloning."""

    path: str
    data: Dict[str, Any] = Field(default_factory=dict)
    exists: bool = True

    @property
    def id(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    def clone(self) -> "StoredDocument":
        return StoredDocument.model_construct(
            path=self.path,
            data=copy.deepcopy(self.data),
            exists=self.exists,
        )


class QueryFilter(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    op: WhereOp
    value: Any = None


class QueryOrder(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    direction: OrderDirection = OrderDirection.ASCENDING


class QueryConfig(BaseModel):
    """Accumulated, immutable configuration of a query view."""

    model_config = ConfigDict(frozen=True)

    scope_path: str
    collection_group: bool = False
    filters: Tuple[QueryFilter, ...] = ()
    orders: Tuple[QueryOrder, ...] = ()
    limit: Optional[int] = Field(default=None, ge=0)
    offset: int = Field(default=0, ge=0)
    # Literal cursor values, or the path of a cursor document.
    start_after: Optional[Tuple[Any, ...]] = None
    start_after_path: Optional[str] = None
    selected_fields: Optional[Tuple[str, ...]] = None
