"""Declarative trigger definitions that can be attached to an in-memory store.

A definition names a document pattern and the operations it reacts to; the
same handler signature (``TriggerEvent`` in, awaitable out) is used whatever
store the definition is attached to.
"""
from __future__ import annotations

import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from cloudstub.config import runtime_config
from cloudstub.firestore.models import ChangeType
from cloudstub.firestore.snapshots import DocumentSnapshot
from cloudstub.firestore.triggers import TriggerChange, TriggerHandlers

logger = logging.getLogger(__name__)

ParamMapper = Callable[[Dict[str, str]], Dict[str, Any]]


class TriggerEvent(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    params: Dict[str, Any] = Field(default_factory=dict)
    before: Optional[DocumentSnapshot] = None
    after: Optional[DocumentSnapshot] = None
    change_type: ChangeType


EventHandler = Callable[[TriggerEvent], Union[None, Awaitable[Any]]]


class TriggerDefinition(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    document: str
    operations: List[ChangeType]
    region: str = Field(default_factory=runtime_config.get_trigger_region)
    map_params: Optional[ParamMapper] = None

    @field_validator("operations")
    @classmethod
    def _require_operations(cls, value: List[ChangeType]) -> List[ChangeType]:
        if not value:
            raise ValueError("a trigger definition needs at least one operation")
        return value


def determine_change_type(
    before: Optional[DocumentSnapshot], after: Optional[DocumentSnapshot]
) -> ChangeType:
    before_exists = before.exists if before is not None else False
    after_exists = after.exists if after is not None else False
    return ChangeType.classify(before_exists, after_exists)


def to_event(change: TriggerChange, map_params: Optional[ParamMapper] = None) -> TriggerEvent:
    params = map_params(dict(change.params)) if map_params else dict(change.params)
    return TriggerEvent(
        params=params,
        before=change.before,
        after=change.after,
        change_type=change.change_type,
    )


def register_trigger_with_stub(db, definition: TriggerDefinition, handler: EventHandler) -> Callable[[], None]:
    """Register ``handler`` on ``db`` for the definition's pattern and operations."""

    async def invoke(change: TriggerChange) -> None:
        result = handler(to_event(change, definition.map_params))
        if inspect.isawaitable(result):
            await result

    operations = set(definition.operations)
    handlers = TriggerHandlers(
        on_create=invoke if ChangeType.CREATE in operations else None,
        on_update=invoke if ChangeType.UPDATE in operations else None,
        on_delete=invoke if ChangeType.DELETE in operations else None,
    )
    logger.debug(
        f"Attaching trigger '{definition.name}' on {definition.document} "
        f"({', '.join(op.value for op in definition.operations)}) region={definition.region}"
    )
    return db.register_trigger(definition.document, handlers)


def attach_triggers_to_stub(
    db,
    definitions: Sequence[TriggerDefinition],
    resolve_handler: Callable[[TriggerDefinition], EventHandler],
) -> Callable[[], None]:
    """Register every definition; the returned callable unregisters them all."""
    unregister_fns = [
        register_trigger_with_stub(db, definition, resolve_handler(definition)) for definition in definitions
    ]

    def unregister_all() -> None:
        for unregister in unregister_fns:
            unregister()

    return unregister_all
