"""Field value sentinels and the write-time resolution pass.

Sentinels are placeholder values embedded in write payloads. They are
resolved against the stored value at the same field path right before the
document is persisted:

- ``FieldValue.increment(n)``: existing number (or 0) plus ``n``
- ``FieldValue.server_timestamp()``: a fresh timestamp per occurrence
- ``FieldValue.delete()``: removes the addressed field
- ``FieldValue.array_union(*v)`` / ``FieldValue.array_remove(*v)``

Resolution recurses into nested mappings but never into list elements.
"""
from __future__ import annotations

import copy
from datetime import datetime, timezone
from typing import Annotated, Any, Callable, Dict, List, Literal, Mapping, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

Clock = Callable[[], datetime]

_MISSING = object()


class _Transform(BaseModel):
    model_config = ConfigDict(frozen=True)


class Increment(_Transform):
    kind: Literal["increment"] = "increment"
    operand: Union[int, float]


class ServerTimestamp(_Transform):
    kind: Literal["server_timestamp"] = "server_timestamp"


class DeleteField(_Transform):
    kind: Literal["delete"] = "delete"


class ArrayUnion(_Transform):
    kind: Literal["array_union"] = "array_union"
    elements: Tuple[Any, ...] = ()


class ArrayRemove(_Transform):
    kind: Literal["array_remove"] = "array_remove"
    elements: Tuple[Any, ...] = ()


FieldTransform = Annotated[
    Union[Increment, ServerTimestamp, DeleteField, ArrayUnion, ArrayRemove],
    Field(discriminator="kind"),
]


class FieldValue:
    """Factory namespace for sentinel values."""

    @staticmethod
    def increment(operand: Union[int, float]) -> Increment:
        return Increment(operand=operand)

    @staticmethod
    def server_timestamp() -> ServerTimestamp:
        return ServerTimestamp()

    @staticmethod
    def delete() -> DeleteField:
        return DeleteField()

    @staticmethod
    def array_union(*elements: Any) -> ArrayUnion:
        return ArrayUnion(elements=tuple(elements))

    @staticmethod
    def array_remove(*elements: Any) -> ArrayRemove:
        return ArrayRemove(elements=tuple(elements))


def is_transform(value: Any) -> bool:
    return isinstance(value, _Transform)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def resolve_transform(transform: FieldTransform, existing: Any, clock: Clock) -> Any:
    """Resolve a single non-delete sentinel against the stored value."""
    kind = transform.kind
    if kind == "increment":
        base = existing if _is_number(existing) else 0
        return base + transform.operand
    if kind == "server_timestamp":
        return clock()
    if kind == "array_union":
        merged = list(existing) if isinstance(existing, list) else []
        for element in transform.elements:
            if element not in merged:
                merged.append(copy.deepcopy(element))
        return merged
    if kind == "array_remove":
        current = list(existing) if isinstance(existing, list) else []
        return [item for item in current if item not in transform.elements]
    raise ValueError(f"Sentinel '{kind}' cannot be resolved to a value")


def resolve_transforms(data: Mapping[str, Any], existing: Any, clock: Clock) -> Dict[str, Any]:
    """Return a copy of ``data`` with every sentinel resolved.

    ``existing`` is the stored mapping at the same path (anything else counts
    as empty). Delete sentinels drop their key from the result.
    """
    current = existing if isinstance(existing, dict) else {}
    result: Dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, DeleteField):
            continue
        if is_transform(value):
            result[key] = resolve_transform(value, current.get(key), clock)
        elif isinstance(value, Mapping):
            result[key] = resolve_transforms(value, current.get(key), clock)
        else:
            result[key] = copy.deepcopy(value)
    return result


def _resolve_field(value: Any, existing: Any, clock: Clock) -> Any:
    if is_transform(value):
        return resolve_transform(value, existing, clock)
    if isinstance(value, Mapping):
        return resolve_transforms(value, existing, clock)
    return copy.deepcopy(value)


def deep_merge(existing: Dict[str, Any], incoming: Mapping[str, Any], clock: Clock) -> Dict[str, Any]:
    """Merge ``incoming`` into a copy of ``existing``.

    Mappings merge key by key; lists, None and scalars replace wholesale.
    """
    result = copy.deepcopy(existing)
    for key, value in incoming.items():
        current = result.get(key, _MISSING)
        if isinstance(value, DeleteField):
            result.pop(key, None)
        elif isinstance(value, Mapping) and isinstance(current, dict):
            result[key] = deep_merge(current, value, clock)
        else:
            result[key] = _resolve_field(value, None if current is _MISSING else current, clock)
    return result


def split_field_path(field_path: str) -> List[str]:
    return field_path.split(".")


def lookup(data: Any, parts: Sequence[str]) -> Tuple[bool, Any]:
    """Walk a dotted path. Returns ``(found, value)``."""
    current = data
    for part in parts:
        if not isinstance(current, Mapping) or part not in current:
            return False, None
        current = current[part]
    return True, current


def get_field(data: Any, field_path: str, default: Any = None) -> Any:
    found, value = lookup(data, split_field_path(field_path))
    return value if found else default


def _parent_for_write(data: Dict[str, Any], parts: Sequence[str]) -> Dict[str, Any]:
    current = data
    for part in parts[:-1]:
        child = current.get(part)
        if not isinstance(child, dict):
            child = {}
            current[part] = child
        current = child
    return current


def _delete_path(data: Dict[str, Any], parts: Sequence[str]) -> None:
    found, parent = lookup(data, parts[:-1])
    if not found or not isinstance(parent, dict):
        return
    parent.pop(parts[-1], None)


def merge_fields(
    existing: Dict[str, Any],
    incoming: Mapping[str, Any],
    field_paths: Sequence[str],
    clock: Clock,
) -> Dict[str, Any]:
    """Copy only the named fields of ``incoming`` onto a copy of ``existing``."""
    result = copy.deepcopy(existing)
    for field_path in field_paths:
        parts = split_field_path(field_path)
        found, value = lookup(incoming, parts)
        if not found:
            continue
        if isinstance(value, DeleteField):
            _delete_path(result, parts)
            continue
        _, current = lookup(existing, parts)
        _parent_for_write(result, parts)[parts[-1]] = _resolve_field(value, current, clock)
    return result


def apply_update(existing: Dict[str, Any], updates: Mapping[str, Any], clock: Clock) -> Dict[str, Any]:
    """Apply an update payload whose keys may be dotted field paths.

    Nested mapping values replace the addressed field; siblings reached via
    dotted keys are left untouched.
    """
    result = copy.deepcopy(existing)
    for key, value in updates.items():
        parts = split_field_path(key)
        if isinstance(value, DeleteField):
            _delete_path(result, parts)
            continue
        parent = _parent_for_write(result, parts)
        parent[parts[-1]] = _resolve_field(value, parent.get(parts[-1]), clock)
    return result


def project(data: Mapping[str, Any], field_paths: Sequence[str]) -> Dict[str, Any]:
    """Keep only the named (possibly dotted) fields."""
    result: Dict[str, Any] = {}
    for field_path in field_paths:
        parts = split_field_path(field_path)
        found, value = lookup(data, parts)
        if found:
            _parent_for_write(result, parts)[parts[-1]] = copy.deepcopy(value)
    return result


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
