"""Query evaluation over the document map.

Evaluation is a linear scan with a fixed pipeline:
scope -> filters -> stable sort -> start-after cursor -> offset -> limit.
"""
from __future__ import annotations

from functools import cmp_to_key
from typing import Any, Iterable, List, Tuple

from cloudstub.firestore.errors import UnsupportedOperator
from cloudstub.firestore.field_values import lookup, split_field_path
from cloudstub.firestore.models import (
    DOCUMENT_ID_FIELD,
    OrderDirection,
    QueryConfig,
    QueryFilter,
    StoredDocument,
    WhereOp,
)


def parse_operator(op: Any) -> WhereOp:
    try:
        return WhereOp(op)
    except ValueError:
        raise UnsupportedOperator(message=f"Unsupported filter operator: {op!r}") from None


def in_scope(path: str, config: QueryConfig) -> bool:
    parts = path.split("/")
    if config.collection_group:
        return len(parts) >= 2 and parts[-2] == config.scope_path
    scope = config.scope_path.split("/")
    return len(parts) == len(scope) + 1 and parts[:-1] == scope


def field_of(doc: StoredDocument, field_path: str) -> Tuple[bool, Any]:
    if field_path == DOCUMENT_ID_FIELD:
        return True, doc.id
    return lookup(doc.data, split_field_path(field_path))


def _compare(left: Any, right: Any) -> int:
    # Incomparable values (mixed types) tie.
    try:
        if left < right:
            return -1
        if left > right:
            return 1
    except TypeError:
        return 0
    return 0


def same_value(left: Any, right: Any) -> bool:
    """Equality that keeps booleans and numbers apart (``True`` is not ``1``)."""
    if isinstance(left, bool) or isinstance(right, bool):
        return type(left) is type(right) and left == right
    if isinstance(left, list) and isinstance(right, list):
        return len(left) == len(right) and all(same_value(a, b) for a, b in zip(left, right))
    if isinstance(left, dict) and isinstance(right, dict):
        return left.keys() == right.keys() and all(same_value(left[key], right[key]) for key in left)
    return left == right


def _contains(items: Any, value: Any) -> bool:
    return any(same_value(item, value) for item in items)


def matches(doc: StoredDocument, query_filter: QueryFilter) -> bool:
    found, value = field_of(doc, query_filter.field)
    op = query_filter.op
    operand = query_filter.value

    if op is WhereOp.EQ:
        return found and same_value(value, operand)
    if op is WhereOp.NE:
        return not found or not same_value(value, operand)
    if op is WhereOp.NOT_IN:
        return isinstance(operand, (list, tuple)) and (not found or not _contains(operand, value))
    if not found:
        return False
    if op in (WhereOp.LT, WhereOp.LTE, WhereOp.GT, WhereOp.GTE):
        if value is None or isinstance(value, bool) != isinstance(operand, bool):
            return False
        result = _compare(value, operand)
        if result == 0 and not same_value(value, operand):
            return False
        if op is WhereOp.LT:
            return result < 0
        if op is WhereOp.LTE:
            return result <= 0
        if op is WhereOp.GT:
            return result > 0
        return result >= 0
    if op is WhereOp.ARRAY_CONTAINS:
        return isinstance(value, list) and _contains(value, operand)
    if op is WhereOp.IN:
        return isinstance(operand, (list, tuple)) and _contains(operand, value)
    if op is WhereOp.ARRAY_CONTAINS_ANY:
        return (
            isinstance(value, list)
            and isinstance(operand, (list, tuple))
            and any(_contains(operand, item) for item in value)
        )
    raise UnsupportedOperator(message=f"Unsupported filter operator: {op!r}")


def _sort(documents: List[StoredDocument], config: QueryConfig) -> List[StoredDocument]:
    def compare_docs(a: StoredDocument, b: StoredDocument) -> int:
        for order in config.orders:
            _, left = field_of(a, order.field)
            _, right = field_of(b, order.field)
            result = _compare(left, right)
            if result:
                return result if order.direction is OrderDirection.ASCENDING else -result
        return 0

    # sorted() is stable, so ties keep encounter order.
    return sorted(documents, key=cmp_to_key(compare_docs))


def _cursor_matches(doc: StoredDocument, field_path: str, value: Any) -> bool:
    found, current = field_of(doc, field_path)
    return found and same_value(current, value)


def _cursor_index(documents: List[StoredDocument], config: QueryConfig) -> int:
    if config.start_after_path is not None:
        for index, doc in enumerate(documents):
            if doc.path == config.start_after_path:
                return index
        return -1

    values = config.start_after or ()
    if not values:
        return -1
    for index, doc in enumerate(documents):
        if config.orders:
            pairs = zip(config.orders, values)
            if all(_cursor_matches(doc, order.field, value) for order, value in pairs):
                return index
        elif doc.id == values[0]:
            return index
    return -1


def evaluate(documents: Iterable[StoredDocument], config: QueryConfig) -> List[StoredDocument]:
    """Run the full pipeline. ``documents`` are in store encounter order."""
    results = [
        doc
        for doc in documents
        if doc.exists and in_scope(doc.path, config)
        and all(matches(doc, query_filter) for query_filter in config.filters)
    ]
    if config.orders:
        results = _sort(results, config)
    if config.start_after is not None or config.start_after_path is not None:
        index = _cursor_index(results, config)
        if index >= 0:
            results = results[index + 1:]
    if config.offset:
        results = results[config.offset:]
    if config.limit is not None:
        results = results[: config.limit]
    return results


def count(documents: Iterable[StoredDocument], config: QueryConfig) -> int:
    return len(evaluate(documents, config))
