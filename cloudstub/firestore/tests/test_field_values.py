from __future__ import annotations

from datetime import datetime, timezone

import pytest
from pydantic import TypeAdapter, ValidationError

from cloudstub.firestore.field_values import (
    ArrayUnion,
    DeleteField,
    FieldTransform,
    FieldValue,
    Increment,
    apply_update,
    deep_merge,
    get_field,
    merge_fields,
    project,
    resolve_transforms,
)

FIXED = datetime(2024, 1, 1, tzinfo=timezone.utc)


def clock():
    return FIXED


def test_sentinels_parse_through_discriminated_union():
    adapter = TypeAdapter(FieldTransform)
    assert isinstance(adapter.validate_python({"kind": "increment", "operand": 2}), Increment)
    assert isinstance(adapter.validate_python({"kind": "delete"}), DeleteField)
    assert isinstance(adapter.validate_python({"kind": "array_union", "elements": [1]}), ArrayUnion)
    with pytest.raises(ValidationError):
        adapter.validate_python({"kind": "bogus"})


def test_increment_uses_existing_number_or_zero():
    resolved = resolve_transforms(
        {"count": FieldValue.increment(2), "missing": FieldValue.increment(5), "text": FieldValue.increment(1)},
        {"count": 3, "text": "abc"},
        clock,
    )
    assert resolved == {"count": 5, "missing": 5, "text": 1}


def test_increment_ignores_booleans():
    resolved = resolve_transforms({"flag": FieldValue.increment(1)}, {"flag": True}, clock)
    assert resolved == {"flag": 1}


def test_server_timestamp_calls_clock_per_occurrence():
    calls = []

    def counting_clock():
        calls.append(1)
        return FIXED

    resolved = resolve_transforms(
        {"a": FieldValue.server_timestamp(), "nested": {"b": FieldValue.server_timestamp()}},
        None,
        counting_clock,
    )
    assert resolved == {"a": FIXED, "nested": {"b": FIXED}}
    assert len(calls) == 2


def test_resolution_does_not_reach_into_lists():
    sentinel = FieldValue.increment(1)
    resolved = resolve_transforms({"items": [sentinel]}, None, clock)
    assert resolved["items"][0] == sentinel


def test_array_union_and_remove():
    existing = {"tags": ["a", "b"]}
    resolved = resolve_transforms(
        {"tags": FieldValue.array_union("b", "c")},
        existing,
        clock,
    )
    assert resolved == {"tags": ["a", "b", "c"]}
    removed = resolve_transforms({"tags": FieldValue.array_remove("a", "z")}, existing, clock)
    assert removed == {"tags": ["b"]}


def test_deep_merge_merges_mappings_and_replaces_lists():
    existing = {"profile": {"name": "Ada", "langs": ["en"]}, "age": 36}
    merged = deep_merge(existing, {"profile": {"langs": ["fr"], "city": "London"}, "age": None}, clock)
    assert merged == {"profile": {"name": "Ada", "langs": ["fr"], "city": "London"}, "age": None}
    assert existing["profile"]["langs"] == ["en"]


def test_deep_merge_delete_sentinel_removes_key():
    merged = deep_merge({"a": 1, "b": {"c": 2, "d": 3}}, {"a": FieldValue.delete(), "b": {"c": FieldValue.delete()}}, clock)
    assert merged == {"b": {"d": 3}}


def test_merge_fields_only_touches_named_fields():
    existing = {"a": 1, "b": {"c": 2, "d": 3}, "e": 4}
    merged = merge_fields(existing, {"a": 10, "b": {"c": 20, "d": 30}, "e": 40}, ["a", "b.c", "zzz"], clock)
    assert merged == {"a": 10, "b": {"c": 20, "d": 3}, "e": 4}


def test_apply_update_dotted_keys_keep_siblings():
    existing = {"address": {"city": "Paris", "zip": "75001"}, "n": 1}
    updated = apply_update(existing, {"address.city": "Lyon", "n": FieldValue.increment(2)}, clock)
    assert updated == {"address": {"city": "Lyon", "zip": "75001"}, "n": 3}


def test_apply_update_delete_with_missing_intermediate_is_ignored():
    updated = apply_update({"a": 1}, {"x.y.z": FieldValue.delete(), "a": FieldValue.delete()}, clock)
    assert updated == {}


def test_project_and_get_field():
    data = {"a": {"b": 1, "c": 2}, "d": 3}
    assert project(data, ["a.b", "d", "missing"]) == {"a": {"b": 1}, "d": 3}
    assert get_field(data, "a.c") == 2
    assert get_field(data, "a.zz", "fallback") == "fallback"
