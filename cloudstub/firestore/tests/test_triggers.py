from __future__ import annotations

import asyncio

import pytest

from cloudstub.firestore import ChangeType, InMemoryFirestore, TriggerHandlers
from cloudstub.firestore.errors import InvalidTriggerPattern
from cloudstub.firestore.triggers import compile_pattern


@pytest.mark.parametrize(
    "pattern",
    ["", "/", "users//{id}", "users/{}", "users/{id}/posts/{id}", "users/{id", "users/x{id}"],
)
def test_malformed_patterns_are_rejected(pattern):
    with pytest.raises(InvalidTriggerPattern):
        compile_pattern(pattern)


def test_pattern_matching_segments():
    matcher, names = compile_pattern("/users/{userId}/posts/{postId}/")
    assert names == ["userId", "postId"]
    assert matcher.match("users/u1/posts/p1")
    assert not matcher.match("users/u1/posts")
    assert not matcher.match("users/u1/posts/p1/comments/c1")

    star, _ = compile_pattern("users/*")
    assert star.match("users/u1")
    assert not star.match("users/u1/posts/p1")

    deep, _ = compile_pattern("tenants/{tenant}/**")
    assert deep.match("tenants/t1/a/b/c/d")
    assert not deep.match("tenants/t1")


def test_change_types_and_params():
    async def run():
        db = InMemoryFirestore()
        events = []

        def record(change):
            events.append((change.change_type, change.params, change.before.exists, change.after.exists))

        db.register_trigger("users/{userId}", on_create=record, on_update=record, on_delete=record)
        ref = db.doc("users/ada")
        await ref.set({"n": 1})
        await ref.update({"n": 2})
        await ref.delete()
        await ref.delete()

        assert events == [
            (ChangeType.CREATE, {"userId": "ada"}, False, True),
            (ChangeType.UPDATE, {"userId": "ada"}, True, True),
            (ChangeType.DELETE, {"userId": "ada"}, True, False),
        ]

    asyncio.run(run())


def test_handlers_run_in_registration_order_and_are_awaited():
    async def run():
        db = InMemoryFirestore()
        order = []

        async def slow(change):
            await asyncio.sleep(0)
            order.append("first")

        def fast(change):
            order.append("second")

        db.register_trigger("users/{id}", TriggerHandlers(on_create=slow))
        db.register_trigger("users/*", on_create=fast)
        await db.doc("users/ada").set({})
        assert order == ["first", "second"]

    asyncio.run(run())


def test_before_and_after_snapshots():
    async def run():
        db = InMemoryFirestore()
        seen = []
        db.register_trigger(
            "users/{id}",
            on_update=lambda change: seen.append((change.before.data(), change.after.data(), change.path)),
        )
        ref = db.doc("users/ada")
        await ref.set({"n": 1})
        await ref.set({"n": 2})
        assert seen == [({"n": 1}, {"n": 2}, "users/ada")]

    asyncio.run(run())


def test_unregister_and_clear():
    async def run():
        db = InMemoryFirestore()
        calls = []
        unregister = db.register_trigger("users/{id}", on_create=calls.append)
        unregister()
        unregister()
        await db.doc("users/a").set({})
        assert calls == []

        db.register_trigger("users/{id}", on_create=calls.append)
        db.clear_triggers()
        await db.doc("users/b").set({})
        assert calls == []

    asyncio.run(run())


def test_handler_errors_propagate_to_writer():
    async def run():
        db = InMemoryFirestore()

        def explode(change):
            raise ValueError("handler failed")

        db.register_trigger("users/{id}", on_create=explode)
        with pytest.raises(ValueError, match="handler failed"):
            await db.doc("users/a").set({"n": 1})

    asyncio.run(run())


def test_handler_can_write_to_the_store():
    async def run():
        db = InMemoryFirestore()

        async def mirror(change):
            await db.doc(f"audit/{change.params['id']}").set({"seen": True})

        db.register_trigger("users/{id}", on_create=mirror)
        await db.doc("users/ada").set({})
        assert (await db.doc("audit/ada").get()).exists

    asyncio.run(run())


def test_nested_collections_only_match_full_pattern():
    async def run():
        db = InMemoryFirestore()
        calls = []
        db.register_trigger("users/{id}", on_create=lambda change: calls.append(change.path))
        await db.doc("users/ada/posts/p1").set({})
        assert calls == []

    asyncio.run(run())
