from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from cloudstub.firestore import FieldValue, InMemoryFirestore
from cloudstub.firestore.errors import DocumentAlreadyExists, DocumentNotFound, InvalidPath

FIXED = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def db() -> InMemoryFirestore:
    return InMemoryFirestore(clock=lambda: FIXED, id_prefix="id_")


def test_set_get_and_clone_isolation(db: InMemoryFirestore):
    async def run():
        ref = db.doc("users/ada")
        payload = {"name": "Ada", "profile": {"langs": ["en"]}}
        await ref.set(payload)
        payload["profile"]["langs"].append("mutated")

        snap = await ref.get()
        assert snap.exists
        assert snap.id == "ada"
        data = snap.data()
        assert data == {"name": "Ada", "profile": {"langs": ["en"]}}
        data["name"] = "changed"
        assert snap.data()["name"] == "Ada"
        assert snap.get("profile.langs") == ["en"]

    asyncio.run(run())


def test_plain_set_replaces_document(db: InMemoryFirestore):
    async def run():
        ref = db.doc("users/ada")
        await ref.set({"a": 1, "b": 2})
        await ref.set({"c": 3})
        assert (await ref.get()).data() == {"c": 3}

    asyncio.run(run())


def test_merge_set_and_merge_fields(db: InMemoryFirestore):
    async def run():
        ref = db.doc("users/ada")
        await ref.set({"name": "Ada", "address": {"city": "London", "zip": "N1"}})
        await ref.set({"address": {"city": "Paris"}}, merge=True)
        assert (await ref.get()).data() == {"name": "Ada", "address": {"city": "Paris", "zip": "N1"}}

        await ref.set({"name": "Ignored", "address": {"zip": "75001"}}, merge_fields=["address.zip"])
        assert (await ref.get()).data() == {"name": "Ada", "address": {"city": "Paris", "zip": "75001"}}

        missing = db.doc("users/new")
        await missing.set({"a": 1, "b": 2}, merge_fields=["a"])
        assert (await missing.get()).data() == {"a": 1}

    asyncio.run(run())


def test_merge_into_missing_document_behaves_as_set(db: InMemoryFirestore):
    async def run():
        ref = db.doc("users/ghost")
        await ref.set({"n": FieldValue.increment(3)}, merge=True)
        assert (await ref.get()).data() == {"n": 3}

    asyncio.run(run())


def test_update_requires_existing_document(db: InMemoryFirestore):
    async def run():
        with pytest.raises(DocumentNotFound) as excinfo:
            await db.doc("users/nobody").update({"a": 1})
        assert excinfo.value.status_code == 404
        assert excinfo.value.path == "users/nobody"
        assert db.get_all_documents() == {}

    asyncio.run(run())


def test_update_resolves_sentinels(db: InMemoryFirestore):
    async def run():
        ref = db.doc("counters/c1")
        await ref.set({"n": 1, "meta": {"owner": "ada", "tmp": True}})
        await ref.update(
            {
                "n": FieldValue.increment(4),
                "meta.tmp": FieldValue.delete(),
                "meta.touched": FieldValue.server_timestamp(),
            }
        )
        assert (await ref.get()).data() == {"n": 5, "meta": {"owner": "ada", "touched": FIXED}}

    asyncio.run(run())


def test_create_fails_when_document_exists(db: InMemoryFirestore):
    async def run():
        ref = db.doc("users/ada")
        await ref.create({"a": 1})
        with pytest.raises(DocumentAlreadyExists):
            await ref.create({"a": 2})
        assert (await ref.get()).data() == {"a": 1}

    asyncio.run(run())


def test_delete_is_idempotent(db: InMemoryFirestore):
    async def run():
        ref = db.doc("users/ada")
        await ref.set({"a": 1})
        deleted = []
        deliveries = []
        db.register_trigger("users/{id}", on_delete=lambda change: deleted.append(change.path))
        ref.on_snapshot(lambda snap: deliveries.append(snap.exists))
        for _ in range(3):
            await asyncio.sleep(0)

        await ref.delete()
        await ref.delete()
        for _ in range(3):
            await asyncio.sleep(0)
        assert deleted == ["users/ada"]
        assert deliveries == [True, False]
        snap = await ref.get()
        assert not snap.exists
        assert snap.data() is None

    asyncio.run(run())


def test_auto_ids_use_prefix_and_reset_on_clear(db: InMemoryFirestore):
    async def run():
        users = db.collection("users")
        first = await users.add({"n": 1})
        second = users.doc()
        assert first.id == "id_000001"
        assert second.id == "id_000002"
        db.clear()
        assert db.collection("users").doc().id == "id_000001"

    asyncio.run(run())


def test_path_parity_is_validated(db: InMemoryFirestore):
    with pytest.raises(InvalidPath):
        db.collection("users/ada")
    with pytest.raises(InvalidPath):
        db.doc("users")
    with pytest.raises(InvalidPath):
        db.doc("users//ada")
    with pytest.raises(InvalidPath):
        db.collection_group("users/ada/orders")


def test_reference_navigation(db: InMemoryFirestore):
    ref = db.collection("users").doc("ada").collection("orders").doc("o1")
    assert ref.path == "users/ada/orders/o1"
    assert ref.parent.path == "users/ada/orders"
    assert ref.parent.parent == db.doc("users/ada")
    assert db.collection("users").parent is None
    assert db.document("users/ada") == db.doc("users/ada")


def test_seed_clear_and_list_collections(db: InMemoryFirestore):
    async def run():
        db.seed("users/ada", {"raw": FieldValue.increment(1)})
        db.seed("teams/t1", {"name": "core"})
        db.seed("teams/t1/members/m1", {"name": "ada"})
        collections = await db.list_collections()
        assert [collection.id for collection in collections] == ["users", "teams"]
        assert set(db.get_all_documents()) == {"users/ada", "teams/t1", "teams/t1/members/m1"}
        db.clear()
        assert db.get_all_documents() == {}

    asyncio.run(run())


def test_independent_instances_share_nothing():
    async def run():
        first = InMemoryFirestore()
        second = InMemoryFirestore()
        await first.doc("users/ada").set({"a": 1})
        assert not (await second.doc("users/ada").get()).exists

    asyncio.run(run())
