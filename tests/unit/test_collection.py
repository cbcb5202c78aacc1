from __future__ import annotations

import asyncio
from typing import Any, List, Mapping, Sequence

import pytest

from appvault.collection import AppCollection, CollectionState
from appvault.domain import SEED_CATALOG, AppDraft, Category, LocalAsset
from appvault.errors import UploadError, WriteError
from appvault.image_pipeline import build_screenshot_url, optimize_image_url
from appvault.stores.abstract import ErrorHandler, SnapshotHandler, Unsubscribe
from appvault.stores.memory import MemoryStore

TIMEOUT = 1.0
PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 8


class _DoubleEmptyStore(MemoryStore):
    """Reports "empty" twice before the first seed write can land."""

    def __init__(self) -> None:
        super().__init__()
        self.batch_calls = 0

    def subscribe_ordered(self, on_snapshot: SnapshotHandler, on_error: ErrorHandler) -> Unsubscribe:
        unsubscribe = super().subscribe_ordered(on_snapshot, on_error)
        self._subscriptions[-1].queue.put_nowait([])
        return unsubscribe

    async def batch_create(
        self, records: Sequence[Mapping[str, Any]], only_if_empty: bool = False
    ) -> List[str]:
        self.batch_calls += 1
        return await super().batch_create(records, only_if_empty=only_if_empty)


class _BrokenUploadStore(MemoryStore):
    async def upload_asset(self, content: bytes, content_type: str, filename: str = "") -> str:
        raise UploadError("Firebase: storage/unauthorized")


class _BrokenSeedStore(MemoryStore):
    async def batch_create(
        self, records: Sequence[Mapping[str, Any]], only_if_empty: bool = False
    ) -> List[str]:
        raise WriteError("Memory: quota exceeded")


async def _ready(collection: AppCollection, count: int) -> None:
    await collection.wait_for(lambda c: c.state is CollectionState.READY and len(c) == count, TIMEOUT)


@pytest.mark.asyncio
async def test_empty_collection_is_seeded_exactly_once(memory_store) -> None:
    collection = AppCollection(memory_store)
    assert collection.loading

    collection.start()
    await _ready(collection, len(SEED_CATALOG))

    assert len(memory_store.batch_calls) == 1
    assert [r.name for r in collection.records] == [d.name for d in SEED_CATALOG]
    created = [r.created_at for r in collection.records]
    assert created == sorted(created)
    collection.stop()


@pytest.mark.asyncio
async def test_double_empty_snapshot_does_not_seed_twice() -> None:
    store = _DoubleEmptyStore()
    async with AppCollection(store) as collection:
        await _ready(collection, len(SEED_CATALOG))
        await asyncio.sleep(0)
    assert store.batch_calls == 1
    assert len(store.snapshot()) == len(SEED_CATALOG)


@pytest.mark.asyncio
async def test_non_empty_collection_is_not_seeded(memory_store) -> None:
    await memory_store.create({"name": "Mine", "url": "https://mine.io", "category": "Other"})
    async with AppCollection(memory_store) as collection:
        await _ready(collection, 1)
        assert collection.records[0].name == "Mine"
    assert memory_store.batch_calls == []


@pytest.mark.asyncio
async def test_seeding_can_be_disabled(memory_store) -> None:
    async with AppCollection(memory_store, seed=[]) as collection:
        assert await collection.wait_until_ready(TIMEOUT) is CollectionState.READY
        assert len(collection) == 0
    assert memory_store.batch_calls == []


@pytest.mark.asyncio
async def test_create_update_delete_round_trip(memory_store) -> None:
    async with AppCollection(memory_store, seed=[]) as collection:
        await collection.wait_until_ready(TIMEOUT)

        record_id = await collection.create({"name": "X", "url": "x.io", "category": "Finance"})
        await collection.wait_for(lambda c: c.get(record_id) is not None, TIMEOUT)
        record = collection.get(record_id)
        assert record.url == "https://x.io"
        assert record.category is Category.FINANCE
        assert record.created_at is not None
        assert record.updated_at is None
        assert record.image == optimize_image_url(build_screenshot_url("https://x.io"))

        await collection.update(record_id, {"name": "Y"})
        await collection.wait_for(lambda c: c.get(record_id).name == "Y", TIMEOUT)
        updated = collection.get(record_id)
        assert updated.url == "https://x.io"
        assert updated.category is Category.FINANCE
        assert updated.updated_at is not None
        assert updated.updated_at > updated.created_at
        assert updated.created_at == record.created_at

        await collection.delete(record_id)
        await collection.wait_for(lambda c: c.get(record_id) is None, TIMEOUT)
        assert len(collection) == 0


@pytest.mark.asyncio
async def test_created_record_renders_the_image_it_was_saved_with(memory_store) -> None:
    async with AppCollection(memory_store, seed=[]) as collection:
        await collection.wait_until_ready(TIMEOUT)
        record_id = await collection.create(
            AppDraft(name="Photo", url="photo.app", image="https://images.unsplash.com/p?w=10")
        )
        await collection.wait_for(lambda c: c.get(record_id) is not None, TIMEOUT)
        record = collection.get(record_id)
        assert record.image == "https://images.unsplash.com/p?w=720&q=75&auto=format"
        assert record.display_image == record.image


@pytest.mark.asyncio
async def test_ephemeral_preview_is_never_persisted(memory_store) -> None:
    async with AppCollection(memory_store, seed=[]) as collection:
        await collection.wait_until_ready(TIMEOUT)
        await collection.create({"name": "X", "url": "x.io", "image": "blob:http://localhost/123"})
    assert memory_store.create_calls[0]["image"] == build_screenshot_url("x.io")


@pytest.mark.asyncio
async def test_upload_takes_priority_over_screenshot(memory_store) -> None:
    async with AppCollection(memory_store, seed=[]) as collection:
        await collection.wait_until_ready(TIMEOUT)
        draft = AppDraft(
            name="X",
            url="x.io",
            image="https://cdn.example/old.png",
            upload=LocalAsset(filename="shot.PNG", content=PNG, content_type="image/png"),
        )
        await collection.create(draft)

    image = memory_store.create_calls[0]["image"]
    assert image.startswith("memory://assets/app-previews/")
    assert image.endswith(".png")
    assert len(memory_store.assets) == 1


@pytest.mark.asyncio
async def test_failed_upload_commits_no_record() -> None:
    store = _BrokenUploadStore()
    async with AppCollection(store, seed=[]) as collection:
        await collection.wait_until_ready(TIMEOUT)
        with pytest.raises(UploadError) as excinfo:
            await collection.create(
                AppDraft(name="X", url="x.io", upload=LocalAsset(filename="a.png", content=PNG))
            )
    assert str(excinfo.value) == "storage/unauthorized"
    assert store.snapshot() == []


@pytest.mark.asyncio
async def test_write_errors_lose_provider_prefix(rejecting_store) -> None:
    async with AppCollection(rejecting_store, seed=[]) as collection:
        await collection.wait_until_ready(TIMEOUT)
        for call in (
            collection.create({"name": "X", "url": "x.io"}),
            collection.update("some-id", {"name": "Y"}),
            collection.delete("some-id"),
        ):
            with pytest.raises(WriteError) as excinfo:
                await call
            assert str(excinfo.value) == "Missing or insufficient permissions."
        assert len(collection) == 0


@pytest.mark.asyncio
async def test_update_without_known_record_writes_only_given_fields(memory_store) -> None:
    record_id = await memory_store.create(
        {"name": "X", "url": "https://x.io", "category": "CRE", "image": ""}
    )
    async with AppCollection(memory_store, seed=[]) as collection:
        # Not waiting for the mirror: the record is unknown locally.
        await collection.update(record_id, {"url": "y.io", "category": Category.MEDICAL})

    _, fields = memory_store.update_calls[0]
    assert fields == {"url": "https://y.io", "category": "Medical"}
    assert memory_store.snapshot()[0].name == "X"


@pytest.mark.asyncio
async def test_update_uses_previous_record_as_defaults(memory_store) -> None:
    async with AppCollection(memory_store, seed=[]) as collection:
        await collection.wait_until_ready(TIMEOUT)
        record_id = await collection.create(
            {"name": "X", "url": "x.io", "description": "d", "category": "Fitness"}
        )
        await collection.wait_for(lambda c: c.get(record_id) is not None, TIMEOUT)

        await collection.update(record_id, {"url": "z.io"})

    _, fields = memory_store.update_calls[0]
    assert fields["name"] == "X"
    assert fields["description"] == "d"
    assert fields["category"] == "Fitness"
    assert fields["url"] == "https://z.io"
    # The stored screenshot of the old URL is persistent, so it is kept.
    assert fields["image"] == build_screenshot_url("x.io")


@pytest.mark.asyncio
async def test_subscription_error_keeps_last_mirror(memory_store) -> None:
    changes: List[CollectionState] = []
    collection = AppCollection(memory_store, on_change=lambda c: changes.append(c.state))
    collection.start()
    await _ready(collection, len(SEED_CATALOG))

    memory_store.fail_subscriptions("permission-denied")
    await collection.wait_for(lambda c: c.state is CollectionState.ERROR, TIMEOUT)

    assert not collection.loading
    assert len(collection) == len(SEED_CATALOG)
    assert str(collection.last_error) == "Memory: permission-denied"
    assert changes[-1] is CollectionState.ERROR
    collection.stop()
    collection.stop()


@pytest.mark.asyncio
async def test_failed_seed_moves_to_error_state() -> None:
    async with AppCollection(_BrokenSeedStore()) as collection:
        assert await collection.wait_until_ready(TIMEOUT) is CollectionState.ERROR
        assert isinstance(collection.last_error, WriteError)
        assert str(collection.last_error) == "quota exceeded"


@pytest.mark.asyncio
async def test_start_is_idempotent_and_stop_releases_subscription(memory_store) -> None:
    collection = AppCollection(memory_store, seed=[])
    collection.start()
    collection.start()
    assert memory_store.subscriber_count == 1

    collection.stop()
    collection.stop()
    assert memory_store.subscriber_count == 0

    collection.start()
    assert memory_store.subscriber_count == 0


@pytest.mark.asyncio
async def test_write_after_stop_is_tolerated(memory_store) -> None:
    collection = AppCollection(memory_store, seed=[])
    collection.start()
    await collection.wait_until_ready(TIMEOUT)
    collection.stop()

    record_id = await collection.create({"name": "Late", "url": "late.io"})
    await asyncio.sleep(0)
    assert collection.get(record_id) is None
    assert [r.id for r in memory_store.snapshot()] == [record_id]


@pytest.mark.asyncio
async def test_category_filters(memory_store) -> None:
    async with AppCollection(memory_store) as collection:
        await _ready(collection, len(SEED_CATALOG))
        assert len(collection.by_category()) == len(SEED_CATALOG)
        assert len(collection.by_category("All")) == len(SEED_CATALOG)
        assert [r.name for r in collection.by_category("Finance")] == [
            "Bitcoin Tracker",
            "Budget Manager",
        ]
        assert collection.by_category(Category.MEDICAL) == []
        assert collection.category_count() == 4
        with pytest.raises(ValueError):
            collection.by_category("Gaming")


@pytest.mark.asyncio
async def test_wait_for_times_out(memory_store) -> None:
    collection = AppCollection(memory_store)
    with pytest.raises(asyncio.TimeoutError):
        await collection.wait_until_ready(timeout=0.05)


@pytest.mark.asyncio
async def test_on_change_reports_state_before_waiters_resume(memory_store) -> None:
    seen: List[CollectionState] = []
    collection = AppCollection(memory_store, seed=[], on_change=lambda c: seen.append(c.state))
    collection.start()

    assert await collection.wait_until_ready(TIMEOUT) is CollectionState.READY
    assert seen == [CollectionState.READY]

    memory_store.fail_subscriptions("unavailable")
    await collection.wait_for(lambda c: c.state is CollectionState.ERROR, TIMEOUT)
    assert seen == [CollectionState.READY, CollectionState.ERROR]
    collection.stop()


@pytest.mark.asyncio
async def test_unknown_fields_are_rejected_on_every_write_path(memory_store) -> None:
    async with AppCollection(memory_store, seed=[]) as collection:
        await collection.wait_until_ready(TIMEOUT)
        record_id = await collection.create({"name": "X", "url": "x.io"})
        await collection.wait_for(lambda c: c.get(record_id) is not None, TIMEOUT)

        with pytest.raises(WriteError, match="Unknown fields: bogus"):
            await collection.update(record_id, {"name": "Y", "bogus": 1})
        with pytest.raises(WriteError, match="Unknown fields: bogus"):
            await collection.update("unknown-id", {"name": "Y", "bogus": 1})
        with pytest.raises(WriteError, match="Unknown fields: bogus"):
            await collection.create({"name": "Z", "url": "z.io", "bogus": 1})

    assert memory_store.update_calls == []
    assert len(memory_store.create_calls) == 1
