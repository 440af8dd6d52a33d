"""
Unit tests for gallery removal sync and the event bus.
"""

import pytest

from src.core.events import EventBus
from src.core.storage.models import RemovedItem
from src.core.storage.sync import (
    REMOVE_EVENT,
    RemoveSyncListener,
    register_remove_listener,
)
from src.infrastructure.b2.mock import MOCK_DOWNLOAD_URL


def url_for(key: str) -> str:
    return f"{MOCK_DOWNLOAD_URL}/file/my-images/{key}"


class TestRemoveSyncListener:

    @pytest.mark.asyncio
    async def test_deletes_matching_items(self, service, requester):
        requester.put_object("a.png", b"1")
        requester.put_object("b.png", b"2")
        listener = RemoveSyncListener(service)

        summary = await listener.handle([
            RemovedItem(type="b2", img_url=url_for("a.png"), file_name="a.png"),
            RemovedItem(type="b2", img_url=url_for("b.png"), file_name="b.png"),
        ])

        assert summary.deleted == ["a.png", "b.png"]
        assert requester.object_names() == []

    @pytest.mark.asyncio
    async def test_items_from_other_uploaders_are_skipped(self, service, requester):
        listener = RemoveSyncListener(service)

        summary = await listener.handle([
            RemovedItem(type="smms", img_url="https://i.example.com/x.png", file_name="x.png"),
        ])

        assert summary.skipped == ["https://i.example.com/x.png"]
        assert requester.calls == []

    @pytest.mark.asyncio
    async def test_unparseable_url_is_skipped(self, service, requester):
        listener = RemoveSyncListener(service)

        summary = await listener.handle([
            RemovedItem(type="b2", img_url=None, file_name="lost.png"),
        ])

        assert summary.skipped == ["lost.png"]
        assert requester.calls == []

    @pytest.mark.asyncio
    async def test_failure_on_one_item_does_not_block_others(self, service, requester, notifier):
        """
        Given the lookup for the first item fails
        When a batch of two is removed
        Then the second is still deleted and the failure is recorded
        """
        requester.put_object("a.png", b"1")
        requester.put_object("b.png", b"2")
        requester.fail_next("b2_list_file_names", 500, "internal_error", "Listing down")
        listener = RemoveSyncListener(service)

        summary = await listener.handle([
            RemovedItem(type="b2", img_url=url_for("a.png")),
            RemovedItem(type="b2", img_url=url_for("b.png")),
        ])

        assert [key for key, _ in summary.failed] == ["a.png"]
        assert "Listing down" in summary.failed[0][1]
        assert summary.deleted == ["b.png"]
        assert requester.object_names() == ["a.png"]
        assert notifier.notifications == []

    @pytest.mark.asyncio
    async def test_accepts_host_dicts(self, service, requester):
        requester.put_object("a.png", b"1")
        listener = RemoveSyncListener(service)

        summary = await listener([
            {"type": "b2", "imgUrl": url_for("a.png"), "fileName": "a.png"},
        ])

        assert summary.deleted == ["a.png"]
        assert summary.total == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("bad_item, label", [
        ({"type": "b2", "imgUrl": "https://[broken/a.png"}, "https://[broken/a.png"),
        ({"type": "b2", "imgUrl": 12345}, "12345"),
    ])
    async def test_malformed_url_is_skipped_and_batch_continues(
        self, service, requester, bad_item, label
    ):
        """
        Given a removed item whose URL can't be parsed
        When it is followed by a valid item
        Then the bad item is skipped and the valid one is still deleted
        """
        requester.put_object("b.png", b"2")
        listener = RemoveSyncListener(service)

        summary = await listener.handle([
            bad_item,
            {"type": "b2", "imgUrl": url_for("b.png")},
        ])

        assert summary.skipped == [label]
        assert summary.deleted == ["b.png"]
        assert requester.object_names() == []

    @pytest.mark.asyncio
    async def test_key_derivation_error_does_not_block_others(
        self, service, requester, monkeypatch
    ):
        requester.put_object("b.png", b"2")
        derive = service.storage_key_for

        def flaky(url):
            if url.endswith("a.png"):
                raise RuntimeError("cannot parse")
            return derive(url)

        monkeypatch.setattr(service, "storage_key_for", flaky)
        listener = RemoveSyncListener(service)

        summary = await listener.handle([
            RemovedItem(type="b2", img_url=url_for("a.png")),
            RemovedItem(type="b2", img_url=url_for("b.png")),
        ])

        assert summary.failed == [(url_for("a.png"), "cannot parse")]
        assert summary.deleted == ["b.png"]

    @pytest.mark.asyncio
    async def test_repeated_failures_are_all_counted(self, service, requester):
        requester.fail_next("b2_list_file_names", 500, "internal_error", "Listing down")
        requester.fail_next("b2_list_file_names", 500, "internal_error", "Listing down")
        listener = RemoveSyncListener(service)

        summary = await listener.handle([
            RemovedItem(type="b2", img_url=url_for("a.png")),
            RemovedItem(type="b2", img_url=url_for("a.png")),
        ])

        assert [key for key, _ in summary.failed] == ["a.png", "a.png"]
        assert summary.total == 2


class TestRegisterRemoveListener:

    def test_without_bus_nothing_is_installed(self, service):
        assert register_remove_listener(None, service) is None

    @pytest.mark.asyncio
    async def test_remove_event_triggers_delete(self, service, requester):
        requester.put_object("a.png", b"1")
        bus = EventBus()

        listener = register_remove_listener(bus, service)
        results = await bus.emit(REMOVE_EVENT, [
            {"type": "b2", "imgUrl": url_for("a.png")},
        ])

        assert bus.handlers(REMOVE_EVENT) == [listener]
        assert results[0].deleted == ["a.png"]
        assert requester.object_names() == []


class TestEventBus:

    @pytest.mark.asyncio
    async def test_runs_sync_and_async_handlers_in_order(self):
        bus = EventBus()
        seen = []

        def first(payload):
            seen.append(("first", payload))
            return 1

        async def second(payload):
            seen.append(("second", payload))
            return 2

        bus.on("remove", first)
        bus.on("remove", second)

        results = await bus.emit("remove", "x")

        assert results == [1, 2]
        assert seen == [("first", "x"), ("second", "x")]

    @pytest.mark.asyncio
    async def test_off_unsubscribes(self):
        bus = EventBus()
        calls = []
        handler = calls.append

        bus.on("remove", handler)
        bus.off("remove", handler)
        await bus.emit("remove", "x")

        assert calls == []

    @pytest.mark.asyncio
    async def test_unknown_event_is_a_no_op(self):
        assert await EventBus().emit("nothing") == []

    def test_buses_are_independent(self):
        one, two = EventBus(), EventBus()

        one.on("remove", print)

        assert two.handlers("remove") == []
