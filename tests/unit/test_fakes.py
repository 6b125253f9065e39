"""Tests for fake implementations to ensure they work correctly."""

import asyncio
import io

import pytest
from PIL import Image

from images_queue.core.exceptions import ServiceError
from images_queue.testing.fakes import (
    FakeLogger,
    FakeObjectStore,
    FakeQueueService,
    create_test_image,
    pad_png,
)


class TestFakeObjectStore:
    """Tests for FakeObjectStore to ensure it behaves like the real store."""

    def test_create_container(self):
        store = FakeObjectStore()

        container = store.create_container("staging")

        assert container.name == "staging"
        assert len(container.objects) == 0
        assert store.get_container("staging") is container
        assert store.get_container("missing") is None

    def test_put_creates_container_and_stores_object(self):
        """Test that put ensures the container before writing."""
        store = FakeObjectStore()

        asyncio.run(store.put("staging", "a.png", b"data", "image/png"))

        stored = store.get_container("staging").get_object("a.png")
        assert stored.body == b"data"
        assert stored.content_type == "image/png"
        assert stored.size == 4
        assert store.create_calls == 1

    def test_ensure_container_is_idempotent(self):
        store = FakeObjectStore()

        async def scenario():
            await store.ensure_container("results")
            await store.ensure_container("results")

        asyncio.run(scenario())

        assert store.create_calls == 1
        assert store.mutation_count == 1

    def test_get_and_exists(self):
        store = FakeObjectStore()
        store.create_container("staging").add_object("a.png", b"abc")

        assert asyncio.run(store.get("staging", "a.png")) == b"abc"
        assert asyncio.run(store.exists("staging", "a.png")) is True
        assert asyncio.run(store.exists("staging", "b.png")) is False
        assert asyncio.run(store.exists("missing", "a.png")) is False

    def test_get_missing_object_raises(self):
        store = FakeObjectStore()
        store.create_container("staging")

        with pytest.raises(ServiceError, match="not found"):
            asyncio.run(store.get("staging", "nope.png"))

    def test_delete_is_idempotent(self):
        store = FakeObjectStore()
        store.create_container("staging").add_object("a.png", b"abc")

        asyncio.run(store.delete("staging", "a.png"))
        asyncio.run(store.delete("staging", "a.png"))

        assert store.snapshot() == {"staging": {}}

    def test_failure_mode(self):
        """Test that configured operations fail with ServiceError."""
        store = FakeObjectStore()
        store.set_failure_mode("put", message="Disk full")

        with pytest.raises(ServiceError, match=r"Disk full \(put\)"):
            asyncio.run(store.put("staging", "a.png", b"x", "image/png"))
        assert asyncio.run(store.exists("staging", "a.png")) is False

    def test_snapshot_is_a_copy(self):
        store = FakeObjectStore()
        store.create_container("staging").add_object("a.png", b"abc")

        snapshot = store.snapshot()
        store.create_container("staging").add_object("b.png", b"def")

        assert snapshot == {"staging": {"a.png": b"abc"}}


class TestFakeQueueService:
    """Tests for FakeQueueService lease semantics."""

    def test_send_creates_queue(self):
        queue = FakeQueueService()

        asyncio.run(queue.send("images", "hello"))

        assert queue.bodies("images") == ["hello"]
        assert queue.create_calls == 1

    def test_receive_leases_and_hides_messages(self):
        queue = FakeQueueService()
        queue.add_message("images", "one")
        queue.add_message("images", "two")

        first = asyncio.run(queue.receive_leased("images", 10))
        second = asyncio.run(queue.receive_leased("images", 10))

        assert [m.body for m in first] == ["one", "two"]
        assert all(m.delivery_count == 1 for m in first)
        assert second == []

    def test_receive_respects_max_count(self):
        queue = FakeQueueService()
        for i in range(5):
            queue.add_message("images", str(i))

        assert len(asyncio.run(queue.receive_leased("images", 2))) == 2

    def test_expired_lease_makes_message_visible_again(self):
        """Test redelivery after the lease runs out."""
        queue = FakeQueueService(lease_seconds=30)
        queue.add_message("images", "one")

        first = asyncio.run(queue.receive_leased("images", 1))
        queue.expire_leases()
        second = asyncio.run(queue.receive_leased("images", 1))

        assert second[0].message_id == first[0].message_id
        assert second[0].delivery_count == 2
        assert second[0].lease_handle != first[0].lease_handle

    def test_receive_from_missing_queue_raises(self):
        with pytest.raises(ServiceError, match="does not exist"):
            asyncio.run(FakeQueueService().receive_leased("images", 1))

    def test_peek_does_not_lease(self):
        queue = FakeQueueService()
        queue.add_message("images", "one")

        peeked = asyncio.run(queue.peek_visible("images", 10))
        leased = asyncio.run(queue.receive_leased("images", 10))

        assert [m.body for m in peeked] == ["one"]
        assert peeked[0].delivery_count == 0
        assert leased[0].delivery_count == 1
        assert queue.mutation_count == 0

    def test_peek_missing_queue_is_empty(self):
        assert asyncio.run(FakeQueueService().peek_visible("images", 10)) == []

    def test_delete_with_valid_lease(self):
        queue = FakeQueueService()
        queue.add_message("images", "one")
        message = asyncio.run(queue.receive_leased("images", 1))[0]

        asyncio.run(queue.delete_leased("images", message.lease_handle))

        assert queue.bodies("images") == []

    def test_delete_with_stale_lease_fails(self):
        """Test that a lease handle stops working once the lease expired."""
        queue = FakeQueueService()
        queue.add_message("images", "one")
        message = asyncio.run(queue.receive_leased("images", 1))[0]
        queue.expire_leases()

        with pytest.raises(ServiceError, match="not valid"):
            asyncio.run(queue.delete_leased("images", message.lease_handle))
        assert queue.bodies("images") == ["one"]

    def test_failure_mode(self):
        queue = FakeQueueService()
        queue.set_failure_mode("send")

        with pytest.raises(ServiceError, match="Simulated queue failure"):
            asyncio.run(queue.send("images", "x"))


class TestFakeLogger:
    """Tests for FakeLogger."""

    def test_records_levels_and_messages(self):
        logger = FakeLogger()

        logger.info("Info message")
        logger.warning("Warning message")
        logger.error("Error message", exc_info=True)

        assert logger.messages() == ["Info message", "Warning message", "Error message"]
        assert logger.messages("ERROR") == ["Error message"]
        assert logger.get_logs("ERROR")[0]["exc_info"] is True

    def test_clear_logs(self):
        logger = FakeLogger()
        logger.debug("x")
        logger.clear_logs()
        assert logger.logs == []


class TestCreateTestImage:
    """Tests for image helpers."""

    def test_create_test_image(self):
        image = Image.open(io.BytesIO(create_test_image(40, 20, format="JPEG")))
        assert image.size == (40, 20)
        assert image.format == "JPEG"

    def test_pad_png_keeps_image_decodable(self):
        padded = pad_png(create_test_image(10, 10), 2000)

        assert len(padded) == 2000
        assert Image.open(io.BytesIO(padded)).size == (10, 10)

    def test_pad_png_refuses_to_shrink(self):
        with pytest.raises(ValueError):
            pad_png(create_test_image(10, 10), 10)
