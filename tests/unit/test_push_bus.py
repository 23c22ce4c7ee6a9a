"""Unit tests for LocalEventBus."""

import threading
from unittest.mock import MagicMock

from epc.services.push import LocalEventBus


class TestLocalEventBus:
    """Tests for the in-process push channel."""

    def test_emit_reaches_subscribers(self):
        bus = LocalEventBus()
        handler = MagicMock()
        bus.subscribe("job:1:progress", handler)

        delivered = bus.emit("job:1:progress", {"progress": 10})

        assert delivered == 1
        handler.assert_called_once_with({"progress": 10})

    def test_emit_without_payload(self):
        bus = LocalEventBus()
        handler = MagicMock()
        bus.subscribe("job:1:completed", handler)

        bus.emit("job:1:completed")

        handler.assert_called_once_with({})

    def test_events_are_scoped_by_name(self):
        bus = LocalEventBus()
        handler = MagicMock()
        bus.subscribe("job:1:completed", handler)

        assert bus.emit("job:2:completed", {}) == 0
        handler.assert_not_called()

    def test_unsubscribe_is_idempotent(self):
        bus = LocalEventBus()
        handler = MagicMock()
        unsubscribe = bus.subscribe("job:1:failed", handler)

        unsubscribe()
        unsubscribe()

        assert bus.subscriber_count() == 0
        assert bus.emit("job:1:failed", {}) == 0

    def test_subscriber_count(self):
        bus = LocalEventBus()
        bus.subscribe("a", MagicMock())
        bus.subscribe("a", MagicMock())
        bus.subscribe("b", MagicMock())

        assert bus.subscriber_count("a") == 2
        assert bus.subscriber_count("missing") == 0
        assert bus.subscriber_count() == 3

    def test_disconnected_bus_drops_events(self):
        bus = LocalEventBus()
        handler = MagicMock()
        bus.subscribe("a", handler)

        bus.disconnect()

        assert bus.connected is False
        assert bus.emit("a", {}) == 0
        assert bus.subscriber_count() == 0
        handler.assert_not_called()

    def test_reconnect(self):
        bus = LocalEventBus(connected=False)
        bus.connect()
        assert bus.connected is True

    def test_handlers_get_independent_payload_copies(self):
        bus = LocalEventBus()
        received = []

        def mutate(payload):
            payload["seen"] = True
            received.append(payload)

        bus.subscribe("a", mutate)
        bus.subscribe("a", received.append)
        original = {"progress": 5}

        bus.emit("a", original)

        assert original == {"progress": 5}
        assert received[1] == {"progress": 5}

    def test_emit_from_other_thread(self):
        bus = LocalEventBus()
        handler = MagicMock()
        bus.subscribe("a", handler)

        thread = threading.Thread(target=bus.emit, args=("a", {"progress": 1}))
        thread.start()
        thread.join()

        handler.assert_called_once_with({"progress": 1})
