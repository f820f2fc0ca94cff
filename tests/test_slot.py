"""
Pending Slot Tests
==================
"""

from screen_relay.stream.slot import PendingSlot


class TestPendingSlot:

    def test_empty_slot(self):
        slot = PendingSlot()
        assert not slot.occupied
        assert slot.take() is None

    def test_put_then_take(self):
        slot = PendingSlot()
        assert slot.put("a") is None
        assert slot.occupied
        assert slot.take() == "a"
        assert not slot.occupied

    def test_newer_item_overwrites(self):
        slot = PendingSlot()
        slot.put("a")
        assert slot.put("b") == "a"
        assert slot.put("c") == "b"
        assert slot.take() == "c"
        assert slot.take() is None
        assert slot.dropped_count == 2
        assert slot.total_put == 3

    def test_clear_does_not_count_as_drop(self):
        slot = PendingSlot()
        slot.put("a")
        assert slot.clear() is True
        assert slot.clear() is False
        assert slot.dropped_count == 0

    def test_metrics(self):
        slot = PendingSlot()
        slot.put(1)
        slot.put(2)
        assert slot.metrics() == {"occupied": True, "dropped_count": 1, "total_put": 2}
