"""
Tests for hubsync/remote_store.py -- Notification and InMemoryRemoteStore.

Validates:
    - query filters, sort and limit
    - save create/update and delete, with notifications
    - Subscriptions and simulated delivery via emit
"""

import pytest

from hubsync.exceptions import TransportError
from hubsync.models import EntityKind
from hubsync.remote_store import InMemoryRemoteStore, Notification, PatchOp, pointer


class TestNotification:
    """Tests for the Notification value object."""

    def test_of_parses_names(self):
        """Kind and op accept plain strings."""
        n = Notification.of("Video", "enter", {"objectId": "V1"})
        assert n.kind is EntityKind.VIDEO
        assert n.op is PatchOp.ENTER
        assert n.entity_id == "V1"
        assert n.event_name == "videos:create"

    def test_entity_id_missing(self):
        """A payload without an id has no entity_id."""
        assert Notification.of("tags", "delete", {"name": "x"}).entity_id is None

    def test_pointer(self):
        """pointer() builds the store's reference shape."""
        assert pointer("areas", "A1") == {"__type": "Pointer", "className": "Area", "objectId": "A1"}


class TestInMemoryQuery:
    """Tests for InMemoryRemoteStore.query."""

    def test_seeded_records_returned(self, store):
        """Seeded records come back with their ids."""
        assert [r["objectId"] for r in store.query("areas")] == ["A1", "A2"]

    def test_filter_on_pointer(self, store):
        """A filter value matches a pointer's objectId."""
        assert [r["objectId"] for r in store.query("subcategories", filters={"area": "A1"})] == ["S1"]

    def test_filter_on_list_membership(self, store):
        """A scalar filter matches list fields by membership."""
        assert [r["objectId"] for r in store.query("videos", filters={"categories": "S1"})] == ["V1", "V2"]

    def test_sort_and_limit(self, store):
        """A leading '-' sorts descending; limit truncates."""
        records = store.query("videos", sort="-views", limit=2)
        assert [r["objectId"] for r in records] == ["V1", "V2"]

    def test_results_are_copies(self, store):
        """Mutating a result does not change the store."""
        store.query("areas")[0]["area"] = "Changed"
        assert store.query("areas")[0]["area"] == "Shelter"


class TestInMemoryWrites:
    """Tests for save and delete with notifications."""

    def test_create_assigns_id_and_notifies(self, store):
        """A create returns the stored record and notifies subscribers."""
        received = []
        store.subscribe("tags", received.append)
        record = store.save("tags", None, {"name": "adobe"})

        assert record["objectId"]
        assert record["createdAt"]
        assert received[0].op is PatchOp.CREATE
        assert received[0].payload["name"] == "adobe"

    def test_update_merges_fields(self, store):
        """An update keeps fields it does not mention."""
        record = store.save("areas", "A1", {"description": "Roofs"})
        assert record["area"] == "Shelter"
        assert record["description"] == "Roofs"

    def test_update_unknown_raises(self, store):
        """Updating a missing id is a 404."""
        with pytest.raises(TransportError) as excinfo:
            store.save("areas", "A404", {"area": "x"})
        assert excinfo.value.status == 404

    def test_delete_notifies_with_record(self, store):
        """A delete notification carries the removed record."""
        received = []
        store.subscribe("videos", received.append)
        store.delete("videos", "V1")
        assert received[0].op is PatchOp.DELETE
        assert received[0].payload["title"].startswith("Building")
        assert [r["objectId"] for r in store.query("videos")] == ["V2", "V3", "V4"]

    def test_delete_unknown_raises(self, store):
        """Deleting a missing id is a 404."""
        with pytest.raises(TransportError):
            store.delete("videos", "V404")

    def test_unsubscribe_stops_delivery(self, store):
        """A cancelled subscription receives nothing."""
        received = []
        sub = store.subscribe("tags", received.append)
        assert store.subscriber_count("tags") == 1
        sub.unsubscribe()
        store.save("tags", None, {"name": "adobe"})
        assert received == []
        assert store.subscriber_count("tags") == 0

    def test_emit_does_not_touch_records(self, store):
        """emit delivers a notification without storing anything."""
        received = []
        store.subscribe("areas", received.append)
        store.emit("areas", "create", {"objectId": "A9", "area": "Heritage"})
        assert received[0].entity_id == "A9"
        assert len(store.query("areas")) == 2
