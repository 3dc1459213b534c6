"""Unit tests for authoritative replica mutations, hierarchy and teardown."""

import json
from unittest.mock import MagicMock

import pytest

from common.exceptions import MalformedReplicaParamsError, ReplicaHierarchyError
from common.protocol import (
    ReplicaCreatedMessage,
    ReplicaDestroyedMessage,
    ReplicaEventMessage,
    ReplicaOperationMessage,
)
from common.types import OperationKind


def sent_messages(transport, message_type=None):
    """Return (target, message) pairs recorded on a mock transport."""
    pairs = [call.args for call in transport.send.call_args_list]
    if message_type is None:
        return pairs
    return [(target, message) for target, message in pairs if isinstance(message, message_type)]


class TestCreation:
    """Test replica construction."""

    def test_create_announces_replica(self, mock_server, mock_transport):
        replica = mock_server.create(class_tag="Player", data={"hp": 100}, tags={"team": "red"})

        created = sent_messages(mock_transport, ReplicaCreatedMessage)
        assert len(created) == 1
        target, message = created[0]
        assert target == "All"
        assert message.replica_id == replica.id
        assert message.class_tag == "Player"
        assert message.tags == {"team": "red"}
        assert mock_server.get(replica.id) is replica

    def test_tags_are_read_only(self, mock_server):
        replica = mock_server.create(class_tag="Player", data={}, tags={"team": "red"})

        with pytest.raises(TypeError):
            replica.tags["team"] = "blue"

    def test_missing_class_tag_fails_fast(self, mock_server, mock_transport):
        with pytest.raises(MalformedReplicaParamsError):
            mock_server.create(data={"hp": 100})

        mock_transport.send.assert_not_called()
        assert len(mock_server.store) == 0

    def test_missing_data_fails_fast(self, mock_server):
        with pytest.raises(MalformedReplicaParamsError):
            mock_server.create(class_tag="Player")

    def test_invalid_replication_fails_fast(self, mock_server):
        with pytest.raises(MalformedReplicaParamsError):
            mock_server.create(class_tag="Player", data={}, replication="Some")

    def test_selective_replication(self, mock_server, mock_transport):
        replica = mock_server.create(class_tag="Player", data={}, replication={"alice"})

        assert replica.replication == frozenset({"alice"})
        assert replica.replicates_to("alice") is True
        assert replica.replicates_to("bob") is False
        target, _ = sent_messages(mock_transport, ReplicaCreatedMessage)[0]
        assert target == frozenset({"alice"})

    def test_on_class_created_replays_existing_replicas(self, mock_server):
        first = mock_server.create(class_tag="Player", data={})
        second = mock_server.create(class_tag="Player", data={})
        mock_server.create(class_tag="Npc", data={})

        received = []
        mock_server.on_class_created("Player", received.append)
        third = mock_server.create(class_tag="Player", data={})

        assert received == [first, second, third]


class TestMutations:
    """Test the mutation protocol and listener dispatch."""

    def test_hp_and_items_scenario(self, mock_server):
        replica = mock_server.create(class_tag="Player", data={"hp": 100, "items": []})
        on_change = MagicMock()
        on_insert = MagicMock()
        replica.on_change("hp", on_change)
        replica.on_array_insert("items", on_insert)

        replica.set_value("hp", 80)
        on_change.assert_called_once_with(80, 100)

        assert replica.array_insert("items", "sword") == 1
        on_insert.assert_called_once_with(1, "sword")

        assert replica.array_remove("items", 1) == "sword"
        assert replica.get_value("items") == []

    def test_set_value_then_get_value(self, mock_server):
        replica = mock_server.create(class_tag="Player", data={"stats": {"hp": 100}})

        replica.set_value("stats.hp", 55)

        assert replica.get_value("stats.hp") == 55

    def test_new_key_fires_before_change(self, mock_server):
        replica = mock_server.create(class_tag="Player", data={"stats": {}})
        calls = []
        replica.on_new_key("stats", lambda value, key: calls.append(("new_key", key, value)))
        replica.on_change("stats.mp", lambda new, old: calls.append(("change", new, old)))

        replica.set_value("stats.mp", 30)

        assert calls == [("new_key", "mp", 30), ("change", 30, None)]

    def test_new_key_at_root_uses_empty_path(self, mock_server):
        replica = mock_server.create(class_tag="Player", data={})
        listener = MagicMock()
        replica.on_new_key("", listener)

        replica.set_value("level", 1)

        listener.assert_called_once_with(1, "level")

    def test_falsy_existing_value_is_not_a_new_key(self, mock_server):
        replica = mock_server.create(class_tag="Player", data={"alive": False, "score": 0})
        listener = MagicMock()
        replica.on_new_key("", listener)

        replica.set_value("alive", True)
        replica.set_value("score", 10)

        listener.assert_not_called()

    def test_missing_intermediate_is_inert(self, mock_server, mock_transport):
        replica = mock_server.create(class_tag="Player", data={"hp": 100})
        raw = MagicMock()
        replica.on_raw(raw)
        mock_transport.send.reset_mock()

        replica.set_value("stats.hp", 10)

        assert replica.data == {"hp": 100}
        raw.assert_not_called()
        mock_transport.send.assert_not_called()

    def test_non_ascii_digit_index_is_inert(self, mock_server, mock_transport):
        replica = mock_server.create(class_tag="Player", data={"items": ["a", "b"]})
        mock_transport.send.reset_mock()

        replica.set_value("items.\u00b2", "z")

        assert replica.array_set("items", "\u00b2", "z") is None
        assert replica.array_remove("items", "\u00b2") is None
        assert replica.data == {"items": ["a", "b"]}
        mock_transport.send.assert_not_called()

    def test_set_values(self, mock_server):
        replica = mock_server.create(class_tag="Player", data={"stats": {"hp": 100}})
        new_keys = MagicMock()
        hp_change = MagicMock()
        replica.on_new_key("stats", new_keys)
        replica.on_change("stats.hp", hp_change)

        replica.set_values("stats", {"hp": 90, "mp": 20})

        assert replica.data == {"stats": {"hp": 90, "mp": 20}}
        new_keys.assert_called_once_with(20, "mp")
        hp_change.assert_called_once_with(90, 100)

    def test_set_values_requires_map(self, mock_server):
        replica = mock_server.create(class_tag="Player", data={"items": []})

        replica.set_values("items", {"a": 1})

        assert replica.data == {"items": []}

    def test_array_insert_into_missing_container_returns_zero(self, mock_server):
        replica = mock_server.create(class_tag="Player", data={})

        assert replica.array_insert("items", "sword") == 0

    def test_array_set(self, mock_server):
        replica = mock_server.create(class_tag="Player", data={"items": ["a", "b"]})
        listener = MagicMock()
        replica.on_array_set("items", listener)

        assert replica.array_set("items", 2, "c") == 2
        assert replica.data["items"] == ["a", "c"]
        listener.assert_called_once_with(2, "c")

    def test_array_set_out_of_range_is_noop(self, mock_server):
        replica = mock_server.create(class_tag="Player", data={"items": ["a"]})
        listener = MagicMock()
        replica.on_array_set("items", listener)

        assert replica.array_set("items", 2, "b") is None
        assert replica.data["items"] == ["a"]
        listener.assert_not_called()

    def test_array_remove_shifts_later_values(self, mock_server):
        replica = mock_server.create(class_tag="Player", data={"items": ["a", "b", "c"]})
        listener = MagicMock()
        replica.on_array_remove("items", listener)

        assert replica.array_remove("items", 2) == "b"
        assert replica.data["items"] == ["a", "c"]
        listener.assert_called_once_with(2, "b")

    def test_array_remove_out_of_range_returns_none(self, mock_server):
        replica = mock_server.create(class_tag="Player", data={"items": ["a"]})

        assert replica.array_remove("items", 5) is None
        assert replica.data["items"] == ["a"]

    def test_operations_are_emitted_in_order_with_sequence(self, mock_server, mock_transport):
        replica = mock_server.create(class_tag="Player", data={"hp": 100, "items": []})
        mock_transport.send.reset_mock()

        replica.set_value("hp", 80)
        replica.set_value("mp", 10)
        replica.array_insert("items", "sword")

        operations = [message for _, message in sent_messages(mock_transport, ReplicaOperationMessage)]
        assert [(op.sequence, op.operation, op.path, op.args) for op in operations] == [
            (1, OperationKind.CHANGE, "hp", [80]),
            (2, OperationKind.NEW_KEY, "", [10, "mp"]),
            (3, OperationKind.CHANGE, "mp", [10]),
            (4, OperationKind.ARRAY_INSERT, "items", ["sword"]),
        ]
        assert replica.sequence == 4

    def test_on_key_changed_matches_nested_paths(self, mock_server):
        replica = mock_server.create(class_tag="Player", data={"stats": {"hp": 100}, "statsx": 1})
        listener = MagicMock()
        replica.on_key_changed("stats", listener)

        replica.set_value("stats.hp", 50)
        replica.set_value("statsx", 2)

        listener.assert_called_once_with(50, 100)

    def test_disconnected_listener_stops_receiving(self, mock_server):
        replica = mock_server.create(class_tag="Player", data={"hp": 100})
        listener = MagicMock()
        connection = replica.on_change("hp", listener)

        connection.disconnect()
        replica.set_value("hp", 1)

        listener.assert_not_called()

    def test_identify(self, mock_server):
        replica = mock_server.create(class_tag="Player", data={"hp": 100})

        description = json.loads(replica.identify())

        assert description["replica_id"] == replica.id
        assert description["class_tag"] == "Player"
        assert description["data"] == {"hp": 100}


class TestHierarchy:
    """Test parenting and child batching."""

    def test_set_parent_attaches_on_flush(self, mock_server):
        parent = mock_server.create(class_tag="World", data={})
        child = mock_server.create(class_tag="Player", data={})
        on_child = MagicMock()
        parent.on_child_added(on_child)

        child.set_parent(parent)

        assert child.parent is parent
        assert parent.children == ()
        on_child.assert_not_called()

        mock_server.batcher.flush()

        assert parent.children == (child,)
        on_child.assert_called_once_with(child)

    def test_cycle_is_rejected(self, mock_server):
        grandparent = mock_server.create(class_tag="World", data={})
        parent = mock_server.create(class_tag="Zone", data={})
        child = mock_server.create(class_tag="Player", data={})
        parent.set_parent(grandparent)
        child.set_parent(parent)

        with pytest.raises(ReplicaHierarchyError):
            grandparent.set_parent(child)

        with pytest.raises(ReplicaHierarchyError):
            child.set_parent(child)

    def test_set_parent_none_is_ignored(self, mock_server):
        child = mock_server.create(class_tag="Player", data={})

        child.set_parent(None)

        assert child.parent_id is None

    def test_reparenting_moves_child(self, mock_server):
        first = mock_server.create(class_tag="Zone", data={})
        second = mock_server.create(class_tag="Zone", data={})
        child = mock_server.create(class_tag="Player", data={})

        child.set_parent(first)
        mock_server.batcher.flush()
        child.set_parent(second)
        mock_server.batcher.flush()

        assert first.children == ()
        assert second.children == (child,)

        first.destroy()
        assert child.destroyed is False

    def test_destroying_child_detaches_from_parent(self, mock_server):
        parent = mock_server.create(class_tag="World", data={})
        child = mock_server.create(class_tag="Player", data={})
        child.set_parent(parent)
        mock_server.batcher.flush()

        child.destroy()

        assert parent.child_ids == []
        assert parent.destroyed is False


class TestTeardown:
    """Test destroy, cascade and cleanup tasks."""

    def test_destroy_is_idempotent(self, mock_server):
        replica = mock_server.create(class_tag="Player", data={})
        task = MagicMock()
        replica.add_cleanup_task(task)

        replica.destroy()
        replica.destroy()

        task.destroy.assert_called_once()
        assert mock_server.batcher.pending_destructions == [(replica.id, "All")]

    def test_destroy_purges_listeners_and_store(self, mock_server):
        replica = mock_server.create(class_tag="Player", data={"hp": 100})
        replica.on_change("hp", MagicMock())

        replica.destroy()

        assert mock_server.get(replica.id) is None
        assert mock_server.listeners.listener_count(replica.id) == 0

    def test_destroyed_replica_is_inert(self, mock_server, mock_transport):
        replica = mock_server.create(class_tag="Player", data={"hp": 100})
        replica.destroy()
        mock_transport.send.reset_mock()

        replica.set_value("hp", 1)
        connection = replica.on_change("hp", MagicMock())

        assert replica.data == {"hp": 100}
        assert connection.connected is False
        mock_transport.send.assert_not_called()

    def test_cascade_destroys_children(self, mock_server):
        parent = mock_server.create(class_tag="World", data={})
        child = mock_server.create(class_tag="Zone", data={})
        grandchild = mock_server.create(class_tag="Player", data={})
        child.set_parent(parent)
        grandchild.set_parent(child)
        mock_server.batcher.flush()

        parent.destroy()

        assert child.destroyed is True
        assert grandchild.destroyed is True
        assert len(mock_server.store) == 0
        assert [replica_id for replica_id, _ in mock_server.batcher.pending_destructions] == [
            parent.id, child.id, grandchild.id
        ]

    def test_cascade_before_flush(self, mock_server, mock_transport):
        parent = mock_server.create(class_tag="World", data={})
        child = mock_server.create(class_tag="Player", data={})
        child.set_parent(parent)

        parent.destroy()
        mock_transport.send.reset_mock()
        mock_server.batcher.flush()

        assert child.destroyed is True
        destroyed = sent_messages(mock_transport, ReplicaDestroyedMessage)
        assert len(destroyed) == 1
        assert destroyed[0][1].replica_ids == [parent.id, child.id]

    def test_removed_cleanup_task_does_not_run(self, mock_server):
        replica = mock_server.create(class_tag="Player", data={})
        task = MagicMock()
        replica.add_cleanup_task(task)

        assert replica.remove_cleanup_task(task) is True
        replica.destroy()

        task.destroy.assert_not_called()

    def test_destroy_for_notifies_subscribers_immediately(self, mock_server, mock_transport):
        replica = mock_server.create(class_tag="Player", data={})
        mock_transport.send.reset_mock()

        replica.destroy_for("alice", "bob")

        destroyed = sent_messages(mock_transport, ReplicaDestroyedMessage)
        assert destroyed == [(frozenset({"alice", "bob"}), ReplicaDestroyedMessage(replica_ids=[replica.id]))]
        assert replica.destroyed is True

    def test_destroy_for_without_subscribers_is_noop(self, mock_server):
        replica = mock_server.create(class_tag="Player", data={})

        replica.destroy_for()
        replica.destroy_for(42)

        assert replica.destroyed is False


class TestServerEvents:
    """Test custom events on the authoritative side."""

    def test_fire_client_targets_one_subscriber(self, mock_server, mock_transport):
        replica = mock_server.create(class_tag="Player", data={})
        mock_transport.send.reset_mock()

        replica.fire_client("alice", "hello", 1)

        assert sent_messages(mock_transport) == [
            (frozenset({"alice"}), ReplicaEventMessage(replica_id=replica.id, args=["hello", 1]))
        ]

    def test_fire_client_outside_replication_is_ignored(self, mock_server, mock_transport):
        replica = mock_server.create(class_tag="Player", data={}, replication={"alice"})
        mock_transport.send.reset_mock()

        replica.fire_client("bob", "hello")

        mock_transport.send.assert_not_called()

    def test_fire_all_clients_uses_replication(self, mock_server, mock_transport):
        replica = mock_server.create(class_tag="Player", data={}, replication={"alice"})
        mock_transport.send.reset_mock()

        replica.fire_all_clients("hello")

        target, message = sent_messages(mock_transport)[0]
        assert target == frozenset({"alice"})
        assert message.args == ["hello"]

    def test_server_event_from_subscriber(self, mock_server):
        replica = mock_server.create(class_tag="Player", data={}, replication={"alice"})
        listener = MagicMock()
        replica.on_server_event(listener)

        mock_server._on_event("alice", ReplicaEventMessage(replica_id=replica.id, args=["jump"]))
        mock_server._on_event("bob", ReplicaEventMessage(replica_id=replica.id, args=["jump"]))

        listener.assert_called_once_with("alice", "jump")
