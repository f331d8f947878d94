import json
from uuid import uuid4

import pytest

from conftest import at
from order_timer.sync import (
    InMemoryTransport,
    LightweightOrder,
    NullTransport,
    SyncBridge,
    decode_command,
)


class BrokenTransport(InMemoryTransport):
    def send_snapshot(self, payload):
        raise ConnectionError("companion unreachable")


@pytest.fixture
def transport():
    return InMemoryTransport()


@pytest.fixture
def bridge(collection, transport):
    bridge = SyncBridge(collection, transport)
    bridge.attach()
    return bridge


def test_attach_sends_initial_snapshot(collection, transport):
    collection.add("A-1", now=at(0))
    SyncBridge(collection, transport).attach()
    assert len(transport.sent) == 1
    assert [entry["number"] for entry in transport.last_snapshot] == ["A-1"]


def test_attach_twice_subscribes_once(collection, transport):
    bridge = SyncBridge(collection, transport)
    bridge.attach()
    bridge.attach()
    collection.add("A-1", now=at(0))
    assert len(transport.sent) == 2


def test_snapshot_contains_only_unfinished_orders(collection, bridge, transport):
    done = collection.add("DONE", now=at(0))
    running = collection.add("RUN", now=at(0))
    collection.toggle_setup(running.id, now=at(10))
    collection.finish(done.id, now=at(20))

    assert transport.last_snapshot == [
        {
            "id": running.id,
            "number": "RUN",
            "isRunning": True,
            "isInSetup": True,
            "isFinished": False,
            "date": "2026-03-02T00:00:00",
        }
    ]
    assert bridge.snapshot() == [LightweightOrder.from_order(collection.get(running.id))]


def test_every_mutation_resends_snapshot(collection, bridge, transport):
    order = collection.add("A-1", now=at(0))
    collection.toggle_pause(order.id, now=at(5))
    collection.remove(order.id)
    assert len(transport.sent) == 4
    assert transport.last_snapshot == []


def test_remote_add_and_transitions(collection, bridge, transport):
    added = bridge.apply_remote_command({"action": "add", "number": "W-1"}, now=at(0))
    assert collection.get(added.id).number == "W-1"

    paused = bridge.apply_remote_command(
        {"action": "pauseOrResume", "id": added.id}, now=at(10)
    )
    assert not paused.is_running
    resumed = transport.deliver({"action": "pauseOrResume", "id": added.id})
    assert resumed is None
    assert collection.get(added.id).is_running

    in_setup = bridge.apply_remote_command({"action": "toggleRuest", "id": added.id})
    assert in_setup.is_in_setup
    ended = bridge.apply_remote_command(
        json.dumps({"action": "end", "id": added.id}).encode("utf-8")
    )
    assert ended.is_finished
    assert transport.last_snapshot == []


def test_remote_add_accepts_legacy_number_key(collection, bridge):
    added = bridge.apply_remote_command({"action": "add", "nummer": "W-2"}, now=at(0))
    assert added.number == "W-2"


@pytest.mark.parametrize(
    "message",
    [
        {"action": "dance", "id": "x"},
        {"id": "8d0b7c52-3a4e-4a53-9a4f-2a6f2e0f1b11"},
        {"action": "add"},
        {"action": "add", "number": 42},
        {"action": "end"},
        {"action": "end", "id": "not-a-uuid"},
        {"action": "pauseOrResume", "id": 17},
        {"action": "toggleRuest", "id": str(uuid4())},
        b"\xff\xfe",
        "not json",
        "[1, 2]",
    ],
)
def test_malformed_or_unknown_commands_are_ignored(collection, bridge, message):
    collection.add("A-1", now=at(0))
    before = collection.list()
    assert bridge.apply_remote_command(message) is None
    assert collection.list() == before


def test_transport_failure_does_not_block_mutation(collection):
    SyncBridge(collection, BrokenTransport()).attach()
    order = collection.add("A-1", now=at(0))
    assert collection.get(order.id) == order


def test_detach_stops_snapshots(collection, transport):
    bridge = SyncBridge(collection, transport)
    bridge.attach()
    bridge.detach()
    collection.add("A-1", now=at(0))
    assert len(transport.sent) == 1


def test_null_transport_accepts_snapshots(collection):
    bridge = SyncBridge(collection, NullTransport())
    bridge.attach()
    collection.add("A-1", now=at(0))
    assert len(bridge.snapshot()) == 1


def test_decode_command():
    assert decode_command({"action": "add"}) == {"action": "add"}
    assert decode_command('{"action": "end"}') == {"action": "end"}
    assert decode_command(b"") is None
