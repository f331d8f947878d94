"""Companion device synchronization.

The bridge projects the order collection into a small snapshot of the
unfinished orders and turns inbound remote commands into collection calls.
Delivery is delegated to an injected transport; failures there never block
local mutations.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Sequence, Union
from uuid import UUID

from .domain import WorkOrder
from .services import OrderCollection

logger = logging.getLogger(__name__)

CommandCallback = Callable[[Mapping[str, Any]], None]
RawCommand = Union[Mapping[str, Any], bytes, str]


class RemoteAction(str, Enum):
    """Actions a companion device may request."""

    ADD = "add"
    PAUSE_OR_RESUME = "pauseOrResume"
    TOGGLE_SETUP = "toggleRuest"
    END = "end"


@dataclass(frozen=True, slots=True)
class LightweightOrder:
    """Phase-only projection of an unfinished order."""

    id: str
    number: str
    is_running: bool
    is_in_setup: bool
    is_finished: bool
    date: datetime

    @classmethod
    def from_order(cls, order: WorkOrder) -> "LightweightOrder":
        return cls(
            id=order.id,
            number=order.number,
            is_running=order.is_running,
            is_in_setup=order.is_in_setup,
            is_finished=order.is_finished,
            date=order.date,
        )

    def to_payload(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "number": self.number,
            "isRunning": self.is_running,
            "isInSetup": self.is_in_setup,
            "isFinished": self.is_finished,
            "date": self.date.isoformat(),
        }


def build_snapshot(orders: Sequence[WorkOrder]) -> List[LightweightOrder]:
    return [LightweightOrder.from_order(order) for order in orders if not order.is_finished]


def encode_snapshot(snapshot: Sequence[LightweightOrder]) -> bytes:
    return json.dumps([entry.to_payload() for entry in snapshot]).encode("utf-8")


class SyncTransport(Protocol):
    """Channel to the companion device."""

    def send_snapshot(self, payload: bytes) -> None: ...

    def on_command(self, callback: CommandCallback) -> None: ...


class NullTransport:
    """Transport used when no companion device is configured."""

    def send_snapshot(self, payload: bytes) -> None:
        logger.debug("No companion transport; dropping %d byte snapshot", len(payload))

    def on_command(self, callback: CommandCallback) -> None:
        return None


class InMemoryTransport:
    """Transport that keeps sent snapshots and lets callers inject commands."""

    def __init__(self) -> None:
        self.sent: List[bytes] = []
        self._callbacks: List[CommandCallback] = []

    @property
    def last_snapshot(self) -> Optional[List[Dict[str, Any]]]:
        if not self.sent:
            return None
        return json.loads(self.sent[-1])

    def send_snapshot(self, payload: bytes) -> None:
        self.sent.append(payload)

    def on_command(self, callback: CommandCallback) -> None:
        self._callbacks.append(callback)

    def deliver(self, message: Mapping[str, Any]) -> None:
        for callback in list(self._callbacks):
            callback(message)


def _parse_identity(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    try:
        return str(UUID(value))
    except ValueError:
        return None


def decode_command(raw: RawCommand) -> Optional[Mapping[str, Any]]:
    """Return the command dictionary, or ``None`` if it cannot be decoded."""

    if isinstance(raw, Mapping):
        return raw
    try:
        payload = json.loads(raw)
    except (TypeError, UnicodeDecodeError, json.JSONDecodeError):
        return None
    return payload if isinstance(payload, dict) else None


class SyncBridge:
    """Keeps a companion device in step with an :class:`OrderCollection`."""

    def __init__(self, collection: OrderCollection, transport: SyncTransport) -> None:
        self.collection = collection
        self.transport = transport
        self._attached = False

    def attach(self) -> None:
        """Subscribe to collection changes, accept commands, send a first snapshot."""

        if self._attached:
            return
        self.collection.subscribe(self._on_orders_changed)
        self.transport.on_command(self.apply_remote_command)
        self._attached = True
        self.publish()

    def detach(self) -> None:
        if self._attached:
            self.collection.unsubscribe(self._on_orders_changed)
            self._attached = False

    def snapshot(self) -> List[LightweightOrder]:
        return build_snapshot(self.collection.list())

    def publish(self) -> None:
        self._send(self.snapshot())

    def _on_orders_changed(self, orders: Sequence[WorkOrder]) -> None:
        self._send(build_snapshot(orders))

    def _send(self, snapshot: Sequence[LightweightOrder]) -> None:
        try:
            self.transport.send_snapshot(encode_snapshot(snapshot))
        except Exception:
            logger.warning("Snapshot delivery failed", exc_info=True)

    def apply_remote_command(
        self, message: RawCommand, now: Optional[datetime] = None
    ) -> Optional[WorkOrder]:
        """Apply a companion command; malformed or unknown ones are ignored."""

        command = decode_command(message)
        if command is None:
            logger.debug("Ignoring undecodable remote command")
            return None
        try:
            action = RemoteAction(command.get("action"))
        except ValueError:
            logger.debug("Ignoring unknown remote action %r", command.get("action"))
            return None

        if action is RemoteAction.ADD:
            number = command.get("number", command.get("nummer"))
            if not isinstance(number, str):
                logger.debug("Ignoring add command without number")
                return None
            return self.collection.add(number, now)

        order_id = _parse_identity(command.get("id"))
        if order_id is None:
            logger.debug("Ignoring %s command with invalid id", action.value)
            return None
        if action is RemoteAction.PAUSE_OR_RESUME:
            return self.collection.toggle_pause(order_id, now)
        if action is RemoteAction.TOGGLE_SETUP:
            return self.collection.toggle_setup(order_id, now)
        return self.collection.finish(order_id, now)


__all__ = [
    "RemoteAction",
    "LightweightOrder",
    "SyncTransport",
    "NullTransport",
    "InMemoryTransport",
    "SyncBridge",
    "build_snapshot",
    "encode_snapshot",
    "decode_command",
]
