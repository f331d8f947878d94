"""Demonstration script for the work order time tracker."""

from __future__ import annotations

from datetime import datetime, timedelta
from pprint import pprint
from typing import Optional

from . import OrderCollection
from .storage import InMemoryKeyValueStore
from .sync import InMemoryTransport, SyncBridge


def main() -> None:
    shift_start = datetime.now().replace(hour=6, minute=0, second=0, microsecond=0)
    # Remote commands carry no timestamp and read the collection clock.
    clock = [shift_start]

    store = InMemoryKeyValueStore()
    orders = OrderCollection(store, clock=lambda: clock[0])
    transport = InMemoryTransport()
    SyncBridge(orders, transport).attach()

    # Drehteil mit Rüsten zu Beginn
    shaft = orders.add("A-4711 Welle", now=shift_start)
    orders.toggle_setup(shaft.id, now=shift_start + timedelta(minutes=5))
    orders.toggle_setup(shaft.id, now=shift_start + timedelta(minutes=35))

    # Zweiter Auftrag parallel, vom Begleitgerät angelegt
    clock[0] = shift_start + timedelta(hours=1)
    flange = transport_add(transport, "A-4712 Flansch")

    # Frühstückspause für alle laufenden Aufträge
    orders.pause_all(now=shift_start + timedelta(hours=3))
    orders.resume_all(now=shift_start + timedelta(hours=3, minutes=15))

    orders.edit_field(shaft.id, "good_count", 48)
    orders.edit_field(shaft.id, "bad_count", 2)
    orders.finish(shaft.id, now=shift_start + timedelta(hours=6))

    evaluated_at = shift_start + timedelta(hours=6)
    for order in orders:
        print(f"Auftrag {order.number} ({order.phase.value})")
        pprint(order.breakdown(evaluated_at).hours)

    print("Snapshot für das Begleitgerät:")
    pprint(transport.last_snapshot)
    print("Auswertung nach Tagen:")
    pprint({day: [o.number for o in group] for day, group in orders.group_by_day().items()})
    if flange is not None:
        print(f"Offen: {flange}")


def transport_add(transport: InMemoryTransport, number: str) -> Optional[str]:
    transport.deliver({"action": "add", "number": number})
    snapshot = transport.last_snapshot or []
    return next((entry["id"] for entry in snapshot if entry["number"] == number), None)


if __name__ == "__main__":  # pragma: no cover - manual execution
    main()
