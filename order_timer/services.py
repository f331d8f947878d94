"""Service layer owning the work order collection."""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Sequence

from .domain import WorkOrder, start_of_day
from .engine import EditableField, OrderCommand, TimeAccountingEngine
from .repository import (
    DuplicateRecordError,
    OrderedRepository,
    RecordNotFoundError,
    StorageError,
)
from .storage import (
    ORDERS_KEY,
    SAVED_NUMBERS_KEY,
    KeyValueStore,
    decode_numbers,
    decode_orders,
    encode_numbers,
    encode_orders,
)

logger = logging.getLogger(__name__)

DEFAULT_DAY_FORMAT = "%d.%m.%Y"

OrdersListener = Callable[[Sequence[WorkOrder]], None]


class SavedNumberList:
    """Previously used order numbers offered when creating a new order."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store
        self._numbers: List[str] = []
        self.load()

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._numbers))

    def __len__(self) -> int:
        return len(self._numbers)

    def list(self) -> List[str]:
        return list(self._numbers)

    def load(self) -> None:
        try:
            blob = self._store.get(SAVED_NUMBERS_KEY)
        except StorageError:
            logger.exception("Could not read saved order numbers")
            blob = None
        if blob is None:
            self._numbers = []
            return
        try:
            self._numbers = decode_numbers(blob)
        except ValueError:
            logger.warning("Discarding unreadable saved order numbers")
            self._numbers = []

    def persist(self) -> None:
        try:
            self._store.set(SAVED_NUMBERS_KEY, encode_numbers(self._numbers))
        except StorageError:
            logger.exception("Could not persist saved order numbers")

    def add(self, number: str) -> bool:
        """Insert ``number`` at the front unless it is blank or already known."""

        trimmed = number.strip()
        if not trimmed:
            return False
        folded = trimmed.casefold()
        if any(existing.casefold() == folded for existing in self._numbers):
            return False
        self._numbers.insert(0, trimmed)
        self.persist()
        return True

    def remove_at(self, indices: Iterable[int]) -> List[str]:
        removed: List[str] = []
        for index in sorted(set(indices), reverse=True):
            if 0 <= index < len(self._numbers):
                removed.append(self._numbers.pop(index))
        if removed:
            self.persist()
        return removed


class OrderCollection:
    """Authoritative, persisted list of work orders.

    Mutations are applied one at a time, written through to the store and
    announced to subscribers. Lookups by unknown identity are soft failures
    that return ``None``.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        engine: Optional[TimeAccountingEngine] = None,
        clock: Optional[Callable[[], datetime]] = None,
        autoload: bool = True,
    ) -> None:
        self._store = store
        self.engine = engine or TimeAccountingEngine()
        self._clock = clock or datetime.now
        self._orders: OrderedRepository[WorkOrder] = OrderedRepository()
        self._listeners: List[OrdersListener] = []
        self._collective_pause_ids: List[str] = []
        self._lock = threading.RLock()
        if autoload:
            self.load()

    def __contains__(self, order_id: object) -> bool:
        with self._lock:
            return order_id in self._orders

    def __len__(self) -> int:
        with self._lock:
            return len(self._orders)

    def __iter__(self) -> Iterator[WorkOrder]:
        return iter(self.list())

    def now(self) -> datetime:
        return self._clock()

    def _now(self, now: Optional[datetime]) -> datetime:
        return now if now is not None else self._clock()

    # ------------------------------------------------------------------
    # Persistence and notifications
    # ------------------------------------------------------------------
    def load(self) -> None:
        with self._lock:
            try:
                blob = self._store.get(ORDERS_KEY)
            except StorageError:
                logger.exception("Could not read stored orders")
                blob = None
            orders: List[WorkOrder] = []
            if blob is not None:
                try:
                    orders = decode_orders(blob)
                except ValueError:
                    logger.warning("Stored orders are corrupt; starting empty")
                    orders = []
            try:
                self._orders.reset(orders)
            except DuplicateRecordError:
                logger.warning("Stored orders contain duplicate ids; starting empty")
                self._orders.reset([])
            logger.debug("Loaded %d orders", len(self._orders))

    def persist(self) -> None:
        """Write the whole collection; failures leave memory authoritative."""

        with self._lock:
            try:
                self._store.set(ORDERS_KEY, encode_orders(self._orders.list()))
            except StorageError:
                logger.exception("Could not persist %d orders", len(self._orders))

    def subscribe(self, listener: OrdersListener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: OrdersListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _commit(self) -> None:
        self.persist()
        orders = self._orders.list()
        for listener in list(self._listeners):
            try:
                listener(orders)
            except Exception:
                logger.exception("Order listener %r failed", listener)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def list(self) -> List[WorkOrder]:
        with self._lock:
            return self._orders.list()

    def get(self, order_id: str) -> Optional[WorkOrder]:
        with self._lock:
            try:
                return self._orders.get(order_id)
            except RecordNotFoundError:
                return None

    def has_live_activity(self) -> bool:
        """True while any order accrues time and displays need refreshing."""

        return any(
            order.is_running or (order.has_open_pause and not order.is_finished)
            for order in self.list()
        )

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------
    def add(self, number: str, now: Optional[datetime] = None) -> WorkOrder:
        with self._lock:
            order = self.engine.start(number, self._now(now))
            self._orders.prepend(order)
            logger.info("Started order %s (%s)", order.number, order.id)
            self._commit()
            return order

    def _update(
        self, order_id: str, transition: Callable[[WorkOrder], WorkOrder], action: str
    ) -> Optional[WorkOrder]:
        with self._lock:
            try:
                current = self._orders.get(order_id)
            except RecordNotFoundError:
                logger.info("Ignoring %s for unknown order %s", action, order_id)
                return None
            updated = transition(current)
            if updated is current:
                logger.debug("%s rejected for order %s", action, order_id)
                return current
            self._orders.replace(updated)
            self._commit()
            return updated

    def apply(
        self, order_id: str, command: OrderCommand | str, now: Optional[datetime] = None
    ) -> Optional[WorkOrder]:
        command = OrderCommand(command)
        moment = self._now(now)
        return self._update(
            order_id,
            lambda order: self.engine.apply(order, command, moment),
            command.name.lower(),
        )

    def toggle_pause(self, order_id: str, now: Optional[datetime] = None) -> Optional[WorkOrder]:
        return self.apply(order_id, OrderCommand.TOGGLE_PAUSE, now)

    def toggle_setup(self, order_id: str, now: Optional[datetime] = None) -> Optional[WorkOrder]:
        return self.apply(order_id, OrderCommand.TOGGLE_SETUP, now)

    def finish(self, order_id: str, now: Optional[datetime] = None) -> Optional[WorkOrder]:
        return self.apply(order_id, OrderCommand.FINISH, now)

    def set_editable(
        self, order_id: str, flag: Optional[bool] = None
    ) -> Optional[WorkOrder]:
        return self._update(
            order_id,
            lambda order: self.engine.set_editable(order, flag),
            "set_editable",
        )

    def edit_field(
        self, order_id: str, field_name: EditableField | str, value: Any
    ) -> Optional[WorkOrder]:
        return self._update(
            order_id,
            lambda order: self.engine.edit_field(order, field_name, value),
            f"edit {field_name}",
        )

    def remove(self, order_id: str) -> Optional[WorkOrder]:
        with self._lock:
            try:
                removed = self._orders.remove(order_id)
            except RecordNotFoundError:
                logger.info("Ignoring removal of unknown order %s", order_id)
                return None
            self._commit()
            return removed

    def remove_at(self, indices: Iterable[int]) -> List[WorkOrder]:
        with self._lock:
            removed = self._orders.remove_at(indices)
            if removed:
                self._commit()
            return removed

    def pause_all(self, now: Optional[datetime] = None) -> List[str]:
        """Pause every running order and remember them for :meth:`resume_all`."""

        with self._lock:
            current = self._orders.list()
            updated = self.engine.pause_all(current, self._now(now))
            paused = [new.id for old, new in zip(current, updated) if new is not old]
            for order in updated:
                self._orders.replace(order)
            self._collective_pause_ids = paused
            if paused:
                logger.info("Collective pause for %d orders", len(paused))
                self._commit()
            return list(paused)

    def resume_all(self, now: Optional[datetime] = None) -> List[str]:
        with self._lock:
            current = self._orders.list()
            updated = self.engine.resume_all(
                current, self._collective_pause_ids, self._now(now)
            )
            resumed = [new.id for old, new in zip(current, updated) if new is not old]
            for order in updated:
                self._orders.replace(order)
            self._collective_pause_ids = []
            if resumed:
                self._commit()
            return resumed

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------
    def group_by_day(self, day_format: str = DEFAULT_DAY_FORMAT) -> Dict[str, List[WorkOrder]]:
        grouped: Dict[str, List[WorkOrder]] = defaultdict(list)
        for order in self.list():
            grouped[start_of_day(order.date).strftime(day_format)].append(order)
        return dict(grouped)

    def finished_by_year(self) -> Dict[int, List[WorkOrder]]:
        grouped: Dict[int, List[WorkOrder]] = defaultdict(list)
        for order in self.list():
            if order.is_finished:
                grouped[order.date.year].append(order)
        return dict(grouped)

    def finished_by_month(self, year: int) -> Dict[int, List[WorkOrder]]:
        grouped: Dict[int, List[WorkOrder]] = defaultdict(list)
        for order in self.finished_by_year().get(year, []):
            grouped[order.date.month].append(order)
        return dict(grouped)

    def finished_by_day(self, year: int, month: int) -> Dict[datetime, List[WorkOrder]]:
        grouped: Dict[datetime, List[WorkOrder]] = defaultdict(list)
        for order in self.finished_by_month(year).get(month, []):
            grouped[start_of_day(order.date)].append(order)
        return dict(grouped)

    def search_finished(self, query: str) -> List[WorkOrder]:
        """Finished orders whose number contains ``query``, newest day first."""

        needle = query.strip().casefold()
        if not needle:
            return []
        matches = [
            order
            for order in self.list()
            if order.is_finished and needle in order.number.casefold()
        ]
        return sorted(matches, key=lambda order: order.date, reverse=True)


__all__ = ["OrderCollection", "SavedNumberList", "DEFAULT_DAY_FORMAT"]
