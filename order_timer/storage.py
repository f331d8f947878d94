"""Key-value persistence for work orders and saved order numbers."""

from __future__ import annotations

import json
import math
import sqlite3
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence

from .domain import (
    WorkOrder,
    local_naive,
    timing_source_from_hours,
    timing_source_hours,
)
from .repository import StorageError

ORDERS_KEY = "orders"
SAVED_NUMBERS_KEY = "savedOrderNumbers"


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...


class InMemoryKeyValueStore:
    """Dictionary-backed store, mainly for tests and demos."""

    def __init__(self, initial: Optional[Mapping[str, str]] = None) -> None:
        self._values: Dict[str, str] = dict(initial or {})

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value


class SQLiteKeyValueStore:
    """Store implementation that persists blobs inside SQLite."""

    def __init__(self, connection: sqlite3.Connection, table: str = "kv") -> None:
        self._connection = connection
        self._table = table
        self._connection.execute(
            f"CREATE TABLE IF NOT EXISTS {table} ("  # nosec - static table names
            "key TEXT PRIMARY KEY, value TEXT NOT NULL)"
        )
        self._connection.commit()

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, str):  # pragma: no cover - defensive
            return False
        return self.get(key) is not None

    def get(self, key: str) -> Optional[str]:
        try:
            cursor = self._connection.execute(
                f"SELECT value FROM {self._table} WHERE key = ?", (key,)
            )
            row = cursor.fetchone()
        except sqlite3.Error as exc:
            raise StorageError(f"Could not read key {key!r}") from exc
        return None if row is None else row[0]

    def set(self, key: str, value: str) -> None:
        try:
            self._connection.execute(
                f"INSERT INTO {self._table} (key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (key, value),
            )
            self._connection.commit()
        except sqlite3.Error as exc:
            raise StorageError(f"Could not write key {key!r}") from exc


class OrderDatabase:
    """Convenience facade owning the SQLite connection for the app."""

    def __init__(self, path: str) -> None:
        connection = sqlite3.connect(path, check_same_thread=False)
        self._connection = connection
        self.store = SQLiteKeyValueStore(connection)

    def close(self) -> None:
        self._connection.close()

    def __enter__(self) -> "OrderDatabase":
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        traceback: Optional[BaseException],
    ) -> None:
        self.close()


# ----------------------------------------------------------------------
# Serialization
# ----------------------------------------------------------------------
def _encode_timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _decode_timestamp(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"Expected an ISO-8601 timestamp, got {value!r}")
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return local_naive(datetime.fromisoformat(value))


def _decode_optional_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"Expected a number, got {value!r}")
    if not math.isfinite(value):
        raise ValueError(f"Expected a finite number, got {value!r}")
    return float(value)


def _decode_seconds(value: Any) -> float:
    seconds = _decode_optional_float(value)
    return 0.0 if seconds is None else seconds


def order_to_record(order: WorkOrder) -> Dict[str, Any]:
    return {
        "id": order.id,
        "number": order.number,
        "date": _encode_timestamp(order.date),
        "startTime": _encode_timestamp(order.start_time),
        "endTime": _encode_timestamp(order.end_time),
        "setupAccrued": order.setup_accrued,
        "pauseAccrued": order.pause_accrued,
        "goodCount": order.good_count,
        "badCount": order.bad_count,
        "notes": order.notes,
        "isRunning": order.is_running,
        "isInSetup": order.is_in_setup,
        "isFinished": order.is_finished,
        "isEditable": order.is_editable,
        "lastResumeAt": _encode_timestamp(order.last_resume_at),
        "lastPauseStartAt": _encode_timestamp(order.last_pause_start_at),
        "manualWorkHours": timing_source_hours(order.manual_work),
        "manualSetupHours": timing_source_hours(order.manual_setup),
    }


def order_from_record(record: Mapping[str, Any]) -> WorkOrder:
    """Build an order from its stored form; raises ``ValueError`` if malformed."""

    try:
        order_id = record["id"]
        number = record["number"]
        day = _decode_timestamp(record["date"])
    except KeyError as exc:
        raise ValueError(f"Stored order is missing {exc.args[0]!r}") from exc
    if not isinstance(order_id, str) or not isinstance(number, str) or day is None:
        raise ValueError("Stored order has an invalid id, number or date")
    return WorkOrder(
        id=order_id,
        number=number,
        date=day,
        start_time=_decode_timestamp(record.get("startTime")),
        end_time=_decode_timestamp(record.get("endTime")),
        setup_accrued=_decode_seconds(record.get("setupAccrued")),
        pause_accrued=_decode_seconds(record.get("pauseAccrued")),
        good_count=int(record.get("goodCount", 0)),
        bad_count=int(record.get("badCount", 0)),
        notes=str(record.get("notes", "")),
        is_running=bool(record.get("isRunning", False)),
        is_in_setup=bool(record.get("isInSetup", False)),
        is_finished=bool(record.get("isFinished", False)),
        is_editable=bool(record.get("isEditable", False)),
        last_resume_at=_decode_timestamp(record.get("lastResumeAt")),
        last_pause_start_at=_decode_timestamp(record.get("lastPauseStartAt")),
        manual_work=timing_source_from_hours(
            _decode_optional_float(record.get("manualWorkHours"))
        ),
        manual_setup=timing_source_from_hours(
            _decode_optional_float(record.get("manualSetupHours"))
        ),
    )


def encode_orders(orders: Sequence[WorkOrder]) -> str:
    return json.dumps([order_to_record(order) for order in orders])


def decode_orders(blob: str) -> List[WorkOrder]:
    """Decode a stored order list; any malformed entry fails the whole blob."""

    try:
        payload = json.loads(blob)
    except (TypeError, json.JSONDecodeError) as exc:
        raise ValueError("Stored orders are not valid JSON") from exc
    if not isinstance(payload, list):
        raise ValueError("Stored orders must be a list")
    orders: List[WorkOrder] = []
    for record in payload:
        if not isinstance(record, dict):
            raise ValueError("Stored order must be an object")
        try:
            orders.append(order_from_record(record))
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Stored order could not be decoded: {exc}") from exc
    return orders


def encode_numbers(numbers: Sequence[str]) -> str:
    return json.dumps(list(numbers))


def decode_numbers(blob: str) -> List[str]:
    try:
        payload = json.loads(blob)
    except (TypeError, json.JSONDecodeError) as exc:
        raise ValueError("Stored numbers are not valid JSON") from exc
    if not isinstance(payload, list) or not all(isinstance(item, str) for item in payload):
        raise ValueError("Stored numbers must be a list of strings")
    return payload


__all__ = [
    "ORDERS_KEY",
    "SAVED_NUMBERS_KEY",
    "KeyValueStore",
    "InMemoryKeyValueStore",
    "SQLiteKeyValueStore",
    "OrderDatabase",
    "order_to_record",
    "order_from_record",
    "encode_orders",
    "decode_orders",
    "encode_numbers",
    "decode_numbers",
]
