"""State transitions that book work, setup and pause intervals."""

from __future__ import annotations

import math
from dataclasses import replace
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Any, Callable, Iterable, List, Optional, Sequence
from uuid import uuid4

from .domain import WorkOrder, local_naive, start_of_day, timing_source_from_hours


class OrderCommand(str, Enum):
    """Identity-based commands a caller can apply to an existing order."""

    TOGGLE_PAUSE = "pause"
    TOGGLE_SETUP = "setup"
    FINISH = "finish"
    TOGGLE_EDITABLE = "editable"


class EditableField(str, Enum):
    """Fields that may be overwritten directly on an order."""

    NUMBER = "number"
    GOOD_COUNT = "good_count"
    BAD_COUNT = "bad_count"
    NOTES = "notes"
    SETUP_ACCRUED = "setup_accrued"
    PAUSE_ACCRUED = "pause_accrued"
    SETUP_MINUTES = "setup_minutes"
    PAUSE_MINUTES = "pause_minutes"
    MANUAL_WORK_HOURS = "manual_work_hours"
    MANUAL_SETUP_HOURS = "manual_setup_hours"
    START_TIME_OF_DAY = "start_time_of_day"
    END_TIME_OF_DAY = "end_time_of_day"
    DATE = "date"


def _elapsed(start: Optional[datetime], now: datetime) -> float:
    if start is None:
        return 0.0
    return max(0.0, (now - start).total_seconds())


def _parse_number(value: Any) -> float:
    if isinstance(value, bool):
        raise ValueError(f"Expected a number, got {value!r}")
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        cleaned = value.strip().replace(",", ".")
        try:
            number = float(cleaned)
        except ValueError as exc:
            raise ValueError(f"Expected a number, got {value!r}") from exc
    else:
        raise ValueError(f"Expected a number, got {value!r}")
    if not math.isfinite(number):
        raise ValueError(f"Expected a finite number, got {value!r}")
    return number


def _parse_count(value: Any) -> int:
    return max(0, int(round(_parse_number(value))))


def _parse_time_of_day(value: Any) -> time:
    if isinstance(value, datetime):
        return local_naive(value).time()
    if isinstance(value, time):
        return value.replace(tzinfo=None)
    if isinstance(value, str):
        text = value.strip()
        try:
            if "T" in text:
                return local_naive(datetime.fromisoformat(text)).time()
            return time.fromisoformat(text).replace(tzinfo=None)
        except ValueError as exc:
            raise ValueError(f"Expected a time of day, got {value!r}") from exc
    raise ValueError(f"Expected a time of day, got {value!r}")


def _parse_day(value: Any) -> datetime:
    if isinstance(value, datetime):
        return start_of_day(local_naive(value))
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    if isinstance(value, str):
        try:
            return start_of_day(local_naive(datetime.fromisoformat(value.strip())))
        except ValueError as exc:
            raise ValueError(f"Expected a date, got {value!r}") from exc
    raise ValueError(f"Expected a date, got {value!r}")


class TimeAccountingEngine:
    """Pure transition functions for :class:`WorkOrder` records.

    Every operation returns a new record. Guarded transitions that do not
    apply return the given record unchanged, so callers can detect a
    rejection with an identity check.
    """

    def __init__(self, id_factory: Optional[Callable[[], str]] = None) -> None:
        self._id_factory = id_factory or (lambda: str(uuid4()))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self, number: str, now: datetime) -> WorkOrder:
        return WorkOrder(
            id=self._id_factory(),
            number=number,
            date=start_of_day(now),
            start_time=now,
            is_running=True,
            last_resume_at=now,
        )

    def toggle_pause(self, order: WorkOrder, now: datetime) -> WorkOrder:
        if order.is_locked:
            return order
        if order.is_running:
            setup_accrued = order.setup_accrued
            if order.is_in_setup:
                setup_accrued += _elapsed(order.last_resume_at, now)
            # Plain work time is never booked; the pause is booked on resume.
            return replace(
                order,
                setup_accrued=setup_accrued,
                is_in_setup=False,
                is_running=False,
                last_resume_at=None,
                last_pause_start_at=now,
            )
        pause_accrued = order.pause_accrued
        if order.last_pause_start_at is not None:
            pause_accrued += _elapsed(order.last_pause_start_at, now)
        return replace(
            order,
            pause_accrued=pause_accrued,
            last_pause_start_at=None,
            start_time=order.start_time or now,
            last_resume_at=now,
            is_running=True,
        )

    def toggle_setup(self, order: WorkOrder, now: datetime) -> WorkOrder:
        if order.is_locked or not order.is_running:
            return order
        if order.is_in_setup:
            return replace(
                order,
                setup_accrued=order.setup_accrued + _elapsed(order.last_resume_at, now),
                is_in_setup=False,
                last_resume_at=now,
            )
        return replace(order, is_in_setup=True, last_resume_at=now)

    def finish(self, order: WorkOrder, now: datetime) -> WorkOrder:
        if order.is_locked:
            return order
        setup_accrued = order.setup_accrued
        pause_accrued = order.pause_accrued
        if order.is_running:
            if order.is_in_setup:
                setup_accrued += _elapsed(order.last_resume_at, now)
        elif order.last_pause_start_at is not None:
            pause_accrued += _elapsed(order.last_pause_start_at, now)
        return replace(
            order,
            setup_accrued=setup_accrued,
            pause_accrued=pause_accrued,
            is_running=False,
            is_in_setup=False,
            is_finished=True,
            is_editable=False,
            end_time=now,
            last_resume_at=None,
            last_pause_start_at=None,
        )

    def set_editable(self, order: WorkOrder, flag: Optional[bool] = None) -> WorkOrder:
        editable = (not order.is_editable) if flag is None else bool(flag)
        return replace(order, is_editable=editable)

    # ------------------------------------------------------------------
    # Collective pause
    # ------------------------------------------------------------------
    def pause_all(
        self, orders: Iterable[WorkOrder], now: datetime
    ) -> List[WorkOrder]:
        """Pause every running order, leaving the others untouched."""

        return [
            self.toggle_pause(order, now) if order.is_running else order
            for order in orders
        ]

    def resume_all(
        self, orders: Iterable[WorkOrder], order_ids: Sequence[str], now: datetime
    ) -> List[WorkOrder]:
        """Resume the given orders if they are still paused."""

        selected = set(order_ids)
        return [
            self.toggle_pause(order, now)
            if order.id in selected and not order.is_running and not order.is_locked
            else order
            for order in orders
        ]

    # ------------------------------------------------------------------
    # Direct edits
    # ------------------------------------------------------------------
    def edit_field(
        self, order: WorkOrder, field_name: EditableField | str, value: Any
    ) -> WorkOrder:
        """Overwrite a single user-editable field.

        Permission checks belong to the caller. Values may be given as native
        Python objects or as strings from a form or JSON body.
        """

        try:
            field_name = EditableField(field_name)
        except ValueError as exc:
            raise ValueError(f"Field {field_name!r} cannot be edited") from exc

        if field_name is EditableField.NUMBER:
            return replace(order, number=str(value).strip())
        if field_name is EditableField.NOTES:
            return replace(order, notes=str(value))
        if field_name is EditableField.GOOD_COUNT:
            return replace(order, good_count=_parse_count(value))
        if field_name is EditableField.BAD_COUNT:
            return replace(order, bad_count=_parse_count(value))
        if field_name is EditableField.SETUP_ACCRUED:
            return replace(order, setup_accrued=max(0.0, _parse_number(value)))
        if field_name is EditableField.PAUSE_ACCRUED:
            return replace(order, pause_accrued=max(0.0, _parse_number(value)))
        if field_name is EditableField.SETUP_MINUTES:
            return replace(order, setup_accrued=max(0.0, _parse_number(value) * 60))
        if field_name is EditableField.PAUSE_MINUTES:
            return replace(order, pause_accrued=max(0.0, _parse_number(value) * 60))
        if field_name is EditableField.MANUAL_WORK_HOURS:
            hours = None if value in (None, "") else max(0.0, _parse_number(value))
            return replace(order, manual_work=timing_source_from_hours(hours))
        if field_name is EditableField.MANUAL_SETUP_HOURS:
            hours = None if value in (None, "") else max(0.0, _parse_number(value))
            return replace(order, manual_setup=timing_source_from_hours(hours))
        if field_name is EditableField.START_TIME_OF_DAY:
            moment = datetime.combine(order.date.date(), _parse_time_of_day(value))
            return replace(order, start_time=moment)
        if field_name is EditableField.END_TIME_OF_DAY:
            moment = datetime.combine(order.date.date(), _parse_time_of_day(value))
            return replace(order, end_time=moment)
        if field_name is EditableField.DATE:
            new_day = _parse_day(value)
            delta: timedelta = new_day - start_of_day(order.date)
            return replace(
                order,
                date=new_day,
                start_time=order.start_time + delta if order.start_time else None,
                end_time=order.end_time + delta if order.end_time else None,
            )
        raise ValueError(f"Field {field_name!r} cannot be edited")  # pragma: no cover

    def apply(self, order: WorkOrder, command: OrderCommand, now: datetime) -> WorkOrder:
        command = OrderCommand(command)
        if command is OrderCommand.TOGGLE_PAUSE:
            return self.toggle_pause(order, now)
        if command is OrderCommand.TOGGLE_SETUP:
            return self.toggle_setup(order, now)
        if command is OrderCommand.FINISH:
            return self.finish(order, now)
        return self.set_editable(order)


__all__ = ["TimeAccountingEngine", "OrderCommand", "EditableField"]
