"""Core data structures for shop-floor work order time tracking."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, time
from enum import Enum
from typing import Optional, Union

SECONDS_PER_HOUR = 3600.0


class OrderPhase(str, Enum):
    """Lifecycle phase of a work order, derived from its flags."""

    NOT_STARTED = "Not Started"
    WORKING = "Working"
    SETUP = "Setup"
    PAUSED = "Paused"
    FINISHED = "Finished"


@dataclass(frozen=True, slots=True)
class Computed:
    """Time quantity is derived from the booked intervals."""


@dataclass(frozen=True, slots=True)
class ManualOverride:
    """Time quantity is replaced by a manually entered number of hours."""

    hours: float

    @property
    def seconds(self) -> float:
        return self.hours * SECONDS_PER_HOUR


TimingSource = Union[Computed, ManualOverride]


def timing_source_from_hours(hours: Optional[float]) -> TimingSource:
    if hours is None:
        return Computed()
    return ManualOverride(hours=float(hours))


def timing_source_hours(source: TimingSource) -> Optional[float]:
    if isinstance(source, ManualOverride):
        return source.hours
    if isinstance(source, Computed):
        return None
    raise TypeError(f"Unsupported timing source {source!r}")


def decimal_hours(seconds: float) -> float:
    """Convert seconds to hours rounded to two decimals."""

    return round(100 * (seconds / SECONDS_PER_HOUR)) / 100


def start_of_day(moment: datetime) -> datetime:
    return datetime.combine(moment.date(), time.min)


def local_naive(moment: datetime) -> datetime:
    """Express ``moment`` as naive local time, the form every calculation uses."""

    if moment.tzinfo is None:
        return moment
    return moment.astimezone().replace(tzinfo=None)


def _seconds_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds()


@dataclass(frozen=True, slots=True)
class TimeBreakdown:
    """Clamped time quantities of an order evaluated at one moment."""

    total_duration: float
    setup_time: float
    pause_time: float
    net_work_time: float

    @property
    def hours(self) -> "TimeBreakdown":
        return TimeBreakdown(
            total_duration=decimal_hours(self.total_duration),
            setup_time=decimal_hours(self.setup_time),
            pause_time=decimal_hours(self.pause_time),
            net_work_time=decimal_hours(self.net_work_time),
        )


@dataclass(slots=True)
class WorkOrder:
    """A single unit of manual work with its time and quantity bookkeeping.

    ``setup_accrued`` and ``pause_accrued`` only hold closed intervals. The
    currently open interval is tracked through ``last_resume_at`` (work or
    setup while running) and ``last_pause_start_at`` (a live pause).
    """

    id: str
    number: str
    date: datetime
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    setup_accrued: float = 0.0
    pause_accrued: float = 0.0
    good_count: int = 0
    bad_count: int = 0
    notes: str = ""
    is_running: bool = False
    is_in_setup: bool = False
    is_finished: bool = False
    is_editable: bool = False
    last_resume_at: Optional[datetime] = None
    last_pause_start_at: Optional[datetime] = None
    manual_work: TimingSource = field(default_factory=Computed)
    manual_setup: TimingSource = field(default_factory=Computed)

    @property
    def phase(self) -> OrderPhase:
        if self.is_running:
            return OrderPhase.SETUP if self.is_in_setup else OrderPhase.WORKING
        if self.is_finished:
            return OrderPhase.FINISHED
        if self.start_time is None:
            return OrderPhase.NOT_STARTED
        return OrderPhase.PAUSED

    @property
    def has_open_pause(self) -> bool:
        return not self.is_running and self.last_pause_start_at is not None

    @property
    def is_locked(self) -> bool:
        """Finished orders reject transitions until they are made editable."""

        return self.is_finished and not self.is_editable

    # ------------------------------------------------------------------
    # Derived time quantities
    # ------------------------------------------------------------------
    def total_duration(self, now: datetime) -> float:
        if self.start_time is None:
            return 0.0
        end = self.end_time or now
        if end <= self.start_time:
            return 0.0
        return _seconds_between(self.start_time, end)

    def live_setup_time(self, now: datetime) -> float:
        if isinstance(self.manual_setup, ManualOverride):
            value = self.manual_setup.seconds
        elif isinstance(self.manual_setup, Computed):
            value = self.setup_accrued
            if self.is_running and self.is_in_setup and self.last_resume_at is not None:
                value += _seconds_between(self.last_resume_at, now)
        else:  # pragma: no cover - defensive
            raise TypeError(f"Unsupported timing source {self.manual_setup!r}")
        return max(0.0, min(value, self.total_duration(now)))

    def live_pause_time(self, now: datetime) -> float:
        """Pause time bounded to the span between start and end (or now)."""

        total = self.total_duration(now)
        if total <= 0:
            return 0.0
        value = self.pause_accrued
        if self.has_open_pause:
            pause_end = min(now, self.end_time or now)
            if pause_end > self.last_pause_start_at:
                value += _seconds_between(self.last_pause_start_at, pause_end)
        return max(0.0, min(value, total))

    def open_pause_time(self, now: datetime) -> float:
        """Booked pause plus the live pause, without bounding to the span."""

        value = self.pause_accrued
        if self.has_open_pause:
            value += _seconds_between(self.last_pause_start_at, now)
        return max(0.0, value)

    def net_work_time(self, now: datetime) -> float:
        total = self.total_duration(now)
        if total <= 0:
            return 0.0
        return max(0.0, total - self.live_setup_time(now) - self.live_pause_time(now))

    def legacy_elapsed(self, now: datetime) -> float:
        """Accumulated pause plus the current plain work interval.

        Kept separate from :meth:`net_work_time`; some displays still read it.
        """

        if isinstance(self.manual_work, ManualOverride):
            return self.manual_work.seconds
        value = self.pause_accrued
        if self.is_running and not self.is_in_setup and self.last_resume_at is not None:
            value += _seconds_between(self.last_resume_at, now)
        return value

    def breakdown(self, now: datetime) -> TimeBreakdown:
        return TimeBreakdown(
            total_duration=self.total_duration(now),
            setup_time=self.live_setup_time(now),
            pause_time=self.live_pause_time(now),
            net_work_time=self.net_work_time(now),
        )


__all__ = [
    "SECONDS_PER_HOUR",
    "OrderPhase",
    "Computed",
    "ManualOverride",
    "TimingSource",
    "TimeBreakdown",
    "WorkOrder",
    "decimal_hours",
    "local_naive",
    "start_of_day",
    "timing_source_from_hours",
    "timing_source_hours",
]
