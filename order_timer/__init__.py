"""Time tracking for manual shop-floor work orders.

This package provides the work order data model, the time-accounting state
machine, a persisted order collection with reporting queries, and the
snapshot/command bridge for a companion device.
"""

from .domain import (
    Computed,
    ManualOverride,
    OrderPhase,
    TimeBreakdown,
    WorkOrder,
)
from .engine import EditableField, OrderCommand, TimeAccountingEngine
from .services import OrderCollection, SavedNumberList
from .sync import SyncBridge

__all__ = [
    "Computed",
    "ManualOverride",
    "OrderPhase",
    "TimeBreakdown",
    "WorkOrder",
    "EditableField",
    "OrderCommand",
    "TimeAccountingEngine",
    "OrderCollection",
    "SavedNumberList",
    "SyncBridge",
]
