"""FastAPI-based interface for the work order time tracker."""

from __future__ import annotations

import logging
import random
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from fastapi import Body, FastAPI, Form, HTTPException, Request
from fastapi.responses import RedirectResponse
from fastapi.templating import Jinja2Templates
from pydantic import BaseModel

from ..domain import WorkOrder, decimal_hours, timing_source_hours
from ..services import OrderCollection, SavedNumberList
from ..settings import Settings, configure_logging
from ..storage import KeyValueStore, OrderDatabase, order_to_record
from ..sync import NullTransport, SyncBridge, SyncTransport

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"
templates = Jinja2Templates(directory=str(TEMPLATES_DIR))


class NewOrder(BaseModel):
    number: str = ""


class FieldEdit(BaseModel):
    field: str
    value: Any = None


class EditableFlag(BaseModel):
    editable: Optional[bool] = None


class SavedNumber(BaseModel):
    number: str


def order_payload(order: WorkOrder, now: datetime) -> Dict[str, Any]:
    breakdown = order.breakdown(now)
    payload = order_to_record(order)
    payload.update(
        {
            "phase": order.phase.value,
            "totalDuration": breakdown.total_duration,
            "setupTime": breakdown.setup_time,
            "pauseTime": breakdown.pause_time,
            "netWorkTime": breakdown.net_work_time,
            "legacyElapsed": order.legacy_elapsed(now),
            "openPauseTime": order.open_pause_time(now),
            "hours": {
                "total": decimal_hours(breakdown.total_duration),
                "setup": decimal_hours(breakdown.setup_time),
                "pause": decimal_hours(breakdown.pause_time),
                "net": decimal_hours(breakdown.net_work_time),
                "manualWork": timing_source_hours(order.manual_work),
                "manualSetup": timing_source_hours(order.manual_setup),
            },
        }
    )
    return payload


def _generated_number(prefix: str) -> str:
    return f"{prefix}-{random.randint(1000, 9999)}"


def create_app(
    settings: Optional[Settings] = None,
    *,
    store: Optional[KeyValueStore] = None,
    transport: Optional[SyncTransport] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> FastAPI:
    settings = settings or Settings()
    configure_logging(settings.log_level)
    database: Optional[OrderDatabase] = None
    if store is None:
        database = OrderDatabase(settings.database_path)
        store = database.store
    collection = OrderCollection(store, clock=clock)
    saved_numbers = SavedNumberList(store)
    bridge = SyncBridge(collection, transport or NullTransport())
    bridge.attach()
    logger.info("Loaded %d orders into %s", len(collection), settings.app_name)

    app = FastAPI(title=settings.app_name)
    app.state.settings = settings
    app.state.collection = collection
    app.state.saved_numbers = saved_numbers
    app.state.bridge = bridge
    app.state.database = database

    @app.on_event("shutdown")
    async def shutdown_event() -> None:  # pragma: no cover - framework hook
        bridge.detach()
        if database is not None:
            database.close()

    def require(order: Optional[WorkOrder], order_id: str) -> Dict[str, Any]:
        if order is None:
            raise HTTPException(status_code=404, detail=f"Order {order_id} not found")
        return order_payload(order, collection.now())

    # ------------------------------------------------------------------
    # Report page
    # ------------------------------------------------------------------
    @app.get("/")
    def report(request: Request, year: Optional[int] = None, month: Optional[int] = None):
        moment = collection.now()
        running = [order for order in collection.list() if not order.is_finished]
        years = sorted(collection.finished_by_year(), reverse=True)
        months = sorted(collection.finished_by_month(year), reverse=True) if year else []
        days = (
            sorted(collection.finished_by_day(year, month).items(), reverse=True)
            if year and month
            else []
        )
        return templates.TemplateResponse(
            request,
            "report.html",
            {
                "running": running,
                "years": years,
                "months": months,
                "days": days,
                "year": year,
                "month": month,
                "now": moment,
                "decimal_hours": decimal_hours,
                "day_format": settings.day_format,
                "saved_numbers": saved_numbers.list(),
            },
        )

    @app.post("/orders/new")
    def create_order_form(number: str = Form("")):
        collection.add(number.strip() or _generated_number(settings.new_number_prefix))
        return RedirectResponse("/", status_code=303)

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------
    @app.get("/orders")
    def list_orders() -> List[Dict[str, Any]]:
        moment = collection.now()
        return [order_payload(order, moment) for order in collection.list()]

    @app.post("/orders", status_code=201)
    def create_order(body: Optional[NewOrder] = None) -> Dict[str, Any]:
        number = (body.number if body else "").strip()
        number = number or _generated_number(settings.new_number_prefix)
        return order_payload(collection.add(number), collection.now())

    @app.post("/orders/pause-all")
    def pause_all() -> Dict[str, List[str]]:
        return {"paused": collection.pause_all()}

    @app.post("/orders/resume-all")
    def resume_all() -> Dict[str, List[str]]:
        return {"resumed": collection.resume_all()}

    @app.get("/orders/{order_id}")
    def get_order(order_id: str) -> Dict[str, Any]:
        return require(collection.get(order_id), order_id)

    @app.post("/orders/{order_id}/pause")
    def toggle_pause(order_id: str) -> Dict[str, Any]:
        return require(collection.toggle_pause(order_id), order_id)

    @app.post("/orders/{order_id}/setup")
    def toggle_setup(order_id: str) -> Dict[str, Any]:
        return require(collection.toggle_setup(order_id), order_id)

    @app.post("/orders/{order_id}/finish")
    def finish(order_id: str) -> Dict[str, Any]:
        return require(collection.finish(order_id), order_id)

    @app.post("/orders/{order_id}/editable")
    def set_editable(
        order_id: str, body: Optional[EditableFlag] = None
    ) -> Dict[str, Any]:
        flag = body.editable if body else None
        return require(collection.set_editable(order_id, flag), order_id)

    @app.patch("/orders/{order_id}")
    def edit_order(order_id: str, body: FieldEdit) -> Dict[str, Any]:
        try:
            updated = collection.edit_field(order_id, body.field, body.value)
        except ValueError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        return require(updated, order_id)

    @app.delete("/orders/{order_id}")
    def delete_order(order_id: str) -> Dict[str, Any]:
        return require(collection.remove(order_id), order_id)

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------
    def summarize(orders: List[WorkOrder]) -> List[Dict[str, Any]]:
        moment = collection.now()
        return [order_payload(order, moment) for order in orders]

    @app.get("/reports/days")
    def orders_by_day() -> Dict[str, List[Dict[str, Any]]]:
        grouped = collection.group_by_day(settings.day_format)
        return {day: summarize(orders) for day, orders in grouped.items()}

    @app.get("/reports/search")
    def search_finished(q: str = "") -> List[Dict[str, Any]]:
        return summarize(collection.search_finished(q))

    @app.get("/reports/finished")
    def finished_years() -> Dict[int, int]:
        return {year: len(orders) for year, orders in collection.finished_by_year().items()}

    @app.get("/reports/finished/{year}")
    def finished_months(year: int) -> Dict[int, int]:
        return {
            month: len(orders)
            for month, orders in collection.finished_by_month(year).items()
        }

    @app.get("/reports/finished/{year}/{month}")
    def finished_days(year: int, month: int) -> Dict[str, List[Dict[str, Any]]]:
        grouped = collection.finished_by_day(year, month)
        return {day.date().isoformat(): summarize(orders) for day, orders in grouped.items()}

    # ------------------------------------------------------------------
    # Saved order numbers
    # ------------------------------------------------------------------
    @app.get("/saved-numbers")
    def list_saved_numbers() -> List[str]:
        return saved_numbers.list()

    @app.post("/saved-numbers")
    def add_saved_number(body: SavedNumber) -> List[str]:
        saved_numbers.add(body.number)
        return saved_numbers.list()

    @app.delete("/saved-numbers/{index}")
    def remove_saved_number(index: int) -> List[str]:
        if not saved_numbers.remove_at([index]):
            raise HTTPException(status_code=404, detail=f"No saved number at {index}")
        return saved_numbers.list()

    # ------------------------------------------------------------------
    # Companion device
    # ------------------------------------------------------------------
    @app.get("/sync/snapshot")
    def sync_snapshot() -> List[Dict[str, Any]]:
        return [entry.to_payload() for entry in bridge.snapshot()]

    @app.post("/sync/command")
    def sync_command(message: Dict[str, Any] = Body(...)) -> Dict[str, Any]:
        order = bridge.apply_remote_command(message)
        return {"applied": order is not None, "id": order.id if order else None}

    return app


__all__ = ["create_app", "order_payload"]
