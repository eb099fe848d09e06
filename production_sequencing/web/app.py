"""FastAPI-based interface for the sequencing engine."""

from __future__ import annotations

import logging
from typing import Any, List, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..domain import FabricationOrderStatus, LineStatus
from ..repository import RecordNotFoundError
from ..services import SequencingOptions, SequencingService, SnapshotUnavailableError
from ..storage import SequencingDatabase

logger = logging.getLogger(__name__)

CORS_HEADERS = ["authorization", "x-client-info", "apikey", "content-type"]


class SequenceRequest(BaseModel):
    # entries are validated one by one so a bad order cannot fail the batch
    orders: Optional[List[Any]] = None
    auto_create: bool = False


class LineCreate(BaseModel):
    name: str = Field(min_length=1)
    capacity: int = Field(ge=0)
    status: LineStatus = LineStatus.ACTIVE


class LineStatusUpdate(BaseModel):
    status: LineStatus


class FabricationOrderStatusUpdate(BaseModel):
    status: FabricationOrderStatus


def create_app(
    database_path: str = "sequencing.sqlite3",
    *,
    seed_demo_data: bool = True,
    options: Optional[SequencingOptions] = None,
) -> FastAPI:
    database = SequencingDatabase(database_path)
    service = SequencingService(
        line_repo=database.lines,
        fabrication_order_repo=database.fabrication_orders,
        options=options,
    )
    if seed_demo_data:
        ensure_demo_data(service)

    app = FastAPI(title="Production Sequencing")
    app.state.sequencing_service = service
    app.state.database = database
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=CORS_HEADERS,
    )

    @app.on_event("shutdown")
    async def shutdown_event() -> None:  # pragma: no cover - framework hook
        database.close()

    @app.exception_handler(RecordNotFoundError)
    async def not_found_handler(request: Request, exc: RecordNotFoundError):
        return JSONResponse({"error": str(exc)}, status_code=404)

    @app.exception_handler(SnapshotUnavailableError)
    async def snapshot_unavailable_handler(
        request: Request, exc: SnapshotUnavailableError
    ):
        logger.error("Error in sequence-production", exc_info=exc)
        body = {"error": str(exc)}
        if exc.__cause__ is not None:
            body["details"] = repr(exc.__cause__)
        return JSONResponse(body, status_code=500)

    @app.post("/sequence")
    async def sequence(request: Request, payload: SequenceRequest):
        service: SequencingService = request.app.state.sequencing_service
        result = service.sequence_orders(
            payload.orders or [], auto_create=payload.auto_create
        )
        return result.as_dict()

    @app.get("/lines")
    async def list_lines(request: Request):
        service: SequencingService = request.app.state.sequencing_service
        return [line.as_dict() for line in service.line_loads()]

    @app.post("/lines", status_code=201)
    async def create_line(request: Request, payload: LineCreate):
        service: SequencingService = request.app.state.sequencing_service
        try:
            line = service.register_line(
                payload.name, payload.capacity, status=payload.status
            )
        except ValueError as exc:
            return JSONResponse({"error": str(exc)}, status_code=400)
        return line.as_dict()

    @app.post("/lines/{line_id}/status")
    async def update_line_status(
        line_id: str, request: Request, payload: LineStatusUpdate
    ):
        service: SequencingService = request.app.state.sequencing_service
        return service.update_line_status(line_id, payload.status).as_dict()

    @app.get("/fabrication-orders")
    async def list_fabrication_orders(request: Request, line_id: Optional[str] = None):
        service: SequencingService = request.app.state.sequencing_service
        orders = service.list_fabrication_orders(line_id=line_id)
        return [order.as_dict() for order in orders]

    @app.post("/fabrication-orders/{order_id}/status")
    async def update_fabrication_order_status(
        order_id: str, request: Request, payload: FabricationOrderStatusUpdate
    ):
        service: SequencingService = request.app.state.sequencing_service
        order = service.update_fabrication_order_status(order_id, payload.status)
        return order.as_dict()

    return app


def ensure_demo_data(service: SequencingService) -> None:
    if service.lines.list():
        return

    assembly = service.register_line("Assembly Line 1", 4)
    service.register_line("Assembly Line 2", 4)
    welding = service.register_line("Welding Cell", 2)
    service.register_line("Paint Shop", 3, status=LineStatus.PAUSED)

    service.create_fabrication_order(
        "Hydraulik Nord GmbH", assembly.id, priority=7, sap_id="4500012345"
    )
    service.create_fabrication_order(
        "Metallbau Schröder",
        assembly.id,
        priority=4,
        status=FabricationOrderStatus.IN_PROGRESS,
    )
    service.create_fabrication_order("Agrartechnik Weber", welding.id, priority=5)


__all__ = ["create_app", "ensure_demo_data"]
