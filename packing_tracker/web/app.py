"""FastAPI-based JSON interface for the packing tracker."""

from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..commands import CommandResult, CommandSurface
from ..config import Settings
from ..services import PackingService
from ..storage import TrackerDatabase

logger = logging.getLogger(__name__)

STATUS_BY_KIND = {
    "NotFound": 404,
    "MissingArtifact": 404,
    "InvalidState": 409,
    "Conflict": 423,
    "IOFailure": 500,
}


class RegisterCustomerRequest(BaseModel):
    name: str
    panel_ids: List[str] = Field(default_factory=list)
    working_directory: Optional[str] = None
    address: str = ""


class OperatorRequest(BaseModel):
    operator: Optional[str] = None
    remark: str = ""


class ShipRequest(OperatorRequest):
    mode: str = "full"


def respond(result: CommandResult, success_status: int = 200) -> JSONResponse:
    status = success_status if result.success else STATUS_BY_KIND.get(result.error_kind or "", 500)
    return JSONResponse(result.as_dict(), status_code=status)


def create_app(
    settings: Optional[Settings] = None,
    service: Optional[PackingService] = None,
) -> FastAPI:
    """Build the app; without an explicit service a SQLite-backed one is created."""

    settings = settings if settings is not None else Settings()
    database: Optional[TrackerDatabase] = None
    if service is None:
        settings.ensure_directories()
        database = TrackerDatabase(settings.database_path)
        service = PackingService(
            settings,
            customer_repo=database.customers,
            panel_repo=database.panels,
            archive_repo=database.archives,
            package_archive_repo=database.package_archives,
            part_archive_repo=database.part_archives,
        )

    app = FastAPI(title=settings.app_name)
    app.state.packing_service = service
    app.state.commands = CommandSurface(service)
    app.state.database = database

    @app.on_event("shutdown")
    def shutdown_event() -> None:  # pragma: no cover - framework hook
        if database is not None:
            database.close()

    def commands(request: Request) -> CommandSurface:
        return request.app.state.commands

    @app.post("/customers")
    def register_customer(payload: RegisterCustomerRequest, request: Request):
        return respond(
            commands(request).register_customer(
                payload.name,
                payload.panel_ids,
                working_directory=payload.working_directory,
                address=payload.address,
            ),
            success_status=201,
        )

    @app.get("/customers/{name}")
    def get_customer(name: str, request: Request):
        return respond(commands(request).get_customer(name))

    @app.get("/customers/{name}/history")
    def get_status_history(name: str, request: Request):
        return respond(commands(request).get_status_history(name))

    @app.post("/customers/{name}/check-status")
    def check_status(name: str, request: Request, payload: Optional[OperatorRequest] = None):
        operator = payload.operator if payload else None
        return respond(commands(request).check_and_update_status(name, operator=operator))

    @app.post("/customers/{name}/archive")
    def archive_customer(name: str, request: Request, payload: Optional[OperatorRequest] = None):
        payload = payload or OperatorRequest()
        return respond(
            commands(request).archive_customer(
                name, operator=payload.operator, remark=payload.remark
            )
        )

    @app.post("/customers/{name}/ship")
    def ship_customer(name: str, request: Request, payload: Optional[ShipRequest] = None):
        payload = payload or ShipRequest()
        return respond(
            commands(request).ship_customer(
                name, payload.mode, operator=payload.operator, remark=payload.remark
            )
        )

    @app.post("/customers/{name}/mark-not-shipped")
    def mark_not_shipped(name: str, request: Request, payload: Optional[OperatorRequest] = None):
        payload = payload or OperatorRequest()
        return respond(
            commands(request).mark_not_shipped(
                name, operator=payload.operator, remark=payload.remark
            )
        )

    @app.get("/archives")
    def list_archives(
        request: Request,
        page: int = Query(1),
        page_size: int = Query(20, alias="pageSize"),
    ):
        return respond(commands(request).list_archives(page, page_size))

    @app.get("/archives/{archive_id}")
    def get_archive_detail(archive_id: str, request: Request):
        return respond(commands(request).get_archive_detail(archive_id))

    @app.post("/archives/{archive_id}/restore")
    def restore_archive(
        archive_id: str, request: Request, payload: Optional[OperatorRequest] = None
    ):
        operator = payload.operator if payload else None
        return respond(commands(request).restore_archive(archive_id, operator=operator))

    @app.delete("/archives/{archive_id}")
    def delete_archive(archive_id: str, request: Request):
        return respond(commands(request).delete_archive(archive_id))

    logger.info("Packing tracker app created (data root %s)", settings.data_root)
    return app


__all__ = ["create_app", "respond", "STATUS_BY_KIND"]
