import asyncio
from datetime import timedelta
from typing import Optional

import httpx
from fastapi import FastAPI, HTTPException, Request, Response
from loguru import logger

from pollster.checker import StatusChecker
from pollster.db import SEED_SERVICES, ServiceRepository, Settings, create_repository, get_settings
from pollster.models import AddServiceRequest, AddServiceResponse, Service, ServicesResponse
from pollster.monitoring import Scheduler, load_services, save_services, save_services_periodically
from pollster.store import DeadlineStore


def create_app(
    settings: Optional[Settings] = None,
    repository: Optional[ServiceRepository] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    """Build the API with its own store, checker and scheduler"""
    settings = settings or get_settings()
    app = FastAPI(title="Pollster")
    app.state.settings = settings
    app.state.repository = repository or create_repository(settings)
    app.state.store = DeadlineStore(
        polling_interval=timedelta(seconds=settings.polling_interval_seconds)
    )
    app.state.http_client = http_client
    app.state.save_task = None

    @app.on_event("startup")
    async def startup_event():
        """Load services and start background tasks"""
        store: DeadlineStore = app.state.store
        await load_services(store, app.state.repository, SEED_SERVICES)

        checker = StatusChecker(
            store,
            client=app.state.http_client,
            timeout=settings.probe_timeout_seconds,
            max_redirects=settings.probe_max_redirects,
        )
        scheduler = Scheduler(store, checker, tick_interval=settings.tick_interval_seconds)
        app.state.checker = checker
        app.state.scheduler = scheduler
        scheduler.start()
        app.state.save_task = asyncio.create_task(
            save_services_periodically(store, app.state.repository, settings.save_interval_seconds)
        )

    @app.on_event("shutdown")
    async def shutdown_event():
        """Stop background tasks and save the final state"""
        if app.state.save_task is not None:
            app.state.save_task.cancel()
            try:
                await app.state.save_task
            except asyncio.CancelledError:
                pass
        scheduler = getattr(app.state, "scheduler", None)
        if scheduler is not None:
            await scheduler.stop()
        checker = getattr(app.state, "checker", None)
        if checker is not None:
            await checker.aclose()
        # Nothing was loaded if startup never got this far
        if scheduler is not None:
            await save_services(app.state.store, app.state.repository)
        logger.info("Shut down")

    _add_routes(app)
    return app


def _store(request: Request) -> DeadlineStore:
    return request.app.state.store


def _add_routes(app: FastAPI) -> None:
    @app.get("/service", response_model=ServicesResponse)
    async def list_services(request: Request) -> ServicesResponse:
        """List all tracked services"""
        return ServicesResponse(services=_store(request).snapshot())

    @app.post("/service", response_model=AddServiceResponse)
    async def add_service(body: AddServiceRequest, request: Request) -> AddServiceResponse:
        """Start tracking a service"""
        service_id = _store(request).add(body.name, body.url)
        return AddServiceResponse(id=service_id)

    @app.get("/service/{service_id}", response_model=Service)
    async def get_service(service_id: str, request: Request) -> Service:
        """Get a tracked service by id"""
        service = _store(request).get(service_id)
        if service is None:
            raise HTTPException(status_code=404, detail=f"Unknown service: {service_id}")
        return service

    @app.delete("/service/{service_id}")
    async def delete_service(service_id: str, request: Request) -> Response:
        """Stop tracking a service"""
        if not _store(request).remove(service_id):
            raise HTTPException(status_code=404, detail=f"Unknown service: {service_id}")
        return Response(status_code=200)

    @app.get("/health")
    async def health(request: Request) -> dict:
        store = _store(request)
        checker = getattr(request.app.state, "checker", None)
        return {
            "status": "ok",
            "services": store.size(),
            "in_flight": checker.in_flight if checker else 0,
        }


app = create_app()

