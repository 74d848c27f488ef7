"""
app.py: FastAPI application factory and startup lifecycle.

This is the ASGI application object imported by uvicorn.
It wires all services, registers routers, and runs startup initialization.

Usage (via launcher):
    python main.py

Usage (direct uvicorn):
    uvicorn app:app --reload
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from backend.controllers.assignment_controller import router as assignment_router
from backend.controllers.period_controller import router as period_router
from backend.repository.data_repository import DataRepository
from backend.services.assignment_service import AutoAssignmentService
from backend.services.auth_service import AuthService
from backend.services.period_service import PeriodService
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build and wire the FastAPI application.

    Services are attached to app.state and resolved by the providers in
    backend/controllers/dependencies.py.
    """
    settings = settings or get_settings()

    repository = DataRepository(settings)
    auth_service = AuthService(repository=repository, settings=settings)
    assignment_service = AutoAssignmentService(repository=repository, settings=settings)
    period_service = PeriodService(repository=repository, settings=settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Run startup initialization before accepting requests."""
        _startup(app, settings)
        yield

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )

    app.include_router(assignment_router)
    app.include_router(period_router)

    app.state.repository = repository
    app.state.auth_service = auth_service
    app.state.assignment_service = assignment_service
    app.state.period_service = period_service

    return app


def _startup(app: FastAPI, settings: Settings) -> None:
    """
    Idempotent startup sequence. Safe to re-run on server restarts.

    Schema must exist before the demo seed; the seed is skipped when any
    profile already exists.
    """
    repository: DataRepository = app.state.repository
    auth_service: AuthService = app.state.auth_service

    logger.info("Startup: initializing database schema")
    repository.initialize_database()

    if settings.seed_demo_data:
        logger.info("Startup: seeding demo period (skipped if profiles exist)")
        repository.seed_demo_data(auth_service.hash_password(settings.demo_password))

    logger.info("Startup complete, system ready")


# Module-level app object for uvicorn
app = create_app()
