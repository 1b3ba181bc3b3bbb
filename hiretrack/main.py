from __future__ import annotations

import logging

from fastapi import FastAPI

from hiretrack.api.router import api_router
from hiretrack.core.config import settings
from hiretrack.db.init_db import create_all
from hiretrack.db.session import SessionLocal, engine
from hiretrack.jobs.scheduler import AutoProcessorScheduler
from hiretrack.middleware.logging import RequestLoggingMiddleware
from hiretrack.services.event_bus import event_bus
from hiretrack.services.progression_engine import ProgressionEngine

logging.basicConfig(level=logging.INFO)
logging.getLogger("apscheduler").setLevel(logging.WARNING)
logging.getLogger("apscheduler.scheduler").setLevel(logging.WARNING)
logger = logging.getLogger("hiretrack")


def build_auto_processor() -> AutoProcessorScheduler:
    progression = ProgressionEngine.from_settings(settings, SessionLocal, bus=event_bus)
    return AutoProcessorScheduler(progression, interval_seconds=settings.process_interval_seconds)


def create_app(
    *,
    auto_processor: AutoProcessorScheduler | None = None,
    manage_database: bool = True,
) -> FastAPI:
    app = FastAPI(
        title=settings.app_name,
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.state.auto_processor = auto_processor or build_auto_processor()

    @app.get("/health")
    async def health_check():
        return {
            "status": "ok",
            "environment": settings.environment,
            "auto_processor": app.state.auto_processor.is_running,
        }

    app.include_router(api_router)

    @app.on_event("startup")
    async def _startup_jobs() -> None:
        if manage_database:
            await create_all(engine)
        if settings.auto_processor_enabled:
            app.state.auto_processor.start()
        else:
            logger.info("auto_processor_disabled")

    @app.on_event("shutdown")
    async def _shutdown_jobs() -> None:
        processor: AutoProcessorScheduler = app.state.auto_processor
        processor.stop()
        await processor.drain()
        await event_bus.close()

    return app


app = create_app()
