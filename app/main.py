from __future__ import annotations

import asyncio

from fastapi import FastAPI

from app.api.routes import clickup as clickup_api
from app.core.config import get_settings
from app.core.database import db
from app.core.logging import configure_logging, log_error, log_info
from app.security.request_logger import RequestLoggingMiddleware
from app.services import status_registry, technicians

configure_logging()
settings = get_settings()

tags_metadata = [
    {
        "name": "ClickUp",
        "description": "Webhook ingestion and batch import of ClickUp tasks into case tables.",
    },
]

app = FastAPI(
    title=settings.app_name,
    description="Synchronises pest-control cases from ClickUp into the relational datastore.",
    openapi_tags=tags_metadata,
)

app.add_middleware(
    RequestLoggingMiddleware,
    exempt_paths=("/health",),
)

app.include_router(clickup_api.router)


@app.on_event("startup")
async def on_startup() -> None:
    await db.connect()
    await db.run_migrations()

    startup_tasks = [
        ("load_status_registry", status_registry.load_status_registry()),
        ("load_technician_resolver", technicians.load_technician_resolver()),
    ]
    results = await asyncio.gather(
        *(task for _, task in startup_tasks), return_exceptions=True
    )
    for (name, _), result in zip(startup_tasks, results):
        if isinstance(result, Exception):
            log_error("Startup task failed", task=name, error=str(result))
    log_info("Application started", environment=settings.environment)


@app.on_event("shutdown")
async def on_shutdown() -> None:
    await db.disconnect()
    log_info("Application shutdown")


@app.get("/health")
async def health_check():
    return {"status": "ok"}
