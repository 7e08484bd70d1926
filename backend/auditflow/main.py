"""
FastAPI Application Entry Point
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from auditflow.adapters.notifier import (
    DatabaseNotificationPublisher, InMemoryNotificationPublisher, NotificationPublisher,
)
from auditflow.adapters.scheduler import (
    CeleryReminderScheduler, InMemoryReminderScheduler, ReminderScheduler,
)
from auditflow.api import router as api_router
from auditflow.core.config import settings
from auditflow.db.database import AsyncSessionLocal, dispose_worker_engine, get_worker_session_factory
from auditflow.workflow.base import Collaborators
from auditflow.workflow.template_catalog import seed_default_templates

logger = logging.getLogger(__name__)


def build_scheduler() -> ReminderScheduler:
    if settings.SCHEDULER_BACKEND == "memory":
        return InMemoryReminderScheduler()
    return CeleryReminderScheduler(get_worker_session_factory())


def build_notifier() -> NotificationPublisher:
    if settings.NOTIFIER_BACKEND == "memory":
        return InMemoryNotificationPublisher()
    return DatabaseNotificationPublisher(get_worker_session_factory())


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler"""
    # Startup
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info(f"Starting {settings.APP_NAME} (env={settings.ENV})")

    # NOTE: Database schema is managed by Alembic migrations.
    # Run `alembic upgrade head` before starting the app.
    if settings.SEED_DEFAULT_TEMPLATES:
        async with AsyncSessionLocal() as db:
            await seed_default_templates(db)

    collaborators = getattr(app.state, "collaborators", None)
    if collaborators is None:
        collaborators = Collaborators(scheduler=build_scheduler(), notifier=build_notifier())
        app.state.collaborators = collaborators
    await collaborators.scheduler.init()

    yield

    # Shutdown
    await collaborators.scheduler.shutdown()
    await dispose_worker_engine()
    logger.info("Shutting down")


app = FastAPI(
    title=settings.APP_NAME,
    description="Audit lifecycle and corrective-action workflow",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware - origins from env variable (comma-separated)
cors_origins = [origin.strip() for origin in settings.CORS_ORIGINS.split(",") if origin.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# API routes
app.include_router(api_router, prefix="/api")


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "app": settings.APP_NAME}
