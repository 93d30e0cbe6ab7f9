from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from loguru import logger

from smart_rewards_api.core.settings import settings
from smart_rewards_api.db.session import async_session
from .api.routes import api_router
from .core.logging import configure_logging
from .observability.tracing import configure_tracing
from .scheduling import JobScheduler
from .workers import MukandoPayoutWorker


APP_VERSION = "0.1.0"
SERVICE_NAME = "smart-rewards-api"


def _session_factory():
    return async_session()


def _resolve_schedule_path() -> Path:
    schedule_path = Path(settings.job_schedule_path)
    if not schedule_path.is_absolute():
        schedule_path = Path(__file__).resolve().parent.parent.parent / schedule_path
    return schedule_path


@asynccontextmanager
async def lifespan(app: FastAPI):
    payout_worker = MukandoPayoutWorker(
        _session_factory,
        interval_seconds=settings.mukando_payout_interval_seconds,
        limit=settings.mukando_payout_batch_limit,
    )
    schedule_path = _resolve_schedule_path()
    job_scheduler = JobScheduler(session_factory=_session_factory, config_path=schedule_path)

    app.state.mukando_payout_worker = payout_worker
    app.state.job_scheduler = job_scheduler

    scheduler_enabled = settings.job_scheduler_enabled
    if scheduler_enabled:
        try:
            job_scheduler.start()
        except FileNotFoundError as exc:
            logger.exception("Job scheduler failed to start", error=str(exc))
        else:
            logger.info("Job scheduler enabled", schedule_path=str(schedule_path))
    else:
        logger.info("Job scheduler disabled", reason="job_scheduler_enabled is false")

    # The cron scheduler owns the payout sweep when both are switched on.
    worker_enabled = settings.mukando_payout_worker_enabled and not scheduler_enabled
    if worker_enabled:
        payout_worker.start()
        logger.info(
            "Mukando payout worker enabled",
            interval_seconds=payout_worker.interval_seconds,
            limit=payout_worker.limit,
        )
    elif settings.mukando_payout_worker_enabled:
        logger.info("Mukando payout worker managed via scheduler", schedule_path=str(schedule_path))
    else:
        logger.info("Mukando payout worker disabled", reason="mukando_payout_worker_enabled is false")

    try:
        yield
    finally:
        if worker_enabled and payout_worker.is_running:
            await payout_worker.stop()
        if job_scheduler.is_running:
            await job_scheduler.stop()


def create_app() -> FastAPI:
    """Application factory for the Smart Rewards API."""
    configure_logging(
        service_name=SERVICE_NAME,
        environment=settings.environment,
        version=APP_VERSION,
        level=settings.log_level,
    )

    app = FastAPI(
        title="Smart Rewards API",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    if settings.tracing_enabled:
        configure_tracing(
            app,
            service_name=SERVICE_NAME,
            service_version=APP_VERSION,
            environment=settings.environment,
        )

    app.include_router(api_router)

    @app.get("/healthz", tags=["Health"])
    async def health_check() -> dict[str, str]:
        return {
            "status": "ok",
            "environment": settings.environment,
            "version": APP_VERSION,
        }

    return app
