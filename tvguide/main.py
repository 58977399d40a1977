from contextlib import asynccontextmanager
from datetime import timedelta
import logging

from fastapi import FastAPI, Request

from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from tvguide.config import Settings, get_settings, setup_logging
from tvguide.database import create_engine_for_path
from tvguide.routers import main_router
from tvguide.services.feed_fetcher import FeedFetcher
from tvguide.services.feed_state import FeedStateStore
from tvguide.services.guide_store import GuideStore
from tvguide.services.scheduler_service import GuideScheduler


logger = logging.getLogger(__name__)


def build_components(settings: Settings) -> tuple[GuideStore, FeedStateStore, FeedFetcher, GuideScheduler]:
    """Construct the single store, state store, fetcher and scheduler for this process"""
    engine = create_engine_for_path(
        settings.database_path,
        journal_mode=settings.sqlite_journal_mode,
        synchronous=settings.sqlite_synchronous,
        cache_size_kb=settings.sqlite_cache_size_kb,
        busy_timeout_sec=settings.sqlite_busy_timeout_sec,
    )
    store = GuideStore(
        engine,
        retention_past=timedelta(hours=settings.retention_past_hours),
        retention_future=timedelta(days=settings.retention_future_days),
    )
    state_store = FeedStateStore(settings.feed_state_path, default_feed_url=settings.feed_url)
    fetcher = FeedFetcher(
        store,
        state_store,
        request_timeout=settings.feed_request_timeout_sec,
        parse_timeout=settings.feed_parse_timeout_sec,
    )
    scheduler = GuideScheduler(
        fetcher,
        cron=settings.feed_fetch_cron,
        misfire_grace_sec=settings.feed_fetch_misfire_grace_sec,
        shutdown_grace_sec=settings.shutdown_grace_sec,
    )
    return store, state_store, fetcher, scheduler


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create the API application; components are wired in the lifespan"""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan context manager for startup and shutdown events"""
        active_settings = settings or get_settings()
        setup_logging(active_settings.log_level)
        active_settings.log_summary()
        logger.info("Starting TV Guide Service...")

        store, state_store, fetcher, scheduler = build_components(active_settings)
        try:
            await store.migrate()
            if active_settings.scheduler_enabled:
                scheduler.start()
        except Exception as e:
            logger.error(f"Failed to start TV Guide Service: {e}", exc_info=True)
            await store.close()
            raise

        app.state.guide_store = store
        app.state.feed_state_store = state_store
        app.state.feed_fetcher = fetcher
        app.state.guide_scheduler = scheduler
        logger.info("TV Guide Service started successfully")

        yield

        logger.info("Shutting down TV Guide Service...")
        try:
            await scheduler.shutdown()
        except Exception as e:
            logger.error(f"Error during scheduler shutdown: {e}", exc_info=True)
        await store.close()
        logger.info("TV Guide Service stopped")

    app = FastAPI(
        title="TV Guide Service",
        version="0.1.0",
        lifespan=lifespan
    )

    app.include_router(main_router)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    return app


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Log validation errors with details"""
    logger.error(f"Validation error for {request.method} {request.url.path}")
    logger.error(f"Validation details: {exc.errors()}")

    # Create a properly serializable error response
    errors = []
    for error in exc.errors():
        error_dict = {
            "type": error.get("type"),
            "loc": error.get("loc"),
            "msg": error.get("msg"),
            "input": str(error.get("input", ""))[:100]
        }
        errors.append(error_dict)

    return JSONResponse(
        status_code=422,
        content={
            "detail": errors
        }
    )


app = create_app()
