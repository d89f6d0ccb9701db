from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request

from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from xmltv_epg import __version__
from xmltv_epg.config import Settings, get_settings, setup_logging
from xmltv_epg.services.guide_pipeline import ClientFactory
from xmltv_epg.services.guide_service import GuideService
from xmltv_epg.services.scheduler_service import GuideScheduler

from xmltv_epg.routers import main_router


logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    *,
    client_factory: ClientFactory | None = None,
    enable_scheduler: bool = True,
) -> FastAPI:
    """
    Build the FastAPI application

    Args:
        settings: Explicit settings; loaded from the environment at startup when omitted
        client_factory: Provider client factory override (tests)
        enable_scheduler: Start the periodic refresh job

    Returns:
        Configured application
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan context manager for startup and shutdown events"""
        app_settings = settings or get_settings()
        setup_logging(app_settings.log_level)

        logger.info("Starting XMLTV EPG Service...")
        app_settings.log_summary()

        guide_service = GuideService(app_settings, client_factory=client_factory)
        app.state.settings = app_settings
        app.state.guide_service = guide_service
        app.state.scheduler = None

        if enable_scheduler:
            logger.info("Starting scheduler...")
            scheduler = GuideScheduler(
                guide_service,
                app_settings.epg_refresh_cron,
                app_settings.epg_refresh_misfire_grace_sec,
            )
            scheduler.start()
            app.state.scheduler = scheduler

        logger.info("XMLTV EPG Service started successfully")

        yield

        logger.info("Shutting down XMLTV EPG Service...")
        if app.state.scheduler is not None:
            try:
                app.state.scheduler.shutdown()
            except Exception as e:
                logger.error(f"Error during scheduler shutdown: {e}", exc_info=True)
        logger.info("XMLTV EPG Service stopped")

    app = FastAPI(
        title="XMLTV EPG Service",
        version=__version__,
        lifespan=lifespan
    )

    app.include_router(main_router)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Log validation errors with details"""
        logger.error(f"Validation error for {request.method} {request.url.path}")
        logger.error(f"Validation details: {exc.errors()}")

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

    return app


app = create_app()
