from datetime import datetime, timezone
from typing import Annotated
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, Response

from xmltv_epg import __version__
from xmltv_epg.config import Settings
from xmltv_epg.dependencies import (
    get_app_settings,
    get_guide_service,
    get_scheduler,
    require_api_key,
)
from xmltv_epg.exceptions import EPGServiceError
from xmltv_epg.schemas import (
    CacheStatus,
    ErrorDetail,
    HealthResponse,
    RefreshResponse,
    StandardErrorResponse,
)
from xmltv_epg.services.guide_service import GuideService
from xmltv_epg.services.scheduler_service import GuideScheduler


logger = logging.getLogger(__name__)

XMLTV_MEDIA_TYPE = "application/xml; charset=UTF-8"

main_router = APIRouter()


def _error_response(status_code: int, code: str, message: str) -> JSONResponse:
    body = StandardErrorResponse(
        timestamp=datetime.now(timezone.utc).isoformat(),
        error=ErrorDetail(code=code, message=message),
    )
    return JSONResponse(status_code=status_code, content=body.model_dump())


@main_router.get("/")
async def root(
    scheduler: Annotated[GuideScheduler | None, Depends(get_scheduler)]
) -> dict:
    """Root endpoint with service information"""
    next_run = scheduler.get_next_run_time() if scheduler else None

    return {
        "service": "XMLTV EPG Service",
        "version": __version__,
        "next_scheduled_refresh": next_run.isoformat() if next_run else None,
        "endpoints": {
            "xmltv": "/xmltv?key=... - XMLTV guide document",
            "refresh": "/refresh?key=... - Force a guide rebuild (POST)",
            "health": "/health - Health check"
        }
    }


@main_router.get("/health", response_model=HealthResponse)
async def health_check(
    guide_service: Annotated[GuideService, Depends(get_guide_service)],
    scheduler: Annotated[GuideScheduler | None, Depends(get_scheduler)]
) -> HealthResponse:
    """Health check endpoint"""
    next_run = scheduler.get_next_run_time() if scheduler else None
    return HealthResponse(
        status="ok",
        scheduler_running=scheduler.running if scheduler else False,
        next_refresh=next_run.isoformat() if next_run else None,
        cache=CacheStatus(**await guide_service.status()),
    )


@main_router.get("/xmltv", dependencies=[Depends(require_api_key)])
@main_router.get("/epg/xmltv-lr.php", dependencies=[Depends(require_api_key)], include_in_schema=False)
async def get_xmltv(
    guide_service: Annotated[GuideService, Depends(get_guide_service)],
    settings: Annotated[Settings, Depends(get_app_settings)]
) -> Response:
    """
    Serve the XMLTV guide

    Returns the cached document while it is fresh, otherwise rebuilds it first.
    """
    try:
        content = await guide_service.get_document()
    except EPGServiceError as exc:
        logger.error(f"Failed to serve XMLTV: {exc}")
        return _error_response(502, "REFRESH_FAILED", "Failed to generate XMLTV feed")
    except Exception as exc:
        logger.error(f"Unexpected error serving XMLTV: {exc}", exc_info=True)
        return _error_response(500, "INTERNAL_ERROR", "Failed to generate XMLTV feed")

    return Response(
        content=content,
        media_type=XMLTV_MEDIA_TYPE,
        headers={"Cache-Control": f"public, max-age={settings.cache_max_age_seconds}"},
    )


@main_router.post(
    "/refresh",
    dependencies=[Depends(require_api_key)],
    response_model=RefreshResponse,
    responses={502: {"model": StandardErrorResponse}},
)
async def trigger_refresh(
    guide_service: Annotated[GuideService, Depends(get_guide_service)]
):
    """
    Manually trigger a guide rebuild

    This will fetch lineups, schedules and programs and replace the cached guide
    """
    logger.info("Manual guide refresh triggered via API")
    try:
        result = await guide_service.refresh()
    except EPGServiceError as exc:
        logger.error(f"Manual refresh failed: {exc}")
        return _error_response(502, "REFRESH_FAILED", "Failed to refresh guide")

    return RefreshResponse(**result.to_dict())
