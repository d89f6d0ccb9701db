"""
Dependency Injection Configuration

Services are created once in the application lifespan and kept on
``app.state``; routes receive them through FastAPI dependencies instead of
module-level globals, so tests can build an app around their own instances.
"""
import logging
import secrets
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Query, Request, status

from xmltv_epg.config import Settings
from xmltv_epg.services.guide_service import GuideService
from xmltv_epg.services.scheduler_service import GuideScheduler


logger = logging.getLogger(__name__)


def get_app_settings(request: Request) -> Settings:
    """Settings the application was created with."""
    return request.app.state.settings


def get_guide_service(request: Request) -> GuideService:
    """Guide service owned by the application."""
    return request.app.state.guide_service


def get_scheduler(request: Request) -> GuideScheduler | None:
    """Refresh scheduler, or None when scheduling is disabled."""
    return getattr(request.app.state, "scheduler", None)


def require_api_key(
    settings: Annotated[Settings, Depends(get_app_settings)],
    key: Annotated[str | None, Query(description="API key")] = None,
    x_api_key: Annotated[str | None, Header(description="API key")] = None,
) -> None:
    """
    Reject requests without the configured API key.

    The key may be passed as the ``key`` query parameter or the ``X-API-Key`` header.

    Raises:
        HTTPException: 401 if the key is missing or wrong
    """
    supplied = key if key is not None else x_api_key
    if supplied is None or not secrets.compare_digest(supplied.encode("utf-8"), settings.api_key.encode("utf-8")):
        logger.warning("Rejected request with missing or invalid API key")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
