from pydantic import BaseModel, Field


class ErrorDetail(BaseModel):
    """Standard error detail"""
    code: str = Field(..., description="Error code (e.g., 'REFRESH_FAILED', 'UNAUTHORIZED')")
    message: str = Field(..., description="Human-readable error message")
    context: dict | None = Field(None, description="Additional context about the error")


class StandardErrorResponse(BaseModel):
    """Standardized error response for all endpoints"""
    status: str = Field("error", description="Status indicator")
    timestamp: str = Field(..., description="ISO8601 timestamp of error")
    error: ErrorDetail = Field(..., description="Error details")


class CacheStatus(BaseModel):
    """State of the guide cache"""
    cache_age_hours: float | None = Field(None, description="Age of the cached guide, null when absent")
    cache_fresh: bool
    refreshing: bool
    last_refresh: str | None = Field(None, description="ISO8601 completion time of the last successful refresh")
    last_error: str | None = None


class HealthResponse(BaseModel):
    """Health check payload"""
    status: str
    scheduler_running: bool
    next_refresh: str | None
    cache: CacheStatus


class RefreshResponse(BaseModel):
    """Summary of a completed refresh"""
    status: str
    lineup: str | None = Field(None, description="Lineup used, null when the static channel map was used")
    stations_requested: int
    channels: int
    listings: int
    channels_only: bool
    bytes: int
    started_at: str
    completed_at: str
    duration_seconds: float
