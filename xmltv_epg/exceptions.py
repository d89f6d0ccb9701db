"""
Error taxonomy for the guide pipeline.

Transport and authentication errors abort a refresh. Assembly errors are
per-record and are resolved by the assembler with defaults. Cache errors are
logged by the caller and never abort a refresh on their own.
"""


class EPGServiceError(Exception):
    """Base class for all guide service errors"""
    pass


class AuthError(EPGServiceError):
    """Raised when the provider rejects the credential exchange"""
    pass


class ProviderError(EPGServiceError):
    """Raised when a provider call fails (non-2xx, transport failure or timeout)"""

    def __init__(self, status: int | None, message: str, code: int | None = None):
        self.status = status
        self.message = message
        self.code = code
        super().__init__(f"Provider error ({status if status is not None else 'transport'}): {message}")


class AssemblyError(EPGServiceError):
    """Raised when a provider record has an unexpected shape"""
    pass


class CacheIOError(EPGServiceError):
    """Raised when reading or writing a cache/token file fails"""
    pass


__all__ = [
    "EPGServiceError",
    "AuthError",
    "ProviderError",
    "AssemblyError",
    "CacheIOError",
]
