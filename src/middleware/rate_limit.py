"""Rate limiting middleware using SlowAPI."""

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from src.config import get_settings

settings = get_settings()


def get_session_or_ip(request: Request) -> str:
    """
    Get rate limit key from the studio session id or IP address.

    Uses the session id from the path when present, falls back to IP address.
    """
    session_id = request.path_params.get("session_id")
    if session_id:
        return f"session:{session_id}"

    return f"ip:{get_remote_address(request)}"


limiter = Limiter(
    key_func=get_session_or_ip,
    storage_uri=settings.rate_limit_storage_uri,
    strategy="fixed-window",
)


def rate_limit_transforms():
    """Rate limit for AI transform endpoints."""
    return limiter.limit(
        f"{settings.rate_limit_per_minute}/minute",
        key_func=get_session_or_ip,
    )


def rate_limit_publish():
    """Rate limit for the publish endpoint."""
    return limiter.limit(
        f"{max(1, settings.rate_limit_per_minute // 6)}/minute",
        key_func=get_session_or_ip,
    )
