"""
Inbound rate limiting using slowapi.

Protects the provider quota from a single client: plan generation is limited
per client address, so one visitor cannot drain every key in the pool.

Security features:
- 429 Too Many Requests responses
- Retry-After headers
- Limits configurable via environment variables
"""

from fastapi import Request, status
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from mvp_planner_server.config import settings


def get_client_identifier(request: Request) -> str:
    """
    Identify the client for rate limiting.

    Checks:
    1. First address in X-Forwarded-For, only when the socket peer is a
       configured trusted proxy
    2. Falls back to the socket peer address

    Returns:
        Client identifier prefixed with its source
    """
    peer = get_remote_address(request)

    if peer in settings.trusted_proxy_list:
        forwarded = request.headers.get("X-Forwarded-For", "")
        first = forwarded.split(",")[0].strip()
        if first:
            return f"fwd:{first}"

    return f"ip:{peer}"


limiter = Limiter(
    key_func=get_client_identifier,
    storage_uri=settings.rate_limit_storage_uri,
    enabled=settings.rate_limit_enabled,
)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """
    Custom handler for rate limit exceeded errors.

    Returns JSON response with:
    - Error message
    - Retry-After header
    - The limit that was hit
    """
    retry_after = getattr(exc, "retry_after", None) or 60
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={
            "error": "Rate limit exceeded",
            "message": f"Too many requests. Please retry after {retry_after} seconds",
            "retry_after": retry_after,
            "limit": str(exc.detail),
        },
        headers={
            "Retry-After": str(retry_after),
        }
    )


def generate_endpoint_limit():
    """Rate limit for plan generation endpoints."""
    return limiter.limit(settings.rate_limit_generate)


def apply_rate_limits(app) -> None:
    """
    Apply rate limiting to FastAPI application.

    Sets up the 429 handler and exposes the limiter on app.state, where
    slowapi's decorators look it up.
    """
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.state.limiter = limiter
