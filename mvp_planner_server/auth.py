"""
Admin authentication for key and content management endpoints.

Admin routes require the X-Admin-Key header to match ADMIN_API_KEY.
When no admin key is configured the routes are disabled.
"""
import hashlib
import secrets
from typing import Optional

from fastapi import HTTPException, Request, Security, status
from fastapi.security import APIKeyHeader

from mvp_planner_server.logging_config import get_logger

logger = get_logger(__name__)

# Admin key header scheme
admin_key_header = APIKeyHeader(name="X-Admin-Key", auto_error=False)


def _hash_key(raw_key: str) -> bytes:
    """Hash a key so comparison time does not depend on its length"""
    return hashlib.sha256(raw_key.encode("utf-8")).digest()


def verify_admin_key(provided: Optional[str], expected: Optional[str]) -> bool:
    """
    Compare a presented admin key with the configured one.

    Args:
        provided: Key from the request header
        expected: Configured admin key

    Returns:
        True if both are set and equal
    """
    if not provided or not expected:
        return False
    return secrets.compare_digest(_hash_key(provided), _hash_key(expected))


# FastAPI dependency
async def require_admin(
    request: Request,
    admin_key: Optional[str] = Security(admin_key_header),
) -> None:
    """
    FastAPI dependency guarding admin endpoints.

    Usage:
        @router.get("/keys/stats", dependencies=[Depends(require_admin)])

    Raises:
        HTTPException: 403 when admin access is disabled, 401 for a
            missing or wrong key
    """
    expected = request.app.state.services.settings.admin_api_key
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin endpoints are disabled",
        )

    if not admin_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing admin key",
        )

    if not verify_admin_key(admin_key, expected):
        logger.warning(
            "admin_auth_failed",
            path=request.url.path,
            client=request.client.host if request.client else None,
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid admin key",
        )
