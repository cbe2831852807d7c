"""
Unit tests for admin authentication.
Tests key comparison and the FastAPI guard dependency.
"""
from types import SimpleNamespace
from unittest.mock import Mock

import pytest
from fastapi import HTTPException

from mvp_planner_server.auth import require_admin, verify_admin_key
from mvp_planner_server.config import Settings


def make_request(admin_api_key):
    """Request whose app carries services with the given admin key"""
    services = SimpleNamespace(settings=Settings(admin_api_key=admin_api_key))
    request = Mock()
    request.app.state.services = services
    request.url.path = "/api/v1/keys/stats"
    request.client.host = "127.0.0.1"
    return request


class TestVerifyAdminKey:
    """Test suite for key comparison"""

    def test_matching_key(self):
        """Test equal keys verify"""
        assert verify_admin_key("s3cret-admin", "s3cret-admin") is True

    def test_wrong_key(self):
        """Test different keys are rejected"""
        assert verify_admin_key("guess", "s3cret-admin") is False

    def test_prefix_not_enough(self):
        """Test a prefix of the key is rejected"""
        assert verify_admin_key("s3cret", "s3cret-admin") is False

    def test_missing_values(self):
        """Test empty keys never verify"""
        assert verify_admin_key("", "s3cret-admin") is False
        assert verify_admin_key(None, "s3cret-admin") is False
        assert verify_admin_key("s3cret-admin", None) is False


class TestRequireAdmin:
    """Test suite for the admin dependency"""

    @pytest.mark.asyncio
    async def test_valid_key_passes(self):
        """Test the configured key is accepted"""
        assert await require_admin(make_request("s3cret-admin"), "s3cret-admin") is None

    @pytest.mark.asyncio
    async def test_missing_key_is_401(self):
        """Test requests without the header are rejected"""
        with pytest.raises(HTTPException) as exc_info:
            await require_admin(make_request("s3cret-admin"), None)

        assert exc_info.value.status_code == 401
        assert exc_info.value.detail == "Missing admin key"

    @pytest.mark.asyncio
    async def test_wrong_key_is_401(self):
        """Test a wrong key is rejected"""
        with pytest.raises(HTTPException) as exc_info:
            await require_admin(make_request("s3cret-admin"), "guess")

        assert exc_info.value.status_code == 401
        assert exc_info.value.detail == "Invalid admin key"

    @pytest.mark.asyncio
    async def test_disabled_without_configured_key(self):
        """Test admin routes are closed when no key is configured"""
        with pytest.raises(HTTPException) as exc_info:
            await require_admin(make_request(None), "anything")

        assert exc_info.value.status_code == 403
