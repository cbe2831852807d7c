"""
Tests for main API endpoints.

Integration tests for the FastAPI application with scripted provider
adapters and an in-memory key store.
"""

import pytest
from fastapi.testclient import TestClient

from mvp_planner_server.config import Settings
from mvp_planner_server.exceptions import (
    ProviderValidationError,
    QuotaExceededError,
    TransientProviderError,
)
from mvp_planner_server.key_store import InMemoryKeyStore
from mvp_planner_server.main_api import create_app

from tests.helpers import ScriptedAdapter

GEM_1 = "gem-key-alpha-0001"
GEM_2 = "gem-key-bravo-0002"
UNS_1 = "uns-key-charlie-0003"
ADMIN_KEY = "admin-key-for-tests"
ADMIN = {"X-Admin-Key": ADMIN_KEY}


def keyed_settings(**overrides) -> Settings:
    values = {
        "gemini_api_keys": f"{GEM_1},{GEM_2}",
        "unsplash_access_key": UNS_1,
        "key_reset_enabled": False,
        "admin_api_key": ADMIN_KEY,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def make_api():
    """Start an app with scripted adapters; returns (client, content, image)"""
    clients = []

    def _make(content=None, image=None, app_settings=None, **client_kwargs):
        content_adapter = ScriptedAdapter(content or {}, name="content-gen")
        image_adapter = ScriptedAdapter(image or {}, name="image-search")
        app = create_app(
            app_settings or keyed_settings(),
            store=InMemoryKeyStore(),
            adapters={"content-gen": content_adapter, "image-search": image_adapter},
        )
        client = TestClient(app, **client_kwargs)
        client.__enter__()
        clients.append(client)
        return client, content_adapter, image_adapter

    yield _make

    for client in clients:
        client.__exit__(None, None, None)


class TestRootEndpoint:
    """Test root endpoint."""

    def test_root_endpoint(self, make_api):
        """Test root endpoint returns message."""
        client, _, _ = make_api()
        response = client.get("/")
        assert response.status_code == 200
        assert "API is running" in response.json()["message"]


class TestGenerateEndpoint:
    """Test POST /api/v1/mvp/generate."""

    def test_generated_plan(self, make_api, sample_plan_request, sample_plan_text):
        """Test a provider plan is returned undegraded."""
        client, content, _ = make_api(content={GEM_1: sample_plan_text, GEM_2: sample_plan_text})

        response = client.post("/api/v1/mvp/generate", json=sample_plan_request)

        assert response.status_code == 200
        body = response.json()
        assert body["degraded"] is False
        assert body["plan"]["coreFeatures"] == ["Meal listings", "Order scheduling", "Ratings"]
        assert body["plan"]["idea"] == sample_plan_request["idea"]
        assert content.calls == [GEM_1]

    def test_quota_error_rotates_and_counts_second_key(self, make_api, sample_plan_request, sample_plan_text):
        """Test key A over quota, key B serves and only B is counted."""
        client, content, _ = make_api(content={
            GEM_1: QuotaExceededError("quota", provider="content-gen", status_code=503),
            GEM_2: sample_plan_text,
        })

        response = client.post("/api/v1/mvp/generate", json=sample_plan_request)
        assert response.status_code == 200
        assert response.json()["degraded"] is False
        assert content.calls == [GEM_1, GEM_2]

        stats = client.get("/api/v1/keys/stats", headers=ADMIN).json()
        content_stats = next(s for s in stats if s["provider"] == "content-gen")
        assert [k["daily_usage"] for k in content_stats["keys"]] == [0, 1]
        assert content_stats["totalUsage"] == 1

    def test_degraded_plan_without_keys(self, make_api, sample_plan_request):
        """Test an unconfigured provider serves the template."""
        client, content, _ = make_api(app_settings=Settings(key_reset_enabled=False))

        response = client.post("/api/v1/mvp/generate", json=sample_plan_request)

        assert response.status_code == 200
        body = response.json()
        assert body["degraded"] is True
        assert body["plan"]["coreFeatures"][0].startswith("Core functionality for:")
        assert content.calls == []

    def test_provider_validation_error_is_502(self, make_api, sample_plan_request):
        """Test rejected provider requests map to 502."""
        client, _, _ = make_api(content={
            GEM_1: ProviderValidationError("prompt blocked", provider="content-gen", status_code=400),
            GEM_2: "unused",
        })

        response = client.post("/api/v1/mvp/generate", json=sample_plan_request)

        assert response.status_code == 502
        body = response.json()
        assert body["detail"] == "prompt blocked"
        assert body["provider"] == "content-gen"
        assert body["requestId"] == response.headers["X-Request-ID"]

    def test_transient_error_is_503(self, make_api, sample_plan_request):
        """Test provider timeouts map to 503."""
        client, _, _ = make_api(content={
            GEM_1: TransientProviderError("timed out", provider="content-gen"),
            GEM_2: "unused",
        })

        response = client.post("/api/v1/mvp/generate", json=sample_plan_request)
        assert response.status_code == 503

    def test_unexpected_error_is_500(self, make_api, sample_plan_request):
        """Test unhandled errors return a generic 500."""
        client, _, _ = make_api(
            content={GEM_1: RuntimeError("boom"), GEM_2: "unused"},
            raise_server_exceptions=False,
        )

        response = client.post("/api/v1/mvp/generate", json=sample_plan_request)

        assert response.status_code == 500
        assert response.json()["detail"] == "Internal server error"
        assert "boom" not in response.text

    def test_invalid_payload_is_422(self, make_api, sample_plan_request):
        """Test request validation errors."""
        client, content, _ = make_api()
        sample_plan_request["idea"] = "short"

        response = client.post("/api/v1/mvp/generate", json=sample_plan_request)

        assert response.status_code == 422
        assert content.calls == []


class TestImageEndpoint:
    """Test GET /api/v1/images."""

    def test_provider_image(self, make_api):
        """Test a provider image URL."""
        client, _, image = make_api(image={UNS_1: "https://images.unsplash.com/photo-1"})

        response = client.get("/api/v1/images", params={"topic": "Fitness coaching", "width": 800, "height": 400})

        assert response.status_code == 200
        assert response.json() == {
            "topic": "Fitness coaching",
            "url": "https://images.unsplash.com/photo-1",
            "degraded": False,
        }
        assert image.requests[0].query == "fitness"

    def test_static_image_when_rate_limited(self, make_api):
        """Test the only key over quota yields the static URL."""
        client, _, _ = make_api(image={UNS_1: QuotaExceededError("Rate Limit Exceeded", provider="image-search")})

        response = client.get("/api/v1/images", params={"topic": "Fitness coaching"})

        body = response.json()
        assert body["degraded"] is True
        assert body["url"] == "https://images.unsplash.com/1200x600/?fitness&auto=format&fit=crop&q=80"

    def test_topic_required(self, make_api):
        """Test topic is mandatory."""
        client, _, _ = make_api()
        assert client.get("/api/v1/images").status_code == 422

    def test_size_bounds(self, make_api):
        """Test width and height limits."""
        client, _, _ = make_api()
        response = client.get("/api/v1/images", params={"topic": "coffee", "width": 50})
        assert response.status_code == 422


class TestKeyStatsEndpoint:
    """Test GET /api/v1/keys/stats."""

    def test_stats_for_every_provider(self, make_api):
        """Test seeded keys are reported per provider."""
        client, _, _ = make_api()

        stats = client.get("/api/v1/keys/stats", headers=ADMIN).json()

        by_provider = {s["provider"]: s for s in stats}
        assert by_provider["content-gen"]["total"] == 2
        assert by_provider["content-gen"]["active"] == 2
        assert by_provider["image-search"]["total"] == 1
        assert by_provider["image-search"]["quota"] == 50

    def test_secrets_never_exposed(self, make_api):
        """Test stats only contain masked secrets."""
        client, _, _ = make_api()

        response = client.get("/api/v1/keys/stats", headers=ADMIN)

        for secret in (GEM_1, GEM_2, UNS_1):
            assert secret not in response.text
        assert "gem-key-..." in response.text

    def test_requires_admin_key(self, make_api):
        """Test stats are closed to anonymous and wrong-key callers."""
        client, _, _ = make_api()

        assert client.get("/api/v1/keys/stats").status_code == 401
        wrong = client.get("/api/v1/keys/stats", headers={"X-Admin-Key": "guess"})
        assert wrong.status_code == 401
        assert GEM_1[:8] not in wrong.text

    def test_disabled_without_admin_key(self, make_api):
        """Test stats are unavailable when no admin key is configured."""
        client, _, _ = make_api(app_settings=keyed_settings(admin_api_key=None))

        response = client.get("/api/v1/keys/stats", headers=ADMIN)
        assert response.status_code == 403


class TestBlogEndpoint:
    """Test POST /api/v1/blog/generate."""

    def test_generated_post(self, make_api, sample_post_text):
        """Test a provider post is returned undegraded."""
        client, content, _ = make_api(content={GEM_1: sample_post_text, GEM_2: sample_post_text})

        response = client.post(
            "/api/v1/blog/generate",
            json={"topic": "Validating startup ideas"},
            headers=ADMIN,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["degraded"] is False
        assert body["post"]["slug"] == "validate-before-you-build"
        assert body["post"]["metaTitle"] == "Validate Before You Build"
        assert content.calls == [GEM_1]

    def test_templated_post_without_keys(self, make_api):
        """Test an unconfigured provider serves the templated post."""
        client, content, _ = make_api(
            app_settings=Settings(key_reset_enabled=False, admin_api_key=ADMIN_KEY)
        )

        response = client.post(
            "/api/v1/blog/generate",
            json={
                "topic": "Choosing a Tech Stack",
                "affiliateLinks": [{"text": "Hosting", "url": "https://host.example"}],
            },
            headers=ADMIN,
        )

        body = response.json()
        assert body["degraded"] is True
        assert body["post"]["slug"] == "choosing-a-tech-stack"
        assert "[Hosting](https://host.example)" in body["post"]["content"]
        assert content.calls == []

    def test_requires_admin_key(self, make_api):
        """Test anonymous callers cannot spend provider quota on posts."""
        client, content, _ = make_api()

        response = client.post("/api/v1/blog/generate", json={"topic": "Validating startup ideas"})

        assert response.status_code == 401
        assert content.calls == []

    def test_invalid_affiliate_link(self, make_api):
        """Test non-http links are rejected."""
        client, _, _ = make_api()

        response = client.post(
            "/api/v1/blog/generate",
            json={"topic": "Validating ideas", "affiliateLinks": [{"text": "x", "url": "javascript:alert(1)"}]},
            headers=ADMIN,
        )
        assert response.status_code == 422


class TestHealthEndpoints:
    """Test health, readiness, metrics and version endpoints."""

    def test_health(self, make_api):
        """Test liveness."""
        client, _, _ = make_api()
        response = client.get("/api/v1/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_ready(self, make_api):
        """Test readiness reports store and provider state."""
        client, _, _ = make_api(app_settings=keyed_settings(unsplash_access_key=None))

        response = client.get("/api/v1/ready")

        assert response.status_code == 200
        checks = response.json()["checks"]
        assert checks["key_store"]["status"] == "healthy"
        assert checks["providers"]["content-gen"]["status"] == "healthy"
        assert checks["providers"]["image-search"]["status"] == "degraded"

    def test_metrics_count_invocations(self, make_api, sample_plan_request):
        """Test provider counters appear in metrics."""
        client, _, _ = make_api(app_settings=Settings(key_reset_enabled=False))
        client.post("/api/v1/mvp/generate", json=sample_plan_request)

        metrics = client.get("/api/v1/metrics").json()

        assert metrics["providers"]["content-gen"]["invocations"] == 1
        assert metrics["providers"]["content-gen"]["fallbacks"] == 1
        assert metrics["metrics"]["requests"]["total"] >= 2
        assert metrics["key_reset"]["is_running"] is False

    def test_scheduler_runs_when_enabled(self, make_api):
        """Test the reset scheduler starts with the app."""
        client, _, _ = make_api(app_settings=keyed_settings(key_reset_enabled=True))

        metrics = client.get("/api/v1/metrics").json()
        assert metrics["key_reset"]["is_running"] is True

    def test_version(self, make_api):
        """Test version info."""
        client, _, _ = make_api()

        body = client.get("/api/v1/version").json()

        assert body["service"] == "mvp-planner"
        assert body["features"]["daily_quota"] == 50
        assert body["features"]["max_rotations"] == 1


class TestMiddleware:
    """Test request id and security headers."""

    def test_request_id_generated(self, make_api):
        """Test every response carries a request id."""
        client, _, _ = make_api()
        response = client.get("/api/v1/health")
        assert response.headers["X-Request-ID"]

    def test_request_id_propagated(self, make_api):
        """Test a caller-supplied request id is echoed back."""
        client, _, _ = make_api()
        response = client.get("/api/v1/health", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"

    def test_security_headers(self, make_api):
        """Test security headers are set."""
        client, _, _ = make_api()
        response = client.get("/api/v1/health")
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"
