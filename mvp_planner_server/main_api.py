"""
FastAPI application for MVP plan generation with rotating provider keys.

Endpoints:
- POST /api/v1/mvp/generate: AI-generated MVP plan (template fallback)
- GET  /api/v1/images: topic image URL (static fallback)
- POST /api/v1/blog/generate: AI-written blog post (template fallback), admin only
- GET  /api/v1/keys/stats: per-provider key usage, secrets masked, admin only
- /api/v1/health, /ready, /metrics, /version (see health.py)
"""

import time
import uuid
from contextlib import asynccontextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from datetime import timedelta
from typing import Dict, List, Optional

import httpx
from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse

from mvp_planner_server.auth import require_admin
from mvp_planner_server.blog_generator import BlogPostGenerator
from mvp_planner_server.config import Settings, settings
from mvp_planner_server.exceptions import (
    ProviderError,
    ProviderValidationError,
    TransientProviderError,
)
from mvp_planner_server.fallback import fallback_content, fallback_image_url
from mvp_planner_server.health import metrics
from mvp_planner_server.health import router as health_router
from mvp_planner_server.image_service import ImageService
from mvp_planner_server.key_manager import (
    KeySelector,
    UsageAccountant,
    get_key_stats,
    list_masked_keys,
    seed_keys_from_settings,
)
from mvp_planner_server.key_store import KeyStore, create_key_store
from mvp_planner_server.logging_config import (
    get_logger,
    log_exception,
    log_request_end,
    log_request_start,
    setup_logging,
)
from mvp_planner_server.models import (
    BlogPostRequest,
    BlogPostResponse,
    ImageResponse,
    KeyStats,
    MvpPlanRequest,
    MvpPlanResponse,
)
from mvp_planner_server.mvp_generator import MvpPlanGenerator
from mvp_planner_server.providers import (
    CONTENT_GEN,
    IMAGE_SEARCH,
    PROVIDERS,
    GeminiContentProvider,
    ProviderAdapter,
    UnsplashImageProvider,
    create_http_client,
)
from mvp_planner_server.rate_limiting import apply_rate_limits, generate_endpoint_limit
from mvp_planner_server.rotating_client import RotatingClient
from mvp_planner_server.scheduler import KeyResetScheduler

setup_logging(
    log_level=settings.log_level,
    log_format=settings.log_format,
    log_file=settings.log_file_path if settings.log_file_enabled else None,
    log_max_bytes=settings.log_file_max_size,
    log_backup_count=settings.log_file_backup_count,
)

logger = get_logger(__name__)

# Context variable for request ID
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


@dataclass
class Services:
    """Everything a request handler needs, built once per application."""
    settings: Settings
    store: KeyStore
    http_client: Optional[httpx.AsyncClient]
    selector: KeySelector
    accountant: UsageAccountant
    rotating_client: RotatingClient
    plan_generator: MvpPlanGenerator
    blog_generator: BlogPostGenerator
    image_service: ImageService
    scheduler: KeyResetScheduler


async def build_services(
    app_settings: Settings,
    store: Optional[KeyStore] = None,
    adapters: Optional[Dict[str, ProviderAdapter]] = None,
) -> Services:
    """
    Wire the key store, rotation and generators together.

    Args:
        app_settings: Settings to build from
        store: Key store to use instead of the configured one
        adapters: Provider adapters to use instead of the HTTP ones

    Returns:
        Services with keys seeded from the configured secrets
    """
    if store is None:
        store = create_key_store(app_settings)
    await seed_keys_from_settings(store, app_settings)

    http_client = None
    if adapters is None:
        http_client = create_http_client(
            connect_retries=app_settings.provider_connect_retries,
            timeout=max(app_settings.gemini_timeout, app_settings.unsplash_timeout),
        )
        adapters = {
            CONTENT_GEN: GeminiContentProvider(
                base_url=app_settings.gemini_base_url,
                model=app_settings.gemini_model,
                timeout=app_settings.gemini_timeout,
                client=http_client,
            ),
            IMAGE_SEARCH: UnsplashImageProvider(
                base_url=app_settings.unsplash_base_url,
                timeout=app_settings.unsplash_timeout,
                client=http_client,
            ),
        }

    selector = KeySelector(
        store,
        quota=app_settings.key_daily_quota,
        default_keys=app_settings.default_keys(),
    )
    accountant = UsageAccountant(
        store,
        quota=app_settings.key_daily_quota,
        reset_interval=timedelta(hours=app_settings.key_reset_interval_hours),
    )
    rotating_client = RotatingClient(
        selector,
        accountant,
        adapters=adapters,
        fallbacks={CONTENT_GEN: fallback_content, IMAGE_SEARCH: fallback_image_url},
        max_rotations=app_settings.key_max_rotations,
    )

    return Services(
        settings=app_settings,
        store=store,
        http_client=http_client,
        selector=selector,
        accountant=accountant,
        rotating_client=rotating_client,
        plan_generator=MvpPlanGenerator(rotating_client),
        blog_generator=BlogPostGenerator(rotating_client),
        image_service=ImageService(rotating_client),
        scheduler=KeyResetScheduler(
            accountant,
            providers=PROVIDERS,
            poll_seconds=app_settings.key_reset_poll_seconds,
        ),
    )


async def shutdown_services(services: Services) -> None:
    await services.scheduler.stop()
    if services.http_client is not None:
        await services.http_client.aclose()
    await services.store.close()


router = APIRouter(prefix="/api/v1", tags=["planner"])


def get_services(request: Request) -> Services:
    return request.app.state.services


@router.post("/mvp/generate", response_model=MvpPlanResponse)
@generate_endpoint_limit()
async def generate_mvp_plan(request: Request, payload: MvpPlanRequest):
    """
    Generate an MVP plan for a startup idea.

    Returns the AI plan, or the templated plan with degraded=true when every
    key is exhausted or the provider output could not be parsed.
    """
    services = get_services(request)
    result = await services.plan_generator.generate(payload)

    logger.info(
        "mvp_plan_generated",
        industry=payload.industry,
        degraded=result.degraded,
        request_id=request_id_var.get(""),
    )
    return MvpPlanResponse(plan=result.plan, degraded=result.degraded)


@router.post(
    "/blog/generate",
    response_model=BlogPostResponse,
    dependencies=[Depends(require_admin)],
)
@generate_endpoint_limit()
async def generate_blog_post(request: Request, payload: BlogPostRequest):
    """
    Generate a blog post for a topic. Admin only.

    Returns the AI post, or the templated post with degraded=true.
    """
    services = get_services(request)
    result = await services.blog_generator.generate(payload)

    logger.info(
        "blog_post_generated",
        slug=result.post.slug,
        degraded=result.degraded,
        request_id=request_id_var.get(""),
    )
    return BlogPostResponse(post=result.post, degraded=result.degraded)


@router.get("/images", response_model=ImageResponse)
async def get_image(
    request: Request,
    topic: str = Query(..., min_length=1, max_length=200, description="Topic to illustrate"),
    width: int = Query(1200, ge=100, le=4000, description="Image width in pixels"),
    height: int = Query(600, ge=100, le=4000, description="Image height in pixels"),
):
    """Look up an image URL for a topic."""
    services = get_services(request)
    result = await services.image_service.get_image_url(topic, width, height)
    return ImageResponse(topic=result.topic, url=result.url, degraded=result.degraded)


@router.get(
    "/keys/stats",
    response_model=List[KeyStats],
    dependencies=[Depends(require_admin)],
)
async def key_statistics(request: Request):
    """Usage statistics per provider. Secrets are masked. Admin only."""
    services = get_services(request)
    quota = services.settings.key_daily_quota

    stats = []
    for provider in PROVIDERS:
        summary = await get_key_stats(services.store, provider, quota)
        keys = await services.store.list_keys(provider)
        stats.append(KeyStats(**summary, keys=list_masked_keys(keys)))
    return stats


def _error_response(request: Request, exc: ProviderError, status_code: int) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None) or request_id_var.get("")
    return JSONResponse(
        status_code=status_code,
        content={
            "detail": str(exc),
            "provider": exc.provider,
            "requestId": request_id,
        },
        headers={"X-Request-ID": request_id},
    )


async def provider_validation_handler(request: Request, exc: ProviderValidationError):
    """The provider rejected the request; no other key would do better."""
    logger.warning("provider_rejected_request", provider=exc.provider, error=str(exc))
    return _error_response(request, exc, 502)


async def transient_provider_handler(request: Request, exc: TransientProviderError):
    logger.warning("provider_unavailable", provider=exc.provider, error=str(exc))
    return _error_response(request, exc, 503)


async def global_exception_handler(request: Request, exc: Exception):
    """Handle all unhandled exceptions"""
    request_id = getattr(request.state, "request_id", None) or request_id_var.get("")

    log_exception(
        exc,
        context={
            "method": request.method,
            "path": request.url.path,
            "request_id": request_id,
        }
    )

    return JSONResponse(
        content={"detail": "Internal server error", "requestId": request_id},
        status_code=500,
        headers={"X-Request-ID": request_id}
    )


def create_app(
    app_settings: Optional[Settings] = None,
    store: Optional[KeyStore] = None,
    adapters: Optional[Dict[str, ProviderAdapter]] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        app_settings: Settings (defaults to the global settings)
        store: Key store override, used by tests
        adapters: Provider adapter override, used by tests

    Returns:
        Configured FastAPI app; services are built in its lifespan
    """
    app_settings = app_settings or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        services = await build_services(app_settings, store=store, adapters=adapters)
        app.state.services = services
        if app_settings.key_reset_enabled:
            services.scheduler.start()
        logger.info(
            "application_started",
            environment=app_settings.environment,
            quota=app_settings.key_daily_quota,
            max_rotations=app_settings.key_max_rotations,
        )
        try:
            yield
        finally:
            await shutdown_services(services)
            logger.info("application_stopped")

    app = FastAPI(
        title="MVP Planner API",
        description="Generates MVP plans and topic images through rotating provider keys.",
        version=app_settings.app_version,
        lifespan=lifespan,
    )

    # Configure CORS if enabled
    if app_settings.cors_enabled:
        from fastapi.middleware.cors import CORSMiddleware

        app.add_middleware(
            CORSMiddleware,
            allow_origins=app_settings.cors_origin_list,
            allow_methods=["*"],
            allow_headers=["*"],
            expose_headers=["X-Request-ID", "Retry-After"],
        )

    @app.middleware("http")
    async def security_headers_middleware(request: Request, call_next):
        """Add security headers to all responses"""
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-XSS-Protection"] = "1; mode=block"
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        return response

    @app.middleware("http")
    async def logging_middleware(request: Request, call_next):
        """Log all incoming requests and responses with timing"""
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request_id_var.set(request_id)
        request.state.request_id = request_id
        metrics.increment_requests()

        client_ip = request.client.host if request.client else "unknown"

        start_time = time.time()
        log_request_start(
            method=request.method,
            path=request.url.path,
            request_id=request_id,
            client_ip=client_ip,
            query_params=dict(request.query_params),
        )

        try:
            response = await call_next(request)
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            log_exception(
                e,
                context={
                    "method": request.method,
                    "path": request.url.path,
                    "request_id": request_id,
                    "duration_ms": duration_ms,
                }
            )
            raise

        duration_ms = (time.time() - start_time) * 1000
        log_request_end(
            method=request.method,
            path=request.url.path,
            request_id=request_id,
            status_code=response.status_code,
            duration_ms=duration_ms,
        )

        response.headers["X-Request-ID"] = request_id
        return response

    app.add_exception_handler(ProviderValidationError, provider_validation_handler)
    app.add_exception_handler(TransientProviderError, transient_provider_handler)
    app.add_exception_handler(Exception, global_exception_handler)
    apply_rate_limits(app)

    app.include_router(health_router)
    app.include_router(router)

    @app.get("/")
    async def read_root():
        return {"message": "MVP Planner API is running."}

    return app


app = create_app()

# Run locally with: uvicorn mvp_planner_server.main_api:app --reload --port 3000
