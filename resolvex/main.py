"""ResolveX FastAPI application entry point.

Creates the FastAPI app, configures middleware, includes routers, and
manages the lifecycle of the backend services (complaint store, media
store, classifier client, notification dispatcher, keepalive pinger).
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from config.settings import settings
from resolvex.api.router import api_router

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Structured logging configuration
# ---------------------------------------------------------------------------


def _configure_logging() -> None:
    """Set up structlog with JSON or console rendering based on settings."""
    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if settings.log_format == "json":
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            structlog.get_level_from_name(settings.log_level),
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Application lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage startup and shutdown of all ResolveX services.

    On startup:
      1. Complaint store (Redis, in-memory fallback outside production)
      2. Media store (GCS)
      3. Classifier client, fallback policy and router
      4. Gmail transport and notification dispatcher
      5. Intake orchestrator, listing and access services
      6. Keepalive pinger
      7. Store everything on ``app.state``

    On shutdown the dispatcher drains its queue before the transport and
    HTTP clients are closed.
    """
    _configure_logging()
    logger.info("app.startup", env=settings.env)

    app.state.start_time = time.time()

    # -- 1. Complaint store --------------------------------------------------
    from resolvex.services.store import InMemoryComplaintStore, RedisComplaintStore

    store: RedisComplaintStore | InMemoryComplaintStore
    if settings.redis_url:
        store = RedisComplaintStore(url=settings.redis_url, namespace=settings.store_namespace)
        if await store.ping():
            logger.info("app.store_initialised", backend="redis")
        elif settings.is_production:
            logger.error("app.store_unreachable", backend="redis")
        else:
            await store.close()
            store = InMemoryComplaintStore()
            logger.warning("app.store_redis_unavailable_using_inmemory")
    else:
        store = InMemoryComplaintStore()
        logger.warning("app.store_inmemory", note="complaints will not survive a restart")
    app.state.store = store

    # -- 2. Media store ------------------------------------------------------
    from resolvex.services.media import GCSMediaStore

    media: GCSMediaStore | None = None
    if settings.media_bucket:
        try:
            media = GCSMediaStore(
                settings.media_bucket,
                project=settings.gcp_project_id,
                prefix=settings.media_prefix,
                timeout_seconds=settings.media_upload_timeout_seconds,
            )
            logger.info("app.media_initialised", bucket=settings.media_bucket)
        except Exception:
            logger.warning("app.media_init_failed", exc_info=True)
    else:
        logger.warning("app.media_not_configured", note="complaint intake disabled")
    app.state.media = media

    # -- 3. Department routing ----------------------------------------------
    from resolvex.services.classifier import (
        DepartmentClassifierClient,
        DepartmentRouter,
        FallbackPolicy,
    )

    classifier = DepartmentClassifierClient(
        settings.classifier_url,
        timeout_seconds=settings.classifier_timeout_seconds,
    )
    router = DepartmentRouter(
        classifier,
        FallbackPolicy(
            department_email=settings.fallback_department_email,
            department_name=settings.fallback_department_name,
        ),
    )
    logger.info("app.classifier_initialised", url=settings.classifier_url)

    # -- 4. Notifications ----------------------------------------------------
    from resolvex.services.notifications import GmailEmailTransport, NotificationDispatcher

    transport = GmailEmailTransport(
        settings.gmail_client_id,
        settings.gmail_client_secret,
        settings.gmail_refresh_token,
        sender=settings.email_user,
        timeout_seconds=settings.email_send_timeout_seconds,
    )
    dispatcher = NotificationDispatcher(
        transport,
        timeout_seconds=settings.email_send_timeout_seconds,
        dead_letter_limit=settings.notification_dead_letter_limit,
    )
    dispatcher.start()
    app.state.dispatcher = dispatcher
    if not settings.gmail_refresh_token:
        logger.warning("app.gmail_credentials_missing")

    # -- 5. Complaint services -----------------------------------------------
    from resolvex.services.access import ComplaintAccessService
    from resolvex.services.intake import IntakeOrchestrator
    from resolvex.services.listing import ComplaintListingService

    app.state.intake = (
        IntakeOrchestrator(media=media, router=router, store=store, dispatcher=dispatcher)
        if media is not None
        else None
    )
    app.state.listing = ComplaintListingService(
        store,
        default_page_size=settings.default_page_size,
        max_page_size=settings.max_page_size,
    )
    app.state.complaint_access = ComplaintAccessService(store, media)
    logger.info("app.complaint_services_initialised", intake_enabled=media is not None)

    # -- 6. Keepalive --------------------------------------------------------
    from resolvex.services.keepalive import KeepaliveScheduler

    keepalive: KeepaliveScheduler | None = None
    if settings.enable_keepalive and settings.keepalive_urls:
        keepalive = KeepaliveScheduler(
            settings.keepalive_urls,
            interval_seconds=settings.keepalive_interval_seconds,
        )
        keepalive.start()
    app.state.keepalive = keepalive

    logger.info("app.startup_complete")

    yield

    # -- Shutdown -----------------------------------------------------------
    logger.info("app.shutdown_start")

    if keepalive is not None:
        await keepalive.stop()
    await dispatcher.stop()
    await transport.close()
    await classifier.close()
    await store.close()

    logger.info("app.shutdown_complete")


# ---------------------------------------------------------------------------
# FastAPI application
# ---------------------------------------------------------------------------

app = FastAPI(
    title="ResolveX API",
    description=(
        "ResolveX -- citizen grievance intake. Complaints are stored with "
        "their proof image, routed to the responsible department, and the "
        "department is notified by e-mail."
    ),
    version="1.0.0",
    lifespan=lifespan,
    default_response_class=ORJSONResponse,
    docs_url="/docs" if not settings.is_production else None,
    redoc_url="/redoc" if not settings.is_production else None,
)

# -- CORS middleware --------------------------------------------------------
# SECURITY: allow_credentials=True must NOT be combined with allow_origins=["*"].
if settings.is_production:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["Content-Type", "Authorization", "X-User-Id", "X-User-Name", "X-User-Email"],
    )
else:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS", "HEAD"],
        allow_headers=["*"],
    )

# -- Prometheus metrics -----------------------------------------------------
try:
    from prometheus_fastapi_instrumentator import Instrumentator

    Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=True,
        excluded_handlers=["/metrics", "/health", "/api/v1/health"],
    ).instrument(app).expose(
        app,
        endpoint="/metrics",
        include_in_schema=not settings.is_production,
    )
    logger.info("app.prometheus_metrics_enabled")
except ImportError:
    logger.warning("app.prometheus_not_available")

# -- Include routers -------------------------------------------------------
app.include_router(api_router)


@app.get("/health", include_in_schema=False)
async def root_health() -> dict:
    """Bare liveness endpoint pinged by the keepalive scheduler."""
    return {"status": "healthy"}
