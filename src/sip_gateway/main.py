"""
FastAPI application entry point.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any
from uuid import uuid4

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from sip_gateway import __version__
from sip_gateway.aeims.client import AeimsClient
from sip_gateway.aeims.commands import CommandFacade
from sip_gateway.aeims.factory import build_aeims_client
from sip_gateway.auth.jwt import TokenService
from sip_gateway.auth.permissions import PermissionModel, get_permission_model
from sip_gateway.auth.router import router as auth_router
from sip_gateway.auth.service import AuthService
from sip_gateway.calls.router import router as calls_router
from sip_gateway.conferences.router import router as conferences_router
from sip_gateway.config import Settings, get_settings
from sip_gateway.dashboard.router import router as dashboard_router
from sip_gateway.dashboard.service import DashboardService
from sip_gateway.relay.billing import AeimsBillingRecorder, BillingCollaborator
from sip_gateway.relay.connections import ConnectionManager
from sip_gateway.relay.realtime import router as realtime_router
from sip_gateway.relay.registry import SubscriptionRegistry
from sip_gateway.relay.relay import EventRelay
from sip_gateway.relay.router import router as webhooks_router
from sip_gateway.shared.exceptions import AppException, AuthenticationError
from sip_gateway.shared.logging import correlation_id_var, get_logger, setup_logging
from sip_gateway.shared.store import KeyValueStore, create_store
from sip_gateway.sip.router import router as sip_router

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def _error_body(code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    return {"error": {"code": code, "message": message, "details": details or {}}}


def build_components(
    app: FastAPI,
    settings: Settings,
    store: KeyValueStore | None = None,
    aeims_client: AeimsClient | None = None,
    billing: BillingCollaborator | None = None,
    permissions: PermissionModel | None = None,
) -> None:
    """Wire every service onto ``app.state``."""
    permissions = permissions or get_permission_model()
    store = store if store is not None else create_store(settings)
    client = aeims_client or build_aeims_client()
    tokens = TokenService(settings=settings, store=store, permissions=permissions)

    app.state.settings = settings
    app.state.permissions = permissions
    app.state.store = store
    app.state.token_service = tokens
    app.state.auth_service = AuthService(tokens, settings=settings)
    app.state.aeims_client = client
    app.state.commands = CommandFacade(client, permissions)
    app.state.dashboard = DashboardService(client)
    app.state.relay = EventRelay(
        ConnectionManager(
            SubscriptionRegistry(),
            queue_size=settings.subscriber_queue_size,
            overflow_policy=settings.subscriber_overflow_policy,
        ),
        billing=billing if billing is not None else AeimsBillingRecorder(client),
        call_rate_per_minute=settings.call_rate_per_minute,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings: Settings = app.state.settings
    setup_logging(settings)

    logger.info(
        "Application starting",
        extra={
            "env": settings.app_env,
            "store_backend": settings.store_backend,
            "webhook_signatures": settings.webhook_verification_enabled,
        },
    )

    initialize = getattr(app.state.store, "initialize", None)
    if initialize is not None:
        await initialize()

    client: AeimsClient = app.state.aeims_client
    if await client.is_connected():
        logger.info("AEIMS backend reachable", extra={"base_url": client.config.base_url})
    else:
        logger.warning("AEIMS backend unreachable at startup", extra={"base_url": client.config.base_url})

    yield

    logger.info("Shutting down application")
    await app.state.relay.drain()
    await client.close()
    close_store = getattr(app.state.store, "close", None)
    if close_store is not None:
        await close_store()
    logger.info("Application shutdown complete")


def create_app(
    settings: Settings | None = None,
    *,
    store: KeyValueStore | None = None,
    aeims_client: AeimsClient | None = None,
    billing: BillingCollaborator | None = None,
    permissions: PermissionModel | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()

    app = FastAPI(
        title="After Dark Systems SIP Gateway",
        description="Authenticated command front-end and event relay for the AEIMS telephony backend",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )
    build_components(app, settings, store=store, aeims_client=aeims_client, billing=billing, permissions=permissions)

    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
        token = correlation_id_var.set(request_id)
        try:
            response = await call_next(request)
        finally:
            correlation_id_var.reset(token)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    @app.exception_handler(AppException)
    async def _app_exception(request: Request, exc: AppException) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(
                "Request failed",
                extra={"endpoint": str(request.url.path), "code": exc.code, "error": exc.message},
            )
        headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthenticationError) else None
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.to_dict()},
            headers=headers,
        )

    # Request validation (FastAPI/Pydantic) -> 400 with per-field errors
    @app.exception_handler(RequestValidationError)
    async def _request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = []
        for error in exc.errors():
            field = ".".join(str(loc) for loc in error["loc"])
            errors.append(
                {
                    "field": field,
                    "message": error["msg"],
                    "type": error["type"],
                }
            )
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=_error_body("VALIDATION_ERROR", "Request validation failed", {"errors": errors}),
        )

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error", extra={"endpoint": str(request.url.path)})
        message = str(exc) if settings.debug else "Internal server error"
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_body("INTERNAL_ERROR", message),
        )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(auth_router)
    app.include_router(calls_router)
    app.include_router(sip_router)
    app.include_router(conferences_router)
    app.include_router(dashboard_router)
    app.include_router(webhooks_router)
    app.include_router(realtime_router)

    @app.get("/health")
    async def health_check(request: Request) -> JSONResponse:
        client: AeimsClient = request.app.state.aeims_client
        connected = await client.is_connected()
        return JSONResponse(
            status_code=status.HTTP_200_OK if connected else status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "healthy" if connected else "degraded",
                "service": settings.app_name,
                "version": __version__,
                "aeims": {"connected": connected},
                "connections": len(request.app.state.relay.connections),
            },
        )

    return app
