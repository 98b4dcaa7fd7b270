"""FastAPI application factory"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from donation_gateway.api.dependencies import get_request_id
from donation_gateway.api.middleware import RequestIDMiddleware, MetricsMiddleware
from donation_gateway.api.v1 import checkout, credentials, notifications, payments
from donation_gateway.domain.exceptions import DomainException
from donation_gateway.infrastructure.observability.logging import setup_logging
from donation_gateway.config import settings

setup_logging(settings.log_level)


async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
    """Domain errors no route translated itself are server faults"""
    request_id = get_request_id(request)
    logging.error(
        f"Unhandled domain error: {exc}",
        extra={"request_id": request_id, "error_type": type(exc).__name__, "path": request.url.path},
    )
    return JSONResponse(status_code=500, content={"detail": "Internal server error", "request_id": request_id})


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Donation Gateway",
        description="Card donation payments, hosted checkout and donation notifications",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Last added runs first: request ID is set before metrics are timed
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    app.add_exception_handler(DomainException, domain_exception_handler)

    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.include_router(payments.router, prefix="/v1", tags=["payments"])
    app.include_router(credentials.router, prefix="/v1", tags=["gateway"])
    app.include_router(notifications.router, prefix="/v1", tags=["notifications"])
    app.include_router(checkout.router, prefix="/v1", tags=["checkout"])

    return app


app = create_app()
