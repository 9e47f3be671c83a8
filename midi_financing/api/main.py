"""FastAPI application factory"""

from fastapi import FastAPI
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from midi_financing.api.middleware import MetricsMiddleware, RequestIDMiddleware
from midi_financing.api.v1 import history, ledger, plan, repayments, requests, review
from midi_financing.config import settings
from midi_financing.infrastructure.observability.logging import setup_logging

setup_logging(settings.log_level)


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Midi Financing Decision Engine",
        description="Purchase credit and Islamic financing decisions, plans and repayments",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Last added = first executed
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.include_router(requests.router, prefix="/v1", tags=["financing-requests"])
    app.include_router(review.router, prefix="/v1", tags=["review"])
    app.include_router(repayments.router, prefix="/v1", tags=["repayments"])
    app.include_router(ledger.router, prefix="/v1", tags=["ledger"])
    app.include_router(plan.router, prefix="/v1", tags=["plans"])
    app.include_router(history.router, prefix="/v1", tags=["history"])

    return app


app = create_app()
