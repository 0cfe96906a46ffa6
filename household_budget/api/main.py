"""FastAPI application factory"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from household_budget.api.middleware import RequestIDMiddleware, MetricsMiddleware
from household_budget.api.dependencies import get_request_id
from household_budget.api.v1 import households, main_budgets, payments, reconciliation, weekly_budgets
from household_budget.domain.exceptions import (
    ConflictError,
    DomainException,
    HouseholdDirectoryError,
    NotFoundError,
    ValidationError,
)
from household_budget.infrastructure.database.session import init_db
from household_budget.infrastructure.observability.logging import setup_logging
from household_budget.config import settings

setup_logging(settings.log_level)

ROUTERS = [
    (payments.router, "payments"),
    (weekly_budgets.router, "weekly-budgets"),
    (reconciliation.router, "reconciliation"),
    (main_budgets.router, "main-budgets"),
    (households.router, "households"),
]

ERROR_STATUS = [
    (ValidationError, 422),
    (NotFoundError, 404),
    (ConflictError, 409),
    (HouseholdDirectoryError, 503),
]


def _status_for(exc: DomainException) -> int:
    for exc_type, status_code in ERROR_STATUS:
        if isinstance(exc, exc_type):
            return status_code
    return 400


async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
    """Map domain errors to HTTP responses and discard the request's uncommitted work"""
    db = getattr(request.state, "db", None)
    if db is not None:
        db.rollback()

    status_code = _status_for(exc)
    log = logging.error if status_code == 503 else logging.warning
    log(
        f"{type(exc).__name__}: {exc}",
        extra={"request_id": get_request_id(request), "path": request.url.path, "status": status_code},
    )
    return JSONResponse(status_code=status_code, content={"detail": str(exc), "error": type(exc).__name__})


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.create_tables_on_startup:
        init_db()
    yield


def create_app() -> FastAPI:
    """Build the app with tracing middleware, the domain error mapping and all v1 routers"""
    app = FastAPI(
        title="Household Budget Service",
        description="Hierarchical budget allocation and payment reconciliation",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # RequestIDMiddleware runs outermost so latency and error logs see the id
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    app.add_exception_handler(DomainException, domain_exception_handler)

    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    @app.get("/metrics")
    def prometheus_metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    for router, tag in ROUTERS:
        app.include_router(router, prefix="/v1", tags=[tag])

    return app


app = create_app()
