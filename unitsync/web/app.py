"""FastAPI application for unitsync - unit import and reconciliation API."""

from __future__ import annotations

from contextlib import asynccontextmanager
from uuid import uuid4

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.middleware.base import BaseHTTPMiddleware

from unitsync.core.logging import configure_logging
from unitsync.db.connection import close_db
from unitsync.errors import UnitSyncError
from unitsync.web.routes import auth, health, imports, mappings, versions

# Initialize structured logging
configure_logging()
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await close_db()


app = FastAPI(
    title="unitsync",
    description="Unit inventory import, field mapping and reconciliation API",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)


# Request Logging Middleware
class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        structlog.contextvars.clear_contextvars()

        request_id = request.headers.get("X-Request-ID", str(uuid4()))
        structlog.contextvars.bind_contextvars(request_id=request_id)

        logger.info(
            "request_started",
            method=request.method,
            path=request.url.path,
            client_ip=request.client.host if request.client else None,
        )

        try:
            response = await call_next(request)

            logger.info(
                "request_completed",
                status_code=response.status_code,
            )
            response.headers["X-Request-ID"] = request_id
            return response

        except Exception as exc:
            logger.error("request_failed", error=str(exc))
            raise


app.add_middleware(RequestLoggingMiddleware)

# Prometheus Metrics
Instrumentator().instrument(app).expose(app)


# Exception Handlers
@app.exception_handler(UnitSyncError)
async def unitsync_error_handler(request: Request, exc: UnitSyncError):
    """Render batch-level import failures as {error, message, details}."""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log("import_call_failed", error=exc.kind, message=exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies are reported as invalidData (400)."""
    return JSONResponse(
        status_code=400,
        content={
            "error": "invalidData",
            "message": "Invalid request data",
            "details": jsonable_errors(exc),
        },
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    error = "unauthorized" if exc.status_code == 401 else "httpError"
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": error, "message": exc.detail},
        headers=exc.headers,
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]


# Include Routers
app.include_router(auth.router)
app.include_router(health.router)
app.include_router(imports.router)
app.include_router(mappings.router)
app.include_router(versions.router)
