# main.py — Taskboard API Gateway
# - REST routers for users, projects, tasks, comments, notifications, team
# - /ws realtime channel backed by an injected ConnectionManager
# - Request/correlation IDs, timing and security headers on every response
# - One JSON error shape for every failure

import os
import json
import time
import uuid
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from broadcaster import ConnectionManager
from database import init_db, close_db, get_db_context
from errors import APIError, MissingField, InternalError
from telemetry import setup_telemetry, SERVICE_VERSION

logging.basicConfig(
    level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO),
    format="%(asctime)s [%(name)s] %(levelname)s %(message)s",
)
logger = logging.getLogger("taskboard")

ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173")
ALLOWED_ORIGINS = [o.strip() for o in CORS_ORIGINS.split(",") if o.strip()]

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}


def _config_warnings() -> list:
    """Weak settings worth shouting about at boot"""
    found = []
    if len(os.getenv("JWT_SECRET_KEY", "")) < 32:
        found.append("⚠️  JWT_SECRET_KEY is not set or shorter than 32 characters")
    if ENVIRONMENT == "production" and os.getenv("DATABASE_URL", "sqlite").startswith("sqlite"):
        found.append("⚠️  Running production on SQLite — set DATABASE_URL to a Postgres URL")
    for message in found:
        logger.warning(message)
    return found


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"🚀 Starting Taskboard {SERVICE_VERSION} ({ENVIRONMENT})")
    await init_db()
    _config_warnings()
    setup_telemetry(app)
    yield
    logger.info("🛑 Shutting down Taskboard")
    await close_db()


app = FastAPI(
    title="Taskboard",
    description="Project and task management API with realtime task updates",
    version=SERVICE_VERSION,
    lifespan=lifespan,
)

# One broadcaster per application; handlers reach it through get_broadcaster
app.state.broadcaster = ConnectionManager()

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID", "X-Correlation-ID"],
    expose_headers=["X-Request-ID", "X-Correlation-ID"],
)


# ============================================================
# MIDDLEWARE
# ============================================================

@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    """Tag the request with IDs, time it, and stamp tracing + security headers"""
    rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = rid
    request.state.correlation_id = request.headers.get("X-Correlation-ID") or rid

    started = time.perf_counter()
    response = await call_next(request)
    elapsed = time.perf_counter() - started

    response.headers.update(SECURITY_HEADERS)
    response.headers["X-Request-ID"] = rid
    response.headers["X-Correlation-ID"] = request.state.correlation_id
    response.headers["X-Response-Time"] = f"{elapsed:.4f}s"

    logger.info(f"{request.method} {request.url.path} → {response.status_code} ({elapsed:.3f}s) [rid={rid[:8]}]")
    return response


# ============================================================
# ERROR RENDERING
# ============================================================

def _request_id(request: Request):
    return getattr(request.state, "request_id", None)


def _missing_fields(errors: list):
    """Field names when every validation error is an absent/empty field, else None"""
    fields = []
    for err in errors:
        if err.get("type") != "missing" and err.get("input") != "":
            return None
        loc = [str(part) for part in err.get("loc", []) if part != "body"]
        fields.append(".".join(loc) or "body")
    return fields


def _json_safe(value):
    try:
        json.dumps(value)
        return value
    except (TypeError, ValueError):
        return str(value)


def _describe_validation_errors(errors: list) -> list:
    described = []
    for err in errors:
        item = {
            "type": str(err.get("type", "unknown")),
            "loc": list(err.get("loc", [])),
            "msg": str(err.get("msg", "")),
        }
        if "input" in err:
            item["input"] = _json_safe(err["input"])
        described.append(item)
    return described


def _render(request: Request, exc: APIError) -> JSONResponse:
    body = exc.to_dict()
    body["request_id"] = _request_id(request)
    return JSONResponse(status_code=exc.status_code, content=body, headers=exc.headers)


@app.exception_handler(APIError)
async def api_error_handler(request: Request, exc: APIError):
    return _render(request, exc)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    missing = _missing_fields(exc.errors())
    if missing:
        return _render(request, MissingField(missing))
    return JSONResponse(status_code=422, content={
        "detail": _describe_validation_errors(exc.errors()),
        "code": "validation_error",
        "request_id": _request_id(request),
    })


@app.exception_handler(SQLAlchemyError)
async def store_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"Store failure on {request.method} {request.url.path}: {exc}", exc_info=True)
    return _render(request, InternalError())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}", exc_info=True)
    return _render(request, InternalError())


# ============================================================
# ROUTERS
# ============================================================

from routers import (  # noqa: E402
    auth, users, projects, tasks, notifications, team, dashboard, websocket_router,
)

for module in (auth, users, projects, tasks, notifications, team, dashboard, websocket_router):
    app.include_router(module.router)


# ============================================================
# HEALTH & ROOT
# ============================================================

async def _database_status() -> str:
    try:
        async with get_db_context() as db:
            await db.execute(text("SELECT 1"))
    except Exception as e:
        return f"error: {str(e)[:100]}"
    return "connected"


@app.get("/health")
async def health_check():
    """Liveness plus a round-trip to the store"""
    database = await _database_status()
    return {
        "status": "healthy" if database == "connected" else "degraded",
        "version": SERVICE_VERSION,
        "environment": ENVIRONMENT,
        "database": database,
        "realtime": app.state.broadcaster.get_stats(),
    }


@app.get("/")
async def root():
    return {
        "name": "Taskboard",
        "version": SERVICE_VERSION,
        "docs": "/docs",
        "health": "/health",
        "realtime": "/ws?token=<bearer token>",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "1337")),
        reload=ENVIRONMENT != "production",
        workers=int(os.getenv("WORKERS", "1")),
    )
