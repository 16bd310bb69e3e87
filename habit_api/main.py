from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from urllib.parse import urlparse

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration

from habit_api.core.config import settings
from habit_api.routes.habits import router as habits_router
from habit_api.routes.users import router as users_router
from habit_api.services.error_log import log_system_error
from habit_api.services.supabase_rest import (
    SupabaseRest,
    SupabaseRestError,
    build_http_client,
)

logging.basicConfig(
    level=settings.log_level.strip().upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.http = build_http_client(settings.http_timeout_seconds)
    logger.info("HTTP client ready for %s", settings.supabase_url)
    try:
        yield
    finally:
        await app.state.http.aclose()


app = FastAPI(title="Habit Tracker API", version="0.1.0", lifespan=lifespan)


def _init_sentry() -> None:
    if not settings.sentry_dsn:
        return
    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        integrations=[FastApiIntegration()],
        traces_sample_rate=max(0.0, min(settings.sentry_traces_sample_rate, 1.0)),
        send_default_pii=False,
        environment=settings.app_env,
    )


_init_sentry()


def _origin(url: str) -> str:
    # CORS compares against the request's Origin (scheme+host+port).
    p = urlparse(url)
    if p.scheme and p.netloc:
        return f"{p.scheme}://{p.netloc}"
    return url.rstrip("/")


_ALLOWED_ORIGINS = sorted(
    {
        _origin(str(settings.frontend_url)),
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    }
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_sink(request: Request) -> SupabaseRest:
    return SupabaseRest(
        str(settings.supabase_url),
        settings.supabase_service_role_key,
        http=request.app.state.http,
    )


@app.get("/", response_class=PlainTextResponse)
async def root() -> str:
    return "Server running..."


@app.get("/health")
async def health() -> dict:
    return {"ok": True}


@app.exception_handler(SupabaseRestError)
async def supabase_rest_error_handler(request: Request, exc: SupabaseRestError):
    detail = {
        "message": "Supabase data request failed.",
        "hint": exc.hint,
        "code": exc.code,
    }
    # Propagate 4xx; normalize 5xx to 502.
    status_code = exc.status_code if 400 <= exc.status_code < 500 else 502

    await log_system_error(
        _error_sink(request),
        route=str(request.url.path),
        message="Supabase request failed",
        err=exc,
        meta={
            "status_code": exc.status_code,
            "code": exc.code,
            "method": request.method,
        },
    )
    return JSONResponse(status_code=status_code, content={"detail": detail})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    await log_system_error(
        _error_sink(request),
        route=str(request.url.path),
        message="Unhandled server error",
        err=exc,
        meta={"method": request.method},
    )
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


app.include_router(habits_router)
app.include_router(users_router)
