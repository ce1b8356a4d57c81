from __future__ import annotations

import asyncio
import contextlib
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from sessiongate.api.deps import set_token_cookie
from sessiongate.api.error_handling import register_exception_handlers
from sessiongate.api.routes import admin_router, router
from sessiongate.config import get_settings
from sessiongate.logging import get_logger, set_correlation_id
from sessiongate.service.runtime import Runtime, get_runtime

logger = get_logger(__name__)

__version__ = "0.1.0"

_sweep_task: asyncio.Task | None = None


async def _run_session_sweep(runtime: Runtime, interval_seconds: int) -> None:
    """Background loop deleting expired session rows."""

    try:
        while True:
            try:
                await asyncio.to_thread(runtime.auth.sweep_expired_sessions)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning(
                    "session_sweep_failed",
                    error_type=type(exc).__name__,
                    error=str(exc),
                )
            await asyncio.sleep(interval_seconds)
    except asyncio.CancelledError:
        logger.info("session_sweep_task_cancelled")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the session sweep on startup and stop it on shutdown."""
    global _sweep_task
    runtime = get_runtime()
    interval = runtime.settings.session_sweep_interval_seconds
    if interval > 0:
        _sweep_task = asyncio.create_task(_run_session_sweep(runtime, interval))
        logger.info("session_sweep_scheduled", interval_seconds=interval)

    yield

    if _sweep_task:
        _sweep_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await _sweep_task
        _sweep_task = None
    logger.info("runtime_shutdown_complete")


app = FastAPI(title="sessiongate", version=__version__, lifespan=lifespan)


@app.middleware("http")
async def refresh_token_cookie(request: Request, call_next):
    """Re-issue the token cookie so its Max-Age follows the sliding session."""
    # Created up front so the route sees the same state mapping
    request.state.identity = None
    response = await call_next(request)
    identity = request.state.identity
    if identity is None or response.status_code >= 400:
        return response
    settings = get_runtime().settings
    cookie_prefix = f"{settings.cookie_name}="
    if any(
        value.startswith(cookie_prefix) for value in response.headers.getlist("set-cookie")
    ):
        return response
    set_token_cookie(response, identity.token, settings)
    return response


@app.middleware("http")
async def add_security_headers(request, call_next):
    response = await call_next(request)
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    # Authenticated pages must never be served from a shared cache
    response.headers.setdefault("Cache-Control", "no-store, private")
    if get_settings().tls_enabled:
        response.headers.setdefault(
            "Strict-Transport-Security", "max-age=63072000; includeSubDomains"
        )
    response.headers.setdefault(
        "Content-Security-Policy",
        "default-src 'self'; frame-ancestors 'none'; base-uri 'self'; form-action 'self'",
    )
    return response


@app.middleware("http")
async def add_correlation_id(request, call_next):
    """Tag every log line of a request with one correlation id.

    The id comes from the client's X-Request-ID header when present and is
    echoed back in the response header.
    """
    correlation_id = set_correlation_id(request.headers.get("X-Request-ID"))
    response = await call_next(request)
    response.headers["X-Request-ID"] = correlation_id
    return response


register_exception_handlers(app)
app.include_router(router)
app.include_router(admin_router)


HEALTH_CHECK_TIMEOUT_SECONDS = 3


@app.get("/healthz")
async def health():
    runtime = get_runtime()
    store_type = "memory" if runtime.settings.use_memory_store else "postgres"
    healthy = True
    try:
        await asyncio.wait_for(
            asyncio.to_thread(runtime.store.verify_connection),
            HEALTH_CHECK_TIMEOUT_SECONDS,
        )
    except asyncio.TimeoutError:
        healthy = False
        logger.error("health_check_timeout", timeout=HEALTH_CHECK_TIMEOUT_SECONDS)
    except Exception as exc:
        healthy = False
        logger.error("health_check_store_failed", error_type=type(exc).__name__, error=str(exc))

    body: Dict[str, Any] = {
        "status": "healthy" if healthy else "unhealthy",
        "checks": {"store": {"status": "healthy" if healthy else "unhealthy", "type": store_type}},
        "version": __version__,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    return JSONResponse(body, status_code=200 if healthy else 503)


def create_app() -> FastAPI:
    return app
