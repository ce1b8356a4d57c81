from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from sessiongate.api import pages
from sessiongate.api.deps import AuthRedirect, clear_token_cookie
from sessiongate.logging import get_logger
from sessiongate.service import messages
from sessiongate.service.errors import ServiceError
from sessiongate.service.runtime import get_runtime
from sessiongate.storage.errors import ConstraintViolation, StoreUnavailable

logger = get_logger(__name__)

_HTTP_MESSAGES = {
    404: "Página não encontrada",
    405: "Método não permitido",
}


def _error_response(status_code: int, message: str) -> HTMLResponse:
    return HTMLResponse(pages.error_page(status_code, message), status_code=status_code)


def register_exception_handlers(app: FastAPI) -> None:
    """Install handlers turning pipeline redirects and domain errors into pages."""

    @app.exception_handler(AuthRedirect)
    async def handle_auth_redirect(request: Request, exc: AuthRedirect):
        outcome = exc.outcome
        logger.info(
            "auth_redirect",
            path=request.url.path,
            method=request.method,
            location=outcome.location,
            reason=outcome.reason.value if outcome.reason else None,
            clear_credential=outcome.clear_credential,
        )
        response = RedirectResponse(outcome.url(), status_code=303)
        if outcome.clear_credential:
            clear_token_cookie(response, get_runtime().settings)
        return response

    @app.exception_handler(StoreUnavailable)
    async def handle_store_unavailable(request: Request, exc: StoreUnavailable):
        logger.error(
            "store_unavailable",
            path=request.url.path,
            method=request.method,
            operation=exc.operation,
            message=exc.message,
        )
        return _error_response(503, messages.INTERNAL_ERROR)

    @app.exception_handler(ConstraintViolation)
    async def handle_constraint_violation(request: Request, exc: ConstraintViolation):
        logger.warning(
            "constraint_violation",
            path=request.url.path,
            method=request.method,
            message=exc.message,
            detail=exc.detail,
        )
        return _error_response(409, exc.message)

    @app.exception_handler(ServiceError)
    async def handle_service_error(request: Request, exc: ServiceError):
        log_fn = logger.error if exc.status_code >= 500 else logger.warning
        log_fn(
            "service_error",
            path=request.url.path,
            method=request.method,
            status_code=exc.status_code,
            error_code=exc.error_code,
            message=exc.message,
            detail=exc.detail,
        )
        return _error_response(exc.status_code, exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        if exc.status_code >= 500:
            logger.error(
                "http_error",
                path=request.url.path,
                method=request.method,
                status_code=exc.status_code,
            )
        message = _HTTP_MESSAGES.get(exc.status_code) or str(exc.detail)
        return _error_response(exc.status_code, message)

    @app.exception_handler(Exception)
    async def handle_uncaught(request: Request, exc: Exception):
        logger.exception(
            "unhandled_exception",
            exc_info=exc,
            path=request.url.path,
            method=request.method,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        return _error_response(500, messages.INTERNAL_ERROR)
