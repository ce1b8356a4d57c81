from __future__ import annotations

from typing import Callable, Optional

from fastapi import Request, Response

from sessiongate.config import Settings, get_settings
from sessiongate.service.guard import run_pipeline
from sessiongate.service.outcome import AreaPaths, AuthRequest, Identity, Redirect
from sessiongate.service.roles import RoleGate
from sessiongate.service.runtime import get_runtime

# Read once at import; the admin router takes its prefix from here
AREA_PATHS = AreaPaths(get_settings().admin_path_prefix)


class AuthRedirect(Exception):
    """Raised from a dependency to stop the request with a pipeline redirect."""

    def __init__(self, outcome: Redirect) -> None:
        super().__init__(outcome.location)
        self.outcome = outcome


def full_path(request: Request) -> str:
    """Path as the client sent it, including any mount prefix."""
    root_path = request.scope.get("root_path", "") or ""
    path = request.url.path
    if root_path and not path.startswith(root_path):
        return root_path.rstrip("/") + path
    return path


def request_paths(request: Request) -> AreaPaths:
    """Area destinations for this request, under its mount prefix."""
    return AREA_PATHS.under(request.scope.get("root_path", ""))


def build_auth_request(request: Request) -> AuthRequest:
    settings = get_runtime().settings
    return AuthRequest(
        path=full_path(request),
        cookie_token=request.cookies.get(settings.cookie_name),
        authorization=request.headers.get("Authorization"),
    )


def set_token_cookie(response: Response, token: str, settings: Settings) -> None:
    response.set_cookie(
        settings.cookie_name,
        token,
        max_age=settings.session_max_age_seconds,
        httponly=True,
        secure=settings.tls_enabled,
        samesite="lax",
        path="/",
    )


def clear_token_cookie(response: Response, settings: Settings) -> None:
    response.delete_cookie(
        settings.cookie_name,
        path="/",
        httponly=True,
        secure=settings.tls_enabled,
        samesite="lax",
    )


def guarded(*gates: RoleGate) -> Callable[[Request], Identity]:
    """Dependency running the session guard followed by ``gates``.

    On success the identity is also left on ``request.state`` so the cookie
    refresh middleware can extend the browser cookie.
    """

    def dependency(request: Request) -> Identity:
        paths = request_paths(request)
        outcome = run_pipeline(
            build_auth_request(request),
            get_runtime().guard,
            *(gate.with_paths(paths) for gate in gates),
            paths=paths,
        )
        if isinstance(outcome, Redirect):
            raise AuthRedirect(outcome)
        identity: Optional[Identity] = outcome.identity
        if identity is None:
            raise RuntimeError("session guard continued without an identity")
        request.state.identity = identity
        return identity

    return dependency
