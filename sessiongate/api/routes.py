from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from sessiongate.api import pages
from sessiongate.api.deps import (
    AREA_PATHS,
    build_auth_request,
    clear_token_cookie,
    guarded,
    request_paths,
    set_token_cookie,
)
from sessiongate.logging import get_logger
from sessiongate.service import messages
from sessiongate.service.auth import LoginResult
from sessiongate.service.errors import ServiceError
from sessiongate.service.outcome import Area, Identity, MessageKind, Redirect
from sessiongate.service.roles import require_admin, require_manage_users, require_read
from sessiongate.service.runtime import get_runtime

logger = get_logger(__name__)

ADMIN_PREFIX = AREA_PATHS.admin_prefix

router = APIRouter()
admin_router = APIRouter(prefix=ADMIN_PREFIX)

_TRUTHY = {"true", "1", "on", "yes"}


def _redirect_response(outcome: Redirect) -> RedirectResponse:
    response = RedirectResponse(outcome.url(), status_code=303)
    if outcome.clear_credential:
        clear_token_cookie(response, get_runtime().settings)
    return response


def _login_response(result: LoginResult) -> RedirectResponse:
    response = _redirect_response(result.redirect)
    if result.token:
        set_token_cookie(response, result.token, get_runtime().settings)
    return response


def _login_page(request: Request, title: str, action: str) -> HTMLResponse:
    runtime = get_runtime()
    paths = request_paths(request)
    outcome = runtime.guard.redirect_if_authenticated(build_auth_request(request), paths)
    if isinstance(outcome, Redirect):
        return _redirect_response(outcome)
    response = HTMLResponse(
        pages.login_page(title, paths.url(action), pages.flash_from_query(request.query_params))
    )
    if outcome.clear_credential:
        clear_token_cookie(response, runtime.settings)
    return response


def _request_token(request: Request) -> Optional[str]:
    return build_auth_request(request).credential()


def _users_url(request: Request, suffix: str = "") -> str:
    return request_paths(request).url(f"{ADMIN_PREFIX}/usuarios{suffix}")


def _users_redirect(
    request: Request, kind: MessageKind, message: str, suffix: str = ""
) -> RedirectResponse:
    return _redirect_response(Redirect(_users_url(request, suffix), kind, message))


# general area
@router.get("/auth/login", response_class=HTMLResponse, tags=["auth"])
def login_form(request: Request):
    return _login_page(request, "Login", "/auth/login")


@router.post("/auth/login", tags=["auth"])
def login(
    request: Request,
    username: Optional[str] = Form(None),
    password: Optional[str] = Form(None),
):
    result = get_runtime().auth.login(
        username, password, area=Area.GENERAL, paths=request_paths(request)
    )
    return _login_response(result)


@router.post("/auth/logout", tags=["auth"])
def logout(request: Request, fromAdmin: Optional[str] = Form(None)):
    from_admin = (fromAdmin or "").lower() in _TRUTHY
    area = Area.ADMIN if from_admin else Area.GENERAL
    return _redirect_response(
        get_runtime().auth.logout(
            _request_token(request), area=area, paths=request_paths(request)
        )
    )


@router.get("/", response_class=HTMLResponse, tags=["pages"])
@router.get("/dashboard", response_class=HTMLResponse, tags=["pages"])
def dashboard(request: Request, identity: Identity = Depends(guarded(require_read))):
    return HTMLResponse(
        pages.dashboard_page(
            identity,
            request_paths(request).url("/auth/logout"),
            pages.flash_from_query(request.query_params),
        )
    )


# admin area
@admin_router.get("/auth/login", response_class=HTMLResponse, tags=["admin-auth"])
def admin_login_form(request: Request):
    return _login_page(request, "Login administrativo", f"{ADMIN_PREFIX}/auth/login")


@admin_router.post("/auth/login", tags=["admin-auth"])
def admin_login(
    request: Request,
    username: Optional[str] = Form(None),
    password: Optional[str] = Form(None),
):
    result = get_runtime().auth.login(
        username, password, area=Area.ADMIN, paths=request_paths(request)
    )
    return _login_response(result)


@admin_router.post("/auth/logout", tags=["admin-auth"])
def admin_logout(request: Request):
    return _redirect_response(
        get_runtime().auth.logout(
            _request_token(request), area=Area.ADMIN, paths=request_paths(request)
        )
    )


@admin_router.get("", response_class=HTMLResponse, tags=["admin"])
def admin_home(request: Request, identity: Identity = Depends(guarded(require_admin))):
    return HTMLResponse(
        pages.admin_page(
            identity,
            request_paths(request).admin_base,
            pages.flash_from_query(request.query_params),
        )
    )


@admin_router.get("/usuarios", response_class=HTMLResponse, tags=["admin-users"])
def list_users(request: Request, identity: Identity = Depends(guarded(require_manage_users))):
    users = get_runtime().users.list_users()
    return HTMLResponse(
        pages.users_page(
            users,
            request_paths(request).admin_base,
            pages.flash_from_query(request.query_params),
        )
    )


@admin_router.get("/usuarios/novo", response_class=HTMLResponse, tags=["admin-users"])
def new_user_form(request: Request, identity: Identity = Depends(guarded(require_manage_users))):
    return HTMLResponse(
        pages.user_form_page(
            _users_url(request), pages.flash_from_query(request.query_params)
        )
    )


@admin_router.get("/usuarios/editar/{user_id}", response_class=HTMLResponse, tags=["admin-users"])
def edit_user_form(
    request: Request,
    user_id: str,
    identity: Identity = Depends(guarded(require_manage_users)),
):
    try:
        user = get_runtime().users.get_user(user_id)
    except ServiceError as exc:
        return _users_redirect(request, MessageKind.ERROR, exc.message)
    return HTMLResponse(
        pages.user_form_page(
            _users_url(request, f"/{user.id}"),
            pages.flash_from_query(request.query_params),
            user,
        )
    )


@admin_router.post("/usuarios", tags=["admin-users"])
def create_user(
    request: Request,
    username: Optional[str] = Form(None),
    password: Optional[str] = Form(None),
    name: Optional[str] = Form(None),
    role: Optional[str] = Form(None),
    email: Optional[str] = Form(None),
    identity: Identity = Depends(guarded(require_manage_users)),
):
    try:
        get_runtime().users.create_user(username, password, name, role, email=email)
    except ServiceError as exc:
        return _users_redirect(request, MessageKind.ERROR, exc.message, "/novo")
    return _users_redirect(request, MessageKind.SUCCESS, messages.USER_CREATED)


@admin_router.post("/usuarios/deletar/{user_id}", tags=["admin-users"])
def delete_user(
    request: Request,
    user_id: str,
    identity: Identity = Depends(guarded(require_manage_users)),
):
    try:
        get_runtime().users.delete_user(user_id, acting_user_id=identity.user.id)
    except ServiceError as exc:
        return _users_redirect(request, MessageKind.ERROR, exc.message)
    return _users_redirect(request, MessageKind.SUCCESS, messages.USER_DELETED)


@admin_router.post("/usuarios/{user_id}", tags=["admin-users"])
def update_user(
    request: Request,
    user_id: str,
    username: Optional[str] = Form(None),
    password: Optional[str] = Form(None),
    name: Optional[str] = Form(None),
    role: Optional[str] = Form(None),
    email: Optional[str] = Form(None),
    active: Optional[str] = Form(None),
    identity: Identity = Depends(guarded(require_manage_users)),
):
    try:
        get_runtime().users.update_user(
            user_id,
            username,
            name,
            role,
            email=email,
            active=(active or "").lower() in _TRUTHY,
            password=password,
        )
    except ServiceError as exc:
        return _users_redirect(request, MessageKind.ERROR, exc.message, f"/editar/{user_id}")
    return _users_redirect(request, MessageKind.SUCCESS, messages.USER_UPDATED)


@admin_router.post("/usuarios/{user_id}/status", tags=["admin-users"])
def set_user_status(
    request: Request,
    user_id: str,
    active: Optional[str] = Form(None),
    identity: Identity = Depends(guarded(require_manage_users)),
):
    enable = (active or "").lower() in _TRUTHY
    try:
        get_runtime().users.set_active(user_id, enable)
    except ServiceError as exc:
        return _users_redirect(request, MessageKind.ERROR, exc.message)
    logger.info("user_status_changed", user_id=user_id, active=enable, acting_user_id=identity.user.id)
    message = messages.USER_ACTIVATED if enable else messages.USER_DEACTIVATED
    return _users_redirect(request, MessageKind.SUCCESS, message)
