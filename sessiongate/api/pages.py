"""Minimal server-rendered pages.

Markup is deliberately plain; every dynamic value goes through ``escape``.
"""

from __future__ import annotations

from html import escape
from typing import Iterable, List, Optional, Tuple

from starlette.datastructures import QueryParams

from sessiongate.service.outcome import Identity, MessageKind
from sessiongate.service.roles import ROLE_LABELS
from sessiongate.storage.models import Role, User

Flash = List[Tuple[str, str]]


def flash_from_query(params: QueryParams) -> Flash:
    """One-shot messages carried by the redirect that led to this page."""
    return [(kind.value, params[kind.value]) for kind in MessageKind if params.get(kind.value)]


def _layout(title: str, body: str, flash: Optional[Flash] = None) -> str:
    notices = "".join(
        f'<div class="flash flash-{escape(kind)}" role="alert">{escape(text)}</div>'
        for kind, text in flash or []
    )
    return (
        "<!DOCTYPE html>"
        '<html lang="pt-BR"><head><meta charset="utf-8">'
        f"<title>{escape(title)}</title></head>"
        f"<body>{notices}{body}</body></html>"
    )


def _logout_form(action: str, *, from_admin: bool = False) -> str:
    hidden = '<input type="hidden" name="fromAdmin" value="true">' if from_admin else ""
    return (
        f'<form method="post" action="{escape(action)}">{hidden}'
        '<button type="submit">Sair</button></form>'
    )


def login_page(title: str, action: str, flash: Flash) -> str:
    body = (
        f"<h1>{escape(title)}</h1>"
        f'<form method="post" action="{escape(action)}">'
        '<label>Usuário <input name="username" autocomplete="username"></label>'
        '<label>Senha <input name="password" type="password" autocomplete="current-password"></label>'
        '<button type="submit">Entrar</button></form>'
    )
    return _layout(title, body, flash)


def dashboard_page(identity: Identity, logout_action: str, flash: Flash) -> str:
    user = identity.user
    body = (
        "<h1>Dashboard</h1>"
        f"<p>Olá, {escape(user.name)} ({escape(ROLE_LABELS[user.role])})</p>"
        + _logout_form(logout_action)
    )
    return _layout("Dashboard", body, flash)


def admin_page(identity: Identity, admin_base: str, flash: Flash) -> str:
    body = (
        "<h1>Administração</h1>"
        f"<p>Olá, {escape(identity.user.name)}</p>"
        f'<p><a href="{escape(admin_base)}/usuarios">Usuários</a></p>'
        + _logout_form(f"{admin_base}/auth/logout", from_admin=True)
    )
    return _layout("Administração", body, flash)


def _role_options(selected: Optional[Role]) -> str:
    return "".join(
        f'<option value="{role.value}"{" selected" if role is selected else ""}>'
        f"{escape(label)}</option>"
        for role, label in ROLE_LABELS.items()
    )


def user_form_page(action: str, flash: Flash, user: Optional[User] = None) -> str:
    title = "Editar usuário" if user else "Novo usuário"
    checked = " checked" if user is None or user.active else ""
    body = (
        f"<h1>{title}</h1>"
        f'<form method="post" action="{escape(action)}">'
        f'<label>Usuário <input name="username" value="{escape(user.username) if user else ""}"></label>'
        f'<label>Nome <input name="name" value="{escape(user.name) if user else ""}"></label>'
        f'<label>E-mail <input name="email" value="{escape(user.email or "") if user else ""}"></label>'
        '<label>Senha <input name="password" type="password"></label>'
        f'<label>Nível <select name="role">{_role_options(user.role if user else None)}</select></label>'
        f'<label>Ativo <input type="checkbox" name="active" value="true"{checked}></label>'
        '<button type="submit">Salvar</button></form>'
    )
    return _layout(title, body, flash)


def users_page(users: Iterable[User], admin_base: str, flash: Flash) -> str:
    base = f"{admin_base}/usuarios"
    rows = "".join(
        "<tr>"
        f"<td>{escape(u.username)}</td><td>{escape(u.name)}</td>"
        f"<td>{escape(ROLE_LABELS[u.role])}</td>"
        f"<td>{'Ativo' if u.active else 'Inativo'}</td>"
        f'<td><a href="{escape(base)}/editar/{escape(u.id)}">Editar</a>'
        f'<form method="post" action="{escape(base)}/{escape(u.id)}/status">'
        f'<input type="hidden" name="active" value="{"false" if u.active else "true"}">'
        f'<button type="submit">{"Desativar" if u.active else "Ativar"}</button></form>'
        f'<form method="post" action="{escape(base)}/deletar/{escape(u.id)}">'
        '<button type="submit">Deletar</button></form></td>'
        "</tr>"
        for u in users
    )
    body = (
        "<h1>Usuários</h1>"
        f'<p><a href="{escape(base)}/novo">Novo usuário</a></p>'
        "<table><thead><tr><th>Usuário</th><th>Nome</th><th>Nível</th><th>Status</th><th></th></tr></thead>"
        f"<tbody>{rows}</tbody></table>"
    )
    return _layout("Usuários", body, flash)


def error_page(status_code: int, message: str) -> str:
    body = f"<h1>Erro {status_code}</h1><p>{escape(message)}</p>"
    return _layout(f"Erro {status_code}", body)
