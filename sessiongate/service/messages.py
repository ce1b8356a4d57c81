"""User-facing flash messages carried in redirect query parameters."""

from __future__ import annotations

from typing import Iterable

SESSION_NOT_FOUND = "Sessão não encontrada. Por favor, faça login novamente"
SESSION_EXPIRED = "Sua sessão expirou. Por favor, faça login novamente."
INVALID_TOKEN = "Token inválido. Por favor, faça login novamente"
ACCESS_DENIED = "Acesso negado. Faça login novamente"
USER_INACTIVE = "Usuário inativo. Entre em contato com o administrador"

MISSING_FIELDS = "Por favor, preencha todos os campos"
BLANK_USERNAME = "O usuário não pode estar vazio"
BLANK_PASSWORD = "A senha não pode estar vazia"
USER_NOT_FOUND = "Usuário não encontrado"
ADMIN_ONLY = "Acesso negado. Apenas administradores podem acessar esta área"
WRONG_PASSWORD = "Senha incorreta"
LOGIN_FAILED = "Erro ao processar login. Tente novamente mais tarde"
LOGOUT_DONE = "Logout realizado com sucesso. Até logo!"

USERNAME_REQUIRED = "O nome de usuário é obrigatório"
USERNAME_TOO_SHORT = "O nome de usuário deve ter pelo menos 3 caracteres"
PASSWORD_REQUIRED = "A senha é obrigatória"
PASSWORD_TOO_SHORT = "A senha deve ter pelo menos 6 caracteres"
NAME_REQUIRED = "O nome é obrigatório"
INVALID_ROLE = "Nível de acesso inválido"
DUPLICATE_USERNAME = "Já existe um usuário com este nome de usuário"
USER_MISSING = "Usuário não encontrado"
SELF_DELETE = "Você não pode deletar seu próprio usuário"
USER_HAS_SESSIONS = "Não é possível deletar este usuário pois ele possui sessões ativas"
USER_CREATED = "Usuário criado com sucesso!"
USER_UPDATED = "Usuário atualizado com sucesso!"
USER_DELETED = "Usuário deletado com sucesso!"
USER_ACTIVATED = "Usuário ativado com sucesso!"
USER_DEACTIVATED = "Usuário desativado com sucesso!"

INTERNAL_ERROR = "Erro interno. Tente novamente mais tarde"


def welcome(name: str) -> str:
    return f"Login realizado com sucesso! Bem-vindo, {name}"


def role_denied(labels: Iterable[str]) -> str:
    return f"Acesso negado. Apenas {' ou '.join(labels)} podem acessar esta página"
