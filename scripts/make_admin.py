#!/usr/bin/env python3
"""Promote users to the ADMIN role.

Usage:
    # Promote one user:
    python scripts/make_admin.py joao

    # Promote every active user:
    python scripts/make_admin.py --all

    # Without arguments, list the users and exit:
    python scripts/make_admin.py

Environment Variables:
    DATABASE_URL: PostgreSQL connection string
    JWT_SECRET: Required by the settings loader even though no token is issued

Roles are read from the store on every request, so a promotion applies on the next page load.
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

# Add project root to path for imports
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _print_users(users) -> None:
    if not users:
        print("   Nenhum usuário encontrado no banco de dados.")
        return
    for user in users:
        status = "ativo" if user.active else "inativo"
        print(f"   [{status}] {user.username} ({user.name}) - Role: {user.role.value}")


def main():
    parser = argparse.ArgumentParser(
        description="Promote sessiongate users to ADMIN",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("username", nargs="?", help="Username to promote")
    parser.add_argument(
        "--all",
        action="store_true",
        help="Promote every active user instead of a single one",
    )
    args = parser.parse_args()

    # Import here to avoid loading config before argparse handles --help
    from sessiongate.service.errors import NotFoundError
    from sessiongate.service.runtime import get_runtime

    runtime = get_runtime()

    if args.all:
        promoted = runtime.users.promote_all_active()
        print(f"{len(promoted)} usuário(s) promovido(s) para ADMIN")
        _print_users(runtime.users.list_users())
        return

    if not args.username:
        print("Error: username required (or --all)")
        print("\nUsuários disponíveis:")
        _print_users(runtime.users.list_users())
        sys.exit(1)

    try:
        user = runtime.users.promote_to_admin(args.username)
    except NotFoundError:
        print(f'Error: usuário "{args.username}" não encontrado no banco de dados.')
        sys.exit(1)

    print("Usuário atualizado com sucesso!")
    print(f"   Username: {user.username}")
    print(f"   Nome: {user.name}")
    print(f"   Role: {user.role.value}")
    print(f"   Email: {user.email or 'Não informado'}")
    print(f"   Status: {'Ativo' if user.active else 'Inativo'}")
    print("\nFaça logout e login novamente para que as mudanças tenham efeito.")


if __name__ == "__main__":
    main()
