#!/usr/bin/env python3
"""Create the default administrator account if it does not exist.

Usage:
    python scripts/seed.py
    python scripts/seed.py --username root --password 'S3nh@Forte' --name 'Root'

Environment Variables:
    SEED_ADMIN_USERNAME / SEED_ADMIN_PASSWORD: Override the defaults
    DATABASE_URL: PostgreSQL connection string
    JWT_SECRET: Required by the settings loader

The default password is meant for first boot only; change it right away.
"""
from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

# Add project root to path for imports
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def main():
    parser = argparse.ArgumentParser(
        description="Seed the default sessiongate administrator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--username",
        default=os.environ.get("SEED_ADMIN_USERNAME", "admin"),
    )
    parser.add_argument(
        "--password",
        default=os.environ.get("SEED_ADMIN_PASSWORD", "admin123"),
    )
    parser.add_argument("--name", default="Administrador")
    parser.add_argument("--email", default="admin@sistema.com")
    args = parser.parse_args()

    from sessiongate.service.errors import ServiceError
    from sessiongate.service.runtime import get_runtime
    from sessiongate.storage.models import Role

    runtime = get_runtime()
    try:
        user, created = runtime.users.ensure_user(
            args.username, args.password, args.name, Role.ADMIN, email=args.email
        )
    except ServiceError as exc:
        print(f"Error: {exc.message}")
        sys.exit(1)

    if created:
        print(f"Admin user created: {user.username} (id: {user.id})")
    else:
        print(f"User {user.username} already exists (role: {user.role.value}); nothing changed")


if __name__ == "__main__":
    main()
