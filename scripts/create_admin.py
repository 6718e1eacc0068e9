#!/usr/bin/env python3
"""
Create an administrator account, or promote an existing user.

Usage:
    python scripts/create_admin.py NAME [--password PASSWORD]
"""
import argparse
import getpass
import sys

from sqlalchemy import select

from keytao.core.db import db_session, init_db
from keytao.core.security import hash_password
from keytao.models.user import User, UserRole, UserStatus


def main() -> int:
    parser = argparse.ArgumentParser(description="Create or promote a KeyTao administrator")
    parser.add_argument("name", help="Username")
    parser.add_argument("--password", default=None, help="Password for a new account (prompted if omitted)")
    args = parser.parse_args()

    init_db()
    with db_session() as db:
        user = db.execute(select(User).where(User.name == args.name)).scalar_one_or_none()
        if user is not None:
            user.role = UserRole.ADMIN
            user.status = UserStatus.ENABLE
            print(f"Promoted existing user '{args.name}' to admin")
            return 0

        password = args.password or getpass.getpass("Password: ")
        if len(password) < 8:
            print("Password must be at least 8 characters")
            return 1
        db.add(User(
            name=args.name,
            nickname=args.name,
            hashed_password=hash_password(password),
            role=UserRole.ADMIN,
            status=UserStatus.ENABLE,
        ))
        print(f"Created admin user '{args.name}'")
    return 0


if __name__ == "__main__":
    sys.exit(main())
