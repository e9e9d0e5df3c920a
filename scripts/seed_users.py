#!/usr/bin/env python3
"""
Seed an administrator account (and optionally panel members).

Safe by default (dry-run). Use --apply to persist changes.

Usage:
    python scripts/seed_users.py --admin-email admin@example.org --admin-password '...' --apply
    python scripts/seed_users.py --panel-member "Jane Lawyer:jane@example.org" --apply
"""

import argparse
import os
import secrets
from typing import List, Tuple


def _parse_member(raw: str) -> Tuple[str, str]:
    name, sep, email = raw.partition(":")
    if not sep or not name.strip() or "@" not in email:
        raise argparse.ArgumentTypeError(f"Expected 'Name:email', got {raw!r}")
    return name.strip(), email.strip().lower()


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed admin / panel member accounts.")
    parser.add_argument("--admin-email", default=os.environ.get("SEED_ADMIN_EMAIL", "admin@resolveit.org"))
    parser.add_argument("--admin-name", default="System Administrator")
    parser.add_argument("--admin-password", default=os.environ.get("SEED_ADMIN_PASSWORD"))
    parser.add_argument(
        "--panel-member", action="append", type=_parse_member, default=[],
        help="Panel member as 'Name:email' (repeatable)",
    )
    parser.add_argument("--apply", action="store_true", help="Persist changes (default: dry-run)")
    args = parser.parse_args()

    from mediation_backend.auth import get_password_hash
    from mediation_backend.db.models import User, UserRole
    from mediation_backend.db.session import get_db_session, init_db

    init_db()

    created: List[str] = []
    generated_password = None

    with get_db_session() as db:
        existing_admin = db.query(User).filter(User.role == UserRole.ADMIN).first()
        if existing_admin:
            print(f"Admin user already exists: {existing_admin.email}")
        else:
            password = args.admin_password
            if not password:
                password = generated_password = secrets.token_urlsafe(12)
            created.append(f"admin {args.admin_email}")
            if args.apply:
                db.add(User(
                    email=args.admin_email.lower(),
                    name=args.admin_name,
                    role=UserRole.ADMIN,
                    password_hash=get_password_hash(password),
                    is_active=True,
                ))

        members: List[Tuple[str, str]] = args.panel_member
        for name, email in members:
            if db.query(User).filter(User.email == email).first():
                print(f"Skipping {email}: already registered")
                continue
            created.append(f"panel_member {email}")
            if args.apply:
                # Panel members sign in after a password reset by an admin
                db.add(User(email=email, name=name, role=UserRole.PANEL_MEMBER, is_active=True))

        if not args.apply:
            db.rollback()

    mode = "APPLY" if args.apply else "DRY-RUN"
    for line in created:
        print(f"[{mode}] Created {line}")
    if generated_password and args.apply:
        print(f"[{mode}] Generated admin password: {generated_password} (change it after first login)")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
