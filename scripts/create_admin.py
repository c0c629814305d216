"""Create an administrator account, or reset an existing user's password.

Usage:
    python scripts/create_admin.py USERNAME --full-name "Jane Doe" [--password PW]
    python scripts/create_admin.py USERNAME --reset-password [--password PW]

Without --password a random one is generated and printed once.
"""

from __future__ import annotations

import argparse
import secrets
from pathlib import Path
import sys


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Create or reset an administrator account.")
    parser.add_argument("username")
    parser.add_argument("--full-name", default="Administrator")
    parser.add_argument("--email", default="")
    parser.add_argument("--password", help="Password to set; generated when omitted.")
    parser.add_argument("--reset-password", action="store_true", help="Reset the password of an existing user.")
    return parser


def main(argv: list[str] | None = None, app=None) -> int:
    args = build_parser().parse_args(argv)

    from app import create_app
    from database import db
    from models import Role, User
    from services import audit, bootstrap, login_log

    app = app or create_app()
    password = args.password or secrets.token_urlsafe(12)
    if len(password) < 8:
        print("Password must be at least 8 characters.", file=sys.stderr)
        return 2

    with app.app_context():
        bootstrap.ensure_default_admin()
        user = User.query.filter_by(username=args.username).first()

        if args.reset_password:
            if user is None:
                print(f"No user named {args.username!r}.", file=sys.stderr)
                return 1
            before = audit.capture(user)
            user.set_password(password)
            db.session.commit()
            audit.record_update(before, user, info="Password reset from command line")
            login_log.log_password_reset(user, by="command line")
        else:
            if user is not None:
                print(f"User {args.username!r} already exists; use --reset-password.", file=sys.stderr)
                return 1
            role = Role.query.filter_by(name=Role.ADMINISTRATOR).one()
            user = User(username=args.username, full_name=args.full_name, email=args.email, role_id=role.id)
            user.set_password(password)
            db.session.add(user)
            db.session.commit()
            audit.record_create(user, info="Created from command line")

    if not args.password:
        print(f"Password for {args.username}: {password}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
