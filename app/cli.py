"""Command-line helpers for bootstrapping administrators.

Usage::

    python -m app.cli create-admin admin@example.com s3cret
    python -m app.cli set-admin someone@example.com
"""

import argparse
import logging
import sys

from sqlalchemy.orm import Session

from . import crud
from .auth import get_password_hash, normalize_email
from .core import configure_logging
from .database import Base, SessionLocal, engine
from .models import User, UserRole

logger = logging.getLogger("contacts_api.cli")


def create_admin(db: Session, email: str, password: str) -> User:
    """
    Create an admin account, or promote the existing account with this email.

    The password is only used when a new account is created.
    """
    email = normalize_email(email)
    user = crud.get_user_by_email(db, email)
    if user is not None:
        user = crud.update_user_role(db, user, UserRole.ADMIN)
        logger.info("User %s updated to admin role", email)
        return user
    user = crud.create_user(db, email, get_password_hash(password), UserRole.ADMIN)
    logger.info("Admin user created: %s", email)
    return user


def set_admin(db: Session, email: str) -> User | None:
    """Promote an existing user; returns ``None`` if nobody has this email."""
    user = crud.get_user_by_email(db, normalize_email(email))
    if user is None:
        return None
    return crud.update_user_role(db, user, UserRole.ADMIN)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="contacts-admin", description="Manage Contacts API administrators."
    )
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create-admin", help="create or promote an admin")
    create.add_argument("email", nargs="?", default="admin@example.com")
    create.add_argument("password", nargs="?", default="admin123")

    promote = sub.add_parser("set-admin", help="promote an existing user")
    promote.add_argument("email")
    return parser


def main(argv: list[str] | None = None) -> int:
    configure_logging()
    args = build_parser().parse_args(argv)
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        if args.command == "create-admin":
            create_admin(db, args.email, args.password)
            return 0
        if set_admin(db, args.email) is None:
            logger.error("User with email %s not found. Please register first.", args.email)
            return 1
        logger.info("User %s has been set to admin role", args.email)
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
