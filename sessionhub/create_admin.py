"""Create an admin account, or promote an existing account to admin.

Usage:
    python -m sessionhub.create_admin --email admin@example.com --password 'S3cret-pass'

ADMIN_EMAIL and ADMIN_PASSWORD are read from the environment when the
flags are omitted.
"""
import argparse
import os
import sys

from sqlalchemy.orm import Session

from sessionhub.auth.password import hash_password
from sessionhub.core import config
from sessionhub.database import Base, SessionLocal, engine
from sessionhub.models import session  # noqa: F401  registers the sessions table on Base
from sessionhub.models.user import Role, User


def create_or_promote_admin(db: Session, email: str, password: str | None) -> str:
    user = db.query(User).filter(User.email == email).first()
    if user is not None:
        if user.role == Role.ADMIN:
            return 'already_admin'
        user.role = Role.ADMIN
        db.commit()
        return 'promoted'

    if not password or len(password) < config.PASSWORD_MIN_LENGTH:
        raise ValueError(f'Password must be at least {config.PASSWORD_MIN_LENGTH} characters long.')

    db.add(User(
        email=email,
        hashed_password=hash_password(password),
        role=Role.ADMIN,
        is_email_verified=True,
    ))
    db.commit()
    return 'created'


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description='Create or promote an admin account.')
    parser.add_argument('--email', default=os.getenv('ADMIN_EMAIL'))
    parser.add_argument('--password', default=os.getenv('ADMIN_PASSWORD'))
    args = parser.parse_args(argv)

    if not args.email:
        print('An email is required (--email or ADMIN_EMAIL).', file=sys.stderr)
        return 1

    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        result = create_or_promote_admin(db, args.email, args.password)
    except ValueError as exc:
        print(str(exc), file=sys.stderr)
        return 1
    finally:
        db.close()

    print(f'{args.email}: {result}')
    return 0


if __name__ == '__main__':
    sys.exit(main())
