# Overview: User accounts and password verification.

"""
Authentication Service

WHY: Every transition must be attributable to an actor whose role the gate
can read. Passwords are bcrypt hashed; cost factor comes from config.
"""

import bcrypt
from flask import current_app

from ..extensions import db
from ..errors import ConflictError, ValidationError
from ..models import User
from ..permissions import Role
from ..time_utils import utcnow


MIN_PASSWORD_LENGTH = 8


def validate_password_strength(password: str) -> None:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    if not any(c.isalpha() for c in password) or not any(c.isdigit() for c in password):
        raise ValidationError("Password must contain letters and digits")


def hash_password(password: str) -> str:
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds))
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """bcrypt.checkpw is timing-safe; malformed hashes simply fail."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def create_user(
    username: str,
    password: str,
    role: str = Role.STAFF,
    name: str | None = None,
    email: str | None = None,
) -> User:
    if role not in Role.ALL:
        raise ValidationError(f"Invalid role. Must be one of: {', '.join(Role.ALL)}")
    if not username or not username.strip():
        raise ValidationError("username is required")

    username = username.strip()
    if db.session.query(User).filter_by(username=username).first():
        raise ConflictError(f"Username {username} already exists")

    user = User(
        username=username,
        name=name,
        email=email,
        password_hash=hash_password(password),
        role=role,
        is_active=True,
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(username: str, password: str) -> User | None:
    """Return the user for valid, active credentials, else None."""
    user = db.session.query(User).filter_by(username=username).first()
    if not user or not user.is_active:
        return None
    if not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user
