# Overview: Service-layer operations for auth; password hashing, user creation, login.

"""
Mill staff accounts.

Every stock movement and cash withdrawal is attributed to a User, so accounts
are created by an administrator (CLI) and authenticate with bcrypt-hashed
passwords. Bearer tokens live in session_service.py.
"""

import re

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import User, USER_ROLES
from ricemill.time_utils import utcnow

MIN_PASSWORD_LENGTH = 8

# (pattern, requirement) pairs checked in order; first miss is reported
PASSWORD_RULES = (
    (r"[A-Z]", "an uppercase letter"),
    (r"[a-z]", "a lowercase letter"),
    (r"\d", "a digit"),
    (r"[!@#$%^&*(),.'\":{}|<>]", "a special character"),
)


class PasswordValidationError(Exception):
    """Password rejected by the strength rules."""
    pass


def validate_password_strength(password: str) -> None:
    """
    At least MIN_PASSWORD_LENGTH characters and one of each PASSWORD_RULES class.

    Raises PasswordValidationError naming the first unmet rule.
    """
    if len(password) < MIN_PASSWORD_LENGTH:
        raise PasswordValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
        )
    for pattern, requirement in PASSWORD_RULES:
        if not re.search(pattern, password):
            raise PasswordValidationError(f"Password must contain {requirement}")


def hash_password(password: str) -> str:
    """Strength-check, then bcrypt with BCRYPT_ROUNDS (default 12)."""
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    digest = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds))
    return digest.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Constant-time bcrypt check; a malformed stored hash never matches."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def create_user(
    username: str,
    name: str,
    email: str,
    password: str,
    role: str = "staff",
) -> User:
    """
    Raises:
        ValueError: unknown role or username already taken
        PasswordValidationError: weak password
    """
    if role not in USER_ROLES:
        raise ValueError(f"role must be one of: {', '.join(USER_ROLES)}")

    if db.session.query(User.id).filter(User.username == username).first():
        raise ValueError("Username already exists")

    user = User(
        username=username,
        name=name,
        email=email,
        password_hash=hash_password(password),
        role=role,
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(identifier: str, password: str) -> User | None:
    """
    Active user matching username or email with a correct password, else None.

    Stamps last_login_at on success.
    """
    user = (
        db.session.query(User)
        .filter(
            db.or_(User.username == identifier, User.email == identifier),
            User.is_active.is_(True),
        )
        .first()
    )
    if user is None or not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user
