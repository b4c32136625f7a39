# Overview: Shop user accounts; bcrypt password storage and username/email login.

"""
Accounts

WHY: A closure records who closed the day and every sale records who rang
it up, so each person at the counter gets their own account. Passwords
are stored as bcrypt hashes and must pass PASSWORD_RULES.
"""

import re

import bcrypt

from ..extensions import db
from ..models import User
from ..models.auth import ROLES, ROLE_STAFF
from watchshop.time_utils import utcnow


BCRYPT_ROUNDS = 12
MIN_PASSWORD_LENGTH = 8

PASSWORD_RULES = (
    (r"[A-Z]", "an uppercase letter"),
    (r"[a-z]", "a lowercase letter"),
    (r"\d", "a digit"),
    (r"[^A-Za-z0-9]", "a symbol"),
)


class PasswordValidationError(Exception):
    """Raised when a password fails PASSWORD_RULES."""
    pass


def check_password_rules(password: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise PasswordValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    missing = [label for pattern, label in PASSWORD_RULES if not re.search(pattern, password)]
    if missing:
        raise PasswordValidationError(f"Password must contain {', '.join(missing)}")


def hash_password(password: str) -> str:
    check_password_rules(password)
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def password_matches(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # malformed stored hash
        return False


def create_user(
    username: str,
    email: str,
    password: str,
    role: str = ROLE_STAFF,
    full_name: str | None = None,
) -> User:
    """
    Raises:
        ValueError: unknown role, or username/email taken
        PasswordValidationError: weak password
    """
    if role not in ROLES:
        raise ValueError(f"Unknown role: {role}")

    taken = db.session.query(User.id).filter(
        db.or_(User.username == username, User.email == email)
    ).first()
    if taken:
        raise ValueError("Username or email already exists")

    user = User(
        username=username,
        email=email,
        full_name=full_name,
        password_hash=hash_password(password),
        role=role,
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(login: str, password: str) -> User | None:
    """Active user matching login (username or email) and password, else None."""
    user = db.session.query(User).filter(
        db.or_(User.username == login, User.email == login),
        User.is_active.is_(True),
    ).first()
    if user is None or not password_matches(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user
