# Overview: Service-layer operations for auth; passwords, logins and user administration.

"""
Authentication Service

Every action must be attributable to a user. Passwords are hashed with bcrypt
and must meet the strength rules below. There are no built-in or fallback
accounts: the first admin is created with `flask users create`.
"""

import re

import bcrypt
from flask import current_app

from ..errors import AuthenticationError, ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import SessionToken, User
from ..models.auth import ROLES
from ..time_utils import utcnow
from ..validation import require_choice, require_text
from .transaction import transaction_scope


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    kind = "weak_password"


def validate_password_strength(password: str) -> None:
    """
    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter, one lowercase letter and one digit
    - At least one special character (!@#$%^&*(),.'":{}|<>)
    """
    if not password or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """Validate strength, then bcrypt-hash with the configured cost."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=current_app.config["BCRYPT_ROUNDS"])
    return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed hash
        return False


def authenticate(username: str, password: str) -> User:
    """Raises AuthenticationError with the same message for unknown user and bad password."""
    user = db.session.query(User).filter_by(username=(username or "").strip()).first()
    if not user or not verify_password(password or "", user.password_hash):
        raise AuthenticationError("Invalid username or password")
    if not user.is_active:
        raise AuthenticationError("Account is deactivated")
    user.last_login_at = utcnow()
    db.session.commit()
    return user


# ==============================
# User administration
# ==============================

def create_user(username: str, name: str, password: str, role: str) -> User:
    username = require_text(username, "username")
    name = require_text(name, "name")
    require_choice(role, "role", ROLES)
    password_hash = hash_password(password or "")

    with transaction_scope() as session:
        if session.query(User).filter_by(username=username).first():
            raise ConflictError(f"Username {username!r} already exists")
        user = User(username=username, name=name, password_hash=password_hash, role=role, is_active=True)
        session.add(user)

    current_app.logger.info("User created: id=%s username=%s role=%s", user.id, username, role)
    return user


def list_users(include_inactive: bool = True) -> list[User]:
    query = db.session.query(User)
    if not include_inactive:
        query = query.filter(User.is_active.is_(True))
    return query.order_by(User.username.asc()).all()


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError(f"User {user_id} not found")
    return user


def update_user(user_id: int, *, name=None, role=None, password=None, is_active=None) -> User:
    if role is not None:
        require_choice(role, "role", ROLES)
    password_hash = hash_password(password) if password is not None else None

    with transaction_scope() as session:
        user = session.get(User, user_id)
        if not user:
            raise NotFoundError(f"User {user_id} not found")
        if name is not None:
            user.name = require_text(name, "name")
        if role is not None:
            user.role = role
        if password_hash is not None:
            user.password_hash = password_hash
        if is_active is not None:
            user.is_active = bool(is_active)
        if password_hash is not None or is_active is False:
            _revoke_user_sessions(session, user.id, "Credentials or status changed")
    return user


def deactivate_user(user_id: int) -> User:
    return update_user(user_id, is_active=False)


def _revoke_user_sessions(session, user_id: int, reason: str) -> None:
    now = utcnow()
    for token in session.query(SessionToken).filter_by(user_id=user_id, is_revoked=False).all():
        token.is_revoked = True
        token.revoked_at = now
        token.revoked_reason = reason
