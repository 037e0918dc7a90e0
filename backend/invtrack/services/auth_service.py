# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

WHY: Every inventory movement must be attributable to a user. Uses bcrypt
for password hashing and validates password strength on account creation.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor from BCRYPT_ROUNDS, default 12)
- Minimum 8 characters, upper/lower case, digit and special character
- Bearer tokens are issued by token_service (HS256 JWT, 24h)
- Deactivated accounts cannot log in and their tokens stop working
"""

import re

import bcrypt
from flask import current_app

from ..extensions import db
from ..errors import (
    DuplicateKeyError,
    InactiveAccountError,
    InvalidCredentialsError,
    NotFoundError,
    ValidationError,
)
from ..models import User, UserRole
from ..models.enums import ROLE_RANK
from ..time_utils import utcnow
from . import audit_service, token_service
from .id_service import generate_id, USER_PREFIX


class PasswordValidationError(ValidationError):
    """Password rejected by validate_password_strength."""


MIN_PASSWORD_LENGTH = 8

# (pattern, message) pairs; every pattern must match
PASSWORD_RULES = (
    (re.compile(r"[A-Z]"), "Password must contain at least one uppercase letter"),
    (re.compile(r"[a-z]"), "Password must contain at least one lowercase letter"),
    (re.compile(r"\d"), "Password must contain at least one digit"),
    (re.compile(r"[!@#$%^&*(),.'\":{}|<>]"), "Password must contain at least one special character"),
)


def validate_password_strength(password: str) -> None:
    """Raise PasswordValidationError unless password passes MIN_PASSWORD_LENGTH and every PASSWORD_RULES entry."""
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise PasswordValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    for pattern, message in PASSWORD_RULES:
        if not pattern.search(password):
            raise PasswordValidationError(message)


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt.

    Cost factor comes from BCRYPT_ROUNDS (12 in production). Strength is
    checked by create_user, not here, so seeded/legacy passwords can be hashed.
    """
    rounds = int(current_app.config.get("BCRYPT_ROUNDS", 12))
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    Returns False for malformed hashes instead of raising.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(
    *,
    username: str,
    password: str,
    email: str | None = None,
    full_name: str | None = None,
    role: str = UserRole.STAFF.value,
    actor_id: str | None = None,
    ip_address: str | None = None,
    commit: bool = True,
) -> User:
    """
    Create new user with bcrypt password hashing.

    Raises:
        ValidationError: missing username / bad role
        PasswordValidationError: weak password
        DuplicateKeyError: username or email already taken
    """
    username = (username or "").strip()
    if not username:
        raise ValidationError("username is required")
    role_value = UserRole.parse(role, "role").value
    email = (email or "").strip() or None

    validate_password_strength(password)

    if db.session.query(User).filter(User.username == username).first():
        raise DuplicateKeyError("Username already exists")
    if email and db.session.query(User).filter(User.email == email).first():
        raise DuplicateKeyError("Email already exists")

    user = User(
        id=generate_id(USER_PREFIX),
        username=username,
        email=email,
        full_name=full_name,
        password_hash=hash_password(password),
        role=role_value,
        is_active=True,
    )
    db.session.add(user)
    db.session.flush()

    audit_service.record(
        actor_id=actor_id,
        action="create",
        entity_type="user",
        entity_id=user.id,
        details={"username": username, "role": role_value},
        ip_address=ip_address,
    )

    if commit:
        db.session.commit()
    return user


def authenticate(username: str, password: str, ip_address: str | None = None) -> tuple[User, str]:
    """
    Authenticate user with username and password.

    Returns (user, bearer_token) and stamps last_login.

    Raises:
        InvalidCredentialsError: unknown username or wrong password
        InactiveAccountError: the account is deactivated
    """
    user = db.session.query(User).filter(User.username == (username or "").strip()).first()

    if user is None or not verify_password(password or "", user.password_hash):
        raise InvalidCredentialsError("Invalid credentials")

    if not user.is_active:
        raise InactiveAccountError("Account is inactive")

    user.last_login = utcnow()
    audit_service.record(
        actor_id=user.id,
        action="login",
        entity_type="user",
        entity_id=user.id,
        ip_address=ip_address,
    )
    db.session.commit()

    return user, token_service.issue_token(user)


def get_user(user_id: str) -> User:
    user = db.session.query(User).filter_by(id=user_id).first()
    if user is None:
        raise NotFoundError(f"User {user_id} not found")
    return user


def list_users(include_inactive: bool = True) -> list[User]:
    q = db.session.query(User)
    if not include_inactive:
        q = q.filter(User.is_active.is_(True))
    return q.order_by(User.username.asc()).all()


def set_user_active(
    user_id: str,
    is_active: bool,
    *,
    actor_id: str | None = None,
    ip_address: str | None = None,
) -> User:
    user = get_user(user_id)
    user.is_active = bool(is_active)
    audit_service.record(
        actor_id=actor_id,
        action="activate" if is_active else "deactivate",
        entity_type="user",
        entity_id=user.id,
        ip_address=ip_address,
    )
    db.session.commit()
    return user


def user_from_token(token: str) -> User | None:
    """
    Resolve a bearer token to an active user.

    Returns None when the token is invalid/expired, the user no longer
    exists, or the account was deactivated after the token was issued.
    """
    claims = token_service.verify_token(token)
    if not claims:
        return None
    user = db.session.query(User).filter_by(id=claims.get("sub")).first()
    if user is None or not user.is_active:
        return None
    return user


def has_role(user: User, minimum_role: str) -> bool:
    """True if the user's role ranks at or above minimum_role (admin > manager > staff)."""
    if user is None or not user.role:
        return False
    try:
        have = ROLE_RANK[UserRole(user.role)]
    except ValueError:
        return False
    return have >= ROLE_RANK[UserRole.parse(minimum_role, "role")]
