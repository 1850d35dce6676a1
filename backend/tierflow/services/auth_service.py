# Overview: Password hashing and user provisioning for the auth collaborator.

"""
Authentication service.

Uses bcrypt for password hashing and validates password strength. Users belong
to exactly one organization; username/email uniqueness is tenant-scoped.
"""

import re

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import User, Organization
from ..models.auth import ROLES
from ..time_utils import utcnow


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit

    Raises PasswordValidationError if requirements not met.
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    """Validate strength, then hash with bcrypt (cost from BCRYPT_ROUNDS)."""
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed hash (e.g. seeded placeholder)
        return False


def create_user(
    *,
    org_id: int,
    username: str,
    email: str,
    password: str,
    role: str,
    display_name: str | None = None,
) -> User:
    """
    Create a user in an organization.

    Raises ValueError for unknown roles, missing organizations, or duplicate
    username/email within the organization.
    """
    if role not in ROLES:
        raise ValueError(f"Unknown role: {role}")

    org = db.session.query(Organization).filter_by(id=org_id).first()
    if not org:
        raise ValueError(f"Organization {org_id} not found")

    duplicate = db.session.query(User).filter(
        User.org_id == org_id,
        (User.username == username) | (User.email == email),
    ).first()
    if duplicate:
        raise ValueError("Username or email already exists in this organization")

    user = User(
        org_id=org_id,
        username=username,
        email=email,
        display_name=display_name,
        password_hash=hash_password(password),
        role=role,
        is_active=True,
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(username: str, password: str, org_id: int | None = None) -> User | None:
    """
    Resolve credentials to an active user of an active organization.

    username may also be an email address. When the same username exists in
    several organizations, org_id disambiguates; without it the login fails.
    """
    query = db.session.query(User).filter(
        (User.username == username) | (User.email == username),
        User.is_active.is_(True),
    )
    if org_id is not None:
        query = query.filter(User.org_id == org_id)

    candidates = query.all()
    if len(candidates) != 1:
        return None

    user = candidates[0]
    if not verify_password(password, user.password_hash):
        return None

    org = db.session.query(Organization).filter_by(id=user.org_id).first()
    if not org or not org.is_active:
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user
