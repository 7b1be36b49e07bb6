"""
Security utilities for authentication

Provides password hashing, JWT token generation and validation, and the
role sets used for role-based access control.
"""
import hashlib
import re
import uuid
from datetime import datetime, timedelta
from typing import Optional, Dict, Any

import jwt
from passlib.context import CryptContext

from flowforge.core.config import settings


# Password hashing configuration
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ALGORITHM = "HS256"

# Role sets for require_roles()
ALL_ROLES = ("ADMIN", "MANAGER", "OPERATOR", "INVENTORY")
INVENTORY_ROLES = ("ADMIN", "MANAGER", "INVENTORY")
MANAGER_ROLES = ("ADMIN", "MANAGER")

PASSWORD_MIN_LENGTH = 8


# ============================================================================
# PASSWORD HASHING
# ============================================================================

def hash_password(password: str) -> str:
    """
    Hash a password using bcrypt

    Args:
        password: Plain text password

    Returns:
        Hashed password (bcrypt format, 60 chars)
    """
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a password against its hash

    Args:
        plain_password: Plain text password to verify
        hashed_password: Bcrypt hash to verify against

    Returns:
        True if password matches, False otherwise
    """
    return pwd_context.verify(plain_password, hashed_password)


def password_problems(password: str) -> list:
    """Return the strength rules a password fails (empty list when it passes)."""
    problems = []
    if len(password) < PASSWORD_MIN_LENGTH:
        problems.append(f"at least {PASSWORD_MIN_LENGTH} characters")
    if not re.search(r"[A-Z]", password):
        problems.append("an uppercase letter")
    if not re.search(r"[a-z]", password):
        problems.append("a lowercase letter")
    if not re.search(r"\d", password):
        problems.append("a number")
    return problems


# ============================================================================
# JWT TOKEN GENERATION
# ============================================================================

def _create_token(user_id: int, token_type: str, expires_delta: timedelta) -> str:
    now = datetime.utcnow()
    payload = {
        "sub": str(user_id),  # Subject (standard JWT claim)
        "type": token_type,
        "exp": now + expires_delta,
        "iat": now,
        "jti": str(uuid.uuid4()),  # JWT ID (unique identifier)
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=ALGORITHM)


def create_access_token(
    user_id: int,
    expires_delta: Optional[timedelta] = None
) -> str:
    """
    Create JWT access token for user authentication

    Args:
        user_id: User ID to encode in token
        expires_delta: Optional custom expiration time

    Returns:
        JWT access token string
    """
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    return _create_token(user_id, "access", expires_delta)


def create_refresh_token(
    user_id: int,
    expires_delta: Optional[timedelta] = None
) -> str:
    """
    Create JWT refresh token for token rotation

    Args:
        user_id: User ID to encode in token
        expires_delta: Optional custom expiration time

    Returns:
        JWT refresh token string
    """
    if expires_delta is None:
        expires_delta = timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
    return _create_token(user_id, "refresh", expires_delta)


# ============================================================================
# JWT TOKEN VALIDATION
# ============================================================================

def decode_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Decode and validate JWT token

    Args:
        token: JWT token string to decode

    Returns:
        Token payload dict if valid, None if invalid/expired
    """
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        # Tampered, malformed, wrong signature, ...
        return None


def get_user_from_token(
    token: str,
    expected_type: Optional[str] = None
) -> Optional[int]:
    """
    Extract user ID from JWT token with optional type validation

    Args:
        token: JWT token string
        expected_type: Expected token type ("access" or "refresh"), None to skip check

    Returns:
        User ID if token is valid and matches expected type, None otherwise
    """
    payload = decode_token(token)

    if payload is None:
        return None

    if expected_type is not None and payload.get("type") != expected_type:
        return None

    user_id_str = payload.get("sub")
    if user_id_str is None:
        return None

    try:
        return int(user_id_str)
    except (ValueError, TypeError):
        return None


# ============================================================================
# REFRESH TOKEN HELPERS
# ============================================================================

def hash_refresh_token(token: str) -> str:
    """
    Hash refresh token for secure storage in database

    Args:
        token: Refresh token string to hash

    Returns:
        SHA256 hash of token (hex string, 64 characters)
    """
    return hashlib.sha256(token.encode()).hexdigest()
