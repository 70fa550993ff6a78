"""
Password hashing (bcrypt) and JWT issuing/decoding (PyJWT) for admins and owners.
"""

from __future__ import annotations

import logging
import os
import secrets
import string
from datetime import datetime, timedelta
from typing import Any, Dict
from uuid import uuid4

import bcrypt
import jwt

from src.utils.config_loader import get_app_config

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
_DEV_SECRET = "dev-secret-change-me"


def _secret(env_name: str) -> str:
    value = os.getenv(env_name, "")
    if not value:
        logger.warning("%s not set; using development secret", env_name)
        return _DEV_SECRET
    return value


def access_secret() -> str:
    return _secret("JWT_SECRET")


def refresh_secret() -> str:
    return _secret("JWT_REFRESH_SECRET")


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=10)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed hash in the database
        return False


def _encode(payload: Dict[str, Any], secret: str, ttl: timedelta) -> str:
    now = datetime.utcnow()
    claims = dict(payload)
    claims["iat"] = now
    claims["exp"] = now + ttl
    claims["jti"] = uuid4().hex
    return jwt.encode(claims, secret, algorithm=ALGORITHM)


def create_access_token(payload: Dict[str, Any]) -> str:
    minutes = get_app_config().auth.access_token_minutes
    return _encode(payload, access_secret(), timedelta(minutes=minutes))


def create_refresh_token(payload: Dict[str, Any], days: int | None = None) -> str:
    if days is None:
        days = get_app_config().auth.refresh_token_days
    return _encode(payload, refresh_secret(), timedelta(days=days))


def decode_access_token(token: str) -> Dict[str, Any]:
    """Raises jwt.ExpiredSignatureError or jwt.InvalidTokenError."""
    return jwt.decode(token, access_secret(), algorithms=[ALGORITHM])


def decode_refresh_token(token: str) -> Dict[str, Any]:
    return jwt.decode(token, refresh_secret(), algorithms=[ALGORITHM])


def refresh_expiry(days: int | None = None) -> datetime:
    if days is None:
        days = get_app_config().auth.refresh_token_days
    return datetime.utcnow() + timedelta(days=days)


def generate_owner_access_token() -> str:
    """64 hex chars."""
    return secrets.token_hex(32)


def generate_password(length: int = 10) -> str:
    alphabet = string.ascii_letters + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length))
