"""Admin authentication: login, logout, refresh and the current-user profile."""
from datetime import datetime
from typing import Any, Dict, Optional
import logging

import jwt
from fastapi import HTTPException
from sqlalchemy import delete, select

from src.backoffice import security
from src.database.models import RefreshToken, User

logger = logging.getLogger(__name__)


def user_with_roles(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "username": user.username,
        "full_name": user.full_name,
        "email": user.email,
        "is_active": bool(user.is_active),
        "is_super_admin": bool(user.is_super_admin),
        "last_login_at": user.last_login_at.isoformat() if user.last_login_at else None,
        "roles": [
            {
                "id": r.id,
                "role_name": r.role_name,
                "description": r.description,
                "permissions": [
                    {
                        "id": p.id,
                        "permission_name": p.permission_name,
                        "module": p.module,
                        "description": p.description,
                    }
                    for p in r.permissions
                ],
            }
            for r in user.roles
        ],
    }


class AuthController:
    def __init__(self, db):
        self.db = db

    def login(self, username: str, password: str) -> Dict[str, Any]:
        username = (username or "").strip()
        with self.db.session() as s:
            user = s.execute(
                select(User).where(User.username == username, User.is_active.is_(True))
            ).scalar_one_or_none()

            if not user or not security.verify_password(password or "", user.password_hash):
                logger.info("Failed login for %s", username)
                raise HTTPException(status_code=401, detail="Invalid username or password")

            claims = {"id": user.id, "username": user.username, "typ": "admin"}
            access_token = security.create_access_token(claims)
            refresh_token = security.create_refresh_token(claims)

            s.add(RefreshToken(user_id=user.id, token=refresh_token, expires_at=security.refresh_expiry()))
            user.last_login_at = datetime.utcnow()
            s.flush()

            logger.info("User logged in: %s", user.username)
            return {
                "user": user_with_roles(user),
                "accessToken": access_token,
                "refreshToken": refresh_token,
            }

    def logout(self, refresh_token: Optional[str]) -> None:
        if not refresh_token:
            return
        with self.db.session() as s:
            s.execute(delete(RefreshToken).where(RefreshToken.token == refresh_token))

    def refresh(self, refresh_token: Optional[str]) -> Dict[str, str]:
        if not refresh_token:
            raise HTTPException(status_code=400, detail="Refresh token is required")

        try:
            payload = security.decode_refresh_token(refresh_token)
        except jwt.InvalidTokenError:
            payload = None

        with self.db.session() as s:
            user = None
            if payload is not None:
                stored = s.execute(
                    select(RefreshToken).where(
                        RefreshToken.token == refresh_token,
                        RefreshToken.expires_at > datetime.utcnow(),
                    )
                ).scalar_one_or_none()
                user = s.get(User, stored.user_id) if stored else None

            if user and user.is_active:
                claims = {"id": user.id, "username": user.username, "typ": "admin"}
                return {"accessToken": security.create_access_token(claims)}

            # Stale or orphaned token: drop it along with anything expired
            s.execute(
                delete(RefreshToken).where(
                    (RefreshToken.token == refresh_token) | (RefreshToken.expires_at <= datetime.utcnow())
                )
            )
        raise HTTPException(status_code=401, detail="Invalid or expired refresh token")

    def me(self, user_id: int) -> Dict[str, Any]:
        with self.db.session() as s:
            user = s.get(User, user_id)
            if not user:
                raise HTTPException(status_code=404, detail="User not found")
            return user_with_roles(user)
