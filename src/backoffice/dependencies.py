import hmac
import logging
import os
from dataclasses import dataclass, field
from typing import Optional, Set

import jwt
from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy import select

from src.backoffice import security
from src.database.models import Permission, PropertyOwner, User, role_permissions, user_roles

logger = logging.getLogger(__name__)

# Wired by src.api.main at import time; tests override the getters instead.
postgres_db = None
redis_cache = None
telegram_notifier = None
agreement_editor = None


def get_db():
    return postgres_db


def get_cache():
    return redis_cache


def get_telegram():
    return telegram_notifier


def get_ai_editor():
    return agreement_editor


def client_ip(request: Optional[Request]) -> Optional[str]:
    if request is None:
        return None
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


# ============================================================================
# ADMIN AUTH
# ============================================================================

@dataclass
class CurrentAdmin:
    id: int
    username: str
    full_name: str
    is_super_admin: bool = False
    permissions: Set[str] = field(default_factory=set)

    def has_permission(self, name: str) -> bool:
        return self.is_super_admin or name in self.permissions


def bearer_token(authorization: Optional[str]) -> str:
    if not authorization or not authorization.lower().startswith("bearer "):
        return ""
    return authorization[7:].strip()


def load_permissions(db, user_id: int) -> Set[str]:
    with db.session() as s:
        stmt = (
            select(Permission.permission_name)
            .join(role_permissions, role_permissions.c.permission_id == Permission.id)
            .join(user_roles, user_roles.c.role_id == role_permissions.c.role_id)
            .where(user_roles.c.user_id == user_id)
            .distinct()
        )
        return set(s.execute(stmt).scalars().all())


def admin_from_token(db, token: str) -> CurrentAdmin:
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token not provided")
    try:
        payload = security.decode_access_token(token)
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    if payload.get("typ") != "admin":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    user = db.get(User, payload.get("id"))
    if not user or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found or inactive")

    return CurrentAdmin(
        id=user.id,
        username=user.username,
        full_name=user.full_name,
        is_super_admin=bool(user.is_super_admin),
        permissions=load_permissions(db, user.id),
    )


async def get_current_admin(
    authorization: Optional[str] = Header(default=None),
    db=Depends(get_db),
) -> CurrentAdmin:
    return admin_from_token(db, bearer_token(authorization))


def require_permission(name: str):
    async def _check(admin: CurrentAdmin = Depends(get_current_admin)) -> CurrentAdmin:
        if not admin.has_permission(name):
            logger.info("Permission %s denied for %s", name, admin.username)
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return admin

    return _check


async def require_super_admin(admin: CurrentAdmin = Depends(get_current_admin)) -> CurrentAdmin:
    if not admin.is_super_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Super admin access required")
    return admin


# ============================================================================
# OWNER AUTH
# ============================================================================

@dataclass
class CurrentOwner:
    id: int
    owner_name: str
    can_edit_calendar: bool
    can_edit_pricing: bool


async def get_current_owner(
    authorization: Optional[str] = Header(default=None),
    db=Depends(get_db),
) -> CurrentOwner:
    token = bearer_token(authorization)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token not provided")
    try:
        payload = security.decode_access_token(token)
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    if payload.get("typ") != "owner":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    owner = db.get(PropertyOwner, payload.get("owner_id"))
    if not owner or not owner.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Owner not found or inactive")

    return CurrentOwner(
        id=owner.id,
        owner_name=owner.owner_name,
        can_edit_calendar=bool(owner.can_edit_calendar),
        can_edit_pricing=bool(owner.can_edit_pricing),
    )


async def require_pricing_edit(owner: CurrentOwner = Depends(get_current_owner)) -> CurrentOwner:
    if not owner.can_edit_pricing:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You do not have permission to edit prices")
    return owner


async def require_calendar_edit(owner: CurrentOwner = Depends(get_current_owner)) -> CurrentOwner:
    if not owner.can_edit_calendar:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You do not have permission to edit the calendar")
    return owner


# ============================================================================
# TELEGRAM WEBHOOK
# ============================================================================

async def telegram_webhook_protection(
    x_telegram_bot_api_secret_token: Optional[str] = Header(default=None, alias="X-Telegram-Bot-Api-Secret-Token"),
):
    expected = os.getenv("TELEGRAM_WEBHOOK_SECRET", "").strip()
    candidate = (x_telegram_bot_api_secret_token or "").strip()
    ok = bool(expected) and bool(candidate) and hmac.compare_digest(candidate, expected)
    if not ok:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing webhook secret",
        )
