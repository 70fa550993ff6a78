"""Admin user management."""
from datetime import datetime
from typing import Any, Dict, List
import logging

from fastapi import HTTPException
from sqlalchemy import select

from src.backoffice import security
from src.backoffice.controllers.auth_controller import user_with_roles
from src.backoffice.validation import (
    add_error,
    optional_str,
    parse_bool,
    parse_id_list,
    raise_if_errors,
    require_str,
    validate_email,
)
from src.database.models import Role, User

logger = logging.getLogger(__name__)


class UsersController:
    def __init__(self, db):
        self.db = db

    def list_users(self) -> List[Dict[str, Any]]:
        with self.db.session() as s:
            users = s.execute(select(User).order_by(User.created_at.desc(), User.id.desc())).scalars().all()
            return [user_with_roles(u) for u in users]

    def get_user(self, user_id: int) -> Dict[str, Any]:
        with self.db.session() as s:
            user = s.get(User, user_id)
            if not user:
                raise HTTPException(status_code=404, detail="User not found")
            return user_with_roles(user)

    def create_user(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        errors: Dict[str, str] = {}
        username = require_str(payload, "username", errors, label="Username", min_length=3)
        password = require_str(payload, "password", errors, label="Password", min_length=6)
        full_name = require_str(payload, "full_name", errors, label="Full name")
        email = validate_email(payload.get("email"), errors)
        role_ids = parse_id_list(payload.get("role_ids"), errors, "role_ids")
        raise_if_errors(errors)

        with self.db.session() as s:
            if s.execute(select(User.id).where(User.username == username)).first():
                raise HTTPException(status_code=400, detail="Username already exists")

            user = User(
                username=username,
                password_hash=security.hash_password(password),
                full_name=full_name,
                email=email,
                is_active=True,
                is_super_admin=False,
            )
            if role_ids:
                user.roles = list(s.execute(select(Role).where(Role.id.in_(role_ids))).scalars().all())
            s.add(user)
            s.flush()
            logger.info("User created: %s (ID: %s)", username, user.id)
            return {"id": user.id}

    def update_user(self, user_id: int, payload: Dict[str, Any]) -> Dict[str, Any]:
        errors: Dict[str, str] = {}
        if "password" in payload and payload.get("password"):
            if len(str(payload["password"])) < 6:
                add_error(errors, "password", "Password must be at least 6 characters")
        if "email" in payload:
            validate_email(payload.get("email"), errors)
        role_ids = parse_id_list(payload.get("role_ids"), errors, "role_ids") if "role_ids" in payload else None
        raise_if_errors(errors)

        with self.db.session() as s:
            user = s.get(User, user_id)
            if not user:
                raise HTTPException(status_code=404, detail="User not found")

            if "full_name" in payload and optional_str(payload, "full_name"):
                user.full_name = optional_str(payload, "full_name")
            if "email" in payload:
                user.email = optional_str(payload, "email")
            if payload.get("password"):
                user.password_hash = security.hash_password(str(payload["password"]))
            if "is_active" in payload:
                user.is_active = parse_bool(payload.get("is_active"), default=user.is_active)
            if role_ids is not None:
                user.roles = list(s.execute(select(Role).where(Role.id.in_(role_ids))).scalars().all()) if role_ids else []
            user.updated_at = datetime.utcnow()
            s.flush()
            logger.info("User updated: %s", user.username)
            return user_with_roles(user)

    def delete_user(self, user_id: int, current_user_id: int) -> None:
        if user_id == current_user_id:
            raise HTTPException(status_code=400, detail="You cannot delete yourself")
        with self.db.session() as s:
            user = s.get(User, user_id)
            if not user:
                raise HTTPException(status_code=404, detail="User not found")
            if user.is_super_admin:
                raise HTTPException(status_code=400, detail="Cannot delete a super admin")
            s.delete(user)
            logger.info("User deleted: %s", user.username)
