"""Roles and the permission catalogue."""
from typing import Any, Dict, List
import logging

from fastapi import HTTPException
from sqlalchemy import func, select

from src.backoffice.validation import optional_str, parse_id_list, raise_if_errors, require_str
from src.database.models import Permission, Role, user_roles

logger = logging.getLogger(__name__)


class RolesController:
    def __init__(self, db):
        self.db = db

    def _to_dict(self, role: Role, users_count: int = 0) -> Dict[str, Any]:
        return {
            "id": role.id,
            "role_name": role.role_name,
            "description": role.description,
            "created_at": role.created_at.isoformat() if role.created_at else None,
            "users_count": users_count,
            "permissions": [
                {
                    "id": p.id,
                    "permission_name": p.permission_name,
                    "module": p.module,
                    "description": p.description,
                }
                for p in role.permissions
            ],
        }

    def _users_count(self, s, role_id: int) -> int:
        return s.execute(select(func.count()).select_from(user_roles).where(user_roles.c.role_id == role_id)).scalar_one()

    def list_roles(self) -> List[Dict[str, Any]]:
        with self.db.session() as s:
            roles = s.execute(select(Role).order_by(Role.role_name.asc())).scalars().all()
            return [self._to_dict(r, self._users_count(s, r.id)) for r in roles]

    def get_role(self, role_id: int) -> Dict[str, Any]:
        with self.db.session() as s:
            role = s.get(Role, role_id)
            if not role:
                raise HTTPException(status_code=404, detail="Role not found")
            return self._to_dict(role, self._users_count(s, role.id))

    def permissions_by_module(self) -> Dict[str, List[Dict[str, Any]]]:
        with self.db.session() as s:
            perms = s.execute(select(Permission).order_by(Permission.module, Permission.permission_name)).scalars().all()
            grouped: Dict[str, List[Dict[str, Any]]] = {}
            for p in perms:
                grouped.setdefault(p.module, []).append(
                    {"id": p.id, "permission_name": p.permission_name, "description": p.description}
                )
            return grouped

    def create_role(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        errors: Dict[str, str] = {}
        role_name = require_str(payload, "role_name", errors, label="Role name")
        permission_ids = parse_id_list(payload.get("permission_ids"), errors, "permission_ids")
        raise_if_errors(errors)

        with self.db.session() as s:
            if s.execute(select(Role.id).where(Role.role_name == role_name)).first():
                raise HTTPException(status_code=400, detail="Role with this name already exists")
            role = Role(role_name=role_name, description=optional_str(payload, "description"))
            if permission_ids:
                role.permissions = list(s.execute(select(Permission).where(Permission.id.in_(permission_ids))).scalars().all())
            s.add(role)
            s.flush()
            logger.info("Role created: %s", role_name)
            return {"id": role.id}

    def update_role(self, role_id: int, payload: Dict[str, Any]) -> Dict[str, Any]:
        errors: Dict[str, str] = {}
        permission_ids = parse_id_list(payload.get("permission_ids"), errors, "permission_ids") if "permission_ids" in payload else None
        raise_if_errors(errors)

        with self.db.session() as s:
            role = s.get(Role, role_id)
            if not role:
                raise HTTPException(status_code=404, detail="Role not found")
            new_name = optional_str(payload, "role_name")
            if new_name and new_name != role.role_name:
                clash = s.execute(select(Role.id).where(Role.role_name == new_name, Role.id != role_id)).first()
                if clash:
                    raise HTTPException(status_code=400, detail="Role with this name already exists")
                role.role_name = new_name
            if "description" in payload:
                role.description = optional_str(payload, "description")
            if permission_ids is not None:
                role.permissions = (
                    list(s.execute(select(Permission).where(Permission.id.in_(permission_ids))).scalars().all())
                    if permission_ids
                    else []
                )
            s.flush()
            return self._to_dict(role, self._users_count(s, role.id))

    def delete_role(self, role_id: int) -> None:
        with self.db.session() as s:
            role = s.get(Role, role_id)
            if not role:
                raise HTTPException(status_code=404, detail="Role not found")
            count = self._users_count(s, role_id)
            if count:
                raise HTTPException(status_code=400, detail=f"Cannot delete role: it is assigned to {count} user(s)")
            s.delete(role)
            logger.info("Role deleted: %s", role.role_name)
