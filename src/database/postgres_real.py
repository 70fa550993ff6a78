"""
Postgres-backed DB for production when DATABASE_URL is set.
src.database.postgres provides the same class over an in-process SQLite engine.
"""

from __future__ import annotations

import logging
import re
from contextlib import contextmanager
from typing import Any, Iterator, Optional, Type, TypeVar

from sqlalchemy import create_engine, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from src.database.models import Base, Permission, User

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=Base)

# (permission_name, module, description)
PERMISSION_CATALOGUE = [
    ("users.read", "users", "View users"),
    ("users.create", "users", "Create users"),
    ("users.update", "users", "Edit users"),
    ("users.delete", "users", "Delete users"),
    ("roles.read", "roles", "View roles"),
    ("roles.create", "roles", "Create roles"),
    ("roles.update", "roles", "Edit roles"),
    ("roles.delete", "roles", "Delete roles"),
    ("properties.read", "properties", "View properties"),
    ("properties.create", "properties", "Create properties"),
    ("properties.update", "properties", "Edit properties"),
    ("agreements.view", "agreements", "View agreements"),
    ("agreements.create", "agreements", "Create agreements"),
    ("agreements.edit", "agreements", "Edit agreements"),
    ("agreements.delete", "agreements", "Delete agreements"),
    ("agreements.manage_templates", "agreements", "Manage agreement templates"),
    ("agreements.manage_signatures", "agreements", "Manage signatures"),
    ("requests.view", "requests", "View requests"),
    ("requests.create", "requests", "Create requests"),
    ("requests.delete", "requests", "Delete requests"),
    ("financial_documents.view_invoices", "financial_documents", "View invoices"),
    ("financial_documents.create_invoices", "financial_documents", "Create invoices"),
    ("financial_documents.edit_invoices", "financial_documents", "Edit invoices"),
    ("financial_documents.delete_invoices", "financial_documents", "Delete invoices"),
    ("financial_documents.view_receipts", "financial_documents", "View receipts"),
    ("financial_documents.create_receipts", "financial_documents", "Create receipts"),
    ("financial_documents.edit_receipts", "financial_documents", "Edit receipts"),
    ("financial_documents.delete_receipts", "financial_documents", "Delete receipts"),
]


def _normalize_connection_string(s: str) -> str:
    """Strip common mistakes: 'psql \'...\'', extra quotes, whitespace."""
    s = s.strip()
    if re.match(r"^psql\s+", s, re.IGNORECASE):
        s = re.sub(r"^psql\s+", "", s, flags=re.IGNORECASE).strip()
    if len(s) >= 2 and s[0] == s[-1] and s[0] in ("'", '"'):
        s = s[1:-1].strip()
    return s


class PostgresDB:
    """
    Data access using SQLAlchemy. Controllers open a unit of work with
    `session()`; simple lookups go through the generic helpers below.
    """

    def __init__(self, connection_string: Optional[str] = None, engine: Optional[Engine] = None) -> None:
        if engine is None:
            connection_string = _normalize_connection_string(connection_string or "")
            engine = create_engine(connection_string, pool_pre_ping=True, pool_size=5, max_overflow=10)
        self.engine = engine
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine, expire_on_commit=False)

    def create_tables(self) -> None:
        Base.metadata.create_all(bind=self.engine)
        self.seed_permissions()

    @contextmanager
    def session(self) -> Iterator[Session]:
        s = self.SessionLocal()
        try:
            yield s
            s.commit()
        except Exception:
            s.rollback()
            raise
        finally:
            s.close()

    # ------------------------------------------------------------------ #
    # Bootstrap
    # ------------------------------------------------------------------ #
    def seed_permissions(self) -> int:
        """Insert missing catalogue permissions. Returns how many were added."""
        added = 0
        with self.session() as s:
            existing = set(s.execute(select(Permission.permission_name)).scalars().all())
            for name, module, description in PERMISSION_CATALOGUE:
                if name in existing:
                    continue
                s.add(Permission(permission_name=name, module=module, description=description))
                added += 1
        if added:
            logger.info("Seeded %d permissions", added)
        return added

    def ensure_super_admin(self, username: str, password_hash: str, full_name: str = "Administrator") -> Optional[User]:
        """Create the first super admin when the users table is empty."""
        with self.session() as s:
            count = s.execute(select(func.count(User.id))).scalar_one()
            if count:
                return None
            u = User(
                username=username,
                password_hash=password_hash,
                full_name=full_name,
                is_active=True,
                is_super_admin=True,
            )
            s.add(u)
            s.flush()
            s.refresh(u)
            logger.info("Created initial super admin %s", username)
            return u

    # ------------------------------------------------------------------ #
    # Lookups
    # ------------------------------------------------------------------ #
    def get(self, model: Type[ModelT], obj_id: Any) -> Optional[ModelT]:
        with self.session() as s:
            return s.get(model, obj_id)
