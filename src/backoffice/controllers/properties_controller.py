"""Properties: admin CRUD and the lightweight picker used by agreement and request forms."""
from datetime import datetime
from typing import Any, Dict, List, Optional
import logging

from fastapi import HTTPException
from sqlalchemy import func, or_, select

from src.backoffice.serializers import model_to_dict, paginate
from src.backoffice.validation import optional_str, raise_if_errors, require_str, to_float
from src.database.models import Property

logger = logging.getLogger(__name__)

_EDITABLE_TEXT = ("property_number", "property_name", "address", "owner_name", "deal_type", "status")
_EDITABLE_NUMBERS = (
    "sale_price",
    "year_price",
    "deposit_amount",
    "electricity_rate",
    "water_rate",
)


class PropertiesController:
    def __init__(self, db):
        self.db = db

    def _apply(self, prop: Property, payload: Dict[str, Any]) -> None:
        for key in _EDITABLE_TEXT:
            if key in payload:
                value = optional_str(payload, key)
                if key in ("deal_type", "status") and not value:
                    continue
                setattr(prop, key, value)
        for key in _EDITABLE_NUMBERS:
            if key in payload:
                setattr(prop, key, to_float(payload.get(key)))
        if "bedrooms" in payload:
            beds = to_float(payload.get("bedrooms"))
            prop.bedrooms = int(beds) if beds is not None else None
        for key in ("sale_pricing_mode", "year_pricing_mode", "deposit_type"):
            if key in payload:
                setattr(prop, key, optional_str(payload, key))

    def list_properties(self, search: Optional[str] = None, page: int = 1, limit: int = 20) -> Dict[str, Any]:
        page = max(page, 1)
        limit = min(max(limit, 1), 100)
        with self.db.session() as s:
            stmt = select(Property).where(Property.deleted_at.is_(None))
            if search:
                like = f"%{search.strip()}%"
                stmt = stmt.where(
                    or_(
                        Property.property_name.ilike(like),
                        Property.property_number.ilike(like),
                        Property.address.ilike(like),
                        Property.owner_name.ilike(like),
                    )
                )
            total = s.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
            rows = s.execute(
                stmt.order_by(Property.created_at.desc(), Property.id.desc()).offset((page - 1) * limit).limit(limit)
            ).scalars().all()
            return {"data": [model_to_dict(p) for p in rows], "pagination": paginate(page, limit, total)}

    def picker(self, search: Optional[str] = None) -> List[Dict[str, Any]]:
        with self.db.session() as s:
            stmt = select(Property).where(Property.deleted_at.is_(None))
            if search:
                like = f"%{search.strip()}%"
                stmt = stmt.where(or_(Property.property_name.ilike(like), Property.property_number.ilike(like)))
            rows = s.execute(stmt.order_by(Property.property_number.asc()).limit(100)).scalars().all()
            return [
                {
                    "id": p.id,
                    "property_number": p.property_number,
                    "property_name": p.property_name,
                    "address": p.address,
                }
                for p in rows
            ]

    def get_property(self, property_id: int) -> Dict[str, Any]:
        with self.db.session() as s:
            prop = s.get(Property, property_id)
            if not prop or prop.deleted_at is not None:
                raise HTTPException(status_code=404, detail="Property not found")
            return model_to_dict(prop)

    def create_property(self, payload: Dict[str, Any], created_by: int) -> Dict[str, Any]:
        errors: Dict[str, str] = {}
        require_str(payload, "property_name", errors, label="Property name")
        raise_if_errors(errors)

        prop = Property(created_by=created_by)
        self._apply(prop, payload)
        with self.db.session() as s:
            s.add(prop)
            s.flush()
            logger.info("Property created: %s (ID: %s)", prop.property_name, prop.id)
            return {"id": prop.id}

    def update_property(self, property_id: int, payload: Dict[str, Any]) -> Dict[str, Any]:
        with self.db.session() as s:
            prop = s.get(Property, property_id)
            if not prop or prop.deleted_at is not None:
                raise HTTPException(status_code=404, detail="Property not found")
            self._apply(prop, payload)
            prop.updated_at = datetime.utcnow()
            s.flush()
            return model_to_dict(prop)

    def delete_property(self, property_id: int) -> None:
        with self.db.session() as s:
            prop = s.get(Property, property_id)
            if not prop or prop.deleted_at is not None:
                raise HTTPException(status_code=404, detail="Property not found")
            prop.deleted_at = datetime.utcnow()
