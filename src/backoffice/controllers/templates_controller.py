"""Agreement templates: the content an agreement is generated from."""
from datetime import datetime
from typing import Any, Dict, List, Optional
import logging

from fastapi import HTTPException
from sqlalchemy import func, select

from src.backoffice.serializers import model_to_dict
from src.backoffice.validation import parse_bool, raise_if_errors, require_str
from src.database.models import Agreement, AgreementTemplate, Property, User

logger = logging.getLogger(__name__)


class TemplatesController:
    def __init__(self, db):
        self.db = db

    def _usage_count(self, s, template_id: int) -> int:
        return s.execute(
            select(func.count(Agreement.id)).where(
                Agreement.template_id == template_id, Agreement.deleted_at.is_(None)
            )
        ).scalar_one()

    def list_templates(self, template_type: Optional[str] = None, active: Optional[str] = None) -> List[Dict[str, Any]]:
        with self.db.session() as s:
            stmt = (
                select(AgreementTemplate, User.username)
                .outerjoin(User, AgreementTemplate.created_by == User.id)
                .order_by(AgreementTemplate.created_at.desc(), AgreementTemplate.id.desc())
            )
            if template_type:
                stmt = stmt.where(AgreementTemplate.type == template_type)
            if active is not None:
                stmt = stmt.where(AgreementTemplate.is_active == parse_bool(active))
            rows = []
            for template, created_by_name in s.execute(stmt).all():
                row = model_to_dict(template)
                row["created_by_name"] = created_by_name
                row["usage_count"] = self._usage_count(s, template.id)
                rows.append(row)
            return rows

    def get_template(self, template_id: int) -> Dict[str, Any]:
        with self.db.session() as s:
            found = s.execute(
                select(AgreementTemplate, User.username)
                .outerjoin(User, AgreementTemplate.created_by == User.id)
                .where(AgreementTemplate.id == template_id)
            ).first()
            if not found:
                raise HTTPException(status_code=404, detail="Template not found")
            template, created_by_name = found

            used = s.execute(
                select(Property)
                .join(Agreement, Agreement.property_id == Property.id)
                .where(Agreement.template_id == template_id)
                .distinct()
                .limit(10)
            ).scalars().all()

            data = model_to_dict(template)
            data["created_by_name"] = created_by_name
            data["used_properties"] = [model_to_dict(p) for p in used]
            return data

    def create_template(self, payload: Dict[str, Any], created_by: int) -> Dict[str, Any]:
        errors: Dict[str, str] = {}
        name = require_str(payload, "name", errors, label="Name")
        template_type = require_str(payload, "type", errors, label="Type")
        if not payload.get("content"):
            errors.setdefault("content", "Content is required")
        raise_if_errors(errors)

        template = AgreementTemplate(
            name=name,
            type=template_type,
            content=payload["content"],
            structure=payload.get("structure") or None,
            created_by=created_by,
        )
        with self.db.session() as s:
            s.add(template)
            s.flush()
            logger.info("Agreement template created: %s (ID: %s)", name, template.id)
            return {"id": template.id}

    def update_template(self, template_id: int, payload: Dict[str, Any]) -> None:
        with self.db.session() as s:
            template = s.get(AgreementTemplate, template_id)
            if not template:
                raise HTTPException(status_code=404, detail="Template not found")

            changed = False
            for key in ("name", "content", "structure"):
                if key in payload and payload[key] is not None:
                    setattr(template, key, payload[key])
                    changed = True
            if "is_active" in payload and payload["is_active"] is not None:
                template.is_active = parse_bool(payload["is_active"], default=template.is_active)
                changed = True

            if changed:
                template.version = (template.version or 1) + 1
                template.updated_at = datetime.utcnow()
                logger.info("Agreement template updated: %s (v%s)", template_id, template.version)

    def delete_template(self, template_id: int) -> None:
        with self.db.session() as s:
            template = s.get(AgreementTemplate, template_id)
            if not template:
                raise HTTPException(status_code=404, detail="Template not found")
            usage = self._usage_count(s, template_id)
            if usage:
                raise HTTPException(status_code=400, detail=f"Template is used in {usage} agreements")
            template.is_active = False
            logger.info("Agreement template deactivated: %s", template_id)
