"""AI-assisted agreement editing: suggest, apply, history."""
import logging
from datetime import datetime
from typing import Any, Dict, List

from fastapi import HTTPException
from sqlalchemy import select

from src.backoffice import identifiers
from src.backoffice.controllers.agreements_controller import log_action
from src.backoffice.serializers import jsonable, model_to_dict
from src.backoffice.validation import parse_iso_date, to_float
from src.database.models import Agreement, AgreementEditLog, User
from src.integrations.gemini.agreement_editor import AIEditorError

logger = logging.getLogger(__name__)

# Columns the model may change through `databaseUpdates`
APPLYABLE_FIELDS = {
    "city": "text",
    "date_from": "date",
    "date_to": "date",
    "rent_amount_monthly": "money",
    "rent_amount_total": "money",
    "deposit_amount": "money",
    "utilities_included": "text",
    "bank_name": "text",
    "bank_account_name": "text",
    "bank_account_number": "text",
    "upon_signed_pay": "money",
    "upon_checkin_pay": "money",
    "upon_checkout_pay": "money",
    "property_name_manual": "text",
    "property_number_manual": "text",
    "property_address_override": "text",
    "description": "text",
}

_AGREEMENT_DATA_FIELDS = ("agreement_number", "type") + tuple(APPLYABLE_FIELDS)


def coerce_field(kind: str, value: Any) -> Any:
    if value is None or value == "":
        return None
    if kind == "money":
        return to_float(value)
    if kind == "date":
        return parse_iso_date(value)
    return str(value)


class AIEditController:
    def __init__(self, db, editor):
        self.db = db
        self.editor = editor

    async def suggest_edit(self, agreement_id: int, payload: Dict[str, Any], user_id: int) -> Dict[str, Any]:
        prompt = payload.get("prompt")
        if not prompt or not isinstance(prompt, str):
            raise HTTPException(status_code=400, detail="Prompt is required")

        with self.db.session() as s:
            agreement = s.get(Agreement, agreement_id)
            if not agreement or agreement.deleted_at is not None:
                raise HTTPException(status_code=404, detail="Agreement not found")
            current_html = agreement.content or ""
            current_structure = agreement.structure or ""
            agreement_data = {key: jsonable(getattr(agreement, key)) for key in _AGREEMENT_DATA_FIELDS}

        history = payload.get("conversationHistory")
        try:
            result = await self.editor.edit_agreement(
                prompt,
                current_html,
                current_structure,
                agreement_data,
                history if isinstance(history, list) else [],
            )
        except AIEditorError as e:
            raise HTTPException(status_code=e.status_code, detail=e.message)

        changes = result["changes"]
        conversation_id = payload.get("conversationId") or f"conv_{identifiers.epoch_ms()}_{agreement_id}"

        try:
            with self.db.session() as s:
                s.add(
                    AgreementEditLog(
                        agreement_id=agreement_id,
                        user_id=user_id,
                        conversation_id=conversation_id,
                        prompt=prompt,
                        ai_response=result["aiResponse"],
                        changes_description=changes["descriptionRu"],
                        changes_list=[{"field": f, "description": changes["description"]} for f in changes["changedFields"]],
                        html_before=current_html,
                        html_after=changes["htmlAfter"],
                        structure_before=current_structure,
                        structure_after=changes["structureAfter"],
                        database_fields_changed=changes["databaseUpdates"],
                        was_applied=False,
                    )
                )
        except Exception as e:
            logger.error("Failed to save AI edit log for agreement %s: %s", agreement_id, e, exc_info=True)

        return {"conversationId": conversation_id, "changes": changes, "aiResponse": result["aiResponse"]}

    def apply_edit(self, agreement_id: int, payload: Dict[str, Any], user_id: int) -> Dict[str, Any]:
        html_after = payload.get("htmlAfter")
        if not isinstance(html_after, str) or not html_after.strip():
            raise HTTPException(status_code=400, detail="HTML content is missing")

        structure_after = payload.get("structureAfter")
        database_updates = payload.get("databaseUpdates") or {}
        if not isinstance(database_updates, dict):
            raise HTTPException(status_code=400, detail="databaseUpdates must be an object")

        with self.db.session() as s:
            agreement = s.get(Agreement, agreement_id)
            if not agreement or agreement.deleted_at is not None:
                raise HTTPException(status_code=404, detail="Agreement not found")

            fields_updated = 1
            agreement.content = html_after
            if isinstance(structure_after, str) and structure_after.strip():
                agreement.structure = structure_after
                fields_updated += 1

            for key, value in database_updates.items():
                kind = APPLYABLE_FIELDS.get(key)
                if kind is None:
                    logger.warning("Ignoring non-editable field from AI edit: %s", key)
                    continue
                try:
                    setattr(agreement, key, coerce_field(kind, value))
                except ValueError:
                    logger.warning("Ignoring invalid value for %s from AI edit: %r", key, value)
                    continue
                fields_updated += 1
            agreement.updated_at = datetime.utcnow()

            conversation_id = payload.get("conversationId")
            if conversation_id:
                latest = s.execute(
                    select(AgreementEditLog)
                    .where(AgreementEditLog.agreement_id == agreement_id, AgreementEditLog.conversation_id == conversation_id)
                    .order_by(AgreementEditLog.created_at.desc(), AgreementEditLog.id.desc())
                    .limit(1)
                ).scalars().first()
                if latest:
                    latest.was_applied = True
                    latest.applied_at = datetime.utcnow()

            log_action(s, agreement_id, "ai_edit", "AI edited agreement via chat interface", user_id)
            logger.info("AI changes applied to agreement %s (%s fields)", agreement_id, fields_updated)
            return {"contentLength": len(html_after), "fieldsUpdated": fields_updated}

    def history(self, agreement_id: int) -> List[Dict[str, Any]]:
        with self.db.session() as s:
            rows = s.execute(
                select(AgreementEditLog, User.full_name)
                .outerjoin(User, AgreementEditLog.user_id == User.id)
                .where(AgreementEditLog.agreement_id == agreement_id)
                .order_by(AgreementEditLog.created_at.desc(), AgreementEditLog.id.desc())
            ).all()
            out = []
            for log, user_name in rows:
                row = model_to_dict(log)
                row["user_name"] = user_name
                out.append(row)
            return out
