"""Signature slots: admin management and the public signing page."""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from sqlalchemy import func, select
from user_agents import parse as parse_user_agent

from src.backoffice import identifiers
from src.backoffice.controllers.agreements_controller import frontend_url, log_action, property_fields
from src.backoffice.serializers import model_to_dict
from src.backoffice.validation import clamp_int, optional_str, raise_if_errors, to_float
from src.database.models import Agreement, AgreementSignature, Property

logger = logging.getLogger(__name__)


def describe_device(user_agent: str) -> Dict[str, str]:
    """device_type / browser / os as shown in the signature audit trail."""
    ua = parse_user_agent(user_agent or "")
    if ua.is_tablet:
        device_type = "tablet"
    elif ua.is_mobile:
        device_type = "mobile"
    else:
        device_type = "desktop"
    return {
        "device_type": device_type,
        "browser": f"{ua.browser.family or 'Unknown'} {ua.browser.version_string or ''}".strip(),
        "os": f"{ua.os.family or 'Unknown'} {ua.os.version_string or ''}".strip(),
    }


class SignaturesController:
    def __init__(self, db):
        self.db = db

    def _load(self, s, signature_id: int) -> AgreementSignature:
        sig = s.get(AgreementSignature, signature_id)
        if not sig:
            raise HTTPException(status_code=404, detail="Signature not found")
        return sig

    def create_signatures(self, agreement_id: int, payload: Dict[str, Any], user_id: int) -> Dict[str, Any]:
        raw = payload.get("signatures")
        errors: Dict[str, str] = {}
        if not isinstance(raw, list) or not raw:
            errors["signatures"] = "At least one signature is required"
        else:
            for index, item in enumerate(raw):
                if not isinstance(item, dict) or not optional_str(item, "signer_name"):
                    errors[f"signatures[{index}].signer_name"] = "Signer name is required"
                if not isinstance(item, dict) or not optional_str(item, "signer_role"):
                    errors[f"signatures[{index}].signer_role"] = "Signer role is required"
        raise_if_errors(errors)

        new_roles: List[str] = [optional_str(item, "signer_role") for item in raw]
        if len(set(new_roles)) != len(new_roles):
            raise HTTPException(status_code=400, detail="Signer roles must be unique")

        with self.db.session() as s:
            agreement = s.get(Agreement, agreement_id)
            if not agreement or agreement.deleted_at is not None:
                raise HTTPException(status_code=404, detail="Agreement not found")

            existing_roles = set(
                s.execute(select(AgreementSignature.signer_role).where(AgreementSignature.agreement_id == agreement_id)).scalars().all()
            )
            for role in new_roles:
                if role in existing_roles:
                    raise HTTPException(status_code=400, detail=f'Role "{role}" already used')

            links = []
            for item in raw:
                link = identifiers.new_uuid()
                s.add(
                    AgreementSignature(
                        agreement_id=agreement_id,
                        signer_name=optional_str(item, "signer_name"),
                        signer_role=optional_str(item, "signer_role"),
                        position_x=to_float(item.get("position_x")) or 100,
                        position_y=to_float(item.get("position_y")) or 100,
                        position_page=clamp_int(item.get("position_page"), low=1),
                        signature_link=link,
                    )
                )
                links.append({"signer_name": optional_str(item, "signer_name"), "link": f"{frontend_url()}/sign/{link}"})

            if not existing_roles:
                agreement.status = "pending_signatures"
            log_action(s, agreement_id, "signatures_added", f"Signatures added: {len(raw)}", user_id)
            logger.info("Signatures created for agreement: %s", agreement_id)
            return {"signatureLinks": links}

    def get_by_link(self, link: str, ip_address: Optional[str], user_agent: Optional[str]) -> Dict[str, Any]:
        with self.db.session() as s:
            sig = s.execute(select(AgreementSignature).where(AgreementSignature.signature_link == link)).scalars().first()
            if not sig:
                raise HTTPException(status_code=404, detail="Signing link not found or no longer valid")
            agreement = s.get(Agreement, sig.agreement_id)
            if not agreement or agreement.deleted_at is not None:
                raise HTTPException(status_code=404, detail="Signing link not found or no longer valid")

            if sig.first_visit_at is None:
                device = describe_device(user_agent or "")
                sig.first_visit_at = datetime.utcnow()
                sig.ip_address = ip_address or "unknown"
                sig.user_agent = user_agent or ""
                sig.device_type = device["device_type"]
                sig.browser = device["browser"]
                sig.os = device["os"]
                s.flush()

            prop = s.get(Property, agreement.property_id) if agreement.property_id else None
            data = model_to_dict(sig)
            data.update(
                {
                    "agreement_number": agreement.agreement_number,
                    "agreement_content": agreement.content,
                    "agreement_structure": agreement.structure,
                    "agreement_type": agreement.type,
                    "agreement_city": agreement.city,
                    "date_from": agreement.date_from.isoformat() if agreement.date_from else None,
                    "date_to": agreement.date_to.isoformat() if agreement.date_to else None,
                    "rent_amount_monthly": agreement.rent_amount_monthly,
                    "rent_amount_total": agreement.rent_amount_total,
                    "deposit_amount": agreement.deposit_amount,
                    "utilities_included": agreement.utilities_included,
                    "public_link": agreement.public_link,
                }
            )
            fields = property_fields(agreement, prop)
            data["property_name"] = fields["property_name"]
            data["property_number"] = fields["property_number"]
            return data

    def sign(self, link: str, payload: Dict[str, Any], ip_address: Optional[str], user_agent: Optional[str]) -> Dict[str, Any]:
        signature_data = payload.get("signature_data")
        if not signature_data:
            raise HTTPException(status_code=400, detail="Signature data is missing")

        with self.db.session() as s:
            sig = s.execute(select(AgreementSignature).where(AgreementSignature.signature_link == link)).scalars().first()
            if not sig:
                raise HTTPException(status_code=404, detail="Signature not found")
            agreement = s.get(Agreement, sig.agreement_id)
            if not agreement or agreement.deleted_at is not None:
                raise HTTPException(status_code=404, detail="Signature not found")
            if sig.is_signed:
                raise HTTPException(status_code=400, detail="Agreement already signed")

            if not sig.device_type and user_agent:
                device = describe_device(user_agent)
                sig.user_agent = user_agent
                sig.device_type = device["device_type"]
                sig.browser = device["browser"]
                sig.os = device["os"]

            sig.signature_data = signature_data
            sig.is_signed = True
            sig.signed_at = datetime.utcnow()
            sig.ip_address = ip_address or "unknown"
            sig.agreement_view_duration = clamp_int(payload.get("agreement_view_duration"))
            sig.signature_clear_count = clamp_int(payload.get("signature_clear_count"))
            sig.total_session_duration = clamp_int(payload.get("total_session_duration"))
            s.flush()

            unsigned = s.execute(
                select(func.count(AgreementSignature.id)).where(
                    AgreementSignature.agreement_id == sig.agreement_id, AgreementSignature.is_signed.is_(False)
                )
            ).scalar_one()
            all_signed = unsigned == 0
            if all_signed:
                agreement.status = "signed"

            log_action(
                s,
                sig.agreement_id,
                "signed",
                f"Signed: {sig.signer_name} ({sig.signer_role}) | Device: {sig.device_type} | Browser: {sig.browser}",
                ip_address=ip_address,
            )
            logger.info("Agreement signed: %s by %s", sig.agreement_id, sig.signer_name)
            return {"all_signed": all_signed}

    def update_signature(self, signature_id: int, payload: Dict[str, Any], user_id: int) -> None:
        with self.db.session() as s:
            sig = self._load(s, signature_id)
            if optional_str(payload, "signer_name"):
                sig.signer_name = optional_str(payload, "signer_name")
            if optional_str(payload, "signer_role"):
                sig.signer_role = optional_str(payload, "signer_role")
            log_action(s, sig.agreement_id, "signature_updated", f"Signature updated: {sig.signer_name} ({sig.signer_role})", user_id)

    def regenerate_link(self, signature_id: int, user_id: int) -> Dict[str, str]:
        with self.db.session() as s:
            sig = self._load(s, signature_id)
            sig.signature_link = identifiers.new_uuid()
            log_action(s, sig.agreement_id, "signature_link_regenerated", f"Link regenerated for: {sig.signer_name}", user_id)
            logger.info("Signature link regenerated: %s", signature_id)
            return {"signature_link": sig.signature_link, "public_url": f"{frontend_url()}/sign/{sig.signature_link}"}

    def delete_signature(self, signature_id: int, user_id: int) -> None:
        with self.db.session() as s:
            sig = self._load(s, signature_id)
            agreement_id = sig.agreement_id
            log_action(s, agreement_id, "signature_deleted", f"Signature deleted: {sig.signer_name} ({sig.signer_role})", user_id)
            s.delete(sig)
            s.flush()

            remaining = s.execute(
                select(func.count(AgreementSignature.id)).where(AgreementSignature.agreement_id == agreement_id)
            ).scalar_one()
            if remaining == 0:
                agreement = s.get(Agreement, agreement_id)
                if agreement:
                    agreement.status = "draft"
            logger.info("Agreement signature deleted: %s", signature_id)
