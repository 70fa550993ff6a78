"""Agreements: generation from templates, admin CRUD, public views and print tokens."""
import logging
import os
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from sqlalchemy import and_, func, or_, select

from src.backoffice import identifiers
from src.backoffice.agreement_content import (
    build_variables,
    fill_structure_text,
    months_between,
    printable_document,
    replace_variables,
)
from src.backoffice.serializers import model_to_dict, paginate
from src.backoffice.validation import (
    optional_str,
    parse_bool,
    raise_if_errors,
    to_float,
    validate_date_iso,
    validate_in,
)
from src.database.models import (
    Agreement,
    AgreementLog,
    AgreementParty,
    AgreementSignature,
    AgreementTemplate,
    BotUser,
    Property,
    Request,
    User,
)
from src.utils.config_loader import get_app_config

logger = logging.getLogger(__name__)

AGREEMENT_STATUSES = ("draft", "pending_signatures", "signed", "active", "completed", "cancelled")

_PARTY_INDIVIDUAL_FIELDS = ("name", "passport_country", "passport_number")
_PARTY_COMPANY_FIELDS = (
    "company_name",
    "company_address",
    "company_tax_id",
    "director_name",
    "director_passport",
    "director_country",
)
_MONEY_FIELDS = (
    "rent_amount_monthly",
    "deposit_amount",
    "upon_signed_pay",
    "upon_checkin_pay",
    "upon_checkout_pay",
)
_TEXT_FIELDS = (
    "description",
    "utilities_included",
    "bank_name",
    "bank_account_name",
    "bank_account_number",
    "property_name_manual",
    "property_number_manual",
    "property_address_override",
    "request_uuid",
)


def frontend_url() -> str:
    return os.getenv("FRONTEND_URL", "http://localhost:5173").rstrip("/")


def log_action(s, agreement_id: int, action: str, description: str, user_id: Optional[int] = None, ip_address: Optional[str] = None) -> None:
    s.add(
        AgreementLog(
            agreement_id=agreement_id,
            action=action,
            description=description,
            user_id=user_id,
            ip_address=ip_address,
        )
    )


def signature_summary(sig: AgreementSignature) -> Dict[str, Any]:
    return {
        "id": sig.id,
        "signer_name": sig.signer_name,
        "signer_role": sig.signer_role,
        "is_signed": bool(sig.is_signed),
        "signature_data": sig.signature_data,
        "signed_at": sig.signed_at.isoformat() if sig.signed_at else None,
    }


def property_fields(agreement: Agreement, prop: Optional[Property]) -> Dict[str, Any]:
    """Manual overrides stored on the agreement win over the linked property."""
    return {
        "property_name": agreement.property_name_manual or (prop.property_name if prop else None),
        "property_number": agreement.property_number_manual or (prop.property_number if prop else None),
        "property_address": agreement.property_address_override or (prop.address if prop else None),
    }


class AgreementsController:
    def __init__(self, db, cache=None, notifier=None):
        self.db = db
        self.cache = cache
        self.notifier = notifier
        self.cfg = get_app_config().agreements

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _load(self, s, agreement_id: int) -> Agreement:
        agreement = s.get(Agreement, agreement_id)
        if not agreement or agreement.deleted_at is not None:
            raise HTTPException(status_code=404, detail="Agreement not found")
        return agreement

    def _detail(self, s, agreement: Agreement, *, with_parties: bool = True, full_signatures: bool = True) -> Dict[str, Any]:
        data = model_to_dict(agreement)
        template = s.get(AgreementTemplate, agreement.template_id) if agreement.template_id else None
        prop = s.get(Property, agreement.property_id) if agreement.property_id else None
        creator = s.get(User, agreement.created_by) if agreement.created_by else None
        data["template_name"] = template.name if template else None
        data["created_by_name"] = creator.username if creator else None
        data.update(property_fields(agreement, prop))

        signatures = s.execute(
            select(AgreementSignature)
            .where(AgreementSignature.agreement_id == agreement.id)
            .order_by(AgreementSignature.created_at, AgreementSignature.id)
        ).scalars().all()
        data["signatures"] = [model_to_dict(sig) if full_signatures else signature_summary(sig) for sig in signatures]

        if with_parties:
            parties = s.execute(
                select(AgreementParty).where(AgreementParty.agreement_id == agreement.id).order_by(AgreementParty.id)
            ).scalars().all()
            data["parties"] = [model_to_dict(p) for p in parties]
        return data

    def list_agreements(
        self,
        agreement_type: Optional[str] = None,
        status: Optional[str] = None,
        property_id: Optional[int] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: Optional[int] = None,
    ) -> Dict[str, Any]:
        page = max(1, page or 1)
        limit = max(1, min(self.cfg.max_page_size, limit or self.cfg.default_page_size))

        signature_count = (
            select(func.count(AgreementSignature.id))
            .where(AgreementSignature.agreement_id == Agreement.id)
            .correlate(Agreement)
            .scalar_subquery()
        )
        signed_count = (
            select(func.count(AgreementSignature.id))
            .where(AgreementSignature.agreement_id == Agreement.id, AgreementSignature.is_signed.is_(True))
            .correlate(Agreement)
            .scalar_subquery()
        )

        conditions = [Agreement.deleted_at.is_(None)]
        if agreement_type:
            conditions.append(Agreement.type == agreement_type)
        if status:
            conditions.append(Agreement.status == status)
        if property_id:
            conditions.append(Agreement.property_id == property_id)
        if search:
            like = f"%{search.strip()}%"
            conditions.append(or_(Agreement.agreement_number.ilike(like), Agreement.description.ilike(like)))

        with self.db.session() as s:
            total = s.execute(select(func.count(Agreement.id)).where(and_(*conditions))).scalar_one()
            rows = s.execute(
                select(
                    Agreement,
                    AgreementTemplate.name,
                    Property,
                    User.username,
                    signature_count.label("signature_count"),
                    signed_count.label("signed_count"),
                )
                .outerjoin(AgreementTemplate, Agreement.template_id == AgreementTemplate.id)
                .outerjoin(Property, Agreement.property_id == Property.id)
                .outerjoin(User, Agreement.created_by == User.id)
                .where(and_(*conditions))
                .order_by(Agreement.created_at.desc(), Agreement.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            ).all()

            data = []
            for agreement, template_name, prop, created_by_name, sig_count, signed in rows:
                row = model_to_dict(agreement)
                row.update(property_fields(agreement, prop))
                row["template_name"] = template_name
                row["created_by_name"] = created_by_name
                row["signature_count"] = sig_count
                row["signed_count"] = signed
                data.append(row)
            return {"data": data, "pagination": paginate(page, limit, total)}

    def get_agreement(self, agreement_id: int) -> Dict[str, Any]:
        with self.db.session() as s:
            return self._detail(s, self._load(s, agreement_id))

    # ------------------------------------------------------------------
    # Create / update / delete
    # ------------------------------------------------------------------

    def _validate_parties(self, raw: Any, errors: Dict[str, str]) -> List[Dict[str, Any]]:
        if raw in (None, ""):
            return []
        if not isinstance(raw, list):
            errors["parties"] = "parties must be a list"
            return []
        parties = []
        for index, party in enumerate(raw):
            if not isinstance(party, dict) or not str(party.get("role") or "").strip():
                errors[f"parties[{index}].role"] = "Party role is required"
                continue
            parties.append(party)
        return parties

    def create_agreement(self, payload: Dict[str, Any], user_id: int) -> Dict[str, Any]:
        errors: Dict[str, str] = {}
        date_from = validate_date_iso(payload.get("date_from"), errors, "date_from", required=False)
        date_to = validate_date_iso(payload.get("date_to"), errors, "date_to", required=False)
        if date_from and date_to and date_to < date_from:
            errors["date_to"] = "date_to must not be before date_from"
        parties = self._validate_parties(payload.get("parties"), errors)
        raise_if_errors(errors)

        with self.db.session() as s:
            template = s.get(AgreementTemplate, payload.get("template_id")) if payload.get("template_id") else None
            if not template:
                raise HTTPException(status_code=404, detail="Template not found")

            prop = None
            if payload.get("property_id"):
                prop = s.get(Property, payload.get("property_id"))
                if not prop or prop.deleted_at is not None:
                    raise HTTPException(status_code=404, detail="Property not found")

            monthly = to_float(payload.get("rent_amount_monthly"))
            total = to_float(payload.get("rent_amount_total"))
            if not total and monthly and date_from and date_to:
                total = monthly * months_between(date_from, date_to)

            number = identifiers.agreement_number()
            public_uuid = identifiers.new_uuid()
            city = optional_str(payload, "city") or self.cfg.default_city

            variables = build_variables(
                {**payload, "city": city, "parties": parties},
                agreement_number=number,
                rent_amount_total=total,
                property_row=model_to_dict(prop) if prop else None,
                default_city=self.cfg.default_city,
            )

            agreement = Agreement(
                agreement_number=number,
                template_id=template.id,
                property_id=prop.id if prop else None,
                type=template.type,
                status="draft",
                content=replace_variables(template.content, variables),
                structure=fill_structure_text(template.structure, variables),
                city=city,
                date_from=date_from,
                date_to=date_to,
                rent_amount_total=total,
                public_link=f"{frontend_url()}/agreement/{public_uuid}",
                verify_link=identifiers.new_uuid(),
                created_by=user_id,
            )
            for key in _MONEY_FIELDS:
                setattr(agreement, key, to_float(payload.get(key)))
            for key in _TEXT_FIELDS:
                setattr(agreement, key, optional_str(payload, key))
            s.add(agreement)
            s.flush()

            created_parties = []
            for party in parties:
                is_company = parse_bool(party.get("is_company"))
                row = AgreementParty(agreement_id=agreement.id, role=str(party["role"]).strip(), is_company=is_company)
                for key in _PARTY_COMPANY_FIELDS if is_company else _PARTY_INDIVIDUAL_FIELDS:
                    setattr(row, key, optional_str(party, key))
                s.add(row)
                s.flush()
                created_parties.append(row)

                # Signatures are placed on a separate page, so the position is fixed
                s.add(
                    AgreementSignature(
                        agreement_id=agreement.id,
                        signer_name=(row.company_name if is_company else row.name) or row.role,
                        signer_role=row.role,
                        position_x=100,
                        position_y=100,
                        position_page=1,
                        signature_link=identifiers.new_uuid(),
                    )
                )

            if created_parties:
                agreement.status = "pending_signatures"
            log_action(s, agreement.id, "created", "Agreement created with automatic signatures", user_id)
            s.flush()

            signatures = s.execute(
                select(AgreementSignature).where(AgreementSignature.agreement_id == agreement.id).order_by(AgreementSignature.id)
            ).scalars().all()

            logger.info("Agreement created: %s (ID: %s) with %s signatures", number, agreement.id, len(signatures))
            return {
                "id": agreement.id,
                "agreement_number": number,
                "parties": [{"role": p.role, "id": p.id} for p in created_parties],
                "signatures": [
                    {
                        "id": sig.id,
                        "signer_name": sig.signer_name,
                        "signer_role": sig.signer_role,
                        "signature_link": sig.signature_link,
                    }
                    for sig in signatures
                ],
            }

    def update_agreement(self, agreement_id: int, payload: Dict[str, Any], user_id: int) -> None:
        errors: Dict[str, str] = {}
        if payload.get("status") is not None:
            validate_in(payload.get("status"), AGREEMENT_STATUSES, errors, "status")
        raise_if_errors(errors)

        with self.db.session() as s:
            agreement = self._load(s, agreement_id)
            changed = False
            for key in ("content", "structure", "status", "description"):
                if key in payload and payload[key] is not None:
                    setattr(agreement, key, payload[key])
                    changed = True
            if changed:
                agreement.updated_at = datetime.utcnow()
                log_action(s, agreement.id, "updated", "Agreement updated", user_id)
                logger.info("Agreement updated: %s", agreement_id)

    def delete_agreement(self, agreement_id: int, user_id: int) -> None:
        with self.db.session() as s:
            agreement = self._load(s, agreement_id)
            agreement.deleted_at = datetime.utcnow()
            log_action(s, agreement.id, "deleted", "Agreement deleted", user_id)
            logger.info("Agreement deleted: %s", agreement_id)

    # ------------------------------------------------------------------
    # Public views
    # ------------------------------------------------------------------

    def by_public_link(self, link: str) -> Dict[str, Any]:
        with self.db.session() as s:
            agreement = s.execute(
                select(Agreement).where(Agreement.public_link.like(f"%/{link}"), Agreement.deleted_at.is_(None))
            ).scalars().first()
            if not agreement:
                raise HTTPException(status_code=404, detail="Agreement not found")
            return self._detail(s, agreement)

    def by_verify_link(self, verify_link: str) -> Dict[str, Any]:
        with self.db.session() as s:
            agreement = s.execute(
                select(Agreement).where(Agreement.verify_link == verify_link, Agreement.deleted_at.is_(None))
            ).scalars().first()
            if not agreement:
                raise HTTPException(status_code=404, detail="Agreement not found")
            return self._detail(s, agreement, with_parties=False, full_signatures=False)

    def by_signature_link(self, link: str) -> Dict[str, Any]:
        with self.db.session() as s:
            sig = s.execute(select(AgreementSignature).where(AgreementSignature.signature_link == link)).scalars().first()
            if not sig:
                raise HTTPException(status_code=404, detail="Signature not found")
            agreement = s.get(Agreement, sig.agreement_id)
            if not agreement:
                raise HTTPException(status_code=404, detail="Agreement not found")
            return self._detail(s, agreement, with_parties=False, full_signatures=False)

    def with_parties(self, agreement_id: int) -> Dict[str, Any]:
        """Agreement plus lessor/tenant in the shape the invoice form prefills from."""
        with self.db.session() as s:
            agreement = self._load(s, agreement_id)
            prop = s.get(Property, agreement.property_id) if agreement.property_id else None
            data = model_to_dict(agreement)
            data.update(property_fields(agreement, prop))

            data["lessor"] = None
            data["tenant"] = None
            parties = s.execute(select(AgreementParty).where(AgreementParty.agreement_id == agreement.id)).scalars().all()
            for party in parties:
                shaped = {
                    "type": "company" if party.is_company else "individual",
                    "company_name": party.company_name,
                    "company_tax_id": party.company_tax_id,
                    "company_address": party.company_address,
                    "director_name": party.director_name,
                    "director_country": party.director_country,
                    "director_passport": party.director_passport,
                    "individual_name": None if party.is_company else party.name,
                    "individual_country": None if party.is_company else party.passport_country,
                    "individual_passport": None if party.is_company else party.passport_number,
                }
                if party.role in ("lessor", "landlord"):
                    data["lessor"] = shaped
                elif party.role == "tenant":
                    data["tenant"] = shaped
            return data

    # ------------------------------------------------------------------
    # Print tokens and the printable document
    # ------------------------------------------------------------------

    def create_print_token(self, agreement_id: int) -> Dict[str, Any]:
        with self.db.session() as s:
            self._load(s, agreement_id)
        token = identifiers.new_uuid()
        self.cache.set_print_token(token, {"agreement_id": agreement_id}, ttl=self.cfg.print_token_ttl_seconds)
        return {"token": token, "url": f"/agreement-print/{agreement_id}?token={token}"}

    def consume_print_token(self, agreement_id: int, token: str) -> None:
        data = self.cache.consume_print_token(token) if token else None
        if not data or int(data.get("agreement_id", 0)) != int(agreement_id):
            raise HTTPException(status_code=403, detail="Invalid or expired access token")

    def public_agreement(self, agreement_id: int, token: Optional[str]) -> Dict[str, Any]:
        """Print view data; a token, when given, is single use."""
        if token:
            self.consume_print_token(agreement_id, token)
        with self.db.session() as s:
            agreement = self._load(s, agreement_id)
            data = self._detail(s, agreement, full_signatures=False)
            data["parties"] = [
                {"id": p["id"], "role": p["role"], "name": p["name"], "is_company": p["is_company"], "documents": p["documents"]}
                for p in data["parties"]
            ]
            return data

    def html_document(self, agreement_id: int) -> str:
        with self.db.session() as s:
            agreement = self._load(s, agreement_id)
            data = self._detail(s, agreement, with_parties=False, full_signatures=False)
        return printable_document(data, data["signatures"])

    # ------------------------------------------------------------------
    # Telegram
    # ------------------------------------------------------------------

    async def notify_agent(self, agreement_id: int, request_uuid: Optional[str]) -> None:
        if not request_uuid:
            raise HTTPException(status_code=400, detail="request_uuid is required")

        with self.db.session() as s:
            agreement = self._load(s, agreement_id)
            signatures = s.execute(
                select(AgreementSignature).where(AgreementSignature.agreement_id == agreement.id).order_by(AgreementSignature.id)
            ).scalars().all()
            if not signatures:
                raise HTTPException(status_code=400, detail="The agreement has no signers")

            found = s.execute(
                select(Request.request_number, BotUser.telegram_id)
                .outerjoin(BotUser, Request.agent_id == BotUser.id)
                .where(Request.uuid == request_uuid)
            ).first()
            if not found or not found[1]:
                raise HTTPException(status_code=404, detail="Agent not found for this request")
            request_number, agent_telegram_id = found

            agreement_data = model_to_dict(agreement)
            signature_data = [model_to_dict(sig) for sig in signatures]

        await self.notifier.notify_agreement_ready(agent_telegram_id, request_number, agreement_data, signature_data)
        logger.info("Agent notified about agreement %s for request %s", agreement_id, request_uuid)
