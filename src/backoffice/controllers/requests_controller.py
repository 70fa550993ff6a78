"""
Leads captured from Telegram and WhatsApp.

Admin endpoints list and manage requests; the public request pages (keyed by
the request uuid or chat uuid) are used by agents without a back-office login.
"""
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from sqlalchemy import and_, func, or_, select

from src.backoffice import identifiers
from src.backoffice.controllers.agreements_controller import frontend_url
from src.backoffice.serializers import model_to_dict, paginate
from src.backoffice.uploads import save_image
from src.backoffice.validation import as_id, optional_str, to_float
from src.database.models import (
    AgentGroup,
    AgentGroupMember,
    Agreement,
    BotUser,
    Property,
    Request,
    RequestAnalytics,
    RequestFieldHistory,
    RequestMessage,
    RequestProposedProperty,
)
from src.utils.config_loader import get_app_config

logger = logging.getLogger(__name__)

STATUS_TIMESTAMPS = {
    "in_progress": None,
    "rejected": "rejected_at",
    "completed": "completed_at",
    "deal_created": "deal_created_at",
}

PASSPORT_FIELDS = ("client_passport_front", "client_passport_back", "agent_passport_front", "agent_passport_back")

CONTRACT_FIELDS = (
    "rental_dates",
    "villa_name_address",
    "rental_cost",
    "cost_includes",
    "utilities_cost",
    "payment_terms",
    "deposit_amount",
    "additional_terms",
)


def request_base_url() -> str:
    return os.getenv("REQUEST_BASE_URL", "").strip().rstrip("/") or frontend_url()


def request_links(request: Request) -> Dict[str, str]:
    base = request_base_url()
    return {
        "chat_url": f"{base}/request/chat/{request.chat_uuid}",
        "request_url": f"{base}/request/client/{request.uuid}",
    }


def _message_date(value: Any) -> datetime:
    """Unix seconds or ISO-8601 from the bot, stored as naive UTC."""
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc).replace(tzinfo=None)
    if isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return datetime.utcnow()
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
        return parsed
    return datetime.utcnow()


def _full_name(first: Optional[str], last: Optional[str]) -> str:
    return " ".join(p for p in (first, last) if p).strip()


class RequestsController:
    def __init__(self, db, notifier=None):
        self.db = db
        self.notifier = notifier
        self.cfg = get_app_config().requests

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _by_uuid(s, uuid: str, *, include_deleted: bool = False) -> Request:
        stmt = select(Request).where(Request.uuid == uuid)
        if not include_deleted:
            stmt = stmt.where(Request.deleted_at.is_(None))
        request = s.execute(stmt).scalars().first()
        if not request:
            raise HTTPException(status_code=404, detail="Request not found")
        return request

    @staticmethod
    def _track(s, request_id: int, event_type: str, event_data: Optional[Dict[str, Any]] = None,
               ip_address: Optional[str] = None, user_agent: Optional[str] = None) -> None:
        s.add(
            RequestAnalytics(
                request_id=request_id,
                event_type=event_type,
                event_data=event_data or {},
                ip_address=ip_address,
                user_agent=user_agent,
            )
        )

    @staticmethod
    def _bot_user(s, telegram_id: Any, profile: Optional[Dict[str, Any]] = None, create: bool = True) -> Optional[BotUser]:
        if telegram_id in (None, ""):
            return None
        telegram_id = str(telegram_id)
        user = s.execute(select(BotUser).where(BotUser.telegram_id == telegram_id)).scalars().first()
        if user is None and create:
            profile = profile or {}
            user = BotUser(
                telegram_id=telegram_id,
                username=profile.get("username"),
                first_name=profile.get("first_name"),
                last_name=profile.get("last_name"),
            )
            s.add(user)
            s.flush()
        return user

    @staticmethod
    def _agent_fields(agent: Optional[BotUser]) -> Dict[str, Any]:
        return {
            "agent_username": agent.username if agent else None,
            "agent_first_name": agent.first_name if agent else None,
            "agent_last_name": agent.last_name if agent else None,
            "agent_telegram_id": agent.telegram_id if agent else None,
        }

    def _proposed_properties(self, s, request_id: int) -> List[Dict[str, Any]]:
        rows = s.execute(
            select(RequestProposedProperty, Property)
            .outerjoin(Property, RequestProposedProperty.property_id == Property.id)
            .where(RequestProposedProperty.request_id == request_id)
            .order_by(RequestProposedProperty.proposed_at.desc(), RequestProposedProperty.id.desc())
        ).all()
        out = []
        for proposed, prop in rows:
            row = model_to_dict(proposed)
            row["property_number"] = prop.property_number if prop else None
            row["property_name"] = prop.property_name if prop else None
            row["address"] = prop.address if prop else None
            out.append(row)
        return out

    def _detail(self, s, request: Request) -> Dict[str, Any]:
        agent = s.get(BotUser, request.agent_id) if request.agent_id else None
        data = model_to_dict(request)
        data.update(self._agent_fields(agent))
        data["proposed_properties"] = self._proposed_properties(s, request.id)
        return data

    # ------------------------------------------------------------------
    # Admin
    # ------------------------------------------------------------------

    def list_requests(
        self,
        status: Optional[str] = None,
        agent_id: Optional[int] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: Optional[int] = None,
    ) -> Dict[str, Any]:
        page = max(1, page or 1)
        limit = max(1, min(self.cfg.max_page_size, limit or self.cfg.default_page_size))

        def event_count(event_type: str):
            return (
                select(func.count(RequestAnalytics.id))
                .where(RequestAnalytics.request_id == Request.id, RequestAnalytics.event_type == event_type)
                .correlate(Request)
                .scalar_subquery()
            )

        messages_count = (
            select(func.count(RequestMessage.id))
            .where(RequestMessage.request_id == Request.id)
            .correlate(Request)
            .scalar_subquery()
        )

        conditions = [Request.deleted_at.is_(None)]
        if status:
            conditions.append(Request.status == status)
        if agent_id:
            conditions.append(Request.agent_id == agent_id)
        if search:
            like = f"%{search.strip()}%"
            conditions.append(
                or_(
                    Request.request_number.ilike(like),
                    Request.client_first_name.ilike(like),
                    Request.client_last_name.ilike(like),
                    Request.client_username.ilike(like),
                    Request.client_phone.ilike(like),
                    Request.whatsapp_phone.ilike(like),
                )
            )

        with self.db.session() as s:
            total = s.execute(select(func.count(Request.id)).where(and_(*conditions))).scalar_one()
            rows = s.execute(
                select(
                    Request,
                    BotUser,
                    messages_count.label("messages_count"),
                    event_count("chat_view").label("chat_views_count"),
                    event_count("request_view").label("request_views_count"),
                )
                .outerjoin(BotUser, Request.agent_id == BotUser.id)
                .where(and_(*conditions))
                .order_by(Request.created_at.desc(), Request.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            ).all()

            data = []
            for request, agent, messages, chat_views, request_views in rows:
                row = model_to_dict(request)
                row.update(self._agent_fields(agent))
                row["messages_count"] = messages
                row["chat_views_count"] = chat_views
                row["request_views_count"] = request_views
                data.append(row)
            return {"data": data, "pagination": paginate(page, limit, total)}

    def get_request(self, request_id: int) -> Dict[str, Any]:
        with self.db.session() as s:
            request = s.get(Request, request_id)
            if not request or request.deleted_at is not None:
                raise HTTPException(status_code=404, detail="Request not found")
            return self._detail(s, request)

    def delete_request(self, request_id: int, username: Optional[str] = None) -> None:
        with self.db.session() as s:
            request = s.get(Request, request_id)
            if not request or request.deleted_at is not None:
                raise HTTPException(status_code=404, detail="Request not found")
            request.deleted_at = datetime.utcnow()
            logger.info("Request deleted: %s by user %s", request.request_number, username)

    def agent_groups(self) -> List[Dict[str, Any]]:
        with self.db.session() as s:
            groups = s.execute(
                select(AgentGroup).where(AgentGroup.is_active.is_(True)).order_by(AgentGroup.group_name.asc())
            ).scalars().all()
            return [
                {"id": g.id, "group_name": g.group_name, "chat_id": g.telegram_chat_id}
                for g in groups
            ]

    def by_agreement(self, agreement_id: int) -> Dict[str, Any]:
        with self.db.session() as s:
            row = s.execute(
                select(Request.uuid, Request.request_number).where(
                    Request.agreement_id == agreement_id, Request.deleted_at.is_(None)
                )
            ).first()
            if not row:
                raise HTTPException(status_code=404, detail="Request not found")
            return {"uuid": row.uuid, "request_number": row.request_number}

    # ------------------------------------------------------------------
    # WhatsApp intake
    # ------------------------------------------------------------------

    @staticmethod
    def upload_whatsapp_screenshot(content_type: str, data: bytes) -> Dict[str, str]:
        return {"screenshot_path": save_image("whatsapp-screenshots", "wa_screenshot", content_type, data)}

    async def create_whatsapp_request(self, payload: Dict[str, Any], manager_id: Optional[int]) -> Dict[str, Any]:
        client_name = optional_str(payload, "client_name")
        whatsapp_phone = optional_str(payload, "whatsapp_phone")
        if not client_name or not whatsapp_phone:
            raise HTTPException(status_code=400, detail="Client name and WhatsApp number are required")
        screenshots = payload.get("screenshots")
        if not isinstance(screenshots, list) or not [p for p in screenshots if p]:
            raise HTTPException(status_code=400, detail="Upload at least one conversation screenshot")

        note = optional_str(payload, "initial_note")
        group_id = payload.get("agent_group_id") or None

        with self.db.session() as s:
            group = None
            if group_id:
                group = s.get(AgentGroup, as_id(group_id, "agent_group_id"))
                if not group:
                    raise HTTPException(status_code=404, detail="Agent group not found")

            request = Request(
                request_number=identifiers.request_number(whatsapp=True),
                uuid=identifiers.new_uuid(),
                chat_uuid=identifiers.new_uuid(),
                request_source="whatsapp",
                client_first_name=client_name,
                whatsapp_phone=whatsapp_phone,
                manager_id=manager_id,
                agent_group_id=group.id if group else None,
                notes=note,
                status="new",
            )
            s.add(request)
            s.flush()

            for index, path in enumerate(p for p in screenshots if p):
                s.add(
                    RequestMessage(
                        request_id=request.id,
                        telegram_message_id=index + 1,
                        message_type="whatsapp_screenshot",
                        media_path=str(path),
                        is_from_client=True,
                    )
                )

            links = request_links(request)
            result = {
                "request_id": request.id,
                "request_number": request.request_number,
                "uuid": request.uuid,
                "chat_uuid": request.chat_uuid,
                **links,
            }
            group_chat_id = group.telegram_chat_id if group else None
            logger.info("Created WhatsApp request %s with ID %s", request.request_number, request.id)

        if group_chat_id and self.notifier is not None:
            await self.notifier.notify_whatsapp_request(
                group_chat_id, result["request_id"], result["request_number"], client_name, whatsapp_phone, note, links["chat_url"]
            )
        return result

    # ------------------------------------------------------------------
    # Telegram intake (bot webhook)
    # ------------------------------------------------------------------

    async def create_telegram_request(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Create a request from a conversation the manager forwarded to the bot.

        ``payload`` carries ``client`` and ``manager`` Telegram profiles, the
        conversation ``messages`` and optional ``note``, ``agent_group_id``
        and ``assign_to_self``.
        """
        client = payload.get("client") or {}
        manager = payload.get("manager") or {}
        if not client.get("telegram_id"):
            raise HTTPException(status_code=400, detail="Client Telegram id is required")
        messages = payload.get("messages") or []
        if not isinstance(messages, list):
            raise HTTPException(status_code=400, detail="messages must be a list")
        assign_to_self = bool(payload.get("assign_to_self"))
        note = optional_str(payload, "note")

        with self.db.session() as s:
            group = None
            if payload.get("agent_group_id"):
                group = s.get(AgentGroup, as_id(payload["agent_group_id"], "agent_group_id"))
                if not group:
                    raise HTTPException(status_code=404, detail="Agent group not found")

            request = Request(
                request_number=identifiers.request_number(),
                uuid=identifiers.new_uuid(),
                chat_uuid=identifiers.new_uuid(),
                request_source="telegram",
                client_telegram_id=str(client["telegram_id"]),
                client_username=client.get("username"),
                client_first_name=client.get("first_name"),
                client_last_name=client.get("last_name"),
                client_phone=client.get("phone"),
                agent_group_id=group.id if group else None,
                notes=note,
                status="new",
            )
            if assign_to_self:
                agent = self._bot_user(s, manager.get("telegram_id"), manager)
                if agent is None:
                    raise HTTPException(status_code=400, detail="Manager Telegram id is required to self-assign")
                request.agent_id = agent.id
                request.agent_accepted_at = datetime.utcnow()
                request.status = "in_progress"
            s.add(request)
            s.flush()

            for message in messages:
                if not isinstance(message, dict):
                    continue
                sender_id = message.get("sender_telegram_id")
                s.add(
                    RequestMessage(
                        request_id=request.id,
                        telegram_message_id=message.get("message_id"),
                        message_type=message.get("type") or "text",
                        message_text=message.get("text"),
                        media_file_id=message.get("media_file_id"),
                        media_path=message.get("media_path"),
                        sender_name=message.get("sender_name"),
                        sender_telegram_id=str(sender_id) if sender_id is not None else None,
                        is_from_client=bool(message.get("is_from_client", str(sender_id) == request.client_telegram_id)),
                        message_date=_message_date(message.get("date")),
                    )
                )

            links = request_links(request)
            result = {
                "request_id": request.id,
                "request_number": request.request_number,
                "uuid": request.uuid,
                "chat_uuid": request.chat_uuid,
                "status": request.status,
                **links,
            }
            group_chat_id = group.telegram_chat_id if group else None
            logger.info("Created Telegram request %s with %s messages", request.request_number, len(messages))

        if self.notifier is not None:
            if assign_to_self:
                manager_name = _full_name(manager.get("first_name"), manager.get("last_name")) or manager.get("username")
                await self.notifier.notify_admin(
                    f"Request {result['request_number']} created and assigned to {manager_name}\n"
                    f"{links['chat_url']}\n{links['request_url']}"
                )
            elif group_chat_id:
                await self.notifier.notify_new_request(
                    group_chat_id, result["request_id"], result["request_number"], client, links["chat_url"]
                )
        return result

    async def accept_request(self, request_id: int, agent: Dict[str, Any], callback_query_id: Optional[str] = None) -> Dict[str, Any]:
        """An agent pressed "Accept" under a group notification."""
        telegram_id = str(agent.get("id") or agent.get("telegram_id") or "")
        with self.db.session() as s:
            bot_user = self._bot_user(s, telegram_id, create=False)
            if bot_user is None or not bot_user.is_active:
                return await self._reject_accept(callback_query_id, "You do not have access to the bot. Contact an administrator.")

            request = s.get(Request, request_id)
            if not request or request.deleted_at is not None:
                return await self._reject_accept(callback_query_id, "Request not found")
            if request.agent_id:
                return await self._reject_accept(callback_query_id, "Request already taken by another agent")

            bot_user.username = agent.get("username") or bot_user.username
            bot_user.first_name = agent.get("first_name") or bot_user.first_name
            bot_user.last_name = agent.get("last_name") or bot_user.last_name

            request.agent_id = bot_user.id
            request.agent_accepted_at = datetime.utcnow()
            request.status = "in_progress"

            if request.agent_group_id:
                member = s.execute(
                    select(AgentGroupMember).where(
                        AgentGroupMember.group_id == request.agent_group_id, AgentGroupMember.bot_user_id == bot_user.id
                    )
                ).scalars().first()
                if member is None:
                    s.add(AgentGroupMember(group_id=request.agent_group_id, bot_user_id=bot_user.id))

            self._track(s, request.id, "agent_accepted", {"agent_username": bot_user.username})
            snapshot = model_to_dict(request)
            links = request_links(request)
            display_name = bot_user.first_name or bot_user.username or f"ID {telegram_id}"
            logger.info("Request %s accepted by %s", request.request_number, display_name)

        if self.notifier is not None:
            await self.notifier.answer_callback_query(callback_query_id, "Request accepted", show_alert=False)
            await self.notifier.notify_request_accepted(telegram_id, snapshot, links["chat_url"], links["request_url"])
            await self.notifier.notify_admin(f"Request {snapshot['request_number']} accepted by {display_name}")
        return {"accepted": True, "request_number": snapshot["request_number"]}

    async def _reject_accept(self, callback_query_id: Optional[str], reason: str) -> Dict[str, Any]:
        if self.notifier is not None:
            await self.notifier.answer_callback_query(callback_query_id, f"❌ {reason}")
        return {"accepted": False, "reason": reason}

    # ------------------------------------------------------------------
    # Public request page
    # ------------------------------------------------------------------

    def public_view(self, uuid: str, ip_address: Optional[str], user_agent: Optional[str]) -> Dict[str, Any]:
        with self.db.session() as s:
            request = self._by_uuid(s, uuid)
            self._track(s, request.id, "request_view", ip_address=ip_address, user_agent=user_agent)
            return self._detail(s, request)

    def chat_history(self, chat_uuid: str, ip_address: Optional[str], user_agent: Optional[str]) -> Dict[str, Any]:
        with self.db.session() as s:
            request = s.execute(
                select(Request).where(Request.chat_uuid == chat_uuid, Request.deleted_at.is_(None))
            ).scalars().first()
            if not request:
                raise HTTPException(status_code=404, detail="Chat not found")

            messages = s.execute(
                select(RequestMessage)
                .where(RequestMessage.request_id == request.id)
                .order_by(RequestMessage.message_date.asc(), RequestMessage.id.asc())
            ).scalars().all()
            self._track(s, request.id, "chat_view", ip_address=ip_address, user_agent=user_agent)
            return {
                "request_info": {
                    "id": request.id,
                    "request_number": request.request_number,
                    "request_source": request.request_source,
                    "client_telegram_id": request.client_telegram_id,
                    "client_first_name": request.client_first_name,
                    "client_last_name": request.client_last_name,
                    "client_username": request.client_username,
                    "whatsapp_phone": request.whatsapp_phone,
                },
                "messages": [model_to_dict(m) for m in messages],
            }

    def update_field(self, uuid: str, payload: Dict[str, Any]) -> None:
        field_name = payload.get("field_name")
        if field_name not in self.cfg.editable_fields:
            raise HTTPException(status_code=400, detail="Field cannot be edited")
        value = payload.get("field_value")
        new_value = None if value is None else str(value)

        with self.db.session() as s:
            request = self._by_uuid(s, uuid)
            agent = self._bot_user(s, payload.get("agent_telegram_id"))
            old_value = getattr(request, field_name)
            setattr(request, field_name, new_value)
            request.updated_at = datetime.utcnow()

            s.add(
                RequestFieldHistory(
                    request_id=request.id,
                    field_name=field_name,
                    old_value=old_value,
                    new_value=new_value,
                    changed_by=agent.id if agent else None,
                )
            )
            self._track(s, request.id, "field_update", {"field_name": field_name, "old_value": old_value, "new_value": new_value})
            logger.info("Field %s updated for request %s", field_name, request.request_number)

    def field_history(self, uuid: str, field_name: str) -> List[Dict[str, Any]]:
        with self.db.session() as s:
            request = self._by_uuid(s, uuid)
            rows = s.execute(
                select(RequestFieldHistory, BotUser)
                .outerjoin(BotUser, RequestFieldHistory.changed_by == BotUser.id)
                .where(RequestFieldHistory.request_id == request.id, RequestFieldHistory.field_name == field_name)
                .order_by(RequestFieldHistory.changed_at.desc(), RequestFieldHistory.id.desc())
            ).all()
            out = []
            for entry, agent in rows:
                row = model_to_dict(entry)
                row.update(self._agent_fields(agent))
                out.append(row)
            return out

    def add_proposed_property(self, uuid: str, payload: Dict[str, Any]) -> None:
        property_id = payload.get("property_id") or None
        custom_name = optional_str(payload, "custom_name")
        if not property_id and not custom_name:
            raise HTTPException(status_code=400, detail="Choose a property or enter a custom name")

        with self.db.session() as s:
            request = self._by_uuid(s, uuid)
            if property_id:
                property_id = as_id(property_id, "property_id")
                prop = s.get(Property, property_id)
                if not prop or prop.deleted_at is not None:
                    raise HTTPException(status_code=404, detail="Property not found")
            agent = self._bot_user(s, payload.get("agent_telegram_id"))
            s.add(
                RequestProposedProperty(
                    request_id=request.id,
                    property_id=property_id,
                    custom_name=custom_name,
                    rejection_reason=optional_str(payload, "rejection_reason"),
                    proposed_by=agent.id if agent else None,
                )
            )
            self._track(s, request.id, "property_proposed", {"property_id": property_id, "custom_name": custom_name})
            logger.info("Property proposed for request %s", request.request_number)

    def update_status(self, uuid: str, payload: Dict[str, Any]) -> None:
        new_status = payload.get("status")
        if new_status not in STATUS_TIMESTAMPS:
            raise HTTPException(status_code=400, detail="Invalid status")

        with self.db.session() as s:
            request = self._by_uuid(s, uuid)
            request.status = new_status
            stamp = STATUS_TIMESTAMPS[new_status]
            if stamp:
                setattr(request, stamp, datetime.utcnow())

            event_data: Dict[str, Any] = {"new_status": new_status}
            for key in ("owner_price", "client_price", "price_markup_percent"):
                if payload.get(key) is None:
                    continue
                value = to_float(payload.get(key))
                setattr(request, key, value)
                if value:
                    event_data[key] = value
            request.updated_at = datetime.utcnow()

            self._track(s, request.id, "status_changed", event_data)
            logger.info("Status updated to %s for request %s", new_status, request.request_number)

    def upload_passport(self, uuid: str, field: str, content_type: str, data: bytes) -> Dict[str, str]:
        if field not in PASSPORT_FIELDS:
            raise HTTPException(status_code=400, detail="Unknown passport side")
        with self.db.session() as s:
            request = self._by_uuid(s, uuid)
            path = save_image("request-passports", field.rsplit("_", 2)[0], content_type, data)
            setattr(request, field, path)
            logger.info("%s uploaded for request %s", field, request.request_number)
            return {"passport_path": path}

    async def request_contract(self, uuid: str, payload: Dict[str, Any]) -> None:
        if not all(optional_str(payload, key) for key in ("rental_dates", "villa_name_address", "rental_cost")):
            raise HTTPException(
                status_code=400, detail="Fill in all required fields: rental dates, villa name, rental cost"
            )
        if not payload.get("client_passport_front") or not payload.get("client_passport_back"):
            raise HTTPException(status_code=400, detail="Upload both sides of the client passport")
        if not payload.get("agent_passport_front") or not payload.get("agent_passport_back"):
            raise HTTPException(status_code=400, detail="Upload both sides of the agent passport")

        with self.db.session() as s:
            request = self._by_uuid(s, uuid, include_deleted=True)
            contract = {key: optional_str(payload, key) for key in CONTRACT_FIELDS + PASSPORT_FIELDS}
            for key, value in contract.items():
                setattr(request, key, value)
            request.contract_requested_at = datetime.utcnow()
            self._track(
                s,
                request.id,
                "contract_requested",
                {key: contract[key] for key in ("rental_dates", "villa_name_address", "rental_cost")},
            )

            agent = s.get(BotUser, request.agent_id) if request.agent_id else None
            agent_name = (_full_name(agent.first_name, agent.last_name) or agent.username) if agent else "Not assigned"
            client_name = _full_name(request.client_first_name, request.client_last_name) or request.client_username or ""
            client_phone = request.client_phone or request.whatsapp_phone
            request_number = request.request_number
            links = request_links(request)
            logger.info("Contract requested for request %s", request_number)

        if self.notifier is not None:
            text = self.notifier.contract_request_text(
                request_number, client_name, client_phone, agent_name, contract, links["chat_url"], links["request_url"]
            )
            await self.notifier.notify_contract_requested(text)

    def for_agreement(self, uuid: str) -> Dict[str, Any]:
        with self.db.session() as s:
            request = self._by_uuid(s, uuid)
            agent = s.get(BotUser, request.agent_id) if request.agent_id else None
            data = model_to_dict(request)
            data.update(self._agent_fields(agent))
            return data

    def link_agreement(self, uuid: str, payload: Dict[str, Any]) -> None:
        agreement_id = payload.get("agreement_id")
        if not agreement_id:
            raise HTTPException(status_code=400, detail="agreement_id is required")

        with self.db.session() as s:
            request = self._by_uuid(s, uuid)
            agreement = s.get(Agreement, as_id(agreement_id, "agreement_id"))
            if not agreement or agreement.deleted_at is not None:
                raise HTTPException(status_code=404, detail="Agreement not found")
            request.agreement_id = agreement.id
            request.status = "deal_created"
            request.deal_created_at = datetime.utcnow()
            self._track(s, request.id, "agreement_created", {"agreement_id": agreement.id})
            logger.info("Agreement %s linked to request %s", agreement.id, uuid)
