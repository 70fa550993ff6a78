"""
Telegram Bot API notifier.

Sends HTML-formatted notifications to agent groups, agents and the admin chat.
Delivery failures are logged and reported as False; they never fail the
request that triggered them.
"""

from __future__ import annotations

import html
import logging
import os
from typing import Any, Dict, Iterable, List, Optional

import httpx

from src.utils.config_loader import TelegramConfig, get_app_config

logger = logging.getLogger(__name__)


def _esc(value: Any) -> str:
    return html.escape("" if value is None else str(value), quote=False)


def inline_keyboard(rows: List[List[Dict[str, str]]]) -> Dict[str, Any]:
    return {"inline_keyboard": rows}


class TelegramNotifier:
    def __init__(
        self,
        token: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        cfg: Optional[TelegramConfig] = None,
        frontend_url: Optional[str] = None,
    ) -> None:
        self.cfg = cfg or get_app_config().telegram
        self.token = token if token is not None else os.getenv("TELEGRAM_BOT_TOKEN", "")
        self.client = client
        self.frontend_url = (frontend_url or os.getenv("FRONTEND_URL", "http://localhost:5173")).rstrip("/")
        self.admin_chat_id = os.getenv("TELEGRAM_ADMIN_CHAT_ID", "").strip() or None

    @property
    def enabled(self) -> bool:
        return bool(self.token)

    async def _call(self, method: str, payload: Dict[str, Any]) -> bool:
        url = f"{self.cfg.api_base.rstrip('/')}/bot{self.token}/{method}"
        try:
            if self.client is not None:
                response = await self.client.post(url, json=payload)
            else:
                async with httpx.AsyncClient(timeout=self.cfg.timeout_seconds) as client:
                    response = await client.post(url, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("Telegram %s failed: %s", method, e)
            return False
        return True

    async def send_message(self, chat_id: Any, text: str, reply_markup: Optional[Dict[str, Any]] = None) -> bool:
        if not self.enabled:
            logger.warning("TELEGRAM_BOT_TOKEN not set; skipping message to %s", chat_id)
            return False
        if chat_id in (None, ""):
            logger.warning("No Telegram chat id; skipping message")
            return False

        payload: Dict[str, Any] = {
            "chat_id": str(chat_id),
            "text": text,
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }
        if reply_markup:
            payload["reply_markup"] = reply_markup
        return await self._call("sendMessage", payload)

    async def answer_callback_query(self, callback_query_id: str, text: str, show_alert: bool = True) -> bool:
        if not self.enabled or not callback_query_id:
            return False
        return await self._call(
            "answerCallbackQuery",
            {"callback_query_id": callback_query_id, "text": text, "show_alert": show_alert},
        )

    # ------------------------------------------------------------------
    # Message builders
    # ------------------------------------------------------------------

    @staticmethod
    def new_request_text(request_number: str, client: Dict[str, Any]) -> str:
        lines = [f"🆕 <b>NEW REQUEST {_esc(request_number)}</b>", "", "👤 <b>Client:</b>"]
        if client.get("first_name"):
            lines.append(f"First name: {_esc(client['first_name'])}")
        if client.get("last_name"):
            lines.append(f"Last name: {_esc(client['last_name'])}")
        if client.get("username"):
            lines.append(f"Username: @{_esc(client['username'])}")
        if client.get("phone"):
            lines.append(f"Phone: {_esc(client['phone'])}")
        if client.get("telegram_id"):
            lines.append(f"ID: {_esc(client['telegram_id'])}")
        return "\n".join(lines)

    @staticmethod
    def whatsapp_request_text(request_number: str, client_name: str, whatsapp_phone: str, note: Optional[str]) -> str:
        lines = [
            f"🆕 <b>NEW REQUEST {_esc(request_number)}</b>",
            "📱 <b>WhatsApp request</b>",
            "",
            f"👤 <b>Client:</b> {_esc(client_name)}",
            f"📞 <b>WhatsApp:</b> {_esc(whatsapp_phone)}",
        ]
        if note:
            lines.append(f"📝 <b>Note:</b> {_esc(note)}")
        return "\n".join(lines)

    @staticmethod
    def accept_keyboard(request_id: int, view_url: str, view_label: str) -> Dict[str, Any]:
        return inline_keyboard(
            [
                [{"text": view_label, "url": view_url}],
                [{"text": "✅ Accept", "callback_data": f"accept_request:{request_id}"}],
            ]
        )

    @staticmethod
    def contract_request_text(
        request_number: str,
        client_name: str,
        client_phone: Optional[str],
        agent_name: str,
        contract: Dict[str, Any],
        chat_url: str,
        request_url: str,
    ) -> str:
        lines = [
            "📄 <b>CONTRACT REQUESTED</b>",
            "",
            f"📋 Request: {_esc(request_number)}",
            f"👤 Client: {_esc(client_name)}",
        ]
        if client_phone:
            lines.append(f"📞 Phone: {_esc(client_phone)}")
        lines += [
            f"👨‍💼 Agent: {_esc(agent_name)}",
            "",
            "<b>Contract details:</b>",
            f"🏠 Villa: {_esc(contract.get('villa_name_address'))}",
            f"📅 Rental dates: {_esc(contract.get('rental_dates'))}",
            f"💰 Cost: {_esc(contract.get('rental_cost'))}",
        ]
        optional = (
            ("cost_includes", "📝 Included"),
            ("utilities_cost", "⚡ Utilities"),
            ("payment_terms", "💳 Payment terms"),
            ("deposit_amount", "💵 Deposit"),
            ("additional_terms", "📋 Additional terms"),
        )
        for key, label in optional:
            if contract.get(key):
                lines.append(f"{label}: {_esc(contract[key])}")
        for key, label in (
            ("client_passport_front", "Client passport (front)"),
            ("client_passport_back", "Client passport (back)"),
            ("agent_passport_front", "Agent passport (front)"),
            ("agent_passport_back", "Agent passport (back)"),
        ):
            if contract.get(key):
                lines.append(f"📸 {label}: {_esc(contract[key])}")
        lines += [
            "",
            f'🔗 <a href="{_esc(chat_url)}">Chat history</a>',
            f'🔗 <a href="{_esc(request_url)}">Manage request</a>',
        ]
        return "\n".join(lines)

    @staticmethod
    def accepted_request_text(request: Dict[str, Any], chat_url: str, request_url: str) -> str:
        lines = [f"✅ <b>You accepted request {_esc(request.get('request_number'))}</b>", ""]
        if request.get("request_source") == "whatsapp":
            lines += [
                "📱 <b>WhatsApp request</b>",
                f"👤 Client: {_esc(request.get('client_first_name') or 'Client')}",
                f"📞 Phone: {_esc(request.get('whatsapp_phone'))}",
                "",
                f'🔗 <a href="{_esc(chat_url)}">Conversation screenshots</a>',
            ]
        else:
            name = " ".join(p for p in (request.get("client_first_name"), request.get("client_last_name")) if p)
            lines += ["💬 <b>Telegram request</b>", f"👤 Client: {_esc(name)}"]
            if request.get("client_username"):
                lines.append(f"📱 Username: @{_esc(request['client_username'])}")
            lines += [
                f"🆔 ID: {_esc(request.get('client_telegram_id'))}",
                "",
                f'🔗 <a href="{_esc(chat_url)}">Chat history</a>',
            ]
        lines.append(f'🔗 <a href="{_esc(request_url)}">Manage request</a>')
        return "\n".join(lines)

    @staticmethod
    def contact_keyboard(request: Dict[str, Any]) -> Dict[str, Any]:
        if request.get("request_source") == "whatsapp":
            phone = "".join(ch for ch in (request.get("whatsapp_phone") or "") if ch.isdigit() or ch == "+")
            return inline_keyboard([[{"text": "💬 Contact on WhatsApp", "url": f"https://wa.me/{phone}"}]])
        if request.get("client_username"):
            url = f"https://t.me/{request['client_username']}"
        else:
            url = f"tg://user?id={request.get('client_telegram_id')}"
        return inline_keyboard([[{"text": "💬 Contact on Telegram", "url": url}]])

    def agreement_ready_text(
        self,
        request_number: str,
        agreement: Dict[str, Any],
        signatures: Iterable[Dict[str, Any]],
    ) -> str:
        lines = [
            "🎉 <b>AGREEMENT READY!</b>",
            "",
            f"📋 Request: {_esc(request_number)}",
            f"📄 Agreement number: {_esc(agreement.get('agreement_number'))}",
            "",
            "<b>Agreement details:</b>",
        ]
        if agreement.get("date_from") and agreement.get("date_to"):
            lines.append(f"📅 Period: {_esc(agreement['date_from'])} - {_esc(agreement['date_to'])}")
        if agreement.get("rent_amount_monthly"):
            lines.append(f"💰 Rent: {_esc(agreement['rent_amount_monthly'])} ฿/month")
        if agreement.get("deposit_amount"):
            lines.append(f"💵 Deposit: {_esc(agreement['deposit_amount'])} ฿")

        lines += ["", "<b>Signers:</b>"]
        for sig in signatures:
            sign_url = f"{self.frontend_url}/sign/{sig.get('signature_link')}"
            lines.append(f"👤 {_esc(sig.get('signer_name'))} ({_esc(sig.get('signer_role'))})")
            lines.append(f'🔗 <a href="{_esc(sign_url)}">Signing link</a>')

        verify_url = f"{self.frontend_url}/agreement-verify/{agreement.get('verify_link')}"
        lines += ["", f'📋 <a href="{_esc(verify_url)}">View and verify the agreement</a>']
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # High-level notifications
    # ------------------------------------------------------------------

    async def notify_new_request(self, group_chat_id: Any, request_id: int, request_number: str, client: Dict[str, Any], chat_url: str) -> bool:
        sent = await self.send_message(
            group_chat_id,
            self.new_request_text(request_number, client),
            reply_markup=self.accept_keyboard(request_id, chat_url, "💬 View chat history"),
        )
        if sent:
            logger.info("Sent notification for request %s to group %s", request_number, group_chat_id)
        return sent

    async def notify_whatsapp_request(
        self,
        group_chat_id: Any,
        request_id: int,
        request_number: str,
        client_name: str,
        whatsapp_phone: str,
        note: Optional[str],
        chat_url: str,
    ) -> bool:
        return await self.send_message(
            group_chat_id,
            self.whatsapp_request_text(request_number, client_name, whatsapp_phone, note),
            reply_markup=self.accept_keyboard(request_id, chat_url, "📸 View screenshots"),
        )

    async def notify_request_accepted(self, agent_chat_id: Any, request: Dict[str, Any], chat_url: str, request_url: str) -> bool:
        return await self.send_message(
            agent_chat_id,
            self.accepted_request_text(request, chat_url, request_url),
            reply_markup=self.contact_keyboard(request),
        )

    async def notify_admin(self, text: str) -> bool:
        if not self.admin_chat_id:
            logger.warning("TELEGRAM_ADMIN_CHAT_ID not set; admin notification skipped")
            return False
        return await self.send_message(self.admin_chat_id, text)

    async def notify_contract_requested(self, text: str) -> bool:
        return await self.notify_admin(text)

    async def notify_agreement_ready(
        self,
        agent_chat_id: Any,
        request_number: str,
        agreement: Dict[str, Any],
        signatures: Iterable[Dict[str, Any]],
    ) -> bool:
        sent = await self.send_message(agent_chat_id, self.agreement_ready_text(request_number, agreement, signatures))
        if sent:
            logger.info("Agreement ready notification sent to agent %s for request %s", agent_chat_id, request_number)
        return sent
