"""
Telegram bot entry points.

Both routes require the `X-Telegram-Bot-Api-Secret-Token` header that
Telegram sends when the webhook is registered with a secret.
"""
import logging
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, Request

from src.api.responses import ok
from src.backoffice.controllers.requests_controller import RequestsController
from src.backoffice.dependencies import get_db, get_telegram, telegram_webhook_protection

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(telegram_webhook_protection)])

ACCEPT_PREFIX = "accept_request:"


@router.post("/webhook", tags=["Telegram"])
async def telegram_webhook(request: Request, db=Depends(get_db), notifier=Depends(get_telegram)):
    """
    Bot API update receiver.
    - `callback_query` with `accept_request:<id>` assigns the request to the agent.
    - Anything else is acknowledged and ignored.
    """
    update: Dict[str, Any] = await request.json()
    callback = update.get("callback_query") or {}
    data = callback.get("data") or ""
    if not data.startswith(ACCEPT_PREFIX):
        return {"ok": True, "ignored": True}

    try:
        request_id = int(data[len(ACCEPT_PREFIX):])
    except ValueError:
        logger.warning("Malformed accept callback: %s", data)
        return {"ok": True, "ignored": True}

    result = await RequestsController(db, notifier=notifier).accept_request(
        request_id, callback.get("from") or {}, callback_query_id=callback.get("id")
    )
    return {"ok": True, **result}


@router.post("/requests", status_code=201, tags=["Telegram"])
async def create_telegram_request(payload: dict = Body(...), db=Depends(get_db), notifier=Depends(get_telegram)):
    """Forwarded client conversation collected by the bot."""
    data = await RequestsController(db, notifier=notifier).create_telegram_request(payload)
    return ok(data, message="Request created")
