"""
Requests (leads).

The `/public/...` and `/chat/...` pages are opened by agents from Telegram
links and carry no admin token; the uuid in the URL is the credential.
"""
from typing import Optional

from fastapi import APIRouter, Body, Depends, File, Form, Request, UploadFile

from src.api.responses import ok
from src.backoffice.controllers.properties_controller import PropertiesController
from src.backoffice.controllers.requests_controller import RequestsController
from src.backoffice.dependencies import CurrentAdmin, client_ip, get_db, get_telegram, require_permission

api = APIRouter()
requests_api = api

PASSPORT_SIDES = ("front", "back")


# --------------------------------------------------------------------------- #
# Public request pages
# --------------------------------------------------------------------------- #
@api.get("/public/{uuid}/for-agreement", tags=["Requests (public)"])
async def request_for_agreement(uuid: str, db=Depends(get_db)):
    return ok(RequestsController(db).for_agreement(uuid))


@api.post("/public/{uuid}/link-agreement", tags=["Requests (public)"])
async def link_agreement(uuid: str, payload: dict = Body(...), db=Depends(get_db)):
    RequestsController(db).link_agreement(uuid, payload)
    return ok(message="Agreement linked to the request")


@api.get("/public/{uuid}/field-history/{field_name}", tags=["Requests (public)"])
async def field_history(uuid: str, field_name: str, db=Depends(get_db)):
    return ok(RequestsController(db).field_history(uuid, field_name))


@api.get("/public/{uuid}", tags=["Requests (public)"])
async def public_request(uuid: str, request: Request, db=Depends(get_db)):
    data = RequestsController(db).public_view(uuid, client_ip(request), request.headers.get("user-agent"))
    return ok(data)


@api.get("/by-agreement/{agreement_id}", tags=["Requests (public)"])
async def request_by_agreement(agreement_id: int, db=Depends(get_db)):
    return ok(RequestsController(db).by_agreement(agreement_id))


@api.get("/chat/{chat_uuid}", tags=["Requests (public)"])
async def chat_history(chat_uuid: str, request: Request, db=Depends(get_db)):
    data = RequestsController(db).chat_history(chat_uuid, client_ip(request), request.headers.get("user-agent"))
    return ok(data)


@api.put("/public/{uuid}/field", tags=["Requests (public)"])
async def update_field(uuid: str, payload: dict = Body(...), db=Depends(get_db)):
    RequestsController(db).update_field(uuid, payload)
    return ok(message="Field updated")


async def _passport_upload(db, uuid: str, owner: str, side: str, file: UploadFile):
    side = (side or "").strip().lower()
    field = f"{owner}_passport_{side}" if side in PASSPORT_SIDES else ""
    data = await file.read()
    return RequestsController(db).upload_passport(uuid, field, file.content_type, data)


@api.post("/public/{uuid}/upload-client-passport", tags=["Requests (public)"])
async def upload_client_passport(
    uuid: str,
    side: str = Form(...),
    passport: UploadFile = File(...),
    db=Depends(get_db),
):
    return ok(await _passport_upload(db, uuid, "client", side, passport), message="Passport uploaded")


@api.post("/public/{uuid}/upload-agent-passport", tags=["Requests (public)"])
async def upload_agent_passport(
    uuid: str,
    side: str = Form(...),
    passport: UploadFile = File(...),
    db=Depends(get_db),
):
    return ok(await _passport_upload(db, uuid, "agent", side, passport), message="Passport uploaded")


@api.post("/public/{uuid}/add-property", tags=["Requests (public)"])
async def add_proposed_property(uuid: str, payload: dict = Body(...), db=Depends(get_db)):
    RequestsController(db).add_proposed_property(uuid, payload)
    return ok(message="Property added")


@api.put("/public/{uuid}/status", tags=["Requests (public)"])
async def update_status(uuid: str, payload: dict = Body(...), db=Depends(get_db)):
    RequestsController(db).update_status(uuid, payload)
    return ok(message="Status updated")


@api.post("/public/{uuid}/request-contract", tags=["Requests (public)"])
async def request_contract(uuid: str, payload: dict = Body(...), db=Depends(get_db), notifier=Depends(get_telegram)):
    await RequestsController(db, notifier=notifier).request_contract(uuid, payload)
    return ok(message="Contract request sent")


@api.get("/properties", tags=["Requests (public)"])
async def property_picker(search: Optional[str] = None, db=Depends(get_db)):
    return ok(PropertiesController(db).picker(search))


@api.get("/agent-groups", tags=["Requests (public)"])
async def agent_groups(db=Depends(get_db)):
    return ok(RequestsController(db).agent_groups())


# --------------------------------------------------------------------------- #
# Admin
# --------------------------------------------------------------------------- #
@api.get("", tags=["Requests"])
async def list_requests(
    status: Optional[str] = None,
    agent_id: Optional[int] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: Optional[int] = None,
    admin: CurrentAdmin = Depends(require_permission("requests.view")),
    db=Depends(get_db),
):
    result = RequestsController(db).list_requests(status=status, agent_id=agent_id, search=search, page=page, limit=limit)
    return ok(result["data"], pagination=result["pagination"])


@api.post("/create-whatsapp", status_code=201, tags=["Requests"])
async def create_whatsapp_request(
    payload: dict = Body(...),
    admin: CurrentAdmin = Depends(require_permission("requests.create")),
    db=Depends(get_db),
    notifier=Depends(get_telegram),
):
    data = await RequestsController(db, notifier=notifier).create_whatsapp_request(payload, admin.id)
    return ok(data, message="Request created")


@api.post("/upload-whatsapp-screenshot", tags=["Requests"])
async def upload_whatsapp_screenshot(
    screenshot: UploadFile = File(...),
    admin: CurrentAdmin = Depends(require_permission("requests.create")),
):
    data = await screenshot.read()
    return ok(RequestsController.upload_whatsapp_screenshot(screenshot.content_type, data))


@api.get("/{request_id}", tags=["Requests"])
async def get_request(
    request_id: int,
    admin: CurrentAdmin = Depends(require_permission("requests.view")),
    db=Depends(get_db),
):
    return ok(RequestsController(db).get_request(request_id))


@api.delete("/{request_id}", tags=["Requests"])
async def delete_request(
    request_id: int,
    admin: CurrentAdmin = Depends(require_permission("requests.delete")),
    db=Depends(get_db),
):
    RequestsController(db).delete_request(request_id, admin.username)
    return ok(message="Request deleted")
