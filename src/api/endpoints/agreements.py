"""
Agreements, their templates, signatures and AI editing.

Public routes (signing pages, verification, single-use print links) are
declared first; everything after them requires an admin token.
"""
from typing import Optional

from fastapi import APIRouter, Body, Depends, Header, Request
from fastapi.responses import HTMLResponse

from src.api.responses import ok
from src.backoffice.controllers.agreements_controller import AgreementsController
from src.backoffice.controllers.ai_edit_controller import AIEditController
from src.backoffice.controllers.properties_controller import PropertiesController
from src.backoffice.controllers.signatures_controller import SignaturesController
from src.backoffice.controllers.templates_controller import TemplatesController
from src.backoffice.dependencies import (
    CurrentAdmin,
    admin_from_token,
    bearer_token,
    client_ip,
    get_ai_editor,
    get_cache,
    get_current_admin,
    get_db,
    get_telegram,
    require_permission,
)

api = APIRouter()
agreements_api = api


# --------------------------------------------------------------------------- #
# Public
# --------------------------------------------------------------------------- #
@api.get("/verify/{verify_link}", tags=["Agreements (public)"])
async def verify_agreement(verify_link: str, db=Depends(get_db)):
    return ok(AgreementsController(db).by_verify_link(verify_link))


@api.get("/by-signature-link/{link}", tags=["Agreements (public)"])
async def agreement_by_signature_link(link: str, db=Depends(get_db)):
    return ok(AgreementsController(db).by_signature_link(link))


@api.get("/signatures/link/{link}", tags=["Agreements (public)"])
async def signature_by_link(link: str, request: Request, db=Depends(get_db)):
    data = SignaturesController(db).get_by_link(link, client_ip(request), request.headers.get("user-agent"))
    return ok(data)


@api.post("/signatures/{link}/sign", tags=["Agreements (public)"])
async def sign_agreement(link: str, request: Request, payload: dict = Body(...), db=Depends(get_db)):
    data = SignaturesController(db).sign(link, payload, client_ip(request), request.headers.get("user-agent"))
    message = "All parties have signed the agreement" if data.get("all_signed") else "Signature saved"
    return ok(data, message=message)


@api.get("/public/{link}", tags=["Agreements (public)"])
async def agreement_by_public_link(link: str, db=Depends(get_db)):
    return ok(AgreementsController(db).by_public_link(link))


@api.get("/{agreement_id}/public", tags=["Agreements (public)"])
async def public_agreement(agreement_id: int, token: Optional[str] = None, db=Depends(get_db), cache=Depends(get_cache)):
    return ok(AgreementsController(db, cache=cache).public_agreement(agreement_id, token))


@api.get("/{agreement_id}/html", response_class=HTMLResponse, tags=["Agreements"])
async def agreement_html(
    agreement_id: int,
    token: Optional[str] = None,
    authorization: Optional[str] = Header(default=None),
    db=Depends(get_db),
    cache=Depends(get_cache),
):
    """Printable HTML; a print token replaces the admin login."""
    controller = AgreementsController(db, cache=cache)
    if token:
        controller.consume_print_token(agreement_id, token)
    else:
        admin_from_token(db, bearer_token(authorization))
    return HTMLResponse(controller.html_document(agreement_id))


# --------------------------------------------------------------------------- #
# Authenticated helpers
# --------------------------------------------------------------------------- #
@api.post("/{agreement_id}/print-token", tags=["Agreements"])
async def create_print_token(
    agreement_id: int,
    admin: CurrentAdmin = Depends(get_current_admin),
    db=Depends(get_db),
    cache=Depends(get_cache),
):
    return ok(AgreementsController(db, cache=cache).create_print_token(agreement_id))


@api.get("/properties", tags=["Agreements"])
async def property_picker(
    search: Optional[str] = None,
    admin: CurrentAdmin = Depends(get_current_admin),
    db=Depends(get_db),
):
    return ok(PropertiesController(db).picker(search))


# --------------------------------------------------------------------------- #
# Templates
# --------------------------------------------------------------------------- #
@api.get("/templates/list", tags=["Agreement templates"])
async def list_templates(
    type: Optional[str] = None,
    active: Optional[str] = None,
    admin: CurrentAdmin = Depends(require_permission("agreements.manage_templates")),
    db=Depends(get_db),
):
    return ok(TemplatesController(db).list_templates(template_type=type, active=active))


@api.post("/templates", status_code=201, tags=["Agreement templates"])
async def create_template(
    payload: dict = Body(...),
    admin: CurrentAdmin = Depends(require_permission("agreements.manage_templates")),
    db=Depends(get_db),
):
    return ok(TemplatesController(db).create_template(payload, admin.id), message="Template created")


@api.get("/templates/{template_id}", tags=["Agreement templates"])
async def get_template(
    template_id: int,
    admin: CurrentAdmin = Depends(require_permission("agreements.manage_templates")),
    db=Depends(get_db),
):
    return ok(TemplatesController(db).get_template(template_id))


@api.put("/templates/{template_id}", tags=["Agreement templates"])
async def update_template(
    template_id: int,
    payload: dict = Body(...),
    admin: CurrentAdmin = Depends(require_permission("agreements.manage_templates")),
    db=Depends(get_db),
):
    TemplatesController(db).update_template(template_id, payload)
    return ok(message="Template updated")


@api.delete("/templates/{template_id}", tags=["Agreement templates"])
async def delete_template(
    template_id: int,
    admin: CurrentAdmin = Depends(require_permission("agreements.manage_templates")),
    db=Depends(get_db),
):
    TemplatesController(db).delete_template(template_id)
    return ok(message="Template deactivated")


# --------------------------------------------------------------------------- #
# Signatures (admin)
# --------------------------------------------------------------------------- #
@api.put("/signatures/{signature_id}", tags=["Signatures"])
async def update_signature(
    signature_id: int,
    payload: dict = Body(...),
    admin: CurrentAdmin = Depends(require_permission("agreements.manage_signatures")),
    db=Depends(get_db),
):
    SignaturesController(db).update_signature(signature_id, payload, admin.id)
    return ok(message="Signature updated")


@api.post("/signatures/{signature_id}/regenerate", tags=["Signatures"])
async def regenerate_signature_link(
    signature_id: int,
    admin: CurrentAdmin = Depends(require_permission("agreements.manage_signatures")),
    db=Depends(get_db),
):
    return ok(SignaturesController(db).regenerate_link(signature_id, admin.id), message="Link regenerated")


@api.delete("/signatures/{signature_id}", tags=["Signatures"])
async def delete_signature(
    signature_id: int,
    admin: CurrentAdmin = Depends(require_permission("agreements.manage_signatures")),
    db=Depends(get_db),
):
    SignaturesController(db).delete_signature(signature_id, admin.id)
    return ok(message="Signature deleted")


# --------------------------------------------------------------------------- #
# Agreements
# --------------------------------------------------------------------------- #
@api.get("", tags=["Agreements"])
async def list_agreements(
    type: Optional[str] = None,
    status: Optional[str] = None,
    property_id: Optional[int] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: Optional[int] = None,
    admin: CurrentAdmin = Depends(require_permission("agreements.view")),
    db=Depends(get_db),
):
    result = AgreementsController(db).list_agreements(
        agreement_type=type, status=status, property_id=property_id, search=search, page=page, limit=limit
    )
    return ok(result["data"], pagination=result["pagination"])


@api.post("", status_code=201, tags=["Agreements"])
async def create_agreement(
    payload: dict = Body(...),
    admin: CurrentAdmin = Depends(require_permission("agreements.create")),
    db=Depends(get_db),
):
    return ok(AgreementsController(db).create_agreement(payload, admin.id), message="Agreement created")


@api.post("/{agreement_id}/signatures", tags=["Signatures"])
async def create_signatures(
    agreement_id: int,
    payload: dict = Body(...),
    admin: CurrentAdmin = Depends(require_permission("agreements.manage_signatures")),
    db=Depends(get_db),
):
    return ok(SignaturesController(db).create_signatures(agreement_id, payload, admin.id), message="Signatures created")


@api.get("/{agreement_id}/with-parties", tags=["Agreements"])
async def agreement_with_parties(
    agreement_id: int,
    admin: CurrentAdmin = Depends(require_permission("agreements.view")),
    db=Depends(get_db),
):
    return ok(AgreementsController(db).with_parties(agreement_id))


@api.post("/{agreement_id}/notify-agent", tags=["Agreements"])
async def notify_agent(
    agreement_id: int,
    payload: dict = Body(default_factory=dict),
    admin: CurrentAdmin = Depends(require_permission("agreements.manage_signatures")),
    db=Depends(get_db),
    notifier=Depends(get_telegram),
):
    await AgreementsController(db, notifier=notifier).notify_agent(agreement_id, payload.get("request_uuid"))
    return ok(message="Notification sent to the agent")


@api.post("/{agreement_id}/ai-edit", tags=["AI edit"])
async def ai_edit(
    agreement_id: int,
    payload: dict = Body(...),
    admin: CurrentAdmin = Depends(require_permission("agreements.edit")),
    db=Depends(get_db),
    editor=Depends(get_ai_editor),
):
    return ok(await AIEditController(db, editor).suggest_edit(agreement_id, payload, admin.id))


@api.post("/{agreement_id}/ai-edit/apply", tags=["AI edit"])
async def ai_edit_apply(
    agreement_id: int,
    payload: dict = Body(...),
    admin: CurrentAdmin = Depends(require_permission("agreements.edit")),
    db=Depends(get_db),
    editor=Depends(get_ai_editor),
):
    data = AIEditController(db, editor).apply_edit(agreement_id, payload, admin.id)
    return ok(data, message="Changes applied")


@api.get("/{agreement_id}/ai-edit/history", tags=["AI edit"])
async def ai_edit_history(
    agreement_id: int,
    admin: CurrentAdmin = Depends(require_permission("agreements.view")),
    db=Depends(get_db),
    editor=Depends(get_ai_editor),
):
    return ok(AIEditController(db, editor).history(agreement_id))


@api.get("/{agreement_id}", tags=["Agreements"])
async def get_agreement(
    agreement_id: int,
    admin: CurrentAdmin = Depends(require_permission("agreements.view")),
    db=Depends(get_db),
):
    return ok(AgreementsController(db).get_agreement(agreement_id))


@api.put("/{agreement_id}", tags=["Agreements"])
async def update_agreement(
    agreement_id: int,
    payload: dict = Body(...),
    admin: CurrentAdmin = Depends(require_permission("agreements.edit")),
    db=Depends(get_db),
):
    AgreementsController(db).update_agreement(agreement_id, payload, admin.id)
    return ok(message="Agreement updated")


@api.delete("/{agreement_id}", tags=["Agreements"])
async def delete_agreement(
    agreement_id: int,
    admin: CurrentAdmin = Depends(require_permission("agreements.delete")),
    db=Depends(get_db),
):
    AgreementsController(db).delete_agreement(agreement_id, admin.id)
    return ok(message="Agreement deleted")
