from typing import Optional

from fastapi import APIRouter, Body, Depends

from src.api.responses import ok
from src.backoffice.controllers.properties_controller import PropertiesController
from src.backoffice.dependencies import CurrentAdmin, get_db, require_permission, require_super_admin

api = APIRouter()
properties_api = api


@api.get("", tags=["Properties"])
async def list_properties(
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
    admin: CurrentAdmin = Depends(require_permission("properties.read")),
    db=Depends(get_db),
):
    result = PropertiesController(db).list_properties(search=search, page=page, limit=limit)
    return ok(result["data"], pagination=result["pagination"])


@api.get("/{property_id}", tags=["Properties"])
async def get_property(
    property_id: int,
    admin: CurrentAdmin = Depends(require_permission("properties.read")),
    db=Depends(get_db),
):
    return ok(PropertiesController(db).get_property(property_id))


@api.post("", status_code=201, tags=["Properties"])
async def create_property(
    payload: dict = Body(...),
    admin: CurrentAdmin = Depends(require_permission("properties.create")),
    db=Depends(get_db),
):
    return ok(PropertiesController(db).create_property(payload, admin.id), message="Property created")


@api.put("/{property_id}", tags=["Properties"])
async def update_property(
    property_id: int,
    payload: dict = Body(...),
    admin: CurrentAdmin = Depends(require_permission("properties.update")),
    db=Depends(get_db),
):
    return ok(PropertiesController(db).update_property(property_id, payload), message="Property updated")


@api.delete("/{property_id}", tags=["Properties"])
async def delete_property(property_id: int, admin: CurrentAdmin = Depends(require_super_admin), db=Depends(get_db)):
    PropertiesController(db).delete_property(property_id)
    return ok(message="Property deleted")
