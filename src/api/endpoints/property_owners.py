from fastapi import APIRouter, Body, Depends

from src.api.responses import ok
from src.backoffice.controllers.property_owners_controller import PropertyOwnersController
from src.backoffice.dependencies import (
    CurrentAdmin,
    CurrentOwner,
    get_current_admin,
    get_current_owner,
    get_db,
    require_calendar_edit,
    require_pricing_edit,
)

api = APIRouter()
property_owners_api = api


# --------------------------------------------------------------------------- #
# Admin
# --------------------------------------------------------------------------- #
@api.post("/create", status_code=201, tags=["Owner portal (admin)"])
async def create_owner_access(
    payload: dict = Body(...),
    admin: CurrentAdmin = Depends(get_current_admin),
    db=Depends(get_db),
):
    data = PropertyOwnersController(db).create_access(payload, admin.id)
    return ok(data, message="Owner access created")


@api.get("/info/{owner_name}", tags=["Owner portal (admin)"])
async def owner_info(owner_name: str, admin: CurrentAdmin = Depends(get_current_admin), db=Depends(get_db)):
    return ok(PropertyOwnersController(db).owner_info(owner_name))


@api.put("/permissions/{owner_name}", tags=["Owner portal (admin)"])
async def update_owner_permissions(
    owner_name: str,
    payload: dict = Body(...),
    admin: CurrentAdmin = Depends(get_current_admin),
    db=Depends(get_db),
):
    PropertyOwnersController(db).update_permissions(owner_name, payload)
    return ok(message="Permissions updated")


# --------------------------------------------------------------------------- #
# Public
# --------------------------------------------------------------------------- #
@api.get("/verify/{token}", tags=["Owner portal"])
async def verify_owner_token(token: str, db=Depends(get_db)):
    return ok(PropertyOwnersController(db).verify_token(token))


@api.post("/login", tags=["Owner portal"])
async def owner_login(payload: dict = Body(...), db=Depends(get_db)):
    return ok(PropertyOwnersController(db).login(payload), message="Login successful")


@api.post("/refresh", tags=["Owner portal"])
async def owner_refresh(payload: dict = Body(...), db=Depends(get_db)):
    return ok(PropertyOwnersController(db).refresh(payload.get("refreshToken")))


# --------------------------------------------------------------------------- #
# Owner session
# --------------------------------------------------------------------------- #
@api.get("/properties", tags=["Owner portal"])
async def owner_properties(owner: CurrentOwner = Depends(get_current_owner), db=Depends(get_db)):
    return ok(PropertyOwnersController(db).properties(owner.owner_name))


@api.get("/property/{property_id}", tags=["Owner portal"])
async def owner_property(property_id: int, owner: CurrentOwner = Depends(get_current_owner), db=Depends(get_db)):
    return ok(PropertyOwnersController(db).property_detail(owner.owner_name, property_id))


@api.put("/property/{property_id}/pricing", tags=["Owner portal"])
async def update_owner_pricing(
    property_id: int,
    payload: dict = Body(...),
    owner: CurrentOwner = Depends(require_pricing_edit),
    db=Depends(get_db),
):
    PropertyOwnersController(db).update_pricing(owner.owner_name, property_id, payload)
    return ok(message="Prices updated")


@api.put("/property/{property_id}/monthly-pricing", tags=["Owner portal"])
async def update_owner_monthly_pricing(
    property_id: int,
    payload: dict = Body(...),
    owner: CurrentOwner = Depends(require_pricing_edit),
    db=Depends(get_db),
):
    PropertyOwnersController(db).update_monthly_pricing(owner.owner_name, property_id, payload)
    return ok(message="Monthly prices updated")


@api.get("/property/{property_id}/calendar", tags=["Owner portal"])
async def owner_calendar(property_id: int, owner: CurrentOwner = Depends(get_current_owner), db=Depends(get_db)):
    return ok(PropertyOwnersController(db).calendar(owner.owner_name, property_id))


@api.put("/property/{property_id}/calendar", tags=["Owner portal"])
async def update_owner_calendar(
    property_id: int,
    payload: dict = Body(...),
    owner: CurrentOwner = Depends(require_calendar_edit),
    db=Depends(get_db),
):
    PropertyOwnersController(db).update_calendar(owner.owner_name, property_id, payload)
    return ok(message="Calendar updated")


@api.post("/change-password", tags=["Owner portal"])
async def owner_change_password(
    payload: dict = Body(...),
    owner: CurrentOwner = Depends(get_current_owner),
    db=Depends(get_db),
):
    PropertyOwnersController(db).change_password(owner.id, payload)
    return ok(message="Password changed")
