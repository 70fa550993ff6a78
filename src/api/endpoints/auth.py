from fastapi import APIRouter, Body, Depends

from src.api.responses import ok
from src.backoffice.controllers.auth_controller import AuthController
from src.backoffice.dependencies import CurrentAdmin, get_current_admin, get_db
from src.backoffice.validation import raise_if_errors, require_str

api = APIRouter()
auth_api = api


@api.post("/login", tags=["Auth"])
async def login(payload: dict = Body(...), db=Depends(get_db)):
    errors = {}
    username = require_str(payload, "username", errors, label="Username")
    if not payload.get("password"):
        errors["password"] = "Password is required"
    raise_if_errors(errors)
    data = AuthController(db).login(username, str(payload["password"]))
    return ok(data, message="Login successful")


@api.post("/logout", tags=["Auth"])
async def logout(
    payload: dict = Body(default_factory=dict),
    admin: CurrentAdmin = Depends(get_current_admin),
    db=Depends(get_db),
):
    AuthController(db).logout(payload.get("refreshToken"))
    return ok(message="Logout successful")


@api.post("/refresh", tags=["Auth"])
async def refresh(payload: dict = Body(...), db=Depends(get_db)):
    return ok(AuthController(db).refresh(payload.get("refreshToken")))


@api.get("/me", tags=["Auth"])
async def me(admin: CurrentAdmin = Depends(get_current_admin), db=Depends(get_db)):
    return ok(AuthController(db).me(admin.id))
