from fastapi import APIRouter, Body, Depends

from src.api.responses import ok
from src.backoffice.controllers.roles_controller import RolesController
from src.backoffice.controllers.users_controller import UsersController
from src.backoffice.dependencies import CurrentAdmin, get_db, require_permission

users_api = APIRouter()
roles_api = APIRouter()


# --------------------------------------------------------------------------- #
# Users
# --------------------------------------------------------------------------- #
@users_api.get("", tags=["Users"])
async def list_users(admin: CurrentAdmin = Depends(require_permission("users.read")), db=Depends(get_db)):
    return ok(UsersController(db).list_users())


@users_api.get("/{user_id}", tags=["Users"])
async def get_user(user_id: int, admin: CurrentAdmin = Depends(require_permission("users.read")), db=Depends(get_db)):
    return ok(UsersController(db).get_user(user_id))


@users_api.post("", status_code=201, tags=["Users"])
async def create_user(
    payload: dict = Body(...),
    admin: CurrentAdmin = Depends(require_permission("users.create")),
    db=Depends(get_db),
):
    return ok(UsersController(db).create_user(payload), message="User created")


@users_api.put("/{user_id}", tags=["Users"])
async def update_user(
    user_id: int,
    payload: dict = Body(...),
    admin: CurrentAdmin = Depends(require_permission("users.update")),
    db=Depends(get_db),
):
    return ok(UsersController(db).update_user(user_id, payload), message="User updated")


@users_api.delete("/{user_id}", tags=["Users"])
async def delete_user(user_id: int, admin: CurrentAdmin = Depends(require_permission("users.delete")), db=Depends(get_db)):
    UsersController(db).delete_user(user_id, admin.id)
    return ok(message="User deleted")


# --------------------------------------------------------------------------- #
# Roles
# --------------------------------------------------------------------------- #
@roles_api.get("", tags=["Roles"])
async def list_roles(admin: CurrentAdmin = Depends(require_permission("roles.read")), db=Depends(get_db)):
    return ok(RolesController(db).list_roles())


@roles_api.get("/permissions/all", tags=["Roles"])
async def all_permissions(admin: CurrentAdmin = Depends(require_permission("roles.read")), db=Depends(get_db)):
    return ok(RolesController(db).permissions_by_module())


@roles_api.get("/{role_id}", tags=["Roles"])
async def get_role(role_id: int, admin: CurrentAdmin = Depends(require_permission("roles.read")), db=Depends(get_db)):
    return ok(RolesController(db).get_role(role_id))


@roles_api.post("", status_code=201, tags=["Roles"])
async def create_role(
    payload: dict = Body(...),
    admin: CurrentAdmin = Depends(require_permission("roles.create")),
    db=Depends(get_db),
):
    return ok(RolesController(db).create_role(payload), message="Role created")


@roles_api.put("/{role_id}", tags=["Roles"])
async def update_role(
    role_id: int,
    payload: dict = Body(...),
    admin: CurrentAdmin = Depends(require_permission("roles.update")),
    db=Depends(get_db),
):
    return ok(RolesController(db).update_role(role_id, payload), message="Role updated")


@roles_api.delete("/{role_id}", tags=["Roles"])
async def delete_role(role_id: int, admin: CurrentAdmin = Depends(require_permission("roles.delete")), db=Depends(get_db)):
    RolesController(db).delete_role(role_id)
    return ok(message="Role deleted")
