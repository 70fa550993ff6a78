import jwt
import pytest

from src.backoffice import security
from tests.conftest import ADMIN_PASSWORD, ADMIN_USERNAME, create_user, login


def test_login_returns_tokens_and_roles(client, db):
    create_user(db, "manager", permissions=["agreements.view", "requests.view"])

    response = client.post("/api/auth/login", json={"username": "manager", "password": "secret123"})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    data = body["data"]
    assert data["accessToken"] and data["refreshToken"]
    assert data["user"]["username"] == "manager"
    perms = {p["permission_name"] for p in data["user"]["roles"][0]["permissions"]}
    assert perms == {"agreements.view", "requests.view"}


def test_login_rejects_bad_password_and_missing_fields(client, db):
    create_user(db, "manager")

    bad = client.post("/api/auth/login", json={"username": "manager", "password": "wrong"})
    assert bad.status_code == 401
    assert bad.json() == {"success": False, "message": "Invalid username or password"}

    missing = client.post("/api/auth/login", json={"username": ""})
    assert missing.status_code == 422
    assert set(missing.json()["field_errors"]) == {"username", "password"}


def test_me_requires_a_valid_bearer_token(client, admin_headers):
    assert client.get("/api/auth/me").json()["message"] == "Token not provided"
    assert client.get("/api/auth/me", headers={"Authorization": "Bearer nope"}).status_code == 401

    me = client.get("/api/auth/me", headers=admin_headers)
    assert me.status_code == 200
    assert me.json()["data"]["username"] == ADMIN_USERNAME
    assert me.json()["data"]["is_super_admin"] is True


def test_refresh_and_logout(client, db):
    db.ensure_super_admin(ADMIN_USERNAME, security.hash_password(ADMIN_PASSWORD))
    tokens = client.post("/api/auth/login", json={"username": ADMIN_USERNAME, "password": ADMIN_PASSWORD}).json()["data"]

    refreshed = client.post("/api/auth/refresh", json={"refreshToken": tokens["refreshToken"]})
    assert refreshed.status_code == 200
    assert refreshed.json()["data"]["accessToken"]

    headers = {"Authorization": f"Bearer {tokens['accessToken']}"}
    assert client.post("/api/auth/logout", json={"refreshToken": tokens["refreshToken"]}, headers=headers).status_code == 200

    again = client.post("/api/auth/refresh", json={"refreshToken": tokens["refreshToken"]})
    assert again.status_code == 401
    assert client.post("/api/auth/refresh", json={}).status_code == 400


def test_token_secrets_come_from_the_environment(monkeypatch):
    monkeypatch.setenv("JWT_SECRET", "access-from-env")
    monkeypatch.setenv("JWT_REFRESH_SECRET", "refresh-from-env")

    access = security.create_access_token({"id": 1, "typ": "admin"})
    refresh = security.create_refresh_token({"id": 1, "typ": "admin"})

    assert jwt.decode(access, "access-from-env", algorithms=["HS256"])["id"] == 1
    assert jwt.decode(refresh, "refresh-from-env", algorithms=["HS256"])["id"] == 1
    with pytest.raises(jwt.InvalidSignatureError):
        jwt.decode(access, "dev-secret-change-me", algorithms=["HS256"])


def test_permission_is_required_unless_super_admin(client, make_user_headers, admin_headers):
    reader = make_user_headers("reader", ["users.read"])

    assert client.get("/api/users", headers=reader).status_code == 200
    denied = client.post("/api/users", json={"username": "x"}, headers=reader)
    assert denied.status_code == 403
    assert denied.json()["message"] == "Insufficient permissions"

    assert client.get("/api/roles", headers=admin_headers).status_code == 200


def test_create_user_validates_and_rejects_duplicates(client, admin_headers):
    invalid = client.post("/api/users", json={"username": "ab", "password": "123", "full_name": ""}, headers=admin_headers)
    assert invalid.status_code == 422
    errors = invalid.json()["field_errors"]
    assert "at least 3" in errors["username"]
    assert "at least 6" in errors["password"]
    assert "full_name" in errors

    payload = {"username": "agent1", "password": "secret123", "full_name": "Agent One"}
    created = client.post("/api/users", json=payload, headers=admin_headers)
    assert created.status_code == 201
    user_id = created.json()["data"]["id"]

    dup = client.post("/api/users", json=payload, headers=admin_headers)
    assert dup.status_code == 400

    updated = client.put(f"/api/users/{user_id}", json={"full_name": "Agent 1", "is_active": False}, headers=admin_headers)
    assert updated.json()["data"]["full_name"] == "Agent 1"
    assert updated.json()["data"]["is_active"] is False


def test_delete_user_guards(client, db, admin_headers):
    me = client.get("/api/auth/me", headers=admin_headers).json()["data"]
    assert client.delete(f"/api/users/{me['id']}", headers=admin_headers).status_code == 400

    other_admin = create_user(db, "root2", is_super_admin=True)
    assert client.delete(f"/api/users/{other_admin}", headers=admin_headers).json()["message"] == "Cannot delete a super admin"

    plain = create_user(db, "plain")
    assert client.delete(f"/api/users/{plain}", headers=admin_headers).status_code == 200
    assert client.get(f"/api/users/{plain}", headers=admin_headers).status_code == 404


def test_delete_user_keeps_their_records(client, db, admin_headers):
    creator = create_user(db, "creator", permissions=["properties.create", "properties.read"])
    creator_headers = login(client, "creator", "secret123")
    created = client.post("/api/properties", json={"property_name": "Villa Creator"}, headers=creator_headers)
    assert created.status_code == 201, created.text
    property_id = created.json()["data"]["id"]

    assert client.delete(f"/api/users/{creator}", headers=admin_headers).status_code == 200
    assert client.get(f"/api/users/{creator}", headers=admin_headers).status_code == 404

    prop = client.get(f"/api/properties/{property_id}", headers=admin_headers).json()["data"]
    assert prop["property_name"] == "Villa Creator"
    assert prop["created_by"] is None


def test_roles_crud_and_permission_catalogue(client, db, admin_headers):
    catalogue = client.get("/api/roles/permissions/all", headers=admin_headers).json()["data"]
    assert {"users", "roles", "properties", "agreements", "requests", "financial_documents"} <= set(catalogue)
    agreement_ids = [p["id"] for p in catalogue["agreements"]]

    created = client.post(
        "/api/roles",
        json={"role_name": "Lawyer", "description": "Agreements only", "permission_ids": agreement_ids},
        headers=admin_headers,
    )
    assert created.status_code == 201
    role_id = created.json()["data"]["id"]

    assert client.post("/api/roles", json={"role_name": "Lawyer"}, headers=admin_headers).status_code == 400

    role = client.get(f"/api/roles/{role_id}", headers=admin_headers).json()["data"]
    assert len(role["permissions"]) == len(agreement_ids)
    assert role["users_count"] == 0

    narrowed = client.put(f"/api/roles/{role_id}", json={"permission_ids": agreement_ids[:1]}, headers=admin_headers)
    assert len(narrowed.json()["data"]["permissions"]) == 1

    client.post(
        "/api/users",
        json={"username": "lawyer", "password": "secret123", "full_name": "Law", "role_ids": [role_id]},
        headers=admin_headers,
    )
    blocked = client.delete(f"/api/roles/{role_id}", headers=admin_headers)
    assert blocked.status_code == 400
    assert "assigned to 1 user" in blocked.json()["message"]
