import pytest

OWNER = "Somchai K."


@pytest.fixture
def owned_property(client, admin_headers):
    response = client.post(
        "/api/properties",
        json={"property_name": "Villa Orchid", "property_number": "O-3", "owner_name": OWNER, "year_price": 900000},
        headers=admin_headers,
    )
    return response.json()["data"]["id"]


@pytest.fixture
def owner_access(client, admin_headers, owned_property):
    response = client.post("/api/property-owners/create", json={"owner_name": OWNER}, headers=admin_headers)
    assert response.status_code == 201, response.text
    return response.json()["data"]


def _owner_login(client, access):
    token = access["access_url"].rsplit("/", 1)[1]
    response = client.post("/api/property-owners/login", json={"access_token": token, "password": access["password"]})
    assert response.status_code == 200, response.text
    return response.json()["data"]


def _owner_headers(client, access):
    return {"Authorization": f"Bearer {_owner_login(client, access)['accessToken']}"}


def test_create_access_requires_owned_properties(client, admin_headers, owner_access):
    assert owner_access["properties_count"] == 1
    assert owner_access["access_url"].startswith("http://front.test/owner/")
    assert len(owner_access["access_url"].rsplit("/", 1)[1]) == 64
    assert owner_access["can_edit_pricing"] is True

    again = client.post("/api/property-owners/create", json={"owner_name": OWNER}, headers=admin_headers)
    assert again.json()["message"] == "Access for this owner has already been created"

    nobody = client.post("/api/property-owners/create", json={"owner_name": "Nobody"}, headers=admin_headers)
    assert nobody.status_code == 400
    assert nobody.json()["message"] == "No properties found with this owner name"

    info = client.get(f"/api/property-owners/info/{OWNER}", headers=admin_headers).json()["data"]
    assert info["password"] == owner_access["password"]


def test_owner_portal_url_can_be_overridden(client, admin_headers, owned_property, monkeypatch):
    monkeypatch.setenv("OWNER_PORTAL_URL", "https://owners.example.com/")
    created = client.post("/api/property-owners/create", json={"owner_name": OWNER}, headers=admin_headers).json()["data"]
    assert created["access_url"].startswith("https://owners.example.com/owner/")


def test_verify_and_login(client, owner_access):
    token = owner_access["access_url"].rsplit("/", 1)[1]

    verified = client.get(f"/api/property-owners/verify/{token}").json()["data"]
    assert verified == {
        "owner_name": OWNER,
        "properties_count": 1,
        "last_login_at": None,
        "can_edit_calendar": True,
        "can_edit_pricing": True,
    }
    assert client.get("/api/property-owners/verify/unknown").status_code == 404

    bad = client.post("/api/property-owners/login", json={"access_token": token, "password": "wrong"})
    assert bad.status_code == 401
    assert bad.json()["message"] == "Invalid token or password"
    assert client.post("/api/property-owners/login", json={"access_token": token}).status_code == 400

    session = _owner_login(client, owner_access)
    assert session["owner"]["owner_name"] == OWNER
    assert session["accessToken"] and session["refreshToken"]


def test_owner_and_admin_tokens_are_not_interchangeable(client, admin_headers, owner_access):
    owner_headers = _owner_headers(client, owner_access)
    assert client.get("/api/property-owners/properties", headers=admin_headers).status_code == 401
    assert client.get("/api/auth/me", headers=owner_headers).status_code == 401


def test_refresh_rotates_the_token(client, owner_access):
    session = _owner_login(client, owner_access)

    rotated = client.post("/api/property-owners/refresh", json={"refreshToken": session["refreshToken"]})
    assert rotated.status_code == 200
    assert rotated.json()["data"]["refreshToken"]

    reused = client.post("/api/property-owners/refresh", json={"refreshToken": session["refreshToken"]})
    assert reused.status_code == 401
    assert client.post("/api/property-owners/refresh", json={}).status_code == 400


def test_owner_sees_only_own_properties(client, admin_headers, owner_access, owned_property):
    other = client.post(
        "/api/properties", json={"property_name": "Not mine", "owner_name": "Someone else"}, headers=admin_headers
    ).json()["data"]["id"]
    headers = _owner_headers(client, owner_access)

    listed = client.get("/api/property-owners/properties", headers=headers).json()["data"]
    assert [p["id"] for p in listed] == [owned_property]
    assert listed[0]["year_price"] == 900000
    assert listed[0]["blocked_dates_count"] == 0

    assert client.get(f"/api/property-owners/property/{other}", headers=headers).status_code == 404


def test_pricing_updates(client, owner_access, owned_property):
    headers = _owner_headers(client, owner_access)
    url = f"/api/property-owners/property/{owned_property}"

    client.put(
        f"{url}/pricing",
        json={
            "year_price": "850000",
            "deposit_type": "fixed",
            "seasonalPricing": [
                {"season_type": "high", "start_date_recurring": "12-01", "end_date_recurring": "03-31", "price_per_night": 12000},
                {"season_type": "low", "start_date_recurring": "04-01", "end_date_recurring": "11-30",
                 "price_per_night": 8000, "minimum_nights": 0},
            ],
        },
        headers=headers,
    )
    assert client.put(f"{url}/monthly-pricing", json={"monthlyPricing": "x"}, headers=headers).status_code == 400
    client.put(
        f"{url}/monthly-pricing",
        json={"monthlyPricing": [{"month": 1, "price_per_month": 150000}, {"month": 2, "price_per_month": 0}]},
        headers=headers,
    )

    detail = client.get(url, headers=headers).json()["data"]
    assert detail["year_price"] == 850000
    assert detail["deposit_type"] == "fixed"
    assert [p["season_type"] for p in detail["seasonal_pricing"]] == ["low", "high"]
    assert [p["minimum_nights"] for p in detail["seasonal_pricing"]] == [1, 1]
    assert detail["seasonal_pricing"][0]["pricing_mode"] == "net"
    assert detail["monthly_pricing"] == [
        {
            **detail["monthly_pricing"][0],
            "month_number": 1,
            "price_per_month": 150000,
            "minimum_days": 28,
        }
    ]

    listed = client.get("/api/property-owners/properties", headers=headers).json()["data"]
    assert listed[0]["seasonal_pricing_count"] == 2
    assert listed[0]["monthly_pricing_count"] == 1


def test_calendar_block_and_unblock(client, owner_access, owned_property):
    headers = _owner_headers(client, owner_access)
    url = f"/api/property-owners/property/{owned_property}/calendar"

    client.put(
        url,
        json={"dates_to_add": [{"date": "2025-03-01", "is_check_in": True}, {"date": "2025-03-02", "reason": "Guest"}]},
        headers=headers,
    )
    client.put(url, json={"dates_to_remove": ["2025-03-01"], "dates_to_add": [{"date": "2025-03-02"}]}, headers=headers)

    calendar = client.get(url, headers=headers).json()["data"]
    assert [(d["blocked_date"], d["reason"]) for d in calendar["blocked_dates"]] == [("2025-03-02", "Blocked by owner")]
    assert calendar["external_calendars"] == []

    assert client.put(url, json={"dates_to_add": "2025-03-05"}, headers=headers).status_code == 400
    assert client.put(url, json={"dates_to_remove": ["03/05/2025"]}, headers=headers).status_code == 400


def test_permissions_gate_edits(client, admin_headers, owner_access, owned_property):
    assert client.put(f"/api/property-owners/permissions/{OWNER}", json={}, headers=admin_headers).status_code == 400
    client.put(
        f"/api/property-owners/permissions/{OWNER}",
        json={"can_edit_pricing": False, "can_edit_calendar": "false"},
        headers=admin_headers,
    )
    headers = _owner_headers(client, owner_access)
    url = f"/api/property-owners/property/{owned_property}"

    assert client.put(f"{url}/pricing", json={"year_price": 1}, headers=headers).status_code == 403
    assert client.put(f"{url}/calendar", json={}, headers=headers).status_code == 403
    assert client.get(f"{url}/calendar", headers=headers).status_code == 200


def test_change_password(client, owner_access):
    headers = _owner_headers(client, owner_access)
    url = "/api/property-owners/change-password"

    assert client.post(url, json={"current_password": owner_access["password"], "new_password": "123"}, headers=headers).status_code == 400
    wrong = client.post(url, json={"current_password": "nope", "new_password": "new-secret"}, headers=headers)
    assert wrong.status_code == 401

    assert client.post(
        url, json={"current_password": owner_access["password"], "new_password": "new-secret"}, headers=headers
    ).status_code == 200
    _owner_login(client, {**owner_access, "password": "new-secret"})
