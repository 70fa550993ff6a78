from src.database.models import Property


def _create(client, headers, **payload):
    response = client.post("/api/properties", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["data"]["id"]


def test_create_requires_a_name(client, admin_headers):
    response = client.post("/api/properties", json={"property_number": "X-1"}, headers=admin_headers)
    assert response.status_code == 422
    assert "property_name" in response.json()["field_errors"]


def test_list_search_and_paging(client, admin_headers):
    _create(client, admin_headers, property_name="Villa Lotus", property_number="L-1", owner_name="Anna")
    _create(client, admin_headers, property_name="Condo Sea", property_number="C-7", address="Kata beach")
    _create(client, admin_headers, property_name="Villa Palm", property_number="P-2")

    page = client.get("/api/properties", params={"page": 2, "limit": 2}, headers=admin_headers).json()
    assert page["pagination"] == {"page": 2, "limit": 2, "total": 3, "totalPages": 2}
    assert [p["property_name"] for p in page["data"]] == ["Villa Lotus"]

    villas = client.get("/api/properties", params={"search": "villa"}, headers=admin_headers).json()
    assert sorted(p["property_name"] for p in villas["data"]) == ["Villa Lotus", "Villa Palm"]
    by_address = client.get("/api/properties", params={"search": "kata"}, headers=admin_headers).json()["data"]
    assert [p["property_number"] for p in by_address] == ["C-7"]
    by_owner = client.get("/api/properties", params={"search": "anna"}, headers=admin_headers).json()["data"]
    assert [p["property_number"] for p in by_owner] == ["L-1"]


def test_update_property(client, admin_headers):
    property_id = _create(client, admin_headers, property_name="Villa Lotus", year_price=500000)

    updated = client.put(
        f"/api/properties/{property_id}",
        json={"property_name": "Villa Lotus II", "bedrooms": "3", "year_price": "", "status": ""},
        headers=admin_headers,
    ).json()["data"]
    assert updated["property_name"] == "Villa Lotus II"
    assert updated["bedrooms"] == 3
    assert updated["year_price"] is None
    assert updated["status"] == "draft"

    assert client.put("/api/properties/999", json={}, headers=admin_headers).status_code == 404


def test_soft_delete_hides_the_property(client, admin_headers):
    property_id = _create(client, admin_headers, property_name="Villa Gone", property_number="G-1")

    assert client.delete(f"/api/properties/{property_id}", headers=admin_headers).status_code == 200
    assert client.get(f"/api/properties/{property_id}", headers=admin_headers).status_code == 404
    assert client.get("/api/properties", headers=admin_headers).json()["pagination"]["total"] == 0
    assert client.get("/api/agreements/properties", headers=admin_headers).json()["data"] == []
    assert client.get("/api/requests/properties").json()["data"] == []
    assert client.delete(f"/api/properties/{property_id}", headers=admin_headers).status_code == 404


def test_picker_is_capped_at_one_hundred(client, db, admin_headers):
    with db.session() as s:
        s.add_all(Property(property_name=f"Unit {i}", property_number=f"U-{i:03d}") for i in range(105))

    picker = client.get("/api/agreements/properties", headers=admin_headers).json()["data"]
    assert len(picker) == 100
    assert picker[0] == {"id": picker[0]["id"], "property_number": "U-000", "property_name": "Unit 0", "address": None}

    narrowed = client.get("/api/agreements/properties", params={"search": "U-104"}, headers=admin_headers).json()["data"]
    assert [p["property_name"] for p in narrowed] == ["Unit 104"]


def test_property_permissions(client, make_user_headers):
    reader = make_user_headers("viewer", ["properties.read"])
    assert client.get("/api/properties", headers=reader).status_code == 200
    assert client.post("/api/properties", json={"property_name": "x"}, headers=reader).status_code == 403

    editor = make_user_headers("editor", ["properties.read", "properties.create", "properties.update"])
    property_id = _create(client, editor, property_name="Villa Editor")
    assert client.delete(f"/api/properties/{property_id}", headers=editor).status_code == 403
