import json

import pytest

from src.database.models import BotUser, Request

TEMPLATE_CONTENT = (
    "<p>Agreement {{agreement_number}} for {{property_name}}</p>"
    "<p>Landlord {{landlord_name}}, tenant {{tenant_name}} ({{tenant_passport}})</p>"
    "<p>Rent {{rent_amount_monthly}} THB, total {{rent_amount_total}}</p>"
)
TEMPLATE_STRUCTURE = json.dumps(
    {
        "title": "LEASE AGREEMENT",
        "nodes": [{"id": "1", "type": "section", "content": "1. RENT", "children": [
            {"id": "2", "type": "paragraph", "content": "Monthly rent {{rent_amount_monthly}}"}
        ]}],
    }
)


def _create_template(client, headers, **overrides):
    payload = {"name": "Lease", "type": "rent", "content": TEMPLATE_CONTENT, "structure": TEMPLATE_STRUCTURE}
    payload.update(overrides)
    response = client.post("/api/agreements/templates", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["data"]["id"]


def _create_agreement(client, headers, template_id, **overrides):
    property_id = client.post(
        "/api/properties",
        json={"property_name": "Villa Sunset", "property_number": "V-12", "address": "Rawai"},
        headers=headers,
    ).json()["data"]["id"]
    payload = {
        "template_id": template_id,
        "property_id": property_id,
        "date_from": "2025-01-01",
        "date_to": "2025-04-01",
        "rent_amount_monthly": 40000,
        "deposit_amount": 80000,
        "parties": [
            {"role": "landlord", "name": "Ann Owner"},
            {"role": "tenant", "name": "Tom Tenant", "passport_number": "X123"},
        ],
    }
    payload.update(overrides)
    response = client.post("/api/agreements", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["data"]


def test_template_lifecycle(client, admin_headers):
    missing = client.post("/api/agreements/templates", json={"name": "x"}, headers=admin_headers)
    assert missing.status_code == 422
    assert {"type", "content"} <= set(missing.json()["field_errors"])

    template_id = _create_template(client, admin_headers)
    client.put(f"/api/agreements/templates/{template_id}", json={"name": "Lease v2"}, headers=admin_headers)

    template = client.get(f"/api/agreements/templates/{template_id}", headers=admin_headers).json()["data"]
    assert template["name"] == "Lease v2"
    assert template["version"] == 2

    listed = client.get("/api/agreements/templates/list", params={"type": "rent"}, headers=admin_headers).json()["data"]
    assert [t["id"] for t in listed] == [template_id]
    assert listed[0]["usage_count"] == 0

    assert client.delete(f"/api/agreements/templates/{template_id}", headers=admin_headers).status_code == 200
    inactive = client.get("/api/agreements/templates/list", params={"active": "false"}, headers=admin_headers).json()["data"]
    assert [t["id"] for t in inactive] == [template_id]


def test_template_in_use_cannot_be_deleted(client, admin_headers):
    template_id = _create_template(client, admin_headers)
    _create_agreement(client, admin_headers, template_id)

    response = client.delete(f"/api/agreements/templates/{template_id}", headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["message"] == "Template is used in 1 agreements"


def test_create_agreement_fills_variables_and_signatures(client, admin_headers):
    template_id = _create_template(client, admin_headers)
    created = _create_agreement(client, admin_headers, template_id)

    assert [p["role"] for p in created["parties"]] == ["landlord", "tenant"]
    assert [s["signer_name"] for s in created["signatures"]] == ["Ann Owner", "Tom Tenant"]

    agreement = client.get(f"/api/agreements/{created['id']}", headers=admin_headers).json()["data"]
    assert agreement["status"] == "pending_signatures"
    assert agreement["rent_amount_total"] == 120000
    assert agreement["property_name"] == "Villa Sunset"
    assert f"Agreement {created['agreement_number']} for Villa Sunset" in agreement["content"]
    assert "tenant Tom Tenant (X123)" in agreement["content"]
    assert "Rent 40000 THB, total 120000" in agreement["content"]
    structure = json.loads(agreement["structure"])
    assert structure["nodes"][0]["children"][0]["content"] == "Monthly rent 40000"
    assert agreement["public_link"].startswith("http://front.test/agreement/")


def test_create_agreement_rejects_unknown_template_and_bad_dates(client, admin_headers):
    assert client.post("/api/agreements", json={"template_id": 999}, headers=admin_headers).status_code == 404

    bad_dates = client.post(
        "/api/agreements",
        json={"template_id": 1, "date_from": "2025-05-01", "date_to": "2025-04-01"},
        headers=admin_headers,
    )
    assert bad_dates.status_code == 422
    assert "date_to" in bad_dates.json()["field_errors"]


def test_list_agreements_paginates_and_counts_signatures(client, admin_headers):
    template_id = _create_template(client, admin_headers)
    for _ in range(3):
        _create_agreement(client, admin_headers, template_id)

    response = client.get("/api/agreements", params={"page": 2, "limit": 2}, headers=admin_headers)
    body = response.json()
    assert body["pagination"] == {"page": 2, "limit": 2, "total": 3, "totalPages": 2}
    assert len(body["data"]) == 1
    assert body["data"][0]["signature_count"] == 2
    assert body["data"][0]["signed_count"] == 0


def test_signing_flow_marks_agreement_signed(client, admin_headers):
    template_id = _create_template(client, admin_headers)
    created = _create_agreement(client, admin_headers, template_id)
    first, second = (s["signature_link"] for s in created["signatures"])

    page = client.get(
        f"/api/agreements/signatures/link/{first}",
        headers={"User-Agent": "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 Mobile/15E148"},
    )
    assert page.status_code == 200
    assert page.json()["data"]["device_type"] == "mobile"
    assert page.json()["data"]["property_name"] == "Villa Sunset"

    assert client.post(f"/api/agreements/signatures/{first}/sign", json={}).json()["message"] == "Signature data is missing"

    signed = client.post(f"/api/agreements/signatures/{first}/sign", json={"signature_data": "data:image/png;base64,AA"})
    assert signed.json()["data"] == {"all_signed": False}

    again = client.post(f"/api/agreements/signatures/{first}/sign", json={"signature_data": "x"})
    assert again.status_code == 400
    assert again.json()["message"] == "Agreement already signed"

    done = client.post(f"/api/agreements/signatures/{second}/sign", json={"signature_data": "data:image/png;base64,BB"})
    assert done.json()["data"] == {"all_signed": True}
    assert done.json()["message"] == "All parties have signed the agreement"

    verify_link = client.get(f"/api/agreements/{created['id']}", headers=admin_headers).json()["data"]["verify_link"]
    verified = client.get(f"/api/agreements/verify/{verify_link}").json()["data"]
    assert verified["status"] == "signed"
    assert all(s["is_signed"] for s in verified["signatures"])
    assert "parties" not in verified


def test_extra_signatures_require_unique_roles(client, admin_headers):
    template_id = _create_template(client, admin_headers)
    created = _create_agreement(client, admin_headers, template_id)
    url = f"/api/agreements/{created['id']}/signatures"

    duplicate = client.post(
        url,
        json={"signatures": [{"signer_name": "A", "signer_role": "agent"}, {"signer_name": "B", "signer_role": "agent"}]},
        headers=admin_headers,
    )
    assert duplicate.json()["message"] == "Signer roles must be unique"

    taken = client.post(url, json={"signatures": [{"signer_name": "A", "signer_role": "tenant"}]}, headers=admin_headers)
    assert taken.status_code == 400
    assert taken.json()["message"] == 'Role "tenant" already used'

    added = client.post(url, json={"signatures": [{"signer_name": "Agent", "signer_role": "agent"}]}, headers=admin_headers)
    assert added.json()["data"]["signatureLinks"][0]["link"].startswith("http://front.test/sign/")


def test_regenerate_and_delete_signatures(client, admin_headers):
    template_id = _create_template(client, admin_headers)
    created = _create_agreement(client, admin_headers, template_id, parties=[{"role": "tenant", "name": "Solo"}])
    sig = created["signatures"][0]

    regenerated = client.post(f"/api/agreements/signatures/{sig['id']}/regenerate", headers=admin_headers).json()["data"]
    assert regenerated["signature_link"] != sig["signature_link"]
    assert client.get(f"/api/agreements/signatures/link/{sig['signature_link']}").status_code == 404

    client.delete(f"/api/agreements/signatures/{sig['id']}", headers=admin_headers)
    agreement = client.get(f"/api/agreements/{created['id']}", headers=admin_headers).json()["data"]
    assert agreement["status"] == "draft"
    assert agreement["signatures"] == []


def test_print_token_is_single_use(client, admin_headers):
    template_id = _create_template(client, admin_headers)
    created = _create_agreement(client, admin_headers, template_id)
    agreement_id = created["id"]

    assert client.get(f"/api/agreements/{agreement_id}/html").status_code == 401

    issued = client.post(f"/api/agreements/{agreement_id}/print-token", headers=admin_headers).json()["data"]
    assert issued["url"] == f"/agreement-print/{agreement_id}?token={issued['token']}"

    page = client.get(f"/api/agreements/{agreement_id}/html", params={"token": issued["token"]})
    assert page.status_code == 200
    assert page.headers["content-type"].startswith("text/html")
    assert created["agreement_number"] in page.text

    reused = client.get(f"/api/agreements/{agreement_id}/html", params={"token": issued["token"]})
    assert reused.status_code == 403

    other = client.post(f"/api/agreements/{agreement_id}/print-token", headers=admin_headers).json()["data"]
    public = client.get(f"/api/agreements/{agreement_id}/public", params={"token": other["token"]}).json()["data"]
    assert {p["role"] for p in public["parties"]} == {"landlord", "tenant"}

    assert client.get(f"/api/agreements/{agreement_id}/html", headers=admin_headers).status_code == 200


def test_with_parties_shapes_lessor_and_tenant(client, admin_headers):
    template_id = _create_template(client, admin_headers)
    created = _create_agreement(
        client,
        admin_headers,
        template_id,
        parties=[
            {"role": "lessor", "is_company": True, "company_name": "Villa Co", "company_tax_id": "TAX-1"},
            {"role": "tenant", "name": "Tom", "passport_country": "DE"},
        ],
    )
    data = client.get(f"/api/agreements/{created['id']}/with-parties", headers=admin_headers).json()["data"]
    assert data["lessor"]["type"] == "company"
    assert data["lessor"]["company_tax_id"] == "TAX-1"
    assert data["tenant"]["individual_country"] == "DE"


def test_soft_deleted_agreement_is_hidden(client, admin_headers):
    template_id = _create_template(client, admin_headers)
    created = _create_agreement(client, admin_headers, template_id)

    assert client.delete(f"/api/agreements/{created['id']}", headers=admin_headers).status_code == 200
    assert client.get(f"/api/agreements/{created['id']}", headers=admin_headers).status_code == 404
    assert client.get("/api/agreements", headers=admin_headers).json()["pagination"]["total"] == 0


def test_soft_deleted_agreement_cannot_be_signed_or_printed(client, admin_headers):
    template_id = _create_template(client, admin_headers)
    created = _create_agreement(client, admin_headers, template_id)
    link = created["signatures"][0]["signature_link"]
    assert client.get(f"/api/agreements/{created['id']}/public").status_code == 200

    client.delete(f"/api/agreements/{created['id']}", headers=admin_headers)

    signed = client.post(f"/api/agreements/signatures/{link}/sign", json={"signature_data": "data:image/png;base64,AA"})
    assert signed.status_code == 404
    assert client.get(f"/api/agreements/{created['id']}/public").status_code == 404


def test_update_agreement_validates_status(client, admin_headers):
    template_id = _create_template(client, admin_headers)
    created = _create_agreement(client, admin_headers, template_id)

    assert client.put(f"/api/agreements/{created['id']}", json={"status": "bogus"}, headers=admin_headers).status_code == 422
    client.put(f"/api/agreements/{created['id']}", json={"status": "active"}, headers=admin_headers)
    assert client.get(f"/api/agreements/{created['id']}", headers=admin_headers).json()["data"]["status"] == "active"


def test_notify_agent_sends_signing_links(client, db, admin_headers, telegram):
    template_id = _create_template(client, admin_headers)
    created = _create_agreement(client, admin_headers, template_id)
    with db.session() as s:
        agent = BotUser(telegram_id="555", first_name="Agent")
        s.add(agent)
        s.flush()
        s.add(Request(request_number="REQ-1", uuid="req-uuid", chat_uuid="chat-uuid", agent_id=agent.id))

    missing = client.post(f"/api/agreements/{created['id']}/notify-agent", json={}, headers=admin_headers)
    assert missing.status_code == 400

    sent = client.post(
        f"/api/agreements/{created['id']}/notify-agent", json={"request_uuid": "req-uuid"}, headers=admin_headers
    )
    assert sent.status_code == 200
    assert telegram.sent[-1]["chat_id"] == "555"
    assert "REQ-1" in telegram.sent[-1]["text"]
    assert created["signatures"][0]["signature_link"] in telegram.sent[-1]["text"]


@pytest.mark.parametrize("permission, status_code", [("agreements.view", 200), ("requests.view", 403)])
def test_agreement_list_permission(client, make_user_headers, permission, status_code):
    headers = make_user_headers("limited", [permission])
    assert client.get("/api/agreements", headers=headers).status_code == status_code
