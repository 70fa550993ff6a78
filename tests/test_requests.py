import pytest

from src.database.models import AgentGroup, BotUser

HOOK_HEADERS = {"X-Telegram-Bot-Api-Secret-Token": "hook-secret"}
PNG = b"\x89PNG\r\n\x1a\nfake-image"


@pytest.fixture
def agent_group(db):
    with db.session() as s:
        group = AgentGroup(group_name="Phuket agents", telegram_chat_id="-100200")
        s.add(group)
        s.flush()
        return group.id


@pytest.fixture
def agent(db):
    with db.session() as s:
        user = BotUser(telegram_id="4242", username="agent_k", first_name="Kate")
        s.add(user)
        s.flush()
        return user.id


def _telegram_request(client, **overrides):
    payload = {
        "client": {"telegram_id": 111, "first_name": "Ivan", "username": "ivan_p"},
        "manager": {"telegram_id": 222, "first_name": "Max"},
        "messages": [
            {"message_id": 1, "text": "Need a villa", "sender_telegram_id": 111, "date": 1735689600},
            {"message_id": 2, "text": "Sure", "sender_telegram_id": 222, "date": "2025-01-01T00:05:00Z"},
        ],
    }
    payload.update(overrides)
    response = client.post("/api/telegram/requests", json=payload, headers=HOOK_HEADERS)
    assert response.status_code == 201, response.text
    return response.json()["data"]


def _whatsapp_request(client, admin_headers, **overrides):
    screenshot = client.post(
        "/api/requests/upload-whatsapp-screenshot",
        files={"screenshot": ("chat.png", PNG, "image/png")},
        headers=admin_headers,
    )
    assert screenshot.status_code == 200, screenshot.text
    payload = {
        "client_name": "Maria",
        "whatsapp_phone": "+66 81 000 0000",
        "screenshots": [screenshot.json()["data"]["screenshot_path"]],
        "initial_note": "Wants a pool",
    }
    payload.update(overrides)
    response = client.post("/api/requests/create-whatsapp", json=payload, headers=admin_headers)
    assert response.status_code == 201, response.text
    return response.json()["data"]


def test_webhook_secret_is_required(client):
    assert client.post("/api/telegram/requests", json={}).status_code == 401
    wrong = client.post("/api/telegram/webhook", json={}, headers={"X-Telegram-Bot-Api-Secret-Token": "nope"})
    assert wrong.status_code == 401


def test_webhook_ignores_unrelated_updates(client):
    response = client.post("/api/telegram/webhook", json={"message": {"text": "hi"}}, headers=HOOK_HEADERS)
    assert response.json() == {"ok": True, "ignored": True}


def test_telegram_request_notifies_the_agent_group(client, telegram, agent_group):
    created = _telegram_request(client, agent_group_id=agent_group, note="VIP")

    assert created["request_number"].startswith("REQ-")
    assert created["status"] == "new"
    assert created["chat_url"] == f"http://front.test/request/chat/{created['chat_uuid']}"

    message = telegram.sent[-1]
    assert message["chat_id"] == "-100200"
    assert "Ivan" in message["text"]
    buttons = message["reply_markup"]["inline_keyboard"]
    assert buttons[1][0]["callback_data"] == f"accept_request:{created['request_id']}"

    chat = client.get(f"/api/requests/chat/{created['chat_uuid']}").json()["data"]
    assert [m["message_text"] for m in chat["messages"]] == ["Need a villa", "Sure"]
    assert [m["is_from_client"] for m in chat["messages"]] == [True, False]
    assert chat["messages"][0]["message_date"].startswith("2025-01-01T00:00:00")
    assert chat["request_info"]["client_username"] == "ivan_p"


def test_telegram_request_can_be_self_assigned(client, telegram):
    created = _telegram_request(client, assign_to_self=True)

    assert created["status"] == "in_progress"
    assert telegram.sent[-1]["chat_id"] == "999"
    assert "assigned to Max" in telegram.sent[-1]["text"]


def test_telegram_request_requires_client_id(client):
    response = client.post("/api/telegram/requests", json={"client": {}}, headers=HOOK_HEADERS)
    assert response.status_code == 400


def test_accept_callback_assigns_the_first_agent(client, db, telegram, agent, agent_group, admin_headers):
    created = _telegram_request(client, agent_group_id=agent_group)
    update = {
        "callback_query": {
            "id": "cb-1",
            "from": {"id": 4242, "username": "agent_k", "first_name": "Kate"},
            "data": f"accept_request:{created['request_id']}",
        }
    }

    accepted = client.post("/api/telegram/webhook", json=update, headers=HOOK_HEADERS).json()
    assert accepted == {"ok": True, "accepted": True, "request_number": created["request_number"]}
    assert telegram.answers[0] == {"id": "cb-1", "text": "Request accepted"}
    assert any(m["chat_id"] == "4242" for m in telegram.sent)

    detail = client.get(f"/api/requests/{created['request_id']}", headers=admin_headers).json()["data"]
    assert detail["status"] == "in_progress"
    assert detail["agent_username"] == "agent_k"

    again = client.post("/api/telegram/webhook", json=update, headers=HOOK_HEADERS).json()
    assert again["accepted"] is False
    assert again["reason"] == "Request already taken by another agent"


def test_accept_callback_rejects_unknown_or_inactive_agents(client, db, telegram, agent):
    created = _telegram_request(client)
    update = {"callback_query": {"id": "cb-2", "from": {"id": 777}, "data": f"accept_request:{created['request_id']}"}}
    stranger = client.post("/api/telegram/webhook", json=update, headers=HOOK_HEADERS).json()
    assert stranger["accepted"] is False
    assert "do not have access" in stranger["reason"]

    with db.session() as s:
        s.get(BotUser, agent).is_active = False
    update["callback_query"]["from"] = {"id": 4242}
    inactive = client.post("/api/telegram/webhook", json=update, headers=HOOK_HEADERS).json()
    assert inactive["accepted"] is False
    assert telegram.answers[-1]["text"].startswith("❌")


def test_whatsapp_request_requires_screenshots(client, admin_headers):
    missing = client.post(
        "/api/requests/create-whatsapp",
        json={"client_name": "Maria", "whatsapp_phone": "+66", "screenshots": []},
        headers=admin_headers,
    )
    assert missing.status_code == 400
    assert missing.json()["message"] == "Upload at least one conversation screenshot"

    not_image = client.post(
        "/api/requests/upload-whatsapp-screenshot",
        files={"screenshot": ("notes.txt", b"hello", "text/plain")},
        headers=admin_headers,
    )
    assert not_image.status_code == 400


def test_whatsapp_request_is_listed_and_viewable(client, admin_headers, telegram, agent_group):
    created = _whatsapp_request(client, admin_headers, agent_group_id=agent_group)
    assert created["request_number"].startswith("REQ-WA-")
    assert telegram.sent[-1]["chat_id"] == "-100200"
    assert "Wants a pool" in telegram.sent[-1]["text"]

    public = client.get(f"/api/requests/public/{created['uuid']}").json()["data"]
    assert public["request_source"] == "whatsapp"
    assert public["notes"] == "Wants a pool"
    client.get(f"/api/requests/chat/{created['chat_uuid']}")

    listed = client.get("/api/requests", params={"search": "Maria"}, headers=admin_headers).json()
    assert listed["pagination"]["total"] == 1
    row = listed["data"][0]
    assert row["messages_count"] == 1
    assert row["request_views_count"] == 1
    assert row["chat_views_count"] == 1

    assert client.delete(f"/api/requests/{created['request_id']}", headers=admin_headers).status_code == 200
    assert client.get(f"/api/requests/public/{created['uuid']}").status_code == 404


def test_field_updates_are_whitelisted_and_tracked(client, agent):
    created = _telegram_request(client)
    uuid = created["uuid"]

    blocked = client.put(f"/api/requests/public/{uuid}/field", json={"field_name": "status", "field_value": "x"})
    assert blocked.status_code == 400
    assert blocked.json()["message"] == "Field cannot be edited"

    client.put(f"/api/requests/public/{uuid}/field", json={"field_name": "budget", "field_value": "100k"})
    client.put(
        f"/api/requests/public/{uuid}/field",
        json={"field_name": "budget", "field_value": 150000, "agent_telegram_id": "4242"},
    )

    history = client.get(f"/api/requests/public/{uuid}/field-history/budget").json()["data"]
    assert [(h["old_value"], h["new_value"]) for h in history] == [("100k", "150000"), (None, "100k")]
    assert history[0]["agent_username"] == "agent_k"
    assert client.get(f"/api/requests/public/{uuid}").json()["data"]["budget"] == "150000"


def test_status_and_proposed_properties(client, admin_headers):
    created = _telegram_request(client)
    uuid = created["uuid"]
    property_id = client.post("/api/properties", json={"property_name": "Villa Lotus"}, headers=admin_headers).json()["data"]["id"]

    assert client.post(f"/api/requests/public/{uuid}/add-property", json={}).status_code == 400
    client.post(f"/api/requests/public/{uuid}/add-property", json={"property_id": property_id})
    client.post(f"/api/requests/public/{uuid}/add-property", json={"custom_name": "Condo by the sea"})

    assert client.put(f"/api/requests/public/{uuid}/status", json={"status": "lost"}).status_code == 400
    client.put(f"/api/requests/public/{uuid}/status", json={"status": "completed", "owner_price": "90000", "client_price": 100000})

    data = client.get(f"/api/requests/public/{uuid}").json()["data"]
    assert data["status"] == "completed"
    assert data["completed_at"] is not None
    assert data["owner_price"] == 90000
    assert {p["property_name"] or p["custom_name"] for p in data["proposed_properties"]} == {"Villa Lotus", "Condo by the sea"}


def test_passport_upload_and_contract_request(client, telegram):
    created = _telegram_request(client)
    uuid = created["uuid"]

    bad_side = client.post(
        f"/api/requests/public/{uuid}/upload-client-passport",
        data={"side": "top"},
        files={"passport": ("p.png", PNG, "image/png")},
    )
    assert bad_side.status_code == 400

    paths = {}
    for owner in ("client", "agent"):
        for side in ("front", "back"):
            response = client.post(
                f"/api/requests/public/{uuid}/upload-{owner}-passport",
                data={"side": side},
                files={"passport": ("p.png", PNG, "image/png")},
            )
            assert response.status_code == 200, response.text
            paths[f"{owner}_passport_{side}"] = response.json()["data"]["passport_path"]
    assert all(p.startswith("/uploads/request-passports/") for p in paths.values())

    incomplete = client.post(f"/api/requests/public/{uuid}/request-contract", json={"rental_dates": "Jan-Mar"})
    assert incomplete.status_code == 400

    contract = {
        "rental_dates": "Jan-Mar 2025",
        "villa_name_address": "Villa Lotus, Rawai",
        "rental_cost": "120000",
        "deposit_amount": "50000",
        **paths,
    }
    assert client.post(f"/api/requests/public/{uuid}/request-contract", json=contract).status_code == 200
    assert telegram.sent[-1]["chat_id"] == "999"
    assert "Villa Lotus, Rawai" in telegram.sent[-1]["text"]

    for_agreement = client.get(f"/api/requests/public/{uuid}/for-agreement").json()["data"]
    assert for_agreement["rental_cost"] == "120000"
    assert for_agreement["contract_requested_at"] is not None


def test_link_agreement_marks_deal_created(client, admin_headers):
    from tests.test_agreements import _create_agreement, _create_template

    created = _telegram_request(client)
    template_id = _create_template(client, admin_headers)
    agreement = _create_agreement(client, admin_headers, template_id)

    assert client.post(f"/api/requests/public/{created['uuid']}/link-agreement", json={}).status_code == 400
    client.post(f"/api/requests/public/{created['uuid']}/link-agreement", json={"agreement_id": agreement["id"]})

    linked = client.get(f"/api/requests/by-agreement/{agreement['id']}").json()["data"]
    assert linked == {"uuid": created["uuid"], "request_number": created["request_number"]}
    assert client.get(f"/api/requests/public/{created['uuid']}").json()["data"]["status"] == "deal_created"


def test_agent_groups_and_property_picker_are_public(client, agent_group, admin_headers):
    client.post("/api/properties", json={"property_name": "Villa A", "property_number": "A-1"}, headers=admin_headers)

    groups = client.get("/api/requests/agent-groups").json()["data"]
    assert groups == [{"id": agent_group, "group_name": "Phuket agents", "chat_id": "-100200"}]
    picker = client.get("/api/requests/properties", params={"search": "A-1"}).json()["data"]
    assert [p["property_name"] for p in picker] == ["Villa A"]
