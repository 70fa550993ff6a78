from src.backoffice.controllers.financial_documents_controller import record_payment, reverse_payment
from src.database.models import Invoice

INVOICE_PAYLOAD = {
    "invoice_date": "2025-02-01",
    "due_date": "2025-02-15",
    "from_type": "company",
    "from_company_name": "Nova Estate Co",
    "to_type": "individual",
    "to_individual_name": "Tom Tenant",
    "tax_amount": 700,
    "items": [
        {"description": "Rent February", "quantity": 1, "unit_price": 40000},
        {"description": "Cleaning", "quantity": 2, "unit_price": 1500},
    ],
}


def _create_invoice(client, headers, **overrides):
    payload = {**INVOICE_PAYLOAD, **overrides}
    response = client.post("/api/financial-documents/invoices", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["data"]


def _invoice(client, headers, invoice_id):
    return client.get(f"/api/financial-documents/invoices/{invoice_id}", headers=headers).json()["data"]


def test_payment_status_transitions():
    invoice = Invoice(total_amount=1000, amount_paid=0, status="sent")

    record_payment(invoice, 400)
    assert (invoice.amount_paid, invoice.status) == (400, "partially_paid")
    record_payment(invoice, 600)
    assert (invoice.amount_paid, invoice.status) == (1000, "paid")

    reverse_payment(invoice, 300)
    assert (invoice.amount_paid, invoice.status) == (700, "partially_paid")
    reverse_payment(invoice, 5000)
    assert (invoice.amount_paid, invoice.status) == (0, "sent")


def test_invoice_totals_and_numbering(client, admin_headers):
    created = _create_invoice(client, admin_headers)
    assert created["invoice_number"].startswith("INV-")
    assert created["invoice_number"].endswith("0001")

    invoice = _invoice(client, admin_headers, created["id"])
    assert invoice["subtotal"] == 43000
    assert invoice["tax_amount"] == 700
    assert invoice["total_amount"] == 43700
    assert invoice["status"] == "draft"
    assert [i["total_price"] for i in invoice["items"]] == [40000, 3000]

    public = client.get(f"/api/financial-documents/public/invoice/{created['uuid']}")
    assert public.status_code == 200
    assert public.json()["data"]["to_individual_name"] == "Tom Tenant"

    second = _create_invoice(client, admin_headers)
    assert second["invoice_number"].endswith("0002")


def test_invoice_validation(client, admin_headers):
    response = client.post(
        "/api/financial-documents/invoices",
        json={"to_type": "robot", "items": [{"description": "", "quantity": 0, "unit_price": -1}]},
        headers=admin_headers,
    )
    assert response.status_code == 422
    errors = response.json()["field_errors"]
    assert {"invoice_date", "to_type", "items[0].description", "items[0].quantity", "items[0].unit_price"} <= set(errors)

    assert client.post(
        "/api/financial-documents/invoices", json={**INVOICE_PAYLOAD, "agreement_id": 999}, headers=admin_headers
    ).status_code == 404


def test_update_invoice_recalculates_totals(client, admin_headers):
    created = _create_invoice(client, admin_headers)

    client.put(f"/api/financial-documents/invoices/{created['id']}", json={"tax_amount": 0}, headers=admin_headers)
    assert _invoice(client, admin_headers, created["id"])["total_amount"] == 43000

    client.put(
        f"/api/financial-documents/invoices/{created['id']}",
        json={"items": [{"description": "Deposit", "quantity": 1, "unit_price": 80000}], "status": "sent"},
        headers=admin_headers,
    )
    invoice = _invoice(client, admin_headers, created["id"])
    assert invoice["total_amount"] == 80000
    assert invoice["status"] == "sent"
    assert [i["description"] for i in invoice["items"]] == ["Deposit"]

    bad = client.put(f"/api/financial-documents/invoices/{created['id']}", json={"status": "lost"}, headers=admin_headers)
    assert bad.status_code == 422


def test_receipts_drive_invoice_payment_state(client, admin_headers):
    created = _create_invoice(client, admin_headers)
    items = _invoice(client, admin_headers, created["id"])["items"]
    rent_item, cleaning_item = items[0]["id"], items[1]["id"]

    receipt = client.post(
        "/api/financial-documents/receipts",
        json={
            "invoice_id": created["id"],
            "receipt_date": "2025-02-03",
            "amount_paid": 40000,
            "payment_method": "cash",
            "selected_items": [rent_item],
        },
        headers=admin_headers,
    )
    assert receipt.status_code == 201, receipt.text
    receipt_id = receipt.json()["data"]["id"]

    invoice = _invoice(client, admin_headers, created["id"])
    assert invoice["amount_paid"] == 40000
    assert invoice["status"] == "partially_paid"
    assert len(invoice["receipts"]) == 1

    status = client.get(f"/api/financial-documents/invoices/{created['id']}/items-payment-status", headers=admin_headers).json()["data"]
    assert [(s["is_fully_paid"], s["has_active_receipt"]) for s in status] == [(True, True), (False, False)]

    client.put(
        f"/api/financial-documents/receipts/{receipt_id}",
        json={"amount_paid": 43700, "selected_items": [rent_item, cleaning_item]},
        headers=admin_headers,
    )
    invoice = _invoice(client, admin_headers, created["id"])
    assert invoice["amount_paid"] == 43700
    assert invoice["status"] == "paid"
    detail = client.get(f"/api/financial-documents/receipts/{receipt_id}", headers=admin_headers).json()["data"]
    assert [i["id"] for i in detail["items"]] == [rent_item, cleaning_item]
    assert detail["invoice_number"] == created["invoice_number"]

    client.delete(f"/api/financial-documents/receipts/{receipt_id}", headers=admin_headers)
    invoice = _invoice(client, admin_headers, created["id"])
    assert invoice["amount_paid"] == 0
    assert invoice["status"] == "sent"
    assert invoice["receipts"] == []
    assert all(not i["is_fully_paid"] for i in invoice["items"])


def test_deleting_a_receipt_keeps_items_covered_by_another(client, admin_headers):
    created = _create_invoice(client, admin_headers)
    items = _invoice(client, admin_headers, created["id"])["items"]
    rent_item, cleaning_item = items[0]["id"], items[1]["id"]

    receipt_ids = []
    for selected in ([rent_item], [rent_item, cleaning_item]):
        response = client.post(
            "/api/financial-documents/receipts",
            json={"invoice_id": created["id"], "receipt_date": "2025-02-03", "amount_paid": 1000, "selected_items": selected},
            headers=admin_headers,
        )
        receipt_ids.append(response.json()["data"]["id"])

    client.delete(f"/api/financial-documents/receipts/{receipt_ids[1]}", headers=admin_headers)
    status = client.get(f"/api/financial-documents/invoices/{created['id']}/items-payment-status", headers=admin_headers).json()["data"]
    assert [(s["item_id"], s["is_fully_paid"], s["has_active_receipt"]) for s in status] == [
        (rent_item, True, True),
        (cleaning_item, False, False),
    ]

    client.delete(f"/api/financial-documents/receipts/{receipt_ids[0]}", headers=admin_headers)
    status = client.get(f"/api/financial-documents/invoices/{created['id']}/items-payment-status", headers=admin_headers).json()["data"]
    assert [s["is_fully_paid"] for s in status] == [False, False]


def test_receipt_rejects_items_of_another_invoice(client, admin_headers):
    first = _create_invoice(client, admin_headers)
    second = _create_invoice(client, admin_headers)
    foreign_item = _invoice(client, admin_headers, second["id"])["items"][0]["id"]

    response = client.post(
        "/api/financial-documents/receipts",
        json={"invoice_id": first["id"], "receipt_date": "2025-02-03", "amount_paid": 100, "selected_items": [foreign_item]},
        headers=admin_headers,
    )
    assert response.status_code == 400
    assert _invoice(client, admin_headers, first["id"])["amount_paid"] == 0

    invalid = client.post("/api/financial-documents/receipts", json={"amount_paid": 0}, headers=admin_headers)
    assert invalid.status_code == 422
    assert {"invoice_id", "receipt_date", "amount_paid"} <= set(invalid.json()["field_errors"])


def test_saved_bank_details_feed_new_documents(client, admin_headers):
    saved = client.post(
        "/api/financial-documents/saved-bank-details",
        json={"name": "Main THB", "bank_name": "Kasikorn", "bank_account_number": "123-4"},
        headers=admin_headers,
    )
    assert saved.status_code == 201
    saved_id = saved.json()["data"]["id"]

    created = _create_invoice(client, admin_headers, saved_bank_details_id=saved_id)
    invoice = _invoice(client, admin_headers, created["id"])
    assert invoice["bank_name"] == "Kasikorn"
    assert invoice["bank_details_type"] == "simple"

    _create_invoice(
        client,
        admin_headers,
        bank_name="SCB",
        bank_account_number="999",
        save_bank_details=True,
        bank_details_name="Backup",
    )
    names = [d["name"] for d in client.get("/api/financial-documents/saved-bank-details", headers=admin_headers).json()["data"]]
    assert names == ["Backup", "Main THB"]

    client.put(f"/api/financial-documents/saved-bank-details/{saved_id}", json={"bank_name": "KBank"}, headers=admin_headers)
    assert client.get(f"/api/financial-documents/saved-bank-details/{saved_id}", headers=admin_headers).json()["data"]["bank_name"] == "KBank"
    client.delete(f"/api/financial-documents/saved-bank-details/{saved_id}", headers=admin_headers)
    assert client.get(f"/api/financial-documents/saved-bank-details/{saved_id}", headers=admin_headers).status_code == 404


def test_invoices_by_agreement(client, admin_headers):
    from tests.test_agreements import _create_agreement, _create_template

    agreement_id = _create_agreement(client, admin_headers, _create_template(client, admin_headers))["id"]
    url = f"/api/financial-documents/agreements/{agreement_id}/check-existing-invoices"
    assert client.get(url, headers=admin_headers).json()["data"] == {"hasExisting": False, "invoices": []}

    created = _create_invoice(client, admin_headers, agreement_id=agreement_id)
    existing = client.get(url, headers=admin_headers).json()["data"]
    assert existing["hasExisting"] is True
    assert existing["count"] == 1
    assert len(existing["firstInvoice"]["items"]) == 2

    listed = client.get(f"/api/financial-documents/invoices-by-agreement/{agreement_id}", headers=admin_headers).json()["data"]
    assert listed[0]["remaining_amount"] == 43700

    filtered = client.get("/api/financial-documents/invoices", params={"agreement_id": agreement_id}, headers=admin_headers).json()
    assert filtered["pagination"]["total"] == 1
    assert filtered["data"][0]["agreement_number"] is not None
    assert filtered["data"][0]["total_items_count"] == 2

    client.delete(f"/api/financial-documents/invoices/{created['id']}", headers=admin_headers)
    assert client.get(f"/api/financial-documents/invoices/{created['id']}", headers=admin_headers).status_code == 404


def test_financial_permissions(client, make_user_headers):
    viewer = make_user_headers("accountant", ["financial_documents.view_invoices"])
    assert client.get("/api/financial-documents/invoices", headers=viewer).status_code == 200
    assert client.get("/api/financial-documents/receipts", headers=viewer).status_code == 403
    assert client.post("/api/financial-documents/invoices", json=INVOICE_PAYLOAD, headers=viewer).status_code == 403
