import json
from datetime import date

from src.backoffice.agreement_content import (
    build_variables,
    fill_structure_text,
    format_amount,
    format_long_date,
    format_short_date,
    html_from_structure,
    months_between,
    printable_document,
    replace_variables,
)


def test_months_between_rounds_partial_months_up():
    assert months_between("2025-01-15", "2025-04-15") == 3
    assert months_between("2025-01-15", "2025-04-20") == 4
    assert months_between("2025-01-31", "2025-02-01") == 1
    assert months_between("2025-06-01", "2025-06-01") == 1


def test_date_and_amount_formatting():
    assert format_long_date("2025-03-05") == "March 5, 2025"
    assert format_long_date(None) == ""
    assert format_short_date("2025-03-05T10:00:00Z") == "3/5/2025"
    assert format_short_date("not a date") == ""
    assert format_amount(25000.0) == "25000"
    assert format_amount("1250.5") == "1250.5"
    assert format_amount(0) == ""
    assert format_amount(None) == ""


def test_replace_variables_leaves_unknown_placeholders():
    text = "Tenant {{tenant_name}} pays {{rent_amount_monthly}} for {{unknown}}"
    result = replace_variables(text, {"tenant_name": "John", "rent_amount_monthly": ""})
    assert result == "Tenant John pays  for {{unknown}}"


def test_build_variables_uses_manual_property_fields_and_percentages():
    payload = {
        "date_from": "2025-01-01",
        "date_to": "2025-07-01",
        "rent_amount_monthly": 10000,
        "upon_signed_pay": 30000,
        "upon_checkin_pay": 30000,
        "property_name_manual": "Villa Manual",
        "parties": [
            {"role": "landlord", "name": "Ann", "passport_number": "P1", "passport_country": "UK"},
            {"role": "tenant", "is_company": True, "company_name": "Acme Ltd", "director_name": "Bob"},
        ],
    }
    variables = build_variables(
        payload,
        agreement_number="AGR-2025-001",
        rent_amount_total=60000,
        property_row={"property_name": "Villa DB", "property_number": "V-7", "address": "Rawai"},
        today=date(2025, 1, 2),
    )

    assert variables["property_name"] == "Villa Manual"
    assert variables["property_number"] == "V-7"
    assert variables["date"] == "January 2, 2025"
    assert variables["city"] == "Phuket"
    assert variables["rent_amount_total"] == "60000"
    assert variables["upon_signed_pay_percent"] == "50.0%"
    assert variables["upon_checkout_pay_percent"] == ""
    assert variables["landlord_passport"] == "P1"
    assert variables["tenant_name"] == "Acme Ltd"
    assert variables["tenant_director_name"] == "Bob"


def test_fill_structure_text_substitutes_inside_json_and_plain_text():
    structure = json.dumps({"title": "LEASE", "nodes": [{"type": "paragraph", "content": "Rent {{rent}}"}]})
    filled = json.loads(fill_structure_text(structure, {"rent": "5000"}))
    assert filled["nodes"][0]["content"] == "Rent 5000"

    assert fill_structure_text("plain {{rent}}", {"rent": "1"}) == "plain 1"
    assert fill_structure_text(None, {"rent": "1"}) is None


def test_html_from_structure_renders_every_node_type():
    structure = {
        "date": "2025-09-01T07:33:28Z",
        "nodes": [
            {
                "type": "section",
                "content": "1. TERMS",
                "children": [
                    {"type": "subsection", "content": "1.1 Term"},
                    {"type": "bulletList", "items": ["one", "two"]},
                ],
            },
            {"type": "paragraph", "content": "Closing"},
            "garbage",
        ],
    }
    html = html_from_structure(structure)
    assert html.startswith("<h1>LEASE AGREEMENT</h1><p>Date: 9/1/2025</p><p>City: Phuket</p>")
    assert "<h2>1. TERMS</h2><p>1.1 Term</p><ul><li>one</li><li>two</li></ul>" in html
    assert html.endswith("<p>Closing</p>")


def test_html_from_structure_rejects_malformed_input():
    assert html_from_structure(None) == ""
    assert html_from_structure({"title": "x"}) == ""
    assert html_from_structure({"nodes": [{"type": "mystery"}]}) == ""


def test_printable_document_shows_signed_and_pending_parties():
    page = printable_document(
        {"agreement_number": "AGR-1", "content": "<p>Body</p>"},
        [
            {"signer_role": "landlord", "signer_name": "Ann", "is_signed": True,
             "signature_data": "data:image/png;base64,AAA", "signed_at": "2025-03-05T10:00:00"},
            {"signer_role": "tenant", "signer_name": "Bob <b>", "is_signed": False},
        ],
    )
    assert "<title>AGR-1</title>" in page
    assert 'src="data:image/png;base64,AAA"' in page
    assert "March 5, 2025" in page
    assert "Bob &lt;b&gt;" in page
    assert "________________" in page
