"""
Agreement text helpers: template variables, placeholder substitution in the
HTML content and the JSON structure, and HTML rendering of a structure.

The structure document looks like:

    {"city": "Phuket", "date": "2025-09-01T07:33:28Z", "title": "LEASE AGREEMENT",
     "nodes": [{"id": "1", "type": "section", "content": "1. TERMS", "children": [...]}]}

Node types: section (children), subsection, paragraph, bulletList (items).
"""

from __future__ import annotations

import html
import json
import logging
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional

from src.backoffice.validation import parse_iso_date, to_float

logger = logging.getLogger(__name__)

_MONTHS = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)


def months_between(date_from: Any, date_to: Any) -> int:
    """Whole months of a lease; a partial month counts as one, minimum 1."""
    start = parse_iso_date(date_from)
    end = parse_iso_date(date_to)
    total = (end.year - start.year) * 12 + (end.month - start.month)
    if end.day - start.day > 0:
        total += 1
    return max(1, total)


def format_long_date(value: Any) -> str:
    """'March 5, 2025'; '' for empty input."""
    d = parse_iso_date(value) if value else None
    if not d:
        return ""
    return f"{_MONTHS[d.month - 1]} {d.day}, {d.year}"


def format_short_date(value: Any) -> str:
    """'3/5/2025'; '' for empty or unparseable input."""
    if not value:
        return ""
    try:
        d = parse_iso_date(value)
    except ValueError:
        return ""
    return f"{d.month}/{d.day}/{d.year}" if d else ""


def format_amount(value: Any) -> str:
    """Render numbers without a trailing '.0'; falsy values become ''."""
    if value is None or value == "" or value is False:
        return ""
    number = to_float(value)
    if number is None:
        return str(value)
    if number == 0:
        return ""
    if number.is_integer():
        return str(int(number))
    return f"{number:g}"


def _percent(part: Any, total: Optional[float]) -> str:
    pay = to_float(part)
    if not total or total <= 0 or not pay:
        return ""
    return f"{pay / total * 100:.1f}%"


def party_variables(parties: Iterable[Dict[str, Any]]) -> Dict[str, str]:
    variables: Dict[str, str] = {}
    for index, party in enumerate(parties or []):
        prefix = party.get("role") or f"party_{index}"
        if party.get("is_company"):
            variables[f"{prefix}_name"] = party.get("company_name") or ""
            variables[f"{prefix}_company_name"] = party.get("company_name") or ""
            variables[f"{prefix}_address"] = party.get("company_address") or ""
            variables[f"{prefix}_tax_id"] = party.get("company_tax_id") or ""
            variables[f"{prefix}_director_name"] = party.get("director_name") or ""
            variables[f"{prefix}_director_passport"] = party.get("director_passport") or ""
            variables[f"{prefix}_director_country"] = party.get("director_country") or ""
        else:
            variables[f"{prefix}_name"] = party.get("name") or ""
            variables[f"{prefix}_passport_country"] = party.get("passport_country") or ""
            variables[f"{prefix}_country"] = party.get("passport_country") or ""
            variables[f"{prefix}_passport_number"] = party.get("passport_number") or ""
            variables[f"{prefix}_passport"] = party.get("passport_number") or ""
    return variables


def build_variables(
    payload: Dict[str, Any],
    *,
    agreement_number: str,
    rent_amount_total: Optional[float],
    property_row: Optional[Dict[str, Any]] = None,
    default_city: str = "Phuket",
    today: Optional[date] = None,
) -> Dict[str, str]:
    """Placeholder values for a new agreement.

    Manual property fields win over the linked property; percentages are
    each payment milestone as a share of the total rent.
    """
    prop = property_row or {}
    today = today or datetime.utcnow().date()

    variables: Dict[str, str] = {
        "agreement_number": agreement_number,
        "city": payload.get("city") or default_city,
        "date": format_long_date(today),
        "date_from": format_long_date(payload.get("date_from")),
        "date_to": format_long_date(payload.get("date_to")),
        "property_name": payload.get("property_name_manual") or prop.get("property_name") or "",
        "property_number": payload.get("property_number_manual") or prop.get("property_number") or "",
        "property_address": payload.get("property_address_override") or prop.get("address") or "",
        "rent_amount_monthly": format_amount(payload.get("rent_amount_monthly")),
        "rent_amount_total": format_amount(rent_amount_total),
        "deposit_amount": format_amount(payload.get("deposit_amount")),
        "utilities_included": payload.get("utilities_included") or "",
        "bank_name": payload.get("bank_name") or "",
        "bank_account_name": payload.get("bank_account_name") or "",
        "bank_account_number": payload.get("bank_account_number") or "",
        "upon_signed_pay": format_amount(payload.get("upon_signed_pay")),
        "upon_checkin_pay": format_amount(payload.get("upon_checkin_pay")),
        "upon_checkout_pay": format_amount(payload.get("upon_checkout_pay")),
    }

    total = to_float(rent_amount_total)
    for key in ("upon_signed_pay", "upon_checkin_pay", "upon_checkout_pay"):
        variables[f"{key}_percent"] = _percent(payload.get(key), total)

    variables.update(party_variables(payload.get("parties") or []))
    return variables


def replace_variables(content: str, variables: Dict[str, Any]) -> str:
    """Swap every known {{key}}; unknown placeholders are left untouched."""
    if not content:
        return content or ""
    result = content
    for key, value in variables.items():
        result = result.replace("{{" + key + "}}", str(value) if value else "")
    return result


def replace_in_structure(structure: Any, variables: Dict[str, Any]) -> Any:
    if isinstance(structure, str):
        return replace_variables(structure, variables)
    if isinstance(structure, list):
        return [replace_in_structure(item, variables) for item in structure]
    if isinstance(structure, dict):
        return {key: replace_in_structure(value, variables) for key, value in structure.items()}
    return structure


def fill_structure_text(structure_text: Optional[str], variables: Dict[str, Any]) -> Optional[str]:
    """Substitute inside a JSON structure; plain text substitution if it is not JSON."""
    if not structure_text:
        return structure_text
    try:
        parsed = json.loads(structure_text)
    except (json.JSONDecodeError, TypeError):
        return replace_variables(structure_text, variables)
    return json.dumps(replace_in_structure(parsed, variables), ensure_ascii=False)


# ---------------------------------------------------------------------------
# Structure -> HTML
# ---------------------------------------------------------------------------

def render_nodes(nodes: Any) -> str:
    if not isinstance(nodes, list):
        logger.error("render_nodes: nodes is not a list")
        return ""

    parts: List[str] = []
    for node in nodes:
        if not isinstance(node, dict):
            logger.warning("Skipping invalid node: %r", node)
            continue

        node_type = node.get("type")
        content = node.get("content") or ""
        if node_type == "section":
            parts.append(f"<h2>{content}</h2>")
            children = node.get("children")
            if isinstance(children, list) and children:
                parts.append(render_nodes(children))
        elif node_type in ("subsection", "paragraph"):
            parts.append(f"<p>{content}</p>")
        elif node_type == "bulletList":
            items = node.get("items")
            if isinstance(items, list) and items:
                parts.append("<ul>" + "".join(f"<li>{item or ''}</li>" for item in items) + "</ul>")
        else:
            logger.warning("Unknown node type: %s", node_type)
    return "".join(parts)


def html_from_structure(structure: Any) -> str:
    """Render a structure document; '' when it is missing, malformed or has no renderable nodes."""
    if not isinstance(structure, dict):
        logger.error("html_from_structure: structure is not an object (%s)", type(structure).__name__)
        return ""
    nodes = structure.get("nodes")
    if not isinstance(nodes, list):
        logger.error("html_from_structure: structure.nodes missing or not a list; keys=%s", list(structure.keys()))
        return ""

    nodes_html = render_nodes(nodes)
    if not nodes_html.strip():
        logger.error("render_nodes returned empty string")
        return ""

    return (
        f"<h1>{structure.get('title') or 'LEASE AGREEMENT'}</h1>"
        f"<p>Date: {format_short_date(structure.get('date'))}</p>"
        f"<p>City: {structure.get('city') or 'Phuket'}</p>"
        f"{nodes_html}"
    )


def printable_document(agreement: Dict[str, Any], signatures: List[Dict[str, Any]]) -> str:
    """Standalone HTML page for printing: agreement content plus the signature block."""
    rows = []
    for sig in signatures:
        image = (
            f'<img src="{html.escape(sig["signature_data"], quote=True)}" alt="signature" style="max-height:60px"/>'
            if sig.get("is_signed") and sig.get("signature_data")
            else "<span>________________</span>"
        )
        signed_on = format_long_date(sig.get("signed_at")) if sig.get("signed_at") else ""
        rows.append(
            "<div class=\"signature\">"
            f"<div><strong>{html.escape(sig.get('signer_role') or '')}</strong>: {html.escape(sig.get('signer_name') or '')}</div>"
            f"<div>{image}</div><div>{signed_on}</div>"
            "</div>"
        )

    title = html.escape(agreement.get("agreement_number") or "Agreement")
    return (
        "<!DOCTYPE html><html><head><meta charset=\"utf-8\"/>"
        f"<title>{title}</title>"
        "<style>body{font-family:Arial,sans-serif;max-width:800px;margin:40px auto;line-height:1.5}"
        ".signature{display:inline-block;width:45%;margin:20px 2%;vertical-align:top}</style>"
        "</head><body>"
        f"<div class=\"agreement-content\">{agreement.get('content') or ''}</div>"
        f"<div class=\"signatures\">{''.join(rows)}</div>"
        "</body></html>"
    )
