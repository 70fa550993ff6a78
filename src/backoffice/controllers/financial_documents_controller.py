"""Invoices, receipts and saved bank details."""
import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from sqlalchemy import and_, func, or_, select

from src.backoffice import identifiers
from src.backoffice.serializers import model_to_dict, paginate
from src.backoffice.validation import (
    add_error,
    as_id,
    optional_str,
    parse_bool,
    raise_if_errors,
    to_float,
    validate_date_iso,
    validate_in,
)
from src.database.models import (
    Agreement,
    Invoice,
    InvoiceItem,
    Receipt,
    ReceiptInvoiceItem,
    SavedBankDetails,
    User,
)
from src.utils.config_loader import get_app_config

logger = logging.getLogger(__name__)

INVOICE_STATUSES = ("draft", "sent", "partially_paid", "paid", "overdue", "cancelled")
PARTY_TYPES = ("company", "individual")
PAYMENT_METHODS = ("bank_transfer", "cash", "crypto", "barter")

BANK_FIELDS = (
    "bank_name",
    "bank_account_name",
    "bank_account_number",
    "bank_account_address",
    "bank_currency",
    "bank_code",
    "bank_swift_code",
    "bank_address",
    "bank_custom_details",
)

PARTY_FIELDS = tuple(
    f"{side}_{field}"
    for side in ("from", "to")
    for field in (
        "company_name",
        "company_tax_id",
        "company_address",
        "director_name",
        "director_country",
        "director_passport",
        "individual_name",
        "individual_country",
        "individual_passport",
    )
)


def record_payment(invoice: Invoice, amount: float) -> None:
    invoice.amount_paid = (invoice.amount_paid or 0) + amount
    if invoice.amount_paid >= (invoice.total_amount or 0):
        invoice.status = "paid"
    elif invoice.amount_paid > 0:
        invoice.status = "partially_paid"


def reverse_payment(invoice: Invoice, amount: float) -> None:
    invoice.amount_paid = max((invoice.amount_paid or 0) - amount, 0)
    if invoice.amount_paid <= 0:
        invoice.status = "sent"
    elif invoice.amount_paid >= (invoice.total_amount or 0):
        invoice.status = "paid"
    else:
        invoice.status = "partially_paid"


def _bank_details_from(source: Any) -> Dict[str, Any]:
    if isinstance(source, dict):
        details = {key: optional_str(source, key) for key in BANK_FIELDS}
        details["bank_details_type"] = optional_str(source, "bank_details_type") or "simple"
    else:
        details = {key: getattr(source, key) for key in BANK_FIELDS}
        details["bank_details_type"] = source.bank_details_type or "simple"
    return details


class FinancialDocumentsController:
    def __init__(self, db):
        self.db = db
        self.cfg = get_app_config().agreements

    def _page(self, page: int, limit: Optional[int]):
        page = max(1, page or 1)
        limit = max(1, min(self.cfg.max_page_size, limit or self.cfg.default_page_size))
        return page, limit

    # ------------------------------------------------------------------
    # Bank details
    # ------------------------------------------------------------------

    def _resolve_bank_details(self, s, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Bank details for a new document: a saved set wins over the body."""
        saved_id = payload.get("saved_bank_details_id")
        if saved_id:
            saved = s.get(SavedBankDetails, as_id(saved_id, "saved_bank_details_id"))
            if not saved:
                raise HTTPException(status_code=404, detail="Saved bank details not found")
            return _bank_details_from(saved)
        if any(key in payload for key in BANK_FIELDS + ("bank_details_type",)):
            return _bank_details_from(payload)
        return None

    @staticmethod
    def _maybe_save_bank_details(s, payload: Dict[str, Any], details: Optional[Dict[str, Any]], user_id: int) -> None:
        name = optional_str(payload, "bank_details_name")
        if not details or not parse_bool(payload.get("save_bank_details")) or not name:
            return
        s.add(SavedBankDetails(name=name, created_by=user_id, **details))
        logger.info("Bank details saved as '%s'", name)

    def list_bank_details(self) -> List[Dict[str, Any]]:
        with self.db.session() as s:
            rows = s.execute(select(SavedBankDetails).order_by(SavedBankDetails.name.asc())).scalars().all()
            return [model_to_dict(r) for r in rows]

    def get_bank_details(self, details_id: int) -> Dict[str, Any]:
        with self.db.session() as s:
            row = s.get(SavedBankDetails, details_id)
            if not row:
                raise HTTPException(status_code=404, detail="Saved bank details not found")
            return model_to_dict(row)

    def create_bank_details(self, payload: Dict[str, Any], user_id: int) -> Dict[str, Any]:
        errors: Dict[str, str] = {}
        name = optional_str(payload, "name")
        if not name:
            add_error(errors, "name", "Name is required")
        validate_in(payload.get("bank_details_type") or "simple", ("simple", "international", "custom"), errors, "bank_details_type")
        raise_if_errors(errors)

        with self.db.session() as s:
            row = SavedBankDetails(name=name, created_by=user_id, **_bank_details_from(payload))
            s.add(row)
            s.flush()
            return {"id": row.id}

    def update_bank_details(self, details_id: int, payload: Dict[str, Any]) -> None:
        with self.db.session() as s:
            row = s.get(SavedBankDetails, details_id)
            if not row:
                raise HTTPException(status_code=404, detail="Saved bank details not found")
            if optional_str(payload, "name"):
                row.name = optional_str(payload, "name")
            if "bank_details_type" in payload:
                row.bank_details_type = optional_str(payload, "bank_details_type") or "simple"
            for key in BANK_FIELDS:
                if key in payload:
                    setattr(row, key, optional_str(payload, key))
            row.updated_at = datetime.utcnow()

    def delete_bank_details(self, details_id: int) -> None:
        with self.db.session() as s:
            row = s.get(SavedBankDetails, details_id)
            if not row:
                raise HTTPException(status_code=404, detail="Saved bank details not found")
            s.delete(row)

    # ------------------------------------------------------------------
    # Invoices
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_items(raw: Any, errors: Dict[str, str]) -> List[Dict[str, Any]]:
        if not isinstance(raw, list) or not raw:
            add_error(errors, "items", "At least one item is required")
            return []
        items = []
        for index, item in enumerate(raw):
            if not isinstance(item, dict):
                add_error(errors, f"items[{index}]", "Item must be an object")
                continue
            description = optional_str(item, "description")
            if not description:
                add_error(errors, f"items[{index}].description", "Description is required")
            quantity = to_float(item.get("quantity"))
            unit_price = to_float(item.get("unit_price"))
            if quantity is None or quantity <= 0:
                add_error(errors, f"items[{index}].quantity", "Quantity must be greater than 0")
            if unit_price is None or unit_price < 0:
                add_error(errors, f"items[{index}].unit_price", "Unit price must be 0 or more")
            due = validate_date_iso(item.get("due_date"), errors, f"items[{index}].due_date", required=False)
            items.append(
                {
                    "description": description,
                    "quantity": quantity or 0,
                    "unit_price": unit_price or 0,
                    "total_price": (quantity or 0) * (unit_price or 0),
                    "due_date": due,
                    "sort_order": index,
                }
            )
        return items

    @staticmethod
    def _replace_items(s, invoice: Invoice, items: List[Dict[str, Any]], tax_amount: float) -> None:
        for old in s.execute(select(InvoiceItem).where(InvoiceItem.invoice_id == invoice.id)).scalars().all():
            s.delete(old)
        for item in items:
            s.add(InvoiceItem(invoice_id=invoice.id, **item))
        invoice.subtotal = sum(item["total_price"] for item in items)
        invoice.tax_amount = tax_amount
        invoice.total_amount = invoice.subtotal + tax_amount

    @staticmethod
    def _items(s, invoice_id: int) -> List[InvoiceItem]:
        return (
            s.execute(
                select(InvoiceItem)
                .where(InvoiceItem.invoice_id == invoice_id)
                .order_by(InvoiceItem.sort_order.asc(), InvoiceItem.id.asc())
            )
            .scalars()
            .all()
        )

    @staticmethod
    def _load_invoice(s, invoice_id: int) -> Invoice:
        invoice = s.get(Invoice, invoice_id)
        if not invoice or invoice.deleted_at is not None:
            raise HTTPException(status_code=404, detail="Invoice not found")
        return invoice

    def _invoice_detail(self, s, invoice: Invoice) -> Dict[str, Any]:
        data = model_to_dict(invoice)
        data["items"] = [model_to_dict(i) for i in self._items(s, invoice.id)]
        agreement = s.get(Agreement, invoice.agreement_id) if invoice.agreement_id else None
        data["agreement_number"] = agreement.agreement_number if agreement else None
        receipts = s.execute(
            select(Receipt)
            .where(Receipt.invoice_id == invoice.id, Receipt.deleted_at.is_(None))
            .order_by(Receipt.receipt_date.desc(), Receipt.id.desc())
        ).scalars().all()
        data["receipts"] = [model_to_dict(r) for r in receipts]
        return data

    def list_invoices(
        self,
        status: Optional[str] = None,
        agreement_id: Optional[int] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: Optional[int] = None,
    ) -> Dict[str, Any]:
        page, limit = self._page(page, limit)

        receipts_count = (
            select(func.count(Receipt.id))
            .where(Receipt.invoice_id == Invoice.id, Receipt.deleted_at.is_(None))
            .correlate(Invoice)
            .scalar_subquery()
        )
        items_count = (
            select(func.count(InvoiceItem.id)).where(InvoiceItem.invoice_id == Invoice.id).correlate(Invoice).scalar_subquery()
        )
        paid_items_count = (
            select(func.count(InvoiceItem.id))
            .where(InvoiceItem.invoice_id == Invoice.id, InvoiceItem.is_fully_paid.is_(True))
            .correlate(Invoice)
            .scalar_subquery()
        )

        conditions = [Invoice.deleted_at.is_(None)]
        if status:
            conditions.append(Invoice.status == status)
        if agreement_id:
            conditions.append(Invoice.agreement_id == agreement_id)
        if search:
            like = f"%{search.strip()}%"
            conditions.append(or_(Invoice.invoice_number.ilike(like), Invoice.notes.ilike(like)))

        with self.db.session() as s:
            total = s.execute(select(func.count(Invoice.id)).where(and_(*conditions))).scalar_one()
            rows = s.execute(
                select(
                    Invoice,
                    Agreement.agreement_number,
                    User.username,
                    receipts_count.label("receipts_count"),
                    items_count.label("total_items_count"),
                    paid_items_count.label("paid_items_count"),
                )
                .outerjoin(Agreement, Invoice.agreement_id == Agreement.id)
                .outerjoin(User, Invoice.created_by == User.id)
                .where(and_(*conditions))
                .order_by(Invoice.created_at.desc(), Invoice.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            ).all()

            data = []
            for invoice, agreement_number, created_by_name, receipts, items, paid_items in rows:
                row = model_to_dict(invoice)
                row["agreement_number"] = agreement_number
                row["created_by_name"] = created_by_name
                row["receipts_count"] = receipts
                row["total_items_count"] = items
                row["paid_items_count"] = paid_items
                data.append(row)
            return {"data": data, "pagination": paginate(page, limit, total)}

    def get_invoice(self, invoice_id: int) -> Dict[str, Any]:
        with self.db.session() as s:
            return self._invoice_detail(s, self._load_invoice(s, invoice_id))

    def invoice_by_uuid(self, uuid: str) -> Dict[str, Any]:
        with self.db.session() as s:
            invoice = s.execute(select(Invoice).where(Invoice.uuid == uuid, Invoice.deleted_at.is_(None))).scalars().first()
            if not invoice:
                raise HTTPException(status_code=404, detail="Invoice not found")
            return self._invoice_detail(s, invoice)

    def create_invoice(self, payload: Dict[str, Any], user_id: int) -> Dict[str, Any]:
        errors: Dict[str, str] = {}
        invoice_date = validate_date_iso(payload.get("invoice_date"), errors, "invoice_date")
        due_date = validate_date_iso(payload.get("due_date"), errors, "due_date", required=False)
        from_type = validate_in(payload.get("from_type") or "company", PARTY_TYPES, errors, "from_type")
        to_type = validate_in(payload.get("to_type") or "individual", PARTY_TYPES, errors, "to_type")
        items = self._validate_items(payload.get("items"), errors)
        tax_amount = to_float(payload.get("tax_amount")) or 0
        raise_if_errors(errors)

        with self.db.session() as s:
            agreement_id = payload.get("agreement_id") or None
            if agreement_id:
                agreement_id = as_id(agreement_id, "agreement_id")
                agreement = s.get(Agreement, agreement_id)
                if not agreement or agreement.deleted_at is not None:
                    raise HTTPException(status_code=404, detail="Agreement not found")

            bank_details = self._resolve_bank_details(s, payload) or {}
            year = date.today().year
            sequence = s.execute(
                select(func.count(Invoice.id)).where(Invoice.invoice_number.like(f"INV-{year}-%"))
            ).scalar_one() + 1

            invoice = Invoice(
                invoice_number=identifiers.invoice_number(year, sequence),
                uuid=identifiers.new_uuid(),
                agreement_id=agreement_id,
                invoice_date=invoice_date,
                due_date=due_date,
                from_type=from_type,
                to_type=to_type,
                notes=optional_str(payload, "notes"),
                status="draft",
                created_by=user_id,
                **{key: optional_str(payload, key) for key in PARTY_FIELDS},
                **bank_details,
            )
            s.add(invoice)
            s.flush()
            self._replace_items(s, invoice, items, tax_amount)
            self._maybe_save_bank_details(s, payload, bank_details, user_id)
            logger.info("Invoice created: %s (ID: %s)", invoice.invoice_number, invoice.id)
            return {"id": invoice.id, "invoice_number": invoice.invoice_number, "uuid": invoice.uuid}

    def update_invoice(self, invoice_id: int, payload: Dict[str, Any], user_id: int) -> None:
        errors: Dict[str, str] = {}
        invoice_date = None
        if "invoice_date" in payload:
            invoice_date = validate_date_iso(payload.get("invoice_date"), errors, "invoice_date")
        due_date = validate_date_iso(payload.get("due_date"), errors, "due_date", required=False)
        for key in ("from_type", "to_type"):
            if key in payload:
                validate_in(payload.get(key), PARTY_TYPES, errors, key)
        if "status" in payload:
            validate_in(payload.get("status"), INVOICE_STATUSES, errors, "status")
        items = self._validate_items(payload.get("items"), errors) if payload.get("items") else None
        raise_if_errors(errors)

        with self.db.session() as s:
            invoice = self._load_invoice(s, invoice_id)
            if invoice_date:
                invoice.invoice_date = invoice_date
            if "due_date" in payload:
                invoice.due_date = due_date
            for key in ("from_type", "to_type", "status"):
                if key in payload:
                    setattr(invoice, key, optional_str(payload, key))
            for key in PARTY_FIELDS + ("notes",):
                if key in payload:
                    setattr(invoice, key, optional_str(payload, key))

            bank_details = self._resolve_bank_details(s, payload)
            if bank_details:
                for key, value in bank_details.items():
                    setattr(invoice, key, value)

            if items is not None:
                tax_amount = to_float(payload.get("tax_amount"))
                self._replace_items(s, invoice, items, invoice.tax_amount if tax_amount is None else tax_amount)
            elif "tax_amount" in payload:
                invoice.tax_amount = to_float(payload.get("tax_amount")) or 0
                invoice.total_amount = (invoice.subtotal or 0) + invoice.tax_amount

            self._maybe_save_bank_details(s, payload, bank_details, user_id)
            invoice.updated_at = datetime.utcnow()
            logger.info("Invoice updated: %s", invoice.invoice_number)

    def delete_invoice(self, invoice_id: int) -> None:
        with self.db.session() as s:
            invoice = self._load_invoice(s, invoice_id)
            invoice.deleted_at = datetime.utcnow()
            logger.info("Invoice deleted: %s", invoice.invoice_number)

    def items_payment_status(self, invoice_id: int) -> List[Dict[str, Any]]:
        with self.db.session() as s:
            self._load_invoice(s, invoice_id)
            active_receipts = (
                select(func.count(ReceiptInvoiceItem.id))
                .join(Receipt, ReceiptInvoiceItem.receipt_id == Receipt.id)
                .where(ReceiptInvoiceItem.invoice_item_id == InvoiceItem.id, Receipt.deleted_at.is_(None))
                .correlate(InvoiceItem)
                .scalar_subquery()
            )
            rows = s.execute(
                select(InvoiceItem, active_receipts.label("active_receipts"))
                .where(InvoiceItem.invoice_id == invoice_id)
                .order_by(InvoiceItem.sort_order.asc(), InvoiceItem.id.asc())
            ).all()
            return [
                {
                    "item_id": item.id,
                    "description": item.description,
                    "total_price": item.total_price,
                    "amount_paid": item.amount_paid,
                    "is_fully_paid": item.is_fully_paid,
                    "has_active_receipt": active > 0,
                }
                for item, active in rows
            ]

    def invoices_by_agreement(self, agreement_id: int) -> List[Dict[str, Any]]:
        with self.db.session() as s:
            invoices = s.execute(
                select(Invoice)
                .where(Invoice.agreement_id == agreement_id, Invoice.deleted_at.is_(None))
                .order_by(Invoice.created_at.desc(), Invoice.id.desc())
            ).scalars().all()
            return [
                {
                    "id": i.id,
                    "invoice_number": i.invoice_number,
                    "invoice_date": i.invoice_date.isoformat() if i.invoice_date else None,
                    "total_amount": i.total_amount,
                    "amount_paid": i.amount_paid,
                    "status": i.status,
                    "remaining_amount": (i.total_amount or 0) - (i.amount_paid or 0),
                }
                for i in invoices
            ]

    def check_existing_invoices(self, agreement_id: int) -> Dict[str, Any]:
        with self.db.session() as s:
            invoices = s.execute(
                select(Invoice)
                .where(Invoice.agreement_id == agreement_id, Invoice.deleted_at.is_(None))
                .order_by(Invoice.created_at.desc(), Invoice.id.desc())
            ).scalars().all()
            if not invoices:
                return {"hasExisting": False, "invoices": []}

            summaries = []
            for invoice in invoices:
                items = self._items(s, invoice.id)
                summaries.append(
                    {
                        "id": invoice.id,
                        "invoice_number": invoice.invoice_number,
                        "invoice_date": invoice.invoice_date.isoformat() if invoice.invoice_date else None,
                        "total_amount": invoice.total_amount,
                        "amount_paid": invoice.amount_paid,
                        "items_count": len(items),
                        "paid_items_count": sum(1 for i in items if i.is_fully_paid),
                    }
                )
            first = dict(summaries[0])
            first["items"] = [model_to_dict(i) for i in self._items(s, invoices[0].id)]
            return {"hasExisting": True, "count": len(summaries), "firstInvoice": first, "allInvoices": summaries}

    # ------------------------------------------------------------------
    # Receipts
    # ------------------------------------------------------------------

    @staticmethod
    def _load_receipt(s, receipt_id: int) -> Receipt:
        receipt = s.get(Receipt, receipt_id)
        if not receipt or receipt.deleted_at is not None:
            raise HTTPException(status_code=404, detail="Receipt not found")
        return receipt

    @staticmethod
    def _mark_items(s, receipt: Receipt, item_ids: List[int]) -> None:
        for item_id in item_ids:
            item = s.get(InvoiceItem, item_id)
            if not item or item.invoice_id != receipt.invoice_id:
                raise HTTPException(status_code=400, detail=f"Invoice item {item_id} does not belong to this invoice")
            s.add(ReceiptInvoiceItem(receipt_id=receipt.id, invoice_item_id=item.id, amount_allocated=0))
            item.is_fully_paid = True
            item.amount_paid = item.total_price

    @staticmethod
    def _unmark_items(s, receipt: Receipt) -> None:
        links = s.execute(select(ReceiptInvoiceItem).where(ReceiptInvoiceItem.receipt_id == receipt.id)).scalars().all()
        for link in links:
            # Items still covered by another live receipt stay paid
            covered_elsewhere = s.execute(
                select(ReceiptInvoiceItem.receipt_id)
                .join(Receipt, Receipt.id == ReceiptInvoiceItem.receipt_id)
                .where(
                    ReceiptInvoiceItem.invoice_item_id == link.invoice_item_id,
                    ReceiptInvoiceItem.receipt_id != receipt.id,
                    Receipt.deleted_at.is_(None),
                )
                .limit(1)
            ).first()
            item = s.get(InvoiceItem, link.invoice_item_id)
            if item and covered_elsewhere is None:
                item.is_fully_paid = False
                item.amount_paid = 0
            s.delete(link)

    @staticmethod
    def _selected_items(payload: Dict[str, Any], errors: Dict[str, str]) -> List[int]:
        raw = payload.get("selected_items") or []
        if not isinstance(raw, list):
            add_error(errors, "selected_items", "selected_items must be a list")
            return []
        try:
            return [int(v) for v in raw]
        except (TypeError, ValueError):
            add_error(errors, "selected_items", "selected_items contains invalid id(s)")
            return []

    def _receipt_detail(self, s, receipt: Receipt) -> Dict[str, Any]:
        data = model_to_dict(receipt)
        invoice = s.get(Invoice, receipt.invoice_id)
        data["invoice_number"] = invoice.invoice_number if invoice else None
        agreement = s.get(Agreement, receipt.agreement_id) if receipt.agreement_id else None
        data["agreement_number"] = agreement.agreement_number if agreement else None
        rows = s.execute(
            select(InvoiceItem)
            .join(ReceiptInvoiceItem, ReceiptInvoiceItem.invoice_item_id == InvoiceItem.id)
            .where(ReceiptInvoiceItem.receipt_id == receipt.id)
            .order_by(InvoiceItem.sort_order.asc(), InvoiceItem.id.asc())
        ).scalars().all()
        data["items"] = [model_to_dict(i) for i in rows]
        return data

    def list_receipts(
        self,
        invoice_id: Optional[int] = None,
        agreement_id: Optional[int] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: Optional[int] = None,
    ) -> Dict[str, Any]:
        page, limit = self._page(page, limit)
        conditions = [Receipt.deleted_at.is_(None)]
        if invoice_id:
            conditions.append(Receipt.invoice_id == invoice_id)
        if agreement_id:
            conditions.append(Receipt.agreement_id == agreement_id)
        if search:
            like = f"%{search.strip()}%"
            conditions.append(or_(Receipt.receipt_number.ilike(like), Receipt.notes.ilike(like)))

        with self.db.session() as s:
            total = s.execute(select(func.count(Receipt.id)).where(and_(*conditions))).scalar_one()
            rows = s.execute(
                select(Receipt, Invoice.invoice_number, Agreement.agreement_number, User.username)
                .outerjoin(Invoice, Receipt.invoice_id == Invoice.id)
                .outerjoin(Agreement, Receipt.agreement_id == Agreement.id)
                .outerjoin(User, Receipt.created_by == User.id)
                .where(and_(*conditions))
                .order_by(Receipt.created_at.desc(), Receipt.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            ).all()
            data = []
            for receipt, invoice_number, agreement_number, created_by_name in rows:
                row = model_to_dict(receipt)
                row["invoice_number"] = invoice_number
                row["agreement_number"] = agreement_number
                row["created_by_name"] = created_by_name
                data.append(row)
            return {"data": data, "pagination": paginate(page, limit, total)}

    def get_receipt(self, receipt_id: int) -> Dict[str, Any]:
        with self.db.session() as s:
            return self._receipt_detail(s, self._load_receipt(s, receipt_id))

    def receipt_by_uuid(self, uuid: str) -> Dict[str, Any]:
        with self.db.session() as s:
            receipt = s.execute(select(Receipt).where(Receipt.uuid == uuid, Receipt.deleted_at.is_(None))).scalars().first()
            if not receipt:
                raise HTTPException(status_code=404, detail="Receipt not found")
            return self._receipt_detail(s, receipt)

    def create_receipt(self, payload: Dict[str, Any], user_id: int) -> Dict[str, Any]:
        errors: Dict[str, str] = {}
        if not payload.get("invoice_id"):
            add_error(errors, "invoice_id", "invoice_id is required")
        receipt_date = validate_date_iso(payload.get("receipt_date"), errors, "receipt_date")
        amount = to_float(payload.get("amount_paid"))
        if amount is None or amount <= 0:
            add_error(errors, "amount_paid", "Amount must be greater than 0")
        payment_method = validate_in(payload.get("payment_method") or "bank_transfer", PAYMENT_METHODS, errors, "payment_method")
        selected = self._selected_items(payload, errors)
        raise_if_errors(errors)

        with self.db.session() as s:
            invoice = s.get(Invoice, as_id(payload["invoice_id"], "invoice_id"))
            if not invoice or invoice.deleted_at is not None:
                raise HTTPException(status_code=404, detail="Invoice not found")

            bank_details = self._resolve_bank_details(s, payload) or {}
            year = date.today().year
            sequence = s.execute(
                select(func.count(Receipt.id)).where(Receipt.receipt_number.like(f"REC-{year}-%"))
            ).scalar_one() + 1

            receipt = Receipt(
                receipt_number=identifiers.receipt_number(year, sequence),
                uuid=identifiers.new_uuid(),
                invoice_id=invoice.id,
                agreement_id=as_id(payload["agreement_id"], "agreement_id") if payload.get("agreement_id") else invoice.agreement_id,
                receipt_date=receipt_date,
                amount_paid=amount,
                payment_method=payment_method,
                notes=optional_str(payload, "notes"),
                status="verified",
                created_by=user_id,
                **bank_details,
            )
            s.add(receipt)
            s.flush()

            self._mark_items(s, receipt, selected)
            record_payment(invoice, amount)
            self._maybe_save_bank_details(s, payload, bank_details, user_id)
            logger.info("Receipt created: %s for invoice %s", receipt.receipt_number, invoice.invoice_number)
            return {"id": receipt.id, "receipt_number": receipt.receipt_number, "uuid": receipt.uuid}

    def update_receipt(self, receipt_id: int, payload: Dict[str, Any], user_id: int) -> None:
        errors: Dict[str, str] = {}
        receipt_date = None
        if "receipt_date" in payload:
            receipt_date = validate_date_iso(payload.get("receipt_date"), errors, "receipt_date")
        amount = None
        if "amount_paid" in payload:
            amount = to_float(payload.get("amount_paid"))
            if amount is None or amount <= 0:
                add_error(errors, "amount_paid", "Amount must be greater than 0")
        if "payment_method" in payload:
            validate_in(payload.get("payment_method"), PAYMENT_METHODS, errors, "payment_method")
        selected = self._selected_items(payload, errors) if "selected_items" in payload else None
        raise_if_errors(errors)

        with self.db.session() as s:
            receipt = self._load_receipt(s, receipt_id)
            invoice = s.get(Invoice, receipt.invoice_id)

            if receipt_date:
                receipt.receipt_date = receipt_date
            if "payment_method" in payload:
                receipt.payment_method = optional_str(payload, "payment_method")
            if "notes" in payload:
                receipt.notes = optional_str(payload, "notes")

            bank_details = self._resolve_bank_details(s, payload)
            if bank_details:
                for key, value in bank_details.items():
                    setattr(receipt, key, value)

            if selected is not None:
                self._unmark_items(s, receipt)
                s.flush()
                self._mark_items(s, receipt, selected)

            if amount is not None and invoice is not None:
                reverse_payment(invoice, receipt.amount_paid)
                receipt.amount_paid = amount
                record_payment(invoice, amount)

            self._maybe_save_bank_details(s, payload, bank_details, user_id)
            receipt.updated_at = datetime.utcnow()
            logger.info("Receipt updated: %s", receipt.receipt_number)

    def delete_receipt(self, receipt_id: int) -> None:
        with self.db.session() as s:
            receipt = self._load_receipt(s, receipt_id)
            self._unmark_items(s, receipt)
            invoice = s.get(Invoice, receipt.invoice_id)
            if invoice is not None:
                reverse_payment(invoice, receipt.amount_paid)
            receipt.deleted_at = datetime.utcnow()
            logger.info("Receipt deleted: %s", receipt.receipt_number)
