from typing import Optional

from fastapi import APIRouter, Body, Depends

from src.api.responses import ok
from src.backoffice.controllers.financial_documents_controller import FinancialDocumentsController
from src.backoffice.dependencies import CurrentAdmin, get_db, require_permission

api = APIRouter()
financial_documents_api = api


# --------------------------------------------------------------------------- #
# Public documents
# --------------------------------------------------------------------------- #
@api.get("/public/invoice/{uuid}", tags=["Financial documents (public)"])
async def public_invoice(uuid: str, db=Depends(get_db)):
    return ok(FinancialDocumentsController(db).invoice_by_uuid(uuid))


@api.get("/public/receipt/{uuid}", tags=["Financial documents (public)"])
async def public_receipt(uuid: str, db=Depends(get_db)):
    return ok(FinancialDocumentsController(db).receipt_by_uuid(uuid))


# --------------------------------------------------------------------------- #
# Saved bank details
# --------------------------------------------------------------------------- #
@api.get("/saved-bank-details", tags=["Bank details"])
async def list_bank_details(
    admin: CurrentAdmin = Depends(require_permission("financial_documents.view_invoices")),
    db=Depends(get_db),
):
    return ok(FinancialDocumentsController(db).list_bank_details())


@api.get("/saved-bank-details/{details_id}", tags=["Bank details"])
async def get_bank_details(
    details_id: int,
    admin: CurrentAdmin = Depends(require_permission("financial_documents.view_invoices")),
    db=Depends(get_db),
):
    return ok(FinancialDocumentsController(db).get_bank_details(details_id))


@api.post("/saved-bank-details", status_code=201, tags=["Bank details"])
async def create_bank_details(
    payload: dict = Body(...),
    admin: CurrentAdmin = Depends(require_permission("financial_documents.create_invoices")),
    db=Depends(get_db),
):
    return ok(FinancialDocumentsController(db).create_bank_details(payload, admin.id), message="Bank details saved")


@api.put("/saved-bank-details/{details_id}", tags=["Bank details"])
async def update_bank_details(
    details_id: int,
    payload: dict = Body(...),
    admin: CurrentAdmin = Depends(require_permission("financial_documents.edit_invoices")),
    db=Depends(get_db),
):
    FinancialDocumentsController(db).update_bank_details(details_id, payload)
    return ok(message="Bank details updated")


@api.delete("/saved-bank-details/{details_id}", tags=["Bank details"])
async def delete_bank_details(
    details_id: int,
    admin: CurrentAdmin = Depends(require_permission("financial_documents.delete_invoices")),
    db=Depends(get_db),
):
    FinancialDocumentsController(db).delete_bank_details(details_id)
    return ok(message="Bank details deleted")


# --------------------------------------------------------------------------- #
# Invoices
# --------------------------------------------------------------------------- #
@api.get("/invoices", tags=["Invoices"])
async def list_invoices(
    status: Optional[str] = None,
    agreement_id: Optional[int] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: Optional[int] = None,
    admin: CurrentAdmin = Depends(require_permission("financial_documents.view_invoices")),
    db=Depends(get_db),
):
    result = FinancialDocumentsController(db).list_invoices(
        status=status, agreement_id=agreement_id, search=search, page=page, limit=limit
    )
    return ok(result["data"], pagination=result["pagination"])


@api.get("/invoices/{invoice_id}/items-payment-status", tags=["Invoices"])
async def items_payment_status(
    invoice_id: int,
    admin: CurrentAdmin = Depends(require_permission("financial_documents.view_invoices")),
    db=Depends(get_db),
):
    return ok(FinancialDocumentsController(db).items_payment_status(invoice_id))


@api.get("/invoices/{invoice_id}", tags=["Invoices"])
async def get_invoice(
    invoice_id: int,
    admin: CurrentAdmin = Depends(require_permission("financial_documents.view_invoices")),
    db=Depends(get_db),
):
    return ok(FinancialDocumentsController(db).get_invoice(invoice_id))


@api.post("/invoices", status_code=201, tags=["Invoices"])
async def create_invoice(
    payload: dict = Body(...),
    admin: CurrentAdmin = Depends(require_permission("financial_documents.create_invoices")),
    db=Depends(get_db),
):
    return ok(FinancialDocumentsController(db).create_invoice(payload, admin.id), message="Invoice created")


@api.put("/invoices/{invoice_id}", tags=["Invoices"])
async def update_invoice(
    invoice_id: int,
    payload: dict = Body(...),
    admin: CurrentAdmin = Depends(require_permission("financial_documents.edit_invoices")),
    db=Depends(get_db),
):
    FinancialDocumentsController(db).update_invoice(invoice_id, payload, admin.id)
    return ok(message="Invoice updated")


@api.delete("/invoices/{invoice_id}", tags=["Invoices"])
async def delete_invoice(
    invoice_id: int,
    admin: CurrentAdmin = Depends(require_permission("financial_documents.delete_invoices")),
    db=Depends(get_db),
):
    FinancialDocumentsController(db).delete_invoice(invoice_id)
    return ok(message="Invoice deleted")


@api.get("/invoices-by-agreement/{agreement_id}", tags=["Invoices"])
async def invoices_by_agreement(
    agreement_id: int,
    admin: CurrentAdmin = Depends(require_permission("financial_documents.view_invoices")),
    db=Depends(get_db),
):
    return ok(FinancialDocumentsController(db).invoices_by_agreement(agreement_id))


@api.get("/agreements/{agreement_id}/check-existing-invoices", tags=["Invoices"])
async def check_existing_invoices(
    agreement_id: int,
    admin: CurrentAdmin = Depends(require_permission("financial_documents.view_invoices")),
    db=Depends(get_db),
):
    return ok(FinancialDocumentsController(db).check_existing_invoices(agreement_id))


# --------------------------------------------------------------------------- #
# Receipts
# --------------------------------------------------------------------------- #
@api.get("/receipts", tags=["Receipts"])
async def list_receipts(
    invoice_id: Optional[int] = None,
    agreement_id: Optional[int] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: Optional[int] = None,
    admin: CurrentAdmin = Depends(require_permission("financial_documents.view_receipts")),
    db=Depends(get_db),
):
    result = FinancialDocumentsController(db).list_receipts(
        invoice_id=invoice_id, agreement_id=agreement_id, search=search, page=page, limit=limit
    )
    return ok(result["data"], pagination=result["pagination"])


@api.get("/receipts/{receipt_id}", tags=["Receipts"])
async def get_receipt(
    receipt_id: int,
    admin: CurrentAdmin = Depends(require_permission("financial_documents.view_receipts")),
    db=Depends(get_db),
):
    return ok(FinancialDocumentsController(db).get_receipt(receipt_id))


@api.post("/receipts", status_code=201, tags=["Receipts"])
async def create_receipt(
    payload: dict = Body(...),
    admin: CurrentAdmin = Depends(require_permission("financial_documents.create_receipts")),
    db=Depends(get_db),
):
    return ok(FinancialDocumentsController(db).create_receipt(payload, admin.id), message="Receipt created")


@api.put("/receipts/{receipt_id}", tags=["Receipts"])
async def update_receipt(
    receipt_id: int,
    payload: dict = Body(...),
    admin: CurrentAdmin = Depends(require_permission("financial_documents.edit_receipts")),
    db=Depends(get_db),
):
    FinancialDocumentsController(db).update_receipt(receipt_id, payload, admin.id)
    return ok(message="Receipt updated")


@api.delete("/receipts/{receipt_id}", tags=["Receipts"])
async def delete_receipt(
    receipt_id: int,
    admin: CurrentAdmin = Depends(require_permission("financial_documents.delete_receipts")),
    db=Depends(get_db),
):
    FinancialDocumentsController(db).delete_receipt(receipt_id)
    return ok(message="Receipt deleted")
