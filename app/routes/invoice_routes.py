"""
Invoice routes for ADMIN and ACCOUNTS.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Request, Form
from fastapi.responses import RedirectResponse, HTMLResponse

from app.config import INVOICE_STATUS_OPTIONS
from app.database import generate_invoice_number
from app.dependencies import require_permission, redirect_with_message
from app.roles import PERM_MANAGE_INVOICES
from app.services import purchasing
from app.templates_config import templates
from app.workflows import WorkflowError, INVOICE_TRANSITIONS, PO_PROCESSED

router = APIRouter()
logger = logging.getLogger(__name__)

SUCCESS_MESSAGES = {
    'generated': "Invoice generated successfully.",
    'updated': "Invoice status updated.",
}


@router.get("/invoices", response_class=HTMLResponse)
async def invoice_list(request: Request, status: str = None):
    user, redirect = require_permission(request, PERM_MANAGE_INVOICES)
    if redirect:
        return redirect

    return templates.TemplateResponse(request, "invoices.html", {
        "user": user,
        "invoices": purchasing.list_invoices(status),
        "status_filter": status or 'ALL',
        "status_options": INVOICE_STATUS_OPTIONS,
        "transitions": {k: sorted(v) for k, v in INVOICE_TRANSITIONS.items()},
        "success": SUCCESS_MESSAGES.get(request.query_params.get('success')),
        "error": request.query_params.get('error'),
    })


def render_invoice_form(request: Request, user: dict, po_id: Optional[int],
                        invoice_number: str = None, notes: str = '',
                        error: str = None, status_code: int = 200):
    purchase_order = purchasing.get_purchase_order(po_id) if po_id else None
    return templates.TemplateResponse(request, "invoice_form.html", {
        "user": user,
        "purchase_order": purchase_order,
        "processed_orders": purchasing.list_purchase_orders(status=PO_PROCESSED),
        "invoice_number": invoice_number or generate_invoice_number(),
        "notes": notes,
        "error": error,
    }, status_code=status_code)


@router.get("/invoices/new", response_class=HTMLResponse)
async def new_invoice_page(request: Request, po_id: Optional[int] = None):
    """Invoice form for a processed purchase order."""
    user, redirect = require_permission(request, PERM_MANAGE_INVOICES)
    if redirect:
        return redirect
    return render_invoice_form(request, user, po_id)


@router.post("/invoices/new", response_class=HTMLResponse)
async def new_invoice_submit(request: Request, po_id: int = Form(...),
                             invoice_number: str = Form(""), notes: str = Form("")):
    """Generate the invoice and mark the purchase order INVOICED."""
    user, redirect = require_permission(request, PERM_MANAGE_INVOICES)
    if redirect:
        return redirect

    try:
        purchasing.generate_invoice(po_id, user['user_id'], invoice_number, notes)
    except WorkflowError as e:
        return render_invoice_form(request, user, po_id, invoice_number, notes,
                                   error=e.message, status_code=400)

    return RedirectResponse(url="/invoices?success=generated", status_code=302)


@router.post("/invoices/{invoice_id}/status")
async def update_invoice_status(request: Request, invoice_id: int, status: str = Form(...)):
    """Mark an invoice PAID or OVERDUE."""
    user, redirect = require_permission(request, PERM_MANAGE_INVOICES)
    if redirect:
        return redirect

    try:
        purchasing.update_invoice_status(invoice_id, status, user['user_id'])
    except WorkflowError as e:
        return redirect_with_message("/invoices", error=e.message)
    return RedirectResponse(url="/invoices?success=updated", status_code=302)
