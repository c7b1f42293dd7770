"""
Purchase order routes: OPERATIONS uploads, ACCOUNTS processes.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Request, Form, UploadFile, File
from fastapi.responses import RedirectResponse, HTMLResponse

from app.config import PO_STATUS_OPTIONS, PO_DOCUMENT_EXTENSIONS
from app.dependencies import require_permission, redirect_with_message
from app.roles import (
    PERM_VIEW_PURCHASE_ORDERS, PERM_UPLOAD_PURCHASE_ORDERS, PERM_PROCESS_PURCHASE_ORDERS, has_permission,
)
from app.services import batches as batch_service
from app.services import purchasing
from app.templates_config import templates
from app.workflows import WorkflowError

router = APIRouter()
logger = logging.getLogger(__name__)

SUCCESS_MESSAGES = {
    'uploaded': "Purchase order uploaded.",
    'processed': "Purchase order marked as processed.",
}


def render_page(request: Request, user: dict, status: str = None, batch_id: int = None,
                error: str = None, form: dict = None, status_code: int = 200):
    return templates.TemplateResponse(request, "purchase_orders.html", {
        "user": user,
        "purchase_orders": purchasing.list_purchase_orders(status, batch_id),
        "batches": batch_service.list_batches() if has_permission(user, PERM_UPLOAD_PURCHASE_ORDERS) else [],
        "status_filter": status or 'ALL',
        "status_options": PO_STATUS_OPTIONS,
        "document_types": ", ".join(PO_DOCUMENT_EXTENSIONS),
        "selected_batch_id": batch_id,
        "can_upload": has_permission(user, PERM_UPLOAD_PURCHASE_ORDERS),
        "can_process": has_permission(user, PERM_PROCESS_PURCHASE_ORDERS),
        "can_invoice": has_permission(user, PERM_PROCESS_PURCHASE_ORDERS),
        "form": form or {},
        "success": SUCCESS_MESSAGES.get(request.query_params.get('success')),
        "error": error or request.query_params.get('error'),
    }, status_code=status_code)


@router.get("/purchase-orders", response_class=HTMLResponse)
async def purchase_order_list(request: Request, status: str = None, batch_id: Optional[int] = None):
    """Purchase orders with upload form (ADMIN/OPERATIONS) and process buttons (ADMIN/ACCOUNTS)."""
    user, redirect = require_permission(request, PERM_VIEW_PURCHASE_ORDERS)
    if redirect:
        return redirect
    return render_page(request, user, status, batch_id)


@router.post("/purchase-orders", response_class=HTMLResponse)
async def upload_purchase_order(
    request: Request,
    po_number: str = Form(""),
    client_name: str = Form(""),
    amount: str = Form(""),
    batch_id: str = Form(""),
    document: Optional[UploadFile] = File(None),
):
    """Record a new purchase order. It always starts PENDING."""
    user, redirect = require_permission(request, PERM_UPLOAD_PURCHASE_ORDERS)
    if redirect:
        return redirect

    document_name = None
    document_content = None
    if document is not None and document.filename:
        document_name = document.filename
        document_content = await document.read()

    try:
        purchasing.create_purchase_order(
            po_number, client_name, amount, user['user_id'],
            batch_id=batch_id or None,
            document_name=document_name,
            document_content=document_content,
        )
    except WorkflowError as e:
        form = {'po_number': po_number, 'client_name': client_name,
                'amount': amount, 'batch_id': batch_id}
        return render_page(request, user, error=e.message, form=form, status_code=400)

    return RedirectResponse(url="/purchase-orders?success=uploaded", status_code=302)


@router.post("/purchase-orders/{po_id}/process")
async def process_purchase_order(request: Request, po_id: int):
    user, redirect = require_permission(request, PERM_PROCESS_PURCHASE_ORDERS)
    if redirect:
        return redirect

    try:
        purchasing.process_purchase_order(po_id, user['user_id'])
    except WorkflowError as e:
        return redirect_with_message("/purchase-orders", error=e.message)
    return RedirectResponse(url="/purchase-orders?success=processed", status_code=302)
