"""
Purchase order intake and invoice generation.

A purchase order is created PENDING, processed by accounts, and invoiced once.
Invoice generation and the PO status change happen in one transaction.
"""
import logging
import secrets
from pathlib import Path
from typing import Optional

from app import config
from app.database import get_db, rows_to_dicts, row_to_dict, log_activity, generate_invoice_number
from app import workflows
from app.workflows import NotFound, ValidationError, InvalidTransition

logger = logging.getLogger(__name__)

PO_SELECT = """
    SELECT po.*, b.batch_name, u.name as uploaded_by_name,
           i.id as invoice_id, i.invoice_number
    FROM purchase_orders po
    LEFT JOIN batches b ON po.batch_id = b.id
    LEFT JOIN users u ON po.uploaded_by = u.user_id
    LEFT JOIN invoices i ON i.purchase_order_id = po.id
"""

INVOICE_SELECT = """
    SELECT i.*, po.po_number, po.client_name, po.batch_id, b.batch_name,
           u.name as generated_by_name
    FROM invoices i
    JOIN purchase_orders po ON i.purchase_order_id = po.id
    LEFT JOIN batches b ON po.batch_id = b.id
    LEFT JOIN users u ON i.generated_by = u.user_id
"""


def list_purchase_orders(status: str = None, batch_id: int = None) -> list:
    """Purchase orders newest first, optionally filtered by status or batch."""
    conditions = []
    params = []
    if status and status in config.PO_STATUS_OPTIONS:
        conditions.append("po.status = ?")
        params.append(status)
    if batch_id:
        conditions.append("po.batch_id = ?")
        params.append(batch_id)

    query = PO_SELECT
    if conditions:
        query += " WHERE " + " AND ".join(conditions)
    query += " ORDER BY po.uploaded_at DESC, po.id DESC"

    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(query, params)
        return rows_to_dicts(cursor.fetchall())


def get_purchase_order(po_id: int) -> Optional[dict]:
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(PO_SELECT + " WHERE po.id = ?", (po_id,))
        return row_to_dict(cursor.fetchone())


def save_document(filename: str, content: bytes) -> str:
    """Store an uploaded PO document under UPLOAD_DIR and return its relative path."""
    suffix = Path(filename).suffix.lower()
    if suffix not in config.PO_DOCUMENT_EXTENSIONS:
        raise ValidationError(
            f"Unsupported document type. Allowed: {', '.join(config.PO_DOCUMENT_EXTENSIONS)}",
            'document'
        )

    folder = config.UPLOAD_DIR / "purchase_orders"
    folder.mkdir(parents=True, exist_ok=True)
    stored_name = f"{secrets.token_hex(8)}{suffix}"
    (folder / stored_name).write_bytes(content)
    return f"purchase_orders/{stored_name}"


def remove_document(document_path: Optional[str]):
    """Delete a stored PO document, if any."""
    if document_path:
        (config.UPLOAD_DIR / document_path).unlink(missing_ok=True)


def create_purchase_order(po_number: str, client_name: str, amount, uploaded_by: str,
                          batch_id=None, document_name: str = None,
                          document_content: bytes = None) -> dict:
    """Record an uploaded purchase order. The status is always PENDING."""
    data = workflows.validate_purchase_order(po_number, client_name, amount)
    if batch_id in (None, ''):
        batch_id = None
    else:
        try:
            batch_id = int(batch_id)
        except (TypeError, ValueError):
            raise ValidationError("Selected batch does not exist", 'batch_id')

    document_path = None
    try:
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT id FROM purchase_orders WHERE po_number = ?", (data['po_number'],))
            if cursor.fetchone():
                raise ValidationError(f"PO number {data['po_number']} already exists", 'po_number')

            if batch_id is not None:
                cursor.execute("SELECT id FROM batches WHERE id = ?", (batch_id,))
                if not cursor.fetchone():
                    raise ValidationError("Selected batch does not exist", 'batch_id')

            if document_name and document_content:
                document_path = save_document(document_name, document_content)

            cursor.execute("""
                INSERT INTO purchase_orders
                (po_number, client_name, amount, document_path, document_name, batch_id, status, uploaded_by)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                data['po_number'], data['client_name'], data['amount'],
                document_path, document_name if document_path else None,
                batch_id, data['status'], uploaded_by,
            ))
            po_id = cursor.lastrowid
            log_activity(cursor, uploaded_by, 'CREATE', 'purchase_order', po_id, data['po_number'])
    except Exception:
        # the row rolled back, so the stored file has no owner
        remove_document(document_path)
        raise

    logger.info("Purchase order %s uploaded by %s", data['po_number'], uploaded_by)
    return get_purchase_order(po_id)


def process_purchase_order(po_id: int, actor_id: str) -> dict:
    """Mark a PENDING purchase order as PROCESSED."""
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM purchase_orders WHERE id = ?", (po_id,))
        po = row_to_dict(cursor.fetchone())
        if not po:
            raise NotFound("Purchase order not found")

        new_status = workflows.transition_purchase_order(po['status'], workflows.PO_PROCESSED)
        cursor.execute("""
            UPDATE purchase_orders
            SET status = ?, processed_by = ?, processed_at = CURRENT_TIMESTAMP
            WHERE id = ?
        """, (new_status, actor_id, po_id))
        log_activity(cursor, actor_id, new_status, 'purchase_order', po_id, po['po_number'])

    logger.info("Purchase order %s processed by %s", po['po_number'], actor_id)
    return get_purchase_order(po_id)


def list_invoices(status: str = None) -> list:
    """Invoices newest first, optionally filtered by status."""
    with get_db() as conn:
        cursor = conn.cursor()
        if status and status in config.INVOICE_STATUS_OPTIONS:
            cursor.execute(INVOICE_SELECT + " WHERE i.status = ? ORDER BY i.generated_at DESC, i.id DESC",
                           (status,))
        else:
            cursor.execute(INVOICE_SELECT + " ORDER BY i.generated_at DESC, i.id DESC")
        return rows_to_dicts(cursor.fetchall())


def get_invoice(invoice_id: int) -> Optional[dict]:
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(INVOICE_SELECT + " WHERE i.id = ?", (invoice_id,))
        return row_to_dict(cursor.fetchone())


def generate_invoice(po_id: int, actor_id: str, invoice_number: str = None,
                     notes: str = None) -> dict:
    """
    Generate the invoice for a PROCESSED purchase order.
    The invoice is inserted PENDING and the PO moves to INVOICED in the same transaction.
    """
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM purchase_orders WHERE id = ?", (po_id,))
        po = row_to_dict(cursor.fetchone())
        workflows.ensure_invoiceable(po)

        cursor.execute("SELECT id FROM invoices WHERE purchase_order_id = ?", (po_id,))
        if cursor.fetchone():
            raise InvalidTransition(f"Purchase order {po['po_number']} has already been invoiced")

        invoice_number = (invoice_number or '').strip() or generate_invoice_number(cursor)
        cursor.execute("SELECT id FROM invoices WHERE invoice_number = ?", (invoice_number,))
        if cursor.fetchone():
            raise ValidationError(f"Invoice number {invoice_number} already exists", 'invoice_number')

        cursor.execute("""
            INSERT INTO invoices (invoice_number, purchase_order_id, amount, status, notes, generated_by)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (invoice_number, po_id, po['amount'], workflows.INVOICE_PENDING,
              (notes or '').strip() or None, actor_id))
        invoice_id = cursor.lastrowid

        cursor.execute(
            "UPDATE purchase_orders SET status = ? WHERE id = ?",
            (workflows.transition_purchase_order(po['status'], workflows.PO_INVOICED), po_id)
        )
        log_activity(cursor, actor_id, 'CREATE', 'invoice', invoice_id,
                     f"{invoice_number} for {po['po_number']}")

    logger.info("Invoice %s generated for purchase order %s", invoice_number, po['po_number'])
    return get_invoice(invoice_id)


def update_invoice_status(invoice_id: int, status: str, actor_id: str) -> dict:
    """Move an invoice to PAID or OVERDUE."""
    target = (status or '').upper().strip()
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT id, invoice_number, status FROM invoices WHERE id = ?", (invoice_id,))
        invoice = row_to_dict(cursor.fetchone())
        if not invoice:
            raise NotFound("Invoice not found")

        new_status = workflows.transition_invoice(invoice['status'], target)
        cursor.execute("""
            UPDATE invoices SET status = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ?
        """, (new_status, invoice_id))
        log_activity(cursor, actor_id, new_status, 'invoice', invoice_id, invoice['invoice_number'])

    logger.info("Invoice %s marked %s by %s", invoice['invoice_number'], new_status, actor_id)
    return get_invoice(invoice_id)


def purchasing_summary() -> dict:
    """Counts of purchase orders and invoices per status for the dashboard."""
    summary = {'po': {s: 0 for s in config.PO_STATUS_OPTIONS},
               'invoice': {s: 0 for s in config.INVOICE_STATUS_OPTIONS}}
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT status, COUNT(*) as total FROM purchase_orders GROUP BY status")
        for row in cursor.fetchall():
            summary['po'][row['status']] = row['total']
        cursor.execute("SELECT status, COUNT(*) as total FROM invoices GROUP BY status")
        for row in cursor.fetchall():
            summary['invoice'][row['status']] = row['total']
    return summary
