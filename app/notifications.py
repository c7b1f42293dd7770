"""
Admin-facing notifications.

Notifications are appended as a side effect of batch creation (purchase order
reminder) and assignment rejection. Helpers that take a ``cursor`` write inside
the caller's transaction; the rest open their own connection.
"""
import logging

from app.database import get_db, rows_to_dicts, log_activity

logger = logging.getLogger(__name__)

TYPE_TRAINING_DECLINED = 'TRAINING_DECLINED'
TYPE_PURCHASE_ORDER_NEEDED = 'PURCHASE_ORDER_NEEDED'
TYPE_SYSTEM = 'SYSTEM'

STATUS_UNREAD = 'UNREAD'
STATUS_READ = 'READ'


def create_notification(cursor, message: str, notification_type: str, batch_id=None,
                        batch_name: str = None, trainer_id: str = None,
                        trainer_name: str = None, action_url: str = None) -> int:
    """Append an UNREAD notification and return its id."""
    cursor.execute("""
        INSERT INTO notifications
        (batch_id, batch_name, trainer_id, trainer_name, message, type, status, action_url)
        VALUES (?, ?, ?, ?, ?, ?, 'UNREAD', ?)
    """, (batch_id, batch_name, trainer_id, trainer_name, message, notification_type, action_url))
    return cursor.lastrowid


def notify_training_declined(cursor, batch: dict, trainer: dict, reason: str) -> int:
    """Tell admins that a trainer declined a batch."""
    trainer_name = trainer.get('name') or 'Trainer'
    message = (
        f'{trainer_name} declined the training "{batch["batch_name"]}". '
        f'Reason: {reason.strip()}'
    )
    notification_id = create_notification(
        cursor, message, TYPE_TRAINING_DECLINED,
        batch_id=batch['id'], batch_name=batch['batch_name'],
        trainer_id=trainer.get('user_id'), trainer_name=trainer_name,
        action_url=f"/batches/{batch['id']}/assign",
    )
    logger.info("Batch %s declined by %s", batch['id'], trainer.get('user_id'))
    return notification_id


def has_purchase_order(cursor, batch_id) -> bool:
    """Check if any purchase order references this batch."""
    cursor.execute("SELECT id FROM purchase_orders WHERE batch_id = ?", (batch_id,))
    return cursor.fetchone() is not None


def notify_purchase_order_needed(cursor, batch_id, batch_name: str):
    """
    Remind admins to raise a purchase order for a batch.
    Returns the notification id, or None when the batch already has a purchase
    order or an unread reminder.
    """
    if has_purchase_order(cursor, batch_id):
        return None

    cursor.execute("""
        SELECT id FROM notifications
        WHERE batch_id = ? AND type = ? AND status = 'UNREAD'
    """, (batch_id, TYPE_PURCHASE_ORDER_NEEDED))
    if cursor.fetchone():
        return None

    return create_notification(
        cursor,
        f"Purchase order needed for batch: {batch_name}. "
        f"Please create a purchase order for this batch.",
        TYPE_PURCHASE_ORDER_NEEDED,
        batch_id=batch_id, batch_name=batch_name,
        action_url=f"/purchase-orders?batch_id={batch_id}",
    )


def check_batches_for_purchase_orders() -> int:
    """Raise a purchase order reminder for every batch without one. Returns how many were raised."""
    created = 0
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("""
            SELECT b.id, b.batch_name FROM batches b
            WHERE NOT EXISTS (SELECT 1 FROM purchase_orders po WHERE po.batch_id = b.id)
            ORDER BY b.id
        """)
        for batch in rows_to_dicts(cursor.fetchall()):
            if notify_purchase_order_needed(cursor, batch['id'], batch['batch_name']):
                created += 1
    logger.info("Purchase order sweep raised %d reminder(s)", created)
    return created


def list_notifications(status: str = None) -> list:
    """All notifications, newest first, optionally filtered by READ/UNREAD."""
    with get_db() as conn:
        cursor = conn.cursor()
        if status in (STATUS_UNREAD, STATUS_READ):
            cursor.execute("""
                SELECT * FROM notifications WHERE status = ?
                ORDER BY created_at DESC, id DESC
            """, (status,))
        else:
            cursor.execute("SELECT * FROM notifications ORDER BY created_at DESC, id DESC")
        return rows_to_dicts(cursor.fetchall())


def count_unread() -> int:
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT COUNT(*) as unread FROM notifications WHERE status = 'UNREAD'")
        return cursor.fetchone()['unread']


def mark_read(notification_id: int, actor_id: str = None) -> bool:
    """Mark one notification as read. Returns False if it does not exist."""
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(
            "UPDATE notifications SET status = 'READ' WHERE id = ?", (notification_id,)
        )
        updated = cursor.rowcount > 0
        if updated:
            log_activity(cursor, actor_id, 'READ', 'notification', notification_id)
    return updated


def mark_all_read(actor_id: str = None) -> int:
    """Mark every unread notification as read. Returns how many changed."""
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("UPDATE notifications SET status = 'READ' WHERE status = 'UNREAD'")
        changed = cursor.rowcount
        log_activity(cursor, actor_id, 'READ_ALL', 'notification', None, f"{changed} marked read")
    return changed


def delete_notification(notification_id: int, actor_id: str = None) -> bool:
    """Delete one notification. Returns False if it does not exist."""
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("DELETE FROM notifications WHERE id = ?", (notification_id,))
        deleted = cursor.rowcount > 0
        if deleted:
            log_activity(cursor, actor_id, 'DELETE', 'notification', notification_id)
    return deleted
