"""
Batch records: creation, editing, trainer assignment and the trainer's response.

Schedule status is attached to every batch on read via ``workflows.batch_status``.
"""
import logging
from datetime import datetime
from typing import Optional

from app.database import get_db, rows_to_dicts, row_to_dict, log_activity
from app.notifications import notify_training_declined, notify_purchase_order_needed
from app.roles import ROLE_TRAINER
from app import workflows
from app.workflows import NotFound, ValidationError

logger = logging.getLogger(__name__)

BATCH_SELECT = """
    SELECT b.*, u.name as trainer_name, u.email as trainer_email,
           (SELECT COUNT(*) FROM trainees t WHERE t.batch_id = b.id) as trainee_count
    FROM batches b
    LEFT JOIN users u ON b.trainer_id = u.user_id
"""


def with_status(batch: dict, now: datetime = None) -> dict:
    """Attach the derived schedule status to a batch dict."""
    batch['status'] = workflows.batch_status(batch, now)
    return batch


def list_batches(trainer_id: str = None, status: str = None, now: datetime = None) -> list:
    """All batches (or one trainer's), newest first, optionally filtered by derived status."""
    with get_db() as conn:
        cursor = conn.cursor()
        if trainer_id:
            cursor.execute(BATCH_SELECT + " WHERE b.trainer_id = ? ORDER BY b.start_date DESC, b.id DESC",
                           (trainer_id,))
        else:
            cursor.execute(BATCH_SELECT + " ORDER BY b.start_date DESC, b.id DESC")
        batches = [with_status(b, now) for b in rows_to_dicts(cursor.fetchall())]

    return workflows.filter_batches_by_status(batches, status, now)


def get_batch(batch_id: int, now: datetime = None) -> Optional[dict]:
    """One batch with its trainee roster, or None."""
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(BATCH_SELECT + " WHERE b.id = ?", (batch_id,))
        batch = row_to_dict(cursor.fetchone())
        if not batch:
            return None

        cursor.execute("SELECT id, name, email FROM trainees WHERE batch_id = ? ORDER BY id", (batch_id,))
        batch['trainees'] = rows_to_dicts(cursor.fetchall())

    return with_status(batch, now)


def _fetch_trainer(cursor, trainer_id: str) -> dict:
    cursor.execute("""
        SELECT user_id, name, email FROM users
        WHERE user_id = ? AND role = ? AND is_active = 1
    """, (trainer_id, ROLE_TRAINER))
    trainer = row_to_dict(cursor.fetchone())
    if not trainer:
        raise ValidationError("Selected trainer does not exist", 'trainer_id')
    return trainer


def _insert_trainees(cursor, batch_id: int, trainees: list) -> None:
    for trainee in trainees:
        cursor.execute(
            "INSERT INTO trainees (batch_id, name, email) VALUES (?, ?, ?)",
            (batch_id, trainee['name'], trainee['email'])
        )


def create_batch(data: dict, created_by: str) -> dict:
    """
    Validate and insert a batch with its roster.
    Attaching a trainer at creation starts the assignment at PENDING. A purchase
    order reminder is raised afterwards; failing to raise it does not undo the batch.
    """
    cleaned = workflows.validate_batch(data)
    trainer_id = (data.get('trainer_id') or '').strip() or None

    with get_db() as conn:
        cursor = conn.cursor()
        if trainer_id:
            _fetch_trainer(cursor, trainer_id)
        assignment_status = workflows.attach_trainer({}, trainer_id)

        cursor.execute("""
            INSERT INTO batches
            (batch_name, description, training_mode, start_date, end_date, start_time, end_time,
             meeting_link, venue, hybrid_details, trainer_id, assignment_status,
             assignment_updated_at, created_by)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            cleaned['batch_name'], cleaned['description'], cleaned['training_mode'],
            cleaned['start_date'], cleaned['end_date'], cleaned['start_time'], cleaned['end_time'],
            cleaned['meeting_link'], cleaned['venue'], cleaned['hybrid_details'],
            trainer_id, assignment_status,
            datetime.now().isoformat(sep=' ', timespec='seconds') if trainer_id else None,
            created_by,
        ))
        batch_id = cursor.lastrowid
        _insert_trainees(cursor, batch_id, cleaned['trainees'])
        log_activity(cursor, created_by, 'CREATE', 'batch', batch_id, 'Batch created')

    logger.info("Batch %s created by %s", batch_id, created_by)

    try:
        with get_db() as conn:
            notify_purchase_order_needed(conn.cursor(), batch_id, cleaned['batch_name'])
    except Exception:
        logger.exception("Could not raise purchase order reminder for batch %s", batch_id)

    return get_batch(batch_id)


def update_batch(batch_id: int, data: dict, actor_id: str) -> dict:
    """
    Update batch details and roster. Trainees submitted with an id are kept
    (so their attendance survives); missing ones are removed; new ones inserted.
    """
    cleaned = workflows.validate_batch(data)

    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT id FROM batches WHERE id = ?", (batch_id,))
        if not cursor.fetchone():
            raise NotFound("Batch not found")

        cursor.execute("""
            UPDATE batches
            SET batch_name = ?, description = ?, training_mode = ?,
                start_date = ?, end_date = ?, start_time = ?, end_time = ?,
                meeting_link = ?, venue = ?, hybrid_details = ?,
                updated_at = CURRENT_TIMESTAMP
            WHERE id = ?
        """, (
            cleaned['batch_name'], cleaned['description'], cleaned['training_mode'],
            cleaned['start_date'], cleaned['end_date'], cleaned['start_time'], cleaned['end_time'],
            cleaned['meeting_link'], cleaned['venue'], cleaned['hybrid_details'],
            batch_id,
        ))

        submitted = data.get('trainees') or []
        cursor.execute("SELECT id FROM trainees WHERE batch_id = ?", (batch_id,))
        existing_ids = {row['id'] for row in cursor.fetchall()}

        kept_ids = set()
        new_trainees = []
        for raw, trainee in zip(_non_blank(submitted), cleaned['trainees']):
            trainee_id = _int_or_none(raw.get('id'))
            if trainee_id in existing_ids:
                kept_ids.add(trainee_id)
                cursor.execute(
                    "UPDATE trainees SET name = ?, email = ? WHERE id = ?",
                    (trainee['name'], trainee['email'], trainee_id)
                )
            else:
                new_trainees.append(trainee)

        for stale_id in existing_ids - kept_ids:
            cursor.execute("DELETE FROM trainees WHERE id = ?", (stale_id,))
        _insert_trainees(cursor, batch_id, new_trainees)

        log_activity(cursor, actor_id, 'UPDATE', 'batch', batch_id, 'Batch updated')

    return get_batch(batch_id)


def _non_blank(trainees: list) -> list:
    return [t for t in trainees if (t.get('name') or '').strip() or (t.get('email') or '').strip()]


def _int_or_none(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def delete_batch(batch_id: int, actor_id: str) -> None:
    """Delete a batch with its roster, attendance and materials."""
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("DELETE FROM batches WHERE id = ?", (batch_id,))
        if cursor.rowcount == 0:
            raise NotFound("Batch not found")
        log_activity(cursor, actor_id, 'DELETE', 'batch', batch_id, 'Batch deleted')
    logger.info("Batch %s deleted by %s", batch_id, actor_id)


def assign_trainer(batch_id: int, trainer_id: Optional[str], actor_id: str) -> dict:
    """Attach (or detach, with an empty id) a trainer. Attaching restarts the assignment at PENDING."""
    trainer_id = (trainer_id or '').strip() or None

    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM batches WHERE id = ?", (batch_id,))
        batch = row_to_dict(cursor.fetchone())
        if not batch:
            raise NotFound("Batch not found")

        if trainer_id:
            _fetch_trainer(cursor, trainer_id)
        assignment_status = workflows.attach_trainer(batch, trainer_id)

        cursor.execute("""
            UPDATE batches
            SET trainer_id = ?, assignment_status = ?, decline_reason = NULL,
                assignment_updated_at = CURRENT_TIMESTAMP, updated_at = CURRENT_TIMESTAMP
            WHERE id = ?
        """, (trainer_id, assignment_status, batch_id))

        log_activity(cursor, actor_id, 'ASSIGN', 'batch', batch_id,
                     f"Trainer {trainer_id}" if trainer_id else "Trainer removed")

    logger.info("Batch %s assigned to %s by %s", batch_id, trainer_id, actor_id)
    return get_batch(batch_id)


def respond_to_assignment(batch_id: int, trainer: dict, accept: bool, reason: str = None) -> dict:
    """
    The attached trainer accepts or rejects a PENDING assignment.
    A rejection records the reason and appends exactly one TRAINING_DECLINED
    notification in the same transaction.
    """
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT * FROM batches WHERE id = ?", (batch_id,))
        batch = row_to_dict(cursor.fetchone())
        if not batch:
            raise NotFound("Batch not found")

        new_status = workflows.respond_to_assignment(batch, trainer['user_id'], accept, reason)
        cursor.execute("""
            UPDATE batches
            SET assignment_status = ?, decline_reason = ?,
                assignment_updated_at = CURRENT_TIMESTAMP, updated_at = CURRENT_TIMESTAMP
            WHERE id = ?
        """, (new_status, None if accept else reason.strip(), batch_id))

        if not accept:
            notify_training_declined(cursor, batch, trainer, reason)

        log_activity(cursor, trainer['user_id'], new_status, 'assignment', batch_id, reason)

    return get_batch(batch_id)


def complete_assignment(batch_id: int, actor_id: str) -> dict:
    """Mark an ACCEPTED assignment as COMPLETED."""
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT assignment_status FROM batches WHERE id = ?", (batch_id,))
        row = cursor.fetchone()
        if not row:
            raise NotFound("Batch not found")

        new_status = workflows.transition_assignment(
            row['assignment_status'], workflows.ASSIGNMENT_COMPLETED
        )
        cursor.execute("""
            UPDATE batches
            SET assignment_status = ?, assignment_updated_at = CURRENT_TIMESTAMP,
                updated_at = CURRENT_TIMESTAMP
            WHERE id = ?
        """, (new_status, batch_id))
        log_activity(cursor, actor_id, 'COMPLETE', 'assignment', batch_id)

    return get_batch(batch_id)


def batch_summary(batches: list) -> dict:
    """Counts per derived status for dashboard cards."""
    summary = {'total': len(batches), 'UPCOMING': 0, 'ONGOING': 0, 'COMPLETED': 0}
    for batch in batches:
        summary[batch['status']] = summary.get(batch['status'], 0) + 1
    return summary
