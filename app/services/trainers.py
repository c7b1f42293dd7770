"""
Trainer directory and the trainer's own workspace: profile, materials and attendance.
"""
import logging
from datetime import date
from typing import Optional

from app.database import get_db, rows_to_dicts, row_to_dict, log_activity
from app import workflows
from app.workflows import NotFound, PermissionDenied, ValidationError

logger = logging.getLogger(__name__)

TRAINER_SELECT = """
    SELECT u.user_id, u.name, u.email, u.is_active, u.created_at,
           tp.specialization, tp.availability, tp.bio, tp.phone,
           (SELECT COUNT(*) FROM batches b WHERE b.trainer_id = u.user_id) as batch_count
    FROM users u
    LEFT JOIN trainer_profiles tp ON tp.user_id = u.user_id
    WHERE u.role = 'TRAINER'
"""


def list_trainers(available_only: bool = False, search: str = None,
                  availability: Optional[bool] = None) -> list:
    """
    Active trainers with their profile fields, by name.
    ``search`` matches name, email or specialization case-insensitively.
    ``availability`` keeps only available (True) or unavailable (False) trainers.
    """
    if available_only:
        availability = True

    query = TRAINER_SELECT + " AND u.is_active = 1"
    params = []
    if availability is not None:
        query += " AND COALESCE(tp.availability, 1) = ?"
        params.append(1 if availability else 0)
    search = (search or '').strip().lower()
    if search:
        query += """ AND (LOWER(u.name) LIKE ? OR LOWER(u.email) LIKE ?
                          OR LOWER(COALESCE(tp.specialization, '')) LIKE ?)"""
        params.extend([f"%{search}%"] * 3)

    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(query + " ORDER BY u.name", params)
        return rows_to_dicts(cursor.fetchall())


def get_trainer(user_id: str) -> Optional[dict]:
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(TRAINER_SELECT + " AND u.user_id = ?", (user_id,))
        return row_to_dict(cursor.fetchone())


def update_profile(user_id: str, specialization: str, availability: bool,
                   bio: str = None, phone: str = None) -> dict:
    """Update the trainer's own profile, creating it if the account has none."""
    specialization = (specialization or '').strip()
    if not specialization:
        raise ValidationError("Specialization is required", 'specialization')

    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT id FROM trainer_profiles WHERE user_id = ?", (user_id,))
        if cursor.fetchone():
            cursor.execute("""
                UPDATE trainer_profiles
                SET specialization = ?, availability = ?, bio = ?, phone = ?,
                    updated_at = CURRENT_TIMESTAMP
                WHERE user_id = ?
            """, (specialization, 1 if availability else 0,
                  (bio or '').strip() or None, (phone or '').strip() or None, user_id))
        else:
            cursor.execute("""
                INSERT INTO trainer_profiles (user_id, specialization, availability, bio, phone)
                VALUES (?, ?, ?, ?, ?)
            """, (user_id, specialization, 1 if availability else 0,
                  (bio or '').strip() or None, (phone or '').strip() or None))
        log_activity(cursor, user_id, 'UPDATE', 'trainer_profile', user_id)

    return get_trainer(user_id)


def _own_batch(cursor, batch_id: int, trainer_id: str) -> dict:
    """Load a batch and check it is attached to the trainer."""
    cursor.execute("SELECT * FROM batches WHERE id = ?", (batch_id,))
    batch = row_to_dict(cursor.fetchone())
    if not batch:
        raise NotFound("Batch not found")
    if batch['trainer_id'] != trainer_id:
        raise PermissionDenied("This batch is not assigned to you")
    return batch


# ── Materials ────────────────────────────────────────────────────────

def list_materials(trainer_id: str, batch_id: int = None) -> list:
    """Materials on the trainer's batches, newest first."""
    query = """
        SELECT m.*, b.batch_name FROM materials m
        JOIN batches b ON m.batch_id = b.id
        WHERE b.trainer_id = ?
    """
    params = [trainer_id]
    if batch_id:
        query += " AND m.batch_id = ?"
        params.append(batch_id)
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(query + " ORDER BY m.uploaded_at DESC, m.id DESC", params)
        return rows_to_dicts(cursor.fetchall())


def add_material(batch_id: int, trainer_id: str, title: str, file_url: str,
                 description: str = None) -> dict:
    """Share a material link on an accepted batch."""
    data = workflows.validate_material(title, file_url, description)
    with get_db() as conn:
        cursor = conn.cursor()
        batch = _own_batch(cursor, batch_id, trainer_id)
        if batch['assignment_status'] not in (workflows.ASSIGNMENT_ACCEPTED,
                                              workflows.ASSIGNMENT_COMPLETED):
            raise PermissionDenied("Accept the assignment before sharing materials")

        cursor.execute("""
            INSERT INTO materials (batch_id, title, description, file_url, file_type, uploaded_by)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (batch_id, data['title'], data['description'], data['file_url'],
              data['file_type'], trainer_id))
        material_id = cursor.lastrowid
        log_activity(cursor, trainer_id, 'CREATE', 'material', material_id, data['title'])

    data.update({'id': material_id, 'batch_id': batch_id})
    return data


def delete_material(material_id: int, trainer_id: str) -> None:
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("""
            SELECT m.id FROM materials m JOIN batches b ON m.batch_id = b.id
            WHERE m.id = ? AND b.trainer_id = ?
        """, (material_id, trainer_id))
        if not cursor.fetchone():
            raise NotFound("Material not found")
        cursor.execute("DELETE FROM materials WHERE id = ?", (material_id,))
        log_activity(cursor, trainer_id, 'DELETE', 'material', material_id)


# ── Attendance ───────────────────────────────────────────────────────

def get_attendance(batch_id: int, trainer_id: str, attendance_date) -> dict:
    """
    The roster of one of the trainer's batches with the attendance marked for a date.
    Returns {'batch': ..., 'date': 'YYYY-MM-DD', 'students': [...], 'saved': bool}.
    """
    day = workflows.parse_date(attendance_date or date.today(), 'attendance_date').isoformat()
    with get_db() as conn:
        cursor = conn.cursor()
        batch = _own_batch(cursor, batch_id, trainer_id)
        cursor.execute("""
            SELECT t.id, t.name, t.email, a.present, a.id as attendance_id
            FROM trainees t
            LEFT JOIN attendance a
              ON a.trainee_id = t.id AND a.batch_id = t.batch_id AND a.attendance_date = ?
            WHERE t.batch_id = ?
            ORDER BY t.id
        """, (day, batch_id))
        students = rows_to_dicts(cursor.fetchall())

    saved = any(s['attendance_id'] is not None for s in students)
    for student in students:
        student['present'] = bool(student['present'])
    return {'batch': batch, 'date': day, 'students': students, 'saved': saved}


def save_attendance(batch_id: int, trainer_id: str, attendance_date, present_ids) -> int:
    """
    Record attendance for every trainee on the roster for one date.
    Trainees not in ``present_ids`` are marked absent. Re-saving a date overwrites it.
    """
    day = workflows.parse_date(attendance_date, 'attendance_date').isoformat()
    try:
        present = {int(p) for p in present_ids or []}
    except (TypeError, ValueError):
        raise ValidationError("Invalid trainee id in attendance", 'present')

    with get_db() as conn:
        cursor = conn.cursor()
        _own_batch(cursor, batch_id, trainer_id)
        cursor.execute("SELECT id FROM trainees WHERE batch_id = ?", (batch_id,))
        trainee_ids = [row['id'] for row in cursor.fetchall()]

        unknown = present - set(trainee_ids)
        if unknown:
            raise ValidationError("Attendance includes trainees outside this batch", 'present')

        cursor.execute(
            "DELETE FROM attendance WHERE batch_id = ? AND attendance_date = ?", (batch_id, day)
        )
        for trainee_id in trainee_ids:
            cursor.execute("""
                INSERT INTO attendance (batch_id, trainee_id, attendance_date, present, marked_by)
                VALUES (?, ?, ?, ?, ?)
            """, (batch_id, trainee_id, day, 1 if trainee_id in present else 0, trainer_id))
        log_activity(cursor, trainer_id, 'ATTENDANCE', 'batch', batch_id,
                     f"{day}: {len(present)}/{len(trainee_ids)} present")

    logger.info("Attendance for batch %s on %s saved by %s", batch_id, day, trainer_id)
    return len(trainee_ids)


def trainer_summary(trainer_id: str) -> dict:
    """Assignment counts for the trainer dashboard."""
    summary = {s: 0 for s in workflows.ASSIGNMENT_TRANSITIONS}
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("""
            SELECT assignment_status, COUNT(*) as total FROM batches
            WHERE trainer_id = ? AND assignment_status IS NOT NULL
            GROUP BY assignment_status
        """, (trainer_id,))
        for row in cursor.fetchall():
            summary[row['assignment_status']] = row['total']
    summary['total'] = sum(summary.values())
    return summary

