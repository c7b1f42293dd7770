"""
Trainer routes.

/trainers/*  - trainer directory for ADMIN and OPERATIONS
/trainer/*   - the signed-in trainer's own batches, assignments, students,
               materials and profile
"""
import logging
import smtplib
from typing import List, Optional

from fastapi import APIRouter, Request, Form
from fastapi.responses import RedirectResponse, HTMLResponse, Response

from app.dependencies import require_permission, redirect_with_message
from app.mailer import send_email
from app.roles import PERM_VIEW_TRAINERS, PERM_ASSIGN_TRAINERS, PERM_TRAINER_WORKSPACE
from app.services import batches as batch_service
from app.services import trainers as trainer_service
from app.spreadsheets import attendance_workbook, attendance_filename, XLSX_MEDIA_TYPE
from app.templates_config import templates
from app.workflows import WorkflowError, ASSIGNMENT_PENDING, ASSIGNMENT_COMPLETED

router = APIRouter()
logger = logging.getLogger(__name__)

SUCCESS_MESSAGES = {
    'accepted': "Assignment accepted.",
    'rejected': "Assignment declined. The administrators have been notified.",
    'attendance_saved': "Attendance saved successfully!",
    'material_added': "Material shared.",
    'material_deleted': "Material removed.",
    'profile_saved': "Profile updated.",
    'report_sent': "Attendance report sent.",
}

AVAILABILITY_FILTERS = {'true': True, 'false': False}


def render_not_found(request: Request, user: dict, message: str):
    return templates.TemplateResponse(request, "error.html", {
        "user": user, "error_code": 404, "error_message": message,
    }, status_code=404)


# ── Trainer directory ────────────────────────────────────────────────

@router.get("/trainers", response_class=HTMLResponse)
async def trainer_list(request: Request, search: str = None, available: str = None):
    """Active trainers, searchable by name, email or specialization."""
    user, redirect = require_permission(request, PERM_VIEW_TRAINERS)
    if redirect:
        return redirect

    availability = AVAILABILITY_FILTERS.get((available or '').lower())
    return templates.TemplateResponse(request, "trainers.html", {
        "user": user,
        "trainers": trainer_service.list_trainers(search=search, availability=availability),
        "search": search,
        "available_filter": '' if availability is None else ('true' if availability else 'false'),
    })


@router.get("/trainers/{trainer_id}", response_class=HTMLResponse)
async def trainer_detail(request: Request, trainer_id: str):
    """One trainer's profile and batches."""
    user, redirect = require_permission(request, PERM_VIEW_TRAINERS)
    if redirect:
        return redirect

    trainer = trainer_service.get_trainer(trainer_id)
    if not trainer:
        return render_not_found(request, user, "Trainer not found")

    return templates.TemplateResponse(request, "trainer_detail.html", {
        "user": user,
        "trainer": trainer,
        "batches": batch_service.list_batches(trainer_id=trainer_id),
        "success": request.query_params.get('success'),
    })


@router.get("/trainers/{trainer_id}/assign-batch", response_class=HTMLResponse)
async def trainer_assign_batch_page(request: Request, trainer_id: str):
    """Pick a batch for this trainer. Completed assignments cannot be reassigned."""
    user, redirect = require_permission(request, PERM_ASSIGN_TRAINERS)
    if redirect:
        return redirect

    trainer = trainer_service.get_trainer(trainer_id)
    if not trainer:
        return render_not_found(request, user, "Trainer not found")

    batches = [
        b for b in batch_service.list_batches()
        if b['assignment_status'] != ASSIGNMENT_COMPLETED and b['trainer_id'] != trainer_id
    ]
    return templates.TemplateResponse(request, "trainer_assign_batch.html", {
        "user": user,
        "trainer": trainer,
        "batches": batches,
        "error": request.query_params.get('error'),
    })


@router.post("/trainers/{trainer_id}/assign-batch")
async def trainer_assign_batch_submit(request: Request, trainer_id: str, batch_id: int = Form(...)):
    user, redirect = require_permission(request, PERM_ASSIGN_TRAINERS)
    if redirect:
        return redirect

    try:
        batch_service.assign_trainer(batch_id, trainer_id, user['user_id'])
    except WorkflowError as e:
        return redirect_with_message(f"/trainers/{trainer_id}/assign-batch", error=e.message)
    return redirect_with_message(f"/trainers/{trainer_id}", success="Batch assigned. Awaiting the trainer's response.")


# ── Trainer workspace ────────────────────────────────────────────────

@router.get("/trainer/batches", response_class=HTMLResponse)
async def my_batches(request: Request, status: str = None):
    """Batches attached to the signed-in trainer."""
    user, redirect = require_permission(request, PERM_TRAINER_WORKSPACE)
    if redirect:
        return redirect

    return templates.TemplateResponse(request, "trainer_batches.html", {
        "user": user,
        "batches": batch_service.list_batches(trainer_id=user['user_id'], status=status),
        "status_filter": (status or 'ALL').upper(),
    })


@router.get("/trainer/assignments", response_class=HTMLResponse)
async def my_assignments(request: Request):
    """Pending assignments first, then the trainer's answered ones."""
    user, redirect = require_permission(request, PERM_TRAINER_WORKSPACE)
    if redirect:
        return redirect

    batches = batch_service.list_batches(trainer_id=user['user_id'])
    return templates.TemplateResponse(request, "trainer_assignments.html", {
        "user": user,
        "pending": [b for b in batches if b['assignment_status'] == ASSIGNMENT_PENDING],
        "answered": [b for b in batches if b['assignment_status'] != ASSIGNMENT_PENDING],
        "success": SUCCESS_MESSAGES.get(request.query_params.get('success')),
        "error": request.query_params.get('error'),
    })


@router.post("/trainer/assignments/{batch_id}/accept")
async def accept_assignment(request: Request, batch_id: int):
    user, redirect = require_permission(request, PERM_TRAINER_WORKSPACE)
    if redirect:
        return redirect

    try:
        batch_service.respond_to_assignment(batch_id, user, accept=True)
    except WorkflowError as e:
        return redirect_with_message("/trainer/assignments", error=e.message)
    return RedirectResponse(url="/trainer/assignments?success=accepted", status_code=302)


@router.post("/trainer/assignments/{batch_id}/reject")
async def reject_assignment(request: Request, batch_id: int, reason: str = Form("")):
    """Decline an assignment. A reason is required and admins are notified."""
    user, redirect = require_permission(request, PERM_TRAINER_WORKSPACE)
    if redirect:
        return redirect

    try:
        batch_service.respond_to_assignment(batch_id, user, accept=False, reason=reason)
    except WorkflowError as e:
        return redirect_with_message("/trainer/assignments", error=e.message)
    return RedirectResponse(url="/trainer/assignments?success=rejected", status_code=302)


@router.get("/trainer/students", response_class=HTMLResponse)
async def my_students(request: Request, batch_id: Optional[int] = None, date: str = None):
    """Roster of one of the trainer's batches with attendance for a date."""
    user, redirect = require_permission(request, PERM_TRAINER_WORKSPACE)
    if redirect:
        return redirect

    batches = batch_service.list_batches(trainer_id=user['user_id'])
    if batch_id is None and batches:
        batch_id = batches[0]['id']

    attendance = None
    error = request.query_params.get('error')
    if batch_id is not None:
        try:
            attendance = trainer_service.get_attendance(batch_id, user['user_id'], date)
        except WorkflowError as e:
            error = e.message

    return templates.TemplateResponse(request, "trainer_students.html", {
        "user": user,
        "batches": batches,
        "selected_batch_id": batch_id,
        "attendance": attendance,
        "success": SUCCESS_MESSAGES.get(request.query_params.get('success')),
        "error": error,
    })


@router.post("/trainer/students")
async def save_attendance(request: Request, batch_id: int = Form(...),
                          attendance_date: str = Form(...),
                          present: List[str] = Form(default=[])):
    """Save attendance for the selected batch and date."""
    user, redirect = require_permission(request, PERM_TRAINER_WORKSPACE)
    if redirect:
        return redirect

    back = f"/trainer/students?batch_id={batch_id}&date={attendance_date}"
    try:
        trainer_service.save_attendance(batch_id, user['user_id'], attendance_date, present)
    except WorkflowError as e:
        return redirect_with_message(back, error=e.message)
    return RedirectResponse(url=f"{back}&success=attendance_saved", status_code=302)


@router.get("/trainer/students/{batch_id}/report.xlsx")
async def attendance_report(request: Request, batch_id: int, date: str = None):
    """Download the attendance sheet for one date as Excel."""
    user, redirect = require_permission(request, PERM_TRAINER_WORKSPACE)
    if redirect:
        return redirect

    try:
        attendance = trainer_service.get_attendance(batch_id, user['user_id'], date)
    except WorkflowError as e:
        return redirect_with_message("/trainer/students", error=e.message)

    filename = attendance_filename(attendance['batch']['batch_name'], attendance['date'])
    return Response(
        content=attendance_workbook(attendance['date'], attendance['students']),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f"attachment; filename={filename}"}
    )


@router.post("/trainer/students/{batch_id}/email")
async def email_attendance_report(request: Request, batch_id: int,
                                  attendance_date: str = Form(""), email: str = Form(""),
                                  subject: str = Form(""), message: str = Form("")):
    """Build the attendance workbook for one date and mail it."""
    user, redirect = require_permission(request, PERM_TRAINER_WORKSPACE)
    if redirect:
        return redirect

    back = f"/trainer/students?batch_id={batch_id}"
    if attendance_date:
        back += f"&date={attendance_date}"

    email = email.strip()
    if not email or '@' not in email:
        return redirect_with_message(back, error="A valid recipient email is required")

    try:
        attendance = trainer_service.get_attendance(batch_id, user['user_id'], attendance_date or None)
    except WorkflowError as e:
        return redirect_with_message("/trainer/students", error=e.message)

    batch_name = attendance['batch']['batch_name']
    subject = subject.strip() or f"Attendance: {batch_name} ({attendance['date']})"
    try:
        send_email(email, subject, message.strip() or None,
                   attachment=attendance_workbook(attendance['date'], attendance['students']),
                   filename=attendance_filename(batch_name, attendance['date']),
                   content_type=XLSX_MEDIA_TYPE)
    except (smtplib.SMTPException, OSError):
        logger.exception("Error sending attendance report for batch %s to %s", batch_id, email)
        return redirect_with_message(back, error="Failed to send email")

    return RedirectResponse(url=f"{back}&success=report_sent", status_code=302)


@router.get("/trainer/materials", response_class=HTMLResponse)
async def my_materials(request: Request, batch_id: Optional[int] = None):
    user, redirect = require_permission(request, PERM_TRAINER_WORKSPACE)
    if redirect:
        return redirect

    batches = batch_service.list_batches(trainer_id=user['user_id'])
    return templates.TemplateResponse(request, "trainer_materials.html", {
        "user": user,
        "batches": batches,
        "shareable": [b for b in batches if b['assignment_status'] in ('ACCEPTED', 'COMPLETED')],
        "materials": trainer_service.list_materials(user['user_id'], batch_id),
        "selected_batch_id": batch_id,
        "success": SUCCESS_MESSAGES.get(request.query_params.get('success')),
        "error": request.query_params.get('error'),
    })


@router.post("/trainer/materials")
async def add_material(request: Request, batch_id: int = Form(...), title: str = Form(""),
                       file_url: str = Form(""), description: str = Form("")):
    """Share a material link with a batch."""
    user, redirect = require_permission(request, PERM_TRAINER_WORKSPACE)
    if redirect:
        return redirect

    try:
        trainer_service.add_material(batch_id, user['user_id'], title, file_url, description)
    except WorkflowError as e:
        return redirect_with_message("/trainer/materials", error=e.message)
    return RedirectResponse(url="/trainer/materials?success=material_added", status_code=302)


@router.post("/trainer/materials/{material_id}/delete")
async def delete_material(request: Request, material_id: int):
    user, redirect = require_permission(request, PERM_TRAINER_WORKSPACE)
    if redirect:
        return redirect

    try:
        trainer_service.delete_material(material_id, user['user_id'])
    except WorkflowError as e:
        return redirect_with_message("/trainer/materials", error=e.message)
    return RedirectResponse(url="/trainer/materials?success=material_deleted", status_code=302)


@router.get("/trainer/profile", response_class=HTMLResponse)
async def my_profile(request: Request):
    user, redirect = require_permission(request, PERM_TRAINER_WORKSPACE)
    if redirect:
        return redirect

    return templates.TemplateResponse(request, "trainer_profile.html", {
        "user": user,
        "profile": trainer_service.get_trainer(user['user_id']) or {},
        "summary": trainer_service.trainer_summary(user['user_id']),
        "success": SUCCESS_MESSAGES.get(request.query_params.get('success')),
    })


@router.post("/trainer/profile", response_class=HTMLResponse)
async def save_profile(request: Request, specialization: str = Form(""),
                       availability: Optional[str] = Form(None),
                       bio: str = Form(""), phone: str = Form("")):
    """Update specialization, availability, bio and phone."""
    user, redirect = require_permission(request, PERM_TRAINER_WORKSPACE)
    if redirect:
        return redirect

    try:
        trainer_service.update_profile(user['user_id'], specialization,
                                       availability is not None, bio, phone)
    except WorkflowError as e:
        return templates.TemplateResponse(request, "trainer_profile.html", {
            "user": user,
            "profile": {'specialization': specialization, 'availability': availability is not None,
                        'bio': bio, 'phone': phone, 'name': user['name'], 'email': user['email']},
            "summary": trainer_service.trainer_summary(user['user_id']),
            "error": e.message,
        }, status_code=400)
    return RedirectResponse(url="/trainer/profile?success=profile_saved", status_code=302)
