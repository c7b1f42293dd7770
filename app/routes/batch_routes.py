"""
Batch management routes for ADMIN and OPERATIONS: list, create, edit, delete,
trainer assignment and completion.
"""
import logging

from fastapi import APIRouter, Request, Form
from fastapi.responses import RedirectResponse, HTMLResponse

from app.config import TRAINING_MODES, BATCH_STATUS_OPTIONS
from app.dependencies import get_current_user, require_roles, redirect_with_message
from app.roles import ROLE_ADMIN, ROLE_OPERATIONS, has_role, is_trainer
from app.services import batches as batch_service
from app.services import trainers as trainer_service
from app.spreadsheets import read_roster
from app.templates_config import templates
from app.workflows import WorkflowError

router = APIRouter()
logger = logging.getLogger(__name__)

BATCH_ROLES = [ROLE_ADMIN, ROLE_OPERATIONS]

SUCCESS_MESSAGES = {
    'created': "Batch created successfully.",
    'updated': "Batch updated successfully.",
    'deleted': "Batch deleted.",
    'assigned': "Trainer assignment saved.",
    'completed': "Training marked as completed.",
}


def parse_trainee_rows(form) -> list:
    """Collect trainee_{i}_id / _name / _email rows from the batch form."""
    trainees = []
    i = 0
    while f"trainee_{i}_name" in form:
        trainees.append({
            'id': form.get(f"trainee_{i}_id") or None,
            'name': form.get(f"trainee_{i}_name", ''),
            'email': form.get(f"trainee_{i}_email", ''),
        })
        i += 1
    return trainees


async def batch_form_data(form) -> dict:
    """Turn the submitted batch form into service input, including an uploaded roster file."""
    data = {
        field: form.get(field, '')
        for field in ('batch_name', 'description', 'training_mode', 'start_date', 'end_date',
                      'start_time', 'end_time', 'meeting_link', 'venue', 'hybrid_details',
                      'trainer_id')
    }
    data['trainees'] = parse_trainee_rows(form)

    roster_file = form.get('roster_file')
    if roster_file is not None and getattr(roster_file, 'filename', None):
        contents = await roster_file.read()
        if contents:
            data['trainees'].extend(read_roster(contents))
    return data


def render_form(request: Request, user: dict, batch: dict = None, error: str = None,
                status_code: int = 200):
    return templates.TemplateResponse(request, "batch_form.html", {
        "user": user,
        "batch": batch or {'trainees': []},
        "is_edit": bool(batch and batch.get('id')),
        "trainers": trainer_service.list_trainers(),
        "training_modes": TRAINING_MODES,
        "error": error,
    }, status_code=status_code)


@router.get("/batches", response_class=HTMLResponse)
async def batch_list(request: Request, status: str = None):
    """All batches with an optional derived-status filter."""
    user, redirect = require_roles(request, BATCH_ROLES)
    if redirect:
        return redirect

    batches = batch_service.list_batches(status=status)
    return templates.TemplateResponse(request, "batches.html", {
        "user": user,
        "batches": batches,
        "status_filter": (status or 'ALL').upper(),
        "status_options": BATCH_STATUS_OPTIONS,
        "success": SUCCESS_MESSAGES.get(request.query_params.get('success')),
        "error": request.query_params.get('error'),
    })


@router.get("/batches/create", response_class=HTMLResponse)
async def create_batch_page(request: Request):
    user, redirect = require_roles(request, BATCH_ROLES)
    if redirect:
        return redirect
    return render_form(request, user)


@router.post("/batches/create", response_class=HTMLResponse)
async def create_batch_submit(request: Request):
    """Create a batch from the form."""
    user, redirect = require_roles(request, BATCH_ROLES)
    if redirect:
        return redirect

    form = await request.form()
    data = {}
    try:
        data = await batch_form_data(form)
        batch = batch_service.create_batch(data, user['user_id'])
    except WorkflowError as e:
        return render_form(request, user, data, error=e.message, status_code=400)

    return RedirectResponse(url=f"/batches/{batch['id']}?success=created", status_code=302)


@router.get("/batches/{batch_id}", response_class=HTMLResponse)
async def batch_detail(request: Request, batch_id: int):
    """Batch details. Visible to ADMIN, OPERATIONS and the assigned trainer."""
    user = get_current_user(request)
    if not user:
        return RedirectResponse(url="/login", status_code=302)

    batch = batch_service.get_batch(batch_id)
    if not batch:
        return templates.TemplateResponse(request, "error.html", {
            "user": user, "error_code": 404, "error_message": "Batch not found",
        }, status_code=404)

    own_batch = is_trainer(user) and batch['trainer_id'] == user['user_id']
    if not (has_role(user, BATCH_ROLES) or own_batch):
        return RedirectResponse(url="/dashboard?error=unauthorized", status_code=302)

    return templates.TemplateResponse(request, "batch_detail.html", {
        "user": user,
        "batch": batch,
        "can_manage": has_role(user, BATCH_ROLES),
        "success": SUCCESS_MESSAGES.get(request.query_params.get('success')),
        "error": request.query_params.get('error'),
    })


@router.get("/batches/{batch_id}/edit", response_class=HTMLResponse)
async def edit_batch_page(request: Request, batch_id: int):
    user, redirect = require_roles(request, BATCH_ROLES)
    if redirect:
        return redirect

    batch = batch_service.get_batch(batch_id)
    if not batch:
        return RedirectResponse(url="/batches?error=Batch+not+found", status_code=302)
    return render_form(request, user, batch)


@router.post("/batches/{batch_id}/edit", response_class=HTMLResponse)
async def edit_batch_submit(request: Request, batch_id: int):
    """Save batch edits and reconcile the roster."""
    user, redirect = require_roles(request, BATCH_ROLES)
    if redirect:
        return redirect

    form = await request.form()
    data = {'id': batch_id}
    try:
        data.update(await batch_form_data(form))
        batch_service.update_batch(batch_id, data, user['user_id'])
    except WorkflowError as e:
        if e.status_code == 404:
            return RedirectResponse(url="/batches?error=Batch+not+found", status_code=302)
        return render_form(request, user, data, error=e.message, status_code=400)

    return RedirectResponse(url=f"/batches/{batch_id}?success=updated", status_code=302)


@router.post("/batches/{batch_id}/delete")
async def delete_batch(request: Request, batch_id: int):
    user, redirect = require_roles(request, BATCH_ROLES)
    if redirect:
        return redirect

    try:
        batch_service.delete_batch(batch_id, user['user_id'])
    except WorkflowError as e:
        return redirect_with_message("/batches", error=e.message)
    return RedirectResponse(url="/batches?success=deleted", status_code=302)


@router.get("/batches/{batch_id}/assign", response_class=HTMLResponse)
async def assign_trainer_page(request: Request, batch_id: int):
    """Pick a trainer for a batch."""
    user, redirect = require_roles(request, BATCH_ROLES)
    if redirect:
        return redirect

    batch = batch_service.get_batch(batch_id)
    if not batch:
        return RedirectResponse(url="/batches?error=Batch+not+found", status_code=302)

    return templates.TemplateResponse(request, "batch_assign.html", {
        "user": user,
        "batch": batch,
        "trainers": trainer_service.list_trainers(),
        "error": request.query_params.get('error'),
    })


@router.post("/batches/{batch_id}/assign")
async def assign_trainer_submit(request: Request, batch_id: int, trainer_id: str = Form("")):
    """Attach, replace or detach (empty id) the batch trainer."""
    user, redirect = require_roles(request, BATCH_ROLES)
    if redirect:
        return redirect

    try:
        batch_service.assign_trainer(batch_id, trainer_id, user['user_id'])
    except WorkflowError as e:
        return redirect_with_message(f"/batches/{batch_id}/assign", error=e.message)
    return RedirectResponse(url=f"/batches/{batch_id}?success=assigned", status_code=302)


@router.post("/batches/{batch_id}/complete")
async def complete_batch(request: Request, batch_id: int):
    """Close an accepted assignment."""
    user, redirect = require_roles(request, BATCH_ROLES)
    if redirect:
        return redirect

    try:
        batch_service.complete_assignment(batch_id, user['user_id'])
    except WorkflowError as e:
        return redirect_with_message(f"/batches/{batch_id}", error=e.message)
    return RedirectResponse(url=f"/batches/{batch_id}?success=completed", status_code=302)
