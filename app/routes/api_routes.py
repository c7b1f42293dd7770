"""
JSON API. Domain errors (WorkflowError) are turned into {"error": ...} responses
by the handler registered in app.main.
"""
import logging
import smtplib
from typing import List, Optional

from fastapi import APIRouter, Request, HTTPException, Form, UploadFile, File
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app import config
from app.auth import register_user
from app.dependencies import require_auth, require_api_roles
from app.mailer import send_email
from app.roles import (
    ROLE_ADMIN, ROLE_OPERATIONS, ROLE_TRAINER, PERM_CREATE_USERS, has_role, has_permission, is_trainer,
)
from app.services import batches as batch_service
from app.services import trainers as trainer_service
from app.workflows import NotFound, PermissionDenied, ValidationError

router = APIRouter()
logger = logging.getLogger(__name__)

BATCH_ROLES = [ROLE_ADMIN, ROLE_OPERATIONS]


class TraineeIn(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None


class BatchCreate(BaseModel):
    batch_name: Optional[str] = None
    description: Optional[str] = None
    training_mode: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    meeting_link: Optional[str] = None
    venue: Optional[str] = None
    hybrid_details: Optional[str] = None
    trainer_id: Optional[str] = None
    trainees: List[TraineeIn] = []


class UserCreate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    role: Optional[str] = None
    specialization: Optional[str] = None
    department: Optional[str] = None


class TestTrainerCreate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    specialization: Optional[str] = None


def _require_fields(data: dict, fields) -> None:
    missing = [f for f in fields if not (data.get(f) or '').strip()]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}", missing[0],
                              details={f: "This field is required" for f in missing})


# ── Batches ──────────────────────────────────────────────────────────

@router.get("/batches")
async def list_batches(request: Request, status: str = None):
    """ADMIN/OPERATIONS get every batch, a TRAINER only their own."""
    user = require_auth(request)
    if has_role(user, BATCH_ROLES):
        batches = batch_service.list_batches(status=status)
    elif is_trainer(user):
        batches = batch_service.list_batches(trainer_id=user['user_id'], status=status)
    else:
        raise HTTPException(status_code=403, detail="You do not have permission to view batches")
    return jsonable_encoder(batches)


@router.post("/batches", status_code=201)
async def create_batch(request: Request, body: BatchCreate):
    user = require_api_roles(request, BATCH_ROLES)
    data = body.model_dump()
    batch = batch_service.create_batch(data, user['user_id'])
    return JSONResponse(status_code=201, content=jsonable_encoder(batch))


@router.get("/batches/{batch_id}")
async def get_batch(request: Request, batch_id: int):
    user = require_auth(request)
    batch = batch_service.get_batch(batch_id)
    if not batch:
        raise NotFound("Batch not found")
    own_batch = is_trainer(user) and batch['trainer_id'] == user['user_id']
    if not (has_role(user, BATCH_ROLES) or own_batch):
        raise PermissionDenied("You do not have permission to view this batch")
    return jsonable_encoder(batch)


# ── Trainers and users ───────────────────────────────────────────────

@router.get("/trainers")
async def list_trainers(request: Request, available: bool = False):
    require_api_roles(request, BATCH_ROLES)
    trainers = trainer_service.list_trainers(available_only=available)
    for trainer in trainers:
        trainer['availability'] = bool(trainer['availability']) if trainer['availability'] is not None else True
    return jsonable_encoder(trainers)


@router.post("/users", status_code=201)
async def create_user(request: Request, body: UserCreate):
    """ADMIN/OPERATIONS create an account of any non-admin role."""
    user = require_auth(request)
    if not has_permission(user, PERM_CREATE_USERS):
        raise HTTPException(status_code=403, detail="You do not have permission to create users")
    data = body.model_dump()
    _require_fields(data, ('name', 'email', 'password', 'role'))
    created = register_user(created_by=user['user_id'], **data)
    return JSONResponse(status_code=201, content=jsonable_encoder(created))


@router.post("/register", status_code=201)
async def register(body: UserCreate):
    """Public self-registration."""
    data = body.model_dump()
    _require_fields(data, ('name', 'email', 'password', 'role'))
    created = register_user(**data)
    return JSONResponse(status_code=201, content={
        "message": "User registered successfully",
        "user": jsonable_encoder(created),
    })


@router.post("/test-trainer", status_code=201)
async def create_test_trainer(body: TestTrainerCreate):
    """Create a trainer for local testing. Disabled unless ENABLE_TEST_ENDPOINTS is set."""
    if not config.ENABLE_TEST_ENDPOINTS:
        raise HTTPException(status_code=404, detail="Not Found")

    data = body.model_dump()
    _require_fields(data, ('name', 'email', 'specialization'))
    created = register_user(
        data['name'], data['email'],
        data['password'] or config.TEST_TRAINER_DEFAULT_PASSWORD,
        ROLE_TRAINER, specialization=data['specialization'],
    )
    logger.warning("Test trainer %s created through the test endpoint", created['id'])
    return JSONResponse(status_code=201, content=jsonable_encoder(created))


# ── Email ────────────────────────────────────────────────────────────

@router.post("/send-email")
async def send_report_email(
    request: Request,
    email: Optional[str] = Form(None),
    subject: Optional[str] = Form(None),
    message: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
):
    """Mail an attendance report (or any attachment) to one recipient."""
    require_auth(request)
    if not email or not subject or file is None or not file.filename:
        return JSONResponse(status_code=400, content={"error": "Missing required fields"})

    attachment = await file.read()
    try:
        send_email(email, subject, message, attachment=attachment,
                   filename=file.filename, content_type=file.content_type)
    except (smtplib.SMTPException, OSError):
        logger.exception("Error sending email to %s", email)
        return JSONResponse(status_code=500, content={"error": "Failed to send email"})

    return {"success": True}
