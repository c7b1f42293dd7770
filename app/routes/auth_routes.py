"""
Authentication routes: login, logout.
"""
import logging

from fastapi import APIRouter, Request, Form
from fastapi.responses import RedirectResponse, HTMLResponse

from app.auth import authenticate_user, create_session, delete_session, serialize_session, deserialize_session
from app.config import SESSION_COOKIE_NAME, SESSION_MAX_AGE
from app.dependencies import get_current_user
from app.templates_config import templates

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/login", response_class=HTMLResponse)
async def login_page(request: Request):
    """Display login page."""
    # If already logged in, redirect to dashboard
    user = get_current_user(request)
    if user:
        return RedirectResponse(url="/dashboard", status_code=302)

    return templates.TemplateResponse(request, "login.html", {"error": None})


@router.post("/login", response_class=HTMLResponse)
async def login_submit(request: Request, email: str = Form(...), password: str = Form(...)):
    """Handle login form submission."""
    user = authenticate_user(email, password)

    if not user:
        logger.warning("Failed login for %s", email)
        return templates.TemplateResponse(
            request, "login.html",
            {"error": "Invalid email or password", "email": email},
            status_code=401
        )

    session_id = create_session(user['user_id'])
    token = serialize_session(session_id)

    response = RedirectResponse(url="/dashboard", status_code=302)
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=token,
        httponly=True,
        samesite="lax",
        max_age=SESSION_MAX_AGE
    )

    logger.info("User %s logged in", user['user_id'])
    return response


@router.get("/logout")
async def logout(request: Request):
    """Log out the current user."""
    token = request.cookies.get(SESSION_COOKIE_NAME)
    if token:
        session_id = deserialize_session(token)
        if session_id:
            delete_session(session_id)

    response = RedirectResponse(url="/login", status_code=302)
    response.delete_cookie(SESSION_COOKIE_NAME)
    return response
