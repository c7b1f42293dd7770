"""
Common dependencies for route handlers.
"""
from typing import Optional
from urllib.parse import urlencode

from fastapi import Request, HTTPException
from fastapi.responses import RedirectResponse

from app.auth import validate_session, deserialize_session
from app.config import SESSION_COOKIE_NAME
from app import roles


def get_current_user(request: Request) -> Optional[dict]:
    """
    Get the current logged-in user from session cookie.
    Returns user dict or None if not authenticated.
    """
    token = request.cookies.get(SESSION_COOKIE_NAME)
    if not token:
        return None

    session_id = deserialize_session(token)
    if not session_id:
        return None

    return validate_session(session_id)


def require_auth(request: Request) -> dict:
    """
    Dependency that requires authentication.
    Raises HTTPException 401 if not authenticated.
    """
    user = get_current_user(request)
    if not user:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user


def require_api_roles(request: Request, allowed_roles) -> dict:
    """
    Authenticate an API caller and check their role.
    Raises 401 when anonymous and 403 when the role is not allowed.
    """
    user = require_auth(request)
    if not roles.has_role(user, allowed_roles):
        raise HTTPException(status_code=403, detail="You do not have permission to access this resource")
    return user


def require_roles(request: Request, allowed_roles):
    """
    Check that the page caller is logged in with an allowed role.
    Returns (user, None) if authorized, (None, redirect) otherwise.
    """
    user = get_current_user(request)
    if not user:
        return None, RedirectResponse(url="/login", status_code=302)
    if not roles.has_role(user, allowed_roles):
        return None, RedirectResponse(url="/dashboard?error=unauthorized", status_code=302)
    return user, None


def require_permission(request: Request, permission: str):
    """
    Check if user has specific permission.
    Returns (user, None) if authorized, (None, redirect) otherwise.
    """
    user = get_current_user(request)
    if not user:
        return None, RedirectResponse(url="/login", status_code=302)
    if not roles.has_permission(user, permission):
        return None, RedirectResponse(url="/dashboard?error=unauthorized", status_code=302)
    return user, None


def redirect_with_message(url: str, error: str = None, success: str = None) -> RedirectResponse:
    """Redirect after a POST, carrying an error or success banner in the query string."""
    params = {k: v for k, v in (('error', error), ('success', success)) if v}
    if params:
        url = f"{url}{'&' if '?' in url else '?'}{urlencode(params)}"
    return RedirectResponse(url=url, status_code=302)
