"""
Dashboard: one landing page, with cards chosen by the caller's role.
"""
from fastapi import APIRouter, Request
from fastapi.responses import RedirectResponse, HTMLResponse

from app.dependencies import get_current_user
from app.templates_config import templates
from app.notifications import count_unread
from app.roles import PERM_MANAGE_BATCHES, PERM_VIEW_PURCHASE_ORDERS, has_permission, is_trainer
from app.services import batches as batch_service
from app.services import purchasing
from app.services import trainers as trainer_service

router = APIRouter()

ERROR_MESSAGES = {
    'unauthorized': "You do not have permission to access that page.",
}


@router.get("/", response_class=HTMLResponse)
async def home(request: Request):
    """Send visitors to the dashboard or the login page."""
    if get_current_user(request):
        return RedirectResponse(url="/dashboard", status_code=302)
    return RedirectResponse(url="/login", status_code=302)


@router.get("/dashboard", response_class=HTMLResponse)
async def dashboard(request: Request):
    """Role-aware dashboard."""
    user = get_current_user(request)
    if not user:
        return RedirectResponse(url="/login", status_code=302)

    context = {
        "user": user,
        "error": ERROR_MESSAGES.get(request.query_params.get('error')),
    }

    if has_permission(user, PERM_MANAGE_BATCHES):
        batches = batch_service.list_batches()
        context['batch_summary'] = batch_service.batch_summary(batches)
        context['recent_batches'] = batches[:5]
        context['unread_notifications'] = count_unread()
        context['pending_responses'] = sum(
            1 for b in batches if b['assignment_status'] == 'PENDING'
        )

    if has_permission(user, PERM_VIEW_PURCHASE_ORDERS):
        context['purchasing'] = purchasing.purchasing_summary()

    if is_trainer(user):
        batches = batch_service.list_batches(trainer_id=user['user_id'])
        context['batch_summary'] = batch_service.batch_summary(batches)
        context['assignment_summary'] = trainer_service.trainer_summary(user['user_id'])
        context['recent_batches'] = batches[:5]

    return templates.TemplateResponse(request, "dashboard.html", context)
