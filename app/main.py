"""
Main FastAPI application entry point.
TMS Portal - Training Management System
"""
import logging
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import UPLOAD_DIR
from app.database import init_database
from app.dependencies import get_current_user
from app.logging_config import configure_logging
from app.templates_config import templates
from app.workflows import WorkflowError
from app.routes import (
    auth_routes, dashboard_routes, batch_routes, trainer_routes,
    purchase_order_routes, invoice_routes, admin_routes, api_routes,
)

configure_logging()
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="TMS Portal",
    description="Training batches, trainer assignments, purchase orders and invoices",
    version="1.0.0"
)

# Setup static files
BASE_DIR = Path(__file__).resolve().parent
app.mount("/static", StaticFiles(directory=BASE_DIR / "static"), name="static")


# Initialize database on startup
@app.on_event("startup")
async def startup_event():
    UPLOAD_DIR.mkdir(parents=True, exist_ok=True)
    init_database()


# Include route modules
app.include_router(auth_routes.router, tags=["Authentication"])
app.include_router(dashboard_routes.router, tags=["Dashboard"])
app.include_router(batch_routes.router, tags=["Batches"])
app.include_router(trainer_routes.router, tags=["Trainers"])
app.include_router(purchase_order_routes.router, tags=["Purchase Orders"])
app.include_router(invoice_routes.router, tags=["Invoices"])
app.include_router(admin_routes.router, prefix="/admin", tags=["Admin"])
app.include_router(api_routes.router, prefix="/api", tags=["API"])


def is_api_request(request: Request) -> bool:
    return request.url.path.startswith("/api/")


def render_error(request: Request, status_code: int, message: str):
    return templates.TemplateResponse(
        request, "error.html",
        {"user": get_current_user(request), "error_code": status_code, "error_message": message},
        status_code=status_code
    )


# Error handlers
@app.exception_handler(WorkflowError)
async def workflow_error_handler(request: Request, exc: WorkflowError):
    if is_api_request(request):
        content = {"error": exc.message}
        if exc.details:
            content["details"] = exc.details
        return JSONResponse(status_code=exc.status_code, content=content)
    return render_error(request, exc.status_code, exc.message)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    field = str(errors[0]["loc"][-1]) if errors and errors[0].get("loc") else None
    message = f"Invalid or missing field: {field}" if field else "Invalid request"
    if is_api_request(request):
        return JSONResponse(status_code=400, content={"error": message})
    return render_error(request, 400, message)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    if is_api_request(request):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail},
                            headers=getattr(exc, "headers", None))
    if exc.status_code == 404:
        return render_error(request, 404, "Page not found")
    return render_error(request, exc.status_code, str(exc.detail))


@app.exception_handler(Exception)
async def server_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    if is_api_request(request):
        return JSONResponse(status_code=500, content={"error": "Internal server error"})
    return templates.TemplateResponse(
        request, "error.html",
        {"user": None, "error_code": 500, "error_message": "Internal server error"},
        status_code=500
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app.main:app", host="127.0.0.1", port=8000, reload=True)
