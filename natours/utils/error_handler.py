"""Centralized error formatting.

Every error that reaches the client goes through :func:`format_error`, which
turns library exceptions into operational :class:`AppError` instances and
decides how much detail the response carries for the current environment.
"""

import logging
import re
import traceback

import asyncpg
import jwt
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from natours.utils.app_error import AppError
from natours.utils.templating import templates

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "Something went very wrong!"


def original_url(request: Request) -> str:
    query = request.url.query
    return f"{request.url.path}?{query}" if query else request.url.path


def not_found_error(request: Request) -> AppError:
    # Existing clients match on this exact wording, typo included.
    return AppError(f"Cant't find {original_url(request)} on this server!", 404)


def handle_http_exception(exc: StarletteHTTPException, request: Request) -> AppError:
    if exc.status_code == 404:
        return not_found_error(request)
    return AppError(str(exc.detail), exc.status_code)


def handle_validation_error(exc: RequestValidationError) -> AppError:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        messages.append(f"{location}: {error.get('msg')}" if location else error.get("msg"))
    return AppError(f"Invalid input data. {'. '.join(messages)}", 400)


def handle_duplicate_fields(exc: asyncpg.UniqueViolationError) -> AppError:
    detail = getattr(exc, "detail", None) or ""
    match = re.search(r"=\((.*)\)", detail)
    value = match.group(1) if match else "value"
    return AppError(f"Duplicate field value: {value}. Please use another value!", 400)


def normalize_error(exc: Exception, request: Request) -> Exception:
    if isinstance(exc, AppError):
        return exc
    if isinstance(exc, StarletteHTTPException):
        return handle_http_exception(exc, request)
    if isinstance(exc, RequestValidationError):
        return handle_validation_error(exc)
    if isinstance(exc, asyncpg.UniqueViolationError):
        return handle_duplicate_fields(exc)
    if isinstance(exc, asyncpg.DataError):
        return AppError(f"Invalid input value: {exc}", 400)
    # Client-side argument encoding failure.
    if isinstance(exc, asyncpg.exceptions.InterfaceError) and isinstance(exc, ValueError):
        return AppError(f"Invalid input value: {exc}", 400)
    if isinstance(exc, jwt.ExpiredSignatureError):
        return AppError("Your token has expired! Please log in again.", 401)
    if isinstance(exc, jwt.InvalidTokenError):
        return AppError("Invalid token. Please log in again!", 401)
    return exc


def wants_html(request: Request) -> bool:
    if request.url.path.startswith("/api"):
        return False
    return "text/html" in request.headers.get("accept", "")


def render_error_page(request: Request, message: str, status_code: int) -> Response:
    return templates.TemplateResponse(
        request,
        "error.html",
        {"title": "Something went wrong!", "msg": message},
        status_code=status_code,
    )


def send_error_dev(err: Exception, request: Request, status_code: int, status: str) -> Response:
    message = getattr(err, "message", None) or str(err)
    if wants_html(request):
        return render_error_page(request, message, status_code)
    return JSONResponse(
        status_code=status_code,
        content={
            "status": status,
            "error": {"name": type(err).__name__, "statusCode": status_code, "status": status},
            "message": message,
            "stack": "".join(traceback.format_exception(type(err), err, err.__traceback__)),
        },
    )


def send_error_prod(err: Exception, request: Request, status_code: int, status: str) -> Response:
    if getattr(err, "is_operational", False):
        if wants_html(request):
            return render_error_page(request, err.message, status_code)
        return JSONResponse(status_code=status_code, content={"status": status, "message": err.message})

    if wants_html(request):
        return render_error_page(request, "Please try again later.", 500)
    return JSONResponse(status_code=500, content={"status": "error", "message": GENERIC_ERROR_MESSAGE})


def format_error(exc: Exception, request: Request) -> Response:
    err = normalize_error(exc, request)
    status_code = getattr(err, "status_code", 500)
    status = getattr(err, "status", "error")

    if not getattr(err, "is_operational", False):
        logger.error(f"ERROR: {type(exc).__name__}: {exc}", exc_info=exc)
    elif status_code >= 500:
        logger.warning(f"{status_code} - {err}")

    settings = request.app.state.settings
    if settings.is_development:
        return send_error_dev(err, request, status_code, status)
    return send_error_prod(err, request, status_code, status)


async def app_exception_handler(request: Request, exc: Exception) -> Response:
    return format_error(exc, request)


def register_error_handlers(app: FastAPI):
    for exc_class in (
        AppError,
        StarletteHTTPException,
        RequestValidationError,
        asyncpg.PostgresError,
        jwt.InvalidTokenError,
    ):
        app.add_exception_handler(exc_class, app_exception_handler)
