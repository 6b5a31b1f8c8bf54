from fastapi import Depends, Request
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional
from datetime import datetime, timedelta, timezone
import bcrypt
import jwt
import logging
from natours.models.user_model import User
from natours.services.user_service import get_user_by_id
from natours.utils.app_error import AppError
from natours.utils.dependencies import get_connection
import asyncpg

logger = logging.getLogger(__name__)

LOGGED_OUT = "loggedout"

security = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(12)).decode("utf-8")


def verify_password(candidate: str, password_hash: str) -> bool:
    return bcrypt.checkpw(candidate.encode("utf-8"), password_hash.encode("utf-8"))


def sign_token(user_id: int, secret: str, expires_in_days: int) -> str:
    issued_at = datetime.now(tz=timezone.utc)
    payload = {"id": user_id, "iat": issued_at, "exp": issued_at + timedelta(days=expires_in_days)}
    return jwt.encode(payload, secret, algorithm="HS256")


def decode_token(token: str, secret: str) -> dict:
    return jwt.decode(token, secret, algorithms=["HS256"])


def changed_password_after(user: dict, issued_at: int) -> bool:
    changed_at = user.get("password_changed_at")
    if not changed_at:
        return False
    return int(changed_at.timestamp()) > issued_at


def is_secure_request(request: Request) -> bool:
    return request.url.scheme == "https" or request.headers.get("x-forwarded-proto") == "https"


def create_send_token(user: dict, status_code: int, request: Request) -> JSONResponse:
    settings = request.app.state.settings
    token = sign_token(user["id"], settings.jwt_secret, settings.jwt_expires_in_days)
    response = JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(
            {"status": "success", "token": token, "data": {"user": User.model_validate(user)}}
        ),
    )
    response.set_cookie(
        key="jwt",
        value=token,
        max_age=settings.jwt_cookie_expires_in_days * 24 * 60 * 60,
        httponly=True,
        secure=is_secure_request(request),
        samesite="lax",
    )
    return response


def get_request_token(request: Request, credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    if credentials and credentials.credentials:
        return credentials.credentials
    token = request.cookies.get("jwt")
    if token and token != LOGGED_OUT:
        return token
    return None


async def protect(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: asyncpg.Connection = Depends(get_connection),
):
    token = get_request_token(request, credentials)
    if not token:
        raise AppError("You are not logged in! Please log in to get access.", 401)
    payload = decode_token(token, request.app.state.settings.jwt_secret)
    current_user = await get_user_by_id(payload.get("id"), db)
    if not current_user:
        raise AppError("The user belonging to this token does no longer exist.", 401)
    if changed_password_after(current_user, payload["iat"]):
        raise AppError("User recently changed password! Please log in again.", 401)
    request.state.user = current_user
    return current_user


def restrict_to(*roles: str):
    async def check_role(current_user: dict = Depends(protect)):
        if current_user.get("role") not in roles:
            raise AppError("You do not have permission to perform this action", 403)
        return current_user

    return check_role


async def is_logged_in(
    request: Request,
    db: asyncpg.Connection = Depends(get_connection),
):
    token = request.cookies.get("jwt")
    if not token or token == LOGGED_OUT:
        return None
    try:
        payload = decode_token(token, request.app.state.settings.jwt_secret)
    except jwt.InvalidTokenError:
        return None
    current_user = await get_user_by_id(payload.get("id"), db)
    if not current_user or changed_password_after(current_user, payload["iat"]):
        return None
    return current_user
