import hashlib
import logging
import secrets
from datetime import datetime, timedelta, timezone
from starlette.concurrency import run_in_threadpool
from natours.config import Settings
from natours.models.user_model import (
    LoginRequest,
    ResetPasswordRequest,
    SignupRequest,
    UpdatePasswordRequest,
)
from natours.services.mail_service import send_password_reset_email, send_welcome_email
from natours.services.user_service import (
    create_user,
    get_user_by_email,
    get_user_by_reset_token,
    set_password,
    set_reset_token,
)
from natours.utils.app_error import AppError
from natours.utils.auth import hash_password, verify_password

logger = logging.getLogger(__name__)

RESET_TOKEN_TTL = timedelta(minutes=10)


def hash_reset_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


async def signup_service(data: SignupRequest, account_url: str, settings: Settings, db):
    password_hash = await run_in_threadpool(hash_password, data.password)
    new_user = await create_user(data.name, data.email, password_hash, db)
    try:
        await send_welcome_email(new_user, account_url, settings)
    except Exception as e:
        logger.error(f"Welcome email to {new_user['email']} failed: {e}")
    return new_user


async def login_service(data: LoginRequest, db):
    if not data.email or not data.password:
        raise AppError("Please provide email and password!", 400)
    user_data = await get_user_by_email(data.email, db)
    if not user_data:
        raise AppError("Incorrect email or password", 401)
    if not await run_in_threadpool(verify_password, data.password, user_data["password_hash"]):
        raise AppError("Incorrect email or password", 401)
    return user_data


async def forgot_password_service(email: str, reset_base_url: str, settings: Settings, db):
    user_data = await get_user_by_email(email, db)
    if not user_data:
        raise AppError("There is no user with that email address.", 404)

    reset_token = secrets.token_hex(32)
    expires_at = datetime.now(timezone.utc) + RESET_TOKEN_TTL
    await set_reset_token(user_data["id"], hash_reset_token(reset_token), expires_at, db)

    try:
        await send_password_reset_email(user_data, f"{reset_base_url}/{reset_token}", settings)
    except Exception as e:
        logger.error(f"Password reset email to {user_data['email']} failed: {e}")
        await set_reset_token(user_data["id"], None, None, db)
        raise AppError("There was an error sending the email. Try again later!", 500)


async def reset_password_service(token: str, data: ResetPasswordRequest, db):
    user_data = await get_user_by_reset_token(hash_reset_token(token), db)
    if not user_data:
        raise AppError("Token is invalid or has expired", 400)
    password_hash = await run_in_threadpool(hash_password, data.password)
    return await set_password(user_data["id"], password_hash, db)


async def update_password_service(current_user: dict, data: UpdatePasswordRequest, db):
    if not await run_in_threadpool(verify_password, data.password_current, current_user["password_hash"]):
        raise AppError("Your current password is wrong.", 401)
    password_hash = await run_in_threadpool(hash_password, data.password)
    return await set_password(current_user["id"], password_hash, db)
