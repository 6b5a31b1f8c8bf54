from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse
from datetime import datetime, timedelta, timezone
import asyncpg
from natours.models.user_model import (
    ForgotPasswordRequest,
    LoginRequest,
    ResetPasswordRequest,
    SignupRequest,
    UpdateMeRequest,
    UpdatePasswordRequest,
    User,
    UserUpdate,
)
from natours.services.auth_service import (
    forgot_password_service,
    login_service,
    reset_password_service,
    signup_service,
    update_password_service,
)
from natours.services.user_service import (
    deactivate_user,
    delete_user,
    get_all_users,
    get_user,
    update_me,
    update_user,
)
from natours.utils.auth import LOGGED_OUT, create_send_token, protect, restrict_to
from natours.utils.dependencies import get_connection

router = APIRouter(prefix="/api/v1/users", tags=["users"])


def base_url(request: Request) -> str:
    return str(request.base_url).rstrip("/")


@router.post("/signup")
async def signup(request: Request, signup_data: SignupRequest, db: asyncpg.Connection = Depends(get_connection)):
    new_user = await signup_service(signup_data, f"{base_url(request)}/me", request.app.state.settings, db)
    return create_send_token(new_user, 201, request)


@router.post("/login")
async def login(request: Request, login_data: LoginRequest, db: asyncpg.Connection = Depends(get_connection)):
    user_data = await login_service(login_data, db)
    return create_send_token(user_data, 200, request)


@router.get("/logout")
async def logout():
    response = JSONResponse({"status": "success"})
    response.set_cookie(
        key="jwt",
        value=LOGGED_OUT,
        expires=datetime.now(timezone.utc) + timedelta(seconds=10),
        httponly=True,
    )
    return response


@router.post("/forgotPassword")
async def forgot_password(
    request: Request,
    forgot_data: ForgotPasswordRequest,
    db: asyncpg.Connection = Depends(get_connection),
):
    reset_base_url = f"{base_url(request)}/api/v1/users/resetPassword"
    await forgot_password_service(forgot_data.email, reset_base_url, request.app.state.settings, db)
    return {"status": "success", "message": "Token sent to email!"}


@router.patch("/resetPassword/{token}")
async def reset_password(
    request: Request,
    token: str,
    reset_data: ResetPasswordRequest,
    db: asyncpg.Connection = Depends(get_connection),
):
    user_data = await reset_password_service(token, reset_data, db)
    return create_send_token(user_data, 200, request)


@router.patch("/updateMyPassword")
async def update_my_password(
    request: Request,
    password_data: UpdatePasswordRequest,
    current_user: dict = Depends(protect),
    db: asyncpg.Connection = Depends(get_connection),
):
    user_data = await update_password_service(current_user, password_data, db)
    return create_send_token(user_data, 200, request)


@router.get("/me")
async def get_me(current_user: dict = Depends(protect)):
    return {"status": "success", "data": {"data": User.model_validate(current_user)}}


@router.patch("/updateMe")
async def update_me_endpoint(
    update_data: UpdateMeRequest,
    current_user: dict = Depends(protect),
    db: asyncpg.Connection = Depends(get_connection),
):
    updated_user = await update_me(current_user["id"], update_data, db)
    return {"status": "success", "data": {"user": User.model_validate(updated_user)}}


@router.delete("/deleteMe", status_code=204)
async def delete_me(current_user: dict = Depends(protect), db: asyncpg.Connection = Depends(get_connection)):
    await deactivate_user(current_user["id"], db)
    return Response(status_code=204)


@router.get("")
async def get_all_users_endpoint(
    current_user: dict = Depends(restrict_to("admin")),
    db: asyncpg.Connection = Depends(get_connection),
):
    users = await get_all_users(db)
    return {
        "status": "success",
        "results": len(users),
        "data": {"data": [User.model_validate(user) for user in users]},
    }


@router.post("")
async def create_user_endpoint(current_user: dict = Depends(restrict_to("admin"))):
    return JSONResponse(
        status_code=500,
        content={"status": "error", "message": "This route is not defined! Please use /signup instead"},
    )


@router.get("/{user_id}")
async def get_user_endpoint(
    user_id: int,
    current_user: dict = Depends(restrict_to("admin")),
    db: asyncpg.Connection = Depends(get_connection),
):
    user_data = await get_user(user_id, db)
    return {"status": "success", "data": {"data": User.model_validate(user_data)}}


@router.patch("/{user_id}")
async def update_user_endpoint(
    user_id: int,
    update_data: UserUpdate,
    current_user: dict = Depends(restrict_to("admin")),
    db: asyncpg.Connection = Depends(get_connection),
):
    user_data = await update_user(user_id, update_data, db)
    return {"status": "success", "data": {"data": User.model_validate(user_data)}}


@router.delete("/{user_id}", status_code=204)
async def delete_user_endpoint(
    user_id: int,
    current_user: dict = Depends(restrict_to("admin")),
    db: asyncpg.Connection = Depends(get_connection),
):
    await delete_user(user_id, db)
    return Response(status_code=204)
