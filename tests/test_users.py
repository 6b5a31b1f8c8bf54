import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from natours.models.user_model import LoginRequest
from natours.services.auth_service import forgot_password_service, hash_reset_token, login_service
from natours.utils.app_error import AppError
from natours.utils.auth import hash_password
from tests.factories import make_settings, make_user

SIGNUP = {"name": "Laura Wilson", "email": "Laura@Example.com", "password": "pass1234", "passwordConfirm": "pass1234"}


def test_signup_sets_cookie_and_sends_welcome(client, db):
    db.fetchrow.return_value = make_user()

    with patch("natours.services.auth_service.send_welcome_email", AsyncMock()) as welcome:
        response = client.post("/api/v1/users/signup", json=SIGNUP)

    assert response.status_code == 201
    body = response.json()
    assert body["token"]
    assert body["data"]["user"]["email"] == "laura@example.com"
    assert "passwordHash" not in body["data"]["user"]
    assert "jwt=" in response.headers["set-cookie"]
    assert "httponly" in response.headers["set-cookie"].lower()
    assert db.fetchrow.await_args.args[2] == "laura@example.com"
    welcome.assert_awaited_once()
    assert welcome.await_args.args[1] == "http://testserver/me"


def test_signup_survives_email_failure(client, db):
    db.fetchrow.return_value = make_user()

    with patch("natours.services.auth_service.send_welcome_email", AsyncMock(side_effect=RuntimeError("smtp down"))):
        response = client.post("/api/v1/users/signup", json=SIGNUP)

    assert response.status_code == 201


def test_signup_password_mismatch(client):
    response = client.post("/api/v1/users/signup", json={**SIGNUP, "passwordConfirm": "other1234"})

    assert response.status_code == 400
    assert "Passwords are not the same!" in response.json()["message"]


def test_login(client, db):
    db.fetchrow.return_value = make_user(password_hash=hash_password("pass1234"))

    response = client.post("/api/v1/users/login", json={"email": "laura@example.com", "password": "pass1234"})

    assert response.status_code == 200
    assert response.cookies.get("jwt") == response.json()["token"]


def test_login_wrong_password(client, db):
    db.fetchrow.return_value = make_user(password_hash=hash_password("pass1234"))

    response = client.post("/api/v1/users/login", json={"email": "laura@example.com", "password": "wrong-one"})

    assert response.status_code == 401
    assert response.json()["message"] == "Incorrect email or password"


def test_login_needs_credentials(client):
    response = client.post("/api/v1/users/login", json={"email": "laura@example.com"})

    assert response.status_code == 400
    assert response.json()["message"] == "Please provide email and password!"


def test_logout_replaces_cookie(client):
    response = client.get("/api/v1/users/logout")

    assert response.json() == {"status": "success"}
    assert "jwt=loggedout" in response.headers["set-cookie"]


def test_update_me_rejects_password(client, login_as):
    login_as()

    response = client.patch("/api/v1/users/updateMe", json={"password": "newpass123"})

    assert response.status_code == 400
    assert response.json()["message"] == "This route is not for password updates. Please use /updateMyPassword."


def test_update_me_only_touches_name_and_email(client, login_as, db):
    login_as()
    db.fetchrow.return_value = make_user(name="Laura W")

    response = client.patch("/api/v1/users/updateMe", json={"name": "Laura W", "role": "admin"})

    assert response.status_code == 200
    query = db.fetchrow.await_args.args[0]
    assert query.startswith("UPDATE users SET name = $1, updated_at = NOW()")
    assert "role" not in query.split("RETURNING")[0]


def test_delete_me_deactivates(client, login_as, db):
    login_as()

    response = client.delete("/api/v1/users/deleteMe")

    assert response.status_code == 204
    assert "active = false" in db.execute.await_args.args[0]


def test_create_user_points_to_signup(client, login_as):
    login_as(role="admin")

    response = client.post("/api/v1/users", json={})

    assert response.status_code == 500
    assert response.json()["message"] == "This route is not defined! Please use /signup instead"


def test_reset_password_with_bad_token(client, db):
    response = client.patch(
        "/api/v1/users/resetPassword/abc", json={"password": "newpass123", "passwordConfirm": "newpass123"}
    )

    assert response.status_code == 400
    assert response.json()["message"] == "Token is invalid or has expired"
    assert db.fetchrow.await_args.args[1] == hash_reset_token("abc")


@pytest.mark.asyncio
async def test_login_service_unknown_user(db):
    with pytest.raises(AppError) as exc_info:
        await login_service(LoginRequest(email="ghost@example.com", password="pass1234"), db)

    assert exc_info.value.status_code == 401


@pytest.mark.asyncio
async def test_forgot_password_clears_token_when_email_fails(db):
    db.fetchrow.return_value = make_user()

    with patch(
        "natours.services.auth_service.send_password_reset_email",
        AsyncMock(side_effect=RuntimeError("smtp down")),
    ):
        with pytest.raises(AppError) as exc_info:
            await forgot_password_service("laura@example.com", "http://testserver/reset", make_settings(), db)

    assert exc_info.value.status_code == 500
    assert db.execute.await_args.args[1:] == (None, None, 7)


@pytest.mark.asyncio
async def test_forgot_password_sends_unhashed_token(db):
    db.fetchrow.return_value = make_user()

    with patch("natours.services.auth_service.send_password_reset_email", AsyncMock()) as send:
        await forgot_password_service("laura@example.com", "http://testserver/reset", make_settings(), db)

    url = send.await_args.args[1]
    token = url.rsplit("/", 1)[1]
    stored_hash = db.execute.await_args.args[1]
    assert stored_hash == hash_reset_token(token)
    assert stored_hash != token


@pytest.mark.asyncio
async def test_login_keeps_event_loop_responsive(db):
    db.fetchrow.return_value = make_user(password_hash=hash_password("pass1234"))
    loop = asyncio.get_running_loop()
    gaps = []
    finished = asyncio.Event()

    async def tick():
        last = loop.time()
        while not finished.is_set():
            await asyncio.sleep(0.005)
            now = loop.time()
            gaps.append(now - last)
            last = now

    ticker = asyncio.create_task(tick())
    user = await login_service(LoginRequest(email="laura@example.com", password="pass1234"), db)
    finished.set()
    await ticker

    assert user["id"] == 7
    assert gaps
    # A bcrypt check at cost 12 takes a few hundred milliseconds on the loop thread.
    assert max(gaps) < 0.15
