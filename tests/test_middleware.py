from unittest.mock import AsyncMock, patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from natours.utils.middleware import (
    RateLimitMiddleware,
    StaticAssetsMiddleware,
    dedupe_query,
    sanitize_value,
)
from natours.utils.templating import PUBLIC_DIR
from tests.factories import make_user


def rate_limited_app(max_requests=2, trust_proxy=False):
    app = FastAPI()

    @app.get("/api/ping")
    async def ping():
        return {"pong": True}

    @app.get("/ping")
    async def ping_outside_api():
        return {"pong": True}

    app.add_middleware(
        RateLimitMiddleware,
        max_requests=max_requests,
        window_seconds=60,
        prefix="/api",
        trust_proxy=trust_proxy,
    )
    return app


def test_rate_limit_blocks_after_max_requests():
    client = TestClient(rate_limited_app())

    first = client.get("/api/ping")
    client.get("/api/ping")
    blocked = client.get("/api/ping")

    assert first.headers["X-RateLimit-Remaining"] == "1"
    assert blocked.status_code == 429
    assert blocked.text == "Too many requests, please try again later."
    assert "Retry-After" in blocked.headers


def test_rate_limit_only_applies_to_api_prefix():
    client = TestClient(rate_limited_app(max_requests=1))

    client.get("/ping")
    client.get("/ping")

    assert client.get("/api/ping").status_code == 200


def test_rate_limit_uses_forwarded_ip_behind_proxy():
    client = TestClient(rate_limited_app(max_requests=1, trust_proxy=True))

    assert client.get("/api/ping", headers={"X-Forwarded-For": "10.0.0.1"}).status_code == 200
    assert client.get("/api/ping", headers={"X-Forwarded-For": "10.0.0.2"}).status_code == 200
    assert client.get("/api/ping", headers={"X-Forwarded-For": "10.0.0.1"}).status_code == 429


def test_sanitize_value_strips_operators_and_escapes_html():
    dirty = {
        "email": {"$gt": ""},
        "name": "<script>alert(1)</script>",
        "profile.role": "admin",
        "tags": ["<b>bold</b>", 5],
    }

    assert sanitize_value(dirty) == {
        "email": {},
        "name": "&lt;script&gt;alert(1)&lt;/script&gt;",
        "tags": ["&lt;b&gt;bold&lt;/b&gt;", 5],
    }


def test_dedupe_query_keeps_last_value_outside_whitelist():
    deduped = dedupe_query("sort=price&sort=-price&duration=5&duration=9", ["duration"])
    assert deduped == "sort=-price&duration=5&duration=9"


def test_dedupe_query_leaves_clean_queries_alone():
    assert dedupe_query("sort=price&duration=5", ["duration"]) is None


@pytest.mark.asyncio
async def test_static_misses_fall_through_to_app():
    calls = []

    async def app(scope, receive, send):
        calls.append(scope["path"])

    middleware = StaticAssetsMiddleware(app, directory=PUBLIC_DIR)
    for path in ("/../main.py", "/", "/tour/the-forest-hiker"):
        await middleware({"type": "http", "method": "GET", "path": path, "root_path": "", "headers": []}, None, None)

    assert calls == ["/../main.py", "/", "/tour/the-forest-hiker"]


def test_missing_asset_gets_uniform_not_found(client):
    response = client.get("/css/missing.css")

    assert response.status_code == 404
    assert response.json()["message"] == "Cant't find /css/missing.css on this server!"


def test_unchanged_asset_is_not_modified(client):
    first = client.get("/css/style.css")

    by_etag = client.get("/css/style.css", headers={"If-None-Match": first.headers["etag"]})
    by_date = client.get("/css/style.css", headers={"If-Modified-Since": first.headers["last-modified"]})

    assert by_etag.status_code == 304
    assert by_date.status_code == 304
    assert by_etag.content == b""


def test_static_assets_are_served(client):
    response = client.get("/css/style.css")

    assert response.status_code == 200
    assert "text/css" in response.headers["content-type"]


def test_large_assets_are_compressed(client):
    response = client.get("/js/index.js", headers={"Accept-Encoding": "gzip"})

    assert response.status_code == 200
    assert response.headers["content-encoding"] == "gzip"


def test_security_headers_are_set(client):
    response = client.get("/does-not-exist")

    assert response.headers["X-Frame-Options"] == "SAMEORIGIN"
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert "js.stripe.com" in response.headers["Content-Security-Policy"]


def test_cors_preflight_is_answered(client):
    response = client.options(
        "/api/v1/tours",
        headers={"Origin": "https://example.com", "Access-Control-Request-Method": "GET"},
    )

    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "*"


def test_oversized_body_is_rejected(client):
    payload = b'{"email": "' + b"a" * 11000 + b'", "password": "x"}'

    response = client.post("/api/v1/users/login", content=payload, headers={"Content-Type": "application/json"})

    assert response.status_code == 413
    assert response.json()["message"] == "Request body is larger than the 10kb limit"


def test_malformed_json_is_rejected(client):
    response = client.post("/api/v1/users/login", content=b"{not json", headers={"Content-Type": "application/json"})

    assert response.status_code == 400
    assert response.json()["message"] == "Invalid request body: malformed JSON"


def test_route_receives_sanitized_body(client):
    signup = AsyncMock(return_value=make_user(name="&lt;b&gt;Laura&lt;/b&gt;"))

    with patch("natours.routers.user_router.signup_service", signup):
        response = client.post(
            "/api/v1/users/signup",
            json={
                "name": "<b>Laura</b>",
                "email": "laura@example.com",
                "password": "pass1234",
                "passwordConfirm": "pass1234",
                "$where": "1 == 1",
            },
        )

    assert response.status_code == 201
    signup_data = signup.await_args.args[0]
    assert signup_data.name == "&lt;b&gt;Laura&lt;/b&gt;"
