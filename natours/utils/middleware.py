import html
import json
import logging
import math
import time
from datetime import datetime, timezone
from typing import Iterable, Optional
from urllib.parse import parse_qsl, urlencode

from starlette.datastructures import MutableHeaders
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.requests import Request
from starlette.responses import PlainTextResponse
from starlette.staticfiles import StaticFiles
from starlette.types import ASGIApp, Receive, Scope, Send

from natours.utils.app_error import AppError
from natours.utils.error_handler import format_error

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


def request_state(scope: Scope) -> dict:
    return scope.setdefault("state", {})


def header_value(scope: Scope, name: bytes) -> str:
    for key, value in scope.get("headers", []):
        if key.lower() == name:
            return value.decode("latin-1")
    return ""


async def read_body(receive: Receive, limit: Optional[int] = None) -> bytes:
    body = b""
    more_body = True
    while more_body:
        message = await receive()
        if message["type"] == "http.disconnect":
            break
        body += message.get("body", b"")
        if limit is not None and len(body) > limit:
            raise AppError(f"Request body is larger than the {limit // 1024}kb limit", 413)
        more_body = message.get("more_body", False)
    return body


def replay_body(body: bytes, receive: Receive) -> Receive:
    sent = False

    async def replay() -> dict:
        nonlocal sent
        if not sent:
            sent = True
            return {"type": "http.request", "body": body, "more_body": False}
        return await receive()

    return replay


def replace_content_length(scope: Scope, length: int):
    headers = [(key, value) for key, value in scope.get("headers", []) if key.lower() != b"content-length"]
    headers.append((b"content-length", str(length).encode("latin-1")))
    scope["headers"] = headers


async def send_app_error(err: AppError, scope: Scope, receive: Receive, send: Send):
    response = format_error(err, Request(scope, receive))
    await response(scope, receive, send)


class ErrorBoundaryMiddleware:
    """Format any exception escaping the inner stages or routes."""

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        response_started = False

        async def send_wrapper(message):
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        except Exception as exc:
            if response_started:
                raise
            response = format_error(exc, Request(scope, receive))
            await response(scope, receive, send)


class StaticAssetsMiddleware:
    """Serve files from ``directory`` and hand every miss to the app."""

    def __init__(self, app: ASGIApp, directory):
        self.app = app
        self.files = StaticFiles(directory=directory)

    async def __call__(self, scope: Scope, receive: Receive, send: Send):
        if scope["type"] == "http" and scope["method"] in ("GET", "HEAD"):
            try:
                response = await self.files.get_response(self.files.get_path(scope), scope)
            except StarletteHTTPException as exc:
                if exc.status_code != 404:
                    raise
            else:
                await response(scope, receive, send)
                return
        await self.app(scope, receive, send)


SECURITY_HEADERS = {
    "Content-Security-Policy": (
        "default-src 'self';"
        "base-uri 'self';"
        "font-src 'self' https: data:;"
        "frame-ancestors 'self';"
        "frame-src 'self' https://js.stripe.com;"
        "img-src 'self' data:;"
        "object-src 'none';"
        "script-src 'self' https://js.stripe.com;"
        "style-src 'self' https: 'unsafe-inline';"
        "upgrade-insecure-requests"
    ),
    "Cross-Origin-Opener-Policy": "same-origin",
    "Referrer-Policy": "no-referrer",
    "Strict-Transport-Security": "max-age=15552000; includeSubDomains",
    "X-Content-Type-Options": "nosniff",
    "X-DNS-Prefetch-Control": "off",
    "X-Frame-Options": "SAMEORIGIN",
    "X-XSS-Protection": "0",
}


class SecurityHeadersMiddleware:
    def __init__(self, app: ASGIApp, headers: Optional[dict] = None):
        self.app = app
        self.headers = headers or SECURITY_HEADERS

    async def __call__(self, scope: Scope, receive: Receive, send: Send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_wrapper(message):
            if message["type"] == "http.response.start":
                headers = MutableHeaders(raw=message["headers"])
                for name, value in self.headers.items():
                    if name not in headers:
                        headers[name] = value
            await send(message)

        await self.app(scope, receive, send_wrapper)


class RequestLoggingMiddleware:
    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        started = time.perf_counter()
        status_code = 500
        length = "-"

        async def send_wrapper(message):
            nonlocal status_code, length
            if message["type"] == "http.response.start":
                status_code = message["status"]
                length = MutableHeaders(raw=message["headers"]).get("content-length", "-")
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            elapsed = (time.perf_counter() - started) * 1000
            logger.info(f"{scope['method']} {scope['path']} {status_code} {elapsed:.3f} ms - {length}")


class RateLimitMiddleware:
    """Fixed window request counter per client IP."""

    def __init__(
        self,
        app: ASGIApp,
        max_requests: int = 100,
        window_seconds: int = 15 * 60,
        prefix: str = "/api",
        trust_proxy: bool = False,
        message: str = "Too many requests, please try again later.",
    ):
        self.app = app
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.prefix = prefix
        self.trust_proxy = trust_proxy
        self.message = message
        self.hits = {}

    def client_ip(self, scope: Scope) -> str:
        if self.trust_proxy:
            forwarded = header_value(scope, b"x-forwarded-for")
            if forwarded:
                return forwarded.split(",")[0].strip()
        client = scope.get("client")
        return client[0] if client else "unknown"

    def purge(self, now: float):
        expired = [key for key, (start, _) in self.hits.items() if now - start >= self.window_seconds]
        for key in expired:
            del self.hits[key]

    def hit(self, key: str, now: float):
        if len(self.hits) > 10000:
            self.purge(now)
        window_start, count = self.hits.get(key, (now, 0))
        if now - window_start >= self.window_seconds:
            window_start, count = now, 0
        count += 1
        self.hits[key] = (window_start, count)
        return window_start, count

    async def __call__(self, scope: Scope, receive: Receive, send: Send):
        if scope["type"] != "http" or not scope["path"].startswith(self.prefix):
            await self.app(scope, receive, send)
            return

        now = time.monotonic()
        window_start, count = self.hit(self.client_ip(scope), now)
        reset_in = max(0, math.ceil(self.window_seconds - (now - window_start)))

        if count > self.max_requests:
            logger.warning(f"Rate limit exceeded for {self.client_ip(scope)} on {scope['path']}")
            response = PlainTextResponse(self.message, status_code=429, headers={"Retry-After": str(reset_in)})
            await response(scope, receive, send)
            return

        remaining = self.max_requests - count

        async def send_wrapper(message):
            if message["type"] == "http.response.start":
                headers = MutableHeaders(raw=message["headers"])
                headers["X-RateLimit-Limit"] = str(self.max_requests)
                headers["X-RateLimit-Remaining"] = str(remaining)
                headers["X-RateLimit-Reset"] = str(reset_in)
            await send(message)

        await self.app(scope, receive, send_wrapper)


class RawBodyMiddleware:
    """Capture the untouched body of the given routes before any parser runs."""

    def __init__(self, app: ASGIApp, paths: Iterable[str] = ()):
        self.app = app
        self.paths = frozenset(paths)

    async def __call__(self, scope: Scope, receive: Receive, send: Send):
        if scope["type"] == "http" and scope["method"] == "POST" and scope["path"] in self.paths:
            body = await read_body(receive)
            request_state(scope)["raw_body"] = body
            receive = replay_body(body, receive)
        await self.app(scope, receive, send)


class BodyParserMiddleware:
    def __init__(self, app: ASGIApp, limit: int = 10 * 1024):
        self.app = app
        self.limit = limit

    async def __call__(self, scope: Scope, receive: Receive, send: Send):
        if (
            scope["type"] != "http"
            or scope["method"] in ("GET", "HEAD", "OPTIONS")
            or "raw_body" in request_state(scope)
        ):
            await self.app(scope, receive, send)
            return

        content_type = header_value(scope, b"content-type").split(";")[0].strip().lower()
        if content_type not in (JSON_CONTENT_TYPE, FORM_CONTENT_TYPE):
            await self.app(scope, receive, send)
            return

        try:
            declared = header_value(scope, b"content-length")
            if declared.isdigit() and int(declared) > self.limit:
                raise AppError(f"Request body is larger than the {self.limit // 1024}kb limit", 413)
            body = await read_body(receive, self.limit)
            if content_type == JSON_CONTENT_TYPE:
                parsed = json.loads(body) if body.strip() else None
            else:
                parsed = parse_qsl(body.decode("utf-8"), keep_blank_values=True)
        except AppError as err:
            await send_app_error(err, scope, receive, send)
            return
        except ValueError:
            await send_app_error(AppError("Invalid request body: malformed JSON", 400), scope, receive, send)
            return

        state = request_state(scope)
        state["body_content_type"] = content_type
        state["parsed_body"] = parsed
        await self.app(scope, replay_body(body, receive), send)


def sanitize_value(value):
    if isinstance(value, dict):
        return {
            key: sanitize_value(item)
            for key, item in value.items()
            if not (isinstance(key, str) and (key.startswith("$") or "." in key))
        }
    if isinstance(value, list):
        return [sanitize_value(item) for item in value]
    if isinstance(value, str):
        return html.escape(value, quote=False)
    return value


def dedupe_query(query_string: str, whitelist: Iterable[str]) -> Optional[str]:
    pairs = parse_qsl(query_string, keep_blank_values=True)
    allowed = set(whitelist)
    last_index = {key: index for index, (key, _) in enumerate(pairs)}
    kept = [
        (key, value)
        for index, (key, value) in enumerate(pairs)
        if key in allowed or last_index[key] == index
    ]
    if len(kept) == len(pairs):
        return None
    return urlencode(kept)


class SanitizeMiddleware:
    """Strip query-operator keys, escape HTML and collapse polluted query parameters."""

    def __init__(self, app: ASGIApp, whitelist: Iterable[str] = ()):
        self.app = app
        self.whitelist = tuple(whitelist)

    async def __call__(self, scope: Scope, receive: Receive, send: Send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        query_string = scope.get("query_string", b"").decode("latin-1")
        if query_string:
            deduped = dedupe_query(query_string, self.whitelist)
            if deduped is not None:
                scope["query_string"] = deduped.encode("latin-1")

        state = request_state(scope)
        if "parsed_body" in state and state["parsed_body"] is not None:
            await read_body(receive)
            if state["body_content_type"] == JSON_CONTENT_TYPE:
                cleaned = sanitize_value(state["parsed_body"])
                body = json.dumps(cleaned).encode("utf-8")
            else:
                cleaned = [(key, sanitize_value(value)) for key, value in state["parsed_body"]]
                body = urlencode(cleaned).encode("utf-8")
            state["parsed_body"] = cleaned
            replace_content_length(scope, len(body))
            receive = replay_body(body, receive)

        await self.app(scope, receive, send)


class RequestTimeMiddleware:
    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send):
        if scope["type"] == "http":
            request_state(scope)["request_time"] = datetime.now(timezone.utc).isoformat()
        await self.app(scope, receive, send)
