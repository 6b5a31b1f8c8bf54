import logging
import signal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from natours.server import NatoursServer, build_server, handle_uncaught_exception, serve, shutdown_complete


@pytest.fixture
def server():
    return build_server(MagicMock(), 3000)


def test_build_server_uses_port(server):
    assert isinstance(server, NatoursServer)
    assert server.config.port == 3000
    assert server.exit_code == 0


def test_uncaught_exception_exits_immediately(caplog):
    try:
        raise RuntimeError("boom")
    except RuntimeError as exc:
        info = (type(exc), exc, exc.__traceback__)

    with patch("natours.server.os._exit") as exit_, patch("natours.server.logging.shutdown"):
        with caplog.at_level(logging.CRITICAL, logger="natours.server"):
            handle_uncaught_exception(*info)

    exit_.assert_called_once_with(1)
    assert "UNCAUGHT EXCEPTION! Shutting down..." in caplog.text
    assert "RuntimeError: boom" in caplog.text


def test_unhandled_rejection_drains_then_fails(server, caplog):
    with caplog.at_level(logging.CRITICAL, logger="natours.server"):
        server.handle_unhandled_rejection(MagicMock(), {"message": "Task exception", "exception": ValueError("bad")})

    assert server.exit_code == 1
    assert server.should_exit is True
    assert "UNHANDLED REJECTION! Shutting down..." in caplog.text
    assert "ValueError: bad" in caplog.text


def test_unhandled_rejection_without_exception(server, caplog):
    with caplog.at_level(logging.CRITICAL, logger="natours.server"):
        server.handle_unhandled_rejection(MagicMock(), {"message": "Future was never retrieved"})

    assert server.exit_code == 1
    assert "Error: Future was never retrieved" in caplog.text


def test_sigterm_starts_graceful_shutdown(server, caplog):
    with caplog.at_level(logging.INFO, logger="natours.server"):
        server.handle_exit(signal.SIGTERM, None)

    assert server.should_exit is True
    assert server.exit_code == 0
    assert "SIGTERM RECEIVED. Shutting down gracefully" in caplog.text


def test_shutdown_complete_absorbs_signal():
    assert shutdown_complete(signal.SIGTERM, None) is None


@pytest.mark.asyncio
async def test_serve_returns_zero_after_clean_shutdown(server, caplog):
    server.started = True
    with patch.object(NatoursServer, "serve", AsyncMock()):
        with caplog.at_level(logging.INFO, logger="natours.server"):
            assert await serve(server) == 0

    assert "Process terminated!" in caplog.text


@pytest.mark.asyncio
async def test_serve_returns_one_after_rejection(server, caplog):
    async def fake_serve(self):
        self.started = True
        self.handle_unhandled_rejection(None, {"exception": RuntimeError("lost connection")})

    with patch.object(NatoursServer, "serve", fake_serve):
        with caplog.at_level(logging.INFO, logger="natours.server"):
            assert await serve(server) == 1

    assert "Process terminated!" not in caplog.text


@pytest.mark.asyncio
async def test_serve_returns_one_when_listener_fails(server):
    with patch.object(NatoursServer, "serve", AsyncMock()):
        assert await serve(server) == 1
