"""Shared test fixtures for the Natours backend."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from natours.main import create_app
from natours.utils.auth import protect
from natours.utils.dependencies import get_connection
from tests.factories import make_settings, make_user


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def db():
    connection = MagicMock()
    connection.fetch = AsyncMock(return_value=[])
    connection.fetchrow = AsyncMock(return_value=None)
    connection.fetchval = AsyncMock(return_value=None)
    connection.execute = AsyncMock(return_value="UPDATE 1")
    return connection


@pytest.fixture
def app(settings, db):
    application = create_app(settings)

    async def override_get_connection():
        return db

    application.dependency_overrides[get_connection] = override_get_connection
    return application


@pytest.fixture
def client(app):
    pool = MagicMock()
    pool.close = AsyncMock()
    with patch("natours.main.create_pool", AsyncMock(return_value=pool)):
        with TestClient(app) as test_client:
            yield test_client


@pytest.fixture
def login_as(app):
    def _login_as(**overrides):
        user = make_user(**overrides)

        async def override_protect():
            return user

        app.dependency_overrides[protect] = override_protect
        return user

    return _login_as
