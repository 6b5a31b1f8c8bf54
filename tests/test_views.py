from unittest.mock import AsyncMock, patch

from natours.utils.auth import sign_token
from tests.factories import make_tour, make_user


def test_overview_renders_tours(client, db):
    db.fetch.return_value = [make_tour()]

    response = client.get("/")

    assert response.status_code == 200
    assert "text/html" in response.headers["content-type"]
    assert "The Forest Hiker" in response.text
    assert 'href="/login"' in response.text


def test_overview_shows_booking_alert(client):
    response = client.get("/?alert=booking")

    assert 'data-alert="Your booking was successful!' in response.text


def test_tour_page(client, db):
    db.fetchrow.return_value = make_tour()
    db.fetch.return_value = []

    response = client.get("/tour/the-forest-hiker")

    assert response.status_code == 200
    assert "The Forest Hiker tour" in response.text
    assert "Log in to book tour" in response.text


def test_tour_page_shows_booking_button_when_logged_in(client, db, settings):
    db.fetchrow.return_value = make_tour()
    client.cookies.set("jwt", sign_token(7, settings.jwt_secret, 1))

    with patch("natours.utils.auth.get_user_by_id", AsyncMock(return_value=make_user())):
        response = client.get("/tour/the-forest-hiker")

    assert 'data-tour-id="3"' in response.text


def test_missing_tour_page(client, db):
    response = client.get("/tour/nowhere", headers={"Accept": "text/html"})

    assert response.status_code == 404
    assert "There is no tour with that name." in response.text


def test_account_page_requires_login(client):
    assert client.get("/me").status_code == 401


def test_account_page(client, login_as):
    login_as()

    response = client.get("/me")

    assert response.status_code == 200
    assert "Laura" in response.text


def test_login_page(client):
    response = client.get("/login")

    assert response.status_code == 200
    assert "<form" in response.text
