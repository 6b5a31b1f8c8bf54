"""Factories for settings and database rows used across tests."""

from datetime import datetime, timezone

from natours.config import Settings

CREATED_AT = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_settings(**overrides) -> Settings:
    values = {
        "node_env": "development",
        "port": 3000,
        "database": "postgresql://natours:<password>@localhost:5432/natours",
        "database_password": "secret",
        "jwt_secret": "test-jwt-secret-that-is-long-enough",
        "stripe_secret_key": "sk_test_123",
        "stripe_publishable_key": "pk_test_123",
        "stripe_webhook_secret": "whsec_test",
        "resend_api_key": "re_test",
    }
    values.update(overrides)
    return Settings(**values)


def make_user(**overrides) -> dict:
    user = {
        "id": 7,
        "name": "Laura Wilson",
        "email": "laura@example.com",
        "photo": "default.jpg",
        "role": "user",
        "password_hash": "$2b$12$hash",
        "password_changed_at": None,
        "active": True,
        "created_at": CREATED_AT,
    }
    user.update(overrides)
    return user


def make_tour(**overrides) -> dict:
    tour = {
        "id": 3,
        "name": "The Forest Hiker",
        "slug": "the-forest-hiker",
        "duration": 5,
        "max_group_size": 25,
        "difficulty": "easy",
        "ratings_average": 4.7,
        "ratings_quantity": 37,
        "price": 397,
        "price_discount": None,
        "summary": "Breathtaking hike through the Canadian Banff National Park",
        "description": "Lorem ipsum",
        "image_cover": "tour-1-cover.jpg",
        "images": [],
        "start_dates": [],
        "secret_tour": False,
        "created_at": CREATED_AT,
    }
    tour.update(overrides)
    return tour


