from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse
from typing import Optional
import asyncpg
from natours.services.booking_service import get_booked_tours
from natours.services.review_service import get_all_reviews
from natours.services.tour_service import get_all_tours, get_tour_by_slug
from natours.utils.app_error import AppError
from natours.utils.auth import is_logged_in, protect
from natours.utils.dependencies import get_connection
from natours.utils.templating import templates

router = APIRouter(tags=["views"])

ALERTS = {
    "booking": "Your booking was successful! Please check your email for a confirmation. "
    "If your booking doesn't show up here immediately, please come back later.",
}


def alert_message(alert: Optional[str] = None) -> Optional[str]:
    return ALERTS.get(alert) if alert else None


def render(request: Request, template: str, title: str, user: Optional[dict], alert: Optional[str] = None, **context):
    return templates.TemplateResponse(
        request,
        template,
        {
            "title": title,
            "user": user,
            "alert": alert,
            "stripe_public_key": request.app.state.settings.stripe_publishable_key,
            **context,
        },
    )


@router.get("/", response_class=HTMLResponse)
async def get_overview(
    request: Request,
    user: Optional[dict] = Depends(is_logged_in),
    alert: Optional[str] = Depends(alert_message),
    db: asyncpg.Connection = Depends(get_connection),
):
    tours, _ = await get_all_tours([], db)
    return render(request, "overview.html", "All Tours", user, alert, tours=tours)


@router.get("/tour/{slug}", response_class=HTMLResponse)
async def get_tour_page(
    request: Request,
    slug: str,
    user: Optional[dict] = Depends(is_logged_in),
    db: asyncpg.Connection = Depends(get_connection),
):
    tour = await get_tour_by_slug(slug, db)
    if not tour:
        raise AppError("There is no tour with that name.", 404)
    reviews = await get_all_reviews(tour["id"], db)
    return render(request, "tour.html", f"{tour['name']} Tour", user, tour=tour, reviews=reviews)


@router.get("/login", response_class=HTMLResponse)
async def get_login_form(request: Request, user: Optional[dict] = Depends(is_logged_in)):
    return render(request, "login.html", "Log into your account", user)


@router.get("/me", response_class=HTMLResponse)
async def get_account(request: Request, user: dict = Depends(protect)):
    return render(request, "account.html", "Your account", user)


@router.get("/my-tours", response_class=HTMLResponse)
async def get_my_tours(
    request: Request,
    user: dict = Depends(protect),
    alert: Optional[str] = Depends(alert_message),
    db: asyncpg.Connection = Depends(get_connection),
):
    tours = await get_booked_tours(user["id"], db)
    return render(request, "overview.html", "My Tours", user, alert, tours=tours)
