from fastapi import APIRouter, Depends, Request, Response
import asyncpg
from natours.models.booking_model import Booking, BookingCreate, BookingUpdate
from natours.services.booking_service import (
    create_booking,
    create_checkout_session,
    delete_booking,
    get_all_bookings,
    get_booking,
    handle_webhook,
    update_booking,
)
from natours.services.tour_service import get_tour
from natours.utils.auth import protect, restrict_to
from natours.utils.dependencies import get_connection

router = APIRouter(prefix="/api/v1/bookings", tags=["bookings"], dependencies=[Depends(protect)])

webhook_router = APIRouter(tags=["webhook"])


@router.get("/checkout-session/{tour_id}")
async def get_checkout_session_endpoint(
    request: Request,
    tour_id: int,
    current_user: dict = Depends(protect),
    db: asyncpg.Connection = Depends(get_connection),
):
    tour = await get_tour(tour_id, db)
    base_url = str(request.base_url).rstrip("/")
    session = await create_checkout_session(tour, current_user, base_url, request.app.state.settings)
    return {"status": "success", "session": session}


@router.get("")
async def get_all_bookings_endpoint(
    current_user: dict = Depends(restrict_to("admin", "lead-guide")),
    db: asyncpg.Connection = Depends(get_connection),
):
    bookings = await get_all_bookings(db)
    return {
        "status": "success",
        "results": len(bookings),
        "data": {"data": [Booking.model_validate(booking) for booking in bookings]},
    }


@router.post("", status_code=201)
async def create_booking_endpoint(
    booking_data: BookingCreate,
    current_user: dict = Depends(restrict_to("admin", "lead-guide")),
    db: asyncpg.Connection = Depends(get_connection),
):
    booking = await create_booking(booking_data, db)
    return {"status": "success", "data": {"data": Booking.model_validate(booking)}}


@router.get("/{booking_id}")
async def get_booking_endpoint(
    booking_id: int,
    current_user: dict = Depends(restrict_to("admin", "lead-guide")),
    db: asyncpg.Connection = Depends(get_connection),
):
    booking = await get_booking(booking_id, db)
    return {"status": "success", "data": {"data": Booking.model_validate(booking)}}


@router.patch("/{booking_id}")
async def update_booking_endpoint(
    booking_id: int,
    booking_data: BookingUpdate,
    current_user: dict = Depends(restrict_to("admin", "lead-guide")),
    db: asyncpg.Connection = Depends(get_connection),
):
    booking = await update_booking(booking_id, booking_data, db)
    return {"status": "success", "data": {"data": Booking.model_validate(booking)}}


@router.delete("/{booking_id}", status_code=204)
async def delete_booking_endpoint(
    booking_id: int,
    current_user: dict = Depends(restrict_to("admin", "lead-guide")),
    db: asyncpg.Connection = Depends(get_connection),
):
    await delete_booking(booking_id, db)
    return Response(status_code=204)


@webhook_router.post("/webhook-checkout")
async def webhook_checkout_endpoint(request: Request, db: asyncpg.Connection = Depends(get_connection)):
    payload = getattr(request.state, "raw_body", None)
    if payload is None:
        payload = await request.body()
    sig_header = request.headers.get("stripe-signature", "")
    return await handle_webhook(payload, sig_header, request.app.state.settings, db)
