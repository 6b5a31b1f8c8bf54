import logging
import stripe
from starlette.concurrency import run_in_threadpool
from natours.config import Settings
from natours.models.booking_model import BookingCreate, BookingUpdate, CheckoutSession
from natours.services.user_service import get_user_by_email
from natours.utils.app_error import AppError
from natours.utils.query_features import build_update

logger = logging.getLogger(__name__)

BOOKING_SELECT = """
    SELECT b.id, b.tour_id AS tour, b.user_id AS "user", b.price, b.paid, b.created_at,
           t.name AS tour_name, u.email AS user_email
    FROM bookings b
    JOIN tours t ON t.id = b.tour_id
    JOIN users u ON u.id = b.user_id
"""


async def create_checkout_session(tour: dict, user: dict, base_url: str, settings: Settings):
    try:
        checkout_session = await run_in_threadpool(
            stripe.checkout.Session.create,
            api_key=settings.stripe_secret_key,
            payment_method_types=["card"],
            mode="payment",
            success_url=f"{base_url}/my-tours?alert=booking",
            cancel_url=f"{base_url}/tour/{tour['slug']}",
            customer_email=user["email"],
            client_reference_id=str(tour["id"]),
            line_items=[
                {
                    "quantity": 1,
                    "price_data": {
                        "currency": "usd",
                        "unit_amount": tour["price"] * 100,
                        "product_data": {
                            "name": f"{tour['name']} Tour",
                            "description": tour["summary"],
                            "images": [f"{base_url}/img/tours/{tour['image_cover']}"],
                        },
                    },
                }
            ],
        )
    except stripe.StripeError as e:
        logger.error(f"Stripe checkout session for tour {tour['id']} failed: {e}")
        raise AppError(f"Unable to create the checkout session: {e.user_message or 'payment provider error'}", 400)
    logger.info(f"Created checkout session {checkout_session.id} for tour {tour['id']} and user {user['id']}")
    return CheckoutSession(id=checkout_session.id, url=checkout_session.url)


async def handle_webhook(payload: bytes, sig_header: str, settings: Settings, db):
    try:
        event = stripe.Webhook.construct_event(payload, sig_header, settings.stripe_webhook_secret)
    except ValueError as e:
        logger.warning(f"Invalid webhook payload: {e}")
        raise AppError(f"Webhook error: {e}", 400)
    except stripe.SignatureVerificationError as e:
        logger.warning(f"Webhook signature verification failed: {e}")
        raise AppError(f"Webhook error: {e}", 400)

    if event["type"] == "checkout.session.completed":
        await create_booking_checkout(event["data"]["object"], db)
    else:
        logger.info(f"Unhandled webhook event: {event['type']}")
    return {"received": True}


def as_dict(obj) -> dict:
    if isinstance(obj, stripe.StripeObject):
        return obj.to_dict()
    return dict(obj or {})


async def create_booking_checkout(session, db):
    session = as_dict(session)
    customer_details = as_dict(session.get("customer_details"))
    email = session.get("customer_email") or customer_details.get("email")
    try:
        tour_id = int(session["client_reference_id"])
    except (KeyError, TypeError, ValueError):
        logger.warning(f"Checkout session {session.get('id')} has no usable client_reference_id")
        raise AppError("Webhook error: checkout session has no valid client_reference_id", 400)
    user_data = await get_user_by_email(email, db) if email else None
    if not user_data:
        logger.warning(f"Checkout session {session['id']} has no matching user ({email})")
        return None
    tour = await db.fetchrow("SELECT id FROM tours WHERE id = $1", tour_id)
    if not tour:
        logger.warning(f"Checkout session {session['id']} references unknown tour {tour_id}")
        return None

    insert_query = """
        INSERT INTO bookings(tour_id, user_id, price, stripe_session_id)
        VALUES($1, $2, $3, $4)
        ON CONFLICT (stripe_session_id) DO NOTHING
        RETURNING id
    """
    price = (session.get("amount_total") or 0) // 100
    booking_id = await db.fetchval(insert_query, tour_id, user_data["id"], price, session["id"])
    if booking_id is None:
        logger.info(f"Checkout session {session['id']} was already booked")
    else:
        logger.info(f"Booking {booking_id} created from checkout session {session['id']}")
    return booking_id


async def get_all_bookings(db):
    bookings = await db.fetch(BOOKING_SELECT + " ORDER BY b.created_at DESC")
    return [dict(booking) for booking in bookings]


async def get_booking(booking_id: int, db):
    booking = await db.fetchrow(BOOKING_SELECT + " WHERE b.id = $1", booking_id)
    if not booking:
        raise AppError("No booking found with that ID", 404)
    return dict(booking)


async def create_booking(data: BookingCreate, db):
    insert_query = "INSERT INTO bookings(tour_id, user_id, price, paid) VALUES($1, $2, $3, $4) RETURNING id"
    booking_id = await db.fetchval(insert_query, data.tour, data.user, data.price, data.paid)
    return await get_booking(booking_id, db)


async def update_booking(booking_id: int, data: BookingUpdate, db):
    fields = data.model_dump(exclude_unset=True)
    if fields:
        update_query, values = build_update("bookings", fields, booking_id, "id")
        if await db.fetchval(update_query, *values) is None:
            raise AppError("No booking found with that ID", 404)
    return await get_booking(booking_id, db)


async def delete_booking(booking_id: int, db):
    result = await db.execute("DELETE FROM bookings WHERE id = $1", booking_id)
    if result == "DELETE 0":
        raise AppError("No booking found with that ID", 404)


async def get_booked_tours(user_id: int, db):
    select_query = """
        SELECT DISTINCT t.* FROM tours t
        JOIN bookings b ON b.tour_id = t.id
        WHERE b.user_id = $1
        ORDER BY t.name
    """
    tours = await db.fetch(select_query, user_id)
    return [dict(tour) for tour in tours]
