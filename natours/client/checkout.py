import asyncio
import logging
import webbrowser
from typing import Callable, Optional, Protocol

import httpx

from natours.client.alerts import AlertPresenter

logger = logging.getLogger(__name__)

CHECKOUT_SESSION_PATH = "/api/v1/bookings/checkout-session/{tour_id}"


class CheckoutError(Exception):
    pass


class Redirector(Protocol):
    async def redirect_to_checkout(self, session_id: str, url: Optional[str] = None) -> None: ...


class HostedCheckoutRedirector:
    """Send the user to the payment processor's hosted checkout page."""

    def __init__(self, opener: Callable[[str], bool] = webbrowser.open):
        self.opener = opener

    async def redirect_to_checkout(self, session_id: str, url: Optional[str] = None) -> None:
        if not url:
            raise CheckoutError(f"No checkout URL for session {session_id}")
        logger.info(f"Redirecting to checkout session {session_id}")
        await asyncio.to_thread(self.opener, url)


def error_message(err: Exception) -> str:
    if isinstance(err, httpx.HTTPStatusError):
        try:
            return err.response.json().get("message") or str(err)
        except ValueError:
            return str(err)
    return str(err)


class CheckoutInitiator:
    def __init__(self, client: httpx.AsyncClient, redirector: Redirector, alerts: AlertPresenter):
        self.client = client
        self.redirector = redirector
        self.alerts = alerts

    async def fetch_session(self, tour_id: str) -> dict:
        response = await self.client.get(CHECKOUT_SESSION_PATH.format(tour_id=tour_id))
        response.raise_for_status()
        session = (response.json() or {}).get("session") or {}
        if not session.get("id"):
            raise CheckoutError("Checkout session id missing from response")
        return session

    async def book_tour(self, tour_id: str) -> None:
        if not tour_id:
            raise ValueError("tour_id must not be empty")
        try:
            session = await self.fetch_session(tour_id)
            await self.redirector.redirect_to_checkout(session_id=session["id"], url=session.get("url"))
        except Exception as err:
            logger.error(f"Checkout for tour {tour_id} failed: {err}")
            self.alerts.show("error", error_message(err))
