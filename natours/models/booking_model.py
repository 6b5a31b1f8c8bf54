from pydantic import Field
from typing import Optional
from datetime import datetime
from natours.models.tour_model import CamelModel


class CheckoutSession(CamelModel):
    id: str
    url: Optional[str] = None


class BookingCreate(CamelModel):
    tour: int
    user: int
    price: int = Field(..., gt=0)
    paid: bool = True


class BookingUpdate(CamelModel):
    price: Optional[int] = Field(None, gt=0)
    paid: Optional[bool] = None


class Booking(CamelModel):
    id: int
    tour: int
    user: int
    price: int
    paid: bool
    tour_name: Optional[str] = None
    user_email: Optional[str] = None
    created_at: datetime
