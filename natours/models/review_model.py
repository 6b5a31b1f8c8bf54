from pydantic import Field
from typing import Optional
from datetime import datetime
from natours.models.tour_model import CamelModel


class ReviewCreate(CamelModel):
    review: str = Field(..., min_length=1)
    rating: int = Field(..., ge=1, le=5)
    tour: Optional[int] = None
    user: Optional[int] = None


class ReviewUpdate(CamelModel):
    review: Optional[str] = Field(None, min_length=1)
    rating: Optional[int] = Field(None, ge=1, le=5)


class Review(CamelModel):
    id: int
    review: str
    rating: int
    tour: int
    user: int
    user_name: Optional[str] = None
    user_photo: Optional[str] = None
    created_at: datetime
