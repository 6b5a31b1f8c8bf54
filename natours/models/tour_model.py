from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel
from typing import List, Optional
from datetime import datetime
from enum import Enum


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    DIFFICULT = "difficult"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TourCreate(CamelModel):
    name: str = Field(..., min_length=10, max_length=40)
    duration: int = Field(..., gt=0)
    max_group_size: int = Field(..., gt=0)
    difficulty: Difficulty
    price: int = Field(..., gt=0)
    price_discount: Optional[int] = None
    summary: str
    description: Optional[str] = None
    image_cover: str
    images: List[str] = []
    start_dates: List[datetime] = []
    secret_tour: bool = False

    @model_validator(mode="after")
    def check_discount(self):
        if self.price_discount is not None and self.price_discount >= self.price:
            raise ValueError(f"Discount price ({self.price_discount}) should be below regular price")
        return self


class TourUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=10, max_length=40)
    duration: Optional[int] = Field(None, gt=0)
    max_group_size: Optional[int] = Field(None, gt=0)
    difficulty: Optional[Difficulty] = None
    price: Optional[int] = Field(None, gt=0)
    price_discount: Optional[int] = None
    summary: Optional[str] = None
    description: Optional[str] = None
    image_cover: Optional[str] = None
    images: Optional[List[str]] = None
    start_dates: Optional[List[datetime]] = None
    secret_tour: Optional[bool] = None


class Tour(CamelModel):
    id: int
    name: str
    slug: str
    duration: int
    max_group_size: int
    difficulty: Difficulty
    ratings_average: float
    ratings_quantity: int
    price: int
    price_discount: Optional[int] = None
    summary: str
    description: Optional[str] = None
    image_cover: str
    images: List[str] = []
    start_dates: List[datetime] = []
    created_at: datetime
