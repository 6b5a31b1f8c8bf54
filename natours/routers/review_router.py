from fastapi import APIRouter, Depends, Response
from typing import Optional
import asyncpg
from natours.models.review_model import Review, ReviewCreate, ReviewUpdate
from natours.services.review_service import (
    create_review,
    delete_review,
    get_all_reviews,
    get_review,
    update_review,
)
from natours.utils.app_error import AppError
from natours.utils.auth import protect, restrict_to
from natours.utils.dependencies import get_connection

router = APIRouter(prefix="/api/v1/reviews", tags=["reviews"], dependencies=[Depends(protect)])


@router.get("")
async def get_all_reviews_endpoint(tour: Optional[int] = None, db: asyncpg.Connection = Depends(get_connection)):
    reviews = await get_all_reviews(tour, db)
    return {
        "status": "success",
        "results": len(reviews),
        "data": {"data": [Review.model_validate(review) for review in reviews]},
    }


@router.post("", status_code=201)
async def create_review_endpoint(
    review_data: ReviewCreate,
    current_user: dict = Depends(restrict_to("user")),
    db: asyncpg.Connection = Depends(get_connection),
):
    if review_data.tour is None:
        raise AppError("Review must belong to a tour.", 400)
    review = await create_review(review_data, review_data.tour, current_user["id"], db)
    return {"status": "success", "data": {"data": Review.model_validate(review)}}


@router.get("/{review_id}")
async def get_review_endpoint(review_id: int, db: asyncpg.Connection = Depends(get_connection)):
    review = await get_review(review_id, db)
    return {"status": "success", "data": {"data": Review.model_validate(review)}}


@router.patch("/{review_id}")
async def update_review_endpoint(
    review_id: int,
    review_data: ReviewUpdate,
    current_user: dict = Depends(restrict_to("user", "admin")),
    db: asyncpg.Connection = Depends(get_connection),
):
    review = await update_review(review_id, review_data, current_user, db)
    return {"status": "success", "data": {"data": Review.model_validate(review)}}


@router.delete("/{review_id}", status_code=204)
async def delete_review_endpoint(
    review_id: int,
    current_user: dict = Depends(restrict_to("user", "admin")),
    db: asyncpg.Connection = Depends(get_connection),
):
    await delete_review(review_id, current_user, db)
    return Response(status_code=204)
