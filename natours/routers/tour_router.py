from fastapi import APIRouter, Depends, Request, Response
import asyncpg
from natours.models.review_model import Review, ReviewCreate
from natours.models.tour_model import Tour, TourCreate, TourUpdate
from natours.services.review_service import create_review, get_all_reviews
from natours.services.tour_service import (
    TOP_CHEAP_QUERY,
    create_tour,
    delete_tour,
    get_all_tours,
    get_monthly_plan,
    get_tour,
    get_tour_stats,
    update_tour,
)
from natours.utils.auth import restrict_to
from natours.utils.dependencies import get_connection
from natours.utils.query_features import camelize

router = APIRouter(prefix="/api/v1/tours", tags=["tours"])


def tours_response(request: Request, tours, projected: bool):
    data = [camelize(tour) for tour in tours] if projected else [Tour.model_validate(tour) for tour in tours]
    return {
        "status": "success",
        "requestedAt": getattr(request.state, "request_time", None),
        "results": len(data),
        "data": {"data": data},
    }


@router.get("/top-5-cheap")
async def alias_top_tours_endpoint(request: Request, db: asyncpg.Connection = Depends(get_connection)):
    tours, projected = await get_all_tours(TOP_CHEAP_QUERY, db)
    return tours_response(request, tours, projected)


@router.get("/tour-stats")
async def get_tour_stats_endpoint(db: asyncpg.Connection = Depends(get_connection)):
    stats = await get_tour_stats(db)
    return {"status": "success", "data": {"stats": [camelize(stat) for stat in stats]}}


@router.get("/monthly-plan/{year}")
async def get_monthly_plan_endpoint(
    year: int,
    current_user: dict = Depends(restrict_to("admin", "lead-guide", "guide")),
    db: asyncpg.Connection = Depends(get_connection),
):
    plan = await get_monthly_plan(year, db)
    return {"status": "success", "data": {"plan": [camelize(month) for month in plan]}}


@router.get("")
async def get_all_tours_endpoint(request: Request, db: asyncpg.Connection = Depends(get_connection)):
    tours, projected = await get_all_tours(request.query_params.multi_items(), db)
    return tours_response(request, tours, projected)


@router.post("", status_code=201)
async def create_tour_endpoint(
    tour_data: TourCreate,
    current_user: dict = Depends(restrict_to("admin", "lead-guide")),
    db: asyncpg.Connection = Depends(get_connection),
):
    tour = await create_tour(tour_data, db)
    return {"status": "success", "data": {"data": Tour.model_validate(tour)}}


@router.get("/{tour_id}")
async def get_tour_endpoint(tour_id: int, db: asyncpg.Connection = Depends(get_connection)):
    tour = await get_tour(tour_id, db)
    return {"status": "success", "data": {"data": Tour.model_validate(tour)}}


@router.patch("/{tour_id}")
async def update_tour_endpoint(
    tour_id: int,
    tour_data: TourUpdate,
    current_user: dict = Depends(restrict_to("admin", "lead-guide")),
    db: asyncpg.Connection = Depends(get_connection),
):
    tour = await update_tour(tour_id, tour_data, db)
    return {"status": "success", "data": {"data": Tour.model_validate(tour)}}


@router.delete("/{tour_id}", status_code=204)
async def delete_tour_endpoint(
    tour_id: int,
    current_user: dict = Depends(restrict_to("admin", "lead-guide")),
    db: asyncpg.Connection = Depends(get_connection),
):
    await delete_tour(tour_id, db)
    return Response(status_code=204)


@router.get("/{tour_id}/reviews")
async def get_tour_reviews_endpoint(tour_id: int, db: asyncpg.Connection = Depends(get_connection)):
    reviews = await get_all_reviews(tour_id, db)
    return {
        "status": "success",
        "results": len(reviews),
        "data": {"data": [Review.model_validate(review) for review in reviews]},
    }


@router.post("/{tour_id}/reviews", status_code=201)
async def create_tour_review_endpoint(
    tour_id: int,
    review_data: ReviewCreate,
    current_user: dict = Depends(restrict_to("user")),
    db: asyncpg.Connection = Depends(get_connection),
):
    review = await create_review(review_data, tour_id, current_user["id"], db)
    return {"status": "success", "data": {"data": Review.model_validate(review)}}
