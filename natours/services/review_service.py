from typing import Optional
from natours.models.review_model import ReviewCreate, ReviewUpdate
from natours.utils.app_error import AppError
from natours.utils.query_features import build_update

REVIEW_SELECT = """
    SELECT r.id, r.review, r.rating, r.tour_id AS tour, r.user_id AS "user",
           u.name AS user_name, u.photo AS user_photo, r.created_at
    FROM reviews r
    JOIN users u ON u.id = r.user_id
"""


async def calc_average_ratings(tour_id: int, db):
    update_query = """
        UPDATE tours
        SET ratings_quantity = stats.quantity,
            ratings_average = COALESCE(ROUND(stats.average, 1), 4.5)
        FROM (SELECT COUNT(*) AS quantity, AVG(rating) AS average FROM reviews WHERE tour_id = $1) AS stats
        WHERE tours.id = $1
    """
    await db.execute(update_query, tour_id)


async def get_all_reviews(tour_id: Optional[int], db):
    if tour_id is not None:
        reviews = await db.fetch(REVIEW_SELECT + " WHERE r.tour_id = $1 ORDER BY r.created_at DESC", tour_id)
    else:
        reviews = await db.fetch(REVIEW_SELECT + " ORDER BY r.created_at DESC")
    return [dict(review) for review in reviews]


async def get_review(review_id: int, db):
    review = await db.fetchrow(REVIEW_SELECT + " WHERE r.id = $1", review_id)
    if not review:
        raise AppError("No review found with that ID", 404)
    return dict(review)


async def create_review(data: ReviewCreate, tour_id: int, user_id: int, db):
    async with db.transaction():
        tour = await db.fetchrow("SELECT id FROM tours WHERE id = $1", tour_id)
        if not tour:
            raise AppError("No tour found with that ID", 404)
        insert_query = "INSERT INTO reviews(review, rating, tour_id, user_id) VALUES($1, $2, $3, $4) RETURNING id"
        review_id = await db.fetchval(insert_query, data.review, data.rating, tour_id, user_id)
        await calc_average_ratings(tour_id, db)
    return await get_review(review_id, db)


def check_review_owner(review: dict, current_user: dict):
    if current_user.get("role") != "admin" and review["user"] != current_user["id"]:
        raise AppError("You can only change your own reviews", 403)


async def update_review(review_id: int, data: ReviewUpdate, current_user: dict, db):
    fields = data.model_dump(exclude_unset=True)
    async with db.transaction():
        review = await get_review(review_id, db)
        check_review_owner(review, current_user)
        if fields:
            update_query, values = build_update("reviews", fields, review_id, "id")
            await db.execute(update_query, *values)
            await calc_average_ratings(review["tour"], db)
    return await get_review(review_id, db)


async def delete_review(review_id: int, current_user: dict, db):
    async with db.transaction():
        review = await get_review(review_id, db)
        check_review_owner(review, current_user)
        await db.execute("DELETE FROM reviews WHERE id = $1", review_id)
        await calc_average_ratings(review["tour"], db)
