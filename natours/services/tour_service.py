import re
from decimal import Decimal
from natours.models.tour_model import TourCreate, TourUpdate
from natours.utils.app_error import AppError
from natours.utils.query_features import QueryFeatures, build_update, parse_timestamp

TOUR_COLUMNS = {
    "name": ("name", str),
    "slug": ("slug", str),
    "duration": ("duration", int),
    "maxGroupSize": ("max_group_size", int),
    "difficulty": ("difficulty", str),
    "ratingsAverage": ("ratings_average", Decimal),
    "ratingsQuantity": ("ratings_quantity", int),
    "price": ("price", int),
    "priceDiscount": ("price_discount", int),
    "summary": ("summary", str),
    "description": ("description", str),
    "imageCover": ("image_cover", str),
    "images": ("images", None),
    "startDates": ("start_dates", None),
    "createdAt": ("created_at", parse_timestamp),
}

TOP_CHEAP_QUERY = [
    ("limit", "5"),
    ("sort", "-ratingsAverage,price"),
    ("fields", "name,price,ratingsAverage,summary,difficulty"),
]


def slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


async def get_all_tours(query_items, db):
    features = (
        QueryFeatures(query_items, TOUR_COLUMNS)
        .where("secret_tour = {}", False)
        .filter()
        .sort()
        .limit_fields()
        .paginate()
    )
    select_query, values = features.build("tours")
    tours = await db.fetch(select_query, *values)
    return [dict(tour) for tour in tours], features.projected


async def get_tour(tour_id: int, db):
    tour = await db.fetchrow("SELECT * FROM tours WHERE id = $1 AND secret_tour = false", tour_id)
    if not tour:
        raise AppError("No tour found with that ID", 404)
    return dict(tour)


async def get_tour_by_slug(slug: str, db):
    tour = await db.fetchrow("SELECT * FROM tours WHERE slug = $1 AND secret_tour = false", slug)
    return dict(tour) if tour else None


async def create_tour(data: TourCreate, db):
    fields = data.model_dump()
    fields["difficulty"] = data.difficulty.value
    fields["slug"] = slugify(data.name)
    columns = ", ".join(fields)
    placeholders = ", ".join(f"${index}" for index in range(1, len(fields) + 1))
    insert_query = f"INSERT INTO tours({columns}) VALUES({placeholders}) RETURNING *"
    tour = await db.fetchrow(insert_query, *fields.values())
    return dict(tour)


async def update_tour(tour_id: int, data: TourUpdate, db):
    fields = data.model_dump(exclude_unset=True)
    if fields.get("difficulty") is not None:
        fields["difficulty"] = fields["difficulty"].value
    if fields.get("name"):
        fields["slug"] = slugify(fields["name"])
    if not fields:
        return await get_tour(tour_id, db)
    async with db.transaction():
        current = await get_tour(tour_id, db)
        price = fields.get("price", current["price"])
        discount = fields.get("price_discount", current["price_discount"])
        if discount is not None and discount >= price:
            raise AppError(f"Discount price ({discount}) should be below regular price", 400)
        update_query, values = build_update("tours", fields, tour_id)
        tour = await db.fetchrow(update_query, *values)
    return dict(tour)


async def delete_tour(tour_id: int, db):
    result = await db.execute("DELETE FROM tours WHERE id = $1", tour_id)
    if result == "DELETE 0":
        raise AppError("No tour found with that ID", 404)


async def get_tour_stats(db):
    select_query = """
        SELECT UPPER(difficulty) AS difficulty,
               COUNT(*) AS num_tours,
               SUM(ratings_quantity) AS num_ratings,
               ROUND(AVG(ratings_average), 2) AS avg_rating,
               ROUND(AVG(price), 2) AS avg_price,
               MIN(price) AS min_price,
               MAX(price) AS max_price
        FROM tours
        WHERE ratings_average >= 4.5 AND secret_tour = false
        GROUP BY difficulty
        ORDER BY avg_price ASC
    """
    stats = await db.fetch(select_query)
    return [dict(stat) for stat in stats]


async def get_monthly_plan(year: int, db):
    select_query = """
        SELECT EXTRACT(MONTH FROM start_date)::int AS month,
               COUNT(*) AS num_tour_starts,
               ARRAY_AGG(name ORDER BY name) AS tours
        FROM tours, UNNEST(start_dates) AS start_date
        WHERE start_date >= make_date($1, 1, 1) AND start_date < make_date($1 + 1, 1, 1)
          AND secret_tour = false
        GROUP BY month
        ORDER BY num_tour_starts DESC, month ASC
        LIMIT 12
    """
    plan = await db.fetch(select_query, year)
    return [dict(month) for month in plan]
