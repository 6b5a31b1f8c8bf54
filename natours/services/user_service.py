from natours.models.user_model import UpdateMeRequest, UserUpdate
from natours.utils.app_error import AppError
from natours.utils.query_features import build_update

USER_COLUMNS = "id, name, email, photo, role, password_hash, password_changed_at, active, created_at"


async def get_user_by_id(user_id, db):
    if user_id is None:
        return None
    select_query = f"SELECT {USER_COLUMNS} FROM users WHERE id = $1 AND active = true"
    user_data = await db.fetchrow(select_query, int(user_id))
    return dict(user_data) if user_data else None


async def get_user_by_email(email: str, db):
    select_query = f"SELECT {USER_COLUMNS} FROM users WHERE email = $1 AND active = true"
    user_data = await db.fetchrow(select_query, email.lower())
    return dict(user_data) if user_data else None


async def get_user_by_reset_token(hashed_token: str, db):
    select_query = (
        f"SELECT {USER_COLUMNS} FROM users "
        "WHERE password_reset_token = $1 AND password_reset_expires > NOW() AND active = true"
    )
    user_data = await db.fetchrow(select_query, hashed_token)
    return dict(user_data) if user_data else None


async def get_all_users(db):
    users = await db.fetch(f"SELECT {USER_COLUMNS} FROM users WHERE active = true ORDER BY id")
    return [dict(user) for user in users]


async def get_user(user_id: int, db):
    user_data = await get_user_by_id(user_id, db)
    if not user_data:
        raise AppError("No user found with that ID", 404)
    return user_data


async def create_user(name: str, email: str, password_hash: str, db):
    insert_query = f"INSERT INTO users(name, email, password_hash) VALUES($1, $2, $3) RETURNING {USER_COLUMNS}"
    user_data = await db.fetchrow(insert_query, name, email.lower(), password_hash)
    return dict(user_data)


async def update_user(user_id: int, data: UserUpdate, db):
    fields = data.model_dump(exclude_unset=True)
    if "email" in fields:
        fields["email"] = fields["email"].lower()
    if "role" in fields:
        fields["role"] = fields["role"].value
    if not fields:
        return await get_user(user_id, db)
    query, values = build_update("users", fields, user_id, USER_COLUMNS, touch="updated_at")
    user_data = await db.fetchrow(query, *values)
    if not user_data:
        raise AppError("No user found with that ID", 404)
    return dict(user_data)


async def update_me(user_id: int, data: UpdateMeRequest, db):
    if data.password is not None or data.password_confirm is not None:
        raise AppError("This route is not for password updates. Please use /updateMyPassword.", 400)
    allowed = UserUpdate(**data.model_dump(include={"name", "email"}, exclude_unset=True))
    return await update_user(user_id, allowed, db)


async def deactivate_user(user_id: int, db):
    await db.execute("UPDATE users SET active = false, updated_at = NOW() WHERE id = $1", user_id)


async def delete_user(user_id: int, db):
    result = await db.execute("DELETE FROM users WHERE id = $1", user_id)
    if result == "DELETE 0":
        raise AppError("No user found with that ID", 404)


async def set_password(user_id: int, password_hash: str, db):
    update_query = (
        "UPDATE users SET password_hash = $1, password_changed_at = NOW() - INTERVAL '1 second', "
        "password_reset_token = NULL, password_reset_expires = NULL, updated_at = NOW() "
        f"WHERE id = $2 RETURNING {USER_COLUMNS}"
    )
    user_data = await db.fetchrow(update_query, password_hash, user_id)
    return dict(user_data)


async def set_reset_token(user_id: int, hashed_token, expires_at, db):
    update_query = "UPDATE users SET password_reset_token = $1, password_reset_expires = $2 WHERE id = $3"
    await db.execute(update_query, hashed_token, expires_at, user_id)
