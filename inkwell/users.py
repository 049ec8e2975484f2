"""
Staff accounts.  Passwords are stored as Werkzeug hashes and never leave
this module.
"""

from flask import current_app
from werkzeug.security import check_password_hash, generate_password_hash

from inkwell.db import exists, now_iso, row_dict, unique_guard, update_sql
from inkwell.errors import Conflict, NotFound
from inkwell.schemas import UserCreate, UserUpdate, changes

PUBLIC_COLS = (
    "id, email, username, first_name, last_name, role, bio, avatar_url, "
    "is_active, created_at, updated_at"
)


def _user(row) -> dict | None:
    return row_dict(row, bools=("is_active",))


def list_users(*, db) -> list[dict]:
    rows = db.execute(f"SELECT {PUBLIC_COLS} FROM user ORDER BY id").fetchall()
    return [_user(r) for r in rows]


def get_user(user_id: int, *, db) -> dict | None:
    return _user(
        db.execute(f"SELECT {PUBLIC_COLS} FROM user WHERE id=?", (user_id,)).fetchone()
    )


def display_name(user: dict | None) -> str:
    if not user:
        return ""
    full = f"{user['first_name']} {user['last_name']}".strip()
    return full or user["username"]


def create_user(data, *, db) -> dict:
    data = UserCreate.model_validate(data)
    now = now_iso()
    with unique_guard("User with this email or username"), db:
        cur = db.execute(
            """
            INSERT INTO user (email, username, password_hash, first_name,
                              last_name, role, bio, avatar_url, is_active,
                              created_at, updated_at)
                 VALUES (?,?,?,?,?,?,?,?,1,?,?)
            """,
            (
                data.email,
                data.username,
                generate_password_hash(data.password),
                data.first_name,
                data.last_name,
                data.role,
                data.bio,
                data.avatar_url,
                now,
                now,
            ),
        )
    return get_user(cur.lastrowid, db=db)


def update_user(user_id: int, data, *, db) -> dict:
    upd = changes(UserUpdate.model_validate(data))
    if not exists(db, "user", user_id):
        raise NotFound(f"User with id {user_id} not found")
    upd["updated_at"] = now_iso()
    sql, params = update_sql("user", upd)
    with unique_guard("User with this email or username"), db:
        db.execute(sql, params + (user_id,))
    return get_user(user_id, db=db)


def delete_user(user_id: int, *, db) -> bool:
    if not exists(db, "user", user_id):
        raise NotFound(f"User with id {user_id} not found")
    owned = db.execute(
        "SELECT (SELECT COUNT(*) FROM post  WHERE author_id=?)"
        "     + (SELECT COUNT(*) FROM media WHERE uploaded_by=?)",
        (user_id, user_id),
    ).fetchone()[0]
    if owned:
        raise Conflict(f"User with id {user_id} still owns posts or media")
    with db:
        db.execute("DELETE FROM user WHERE id=?", (user_id,))
    current_app.logger.info("user %s deleted", user_id)
    return True


def check_password(user_id: int, password: str, *, db) -> bool:
    row = db.execute(
        "SELECT password_hash FROM user WHERE id=?", (user_id,)
    ).fetchone()
    return bool(row) and check_password_hash(row["password_hash"], password)
