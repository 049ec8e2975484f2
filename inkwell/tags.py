"""
Tags and their many-to-many link to posts (``post_tag``).
"""

from flask import current_app

from inkwell.db import exists, now_iso, row_dict, unique_guard, update_sql
from inkwell.errors import NotFound
from inkwell.schemas import TagCreate, TagUpdate, changes
from inkwell.search import like_pattern


def list_tags(*, db) -> list[dict]:
    return [dict(r) for r in db.execute("SELECT * FROM tag ORDER BY name, id")]


def get_tag(tag_id: int, *, db) -> dict | None:
    return row_dict(db.execute("SELECT * FROM tag WHERE id=?", (tag_id,)).fetchone())


def get_tag_by_slug(slug: str, *, db) -> dict | None:
    return row_dict(db.execute("SELECT * FROM tag WHERE slug=?", (slug,)).fetchone())


def create_tag(data, *, db) -> dict:
    data = TagCreate.model_validate(data)
    now = now_iso()
    with unique_guard(f"Tag slug '{data.slug}'"), db:
        cur = db.execute(
            "INSERT INTO tag (name, slug, description, created_at, updated_at) "
            "VALUES (?,?,?,?,?)",
            (data.name, data.slug, data.description, now, now),
        )
    return get_tag(cur.lastrowid, db=db)


def update_tag(tag_id: int, data, *, db) -> dict:
    upd = changes(TagUpdate.model_validate(data))
    if not exists(db, "tag", tag_id):
        raise NotFound(f"Tag with ID {tag_id} not found")

    upd["updated_at"] = now_iso()
    sql, params = update_sql("tag", upd)
    with unique_guard("Tag slug"), db:
        db.execute(sql, params + (tag_id,))
    return get_tag(tag_id, db=db)


def delete_tag(tag_id: int, *, db) -> bool:
    if not exists(db, "tag", tag_id):
        raise NotFound(f"Tag with ID {tag_id} not found")
    with db:
        db.execute("DELETE FROM post_tag WHERE tag_id=?", (tag_id,))
        db.execute("DELETE FROM tag WHERE id=?", (tag_id,))
    current_app.logger.info("tag %s deleted", tag_id)
    return True


def popular_tags(*, db, limit: int = 10) -> list[dict]:
    """Tags with a ``post_count``, most used first (unused tags included last)."""
    rows = db.execute(
        """
        SELECT t.*, COUNT(pt.post_id) AS post_count
          FROM tag t
          LEFT JOIN post_tag pt ON pt.tag_id = t.id
      GROUP BY t.id
      ORDER BY post_count DESC, t.name ASC
         LIMIT ?
        """,
        (limit,),
    ).fetchall()
    return [dict(r) for r in rows]


def search_tags(query: str, *, db) -> list[dict]:
    query = (query or "").strip()
    if not query:
        return []
    like = like_pattern(query)
    rows = db.execute(
        "SELECT * FROM tag "
        "WHERE casefold(name) LIKE ? ESCAPE '\\' OR casefold(slug) LIKE ? ESCAPE '\\' "
        "ORDER BY name, id",
        (like, like),
    ).fetchall()
    return [dict(r) for r in rows]
