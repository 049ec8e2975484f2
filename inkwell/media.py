"""
Media library metadata.  File bytes are stored elsewhere; only the
descriptive ``alt_text`` / ``caption`` may change after upload.
"""

from flask import current_app

from inkwell.db import exists, now_iso, row_dict, update_sql
from inkwell.errors import NotFound
from inkwell.schemas import MediaCreate, MediaUpdate, changes


def get_media(media_id: int, *, db) -> dict | None:
    return row_dict(db.execute("SELECT * FROM media WHERE id=?", (media_id,)).fetchone())


def create_media(data, *, db) -> dict:
    data = MediaCreate.model_validate(data)
    if not exists(db, "user", data.uploaded_by):
        raise NotFound(f"User with ID {data.uploaded_by} does not exist")

    now = now_iso()
    with db:
        cur = db.execute(
            """
            INSERT INTO media (filename, original_filename, file_path, file_size,
                               mime_type, alt_text, caption, uploaded_by,
                               created_at, updated_at)
                 VALUES (?,?,?,?,?,?,?,?,?,?)
            """,
            (
                data.filename,
                data.original_filename,
                data.file_path,
                data.file_size,
                data.mime_type,
                data.alt_text,
                data.caption,
                data.uploaded_by,
                now,
                now,
            ),
        )
    return get_media(cur.lastrowid, db=db)


def media_library(*, db, page: int = 1, limit: int = 20) -> dict:
    page, limit = max(1, page), max(1, limit)
    total = db.execute("SELECT COUNT(*) FROM media").fetchone()[0]
    rows = db.execute(
        "SELECT * FROM media ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?",
        (limit, (page - 1) * limit),
    ).fetchall()
    return {"media": [dict(r) for r in rows], "total": total}


def media_by_type(prefix: str, *, db) -> list[dict]:
    """All media whose MIME type starts with *prefix* (``image/``, ``video``…)."""
    rows = db.execute(
        "SELECT * FROM media WHERE substr(mime_type, 1, length(?)) = ? "
        "ORDER BY created_at DESC, id DESC",
        (prefix, prefix),
    ).fetchall()
    return [dict(r) for r in rows]


def update_media(media_id: int, data, *, db) -> dict:
    upd = changes(MediaUpdate.model_validate(data))
    if not exists(db, "media", media_id):
        raise NotFound(f"Media with ID {media_id} not found")
    upd["updated_at"] = now_iso()
    sql, params = update_sql("media", upd)
    with db:
        db.execute(sql, params + (media_id,))
    return get_media(media_id, db=db)


def delete_media(media_id: int, *, db) -> bool:
    if not exists(db, "media", media_id):
        raise NotFound(f"Media with ID {media_id} not found")
    with db:
        db.execute(
            "UPDATE post SET featured_image_id=NULL WHERE featured_image_id=?",
            (media_id,),
        )
        db.execute("DELETE FROM media WHERE id=?", (media_id,))
    current_app.logger.info("media %s deleted", media_id)
    return True
