"""
Posts: CRUD, publishing lifecycle, tag links, related posts, duplication.
"""

from flask import current_app

from inkwell.db import exists, now_iso, row_dict, to_iso, unique_guard, update_sql
from inkwell.errors import InvalidOperation, NotFound
from inkwell.schemas import PostCreate, PostUpdate, changes
from inkwell.search import search_posts


def _with_tags(post: dict | None, *, db) -> dict | None:
    if post is None:
        return None
    post["tag_ids"] = post_tag_ids(post["id"], db=db)
    return post


def post_tag_ids(post_id: int, *, db) -> list[int]:
    return [
        r["tag_id"]
        for r in db.execute(
            "SELECT tag_id FROM post_tag WHERE post_id=? ORDER BY tag_id", (post_id,)
        )
    ]


def get_post(post_id: int, *, db) -> dict | None:
    row = db.execute("SELECT * FROM post WHERE id=?", (post_id,)).fetchone()
    return _with_tags(row_dict(row), db=db)


def get_post_by_slug(slug: str, *, db) -> dict | None:
    row = db.execute("SELECT * FROM post WHERE slug=?", (slug,)).fetchone()
    return _with_tags(row_dict(row), db=db)


def list_posts(filters=None, *, db) -> dict:
    return search_posts(filters, db=db)


def _check_refs(fields: dict, *, db) -> None:
    """NotFound for any referenced author / category / image / tag that is missing."""
    if fields.get("author_id") is not None and not exists(
        db, "user", fields["author_id"]
    ):
        raise NotFound(f"Author with ID {fields['author_id']} does not exist")
    if fields.get("category_id") is not None and not exists(
        db, "category", fields["category_id"]
    ):
        raise NotFound(f"Category with ID {fields['category_id']} does not exist")
    if fields.get("featured_image_id") is not None and not exists(
        db, "media", fields["featured_image_id"]
    ):
        raise NotFound(f"Media with ID {fields['featured_image_id']} does not exist")
    for tag_id in fields.get("tag_ids") or ():
        if not exists(db, "tag", tag_id):
            raise NotFound(f"Tag with ID {tag_id} does not exist")


def sync_post_tags(post_id: int, tag_ids, *, db) -> None:
    """
    Bring ``post_tag`` in line with *tag_ids* for *post_id*.
    Runs inside the caller's transaction (no commit here).
    """
    want = set(tag_ids or ())
    cur = set(post_tag_ids(post_id, db=db))
    now = now_iso()
    for t in want - cur:
        db.execute(
            "INSERT INTO post_tag (post_id, tag_id, created_at) VALUES (?,?,?)",
            (post_id, t, now),
        )
    for t in cur - want:
        db.execute("DELETE FROM post_tag WHERE post_id=? AND tag_id=?", (post_id, t))


def create_post(data, *, db) -> dict:
    data = PostCreate.model_validate(data)
    _check_refs(data.model_dump(), db=db)

    published_at = to_iso(data.published_at)
    if data.status == "published" and published_at is None:
        published_at = now_iso()

    now = now_iso()
    with unique_guard(f"Post slug '{data.slug}'"), db:
        cur = db.execute(
            """
            INSERT INTO post (title, slug, excerpt, content, status,
                              featured_image_id, author_id, category_id,
                              meta_title, meta_description, canonical_url,
                              published_at, created_at, updated_at)
                 VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?,?)
            """,
            (
                data.title,
                data.slug,
                data.excerpt,
                data.content,
                data.status,
                data.featured_image_id,
                data.author_id,
                data.category_id,
                data.meta_title,
                data.meta_description,
                data.canonical_url,
                published_at,
                now,
                now,
            ),
        )
        sync_post_tags(cur.lastrowid, data.tag_ids, db=db)
    return get_post(cur.lastrowid, db=db)


def update_post(post_id: int, data, *, db) -> dict:
    upd = changes(PostUpdate.model_validate(data))

    cur_row = db.execute(
        "SELECT status, published_at FROM post WHERE id=?", (post_id,)
    ).fetchone()
    if cur_row is None:
        raise NotFound(f"Post with ID {post_id} not found")
    _check_refs(upd, db=db)

    tag_ids = upd.pop("tag_ids", None)
    has_tags = tag_ids is not None
    if "published_at" in upd:
        upd["published_at"] = to_iso(upd["published_at"])
    if upd.get("status", cur_row["status"]) == "published":
        if "status" not in upd and "published_at" in upd and upd["published_at"] is None:
            raise InvalidOperation("A published post must keep its published_at")
        if upd.get("published_at") is None:
            upd["published_at"] = cur_row["published_at"] or now_iso()
    upd["updated_at"] = now_iso()

    sql, params = update_sql("post", upd)
    with unique_guard("Post slug"), db:
        db.execute(sql, params + (post_id,))
        if has_tags:
            sync_post_tags(post_id, tag_ids, db=db)
    return get_post(post_id, db=db)


def delete_post(post_id: int, *, db) -> bool:
    """Drop the post with its tag links and comments in one transaction."""
    if not exists(db, "post", post_id):
        raise NotFound(f"Post with ID {post_id} not found")

    with db:
        db.execute("DELETE FROM post_tag WHERE post_id=?", (post_id,))
        # one statement: replies never point outside their own post
        db.execute("DELETE FROM comment WHERE post_id=?", (post_id,))
        db.execute("DELETE FROM post WHERE id=?", (post_id,))

    current_app.logger.info("post %s deleted", post_id)
    return True


def _set_status(post_id: int, status: str, *, db) -> dict:
    if not exists(db, "post", post_id):
        raise NotFound(f"Post with ID {post_id} not found")
    now = now_iso()
    with db:
        if status == "published":
            db.execute(
                "UPDATE post SET status=?, published_at=COALESCE(published_at, ?), "
                "updated_at=? WHERE id=?",
                (status, now, now, post_id),
            )
        else:
            db.execute(
                "UPDATE post SET status=?, updated_at=? WHERE id=?",
                (status, now, post_id),
            )
    current_app.logger.info("post %s → %s", post_id, status)
    return get_post(post_id, db=db)


def publish_post(post_id: int, *, db) -> dict:
    return _set_status(post_id, "published", db=db)


def archive_post(post_id: int, *, db) -> dict:
    return _set_status(post_id, "archived", db=db)


def related_posts(post_id: int, *, db, limit: int = 5) -> list[dict]:
    """
    Other *published* posts that share the category or at least one tag.

    Ranking: number of shared tags, then same category, then newest first.
    """
    post = db.execute(
        "SELECT id, category_id FROM post WHERE id=?", (post_id,)
    ).fetchone()
    if post is None:
        raise NotFound(f"Post with ID {post_id} not found")

    rows = db.execute(
        """
        SELECT * FROM (
            SELECT p.*,
                   (SELECT COUNT(*) FROM post_tag pt
                     WHERE pt.post_id = p.id
                       AND pt.tag_id IN (SELECT tag_id FROM post_tag
                                          WHERE post_id = :pid))   AS shared_tags,
                   COALESCE(p.category_id = :cat, 0)               AS same_category
              FROM post p
             WHERE p.id != :pid
               AND p.status = 'published'
        )
         WHERE shared_tags > 0 OR same_category = 1
      ORDER BY shared_tags DESC, same_category DESC,
               published_at DESC, id DESC
         LIMIT :lim
        """,
        {"pid": post_id, "cat": post["category_id"], "lim": limit},
    ).fetchall()

    out = []
    for r in rows:
        d = dict(r)
        d.pop("shared_tags")
        d.pop("same_category")
        out.append(d)
    return out


def _free_slug(base: str, *, db) -> str:
    slug, n = f"{base}-copy", 1
    while db.execute("SELECT 1 FROM post WHERE slug=?", (slug,)).fetchone():
        n += 1
        slug = f"{base}-copy-{n}"
    return slug


def duplicate_post(post_id: int, *, db) -> dict:
    """Copy a post (and its tags) as a fresh, unpublished draft."""
    src = get_post(post_id, db=db)
    if src is None:
        raise NotFound(f"Post with ID {post_id} not found")

    now = now_iso()
    with db:
        cur = db.execute(
            """
            INSERT INTO post (title, slug, excerpt, content, status,
                              featured_image_id, author_id, category_id,
                              meta_title, meta_description, canonical_url,
                              published_at, created_at, updated_at)
                 VALUES (?,?,?,?,'draft',?,?,?,?,?,?,NULL,?,?)
            """,
            (
                f"Copy of {src['title']}",
                _free_slug(src["slug"], db=db),
                src["excerpt"],
                src["content"],
                src["featured_image_id"],
                src["author_id"],
                src["category_id"],
                src["meta_title"],
                src["meta_description"],
                src["canonical_url"],
                now,
                now,
            ),
        )
        sync_post_tags(cur.lastrowid, src["tag_ids"], db=db)
    return get_post(cur.lastrowid, db=db)
