"""
Comment moderation.

Every new comment starts as ``pending``; moderators may move a comment to any
status at any time (``spam → approved`` is a legal undo).
"""

from flask import current_app

from inkwell.db import exists, now_iso, row_dict
from inkwell.errors import InvalidOperation, NotFound
from inkwell.schemas import CommentCreate, CommentStatusUpdate
from inkwell.settings import get_setting
from inkwell.tree import build_tree, descendant_ids

REPLY_POLICIES = ("orphan", "cascade", "reject")


def get_comment(comment_id: int, *, db) -> dict | None:
    return row_dict(
        db.execute("SELECT * FROM comment WHERE id=?", (comment_id,)).fetchone()
    )


def create_comment(data, *, db) -> dict:
    data = CommentCreate.model_validate(data)

    if not exists(db, "post", data.post_id):
        raise NotFound(f"Post with id {data.post_id} not found")
    if data.parent_id is not None:
        parent = get_comment(data.parent_id, db=db)
        if parent is None:
            raise NotFound(f"Parent comment with id {data.parent_id} not found")
        if parent["post_id"] != data.post_id:
            raise InvalidOperation("Parent comment belongs to a different post")
    if not get_setting("comments_enabled", db=db):
        raise InvalidOperation("Comments are disabled")

    now = now_iso()
    with db:
        cur = db.execute(
            """
            INSERT INTO comment (post_id, author_name, author_email,
                                 author_website, content, status, parent_id,
                                 created_at, updated_at)
                 VALUES (?,?,?,?,?,'pending',?,?,?)
            """,
            (
                data.post_id,
                data.author_name,
                data.author_email,
                data.author_website,
                data.content,
                data.parent_id,
                now,
                now,
            ),
        )
    return get_comment(cur.lastrowid, db=db)


def comments_for_post(post_id: int, *, db, status: str | None = None) -> list[dict]:
    sql = "SELECT * FROM comment WHERE post_id=?"
    params: tuple = (post_id,)
    if status is not None:
        sql += " AND status=?"
        params += (status,)
    rows = db.execute(sql + " ORDER BY created_at, id", params).fetchall()
    return [dict(r) for r in rows]


def comment_thread(post_id: int, *, db, status: str | None = "approved") -> list[dict]:
    """
    Nested replies for one post.  A reply whose parent is filtered out by
    *status* is shown at the top level.
    """
    return build_tree(comments_for_post(post_id, db=db, status=status))


def all_comments(*, db, page: int = 1, limit: int = 20) -> dict:
    page, limit = max(1, page), max(1, limit)
    total = db.execute("SELECT COUNT(*) FROM comment").fetchone()[0]
    rows = db.execute(
        "SELECT * FROM comment ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?",
        (limit, (page - 1) * limit),
    ).fetchall()
    return {"comments": [dict(r) for r in rows], "total": total}


def pending_comments(*, db) -> list[dict]:
    rows = db.execute(
        "SELECT * FROM comment WHERE status='pending' ORDER BY created_at, id"
    ).fetchall()
    return [dict(r) for r in rows]


def update_comment_status(comment_id: int, status: str, *, db) -> dict:
    status = CommentStatusUpdate.model_validate({"status": status}).status
    if not exists(db, "comment", comment_id):
        raise NotFound(f"Comment with id {comment_id} not found")
    with db:
        db.execute(
            "UPDATE comment SET status=?, updated_at=? WHERE id=?",
            (status, now_iso(), comment_id),
        )
    current_app.logger.info("comment %s → %s", comment_id, status)
    return get_comment(comment_id, db=db)


def approve_comment(comment_id: int, *, db) -> dict:
    return update_comment_status(comment_id, "approved", db=db)


def reject_comment(comment_id: int, *, db) -> dict:
    return update_comment_status(comment_id, "rejected", db=db)


def mark_spam(comment_id: int, *, db) -> dict:
    return update_comment_status(comment_id, "spam", db=db)


def delete_comment(comment_id: int, *, db, policy: str | None = None) -> bool:
    """
    Delete a comment.  What happens to its replies is set by *policy*
    (default: ``COMMENT_REPLY_POLICY``):

    • ``orphan``  – direct replies move to the top level
    • ``cascade`` – the whole reply subtree is deleted too
    • ``reject``  – refuse while replies exist
    """
    policy = policy or current_app.config["COMMENT_REPLY_POLICY"]
    if policy not in REPLY_POLICIES:
        raise ValueError(f"unknown comment reply policy {policy!r}")
    if not exists(db, "comment", comment_id):
        raise NotFound(f"Comment with id {comment_id} not found")

    has_replies = (
        db.execute(
            "SELECT 1 FROM comment WHERE parent_id=? LIMIT 1", (comment_id,)
        ).fetchone()
        is not None
    )
    if has_replies and policy == "reject":
        raise InvalidOperation("Comment has replies and cannot be deleted")

    with db:
        if policy == "cascade":
            doomed = descendant_ids(db, "comment", comment_id) | {comment_id}
            q_marks = ",".join("?" * len(doomed))
            db.execute(f"DELETE FROM comment WHERE id IN ({q_marks})", tuple(doomed))
        else:
            db.execute(
                "UPDATE comment SET parent_id=NULL WHERE parent_id=?", (comment_id,)
            )
            db.execute("DELETE FROM comment WHERE id=?", (comment_id,))

    current_app.logger.info("comment %s deleted (%s)", comment_id, policy)
    return True
