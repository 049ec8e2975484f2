"""
tests/test_comments.py
"""
from __future__ import annotations

import pytest
from pydantic import ValidationError

from inkwell.blog import app
from inkwell.comments import (
    all_comments,
    approve_comment,
    comment_thread,
    comments_for_post,
    create_comment,
    delete_comment,
    get_comment,
    mark_spam,
    pending_comments,
    reject_comment,
    update_comment_status,
)
from inkwell.errors import InvalidOperation, NotFound
from inkwell.settings import update_settings


# ───────────────────────── helpers ────────────────────────────────────
@pytest.fixture
def post(make_post) -> dict:
    return make_post(status="published")


@pytest.fixture
def comment(db, post):
    """Factory: ``comment(content=…, parent_id=…)``."""

    def _make(content: str = "Nice post", **fields) -> dict:
        data = {
            "post_id": post["id"],
            "author_name": "Reader",
            "author_email": "reader@example.com",
            "content": content,
        }
        data.update(fields)
        return create_comment(data, db=db)

    return _make


# ───────────────────────── create ─────────────────────────────────────
def test_new_comment_is_pending(comment):
    c = comment()
    assert c["status"] == "pending"
    assert c["parent_id"] is None


def test_reply_is_pending_too(comment):
    parent = comment()
    reply = comment("Agreed", parent_id=parent["id"])
    assert reply["parent_id"] == parent["id"]
    assert reply["status"] == "pending"


def test_status_cannot_be_chosen_on_create(comment):
    with pytest.raises(ValidationError):
        comment(status="approved")


def test_create_for_missing_post(db):
    with pytest.raises(NotFound):
        create_comment(
            {
                "post_id": 99,
                "author_name": "x",
                "author_email": "x@example.com",
                "content": "hi",
            },
            db=db,
        )


def test_missing_parent(comment):
    with pytest.raises(NotFound):
        comment(parent_id=1234)


def test_parent_from_another_post(db, comment, make_post):
    other = make_post()
    foreign = create_comment(
        {
            "post_id": other["id"],
            "author_name": "x",
            "author_email": "x@example.com",
            "content": "elsewhere",
        },
        db=db,
    )
    with pytest.raises(InvalidOperation):
        comment(parent_id=foreign["id"])


def test_comments_disabled(db, comment):
    update_settings({"comments_enabled": False}, db=db)
    with pytest.raises(InvalidOperation, match="disabled"):
        comment()


@pytest.mark.parametrize(
    "bad",
    [
        {"author_email": "not-an-email"},
        {"content": ""},
        {"content": "x" * 2001},
        {"author_website": "ftp://example.com"},
    ],
)
def test_create_validation(comment, bad):
    with pytest.raises(ValidationError):
        comment(**bad)


# ───────────────────────── moderation ─────────────────────────────────
def test_any_status_transition_is_allowed(db, comment):
    c = comment()
    assert mark_spam(c["id"], db=db)["status"] == "spam"
    assert approve_comment(c["id"], db=db)["status"] == "approved"
    assert reject_comment(c["id"], db=db)["status"] == "rejected"
    assert update_comment_status(c["id"], "pending", db=db)["status"] == "pending"


def test_unknown_status_rejected_before_lookup(db):
    with pytest.raises(ValidationError):
        update_comment_status(1, "deleted", db=db)
    with pytest.raises(NotFound):
        update_comment_status(1, "approved", db=db)


def test_pending_queue(db, comment):
    a = comment("a")
    b = comment("b")
    approve_comment(a["id"], db=db)
    assert [c["id"] for c in pending_comments(db=db)] == [b["id"]]


def test_listing_by_post_and_status(db, comment, post):
    a = comment("a")
    comment("b")
    approve_comment(a["id"], db=db)

    assert len(comments_for_post(post["id"], db=db)) == 2
    assert [c["id"] for c in comments_for_post(post["id"], db=db, status="approved")] == [
        a["id"]
    ]


def test_all_comments_paginated_newest_first(db, comment):
    ids = [comment(str(i))["id"] for i in range(5)]
    page = all_comments(db=db, page=2, limit=2)
    assert page["total"] == 5
    assert [c["id"] for c in page["comments"]] == [ids[2], ids[1]]


def test_thread_nests_approved_replies(db, comment, post):
    root = comment("root")
    reply = comment("reply", parent_id=root["id"])
    hidden = comment("spammy", parent_id=root["id"])
    for c in (root, reply):
        approve_comment(c["id"], db=db)
    mark_spam(hidden["id"], db=db)

    thread = comment_thread(post["id"], db=db)
    assert len(thread) == 1
    assert [c["id"] for c in thread[0]["children"]] == [reply["id"]]


# ───────────────────────── delete policies ────────────────────────────
def test_delete_orphans_replies_by_default(db, comment):
    root = comment("root")
    reply = comment("reply", parent_id=root["id"])
    nested = comment("nested", parent_id=reply["id"])

    assert delete_comment(root["id"], db=db) is True
    assert get_comment(root["id"], db=db) is None
    assert get_comment(reply["id"], db=db)["parent_id"] is None
    assert get_comment(nested["id"], db=db)["parent_id"] == reply["id"]


def test_delete_cascade_removes_subtree(db, comment):
    root = comment("root")
    reply = comment("reply", parent_id=root["id"])
    comment("nested", parent_id=reply["id"])
    keep = comment("unrelated")

    delete_comment(root["id"], db=db, policy="cascade")
    assert [c["id"] for c in all_comments(db=db)["comments"]] == [keep["id"]]


def test_delete_reject_policy(db, comment):
    root = comment("root")
    comment("reply", parent_id=root["id"])
    leaf = comment("leaf")

    with pytest.raises(InvalidOperation):
        delete_comment(root["id"], db=db, policy="reject")
    assert get_comment(root["id"], db=db) is not None
    assert delete_comment(leaf["id"], db=db, policy="reject") is True


def test_delete_policy_from_config(db, comment, monkeypatch):
    monkeypatch.setitem(app.config, "COMMENT_REPLY_POLICY", "cascade")
    root = comment("root")
    comment("reply", parent_id=root["id"])
    delete_comment(root["id"], db=db)
    assert all_comments(db=db)["total"] == 0


def test_delete_unknown_policy_and_missing_comment(db, comment):
    with pytest.raises(ValueError):
        delete_comment(1, db=db, policy="shred")
    with pytest.raises(NotFound):
        delete_comment(1, db=db)
