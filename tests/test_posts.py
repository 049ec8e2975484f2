"""
tests/test_posts.py
"""
from __future__ import annotations

import pytest
from pydantic import ValidationError

from inkwell.categories import create_category
from inkwell.comments import create_comment
from inkwell.errors import Conflict, InvalidOperation, NotFound
from inkwell.media import create_media
from inkwell.posts import (
    archive_post,
    delete_post,
    duplicate_post,
    get_post,
    get_post_by_slug,
    list_posts,
    publish_post,
    related_posts,
    update_post,
)
from inkwell.tags import create_tag


# ───────────────────────── helpers ────────────────────────────────────
def _tag(db, slug: str) -> int:
    return create_tag({"name": slug.title(), "slug": slug}, db=db)["id"]


# ───────────────────────── create ─────────────────────────────────────
def test_create_defaults_to_draft(db, make_post):
    post = make_post()
    assert post["status"] == "draft"
    assert post["published_at"] is None
    assert post["tag_ids"] == []
    assert get_post_by_slug(post["slug"], db=db) == post


def test_create_published_sets_published_at(db, make_post):
    post = make_post(status="published")
    assert post["published_at"] is not None


def test_create_keeps_explicit_published_at_in_utc(db, make_post):
    post = make_post(status="published", published_at="2024-05-01T12:00:00+02:00")
    assert post["published_at"] == "2024-05-01T10:00:00+00:00"


def test_create_links_tags(db, make_post):
    a, b = _tag(db, "a"), _tag(db, "b")
    post = make_post(tag_ids=[b, a, a])
    assert post["tag_ids"] == [a, b]


@pytest.mark.parametrize(
    "field, value",
    [("author_id", 999), ("category_id", 999), ("featured_image_id", 999), ("tag_ids", [999])],
)
def test_create_with_dangling_reference(db, make_post, field, value):
    with pytest.raises(NotFound):
        make_post(**{field: value})
    assert db.execute("SELECT COUNT(*) FROM post").fetchone()[0] == 0


def test_duplicate_slug_conflict(db, make_post):
    make_post(slug="hello")
    with pytest.raises(Conflict):
        make_post(slug="hello")


@pytest.mark.parametrize(
    "bad",
    [{"title": ""}, {"content": ""}, {"status": "live"}, {"canonical_url": "not a url"}],
)
def test_create_validation(db, make_post, bad):
    with pytest.raises(ValidationError):
        make_post(**bad)


# ───────────────────────── lifecycle ──────────────────────────────────
def test_publish_scenario(db, make_post):
    draft = make_post(status="draft")
    out = publish_post(draft["id"], db=db)
    assert out["status"] == "published"
    assert out["published_at"] is not None


def test_republish_keeps_first_published_at(db, make_post):
    post = publish_post(make_post()["id"], db=db)
    archived = archive_post(post["id"], db=db)
    assert archived["status"] == "archived"
    again = publish_post(post["id"], db=db)
    assert again["published_at"] == post["published_at"]


def test_publish_missing_post(db):
    with pytest.raises(NotFound):
        publish_post(1, db=db)
    with pytest.raises(NotFound):
        archive_post(1, db=db)


# ───────────────────────── update ─────────────────────────────────────
def test_update_is_partial(db, make_post):
    post = make_post(excerpt="short", meta_title="Meta")
    out = update_post(post["id"], {"title": "New title"}, db=db)
    assert out["title"] == "New title"
    assert out["excerpt"] == "short"
    assert out["meta_title"] == "Meta"
    assert out["updated_at"] > post["updated_at"]


def test_update_null_clears_nullable_fields(db, make_post):
    cat = create_category({"name": "C", "slug": "c"}, db=db)
    post = make_post(excerpt="x", category_id=cat["id"])
    out = update_post(post["id"], {"excerpt": None, "category_id": None}, db=db)
    assert out["excerpt"] is None
    assert out["category_id"] is None


def test_update_null_on_required_field_rejected(db, make_post):
    post = make_post()
    with pytest.raises(ValidationError):
        update_post(post["id"], {"title": None}, db=db)


def test_update_replaces_tags_only_when_sent(db, make_post):
    a, b, c = _tag(db, "a"), _tag(db, "b"), _tag(db, "c")
    post = make_post(tag_ids=[a, b])

    assert update_post(post["id"], {"title": "T"}, db=db)["tag_ids"] == [a, b]
    assert update_post(post["id"], {"tag_ids": [b, c]}, db=db)["tag_ids"] == [b, c]
    assert update_post(post["id"], {"tag_ids": []}, db=db)["tag_ids"] == []


def test_update_status_to_published_fills_published_at(db, make_post):
    post = make_post()
    out = update_post(post["id"], {"status": "published"}, db=db)
    assert out["published_at"] is not None


def test_republish_with_null_published_at_keeps_the_original(db, make_post):
    post = make_post(status="published")
    first = post["published_at"]

    out = update_post(post["id"], {"status": "published", "published_at": None}, db=db)
    assert out["published_at"] == first


def test_published_post_cannot_drop_published_at(db, make_post):
    post = make_post(status="published")
    with pytest.raises(InvalidOperation):
        update_post(post["id"], {"published_at": None}, db=db)
    assert get_post(post["id"], db=db)["published_at"] == post["published_at"]

    # a draft may clear it freely
    draft = make_post(published_at="2024-01-01T00:00:00Z")
    assert update_post(draft["id"], {"published_at": None}, db=db)["published_at"] is None


def test_update_missing_post(db):
    with pytest.raises(NotFound):
        update_post(3, {"title": "x"}, db=db)


def test_update_unknown_tag_leaves_post_untouched(db, make_post):
    post = make_post()
    with pytest.raises(NotFound):
        update_post(post["id"], {"title": "changed", "tag_ids": [404]}, db=db)
    assert get_post(post["id"], db=db)["title"] == post["title"]


# ───────────────────────── delete ─────────────────────────────────────
def test_delete_removes_tags_and_comments(db, make_post):
    tag = _tag(db, "t")
    post = make_post(tag_ids=[tag], status="published")
    parent = create_comment(
        {
            "post_id": post["id"],
            "author_name": "Reader",
            "author_email": "r@example.com",
            "content": "first",
        },
        db=db,
    )
    create_comment(
        {
            "post_id": post["id"],
            "author_name": "Reader",
            "author_email": "r@example.com",
            "content": "reply",
            "parent_id": parent["id"],
        },
        db=db,
    )

    assert delete_post(post["id"], db=db) is True
    assert get_post(post["id"], db=db) is None
    assert db.execute("SELECT COUNT(*) FROM post_tag").fetchone()[0] == 0
    assert db.execute("SELECT COUNT(*) FROM comment").fetchone()[0] == 0


def test_delete_missing_post(db):
    with pytest.raises(NotFound):
        delete_post(1, db=db)


# ───────────────────────── list / related / duplicate ─────────────────
def test_list_posts_delegates_to_search(db, make_post):
    make_post(status="published")
    make_post()
    res = list_posts({"status": "draft"}, db=db)
    assert res["pagination"]["total"] == 1


def test_related_posts_ranked_by_shared_tags(db, make_post):
    cat = create_category({"name": "C", "slug": "c"}, db=db)
    a, b = _tag(db, "a"), _tag(db, "b")
    src = make_post(tag_ids=[a, b], category_id=cat["id"])
    one_tag = make_post(tag_ids=[a], status="published")
    two_tags = make_post(tag_ids=[a, b], status="published")
    same_cat = make_post(category_id=cat["id"], status="published")
    make_post(tag_ids=[a])                       # draft: never related
    make_post(status="published")                # unrelated

    out = related_posts(src["id"], db=db)
    assert [p["id"] for p in out] == [two_tags["id"], one_tag["id"], same_cat["id"]]
    assert "shared_tags" not in out[0]
    assert len(related_posts(src["id"], db=db, limit=1)) == 1


def test_related_posts_missing(db):
    with pytest.raises(NotFound):
        related_posts(1, db=db)


def test_duplicate_post(db, make_post):
    tag = _tag(db, "t")
    src = make_post(slug="hello", title="Hello", tag_ids=[tag], status="published")

    first = duplicate_post(src["id"], db=db)
    second = duplicate_post(src["id"], db=db)

    assert first["title"] == "Copy of Hello"
    assert first["slug"] == "hello-copy"
    assert second["slug"] == "hello-copy-2"
    assert first["status"] == "draft"
    assert first["published_at"] is None
    assert first["tag_ids"] == [tag]
    assert first["content"] == src["content"]


def test_featured_image_reference(db, make_post, author):
    img = create_media(
        {
            "filename": "a.png",
            "original_filename": "A.png",
            "file_path": "/uploads/a.png",
            "file_size": 10,
            "mime_type": "image/png",
            "uploaded_by": author["id"],
        },
        db=db,
    )
    post = make_post(featured_image_id=img["id"])
    assert post["featured_image_id"] == img["id"]
