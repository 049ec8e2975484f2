"""
Input models for every operation.

Update models declare their non-nullable fields as ``str = Field(None, …)``:
an absent key stays unset (pydantic does not validate defaults) while an
explicit ``null`` fails the type check.  Nullable columns are typed
``X | None`` so ``null`` clears them.  ``changes(model)`` yields only the
keys the caller actually sent.
"""

from datetime import datetime
from typing import Annotated, Literal
from urllib.parse import urlparse
from zoneinfo import available_timezones

from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field

Role = Literal["admin", "editor", "author"]
PostStatus = Literal["draft", "published", "archived"]
CommentStatus = Literal["pending", "approved", "spam", "rejected"]
SortBy = Literal["created_at", "updated_at", "published_at", "title"]

POST_STATUSES = ("draft", "published", "archived")
COMMENT_STATUSES = ("pending", "approved", "spam", "rejected")


def _check_url(val: str) -> str:
    p = urlparse(val.strip())
    if p.scheme not in ("http", "https") or not p.netloc:
        raise ValueError("must be an absolute http(s) URL")
    return val.strip()


def _check_timezone(val: str) -> str:
    if val not in available_timezones():
        raise ValueError(f"unknown timezone '{val}'")
    return val


Url = Annotated[str, AfterValidator(_check_url)]
TimeZone = Annotated[str, AfterValidator(_check_timezone)]


class Input(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


def changes(model: BaseModel) -> dict:
    """Only the fields the caller explicitly set (``null`` included)."""
    return model.model_dump(exclude_unset=True)


# ───────────────────────── users ─────────────────────────
class UserCreate(Input):
    email: EmailStr
    username: str = Field(min_length=3, max_length=50)
    password: str = Field(min_length=8)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    role: Role = "author"
    bio: str | None = None
    avatar_url: Url | None = None


class UserUpdate(Input):
    email: EmailStr = Field(None)
    username: str = Field(None, min_length=3, max_length=50)
    first_name: str = Field(None, min_length=1, max_length=100)
    last_name: str = Field(None, min_length=1, max_length=100)
    role: Role = Field(None)
    bio: str | None = None
    avatar_url: Url | None = None
    is_active: bool = Field(None)


# ───────────────────────── categories ─────────────────────────
class CategoryCreate(Input):
    name: str = Field(min_length=1, max_length=100)
    slug: str = Field(min_length=1, max_length=100)
    description: str | None = None
    parent_id: int | None = None
    meta_title: str | None = Field(None, max_length=200)
    meta_description: str | None = None


class CategoryUpdate(Input):
    name: str = Field(None, min_length=1, max_length=100)
    slug: str = Field(None, min_length=1, max_length=100)
    description: str | None = None
    parent_id: int | None = None
    meta_title: str | None = Field(None, max_length=200)
    meta_description: str | None = None


# ───────────────────────── tags ─────────────────────────
class TagCreate(Input):
    name: str = Field(min_length=1, max_length=50)
    slug: str = Field(min_length=1, max_length=50)
    description: str | None = None


class TagUpdate(Input):
    name: str = Field(None, min_length=1, max_length=50)
    slug: str = Field(None, min_length=1, max_length=50)
    description: str | None = None


# ───────────────────────── media ─────────────────────────
class MediaCreate(Input):
    filename: str = Field(min_length=1, max_length=255)
    original_filename: str = Field(min_length=1, max_length=255)
    file_path: str = Field(min_length=1)
    file_size: int = Field(gt=0)
    mime_type: str = Field(min_length=1, max_length=100)
    alt_text: str | None = None
    caption: str | None = None
    uploaded_by: int


class MediaUpdate(Input):
    alt_text: str | None = None
    caption: str | None = None


# ───────────────────────── posts ─────────────────────────
class PostCreate(Input):
    title: str = Field(min_length=1, max_length=200)
    slug: str = Field(min_length=1, max_length=200)
    excerpt: str | None = None
    content: str = Field(min_length=1)
    status: PostStatus = "draft"
    featured_image_id: int | None = None
    author_id: int
    category_id: int | None = None
    meta_title: str | None = Field(None, max_length=200)
    meta_description: str | None = None
    canonical_url: Url | None = None
    published_at: datetime | None = None
    tag_ids: list[int] | None = None


class PostUpdate(Input):
    title: str = Field(None, min_length=1, max_length=200)
    slug: str = Field(None, min_length=1, max_length=200)
    excerpt: str | None = None
    content: str = Field(None, min_length=1)
    status: PostStatus = Field(None)
    featured_image_id: int | None = None
    category_id: int | None = None
    meta_title: str | None = Field(None, max_length=200)
    meta_description: str | None = None
    canonical_url: Url | None = None
    published_at: datetime | None = None
    tag_ids: list[int] = Field(None)


class SearchPosts(Input):
    query: str | None = None
    category_id: int | None = None
    author_id: int | None = None
    status: PostStatus | None = None
    tag_ids: list[int] | None = None
    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1, le=100)
    sort_by: SortBy = "created_at"
    sort_order: Literal["asc", "desc"] = "desc"


# ───────────────────────── comments ─────────────────────────
class CommentCreate(Input):
    post_id: int
    author_name: str = Field(min_length=1, max_length=100)
    author_email: EmailStr
    author_website: Url | None = None
    content: str = Field(min_length=1, max_length=2000)
    parent_id: int | None = None


class CommentStatusUpdate(Input):
    status: CommentStatus


# ───────────────────────── feeds ─────────────────────────
class FeedConfig(Input):
    title: str
    description: str
    link: Url
    language: str = "en"
    copyright: str | None = None
    managingEditor: str | None = None
    webMaster: str | None = None


# ───────────────────────── settings ─────────────────────────
class SettingsUpdate(Input):
    site_title: str = Field(None, min_length=1, max_length=200)
    site_description: str = Field(None, min_length=1)
    site_url: Url = Field(None)
    admin_email: EmailStr = Field(None)
    posts_per_page: int = Field(None, ge=1, le=100)
    comments_enabled: bool = Field(None)
    comment_moderation: bool = Field(None)
    allow_registration: bool = Field(None)
    default_user_role: Role = Field(None)
    timezone: TimeZone = Field(None, min_length=1, max_length=50)
    date_format: str = Field(None, min_length=1, max_length=50)
    time_format: str = Field(None, min_length=1, max_length=50)
