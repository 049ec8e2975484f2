"""
SQLite connection handling, schema and time helpers.
"""

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone

from flask import current_app, g

from inkwell.errors import Conflict

###############################################################################
# Database helpers
###############################################################################


def _casefold(s):
    return s.casefold() if isinstance(s, str) else s


def get_db():
    if "db" not in g:
        g.db = sqlite3.connect(current_app.config["DATABASE"])
        g.db.execute("PRAGMA foreign_keys = ON;")
        g.db.create_function("casefold", 1, _casefold, deterministic=True)
        g.db.row_factory = sqlite3.Row
    return g.db


def close_db(error=None):
    db = g.pop("db", None)
    if db is not None:
        db.close()


def init_db():
    db = get_db()
    db.executescript(
        """
        ------------------------------------------------------------
        -- 1.  Accounts
        ------------------------------------------------------------
        CREATE TABLE IF NOT EXISTS user (
            id            INTEGER PRIMARY KEY AUTOINCREMENT,
            email         TEXT UNIQUE NOT NULL,
            username      TEXT UNIQUE NOT NULL,
            password_hash TEXT NOT NULL,
            first_name    TEXT NOT NULL,
            last_name     TEXT NOT NULL,
            role          TEXT NOT NULL DEFAULT 'author',   -- admin | editor | author
            bio           TEXT,
            avatar_url    TEXT,
            is_active     INTEGER NOT NULL DEFAULT 1,
            created_at    TEXT NOT NULL,
            updated_at    TEXT NOT NULL
        );

        ------------------------------------------------------------
        -- 2.  Categories (self-referencing tree)
        ------------------------------------------------------------
        CREATE TABLE IF NOT EXISTS category (
            id               INTEGER PRIMARY KEY AUTOINCREMENT,
            name             TEXT NOT NULL,
            slug             TEXT UNIQUE NOT NULL,
            description      TEXT,
            parent_id        INTEGER REFERENCES category(id),
            meta_title       TEXT,
            meta_description TEXT,
            created_at       TEXT NOT NULL,
            updated_at       TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_category_parent ON category(parent_id);

        ------------------------------------------------------------
        -- 3.  Tags
        ------------------------------------------------------------
        CREATE TABLE IF NOT EXISTS tag (
            id          INTEGER PRIMARY KEY AUTOINCREMENT,
            name        TEXT NOT NULL,
            slug        TEXT UNIQUE NOT NULL,
            description TEXT,
            created_at  TEXT NOT NULL,
            updated_at  TEXT NOT NULL
        );

        ------------------------------------------------------------
        -- 4.  Media (metadata only, binaries live elsewhere)
        ------------------------------------------------------------
        CREATE TABLE IF NOT EXISTS media (
            id                INTEGER PRIMARY KEY AUTOINCREMENT,
            filename          TEXT NOT NULL,
            original_filename TEXT NOT NULL,
            file_path         TEXT NOT NULL,
            file_size         INTEGER NOT NULL,
            mime_type         TEXT NOT NULL,
            alt_text          TEXT,
            caption           TEXT,
            uploaded_by       INTEGER NOT NULL REFERENCES user(id),
            created_at        TEXT NOT NULL,
            updated_at        TEXT NOT NULL
        );

        ------------------------------------------------------------
        -- 5.  Posts
        ------------------------------------------------------------
        CREATE TABLE IF NOT EXISTS post (
            id                INTEGER PRIMARY KEY AUTOINCREMENT,
            title             TEXT NOT NULL,
            slug              TEXT UNIQUE NOT NULL,
            excerpt           TEXT,
            content           TEXT NOT NULL,
            status            TEXT NOT NULL DEFAULT 'draft', -- draft | published | archived
            featured_image_id INTEGER REFERENCES media(id),
            author_id         INTEGER NOT NULL REFERENCES user(id),
            category_id       INTEGER REFERENCES category(id),
            meta_title        TEXT,
            meta_description  TEXT,
            canonical_url     TEXT,
            published_at      TEXT,
            created_at        TEXT NOT NULL,
            updated_at        TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_post_status   ON post(status);
        CREATE INDEX IF NOT EXISTS idx_post_category ON post(category_id);
        CREATE INDEX IF NOT EXISTS idx_post_author   ON post(author_id);

        CREATE TABLE IF NOT EXISTS post_tag (
            post_id    INTEGER NOT NULL REFERENCES post(id),
            tag_id     INTEGER NOT NULL REFERENCES tag(id),
            created_at TEXT NOT NULL,
            PRIMARY KEY (post_id, tag_id)
        );

        CREATE INDEX IF NOT EXISTS idx_post_tag_tag ON post_tag(tag_id);

        ------------------------------------------------------------
        -- 6.  Comments (threaded via parent_id)
        ------------------------------------------------------------
        CREATE TABLE IF NOT EXISTS comment (
            id             INTEGER PRIMARY KEY AUTOINCREMENT,
            post_id        INTEGER NOT NULL REFERENCES post(id),
            author_name    TEXT NOT NULL,
            author_email   TEXT NOT NULL,
            author_website TEXT,
            content        TEXT NOT NULL,
            status         TEXT NOT NULL DEFAULT 'pending', -- pending | approved | spam | rejected
            parent_id      INTEGER REFERENCES comment(id),
            created_at     TEXT NOT NULL,
            updated_at     TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_comment_post   ON comment(post_id);
        CREATE INDEX IF NOT EXISTS idx_comment_parent ON comment(parent_id);

        ------------------------------------------------------------
        -- 7.  Site-wide settings (exactly one row)
        ------------------------------------------------------------
        CREATE TABLE IF NOT EXISTS site_settings (
            id                 INTEGER PRIMARY KEY CHECK (id = 1),
            site_title         TEXT NOT NULL,
            site_description   TEXT NOT NULL,
            site_url           TEXT NOT NULL,
            admin_email        TEXT NOT NULL,
            posts_per_page     INTEGER NOT NULL,
            comments_enabled   INTEGER NOT NULL,
            comment_moderation INTEGER NOT NULL,
            allow_registration INTEGER NOT NULL,
            default_user_role  TEXT NOT NULL,
            timezone           TEXT NOT NULL,
            date_format        TEXT NOT NULL,
            time_format        TEXT NOT NULL,
            created_at         TEXT NOT NULL,
            updated_at         TEXT NOT NULL
        );
        """
    )
    db.commit()


def row_dict(row, *, bools: tuple[str, ...] = ()) -> dict | None:
    """sqlite3.Row → plain dict; integer flags listed in *bools* become bool."""
    if row is None:
        return None
    out = dict(row)
    for k in bools:
        if k in out and out[k] is not None:
            out[k] = bool(out[k])
    return out


def exists(db, table: str, row_id: int) -> bool:
    return (
        db.execute(f"SELECT 1 FROM {table} WHERE id=?", (row_id,)).fetchone()
        is not None
    )


@contextmanager
def unique_guard(what: str):
    """Turn UNIQUE violations into Conflict; other integrity errors propagate."""
    try:
        yield
    except sqlite3.IntegrityError as exc:
        if "UNIQUE" in str(exc):
            raise Conflict(f"{what} already exists") from exc
        raise


def update_sql(table: str, changes: dict) -> tuple[str, tuple]:
    """Build `UPDATE table SET … WHERE id=?` for the present keys only."""
    cols = ", ".join(f"{k}=?" for k in changes)
    return f"UPDATE {table} SET {cols} WHERE id=?", tuple(changes.values())


# -------------------------------------------------------------------------
# Time helpers
# -------------------------------------------------------------------------
def utc_now() -> datetime:
    """Return an *aware* datetime in UTC."""
    return datetime.now(timezone.utc)


def now_iso() -> str:
    return utc_now().isoformat(timespec="seconds")


def to_iso(dt: datetime | None) -> str | None:
    """Normalise a caller-supplied datetime to the stored UTC form (naive = UTC)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="seconds")
