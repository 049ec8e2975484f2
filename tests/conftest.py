"""
tests/conftest.py
"""
from __future__ import annotations

import datetime as _dt
import itertools
from pathlib import Path
from typing import Generator

import pytest
from flask.testing import FlaskClient

import inkwell.db
from inkwell.blog import app
from inkwell.db import get_db, init_db
from inkwell.posts import create_post
from inkwell.users import create_user


@pytest.fixture(autouse=True)
def _configure_app(tmp_path: Path) -> Generator[None, None, None]:
    """
    Every test gets its own SQLite file and an application context, so
    domain functions can be called directly.
    """
    app.config.update(
        TESTING=True,
        DATABASE=str(tmp_path / "test.sqlite3"),
        FEED_LIMIT=50,
        COMMENT_REPLY_POLICY="orphan",
    )
    with app.app_context():
        init_db()
        yield


@pytest.fixture(autouse=True)
def _fast_clock(monkeypatch: pytest.MonkeyPatch) -> None:
    """
    Patch inkwell.db.utc_now so every call returns an ever-increasing
    timestamp.  No need for time.sleep().
    """
    counter = itertools.count()  # 0, 1, 2, …
    base = _dt.datetime(2099, 1, 1, tzinfo=_dt.timezone.utc)

    def _fake_now():
        return base + _dt.timedelta(seconds=next(counter))

    monkeypatch.setattr(inkwell.db, "utc_now", _fake_now)


@pytest.fixture
def client() -> Generator[FlaskClient, None, None]:
    with app.test_client() as client:
        yield client


@pytest.fixture
def db():
    return get_db()


@pytest.fixture
def author(db) -> dict:
    return create_user(
        {
            "email": "ada@example.com",
            "username": "ada",
            "password": "correct horse",
            "first_name": "Ada",
            "last_name": "Lovelace",
        },
        db=db,
    )


@pytest.fixture
def make_post(db, author):
    """Factory: ``make_post(title=…, status=…, tag_ids=[…])``."""
    seq = itertools.count(1)

    def _make(**fields) -> dict:
        n = next(seq)
        data = {
            "title": f"Post number {n}",
            "slug": f"post-{n}",
            "content": f"Body of post {n}",
            "author_id": author["id"],
        }
        data.update(fields)
        return create_post(data, db=db)

    return _make
