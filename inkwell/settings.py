"""
Site settings: a single row (``id = 1``) with well-defined defaults.

Reads create the row when it is missing; writes are upserts that patch only
the supplied keys.
"""

from flask import current_app
from pydantic import ValidationError

from inkwell.db import now_iso, row_dict, update_sql
from inkwell.schemas import SettingsUpdate, changes

DEFAULT_SETTINGS = {
    "site_title": "My Blog",
    "site_description": "A blog powered by our CMS",
    "site_url": "https://localhost:3000",
    "admin_email": "admin@localhost.com",
    "posts_per_page": 10,
    "comments_enabled": True,
    "comment_moderation": True,
    "allow_registration": False,
    "default_user_role": "author",
    "timezone": "UTC",
    "date_format": "YYYY-MM-DD",
    "time_format": "HH:mm:ss",
}
BOOL_KEYS = ("comments_enabled", "comment_moderation", "allow_registration")

COMMON_TIMEZONES = (
    "UTC",
    "America/New_York",
    "America/Chicago",
    "America/Denver",
    "America/Los_Angeles",
    "America/Toronto",
    "America/Mexico_City",
    "America/Sao_Paulo",
    "America/Argentina/Buenos_Aires",
    "Europe/London",
    "Europe/Paris",
    "Europe/Berlin",
    "Europe/Rome",
    "Europe/Madrid",
    "Europe/Amsterdam",
    "Europe/Stockholm",
    "Europe/Moscow",
    "Asia/Tokyo",
    "Asia/Seoul",
    "Asia/Shanghai",
    "Asia/Hong_Kong",
    "Asia/Singapore",
    "Asia/Bangkok",
    "Asia/Dubai",
    "Asia/Kolkata",
    "Australia/Sydney",
    "Australia/Melbourne",
    "Pacific/Auckland",
    "Africa/Cairo",
    "Africa/Johannesburg",
)


def _ensure_row(db) -> None:
    cols = ", ".join(DEFAULT_SETTINGS)
    q_marks = ", ".join("?" * len(DEFAULT_SETTINGS))
    now = now_iso()
    db.execute(
        f"INSERT INTO site_settings (id, {cols}, created_at, updated_at) "
        f"VALUES (1, {q_marks}, ?, ?) ON CONFLICT(id) DO NOTHING",
        (*DEFAULT_SETTINGS.values(), now, now),
    )


def get_settings(*, db) -> dict:
    with db:
        _ensure_row(db)
    row = db.execute("SELECT * FROM site_settings WHERE id=1").fetchone()
    out = row_dict(row, bools=BOOL_KEYS)
    out.pop("id")
    return out


def get_setting(key: str, *, db):
    return get_settings(db=db)[key]


def site_url(*, db) -> str:
    """Base URL without a trailing slash, ready for path concatenation."""
    return get_setting("site_url", db=db).rstrip("/")


def update_settings(data, *, db) -> dict:
    upd = changes(SettingsUpdate.model_validate(data))
    upd["updated_at"] = now_iso()
    sql, params = update_sql("site_settings", upd)
    with db:
        _ensure_row(db)
        db.execute(sql, params + (1,))
    return get_settings(db=db)


def reset_settings(*, db) -> dict:
    upd = {**DEFAULT_SETTINGS, "updated_at": now_iso()}
    sql, params = update_sql("site_settings", upd)
    with db:
        _ensure_row(db)
        db.execute(sql, params + (1,))
    current_app.logger.info("site settings reset to defaults")
    return get_settings(db=db)


def timezones() -> list[str]:
    return list(COMMON_TIMEZONES)


def validate_settings(data) -> dict:
    """
    Dry-run validation: ``{"valid": bool, "errors": [str, …]}``.
    Never raises for bad input; nothing is written.
    """
    errors: list[str] = []
    try:
        SettingsUpdate.model_validate(data or {})
    except ValidationError as exc:
        for err in exc.errors(include_url=False):
            field = ".".join(str(p) for p in err["loc"]) or "input"
            errors.append(f"{field}: {err['msg']}")
    return {"valid": not errors, "errors": errors}
