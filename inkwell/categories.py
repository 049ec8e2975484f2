"""
Category hierarchy: CRUD with parent validation, cycle prevention and
cascading re-assignment on delete.
"""

from flask import current_app

from inkwell.db import exists, now_iso, row_dict, unique_guard, update_sql
from inkwell.errors import InvalidOperation, NotFound
from inkwell.schemas import CategoryCreate, CategoryUpdate, changes
from inkwell.tree import build_tree, descendant_ids


def list_categories(*, db) -> list[dict]:
    rows = db.execute("SELECT * FROM category ORDER BY name, id").fetchall()
    return [dict(r) for r in rows]


def get_category(category_id: int, *, db) -> dict | None:
    return row_dict(
        db.execute("SELECT * FROM category WHERE id=?", (category_id,)).fetchone()
    )


def get_category_by_slug(slug: str, *, db) -> dict | None:
    return row_dict(
        db.execute("SELECT * FROM category WHERE slug=?", (slug,)).fetchone()
    )


def create_category(data, *, db) -> dict:
    data = CategoryCreate.model_validate(data)

    if data.parent_id is not None and not exists(db, "category", data.parent_id):
        raise NotFound(f"Parent category with ID {data.parent_id} does not exist")

    now = now_iso()
    with unique_guard(f"Category slug '{data.slug}'"), db:
        cur = db.execute(
            """
            INSERT INTO category (name, slug, description, parent_id,
                                  meta_title, meta_description,
                                  created_at, updated_at)
                 VALUES (?,?,?,?,?,?,?,?)
            """,
            (
                data.name,
                data.slug,
                data.description,
                data.parent_id,
                data.meta_title,
                data.meta_description,
                now,
                now,
            ),
        )
    return get_category(cur.lastrowid, db=db)


def update_category(category_id: int, data, *, db) -> dict:
    """
    Patch only the fields present in *data*.

    A non-null ``parent_id`` must exist, must not be the category itself and
    must not be one of its descendants; ``parent_id: null`` detaches the
    category and always succeeds.
    """
    upd = changes(CategoryUpdate.model_validate(data))

    if not exists(db, "category", category_id):
        raise NotFound(f"Category with ID {category_id} not found")

    new_parent = upd.get("parent_id")
    if new_parent is not None:
        if new_parent == category_id:
            raise InvalidOperation("Category cannot be its own parent")
        if not exists(db, "category", new_parent):
            raise NotFound(f"Parent category with ID {new_parent} does not exist")
        if new_parent in descendant_ids(db, "category", category_id):
            raise InvalidOperation(
                "Cannot set parent category: would create circular reference"
            )

    upd["updated_at"] = now_iso()
    sql, params = update_sql("category", upd)
    with unique_guard("Category slug"), db:
        db.execute(sql, params + (category_id,))
    return get_category(category_id, db=db)


def delete_category(category_id: int, *, db) -> bool:
    """
    Remove a category; its children become roots and its posts lose their
    category.  All three statements commit together or not at all.
    """
    if not exists(db, "category", category_id):
        raise NotFound(f"Category with ID {category_id} not found")

    with db:
        db.execute(
            "UPDATE category SET parent_id=NULL WHERE parent_id=?", (category_id,)
        )
        db.execute(
            "UPDATE post SET category_id=NULL WHERE category_id=?", (category_id,)
        )
        db.execute("DELETE FROM category WHERE id=?", (category_id,))

    current_app.logger.info("category %s deleted", category_id)
    return True


def category_tree(*, db) -> list[dict]:
    """Root categories with nested ``children``, loaded in a single query."""
    return build_tree(list_categories(db=db))
