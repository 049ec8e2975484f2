"""
Faceted post search: independent filters AND-ed together, sorted, paginated.
"""

from inkwell.schemas import SearchPosts

SORT_COLUMNS = {
    "created_at": "p.created_at",
    "updated_at": "p.updated_at",
    "published_at": "p.published_at",
    "title": "p.title COLLATE NOCASE",
}


def like_pattern(term: str) -> str:
    """
    Case-folded substring pattern with LIKE wildcards in *term* taken
    literally. Compare it against ``casefold(column)``.
    """
    esc = term.casefold().replace("\\", "\\\\")
    esc = esc.replace("%", "\\%").replace("_", "\\_")
    return f"%{esc}%"


def build_filters(f: SearchPosts) -> tuple[str, tuple]:
    """
    Translate every present filter into one predicate and AND them.

    Returns ``(where_sql, params)``; with no filters the clause is ``1``.
    """
    preds: list[str] = []
    params: list = []

    if f.query:
        like = like_pattern(f.query)
        preds.append(
            "(casefold(p.title) LIKE ? ESCAPE '\\' "
            " OR casefold(p.content) LIKE ? ESCAPE '\\' "
            " OR casefold(p.excerpt) LIKE ? ESCAPE '\\')"
        )
        params += [like, like, like]

    if f.category_id is not None:
        preds.append("p.category_id = ?")
        params.append(f.category_id)

    if f.author_id is not None:
        preds.append("p.author_id = ?")
        params.append(f.author_id)

    if f.status is not None:
        preds.append("p.status = ?")
        params.append(f.status)

    # membership sub-select, so posts carrying several of the tags appear once
    if f.tag_ids:
        q_marks = ",".join("?" * len(f.tag_ids))
        preds.append(
            f"p.id IN (SELECT post_id FROM post_tag WHERE tag_id IN ({q_marks}))"
        )
        params += list(f.tag_ids)

    return (" AND ".join(preds) or "1"), tuple(params)


def pagination(*, page: int, limit: int, total: int) -> dict:
    total_pages = (total + limit - 1) // limit
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": total_pages,
        "has_prev": page > 1,
        "has_next": page < total_pages,
    }


def search_posts(filters=None, *, db) -> dict:
    """
    Return ``{"posts": [...], "pagination": {...}}`` for *filters*.

    Rows that tie on the sort column are ordered by id in the same direction
    so consecutive pages never overlap.
    """
    f = SearchPosts.model_validate(filters or {})
    where, params = build_filters(f)

    total = db.execute(
        f"SELECT COUNT(*) FROM post p WHERE {where}", params
    ).fetchone()[0]

    direction = "DESC" if f.sort_order == "desc" else "ASC"
    order_sql = f"{SORT_COLUMNS[f.sort_by]} {direction}, p.id {direction}"
    rows = db.execute(
        f"""
        SELECT p.* FROM post p
         WHERE {where}
      ORDER BY {order_sql}
         LIMIT ? OFFSET ?
        """,
        params + (f.limit, (f.page - 1) * f.limit),
    ).fetchall()

    return {
        "posts": [dict(r) for r in rows],
        "pagination": pagination(page=f.page, limit=f.limit, total=total),
    }


def search_suggestions(query: str, *, db, limit: int = 5) -> list[str]:
    """
    Autocomplete strings for *query*: published post titles first, then tag
    names, then category names, without duplicates.
    """
    query = (query or "").strip()
    if not query or limit < 1:
        return []

    like = like_pattern(query)
    out: list[str] = []
    sources = (
        "SELECT title AS s FROM post "
        "WHERE status='published' AND casefold(title) LIKE ? ESCAPE '\\' ORDER BY title",
        "SELECT name AS s FROM tag WHERE casefold(name) LIKE ? ESCAPE '\\' ORDER BY name",
        "SELECT name AS s FROM category WHERE casefold(name) LIKE ? ESCAPE '\\' ORDER BY name",
    )
    for sql in sources:
        for r in db.execute(f"{sql} LIMIT ?", (like, limit)):
            if r["s"] not in out:
                out.append(r["s"])
            if len(out) >= limit:
                return out
    return out
