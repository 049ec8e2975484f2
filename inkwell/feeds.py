"""
RSS 2.0 and Atom 1.0 feeds of published posts.

Feeds are assembled as strings.  Every user-supplied text goes through
``html.escape`` (``& < > " '``); rendered post bodies travel inside CDATA
(RSS) or as escaped HTML (Atom).
"""

from datetime import datetime, timezone
from html import escape

import markdown
from flask import current_app

from inkwell.db import exists, now_iso
from inkwell.errors import NotFound
from inkwell.schemas import FeedConfig
from inkwell.seo import canonical_url, post_description
from inkwell.settings import get_settings
from inkwell.users import display_name

RFC2822_FMT = "%a, %d %b %Y %H:%M:%S %z"

MD_EXTENSIONS = [
    "pymdownx.extra",
    "pymdownx.magiclink",
    "pymdownx.tilde",
    "pymdownx.mark",
    "pymdownx.superfences",
    "pymdownx.betterem",
    "pymdownx.saneheaders",
]

md = markdown.Markdown(extensions=MD_EXTENSIONS)


def render_markdown(text: str | None) -> str:
    return md.reset().convert(text or "")


def _rfc2822(dt_str: str | None) -> str:
    """ISO-8601 → RFC 2822 (Tue, 24 Jun 2025 07:22:20 +0000)."""
    if not dt_str:
        return ""
    try:
        dt = datetime.fromisoformat(dt_str)
    except ValueError:
        return dt_str
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime(RFC2822_FMT)


def _cdata(text: str) -> str:
    return "<![CDATA[" + text.replace("]]>", "]]]]><![CDATA[>") + "]]>"


def feed_config(config=None, *, db, scope: str | None = None) -> FeedConfig:
    """Caller-supplied values on top of the site settings."""
    s = get_settings(db=db)
    title = s["site_title"] if scope is None else f"{s['site_title']} - {scope}"
    defaults = {
        "title": title,
        "description": s["site_description"],
        "link": s["site_url"],
    }
    if isinstance(config, FeedConfig):
        config = config.model_dump(exclude_unset=True)
    return FeedConfig.model_validate({**defaults, **(config or {})})


###############################################################################
# Queries
###############################################################################
def _published(*, db, where: str = "", params: tuple = ()) -> list[dict]:
    rows = db.execute(
        f"""
        SELECT p.*,
               u.first_name, u.last_name, u.username,
               c.name      AS category_name,
               m.file_path AS image_path,
               m.file_size AS image_size,
               m.mime_type AS image_type
          FROM post p
          JOIN user u          ON u.id = p.author_id
          LEFT JOIN category c ON c.id = p.category_id
          LEFT JOIN media m    ON m.id = p.featured_image_id
         WHERE p.status = 'published' {where}
      ORDER BY p.published_at DESC, p.id DESC
         LIMIT ?
        """,
        (*params, current_app.config["FEED_LIMIT"]),
    ).fetchall()

    posts = []
    for r in rows:
        post = dict(r)
        post["tags"] = [
            t["name"]
            for t in db.execute(
                """
                SELECT t.name
                  FROM tag t
                  JOIN post_tag pt ON pt.tag_id = t.id
                 WHERE pt.post_id = ?
              ORDER BY t.name
                """,
                (post["id"],),
            )
        ]
        posts.append(post)
    return posts


def _scoped(kind: str, table: str, row_id: int, where: str, *, db) -> list[dict]:
    if not exists(db, table, row_id):
        raise NotFound(f"{kind} with id {row_id} not found")
    posts = _published(db=db, where=where, params=(row_id,))
    if not posts:
        raise NotFound(f"No published posts found for {kind.lower()} {row_id}")
    return posts


def _media_url(path: str, base: str) -> str:
    if path.startswith(("http://", "https://")):
        return path
    return f"{base}/{path.lstrip('/')}"


###############################################################################
# RSS 2.0
###############################################################################
def _rss(posts: list[dict], cfg: FeedConfig, *, self_path: str, db) -> str:
    base = cfg.link.rstrip("/")
    items = []
    for p in posts:
        link = canonical_url(p, db=db)
        categories = [p["category_name"]] if p["category_name"] else []
        cat_xml = "".join(
            f"\n      <category>{escape(c)}</category>" for c in categories + p["tags"]
        )
        enclosure = ""
        if p["image_path"]:
            enclosure = (
                f'\n      <enclosure url="{escape(_media_url(p["image_path"], base))}"'
                f' length="{p["image_size"]}" type="{escape(p["image_type"])}" />'
            )
        items.append(
            f"""
    <item>
      <title>{escape(p["title"])}</title>
      <link>{escape(link)}</link>
      <guid isPermaLink="true">{escape(link)}</guid>
      <pubDate>{_rfc2822(p["published_at"])}</pubDate>
      <dc:creator>{escape(display_name(p))}</dc:creator>{cat_xml}{enclosure}
      <description>{escape(post_description(p))}</description>
      <content:encoded>{_cdata(render_markdown(p["content"]))}</content:encoded>
    </item>"""
        )

    optional = ""
    for tag in ("copyright", "managingEditor", "webMaster"):
        val = getattr(cfg, tag)
        if val:
            optional += f"\n    <{tag}>{escape(val)}</{tag}>"

    return f"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0"
     xmlns:atom="http://www.w3.org/2005/Atom"
     xmlns:content="http://purl.org/rss/1.0/modules/content/"
     xmlns:dc="http://purl.org/dc/elements/1.1/">
  <channel>
    <title>{escape(cfg.title)}</title>
    <link>{escape(cfg.link)}</link>
    <description>{escape(cfg.description)}</description>
    <language>{escape(cfg.language)}</language>{optional}
    <generator>inkwell</generator>
    <docs>https://validator.w3.org/feed/docs/rss2.html</docs>
    <lastBuildDate>{_rfc2822(now_iso())}</lastBuildDate>
    <atom:link href="{escape(base + self_path)}"
               rel="self"
               type="application/rss+xml" />
{"".join(items)}
  </channel>
</rss>
"""


def rss_feed(config=None, *, db) -> str:
    cfg = feed_config(config, db=db)
    return _rss(_published(db=db), cfg, self_path="/rss", db=db)


def category_rss(category_id: int, config=None, *, db) -> str:
    posts = _scoped(
        "Category", "category", category_id, "AND p.category_id = ?", db=db
    )
    cfg = feed_config(config, db=db, scope=posts[0]["category_name"])
    return _rss(posts, cfg, self_path=f"/categories/{category_id}/rss", db=db)


def tag_rss(tag_id: int, config=None, *, db) -> str:
    posts = _scoped(
        "Tag",
        "tag",
        tag_id,
        "AND p.id IN (SELECT post_id FROM post_tag WHERE tag_id = ?)",
        db=db,
    )
    name = db.execute("SELECT name FROM tag WHERE id=?", (tag_id,)).fetchone()[0]
    cfg = feed_config(config, db=db, scope=f"#{name}")
    return _rss(posts, cfg, self_path=f"/tags/{tag_id}/rss", db=db)


def author_rss(author_id: int, config=None, *, db) -> str:
    posts = _scoped("Author", "user", author_id, "AND p.author_id = ?", db=db)
    cfg = feed_config(config, db=db, scope=display_name(posts[0]))
    return _rss(posts, cfg, self_path=f"/authors/{author_id}/rss", db=db)


###############################################################################
# Atom 1.0
###############################################################################
def atom_feed(config=None, *, db) -> str:
    cfg = feed_config(config, db=db)
    base = cfg.link.rstrip("/")
    posts = _published(db=db)
    updated = max((p["updated_at"] for p in posts), default=now_iso())

    entries = []
    for p in posts:
        link = canonical_url(p, db=db)
        cats = "".join(
            f'\n    <category term="{escape(t)}" />' for t in p["tags"]
        )
        entries.append(
            f"""
  <entry>
    <title type="text">{escape(p["title"])}</title>
    <link rel="alternate" type="text/html" href="{escape(link)}" />
    <id>{escape(link)}</id>
    <published>{escape(p["published_at"] or p["created_at"])}</published>
    <updated>{escape(p["updated_at"])}</updated>
    <author><name>{escape(display_name(p))}</name></author>{cats}
    <summary type="text">{escape(post_description(p))}</summary>
    <content type="html">{escape(render_markdown(p["content"]))}</content>
  </entry>"""
        )

    rights = f"\n  <rights>{escape(cfg.copyright)}</rights>" if cfg.copyright else ""
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns="http://www.w3.org/2005/Atom" xml:lang="{escape(cfg.language)}">
  <title type="text">{escape(cfg.title)}</title>
  <subtitle type="text">{escape(cfg.description)}</subtitle>
  <link rel="alternate" type="text/html" href="{escape(cfg.link)}" />
  <link rel="self" type="application/atom+xml" href="{escape(base + "/atom")}" />
  <id>{escape(base + "/")}</id>
  <updated>{escape(updated)}</updated>{rights}
  <generator>inkwell</generator>
{"".join(entries)}
</feed>
"""
