"""
SEO artefacts: per-post metadata, JSON-LD, a scoring heuristic, the XML
sitemap and robots.txt.

Everything here is read-only; ``post`` arguments are plain dicts as returned
by :func:`inkwell.posts.get_post`.
"""

from html import escape

from inkwell.settings import get_settings, site_url
from inkwell.users import display_name, get_user

DESCRIPTION_LIMIT = 160


def post_description(post: dict) -> str:
    """meta_description → excerpt → first 160 chars of content."""
    if post.get("meta_description"):
        return post["meta_description"]
    if post.get("excerpt"):
        return post["excerpt"]
    content = post.get("content") or ""
    if len(content) > DESCRIPTION_LIMIT:
        return content[:DESCRIPTION_LIMIT] + "..."
    return content


def canonical_url(post: dict, *, db) -> str:
    return post.get("canonical_url") or f"{site_url(db=db)}/posts/{post['slug']}"


def post_metadata(post: dict, *, db) -> dict:
    settings = get_settings(db=db)
    title = post.get("meta_title") or f"{post['title']} | {settings['site_title']}"
    description = post_description(post)
    url = canonical_url(post, db=db)

    og = {
        "og:title": title,
        "og:description": description,
        "og:type": "article",
        "og:url": url,
        "og:site_name": settings["site_title"],
    }
    if post.get("published_at"):
        og["og:published_time"] = post["published_at"]
    if post.get("updated_at"):
        og["og:modified_time"] = post["updated_at"]

    return {
        "title": title,
        "description": description,
        "canonical_url": url,
        "open_graph": og,
        "twitter": {
            "twitter:card": "summary_large_image",
            "twitter:title": title,
            "twitter:description": description,
            "twitter:url": url,
        },
    }


def structured_data(post: dict, *, db) -> dict:
    """schema.org ``BlogPosting`` for a ``<script type="application/ld+json">``."""
    settings = get_settings(db=db)
    base = site_url(db=db)
    url = canonical_url(post, db=db)

    data = {
        "@context": "https://schema.org",
        "@type": "BlogPosting",
        "headline": post["title"],
        "description": post_description(post),
        "url": url,
        "datePublished": post.get("published_at") or post.get("created_at"),
        "dateModified": post.get("updated_at"),
        "mainEntityOfPage": {"@type": "WebPage", "@id": url},
        "publisher": {
            "@type": "Organization",
            "name": settings["site_title"],
            "url": base,
        },
    }
    author = get_user(post["author_id"], db=db) if post.get("author_id") else None
    if author:
        data["author"] = {"@type": "Person", "name": display_name(author)}
    return data


def analyze_post(post: dict) -> dict:
    """
    Score a post out of 100.  ``issues`` are problems search engines will
    notice; ``recommendations`` are cheaper improvements.
    """
    score = 100
    issues: list[str] = []
    recommendations: list[str] = []

    title = post.get("title") or ""
    if not title:
        issues.append("Missing title")
        score -= 20
    elif len(title) < 30:
        recommendations.append("Consider making title longer (30-60 characters optimal)")
        score -= 5
    elif len(title) > 60:
        recommendations.append("Title may be too long (30-60 characters optimal)")
        score -= 3

    meta_desc = post.get("meta_description") or ""
    if not meta_desc:
        if not post.get("excerpt"):
            issues.append("Missing meta description and excerpt")
            score -= 15
        else:
            recommendations.append("Add custom meta description for better SEO")
            score -= 5
    elif len(meta_desc) < 120:
        recommendations.append(
            "Meta description could be longer (120-160 characters optimal)"
        )
        score -= 3
    elif len(meta_desc) > DESCRIPTION_LIMIT:
        issues.append("Meta description too long (may be truncated in search results)")
        score -= 8

    content = post.get("content") or ""
    if not content:
        issues.append("Missing content")
        score -= 25
    elif len(content) < 300:
        recommendations.append("Content is quite short - consider adding more detail")
        score -= 10

    slug = post.get("slug") or ""
    if not slug:
        issues.append("Missing URL slug")
        score -= 15
    elif "_" in slug:
        recommendations.append("Use hyphens instead of underscores in URL slug")
        score -= 2

    if not post.get("meta_title"):
        recommendations.append(
            "Add custom meta title for better search engine optimization"
        )
        score -= 5

    if not post.get("canonical_url"):
        recommendations.append(
            "Consider adding canonical URL if content exists elsewhere"
        )

    return {
        "score": max(0, score),
        "issues": issues,
        "recommendations": recommendations,
    }


###############################################################################
# sitemap.xml / robots.txt
###############################################################################
def _url_xml(loc: str, *, changefreq: str, priority: str, lastmod=None) -> str:
    lastmod_xml = f"\n    <lastmod>{escape(lastmod)}</lastmod>" if lastmod else ""
    return (
        f"  <url>\n"
        f"    <loc>{escape(loc)}</loc>{lastmod_xml}\n"
        f"    <changefreq>{changefreq}</changefreq>\n"
        f"    <priority>{priority}</priority>\n"
        f"  </url>"
    )


def sitemap(*, db) -> str:
    base = site_url(db=db)
    urls = [_url_xml(f"{base}/", changefreq="daily", priority="1.0")]

    for c in db.execute("SELECT slug, updated_at FROM category ORDER BY id"):
        urls.append(
            _url_xml(
                f"{base}/categories/{c['slug']}",
                changefreq="weekly",
                priority="0.7",
                lastmod=c["updated_at"],
            )
        )

    posts = db.execute(
        """
        SELECT slug, published_at, updated_at
          FROM post
         WHERE status='published'
      ORDER BY published_at DESC, id DESC
        """
    )
    for p in posts:
        urls.append(
            _url_xml(
                f"{base}/posts/{p['slug']}",
                changefreq="monthly",
                priority="0.8",
                lastmod=p["published_at"] or p["updated_at"],
            )
        )

    body = "\n".join(urls)
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">\n'
        f"{body}\n"
        "</urlset>\n"
    )


def robots_txt(*, db) -> str:
    return (
        "User-agent: *\n"
        "Allow: /\n\n"
        "# Disallow admin areas\n"
        "Disallow: /admin/\n"
        "Disallow: /login/\n"
        "Disallow: /dashboard/\n\n"
        f"Sitemap: {site_url(db=db)}/sitemap.xml\n"
    )
