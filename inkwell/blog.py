#!/usr/bin/env python3
"""
inkwell: a small blog CMS.

JSON API under ``/api``, public feeds, sitemap and robots.txt, and the
``flask init`` / ``flask sitemap`` commands.
"""

import os
import secrets
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

import click
from flask import Flask, Response, jsonify, request
from pydantic import ValidationError
from werkzeug.middleware.proxy_fix import ProxyFix

from inkwell import categories, comments, feeds, media, posts, search, seo, settings
from inkwell import tags, users
from inkwell.comments import REPLY_POLICIES
from inkwell.db import close_db, get_db, init_db
from inkwell.errors import InkwellError, NotFound
from inkwell.schemas import CommentStatusUpdate, FeedConfig, SearchPosts

################################################################################
# Imports & constants
################################################################################

ROOT = Path(__file__).parent
DB_FILE = ROOT / "inkwell.sqlite3"

try:
    __version__ = version("inkwell")
except PackageNotFoundError:
    __version__ = "0.1.0-dev"


################################################################################
# App
################################################################################
app = Flask(__name__)
app.url_map.strict_slashes = False
app.config.update(
    SECRET_KEY=os.environ.get("INKWELL_SECRET_KEY") or secrets.token_hex(32),
    DATABASE=os.environ.get("INKWELL_DB", str(DB_FILE)),
    FEED_LIMIT=int(os.environ.get("INKWELL_FEED_LIMIT", 50)),
    COMMENT_REPLY_POLICY=os.environ.get("INKWELL_COMMENT_REPLY_POLICY", "orphan"),
)
app.json.sort_keys = False
app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)
app.teardown_appcontext(close_db)

if app.config["COMMENT_REPLY_POLICY"] not in REPLY_POLICIES:
    raise RuntimeError(
        f"INKWELL_COMMENT_REPLY_POLICY must be one of {', '.join(REPLY_POLICIES)}"
    )


###############################################################################
# Request helpers
###############################################################################
def _body() -> dict:
    """JSON body of the request (``{}`` when empty)."""
    return request.get_json(silent=True) or {}


def _found(obj, what: str, key):
    if obj is None:
        raise NotFound(f"{what} {key} not found")
    return obj


def _page_args(default_limit: int = 20) -> tuple[int, int]:
    page = request.args.get("page", 1, type=int)
    limit = request.args.get("limit", default_limit, type=int)
    return page, limit


def _search_filters() -> dict:
    """Query string → SearchPosts input; unknown keys are ignored."""
    out = {}
    for key in SearchPosts.model_fields:
        if key == "tag_ids":
            vals = [v for raw in request.args.getlist(key) for v in raw.split(",") if v]
            if vals:
                out[key] = vals
        elif request.args.get(key, "") != "":
            out[key] = request.args[key]
    return out


def _feed_config() -> dict:
    return {
        k: v for k, v in request.args.items() if k in FeedConfig.model_fields and v
    }


def _xml(body: str, mimetype: str = "application/xml") -> Response:
    return app.response_class(body, mimetype=mimetype)


###############################################################################
# Error handlers
###############################################################################
@app.errorhandler(InkwellError)
def inkwell_error(exc: InkwellError):
    app.logger.warning("%s %s: %s", request.method, request.path, exc.message)
    return jsonify(exc.to_dict()), exc.status_code


@app.errorhandler(ValidationError)
def validation_error(exc: ValidationError):
    details = exc.errors(include_url=False, include_context=False)
    for d in details:
        # ctx-less, but "input" may still hold non-JSON values (datetimes…)
        d["input"] = str(d.get("input"))
    return jsonify({"error": "ValidationError", "details": details}), 400


@app.errorhandler(404)
def not_found(exc):
    return jsonify({"error": "NotFound", "message": "Resource not found"}), 404


@app.errorhandler(405)
def method_not_allowed(exc):
    return jsonify({"error": "MethodNotAllowed", "message": str(exc)}), 405


@app.errorhandler(500)
def internal_error(exc):
    app.logger.exception("unhandled error on %s %s", request.method, request.path)
    return jsonify({"error": "InternalError", "message": "Internal server error"}), 500


###############################################################################
# Categories
###############################################################################
@app.get("/api/categories")
def api_categories():
    return jsonify(categories.list_categories(db=get_db()))


@app.post("/api/categories")
def api_category_create():
    return jsonify(categories.create_category(_body(), db=get_db())), 201


@app.get("/api/categories/tree")
def api_category_tree():
    return jsonify(categories.category_tree(db=get_db()))


@app.get("/api/categories/<int:category_id>")
def api_category(category_id: int):
    cat = categories.get_category(category_id, db=get_db())
    return jsonify(_found(cat, "Category", category_id))


@app.get("/api/categories/slug/<slug>")
def api_category_by_slug(slug: str):
    cat = categories.get_category_by_slug(slug, db=get_db())
    return jsonify(_found(cat, "Category", slug))


@app.patch("/api/categories/<int:category_id>")
def api_category_update(category_id: int):
    return jsonify(categories.update_category(category_id, _body(), db=get_db()))


@app.delete("/api/categories/<int:category_id>")
def api_category_delete(category_id: int):
    return jsonify(success=categories.delete_category(category_id, db=get_db()))


###############################################################################
# Posts
###############################################################################
@app.get("/api/posts")
def api_posts():
    db = get_db()
    filters = _search_filters()
    if "limit" not in filters:
        filters["limit"] = settings.get_setting("posts_per_page", db=db)
    return jsonify(posts.list_posts(filters, db=db))


@app.post("/api/posts")
def api_post_create():
    return jsonify(posts.create_post(_body(), db=get_db())), 201


@app.get("/api/posts/<int:post_id>")
def api_post(post_id: int):
    return jsonify(_found(posts.get_post(post_id, db=get_db()), "Post", post_id))


@app.get("/api/posts/slug/<slug>")
def api_post_by_slug(slug: str):
    return jsonify(_found(posts.get_post_by_slug(slug, db=get_db()), "Post", slug))


@app.patch("/api/posts/<int:post_id>")
def api_post_update(post_id: int):
    return jsonify(posts.update_post(post_id, _body(), db=get_db()))


@app.delete("/api/posts/<int:post_id>")
def api_post_delete(post_id: int):
    return jsonify(success=posts.delete_post(post_id, db=get_db()))


@app.post("/api/posts/<int:post_id>/publish")
def api_post_publish(post_id: int):
    return jsonify(posts.publish_post(post_id, db=get_db()))


@app.post("/api/posts/<int:post_id>/archive")
def api_post_archive(post_id: int):
    return jsonify(posts.archive_post(post_id, db=get_db()))


@app.post("/api/posts/<int:post_id>/duplicate")
def api_post_duplicate(post_id: int):
    return jsonify(posts.duplicate_post(post_id, db=get_db())), 201


@app.get("/api/posts/<int:post_id>/related")
def api_post_related(post_id: int):
    limit = request.args.get("limit", 5, type=int)
    return jsonify(posts.related_posts(post_id, db=get_db(), limit=limit))


@app.get("/api/posts/<int:post_id>/comments")
def api_post_comments(post_id: int):
    status = request.args.get("status") or None
    return jsonify(comments.comments_for_post(post_id, db=get_db(), status=status))


@app.get("/api/posts/<int:post_id>/thread")
def api_post_thread(post_id: int):
    return jsonify(comments.comment_thread(post_id, db=get_db()))


###############################################################################
# SEO (per post)
###############################################################################
def _post_or_404(post_id: int) -> dict:
    return _found(posts.get_post(post_id, db=get_db()), "Post", post_id)


@app.get("/api/posts/<int:post_id>/seo")
def api_post_seo(post_id: int):
    db = get_db()
    post = _post_or_404(post_id)
    return jsonify(
        metadata=seo.post_metadata(post, db=db),
        structured_data=seo.structured_data(post, db=db),
        analysis=seo.analyze_post(post),
        canonical_url=seo.canonical_url(post, db=db),
    )


@app.get("/api/posts/<int:post_id>/seo/metadata")
def api_post_metadata(post_id: int):
    return jsonify(seo.post_metadata(_post_or_404(post_id), db=get_db()))


@app.get("/api/posts/<int:post_id>/seo/structured-data")
def api_post_structured_data(post_id: int):
    return jsonify(seo.structured_data(_post_or_404(post_id), db=get_db()))


@app.get("/api/posts/<int:post_id>/seo/analysis")
def api_post_analysis(post_id: int):
    return jsonify(seo.analyze_post(_post_or_404(post_id)))


###############################################################################
# Search
###############################################################################
@app.get("/api/search")
def api_search():
    return jsonify(search.search_posts(_search_filters(), db=get_db()))


@app.get("/api/search/suggestions")
def api_search_suggestions():
    q = request.args.get("q", "")
    limit = request.args.get("limit", 5, type=int)
    return jsonify(search.search_suggestions(q, db=get_db(), limit=limit))


###############################################################################
# Tags
###############################################################################
@app.get("/api/tags")
def api_tags():
    return jsonify(tags.list_tags(db=get_db()))


@app.post("/api/tags")
def api_tag_create():
    return jsonify(tags.create_tag(_body(), db=get_db())), 201


@app.get("/api/tags/popular")
def api_tags_popular():
    limit = request.args.get("limit", 10, type=int)
    return jsonify(tags.popular_tags(db=get_db(), limit=limit))


@app.get("/api/tags/search")
def api_tags_search():
    return jsonify(tags.search_tags(request.args.get("q", ""), db=get_db()))


@app.get("/api/tags/<int:tag_id>")
def api_tag(tag_id: int):
    return jsonify(_found(tags.get_tag(tag_id, db=get_db()), "Tag", tag_id))


@app.get("/api/tags/slug/<slug>")
def api_tag_by_slug(slug: str):
    return jsonify(_found(tags.get_tag_by_slug(slug, db=get_db()), "Tag", slug))


@app.patch("/api/tags/<int:tag_id>")
def api_tag_update(tag_id: int):
    return jsonify(tags.update_tag(tag_id, _body(), db=get_db()))


@app.delete("/api/tags/<int:tag_id>")
def api_tag_delete(tag_id: int):
    return jsonify(success=tags.delete_tag(tag_id, db=get_db()))


###############################################################################
# Comments
###############################################################################
@app.get("/api/comments")
def api_comments():
    page, limit = _page_args()
    return jsonify(comments.all_comments(db=get_db(), page=page, limit=limit))


@app.post("/api/comments")
def api_comment_create():
    return jsonify(comments.create_comment(_body(), db=get_db())), 201


@app.get("/api/comments/pending")
def api_comments_pending():
    return jsonify(comments.pending_comments(db=get_db()))


@app.get("/api/comments/<int:comment_id>")
def api_comment(comment_id: int):
    c = comments.get_comment(comment_id, db=get_db())
    return jsonify(_found(c, "Comment", comment_id))


@app.patch("/api/comments/<int:comment_id>/status")
def api_comment_status(comment_id: int):
    status = CommentStatusUpdate.model_validate(_body()).status
    return jsonify(comments.update_comment_status(comment_id, status, db=get_db()))


@app.post("/api/comments/<int:comment_id>/approve")
def api_comment_approve(comment_id: int):
    return jsonify(comments.approve_comment(comment_id, db=get_db()))


@app.post("/api/comments/<int:comment_id>/reject")
def api_comment_reject(comment_id: int):
    return jsonify(comments.reject_comment(comment_id, db=get_db()))


@app.post("/api/comments/<int:comment_id>/spam")
def api_comment_spam(comment_id: int):
    return jsonify(comments.mark_spam(comment_id, db=get_db()))


@app.delete("/api/comments/<int:comment_id>")
def api_comment_delete(comment_id: int):
    policy = request.args.get("policy") or None
    if policy is not None and policy not in REPLY_POLICIES:
        return jsonify(
            error="ValidationError",
            message=f"policy must be one of {', '.join(REPLY_POLICIES)}",
        ), 400
    return jsonify(
        success=comments.delete_comment(comment_id, db=get_db(), policy=policy)
    )


###############################################################################
# Media
###############################################################################
@app.get("/api/media")
def api_media_library():
    db = get_db()
    prefix = request.args.get("type")
    if prefix:
        return jsonify(media.media_by_type(prefix, db=db))
    page, limit = _page_args()
    return jsonify(media.media_library(db=db, page=page, limit=limit))


@app.post("/api/media")
def api_media_create():
    return jsonify(media.create_media(_body(), db=get_db())), 201


@app.get("/api/media/<int:media_id>")
def api_media(media_id: int):
    return jsonify(_found(media.get_media(media_id, db=get_db()), "Media", media_id))


@app.patch("/api/media/<int:media_id>")
def api_media_update(media_id: int):
    return jsonify(media.update_media(media_id, _body(), db=get_db()))


@app.delete("/api/media/<int:media_id>")
def api_media_delete(media_id: int):
    return jsonify(success=media.delete_media(media_id, db=get_db()))


###############################################################################
# Users
###############################################################################
@app.get("/api/users")
def api_users():
    return jsonify(users.list_users(db=get_db()))


@app.post("/api/users")
def api_user_create():
    return jsonify(users.create_user(_body(), db=get_db())), 201


@app.get("/api/users/<int:user_id>")
def api_user(user_id: int):
    return jsonify(_found(users.get_user(user_id, db=get_db()), "User", user_id))


@app.patch("/api/users/<int:user_id>")
def api_user_update(user_id: int):
    return jsonify(users.update_user(user_id, _body(), db=get_db()))


@app.delete("/api/users/<int:user_id>")
def api_user_delete(user_id: int):
    return jsonify(success=users.delete_user(user_id, db=get_db()))


###############################################################################
# Settings
###############################################################################
@app.get("/api/settings")
def api_settings():
    return jsonify(settings.get_settings(db=get_db()))


@app.patch("/api/settings")
def api_settings_update():
    return jsonify(settings.update_settings(_body(), db=get_db()))


@app.post("/api/settings/reset")
def api_settings_reset():
    return jsonify(settings.reset_settings(db=get_db()))


@app.get("/api/settings/timezones")
def api_settings_timezones():
    return jsonify(settings.timezones())


@app.post("/api/settings/validate")
def api_settings_validate():
    return jsonify(settings.validate_settings(_body()))


###############################################################################
# Feeds, sitemap, robots
###############################################################################
@app.route("/rss")
def global_rss():
    return _xml(feeds.rss_feed(_feed_config(), db=get_db()), "application/rss+xml")


@app.route("/atom")
def global_atom():
    return _xml(feeds.atom_feed(_feed_config(), db=get_db()), "application/atom+xml")


@app.route("/categories/<int:category_id>/rss")
def category_rss(category_id: int):
    xml = feeds.category_rss(category_id, _feed_config(), db=get_db())
    return _xml(xml, "application/rss+xml")


@app.route("/tags/<int:tag_id>/rss")
def tag_rss(tag_id: int):
    return _xml(feeds.tag_rss(tag_id, _feed_config(), db=get_db()), "application/rss+xml")


@app.route("/authors/<int:author_id>/rss")
def author_rss(author_id: int):
    xml = feeds.author_rss(author_id, _feed_config(), db=get_db())
    return _xml(xml, "application/rss+xml")


@app.route("/sitemap.xml")
def sitemap():
    return _xml(seo.sitemap(db=get_db()))


@app.route("/robots.txt")
def robots():
    return (
        Response(seo.robots_txt(db=get_db()), mimetype="text/plain"),
        200,
        {"Cache-Control": "public, max-age=86400"},
    )  # 1 day cache


###############################################################################
# CLI
###############################################################################
@app.cli.command("init")
@click.option("--email", prompt=True, help="Admin e-mail address")
@click.option("--username", prompt=True, help="Admin username")
@click.option(
    "--password", prompt=True, hide_input=True, confirmation_prompt=True
)
@click.option("--first-name", default="Admin", show_default=True)
@click.option("--last-name", default="User", show_default=True)
def cli_init(email, username, password, first_name, last_name):
    """Initialise the DB, seed settings *and* create the first admin."""
    init_db()  # no-op if already there
    db = get_db()
    settings.get_settings(db=db)
    try:
        admin = users.create_user(
            {
                "email": email,
                "username": username,
                "password": password,
                "first_name": first_name,
                "last_name": last_name,
                "role": "admin",
            },
            db=db,
        )
    except ValidationError as exc:
        for err in exc.errors(include_url=False):
            click.secho(f"{'.'.join(map(str, err['loc']))}: {err['msg']}", fg="red")
        raise click.exceptions.Exit(1)
    except InkwellError as exc:
        click.secho(exc.message, fg="red")
        raise click.exceptions.Exit(1)

    click.secho(f"\n✅  Admin '{admin['username']}' created.", fg="green")


@app.cli.command("sitemap")
@click.option(
    "--output", "-o", type=click.Path(dir_okay=False), help="Write to FILE"
)
def cli_sitemap(output):
    """Print (or write) sitemap.xml."""
    xml = seo.sitemap(db=get_db())
    if output:
        Path(output).write_text(xml, encoding="utf-8")
        click.secho(f"Sitemap written to {output}", fg="green")
    else:
        click.echo(xml, nl=False)


###############################################################################
# main
###############################################################################
if __name__ == "__main__":
    app.run(debug=True)
