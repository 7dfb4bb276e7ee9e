"""JSON API and proxy routes."""

from __future__ import annotations

import logging
from urllib.parse import urlencode

from flask import Response, jsonify, request

import config
from controller import FetchController
from errors import ExhaustedError, ValidationError
from forms import AssistForm, BrowseForm, DownloadForm
from models import BROWSE_SORTS, SEARCH_SORTS, is_valid_subreddit_name, normalize_subreddit_name
from services.post_builder import build_view_state
from services.repost_assist import KINDS

logger = logging.getLogger(__name__)

# HTTP status for a failed browse session, by error kind
_ERROR_STATUS = {
    "validation": 400,
    "not_found": 404,
}
PROXY_SORTS = ("hot", "new", "top", "rising")


def _form_error(form, message: str):
    fields = {name: errors for name, errors in form.errors.items() if name}
    return jsonify({"error": form.form_errors[0] if form.form_errors else message, "fields": fields}), 400


def _proxy_response(upstream) -> Response:
    return Response(upstream.body, status=upstream.status, content_type=upstream.content_type)


def register_api_routes(app, client, resolver, assistant, downloader) -> None:
    @app.after_request
    def add_api_headers(response):
        if request.path.startswith("/api/"):
            response.headers["Access-Control-Allow-Origin"] = "*"
            response.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
            response.headers["Access-Control-Allow-Headers"] = "Content-Type"
            response.headers["Cache-Control"] = "no-store"
        return response

    @app.route("/api/posts")
    def api_posts():
        form = BrowseForm(formdata=request.args)
        if not form.validate():
            return _form_error(form, "Invalid browse parameters")

        controller = FetchController(client=client)
        controller.load(form.to_query())
        view = controller.view()

        status = 200
        if view.error_kind:
            status = _ERROR_STATUS.get(view.error_kind, 502)
        return jsonify(build_view_state(view)), status

    @app.route("/api/channels")
    def api_channels():
        return jsonify(
            {
                "groups": config.SUBREDDIT_GROUPS,
                "browse_sorts": list(BROWSE_SORTS),
                "search_sorts": list(SEARCH_SORTS),
                "default_subreddit": config.DEFAULT_SUBREDDIT,
            }
        )

    @app.route("/api/fetch")
    def api_fetch():
        target = request.args.get("url", "").strip()
        if not target:
            return jsonify({"error": "Missing url query param"}), 400

        try:
            upstream = resolver.resolve(target)
        except ValidationError as exc:
            return jsonify(exc.to_dict()), 400
        except ExhaustedError as exc:
            return jsonify(exc.to_dict()), exc.status
        return _proxy_response(upstream)

    @app.route("/api/reddit/<subreddit>")
    def api_reddit(subreddit):
        name = normalize_subreddit_name(subreddit)
        sort = request.args.get("sort", "new")
        try:
            limit = int(request.args.get("limit", config.DEFAULT_POST_LIMIT))
        except ValueError:
            return jsonify({"error": "limit must be an integer"}), 400

        if not is_valid_subreddit_name(name):
            return jsonify({"error": f"Invalid subreddit name: {subreddit}"}), 400
        if sort not in PROXY_SORTS:
            return jsonify({"error": f"Unsupported sort: {sort}"}), 400

        params = urlencode({"limit": max(1, min(limit, config.MAX_POSTS_PER_REQUEST)), "raw_json": 1})
        target = f"{config.REDDIT_BASE_URL}/r/{name}/{sort}.json?{params}"
        try:
            upstream = resolver.resolve(target)
        except ExhaustedError as exc:
            return jsonify(exc.to_dict()), exc.status
        return _proxy_response(upstream)

    @app.route("/api/assist/<kind>", methods=["POST"])
    def api_assist(kind):
        if kind not in KINDS:
            return jsonify({"error": f"Unknown assist kind: {kind}"}), 404

        form = AssistForm()
        if not form.validate():
            return _form_error(form, "Invalid post details")

        return jsonify(assistant.generate(kind, form.to_post()))

    @app.route("/api/download", methods=["POST"])
    def api_download():
        form = DownloadForm()
        if not form.validate():
            return _form_error(form, "Invalid media details")

        plan = downloader.plan(form.to_post())
        if plan is None:
            return jsonify({"error": "This post has no downloadable media."}), 404
        return jsonify(plan.to_dict())
