"""
Reddit Clip Browser Web App
JSON browsing API and a Reddit proxy that works around CORS and bot blocking
"""

import logging
import os

from flask import Flask

import config
from reddit_client import RedditClient
from routes.api_routes import register_api_routes
from routes.error_routes import register_error_handlers
from services.media_download import MediaDownloader
from services.repost_assist import RepostAssistant
from services.upstream_resolver import UpstreamResolver


def create_app(client=None, resolver=None, assistant=None, downloader=None) -> Flask:
    """Build the Flask app; collaborators can be injected for tests."""
    app = Flask(__name__)
    app.secret_key = config.SECRET_KEY

    register_api_routes(
        app,
        client=client or RedditClient(proxy_url=""),
        resolver=resolver or UpstreamResolver(),
        assistant=assistant or RepostAssistant(),
        downloader=downloader or MediaDownloader(),
    )
    register_error_handlers(app)
    return app


def main() -> None:
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    debug_mode = os.getenv("FLASK_DEBUG", "0") == "1"
    app = create_app()
    logging.getLogger(__name__).info("Server running at http://%s:%s", config.HOST, config.PORT)
    app.run(host=config.HOST, port=config.PORT, debug=debug_mode)


if __name__ == "__main__":
    main()
