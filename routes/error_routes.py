"""Error handlers."""

import logging

from flask import jsonify
from werkzeug.exceptions import HTTPException

from errors import FetchError

logger = logging.getLogger(__name__)


def register_error_handlers(app) -> None:
    @app.errorhandler(FetchError)
    def fetch_error(error):
        return jsonify(error.to_dict()), error.status or 502

    @app.errorhandler(HTTPException)
    def http_error(error):
        return jsonify({"error": error.description or error.name}), error.code

    @app.errorhandler(500)
    def server_error(error):
        logger.error("Unhandled error: %r", getattr(error, "original_exception", error))
        return jsonify({"error": "Server error occurred"}), 500
