"""
HTTP API for browsing the catalog and minting fresh links.

Routes:
    GET  /files          rebuild the catalog and list every file
    GET  /files/random   one uniformly random file
    GET  /files/batch    a duplicate-free random batch (``count`` query arg)
    POST /link           mint a fresh link for ``{path}`` and/or ``{identifier}``
"""

from __future__ import annotations

import logging
from typing import Optional

from flask import Blueprint, Flask, current_app, jsonify, request
from werkzeug.exceptions import HTTPException

from .config import AppConfig
from .errors import CloudPickError, EmptyCatalog
from .resolver import LinkReference
from .service import CatalogService, build_service

LOGGER = logging.getLogger("cloudpick.server")

files_bp = Blueprint("files", __name__)


def _service() -> CatalogService:
    return current_app.extensions["cloudpick"]


def _empty_result(exc: EmptyCatalog):
    return jsonify({"file": None, "files": [], "current": None, "empty": True, "details": exc.message})


# --- Routes ---

@files_bp.route("/files", methods=["GET"])
def list_files():
    """List every file in a freshly built catalog."""
    catalog = _service().refresh()
    return jsonify(catalog.to_dict())


@files_bp.route("/files/random", methods=["GET"])
def random_file():
    try:
        record = _service().pick_one()
    except EmptyCatalog as exc:
        return _empty_result(exc)
    payload = record.to_dict()
    return jsonify({"file": payload, "files": [payload], "current": payload})


@files_bp.route("/files/batch", methods=["GET"])
def random_batch():
    raw_count = request.args.get("count")
    count: Optional[int] = None
    if raw_count is not None:
        try:
            count = int(raw_count)
        except ValueError:
            return jsonify({"error": "count must be an integer."}), 400
    try:
        batch = _service().pick_batch(count)
    except EmptyCatalog as exc:
        return _empty_result(exc)
    return jsonify(batch.to_dict())


@files_bp.route("/link", methods=["POST"])
def fresh_link():
    """Resolve a path or identifier to a newly minted URL."""
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify({"error": "Request body must be a JSON object."}), 400
    try:
        reference = LinkReference.coerce(data)
    except ValueError:
        return jsonify({"error": "File path or identifier is required."}), 400

    link = _service().resolve(reference)
    return jsonify(link.to_dict())


# --- Error handling ---

def _handle_classified(exc: CloudPickError):
    status = exc.http_status if exc.http_status >= 400 else 500
    if status >= 500:
        LOGGER.error("%s: %s (%s)", exc.kind, exc.message, exc.details)
    else:
        LOGGER.info("%s: %s", exc.kind, exc.message)
    return jsonify(exc.to_dict()), status


def _handle_http(exc: HTTPException):
    if exc.code == 405:
        return jsonify({"error": "Method Not Allowed", "kind": "method_not_allowed"}), 405
    return jsonify({"error": exc.name, "kind": "http_error", "details": exc.description}), exc.code


def _handle_unexpected(exc: Exception):
    LOGGER.exception("Unhandled error while serving %s", request.path)
    return jsonify({"error": "Internal server error.", "kind": "internal_error", "details": str(exc)}), 500


def create_app(
    config: Optional[AppConfig] = None,
    *,
    service: Optional[CatalogService] = None,
) -> Flask:
    """Create the Flask application around a ``CatalogService``."""

    if service is None:
        if config is None:
            raise ValueError("Either a configuration or a service is required")
        service = build_service(config)

    app = Flask(__name__)
    app.json.sort_keys = False
    app.extensions["cloudpick"] = service
    app.register_blueprint(files_bp)
    app.register_error_handler(CloudPickError, _handle_classified)
    app.register_error_handler(HTTPException, _handle_http)
    app.register_error_handler(Exception, _handle_unexpected)
    return app


__all__ = ["create_app", "files_bp"]
