import logging
import os

from flask import Flask, jsonify, request
from flask_cors import CORS

from config import create_store, load_settings
from errors import SearchServiceError
from search import ALL_COLLECTIONS, load_items, search_items
from sync import sync

SEARCH_CACHE_CONTROL = "public, max-age=60, s-maxage=300"
DATA_CACHE_CONTROL = "public, max-age=300, s-maxage=3600"

app = Flask(__name__)
app.logger.setLevel(logging.INFO)
CORS(
    app,
    resources={r"/api/search": {"origins": "*"}, r"/api/data": {"origins": "*"}},
    methods=["GET", "OPTIONS"],
    allow_headers=["Content-Type"],
    send_wildcard=True,
)

settings = load_settings()
store = create_store(settings)


@app.errorhandler(SearchServiceError)
def handle_service_error(error):
    if error.status_code >= 500:
        app.logger.error("%s: %s", type(error).__name__, error.details or error.message)
    return jsonify(error.to_dict()), error.status_code


def _failure(message, exc):
    return jsonify({"error": message, "details": str(exc)}), 500


@app.route('/api/sync', methods=["GET", "POST"])
def sync_endpoint():
    try:
        report = sync(settings, store, credential=request.headers.get("Authorization"))
    except SearchServiceError:
        raise
    except Exception as exc:
        app.logger.exception("Sync failed")
        return _failure("Failed to sync", exc)

    app.logger.info("Synced %d items across %d collections", report.items_count, report.collections_count)
    return jsonify(report.to_dict())


@app.route('/api/search')
def search_endpoint():
    query = request.args.get("q") or None
    collections = request.args.get("collections") or ALL_COLLECTIONS

    try:
        response = search_items(store, query, collections)
    except SearchServiceError:
        raise
    except Exception as exc:
        app.logger.exception("Error searching collections")
        return _failure("Failed to search collections", exc)

    resp = jsonify(response.to_dict())
    resp.headers["Cache-Control"] = SEARCH_CACHE_CONTROL
    return resp


@app.route('/api/data')
def data_endpoint():
    collections = request.args.get("collections") or ALL_COLLECTIONS

    try:
        items = load_items(store, collections)
    except SearchServiceError:
        raise
    except Exception as exc:
        app.logger.exception("Error loading items")
        return _failure("Failed to fetch data", exc)

    resp = jsonify({"items": [item.to_dict() for item in items], "total": len(items)})
    resp.headers["Cache-Control"] = DATA_CACHE_CONTROL
    return resp


@app.route('/api/health')
def health_endpoint():
    return jsonify(store.health())


if __name__ == '__main__':
    port = int(os.environ.get("PORT", 5000))
    app.run(host="0.0.0.0", port=port)
