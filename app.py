#!/usr/bin/env python3
"""
VideoRelay app.py
Single-endpoint Flask app:
 - GET /api/download?url=... resolves the video via yt-dlp and relays the
   lowest-quality muxed stream back as a file download
 - Uses cookies.txt automatically if present (for restricted videos)
 - GET /api/cookie_status reports whether cookies are loaded
 - Stops reading upstream as soon as the client disconnects
"""

import os
import logging
from pathlib import Path

from flask import Flask, Response, current_app, jsonify, request

import errors
from cookie_store import CookieStore
from relay import USAGE, RelayHandler
from resolver import YtDlpResolver

# -----------------------------
# Configuration (override via ENV)
# -----------------------------
BASE_DIR = Path(__file__).resolve().parent
COOKIES_PATH = Path(os.getenv("COOKIES_PATH", BASE_DIR / "cookies.txt"))

DEFAULT_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
USER_AGENT = os.getenv("USER_AGENT", DEFAULT_USER_AGENT)
PROXY_URL = os.getenv("PROXY_URL") or None
PLAYER_CLIENT = os.getenv("PLAYER_CLIENT") or None               # e.g. "web", "ios", "android"
EXTRACTORS = tuple(e.strip() for e in os.getenv("EXTRACTORS", "Youtube").split(",") if e.strip())

CONNECT_TIMEOUT = float(os.getenv("CONNECT_TIMEOUT", "10"))      # seconds
READ_TIMEOUT = float(os.getenv("READ_TIMEOUT", "30"))            # seconds, also yt-dlp socket_timeout
RELAY_CHUNK_SIZE = int(os.getenv("RELAY_CHUNK_SIZE", str(64 * 1024)))
MAX_FILENAME_LENGTH = int(os.getenv("MAX_FILENAME_LENGTH", "50"))
MAX_DETAIL_LENGTH = int(os.getenv("MAX_DETAIL_LENGTH", "200"))

# Logging
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
logger = logging.getLogger("VideoRelay")


def load_config() -> dict:
    return {
        "COOKIES_PATH": COOKIES_PATH,
        "USER_AGENT": USER_AGENT,
        "PROXY_URL": PROXY_URL,
        "PLAYER_CLIENT": PLAYER_CLIENT,
        "EXTRACTORS": EXTRACTORS,
        "CONNECT_TIMEOUT": CONNECT_TIMEOUT,
        "READ_TIMEOUT": READ_TIMEOUT,
        "RELAY_CHUNK_SIZE": RELAY_CHUNK_SIZE,
        "MAX_FILENAME_LENGTH": MAX_FILENAME_LENGTH,
        "MAX_DETAIL_LENGTH": MAX_DETAIL_LENGTH,
    }


def build_resolver(config) -> YtDlpResolver:
    if config["PROXY_URL"]:
        logger.info("Using proxy: %s", config["PROXY_URL"])
    return YtDlpResolver(
        extractors=config["EXTRACTORS"],
        proxy_url=config["PROXY_URL"],
        connect_timeout=config["CONNECT_TIMEOUT"],
        read_timeout=config["READ_TIMEOUT"],
        chunk_size=config["RELAY_CHUNK_SIZE"],
        player_client=config["PLAYER_CLIENT"],
    )


# -----------------------------
# Routes
# -----------------------------
def download():
    """Relay one video as an attachment."""
    if request.method != "GET":
        return jsonify({"error": "Method not allowed. Use GET."}), 405

    ext = current_app.extensions["videorelay"]
    handler = RelayHandler(
        ext["resolver"],
        ext["cookie_store"],
        user_agent=current_app.config["USER_AGENT"],
        max_filename_length=current_app.config["MAX_FILENAME_LENGTH"],
        max_detail_length=current_app.config["MAX_DETAIL_LENGTH"],
    )
    result = handler.prepare(request.args.get("url"))
    return Response(result.body, headers=result.headers, direct_passthrough=True)


def cookie_status():
    """Whether a cookies file is loaded and how many usable cookies it holds."""
    return jsonify(current_app.extensions["videorelay"]["cookie_store"].status())


# -----------------------------
# Error handlers
# -----------------------------
def handle_relay_error(e: errors.RelayError):
    if e.status >= 500:
        logger.error("Request failed (%s): %s", e.kind, e.message, exc_info=e.__cause__)
    else:
        logger.info("Request rejected (%s): %s", e.kind, e.message)
    return jsonify(e.to_dict()), e.status


def not_found(e):
    return jsonify({"error": "Not found", "usage": USAGE}), 404


def method_not_allowed(e):
    return jsonify({"error": "Method not allowed. Use GET."}), 405


def internal_err(e):
    logger.exception("Unhandled error")
    return jsonify({"error": "Internal server error"}), 500


def create_app(overrides: dict = None, resolver=None) -> Flask:
    app = Flask(__name__)
    app.config.update(load_config())
    if overrides:
        app.config.update(overrides)

    cookie_store = CookieStore(app.config["COOKIES_PATH"])
    if not cookie_store.path.exists():
        logger.warning("No cookies file found at %s - some videos may be restricted", cookie_store.path)

    app.extensions["videorelay"] = {
        "resolver": resolver or build_resolver(app.config),
        "cookie_store": cookie_store,
    }

    app.add_url_rule("/api/download", "download", download, methods=["GET"], provide_automatic_options=False)
    app.add_url_rule("/download", "download_short", download, methods=["GET"], provide_automatic_options=False)
    app.add_url_rule("/api/cookie_status", "cookie_status", cookie_status, methods=["GET"])

    app.register_error_handler(errors.RelayError, handle_relay_error)
    app.register_error_handler(404, not_found)
    app.register_error_handler(405, method_not_allowed)
    app.register_error_handler(500, internal_err)
    return app


app = create_app()


# -----------------------------
# Run
# -----------------------------
if __name__ == "__main__":
    logger.info("Starting VideoRelay app (dev server). Use gunicorn + nginx in production.")
    app.run(host="0.0.0.0", port=int(os.getenv("PORT", "5000")), debug=os.getenv("FLASK_DEBUG", "0") == "1", threaded=True)
