import os
import logging
from flask import Flask, Response, request, jsonify, current_app
from werkzeug.exceptions import MethodNotAllowed
import requests

from forwarder import (
    CORS_HEADERS,
    DEFAULT_CONTENT_TYPE,
    GEMINI_API_BASE,
    MISSING_KEY_MESSAGE,
    build_target_url,
    error_payload,
    prepare_headers,
    raw_request_path,
    requires_body,
    resolve_api_key,
    root_payload,
)

# ----------------------
# Configuration
# ----------------------
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
UPSTREAM_BASE = os.getenv("GEMINI_API_BASE", GEMINI_API_BASE)
UPSTREAM_TIMEOUT = float(os.getenv("UPSTREAM_TIMEOUT", "120"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
PORT = int(os.getenv("PORT", "8080"))

PROXY_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]

# Logging
logging.basicConfig(level=LOG_LEVEL.upper())
logger = logging.getLogger("gemini-proxy")


# ----------------------
# Endpoints
# ----------------------
def add_cors_headers(response):
    for name, value in CORS_HEADERS.items():
        response.headers[name] = value
    return response


def proxy(path=""):
    if request.method == "OPTIONS":
        return Response(status=204)

    if request.path == "/":
        return jsonify(root_payload(request.host_url)), 200

    api_key = resolve_api_key(request.headers, request.args, current_app.config["GEMINI_API_KEY"])
    if not api_key:
        logger.info("Rejected %s %s: no API key supplied", request.method, request.path)
        return jsonify(error_payload(MISSING_KEY_MESSAGE)), 400

    # Forward to upstream
    try:
        target_url = build_target_url(
            raw_request_path(request.environ, request.path),
            request.query_string.decode("utf-8", "replace"),
            api_key,
            base=current_app.config["UPSTREAM_BASE"],
        )
        headers = prepare_headers(request.headers, api_key)
        body = request.get_data() if requires_body(request.method) else None

        resp = requests.request(
            request.method,
            target_url,
            headers=headers,
            data=body,
            timeout=current_app.config["UPSTREAM_TIMEOUT"],
            allow_redirects=False,
        )
    except Exception as e:
        logger.exception("Proxy error: %s", e)
        return jsonify(error_payload("Proxy error", str(e) or type(e).__name__)), 500

    logger.debug("%s %s -> %s", request.method, request.path, resp.status_code)
    return Response(
        resp.content,
        status=resp.status_code,
        content_type=resp.headers.get("Content-Type") or DEFAULT_CONTENT_TYPE,
    )


def forward_unrouted_method(error):
    """Methods outside the route list are forwarded like any other."""
    return proxy()


# ----------------------
# App Setup
# ----------------------
def create_app(api_key=None, upstream_base=GEMINI_API_BASE, timeout=UPSTREAM_TIMEOUT):
    """Build the proxy app; the fallback key is passed in rather than read globally."""
    app = Flask(__name__)
    app.config.update(
        GEMINI_API_KEY=api_key,
        UPSTREAM_BASE=upstream_base,
        UPSTREAM_TIMEOUT=timeout,
    )
    app.add_url_rule("/", "proxy", proxy, defaults={"path": ""}, methods=PROXY_METHODS)
    app.add_url_rule("/<path:path>", "proxy", proxy, methods=PROXY_METHODS)
    app.register_error_handler(MethodNotAllowed, forward_unrouted_method)
    app.after_request(add_cors_headers)
    return app


app = create_app(GEMINI_API_KEY, UPSTREAM_BASE, UPSTREAM_TIMEOUT)

if __name__ == "__main__":
    app.run(host="0.0.0.0", port=PORT)
