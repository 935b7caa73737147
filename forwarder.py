from typing import Optional
from urllib.parse import quote, unquote_plus, urlsplit

# ----------------------
# Constants
# ----------------------
GEMINI_API_BASE = "https://generativelanguage.googleapis.com"

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization, X-Goog-Api-Key",
    "Access-Control-Max-Age": "86400",
}

ALLOWED_FORWARD_HEADERS = ("content-type", "x-goog-api-version")

API_KEY_HEADER = "X-Goog-Api-Key"
API_KEY_QUERY_PARAM = "key"

HTTP_METHODS_WITHOUT_BODY = ("GET", "HEAD")

DEFAULT_CONTENT_TYPE = "application/json"

MISSING_KEY_MESSAGE = (
    "API key is required. Provide it via X-Goog-Api-Key header, "
    "?key= query parameter, or set GEMINI_API_KEY environment variable"
)

# Characters left unescaped when re-quoting an inbound path.
_PATH_SAFE = "/:@!$&'()*+,;="


# ----------------------
# Helpers
# ----------------------
def resolve_api_key(headers, args, fallback: Optional[str] = None):
    """Return the first non-empty key from header, query parameter, then fallback."""
    candidates = (
        headers.get(API_KEY_HEADER),
        args.get(API_KEY_QUERY_PARAM),
        fallback,
    )
    return next((key for key in candidates if key), None)


def raw_request_path(environ, decoded_path: str) -> str:
    """Return the request path as the client sent it, still percent-encoded."""
    raw = environ.get("REQUEST_URI") or environ.get("RAW_URI")
    if not raw:
        return quote(decoded_path, safe=_PATH_SAFE)
    path = raw.split("?", 1)[0]
    if "://" in path:
        path = urlsplit(path).path
    # WSGI hands over raw bytes as latin-1 text
    path = path.encode("latin-1").decode("utf-8", "replace")
    return quote(path, safe=_PATH_SAFE + "%") or "/"


def strip_key_param(query_string: str) -> str:
    """Drop every ``key`` parameter, keeping the other pairs as written."""
    kept = []
    for pair in query_string.split("&"):
        if not pair:
            continue
        name = pair.split("=", 1)[0]
        if unquote_plus(name) == API_KEY_QUERY_PARAM:
            continue
        kept.append(pair)
    return "&".join(kept)


def build_target_url(path: str, query_string: str, api_key: str, base: str = GEMINI_API_BASE) -> str:
    """Build the upstream URL, relocating the API key to the end of the query.

    ``path`` must already be percent-encoded; it is forwarded as given.
    """
    query = strip_key_param(query_string)
    key_param = f"{API_KEY_QUERY_PARAM}={quote(api_key, safe='')}"
    if query:
        return f"{base.rstrip('/')}{path}?{query}&{key_param}"
    return f"{base.rstrip('/')}{path}?{key_param}"


def prepare_headers(headers, api_key: str) -> dict:
    """Copy the allow-listed headers and set the API key header."""
    outbound = {}
    for name in ALLOWED_FORWARD_HEADERS:
        value = headers.get(name)
        if value:
            outbound[name] = value
    outbound[API_KEY_HEADER] = api_key
    return outbound


def requires_body(method: str) -> bool:
    return method.upper() not in HTTP_METHODS_WITHOUT_BODY


def error_payload(error: str, message: Optional[str] = None) -> dict:
    body = {"error": error}
    if message:
        body["message"] = message
    return body


def root_payload(origin: str) -> dict:
    return {
        "message": "Gemini API Proxy",
        "usage": "Use paths like /v1/models or /v1beta/models/gemini-flash-latest:generateContent",
        "example": f"{origin.rstrip('/')}/v1/models?key=YOUR_API_KEY",
    }
