from unittest.mock import MagicMock, patch

import pytest

from main import create_app

UPSTREAM = "https://upstream.test"


@pytest.fixture
def app():
    return create_app(api_key=None, upstream_base=UPSTREAM, timeout=5)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def upstream():
    """Patch the outbound call with a canned 200 JSON reply."""
    resp = MagicMock()
    resp.status_code = 200
    resp.content = b'{"models": []}'
    resp.headers = {"Content-Type": "application/json; charset=UTF-8"}
    with patch("main.requests.request", return_value=resp) as mock_request:
        yield mock_request
