"""Tests for the httpx transport backed by the connector."""

import json
from collections.abc import Iterator

import httpx
import pytest

from appdriver.adapters.web.connector import AiohttpConnector
from appdriver.adapters.web.httpx_transport import ConnectorTransport, from_httpx_request
from appdriver.tests.fakes.app import create_app


@pytest.fixture
def client() -> Iterator[httpx.Client]:
    connector = AiohttpConnector()
    connector.set_application_factory(create_app, {})
    with httpx.Client(transport=ConnectorTransport(connector), base_url="http://localhost") as client:
        yield client
    connector.close()


def test_from_httpx_request() -> None:
    request = httpx.Request(
        "POST",
        "https://localhost/echo",
        headers=[("X-Tag", "a"), ("X-Tag", "b")],
        content=b"payload",
    )
    browser_request = from_httpx_request(request)
    assert browser_request.method == "POST"
    assert browser_request.uri == "https://localhost/echo"
    assert browser_request.server["HTTP_X_TAG"] == "a, b"
    assert browser_request.server["HTTPS"] == "on"
    assert browser_request.server["CONTENT_LENGTH"] == "7"
    assert browser_request.content == b"payload"


def test_get(client: httpx.Client) -> None:
    response = client.get("/")
    assert response.status_code == 200
    assert "Welcome" in response.text


def test_post_json(client: httpx.Client) -> None:
    response = client.post("/echo", json={"a": 1})
    echo = response.json()
    assert echo["method"] == "POST"
    assert json.loads(echo["body"]) == {"a": 1}
    assert echo["headers"]["Content-Type"] == "application/json"


def test_compressed_body_decoded(client: httpx.Client) -> None:
    response = client.get("/compressed")
    assert response.headers["Content-Encoding"] == "gzip"
    assert response.text == "squeeze me " * 20


def test_redirect_not_followed_by_default(client: httpx.Client) -> None:
    response = client.get("/redirect")
    assert response.status_code == 302
    assert response.headers["Location"] == "/"
