"""httpx transport backed by the in-process connector.

Lets tests written against ``httpx.Client`` talk to the application
under test without a socket::

    client = httpx.Client(
        transport=ConnectorTransport(connector),
        base_url="http://localhost",
    )
    response = client.get("/health")

httpx keeps its own cookies and redirect handling; the connector's
browser state (history, cookie jar) is not involved.
"""

import logging

import httpx

from appdriver.adapters.web.connector import AiohttpConnector
from appdriver.adapters.web.translator import server_key
from appdriver.core.models import BrowserRequest

logger = logging.getLogger(__name__)


def from_httpx_request(request: httpx.Request) -> BrowserRequest:
    """Convert an httpx request into a BrowserRequest."""
    server: dict[str, str] = {}
    for name, value in request.headers.multi_items():
        key = server_key(name)
        server[key] = f"{server[key]}, {value}" if key in server else value
    server["HTTPS"] = "on" if request.url.scheme == "https" else ""

    body = request.read()
    return BrowserRequest(
        uri=str(request.url),
        method=request.method,
        server=server,
        content=body or None,
    )


class ConnectorTransport(httpx.BaseTransport):
    """Synchronous httpx transport dispatching into an AiohttpConnector."""

    def __init__(self, connector: AiohttpConnector) -> None:
        self.connector = connector

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        browser_request = from_httpx_request(request)
        response = self.connector.do_request(browser_request)
        logger.debug(f"{request.method} {request.url} -> {response.status}")
        return httpx.Response(
            status_code=response.status,
            headers=list(response.headers.items()),
            content=response.content,
            request=request,
        )

    def close(self) -> None:
        # The connector is owned by whoever created it.
        return None


__all__ = ["ConnectorTransport", "from_httpx_request"]
