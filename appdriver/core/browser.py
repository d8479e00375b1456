"""Browser-emulation client.

AbstractBrowser holds everything a functional test expects from a
browser (server parameters, cookies, history, redirects) and leaves the
actual transport to a single abstract method, ``do_request``. Connectors
implement it either in-process against an application object or over
the network.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any

from yarl import URL

from appdriver.core.cookies import CookieJar
from appdriver.core.models import BrowserRequest, BrowserResponse, UploadedFile
from appdriver.exceptions import BrowserError, TooManyRedirectsError

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "appdriver/1.0"

# Status codes whose redirect replays the original method and body.
METHOD_PRESERVING_REDIRECTS = frozenset({307, 308})


class History:
    """Linear browsing history with a cursor, like a browser's back stack."""

    def __init__(self) -> None:
        self._stack: list[BrowserRequest] = []
        self._position = -1

    def add(self, request: BrowserRequest) -> None:
        del self._stack[self._position + 1:]
        self._stack.append(request)
        self._position = len(self._stack) - 1

    def clear(self) -> None:
        self._stack.clear()
        self._position = -1

    def is_empty(self) -> bool:
        return not self._stack

    def current(self) -> BrowserRequest:
        if self._position < 0:
            raise BrowserError("The page history is empty.")
        return self._stack[self._position]

    def back(self) -> BrowserRequest:
        if self._position < 1:
            raise BrowserError("You are already on the first page.")
        self._position -= 1
        return self._stack[self._position]

    def forward(self) -> BrowserRequest:
        if self._position >= len(self._stack) - 1:
            raise BrowserError("You are already on the last page.")
        self._position += 1
        return self._stack[self._position]


class AbstractBrowser(ABC):
    """Base class for browser-emulation clients.

    Subclasses implement ``do_request`` and receive fully resolved
    BrowserRequest objects: absolute URI, server parameters merged with
    the client defaults, and the cookies the jar holds for that URI.
    """

    def __init__(
        self,
        server: Mapping[str, Any] | None = None,
        base_url: str = "http://localhost",
        follow_redirects: bool = True,
        max_redirects: int = 5,
    ) -> None:
        self.base_url = URL(base_url)
        self.server: dict[str, Any] = {
            "HTTP_HOST": self.base_url.raw_authority or "localhost",
            "HTTP_USER_AGENT": DEFAULT_USER_AGENT,
            "HTTPS": self.base_url.scheme == "https",
        }
        self.server.update(server or {})
        self.cookie_jar = CookieJar()
        self.history = History()
        self.follow_redirects = follow_redirects
        self.max_redirects = max_redirects
        self._redirect_count = 0
        self._following_redirect = False
        self._redirect: str | None = None
        self._internal_request: BrowserRequest | None = None
        self._internal_response: BrowserResponse | None = None

    @abstractmethod
    def do_request(self, request: BrowserRequest) -> BrowserResponse:
        """Perform a request and return the response.

        Args:
            request: Fully resolved request.

        Returns:
            The response produced by the target.

        Raises:
            Exception: Whatever the target raised; connectors must not
                swallow application errors.
        """

    def set_server_parameter(self, key: str, value: Any) -> None:
        self.server[key] = value

    def get_server_parameter(self, key: str, default: Any = None) -> Any:
        return self.server.get(key, default)

    def remove_server_parameter(self, key: str) -> None:
        self.server.pop(key, None)

    def get_internal_request(self) -> BrowserRequest:
        if self._internal_request is None:
            raise BrowserError("No request has been made yet.")
        return self._internal_request

    def get_internal_response(self) -> BrowserResponse:
        if self._internal_response is None:
            raise BrowserError("No response is available: make a request first.")
        return self._internal_response

    def get_absolute_uri(self, uri: str) -> str:
        """Resolve ``uri`` against the current page, or the base URL."""
        url = URL(uri)
        if url.is_absolute():
            return str(url)
        base = self.base_url
        if not self.history.is_empty():
            base = self.history.current().url
        if not uri:
            return str(base)
        if uri.startswith("?"):
            return str(base.with_query(uri[1:]))
        return str(base.join(url))

    def request(
        self,
        method: str,
        uri: str,
        parameters: Mapping[str, Any] | None = None,
        files: list[UploadedFile] | tuple[UploadedFile, ...] = (),
        server: Mapping[str, Any] | None = None,
        content: bytes | str | None = None,
        change_history: bool = True,
    ) -> BrowserResponse:
        """Issue a request the way a browser would.

        Args:
            method: HTTP method.
            uri: Absolute or relative URI.
            parameters: Form or query parameters. For GET and HEAD they
                are merged into the query string.
            files: Files to upload.
            server: Extra server parameters for this request only.
            content: Raw request body; takes precedence over parameters.
            change_history: Record the request in the history.

        Returns:
            The final response, after redirects when following is on.
        """
        method = method.upper()
        if not self._following_redirect:
            self._redirect_count = 0

        url = URL(self.get_absolute_uri(uri))
        params = dict(parameters or {})
        if method in ("GET", "HEAD") and params:
            url = url.update_query({k: str(v) for k, v in params.items()})
            params = {}

        merged_server = {**self.server, **(server or {})}
        merged_server["HTTP_HOST"] = url.raw_authority or merged_server.get("HTTP_HOST", "localhost")
        merged_server["HTTPS"] = url.scheme == "https"

        request = BrowserRequest(
            uri=str(url),
            method=method,
            parameters=params,
            files=tuple(files),
            cookies=self.cookie_jar.all_values(url),
            server=merged_server,
            content=content,
        )
        self._internal_request = request
        logger.debug(f"{method} {url}")

        response = self.do_request(request)
        self._internal_response = response

        self.cookie_jar.update_from_set_cookie(response.header_values("Set-Cookie"), url)

        if change_history:
            self.history.add(request)

        if response.is_redirect:
            self._redirect = str(url.join(URL(response.headers["Location"])))
        else:
            self._redirect = None

        if self._redirect is not None and self.follow_redirects:
            return self.follow_redirect()

        return response

    def follow_redirect(self) -> BrowserResponse:
        """Follow the redirect returned by the last response.

        Raises:
            BrowserError: If the last response was not a redirect.
            TooManyRedirectsError: If the redirect limit was reached.
        """
        if self._redirect is None:
            raise BrowserError("The request was not redirected.")

        if self._redirect_count >= self.max_redirects:
            redirect, self._redirect = self._redirect, None
            raise TooManyRedirectsError(
                f"The maximum number ({self.max_redirects}) of redirections was reached "
                f"while following {redirect}."
            )
        self._redirect_count += 1

        previous = self.get_internal_request()
        status = self.get_internal_response().status
        redirect = self._redirect
        following, self._following_redirect = self._following_redirect, True
        try:
            if status in METHOD_PRESERVING_REDIRECTS:
                return self.request(
                    previous.method,
                    redirect,
                    parameters=previous.parameters,
                    files=previous.files,
                    content=previous.content,
                )
            return self.request("GET", redirect)
        finally:
            self._following_redirect = following

    def back(self) -> BrowserResponse:
        return self._replay(self.history.back())

    def forward(self) -> BrowserResponse:
        return self._replay(self.history.forward())

    def reload(self) -> BrowserResponse:
        return self._replay(self.history.current())

    def restart(self) -> None:
        """Forget cookies and history, as if the browser was reopened."""
        self.cookie_jar.clear()
        self.history.clear()
        self._redirect = None
        self._internal_request = None
        self._internal_response = None

    def _replay(self, request: BrowserRequest) -> BrowserResponse:
        return self.request(
            request.method,
            request.uri,
            parameters=request.parameters,
            files=request.files,
            content=request.content,
            change_history=False,
        )
