"""Functional-test module for aiohttp applications.

AppDriver is the single place where settings, the application config
and the in-process connector are wired together. Test runners call its
hooks around every test; test code calls its actions and assertions.

Hooks:
- _initialize: once per suite, runs the bootstrap file, loads the
  application config and creates the first client
- _before: before each test, replaces the client with a fresh one
- _after: after each test, destroys the client and logs teardown stats
- _after_suite: once, destroys whatever client is left

Usage with the pytest plugin::

    def test_homepage(appdriver):
        appdriver.am_on_page("/")
        appdriver.see_response_code_is(200)
        appdriver.see("Welcome")
"""

import logging
import runpy
from collections.abc import Mapping
from typing import Any

from aiohttp import web
from yarl import URL

from appdriver.adapters.web.connector import AiohttpConnector
from appdriver.adapters.web.routes import host_of, internal_domains, is_internal, url_for
from appdriver.adapters.web.translator import server_key
from appdriver.config import (
    ApplicationConfig,
    Settings,
    configure_logging,
    load_application_config,
    load_settings,
)
from appdriver.core.models import BrowserResponse, UploadedFile
from appdriver.exceptions import ExternalUrlError, ModuleError

logger = logging.getLogger(__name__)


def _check(condition: bool, message: str) -> None:
    """Raise AssertionError with ``message`` unless ``condition`` holds."""
    if not condition:
        raise AssertionError(message)


class AppDriver:
    """Drive an aiohttp application from functional tests."""

    name = "appdriver"

    def __init__(
        self,
        settings: Settings | None = None,
        application_config: ApplicationConfig | None = None,
    ) -> None:
        self.settings = settings if settings is not None else load_settings()
        self.application_config = application_config
        self.client: AiohttpConnector | None = None
        self._headers: dict[str, str] = {}

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def _initialize(self) -> None:
        configure_logging(self.settings.log_level)

        if self.settings.bootstrap:
            bootstrap = self.settings.resolve_path(self.settings.bootstrap)
            if bootstrap.is_file():
                logger.debug(f"[appdriver] Running bootstrap file {bootstrap}")
                runpy.run_path(str(bootstrap), run_name="__appdriver_bootstrap__")

        if self.application_config is None:
            self.application_config = load_application_config(
                self.settings.resolve_path(self.settings.config)
            )

        self.create_client()

    def _before(self) -> None:
        self.create_client()

    def _after(self) -> None:
        self._headers.clear()
        self._destroy_client()

    def _after_suite(self) -> None:
        self._destroy_client()
        logger.debug("[appdriver] Application destroyed")

    def create_client(self) -> AiohttpConnector:
        """Replace the current client with a fresh one."""
        self._destroy_client()
        if self.application_config is None:
            raise ModuleError(self.name, "Module is not initialized: no application config loaded")

        client = AiohttpConnector(
            base_url=self.settings.base_url,
            follow_redirects=self.settings.follow_redirects,
            max_redirects=self.settings.max_redirects,
            recreate_application=self.settings.recreate_application,
            db_service=self.settings.db_service,
            persistent_services=self.settings.persistent_services,
            client_max_size=self.settings.client_max_size,
        )
        try:
            client.set_application_config(self.application_config)
        except BaseException:
            client.close()
            raise
        self.client = client
        logger.debug("[appdriver] Application created")
        return client

    def _destroy_client(self) -> None:
        if self.client is None:
            return
        client, self.client = self.client, None
        stats = client.close()
        logger.debug(f"[appdriver] Destroyed application, stats: {stats.as_dict()}")

    def _client(self) -> AiohttpConnector:
        if self.client is None:
            raise ModuleError(self.name, "No client: the module hooks have not run")
        return self.client

    @property
    def application(self) -> web.Application:
        return self._client().get_application()

    @property
    def db(self) -> Any:
        """The database handle of the running application, if it has one."""
        container = self._client().container
        if self.settings.db_service and container.has(self.settings.db_service):
            return container.get(self.settings.db_service)
        return None

    # ------------------------------------------------------------------
    # Services
    # ------------------------------------------------------------------

    def grab_service_from_container(self, service: Any) -> Any:
        """Grab a service from the application's container.

        ```python
        db = appdriver.grab_service_from_container("db")
        ```
        """
        return self._client().grab_service_from_container(service)

    def add_service_to_container(self, name: Any, service: Any) -> None:
        """Replace or add a service; used from the next request on."""
        self._client().add_service_to_container(name, service)

    def _get_orm_session(self) -> Any:
        """ORM session shared with the application, for database helpers."""
        if not self.settings.orm_service:
            raise ModuleError(self.name, "orm_service is not configured")
        if self.client is None:
            self.create_client()
        return self.grab_service_from_container(self.settings.orm_service)

    # ------------------------------------------------------------------
    # Routes
    # ------------------------------------------------------------------

    def am_on_route(self, route_name: str, params: Mapping[str, Any] | None = None) -> None:
        """Open a page by route name.

        ```python
        appdriver.am_on_route("posts.create")
        appdriver.am_on_route("posts.show", {"id": 34})
        ```
        """
        self.am_on_page(url_for(self.application, route_name, params))

    def see_current_route_is(self, route_name: str, params: Mapping[str, Any] | None = None) -> None:
        """Check that the current URL matches a route."""
        self.see_current_url_equals(url_for(self.application, route_name, params))

    def _get_internal_domains(self) -> list[str]:
        return internal_domains(self.application)

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def _request(
        self,
        method: str,
        uri: str,
        parameters: Mapping[str, Any] | None = None,
        files: list[UploadedFile] | tuple[UploadedFile, ...] = (),
        content: bytes | str | None = None,
        server: Mapping[str, Any] | None = None,
    ) -> BrowserResponse:
        client = self._client()
        url = URL(uri)
        if url.is_absolute():
            default_host = host_of(URL(self.settings.base_url))
            if not is_internal(url, self._get_internal_domains(), default_host):
                raise ExternalUrlError(f"{self.name} can't open external URL: {uri}")

        request_server = {server_key(name): value for name, value in self._headers.items()}
        request_server.update(server or {})
        return client.request(
            method,
            uri,
            parameters=parameters,
            files=files,
            server=request_server,
            content=content,
        )

    def am_on_page(self, page: str) -> None:
        self._request("GET", page)

    def send_request(
        self,
        method: str,
        uri: str,
        params: Mapping[str, Any] | None = None,
        files: list[UploadedFile] | tuple[UploadedFile, ...] = (),
        content: bytes | str | None = None,
    ) -> BrowserResponse:
        """Send an arbitrary request and return the response."""
        return self._request(method, uri, parameters=params, files=files, content=content)

    def send_ajax_request(
        self,
        method: str,
        uri: str,
        params: Mapping[str, Any] | None = None,
    ) -> BrowserResponse:
        return self._request(
            method, uri, parameters=params, server={"HTTP_X_REQUESTED_WITH": "XMLHttpRequest"}
        )

    def am_http_authenticated(self, username: str, password: str) -> None:
        client = self._client()
        client.set_server_parameter("AUTH_USER", username)
        client.set_server_parameter("AUTH_PW", password)

    def have_http_header(self, name: str, value: str) -> None:
        """Send a header with every following request of this test."""
        self._headers[name] = value

    def delete_header(self, name: str) -> None:
        self._headers.pop(name, None)

    def follow_redirect(self) -> None:
        self._client().follow_redirect()

    def stop_following_redirects(self) -> None:
        self._client().follow_redirects = False

    def start_following_redirects(self) -> None:
        self._client().follow_redirects = True

    # ------------------------------------------------------------------
    # Cookies
    # ------------------------------------------------------------------

    def set_cookie(self, name: str, value: str, path: str = "/", domain: str | None = None) -> None:
        if domain is None:
            domain = URL(self.settings.base_url).host or ""
        self._client().cookie_jar.set(name, value, domain=domain, path=path)

    def grab_cookie(self, name: str, path: str = "/") -> str | None:
        cookie = self._client().cookie_jar.get(name, path=path)
        return cookie.value if cookie is not None else None

    def reset_cookie(self, name: str) -> None:
        self._client().cookie_jar.expire(name)

    def see_cookie(self, name: str) -> None:
        _check(self.grab_cookie(name) is not None, f"Cookie {name!r} is not set")

    def dont_see_cookie(self, name: str) -> None:
        _check(self.grab_cookie(name) is None, f"Cookie {name!r} is set")

    # ------------------------------------------------------------------
    # Response assertions
    # ------------------------------------------------------------------

    def grab_response(self) -> str:
        return self._client().get_internal_response().text

    def grab_http_header(self, name: str) -> str | None:
        return self._client().get_internal_response().header(name)

    def see(self, text: str) -> None:
        _check(text in self.grab_response(), f"Response does not contain {text!r}")

    def dont_see(self, text: str) -> None:
        _check(text not in self.grab_response(), f"Response contains {text!r}")

    def see_response_code_is(self, code: int) -> None:
        actual = self._client().get_internal_response().status
        _check(actual == code, f"Expected HTTP status {code}, got {actual}")

    def see_response_code_is_successful(self) -> None:
        actual = self._client().get_internal_response().status
        _check(200 <= actual < 300, f"Expected a 2xx HTTP status, got {actual}")

    def see_http_header(self, name: str, value: str | None = None) -> None:
        actual = self.grab_http_header(name)
        _check(actual is not None, f"Header {name!r} is not present")
        if value is not None:
            _check(actual == value, f"Header {name!r} is {actual!r}, expected {value!r}")

    def _current_url(self) -> str:
        url = self._client().get_internal_request().url
        current = url.raw_path
        if url.raw_query_string:
            current += "?" + url.raw_query_string
        return current

    def see_current_url_equals(self, uri: str) -> None:
        current = self._current_url()
        _check(current == uri, f"Current URL is {current!r}, expected {uri!r}")

    def see_in_current_url(self, fragment: str) -> None:
        current = self._current_url()
        _check(fragment in current, f"Current URL {current!r} does not contain {fragment!r}")


__all__ = ["AppDriver"]
