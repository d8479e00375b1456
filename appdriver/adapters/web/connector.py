"""Browser connector that drives an aiohttp application in-process.

The connector owns an event loop for its whole life. Application
instances come and go on that loop: by default every request is served
by a freshly built application, so no state leaks between requests
except what the test deliberately put into the service overrides.
"""

import logging
from collections.abc import Mapping
from typing import Any

from aiohttp import web
from aiohttp.test_utils import setup_test_loop, teardown_test_loop

from appdriver.adapters.web.container import ServiceContainer, ServiceOverrides
from appdriver.adapters.web.lifecycle import (
    ApplicationFactory,
    ApplicationLifecycle,
    resolve_factory,
)
from appdriver.config import ApplicationConfig
from appdriver.core.browser import AbstractBrowser
from appdriver.core.models import BrowserRequest, BrowserResponse, DestroyStats
from appdriver.exceptions import ModuleError

logger = logging.getLogger(__name__)


class AiohttpConnector(AbstractBrowser):
    """Browser-emulation client backed by an in-process aiohttp application."""

    def __init__(
        self,
        server: Mapping[str, Any] | None = None,
        base_url: str = "http://localhost",
        follow_redirects: bool = True,
        max_redirects: int = 5,
        recreate_application: bool = True,
        db_service: Any = "db",
        persistent_services: list[Any] | tuple[Any, ...] = (),
        client_max_size: int = 1024**2,
    ) -> None:
        super().__init__(
            server=server,
            base_url=base_url,
            follow_redirects=follow_redirects,
            max_redirects=max_redirects,
        )
        self.recreate_application = recreate_application
        self.db_service = db_service
        self.persistent_services = set(persistent_services)
        self.client_max_size = client_max_size
        self.overrides = ServiceOverrides()
        self._loop = setup_test_loop()
        self._factory: ApplicationFactory | None = None
        self._app_config: dict[str, Any] = {}
        self._lifecycle: ApplicationLifecycle | None = None
        self._aiohttp_request: web.Request | None = None
        self._stale = False
        self._closed = False

    def set_application_config(self, application_config: ApplicationConfig) -> None:
        """Configure the application factory and create the first instance."""
        self.set_application_factory(
            resolve_factory(application_config.factory), application_config.config
        )

    def set_application_factory(
        self,
        factory: ApplicationFactory,
        app_config: Mapping[str, Any] | None = None,
    ) -> None:
        self._factory = factory
        self._app_config = dict(app_config or {})
        self._create_application()

    def get_application(self) -> web.Application:
        if self._lifecycle is None or self._lifecycle.app is None:
            raise ModuleError("appdriver", "Application is not created: set the application config first")
        return self._lifecycle.app

    def get_aiohttp_request(self) -> web.Request | None:
        """The native request of the last dispatched browser request."""
        return self._aiohttp_request

    @property
    def container(self) -> ServiceContainer:
        return ServiceContainer(self.get_application(), self.overrides)

    def do_request(self, request: BrowserRequest) -> BrowserResponse:
        lifecycle = self._lifecycle
        if (
            self.recreate_application
            or self._stale
            or lifecycle is None
            or not lifecycle.is_running
        ):
            lifecycle = self._create_application()
        try:
            return lifecycle.dispatch(request)
        finally:
            self._aiohttp_request = lifecycle.last_request

    def grab_service_from_container(self, service: Any) -> Any:
        """Fetch a service from the running application.

        Services listed as persistent are pinned on first access, so every
        later application instance receives the same object.

        Raises:
            ServiceNotFoundError: If the container lacks the service.
        """
        container = self.container
        instance = container.get(service)
        if service in self.persistent_services and not self.overrides.has(service):
            self.overrides.set(service, instance)
            logger.debug(f"Service {service!r} pinned for the lifetime of the client")
        return instance

    def add_service_to_container(self, name: Any, service: Any) -> None:
        """Register a service replacement for this and later application instances."""
        self.container.set(name, service)
        # A started application is frozen; the next request gets a fresh one.
        self._stale = True

    def destroy_application(self) -> DestroyStats:
        """Tear the current application instance down.

        Returns:
            Stats of the destroyed instance; all zero when none was running.
        """
        if self._lifecycle is None:
            return DestroyStats(0, False, 0)
        stats = self._lifecycle.destroy()
        self._lifecycle = None
        return stats

    def close(self) -> DestroyStats:
        """Destroy the application and release the event loop."""
        if self._closed:
            return DestroyStats(0, False, 0)
        try:
            stats = self.destroy_application()
        finally:
            teardown_test_loop(self._loop)
            self._closed = True
        return stats

    def _create_application(self) -> ApplicationLifecycle:
        if self._factory is None:
            raise ModuleError("appdriver", "No application factory configured")
        if self._closed:
            raise ModuleError("appdriver", "Connector is closed")
        if self._lifecycle is not None:
            stats = self._lifecycle.destroy()
            logger.debug(f"Replaced application instance, stats: {stats.as_dict()}")
        self._lifecycle = ApplicationLifecycle(
            self._loop,
            self._factory,
            app_config=self._app_config,
            overrides=self.overrides,
            db_service=self.db_service,
            client_max_size=self.client_max_size,
        )
        self._lifecycle.create()
        self._stale = False
        return self._lifecycle


__all__ = ["AiohttpConnector"]
