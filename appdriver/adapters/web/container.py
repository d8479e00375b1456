"""Service container bridge for aiohttp applications.

An aiohttp application doubles as its own service registry: startup
code stores shared services under ``app[key]``, with ``str`` or
``web.AppKey`` keys. Tests read real services from there, or replace
them with fakes before a request is dispatched.

Replacements live in ServiceOverrides, which outlives any single
application instance so that a fake registered once keeps being used
when the connector builds a fresh application for the next request.
"""

import logging
from collections.abc import Iterator
from typing import Any

from aiohttp import web

from appdriver.exceptions import ModuleError, ServiceNotFoundError

logger = logging.getLogger(__name__)


class ServiceOverrides:
    """Services that take precedence over the application's own."""

    def __init__(self) -> None:
        self._services: dict[Any, Any] = {}
        self.allow_override = False

    def has(self, key: Any) -> bool:
        return key in self._services

    def get(self, key: Any) -> Any:
        try:
            return self._services[key]
        except KeyError:
            raise ServiceNotFoundError(key) from None

    def set(self, key: Any, service: Any) -> None:
        """Register a service.

        Raises:
            ModuleError: If ``key`` is already registered and overriding
                is not currently allowed.
        """
        if key in self._services and not self.allow_override:
            raise ModuleError(
                "appdriver",
                f"A service by the name or alias {key!r} already exists and cannot be overridden",
            )
        self._services[key] = service

    def remove(self, key: Any) -> None:
        self._services.pop(key, None)

    def items(self) -> Iterator[tuple[Any, Any]]:
        return iter(list(self._services.items()))

    def is_override(self, service: Any) -> bool:
        """Check whether an object is one of the registered services."""
        return any(service is registered for registered in self._services.values())

    def apply_to(self, app: web.Application) -> None:
        """Copy every override into the application mapping."""
        for key, service in self._services.items():
            app[key] = service

    def __len__(self) -> int:
        return len(self._services)


class ServiceContainer:
    """Read/write view over one application's services.

    Lookups consult the overrides first, then the application.
    """

    def __init__(self, app: web.Application, overrides: ServiceOverrides) -> None:
        self.app = app
        self.overrides = overrides

    def has(self, key: Any) -> bool:
        return self.overrides.has(key) or key in self.app

    def get(self, key: Any) -> Any:
        if self.overrides.has(key):
            return self.overrides.get(key)
        if key in self.app:
            return self.app[key]
        raise ServiceNotFoundError(key)

    def set(self, key: Any, service: Any) -> None:
        """Register a replacement service, overriding any previous one."""
        self.overrides.allow_override = True
        try:
            self.overrides.set(key, service)
        finally:
            self.overrides.allow_override = False
        logger.debug(f"Service {key!r} overridden with {type(service).__name__}")


__all__ = ["ServiceContainer", "ServiceOverrides"]
