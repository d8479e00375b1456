"""Application lifecycle management for aiohttp applications.

One ApplicationLifecycle owns one application instance: it builds the
application from its factory, starts it without binding any socket,
dispatches browser requests through the application's own request
handler, and tears everything down again.

Responses are never sent anywhere. Each request gets a CapturingWriter
in place of the transport writer, so the prepared response ends up in
memory where the translator picks it up.
"""

import asyncio
import importlib
import inspect
import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from aiohttp import web

from appdriver.adapters.web.container import ServiceOverrides
from appdriver.adapters.web.translator import (
    CapturingWriter,
    http_exception_response,
    to_aiohttp_request,
    to_browser_response,
)
from appdriver.core.models import BrowserRequest, BrowserResponse, DestroyStats
from appdriver.exceptions import ModuleError

logger = logging.getLogger(__name__)

REQUEST_EXCEPTION_KEY = "appdriver.exception"

ApplicationFactory = Callable[[dict[str, Any]], web.Application | Awaitable[web.Application]]


@web.middleware
async def record_exception(request: web.Request, handler: Any) -> web.StreamResponse:
    """Remember the exception a handler raised, even if it gets rendered.

    Installed as the innermost middleware of the root application, so an
    error page produced by an outer middleware does not hide the
    original exception from the test.
    """
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except Exception as exc:
        request[REQUEST_EXCEPTION_KEY] = exc
        raise


def resolve_factory(path: str) -> ApplicationFactory:
    """Import an application factory from a ``package.module:callable`` path.

    Raises:
        ModuleError: If the path is malformed or cannot be imported.
    """
    module_name, sep, attribute = path.partition(":")
    if not sep or not module_name or not attribute:
        raise ModuleError(
            "appdriver",
            f"Application factory must look like 'package.module:callable', got {path!r}",
        )
    try:
        target: Any = importlib.import_module(module_name)
    except ImportError as e:
        raise ModuleError("appdriver", f"Cannot import application module {module_name!r}: {e}") from e
    for name in attribute.split("."):
        try:
            target = getattr(target, name)
        except AttributeError:
            raise ModuleError(
                "appdriver", f"Module {module_name!r} has no attribute {attribute!r}"
            ) from None
    if not callable(target):
        raise ModuleError("appdriver", f"Application factory {path!r} is not callable")
    return target


def count_open_connections(db: Any) -> int:
    """Number of connections a database handle still has checked out.

    Idle pool members are not counted.
    Understands asyncpg-style pools (``get_size()`` minus
    ``get_idle_size()``) and SQLAlchemy-style engines
    (``pool.checkedout()``); anything else reports zero.
    """
    get_size = getattr(db, "get_size", None)
    if callable(get_size):
        get_idle_size = getattr(db, "get_idle_size", None)
        idle = int(get_idle_size()) if callable(get_idle_size) else 0
        return int(get_size()) - idle
    checkedout = getattr(getattr(db, "pool", None), "checkedout", None)
    if callable(checkedout):
        return int(checkedout())
    return 0


async def _call(method: Callable[[], Any]) -> None:
    result = method()
    if inspect.isawaitable(result):
        await result


async def close_connection(db: Any, lingering: int = 0) -> bool:
    """Close a database handle, terminating it when connections linger.

    Returns:
        True if a close method was found and called.
    """
    terminate = getattr(db, "terminate", None)
    if lingering and callable(terminate):
        # close() on a pool waits for checked-out connections to come back
        await _call(terminate)
        return True
    for name in ("dispose", "close"):
        method = getattr(db, name, None)
        if callable(method):
            await _call(method)
            return True
    return False


class ApplicationLifecycle:
    """Create, drive and destroy one aiohttp application instance."""

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        factory: ApplicationFactory,
        app_config: Mapping[str, Any] | None = None,
        overrides: ServiceOverrides | None = None,
        db_service: Any = "db",
        client_max_size: int = 1024**2,
    ) -> None:
        self._loop = loop
        self._factory = factory
        self._app_config = dict(app_config or {})
        self.overrides = overrides if overrides is not None else ServiceOverrides()
        self._db_service = db_service
        self._client_max_size = client_max_size
        self._runner: web.AppRunner | None = None
        self._stats: DestroyStats | None = None
        self.app: web.Application | None = None
        self.last_request: web.Request | None = None
        self.requests_dispatched = 0

    @property
    def is_running(self) -> bool:
        return self._runner is not None and self._stats is None

    def create(self) -> web.Application:
        """Build and start the application.

        Returns:
            The started application.

        Raises:
            ModuleError: If the factory does not return an aiohttp application.
        """
        if self.app is not None:
            raise ModuleError("appdriver", "Application lifecycle already created an application")
        return self._loop.run_until_complete(self._start())

    async def _start(self) -> web.Application:
        app = self._factory(dict(self._app_config))
        if inspect.isawaitable(app):
            app = await app
        if not isinstance(app, web.Application):
            raise ModuleError(
                "appdriver",
                f"Application factory returned {type(app).__name__}, expected aiohttp.web.Application",
            )

        app.middlewares.append(record_exception)
        # Before startup so startup hooks see the fakes, and again after
        # so that nothing the hooks store can shadow them.
        self.overrides.apply_to(app)
        app.on_startup.append(self._install_overrides)

        runner = web.AppRunner(app, handle_signals=False)
        await runner.setup()
        self.app = app
        self._runner = runner
        logger.debug(f"Application started with {len(self.overrides)} service override(s)")
        return app

    async def _install_overrides(self, app: web.Application) -> None:
        self.overrides.apply_to(app)

    def dispatch(self, browser_request: BrowserRequest) -> BrowserResponse:
        """Run one request through the application.

        Raises:
            ModuleError: If the application is not running.
            Exception: Anything the application raised while handling
                the request, re-raised unchanged.
        """
        if not self.is_running:
            raise ModuleError("appdriver", "Application is not running")
        return self._loop.run_until_complete(self._dispatch(browser_request))

    async def _dispatch(self, browser_request: BrowserRequest) -> BrowserResponse:
        app, runner = self.app, self._runner
        if app is None or runner is None or runner.server is None:
            raise ModuleError("appdriver", "Application is not running")
        server = runner.server
        writer = CapturingWriter()
        request = await to_aiohttp_request(
            browser_request, app, writer, client_max_size=self._client_max_size
        )
        self.last_request = request
        self.requests_dispatched += 1

        try:
            response = await server.request_handler(request)
        except web.HTTPException as exc:
            response = http_exception_response(exc)

        exception = request.get(REQUEST_EXCEPTION_KEY)
        if exception is not None:
            raise exception

        await response.prepare(request)
        await response.write_eof()
        return to_browser_response(response, writer)

    def destroy(self) -> DestroyStats:
        """Shut the application down and report what was left open.

        Safe to call more than once; later calls return the first stats.
        """
        if self._stats is not None:
            return self._stats
        if self._runner is None:
            self._stats = DestroyStats(self.requests_dispatched, False, 0)
        else:
            self._stats = self._loop.run_until_complete(self._teardown())
        return self._stats

    async def _teardown(self) -> DestroyStats:
        app, runner = self.app, self._runner
        if app is None or runner is None:
            raise ModuleError("appdriver", "Application was never started")
        db = app.get(self._db_service) if self._db_service else None

        await runner.cleanup()

        lingering = 0
        closed = False
        if db is not None and not self.overrides.is_override(db):
            lingering = count_open_connections(db)
            closed = await close_connection(db, lingering)
            if lingering:
                logger.warning(f"{lingering} database connection(s) still open at teardown")

        logger.debug(f"Application destroyed after {self.requests_dispatched} request(s)")
        return DestroyStats(
            requests_dispatched=self.requests_dispatched,
            db_connection_closed=closed,
            lingering_connections=lingering,
        )


__all__ = [
    "ApplicationFactory",
    "ApplicationLifecycle",
    "REQUEST_EXCEPTION_KEY",
    "close_connection",
    "count_open_connections",
    "record_exception",
    "resolve_factory",
]
