"""Sample aiohttp application used as the application under test.

``create_app(config)`` understands these config keys:

- ``created``: a list the factory appends to on every call, so tests
  can count application instances
- ``db``: ``"pool"`` stores a FakePool under ``app["db"]`` through a
  cleanup context; ``"sqlite"`` opens an aiosqlite connection instead
  (needs ``sqlite_path``)
- ``leak_db``: skip closing the database in the cleanup context
- ``pool_idle``: idle connections the FakePool starts with
- ``error_pages``: render unexpected exceptions as a 500 page
"""

import json
from typing import Any

import aiosqlite
from aiohttp import BasicAuth, web

from appdriver.tests.fakes.db import FakePool


class Greeter:
    """Service stored in the application container."""

    def __init__(self, greeting: str = "Hello") -> None:
        self.greeting = greeting

    def greet(self, name: str) -> str:
        return f"{self.greeting}, {name}!"


GREETER = web.AppKey("greeter", Greeter)

routes = web.RouteTableDef()


@routes.get("/", name="home")
async def home(request: web.Request) -> web.Response:
    return web.Response(text="<h1>Welcome</h1>", content_type="text/html")


@routes.get("/posts/{id}", name="posts.show")
async def show_post(request: web.Request) -> web.Response:
    return web.Response(text=f"Post {request.match_info['id']}")


@routes.route("*", "/echo", name="echo")
async def echo(request: web.Request) -> web.Response:
    form: dict[str, Any] = {}
    files: dict[str, Any] = {}
    if request.content_type in ("application/x-www-form-urlencoded", "multipart/form-data"):
        post = await request.post()
        for name, value in post.items():
            if isinstance(value, web.FileField):
                files[name] = {
                    "filename": value.filename,
                    "content_type": value.content_type,
                    "content": value.file.read().decode("utf-8"),
                }
            else:
                form.setdefault(name, []).append(value)
        body = ""
    else:
        body = await request.text()
    return web.json_response(
        {
            "method": request.method,
            "path": request.path,
            "query": {key: request.query.getall(key) for key in request.query},
            "headers": dict(request.headers),
            "cookies": dict(request.cookies),
            "form": form,
            "files": files,
            "body": body,
            "host": request.host,
            "scheme": request.scheme,
            "remote": request.remote,
        }
    )


@routes.get("/greet/{name}")
async def greet(request: web.Request) -> web.Response:
    return web.Response(text=request.app[GREETER].greet(request.match_info["name"]))


@routes.get("/auth")
async def auth(request: web.Request) -> web.Response:
    header = request.headers.get("Authorization")
    if header is None:
        raise web.HTTPUnauthorized(headers={"WWW-Authenticate": 'Basic realm="test"'})
    credentials = BasicAuth.decode(header)
    return web.Response(text=f"{credentials.login}:{credentials.password}")


@routes.get("/cookies/set")
async def set_cookie(request: web.Request) -> web.Response:
    response = web.Response(status=302, headers={"Location": "/cookies"})
    response.set_cookie("session", request.query.get("value", "abc"))
    return response


@routes.get("/cookies/clear")
async def clear_cookie(request: web.Request) -> web.Response:
    response = web.Response(text="cleared")
    response.del_cookie("session")
    return response


@routes.get("/cookies")
async def show_cookies(request: web.Request) -> web.Response:
    return web.json_response(dict(request.cookies))


@routes.get("/redirect")
async def redirect(request: web.Request) -> web.Response:
    raise web.HTTPFound(request.app.router["home"].url_for())


@routes.post("/redirect-307")
async def redirect_307(request: web.Request) -> web.Response:
    raise web.HTTPTemporaryRedirect("/echo")


@routes.get("/loop")
async def redirect_loop(request: web.Request) -> web.Response:
    raise web.HTTPFound("/loop")


@routes.get("/boom")
async def boom(request: web.Request) -> web.Response:
    raise RuntimeError("boom")


@routes.get("/forbidden")
async def forbidden(request: web.Request) -> web.Response:
    raise web.HTTPForbidden(text="no entry")


@routes.get("/stream")
async def stream(request: web.Request) -> web.StreamResponse:
    response = web.StreamResponse(headers={"Content-Type": "text/plain"})
    await response.prepare(request)
    for chunk in (b"one ", b"two ", b"three"):
        await response.write(chunk)
    await response.write_eof()
    return response


@routes.get("/compressed")
async def compressed(request: web.Request) -> web.Response:
    response = web.Response(text="squeeze me " * 20)
    response.enable_compression(web.ContentCoding.gzip)
    return response


@routes.get("/db/leak")
async def leak_connection(request: web.Request) -> web.Response:
    request.app["db"].acquire()
    return web.Response(text="leaked")


@routes.get("/db/query")
async def query_db(request: web.Request) -> web.Response:
    async with request.app["db"].execute("SELECT 40 + 2") as cursor:
        row = await cursor.fetchone()
    return web.Response(text=str(row[0]))


@web.middleware
async def error_pages(request: web.Request, handler: Any) -> web.StreamResponse:
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except Exception:
        return web.Response(status=500, text="Something went wrong")


def _pool_context(leak: bool, idle: int = 0) -> Any:
    async def pool(app: web.Application) -> Any:
        app["db"] = FakePool(idle)
        yield
        if not leak:
            await app["db"].close()

    return pool


def _sqlite_context(path: str) -> Any:
    async def sqlite(app: web.Application) -> Any:
        app["db"] = await aiosqlite.connect(path)
        yield
        await app["db"].close()

    return sqlite


async def _install_greeter(app: web.Application) -> None:
    app[GREETER] = Greeter()


def _api_app() -> web.Application:
    api = web.Application()

    async def status(request: web.Request) -> web.Response:
        return web.json_response({"status": "ok"})

    api.router.add_get("/status", status, name="api.status")
    return api


def _admin_app() -> web.Application:
    admin = web.Application()

    async def dashboard(request: web.Request) -> web.Response:
        return web.Response(text="Dashboard")

    admin.router.add_get("/dashboard", dashboard, name="admin.dashboard")
    return admin


def _reports_app() -> web.Application:
    reports = web.Application()

    async def report(request: web.Request) -> web.Response:
        return web.Response(text="Report")

    reports.router.add_get("/", report, name="admin.reports")
    return reports


def create_app(config: dict[str, Any]) -> web.Application:
    """Application factory referenced as ``appdriver.tests.fakes.app:create_app``."""
    created = config.get("created")
    if isinstance(created, list):
        created.append(json.dumps({k: v for k, v in config.items() if k != "created"}))

    middlewares = [error_pages] if config.get("error_pages") else []
    app = web.Application(middlewares=middlewares)
    app.add_routes(routes)
    app.on_startup.append(_install_greeter)

    if config.get("db") == "pool":
        leak = bool(config.get("leak_db"))
        app.cleanup_ctx.append(_pool_context(leak, int(config.get("pool_idle", 0))))
    elif config.get("db") == "sqlite":
        app.cleanup_ctx.append(_sqlite_context(config["sqlite_path"]))

    app.add_subapp("/admin", _admin_app())
    app.add_domain("reports.example.com", _reports_app())
    app.add_domain("api.example.com", _api_app())
    app.add_domain("*.shop.example.com", _api_app())
    return app


async def create_app_async(config: dict[str, Any]) -> web.Application:
    """Coroutine factory variant."""
    return create_app(config)


def not_an_app(config: dict[str, Any]) -> object:
    return object()
