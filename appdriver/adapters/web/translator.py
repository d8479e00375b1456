"""Translation between browser requests and aiohttp.web objects.

Incoming direction: a BrowserRequest becomes an ``aiohttp.web.Request``
whose payload is already fully buffered and whose payload writer is a
CapturingWriter. Outgoing direction: whatever the application wrote
through that writer becomes a BrowserResponse.
"""

import asyncio
import logging
import zlib
from http.cookies import SimpleCookie
from collections.abc import Iterator, Mapping
from typing import Any

from aiohttp import BasicAuth, FormData, web
from aiohttp.abc import AbstractStreamWriter
from aiohttp.base_protocol import BaseProtocol
from aiohttp.streams import StreamReader
from aiohttp.test_utils import make_mocked_request
from multidict import CIMultiDict, CIMultiDictProxy

from appdriver.core.models import BrowserRequest, BrowserResponse

logger = logging.getLogger(__name__)

# Server parameters that map to headers without the HTTP_ prefix.
CONTENT_HEADERS = frozenset({"Content-Length", "Content-Md5", "Content-Type"})

BODYLESS_METHODS = frozenset({"GET", "HEAD"})

STREAM_LIMIT = 2**16


class CapturingWriter(AbstractStreamWriter):
    """Payload writer that keeps the response instead of sending it.

    aiohttp normally hands the prepared response to a StreamWriter bound
    to the connection transport. Swapping in this writer is what lets a
    response be intercepted in-process.
    """

    def __init__(self) -> None:
        self.buffer_size = 0
        self.output_size = 0
        self.length: int | None = 0
        self.status_line = ""
        self.headers: CIMultiDict[str] | None = None
        self.chunked = False
        self.eof = False
        self._body = bytearray()
        self._compress: Any = None

    @property
    def body(self) -> bytes:
        return bytes(self._body)

    def _append(self, chunk: bytes) -> None:
        self._body.extend(chunk)
        self.buffer_size += len(chunk)
        self.output_size += len(chunk)

    async def write(self, chunk: bytes | bytearray | memoryview) -> None:
        chunk = bytes(chunk)
        if self.length is not None:
            self.length += len(chunk)
        if self._compress is not None:
            chunk = self._compress.compress(chunk)
        self._append(chunk)

    async def write_eof(self, chunk: bytes = b"") -> None:
        if self.eof:
            return
        if chunk:
            await self.write(chunk)
        if self._compress is not None:
            self._append(self._compress.flush())
        self.eof = True

    async def drain(self) -> None:
        return None

    def enable_compression(self, encoding: str = "deflate", strategy: int | None = None) -> None:
        # Same stream format as aiohttp's transport writer: gzip framing or raw deflate.
        wbits = 16 + zlib.MAX_WBITS if encoding == "gzip" else -zlib.MAX_WBITS
        if strategy is None:
            strategy = zlib.Z_DEFAULT_STRATEGY
        self._compress = zlib.compressobj(wbits=wbits, strategy=strategy)

    def enable_chunking(self) -> None:
        self.chunked = True
        self.length = None

    async def write_headers(self, status_line: str, headers: "CIMultiDict[str]") -> None:
        self.status_line = status_line
        self.headers = CIMultiDict(headers)

    def send_headers(self) -> None:
        return None


class _BufferWriter:
    """Minimal writer used to serialise a form payload into bytes."""

    def __init__(self) -> None:
        self.buffer = bytearray()

    async def write(self, chunk: bytes) -> None:
        self.buffer.extend(chunk)


def header_name(server_key: str) -> str:
    """Convert a server parameter key into a header name.

    ``HTTP_X_REQUESTED_WITH`` becomes ``Http-X-Requested-With``.
    """
    parts = server_key.lower().replace("_", "-").split("-")
    return "-".join(part[:1].upper() + part[1:] for part in parts)


def server_key(header: str) -> str:
    """Convert a header name into its server parameter key.

    ``X-Requested-With`` becomes ``HTTP_X_REQUESTED_WITH``; content
    headers lose the prefix, as in CGI.
    """
    key = header.upper().replace("-", "_")
    if header_name(key) in CONTENT_HEADERS:
        return key
    return "HTTP_" + key


def extract_headers(server: Mapping[str, Any]) -> CIMultiDict[str]:
    """Build request headers from CGI-style server parameters."""
    headers: CIMultiDict[str] = CIMultiDict()
    for key, value in server.items():
        name = header_name(key)
        if name.startswith("Http-"):
            headers[name[5:]] = str(value)
        elif name in CONTENT_HEADERS:
            headers[name] = str(value)
    return headers


def _flatten_parameters(parameters: Mapping[str, Any], prefix: str = "") -> Iterator[tuple[str, str]]:
    for key, value in parameters.items():
        name = f"{prefix}[{key}]" if prefix else str(key)
        if isinstance(value, Mapping):
            yield from _flatten_parameters(value, name)
        elif isinstance(value, (list, tuple)):
            for item in value:
                yield name, str(item)
        elif value is None:
            yield name, ""
        else:
            yield name, str(value)


async def encode_body(request: BrowserRequest) -> tuple[bytes, str | None]:
    """Serialise the request body.

    Returns:
        Body bytes and the content type the encoding requires. The
        content type is None when the body was given verbatim.
    """
    if request.content is not None:
        content = request.content
        if isinstance(content, str):
            content = content.encode("utf-8")
        return content, None

    if request.method in BODYLESS_METHODS or not (request.parameters or request.files):
        return b"", None

    form = FormData()
    for name, value in _flatten_parameters(request.parameters):
        form.add_field(name, value)
    for upload in request.files:
        form.add_field(
            upload.field,
            upload.content,
            filename=upload.filename,
            content_type=upload.content_type,
        )
    payload = form()
    writer = _BufferWriter()
    await payload.write(writer)
    return bytes(writer.buffer), payload.content_type


def _stream_reader(body: bytes, loop: asyncio.AbstractEventLoop) -> StreamReader:
    reader = StreamReader(BaseProtocol(loop), max(STREAM_LIMIT, len(body)), loop=loop)
    if body:
        reader.feed_data(body)
    reader.feed_eof()
    return reader


def cookie_header(cookies: Mapping[str, str]) -> str:
    """Cookie header value, quoting values the way Set-Cookie did."""
    jar: SimpleCookie = SimpleCookie()
    for name, value in cookies.items():
        jar[name] = value
    return "; ".join(morsel.OutputString() for morsel in jar.values())

async def to_aiohttp_request(
    browser_request: BrowserRequest,
    app: web.Application,
    writer: CapturingWriter,
    client_max_size: int = 1024**2,
) -> web.Request:
    """Build the aiohttp request for a browser request.

    Must run on the event loop the application was started on.
    """
    loop = asyncio.get_running_loop()
    url = browser_request.url
    server = browser_request.server

    headers = extract_headers(server)
    headers["Host"] = url.raw_authority

    if browser_request.cookies:
        headers["Cookie"] = cookie_header(browser_request.cookies)

    if server.get("AUTH_USER"):
        headers["Authorization"] = BasicAuth(
            str(server["AUTH_USER"]), str(server.get("AUTH_PW", ""))
        ).encode()

    body, content_type = await encode_body(browser_request)
    if content_type is not None:
        headers["Content-Type"] = content_type
    if body:
        headers["Content-Length"] = str(len(body))

    path = url.raw_path
    if url.raw_query_string:
        path += "?" + url.raw_query_string

    request = make_mocked_request(
        browser_request.method,
        path,
        headers=headers,
        app=app,
        writer=writer,
        payload=_stream_reader(body, loop),
        client_max_size=client_max_size,
        loop=loop,
    )

    overrides: dict[str, Any] = {}
    if url.scheme == "https" or server.get("HTTPS"):
        overrides["scheme"] = "https"
    if server.get("REMOTE_ADDR"):
        overrides["remote"] = str(server["REMOTE_ADDR"])
    if overrides:
        request = request.clone(**overrides)

    return request


def http_exception_response(exc: web.HTTPException) -> web.Response:
    """Turn a raised HTTPException into the response aiohttp would send."""
    response = web.Response(
        status=exc.status,
        reason=exc.reason,
        text=exc.text,
        headers=exc.headers,
    )
    for name, morsel in exc.cookies.items():
        response.cookies[name] = morsel
    return response


def to_browser_response(response: web.StreamResponse, writer: CapturingWriter) -> BrowserResponse:
    """Convert a finished aiohttp response into a BrowserResponse."""
    headers = writer.headers if writer.headers is not None else CIMultiDict(response.headers)
    return BrowserResponse(
        content=writer.body,
        status=response.status,
        headers=CIMultiDictProxy(CIMultiDict(headers)),
    )


__all__ = [
    "CapturingWriter",
    "cookie_header",
    "encode_body",
    "extract_headers",
    "header_name",
    "server_key",
    "http_exception_response",
    "to_aiohttp_request",
    "to_browser_response",
]
