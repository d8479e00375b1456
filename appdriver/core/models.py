"""Domain models for the appdriver browser-emulation layer.

These models are the generic request/response representation exchanged
between test code and a connector. They know nothing about the web
framework being driven; translating them into framework objects is the
job of the adapters package.
"""

import mimetypes
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any

from multidict import CIMultiDict, CIMultiDictProxy
from yarl import URL


@dataclass(frozen=True)
class UploadedFile:
    """A file attached to a browser request as a form field."""

    field: str
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"

    def __post_init__(self) -> None:
        """Validate uploaded file invariants on creation."""
        if not self.field or not self.field.strip():
            raise ValueError("field must be a non-empty string")
        if not self.filename:
            raise ValueError("filename must be a non-empty string")

    @classmethod
    def from_path(
        cls,
        field: str,
        path: str | Path,
        content_type: str | None = None,
    ) -> "UploadedFile":
        """Read a file from disk and wrap it for upload.

        Args:
            field: Form field name the file is submitted under.
            path: Location of the file to read.
            content_type: Explicit MIME type. Guessed from the file
                extension when omitted.

        Returns:
            UploadedFile holding the file's bytes.
        """
        path = Path(path)
        if content_type is None:
            content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        return cls(
            field=field,
            filename=path.name,
            content=path.read_bytes(),
            content_type=content_type,
        )


@dataclass(frozen=True)
class BrowserRequest:
    """A request as issued by the browser-emulation client.

    ``server`` carries CGI-style server parameters (``HTTP_HOST``,
    ``HTTP_ACCEPT``, ``CONTENT_TYPE``, ``REMOTE_ADDR`` ...). Headers are
    derived from it by the connector, never stored separately.
    """

    uri: str
    method: str = "GET"
    parameters: Mapping[str, Any] = field(default_factory=dict)
    files: tuple[UploadedFile, ...] = ()
    cookies: Mapping[str, str] = field(default_factory=dict)
    server: Mapping[str, Any] = field(default_factory=dict)
    content: bytes | str | None = None

    def __post_init__(self) -> None:
        """Normalise method and freeze mappings."""
        if not URL(self.uri).is_absolute():
            raise ValueError(f"uri must be absolute, got {self.uri!r}")
        object.__setattr__(self, "method", self.method.upper())
        object.__setattr__(self, "files", tuple(self.files))
        for name in ("parameters", "cookies", "server"):
            value = getattr(self, name)
            if isinstance(value, dict):
                object.__setattr__(self, name, MappingProxyType(value))

    @property
    def url(self) -> URL:
        return URL(self.uri)


@dataclass(frozen=True)
class BrowserResponse:
    """A response handed back to the browser-emulation client."""

    content: bytes
    status: int = 200
    headers: CIMultiDictProxy[str] = field(
        default_factory=lambda: CIMultiDictProxy(CIMultiDict())
    )

    def __post_init__(self) -> None:
        """Wrap plain header mappings in a read-only multidict."""
        if not isinstance(self.headers, CIMultiDictProxy):
            object.__setattr__(
                self, "headers", CIMultiDictProxy(CIMultiDict(self.headers))
            )

    @property
    def charset(self) -> str:
        content_type = self.headers.get("Content-Type", "")
        for part in content_type.split(";")[1:]:
            key, _, value = part.strip().partition("=")
            if key.lower() == "charset" and value:
                return value.strip('"')
        return "utf-8"

    @property
    def text(self) -> str:
        return self.content.decode(self.charset, errors="replace")

    @property
    def is_redirect(self) -> bool:
        return 300 <= self.status < 400 and "Location" in self.headers

    def header(self, name: str, default: str | None = None) -> str | None:
        """Return the first value of a header, or ``default``."""
        return self.headers.get(name, default)

    def header_values(self, name: str) -> list[str]:
        """Return every value of a repeated header such as Set-Cookie."""
        return self.headers.getall(name, [])


@dataclass(frozen=True)
class DestroyStats:
    """Diagnostics reported when an application instance is torn down."""

    requests_dispatched: int
    db_connection_closed: bool
    lingering_connections: int

    def as_dict(self) -> dict[str, Any]:
        return {
            "requests_dispatched": self.requests_dispatched,
            "db_connection_closed": self.db_connection_closed,
            "lingering_connections": self.lingering_connections,
        }
