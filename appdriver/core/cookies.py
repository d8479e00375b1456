"""In-memory cookie jar for the browser-emulation client."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from email.utils import parsedate_to_datetime
from http.cookies import CookieError, SimpleCookie

from yarl import URL

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Cookie:
    """A single cookie as stored by the jar.

    A host-only cookie came without a Domain attribute and is sent back
    to exactly the host that set it, never to its subdomains.
    """

    name: str
    value: str
    domain: str = ""
    path: str = "/"
    expires: datetime | None = None
    secure: bool = False
    http_only: bool = False
    host_only: bool = False

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires is None:
            return False
        return self.expires <= (now or datetime.now(timezone.utc))

    def matches(self, url: URL) -> bool:
        """Check domain, path and secure flag against a request URL."""
        host = (url.host or "").lower()
        domain = self.domain.lower().lstrip(".")
        if self.host_only and host != domain:
            return False
        if domain and host != domain and not host.endswith("." + domain):
            return False
        path = url.path or "/"
        if self.path != "/" and path != self.path and not path.startswith(self.path.rstrip("/") + "/"):
            return False
        if self.secure and url.scheme != "https":
            return False
        return True


def _default_path(url: URL) -> str:
    path = url.path or "/"
    if not path.startswith("/") or path.count("/") <= 1:
        return "/"
    return path.rsplit("/", 1)[0]


def _parse_expires(morsel_expires: str, max_age: str) -> datetime | None:
    if max_age:
        try:
            return datetime.now(timezone.utc) + timedelta(seconds=int(max_age))
        except ValueError:
            logger.warning(f"Ignoring invalid cookie max-age: {max_age!r}")
    if morsel_expires:
        try:
            expires = parsedate_to_datetime(morsel_expires)
        except (TypeError, ValueError):
            logger.warning(f"Ignoring invalid cookie expires: {morsel_expires!r}")
            return None
        if expires.tzinfo is None:
            expires = expires.replace(tzinfo=timezone.utc)
        return expires
    return None


class CookieJar:
    """Stores cookies set by responses and replays them on requests.

    Cookies are keyed by (name, domain, path); the most specific path
    wins when two cookies of the same name match one request.
    """

    def __init__(self) -> None:
        self._cookies: dict[tuple[str, str, str], Cookie] = {}

    def set(
        self,
        name: str,
        value: str,
        domain: str = "",
        path: str = "/",
        expires: datetime | None = None,
        secure: bool = False,
    ) -> None:
        cookie = Cookie(name, value, domain, path, expires, secure)
        key = (name, domain, path)
        if cookie.is_expired():
            self._cookies.pop(key, None)
        else:
            self._cookies[key] = cookie

    def get(self, name: str, path: str = "/", domain: str | None = None) -> Cookie | None:
        """Return a stored cookie by name.

        Args:
            name: Cookie name.
            path: Path the cookie must be visible on.
            domain: Restrict the lookup to one domain (optional).

        Returns:
            The matching unexpired cookie, or None.
        """
        for cookie in self._sorted():
            if cookie.name != name or cookie.is_expired():
                continue
            if domain is not None and cookie.domain.lstrip(".") != domain.lstrip("."):
                continue
            if cookie.path == "/" or path == cookie.path or path.startswith(cookie.path.rstrip("/") + "/"):
                return cookie
        return None

    def expire(self, name: str, path: str | None = None, domain: str | None = None) -> None:
        for key in list(self._cookies):
            cookie_name, cookie_domain, cookie_path = key
            if cookie_name != name:
                continue
            if path is not None and cookie_path != path:
                continue
            if domain is not None and cookie_domain != domain:
                continue
            del self._cookies[key]

    def clear(self) -> None:
        self._cookies.clear()

    def all(self) -> list[Cookie]:
        return [cookie for cookie in self._sorted() if not cookie.is_expired()]

    def all_values(self, uri: str | URL) -> dict[str, str]:
        """Name to value mapping of the cookies to send with a request."""
        url = URL(str(uri))
        values: dict[str, str] = {}
        # Least specific first, so longer paths overwrite shorter ones.
        for cookie in reversed(self._sorted()):
            if not cookie.is_expired() and cookie.matches(url):
                values[cookie.name] = cookie.value
        return values

    def update_from_set_cookie(self, headers: list[str], uri: str | URL) -> None:
        """Store cookies from ``Set-Cookie`` response header values.

        Args:
            headers: Raw ``Set-Cookie`` header values.
            uri: URI of the request that produced the response; supplies
                the default domain and path.
        """
        url = URL(str(uri))
        for header in headers:
            parsed = SimpleCookie()
            try:
                parsed.load(header)
            except CookieError:
                logger.warning(f"Ignoring malformed Set-Cookie header: {header!r}")
                continue
            for name, morsel in parsed.items():
                domain = morsel["domain"] or (url.host or "")
                path = morsel["path"] or _default_path(url)
                expires = _parse_expires(morsel["expires"], str(morsel["max-age"]))
                key = (name, domain, path)
                cookie = Cookie(
                    name=name,
                    value=morsel.value,
                    domain=domain,
                    path=path,
                    expires=expires,
                    secure=bool(morsel["secure"]),
                    http_only=bool(morsel["httponly"]),
                    host_only=not morsel["domain"],
                )
                if cookie.is_expired():
                    self._cookies.pop(key, None)
                else:
                    self._cookies[key] = cookie

    def _sorted(self) -> list[Cookie]:
        return sorted(self._cookies.values(), key=lambda c: len(c.path), reverse=True)

    def __len__(self) -> int:
        return len(self.all())
