"""Route introspection for aiohttp applications.

Walks the router's resource tree to find named routes, descending into
sub-applications, and reads the hostname rules of domain sub-applications.
The hostname rules decide which absolute URLs belong to the application
under test.
"""

import re
from collections.abc import Iterator, Mapping
from typing import Any

from aiohttp import web
from aiohttp.web_urldispatcher import (
    AbstractResource,
    Domain,
    MaskDomain,
    MatchedSubAppResource,
    PrefixedSubAppResource,
)
from yarl import URL


def _subapplications(app: web.Application) -> Iterator[tuple[AbstractResource, web.Application]]:
    for resource in app.router.resources():
        if isinstance(resource, PrefixedSubAppResource):
            yield resource, resource.get_info()["app"]


def _rule_pattern(rule: Any) -> str | None:
    if isinstance(rule, MaskDomain):
        return rule.canonical
    if isinstance(rule, Domain):
        return re.escape(rule.canonical)
    return None


def internal_domains(app: web.Application) -> list[str]:
    """Hostname patterns served by the application.

    Returns:
        Anchored regular expressions, one per domain rule, without
        duplicates and in registration order.
    """
    # aiohttp only accepts domain sub-applications on the root router.
    patterns: list[str] = []
    for resource in app.router.resources():
        if isinstance(resource, MatchedSubAppResource):
            pattern = _rule_pattern(resource.get_info()["rule"])
            if pattern is not None:
                patterns.append(f"^{pattern}$")
    return list(dict.fromkeys(patterns))


def find_resource(app: web.Application, name: str) -> AbstractResource:
    """Look up a named resource in the application or its sub-applications.

    Raises:
        KeyError: If no resource carries that name.
    """
    named = app.router.named_resources()
    if name in named:
        return named[name]
    for _, subapp in _subapplications(app):
        try:
            return find_resource(subapp, name)
        except KeyError:
            continue
    raise KeyError(f"Route {name!r} does not exist")


def url_for(
    app: web.Application,
    name: str,
    params: Mapping[str, Any] | None = None,
    query: Mapping[str, Any] | None = None,
) -> str:
    """Assemble the relative URL of a named route."""
    resource = find_resource(app, name)
    if params:
        url = resource.url_for(**{key: str(value) for key, value in params.items()})
    else:
        url = resource.url_for()
    if query:
        url = url.with_query({key: str(value) for key, value in query.items()})
    return str(url)


def host_of(url: URL) -> str:
    """Host as it appears in a Host header: port only when non-default."""
    host = url.raw_host or ""
    if url.port is not None and not url.is_default_port():
        host = f"{host}:{url.port}"
    return host


def is_internal(url: str | URL, patterns: list[str], default_host: str) -> bool:
    """Check whether a URL is served by the application under test.

    Relative URLs always are. Absolute URLs are when their host equals
    ``default_host`` or matches one of ``patterns``.
    """
    url = URL(str(url))
    if not url.is_absolute():
        return True
    host = host_of(url)
    if host.lower() == default_host.lower():
        return True
    return any(re.match(pattern, host) for pattern in patterns)


__all__ = [
    "find_resource",
    "host_of",
    "internal_domains",
    "is_internal",
    "url_for",
]
