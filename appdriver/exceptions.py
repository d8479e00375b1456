"""Exceptions raised by appdriver itself.

Exceptions raised by the application under test are never wrapped:
they propagate to the test unchanged.
"""


class AppDriverError(Exception):
    """Base class for appdriver errors."""


class ModuleError(AppDriverError):
    """The module is misconfigured or cannot integrate with the application."""

    def __init__(self, module: str, message: str) -> None:
        super().__init__(f"[{module}] {message}")
        self.module = module


class BrowserError(AppDriverError):
    """Invalid use of the browser-emulation client."""


class TooManyRedirectsError(BrowserError):
    """Redirect chain exceeded the configured maximum."""


class ExternalUrlError(AppDriverError):
    """A URL outside the application under test was requested."""


class ServiceNotFoundError(AssertionError):
    """A service was requested that the container does not provide."""

    def __init__(self, service: object) -> None:
        super().__init__(f"Service {service} is not available in container")
        self.service = service


__all__ = [
    "AppDriverError",
    "BrowserError",
    "ExternalUrlError",
    "ModuleError",
    "ServiceNotFoundError",
    "TooManyRedirectsError",
]
