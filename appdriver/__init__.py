"""appdriver: drive aiohttp applications in-process from functional tests.

Package layout:

- core/: browser-emulation client, cookie jar and the generic
  request/response models; no framework dependencies
- adapters/web/: everything aiohttp-specific (request/response
  translation, application lifecycle, service container bridge,
  route introspection and the connector tying them together)
- module.py: the test module wiring settings, config and connector
- pytest_plugin.py: fixtures running the module hooks around tests
"""

from .adapters.web.connector import AiohttpConnector
from .config import ApplicationConfig, Settings, load_settings
from .core.models import BrowserRequest, BrowserResponse, DestroyStats, UploadedFile
from .exceptions import (
    AppDriverError,
    BrowserError,
    ExternalUrlError,
    ModuleError,
    ServiceNotFoundError,
    TooManyRedirectsError,
)
from .module import AppDriver

__version__ = "0.1.0"

__all__ = [
    "AiohttpConnector",
    "AppDriver",
    "AppDriverError",
    "ApplicationConfig",
    "BrowserError",
    "BrowserRequest",
    "BrowserResponse",
    "DestroyStats",
    "ExternalUrlError",
    "ModuleError",
    "ServiceNotFoundError",
    "Settings",
    "TooManyRedirectsError",
    "UploadedFile",
    "load_settings",
]
