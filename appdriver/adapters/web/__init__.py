"""aiohttp.web adapters.

Translate browser requests into aiohttp requests, run them through an
in-process application, and expose the application's services and
routes to tests.
"""

from .connector import AiohttpConnector
from .container import ServiceContainer, ServiceOverrides
from .httpx_transport import ConnectorTransport
from .lifecycle import ApplicationLifecycle

__all__ = [
    "AiohttpConnector",
    "ApplicationLifecycle",
    "ConnectorTransport",
    "ServiceContainer",
    "ServiceOverrides",
]
