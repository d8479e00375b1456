"""Core browser-emulation layer for appdriver.

Nothing in this package knows which web framework is being driven.
Connectors in the adapters package implement AbstractBrowser.do_request
for a concrete framework.
"""

from .browser import AbstractBrowser, History
from .cookies import Cookie, CookieJar
from .models import BrowserRequest, BrowserResponse, DestroyStats, UploadedFile

__all__ = [
    "AbstractBrowser",
    "BrowserRequest",
    "BrowserResponse",
    "Cookie",
    "CookieJar",
    "DestroyStats",
    "History",
    "UploadedFile",
]
