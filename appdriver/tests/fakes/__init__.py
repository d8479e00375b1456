"""Fakes for testing appdriver without a real application.

- FakeBrowser: AbstractBrowser answering from a scripted table
- FakePool: asyncpg-like pool recording how it was closed
- app: sample aiohttp application factory used as application under test
- project: writes application.toml files pointing at the sample factory
"""

from .browser import FakeBrowser, redirect_to, text
from .db import FakePool

__all__ = [
    "FakeBrowser",
    "FakePool",
    "redirect_to",
    "text",
]
