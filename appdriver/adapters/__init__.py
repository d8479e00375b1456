"""External adapters for appdriver.

This package contains all framework dependencies and provides
implementations of the core browser-emulation client.

Adapter Organization:

- web/: in-process connector for aiohttp.web applications
"""
