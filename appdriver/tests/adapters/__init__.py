"""aiohttp adapter tests."""
