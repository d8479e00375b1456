"""Core browser-emulation tests."""
