"""Test suite for appdriver.

Organized into three categories:

1. core/: Unit tests for the browser-emulation layer
   - No framework involved, uses FakeBrowser

2. adapters/: Tests for the aiohttp adapters
   - Drive the sample application in fakes/app.py in-process

3. fakes/: Test doubles and the sample application
"""
