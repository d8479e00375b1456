"""Tests for the pytest fixtures shipped with appdriver."""

import pytest

from appdriver import AppDriver
from appdriver.tests.fakes import FakePool


@pytest.mark.appdriver
def test_fixture_serves_application(appdriver: AppDriver) -> None:
    appdriver.am_on_page("/")
    appdriver.see_response_code_is(200)
    appdriver.see("Welcome")


@pytest.mark.appdriver
def test_application_config_loaded_from_file(appdriver: AppDriver) -> None:
    assert isinstance(appdriver.db, FakePool)


@pytest.mark.appdriver
def test_new_test_starts_without_headers_or_cookies(appdriver: AppDriver) -> None:
    """Headers and cookies from one test are gone once the next one starts."""
    appdriver.have_http_header("X-Trace", "1")
    appdriver.am_on_page("/cookies/set")
    appdriver.am_on_page("/echo")
    appdriver.see('"X-Trace": "1"')
    appdriver.see_cookie("session")

    appdriver._after()
    appdriver._before()

    appdriver.am_on_page("/echo")
    appdriver.dont_see("X-Trace")
    appdriver.dont_see_cookie("session")
