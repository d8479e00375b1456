"""pytest integration for appdriver.

Enable it from the project's root conftest.py::

    pytest_plugins = ["appdriver.pytest_plugin"]

and describe the application in ``tests/application.toml``. Override the
``appdriver_settings`` fixture to configure the module from code instead
of the environment.
"""

from collections.abc import Iterator

import pytest

from appdriver.config import Settings, load_settings
from appdriver.module import AppDriver


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers", "appdriver: functional tests driving the application in-process."
    )


@pytest.fixture(scope="session")
def appdriver_settings() -> Settings:
    """Module settings, loaded from the environment."""
    return load_settings()


@pytest.fixture(scope="session")
def appdriver_module(appdriver_settings: Settings) -> Iterator[AppDriver]:
    """Suite-wide module instance; initialized once, torn down at the end."""
    module = AppDriver(appdriver_settings)
    module._initialize()
    yield module
    module._after_suite()


@pytest.fixture
def appdriver(appdriver_module: AppDriver) -> Iterator[AppDriver]:
    """Module with a fresh client for the current test."""
    appdriver_module._before()
    yield appdriver_module
    appdriver_module._after()
