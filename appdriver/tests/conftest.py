"""Shared fixtures: point the appdriver plugin at the sample application."""

import pytest

from appdriver.config import Settings
from appdriver.tests.fakes.project import write_application_config


@pytest.fixture(scope="session")
def appdriver_settings(tmp_path_factory: pytest.TempPathFactory) -> Settings:
    """Settings for the plugin fixtures, backed by a temporary project."""
    project = tmp_path_factory.mktemp("project")
    write_application_config(project, 'db = "pool"\n')
    return Settings(project_dir=str(project), config="application.toml", bootstrap="")
