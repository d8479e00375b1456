"""Helpers for laying out a throwaway project around the sample application."""

from pathlib import Path

SAMPLE_FACTORY = "appdriver.tests.fakes.app:create_app"


def write_application_config(directory: Path, config: str = "") -> Path:
    """Write an application.toml for the sample application."""
    path = directory / "application.toml"
    path.write_text(f'[application]\nfactory = "{SAMPLE_FACTORY}"\n\n[application.config]\n{config}')
    return path
