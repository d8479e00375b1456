"""Configuration loading for appdriver.

Two layers of configuration:
- Settings: how the test module behaves, loaded from environment
  variables (prefix ``APPDRIVER_``) and an optional .env file
- ApplicationConfig: which application to build and the configuration
  handed to its factory, loaded from a TOML file in the project
"""

import logging
import sys
import tomllib
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from appdriver.exceptions import ModuleError


class Settings(BaseSettings):
    """Module configuration loaded from environment.

    Uses pydantic-settings for environment variable handling with
    .env file support via python-dotenv.
    """

    model_config = SettingsConfigDict(
        env_prefix="APPDRIVER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Project layout
    project_dir: str = Field(
        default=".",
        description="Project root; relative paths below are resolved against it",
    )
    config: str = Field(
        default="tests/application.toml",
        description="Application config file, relative to the project root",
    )
    bootstrap: str = Field(
        default="tests/bootstrap.py",
        description="Python file executed once before the application config is loaded, if it exists",
    )

    # Browser behaviour
    base_url: str = Field(
        default="http://localhost",
        description="URL relative page addresses are resolved against",
    )
    follow_redirects: bool = Field(
        default=True,
        description="Follow redirect responses automatically",
    )
    max_redirects: int = Field(
        default=5,
        description="Maximum number of redirects followed for one request",
    )
    client_max_size: int = Field(
        default=1024**2,
        description="Maximum request body size accepted by the application",
    )

    # Application lifecycle
    recreate_application: bool = Field(
        default=True,
        description="Build a fresh application instance for every request",
    )
    db_service: str = Field(
        default="db",
        description="Service key of the database handle closed on teardown",
    )
    orm_service: str = Field(
        default="",
        description="Service key of the ORM session exposed to other test helpers",
    )
    persistent_services: list[str] = Field(
        default_factory=list,
        description="Service keys pinned across application instances once grabbed",
    )

    # Logging configuration
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Log level",
    )

    @field_validator("max_redirects")
    @classmethod
    def validate_max_redirects(cls, v: int) -> int:
        """Ensure redirect limit is positive."""
        if v <= 0:
            raise ValueError("max_redirects must be positive")
        return v

    @field_validator("client_max_size")
    @classmethod
    def validate_client_max_size(cls, v: int) -> int:
        """Ensure body size limit is positive."""
        if v <= 0:
            raise ValueError("client_max_size must be positive")
        return v

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Ensure base URL is absolute http(s)."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("base_url must start with http:// or https://")
        return v.rstrip("/") or v

    def resolve_path(self, path: str) -> Path:
        """Resolve a project-relative path."""
        candidate = Path(path)
        if candidate.is_absolute():
            return candidate
        return Path(self.project_dir) / candidate


class ApplicationConfig(BaseModel):
    """Which application to build, and with what configuration.

    Loaded from the ``[application]`` table of the config file::

        [application]
        factory = "myproject.app:create_app"

        [application.config]
        debug = true
    """

    factory: str
    config: dict[str, Any] = Field(default_factory=dict)

    @field_validator("factory")
    @classmethod
    def validate_factory(cls, v: str) -> str:
        """Ensure factory is a module:callable path."""
        module, sep, attribute = v.partition(":")
        if not sep or not module or not attribute:
            raise ValueError("factory must look like 'package.module:callable'")
        return v


def load_settings(env_file: str | None = None) -> Settings:
    """Load module settings from environment.

    Args:
        env_file: Optional path to .env file. If not provided,
                 uses the default .env in the current directory.

    Returns:
        Validated Settings instance.

    Raises:
        ValidationError: If settings validation fails.
    """
    if env_file:
        return Settings(_env_file=env_file)  # type: ignore[call-arg]
    return Settings()


def load_application_config(path: str | Path) -> ApplicationConfig:
    """Read the application config file.

    Raises:
        ModuleError: If the file is missing, is not valid TOML, or lacks
            a valid ``[application]`` table.
    """
    path = Path(path)
    if not path.is_file():
        raise ModuleError("appdriver", f"Application config file {path} not found")
    try:
        with path.open("rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ModuleError("appdriver", f"Application config file {path} is not valid TOML: {e}") from e
    if "application" not in data:
        raise ModuleError("appdriver", f"Application config file {path} has no [application] table")
    try:
        return ApplicationConfig.model_validate(data["application"])
    except ValidationError as e:
        raise ModuleError("appdriver", f"Invalid application config in {path}: {e}") from e


def configure_logging(log_level: str) -> None:
    """Configure logging for the appdriver loggers.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    """
    level = getattr(logging, log_level, logging.INFO)
    logger = logging.getLogger("appdriver")
    logger.setLevel(level)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
        logger.addHandler(handler)


__all__ = [
    "ApplicationConfig",
    "Settings",
    "configure_logging",
    "load_application_config",
    "load_settings",
]
