"""Tests for the service container bridge."""

import pytest
from aiohttp import web

from appdriver.adapters.web.container import ServiceContainer, ServiceOverrides
from appdriver.exceptions import ModuleError, ServiceNotFoundError
from appdriver.tests.fakes.app import GREETER, Greeter


class TestServiceOverrides:
    """Tests for the override registry."""

    def test_set_and_get(self) -> None:
        overrides = ServiceOverrides()
        overrides.set("mailer", "fake-mailer")
        assert overrides.has("mailer")
        assert overrides.get("mailer") == "fake-mailer"
        assert len(overrides) == 1

    def test_duplicate_rejected_unless_allowed(self) -> None:
        overrides = ServiceOverrides()
        overrides.set("mailer", "first")
        with pytest.raises(ModuleError, match="cannot be overridden"):
            overrides.set("mailer", "second")
        overrides.allow_override = True
        overrides.set("mailer", "second")
        assert overrides.get("mailer") == "second"

    def test_missing_service(self) -> None:
        with pytest.raises(ServiceNotFoundError, match="not available in container"):
            ServiceOverrides().get("mailer")

    def test_is_override_uses_identity(self) -> None:
        """Equal but distinct objects are not overrides."""
        registered: list[str] = []
        overrides = ServiceOverrides()
        overrides.set("queue", registered)
        assert overrides.is_override(registered)
        assert not overrides.is_override([])

    def test_apply_to_application(self) -> None:
        app = web.Application()
        overrides = ServiceOverrides()
        greeter = Greeter("Hi")
        overrides.set(GREETER, greeter)
        overrides.apply_to(app)
        assert app[GREETER] is greeter

    def test_remove(self) -> None:
        overrides = ServiceOverrides()
        overrides.set("mailer", "fake")
        overrides.remove("mailer")
        overrides.remove("mailer")
        assert not overrides.has("mailer")


class TestServiceContainer:
    """Tests for the combined application/override view."""

    @pytest.fixture
    def app(self) -> web.Application:
        app = web.Application()
        app[GREETER] = Greeter()
        return app

    def test_reads_application_services(self, app: web.Application) -> None:
        container = ServiceContainer(app, ServiceOverrides())
        assert container.has(GREETER)
        assert container.get(GREETER).greet("Ann") == "Hello, Ann!"

    def test_overrides_take_precedence(self, app: web.Application) -> None:
        container = ServiceContainer(app, ServiceOverrides())
        container.set(GREETER, Greeter("Hey"))
        assert container.get(GREETER).greet("Ann") == "Hey, Ann!"
        # Replacing again is allowed through the container.
        container.set(GREETER, Greeter("Yo"))
        assert container.get(GREETER).greet("Ann") == "Yo, Ann!"

    def test_set_does_not_touch_application(self, app: web.Application) -> None:
        original = app[GREETER]
        ServiceContainer(app, ServiceOverrides()).set(GREETER, Greeter("Hey"))
        assert app[GREETER] is original

    def test_missing_service_is_assertion_error(self, app: web.Application) -> None:
        container = ServiceContainer(app, ServiceOverrides())
        assert not container.has("mailer")
        with pytest.raises(AssertionError, match="Service mailer is not available"):
            container.get("mailer")
