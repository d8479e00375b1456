"""Root pytest configuration: activates the appdriver fixtures."""

pytest_plugins = ["appdriver.pytest_plugin"]
