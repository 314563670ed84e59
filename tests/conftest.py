"""Pytest hooks and fixtures."""

import os

import pytest


def pytest_configure(config):
    """Register custom markers (also in pyproject.toml)."""
    config.addinivalue_line(
        "markers",
        "integration: starts a real gRPC server on loopback",
    )


def pytest_collection_modifyitems(config, items):
    """Skip integration tests when the environment cannot open loopback sockets."""
    if os.environ.get("PLUGINWIRE_SKIP_INTEGRATION") != "1":
        return
    skip = pytest.mark.skip(reason="PLUGINWIRE_SKIP_INTEGRATION=1")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip)


@pytest.fixture(autouse=True)
def _isolate_plugin_environment(monkeypatch):
    """Keep the developer's PLUGIN_* and PLUGINWIRE_* variables out of tests."""
    for name in list(os.environ):
        if name.startswith(("PLUGIN_", "PLUGINWIRE_")):
            monkeypatch.delenv(name, raising=False)
