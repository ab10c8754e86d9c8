"""Shared fixtures: isolated config, on-disk plugin trees, a real engine."""

from __future__ import annotations

import logging
import os
import textwrap
from collections.abc import Callable
from pathlib import Path

import pytest
import structlog

from backpack.core.config import BackpackConfig
from backpack.plugins.base import SCRIPT_FILENAME
from backpack.plugins.capabilities import CapabilityRegistry, HttpCapability, Printer
from backpack.plugins.manifest import MANIFEST_FILENAME
from backpack.plugins.sandbox import ScriptEngine

MOCK_MANIFEST = """
name = "test-plugin"
description = "A plugin for testing"
author = "Test Author"
license = "Test License"
"""

# Prints the discriminant of whatever event it receives.
MOCK_SCRIPT_SUCCESS = """
local event_type = "UNKNOWN"
if type(event_data) == "string" then
    event_type = event_data
elseif type(event_data) == "table" then
    event_type = next(event_data)
end
print("Lua received event: " .. event_type)
return true
"""

MOCK_SCRIPT_FAIL = """
local zero = 0
local x = 1 // zero
"""


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch):
    """Keep the project .env and shell BACKPACK_* variables out of tests."""
    monkeypatch.setitem(BackpackConfig.model_config, "env_file", None)
    for key in list(os.environ):
        if key.startswith("BACKPACK_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture(autouse=True)
def _reset_logging():
    """Discard rendered log lines so stdout only carries plugin output."""
    structlog.configure(logger_factory=structlog.ReturnLoggerFactory())
    yield
    structlog.reset_defaults()
    logging.getLogger().handlers.clear()


@pytest.fixture
def config(tmp_path):
    return BackpackConfig(plugins_dir=tmp_path / "plugins")


@pytest.fixture
def plugins_root(config) -> Path:
    assert config.plugins_dir is not None
    config.plugins_dir.mkdir(parents=True)
    return config.plugins_dir


@pytest.fixture
def make_plugin(plugins_root) -> Callable[..., Path]:
    def _make(
        dirname: str,
        script: str | None = MOCK_SCRIPT_SUCCESS,
        manifest: str | None = MOCK_MANIFEST,
    ) -> Path:
        path = plugins_root / dirname
        path.mkdir(parents=True)
        if manifest is not None:
            (path / MANIFEST_FILENAME).write_text(textwrap.dedent(manifest))
        if script is not None:
            (path / SCRIPT_FILENAME).write_text(textwrap.dedent(script))
        return path

    return _make


@pytest.fixture
def capabilities():
    return CapabilityRegistry(Printer(no_color=True), HttpCapability(timeout=5.0))


@pytest.fixture
def engine(capabilities):
    return ScriptEngine(capabilities)
