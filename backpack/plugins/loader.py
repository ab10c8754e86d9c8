"""Plugin discovery from the per-user configuration directory."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import click
import structlog

from backpack.exceptions import ConfigError, PluginLoadError
from backpack.plugins.base import Plugin

if TYPE_CHECKING:
    from backpack.core.config import BackpackConfig

logger = structlog.get_logger()

PLUGINS_DIR = "plugins"


def plugin_root(config: BackpackConfig) -> Path:
    """``<config-dir>/<app-name>/plugins``, or the configured override."""
    if config.plugins_dir is not None:
        return config.plugins_dir
    root = Path(click.get_app_dir(config.app_name)) / PLUGINS_DIR
    if not root.is_absolute():
        raise ConfigError("Could not determine config directory.")
    return root


def discover(root: Path) -> list[Plugin]:
    """Load every plugin directory under *root*, skipping broken ones.

    Sorted by manifest name (then directory) so the order does not depend on
    the filesystem.
    """
    if not root.is_dir():
        logger.debug("plugin_root_missing", path=str(root))
        return []

    logger.debug("plugin_scan_started", path=str(root))
    plugins: list[Plugin] = []
    for path in root.iterdir():
        if not path.is_dir():
            continue
        try:
            plugin = Plugin.from_dir(path)
        except PluginLoadError as e:
            logger.error("plugin_load_failed", path=str(path), error=str(e))
            continue
        logger.debug("plugin_loaded", name=plugin.name, path=str(path))
        plugins.append(plugin)

    plugins.sort(key=lambda p: (p.name, str(p.directory)))
    _warn_name_collisions(plugins)
    return plugins


def discover_plugins(config: BackpackConfig) -> list[Plugin]:
    return discover(plugin_root(config))


def _warn_name_collisions(plugins: list[Plugin]) -> None:
    seen: dict[str, Path] = {}
    for plugin in plugins:
        if plugin.name in seen:
            logger.warning(
                "plugin_name_collision",
                name=plugin.name,
                first=str(seen[plugin.name]),
                second=str(plugin.directory),
            )
        else:
            seen[plugin.name] = plugin.directory
