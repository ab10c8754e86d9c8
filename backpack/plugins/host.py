"""Host lifecycle: where plugin events are emitted."""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable, Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from backpack.core.events import (
    CliCommandExecutionEnd,
    CliCommandExecutionInit,
    CliCommandExecutionRun,
    PluginRegistered,
    PluginRegistrationEnd,
    PluginRegistrationInit,
)
from backpack.plugins.loader import discover, plugin_root

if TYPE_CHECKING:
    from backpack.core.config import BackpackConfig
    from backpack.plugins.base import Plugin
    from backpack.plugins.broadcaster import Broadcaster

logger = structlog.get_logger()

CommandAction = Callable[[], Awaitable[Any] | Any]


class PluginHost:
    def __init__(
        self,
        config: BackpackConfig,
        broadcaster: Broadcaster,
        *,
        root: Path | None = None,
    ) -> None:
        self._config = config
        self._broadcaster = broadcaster
        self._root = root
        self._plugins: list[Plugin] = []

    @property
    def plugins(self) -> list[Plugin]:
        return list(self._plugins)

    async def register_plugins(self) -> list[Plugin]:
        # Nothing is loaded yet, so the init event reaches no plugin.
        await self._broadcaster.broadcast([], PluginRegistrationInit())

        root = self._root if self._root is not None else plugin_root(self._config)
        self._plugins = discover(root)
        for plugin in self._plugins:
            await self._broadcaster.broadcast(
                self._plugins, PluginRegistered(name=plugin.name)
            )

        await self._broadcaster.broadcast(self._plugins, PluginRegistrationEnd())
        logger.info("plugin_registration_complete", count=len(self._plugins))
        return self.plugins

    async def run_command(
        self, command: str, args: Sequence[str], action: CommandAction
    ) -> Any:
        """Run *action* wrapped in the command init/run/end events.

        The end event is sent even when *action* raises; the error then
        propagates to the caller.
        """
        await self._broadcaster.broadcast(self._plugins, CliCommandExecutionInit())
        await self._broadcaster.broadcast(
            self._plugins, CliCommandExecutionRun(command=command, args=tuple(args))
        )
        try:
            result = action()
            if inspect.isawaitable(result):
                result = await result
            return result
        finally:
            await self._broadcaster.broadcast(
                self._plugins, CliCommandExecutionEnd()
            )
