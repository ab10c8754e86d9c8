"""Concurrent fan-out of one event to every loaded plugin."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from backpack.core.events import Event
    from backpack.plugins.base import Plugin
    from backpack.plugins.sandbox import ScriptEngine

logger = structlog.get_logger()


class Broadcaster:
    def __init__(self, engine: ScriptEngine) -> None:
        self._engine = engine

    async def broadcast(self, plugins: Sequence[Plugin], event: Event) -> None:
        """Run every plugin for *event* concurrently; failures are only logged.

        Returns once all plugins have finished. Plugins see the event in no
        particular order relative to each other. Each sweep gets one worker
        thread per plugin so no script waits for a free thread.
        """
        if not plugins:
            return
        with ThreadPoolExecutor(
            max_workers=len(plugins), thread_name_prefix="plugin"
        ) as pool:
            results = await asyncio.gather(
                *(
                    self._engine.run_async(plugin, event, executor=pool)
                    for plugin in plugins
                ),
                return_exceptions=True,
            )
        for plugin, result in zip(plugins, results, strict=True):
            if isinstance(result, BaseException):
                logger.error(
                    "plugin_execution_crashed",
                    plugin=plugin.name,
                    event_tag=getattr(event, "tag", repr(event)),
                    error=repr(result),
                )
            elif not result.ok:
                logger.error(
                    "plugin_execution_failed",
                    plugin=result.plugin_name,
                    event_tag=result.event,
                    error=result.error,
                )
            else:
                logger.debug(
                    "plugin_execution_succeeded",
                    plugin=result.plugin_name,
                    event_tag=result.event,
                    duration_ms=round(result.duration_ms, 2),
                )


async def broadcast(
    plugins: Sequence[Plugin], event: Event, engine: ScriptEngine
) -> None:
    await Broadcaster(engine).broadcast(plugins, event)
