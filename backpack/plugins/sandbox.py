"""Per-invocation Lua sandbox for plugin scripts."""

from __future__ import annotations

import asyncio
import functools
import time
from typing import TYPE_CHECKING, Any

import structlog
from lupa.lua54 import LuaError, LuaRuntime

from backpack.core.events import to_dynamic
from backpack.exceptions import EventSerializationError
from backpack.plugins.base import ExecutionOutcome

if TYPE_CHECKING:
    from concurrent.futures import Executor

    from backpack.core.events import Event
    from backpack.plugins.base import Plugin
    from backpack.plugins.capabilities import CapabilityRegistry

logger = structlog.get_logger()

EVENT_VARIABLE = "event_data"

# Lua globals that would give a script ambient authority (files, processes,
# environment, module loading, raw bytecode) or reach back into Python.
_STRIPPED_GLOBALS = (
    "io",
    "os",
    "package",
    "require",
    "dofile",
    "loadfile",
    "load",
    "debug",
    "collectgarbage",
    "python",
)

# Every coroutine gets its own copy of the hook; debug.sethook only covers the
# thread it is called from.
_DEADLINE_HOOK = """
local now, deadline, seconds = ...
local format, fail = string.format, error
local sethook = debug.sethook
local create, resume = coroutine.create, coroutine.resume
local pack, unpack = table.pack, table.unpack

local function check()
    if now() > deadline then
        fail(format("script exceeded its %g second deadline", seconds), 2)
    end
end

sethook(check, "", 1000)

local function hooked_create(f)
    local co = create(f)
    sethook(co, check, "", 1000)
    return co
end

coroutine.create = hooked_create
coroutine.wrap = function(f)
    local co = hooked_create(f)
    return function(...)
        local results = pack(resume(co, ...))
        if not results[1] then
            fail(results[2], 0)
        end
        return unpack(results, 2, results.n)
    end
end
"""


def _deny_attribute_access(obj: Any, attr_name: str, is_setting: bool) -> str:
    raise AttributeError(f"access to '{attr_name}' is not allowed")


class ScriptEngine:
    """Runs one plugin script for one event in a fresh Lua runtime.

    Nothing survives between calls: every run builds a new runtime, installs
    the capabilities, binds the event and re-reads the script from disk.
    """

    def __init__(
        self,
        capabilities: CapabilityRegistry,
        *,
        timeout_seconds: float | None = None,
    ) -> None:
        self._capabilities = capabilities
        self._timeout = timeout_seconds

    async def run_async(
        self, plugin: Plugin, event: Event, *, executor: Executor | None = None
    ) -> ExecutionOutcome:
        """Run on *executor*, or the loop's default one, off the event loop."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            executor, functools.partial(self.run, plugin, event)
        )

    def run(self, plugin: Plugin, event: Event) -> ExecutionOutcome:
        name = plugin.name
        tag = getattr(event, "tag", type(event).__name__)
        logger.debug("plugin_executing", plugin=name, event_tag=tag)
        started = time.perf_counter()
        error: str | None = None
        try:
            result = self._execute(plugin, event)
            logger.debug("plugin_result", plugin=name, result=repr(result))
        except EventSerializationError as e:
            error = (
                "Failed to convert event data to a Lua value "
                f"for plugin '{name}': {e}"
            )
        except (OSError, UnicodeDecodeError) as e:
            error = f"Failed to read Lua script: {plugin.script_path}: {e}"
        except LuaError as e:
            error = f"Plugin '{name}' script failed during Lua execution.\nError: {e}"
        except Exception as e:
            # Capability callbacks surface here with their original type.
            error = (
                f"Plugin '{name}' script failed during Lua execution.\n"
                f"Error: {type(e).__name__}: {e}"
            )
        return ExecutionOutcome(
            plugin_name=name,
            event=tag,
            error=error,
            duration_ms=(time.perf_counter() - started) * 1000,
        )

    def _execute(self, plugin: Plugin, event: Event) -> Any:
        lua = self._new_runtime()
        tables = self._capabilities.install(lua)
        try:
            data = to_dynamic(event)
            lua.globals()[EVENT_VARIABLE] = (
                data if isinstance(data, str) else tables.build(data)
            )
            source = plugin.script_path.read_text(encoding="utf-8")
            if source.startswith("\x1b"):
                raise LuaError("precompiled Lua chunks are not allowed")
            return lua.execute(source)
        finally:
            tables.close()

    def _new_runtime(self) -> LuaRuntime:
        lua = LuaRuntime(
            register_eval=False,
            register_builtins=False,
            unpack_returned_tuples=True,
            attribute_filter=_deny_attribute_access,
        )
        if self._timeout is not None:
            lua.execute(
                _DEADLINE_HOOK,
                time.monotonic,
                time.monotonic() + self._timeout,
                self._timeout,
            )
        g = lua.globals()
        for name in _STRIPPED_GLOBALS:
            g[name] = None
        return lua
