"""Host functions exposed to plugin scripts.

This is the only surface a script can use to affect the outside world:
printing (plain and coloured) and outbound HTTP. Nothing else from the host
is reachable from inside the sandbox.
"""

from __future__ import annotations

import functools
import threading
from typing import TYPE_CHECKING, Any

import click
import httpx
import structlog
from lupa.lua54 import lua_type

from backpack.exceptions import CapabilityError

if TYPE_CHECKING:
    from lupa.lua54 import LuaRuntime

    from backpack.core.config import BackpackConfig

logger = structlog.get_logger()

COLORS = ("red", "green", "blue", "yellow", "cyan", "magenta", "white", "black")


class Printer:
    """Line-oriented console output, safe to share between worker threads."""

    def __init__(self, *, no_color: bool = False) -> None:
        self._no_color = no_color
        self._lock = threading.Lock()

    def echo(self, message: str, *, fg: str | None = None, err: bool = False) -> None:
        text = click.style(message, fg=fg) if fg else message
        with self._lock:
            click.echo(text, err=err, color=False if self._no_color else None)

    def cprint(self, message: str, color: str) -> None:
        name = color.lower()
        if name not in COLORS:
            self.echo(f"Unknown color '{color}'. Printing uncolored.", err=True)
            self.echo(message)
            return
        self.echo(message, fg=name)


class HttpCapability:
    def __init__(
        self,
        *,
        timeout: float = 30.0,
        user_agent: str = "backpack-plugin",
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._timeout = timeout
        self._user_agent = user_agent
        self._transport = transport

    def request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        body: str | None = None,
        json: Any = None,
    ) -> dict[str, Any]:
        method = method.upper()
        try:
            with httpx.Client(
                timeout=self._timeout,
                headers={"User-Agent": self._user_agent},
                transport=self._transport,
            ) as client:
                response = client.request(
                    method, url, headers=headers, content=body, json=json
                )
        except httpx.HTTPError as e:
            logger.debug("plugin_http_failed", method=method, url=url, error=str(e))
            raise CapabilityError(f"HTTP {method} {url} failed: {e}") from e
        return {
            "status": response.status_code,
            "ok": response.is_success,
            "headers": dict(response.headers),
            "body": response.text,
        }


class LuaTables:
    """Builds Lua tables for a single runtime until the invocation ends.

    Capability callbacks reach their runtime only through this object, so
    ``close()`` drops the last Python-side reference to it.
    """

    def __init__(self, lua: LuaRuntime) -> None:
        self._lua: LuaRuntime | None = lua

    def build(self, data: dict[str, Any] | list[Any]) -> Any:
        if self._lua is None:
            raise CapabilityError("sandbox already closed")
        return self._lua.table_from(data, recursive=True)

    def close(self) -> None:
        self._lua = None


class CapabilityRegistry:
    def __init__(self, printer: Printer, http: HttpCapability) -> None:
        self._printer = printer
        self._http = http

    @classmethod
    def from_config(cls, config: BackpackConfig) -> CapabilityRegistry:
        return cls(
            Printer(no_color=config.no_color),
            HttpCapability(
                timeout=config.http_timeout_seconds,
                user_agent=config.http_user_agent,
            ),
        )

    def install(self, lua: LuaRuntime) -> LuaTables:
        """Register every capability as a global of *lua*."""
        tables = LuaTables(lua)
        g = lua.globals()
        g.print = self._print
        g.cprint = self._cprint
        for color in COLORS:
            g[f"print_{color}"] = functools.partial(self._cprint, color=color)

        def request(options: Any) -> Any:
            opts = from_lua(options) if options is not None else {}
            if not isinstance(opts, dict) or "url" not in opts:
                raise CapabilityError("http.request expects a table with a 'url'")
            response = self._http.request(
                str(opts.get("method", "GET")),
                str(opts["url"]),
                headers=opts.get("headers"),
                body=opts.get("body"),
                json=opts.get("json"),
            )
            return tables.build(response)

        def get(url: str, headers: Any = None) -> Any:
            response = self._http.request("GET", url, headers=from_lua(headers))
            return tables.build(response)

        def post(url: str, body: Any = None, headers: Any = None) -> Any:
            response = self._http.request(
                "POST",
                url,
                headers=from_lua(headers),
                body=None if body is None else _lua_tostring(body),
            )
            return tables.build(response)

        g.http = tables.build({"request": request, "get": get, "post": post})
        return tables

    def _print(self, *args: Any) -> None:
        self._printer.echo("\t".join(_lua_tostring(a) for a in args))

    def _cprint(self, message: Any, color: Any = None) -> None:
        self._printer.cprint(_lua_tostring(message), _lua_tostring(color))


def from_lua(value: Any) -> Any:
    """Convert a Lua table (recursively) into a dict, or a list for sequences."""
    if lua_type(value) != "table":
        return value
    items = {k: from_lua(v) for k, v in value.items()}
    if items and all(isinstance(k, int) for k in items):
        keys = sorted(items)
        if keys == list(range(1, len(keys) + 1)):
            return [items[k] for k in keys]
    return items


def _lua_tostring(value: Any) -> str:
    if value is None:
        return "nil"
    if value is True:
        return "true"
    if value is False:
        return "false"
    return str(value)
