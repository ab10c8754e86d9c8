"""Tests for the host functions exposed to plugin scripts."""

from __future__ import annotations

import json
import threading
from unittest.mock import patch

import httpx
import pytest
from lupa.lua54 import LuaRuntime

from backpack.core.config import BackpackConfig
from backpack.core.events import CliCommandExecutionInit
from backpack.exceptions import CapabilityError
from backpack.plugins.base import Plugin
from backpack.plugins.capabilities import (
    COLORS,
    CapabilityRegistry,
    HttpCapability,
    LuaTables,
    Printer,
    from_lua,
)
from backpack.plugins.sandbox import ScriptEngine


@pytest.fixture
def load(make_plugin):
    def _load(script: str) -> Plugin:
        return Plugin.from_dir(make_plugin("cap", script=script))

    return _load


class TestPrinter:
    def test_echo_plain(self, capsys):
        Printer(no_color=True).echo("hello")
        assert capsys.readouterr().out == "hello\n"

    def test_cprint_known_color(self):
        printer = Printer()
        with patch("backpack.plugins.capabilities.click.echo") as echo:
            printer.cprint("alert", "red")
        text = echo.call_args.args[0]
        assert "alert" in text
        assert "\x1b[31m" in text
        assert echo.call_args.kwargs["color"] is None

    def test_cprint_color_case_insensitive(self):
        printer = Printer()
        with patch("backpack.plugins.capabilities.click.echo") as echo:
            printer.cprint("ok", "GREEN")
        assert "\x1b[32m" in echo.call_args.args[0]

    def test_no_color_strips_styles(self):
        printer = Printer(no_color=True)
        with patch("backpack.plugins.capabilities.click.echo") as echo:
            printer.cprint("alert", "red")
        assert echo.call_args.kwargs["color"] is False

    def test_unknown_color_falls_back(self, capsys):
        Printer(no_color=True).cprint("plain text", "chartreuse")
        captured = capsys.readouterr()
        assert captured.out == "plain text\n"
        assert "Unknown color 'chartreuse'. Printing uncolored." in captured.err

    def test_every_color_supported(self, capsys):
        printer = Printer(no_color=True)
        for color in COLORS:
            printer.cprint(color, color)
        captured = capsys.readouterr()
        assert captured.out.splitlines() == list(COLORS)
        assert captured.err == ""

    def test_concurrent_lines_do_not_interleave(self, capsys):
        printer = Printer(no_color=True)

        def spam(tag: str) -> None:
            for _ in range(50):
                printer.echo(tag * 20)

        threads = [threading.Thread(target=spam, args=(t,)) for t in "abcd"]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        lines = capsys.readouterr().out.splitlines()
        assert len(lines) == 200
        assert all(len(set(line)) == 1 and len(line) == 20 for line in lines)


class TestScriptPrinting:
    def test_print_joins_with_tabs(self, engine, load, capsys):
        plugin = load('print("a", 1, true, false, nil, 2.5)')
        assert engine.run(plugin, CliCommandExecutionInit()).ok
        assert capsys.readouterr().out == "a\t1\ttrue\tfalse\tnil\t2.5\n"

    def test_cprint_from_script(self, engine, load, capsys):
        plugin = load('cprint("colored", "blue")\ncprint("odd", "mauve")')
        assert engine.run(plugin, CliCommandExecutionInit()).ok
        captured = capsys.readouterr()
        assert captured.out == "colored\nodd\n"
        assert "Unknown color 'mauve'" in captured.err

    def test_color_wrappers(self, engine, load, capsys):
        script = "\n".join(f'print_{color}("{color}")' for color in COLORS)
        assert engine.run(load(script), CliCommandExecutionInit()).ok
        assert capsys.readouterr().out.splitlines() == list(COLORS)

    def test_color_wrapper_passes_color(self, engine, load):
        with patch.object(Printer, "cprint") as cprint:
            assert engine.run(load('print_red("x")'), CliCommandExecutionInit()).ok
        cprint.assert_called_once_with("x", "red")


class FakeServer:
    """Answers requests from a ``(method, url)`` table and records them."""

    def __init__(self, routes: dict[tuple[str, str], httpx.Response | Exception]):
        self.routes = routes
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        answer = self.routes[(request.method, str(request.url))]
        if isinstance(answer, Exception):
            raise answer
        return answer

    def http(self, **kwargs) -> HttpCapability:
        return HttpCapability(transport=httpx.MockTransport(self), **kwargs)

    def engine(self) -> ScriptEngine:
        return ScriptEngine(CapabilityRegistry(Printer(no_color=True), self.http()))


class TestHttpCapability:
    def test_request_returns_plain_dict(self):
        server = FakeServer(
            {
                ("GET", "https://api.example.com/ping"): httpx.Response(
                    200, text="pong", headers={"X-Id": "7"}
                )
            }
        )
        result = server.http().request("get", "https://api.example.com/ping")
        assert result["status"] == 200
        assert result["ok"] is True
        assert result["body"] == "pong"
        assert result["headers"]["x-id"] == "7"

    def test_user_agent_sent(self):
        server = FakeServer(
            {("GET", "https://api.example.com/ua"): httpx.Response(204)}
        )
        server.http(user_agent="ua-test").request("GET", "https://api.example.com/ua")
        assert server.requests[-1].headers["User-Agent"] == "ua-test"

    def test_transport_error_raises_capability_error(self):
        server = FakeServer(
            {("GET", "https://api.example.com/down"): httpx.ConnectError("refused")}
        )
        with pytest.raises(CapabilityError, match="HTTP GET .* failed"):
            server.http().request("GET", "https://api.example.com/down")

    def test_http_error_status_is_not_raised(self):
        server = FakeServer(
            {("GET", "https://api.example.com/missing"): httpx.Response(404)}
        )
        result = server.http().request("GET", "https://api.example.com/missing")
        assert result["status"] == 404
        assert result["ok"] is False


class TestScriptHttp:
    def test_get_from_script(self, load, capsys):
        server = FakeServer(
            {("GET", "https://api.example.com/ping"): httpx.Response(200, text="pong")}
        )
        plugin = load(
            'local r = http.get("https://api.example.com/ping")\n'
            "print(r.status, r.ok, r.body)"
        )
        assert server.engine().run(plugin, CliCommandExecutionInit()).ok
        assert capsys.readouterr().out == "200\ttrue\tpong\n"

    def test_post_from_script(self, load):
        server = FakeServer(
            {("POST", "https://hooks.example.com/notify"): httpx.Response(201)}
        )
        plugin = load(
            'local r = http.post("https://hooks.example.com/notify", "hi", '
            '{["Content-Type"] = "text/plain"})\n'
            "assert(r.status == 201)"
        )
        assert server.engine().run(plugin, CliCommandExecutionInit()).ok
        request = server.requests[-1]
        assert request.content == b"hi"
        assert request.headers["Content-Type"] == "text/plain"

    def test_request_with_json_table(self, load):
        server = FakeServer(
            {
                ("PUT", "https://api.example.com/items/1"): httpx.Response(
                    200, json={"saved": True}
                )
            }
        )
        plugin = load(
            "local r = http.request{\n"
            '    method = "PUT",\n'
            '    url = "https://api.example.com/items/1",\n'
            '    json = {name = "echo", tags = {"a", "b"}},\n'
            "}\n"
            'assert(r.headers["content-type"] == "application/json")'
        )
        assert server.engine().run(plugin, CliCommandExecutionInit()).ok
        sent = json.loads(server.requests[-1].content)
        assert sent == {"name": "echo", "tags": ["a", "b"]}

    def test_request_without_url_fails(self, engine, load):
        plugin = load('http.request{method = "GET"}')
        outcome = engine.run(plugin, CliCommandExecutionInit())
        assert not outcome.ok
        assert "url" in outcome.error

    def test_transport_error_fails_invocation(self, load):
        server = FakeServer(
            {("GET", "https://api.example.com/down"): httpx.ConnectError("refused")}
        )
        plugin = load('http.get("https://api.example.com/down")')
        outcome = server.engine().run(plugin, CliCommandExecutionInit())
        assert not outcome.ok
        assert "HTTP GET https://api.example.com/down failed" in outcome.error

    def test_transport_error_catchable_with_pcall(self, load, capsys):
        server = FakeServer(
            {("GET", "https://api.example.com/down"): httpx.ConnectError("refused")}
        )
        plugin = load(
            'local ok = pcall(http.get, "https://api.example.com/down")\nprint(ok)'
        )
        assert server.engine().run(plugin, CliCommandExecutionInit()).ok
        assert capsys.readouterr().out == "false\n"


class TestRegistry:
    def test_from_config(self):
        registry = CapabilityRegistry.from_config(
            BackpackConfig(no_color=True, http_timeout_seconds=3, http_user_agent="x")
        )
        assert registry._printer._no_color is True
        assert registry._http._timeout == 3
        assert registry._http._user_agent == "x"

    def test_install_registers_globals(self, capabilities):
        lua = LuaRuntime()
        capabilities.install(lua)
        g = lua.globals()
        for name in ("print", "cprint", "http", *(f"print_{c}" for c in COLORS)):
            assert g[name] is not None
        assert lua.eval("type(http.get)") in ("userdata", "function")

    def test_closed_tables_refuse_to_build(self):
        tables = LuaTables(LuaRuntime())
        tables.close()
        with pytest.raises(CapabilityError, match="closed"):
            tables.build({"a": 1})


class TestFromLua:
    def test_sequence_becomes_list(self):
        assert from_lua(LuaRuntime().eval("{1, 2, 3}")) == [1, 2, 3]

    def test_mapping_becomes_dict(self):
        assert from_lua(LuaRuntime().eval('{a = 1, b = "x"}')) == {"a": 1, "b": "x"}

    def test_nested(self):
        value = from_lua(LuaRuntime().eval('{h = {["X-A"] = "1"}, l = {"p", "q"}}'))
        assert value == {"h": {"X-A": "1"}, "l": ["p", "q"]}

    def test_sparse_integer_keys_stay_dict(self):
        assert from_lua(LuaRuntime().eval("{[1] = 'a', [3] = 'c'}")) == {1: "a", 3: "c"}

    def test_scalars_pass_through(self):
        assert from_lua("s") == "s"
        assert from_lua(None) is None
        assert from_lua(4) == 4
