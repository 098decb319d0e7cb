from __future__ import annotations

import asyncio
import threading

import pytest
from mcp.server.fastmcp import FastMCP

from scvibe.server import SERVER_NAME, TOOL_NAMES, FatalErrorGuard, build_server, serve
from scvibe.settings import EngineSettings
from scvibe.supervisor import ProcessSupervisor
from scvibe.tools import ToolHandlers


def _handlers() -> ToolHandlers:
    return ToolHandlers(ProcessSupervisor(EngineSettings(stub_only=True), reaper=lambda: 0))


@pytest.mark.asyncio
async def test_server_registers_all_tools() -> None:
    mcp = build_server(_handlers())

    tools = {tool.name: tool for tool in await mcp.list_tools()}

    assert mcp.name == SERVER_NAME
    assert set(tools) == set(TOOL_NAMES)
    assert "synth" in tools["synth-execute"].inputSchema["properties"]
    assert "synths" in tools["multi-synth-execute"].inputSchema["properties"]
    assert set(tools["techno-tweak"].inputSchema["required"]) == {"element", "param", "value"}
    assert tools["techno-init"].inputSchema.get("required", []) == []


@pytest.mark.asyncio
async def test_fatal_guard_logs_and_keeps_running(caplog) -> None:
    guard = FatalErrorGuard()
    loop = asyncio.get_running_loop()

    guard.handle_loop_error(loop, {"message": "boom", "exception": RuntimeError("boom")})

    assert not guard.tripped.is_set()
    assert "Unhandled async error: boom" in caplog.text


@pytest.mark.asyncio
async def test_fatal_guard_trips_when_configured() -> None:
    guard = FatalErrorGuard(exit_on_fatal=True)

    guard.handle_loop_error(asyncio.get_running_loop(), {"message": "boom"})

    assert guard.tripped.is_set()


@pytest.mark.asyncio
async def test_fatal_guard_restores_previous_hooks() -> None:
    loop = asyncio.get_running_loop()
    previous_hook = threading.excepthook
    previous_handler = loop.get_exception_handler()
    guard = FatalErrorGuard()

    guard.install(loop)
    assert threading.excepthook == guard.handle_thread_error
    guard.uninstall()

    assert threading.excepthook is previous_hook
    assert loop.get_exception_handler() is previous_handler


@pytest.mark.asyncio
async def test_serve_restores_hooks_when_transport_ends(monkeypatch) -> None:
    async def finished_transport(self) -> None:
        return None

    monkeypatch.setattr(FastMCP, "run_stdio_async", finished_transport)
    previous_hook = threading.excepthook

    assert await serve(EngineSettings(stub_only=True)) == 0
    assert threading.excepthook is previous_hook
