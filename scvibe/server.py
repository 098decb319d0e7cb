from __future__ import annotations

import asyncio
import logging
import threading
from typing import Annotated, Any, Literal

from mcp.server.fastmcp import FastMCP
from mcp.types import TextContent
from pydantic import Field

from .logging_utils import log_exception
from .probe import probe_engine
from .settings import EngineSettings
from .supervisor import ProcessSupervisor
from .tools import SynthSpec, ToolHandlers, ToolResult

_LOGGER = logging.getLogger("scvibe.server")

SERVER_NAME = "SuperColliderMcpServer"
TOOL_NAMES = (
    "synth-execute",
    "multi-synth-execute",
    "techno-init",
    "vibe-create",
    "techno-stop",
    "techno-tweak",
)


def _content(result: ToolResult) -> list[TextContent]:
    return [TextContent(type="text", text=text) for text in result.texts]


def build_server(handlers: ToolHandlers) -> FastMCP:
    mcp = FastMCP(SERVER_NAME)

    @mcp.tool(
        name="synth-execute",
        description=(
            "Generates SynthDef code and executes it to produce sound. "
            "Please wrap the code in curly braces {}."
        ),
    )
    async def synth_execute(
        synth: Annotated[SynthSpec, Field(description="Synth information to play")],
        duration: Annotated[
            float | None,
            Field(description="Playback duration in milliseconds. Default is 5000 (5 seconds)"),
        ] = None,
    ) -> list[TextContent]:
        return _content(await handlers.synth_execute(synth, duration))

    @mcp.tool(name="multi-synth-execute", description="Execute multiple SynthDefs simultaneously.")
    async def multi_synth_execute(
        synths: Annotated[list[SynthSpec], Field(description="List of synths to play")],
        duration: Annotated[
            float | None,
            Field(description="Playback duration in milliseconds. Default is 10000 (10 seconds)"),
        ] = None,
    ) -> list[TextContent]:
        return _content(await handlers.multi_synth_execute(synths, duration))

    @mcp.tool(
        name="techno-init",
        description=(
            "Initialize the techno environment with basic SynthDefs and patterns. "
            "Run this once at the start of your session."
        ),
    )
    async def techno_init() -> list[TextContent]:
        return _content(await handlers.techno_init())

    @mcp.tool(
        name="vibe-create",
        description=(
            "Create a hypnotic techno pattern from a vibe description. "
            'Example vibes: "dark minimal", "deep hypnotic", "driving and intense"'
        ),
    )
    async def vibe_create(
        vibe: Annotated[str, Field(description="Description of the desired vibe")],
        bars: Annotated[int, Field(description="Length in bars (default: 4)", ge=1)] = 4,
    ) -> list[TextContent]:
        return _content(await handlers.vibe_create(vibe, bars))

    @mcp.tool(name="techno-stop", description="Stop all playing patterns.")
    async def techno_stop() -> list[TextContent]:
        return _content(await handlers.techno_stop())

    @mcp.tool(
        name="techno-tweak",
        description="Adjust parameters of the running pattern in real-time.",
    )
    async def techno_tweak(
        element: Annotated[
            Literal["kick", "bass", "hihat"], Field(description="Which element to tweak")
        ],
        param: Annotated[str, Field(description="Parameter name (freq, cutoff, decay, etc)")],
        value: Annotated[float, Field(description="New value")],
    ) -> list[TextContent]:
        return _content(await handlers.techno_tweak(element, param, value))

    return mcp


class FatalErrorGuard:
    """Logs errors raised outside any tool call.

    The server keeps running unless ``exit_on_fatal`` is set, in which case
    ``tripped`` is set and :func:`serve` shuts down.
    """

    def __init__(self, *, exit_on_fatal: bool = False) -> None:
        self.exit_on_fatal = exit_on_fatal
        self.tripped = asyncio.Event()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._previous_loop_handler: Any = None
        self._previous_thread_hook: Any = None

    def install(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop
        self._previous_loop_handler = loop.get_exception_handler()
        self._previous_thread_hook = threading.excepthook
        loop.set_exception_handler(self.handle_loop_error)
        threading.excepthook = self.handle_thread_error

    def uninstall(self) -> None:
        if self._loop is None:
            return
        self._loop.set_exception_handler(self._previous_loop_handler)
        threading.excepthook = self._previous_thread_hook
        self._loop = None

    def handle_loop_error(
        self, loop: asyncio.AbstractEventLoop, context: dict[str, Any]
    ) -> None:
        exc = context.get("exception")
        message = context.get("message", "Unhandled exception in event loop")
        _LOGGER.error("Unhandled async error: %s", message, exc_info=exc)
        if isinstance(exc, BaseException):
            log_exception("event loop", exc)
        if self.exit_on_fatal:
            self.tripped.set()

    def handle_thread_error(self, args: threading.ExceptHookArgs) -> None:
        if args.exc_type is SystemExit:
            return
        thread_name = args.thread.name if args.thread else "unknown"
        _LOGGER.error(
            "Uncaught exception in thread %s",
            thread_name,
            exc_info=(args.exc_type, args.exc_value, args.exc_traceback),
        )
        if args.exc_value is not None:
            log_exception(f"thread {thread_name}", args.exc_value)
        if self.exit_on_fatal and self._loop is not None:
            self._loop.call_soon_threadsafe(self.tripped.set)


async def serve(settings: EngineSettings | None = None) -> int:
    settings = settings or EngineSettings.from_env()
    if not settings.stub_only:
        probe_engine("sclang", settings.sclang_path)
    supervisor = ProcessSupervisor(settings)
    mcp = build_server(ToolHandlers(supervisor))
    guard = FatalErrorGuard(exit_on_fatal=settings.exit_on_fatal)
    guard.install(asyncio.get_running_loop())

    _LOGGER.info("Techno Vibe MCP server running on stdio")
    transport = asyncio.create_task(mcp.run_stdio_async())
    fatal = asyncio.create_task(guard.tripped.wait())
    try:
        done, _pending = await asyncio.wait(
            {transport, fatal}, return_when=asyncio.FIRST_COMPLETED
        )
        if fatal in done:
            _LOGGER.critical("Stopping server after a fatal error")
            transport.cancel()
            await asyncio.gather(transport, return_exceptions=True)
            return 1
        fatal.cancel()
        transport.result()
        return 0
    finally:
        try:
            await supervisor.shutdown_all()
        finally:
            guard.uninstall()
