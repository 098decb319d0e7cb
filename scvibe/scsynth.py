from __future__ import annotations

import asyncio
import itertools
import logging
import re
from collections import defaultdict, deque
from collections.abc import Sequence
from typing import Any

from pythonosc.dispatcher import Dispatcher
from pythonosc.osc_message_builder import OscMessageBuilder
from pythonosc.osc_server import AsyncIOOSCUDPServer

from .engine import CompiledDef, InterpretResult, PlayOptions, SynthInstance
from .errors import CompileError, EngineBootError, PlayError, ScVibeError, TeardownError
from .probe import find_binary
from .process import EngineProcess
from .sclang import SclangEngine
from .settings import EngineSettings

_LOGGER = logging.getLogger("scvibe.scsynth")

SCSYNTH_READY = re.compile(r"^(SuperCollider 3 server ready|Supernova ready)")
SCSYNTH_BOOT_ERROR = re.compile(r"^(Exception|ERROR|\*\*\* ERROR)")
FIRST_NODE_ID = 1000
# /s_new add action "head" on the root node; no default group exists without sclang's Server.
_ADD_TO_HEAD = 0
_ROOT_NODE = 0


def scsynth_command(binary: str, settings: EngineSettings) -> list[str]:
    return [
        binary,
        "-u",
        str(settings.port),
        "-i",
        str(settings.num_input_bus_channels),
        "-o",
        str(settings.num_output_bus_channels),
        "-S",
        str(settings.sample_rate),
        "-Z",
        str(settings.block_size),
    ]


def _failure(command: str, reason: str) -> ScVibeError:
    if command == "/d_recv":
        return CompileError(f"scsynth rejected the SynthDef: {reason}")
    return ScVibeError(f"{command} failed: {reason}")


class OscLink:
    """UDP link to scsynth; replies are routed to the futures waiting on them."""

    def __init__(self, host: str, port: int) -> None:
        self._target = (host, port)
        self._dispatcher = Dispatcher()
        self._dispatcher.map("/done", self._on_done)
        self._dispatcher.map("/fail", self._on_fail)
        self._dispatcher.map("/n_go", self._on_node_go)
        self._transport: asyncio.DatagramTransport | None = None
        self._pending: defaultdict[str, deque[asyncio.Future[tuple[Any, ...]]]] = defaultdict(deque)
        self._spawns: dict[int, asyncio.Future[None]] = {}
        self._spawn_order: deque[int] = deque()

    async def open(self) -> None:
        loop = asyncio.get_running_loop()
        server = AsyncIOOSCUDPServer((self._target[0], 0), self._dispatcher, loop)
        transport, _protocol = await server.create_serve_endpoint()
        self._transport = transport

    def send(self, address: str, args: Sequence[Any] = ()) -> None:
        if self._transport is None:
            raise EngineBootError("OSC link is not open")
        builder = OscMessageBuilder(address=address)
        for arg in args:
            builder.add_arg(arg)
        self._transport.sendto(builder.build().dgram, self._target)

    def expect(self, command: str) -> asyncio.Future[tuple[Any, ...]]:
        future: asyncio.Future[tuple[Any, ...]] = asyncio.get_running_loop().create_future()
        self._pending[command].append(future)
        return future

    async def request(self, address: str, args: Sequence[Any] = ()) -> tuple[Any, ...]:
        future = self.expect(address)
        try:
            self.send(address, args)
        except Exception:
            self._pending[address].remove(future)
            raise
        return await future

    async def spawn(self, node_id: int, args: Sequence[Any]) -> None:
        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._spawns[node_id] = future
        self._spawn_order.append(node_id)
        try:
            self.send("/s_new", args)
        except Exception:
            self._spawns.pop(node_id, None)
            self._spawn_order.remove(node_id)
            raise
        await future

    def _on_done(self, _address: str, *args: Any) -> None:
        if not args:
            return
        queue = self._pending.get(str(args[0]))
        while queue:
            future = queue.popleft()
            if not future.done():
                future.set_result(tuple(args[1:]))
                return

    def _on_fail(self, _address: str, *args: Any) -> None:
        command = str(args[0]) if args else ""
        reason = " ".join(str(arg) for arg in args[1:])
        _LOGGER.warning("scsynth FAIL: %s %s", command, reason)
        if command == "/s_new":
            while self._spawn_order:
                future = self._spawns.pop(self._spawn_order.popleft(), None)
                if future is not None and not future.done():
                    future.set_exception(PlayError(f"scsynth could not start the synth: {reason}"))
                    return
            return
        queue = self._pending.get(command)
        while queue:
            pending = queue.popleft()
            if not pending.done():
                pending.set_exception(_failure(command, reason))
                return

    def _on_node_go(self, _address: str, *args: Any) -> None:
        if not args:
            return
        node_id = int(args[0])
        future = self._spawns.pop(node_id, None)
        if node_id in self._spawn_order:
            self._spawn_order.remove(node_id)
        if future is not None and not future.done():
            future.set_result(None)

    def close(self) -> None:
        if self._transport is not None:
            self._transport.close()
            self._transport = None
        closed = ScVibeError("OSC link closed")
        for queue in self._pending.values():
            while queue:
                future = queue.popleft()
                if not future.done():
                    future.set_exception(closed)
        for future in self._spawns.values():
            if not future.done():
                future.set_exception(closed)
        self._spawns.clear()
        self._spawn_order.clear()


class ScsynthEngine:
    """Renderer engine: an ``scsynth`` process plus a private sclang compiler."""

    def __init__(self, process: EngineProcess, osc: OscLink, compiler: SclangEngine) -> None:
        self._process = process
        self._osc = osc
        self._compiler = compiler
        self._node_ids = itertools.count(FIRST_NODE_ID)

    @property
    def pid(self) -> int | None:
        return self._process.pid

    @classmethod
    async def boot(cls, settings: EngineSettings) -> ScsynthEngine:
        binary = find_binary("scsynth", settings.scsynth_path)
        process = EngineProcess(
            "scsynth",
            scsynth_command(binary, settings),
            ready_pattern=SCSYNTH_READY,
            error_pattern=SCSYNTH_BOOT_ERROR,
            log_dir=settings.log_dir,
        )
        _LOGGER.info("Starting SuperCollider server on %s:%s...", settings.host, settings.port)
        await process.start()
        osc = OscLink(settings.host, settings.port)
        compiler: SclangEngine | None = None
        try:
            await osc.open()
            await osc.request("/notify", [1])
            compiler = await SclangEngine.boot(settings, name="sclang-compiler")
        except BaseException:
            osc.close()
            await process.stop()
            raise
        _LOGGER.info("SuperCollider server startup complete")
        return cls(process, osc, compiler)

    async def compile(self, name: str, source: str) -> CompiledDef:
        definition = await self._compiler.compile(name, source)
        if not definition.payload:
            raise CompileError(f"SynthDef {name} produced no definition bytes")
        await self._osc.request("/d_recv", [definition.payload])
        return definition

    async def play(
        self, definition: CompiledDef, options: PlayOptions | None = None
    ) -> SynthInstance:
        node_id = next(self._node_ids)
        args: list[Any] = [definition.name, node_id, _ADD_TO_HEAD, _ROOT_NODE]
        for key, value in (options or {}).items():
            args.extend([key, float(value)])
        await self._osc.spawn(node_id, args)
        return SynthInstance(id=str(node_id), definition_name=definition.name)

    async def interpret(self, code: str) -> InterpretResult:
        return await self._compiler.interpret(code)

    async def shutdown(self) -> None:
        try:
            self._osc.send("/quit")
        except (OSError, EngineBootError) as exc:
            _LOGGER.debug("Could not send /quit: %s", exc)
        self._osc.close()
        failures: list[Exception] = []
        for stop in (self._process.stop, self._compiler.shutdown):
            try:
                await stop()
            except Exception as exc:
                failures.append(exc)
        if failures:
            raise TeardownError("; ".join(str(exc) for exc in failures)) from failures[0]
        _LOGGER.info("SuperCollider server terminated")
