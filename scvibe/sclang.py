from __future__ import annotations

import asyncio
import logging
import re
import uuid

from .engine import CompiledDef, InterpretResult, PlayOptions, SynthInstance
from .errors import CompileError, InterpretError, PlayError
from .probe import find_binary
from .process import EngineProcess
from .settings import EngineSettings

_LOGGER = logging.getLogger("scvibe.sclang")

SCLANG_READY = re.compile(r"Welcome to SuperCollider")
SCLANG_BOOT_ERROR = re.compile(
    r"^(Library has not been compiled successfully|ERROR: There is a discrepancy)"
)
# sclang runs the buffered input when it reads a form feed.
_EXECUTE = "\x0c"


def sc_symbol(name: str) -> str:
    escaped = name.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


def sc_number(value: float) -> str:
    return f"{float(value):g}"


def sc_arguments(options: PlayOptions | None) -> str:
    if not options:
        return "[]"
    pairs = ", ".join(f"{sc_symbol(key)}, {sc_number(value)}" for key, value in options.items())
    return f"[{pairs}]"


def wrap_for_capture(code: str, token: str) -> str:
    return "\n".join(
        [
            "(",
            "var scvibeResult, scvibeError;",
            f"scvibeResult = {{\n{code}\n}}.try {{ |error| scvibeError = error; nil }};",
            "if(scvibeError.notNil) {",
            f'    ("{token}:ERROR:" ++ scvibeError.errorString.replace("\\n", " ")).postln;',
            "};",
            f'("{token}:RESULT:" ++ scvibeResult.asCompileString).postln;',
            f'"{token}:END".postln;',
            ")",
        ]
    )


def decode_hex_string(value: str) -> bytes:
    text = value.strip()
    if len(text) >= 2 and text[0] == text[-1] == '"':
        text = text[1:-1]
    return bytes.fromhex(text)


class _Capture:
    """Collects the reply lines of one wrapped interpret call."""

    def __init__(self, token: str, future: asyncio.Future[InterpretResult]) -> None:
        self._future = future
        self._result_prefix = f"{token}:RESULT:"
        self._error_prefix = f"{token}:ERROR:"
        self._end_marker = f"{token}:END"
        self._result_lines: list[str] | None = None
        self._error: str | None = None
        self._parse_error: str | None = None

    def feed(self, line: str | None) -> None:
        if self._future.done():
            return
        if line is None:
            self._future.set_exception(InterpretError("sclang exited before replying"))
            return
        if line.startswith(self._end_marker):
            if self._error is not None:
                self._future.set_exception(InterpretError(self._error))
            else:
                value = "\n".join(self._result_lines or [])
                self._future.set_result(InterpretResult(ok=True, value=value))
            return
        if line.startswith(self._error_prefix):
            self._error = line[len(self._error_prefix) :].strip()
            return
        if line.startswith(self._result_prefix):
            self._result_lines = [line[len(self._result_prefix) :]]
            return
        if self._result_lines is not None:
            self._result_lines.append(line)
            return
        if line.startswith("ERROR:") and self._parse_error is None:
            self._parse_error = line[len("ERROR:") :].strip()
        if "parse failed" in line:
            self._future.set_exception(InterpretError(self._parse_error or line.strip()))


class SclangEngine:
    """Interpreter engine backed by an ``sclang`` process."""

    def __init__(self, process: EngineProcess) -> None:
        self._process = process
        self._lock = asyncio.Lock()

    @property
    def pid(self) -> int | None:
        return self._process.pid

    @classmethod
    async def boot(cls, settings: EngineSettings, *, name: str = "sclang") -> SclangEngine:
        binary = find_binary("sclang", settings.sclang_path)
        process = EngineProcess(
            name,
            [binary, "-i", "scvibe"],
            ready_pattern=SCLANG_READY,
            error_pattern=SCLANG_BOOT_ERROR,
            log_dir=settings.log_dir,
            stdin=True,
        )
        _LOGGER.info("Starting SuperCollider language (%s)...", name)
        await process.start()
        _LOGGER.info("SuperCollider language startup complete (%s)", name)
        return cls(process)

    async def interpret(self, code: str) -> InterpretResult:
        async with self._lock:
            token = f"scvibe{uuid.uuid4().hex}"
            future: asyncio.Future[InterpretResult] = asyncio.get_running_loop().create_future()
            capture = _Capture(token, future)
            self._process.add_listener(capture.feed)
            try:
                await self._process.write(wrap_for_capture(code, token) + _EXECUTE)
                return await future
            finally:
                self._process.remove_listener(capture.feed)

    async def compile(self, name: str, source: str) -> CompiledDef:
        code = (
            f"SynthDef({sc_symbol(name)}, {source}).add.asBytes.asArray"
            ".collect { |byte| (byte & 255).asHexString(2) }.join"
        )
        try:
            result = await self.interpret(code)
        except InterpretError as exc:
            raise CompileError(f"SynthDef {name} failed to compile: {exc}") from exc
        try:
            payload = decode_hex_string(result.value)
        except ValueError as exc:
            raise CompileError(f"SynthDef {name} produced no definition bytes") from exc
        return CompiledDef(name=name, payload=payload)

    async def play(
        self, definition: CompiledDef, options: PlayOptions | None = None
    ) -> SynthInstance:
        code = f"Synth({sc_symbol(definition.name)}, {sc_arguments(options)}).nodeID"
        try:
            result = await self.interpret(code)
        except InterpretError as exc:
            raise PlayError(f"Synth {definition.name} failed to start: {exc}") from exc
        return SynthInstance(id=result.value.strip(), definition_name=definition.name)

    async def shutdown(self) -> None:
        if self._process.running:
            try:
                await self._process.write("0.exit;" + _EXECUTE)
            except (BrokenPipeError, ConnectionResetError) as exc:
                _LOGGER.debug("sclang input already closed: %s", exc)
        await self._process.stop()
