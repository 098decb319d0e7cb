from __future__ import annotations

import asyncio
import re
from collections.abc import Callable

import pytest

from scvibe.engine import CompiledDef
from scvibe.errors import CompileError, InterpretError, PlayError
from scvibe.sclang import (
    SclangEngine,
    decode_hex_string,
    sc_arguments,
    sc_number,
    sc_symbol,
    wrap_for_capture,
)

_TOKEN = re.compile(r'"(scvibe[0-9a-f]+):END"')

Reply = Callable[[str, str], list[str | None]]


class ScriptedProcess:
    """Answers each wrapped request with lines produced by ``reply``."""

    def __init__(self, reply: Reply) -> None:
        self.reply = reply
        self.listeners: list[Callable[[str | None], None]] = []
        self.written: list[str] = []
        self.running = True
        self.stopped = False
        self.pid = 4242

    def add_listener(self, listener) -> None:
        self.listeners.append(listener)

    def remove_listener(self, listener) -> None:
        self.listeners.remove(listener)

    async def write(self, text: str) -> None:
        self.written.append(text)
        match = _TOKEN.search(text)
        if match is None:
            return
        loop = asyncio.get_running_loop()
        for line in self.reply(match.group(1), text):
            for listener in list(self.listeners):
                loop.call_soon(listener, line)

    async def stop(self) -> None:
        self.stopped = True
        self.running = False


def _result(value: str) -> Reply:
    return lambda token, _code: [f"{token}:RESULT:{value}", f"{token}:END"]


def test_sc_literals() -> None:
    assert sc_symbol("pad") == "'pad'"
    assert sc_symbol("it's") == "'it\\'s'"
    assert sc_number(440) == "440"
    assert sc_number(0.25) == "0.25"
    assert sc_arguments(None) == "[]"
    assert sc_arguments({"freq": 440, "amp": 0.5}) == "['freq', 440, 'amp', 0.5]"


def test_wrap_for_capture_marks_reply_lines() -> None:
    wrapped = wrap_for_capture("1 + 1", "tok")

    assert "1 + 1" in wrapped
    assert '"tok:RESULT:"' in wrapped
    assert '"tok:ERROR:"' in wrapped
    assert '"tok:END".postln;' in wrapped


def test_decode_hex_string() -> None:
    assert decode_hex_string('"0a0B"') == b"\n\x0b"
    assert decode_hex_string("ff00\n") == b"\xff\x00"
    with pytest.raises(ValueError):
        decode_hex_string('"nil"')


@pytest.mark.asyncio
async def test_interpret_returns_result_value() -> None:
    process = ScriptedProcess(_result("2"))
    engine = SclangEngine(process)

    result = await engine.interpret("1 + 1")

    assert result.ok
    assert result.value == "2"
    assert process.written[0].endswith("\x0c")
    assert process.listeners == []


@pytest.mark.asyncio
async def test_interpret_collects_multiline_result() -> None:
    process = ScriptedProcess(
        lambda token, _code: [f"{token}:RESULT:first", "second", f"{token}:END"]
    )

    result = await SclangEngine(process).interpret("x")

    assert result.value == "first\nsecond"


@pytest.mark.asyncio
async def test_interpret_raises_on_runtime_error() -> None:
    process = ScriptedProcess(
        lambda token, _code: [
            f"{token}:ERROR:Message 'foo' not understood.",
            f"{token}:RESULT:nil",
            f"{token}:END",
        ]
    )

    with pytest.raises(InterpretError, match="not understood"):
        await SclangEngine(process).interpret("1.foo")


@pytest.mark.asyncio
async def test_interpret_raises_on_parse_failure() -> None:
    process = ScriptedProcess(
        lambda _token, _code: [
            "ERROR: syntax error, unexpected '}'",
            "  in interpreted text",
            "ERROR: Command line parse failed",
        ]
    )

    with pytest.raises(InterpretError, match="syntax error"):
        await SclangEngine(process).interpret("}")


@pytest.mark.asyncio
async def test_interpret_raises_when_process_exits() -> None:
    process = ScriptedProcess(lambda _token, _code: [None])

    with pytest.raises(InterpretError, match="exited"):
        await SclangEngine(process).interpret("0.exit")


@pytest.mark.asyncio
async def test_compile_decodes_definition_bytes() -> None:
    process = ScriptedProcess(_result('"53436766"'))

    definition = await SclangEngine(process).compile("pad", "{ SinOsc.ar }")

    assert definition == CompiledDef(name="pad", payload=b"SCgf")
    assert "SynthDef('pad', { SinOsc.ar })" in process.written[0]


@pytest.mark.asyncio
async def test_compile_wraps_interpreter_errors() -> None:
    process = ScriptedProcess(
        lambda token, _code: [f"{token}:ERROR:bad ugen", f"{token}:END"]
    )

    with pytest.raises(CompileError, match="pad"):
        await SclangEngine(process).compile("pad", "{ Nope.ar }")


@pytest.mark.asyncio
async def test_compile_rejects_missing_bytes() -> None:
    process = ScriptedProcess(_result("nil"))

    with pytest.raises(CompileError, match="no definition bytes"):
        await SclangEngine(process).compile("pad", "{}")


@pytest.mark.asyncio
async def test_play_returns_node_id() -> None:
    process = ScriptedProcess(_result("1001"))

    instance = await SclangEngine(process).play(CompiledDef(name="pad"), {"freq": 220})

    assert instance.id == "1001"
    assert instance.definition_name == "pad"
    assert "Synth('pad', ['freq', 220]).nodeID" in process.written[0]


@pytest.mark.asyncio
async def test_play_wraps_interpreter_errors() -> None:
    process = ScriptedProcess(lambda token, _code: [f"{token}:ERROR:no def", f"{token}:END"])

    with pytest.raises(PlayError):
        await SclangEngine(process).play(CompiledDef(name="pad"))


@pytest.mark.asyncio
async def test_shutdown_asks_sclang_to_exit() -> None:
    process = ScriptedProcess(_result("nil"))

    await SclangEngine(process).shutdown()

    assert process.written == ["0.exit;\x0c"]
    assert process.stopped
