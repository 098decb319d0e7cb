from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Awaitable, Callable, Sequence

from pydantic import BaseModel, ConfigDict, Field

from .engine import EngineHandle, SynthInstance
from .errors import InvalidToolInputError
from .logging_utils import debug_enabled, log_exception
from .session import SynthSession
from .supervisor import ProcessSupervisor
from .synthdefs import (
    BUILTIN_DEFINITIONS,
    STOP_CODE,
    TEMPO_BPM,
    TEMPO_CODE,
    render_composition,
    render_server_target,
    render_tweak,
)
from .vibe import Element, interpret_vibe, vibe_to_params

_LOGGER = logging.getLogger("scvibe.tools")

SINGLE_SYNTH_DEFAULT_MS = 5000
MULTI_SYNTH_DEFAULT_MS = 10000
_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

Sleep = Callable[[float], Awaitable[None]]


class SynthSpec(BaseModel):
    name: str = Field(description="Synth name")
    code: str = Field(description="Synth code")

    model_config = ConfigDict(extra="forbid")


class ToolResult(BaseModel):
    texts: list[str]
    is_error: bool = False

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def error(cls, text: str) -> ToolResult:
        return cls(texts=[text], is_error=True)


def format_number(value: float) -> str:
    """Whole numbers without a trailing ``.0``, everything else as-is."""
    number = float(value)
    if number.is_integer():
        return str(int(number))
    return repr(number)


def format_seconds(duration_ms: float) -> str:
    return format_number(duration_ms / 1000)


def describe_error(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


class ToolHandlers:
    """Per-request logic behind the MCP tools.

    Playback tools tear both engines down when they finish, on success and
    on failure. Concurrent playback calls are not serialized: one call's
    teardown can stop engines another call is still using.
    """

    def __init__(
        self,
        supervisor: ProcessSupervisor,
        session: SynthSession | None = None,
        *,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.supervisor = supervisor
        self.session = session if session is not None else SynthSession()
        self._sleep = sleep

    async def _load_and_play(self, engine: EngineHandle, synth: SynthSpec) -> SynthInstance:
        definition = await engine.compile(synth.name, synth.code)
        instance = await engine.play(definition)
        self.session.register(instance)
        return instance

    async def synth_execute(self, synth: SynthSpec, duration: float | None = None) -> ToolResult:
        duration_ms = SINGLE_SYNTH_DEFAULT_MS if duration is None else duration
        try:
            engine = await self.supervisor.get_renderer_engine()
            await self._load_and_play(engine, synth)
            _LOGGER.info("Playing synth for %s seconds...", format_seconds(duration_ms))
            await self._sleep(duration_ms / 1000)
            _LOGGER.info("Synth playback complete")
        except Exception as exc:
            self._report("SuperCollider execution", exc)
            return ToolResult.error(f"An error occurred: {describe_error(exc)}")
        finally:
            await self.teardown()
        return ToolResult(
            texts=[
                f"Synth name: {synth.name}",
                f"Code: {synth.code}",
                f"Playback duration: {format_seconds(duration_ms)} seconds",
            ]
        )

    async def multi_synth_execute(
        self, synths: Sequence[SynthSpec], duration: float | None = None
    ) -> ToolResult:
        duration_ms = MULTI_SYNTH_DEFAULT_MS if duration is None else duration
        try:
            engine = await self.supervisor.get_renderer_engine()
            outcomes = await asyncio.gather(
                *(self._load_and_play(engine, synth) for synth in synths),
                return_exceptions=True,
            )
            for outcome in outcomes:
                if isinstance(outcome, BaseException):
                    raise outcome
            _LOGGER.info(
                "Playing %d synths for %s seconds...", len(synths), format_seconds(duration_ms)
            )
            await self._sleep(duration_ms / 1000)
            _LOGGER.info("Multiple synth playback complete")
        except Exception as exc:
            self._report("Multiple synth execution", exc)
            return ToolResult.error(f"An error occurred: {describe_error(exc)}")
        finally:
            await self.teardown()
        return ToolResult(
            texts=[
                f"Played {len(synths)} synths simultaneously.",
                f"Synths played: {', '.join(synth.name for synth in synths)}",
                f"Total playback duration: {format_seconds(duration_ms)} seconds",
            ]
        )

    async def teardown(self) -> None:
        try:
            instances = self.session.drain()
            if instances:
                _LOGGER.info(
                    "Stopping %d synth(s): %s",
                    len(instances),
                    ", ".join(instance.definition_name for instance in instances),
                )
            await self.supervisor.shutdown_all()
        finally:
            self.session.clear()

    async def techno_init(self) -> ToolResult:
        try:
            renderer = await self.supervisor.get_renderer_engine()
            for name, source in BUILTIN_DEFINITIONS.items():
                await renderer.compile(name, source)
            interpreter = await self.supervisor.get_interpreter_engine()
            settings = self.supervisor.settings
            await interpreter.interpret(render_server_target(settings.host, settings.port))
            # Patterns look up controls in the interpreter's own SynthDescLib.
            for name, source in BUILTIN_DEFINITIONS.items():
                await interpreter.compile(name, source)
            await interpreter.interpret(TEMPO_CODE)
        except Exception as exc:
            self._report("techno-init", exc)
            return ToolResult.error(f"Initialization error: {describe_error(exc)}")
        return ToolResult(
            texts=[
                "Techno environment initialized!",
                f"Loaded: {', '.join(BUILTIN_DEFINITIONS)}",
                f"Tempo set to {TEMPO_BPM} BPM",
            ]
        )

    async def vibe_create(self, vibe: str, bars: int = 4) -> ToolResult:
        try:
            interpretation = interpret_vibe(vibe)
            params = vibe_to_params(interpretation)
            composition = render_composition(params, bars)
            interpreter = await self.supervisor.get_interpreter_engine()
            await interpreter.interpret(composition)
        except Exception as exc:
            self._report("vibe-create", exc)
            return ToolResult.error(f"Error creating vibe: {describe_error(exc)}")
        return ToolResult(
            texts=[
                f'Created vibe: "{vibe}"',
                f"Interpretation: Energy={interpretation.energy:.1f}, "
                f"Darkness={interpretation.darkness:.1f}",
                f"Playing: {', '.join(params.elements)}",
                "Use 'techno-stop' to stop playback",
            ]
        )

    async def techno_stop(self) -> ToolResult:
        try:
            interpreter = await self.supervisor.get_interpreter_engine()
            await interpreter.interpret(STOP_CODE)
        except Exception as exc:
            self._report("techno-stop", exc)
            return ToolResult.error(f"Error stopping patterns: {describe_error(exc)}")
        return ToolResult(texts=["All patterns stopped"])

    async def techno_tweak(self, element: Element, param: str, value: float) -> ToolResult:
        try:
            if not _IDENTIFIER.match(param):
                raise InvalidToolInputError(f"invalid parameter name {param!r}")
            interpreter = await self.supervisor.get_interpreter_engine()
            await interpreter.interpret(render_tweak(element, param, value))
        except Exception as exc:
            self._report("techno-tweak", exc)
            return ToolResult.error(f"Error tweaking parameter: {describe_error(exc)}")
        return ToolResult(texts=[f"Updated {element}.{param} = {format_number(value)}"])

    @staticmethod
    def _report(context: str, exc: Exception) -> None:
        _LOGGER.warning("%s error: %s", context, exc, exc_info=debug_enabled())
        log_exception(context, exc)
