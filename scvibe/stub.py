from __future__ import annotations

import logging
import uuid

from .engine import CompiledDef, InterpretResult, PlayOptions, SynthInstance

_LOGGER = logging.getLogger("scvibe.stub")


def _preview(text: str, limit: int) -> str:
    flat = " ".join(text.split())
    if len(flat) <= limit:
        return flat
    return f"{flat[:limit]}..."


class StubEngine:
    """Engine stand-in used when a real engine cannot be booted.

    Every call succeeds immediately and nothing is rendered, so the tool
    handlers still run their whole protocol.
    """

    async def compile(self, name: str, source: str) -> CompiledDef:
        _LOGGER.debug("[stub] would load SynthDef %s: %s", name, _preview(source, 100))
        return CompiledDef(name=name)

    async def play(
        self, definition: CompiledDef, options: PlayOptions | None = None
    ) -> SynthInstance:
        _LOGGER.debug("[stub] would play synth %s", definition.name)
        return SynthInstance(id=uuid.uuid4().hex, definition_name=definition.name)

    async def interpret(self, code: str) -> InterpretResult:
        _LOGGER.debug("[stub] would interpret: %s", _preview(code, 50))
        return InterpretResult(ok=True, value="ok")

    async def shutdown(self) -> None:
        _LOGGER.debug("[stub] would quit")
