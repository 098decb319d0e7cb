from __future__ import annotations

import time
from collections.abc import Mapping
from enum import Enum
from typing import Protocol

from pydantic import BaseModel, ConfigDict, Field

PlayOptions = Mapping[str, float]


class EngineKind(str, Enum):
    INTERPRETER = "interpreter"
    RENDERER = "renderer"


class CompiledDef(BaseModel):
    """A compiled synth definition; ``payload`` is engine specific."""

    name: str
    payload: bytes | None = None

    model_config = ConfigDict(frozen=True, extra="forbid")


class SynthInstance(BaseModel):
    """One playing voice as reported by the engine."""

    id: str
    definition_name: str
    created_at: float = Field(default_factory=time.time)

    model_config = ConfigDict(frozen=True, extra="forbid")


class InterpretResult(BaseModel):
    ok: bool = True
    value: str = ""

    model_config = ConfigDict(frozen=True, extra="forbid")


class EngineHandle(Protocol):
    async def compile(self, name: str, source: str) -> CompiledDef: ...

    async def play(
        self, definition: CompiledDef, options: PlayOptions | None = None
    ) -> SynthInstance: ...

    async def interpret(self, code: str) -> InterpretResult: ...

    async def shutdown(self) -> None: ...
