from __future__ import annotations

from .engine import CompiledDef, EngineHandle, EngineKind, InterpretResult, SynthInstance
from .errors import (
    CompileError,
    EngineBootError,
    EngineBootTimeout,
    EngineNotFoundError,
    InterpretError,
    InvalidToolInputError,
    PlayError,
    ScVibeError,
    TeardownError,
)
from .session import SynthSession
from .settings import EngineSettings
from .stub import StubEngine
from .supervisor import EngineSlot, ProcessSupervisor, SlotState
from .tools import SynthSpec, ToolHandlers, ToolResult
from .vibe import VibeInterpretation, VibeParams, interpret_vibe, vibe_to_params

__all__ = [
    "CompileError",
    "CompiledDef",
    "EngineBootError",
    "EngineBootTimeout",
    "EngineHandle",
    "EngineKind",
    "EngineNotFoundError",
    "EngineSettings",
    "EngineSlot",
    "InterpretError",
    "InterpretResult",
    "InvalidToolInputError",
    "PlayError",
    "ProcessSupervisor",
    "ScVibeError",
    "SlotState",
    "StubEngine",
    "SynthInstance",
    "SynthSession",
    "SynthSpec",
    "TeardownError",
    "ToolHandlers",
    "ToolResult",
    "VibeInterpretation",
    "VibeParams",
    "interpret_vibe",
    "vibe_to_params",
]

__version__ = "0.1.0"
