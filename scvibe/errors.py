from __future__ import annotations


class ScVibeError(Exception):
    """Base error for the scvibe server."""


class EngineBootError(ScVibeError):
    """Raised when an engine process cannot be started."""


class EngineBootTimeout(EngineBootError):
    """Raised when an engine process does not become ready in time."""


class EngineNotFoundError(EngineBootError):
    """Raised when the engine binary cannot be located."""


class CompileError(ScVibeError):
    """Raised when a synth definition fails to compile or load."""


class PlayError(ScVibeError):
    """Raised when a compiled definition cannot be started."""


class InterpretError(ScVibeError):
    """Raised when the interpreter rejects or fails to run code."""


class TeardownError(ScVibeError):
    """Raised when an engine process refuses to exit."""


class InvalidToolInputError(ScVibeError):
    """Raised when tool arguments would produce malformed source."""
