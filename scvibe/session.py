from __future__ import annotations

from .engine import SynthInstance


class SynthSession:
    """Synth instances started since the last teardown, in start order."""

    def __init__(self) -> None:
        self._instances: list[SynthInstance] = []

    def register(self, instance: SynthInstance) -> None:
        self._instances.append(instance)

    def drain(self) -> list[SynthInstance]:
        return list(self._instances)

    def names(self) -> list[str]:
        return [instance.definition_name for instance in self._instances]

    def clear(self) -> None:
        self._instances.clear()

    def __len__(self) -> int:
        return len(self._instances)
