from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

Element = Literal["kick", "bass", "hihat"]
ELEMENTS: tuple[Element, ...] = ("kick", "bass", "hihat")


class VibeInterpretation(BaseModel):
    energy: float = Field(default=0.5, ge=0.0, le=1.0)
    darkness: float = Field(default=0.5, ge=0.0, le=1.0)
    complexity: float = Field(default=0.3, ge=0.0, le=1.0)
    elements: list[Element] = Field(default_factory=lambda: ["kick", "bass"])

    model_config = ConfigDict(extra="forbid")


class VibeParams(BaseModel):
    """Synthesis parameters derived from a vibe; feeds the pattern templates."""

    bassline_cutoff: float
    kick_decay: float
    bass_resonance: float
    pattern_variation: float
    elements: tuple[Element, ...]

    model_config = ConfigDict(frozen=True, extra="forbid")


def _mentions(text: str, *words: str) -> bool:
    return any(word in text for word in words)


def interpret_vibe(vibe: str) -> VibeInterpretation:
    lower = vibe.lower()
    interpretation = VibeInterpretation()

    if _mentions(lower, "intense", "driving"):
        interpretation.energy = 0.8
    elif _mentions(lower, "minimal", "subtle"):
        interpretation.energy = 0.3

    if _mentions(lower, "dark", "deep"):
        interpretation.darkness = 0.8
    elif _mentions(lower, "bright", "light"):
        interpretation.darkness = 0.2

    if _mentions(lower, "complex", "layered"):
        interpretation.complexity = 0.8
        interpretation.elements.append("hihat")
    elif _mentions(lower, "simple", "minimal"):
        interpretation.complexity = 0.2

    if _mentions(lower, "hihat", "percussion") and "hihat" not in interpretation.elements:
        interpretation.elements.append("hihat")

    return interpretation


def vibe_to_params(vibe: VibeInterpretation) -> VibeParams:
    return VibeParams(
        # darker -> lower cutoff
        bassline_cutoff=400 + (1 - vibe.darkness) * 800,
        # more energy -> shorter kick, more resonance
        kick_decay=0.5 - vibe.energy * 0.3,
        bass_resonance=0.2 + vibe.energy * 0.3,
        pattern_variation=vibe.complexity,
        elements=tuple(vibe.elements),
    )
