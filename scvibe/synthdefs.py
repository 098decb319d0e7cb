"""Built-in minimal techno instruments and the pattern templates that drive them.

Definition sources are SynthDef graph functions; the engine supplies the
name when compiling. Patterns are rendered from :class:`VibeParams` so only
formatted numbers are substituted into the source.
"""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType

from .vibe import VibeParams

TEMPO_BPM = 130
BEATS_PER_BAR = 4

KICK_DEF = r"""{
    arg out = 0, freq = 50, decay = 0.3, amp = 0.8;
    var env = EnvGen.kr(Env.perc(0.001, decay), doneAction: 2);
    var sig = SinOsc.ar(freq * EnvGen.kr(Env.perc(0.001, 0.08, 4, -4)));
    sig = sig + (WhiteNoise.ar(0.1) * EnvGen.kr(Env.perc(0.001, 0.01)));
    sig = (sig * env * amp).tanh;
    Out.ar(out, sig ! 2);
}"""

BASSLINE_DEF = r"""{
    arg out = 0, freq = 55, cutoff = 800, res = 0.3, amp = 0.6, gate = 1;
    var env = EnvGen.kr(Env.adsr(0.01, 0.1, 0.7, 0.1), gate, doneAction: 2);
    var sig = Saw.ar(freq) + Pulse.ar(freq * 0.99, 0.5, 0.5);
    sig = RLPF.ar(sig, cutoff * EnvGen.kr(Env.perc(0.01, 0.2, 3)), res);
    sig = (sig * env * amp).tanh;
    Out.ar(out, sig ! 2);
}"""

HIHAT_DEF = r"""{
    arg out = 0, decay = 0.05, amp = 0.3, pan = 0;
    var env = EnvGen.kr(Env.perc(0.001, decay), doneAction: 2);
    var sig = WhiteNoise.ar() * env * amp;
    sig = HPF.ar(sig, 8000);
    Out.ar(out, Pan2.ar(sig, pan));
}"""

BUILTIN_DEFINITIONS: Mapping[str, str] = MappingProxyType(
    {
        "technoKick": KICK_DEF,
        "hypnoticBass": BASSLINE_DEF,
        "hihat": HIHAT_DEF,
    }
)

TEMPO_CODE = f"TempoClock.default.tempo = {TEMPO_BPM}/60;"
STOP_CODE = "Pdef.clear;"


def render_server_target(host: str, port: int) -> str:
    """Points the interpreter's default server at the running renderer."""
    address = host.replace("\\", "\\\\").replace('"', '\\"')
    return f'Server.default = Server.remote(\\scvibe, NetAddr("{address}", {int(port)}));'


def _fmt(value: float) -> str:
    return f"{value:g}"


def render_kick_pattern(params: VibeParams) -> str:
    return "\n".join(
        [
            r"Pdef(\kick,",
            r"    Pbind(",
            r"        \instrument, \technoKick,",
            r"        \dur, 1,",
            r"        \freq, 50,",
            rf"        \decay, {_fmt(params.kick_decay)},",
            r"        \amp, 0.8",
            r"    )",
            r")",
        ]
    )


def render_bass_pattern(params: VibeParams) -> str:
    cutoff = params.bassline_cutoff
    cutoffs = ", ".join(_fmt(cutoff * ratio) for ratio in (1.0, 0.5, 1.5, 0.75))
    return "\n".join(
        [
            r"Pdef(\bass,",
            r"    Pbind(",
            r"        \instrument, \hypnoticBass,",
            r"        \dur, Pseq([0.75, 0.25, 0.5, 0.5], inf),",
            r"        \freq, Pseq([55, 55, 82.5, 55], inf),",
            rf"        \cutoff, Pseq([{cutoffs}], inf),",
            rf"        \res, {_fmt(params.bass_resonance)},",
            r"        \amp, 0.6,",
            r"        \legato, 0.8",
            r"    )",
            r")",
        ]
    )


def render_hihat_pattern(params: VibeParams) -> str:
    deviation = max(0.05, params.pattern_variation * 0.125)
    return "\n".join(
        [
            r"Pdef(\hihat,",
            r"    Pbind(",
            r"        \instrument, \hihat,",
            r"        \dur, 0.25,",
            r"        \decay, Pseq([0.05, 0.02, 0.03, 0.02], inf),",
            rf"        \amp, Pseq([0.3, 0.1, 0.2, 0.1], inf) * Pgauss(1, {_fmt(deviation)}),",
            r"        \pan, Pwhite(-0.3, 0.3)",
            r"    )",
            r")",
        ]
    )


def render_composition(params: VibeParams, bars: int = 4) -> str:
    """Kick always plays; bass and hihat follow the vibe's element set."""
    quant = _fmt(bars * BEATS_PER_BAR)
    patterns = [render_kick_pattern(params)]
    if "bass" in params.elements:
        patterns.append(render_bass_pattern(params))
    if "hihat" in params.elements:
        patterns.append(render_hihat_pattern(params))
    return "\n\n".join(f"{pattern}.play(quant: {quant});" for pattern in patterns)


def render_tweak(element: str, param: str, value: float) -> str:
    return rf"Pdef(\{element}).set(\{param}, {_fmt(value)});"
