from scvibe.synthdefs import (
    BUILTIN_DEFINITIONS,
    TEMPO_CODE,
    render_bass_pattern,
    render_composition,
    render_hihat_pattern,
    render_kick_pattern,
    render_server_target,
    render_tweak,
)
from scvibe.vibe import VibeParams


def _params(**overrides) -> VibeParams:
    values = {
        "bassline_cutoff": 800.0,
        "kick_decay": 0.35,
        "bass_resonance": 0.35,
        "pattern_variation": 0.3,
        "elements": ("kick", "bass"),
    }
    values.update(overrides)
    return VibeParams(**values)


def test_builtin_definitions_are_graph_functions() -> None:
    assert list(BUILTIN_DEFINITIONS) == ["technoKick", "hypnoticBass", "hihat"]
    for source in BUILTIN_DEFINITIONS.values():
        assert source.startswith("{")
        assert source.endswith("}")
        assert "SynthDef" not in source


def test_tempo_code() -> None:
    assert TEMPO_CODE == "TempoClock.default.tempo = 130/60;"


def test_kick_pattern_uses_decay() -> None:
    assert "\\decay, 0.26," in render_kick_pattern(_params(kick_decay=0.26))


def test_bass_pattern_scales_cutoff_and_resonance() -> None:
    pattern = render_bass_pattern(_params(bassline_cutoff=800.0, bass_resonance=0.44))

    assert "\\cutoff, Pseq([800, 400, 1200, 600], inf)," in pattern
    assert "\\res, 0.44," in pattern


def test_hihat_pattern_variation_has_floor() -> None:
    assert "Pgauss(1, 0.05)" in render_hihat_pattern(_params(pattern_variation=0.2))
    assert "Pgauss(1, 0.1)" in render_hihat_pattern(_params(pattern_variation=0.8))


def test_composition_follows_elements_and_bars() -> None:
    code = render_composition(_params(elements=("kick", "bass")), bars=2)

    assert code.count(".play(quant: 8);") == 2
    assert "Pdef(\\hihat," not in code


def test_composition_always_plays_kick() -> None:
    code = render_composition(_params(elements=("hihat",)))

    assert code.startswith("Pdef(\\kick,")
    assert "Pdef(\\bass," not in code
    assert "Pdef(\\hihat," in code
    assert code.count(".play(quant: 16);") == 2


def test_render_tweak() -> None:
    assert render_tweak("kick", "freq", 55) == "Pdef(\\kick).set(\\freq, 55);"
    assert render_tweak("hihat", "amp", 0.25) == "Pdef(\\hihat).set(\\amp, 0.25);"


def test_render_server_target() -> None:
    assert (
        render_server_target("127.0.0.1", 57110)
        == 'Server.default = Server.remote(\\scvibe, NetAddr("127.0.0.1", 57110));'
    )
    assert 'NetAddr("evil\\"host", 1)' in render_server_target('evil"host', 1)
