import pytest

from scvibe.vibe import VibeInterpretation, interpret_vibe, vibe_to_params


def test_neutral_vibe_uses_defaults() -> None:
    interpretation = interpret_vibe("something groovy")

    assert interpretation.energy == 0.5
    assert interpretation.darkness == 0.5
    assert interpretation.complexity == 0.3
    assert interpretation.elements == ["kick", "bass"]


def test_intense_dark_layered_vibe() -> None:
    interpretation = interpret_vibe("Driving, DARK and layered")

    assert interpretation.energy == 0.8
    assert interpretation.darkness == 0.8
    assert interpretation.complexity == 0.8
    assert interpretation.elements == ["kick", "bass", "hihat"]


def test_minimal_lowers_energy_and_complexity() -> None:
    interpretation = interpret_vibe("minimal")

    assert interpretation.energy == 0.3
    assert interpretation.complexity == 0.2


def test_bright_percussion_adds_hihat_once() -> None:
    assert interpret_vibe("bright percussion").darkness == 0.2
    assert interpret_vibe("bright percussion").elements == ["kick", "bass", "hihat"]
    assert interpret_vibe("complex hihat percussion").elements.count("hihat") == 1


def test_intense_wins_over_minimal() -> None:
    assert interpret_vibe("intense minimal").energy == 0.8


def test_vibe_to_params_mapping() -> None:
    params = vibe_to_params(
        VibeInterpretation(energy=0.8, darkness=0.8, complexity=0.6, elements=["kick"])
    )

    assert params.bassline_cutoff == pytest.approx(560.0)
    assert params.kick_decay == pytest.approx(0.26)
    assert params.bass_resonance == pytest.approx(0.44)
    assert params.pattern_variation == pytest.approx(0.6)
    assert params.elements == ("kick",)


def test_interpretation_rejects_out_of_range_values() -> None:
    with pytest.raises(ValueError):
        VibeInterpretation(energy=1.5)
