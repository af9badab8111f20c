import pytest

from models import PerformanceSample
from scoring import NO_SINGING_MESSAGE, analyze_performance


def _session(cents_per_frame, target: float = 440.0, note: str = "A4") -> list[PerformanceSample]:
    return [
        PerformanceSample(
            timestamp=i * 100,
            detectedFrequency=None if c is None else target * 2 ** (c / 1200),
            targetFrequency=target,
            targetNote=note,
        )
        for i, c in enumerate(cents_per_frame)
    ]


def test_no_voiced_frames_scores_zero():
    result = analyze_performance(_session([None] * 10))

    assert result.score == 0
    assert result.feedback.recommendations == (NO_SINGING_MESSAGE,)
    assert result.feedback.pitchAccuracy.score == 0
    assert result.feedback.timing.score == 0


def test_empty_input_scores_zero():
    assert analyze_performance([]).score == 0


def test_perfect_session():
    result = analyze_performance(_session([0.0] * 40))
    fb = result.feedback

    assert fb.pitchAccuracy.score == 100
    assert fb.pitchAccuracy.inTunePercentage == 100.0
    assert fb.stability.score == 100
    assert fb.stability.stableNotesPercentage == 100.0
    assert fb.timing.score == 90
    assert result.score == 98  # 50 + 30 + 18
    assert fb.recommendations[0].startswith("Excellent intonation")
    assert any(r.startswith("Amazing performance") for r in fb.recommendations)


def test_flat_session():
    result = analyze_performance(_session([-35.0] * 40))
    fb = result.feedback

    assert fb.pitchAccuracy.score == 30
    assert fb.pitchAccuracy.avgDeviationCents == pytest.approx(35.0)
    assert fb.pitchAccuracy.inTunePercentage == 0.0
    assert result.score == 63  # 15 + 30 + 18
    assert fb.recommendations[0].startswith("Work on your intonation")
    assert any("headphones" in r for r in fb.recommendations)


def test_wobbly_session():
    result = analyze_performance(_session([20.0, -20.0] * 20))
    fb = result.feedback

    assert fb.pitchAccuracy.score == 60
    assert fb.stability.avgJitter == pytest.approx(40.0)
    assert fb.stability.score == 0
    assert fb.stability.stableNotesPercentage == 0.0
    assert result.score == 48  # 30 + 0 + 18
    assert any("fluctuates" in r for r in fb.recommendations)
    assert any("wobble" in r for r in fb.recommendations)


def test_pitch_score_never_increases_with_deviation():
    scores = [analyze_performance(_session([float(c)] * 20)).feedback.pitchAccuracy.score for c in range(0, 70, 5)]
    assert scores == sorted(scores, reverse=True)
    assert scores[-1] == 0


def test_unvoiced_frames_are_ignored():
    mixed = _session([0.0, None, 0.0, None, 0.0])
    assert analyze_performance(mixed).score == 98


def test_accepts_raw_dicts():
    raw = [
        {"timestamp": i * 100, "detectedFrequency": 440.0, "targetFrequency": 440.0, "targetNote": "A4"}
        for i in range(10)
    ]
    assert analyze_performance(raw).score == 98


def test_exact_half_composite_rounds_up():
    # pitch 77, stability 0, timing 90 -> 38.5 + 0 + 18 = 56.5
    result = analyze_performance(_session([11.5, -11.5] * 20))

    assert result.feedback.pitchAccuracy.score == 77
    assert result.feedback.stability.score == 0
    assert result.score == 57
