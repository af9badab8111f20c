"""
Quick-feedback scoring for vocal practice sessions.

Works directly on the raw pitch-detector frames (no telemetry step) and
produces a 0-100 score across three dimensions:
  - Pitch accuracy  (50% weight)
  - Stability       (30% weight)
  - Timing          (20% weight)
plus a short list of textual recommendations.
"""

import logging
from typing import Iterable

import numpy as np

from models import (
    PerformanceAnalysis,
    PerformanceFeedback,
    PerformanceSample,
    PitchAccuracyFeedback,
    StabilityFeedback,
    TimingFeedback,
)
from pitch_math import (
    calculate_jitter,
    calculate_stability_percentage,
    frequency_to_cents,
    is_in_tune,
    round_half_up,
)
from telemetry import SampleLike, coerce_samples

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Thresholds and weights
# ---------------------------------------------------------------------------

WEIGHT_PITCH = 0.5
WEIGHT_STABILITY = 0.3
WEIGHT_TIMING = 0.2

# Pitch: every cent of average deviation costs 2 points (50+ cents = 0)
PITCH_PENALTY_PER_CENT = 2.0

# Stability: every cent of average jitter costs 5 points (20+ cents = 0)
STABILITY_PENALTY_PER_CENT = 5.0

# Timing is not measured yet: onset matching against the melody is still
# missing, so a fixed score is reported.
TIMING_PLACEHOLDER_SCORE = 90
TIMING_PLACEHOLDER_ON_TIME_PCT = 90.0

NO_SINGING_MESSAGE = "No valid singing detected"


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def analyze_performance(samples: Iterable[SampleLike]) -> PerformanceAnalysis:
    """Score a session and build its quick feedback.

    Returns:
        PerformanceAnalysis with an integer score (0-100) and a
        PerformanceFeedback.  Sessions without voiced frames score 0.
    """
    samples = coerce_samples(samples)
    valid = [s for s in samples if s.is_valid]

    if not valid:
        logger.warning("No valid frames in %d samples, returning empty feedback", len(samples))
        return PerformanceAnalysis(score=0, feedback=_empty_feedback(NO_SINGING_MESSAGE))

    pitch = _score_pitch(valid)
    stability = _score_stability(valid)
    timing = _score_timing(valid)

    score = round_half_up(
        pitch.score * WEIGHT_PITCH
        + stability.score * WEIGHT_STABILITY
        + timing.score * WEIGHT_TIMING
    )

    feedback = PerformanceFeedback(
        pitchAccuracy=pitch,
        stability=stability,
        timing=timing,
        recommendations=tuple(_recommendations(pitch, stability, timing)),
    )
    logger.info(
        "Scored performance: overall=%d  pitch=%d  stability=%d  timing=%d",
        score,
        pitch.score,
        stability.score,
        timing.score,
    )
    return PerformanceAnalysis(score=score, feedback=feedback)


# ---------------------------------------------------------------------------
# Sub-scorers
# ---------------------------------------------------------------------------

def _score_pitch(valid: list[PerformanceSample]) -> PitchAccuracyFeedback:
    """Score pitch accuracy from the mean absolute cents deviation."""
    deviations = np.array(
        [abs(frequency_to_cents(s.detectedFrequency, s.targetFrequency)) for s in valid],
        dtype=float,
    )
    in_tune = sum(1 for s in valid if is_in_tune(s.detectedFrequency, s.targetFrequency))

    avg_dev = float(np.mean(deviations))
    score = max(0.0, 100.0 - avg_dev * PITCH_PENALTY_PER_CENT)
    return PitchAccuracyFeedback(
        score=round_half_up(score),
        avgDeviationCents=round_half_up(avg_dev, 1),
        inTunePercentage=round_half_up(in_tune / len(valid) * 100.0, 1),
    )


def _score_stability(valid: list[PerformanceSample]) -> StabilityFeedback:
    """Score stability from frame-to-frame jitter."""
    freqs = [s.detectedFrequency for s in valid]
    jitter = calculate_jitter(freqs)
    score = max(0.0, 100.0 - jitter * STABILITY_PENALTY_PER_CENT)
    return StabilityFeedback(
        score=round_half_up(score),
        avgJitter=round_half_up(jitter, 1),
        stableNotesPercentage=round_half_up(calculate_stability_percentage(freqs), 1),
    )


def _score_timing(valid: list[PerformanceSample]) -> TimingFeedback:
    return TimingFeedback(
        score=TIMING_PLACEHOLDER_SCORE,
        avgLatency=0.0,
        onTimePercentage=TIMING_PLACEHOLDER_ON_TIME_PCT,
    )


# ---------------------------------------------------------------------------
# Recommendations
# ---------------------------------------------------------------------------

def _recommendations(
    pitch: PitchAccuracyFeedback,
    stability: StabilityFeedback,
    timing: TimingFeedback,
) -> list[str]:
    tips: list[str] = []

    if pitch.score < 50:
        tips.append("Work on your intonation. Try singing slower and listening closely to the melody.")
    elif pitch.score < 75:
        tips.append("Good intonation, but there is room to improve. Practise with scales.")
    else:
        tips.append("Excellent intonation! Your ear is very precise.")

    if pitch.avgDeviationCents > 30:
        tips.append("Your notes are slightly out of tune. Use headphones to hear yourself better.")

    if stability.score < 60:
        tips.append("Your voice fluctuates too much. Breathe deeply and sustain notes with more control.")
    elif stability.score > 85:
        tips.append("Excellent vocal stability! You hold your notes firmly.")

    if stability.avgJitter > 15:
        tips.append("Work on sustaining notes without excessive wobble.")

    if timing.score < 70:
        tips.append("Work on your timing. Practise with a metronome.")

    if pitch.score > 80 and stability.score > 80:
        tips.append("Amazing performance! You are ready for more challenging songs.")

    return tips


def _empty_feedback(reason: str) -> PerformanceFeedback:
    return PerformanceFeedback(
        pitchAccuracy=PitchAccuracyFeedback(score=0, avgDeviationCents=0.0, inTunePercentage=0.0),
        stability=StabilityFeedback(score=0, avgJitter=0.0, stableNotesPercentage=0.0),
        timing=TimingFeedback(score=0, avgLatency=0.0, onTimePercentage=0.0),
        recommendations=(reason,),
    )
