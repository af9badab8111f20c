"""
Session telemetry for vocal performance analysis.

Turns the raw pitch-detector frames of one finished session into a single
SessionTelemetry record:
  - Pitch bias / spread against the melody's target notes
  - Onset timing
  - Stability and vibrato
  - Range coverage (missed / achieved notes, comfortable range)
  - Singing vs. silence time

Frames must arrive in capture order; adjacency-based statistics (onsets,
vibrato) are computed on the sequence exactly as given.
"""

import logging
import math
from typing import Iterable, Union

import numpy as np

from models import (
    PerformanceSample,
    RangeCoverage,
    SessionTelemetry,
)
from pitch_math import (
    frequency_to_cents,
    frequency_to_note_name,
    is_high_note,
    is_low_note,
    note_to_frequency,
    round_half_up,
)
from thresholds import DEFAULT_TELEMETRY_CONFIG, TelemetryConfig

logger = logging.getLogger(__name__)

SampleLike = Union[PerformanceSample, dict]


def _round1(value: float) -> float:
    return round_half_up(value, 1)


def coerce_samples(samples: Iterable[SampleLike]) -> list[PerformanceSample]:
    """Validate raw dicts into PerformanceSample; pass models through untouched."""
    return [
        s if isinstance(s, PerformanceSample) else PerformanceSample.model_validate(s)
        for s in samples
    ]


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def empty_telemetry(duration_s: float) -> SessionTelemetry:
    """Telemetry for a session without a single voiced frame."""
    return SessionTelemetry(
        totalDuration=duration_s,
        activeSingingTime=0.0,
        silenceTime=duration_s,
    )


def compute_telemetry(
    samples: Iterable[SampleLike],
    song_duration_s: float,
    config: TelemetryConfig = DEFAULT_TELEMETRY_CONFIG,
) -> SessionTelemetry:
    """Compute the full telemetry record for one session.

    Args:
        samples:         Pitch-detector frames in capture order.
        song_duration_s: Nominal duration of the backing track, in seconds.
        config:          Thresholds; see TelemetryConfig.

    Returns:
        SessionTelemetry.  Sessions with no voiced frames yield the empty
        telemetry (all metrics 0, range fields 'N/A', silence = duration).
    """
    samples = coerce_samples(samples)

    if song_duration_s is None or not math.isfinite(song_duration_s) or song_duration_s <= 0:
        logger.warning("Invalid song duration %r, falling back to 1.0s", song_duration_s)
        song_duration_s = 1.0

    voiced = [s for s in samples if s.is_valid]
    valid = voiced
    if config.vocal_range_hz is not None:
        low_hz, high_hz = config.vocal_range_hz
        valid = [s for s in voiced if low_hz <= s.targetFrequency <= high_hz]
        if len(valid) < len(voiced):
            logger.info(
                "Ignoring %d frames with target outside vocal range %.0f-%.0f Hz",
                len(voiced) - len(valid), low_hz, high_hz,
            )

    logger.info(
        "Computing telemetry: frames=%d voiced=%d analysed=%d duration=%.1fs",
        len(samples), len(voiced), len(valid), song_duration_s,
    )

    if not valid:
        logger.warning("No valid frames, returning empty telemetry")
        return empty_telemetry(song_duration_s)

    freqs = np.array([s.detectedFrequency for s in valid], dtype=float)

    pitch = _pitch_metrics(valid, config)
    rhythm = _rhythm_metrics(samples, config)
    stability = _stability_metrics(freqs, config)
    coverage = _range_coverage(valid, config)
    durations = _duration_metrics(len(voiced), song_duration_s, config)

    telemetry = SessionTelemetry(
        **pitch,
        **rhythm,
        **stability,
        rangeCoverage=coverage,
        **durations,
    )
    logger.info(
        "Telemetry: bias=%.1fc sd=%.1fc sharp=%d flat=%d var=%.1f vibrato=%.1fHz/%.1fc missed=%d",
        telemetry.pitchDeviationAverage,
        telemetry.pitchDeviationStdDev,
        telemetry.sharpNotesCount,
        telemetry.flatNotesCount,
        telemetry.stabilityVariance,
        telemetry.vibratoRate,
        telemetry.vibratoDepth,
        len(coverage.notesMissed),
    )
    return telemetry


# ---------------------------------------------------------------------------
# Pitch
# ---------------------------------------------------------------------------

def _pitch_metrics(valid: list[PerformanceSample], config: TelemetryConfig) -> dict:
    """Signed cents bias, population std-dev and sharp/flat frame counts."""
    cents = np.array(
        [frequency_to_cents(s.detectedFrequency, s.targetFrequency) for s in valid],
        dtype=float,
    )
    if config.pitch_outlier_cents is not None:
        keep = np.abs(cents) <= config.pitch_outlier_cents
        outliers = int(np.sum(~keep))
        if outliers:
            logger.info(
                "Filtered %d pitch outliers (>%.0f cents)", outliers, config.pitch_outlier_cents
            )
        cents = cents[keep]
        if cents.size == 0:
            logger.warning("No pitch frames left after outlier filtering")
            return {
                "pitchDeviationAverage": 0.0,
                "pitchDeviationStdDev": 0.0,
                "sharpNotesCount": 0,
                "flatNotesCount": 0,
            }

    threshold = config.sharp_flat_cents
    return {
        "pitchDeviationAverage": _round1(np.mean(cents)),
        "pitchDeviationStdDev": _round1(np.std(cents)),
        "sharpNotesCount": int(np.sum(cents > threshold)),
        "flatNotesCount": int(np.sum(cents < -threshold)),
    }


# ---------------------------------------------------------------------------
# Rhythm
# ---------------------------------------------------------------------------

def _detect_onsets(samples: list[PerformanceSample], config: TelemetryConfig) -> list[int]:
    """Indices where the detected frequency rises through the energy threshold.

    The detected frequency stands in for energy: a frame at or above
    ``onset_energy_hz`` counts as sung.  A note ends as soon as a frame
    drops back below the threshold.
    """
    threshold = config.onset_energy_hz
    energies = [s.detectedFrequency if s.is_valid else 0.0 for s in samples]

    onsets: list[int] = []
    in_note = False
    for i in range(1, len(energies)):
        prev_e, cur_e = energies[i - 1], energies[i]
        if not in_note and prev_e < threshold <= cur_e:
            in_note = True
            onsets.append(i)
        if in_note and cur_e < threshold:
            in_note = False
    return onsets


def _rhythm_metrics(samples: list[PerformanceSample], config: TelemetryConfig) -> dict:
    """Average onset offset (ms) and early/late entry counts.

    The expected onset time is taken from the onset frame itself, so every
    offset is 0 until the melody's note-start times are fed in here.
    """
    onsets = _detect_onsets(samples, config)

    offsets: list[float] = []
    early = late = 0
    for idx in onsets:
        expected_ms = samples[idx].timestamp
        actual_ms = samples[idx].timestamp
        offset = actual_ms - expected_ms
        offsets.append(offset)
        if offset < -config.timing_threshold_ms:
            early += 1
        if offset > config.timing_threshold_ms:
            late += 1

    logger.debug("Detected %d onsets", len(onsets))
    return {
        "rhythmicOffsetAverage": float(round_half_up(np.mean(offsets))) if offsets else 0.0,
        "earlyNotesCount": early,
        "lateNotesCount": late,
    }


# ---------------------------------------------------------------------------
# Stability & vibrato
# ---------------------------------------------------------------------------

def _detect_vibrato(freqs: np.ndarray, config: TelemetryConfig) -> tuple[float, float]:
    """Estimate vibrato (rate Hz, depth cents) from direction changes of the contour.

    Every peak and every valley of the contour flips the sign of its first
    difference; one vibrato cycle contains one of each.
    """
    freqs = freqs[np.isfinite(freqs) & (freqs > 0)]
    if freqs.size < config.vibrato_min_samples:
        return 0.0, 0.0

    signs = np.sign(np.diff(freqs))
    crossings = int(np.sum(signs[1:] * signs[:-1] < 0))
    total_s = freqs.size * config.sample_interval_s
    rate = crossings / (2 * total_s)

    cents_from_mean = 1200.0 * np.log2(freqs / np.mean(freqs))
    depth = float(np.sqrt(np.mean(np.square(cents_from_mean))))

    if rate < config.vibrato_rate_floor_hz:
        rate = 0.0
    if depth < config.vibrato_depth_floor_cents:
        depth = 0.0
    return rate, depth


def _stability_metrics(freqs: np.ndarray, config: TelemetryConfig) -> dict:
    rate, depth = _detect_vibrato(freqs, config)
    return {
        "stabilityVariance": _round1(np.var(freqs)),
        "vibratoRate": _round1(rate),
        "vibratoDepth": _round1(depth),
    }


# ---------------------------------------------------------------------------
# Range coverage
# ---------------------------------------------------------------------------

def _range_coverage(valid: list[PerformanceSample], config: TelemetryConfig) -> RangeCoverage:
    """Classify each target note as missed / achieved and find the sung range."""
    points = [s for s in valid if s.has_target_note]
    if not points:
        return RangeCoverage()

    # note -> [total, accurate]; dict keeps first-seen order
    note_stats: dict[str, list[int]] = {}
    for s in points:
        stats = note_stats.setdefault(s.targetNote, [0, 0])
        stats[0] += 1
        cents = abs(frequency_to_cents(s.detectedFrequency, s.targetFrequency))
        if cents <= config.range_in_tune_cents:
            stats[1] += 1

    missed: list[str] = []
    achieved: list[str] = []
    comfortable: list[str] = []
    for note, (total, accurate) in note_stats.items():
        if total < config.range_min_samples:
            continue
        accuracy = accurate / total
        if accuracy < config.range_missed_below:
            missed.append(note)
        else:
            achieved.append(note)
        if accuracy > config.range_comfortable_above:
            comfortable.append(note)

    detected = [s.detectedFrequency for s in points]
    lowest = frequency_to_note_name(min(detected))
    highest = frequency_to_note_name(max(detected))

    if config.pitch_ordered_comfortable_range:
        comfortable.sort(key=note_to_frequency)
    else:
        comfortable.sort()
    comfortable_range = (
        comfortable[0] if comfortable else lowest,
        comfortable[-1] if comfortable else highest,
    )

    return RangeCoverage(
        notesMissed=tuple(missed),
        notesMissedHigh=sum(1 for n in missed if is_high_note(n)),
        notesMissedLow=sum(1 for n in missed if is_low_note(n)),
        notesAchieved=tuple(achieved),
        lowestNote=lowest,
        highestNote=highest,
        comfortableRange=comfortable_range,
    )


# ---------------------------------------------------------------------------
# Durations
# ---------------------------------------------------------------------------

def _duration_metrics(voiced_frames: int, song_duration_s: float, config: TelemetryConfig) -> dict:
    singing_s = voiced_frames * config.sample_interval_s
    return {
        "totalDuration": _round1(song_duration_s),
        "activeSingingTime": _round1(singing_s),
        "silenceTime": max(0.0, _round1(song_duration_s - singing_s)),
    }
