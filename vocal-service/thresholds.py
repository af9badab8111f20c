"""
Tunable thresholds for the telemetry and diagnosis stages.

Both configs are frozen dataclasses passed explicitly into
``compute_telemetry`` / ``diagnose``; the module-level DEFAULT_* instances
hold the production values.  Use ``dataclasses.replace`` to tune a copy.
"""

from dataclasses import dataclass, fields
from typing import Any, Optional

from models import Severity

# ---------------------------------------------------------------------------
# Telemetry
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TelemetryConfig:
    # Capture cadence assumed by duration and vibrato estimates
    sample_interval_s: float = 0.1

    # Pitch
    sharp_flat_cents: float = 25.0
    # Frames further than this from the target are treated as detector
    # errors (octave jumps) and left out of pitch metrics; None keeps them
    pitch_outlier_cents: Optional[float] = None

    # Rhythm (onset detection on the raw detected-frequency series)
    onset_energy_hz: float = 100.0
    timing_threshold_ms: float = 50.0

    # Vibrato
    vibrato_min_samples: int = 10
    vibrato_rate_floor_hz: float = 0.5
    vibrato_depth_floor_cents: float = 5.0

    # Range coverage
    range_min_samples: int = 3
    range_in_tune_cents: float = 25.0
    range_missed_below: float = 0.5
    range_comfortable_above: float = 0.8
    pitch_ordered_comfortable_range: bool = False

    # (low_hz, high_hz) of target notes treated as sung; None disables the filter
    vocal_range_hz: Optional[tuple[float, float]] = None


# ---------------------------------------------------------------------------
# Diagnosis
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Bands:
    """Mild / moderate / severe cut lines for one measured value."""

    mild: float
    moderate: float
    severe: float


@dataclass(frozen=True)
class DiagnosisConfig:
    pitch_bias_cents: float = 10.0
    pitch_bands: Bands = Bands(10.0, 20.0, 35.0)

    stability_variance: float = 15.0
    stability_bands: Bands = Bands(15.0, 30.0, 50.0)

    rhythm_offset_ms: float = 50.0
    rhythm_bands: Bands = Bands(50.0, 100.0, 200.0)

    vibrato_rate_hz: float = 6.5

    # Early entries must outnumber late ones by this factor
    anticipation_ratio: float = 1.5

    # (severity, weight) pairs; a tuple keeps the config hashable
    severity_weights: tuple[tuple[Severity, int], ...] = (
        (Severity.MILD, 10),
        (Severity.MODERATE, 50),
        (Severity.SEVERE, 100),
    )

    # Seeds the picker for the "excellent" headline when no rng is supplied
    seed: Optional[int] = 0

    def weight(self, severity: Severity) -> int:
        return dict(self.severity_weights)[severity]


DEFAULT_TELEMETRY_CONFIG = TelemetryConfig()
DEFAULT_DIAGNOSIS_CONFIG = DiagnosisConfig()


# ---------------------------------------------------------------------------
# JSON (de)serialisation for config files
# ---------------------------------------------------------------------------


def telemetry_config_from_dict(data: dict[str, Any]) -> TelemetryConfig:
    known = {f.name for f in fields(TelemetryConfig)}
    kwargs = {k: v for k, v in data.items() if k in known}
    if kwargs.get("vocal_range_hz") is not None:
        low, high = kwargs["vocal_range_hz"]
        kwargs["vocal_range_hz"] = (float(low), float(high))
    return TelemetryConfig(**kwargs)


def diagnosis_config_from_dict(data: dict[str, Any]) -> DiagnosisConfig:
    known = {f.name for f in fields(DiagnosisConfig)}
    kwargs: dict[str, Any] = {}
    for key, value in data.items():
        if key not in known:
            continue
        if key.endswith("_bands"):
            value = Bands(**value)
        elif key == "severity_weights":
            merged = dict(DEFAULT_DIAGNOSIS_CONFIG.severity_weights)
            merged.update({Severity(k): int(v) for k, v in value.items()})
            value = tuple(merged.items())
        kwargs[key] = value
    return DiagnosisConfig(**kwargs)


def config_to_dict(config: Any) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for f in fields(config):
        value = getattr(config, f.name)
        if isinstance(value, Bands):
            value = {"mild": value.mild, "moderate": value.moderate, "severe": value.severe}
        elif f.name == "severity_weights":
            value = {severity.value: weight for severity, weight in value}
        elif isinstance(value, tuple):
            value = list(value)
        out[f.name] = value
    return out
