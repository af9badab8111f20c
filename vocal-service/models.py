"""
Value types shared by the telemetry, diagnosis and scoring stages.

All models are frozen pydantic models whose field names match the JSON
shape the capture and persistence layers already exchange (camelCase).
"""

import math
from enum import Enum
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

# Target-note placeholders sent by the capture layer when no melody note is active
SENTINEL_NOTES = frozenset({"N/A", "-", ""})
NOT_AVAILABLE = "N/A"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


# ---------------------------------------------------------------------------
# Input
# ---------------------------------------------------------------------------


class PerformanceSample(_Frozen):
    """One pitch-detector frame (~100 ms) captured during a session."""

    timestamp: int = Field(
        ge=0,
        validation_alias=AliasChoices("timestamp", "timestampMs"),
        description="Milliseconds since the recording started",
    )
    detectedFrequency: Optional[float] = None
    targetFrequency: float = Field(gt=0)
    targetNote: str = Field(
        min_length=1,
        validation_alias=AliasChoices("targetNote", "targetNoteName"),
    )

    @property
    def is_valid(self) -> bool:
        """True when the detector reported a voiced pitch for this frame."""
        f = self.detectedFrequency
        return f is not None and math.isfinite(f) and f > 0

    @property
    def has_target_note(self) -> bool:
        return self.targetNote not in SENTINEL_NOTES


# ---------------------------------------------------------------------------
# Telemetry
# ---------------------------------------------------------------------------


class Severity(str, Enum):
    MILD = "mild"
    MODERATE = "moderate"
    SEVERE = "severe"


class AffectedRange(str, Enum):
    LOW = "low"
    MID = "mid"
    HIGH = "high"
    FULL = "full"


class RangeCoverage(_Frozen):
    notesMissed: tuple[str, ...] = ()
    notesMissedHigh: int = 0
    notesMissedLow: int = 0
    notesAchieved: tuple[str, ...] = ()
    lowestNote: str = NOT_AVAILABLE
    highestNote: str = NOT_AVAILABLE
    comfortableRange: tuple[str, str] = (NOT_AVAILABLE, NOT_AVAILABLE)


class SessionTelemetry(_Frozen):
    """Quantitative metrics for one finished singing session."""

    # Pitch (cents, + = sharp, - = flat)
    pitchDeviationAverage: float = 0.0
    pitchDeviationStdDev: float = 0.0
    sharpNotesCount: int = 0
    flatNotesCount: int = 0

    # Rhythm (ms, - = early, + = late)
    rhythmicOffsetAverage: float = 0.0
    earlyNotesCount: int = 0
    lateNotesCount: int = 0

    # Stability / vibrato
    stabilityVariance: float = 0.0
    vibratoRate: float = 0.0
    vibratoDepth: float = 0.0

    rangeCoverage: RangeCoverage = Field(default_factory=RangeCoverage)

    # Durations (seconds)
    totalDuration: float = 0.0
    activeSingingTime: float = 0.0
    silenceTime: float = 0.0


# ---------------------------------------------------------------------------
# Diagnosis
# ---------------------------------------------------------------------------


class VocalDiagnosis(_Frozen):
    primaryIssue: str
    secondaryIssues: tuple[str, ...] = ()
    diagnosis: str
    prescription: tuple[str, ...] = ()
    severity: Severity
    affectedRange: AffectedRange


# ---------------------------------------------------------------------------
# Quick feedback
# ---------------------------------------------------------------------------


class PitchAccuracyFeedback(_Frozen):
    score: int
    avgDeviationCents: float
    inTunePercentage: float


class StabilityFeedback(_Frozen):
    score: int
    avgJitter: float
    stableNotesPercentage: float


class TimingFeedback(_Frozen):
    score: int
    avgLatency: float
    onTimePercentage: float


class PerformanceFeedback(_Frozen):
    pitchAccuracy: PitchAccuracyFeedback
    stability: StabilityFeedback
    timing: TimingFeedback
    recommendations: tuple[str, ...] = ()


class PerformanceAnalysis(_Frozen):
    score: int = Field(ge=0, le=100)
    feedback: PerformanceFeedback
