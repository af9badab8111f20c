"""
Rule-based vocal diagnosis.

Evaluates a fixed table of independent heuristic rules against one
SessionTelemetry record, weights every triggered issue by severity and
picks the heaviest one as the primary diagnosis.  Everything else that
triggered is reported as a secondary issue.

Adding a rule means adding a Rule entry to RULES (and optionally a
template to TEMPLATES); the evaluation loop does not change.
"""

import logging
import random
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from models import AffectedRange, SessionTelemetry, Severity, VocalDiagnosis
from pitch_math import is_high_note, is_low_note
from thresholds import DEFAULT_DIAGNOSIS_CONFIG, Bands, DiagnosisConfig

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Issue:
    """A triggered rule, alive only between evaluation and ranking."""

    rule: str
    title: str
    diagnosis: str
    prescription: tuple[str, ...]
    severity: Severity
    weight: int
    affected_range: AffectedRange


@dataclass(frozen=True)
class Rule:
    id: str
    title: str
    diagnosis: str
    prescription: tuple[str, ...]
    triggered: Callable[[SessionTelemetry, DiagnosisConfig], bool]
    severity: Callable[[SessionTelemetry, DiagnosisConfig], Severity]
    affected_range: Callable[[SessionTelemetry], AffectedRange]
    template_id: Optional[str] = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def severity_for(value: float, bands: Bands) -> Severity:
    """Map a measured value onto mild / moderate / severe.

    Anything below the moderate line is mild; ``bands.mild`` only documents
    where the rule starts firing.
    """
    if value >= bands.severe:
        return Severity.SEVERE
    if value >= bands.moderate:
        return Severity.MODERATE
    return Severity.MILD


def detect_affected_range(missed_notes: Iterable[str]) -> AffectedRange:
    """Where in the voice the missed notes sit."""
    missed = list(missed_notes)
    has_low = any(is_low_note(n) for n in missed)
    has_high = any(is_high_note(n) for n in missed)
    if has_low and has_high:
        return AffectedRange.FULL
    if has_high:
        return AffectedRange.HIGH
    if has_low:
        return AffectedRange.LOW
    return AffectedRange.MID


def _fixed(severity: Severity) -> Callable[[SessionTelemetry, DiagnosisConfig], Severity]:
    return lambda t, c: severity


def _range_of(value: AffectedRange) -> Callable[[SessionTelemetry], AffectedRange]:
    return lambda t: value


def _missed_range(t: SessionTelemetry) -> AffectedRange:
    return detect_affected_range(t.rangeCoverage.notesMissed)


# ---------------------------------------------------------------------------
# Rule table
# ---------------------------------------------------------------------------

RULES: tuple[Rule, ...] = (
    Rule(
        id="hypo_pitch",
        title="Systematic Flat Singing",
        diagnosis=(
            "Persistent tendency to sing below the target pitch. The ear hears the "
            "note but the larynx does not reach the target frequency."
        ),
        prescription=(
            "Exercise: ascending glissando from your comfortable note upwards",
            "Play the reference note on a piano, listen, then sing it",
            "Record yourself and compare against the original track",
            "Think the note slightly higher before you sing it",
        ),
        triggered=lambda t, c: t.pitchDeviationAverage < -c.pitch_bias_cents,
        severity=lambda t, c: severity_for(abs(t.pitchDeviationAverage), c.pitch_bands),
        affected_range=_missed_range,
        template_id="hypo_pitch",
    ),
    Rule(
        id="hyper_pitch",
        title="Systematic Sharp Singing",
        diagnosis=(
            "Tendency to sing above the target pitch. Common in singers with a lot "
            "of energy or laryngeal tension."
        ),
        prescription=(
            "Exercise: controlled descent, consciously lowering a half step",
            "Relax jaw and neck before singing",
            "Watch a visual tuner to monitor your pitch in real time",
            "Think of releasing the note instead of pushing it",
        ),
        triggered=lambda t, c: t.pitchDeviationAverage > c.pitch_bias_cents,
        severity=lambda t, c: severity_for(t.pitchDeviationAverage, c.pitch_bands),
        affected_range=_missed_range,
        template_id="hyper_pitch",
    ),
    Rule(
        id="instability",
        title="Vocal Instability",
        diagnosis=(
            "The voice fluctuates inconsistently, pointing at poor breath control "
            "or insufficient respiratory support."
        ),
        prescription=(
            "Diaphragmatic breathing: inhale 4s, hold 4s, exhale 8s (without singing)",
            "Sustain long notes against a visual tuner aiming for a flat line",
            "Release neck and shoulder tension; stability comes from the diaphragm",
            "Start with 5 seconds per note and build up to 10-15 seconds",
        ),
        triggered=lambda t, c: t.stabilityVariance > c.stability_variance,
        severity=lambda t, c: severity_for(t.stabilityVariance, c.stability_bands),
        affected_range=_range_of(AffectedRange.FULL),
        template_id="instability",
    ),
    Rule(
        id="timing_inconsistency",
        title="Irregular Timing",
        diagnosis=(
            "Entries land away from the beat, sometimes early and sometimes late. "
            "The tempo is not yet internalised."
        ),
        prescription=(
            "Clap the rhythm with a metronome before singing it",
            "Mark the strong beats in the lyrics",
            "Split the song into sections and practise each one separately",
            "Repeat problem sections until the timing feels natural",
        ),
        triggered=lambda t, c: abs(t.rhythmicOffsetAverage) > c.rhythm_offset_ms,
        severity=lambda t, c: severity_for(abs(t.rhythmicOffsetAverage), c.rhythm_bands),
        affected_range=_range_of(AffectedRange.FULL),
        template_id="timing_inconsistency",
    ),
    Rule(
        id="excessive_vibrato",
        title="Excessive Tremolo",
        diagnosis=(
            "Vibrato is too fast and can sound nervous or uncontrolled. It may "
            "indicate laryngeal tension."
        ),
        prescription=(
            "Exercise: flat note, sustaining a pitch with no oscillation",
            "Consciously relax the throat while singing",
            "Focus on a steady, controlled airflow",
            "Practise very slow long notes (8+ seconds)",
        ),
        triggered=lambda t, c: t.vibratoRate > c.vibrato_rate_hz,
        severity=_fixed(Severity.MILD),
        affected_range=_range_of(AffectedRange.FULL),
        template_id="excessive_vibrato",
    ),
    Rule(
        id="high_note_difficulty",
        title="Weak Upper Register",
        diagnosis="Difficulty reaching high notes without tension or loss of quality.",
        prescription=(
            "Head voice training: soft 'oo' on high notes",
            "Use less air with more controlled subglottic pressure",
            "Ascending scales in mixed voice",
            "Do not push: high notes need release, not force",
        ),
        triggered=lambda t, c: any(is_high_note(n) for n in t.rangeCoverage.notesMissed),
        severity=_fixed(Severity.MODERATE),
        affected_range=_range_of(AffectedRange.HIGH),
        template_id="high_note_difficulty",
    ),
    Rule(
        id="low_note_difficulty",
        title="Weak Lower Register",
        diagnosis="Difficulty producing low notes with clarity and power.",
        prescription=(
            "Chest voice slides from the middle of the range downwards",
            "Project from the chest, not the throat",
            "Slow descending scales",
            "Find your most comfortable low note and extend from there",
        ),
        triggered=lambda t, c: any(is_low_note(n) for n in t.rangeCoverage.notesMissed),
        severity=_fixed(Severity.MODERATE),
        affected_range=_range_of(AffectedRange.LOW),
        template_id="low_note_difficulty",
    ),
    Rule(
        id="excessive_anticipation",
        title="Early Entries",
        diagnosis=(
            "Tendency to start notes before the beat. Common in anxious or very "
            "experienced singers."
        ),
        prescription=(
            "Count internally before every phrase",
            "Breathe in the rest before each entry",
            "Listen more closely to the instrumental guide",
            "Relaxation exercises before singing",
        ),
        triggered=lambda t, c: t.earlyNotesCount > t.lateNotesCount * c.anticipation_ratio,
        severity=_fixed(Severity.MILD),
        affected_range=_range_of(AffectedRange.FULL),
    ),
)

TEMPLATES: dict[str, str] = {
    "hypo_pitch": (
        "On average you sang {abs_pitch_bias:.1f} cents below the target "
        "({flat_count} flat frames). The ear hears the note but the larynx "
        "does not reach the target frequency."
    ),
    "hyper_pitch": (
        "On average you sang {abs_pitch_bias:.1f} cents above the target "
        "({sharp_count} sharp frames), typical of pushing or laryngeal tension."
    ),
    "instability": (
        "Pitch variance reached {stability_variance:.1f}, well above a steady "
        "tone. Breath support is not holding the note in place."
    ),
    "timing_inconsistency": (
        "Your entries were off by {abs_rhythm_offset:.0f} ms on average "
        "({early_count} early, {late_count} late)."
    ),
    "excessive_vibrato": (
        "Vibrato measured {vibrato_rate:.1f} Hz at {vibrato_depth:.1f} cents; "
        "a relaxed vibrato sits around 5-6 Hz."
    ),
    "high_note_difficulty": (
        "High notes were missed ({missed_notes}). The upper register needs "
        "more release and support."
    ),
    "low_note_difficulty": (
        "Low notes were missed ({missed_notes}). The lower register lacks "
        "clarity and power."
    ),
}

# ---------------------------------------------------------------------------
# No issues found
# ---------------------------------------------------------------------------

EXCELLENT_HEADLINES: tuple[str, ...] = (
    "Optimal Vocal Health",
    "Excellent Performance!",
    "Outstanding Technique",
)

EXCELLENT_DIAGNOSIS = (
    "No technical issues detected. Pitch, stability, timing and range are all "
    "within healthy limits for this session."
)

EXCELLENT_PRESCRIPTION: tuple[str, ...] = (
    "Keep practising regularly to maintain this level",
    "Warm up for 5-10 minutes before every session",
    "Challenge yourself with songs that widen your range",
    "Work on expression, dynamics and phrasing",
)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def evaluate_rules(
    telemetry: SessionTelemetry,
    config: DiagnosisConfig = DEFAULT_DIAGNOSIS_CONFIG,
    rules: Iterable[Rule] = RULES,
) -> list[Issue]:
    """Run every rule once and return the triggered issues in table order."""
    issues: list[Issue] = []
    for rule in rules:
        if not rule.triggered(telemetry, config):
            continue
        severity = rule.severity(telemetry, config)
        issues.append(Issue(
            rule=rule.id,
            title=rule.title,
            diagnosis=rule.diagnosis,
            prescription=rule.prescription,
            severity=severity,
            weight=config.weight(severity),
            affected_range=rule.affected_range(telemetry),
        ))
    return issues


def diagnose(
    telemetry: SessionTelemetry,
    config: DiagnosisConfig = DEFAULT_DIAGNOSIS_CONFIG,
    rng: Optional[random.Random] = None,
    rules: Iterable[Rule] = RULES,
) -> VocalDiagnosis:
    """Pick the primary vocal issue for a session.

    Args:
        telemetry: Metrics from compute_telemetry().
        config:    Rule thresholds and severity weights.
        rng:       Picks the headline when nothing triggers; defaults to
                   random.Random(config.seed) so output is reproducible.
        rules:     Rule table, RULES unless testing a custom set.

    Returns:
        VocalDiagnosis.  Never raises for well-formed telemetry.
    """
    rules = tuple(rules)
    issues = evaluate_rules(telemetry, config, rules)

    if not issues:
        rng = rng if rng is not None else random.Random(config.seed)
        result = VocalDiagnosis(
            primaryIssue=rng.choice(EXCELLENT_HEADLINES),
            secondaryIssues=(),
            diagnosis=EXCELLENT_DIAGNOSIS,
            prescription=EXCELLENT_PRESCRIPTION,
            severity=Severity.MILD,
            affectedRange=AffectedRange.FULL,
        )
        logger.info("Diagnosis: no issues triggered (%s)", result.primaryIssue)
        return result

    # Stable sort: equal weights keep rule-table order
    ranked = sorted(issues, key=lambda i: i.weight, reverse=True)
    primary = ranked[0]
    rule_by_id = {r.id: r for r in rules}

    result = VocalDiagnosis(
        primaryIssue=primary.title,
        secondaryIssues=tuple(i.diagnosis for i in ranked[1:]),
        diagnosis=_render_diagnosis(primary, rule_by_id.get(primary.rule), telemetry),
        prescription=primary.prescription,
        severity=primary.severity,
        affectedRange=primary.affected_range,
    )
    logger.info(
        "Diagnosis: primary=%s severity=%s range=%s secondary=%d",
        primary.rule,
        primary.severity.value,
        primary.affected_range.value,
        len(ranked) - 1,
    )
    return result


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

def _template_context(t: SessionTelemetry) -> dict:
    missed = t.rangeCoverage.notesMissed
    return {
        "pitch_bias": t.pitchDeviationAverage,
        "abs_pitch_bias": abs(t.pitchDeviationAverage),
        "pitch_std_dev": t.pitchDeviationStdDev,
        "sharp_count": t.sharpNotesCount,
        "flat_count": t.flatNotesCount,
        "rhythm_offset": t.rhythmicOffsetAverage,
        "abs_rhythm_offset": abs(t.rhythmicOffsetAverage),
        "early_count": t.earlyNotesCount,
        "late_count": t.lateNotesCount,
        "stability_variance": t.stabilityVariance,
        "vibrato_rate": t.vibratoRate,
        "vibrato_depth": t.vibratoDepth,
        "missed_notes": ", ".join(missed) if missed else "none",
    }


def _render_diagnosis(issue: Issue, rule: Optional[Rule], telemetry: SessionTelemetry) -> str:
    template_id = rule.template_id if rule is not None else None
    template = TEMPLATES.get(template_id) if template_id else None
    if template is None:
        return issue.diagnosis
    return template.format(**_template_context(telemetry))
