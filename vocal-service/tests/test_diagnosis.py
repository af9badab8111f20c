import dataclasses
import random

import pytest

from diagnosis import (
    EXCELLENT_DIAGNOSIS,
    EXCELLENT_HEADLINES,
    RULES,
    Rule,
    detect_affected_range,
    diagnose,
    evaluate_rules,
    severity_for,
)
from models import AffectedRange, RangeCoverage, SessionTelemetry, Severity
from thresholds import DEFAULT_DIAGNOSIS_CONFIG, Bands


def _telemetry(missed: tuple[str, ...] = (), **overrides) -> SessionTelemetry:
    return SessionTelemetry(
        totalDuration=30.0,
        activeSingingTime=20.0,
        silenceTime=10.0,
        rangeCoverage=RangeCoverage(notesMissed=missed),
        **overrides,
    )


def _rule(rule_id: str) -> Rule:
    return next(r for r in RULES if r.id == rule_id)


def test_rule_table_order():
    assert [r.id for r in RULES] == [
        "hypo_pitch",
        "hyper_pitch",
        "instability",
        "timing_inconsistency",
        "excessive_vibrato",
        "high_note_difficulty",
        "low_note_difficulty",
        "excessive_anticipation",
    ]


def test_every_rule_has_four_prescription_steps():
    for rule in RULES:
        assert rule.title
        assert len(rule.prescription) == 4


@pytest.mark.parametrize(
    "value, expected",
    [
        (5.0, Severity.MILD),
        (12.0, Severity.MILD),
        (20.0, Severity.MODERATE),
        (34.9, Severity.MODERATE),
        (35.0, Severity.SEVERE),
        (90.0, Severity.SEVERE),
    ],
)
def test_severity_for(value, expected):
    assert severity_for(value, Bands(10.0, 20.0, 35.0)) == expected


@pytest.mark.parametrize(
    "missed, expected",
    [
        ((), AffectedRange.MID),
        (("G4", "A4"), AffectedRange.MID),
        (("C3",), AffectedRange.LOW),
        (("C5", "G4"), AffectedRange.HIGH),
        (("E2", "C6"), AffectedRange.FULL),
        (("N/A",), AffectedRange.LOW),
    ],
)
def test_detect_affected_range(missed, expected):
    assert detect_affected_range(missed) == expected


def test_no_issues_returns_excellent_with_seeded_rng():
    t = _telemetry()

    d = diagnose(t, rng=random.Random(3))

    assert d.primaryIssue == random.Random(3).choice(EXCELLENT_HEADLINES)
    assert d.secondaryIssues == ()
    assert d.diagnosis == EXCELLENT_DIAGNOSIS
    assert d.severity == Severity.MILD
    assert d.affectedRange == AffectedRange.FULL
    assert len(d.prescription) == 4


def test_default_rng_is_reproducible():
    t = _telemetry()
    assert diagnose(t) == diagnose(t)
    assert diagnose(t).primaryIssue in EXCELLENT_HEADLINES


@pytest.mark.parametrize(
    "bias, triggered, severity",
    [
        (-10.0, False, None),
        (-15.0, True, Severity.MILD),
        (-30.0, True, Severity.MODERATE),
        (-40.0, True, Severity.SEVERE),
    ],
)
def test_flat_rule(bias, triggered, severity):
    d = diagnose(_telemetry(pitchDeviationAverage=bias, flatNotesCount=40))
    if not triggered:
        assert d.primaryIssue in EXCELLENT_HEADLINES
        return
    assert d.primaryIssue == "Systematic Flat Singing"
    assert d.severity == severity
    assert f"{abs(bias):.1f} cents below" in d.diagnosis
    assert "40 flat frames" in d.diagnosis


def test_sharp_rule():
    d = diagnose(_telemetry(pitchDeviationAverage=25.0, sharpNotesCount=12))
    assert d.primaryIssue == "Systematic Sharp Singing"
    assert d.severity == Severity.MODERATE
    assert "25.0 cents above" in d.diagnosis


def test_pitch_rule_affected_range_follows_missed_notes():
    d = diagnose(_telemetry(missed=("C3", "C6"), pitchDeviationAverage=-40.0))
    assert d.primaryIssue == "Systematic Flat Singing"
    assert d.affectedRange == AffectedRange.FULL


def test_timing_rule_uses_absolute_offset():
    late = diagnose(_telemetry(rhythmicOffsetAverage=120.0))
    assert late.primaryIssue == "Irregular Timing"
    assert late.severity == Severity.MODERATE

    early = diagnose(_telemetry(rhythmicOffsetAverage=-250.0))
    assert early.primaryIssue == "Irregular Timing"
    assert early.severity == Severity.SEVERE
    assert "250 ms" in early.diagnosis


def test_vibrato_rule():
    d = diagnose(_telemetry(vibratoRate=7.0, vibratoDepth=30.0))
    assert d.primaryIssue == "Excessive Tremolo"
    assert d.severity == Severity.MILD
    assert "7.0 Hz" in d.diagnosis

    assert diagnose(_telemetry(vibratoRate=6.5)).primaryIssue in EXCELLENT_HEADLINES


def test_anticipation_rule_falls_back_to_generic_text():
    assert diagnose(_telemetry(earlyNotesCount=3, lateNotesCount=2)).primaryIssue in EXCELLENT_HEADLINES

    d = diagnose(_telemetry(earlyNotesCount=4, lateNotesCount=2))
    assert d.primaryIssue == "Early Entries"
    assert d.diagnosis == _rule("excessive_anticipation").diagnosis


def test_severe_outranks_mild_regardless_of_table_order():
    # flat (mild) sits before instability (severe) in the table
    d = diagnose(_telemetry(pitchDeviationAverage=-12.0, stabilityVariance=60.0))

    assert d.primaryIssue == "Vocal Instability"
    assert d.severity == Severity.SEVERE
    assert d.secondaryIssues == (_rule("hypo_pitch").diagnosis,)


def test_equal_weights_keep_table_order():
    d = diagnose(_telemetry(missed=("C3", "C6")))

    assert d.primaryIssue == "Weak Upper Register"
    assert d.severity == Severity.MODERATE
    assert d.affectedRange == AffectedRange.HIGH
    assert "C3, C6" in d.diagnosis
    assert d.secondaryIssues == (_rule("low_note_difficulty").diagnosis,)


def test_all_triggered_issues_are_reported():
    t = _telemetry(
        missed=("C3",),
        pitchDeviationAverage=-40.0,
        stabilityVariance=20.0,
        vibratoRate=8.0,
        earlyNotesCount=5,
    )
    issues = evaluate_rules(t)
    assert [i.rule for i in issues] == [
        "hypo_pitch",
        "instability",
        "excessive_vibrato",
        "low_note_difficulty",
        "excessive_anticipation",
    ]

    d = diagnose(t)
    assert d.primaryIssue == "Systematic Flat Singing"
    assert len(d.secondaryIssues) == 4
    # moderate low-register issue ranks ahead of the mild ones
    assert d.secondaryIssues[0] == _rule("low_note_difficulty").diagnosis


def test_custom_thresholds():
    config = dataclasses.replace(DEFAULT_DIAGNOSIS_CONFIG, pitch_bias_cents=40.0)
    d = diagnose(_telemetry(pitchDeviationAverage=-30.0), config)
    assert d.primaryIssue in EXCELLENT_HEADLINES


def test_custom_rule_table():
    silence = Rule(
        id="mostly_silent",
        title="Mostly Silent",
        diagnosis="Very little singing was captured.",
        prescription=("Sing along with the whole track",),
        triggered=lambda t, c: t.activeSingingTime < t.totalDuration * 0.8,
        severity=lambda t, c: Severity.SEVERE,
        affected_range=lambda t: AffectedRange.FULL,
    )
    d = diagnose(_telemetry(pitchDeviationAverage=-15.0), rules=RULES + (silence,))

    assert d.primaryIssue == "Mostly Silent"
    assert d.diagnosis == "Very little singing was captured."
    assert d.secondaryIssues == (_rule("hypo_pitch").diagnosis,)
