import dataclasses

import pytest

from models import Severity
from thresholds import (
    DEFAULT_DIAGNOSIS_CONFIG,
    DiagnosisConfig,
    config_to_dict,
    diagnosis_config_from_dict,
    telemetry_config_from_dict,
)


def test_diagnosis_config_is_hashable_and_immutable():
    assert hash(DEFAULT_DIAGNOSIS_CONFIG) == hash(DiagnosisConfig())
    with pytest.raises(dataclasses.FrozenInstanceError):
        DEFAULT_DIAGNOSIS_CONFIG.severity_weights = ()


def test_default_severity_weights():
    assert DEFAULT_DIAGNOSIS_CONFIG.weight(Severity.MILD) == 10
    assert DEFAULT_DIAGNOSIS_CONFIG.weight(Severity.MODERATE) == 50
    assert DEFAULT_DIAGNOSIS_CONFIG.weight(Severity.SEVERE) == 100


def test_partial_weight_override_keeps_other_weights():
    config = diagnosis_config_from_dict({"severity_weights": {"mild": 5}})

    assert config.weight(Severity.MILD) == 5
    assert config.weight(Severity.SEVERE) == 100
    assert isinstance(config.severity_weights, tuple)
    hash(config)


def test_diagnosis_config_dict_round_trip():
    data = config_to_dict(DEFAULT_DIAGNOSIS_CONFIG)

    assert data["severity_weights"] == {"mild": 10, "moderate": 50, "severe": 100}
    assert diagnosis_config_from_dict(data) == DEFAULT_DIAGNOSIS_CONFIG


def test_telemetry_config_from_dict():
    config = telemetry_config_from_dict(
        {"pitch_outlier_cents": 300.0, "vocal_range_hz": [80, 1000], "unknown": 1}
    )

    assert config.pitch_outlier_cents == 300.0
    assert config.vocal_range_hz == (80.0, 1000.0)
