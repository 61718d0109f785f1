"""
Unit tests for triage classification.

Covers: blood pressure parsing, critical before urgent, strict boundaries,
and that malformed readings never escalate or raise.
"""
import pytest

from patientflow.enums import Priority
from patientflow.workflow.triage import Vitals, classify, parse_blood_pressure


class TestParseBloodPressure:

    def test_valid(self):
        assert parse_blood_pressure('120/80') == (120.0, 80.0)

    def test_whitespace(self):
        assert parse_blood_pressure(' 135 / 85 ') == (135.0, 85.0)

    @pytest.mark.parametrize('value', ['', '120', 'abc/def', '120/', None, 12080])
    def test_unparseable(self, value):
        assert parse_blood_pressure(value) == (None, None)


class TestClassify:

    def test_normal_vitals(self):
        assert classify({
            'blood_pressure': '120/80',
            'temperature': 36.8,
            'oxygen_saturation': 98,
            'pulse_rate': 72,
            'respiratory_rate': 16,
        }) == Priority.NORMAL

    def test_critical_low_saturation(self):
        assert classify({'blood_pressure': '120/80', 'oxygen_saturation': 88}) == Priority.CRITICAL

    def test_urgent_temperature(self):
        assert classify({'temperature': 38.7}) == Priority.URGENT

    def test_critical_wins_over_urgent(self):
        # temperature alone is urgent, systolic 185 is critical
        assert classify({'blood_pressure': '185/90', 'temperature': 38.7}) == Priority.CRITICAL

    @pytest.mark.parametrize('vitals, expected', [
        ({'blood_pressure': '180/80'}, Priority.URGENT),     # not > 180
        ({'blood_pressure': '181/80'}, Priority.CRITICAL),
        ({'blood_pressure': '160/80'}, Priority.NORMAL),     # not > 160
        ({'temperature': 39.5}, Priority.URGENT),            # not > 39.5
        ({'oxygen_saturation': 90}, Priority.URGENT),        # not < 90
        ({'oxygen_saturation': 94}, Priority.NORMAL),        # not < 94
        ({'pulse_rate': 50}, Priority.URGENT),
        ({'pulse_rate': 49}, Priority.CRITICAL),
        ({'respiratory_rate': 24}, Priority.NORMAL),
        ({'respiratory_rate': 31}, Priority.CRITICAL),
    ])
    def test_boundaries_are_strict(self, vitals, expected):
        assert classify(vitals) == expected

    def test_malformed_blood_pressure_is_ignored(self):
        assert classify({'blood_pressure': 'high', 'pulse_rate': 80}) == Priority.NORMAL

    def test_non_numeric_readings_are_ignored(self):
        assert classify({'temperature': 'hot', 'oxygen_saturation': None}) == Priority.NORMAL

    def test_empty_and_garbage_input(self):
        assert classify({}) == Priority.NORMAL
        assert classify(None) == Priority.NORMAL
        assert classify('not a mapping') == Priority.NORMAL

    def test_accepts_vitals_instance(self):
        assert classify(Vitals(systolic=95, diastolic=70)) == Priority.URGENT

    def test_separate_systolic_fields(self):
        vitals = Vitals.from_mapping({'systolic': '85', 'diastolic': '55'})
        assert vitals.systolic == 85.0
        assert classify(vitals) == Priority.CRITICAL
