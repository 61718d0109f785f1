"""
Triage priority classification from vital signs.

Pure and total: malformed or missing readings never escalate and never raise.
Critical thresholds are checked before urgent ones; all comparisons are strict.
"""

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from patientflow.enums import Priority

logger = logging.getLogger(__name__)

# (reading, below, above): breached when value < below or value > above
CRITICAL_LIMITS = (
    ('systolic', 90, 180),
    ('diastolic', 60, 120),
    ('temperature', None, 39.5),
    ('oxygen_saturation', 90, None),
    ('pulse_rate', 50, 120),
    ('respiratory_rate', 10, 30),
)

URGENT_LIMITS = (
    ('systolic', 100, 160),
    ('diastolic', 65, 100),
    ('temperature', None, 38.5),
    ('oxygen_saturation', 94, None),
    ('pulse_rate', 55, 100),
    ('respiratory_rate', 12, 24),
)


def _number(value) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_blood_pressure(value) -> tuple[Optional[float], Optional[float]]:
    """'120/80' → (120.0, 80.0); anything unparseable → (None, None)."""
    if not isinstance(value, str) or '/' not in value:
        return None, None
    systolic, _, diastolic = value.partition('/')
    systolic, diastolic = _number(systolic.strip()), _number(diastolic.strip())
    if systolic is None or diastolic is None:
        return None, None
    return systolic, diastolic


@dataclass
class Vitals:
    systolic: Optional[float] = None
    diastolic: Optional[float] = None
    temperature: Optional[float] = None
    oxygen_saturation: Optional[float] = None
    pulse_rate: Optional[float] = None
    respiratory_rate: Optional[float] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> 'Vitals':
        """Build from a vital-signs payload, e.g. {'blood_pressure': '120/80', 'pulse_rate': 72}."""
        if not isinstance(data, Mapping):
            return cls()
        systolic, diastolic = parse_blood_pressure(data.get('blood_pressure'))
        return cls(
            systolic=systolic if systolic is not None else _number(data.get('systolic')),
            diastolic=diastolic if diastolic is not None else _number(data.get('diastolic')),
            temperature=_number(data.get('temperature')),
            oxygen_saturation=_number(data.get('oxygen_saturation')),
            pulse_rate=_number(data.get('pulse_rate')),
            respiratory_rate=_number(data.get('respiratory_rate')),
        )


def _breaches(vitals: Vitals, limits) -> list[str]:
    breached = []
    for name, below, above in limits:
        value = _number(getattr(vitals, name, None))
        if value is None:
            continue
        if (below is not None and value < below) or (above is not None and value > above):
            breached.append(name)
    return breached


def classify(vitals) -> str:
    """
    Map vital signs to a triage priority: critical, urgent or normal.

    Accepts a Vitals instance or a raw payload mapping.
    """
    if not isinstance(vitals, Vitals):
        vitals = Vitals.from_mapping(vitals)

    critical = _breaches(vitals, CRITICAL_LIMITS)
    if critical:
        logger.info("Triage critical: %s", ", ".join(critical))
        return Priority.CRITICAL

    urgent = _breaches(vitals, URGENT_LIMITS)
    if urgent:
        logger.info("Triage urgent: %s", ", ".join(urgent))
        return Priority.URGENT

    return Priority.NORMAL
