"""
Primary workflow state machine tables.

TRANSITIONS is the single source of truth for which status may follow which.
Every status may re-enter itself; discharged is terminal otherwise.
"""

from patientflow.enums import PatientStatus as S, Department

TRANSITIONS: dict[str, frozenset[str]] = {
    S.REGISTERED: frozenset({S.ACTIVATED, S.IN_TRIAGE}),
    S.ACTIVATED: frozenset({S.IN_TRIAGE}),
    S.IN_TRIAGE: frozenset({S.TRIAGE_COMPLETE}),
    S.TRIAGE_COMPLETE: frozenset({S.IN_CONSULTATION}),
    # in-lab / in-radiology / in-pharmacy resume work paused for a consultation
    S.IN_CONSULTATION: frozenset({
        S.CONSULTATION_COMPLETE, S.IN_LAB, S.IN_RADIOLOGY, S.IN_PHARMACY,
    }),
    S.CONSULTATION_COMPLETE: frozenset({
        S.WAITING_FOR_LAB, S.WAITING_FOR_RADIOLOGY, S.UNDER_TREATMENT,
    }),
    S.WAITING_FOR_LAB: frozenset({
        S.IN_LAB, S.WAITING_FOR_RADIOLOGY, S.UNDER_TREATMENT, S.READY_FOR_DISCHARGE,
    }),
    S.IN_LAB: frozenset({S.LAB_COMPLETE, S.IN_CONSULTATION}),
    S.LAB_COMPLETE: frozenset({
        S.IN_CONSULTATION, S.WAITING_FOR_RADIOLOGY, S.UNDER_TREATMENT, S.READY_FOR_DISCHARGE,
    }),
    S.WAITING_FOR_RADIOLOGY: frozenset({
        S.IN_RADIOLOGY, S.WAITING_FOR_LAB, S.UNDER_TREATMENT, S.READY_FOR_DISCHARGE,
    }),
    S.IN_RADIOLOGY: frozenset({S.RADIOLOGY_COMPLETE, S.IN_CONSULTATION}),
    S.RADIOLOGY_COMPLETE: frozenset({
        S.IN_CONSULTATION, S.WAITING_FOR_LAB, S.UNDER_TREATMENT, S.READY_FOR_DISCHARGE,
    }),
    S.UNDER_TREATMENT: frozenset({S.IN_PHARMACY, S.READY_FOR_DISCHARGE}),
    S.IN_PHARMACY: frozenset({S.PHARMACY_COMPLETE, S.IN_CONSULTATION}),
    S.PHARMACY_COMPLETE: frozenset({S.READY_FOR_DISCHARGE}),
    S.READY_FOR_DISCHARGE: frozenset({S.AWAITING_PAYMENT}),
    S.AWAITING_PAYMENT: frozenset({S.PAYMENT_COMPLETE}),
    S.PAYMENT_COMPLETE: frozenset({S.DISCHARGED}),
    S.DISCHARGED: frozenset(),
}

# status → WorkflowTimestamps field stamped on first entry
STATUS_TIMESTAMP_FIELDS: dict[str, str] = {
    S.REGISTERED: 'registration_time',
    S.ACTIVATED: 'activation_time',
    S.IN_TRIAGE: 'in_triage_time',
    S.TRIAGE_COMPLETE: 'triage_complete_time',
    S.IN_CONSULTATION: 'in_consultation_time',
    S.CONSULTATION_COMPLETE: 'consultation_complete_time',
    S.WAITING_FOR_LAB: 'waiting_for_lab_time',
    S.IN_LAB: 'in_lab_time',
    S.LAB_COMPLETE: 'lab_complete_time',
    S.WAITING_FOR_RADIOLOGY: 'waiting_for_radiology_time',
    S.IN_RADIOLOGY: 'in_radiology_time',
    S.RADIOLOGY_COMPLETE: 'radiology_complete_time',
    S.UNDER_TREATMENT: 'under_treatment_time',
    S.IN_PHARMACY: 'in_pharmacy_time',
    S.PHARMACY_COMPLETE: 'pharmacy_complete_time',
    S.READY_FOR_DISCHARGE: 'ready_for_discharge_time',
    S.AWAITING_PAYMENT: 'awaiting_payment_time',
    S.PAYMENT_COMPLETE: 'payment_complete_time',
    S.DISCHARGED: 'discharged_time',
}

# entering these statuses requires the named service category to be paid
PAYMENT_GATED: dict[str, str] = {
    S.IN_LAB: Department.LABORATORY,
    S.IN_RADIOLOGY: Department.RADIOLOGY,
    S.PHARMACY_COMPLETE: Department.PHARMACY,
}


def normalize_status(value):
    """Return the PatientStatus for ``value`` or None when it is not a known status."""
    try:
        return S(value)
    except ValueError:
        return None


def valid_successors(status) -> frozenset[str]:
    """Statuses reachable from ``status`` in one step, including itself."""
    current = normalize_status(status)
    if current is None:
        return frozenset()
    return TRANSITIONS[current] | {current}


def is_valid_transition(current, target) -> bool:
    target = normalize_status(target)
    return target is not None and target in valid_successors(current)
