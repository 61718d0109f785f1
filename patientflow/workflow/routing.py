"""
Department routing: relocation, history trail, return department and queues.

Relocation never touches status. The orchestrator applies the changes built
here inside the patient's critical section.
"""

from datetime import datetime

from patientflow.enums import Department, PatientStatus
from patientflow.exceptions import ValidationFailed

# department → timestamp field that starts the wait in that department
_WAIT_STARTS = {
    Department.TRIAGE: 'registration_time',
    Department.LABORATORY: 'sent_to_lab_time',
    Department.RADIOLOGY: 'sent_to_radiology_time',
    Department.PHARMACY: 'in_pharmacy_time',
}

# consultation departments wait from the end of triage
_CONSULTATION_WAIT_START = 'triage_complete_time'

_TRIAGE_QUEUE_STATUSES = frozenset({PatientStatus.REGISTERED, PatientStatus.ACTIVATED})


def relocation_changes(record, next_department: str) -> dict:
    """
    Changes moving ``record`` to ``next_department``.

    The department being left is appended to previous_departments unless it
    is already there; next_destination is cleared.
    """
    if not next_department:
        raise ValidationFailed(message="Next department is required", code='DEPARTMENT_REQUIRED')

    history = list(record.previous_departments)
    current = record.current_department
    if current and current not in history:
        history.append(current)

    return {
        'current_department': next_department,
        'previous_departments': history,
        'next_destination': None,
    }


def resolve_return_department(order) -> str:
    """
    Department a test order's results go back to.

    Always the value captured when the order was placed, never the patient's
    location at completion time.
    """
    if not order.return_to_department:
        raise ValidationFailed(
            message=f"Test order {order.id} has no return department",
            code='RETURN_DEPARTMENT_MISSING',
            detail={'test_id': order.id},
        )
    return order.return_to_department


def department_queue(patients, department: str) -> list:
    """
    Active patients waiting in ``department``.

    Patients who are registered or activated but not triaged yet belong to the
    triage queue wherever they physically are.
    """
    queue = []
    for patient in patients:
        if patient.is_completed:
            continue
        if patient.current_department == department:
            queue.append(patient)
        elif department == Department.TRIAGE and patient.status in _TRIAGE_QUEUE_STATUSES:
            queue.append(patient)
    return queue


def wait_minutes(patient, department: str, now: datetime) -> int:
    """Whole minutes ``patient`` has waited in ``department``; 0 when unknown."""
    field = _WAIT_STARTS.get(department, _CONSULTATION_WAIT_START)
    start = getattr(patient.timestamps, field, None) or patient.timestamps.registration_time
    if not isinstance(start, datetime):
        return 0
    try:
        return max(0, int((now - start).total_seconds() // 60))
    except TypeError:
        return 0
