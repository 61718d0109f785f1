"""
Record types exchanged with the record store.

Every RecordStore implementation reads and writes these dataclasses; the
orchestrator, router and analytics never see ORM objects. Timestamps and
parallel-workflow flags are grouped into their own records so that the set of
known fields is closed and checked on every update.
"""

import uuid
from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from patientflow.enums import (
    PatientStatus, Priority, PatientType, Department, OrderStatus,
    TransmissionStatus, PaymentStatus, PrescriptionStatus, InvoiceStatus,
    NotificationPriority,
)
from patientflow.exceptions import ValidationFailed


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class WorkflowTimestamps:
    """First-write-wins timestamp per status entry and per parallel event."""

    registration_time: Optional[datetime] = None
    activation_time: Optional[datetime] = None
    in_triage_time: Optional[datetime] = None
    triage_complete_time: Optional[datetime] = None
    in_consultation_time: Optional[datetime] = None
    consultation_complete_time: Optional[datetime] = None
    waiting_for_lab_time: Optional[datetime] = None
    sent_to_lab_time: Optional[datetime] = None
    in_lab_time: Optional[datetime] = None
    lab_complete_time: Optional[datetime] = None
    waiting_for_radiology_time: Optional[datetime] = None
    sent_to_radiology_time: Optional[datetime] = None
    in_radiology_time: Optional[datetime] = None
    radiology_complete_time: Optional[datetime] = None
    under_treatment_time: Optional[datetime] = None
    in_pharmacy_time: Optional[datetime] = None
    pharmacy_complete_time: Optional[datetime] = None
    medication_dispensed_time: Optional[datetime] = None
    ready_for_discharge_time: Optional[datetime] = None
    awaiting_payment_time: Optional[datetime] = None
    payment_complete_time: Optional[datetime] = None
    discharged_time: Optional[datetime] = None


@dataclass
class ParallelFlags:
    pending_lab_tests: bool = False
    pending_radiology_tests: bool = False
    pending_medications: bool = False
    pending_payment: bool = False
    lab_tests_completed: bool = False
    radiology_tests_completed: bool = False
    medications_dispensed: bool = False
    payment_completed: bool = False


TIMESTAMP_FIELDS = frozenset(f.name for f in fields(WorkflowTimestamps))
FLAG_FIELDS = frozenset(f.name for f in fields(ParallelFlags))

# completion flag → the pending flag that must be set alongside it
COMPLETION_REQUIRES = {
    'lab_tests_completed': 'pending_lab_tests',
    'radiology_tests_completed': 'pending_radiology_tests',
    'medications_dispensed': 'pending_medications',
    'payment_completed': 'pending_payment',
}

DEMOGRAPHIC_FIELDS = frozenset({
    'full_name', 'id_number', 'age', 'gender', 'phone_number', 'patient_type',
})


@dataclass
class PatientRecord:
    full_name: str
    id: str = field(default_factory=new_id)
    id_number: str = ''
    age: Optional[int] = None
    gender: str = ''
    phone_number: str = ''
    patient_type: str = PatientType.OUTPATIENT
    status: str = PatientStatus.REGISTERED
    priority: str = Priority.NORMAL
    current_department: str = Department.RECEPTION
    previous_departments: list[str] = field(default_factory=list)
    next_destination: Optional[str] = None
    return_to_department: Optional[str] = None
    assigned_doctor_id: Optional[str] = None
    assigned_doctor_name: Optional[str] = None
    assigned_at: Optional[datetime] = None
    timestamps: WorkflowTimestamps = field(default_factory=WorkflowTimestamps)
    flags: ParallelFlags = field(default_factory=ParallelFlags)
    is_completed: bool = False


PATIENT_FIELDS = frozenset(
    f.name for f in fields(PatientRecord) if f.name not in ('id', 'timestamps', 'flags')
)


def apply_patient_changes(record: PatientRecord, changes: dict[str, Any]) -> PatientRecord:
    """
    Return a copy of ``record`` with flat ``changes`` applied.

    Keys may name a top-level field, a WorkflowTimestamps field or a
    ParallelFlags field. Demographics and unknown keys are rejected.
    A timestamp that is already set is kept: the stores apply this while
    holding the record, so concurrent writers cannot replace the first stamp.
    """
    top, stamps, flags = {}, {}, {}
    for key, value in changes.items():
        if key in DEMOGRAPHIC_FIELDS:
            raise ValidationFailed(
                message=f"'{key}' cannot change after registration",
                code='IMMUTABLE_FIELD',
                detail={'field': key},
            )
        if key in TIMESTAMP_FIELDS:
            if getattr(record.timestamps, key) is None:
                stamps[key] = value
        elif key in FLAG_FIELDS:
            flags[key] = bool(value)
        elif key in PATIENT_FIELDS:
            top[key] = value
        else:
            raise ValidationFailed(
                message=f"Unknown patient field '{key}'",
                code='UNKNOWN_FIELD',
                detail={'field': key},
            )

    if 'previous_departments' in top:
        top['previous_departments'] = list(top['previous_departments'])
    return replace(
        record,
        timestamps=replace(record.timestamps, **stamps),
        flags=replace(record.flags, **flags),
        **top,
    )


@dataclass
class Medication:
    name: str
    dosage: str = ''
    frequency: str = ''
    duration: str = ''
    quantity: int = 1


@dataclass
class WorkflowTestOrder:
    patient_id: str
    test_type: str
    department: str
    clinical_info: str
    return_to_department: str
    id: str = field(default_factory=new_id)
    status: str = OrderStatus.PENDING
    priority: str = Priority.NORMAL
    requested_by: str = ''
    requested_at: Optional[datetime] = None
    transmission_status: str = TransmissionStatus.ORDERED
    transmission_time: Optional[datetime] = None
    received_time: Optional[datetime] = None
    payment_status: str = PaymentStatus.PENDING
    results: Optional[dict] = None
    critical_values: bool = False
    completed_at: Optional[datetime] = None


@dataclass
class Prescription:
    patient_id: str
    medications: list[Medication] = field(default_factory=list)
    id: str = field(default_factory=new_id)
    status: str = PrescriptionStatus.PENDING
    prescribed_by: str = ''
    prescribed_at: Optional[datetime] = None
    payment_status: str = PaymentStatus.PENDING
    dispensed_at: Optional[datetime] = None
    dispensed_by: Optional[str] = None
    notes: str = ''


@dataclass
class InvoiceItem:
    service_name: str
    department: str = ''
    category: str = ''
    quantity: int = 1
    unit_price: Decimal = Decimal('0')
    status: str = PaymentStatus.PENDING


@dataclass
class Invoice:
    patient_id: str
    items: list[InvoiceItem] = field(default_factory=list)
    id: str = field(default_factory=new_id)
    status: str = InvoiceStatus.PENDING
    total_amount: Decimal = Decimal('0')
    created_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None


@dataclass
class Notification:
    type: str
    title: str
    message: str
    id: str = field(default_factory=new_id)
    timestamp: Optional[datetime] = None
    read: bool = False
    priority: str = NotificationPriority.NORMAL
    action: Optional[str] = None
    patient_id: Optional[str] = None
    test_id: Optional[str] = None
    prescription_id: Optional[str] = None
    invoice_id: Optional[str] = None
    department_target: Optional[str] = None
    dedup_key: Optional[str] = None
