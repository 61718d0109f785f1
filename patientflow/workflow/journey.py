"""
Journey analytics over PatientRecord snapshots.

Read-only and total: malformed or missing timestamps are treated as absent,
so a journey can always be rendered.

Stage classification, first match wins:
  completed  end timestamp set, or the stage's completion flag set
  active     status is one of the stage's in-progress statuses, or (optional
             stages) the pending flag is set
  skipped    optional stage that never started and was never requested
  pending    everything else
"""

import logging
import math
from enum import Enum
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from django.utils import timezone

from patientflow.enums import Department, PatientStatus as S

from .statuses import valid_successors

logger = logging.getLogger(__name__)


class StageState(str, Enum):
    COMPLETED = 'completed'
    ACTIVE = 'active'
    SKIPPED = 'skipped'
    PENDING = 'pending'


@dataclass(frozen=True)
class StageSpec:
    id: str
    label: str
    starts: tuple[str, ...]
    ends: tuple[str, ...]
    active_statuses: frozenset
    pending_flag: Optional[str] = None
    completed_flag: Optional[str] = None

    @property
    def optional(self) -> bool:
        return self.pending_flag is not None


STAGES = (
    StageSpec('registration', 'Registration', ('registration_time',),
              ('activation_time', 'in_triage_time'), frozenset({S.REGISTERED, S.ACTIVATED})),
    StageSpec('triage', 'Triage', ('in_triage_time',), ('triage_complete_time',),
              frozenset({S.IN_TRIAGE})),
    StageSpec('consultation', 'Consultation', ('in_consultation_time',),
              ('consultation_complete_time',), frozenset({S.IN_CONSULTATION})),
    StageSpec('laboratory', 'Laboratory', ('sent_to_lab_time', 'in_lab_time'),
              ('lab_complete_time',), frozenset({S.IN_LAB}),
              'pending_lab_tests', 'lab_tests_completed'),
    StageSpec('radiology', 'Radiology', ('sent_to_radiology_time', 'in_radiology_time'),
              ('radiology_complete_time',), frozenset({S.IN_RADIOLOGY}),
              'pending_radiology_tests', 'radiology_tests_completed'),
    StageSpec('pharmacy', 'Pharmacy', ('in_pharmacy_time',),
              ('medication_dispensed_time', 'pharmacy_complete_time'), frozenset({S.IN_PHARMACY}),
              'pending_medications', 'medications_dispensed'),
    StageSpec('billing', 'Billing', ('awaiting_payment_time',), ('payment_complete_time',),
              frozenset({S.AWAITING_PAYMENT}), 'pending_payment', 'payment_completed'),
    StageSpec('discharge', 'Discharge', ('ready_for_discharge_time',), ('discharged_time',),
              frozenset({S.READY_FOR_DISCHARGE})),
)


@dataclass(frozen=True)
class PausePoint:
    stage: str
    started: str
    finished: str
    resume_status: str
    department: Optional[str]   # None: whichever consultation department


PAUSE_POINTS = (
    PausePoint('triage', 'in_triage_time', 'triage_complete_time', S.IN_TRIAGE, Department.TRIAGE),
    PausePoint('consultation', 'in_consultation_time', 'consultation_complete_time',
               S.IN_CONSULTATION, None),
    PausePoint('laboratory', 'in_lab_time', 'lab_complete_time', S.IN_LAB, Department.LABORATORY),
    PausePoint('radiology', 'in_radiology_time', 'radiology_complete_time',
               S.IN_RADIOLOGY, Department.RADIOLOGY),
    PausePoint('pharmacy', 'in_pharmacy_time', 'pharmacy_complete_time',
               S.IN_PHARMACY, Department.PHARMACY),
)

# departments that are not consultation rooms
SERVICE_DEPARTMENTS = frozenset({
    Department.RECEPTION, Department.TRIAGE, Department.LABORATORY,
    Department.RADIOLOGY, Department.PHARMACY, Department.BILLING,
})


@dataclass
class StageView:
    id: str
    label: str
    state: str
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    elapsed_minutes: Optional[int] = None
    overdue: bool = False


@dataclass
class Journey:
    patient_id: str
    stages: list[StageView]
    progress: int
    current_stage: Optional[str]
    total_minutes: Optional[int]
    is_completed: bool


@dataclass
class PausedWorkflow:
    patient_id: str
    patient_name: str
    stage: str
    department: str
    resume_status: str
    paused_since: Optional[datetime]
    resumable: bool = True


def as_datetime(value) -> Optional[datetime]:
    """datetime or ISO-8601 string → datetime; anything else → None."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return None
    return None


def _first_time(timestamps, names) -> Optional[datetime]:
    for name in names:
        value = as_datetime(getattr(timestamps, name, None))
        if value is not None:
            return value
    return None


def _minutes_between(start, end) -> Optional[int]:
    if start is None or end is None:
        return None
    try:
        return max(0, int((end - start).total_seconds() // 60))
    except TypeError:
        # naive vs aware
        return None


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class JourneyAnalytics:

    def __init__(self, wait_threshold_minutes: int = 15, clock=None):
        self.wait_threshold_minutes = wait_threshold_minutes
        self.clock = clock or timezone.now

    def classify_stage(self, definition: StageSpec, record) -> str:
        timestamps, flags = record.timestamps, record.flags
        pending = bool(definition.pending_flag and getattr(flags, definition.pending_flag, False))
        completed_flag = bool(definition.completed_flag and getattr(flags, definition.completed_flag, False))

        if _first_time(timestamps, definition.ends) is not None or completed_flag:
            return StageState.COMPLETED
        if record.status in definition.active_statuses or pending:
            return StageState.ACTIVE
        if definition.optional and _first_time(timestamps, definition.starts) is None:
            return StageState.SKIPPED
        return StageState.PENDING

    def build_journey(self, record) -> Journey:
        now = self.clock()
        stages = []
        for definition in STAGES:
            state = self.classify_stage(definition, record)
            started = _first_time(record.timestamps, definition.starts)
            ended = _first_time(record.timestamps, definition.ends)
            elapsed = _minutes_between(started, ended or now)
            stages.append(StageView(
                id=definition.id,
                label=definition.label,
                state=state,
                started_at=started,
                ended_at=ended,
                elapsed_minutes=elapsed,
                overdue=(
                    state == StageState.ACTIVE
                    and elapsed is not None
                    and elapsed > self.wait_threshold_minutes
                ),
            ))

        completed = sum(1 for s in stages if s.state == StageState.COMPLETED)
        counted = len(stages) - sum(1 for s in stages if s.state == StageState.SKIPPED)
        progress = _round_half_up(completed * 100 / counted) if counted else 0
        current = next((s.id for s in stages if s.state == StageState.ACTIVE), None)

        registered = as_datetime(record.timestamps.registration_time)
        discharged = as_datetime(record.timestamps.discharged_time)

        return Journey(
            patient_id=record.id,
            stages=stages,
            progress=progress,
            current_stage=current,
            total_minutes=_minutes_between(registered, discharged or now),
            is_completed=record.is_completed,
        )

    def paused_workflows(self, record, department: Optional[str] = None) -> list[PausedWorkflow]:
        """Work started in a department but left unfinished while the patient moved on."""
        paused = []
        for point in PAUSE_POINTS:
            started = as_datetime(getattr(record.timestamps, point.started, None))
            finished = as_datetime(getattr(record.timestamps, point.finished, None))
            if started is None or finished is not None or record.status == point.resume_status:
                continue

            where = point.department or record.return_to_department or record.current_department
            if department is not None:
                if point.department is None:
                    if department in SERVICE_DEPARTMENTS:
                        continue
                elif point.department != department:
                    continue

            paused.append(PausedWorkflow(
                patient_id=record.id,
                patient_name=record.full_name,
                stage=point.stage,
                department=department if point.department is None and department else where,
                resume_status=point.resume_status,
                paused_since=started,
                resumable=point.resume_status in valid_successors(record.status),
            ))
        return paused

    def find_paused_workflows(self, records, department: Optional[str] = None) -> list[PausedWorkflow]:
        """Scan a queue for paused work. Idempotent and side-effect free."""
        found = []
        for record in records:
            if record.is_completed:
                continue
            found.extend(self.paused_workflows(record, department))
        return found
