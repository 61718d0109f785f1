"""
WorkflowOrchestrator: sole writer of a patient's workflow state.

Every write to a patient runs inside that patient's critical section
(PatientLocks) and ends in a store write; status changes are additionally a
compare-and-set on the status read inside the section.

Error policy:
  UpstreamUnavailable  retried locally with exponential backoff, then raised
  InvalidTransition / StaleTransition / PaymentRequired / ValidationFailed
                       raised immediately, record unchanged
"""

import logging
import time
from typing import Callable, Optional

from django.conf import settings
from django.utils import timezone

from patientflow.enums import Department, PatientStatus, Priority
from patientflow.exceptions import (
    InvalidTransition, StaleTransition, UpstreamUnavailable, ValidationFailed,
)
from patientflow.notifications.types import EventKind, WorkflowEvent
from patientflow.store.types import (
    COMPLETION_REQUIRES, FLAG_FIELDS, PatientRecord,
)

from .journey import JourneyAnalytics, as_datetime
from .locks import PatientLocks
from .payment import PaymentGate
from .routing import relocation_changes
from .statuses import (
    PAYMENT_GATED, STATUS_TIMESTAMP_FIELDS, normalize_status, valid_successors,
)

logger = logging.getLogger(__name__)

# timestamps owned by the parallel sub-workflows rather than by status entry
PARALLEL_TIMESTAMPS = frozenset({
    'sent_to_lab_time', 'sent_to_radiology_time', 'lab_complete_time',
    'radiology_complete_time', 'medication_dispensed_time',
    'awaiting_payment_time', 'payment_complete_time',
})
PARALLEL_KEYS = FLAG_FIELDS | PARALLEL_TIMESTAMPS | {'return_to_department'}


class WorkflowOrchestrator:

    def __init__(
        self,
        store,
        locks: Optional[PatientLocks] = None,
        payment_gate: Optional[PaymentGate] = None,
        analytics: Optional[JourneyAnalytics] = None,
        clock: Optional[Callable] = None,
        max_retries: Optional[int] = None,
        retry_backoff: Optional[float] = None,
    ):
        self.store = store
        self.locks = locks or PatientLocks(getattr(settings, 'PATIENT_LOCK_TIMEOUT_SECONDS', 5.0))
        self.payment_gate = payment_gate or PaymentGate(store)
        self.clock = clock or timezone.now
        self.analytics = analytics or JourneyAnalytics(
            getattr(settings, 'JOURNEY_WAIT_THRESHOLD_MINUTES', 15), clock=self.clock,
        )
        self.max_retries = (
            max_retries if max_retries is not None
            else getattr(settings, 'RECORD_STORE_MAX_RETRIES', 3)
        )
        self.retry_backoff = (
            retry_backoff if retry_backoff is not None
            else getattr(settings, 'RECORD_STORE_RETRY_BACKOFF_SECONDS', 0.2)
        )
        self._listeners: list[Callable[[WorkflowEvent], object]] = []

    # ------------------------------------------------------------------
    # plumbing
    # ------------------------------------------------------------------

    def _call(self, fn, *args, **kwargs):
        """Run a store call, retrying UpstreamUnavailable with backoff 1x, 2x, 4x…"""
        attempt = 0
        while True:
            try:
                return fn(*args, **kwargs)
            except UpstreamUnavailable as exc:
                if attempt >= self.max_retries:
                    logger.error("Giving up after %d retries: %s", attempt, exc.message)
                    raise
                delay = self.retry_backoff * (2 ** attempt)
                attempt += 1
                logger.warning(
                    "Store call failed (%s), retry %d/%d in %.2fs",
                    exc.code, attempt, self.max_retries, delay,
                )
                time.sleep(delay)

    def subscribe(self, listener: Callable[[WorkflowEvent], object]) -> None:
        self._listeners.append(listener)

    def publish(self, event: WorkflowEvent) -> None:
        """Fan ``event`` out to listeners. A failing listener never undoes the write."""
        for listener in list(self._listeners):
            try:
                self._call(listener, event)
            except Exception:
                logger.exception("Listener failed for %s event on patient %s", event.kind, event.patient_id)

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------

    def get_patient(self, patient_id: str) -> PatientRecord:
        return self._call(self.store.get_patient, patient_id)

    def require_paid(self, patient_id: str, service_category: str) -> None:
        self._call(self.payment_gate.require_paid, patient_id, service_category)

    # ------------------------------------------------------------------
    # registration
    # ------------------------------------------------------------------

    def register(self, record: PatientRecord) -> PatientRecord:
        record.status = PatientStatus.REGISTERED
        record.current_department = record.current_department or Department.RECEPTION
        if record.timestamps.registration_time is None:
            record.timestamps.registration_time = self.clock()
        with self.locks.hold(record.id):
            created = self._call(self.store.create_patient, record)
        logger.info("Registered patient %s (%s)", created.id, created.patient_type)
        return created

    # ------------------------------------------------------------------
    # primary workflow
    # ------------------------------------------------------------------

    def transition(
        self,
        patient_id: str,
        target_status: str,
        priority: Optional[str] = None,
        expected_status: Optional[str] = None,
    ) -> PatientRecord:
        """
        Move the patient to ``target_status``.

        Args:
            priority:        optional new triage priority written alongside
            expected_status: status the caller believes is current; a mismatch
                             raises StaleTransition

        Raises:
            InvalidTransition: target is not a valid successor
            StaleTransition:   expected_status mismatch or lost write race
            PaymentRequired:   target is payment-gated and unpaid
            ValidationFailed:  unknown priority
        """
        with self.locks.hold(patient_id):
            return self._transition(patient_id, target_status, priority, expected_status)

    def _transition(self, patient_id, target_status, priority=None, expected_status=None):
        record = self._call(self.store.get_patient, patient_id)

        if expected_status is not None and record.status != expected_status:
            raise StaleTransition(
                message=(
                    f"Patient {patient_id} is '{record.status}', "
                    f"expected '{expected_status}'"
                ),
                detail={'current_status': record.status, 'expected_status': expected_status},
            )

        target = normalize_status(target_status)
        allowed = valid_successors(record.status)
        if target is None or target not in allowed:
            raise InvalidTransition(
                message=f"Cannot move patient from '{record.status}' to '{target_status}'",
                detail={
                    'current_status': record.status,
                    'target_status': target_status,
                    'allowed': sorted(allowed),
                },
            )

        changes = {'status': target}
        if priority is not None:
            changes['priority'] = self._priority(priority)

        category = PAYMENT_GATED.get(target)
        if category and target != record.status:
            self.require_paid(patient_id, category)

        field = STATUS_TIMESTAMP_FIELDS.get(target)
        if field and getattr(record.timestamps, field) is None:
            changes[field] = self.clock()
        if target == PatientStatus.DISCHARGED:
            changes['is_completed'] = True

        try:
            updated = self._call(
                self.store.update_patient, patient_id, changes, expected_status=record.status,
            )
        except StaleTransition:
            # a retried write may already have landed
            current = self._call(self.store.get_patient, patient_id)
            if current.status == target:
                return current
            raise

        logger.info("Patient %s: %s → %s", patient_id, record.status, target)
        return updated

    @staticmethod
    def _priority(value) -> str:
        try:
            return Priority(value)
        except ValueError:
            raise ValidationFailed(
                message=f"Unknown priority '{value}'",
                code='INVALID_PRIORITY',
                detail={'allowed': list(Priority.values)},
            ) from None

    def set_priority(self, patient_id: str, priority: str) -> PatientRecord:
        priority = self._priority(priority)
        with self.locks.hold(patient_id):
            updated = self._call(self.store.update_patient, patient_id, {'priority': priority})
        logger.info("Patient %s priority set to %s", patient_id, priority)
        return updated

    # ------------------------------------------------------------------
    # parallel sub-workflows
    # ------------------------------------------------------------------

    def update_parallel_workflow(self, patient_id: str, flag_updates: dict) -> PatientRecord:
        """
        Record lab / radiology / pharmacy / payment progress. Never changes status.

        Flags only move from False to True. Timestamps are first-write-wins:
        an already-set timestamp is kept. A completion flag requires its
        pending flag.
        """
        unknown = sorted(set(flag_updates) - PARALLEL_KEYS)
        if unknown:
            raise ValidationFailed(
                message=f"Unknown parallel workflow fields: {', '.join(unknown)}",
                code='UNKNOWN_FIELD',
                detail={'fields': unknown},
            )
        for key in sorted(set(flag_updates) & FLAG_FIELDS):
            if not isinstance(flag_updates[key], bool):
                raise ValidationFailed(
                    message=f"'{key}' must be true or false",
                    code='INVALID_FLAG',
                    detail={'field': key, 'value': repr(flag_updates[key])},
                )

        with self.locks.hold(patient_id):
            record = self._call(self.store.get_patient, patient_id)
            changes = {}

            for key, value in flag_updates.items():
                if key in FLAG_FIELDS:
                    current = getattr(record.flags, key)
                    if current and not value:
                        raise ValidationFailed(
                            message=f"'{key}' is already set and cannot be cleared",
                            code='FLAG_NOT_REVERSIBLE',
                            detail={'field': key},
                        )
                    if value and not current:
                        changes[key] = True
                elif key in PARALLEL_TIMESTAMPS:
                    if value is None or getattr(record.timestamps, key) is not None:
                        continue
                    stamp = as_datetime(value)
                    if stamp is None:
                        raise ValidationFailed(
                            message=f"'{key}' is not a valid timestamp",
                            code='INVALID_TIMESTAMP',
                            detail={'field': key, 'value': str(value)},
                        )
                    changes[key] = stamp
                else:
                    changes[key] = value

            for done, pending in COMPLETION_REQUIRES.items():
                if changes.get(done, getattr(record.flags, done)) and not changes.get(
                    pending, getattr(record.flags, pending)
                ):
                    raise ValidationFailed(
                        message=f"'{done}' requires '{pending}'",
                        code='COMPLETION_WITHOUT_PENDING',
                        detail={'field': done, 'requires': pending},
                    )

            if not changes:
                return record
            updated = self._call(self.store.update_patient, patient_id, changes)

        logger.info("Patient %s parallel workflow: %s", patient_id, sorted(changes))
        return updated

    # ------------------------------------------------------------------
    # location and assignment
    # ------------------------------------------------------------------

    def move_to_next_department(self, patient_id: str, next_department: str) -> PatientRecord:
        with self.locks.hold(patient_id):
            record = self._call(self.store.get_patient, patient_id)
            updated = self._call(
                self.store.update_patient, patient_id, relocation_changes(record, next_department),
            )
        logger.info("Patient %s moved %s → %s", patient_id, record.current_department, next_department)
        return updated

    def set_next_destination(self, patient_id: str, department: Optional[str]) -> PatientRecord:
        with self.locks.hold(patient_id):
            return self._call(self.store.update_patient, patient_id, {'next_destination': department})

    def assign_doctor(self, patient_id: str, doctor_id: str, doctor_name: str) -> PatientRecord:
        if not doctor_id:
            raise ValidationFailed(message="Doctor id is required", code='DOCTOR_REQUIRED')
        with self.locks.hold(patient_id):
            updated = self._call(self.store.update_patient, patient_id, {
                'assigned_doctor_id': doctor_id,
                'assigned_doctor_name': doctor_name,
                'assigned_at': self.clock(),
            })
        logger.info("Patient %s assigned to doctor %s", patient_id, doctor_id)
        return updated

    def unassign_doctor(self, patient_id: str) -> PatientRecord:
        with self.locks.hold(patient_id):
            return self._call(self.store.update_patient, patient_id, {
                'assigned_doctor_id': None,
                'assigned_doctor_name': None,
                'assigned_at': None,
            })

    # ------------------------------------------------------------------
    # paused work
    # ------------------------------------------------------------------

    def resume_workflow(self, patient_id: str, department: Optional[str] = None) -> PatientRecord:
        """
        Return the patient to a sub-workflow they were pulled away from.

        Raises InvalidTransition when nothing is paused for ``department``
        or when no paused stage can be re-entered from the current status;
        payment gates apply as for any transition.
        """
        with self.locks.hold(patient_id):
            record = self._call(self.store.get_patient, patient_id)
            paused = self.analytics.paused_workflows(record, department)
            if not paused:
                raise InvalidTransition(
                    message=(
                        f"No paused workflow for patient {patient_id}"
                        + (f" in {department}" if department else "")
                    ),
                    code='NOTHING_TO_RESUME',
                    detail={'patient_id': patient_id, 'department': department},
                )
            resumable = [p for p in paused if p.resumable]
            if not resumable:
                raise InvalidTransition(
                    message=(
                        f"Paused {paused[0].stage} work cannot be resumed from "
                        f"'{record.status}'"
                    ),
                    code='RESUME_NOT_ALLOWED',
                    detail={
                        'patient_id': patient_id,
                        'current_status': record.status,
                        'paused': [p.stage for p in paused],
                    },
                )
            point = resumable[0]
            updated = self._transition(patient_id, point.resume_status)

        logger.info("Patient %s resumed %s workflow", patient_id, point.stage)
        self.publish(WorkflowEvent(
            kind=EventKind.WORKFLOW_RESUMED,
            patient_id=patient_id,
            patient_name=updated.full_name,
            patient_priority=updated.priority,
            department_target=point.department,
            message=f"{point.stage.capitalize()} workflow continued for {updated.full_name}",
            occurred_at=self.clock(),
        ))
        return updated
