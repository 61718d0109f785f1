"""
In-memory RecordStore.

Used as the process-local cache backend (RECORD_STORE=memory) and as the
test double for the orchestrator. All tables sit behind one lock whose
acquisition is bounded, and every read hands out a deep copy.
"""

import copy
import logging
from contextlib import contextmanager
from dataclasses import replace
from threading import Lock
from typing import Any, Optional

from patientflow.exceptions import NotFound, StaleTransition, UpstreamUnavailable, ValidationFailed

from .base import RecordStore
from .types import (
    PatientRecord, WorkflowTestOrder, Prescription, Invoice, Notification,
    apply_patient_changes,
)

logger = logging.getLogger(__name__)


class InMemoryRecordStore(RecordStore):

    def __init__(self, timeout: float = 5.0):
        self._timeout = timeout
        self._lock = Lock()
        self._patients: dict[str, PatientRecord] = {}
        self._test_orders: dict[str, WorkflowTestOrder] = {}
        self._prescriptions: dict[str, Prescription] = {}
        self._invoices: dict[str, Invoice] = {}
        self._notifications: dict[str, Notification] = {}

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _guard(self):
        if not self._lock.acquire(timeout=self._timeout):
            raise UpstreamUnavailable(
                message=f"Record store did not respond within {self._timeout}s",
                code='STORE_TIMEOUT',
            )
        try:
            yield
        finally:
            self._lock.release()

    @staticmethod
    def _fetch(table: dict, key: str, label: str):
        try:
            return table[key]
        except KeyError:
            raise NotFound(
                message=f"{label} {key} not found",
                code=f"{label.upper().replace(' ', '_')}_NOT_FOUND",
                detail={'id': key},
            ) from None

    @staticmethod
    def _update(obj, changes: dict[str, Any]):
        try:
            return replace(obj, **changes)
        except TypeError as exc:
            raise ValidationFailed(
                message=f"Unknown field in update: {exc}",
                code='UNKNOWN_FIELD',
            ) from exc

    # ------------------------------------------------------------------
    # patients
    # ------------------------------------------------------------------

    def create_patient(self, record):
        with self._guard():
            self._patients[record.id] = copy.deepcopy(record)
            return copy.deepcopy(record)

    def get_patient(self, patient_id):
        with self._guard():
            return copy.deepcopy(self._fetch(self._patients, patient_id, 'Patient'))

    def list_patients(self, status=None, current_department=None, active_only=False):
        with self._guard():
            records = [
                r for r in self._patients.values()
                if (status is None or r.status == status)
                and (current_department is None or r.current_department == current_department)
                and not (active_only and r.is_completed)
            ]
            records = copy.deepcopy(records)
        records.sort(key=lambda r: (r.timestamps.registration_time is None, r.timestamps.registration_time))
        return records

    def update_patient(self, patient_id, changes, expected_status=None):
        with self._guard():
            current = self._fetch(self._patients, patient_id, 'Patient')
            if expected_status is not None and current.status != expected_status:
                raise StaleTransition(
                    message=(
                        f"Patient {patient_id} is '{current.status}', "
                        f"expected '{expected_status}'"
                    ),
                    detail={'current_status': current.status, 'expected_status': expected_status},
                )
            updated = apply_patient_changes(current, copy.deepcopy(changes))
            self._patients[patient_id] = updated
            return copy.deepcopy(updated)

    # ------------------------------------------------------------------
    # test orders
    # ------------------------------------------------------------------

    def create_test_order(self, order):
        with self._guard():
            self._test_orders[order.id] = copy.deepcopy(order)
            return copy.deepcopy(order)

    def get_test_order(self, order_id):
        with self._guard():
            return copy.deepcopy(self._fetch(self._test_orders, order_id, 'Test order'))

    def list_test_orders(self, patient_id=None, department=None):
        with self._guard():
            return copy.deepcopy([
                o for o in self._test_orders.values()
                if (patient_id is None or o.patient_id == patient_id)
                and (department is None or o.department == department)
            ])

    def update_test_order(self, order_id, changes):
        with self._guard():
            updated = self._update(self._fetch(self._test_orders, order_id, 'Test order'), changes)
            self._test_orders[order_id] = updated
            return copy.deepcopy(updated)

    # ------------------------------------------------------------------
    # prescriptions
    # ------------------------------------------------------------------

    def create_prescription(self, prescription):
        with self._guard():
            self._prescriptions[prescription.id] = copy.deepcopy(prescription)
            return copy.deepcopy(prescription)

    def get_prescription(self, prescription_id):
        with self._guard():
            return copy.deepcopy(self._fetch(self._prescriptions, prescription_id, 'Prescription'))

    def list_prescriptions(self, patient_id=None):
        with self._guard():
            return copy.deepcopy([
                p for p in self._prescriptions.values()
                if patient_id is None or p.patient_id == patient_id
            ])

    def update_prescription(self, prescription_id, changes):
        with self._guard():
            updated = self._update(
                self._fetch(self._prescriptions, prescription_id, 'Prescription'), changes
            )
            self._prescriptions[prescription_id] = updated
            return copy.deepcopy(updated)

    # ------------------------------------------------------------------
    # invoices
    # ------------------------------------------------------------------

    def create_invoice(self, invoice):
        with self._guard():
            self._invoices[invoice.id] = copy.deepcopy(invoice)
            return copy.deepcopy(invoice)

    def list_invoices(self, patient_id):
        with self._guard():
            return copy.deepcopy([i for i in self._invoices.values() if i.patient_id == patient_id])

    def update_invoice(self, invoice_id, changes):
        with self._guard():
            updated = self._update(self._fetch(self._invoices, invoice_id, 'Invoice'), changes)
            self._invoices[invoice_id] = updated
            return copy.deepcopy(updated)

    # ------------------------------------------------------------------
    # notifications
    # ------------------------------------------------------------------

    def create_notification(self, notification):
        with self._guard():
            if notification.dedup_key:
                for existing in self._notifications.values():
                    if existing.dedup_key == notification.dedup_key:
                        logger.debug("Notification %s already exists, skipping", notification.dedup_key)
                        return copy.deepcopy(existing)
            self._notifications[notification.id] = copy.deepcopy(notification)
            return copy.deepcopy(notification)

    def get_notification(self, notification_id):
        with self._guard():
            return copy.deepcopy(self._fetch(self._notifications, notification_id, 'Notification'))

    def find_notification(self, dedup_key) -> Optional[Notification]:
        with self._guard():
            for existing in self._notifications.values():
                if existing.dedup_key == dedup_key:
                    return copy.deepcopy(existing)
        return None

    def list_notifications(self):
        with self._guard():
            return copy.deepcopy(list(self._notifications.values()))

    def update_notification(self, notification_id, changes):
        with self._guard():
            updated = self._update(
                self._fetch(self._notifications, notification_id, 'Notification'), changes
            )
            self._notifications[notification_id] = updated
            return copy.deepcopy(updated)

    def mark_all_notifications_read(self, department=None):
        count = 0
        with self._guard():
            for key, item in self._notifications.items():
                if item.read:
                    continue
                if department is not None and item.department_target not in (None, department):
                    continue
                self._notifications[key] = replace(item, read=True)
                count += 1
        return count

    def delete_notifications(self):
        with self._guard():
            count = len(self._notifications)
            self._notifications.clear()
        return count
