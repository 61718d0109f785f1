"""
RecordStore: abstract base for every record-store implementation.

Each implementation:
1. extends RecordStore
2. implements the per-entity methods below
3. registers one line in factory.py's registry

The orchestrator, services and tasks never know which backend answers.

Contract shared by all implementations:
- reads return snapshots; mutating a returned record never touches the store
- a missing id raises NotFound
- a call that cannot complete in bounded time raises UpstreamUnavailable
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from .types import PatientRecord, WorkflowTestOrder, Prescription, Invoice, Notification


class RecordStore(ABC):

    # ── patients ──

    @abstractmethod
    def create_patient(self, record: PatientRecord) -> PatientRecord:
        """Persist a new patient record and return the stored snapshot."""

    @abstractmethod
    def get_patient(self, patient_id: str) -> PatientRecord:
        """Raises NotFound when the patient does not exist."""

    @abstractmethod
    def list_patients(
        self,
        status: Optional[str] = None,
        current_department: Optional[str] = None,
        active_only: bool = False,
    ) -> list[PatientRecord]:
        """Patients matching every given filter, oldest registration first."""

    @abstractmethod
    def update_patient(
        self,
        patient_id: str,
        changes: dict[str, Any],
        expected_status: Optional[str] = None,
    ) -> PatientRecord:
        """
        Apply flat ``changes`` (see types.apply_patient_changes) atomically.

        Args:
            expected_status: when given, the write only happens if the stored
                status still equals it (compare-and-set)

        Raises:
            NotFound:          unknown patient
            StaleTransition:   stored status differs from expected_status
            ValidationFailed:  unknown or immutable field
        """

    # ── test orders ──

    @abstractmethod
    def create_test_order(self, order: WorkflowTestOrder) -> WorkflowTestOrder:
        ...

    @abstractmethod
    def get_test_order(self, order_id: str) -> WorkflowTestOrder:
        ...

    @abstractmethod
    def list_test_orders(
        self,
        patient_id: Optional[str] = None,
        department: Optional[str] = None,
    ) -> list[WorkflowTestOrder]:
        ...

    @abstractmethod
    def update_test_order(self, order_id: str, changes: dict[str, Any]) -> WorkflowTestOrder:
        ...

    # ── prescriptions ──

    @abstractmethod
    def create_prescription(self, prescription: Prescription) -> Prescription:
        ...

    @abstractmethod
    def get_prescription(self, prescription_id: str) -> Prescription:
        ...

    @abstractmethod
    def list_prescriptions(self, patient_id: Optional[str] = None) -> list[Prescription]:
        ...

    @abstractmethod
    def update_prescription(self, prescription_id: str, changes: dict[str, Any]) -> Prescription:
        ...

    # ── invoices (written by billing, read by the payment gate) ──

    @abstractmethod
    def create_invoice(self, invoice: Invoice) -> Invoice:
        ...

    @abstractmethod
    def list_invoices(self, patient_id: str) -> list[Invoice]:
        ...

    @abstractmethod
    def update_invoice(self, invoice_id: str, changes: dict[str, Any]) -> Invoice:
        ...

    # ── notifications ──

    @abstractmethod
    def create_notification(self, notification: Notification) -> Notification:
        """
        Persist a notification.

        When ``notification.dedup_key`` is already taken, the existing
        notification is returned instead and nothing is written.
        """

    @abstractmethod
    def get_notification(self, notification_id: str) -> Notification:
        ...

    @abstractmethod
    def find_notification(self, dedup_key: str) -> Optional[Notification]:
        ...

    @abstractmethod
    def list_notifications(self) -> list[Notification]:
        ...

    @abstractmethod
    def update_notification(self, notification_id: str, changes: dict[str, Any]) -> Notification:
        ...

    @abstractmethod
    def mark_all_notifications_read(self, department: Optional[str] = None) -> int:
        """Mark unread notifications visible to ``department`` (all when None) as read."""

    @abstractmethod
    def delete_notifications(self) -> int:
        ...
