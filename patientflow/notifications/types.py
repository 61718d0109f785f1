"""
Workflow events consumed by the notification router.

The orchestrator and services publish WorkflowEvent; the router turns each
one into at most one Notification (see dedup_key).
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class EventKind(str, Enum):
    TEST_COMPLETED = "test-completed"
    PRESCRIPTION_READY = "prescription-ready"
    PAYMENT_POSTED = "payment-posted"
    URGENT_VITALS = "urgent-vitals"
    WORKFLOW_RESUMED = "workflow-resumed"


class NotificationView(str, Enum):
    """Display filters offered by the notification centre."""

    ALL = "all"
    UNREAD = "unread"
    RESULTS = "results"
    URGENT = "urgent"


@dataclass
class WorkflowEvent:
    kind: EventKind
    patient_id: str
    title: str = ''
    message: str = ''
    patient_name: str = ''
    patient_priority: Optional[str] = None
    department_target: Optional[str] = None
    test_id: Optional[str] = None
    test_department: Optional[str] = None
    critical_values: bool = False
    prescription_id: Optional[str] = None
    invoice_id: Optional[str] = None
    event_id: Optional[str] = None
    occurred_at: Optional[datetime] = None

    @property
    def dedup_key(self) -> Optional[str]:
        """Identity of the real-world event; re-deliveries share it."""
        if self.kind == EventKind.TEST_COMPLETED and self.test_id:
            return f"{self.kind.value}:{self.test_id}"
        if self.kind == EventKind.PRESCRIPTION_READY and self.prescription_id:
            return f"{self.kind.value}:{self.prescription_id}"
        if self.kind == EventKind.PAYMENT_POSTED and self.invoice_id:
            return f"{self.kind.value}:{self.invoice_id}"
        if self.event_id:
            return f"{self.kind.value}:{self.event_id}"
        return None
