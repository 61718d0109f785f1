"""
Notification routing: event → notification, display filtering, read state,
relative time labels and action navigation.

Type, priority and action are resolved once when the notification is
created; the display layer never re-derives them.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from django.utils import timezone

from patientflow.enums import (
    Department, NotificationAction, NotificationPriority, NotificationType, Priority,
)
from patientflow.store.types import Notification
from patientflow.workflow.journey import as_datetime

from .types import EventKind, NotificationView, WorkflowEvent

logger = logging.getLogger(__name__)

RESULT_TYPES = frozenset({NotificationType.LAB_RESULT, NotificationType.RADIOLOGY_RESULT})
ESCALATED_PATIENT_PRIORITIES = frozenset({Priority.URGENT, Priority.CRITICAL})


# ---------------------------------------------------------------------------
# event → notification
# ---------------------------------------------------------------------------

def _describe(event: WorkflowEvent) -> tuple[str, str, str, str]:
    """(type, action, default title, default message) for an event."""
    who = event.patient_name or f"patient {event.patient_id}"

    if event.kind == EventKind.TEST_COMPLETED:
        if event.test_department == Department.RADIOLOGY:
            kind, title = NotificationType.RADIOLOGY_RESULT, "Radiology results ready"
        else:
            kind, title = NotificationType.LAB_RESULT, "Lab results ready"
        message = f"Results for {who} are available"
        if event.critical_values:
            message += " (critical values)"
        return kind, NotificationAction.VIEW_RESULTS, title, message

    if event.kind == EventKind.PRESCRIPTION_READY:
        return (NotificationType.PRESCRIPTION, NotificationAction.VIEW_PRESCRIPTION,
                "Prescription ready", f"Medication for {who} has been dispensed")

    if event.kind == EventKind.PAYMENT_POSTED:
        return (NotificationType.PAYMENT, NotificationAction.VIEW_INVOICE,
                "Payment received", f"Payment posted for {who}")

    if event.kind == EventKind.URGENT_VITALS:
        return (NotificationType.URGENT, NotificationAction.VIEW_PATIENT,
                "Urgent vital signs", f"{who} needs immediate attention")

    return (NotificationType.INFO, NotificationAction.VIEW_PATIENT,
            "Workflow Continued", f"Workflow resumed for {who}")


def resolve_priority(event: WorkflowEvent) -> str:
    if (
        event.kind == EventKind.URGENT_VITALS
        or event.critical_values
        or event.patient_priority in ESCALATED_PATIENT_PRIORITIES
    ):
        return NotificationPriority.HIGH
    return NotificationPriority.NORMAL


def build_notification(event: WorkflowEvent, now) -> Notification:
    kind, action, title, message = _describe(event)
    return Notification(
        type=kind,
        title=event.title or title,
        message=event.message or message,
        timestamp=event.occurred_at or now,
        priority=resolve_priority(event),
        action=action,
        patient_id=event.patient_id,
        test_id=event.test_id,
        prescription_id=event.prescription_id,
        invoice_id=event.invoice_id,
        department_target=event.department_target,
        dedup_key=event.dedup_key,
    )


# ---------------------------------------------------------------------------
# display helpers
# ---------------------------------------------------------------------------

def visible_to(notification: Notification, department: Optional[str]) -> bool:
    """Broadcast notifications (no target) are visible everywhere."""
    return (
        department is None
        or notification.department_target is None
        or notification.department_target == department
    )


def newest_first_key(notification: Notification):
    ts = as_datetime(notification.timestamp)
    return ts.timestamp() if ts is not None else float('-inf')


def filter_notifications(
    notifications: Iterable[Notification],
    department: Optional[str] = None,
    view=NotificationView.ALL,
    types: Optional[Iterable[str]] = None,
) -> list[Notification]:
    """Department, view and type filters; newest first."""
    view = NotificationView(view)
    wanted_types = set(types) if types else None

    selected = []
    for n in notifications:
        if not visible_to(n, department):
            continue
        if view == NotificationView.UNREAD and n.read:
            continue
        if view == NotificationView.RESULTS and n.type not in RESULT_TYPES:
            continue
        if view == NotificationView.URGENT and not (
            n.priority == NotificationPriority.HIGH or n.type == NotificationType.URGENT
        ):
            continue
        if wanted_types is not None and n.type not in wanted_types:
            continue
        selected.append(n)

    selected.sort(key=newest_first_key, reverse=True)
    return selected


def time_ago(timestamp, now) -> str:
    """Relative label: "just now", "5 minutes ago", "2 hours ago" or "Mar 4, 3:07 PM"."""
    ts = as_datetime(timestamp)
    if ts is None:
        return "recently"
    try:
        seconds = (now - ts).total_seconds()
    except TypeError:
        return "recently"

    if seconds < 60:
        return "just now"
    minutes = int(seconds // 60)
    if minutes < 60:
        return f"{minutes} minute{'s' if minutes != 1 else ''} ago"
    hours = minutes // 60
    if hours < 24:
        return f"{hours} hour{'s' if hours != 1 else ''} ago"
    return f"{ts:%b} {ts.day}, {ts.hour % 12 or 12}:{ts:%M} {ts:%p}"


@dataclass
class NavigationTarget:
    section: str
    department: Optional[str] = None
    patient_id: Optional[str] = None


def navigation_target(notification: Notification, patient=None) -> NavigationTarget:
    """Where the viewer lands when acting on ``notification``."""
    action = notification.action
    if action in (NotificationAction.VIEW_RESULTS, NotificationAction.VIEW_PATIENT) and patient is not None:
        return NavigationTarget('consultation', patient.current_department, notification.patient_id)
    if action == NotificationAction.VIEW_PRESCRIPTION:
        return NavigationTarget('pharmacy', Department.PHARMACY, notification.patient_id)
    if action == NotificationAction.VIEW_INVOICE:
        return NavigationTarget('billing', Department.BILLING, notification.patient_id)
    return NavigationTarget('patient-management', patient_id=notification.patient_id)


# ---------------------------------------------------------------------------
# router
# ---------------------------------------------------------------------------

class NotificationRouter:

    def __init__(self, store, clock=None):
        self.store = store
        self.clock = clock or timezone.now

    def notify(self, event: WorkflowEvent) -> Notification:
        """Create the notification for ``event``; a re-delivered event returns the existing one."""
        key = event.dedup_key
        if key:
            existing = self.store.find_notification(key)
            if existing is not None:
                logger.info("Duplicate event %s ignored", key)
                return existing

        notification = self.store.create_notification(build_notification(event, self.clock()))
        logger.info(
            "Notification %s [%s/%s] → %s",
            notification.id, notification.type, notification.priority,
            notification.department_target or 'all departments',
        )
        return notification

    def __call__(self, event: WorkflowEvent) -> Notification:
        return self.notify(event)

    def feed(self, department=None, view=NotificationView.ALL, types=None) -> list[Notification]:
        return filter_notifications(self.store.list_notifications(), department, view, types)

    def unread_count(self, department=None) -> int:
        return len(self.feed(department, NotificationView.UNREAD))

    def mark_read(self, notification_id: str) -> Notification:
        return self.store.update_notification(notification_id, {'read': True})

    def mark_all_read(self, department=None) -> int:
        count = self.store.mark_all_notifications_read(department)
        logger.info("Marked %d notifications read (department=%s)", count, department)
        return count

    def clear_all(self) -> int:
        return self.store.delete_notifications()
