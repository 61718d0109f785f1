"""
Service layer: the flows actors run against the workflow engine.

Views and Celery tasks call these functions; they only raise
BaseAppException subclasses and never build HTTP responses.
"""

import functools
import logging
from decimal import Decimal, InvalidOperation
from threading import Lock

from django.conf import settings

from .enums import (
    Department, OrderDepartment, OrderStatus, InvoiceStatus, PatientStatus, PatientType,
    PaymentStatus, Priority, PrescriptionStatus, TransmissionStatus,
)
from .exceptions import InvalidTransition, NotFound, ValidationFailed
from .notifications.dispatcher import PaymentRedirects, ToastDispatcher
from .notifications.router import NotificationRouter, navigation_target
from .notifications.types import EventKind, WorkflowEvent
from .store.factory import get_record_store
from .store.types import (
    Invoice, InvoiceItem, Medication, PatientRecord, Prescription, WorkflowTestOrder,
)
from .workflow.orchestrator import WorkflowOrchestrator
from .workflow.routing import department_queue, resolve_return_department, wait_minutes
from .workflow.triage import classify

logger = logging.getLogger(__name__)

_orchestrator = None
_router = None
_toasts: dict[str, ToastDispatcher] = {}
_redirects = None
_wiring_lock = Lock()

# per test department: (pending flag, sent timestamp, completion flag, completion timestamp)
_TEST_TRACKING = {
    OrderDepartment.LABORATORY: (
        'pending_lab_tests', 'sent_to_lab_time', 'lab_tests_completed', 'lab_complete_time',
    ),
    OrderDepartment.RADIOLOGY: (
        'pending_radiology_tests', 'sent_to_radiology_time',
        'radiology_tests_completed', 'radiology_complete_time',
    ),
}


# ---------------------------------------------------------------------------
# wiring
# ---------------------------------------------------------------------------

def get_router() -> NotificationRouter:
    get_orchestrator()
    return _router


def get_orchestrator() -> WorkflowOrchestrator:
    """Process-wide orchestrator on the configured store, publishing to the router."""
    global _orchestrator, _router
    with _wiring_lock:
        if _orchestrator is None:
            store = get_record_store()
            _router = NotificationRouter(store)
            _orchestrator = WorkflowOrchestrator(store)
            _orchestrator.subscribe(_router.notify)
        return _orchestrator


def reset_workflow() -> None:
    global _orchestrator, _router, _redirects
    with _wiring_lock:
        if _redirects is not None:
            _redirects.callbacks.cancel_all()
            _redirects = None
        for dispatcher in _toasts.values():
            dispatcher.reset()
        _toasts.clear()
        _orchestrator = None
        _router = None


def _require(data, *names):
    missing = [name for name in names if not data.get(name)]
    if missing:
        raise ValidationFailed(
            message=f"Missing required fields: {', '.join(missing)}",
            code='MISSING_FIELD',
            detail={'fields': missing},
        )


def _choice(value, choices, field):
    try:
        return choices(value)
    except ValueError:
        raise ValidationFailed(
            message=f"Invalid {field} '{value}'",
            code='INVALID_CHOICE',
            detail={'field': field, 'allowed': list(choices.values)},
        ) from None


# ---------------------------------------------------------------------------
# registration and triage
# ---------------------------------------------------------------------------

def register_patient(data) -> PatientRecord:
    _require(data, 'full_name')
    age = data.get('age')
    if age is not None:
        try:
            age = int(age)
        except (TypeError, ValueError):
            raise ValidationFailed(message=f"Invalid age '{age}'", code='INVALID_AGE') from None

    record = PatientRecord(
        full_name=data['full_name'],
        id_number=data.get('id_number', ''),
        age=age,
        gender=data.get('gender', ''),
        phone_number=data.get('phone_number', ''),
        patient_type=_choice(data.get('patient_type', PatientType.OUTPATIENT), PatientType, 'patient_type'),
    )
    return get_orchestrator().register(record)


def record_vital_signs(patient_id, vitals) -> PatientRecord:
    """
    Classify vitals and store the resulting priority.

    Urgent or critical results raise an alert to the department the patient
    is heading to (or sitting in).
    """
    orchestrator = get_orchestrator()
    priority = classify(vitals)
    record = orchestrator.set_priority(patient_id, priority)

    if priority in (Priority.URGENT, Priority.CRITICAL):
        orchestrator.publish(WorkflowEvent(
            kind=EventKind.URGENT_VITALS,
            patient_id=record.id,
            patient_name=record.full_name,
            patient_priority=priority,
            department_target=record.next_destination or record.current_department,
            message=f"{record.full_name} triaged {priority}",
            occurred_at=orchestrator.clock(),
        ))
    return record


# ---------------------------------------------------------------------------
# laboratory / radiology
# ---------------------------------------------------------------------------

def order_tests(patient_id, data) -> list[WorkflowTestOrder]:
    """
    Place one order per requested test and send them to the target department.

    Ordering is never payment-gated; starting the test is.
    """
    _require(data, 'clinical_info', 'tests', 'return_to_department')
    if not isinstance(data['tests'], (list, tuple)):
        raise ValidationFailed(message="'tests' must be a list", code='INVALID_TESTS')
    department = _choice(data.get('department'), OrderDepartment, 'department')
    priority = _choice(data.get('priority', Priority.NORMAL), Priority, 'priority')

    orchestrator = get_orchestrator()
    store = orchestrator.store
    patient = orchestrator.get_patient(patient_id)
    now = orchestrator.clock()

    orders = []
    for test_type in data['tests']:
        order = store.create_test_order(WorkflowTestOrder(
            patient_id=patient.id,
            test_type=test_type,
            department=department,
            clinical_info=data['clinical_info'],
            return_to_department=data['return_to_department'],
            priority=priority,
            requested_by=data.get('requested_by', ''),
            requested_at=now,
        ))
        orders.append(store.update_test_order(order.id, {
            'transmission_status': TransmissionStatus.SENT,
            'transmission_time': now,
        }))

    pending_flag, sent_time, _, _ = _TEST_TRACKING[department]
    orchestrator.update_parallel_workflow(patient.id, {
        pending_flag: True,
        sent_time: now,
        'return_to_department': data['return_to_department'],
    })
    logger.info("Ordered %d %s tests for patient %s", len(orders), department, patient.id)
    return orders


def receive_test_order(order_id) -> WorkflowTestOrder:
    orchestrator = get_orchestrator()
    order = orchestrator.store.get_test_order(order_id)
    if order.transmission_status in (TransmissionStatus.RECEIVED, TransmissionStatus.COMPLETED):
        return order
    return orchestrator.store.update_test_order(order_id, {
        'transmission_status': TransmissionStatus.RECEIVED,
        'received_time': orchestrator.clock(),
    })


def start_test(order_id) -> WorkflowTestOrder:
    """Begin work on a test order. Requires the test's category to be paid."""
    orchestrator = get_orchestrator()
    order = orchestrator.store.get_test_order(order_id)
    if order.status in (OrderStatus.COMPLETED, OrderStatus.CANCELLED):
        raise InvalidTransition(
            message=f"Test order {order_id} is already {order.status}",
            code='TEST_ORDER_CLOSED',
            detail={'test_id': order_id, 'status': order.status},
        )
    orchestrator.require_paid(order.patient_id, order.department)
    return orchestrator.store.update_test_order(order_id, {
        'status': OrderStatus.IN_PROGRESS,
        'payment_status': PaymentStatus.PAID,
    })


def complete_test_order(order_id, results=None, critical_values=False) -> WorkflowTestOrder:
    """
    Record results for a test order. Idempotent: a completed order is
    returned unchanged and nobody is notified twice.

    When every order of that department is closed the sub-workflow is marked
    complete and the patient is sent back to the department that ordered it.
    """
    orchestrator = get_orchestrator()
    store = orchestrator.store
    order = store.get_test_order(order_id)

    if order.status == OrderStatus.COMPLETED:
        logger.info("Test order %s already completed, skipping", order_id)
        return order
    if order.status == OrderStatus.CANCELLED:
        raise InvalidTransition(
            message=f"Test order {order_id} was cancelled",
            code='TEST_ORDER_CLOSED',
            detail={'test_id': order_id, 'status': order.status},
        )

    return_department = resolve_return_department(order)
    now = orchestrator.clock()
    order = store.update_test_order(order_id, {
        'status': OrderStatus.COMPLETED,
        'transmission_status': TransmissionStatus.COMPLETED,
        'results': results or {},
        'critical_values': bool(critical_values),
        'completed_at': now,
    })

    siblings = store.list_test_orders(patient_id=order.patient_id, department=order.department)
    all_closed = all(o.status in (OrderStatus.COMPLETED, OrderStatus.CANCELLED) for o in siblings)

    patient = orchestrator.get_patient(order.patient_id)
    if all_closed:
        pending_flag, _, done_flag, done_time = _TEST_TRACKING[order.department]
        patient = orchestrator.update_parallel_workflow(order.patient_id, {
            pending_flag: True,
            done_flag: True,
            done_time: now,
        })
        if patient.current_department != return_department:
            patient = orchestrator.move_to_next_department(order.patient_id, return_department)

    orchestrator.publish(WorkflowEvent(
        kind=EventKind.TEST_COMPLETED,
        patient_id=order.patient_id,
        patient_name=patient.full_name,
        patient_priority=patient.priority,
        department_target=return_department,
        test_id=order.id,
        test_department=order.department,
        critical_values=order.critical_values,
        occurred_at=now,
    ))
    logger.info("Test order %s completed (critical=%s)", order_id, order.critical_values)
    return order


# ---------------------------------------------------------------------------
# pharmacy
# ---------------------------------------------------------------------------

def create_prescription(patient_id, data) -> Prescription:
    _require(data, 'medications')
    medications = []
    for item in data['medications']:
        _require(item, 'name')
        try:
            quantity = int(item.get('quantity', 1))
        except (TypeError, ValueError):
            raise ValidationFailed(message="Invalid medication quantity", code='INVALID_QUANTITY') from None
        medications.append(Medication(
            name=item['name'],
            dosage=item.get('dosage', ''),
            frequency=item.get('frequency', ''),
            duration=item.get('duration', ''),
            quantity=quantity,
        ))

    orchestrator = get_orchestrator()
    patient = orchestrator.get_patient(patient_id)
    prescription = orchestrator.store.create_prescription(Prescription(
        patient_id=patient.id,
        medications=medications,
        prescribed_by=data.get('prescribed_by', ''),
        prescribed_at=orchestrator.clock(),
        notes=data.get('notes', ''),
    ))
    orchestrator.update_parallel_workflow(patient.id, {'pending_medications': True})
    logger.info("Prescription %s created for patient %s", prescription.id, patient.id)
    return prescription


def verify_prescription_stock(prescription_id) -> Prescription:
    store = get_orchestrator().store
    prescription = store.get_prescription(prescription_id)
    if prescription.status == PrescriptionStatus.STOCK_VERIFIED:
        return prescription
    if prescription.status != PrescriptionStatus.PENDING:
        raise InvalidTransition(
            message=f"Prescription {prescription_id} is {prescription.status}",
            code='PRESCRIPTION_CLOSED',
            detail={'prescription_id': prescription_id, 'status': prescription.status},
        )
    return store.update_prescription(prescription_id, {'status': PrescriptionStatus.STOCK_VERIFIED})


def dispense_prescription(prescription_id, dispensed_by='') -> Prescription:
    """
    Hand medication over. Requires verified stock and a paid pharmacy line.
    Idempotent: dispensing twice neither re-stamps nor re-notifies.
    """
    orchestrator = get_orchestrator()
    store = orchestrator.store
    prescription = store.get_prescription(prescription_id)

    if prescription.status == PrescriptionStatus.DISPENSED:
        logger.info("Prescription %s already dispensed, skipping", prescription_id)
        return prescription
    if prescription.status != PrescriptionStatus.STOCK_VERIFIED:
        raise InvalidTransition(
            message="stock verification required before dispensing",
            code='STOCK_NOT_VERIFIED',
            detail={'prescription_id': prescription_id, 'status': prescription.status},
        )
    orchestrator.require_paid(prescription.patient_id, Department.PHARMACY)

    now = orchestrator.clock()
    prescription = store.update_prescription(prescription_id, {
        'status': PrescriptionStatus.DISPENSED,
        'payment_status': PaymentStatus.PAID,
        'dispensed_at': now,
        'dispensed_by': dispensed_by,
    })
    patient = orchestrator.update_parallel_workflow(prescription.patient_id, {
        'pending_medications': True,
        'medications_dispensed': True,
        'medication_dispensed_time': now,
    })
    destination = patient.return_to_department or Department.RECEPTION
    if patient.current_department != destination:
        patient = orchestrator.move_to_next_department(patient.id, destination)

    orchestrator.publish(WorkflowEvent(
        kind=EventKind.PRESCRIPTION_READY,
        patient_id=patient.id,
        patient_name=patient.full_name,
        patient_priority=patient.priority,
        department_target=destination,
        prescription_id=prescription.id,
        occurred_at=now,
    ))
    logger.info("Prescription %s dispensed by %s", prescription_id, dispensed_by or 'unknown')
    return prescription


def cancel_prescription(prescription_id) -> Prescription:
    store = get_orchestrator().store
    prescription = store.get_prescription(prescription_id)
    if prescription.status == PrescriptionStatus.DISPENSED:
        raise InvalidTransition(
            message=f"Prescription {prescription_id} was already dispensed",
            code='PRESCRIPTION_CLOSED',
            detail={'prescription_id': prescription_id},
        )
    return store.update_prescription(prescription_id, {'status': PrescriptionStatus.CANCELLED})


# ---------------------------------------------------------------------------
# billing
# ---------------------------------------------------------------------------

def create_invoice(patient_id, data) -> Invoice:
    """Invoice written on behalf of the billing subsystem."""
    _require(data, 'items')
    items = []
    for item in data['items']:
        _require(item, 'service_name')
        try:
            unit_price = Decimal(str(item.get('unit_price', '0')))
            quantity = int(item.get('quantity', 1))
        except (InvalidOperation, TypeError, ValueError):
            raise ValidationFailed(message="Invalid invoice item amount", code='INVALID_AMOUNT') from None
        items.append(InvoiceItem(
            service_name=item['service_name'],
            department=item.get('department', ''),
            category=item.get('category', ''),
            quantity=quantity,
            unit_price=unit_price,
        ))

    orchestrator = get_orchestrator()
    patient = orchestrator.get_patient(patient_id)
    return orchestrator.store.create_invoice(Invoice(
        patient_id=patient.id,
        items=items,
        status=_choice(data.get('status', InvoiceStatus.PENDING), InvoiceStatus, 'status'),
        total_amount=sum((i.unit_price * i.quantity for i in items), Decimal('0')),
        created_at=orchestrator.clock(),
    ))


def request_payment(patient_id) -> PatientRecord:
    """Send a patient who is ready for discharge to the cashier."""
    orchestrator = get_orchestrator()
    orchestrator.transition(patient_id, PatientStatus.AWAITING_PAYMENT)
    return orchestrator.update_parallel_workflow(patient_id, {'pending_payment': True})


def record_payment(patient_id, invoice_id) -> Invoice:
    """
    Payment posted by billing. Marks the invoice paid, closes the billing
    sub-workflow when the patient is at the cashier, and notifies once per
    invoice.
    """
    orchestrator = get_orchestrator()
    store = orchestrator.store
    invoices = {i.id: i for i in store.list_invoices(patient_id)}
    if invoice_id not in invoices:
        raise ValidationFailed(
            message=f"Invoice {invoice_id} does not belong to patient {patient_id}",
            code='INVOICE_MISMATCH',
            detail={'invoice_id': invoice_id, 'patient_id': patient_id},
        )

    now = orchestrator.clock()
    invoice = invoices[invoice_id]
    if invoice.status != InvoiceStatus.PAID:
        invoice = store.update_invoice(invoice_id, {'status': InvoiceStatus.PAID, 'paid_at': now})

    patient = orchestrator.get_patient(patient_id)
    if patient.flags.pending_payment:
        patient = orchestrator.update_parallel_workflow(patient_id, {'payment_completed': True})

    orchestrator.publish(WorkflowEvent(
        kind=EventKind.PAYMENT_POSTED,
        patient_id=patient_id,
        patient_name=patient.full_name,
        patient_priority=patient.priority,
        department_target=patient.current_department,
        invoice_id=invoice_id,
        occurred_at=now,
    ))
    logger.info("Payment posted for invoice %s (patient %s)", invoice_id, patient_id)
    return invoice


def start_payment_redirect(patient_id, invoice_id) -> float:
    """
    Start the countdown on the cashier's payment success screen.

    When it runs out, a patient still at billing goes back to their return
    department, or reception when none is recorded. Returns the countdown in
    seconds.
    """
    redirects = get_payment_redirects()
    redirects.start(invoice_id, functools.partial(_return_from_billing, patient_id))
    return redirects.seconds


def cancel_payment_redirect(invoice_id) -> bool:
    return get_payment_redirects().cancel(invoice_id)


def _return_from_billing(patient_id):
    orchestrator = get_orchestrator()
    patient = orchestrator.get_patient(patient_id)
    if patient.current_department != Department.BILLING:
        return
    destination = patient.return_to_department or Department.RECEPTION
    if destination == Department.BILLING:
        destination = Department.RECEPTION
    orchestrator.move_to_next_department(patient_id, destination)
    logger.info("Patient %s redirected from billing to %s", patient_id, destination)


# ---------------------------------------------------------------------------
# notifications
# ---------------------------------------------------------------------------

def open_notification(notification_id, department=None):
    """
    A viewer acts on a notification: its toast is hidden, it is marked read
    and the place to navigate to is resolved. Returns (notification, target).
    """
    get_toast_dispatcher(department).dismiss(notification_id)
    notification = get_router().mark_read(notification_id)
    patient = None
    if notification.patient_id:
        try:
            patient = get_orchestrator().get_patient(notification.patient_id)
        except NotFound:
            logger.info("Notification %s refers to unknown patient %s", notification_id, notification.patient_id)
    return notification, navigation_target(notification, patient)


# ---------------------------------------------------------------------------
# queries
# ---------------------------------------------------------------------------

def get_journey(patient_id):
    orchestrator = get_orchestrator()
    return orchestrator.analytics.build_journey(orchestrator.get_patient(patient_id))


def get_department_queue(department) -> list[tuple[PatientRecord, int]]:
    """Active patients for ``department`` with their wait in minutes, longest wait first."""
    orchestrator = get_orchestrator()
    patients = orchestrator.store.list_patients(active_only=True)
    now = orchestrator.clock()
    queue = [(p, wait_minutes(p, department, now)) for p in department_queue(patients, department)]
    queue.sort(key=lambda entry: entry[1], reverse=True)
    return queue


def get_paused_workflows(department=None):
    orchestrator = get_orchestrator()
    return orchestrator.analytics.find_paused_workflows(
        orchestrator.store.list_patients(active_only=True), department,
    )


def get_toast_dispatcher(department=None) -> ToastDispatcher:
    """One dispatcher per department board, sharing the router."""
    key = department or '*'
    router = get_router()
    with _wiring_lock:
        dispatcher = _toasts.get(key)
        if dispatcher is None:
            dispatcher = ToastDispatcher(
                router,
                limit=getattr(settings, 'NOTIFICATION_TOAST_LIMIT', 3),
                dismiss_seconds=getattr(settings, 'NOTIFICATION_TOAST_SECONDS', 2),
                department=department,
            )
            _toasts[key] = dispatcher
        return dispatcher


def get_payment_redirects() -> PaymentRedirects:
    """Shared countdowns from payment success screens back to the workflow."""
    global _redirects
    with _wiring_lock:
        if _redirects is None:
            _redirects = PaymentRedirects(seconds=getattr(settings, 'PAYMENT_REDIRECT_SECONDS', 5))
        return _redirects
