"""
Django ORM RecordStore: the durable backend (RECORD_STORE=django).

Call bounds come from the database connection (connect_timeout and
statement_timeout in settings.DATABASES); connection-level failures are
mapped to UpstreamUnavailable so callers can retry them.
"""

import logging
import uuid
from contextlib import contextmanager
from dataclasses import asdict

from django.core.exceptions import FieldDoesNotExist, FieldError
from django.db import IntegrityError, InterfaceError, OperationalError, transaction
from django.db.models import Q
from django.utils import timezone

from patientflow import models
from patientflow.exceptions import NotFound, StaleTransition, UpstreamUnavailable, ValidationFailed

from .base import RecordStore
from .types import (
    PatientRecord, WorkflowTimestamps, ParallelFlags, WorkflowTestOrder, Prescription,
    Medication, Invoice, InvoiceItem, Notification,
    TIMESTAMP_FIELDS, FLAG_FIELDS, PATIENT_FIELDS, apply_patient_changes,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# model ↔ record conversion
# ---------------------------------------------------------------------------

def _patient_to_record(m) -> PatientRecord:
    top = {name: getattr(m, name) for name in PATIENT_FIELDS}
    top['previous_departments'] = list(m.previous_departments or [])
    return PatientRecord(
        id=str(m.id),
        timestamps=WorkflowTimestamps(**{name: getattr(m, name) for name in TIMESTAMP_FIELDS}),
        flags=ParallelFlags(**{name: getattr(m, name) for name in FLAG_FIELDS}),
        **top,
    )


def _patient_columns(record: PatientRecord) -> dict:
    columns = {name: getattr(record, name) for name in PATIENT_FIELDS}
    columns.update(asdict(record.timestamps))
    columns.update(asdict(record.flags))
    return columns


def _order_to_record(m) -> WorkflowTestOrder:
    return WorkflowTestOrder(
        id=str(m.id),
        patient_id=str(m.patient_id),
        test_type=m.test_type,
        department=m.department,
        clinical_info=m.clinical_info,
        return_to_department=m.return_to_department,
        status=m.status,
        priority=m.priority,
        requested_by=m.requested_by,
        requested_at=m.requested_at,
        transmission_status=m.transmission_status,
        transmission_time=m.transmission_time,
        received_time=m.received_time,
        payment_status=m.payment_status,
        results=m.results,
        critical_values=m.critical_values,
        completed_at=m.completed_at,
    )


def _prescription_to_record(m) -> Prescription:
    return Prescription(
        id=str(m.id),
        patient_id=str(m.patient_id),
        medications=[Medication(**item) for item in (m.medications or [])],
        status=m.status,
        prescribed_by=m.prescribed_by,
        prescribed_at=m.prescribed_at,
        payment_status=m.payment_status,
        dispensed_at=m.dispensed_at,
        dispensed_by=m.dispensed_by,
        notes=m.notes,
    )


def _invoice_to_record(m) -> Invoice:
    return Invoice(
        id=str(m.id),
        patient_id=str(m.patient_id),
        status=m.status,
        total_amount=m.total_amount,
        created_at=m.created_at,
        paid_at=m.paid_at,
        items=[
            InvoiceItem(
                service_name=item.service_name,
                department=item.department,
                category=item.category,
                quantity=item.quantity,
                unit_price=item.unit_price,
                status=item.status,
            )
            for item in m.items.all()
        ],
    )


def _notification_to_record(m) -> Notification:
    return Notification(
        id=str(m.id),
        type=m.type,
        title=m.title,
        message=m.message,
        timestamp=m.timestamp,
        read=m.read,
        priority=m.priority,
        action=m.action,
        patient_id=m.patient_id,
        test_id=m.test_id,
        prescription_id=m.prescription_id,
        invoice_id=m.invoice_id,
        department_target=m.department_target,
        dedup_key=m.dedup_key,
    )


def _notification_columns(n: Notification) -> dict:
    columns = asdict(n)
    columns.pop('id')
    return columns


class DjangoRecordStore(RecordStore):

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _guard(self):
        try:
            yield
        except (OperationalError, InterfaceError) as exc:
            logger.warning("Record store unavailable: %s", exc)
            raise UpstreamUnavailable(
                message="Record store is unavailable",
                code='STORE_UNAVAILABLE',
                detail={'error': str(exc)},
            ) from exc

    @staticmethod
    def _pk(value, label):
        try:
            return uuid.UUID(str(value))
        except ValueError:
            raise NotFound(
                message=f"{label} {value} not found",
                code=f"{label.upper().replace(' ', '_')}_NOT_FOUND",
                detail={'id': str(value)},
            ) from None

    def _get_model(self, model, pk, label, queryset=None):
        qs = queryset if queryset is not None else model.objects.all()
        obj = qs.filter(pk=self._pk(pk, label)).first()
        if obj is None:
            raise NotFound(
                message=f"{label} {pk} not found",
                code=f"{label.upper().replace(' ', '_')}_NOT_FOUND",
                detail={'id': str(pk)},
            )
        return obj

    def _update_model(self, model, pk, label, changes):
        self._get_model(model, pk, label)
        try:
            model.objects.filter(pk=self._pk(pk, label)).update(**changes)
        except (FieldDoesNotExist, FieldError) as exc:
            raise ValidationFailed(message=f"Unknown field in update: {exc}", code='UNKNOWN_FIELD') from exc

    # ------------------------------------------------------------------
    # patients
    # ------------------------------------------------------------------

    def create_patient(self, record):
        with self._guard():
            m = models.Patient.objects.create(id=uuid.UUID(record.id), **_patient_columns(record))
            return _patient_to_record(m)

    def get_patient(self, patient_id):
        with self._guard():
            return _patient_to_record(self._get_model(models.Patient, patient_id, 'Patient'))

    def list_patients(self, status=None, current_department=None, active_only=False):
        with self._guard():
            qs = models.Patient.objects.all()
            if status is not None:
                qs = qs.filter(status=status)
            if current_department is not None:
                qs = qs.filter(current_department=current_department)
            if active_only:
                qs = qs.filter(is_completed=False)
            return [_patient_to_record(m) for m in qs.order_by('registration_time', 'created_at')]

    def update_patient(self, patient_id, changes, expected_status=None):
        with self._guard(), transaction.atomic():
            m = self._get_model(
                models.Patient, patient_id, 'Patient',
                queryset=models.Patient.objects.select_for_update(),
            )
            if expected_status is not None and m.status != expected_status:
                raise StaleTransition(
                    message=f"Patient {patient_id} is '{m.status}', expected '{expected_status}'",
                    detail={'current_status': m.status, 'expected_status': expected_status},
                )
            updated = apply_patient_changes(_patient_to_record(m), changes)
            # compare-and-set on the status we just read
            rows = models.Patient.objects.filter(pk=m.pk, status=m.status).update(
                updated_at=timezone.now(), **_patient_columns(updated)
            )
            if rows == 0:
                raise StaleTransition(
                    message=f"Patient {patient_id} changed while being updated",
                    detail={'expected_status': m.status},
                )
            return updated

    # ------------------------------------------------------------------
    # test orders
    # ------------------------------------------------------------------

    def create_test_order(self, order):
        with self._guard():
            data = asdict(order)
            data.pop('id')
            data['patient_id'] = self._pk(data['patient_id'], 'Patient')
            m = models.Order.objects.create(id=uuid.UUID(order.id), **data)
            return _order_to_record(m)

    def get_test_order(self, order_id):
        with self._guard():
            return _order_to_record(self._get_model(models.Order, order_id, 'Test order'))

    def list_test_orders(self, patient_id=None, department=None):
        with self._guard():
            qs = models.Order.objects.all()
            if patient_id is not None:
                qs = qs.filter(patient_id=self._pk(patient_id, 'Patient'))
            if department is not None:
                qs = qs.filter(department=department)
            return [_order_to_record(m) for m in qs.order_by('created_at')]

    def update_test_order(self, order_id, changes):
        with self._guard():
            self._update_model(models.Order, order_id, 'Test order', changes)
            return self.get_test_order(order_id)

    # ------------------------------------------------------------------
    # prescriptions
    # ------------------------------------------------------------------

    def create_prescription(self, prescription):
        with self._guard():
            m = models.Prescription.objects.create(
                id=uuid.UUID(prescription.id),
                patient_id=self._pk(prescription.patient_id, 'Patient'),
                medications=[asdict(item) for item in prescription.medications],
                status=prescription.status,
                prescribed_by=prescription.prescribed_by,
                prescribed_at=prescription.prescribed_at,
                payment_status=prescription.payment_status,
                dispensed_at=prescription.dispensed_at,
                dispensed_by=prescription.dispensed_by,
                notes=prescription.notes,
            )
            return _prescription_to_record(m)

    def get_prescription(self, prescription_id):
        with self._guard():
            return _prescription_to_record(
                self._get_model(models.Prescription, prescription_id, 'Prescription')
            )

    def list_prescriptions(self, patient_id=None):
        with self._guard():
            qs = models.Prescription.objects.all()
            if patient_id is not None:
                qs = qs.filter(patient_id=self._pk(patient_id, 'Patient'))
            return [_prescription_to_record(m) for m in qs.order_by('created_at')]

    def update_prescription(self, prescription_id, changes):
        changes = dict(changes)
        if 'medications' in changes:
            changes['medications'] = [asdict(item) for item in changes['medications']]
        with self._guard():
            self._update_model(models.Prescription, prescription_id, 'Prescription', changes)
            return self.get_prescription(prescription_id)

    # ------------------------------------------------------------------
    # invoices
    # ------------------------------------------------------------------

    def create_invoice(self, invoice):
        with self._guard(), transaction.atomic():
            m = models.Invoice.objects.create(
                id=uuid.UUID(invoice.id),
                patient_id=self._pk(invoice.patient_id, 'Patient'),
                status=invoice.status,
                total_amount=invoice.total_amount,
                paid_at=invoice.paid_at,
            )
            models.InvoiceItem.objects.bulk_create([
                models.InvoiceItem(invoice=m, **asdict(item)) for item in invoice.items
            ])
            return _invoice_to_record(m)

    def list_invoices(self, patient_id):
        with self._guard():
            qs = (
                models.Invoice.objects
                .filter(patient_id=self._pk(patient_id, 'Patient'))
                .prefetch_related('items')
                .order_by('created_at')
            )
            return [_invoice_to_record(m) for m in qs]

    def update_invoice(self, invoice_id, changes):
        with self._guard():
            self._update_model(models.Invoice, invoice_id, 'Invoice', changes)
            return _invoice_to_record(self._get_model(models.Invoice, invoice_id, 'Invoice'))

    # ------------------------------------------------------------------
    # notifications
    # ------------------------------------------------------------------

    def create_notification(self, notification):
        with self._guard():
            try:
                with transaction.atomic():
                    m = models.Notification.objects.create(
                        id=uuid.UUID(notification.id), **_notification_columns(notification)
                    )
            except IntegrityError:
                existing = (
                    self.find_notification(notification.dedup_key)
                    if notification.dedup_key else None
                )
                if existing is None:
                    raise
                logger.debug("Notification %s already exists, skipping", notification.dedup_key)
                return existing
            return _notification_to_record(m)

    def get_notification(self, notification_id):
        with self._guard():
            return _notification_to_record(
                self._get_model(models.Notification, notification_id, 'Notification')
            )

    def find_notification(self, dedup_key):
        with self._guard():
            m = models.Notification.objects.filter(dedup_key=dedup_key).first()
            return _notification_to_record(m) if m is not None else None

    def list_notifications(self):
        with self._guard():
            return [_notification_to_record(m) for m in models.Notification.objects.all()]

    def update_notification(self, notification_id, changes):
        with self._guard():
            self._update_model(models.Notification, notification_id, 'Notification', changes)
            return self.get_notification(notification_id)

    def mark_all_notifications_read(self, department=None):
        with self._guard():
            qs = models.Notification.objects.filter(read=False)
            if department is not None:
                qs = qs.filter(Q(department_target=department) | Q(department_target__isnull=True))
            return qs.update(read=True)

    def delete_notifications(self):
        with self._guard():
            count, _ = models.Notification.objects.all().delete()
            return count
