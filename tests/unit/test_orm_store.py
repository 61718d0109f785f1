"""
Unit tests for DjangoRecordStore against the test database.

Covers record round-trips, NotFound for malformed ids, status
compare-and-set, notification dedup through the unique key and the mapping
of connection failures to UpstreamUnavailable.
"""
import pytest
from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

from django.db import OperationalError

from patientflow import models
from patientflow.enums import InvoiceStatus, PatientStatus as S
from patientflow.exceptions import NotFound, StaleTransition, UpstreamUnavailable, ValidationFailed
from patientflow.store.orm import DjangoRecordStore
from patientflow.store.types import (
    Invoice, InvoiceItem, Medication, Notification, Prescription, WorkflowTestOrder,
)
from tests.conftest import T0, NotificationFactory, PatientFactory, PatientRecordFactory


@pytest.fixture
def store():
    return DjangoRecordStore()


@pytest.mark.django_db
class TestPatients:

    def test_round_trip(self, store):
        record = PatientRecordFactory.build(previous_departments=['reception'])

        store.create_patient(record)
        fetched = store.get_patient(record.id)

        assert fetched.id == record.id
        assert fetched.full_name == record.full_name
        assert fetched.previous_departments == ['reception']
        assert fetched.timestamps.registration_time == T0

    def test_flat_update(self, store):
        record = store.create_patient(PatientRecordFactory.build())

        updated = store.update_patient(record.id, {
            'status': S.IN_TRIAGE, 'in_triage_time': T0, 'pending_lab_tests': True,
        })

        row = models.Patient.objects.get(pk=record.id)
        assert updated.status == S.IN_TRIAGE
        assert row.in_triage_time == T0
        assert row.pending_lab_tests is True

    def test_compare_and_set(self, store):
        record = store.create_patient(PatientRecordFactory.build())

        with pytest.raises(StaleTransition):
            store.update_patient(record.id, {'status': S.IN_TRIAGE}, expected_status=S.IN_TRIAGE)

        assert models.Patient.objects.get(pk=record.id).status == S.REGISTERED

    def test_set_timestamp_survives_a_later_writer(self, store):
        record = store.create_patient(PatientRecordFactory.build())
        store.update_patient(record.id, {'lab_complete_time': T0})

        store.update_patient(record.id, {'lab_complete_time': T0 + timedelta(minutes=7)})

        assert models.Patient.objects.get(pk=record.id).lab_complete_time == T0

    def test_demographics_rejected(self, store):
        patient = PatientFactory()
        with pytest.raises(ValidationFailed):
            store.update_patient(str(patient.id), {'age': 99})

    @pytest.mark.parametrize('patient_id', ['not-a-uuid', '00000000-0000-0000-0000-000000000000'])
    def test_not_found(self, store, patient_id):
        with pytest.raises(NotFound) as exc_info:
            store.get_patient(patient_id)
        assert exc_info.value.code == 'PATIENT_NOT_FOUND'

    def test_active_only(self, store):
        active = PatientFactory()
        PatientFactory(is_completed=True)
        assert [p.id for p in store.list_patients(active_only=True)] == [str(active.id)]

    def test_connection_failure_is_retryable(self, store):
        with patch.object(models.Patient.objects, 'all', side_effect=OperationalError('server closed')):
            with pytest.raises(UpstreamUnavailable) as exc_info:
                store.list_patients()
        assert exc_info.value.code == 'STORE_UNAVAILABLE'


@pytest.mark.django_db
class TestOrdersAndPrescriptions:

    def test_test_order_round_trip(self, store):
        patient = PatientFactory()
        order = WorkflowTestOrder(
            patient_id=str(patient.id), test_type='CBC', department='laboratory',
            clinical_info='fever', return_to_department='pediatrics',
        )

        store.create_test_order(order)
        updated = store.update_test_order(order.id, {'results': {'wbc': 9.1}, 'status': 'completed'})

        assert updated.results == {'wbc': 9.1}
        assert [o.id for o in store.list_test_orders(str(patient.id), 'laboratory')] == [order.id]
        assert store.list_test_orders(str(patient.id), 'radiology') == []

    def test_prescription_medications_round_trip(self, store):
        patient = PatientFactory()
        prescription = Prescription(
            patient_id=str(patient.id),
            medications=[Medication(name='Paracetamol', dosage='1g', quantity=8)],
        )

        store.create_prescription(prescription)
        fetched = store.get_prescription(prescription.id)

        assert fetched.medications == [Medication(name='Paracetamol', dosage='1g', quantity=8)]

    def test_missing_prescription(self, store):
        with pytest.raises(NotFound) as exc_info:
            store.get_prescription('00000000-0000-0000-0000-000000000001')
        assert exc_info.value.code == 'PRESCRIPTION_NOT_FOUND'


@pytest.mark.django_db
class TestInvoices:

    def test_items_persisted(self, store):
        patient = PatientFactory()
        invoice = Invoice(
            patient_id=str(patient.id),
            total_amount=Decimal('25.00'),
            items=[
                InvoiceItem(service_name='CBC', department='laboratory', unit_price=Decimal('12.50'), quantity=2),
            ],
        )

        store.create_invoice(invoice)
        store.update_invoice(invoice.id, {'status': InvoiceStatus.PAID})
        [fetched] = store.list_invoices(str(patient.id))

        assert fetched.status == InvoiceStatus.PAID
        assert fetched.items[0].unit_price == Decimal('12.50')
        assert fetched.items[0].quantity == 2


@pytest.mark.django_db
class TestNotifications:

    def test_duplicate_dedup_key_returns_existing(self, store):
        first = store.create_notification(
            Notification(type='lab-result', title='t', message='m', timestamp=T0, dedup_key='test-completed:t1')
        )
        second = store.create_notification(
            Notification(type='lab-result', title='t', message='m', timestamp=T0, dedup_key='test-completed:t1')
        )

        assert second.id == first.id
        assert models.Notification.objects.count() == 1

    def test_mark_all_read_by_department(self, store):
        NotificationFactory(department_target='dental')
        NotificationFactory(department_target='cardiology')
        NotificationFactory()

        assert store.mark_all_notifications_read('dental') == 2
        assert models.Notification.objects.filter(read=False).count() == 1
