"""
Unit tests for the service layer, run on the in-memory store.

Covers: registration, vital signs, test ordering / start / completion,
prescriptions, billing, queue and paused-work queries. Each flow checks both
the record written and the notifications raised.
"""
import pytest
from datetime import timedelta
from decimal import Decimal

from patientflow import services
from patientflow.enums import (
    Department, NotificationType, OrderStatus, PatientStatus as S, PrescriptionStatus,
    Priority, TransmissionStatus,
)
from patientflow.exceptions import (
    InvalidTransition, NotFound, PaymentRequired, ValidationFailed,
)
from patientflow.notifications.dispatcher import PaymentRedirects
from patientflow.notifications.scheduling import ScheduledCallbacks
from patientflow.notifications.types import EventKind, WorkflowEvent
from patientflow.store.types import WorkflowTimestamps
from tests.conftest import CONSULTATION_PATH, ManualScheduler, paid_invoice


def lab_order_payload(**kwargs):
    payload = {
        'clinical_info': 'Fever, suspected malaria',
        'tests': ['Malaria RDT'],
        'department': 'laboratory',
        'return_to_department': Department.GENERAL_CONSULTATION,
        'requested_by': 'Dr. Owusu',
    }
    payload.update(kwargs)
    return payload


# -------------------------------------------------------------------
# Registration and triage
# -------------------------------------------------------------------

class TestRegisterPatient:

    def test_registers_at_reception(self, workflow, clock):
        record = services.register_patient({'full_name': 'Kofi Mensah', 'age': '42'})

        assert record.status == S.REGISTERED
        assert record.age == 42
        assert record.current_department == Department.RECEPTION
        assert record.timestamps.registration_time == clock.now

    def test_missing_name(self, workflow):
        with pytest.raises(ValidationFailed) as exc_info:
            services.register_patient({'age': 3})
        assert exc_info.value.code == 'MISSING_FIELD'
        assert exc_info.value.detail == {'fields': ['full_name']}

    def test_bad_age(self, workflow):
        with pytest.raises(ValidationFailed) as exc_info:
            services.register_patient({'full_name': 'A', 'age': 'old'})
        assert exc_info.value.code == 'INVALID_AGE'

    def test_bad_patient_type(self, workflow):
        with pytest.raises(ValidationFailed) as exc_info:
            services.register_patient({'full_name': 'A', 'patient_type': 'tourist'})
        assert exc_info.value.code == 'INVALID_CHOICE'


class TestRecordVitalSigns:

    def test_critical_vitals_alert_destination(self, workflow, make_patient, router):
        patient = make_patient()
        workflow.set_next_destination(patient.id, Department.CARDIOLOGY)

        record = services.record_vital_signs(patient.id, {'blood_pressure': '190/125'})

        assert record.priority == Priority.CRITICAL
        [alert] = router.feed()
        assert alert.type == NotificationType.URGENT
        assert alert.department_target == Department.CARDIOLOGY

    def test_normal_vitals_stay_quiet(self, workflow, make_patient, router):
        patient = make_patient()
        record = services.record_vital_signs(patient.id, {'blood_pressure': '118/76', 'pulse_rate': 70})

        assert record.priority == Priority.NORMAL
        assert router.feed() == []

    def test_garbage_vitals_do_not_raise(self, workflow, make_patient):
        patient = make_patient()
        assert services.record_vital_signs(patient.id, {'blood_pressure': '??'}).priority == Priority.NORMAL


# -------------------------------------------------------------------
# Laboratory / radiology
# -------------------------------------------------------------------

class TestOrderTests:

    def test_orders_are_sent_and_tracked(self, workflow, make_patient, clock):
        patient = make_patient(S.IN_CONSULTATION, CONSULTATION_PATH)

        orders = services.order_tests(patient.id, lab_order_payload(tests=['CBC', 'Malaria RDT']))

        assert [o.test_type for o in orders] == ['CBC', 'Malaria RDT']
        assert all(o.transmission_status == TransmissionStatus.SENT for o in orders)
        record = workflow.get_patient(patient.id)
        assert record.status == S.IN_CONSULTATION
        assert record.flags.pending_lab_tests is True
        assert record.timestamps.sent_to_lab_time == clock.now
        assert record.return_to_department == Department.GENERAL_CONSULTATION

    def test_ordering_is_not_payment_gated(self, workflow, make_patient):
        patient = make_patient()
        assert services.order_tests(patient.id, lab_order_payload(department='radiology'))

    @pytest.mark.parametrize('payload, code', [
        (lab_order_payload(clinical_info=''), 'MISSING_FIELD'),
        (lab_order_payload(tests='CBC'), 'INVALID_TESTS'),
        (lab_order_payload(department='pharmacy'), 'INVALID_CHOICE'),
        (lab_order_payload(priority='whenever'), 'INVALID_CHOICE'),
    ])
    def test_validation(self, workflow, make_patient, payload, code):
        patient = make_patient()
        with pytest.raises(ValidationFailed) as exc_info:
            services.order_tests(patient.id, payload)
        assert exc_info.value.code == code

    def test_unknown_patient(self, workflow):
        with pytest.raises(NotFound):
            services.order_tests('missing', lab_order_payload())


class TestStartAndReceiveTest:

    def test_receive_is_idempotent(self, workflow, make_patient, clock):
        patient = make_patient()
        [order] = services.order_tests(patient.id, lab_order_payload())

        received = services.receive_test_order(order.id)
        clock.advance(minutes=5)
        again = services.receive_test_order(order.id)

        assert received.transmission_status == TransmissionStatus.RECEIVED
        assert again.received_time == received.received_time

    def test_start_requires_payment(self, workflow, make_patient, memory_store):
        patient = make_patient()
        [order] = services.order_tests(patient.id, lab_order_payload())

        with pytest.raises(PaymentRequired):
            services.start_test(order.id)

        memory_store.create_invoice(paid_invoice(patient.id, Department.LABORATORY))
        assert services.start_test(order.id).status == OrderStatus.IN_PROGRESS


class TestCompleteTestOrder:

    def test_completion_returns_patient_and_notifies(self, workflow, make_patient, router, clock):
        patient = make_patient()
        [order] = services.order_tests(patient.id, lab_order_payload())
        workflow.move_to_next_department(patient.id, Department.LABORATORY)
        clock.advance(minutes=40)

        done = services.complete_test_order(order.id, {'rdt': 'negative'})

        assert done.status == OrderStatus.COMPLETED
        assert done.results == {'rdt': 'negative'}
        record = workflow.get_patient(patient.id)
        assert record.flags.lab_tests_completed is True
        assert record.timestamps.lab_complete_time == clock.now
        assert record.current_department == Department.GENERAL_CONSULTATION
        assert Department.LABORATORY in record.previous_departments

        [n] = router.feed(Department.GENERAL_CONSULTATION)
        assert n.type == NotificationType.LAB_RESULT
        assert n.test_id == order.id

    def test_return_department_captured_at_order_time(self, workflow, make_patient):
        patient = make_patient()
        [order] = services.order_tests(patient.id, lab_order_payload(return_to_department=Department.PEDIATRICS))
        workflow.move_to_next_department(patient.id, Department.DENTAL)

        services.complete_test_order(order.id)

        assert workflow.get_patient(patient.id).current_department == Department.PEDIATRICS

    def test_completing_twice_is_a_noop(self, workflow, make_patient, router, clock):
        patient = make_patient()
        [order] = services.order_tests(patient.id, lab_order_payload())
        services.complete_test_order(order.id, {'a': 1})
        stamped = workflow.get_patient(patient.id).timestamps.lab_complete_time
        clock.advance(minutes=10)

        again = services.complete_test_order(order.id, {'a': 2})

        assert again.results == {'a': 1}
        assert workflow.get_patient(patient.id).timestamps.lab_complete_time == stamped
        assert len(router.feed()) == 1

    def test_subworkflow_completes_with_last_order(self, workflow, make_patient, router):
        patient = make_patient()
        first, second = services.order_tests(patient.id, lab_order_payload(tests=['CBC', 'LFT']))

        services.complete_test_order(first.id)
        assert workflow.get_patient(patient.id).flags.lab_tests_completed is False

        services.complete_test_order(second.id)
        assert workflow.get_patient(patient.id).flags.lab_tests_completed is True
        assert len(router.feed()) == 2

    def test_critical_values_escalate_notification(self, workflow, make_patient, router):
        patient = make_patient()
        [order] = services.order_tests(patient.id, lab_order_payload(department='radiology'))

        services.complete_test_order(order.id, {'finding': 'pneumothorax'}, critical_values=True)

        [n] = router.feed()
        assert n.type == NotificationType.RADIOLOGY_RESULT
        assert n.priority == 'high'
        assert workflow.get_patient(patient.id).flags.radiology_tests_completed is True

    def test_cancelled_order_cannot_complete(self, workflow, make_patient, memory_store):
        patient = make_patient()
        [order] = services.order_tests(patient.id, lab_order_payload())
        memory_store.update_test_order(order.id, {'status': OrderStatus.CANCELLED})

        with pytest.raises(InvalidTransition) as exc_info:
            services.complete_test_order(order.id)
        assert exc_info.value.code == 'TEST_ORDER_CLOSED'


# -------------------------------------------------------------------
# Pharmacy
# -------------------------------------------------------------------

class TestPrescriptions:

    def _prescribe(self, patient_id):
        return services.create_prescription(patient_id, {
            'medications': [{'name': 'Artemether', 'dosage': '20mg', 'quantity': '6'}],
            'prescribed_by': 'Dr. Owusu',
        })

    def test_create_marks_pending(self, workflow, make_patient):
        patient = make_patient()
        prescription = self._prescribe(patient.id)

        assert prescription.medications[0].quantity == 6
        assert workflow.get_patient(patient.id).flags.pending_medications is True

    def test_medication_name_required(self, workflow, make_patient):
        patient = make_patient()
        with pytest.raises(ValidationFailed):
            services.create_prescription(patient.id, {'medications': [{'dosage': '1g'}]})

    def test_dispense_requires_stock_verification(self, workflow, make_patient):
        patient = make_patient()
        prescription = self._prescribe(patient.id)

        with pytest.raises(InvalidTransition) as exc_info:
            services.dispense_prescription(prescription.id)

        assert exc_info.value.code == 'STOCK_NOT_VERIFIED'
        assert exc_info.value.message == 'stock verification required before dispensing'

    def test_dispense_requires_payment(self, workflow, make_patient):
        patient = make_patient()
        prescription = self._prescribe(patient.id)
        services.verify_prescription_stock(prescription.id)

        with pytest.raises(PaymentRequired):
            services.dispense_prescription(prescription.id)

    def test_dispense_completes_pharmacy_and_notifies(self, workflow, make_patient, memory_store, router, clock):
        patient = make_patient()
        workflow.update_parallel_workflow(patient.id, {'return_to_department': Department.CARDIOLOGY})
        workflow.move_to_next_department(patient.id, Department.PHARMACY)
        prescription = self._prescribe(patient.id)
        services.verify_prescription_stock(prescription.id)
        memory_store.create_invoice(paid_invoice(patient.id, Department.PHARMACY))

        dispensed = services.dispense_prescription(prescription.id, 'Pharm. Adjei')

        assert dispensed.status == PrescriptionStatus.DISPENSED
        assert dispensed.dispensed_by == 'Pharm. Adjei'
        record = workflow.get_patient(patient.id)
        assert record.flags.medications_dispensed is True
        assert record.timestamps.medication_dispensed_time == clock.now
        assert record.current_department == Department.CARDIOLOGY
        [n] = router.feed(Department.CARDIOLOGY)
        assert n.type == NotificationType.PRESCRIPTION

        clock.advance(minutes=3)
        again = services.dispense_prescription(prescription.id, 'someone else')
        assert again.dispensed_by == 'Pharm. Adjei'
        assert len(router.feed()) == 1

    def test_dispense_without_return_department_goes_to_reception(self, workflow, make_patient, memory_store):
        patient = make_patient()
        workflow.move_to_next_department(patient.id, Department.PHARMACY)
        prescription = self._prescribe(patient.id)
        services.verify_prescription_stock(prescription.id)
        memory_store.create_invoice(paid_invoice(patient.id, '', category='medication'))

        services.dispense_prescription(prescription.id)

        assert workflow.get_patient(patient.id).current_department == Department.RECEPTION

    def test_cannot_cancel_dispensed(self, workflow, make_patient, memory_store):
        patient = make_patient()
        prescription = self._prescribe(patient.id)
        memory_store.update_prescription(prescription.id, {'status': PrescriptionStatus.DISPENSED})

        with pytest.raises(InvalidTransition) as exc_info:
            services.cancel_prescription(prescription.id)
        assert exc_info.value.code == 'PRESCRIPTION_CLOSED'

    def test_cancelled_prescription_cannot_be_verified(self, workflow, make_patient):
        patient = make_patient()
        prescription = self._prescribe(patient.id)
        services.cancel_prescription(prescription.id)

        with pytest.raises(InvalidTransition):
            services.verify_prescription_stock(prescription.id)


# -------------------------------------------------------------------
# Billing
# -------------------------------------------------------------------

class TestBilling:

    def test_create_invoice_totals_items(self, workflow, make_patient):
        patient = make_patient()
        invoice = services.create_invoice(patient.id, {'items': [
            {'service_name': 'CBC', 'department': 'laboratory', 'unit_price': '12.50', 'quantity': 2},
            {'service_name': 'Consult', 'unit_price': 30},
        ]})
        assert invoice.total_amount == Decimal('55.00')

    def test_invalid_amount(self, workflow, make_patient):
        patient = make_patient()
        with pytest.raises(ValidationFailed) as exc_info:
            services.create_invoice(patient.id, {'items': [{'service_name': 'X', 'unit_price': 'free'}]})
        assert exc_info.value.code == 'INVALID_AMOUNT'

    def test_payment_unlocks_gate(self, workflow, make_patient):
        patient = make_patient()
        invoice = services.create_invoice(patient.id, {'items': [
            {'service_name': 'CBC', 'department': 'laboratory', 'unit_price': '10'},
        ]})
        assert workflow.payment_gate.is_paid(patient.id, 'laboratory') is False

        services.record_payment(patient.id, invoice.id)

        assert workflow.payment_gate.is_paid(patient.id, 'laboratory') is True

    def test_payment_closes_billing_subworkflow(self, workflow, make_patient, memory_store, router):
        patient = make_patient()
        memory_store.update_patient(patient.id, {'status': S.READY_FOR_DISCHARGE})
        services.request_payment(patient.id)
        invoice = services.create_invoice(patient.id, {'items': [{'service_name': 'Consult', 'unit_price': 30}]})

        services.record_payment(patient.id, invoice.id)
        services.record_payment(patient.id, invoice.id)

        record = workflow.get_patient(patient.id)
        assert record.status == S.AWAITING_PAYMENT
        assert record.flags.payment_completed is True
        assert len(router.feed(view='all', types=[NotificationType.PAYMENT])) == 1

    def test_invoice_must_belong_to_patient(self, workflow, make_patient):
        a, b = make_patient(), make_patient()
        invoice = services.create_invoice(a.id, {'items': [{'service_name': 'X', 'unit_price': 1}]})

        with pytest.raises(ValidationFailed) as exc_info:
            services.record_payment(b.id, invoice.id)
        assert exc_info.value.code == 'INVOICE_MISMATCH'

    def test_request_payment_requires_ready_for_discharge(self, workflow, make_patient):
        patient = make_patient()
        with pytest.raises(InvalidTransition):
            services.request_payment(patient.id)


# -------------------------------------------------------------------
# Payment redirect and opening notifications
# -------------------------------------------------------------------

@pytest.fixture
def redirect_scheduler(monkeypatch, workflow):
    scheduler = ManualScheduler()
    monkeypatch.setattr(
        services, '_redirects', PaymentRedirects(ScheduledCallbacks(scheduler), seconds=5),
    )
    return scheduler


class TestPaymentRedirect:

    def _paid_at_billing(self, workflow, make_patient, return_to=Department.GENERAL_CONSULTATION):
        patient = make_patient()
        workflow.update_parallel_workflow(patient.id, {'return_to_department': return_to})
        workflow.move_to_next_department(patient.id, Department.BILLING)
        invoice = services.create_invoice(patient.id, {'items': [{'service_name': 'Consult', 'unit_price': 30}]})
        services.record_payment(patient.id, invoice.id)
        return patient, invoice

    def test_countdown_returns_patient_to_department(self, workflow, make_patient, redirect_scheduler):
        patient, invoice = self._paid_at_billing(workflow, make_patient)

        assert services.start_payment_redirect(patient.id, invoice.id) == 5
        redirect_scheduler.advance(4)
        assert workflow.get_patient(patient.id).current_department == Department.BILLING

        redirect_scheduler.advance(1)
        assert workflow.get_patient(patient.id).current_department == Department.GENERAL_CONSULTATION

    def test_without_return_department_goes_to_reception(self, workflow, make_patient, redirect_scheduler):
        patient, invoice = self._paid_at_billing(workflow, make_patient, return_to=None)

        services.start_payment_redirect(patient.id, invoice.id)
        redirect_scheduler.advance(5)

        assert workflow.get_patient(patient.id).current_department == Department.RECEPTION

    def test_cancel_keeps_patient_at_billing(self, workflow, make_patient, redirect_scheduler):
        patient, invoice = self._paid_at_billing(workflow, make_patient)
        services.start_payment_redirect(patient.id, invoice.id)

        assert services.cancel_payment_redirect(invoice.id) is True
        redirect_scheduler.advance(10)

        assert workflow.get_patient(patient.id).current_department == Department.BILLING

    def test_patient_already_moved_is_left_alone(self, workflow, make_patient, redirect_scheduler):
        patient, invoice = self._paid_at_billing(workflow, make_patient)
        services.start_payment_redirect(patient.id, invoice.id)
        workflow.move_to_next_department(patient.id, Department.PHARMACY)

        redirect_scheduler.advance(5)

        assert workflow.get_patient(patient.id).current_department == Department.PHARMACY


class TestOpenNotification:

    def test_marks_read_and_resolves_patient_department(self, workflow, make_patient, router):
        patient = make_patient()
        workflow.move_to_next_department(patient.id, Department.CARDIOLOGY)
        n = router.notify(WorkflowEvent(
            kind=EventKind.TEST_COMPLETED, patient_id=patient.id, test_id='t1',
            department_target=Department.CARDIOLOGY,
        ))

        notification, target = services.open_notification(n.id)

        assert notification.read is True
        assert target.section == 'consultation'
        assert target.department == Department.CARDIOLOGY
        assert target.patient_id == patient.id

    def test_unknown_patient_falls_back(self, workflow, router):
        n = router.notify(WorkflowEvent(kind=EventKind.TEST_COMPLETED, patient_id='gone', test_id='t2'))

        _, target = services.open_notification(n.id)

        assert target.section == 'patient-management'

    def test_unknown_notification(self, workflow):
        with pytest.raises(NotFound):
            services.open_notification('missing')


# -------------------------------------------------------------------
# Queries
# -------------------------------------------------------------------

class TestQueries:

    def test_queue_longest_wait_first(self, workflow, make_patient, clock):
        first = make_patient()
        clock.advance(minutes=10)
        second = make_patient(timestamps=WorkflowTimestamps())
        workflow.move_to_next_department(first.id, Department.TRIAGE)
        workflow.move_to_next_department(second.id, Department.TRIAGE)
        clock.advance(minutes=5)

        queue = services.get_department_queue(Department.TRIAGE)

        assert [(r.id, wait) for r, wait in queue] == [(first.id, 15), (second.id, 5)]

    def test_paused_lab_work_listed(self, workflow, make_patient, memory_store, clock):
        patient = make_patient(S.IN_CONSULTATION, CONSULTATION_PATH)
        memory_store.update_patient(patient.id, {'in_lab_time': clock.now - timedelta(minutes=3)})

        paused = services.get_paused_workflows(Department.LABORATORY)

        assert [(p.patient_id, p.stage) for p in paused] == [(patient.id, 'laboratory')]

    def test_journey(self, workflow, make_patient):
        patient = make_patient(S.IN_TRIAGE, [S.IN_TRIAGE])
        journey = services.get_journey(patient.id)
        assert journey.current_stage == 'triage'


class TestWiring:

    def test_payment_redirects_use_settings(self, settings):
        settings.PAYMENT_REDIRECT_SECONDS = 7
        services.reset_workflow()
        try:
            assert services.get_payment_redirects().seconds == 7
            assert services.get_payment_redirects() is services.get_payment_redirects()
        finally:
            services.reset_workflow()

    def test_toast_dispatcher_per_department(self, workflow, settings):
        settings.NOTIFICATION_TOAST_LIMIT = 2
        cardiology = services.get_toast_dispatcher(Department.CARDIOLOGY)

        assert cardiology is services.get_toast_dispatcher(Department.CARDIOLOGY)
        assert cardiology is not services.get_toast_dispatcher()
        assert cardiology.limit == 2
        assert cardiology.department == Department.CARDIOLOGY
