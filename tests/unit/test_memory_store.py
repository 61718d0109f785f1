"""
Unit tests for InMemoryRecordStore.

Covers copy isolation, status compare-and-set, flat patient updates,
bounded lock acquisition and notification dedup.
"""
import pytest
from datetime import timedelta

from patientflow.enums import Department, PatientStatus as S
from patientflow.exceptions import NotFound, StaleTransition, UpstreamUnavailable, ValidationFailed
from patientflow.store.memory import InMemoryRecordStore
from patientflow.store.types import Notification, WorkflowTestOrder
from tests.conftest import T0, PatientRecordFactory


class TestPatients:

    def test_reads_are_copies(self, memory_store):
        record = memory_store.create_patient(PatientRecordFactory.build())

        record.previous_departments.append('tampered')
        fetched = memory_store.get_patient(record.id)
        fetched.flags.pending_lab_tests = True

        again = memory_store.get_patient(record.id)
        assert again.previous_departments == []
        assert again.flags.pending_lab_tests is False

    def test_flat_update_reaches_nested_records(self, memory_store):
        record = memory_store.create_patient(PatientRecordFactory.build())

        updated = memory_store.update_patient(record.id, {
            'status': S.IN_TRIAGE,
            'in_triage_time': T0,
            'pending_lab_tests': True,
        })

        assert updated.status == S.IN_TRIAGE
        assert updated.timestamps.in_triage_time == T0
        assert updated.flags.pending_lab_tests is True

    def test_compare_and_set_rejects_stale_status(self, memory_store):
        record = memory_store.create_patient(PatientRecordFactory.build())

        with pytest.raises(StaleTransition):
            memory_store.update_patient(record.id, {'status': S.IN_TRIAGE}, expected_status=S.ACTIVATED)

        assert memory_store.get_patient(record.id).status == S.REGISTERED

    def test_set_timestamp_is_never_replaced(self, memory_store):
        record = memory_store.create_patient(PatientRecordFactory.build())
        memory_store.update_patient(record.id, {'lab_complete_time': T0})

        updated = memory_store.update_patient(record.id, {
            'lab_complete_time': T0 + timedelta(minutes=7),
            'lab_tests_completed': True,
        })

        assert updated.timestamps.lab_complete_time == T0
        assert updated.flags.lab_tests_completed is True
        assert memory_store.get_patient(record.id).timestamps.lab_complete_time == T0

    def test_demographics_are_immutable(self, memory_store):
        record = memory_store.create_patient(PatientRecordFactory.build())
        with pytest.raises(ValidationFailed) as exc_info:
            memory_store.update_patient(record.id, {'full_name': 'Someone Else'})
        assert exc_info.value.code == 'IMMUTABLE_FIELD'

    def test_unknown_field(self, memory_store):
        record = memory_store.create_patient(PatientRecordFactory.build())
        with pytest.raises(ValidationFailed) as exc_info:
            memory_store.update_patient(record.id, {'shoe_size': 44})
        assert exc_info.value.code == 'UNKNOWN_FIELD'

    def test_missing_patient(self, memory_store):
        with pytest.raises(NotFound) as exc_info:
            memory_store.get_patient('nope')
        assert exc_info.value.code == 'PATIENT_NOT_FOUND'

    def test_list_filters(self, memory_store):
        a = memory_store.create_patient(PatientRecordFactory.build(current_department=Department.TRIAGE))
        memory_store.create_patient(PatientRecordFactory.build(is_completed=True))

        assert [p.id for p in memory_store.list_patients(current_department=Department.TRIAGE)] == [a.id]
        assert [p.id for p in memory_store.list_patients(active_only=True)] == [a.id]


class TestLockTimeout:

    def test_held_lock_times_out(self):
        store = InMemoryRecordStore(timeout=0.05)
        store._lock.acquire()
        try:
            with pytest.raises(UpstreamUnavailable) as exc_info:
                store.list_patients()
        finally:
            store._lock.release()

        assert exc_info.value.code == 'STORE_TIMEOUT'
        assert exc_info.value.retryable is True


class TestTestOrders:

    def test_missing_order_code(self, memory_store):
        with pytest.raises(NotFound) as exc_info:
            memory_store.get_test_order('x')
        assert exc_info.value.code == 'TEST_ORDER_NOT_FOUND'

    def test_list_by_department(self, memory_store):
        lab = WorkflowTestOrder(
            patient_id='p1', test_type='CBC', department='laboratory',
            clinical_info='x', return_to_department='cardiology',
        )
        xray = WorkflowTestOrder(
            patient_id='p1', test_type='CXR', department='radiology',
            clinical_info='x', return_to_department='cardiology',
        )
        memory_store.create_test_order(lab)
        memory_store.create_test_order(xray)

        assert [o.id for o in memory_store.list_test_orders('p1', 'radiology')] == [xray.id]


class TestNotifications:

    def test_same_dedup_key_stored_once(self, memory_store):
        first = memory_store.create_notification(
            Notification(type='lab-result', title='t', message='m', dedup_key='test-completed:t1')
        )
        second = memory_store.create_notification(
            Notification(type='lab-result', title='t', message='m', dedup_key='test-completed:t1')
        )

        assert second.id == first.id
        assert memory_store.find_notification('test-completed:t1').id == first.id
        assert len(memory_store.list_notifications()) == 1

    def test_notifications_without_key_never_collapse(self, memory_store):
        memory_store.create_notification(Notification(type='urgent', title='t', message='m'))
        memory_store.create_notification(Notification(type='urgent', title='t', message='m'))
        assert len(memory_store.list_notifications()) == 2

    def test_mark_all_read_includes_broadcasts(self, memory_store):
        memory_store.create_notification(Notification(type='info', title='t', message='m'))
        memory_store.create_notification(
            Notification(type='info', title='t', message='m', department_target='dental')
        )
        memory_store.create_notification(
            Notification(type='info', title='t', message='m', department_target='cardiology')
        )

        assert memory_store.mark_all_notifications_read('dental') == 2
        assert memory_store.delete_notifications() == 3
