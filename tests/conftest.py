"""
Shared fixtures for all tests.

factory-boy factories live here so both unit/ and integration/ can import them.
Workflow-level tests run the orchestrator on the in-memory store with a frozen
clock; ORM and HTTP tests use the Django store on the test database.
"""
import pytest
from datetime import datetime, timedelta, timezone as dt_timezone
from decimal import Decimal

import factory
from rest_framework.test import APIClient

from patientflow import models, services
from patientflow.enums import Department, InvoiceStatus, PatientStatus, Priority
from patientflow.notifications.router import NotificationRouter
from patientflow.store.factory import reset_record_store
from patientflow.store.memory import InMemoryRecordStore
from patientflow.store.types import Invoice, InvoiceItem, PatientRecord, WorkflowTimestamps
from patientflow.workflow.locks import PatientLocks
from patientflow.workflow.orchestrator import WorkflowOrchestrator

T0 = datetime(2024, 3, 4, 9, 0, tzinfo=dt_timezone.utc)


# ---------------------------------------------------------------------------
# Factories: ORM models
# ---------------------------------------------------------------------------

class PatientFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = models.Patient

    full_name = factory.Sequence(lambda n: f'Patient {n}')
    id_number = factory.Sequence(lambda n: f'ID{100000 + n}')
    age = 40
    gender = 'female'
    status = PatientStatus.REGISTERED
    current_department = Department.RECEPTION
    registration_time = T0


class OrderFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = models.Order

    patient = factory.SubFactory(PatientFactory)
    test_type = 'Full Blood Count'
    department = Department.LABORATORY
    clinical_info = 'Fever for three days'
    return_to_department = Department.GENERAL_CONSULTATION


class PrescriptionFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = models.Prescription

    patient = factory.SubFactory(PatientFactory)
    medications = factory.LazyFunction(lambda: [{'name': 'Amoxicillin', 'dosage': '500mg', 'quantity': 21}])
    prescribed_by = 'Dr. Mensah'


class InvoiceFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = models.Invoice

    patient = factory.SubFactory(PatientFactory)
    status = InvoiceStatus.PENDING
    total_amount = Decimal('50.00')


class InvoiceItemFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = models.InvoiceItem

    invoice = factory.SubFactory(InvoiceFactory)
    service_name = 'Full Blood Count'
    department = Department.LABORATORY
    category = 'laboratory'
    unit_price = Decimal('50.00')


class NotificationFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = models.Notification

    type = 'info'
    title = 'Workflow Continued'
    message = 'Workflow resumed'
    timestamp = T0


# ---------------------------------------------------------------------------
# Factories: store records
# ---------------------------------------------------------------------------

class PatientRecordFactory(factory.Factory):
    class Meta:
        model = PatientRecord

    full_name = factory.Sequence(lambda n: f'Patient {n}')
    id_number = factory.Sequence(lambda n: f'ID{200000 + n}')
    age = 34
    status = PatientStatus.REGISTERED
    priority = Priority.NORMAL
    current_department = Department.RECEPTION
    timestamps = factory.LazyFunction(lambda: WorkflowTimestamps(registration_time=T0))


def paid_invoice(patient_id, department, category=''):
    """A paid invoice with one line for ``department``."""
    return Invoice(
        patient_id=patient_id,
        status=InvoiceStatus.PAID,
        items=[InvoiceItem(
            service_name=f'{department} service',
            department=department,
            category=category,
            unit_price=Decimal('25.00'),
        )],
    )


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------

class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now=T0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


class ManualTask:

    def __init__(self, delay, callback):
        self.delay = delay
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self):
        self.cancelled = True

    @property
    def active(self):
        return not (self.cancelled or self.fired)


class ManualScheduler:
    """Scheduler whose timers fire only when the test calls run_due()."""

    def __init__(self):
        self.tasks = []
        self.elapsed = 0.0

    def schedule(self, delay, callback):
        task = ManualTask(self.elapsed + delay, callback)
        self.tasks.append(task)
        return task

    def advance(self, seconds):
        self.elapsed += seconds
        for task in list(self.tasks):
            if task.active and task.delay <= self.elapsed:
                task.fired = True
                task.callback()


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def memory_store():
    return InMemoryRecordStore(timeout=1.0)


@pytest.fixture
def orchestrator(memory_store, clock):
    return WorkflowOrchestrator(
        memory_store,
        locks=PatientLocks(timeout=1.0),
        clock=clock,
        max_retries=3,
        retry_backoff=0,
    )


@pytest.fixture
def router(memory_store, clock):
    return NotificationRouter(memory_store, clock=clock)


@pytest.fixture
def workflow(monkeypatch, orchestrator, router):
    """Service layer wired to the in-memory orchestrator and router."""
    orchestrator.subscribe(router.notify)
    monkeypatch.setattr(services, '_orchestrator', orchestrator)
    monkeypatch.setattr(services, '_router', router)
    yield orchestrator
    services.reset_workflow()


@pytest.fixture
def make_patient(orchestrator):
    """Register a patient and walk them to ``status`` through valid transitions."""

    def _make(status=PatientStatus.REGISTERED, path=None, **fields):
        record = orchestrator.register(PatientRecordFactory.build(**fields))
        for step in path or []:
            record = orchestrator.transition(record.id, step)
        assert record.status == status
        return record

    return _make


CONSULTATION_PATH = [
    PatientStatus.IN_TRIAGE,
    PatientStatus.TRIAGE_COMPLETE,
    PatientStatus.IN_CONSULTATION,
]


@pytest.fixture
def django_workflow(settings):
    """Process-wide services on the Django store (test database)."""
    settings.RECORD_STORE = 'django'
    reset_record_store()
    services.reset_workflow()
    yield
    services.reset_workflow()
    reset_record_store()


@pytest.fixture
def api_client(django_workflow):
    """DRF test client for integration tests."""
    return APIClient()
