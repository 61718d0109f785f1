import uuid
from django.db import models

from .enums import (
    PatientStatus, Priority, PatientType, Department, OrderDepartment, OrderStatus,
    TransmissionStatus, PaymentStatus, PrescriptionStatus, InvoiceStatus,
    NotificationType, NotificationPriority, NotificationAction,
)


class Patient(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    full_name = models.CharField(max_length=200)
    id_number = models.CharField(max_length=50, blank=True, default='')
    age = models.PositiveIntegerField(blank=True, null=True)
    gender = models.CharField(max_length=20, blank=True, default='')
    phone_number = models.CharField(max_length=30, blank=True, default='')
    patient_type = models.CharField(max_length=20, choices=PatientType.choices, default=PatientType.OUTPATIENT)

    status = models.CharField(max_length=30, choices=PatientStatus.choices, default=PatientStatus.REGISTERED)
    priority = models.CharField(max_length=20, choices=Priority.choices, default=Priority.NORMAL)
    current_department = models.CharField(max_length=40, choices=Department.choices, default=Department.RECEPTION)
    previous_departments = models.JSONField(default=list, blank=True)
    next_destination = models.CharField(max_length=40, blank=True, null=True)
    return_to_department = models.CharField(max_length=40, blank=True, null=True)

    assigned_doctor_id = models.CharField(max_length=64, blank=True, null=True)
    assigned_doctor_name = models.CharField(max_length=200, blank=True, null=True)
    assigned_at = models.DateTimeField(blank=True, null=True)

    # workflow timestamps, first write wins
    registration_time = models.DateTimeField(blank=True, null=True)
    activation_time = models.DateTimeField(blank=True, null=True)
    in_triage_time = models.DateTimeField(blank=True, null=True)
    triage_complete_time = models.DateTimeField(blank=True, null=True)
    in_consultation_time = models.DateTimeField(blank=True, null=True)
    consultation_complete_time = models.DateTimeField(blank=True, null=True)
    waiting_for_lab_time = models.DateTimeField(blank=True, null=True)
    sent_to_lab_time = models.DateTimeField(blank=True, null=True)
    in_lab_time = models.DateTimeField(blank=True, null=True)
    lab_complete_time = models.DateTimeField(blank=True, null=True)
    waiting_for_radiology_time = models.DateTimeField(blank=True, null=True)
    sent_to_radiology_time = models.DateTimeField(blank=True, null=True)
    in_radiology_time = models.DateTimeField(blank=True, null=True)
    radiology_complete_time = models.DateTimeField(blank=True, null=True)
    under_treatment_time = models.DateTimeField(blank=True, null=True)
    in_pharmacy_time = models.DateTimeField(blank=True, null=True)
    pharmacy_complete_time = models.DateTimeField(blank=True, null=True)
    medication_dispensed_time = models.DateTimeField(blank=True, null=True)
    ready_for_discharge_time = models.DateTimeField(blank=True, null=True)
    awaiting_payment_time = models.DateTimeField(blank=True, null=True)
    payment_complete_time = models.DateTimeField(blank=True, null=True)
    discharged_time = models.DateTimeField(blank=True, null=True)

    # parallel sub-workflow flags
    pending_lab_tests = models.BooleanField(default=False)
    pending_radiology_tests = models.BooleanField(default=False)
    pending_medications = models.BooleanField(default=False)
    pending_payment = models.BooleanField(default=False)
    lab_tests_completed = models.BooleanField(default=False)
    radiology_tests_completed = models.BooleanField(default=False)
    medications_dispensed = models.BooleanField(default=False)
    payment_completed = models.BooleanField(default=False)

    is_completed = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'patients'
        indexes = [
            models.Index(fields=['current_department', 'status'], name='patients_dept_status_idx'),
        ]


class Order(models.Model):
    """Laboratory or radiology test order."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='test_orders')
    test_type = models.CharField(max_length=200)
    department = models.CharField(max_length=20, choices=OrderDepartment.choices)
    status = models.CharField(max_length=20, choices=OrderStatus.choices, default=OrderStatus.PENDING)
    priority = models.CharField(max_length=20, choices=Priority.choices, default=Priority.NORMAL)
    clinical_info = models.TextField()
    requested_by = models.CharField(max_length=200, blank=True, default='')
    requested_at = models.DateTimeField(blank=True, null=True)
    return_to_department = models.CharField(max_length=40)
    transmission_status = models.CharField(
        max_length=20, choices=TransmissionStatus.choices, default=TransmissionStatus.ORDERED,
    )
    transmission_time = models.DateTimeField(blank=True, null=True)
    received_time = models.DateTimeField(blank=True, null=True)
    payment_status = models.CharField(max_length=20, choices=PaymentStatus.choices, default=PaymentStatus.PENDING)
    results = models.JSONField(blank=True, null=True)
    critical_values = models.BooleanField(default=False)
    completed_at = models.DateTimeField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'test_orders'


class Prescription(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='prescriptions')
    medications = models.JSONField(default=list, blank=True)
    status = models.CharField(
        max_length=20, choices=PrescriptionStatus.choices, default=PrescriptionStatus.PENDING,
    )
    prescribed_by = models.CharField(max_length=200, blank=True, default='')
    prescribed_at = models.DateTimeField(blank=True, null=True)
    payment_status = models.CharField(max_length=20, choices=PaymentStatus.choices, default=PaymentStatus.PENDING)
    dispensed_at = models.DateTimeField(blank=True, null=True)
    dispensed_by = models.CharField(max_length=200, blank=True, null=True)
    notes = models.TextField(blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'prescriptions'


class Invoice(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='invoices')
    status = models.CharField(max_length=20, choices=InvoiceStatus.choices, default=InvoiceStatus.PENDING)
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    paid_at = models.DateTimeField(blank=True, null=True)

    class Meta:
        db_table = 'invoices'


class InvoiceItem(models.Model):
    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name='items')
    service_name = models.CharField(max_length=200)
    department = models.CharField(max_length=40, blank=True, default='')
    category = models.CharField(max_length=40, blank=True, default='')
    quantity = models.PositiveIntegerField(default=1)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    status = models.CharField(max_length=20, choices=PaymentStatus.choices, default=PaymentStatus.PENDING)

    class Meta:
        db_table = 'invoice_items'


class Notification(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    type = models.CharField(max_length=30, choices=NotificationType.choices)
    title = models.CharField(max_length=200)
    message = models.TextField()
    timestamp = models.DateTimeField()
    read = models.BooleanField(default=False)
    priority = models.CharField(
        max_length=20, choices=NotificationPriority.choices, default=NotificationPriority.NORMAL,
    )
    action = models.CharField(max_length=30, choices=NotificationAction.choices, blank=True, null=True)
    # plain ids: notifications outlive the records they point at
    patient_id = models.CharField(max_length=64, blank=True, null=True)
    test_id = models.CharField(max_length=64, blank=True, null=True)
    prescription_id = models.CharField(max_length=64, blank=True, null=True)
    invoice_id = models.CharField(max_length=64, blank=True, null=True)
    department_target = models.CharField(max_length=40, blank=True, null=True)
    dedup_key = models.CharField(max_length=200, unique=True, blank=True, null=True)

    class Meta:
        db_table = 'notifications'
        ordering = ['-timestamp']
