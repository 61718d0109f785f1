from django.db import models


class PatientStatus(models.TextChoices):
    REGISTERED = "registered", "Registered"
    ACTIVATED = "activated", "Activated"
    IN_TRIAGE = "in-triage", "In triage"
    TRIAGE_COMPLETE = "triage-complete", "Triage complete"
    IN_CONSULTATION = "in-consultation", "In consultation"
    CONSULTATION_COMPLETE = "consultation-complete", "Consultation complete"
    WAITING_FOR_LAB = "waiting-for-lab", "Waiting for lab"
    IN_LAB = "in-lab", "In lab"
    LAB_COMPLETE = "lab-complete", "Lab complete"
    WAITING_FOR_RADIOLOGY = "waiting-for-radiology", "Waiting for radiology"
    IN_RADIOLOGY = "in-radiology", "In radiology"
    RADIOLOGY_COMPLETE = "radiology-complete", "Radiology complete"
    UNDER_TREATMENT = "under-treatment", "Under treatment"
    IN_PHARMACY = "in-pharmacy", "In pharmacy"
    PHARMACY_COMPLETE = "pharmacy-complete", "Pharmacy complete"
    READY_FOR_DISCHARGE = "ready-for-discharge", "Ready for discharge"
    AWAITING_PAYMENT = "awaiting-payment", "Awaiting payment"
    PAYMENT_COMPLETE = "payment-complete", "Payment complete"
    DISCHARGED = "discharged", "Discharged"


class Priority(models.TextChoices):
    NORMAL = "normal", "Normal"
    URGENT = "urgent", "Urgent"
    CRITICAL = "critical", "Critical"


class PatientType(models.TextChoices):
    OUTPATIENT = "outpatient", "Outpatient"
    INPATIENT = "inpatient", "Inpatient"
    EMERGENCY = "emergency", "Emergency"


class Department(models.TextChoices):
    RECEPTION = "reception", "Reception"
    TRIAGE = "triage", "Triage"
    GENERAL_CONSULTATION = "general-consultation", "General consultation"
    CARDIOLOGY = "cardiology", "Cardiology"
    PEDIATRICS = "pediatrics", "Pediatrics"
    GYNECOLOGY = "gynecology", "Gynecology"
    SURGICAL = "surgical", "Surgical"
    ORTHOPEDIC = "orthopedic", "Orthopedic"
    DENTAL = "dental", "Dental"
    EYE_CLINIC = "eye-clinic", "Eye clinic"
    PHYSIOTHERAPY = "physiotherapy", "Physiotherapy"
    LABORATORY = "laboratory", "Laboratory"
    RADIOLOGY = "radiology", "Radiology"
    PHARMACY = "pharmacy", "Pharmacy"
    BILLING = "billing", "Billing"


class OrderDepartment(models.TextChoices):
    LABORATORY = "laboratory", "Laboratory"
    RADIOLOGY = "radiology", "Radiology"


class OrderStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    IN_PROGRESS = "in-progress", "In progress"
    COMPLETED = "completed", "Completed"
    CANCELLED = "cancelled", "Cancelled"


class TransmissionStatus(models.TextChoices):
    ORDERED = "ordered", "Ordered"
    SENT = "sent", "Sent"
    RECEIVED = "received", "Received"
    COMPLETED = "completed", "Completed"


class PaymentStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    PAID = "paid", "Paid"
    WAIVED = "waived", "Waived"


class PrescriptionStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    STOCK_VERIFIED = "stock-verified", "Stock verified"
    DISPENSED = "dispensed", "Dispensed"
    CANCELLED = "cancelled", "Cancelled"


class InvoiceStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    PAID = "paid", "Paid"
    CANCELLED = "cancelled", "Cancelled"
    WAIVED = "waived", "Waived"


class NotificationType(models.TextChoices):
    LAB_RESULT = "lab-result", "Lab result"
    RADIOLOGY_RESULT = "radiology-result", "Radiology result"
    URGENT = "urgent", "Urgent"
    INFO = "info", "Info"
    SYSTEM = "system", "System"
    PRESCRIPTION = "prescription", "Prescription"
    PAYMENT = "payment", "Payment"
    EMERGENCY = "emergency", "Emergency"


class NotificationPriority(models.TextChoices):
    NORMAL = "normal", "Normal"
    HIGH = "high", "High"
    EMERGENCY = "emergency", "Emergency"


class NotificationAction(models.TextChoices):
    """Closed set of follow-up actions a notification can offer."""

    VIEW_RESULTS = "view-results", "View results"
    VIEW_PATIENT = "view-patient", "View patient"
    VIEW_PRESCRIPTION = "view-prescription", "View prescription"
    VIEW_INVOICE = "view-invoice", "View invoice"
    ACKNOWLEDGE = "acknowledge", "Acknowledge"
