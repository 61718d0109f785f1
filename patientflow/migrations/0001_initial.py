import uuid
from django.db import migrations, models
import django.db.models.deletion


PRIORITY_CHOICES = [('normal', 'Normal'), ('urgent', 'Urgent'), ('critical', 'Critical')]
PAYMENT_STATUS_CHOICES = [('pending', 'Pending'), ('paid', 'Paid'), ('waived', 'Waived')]


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Patient',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('full_name', models.CharField(max_length=200)),
                ('id_number', models.CharField(blank=True, default='', max_length=50)),
                ('age', models.PositiveIntegerField(blank=True, null=True)),
                ('gender', models.CharField(blank=True, default='', max_length=20)),
                ('phone_number', models.CharField(blank=True, default='', max_length=30)),
                ('patient_type', models.CharField(
                    choices=[
                        ('outpatient', 'Outpatient'),
                        ('inpatient', 'Inpatient'),
                        ('emergency', 'Emergency'),
                    ],
                    default='outpatient',
                    max_length=20,
                )),
                ('status', models.CharField(
                    choices=[
                        ('registered', 'Registered'),
                        ('activated', 'Activated'),
                        ('in-triage', 'In triage'),
                        ('triage-complete', 'Triage complete'),
                        ('in-consultation', 'In consultation'),
                        ('consultation-complete', 'Consultation complete'),
                        ('waiting-for-lab', 'Waiting for lab'),
                        ('in-lab', 'In lab'),
                        ('lab-complete', 'Lab complete'),
                        ('waiting-for-radiology', 'Waiting for radiology'),
                        ('in-radiology', 'In radiology'),
                        ('radiology-complete', 'Radiology complete'),
                        ('under-treatment', 'Under treatment'),
                        ('in-pharmacy', 'In pharmacy'),
                        ('pharmacy-complete', 'Pharmacy complete'),
                        ('ready-for-discharge', 'Ready for discharge'),
                        ('awaiting-payment', 'Awaiting payment'),
                        ('payment-complete', 'Payment complete'),
                        ('discharged', 'Discharged'),
                    ],
                    default='registered',
                    max_length=30,
                )),
                ('priority', models.CharField(choices=PRIORITY_CHOICES, default='normal', max_length=20)),
                ('current_department', models.CharField(
                    choices=[
                        ('reception', 'Reception'),
                        ('triage', 'Triage'),
                        ('general-consultation', 'General consultation'),
                        ('cardiology', 'Cardiology'),
                        ('pediatrics', 'Pediatrics'),
                        ('gynecology', 'Gynecology'),
                        ('surgical', 'Surgical'),
                        ('orthopedic', 'Orthopedic'),
                        ('dental', 'Dental'),
                        ('eye-clinic', 'Eye clinic'),
                        ('physiotherapy', 'Physiotherapy'),
                        ('laboratory', 'Laboratory'),
                        ('radiology', 'Radiology'),
                        ('pharmacy', 'Pharmacy'),
                        ('billing', 'Billing'),
                    ],
                    default='reception',
                    max_length=40,
                )),
                ('previous_departments', models.JSONField(blank=True, default=list)),
                ('next_destination', models.CharField(blank=True, max_length=40, null=True)),
                ('return_to_department', models.CharField(blank=True, max_length=40, null=True)),
                ('assigned_doctor_id', models.CharField(blank=True, max_length=64, null=True)),
                ('assigned_doctor_name', models.CharField(blank=True, max_length=200, null=True)),
                ('assigned_at', models.DateTimeField(blank=True, null=True)),
                ('registration_time', models.DateTimeField(blank=True, null=True)),
                ('activation_time', models.DateTimeField(blank=True, null=True)),
                ('in_triage_time', models.DateTimeField(blank=True, null=True)),
                ('triage_complete_time', models.DateTimeField(blank=True, null=True)),
                ('in_consultation_time', models.DateTimeField(blank=True, null=True)),
                ('consultation_complete_time', models.DateTimeField(blank=True, null=True)),
                ('waiting_for_lab_time', models.DateTimeField(blank=True, null=True)),
                ('sent_to_lab_time', models.DateTimeField(blank=True, null=True)),
                ('in_lab_time', models.DateTimeField(blank=True, null=True)),
                ('lab_complete_time', models.DateTimeField(blank=True, null=True)),
                ('waiting_for_radiology_time', models.DateTimeField(blank=True, null=True)),
                ('sent_to_radiology_time', models.DateTimeField(blank=True, null=True)),
                ('in_radiology_time', models.DateTimeField(blank=True, null=True)),
                ('radiology_complete_time', models.DateTimeField(blank=True, null=True)),
                ('under_treatment_time', models.DateTimeField(blank=True, null=True)),
                ('in_pharmacy_time', models.DateTimeField(blank=True, null=True)),
                ('pharmacy_complete_time', models.DateTimeField(blank=True, null=True)),
                ('medication_dispensed_time', models.DateTimeField(blank=True, null=True)),
                ('ready_for_discharge_time', models.DateTimeField(blank=True, null=True)),
                ('awaiting_payment_time', models.DateTimeField(blank=True, null=True)),
                ('payment_complete_time', models.DateTimeField(blank=True, null=True)),
                ('discharged_time', models.DateTimeField(blank=True, null=True)),
                ('pending_lab_tests', models.BooleanField(default=False)),
                ('pending_radiology_tests', models.BooleanField(default=False)),
                ('pending_medications', models.BooleanField(default=False)),
                ('pending_payment', models.BooleanField(default=False)),
                ('lab_tests_completed', models.BooleanField(default=False)),
                ('radiology_tests_completed', models.BooleanField(default=False)),
                ('medications_dispensed', models.BooleanField(default=False)),
                ('payment_completed', models.BooleanField(default=False)),
                ('is_completed', models.BooleanField(default=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'patients',
                'indexes': [
                    models.Index(fields=['current_department', 'status'], name='patients_dept_status_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Order',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('test_type', models.CharField(max_length=200)),
                ('department', models.CharField(
                    choices=[('laboratory', 'Laboratory'), ('radiology', 'Radiology')],
                    max_length=20,
                )),
                ('status', models.CharField(
                    choices=[
                        ('pending', 'Pending'),
                        ('in-progress', 'In progress'),
                        ('completed', 'Completed'),
                        ('cancelled', 'Cancelled'),
                    ],
                    default='pending',
                    max_length=20,
                )),
                ('priority', models.CharField(choices=PRIORITY_CHOICES, default='normal', max_length=20)),
                ('clinical_info', models.TextField()),
                ('requested_by', models.CharField(blank=True, default='', max_length=200)),
                ('requested_at', models.DateTimeField(blank=True, null=True)),
                ('return_to_department', models.CharField(max_length=40)),
                ('transmission_status', models.CharField(
                    choices=[
                        ('ordered', 'Ordered'),
                        ('sent', 'Sent'),
                        ('received', 'Received'),
                        ('completed', 'Completed'),
                    ],
                    default='ordered',
                    max_length=20,
                )),
                ('transmission_time', models.DateTimeField(blank=True, null=True)),
                ('received_time', models.DateTimeField(blank=True, null=True)),
                ('payment_status', models.CharField(choices=PAYMENT_STATUS_CHOICES, default='pending', max_length=20)),
                ('results', models.JSONField(blank=True, null=True)),
                ('critical_values', models.BooleanField(default=False)),
                ('completed_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('patient', models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name='test_orders',
                    to='patientflow.patient',
                )),
            ],
            options={
                'db_table': 'test_orders',
            },
        ),
        migrations.CreateModel(
            name='Prescription',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('medications', models.JSONField(blank=True, default=list)),
                ('status', models.CharField(
                    choices=[
                        ('pending', 'Pending'),
                        ('stock-verified', 'Stock verified'),
                        ('dispensed', 'Dispensed'),
                        ('cancelled', 'Cancelled'),
                    ],
                    default='pending',
                    max_length=20,
                )),
                ('prescribed_by', models.CharField(blank=True, default='', max_length=200)),
                ('prescribed_at', models.DateTimeField(blank=True, null=True)),
                ('payment_status', models.CharField(choices=PAYMENT_STATUS_CHOICES, default='pending', max_length=20)),
                ('dispensed_at', models.DateTimeField(blank=True, null=True)),
                ('dispensed_by', models.CharField(blank=True, max_length=200, null=True)),
                ('notes', models.TextField(blank=True, default='')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('patient', models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name='prescriptions',
                    to='patientflow.patient',
                )),
            ],
            options={
                'db_table': 'prescriptions',
            },
        ),
        migrations.CreateModel(
            name='Invoice',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('status', models.CharField(
                    choices=[
                        ('pending', 'Pending'),
                        ('paid', 'Paid'),
                        ('cancelled', 'Cancelled'),
                        ('waived', 'Waived'),
                    ],
                    default='pending',
                    max_length=20,
                )),
                ('total_amount', models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('paid_at', models.DateTimeField(blank=True, null=True)),
                ('patient', models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name='invoices',
                    to='patientflow.patient',
                )),
            ],
            options={
                'db_table': 'invoices',
            },
        ),
        migrations.CreateModel(
            name='InvoiceItem',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('service_name', models.CharField(max_length=200)),
                ('department', models.CharField(blank=True, default='', max_length=40)),
                ('category', models.CharField(blank=True, default='', max_length=40)),
                ('quantity', models.PositiveIntegerField(default=1)),
                ('unit_price', models.DecimalField(decimal_places=2, default=0, max_digits=12)),
                ('status', models.CharField(choices=PAYMENT_STATUS_CHOICES, default='pending', max_length=20)),
                ('invoice', models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name='items',
                    to='patientflow.invoice',
                )),
            ],
            options={
                'db_table': 'invoice_items',
            },
        ),
        migrations.CreateModel(
            name='Notification',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('type', models.CharField(
                    choices=[
                        ('lab-result', 'Lab result'),
                        ('radiology-result', 'Radiology result'),
                        ('urgent', 'Urgent'),
                        ('info', 'Info'),
                        ('system', 'System'),
                        ('prescription', 'Prescription'),
                        ('payment', 'Payment'),
                        ('emergency', 'Emergency'),
                    ],
                    max_length=30,
                )),
                ('title', models.CharField(max_length=200)),
                ('message', models.TextField()),
                ('timestamp', models.DateTimeField()),
                ('read', models.BooleanField(default=False)),
                ('priority', models.CharField(
                    choices=[('normal', 'Normal'), ('high', 'High'), ('emergency', 'Emergency')],
                    default='normal',
                    max_length=20,
                )),
                ('action', models.CharField(
                    blank=True,
                    choices=[
                        ('view-results', 'View results'),
                        ('view-patient', 'View patient'),
                        ('view-prescription', 'View prescription'),
                        ('view-invoice', 'View invoice'),
                        ('acknowledge', 'Acknowledge'),
                    ],
                    max_length=30,
                    null=True,
                )),
                ('patient_id', models.CharField(blank=True, max_length=64, null=True)),
                ('test_id', models.CharField(blank=True, max_length=64, null=True)),
                ('prescription_id', models.CharField(blank=True, max_length=64, null=True)),
                ('invoice_id', models.CharField(blank=True, max_length=64, null=True)),
                ('department_target', models.CharField(blank=True, max_length=40, null=True)),
                ('dedup_key', models.CharField(blank=True, max_length=200, null=True, unique=True)),
            ],
            options={
                'db_table': 'notifications',
                'ordering': ['-timestamp'],
            },
        ),
    ]
