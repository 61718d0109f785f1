from django.urls import path
from .views import (
    PatientCreateView, PatientDetailView, PatientTransitionView, ParallelWorkflowView,
    PatientMoveView, PatientAssignView, VitalSignsView, OrderCreateView,
    PrescriptionCreateView, ResumeWorkflowView, JourneyView, PaymentView,
    InvoiceCreateView, RequestPaymentView, PaymentRedirectView,
    DepartmentQueueView, PausedWorkflowsView, OrderActionView, OrderResultView,
    PrescriptionActionView, NotificationListView, NotificationReadView,
    NotificationReadAllView, ToastView,
)

urlpatterns = [
    path('patients/', PatientCreateView.as_view(), name='patient-create'),
    path('patients/<uuid:patient_id>/', PatientDetailView.as_view(), name='patient-detail'),
    path('patients/<uuid:patient_id>/transition/', PatientTransitionView.as_view(), name='patient-transition'),
    path('patients/<uuid:patient_id>/parallel-workflow/', ParallelWorkflowView.as_view(), name='patient-parallel'),
    path('patients/<uuid:patient_id>/move/', PatientMoveView.as_view(), name='patient-move'),
    path('patients/<uuid:patient_id>/doctor/', PatientAssignView.as_view(), name='patient-doctor'),
    path('patients/<uuid:patient_id>/vitals/', VitalSignsView.as_view(), name='patient-vitals'),
    path('patients/<uuid:patient_id>/test-orders/', OrderCreateView.as_view(), name='patient-test-orders'),
    path('patients/<uuid:patient_id>/prescriptions/', PrescriptionCreateView.as_view(), name='patient-prescriptions'),
    path('patients/<uuid:patient_id>/resume/', ResumeWorkflowView.as_view(), name='patient-resume'),
    path('patients/<uuid:patient_id>/journey/', JourneyView.as_view(), name='patient-journey'),
    path('patients/<uuid:patient_id>/payments/', PaymentView.as_view(), name='patient-payments'),
    path('patients/<uuid:patient_id>/invoices/', InvoiceCreateView.as_view(), name='patient-invoices'),
    path('patients/<uuid:patient_id>/request-payment/', RequestPaymentView.as_view(), name='patient-request-payment'),
    path('payments/<uuid:invoice_id>/redirect/', PaymentRedirectView.as_view(), name='payment-redirect'),
    path('queues/<slug:department>/', DepartmentQueueView.as_view(), name='department-queue'),
    path('queues/<slug:department>/paused/', PausedWorkflowsView.as_view(), name='department-paused'),
    path('test-orders/<uuid:order_id>/results/', OrderResultView.as_view(), name='test-order-results'),
    path('test-orders/<uuid:order_id>/<str:action>/', OrderActionView.as_view(), name='test-order-action'),
    path('prescriptions/<uuid:prescription_id>/<str:action>/', PrescriptionActionView.as_view(), name='prescription-action'),
    path('notifications/', NotificationListView.as_view(), name='notification-list'),
    path('notifications/read-all/', NotificationReadAllView.as_view(), name='notification-read-all'),
    path('notifications/toasts/', ToastView.as_view(), name='notification-toasts'),
    path('notifications/<uuid:notification_id>/read/', NotificationReadView.as_view(), name='notification-read'),
]
