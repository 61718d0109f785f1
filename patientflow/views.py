"""
HTTP boundary for the presentation layer.

Views only parse the request, call services / the orchestrator and
serialize; every error is a BaseAppException rendered by
exception_handler.unified_exception_handler.
"""

from rest_framework.response import Response
from rest_framework.views import APIView

from . import services
from .exceptions import NotFound, ValidationFailed
from .notifications.types import NotificationView
from .serializers import (
    serialize_invoice, serialize_journey, serialize_navigation, serialize_notification,
    serialize_notification_list, serialize_paused,
    serialize_patient, serialize_prescription, serialize_queue, serialize_test_order,
)


def _field(request, name):
    value = request.data.get(name)
    if not value:
        raise ValidationFailed(
            message=f"Missing required field: {name}",
            code='MISSING_FIELD',
            detail={'fields': [name]},
        )
    return value


class PatientCreateView(APIView):
    """POST /api/patients/: register a patient"""

    def post(self, request):
        record = services.register_patient(request.data)
        return Response(serialize_patient(record), status=201)


class PatientDetailView(APIView):
    """GET /api/patients/<id>/"""

    def get(self, request, patient_id):
        record = services.get_orchestrator().get_patient(str(patient_id))
        return Response(serialize_patient(record))


class PatientTransitionView(APIView):
    """POST /api/patients/<id>/transition/: {status, priority?, expected_status?}"""

    def post(self, request, patient_id):
        record = services.get_orchestrator().transition(
            str(patient_id),
            _field(request, 'status'),
            priority=request.data.get('priority'),
            expected_status=request.data.get('expected_status'),
        )
        return Response(serialize_patient(record))


class ParallelWorkflowView(APIView):
    """POST /api/patients/<id>/parallel-workflow/: flag and timestamp updates"""

    def post(self, request, patient_id):
        if not isinstance(request.data, dict) or not request.data:
            raise ValidationFailed(message="No workflow updates given", code='MISSING_FIELD')
        record = services.get_orchestrator().update_parallel_workflow(str(patient_id), dict(request.data))
        return Response(serialize_patient(record))


class PatientMoveView(APIView):
    """POST /api/patients/<id>/move/: {department}"""

    def post(self, request, patient_id):
        record = services.get_orchestrator().move_to_next_department(
            str(patient_id), _field(request, 'department'),
        )
        return Response(serialize_patient(record))


class PatientAssignView(APIView):
    """POST / DELETE /api/patients/<id>/doctor/"""

    def post(self, request, patient_id):
        record = services.get_orchestrator().assign_doctor(
            str(patient_id), _field(request, 'doctor_id'), request.data.get('doctor_name', ''),
        )
        return Response(serialize_patient(record))

    def delete(self, request, patient_id):
        return Response(serialize_patient(services.get_orchestrator().unassign_doctor(str(patient_id))))


class VitalSignsView(APIView):
    """POST /api/patients/<id>/vitals/: classify and store triage priority"""

    def post(self, request, patient_id):
        record = services.record_vital_signs(str(patient_id), request.data)
        return Response(serialize_patient(record))


class OrderCreateView(APIView):
    """POST /api/patients/<id>/test-orders/"""

    def post(self, request, patient_id):
        orders = services.order_tests(str(patient_id), request.data)
        return Response({'orders': [serialize_test_order(o) for o in orders]}, status=201)


class PrescriptionCreateView(APIView):
    """POST /api/patients/<id>/prescriptions/"""

    def post(self, request, patient_id):
        prescription = services.create_prescription(str(patient_id), request.data)
        return Response(serialize_prescription(prescription), status=201)


class ResumeWorkflowView(APIView):
    """POST /api/patients/<id>/resume/: {department?}"""

    def post(self, request, patient_id):
        record = services.get_orchestrator().resume_workflow(
            str(patient_id), request.data.get('department'),
        )
        return Response(serialize_patient(record))


class JourneyView(APIView):
    """GET /api/patients/<id>/journey/"""

    def get(self, request, patient_id):
        return Response(serialize_journey(services.get_journey(str(patient_id))))


class InvoiceCreateView(APIView):
    """POST /api/patients/<id>/invoices/: invoice written by billing"""

    def post(self, request, patient_id):
        invoice = services.create_invoice(str(patient_id), request.data)
        return Response(serialize_invoice(invoice), status=201)


class RequestPaymentView(APIView):
    """POST /api/patients/<id>/request-payment/"""

    def post(self, request, patient_id):
        return Response(serialize_patient(services.request_payment(str(patient_id))))


class PaymentView(APIView):
    """POST /api/patients/<id>/payments/: {invoice_id}, posted at the cashier"""

    def post(self, request, patient_id):
        invoice_id = str(_field(request, 'invoice_id'))
        services.record_payment(str(patient_id), invoice_id)
        seconds = services.start_payment_redirect(str(patient_id), invoice_id)
        body = serialize_patient(services.get_orchestrator().get_patient(str(patient_id)))
        body['redirect'] = {'session_id': invoice_id, 'seconds': seconds}
        return Response(body)


class PaymentRedirectView(APIView):
    """DELETE /api/payments/<invoice_id>/redirect/: the cashier navigated away"""

    def delete(self, request, invoice_id):
        return Response({'cancelled': services.cancel_payment_redirect(str(invoice_id))})


class DepartmentQueueView(APIView):
    """GET /api/queues/<department>/"""

    def get(self, request, department):
        return Response(serialize_queue(department, services.get_department_queue(department)))


class PausedWorkflowsView(APIView):
    """GET /api/queues/<department>/paused/"""

    def get(self, request, department):
        return Response(serialize_paused(services.get_paused_workflows(department)))


_TEST_ORDER_ACTIONS = {
    'receive': services.receive_test_order,
    'start': services.start_test,
}


class OrderActionView(APIView):
    """POST /api/test-orders/<id>/<action>/: receive | start"""

    def post(self, request, order_id, action):
        handler = _TEST_ORDER_ACTIONS.get(action)
        if handler is None:
            raise NotFound(message=f"Unknown test order action '{action}'", code='UNKNOWN_ACTION')
        return Response(serialize_test_order(handler(str(order_id))))


class OrderResultView(APIView):
    """POST /api/test-orders/<id>/results/: {results, critical_values?}"""

    def post(self, request, order_id):
        order = services.complete_test_order(
            str(order_id),
            request.data.get('results') or {},
            critical_values=bool(request.data.get('critical_values', False)),
        )
        return Response(serialize_test_order(order))


class PrescriptionActionView(APIView):
    """POST /api/prescriptions/<id>/<action>/: verify-stock | dispense | cancel"""

    def post(self, request, prescription_id, action):
        prescription_id = str(prescription_id)
        if action == 'verify-stock':
            prescription = services.verify_prescription_stock(prescription_id)
        elif action == 'dispense':
            prescription = services.dispense_prescription(
                prescription_id, request.data.get('dispensed_by', ''),
            )
        elif action == 'cancel':
            prescription = services.cancel_prescription(prescription_id)
        else:
            raise NotFound(message=f"Unknown prescription action '{action}'", code='UNKNOWN_ACTION')
        return Response(serialize_prescription(prescription))


class NotificationListView(APIView):
    """GET /api/notifications/?department=&view=all|unread|results|urgent"""

    def get(self, request):
        department = request.query_params.get('department') or None
        view = request.query_params.get('view', NotificationView.ALL.value)
        try:
            view = NotificationView(view)
        except ValueError:
            raise ValidationFailed(
                message=f"Unknown view '{view}'",
                code='INVALID_CHOICE',
                detail={'allowed': [v.value for v in NotificationView]},
            ) from None

        router = services.get_router()
        items = router.feed(department, view)
        return Response(serialize_notification_list(items, router.clock(), router.unread_count(department)))

    def delete(self, request):
        return Response({'deleted': services.get_router().clear_all()})


class NotificationReadView(APIView):
    """POST /api/notifications/<id>/read/: {department?}, returns where to navigate"""

    def post(self, request, notification_id):
        notification, target = services.open_notification(
            str(notification_id), request.data.get('department') or None,
        )
        body = serialize_notification(notification, services.get_router().clock())
        body['navigate_to'] = serialize_navigation(target)
        return Response(body)


class NotificationReadAllView(APIView):
    """POST /api/notifications/read-all/: {department?}"""

    def post(self, request):
        count = services.get_router().mark_all_read(request.data.get('department') or None)
        return Response({'updated': count})


class ToastView(APIView):
    """GET /api/notifications/toasts/?department=: toasts currently on screen"""

    def get(self, request):
        department = request.query_params.get('department') or None
        dispatcher = services.get_toast_dispatcher(department)
        dispatcher.sync()
        now = services.get_router().clock()
        return Response({'toasts': [serialize_notification(n, now) for n in dispatcher.visible()]})
