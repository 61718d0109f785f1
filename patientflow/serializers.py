"""
Response serializers: record dataclasses → JSON-able dicts.

Output formatting only; parsing and validation live in services.py.
"""

from dataclasses import asdict

from .notifications.router import time_ago


def _iso(value):
    return value.isoformat() if value is not None else None


def serialize_patient(record):
    return {
        'id': record.id,
        'full_name': record.full_name,
        'id_number': record.id_number,
        'age': record.age,
        'gender': record.gender,
        'phone_number': record.phone_number,
        'patient_type': record.patient_type,
        'status': record.status,
        'priority': record.priority,
        'current_department': record.current_department,
        'previous_departments': list(record.previous_departments),
        'next_destination': record.next_destination,
        'return_to_department': record.return_to_department,
        'assigned_doctor': (
            {
                'id': record.assigned_doctor_id,
                'name': record.assigned_doctor_name,
                'assigned_at': _iso(record.assigned_at),
            }
            if record.assigned_doctor_id else None
        ),
        'timestamps': {name: _iso(value) for name, value in asdict(record.timestamps).items()},
        'flags': asdict(record.flags),
        'is_completed': record.is_completed,
    }


def serialize_test_order(order):
    return {
        'id': order.id,
        'patient_id': order.patient_id,
        'test_type': order.test_type,
        'department': order.department,
        'status': order.status,
        'priority': order.priority,
        'clinical_info': order.clinical_info,
        'requested_by': order.requested_by,
        'requested_at': _iso(order.requested_at),
        'return_to_department': order.return_to_department,
        'transmission_status': order.transmission_status,
        'transmission_time': _iso(order.transmission_time),
        'received_time': _iso(order.received_time),
        'payment_status': order.payment_status,
        'results': order.results,
        'critical_values': order.critical_values,
        'completed_at': _iso(order.completed_at),
    }


def serialize_prescription(prescription):
    return {
        'id': prescription.id,
        'patient_id': prescription.patient_id,
        'medications': [asdict(m) for m in prescription.medications],
        'status': prescription.status,
        'prescribed_by': prescription.prescribed_by,
        'prescribed_at': _iso(prescription.prescribed_at),
        'payment_status': prescription.payment_status,
        'dispensed_at': _iso(prescription.dispensed_at),
        'dispensed_by': prescription.dispensed_by,
    }


def serialize_journey(journey):
    return {
        'patient_id': journey.patient_id,
        'progress': journey.progress,
        'current_stage': journey.current_stage,
        'total_minutes': journey.total_minutes,
        'is_completed': journey.is_completed,
        'stages': [
            {
                'id': stage.id,
                'label': stage.label,
                'state': stage.state.value,
                'started_at': _iso(stage.started_at),
                'ended_at': _iso(stage.ended_at),
                'elapsed_minutes': stage.elapsed_minutes,
                'overdue': stage.overdue,
            }
            for stage in journey.stages
        ],
    }


def serialize_queue(department, entries):
    return {
        'department': department,
        'count': len(entries),
        'patients': [
            {
                'id': record.id,
                'full_name': record.full_name,
                'status': record.status,
                'priority': record.priority,
                'wait_minutes': minutes,
            }
            for record, minutes in entries
        ],
    }


def serialize_paused(paused):
    return {
        'count': len(paused),
        'workflows': [
            {
                'patient_id': p.patient_id,
                'patient_name': p.patient_name,
                'stage': p.stage,
                'department': p.department,
                'resume_status': p.resume_status,
                'resumable': p.resumable,
                'paused_since': _iso(p.paused_since),
            }
            for p in paused
        ],
    }


def serialize_notification(notification, now):
    return {
        'id': notification.id,
        'type': notification.type,
        'title': notification.title,
        'message': notification.message,
        'timestamp': _iso(notification.timestamp),
        'time_ago': time_ago(notification.timestamp, now),
        'read': notification.read,
        'priority': notification.priority,
        'action': notification.action,
        'patient_id': notification.patient_id,
        'test_id': notification.test_id,
        'prescription_id': notification.prescription_id,
        'invoice_id': notification.invoice_id,
        'department_target': notification.department_target,
    }


def serialize_navigation(target):
    return {
        'section': target.section,
        'department': target.department,
        'patient_id': target.patient_id,
    }


def serialize_notification_list(notifications, now, unread_count):
    return {
        'count': len(notifications),
        'unread_count': unread_count,
        'notifications': [serialize_notification(n, now) for n in notifications],
    }


def serialize_invoice(invoice):
    return {
        'id': invoice.id,
        'patient_id': invoice.patient_id,
        'status': invoice.status,
        'total_amount': str(invoice.total_amount),
        'created_at': _iso(invoice.created_at),
        'paid_at': _iso(invoice.paid_at),
        'items': [
            {
                'service_name': item.service_name,
                'department': item.department,
                'category': item.category,
                'quantity': item.quantity,
                'unit_price': str(item.unit_price),
                'status': item.status,
            }
            for item in invoice.items
        ],
    }
