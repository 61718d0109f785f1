"""
Payment gate: may a patient receive a service in a given category yet?

Read-only over the patient's invoices. Fails closed: with no matching paid
invoice line the answer is False. Store failures propagate as
UpstreamUnavailable rather than being read as "unpaid".
"""

import logging

from patientflow.enums import Department, InvoiceStatus
from patientflow.exceptions import PaymentRequired

logger = logging.getLogger(__name__)

_LABORATORY = frozenset({'laboratory', 'lab'})
_RADIOLOGY = frozenset({'radiology'})
_PHARMACY = frozenset({'medication', 'pharmacy'})


def item_covers(item, service_category: str) -> bool:
    """Does one invoice line pay for ``service_category``?"""
    category = (service_category or '').strip().lower()
    department = (item.department or '').lower()
    item_category = (item.category or '').lower()

    if category in _LABORATORY:
        return department == Department.LABORATORY
    if category in _RADIOLOGY:
        return department == Department.RADIOLOGY
    if category in _PHARMACY:
        return department == Department.PHARMACY or item_category == 'medication'
    return bool(category) and (department == category or item_category == category)


def invoices_cover(invoices, service_category: str) -> bool:
    return any(
        invoice.status == InvoiceStatus.PAID
        and any(item_covers(item, service_category) for item in invoice.items)
        for invoice in invoices
    )


class PaymentGate:

    def __init__(self, store):
        self.store = store

    def is_paid(self, patient_id: str, service_category: str) -> bool:
        paid = invoices_cover(self.store.list_invoices(patient_id), service_category)
        logger.debug("Payment check patient=%s category=%s paid=%s", patient_id, service_category, paid)
        return paid

    def require_paid(self, patient_id: str, service_category: str) -> None:
        """Raises PaymentRequired naming the category when it is not paid."""
        if not self.is_paid(patient_id, service_category):
            logger.info("Payment gate closed: patient=%s category=%s", patient_id, service_category)
            raise PaymentRequired(service_category, detail={
                'patient_id': patient_id,
                'service_category': service_category,
            })
