import logging
from celery import shared_task

from patientflow.exceptions import BaseAppException, NotFound

logger = logging.getLogger(__name__)


def _retry_or_raise(task, exc, label):
    """Retry retryable app errors with exponential countdown; re-raise everything else."""
    if not getattr(exc, 'retryable', False):
        logger.error("[Celery] %s failed permanently: %s", label, exc.message)
        raise exc

    logger.warning(
        "[Celery] %s failed (attempt %d): %s",
        label, task.request.retries + 1, exc.message,
    )
    if task.request.retries >= task.max_retries:
        logger.error("[Celery] %s reached max retries, giving up", label)
        raise exc

    # 10s → 20s → 40s
    countdown = task.default_retry_delay * (2 ** task.request.retries)
    logger.info("[Celery] retrying %s in %ds (retry %d)", label, countdown, task.request.retries + 1)
    raise task.retry(exc=exc, countdown=countdown)


@shared_task(
    bind=True,
    max_retries=3,
    default_retry_delay=10,
    acks_late=True,
    reject_on_worker_lost=True,
)
def deliver_test_result(self, order_id: str, results=None, critical_values: bool = False):
    """
    Apply a result posted by the laboratory / radiology system.

    Safe to redeliver: completing an order twice is a no-op, so acks_late
    redelivery never double-notifies.
    """
    from patientflow.services import complete_test_order

    label = f"deliver_test_result order_id={order_id}"
    logger.info("[Celery] %s (attempt %d/%d)", label, self.request.retries + 1, self.max_retries + 1)

    try:
        order = complete_test_order(order_id, results or {}, critical_values=critical_values)
    except NotFound:
        logger.error("[Celery] Test order %s does not exist, skipping", order_id)
        return None
    except BaseAppException as exc:
        _retry_or_raise(self, exc, label)

    logger.info("[Celery] %s done (status=%s)", label, order.status)
    return order.id


@shared_task(
    bind=True,
    max_retries=3,
    default_retry_delay=10,
    acks_late=True,
    reject_on_worker_lost=True,
)
def record_payment_posted(self, patient_id: str, invoice_id: str):
    """Payment posting from the billing subsystem."""
    from patientflow.services import record_payment

    label = f"record_payment_posted invoice_id={invoice_id}"
    logger.info("[Celery] %s (attempt %d/%d)", label, self.request.retries + 1, self.max_retries + 1)

    try:
        invoice = record_payment(patient_id, invoice_id)
    except NotFound:
        logger.error("[Celery] Patient %s does not exist, skipping", patient_id)
        return None
    except BaseAppException as exc:
        _retry_or_raise(self, exc, label)

    logger.info("[Celery] %s done", label)
    return invoice.id
