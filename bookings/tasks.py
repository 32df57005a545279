import logging

from celery import shared_task
from django.conf import settings

from bookings.models import Payment
from bookings.services import PaymentService
from courtside.exceptions import InvalidState, NotFound, StorageError

logger = logging.getLogger(__name__)

MAX_VERIFY_ATTEMPTS = getattr(settings, "PAYMENT_VERIFY_MAX_RETRIES", 3)


@shared_task(bind=True, acks_late=True, max_retries=3, default_retry_delay=30)
def verify_single_payment(self, payment_id: int):
    """
    Verify a single pending gateway payment.

    Uses acks_late=True so the task is only acknowledged once verification
    finished, and a worker crash leaves the message for another worker.
    """
    try:
        logger.info("Verifying gateway payment payment_id=%d", payment_id)
        payment = PaymentService.verify_gateway_payment(payment_id)
        return {"payment_id": payment_id, "status": payment.status}

    except (NotFound, InvalidState) as exc:
        logger.warning("Payment %d not verifiable: %s", payment_id, exc)
        return {"payment_id": payment_id, "status": "SKIPPED"}

    except StorageError as exc:
        logger.exception("Storage error verifying payment %d", payment_id)
        raise self.retry(exc=exc, countdown=2**self.request.retries * 10)


@shared_task
def verify_pending_payments():
    """
    Periodic task: dispatch verification for every gateway payment that is
    still pending and has verification attempts left.

    Runs via Celery Beat (see CELERY_BEAT_SCHEDULE).
    """
    pending = Payment.get_pending_gateway_payments(max_attempts=MAX_VERIFY_ATTEMPTS)
    payment_ids = list(pending.values_list("id", flat=True))

    if not payment_ids:
        return {"dispatched": 0}

    logger.info("Found %d pending gateway payment(s) to verify.", len(payment_ids))

    for payment_id in payment_ids:
        verify_single_payment.delay(payment_id)

    return {"dispatched": len(payment_ids)}
