import logging

from celery import shared_task

from courtside.exceptions import StorageError
from notifications.services import NotificationStore

logger = logging.getLogger(__name__)


@shared_task(bind=True, ignore_result=True, max_retries=5, default_retry_delay=1)
def send_notification(self, user_id, message, event=None):
    try:
        NotificationStore.push(user_id, message, event)
    except StorageError as exc:
        logger.warning("Notification inbox busy, retrying: user=%s event=%s", user_id, event)
        raise self.retry(exc=exc, countdown=2**self.request.retries)
    logger.info("Notification stored: user=%s event=%s", user_id, event)
