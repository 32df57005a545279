import logging
import time

from django.conf import settings
from django.core.cache import cache
from django.utils import timezone

from courtside.exceptions import StorageError

logger = logging.getLogger(__name__)

KEY_PREFIX = "notifications:user:"
LOCK_PREFIX = "notifications:lock:"
LOCK_TIMEOUT = 5
LOCK_WAIT = 2.0
LOCK_POLL_INTERVAL = 0.01


def _key(user_id) -> str:
    return f"{KEY_PREFIX}{user_id}"


class NotificationStore:
    """
    Per-user notification inbox kept in the cache backend.

    Entries expire ``NOTIFICATION_TTL_SECONDS`` after the latest write and at
    most ``NOTIFICATION_MAX_ITEMS`` newest entries are kept. With Redis as the
    cache backend the inbox survives process restarts and is shared between
    instances.

    Appends are a read-modify-write of one cache key, so writers to the same
    inbox serialize on a short-lived lock key taken with ``cache.add``.
    """

    @staticmethod
    def _acquire(user_id) -> bool:
        deadline = time.monotonic() + LOCK_WAIT
        while not cache.add(f"{LOCK_PREFIX}{user_id}", 1, timeout=LOCK_TIMEOUT):
            if time.monotonic() >= deadline:
                return False
            time.sleep(LOCK_POLL_INTERVAL)
        return True

    @staticmethod
    def push(user_id, message: str, event: str = None) -> dict:
        """
        Append an entry to the user's inbox.

        Raises:
            StorageError: If the inbox stayed locked by other writers for
                longer than ``LOCK_WAIT`` seconds.
        """
        ttl = getattr(settings, "NOTIFICATION_TTL_SECONDS", 7 * 24 * 3600)
        max_items = getattr(settings, "NOTIFICATION_MAX_ITEMS", 100)

        entry = {
            "message": message,
            "event": event,
            "date": timezone.now().isoformat(),
        }
        if not NotificationStore._acquire(user_id):
            logger.warning("Notification inbox busy: user=%s", user_id)
            raise StorageError("Notification inbox is busy.")
        try:
            items = cache.get(_key(user_id), [])
            items.append(entry)
            cache.set(_key(user_id), items[-max_items:], timeout=ttl)
        finally:
            cache.delete(f"{LOCK_PREFIX}{user_id}")
        return entry

    @staticmethod
    def list(user_id) -> list:
        return list(reversed(cache.get(_key(user_id), [])))

    @staticmethod
    def clear(user_id) -> None:
        cache.delete(_key(user_id))


def notify(user_id, message: str, event: str = None) -> None:
    """Queue a notification for delivery; failures never affect the caller."""
    from notifications.tasks import send_notification

    try:
        send_notification.delay(user_id, message, event)
    except Exception:
        logger.exception("Could not queue notification: user=%s event=%s", user_id, event)
