import threading
import time
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.core.cache.backends.locmem import LocMemCache
from django.test import TestCase, override_settings
from rest_framework.test import APIClient

from courtside.exceptions import StorageError
from notifications.services import NotificationStore, notify
from notifications.tasks import send_notification

User = get_user_model()


class NotificationStoreTest(TestCase):
    def setUp(self):
        cache.clear()

    def test_push_and_list_newest_first(self):
        NotificationStore.push(1, "first")
        NotificationStore.push(1, "second", event="booking_paid")

        items = NotificationStore.list(1)

        self.assertEqual([item["message"] for item in items], ["second", "first"])
        self.assertEqual(items[0]["event"], "booking_paid")
        self.assertIn("date", items[0])

    def test_inboxes_are_per_user(self):
        NotificationStore.push(1, "for one")
        self.assertEqual(NotificationStore.list(2), [])

    @override_settings(NOTIFICATION_MAX_ITEMS=3)
    def test_keeps_only_newest_items(self):
        for i in range(5):
            NotificationStore.push(1, f"message {i}")

        items = NotificationStore.list(1)
        self.assertEqual(
            [item["message"] for item in items],
            ["message 4", "message 3", "message 2"],
        )

    @override_settings(NOTIFICATION_TTL_SECONDS=60)
    @patch("notifications.services.cache")
    def test_entries_written_with_ttl(self, mock_cache):
        mock_cache.get.return_value = []

        NotificationStore.push(1, "hello")

        args, kwargs = mock_cache.set.call_args
        self.assertEqual(args[0], "notifications:user:1")
        self.assertEqual(kwargs["timeout"], 60)

    def test_clear(self):
        NotificationStore.push(1, "hello")
        NotificationStore.clear(1)
        self.assertEqual(NotificationStore.list(1), [])

    @patch("notifications.services.LOCK_WAIT", 0)
    def test_push_fails_when_inbox_stays_locked(self):
        NotificationStore.push(1, "before")
        cache.add("notifications:lock:1", 1)

        with self.assertRaises(StorageError):
            NotificationStore.push(1, "blocked")

        self.assertEqual([item["message"] for item in NotificationStore.list(1)], ["before"])

    def test_push_releases_lock(self):
        NotificationStore.push(1, "hello")
        self.assertIsNone(cache.get("notifications:lock:1"))

    def test_concurrent_pushes_keep_every_entry(self):
        original_get = LocMemCache.get

        def slow_get(self, *args, **kwargs):
            value = original_get(self, *args, **kwargs)
            time.sleep(0.05)
            return value

        barrier = threading.Barrier(4)
        errors = []

        def push(i):
            try:
                barrier.wait()
                NotificationStore.push(1, f"message {i}")
            except Exception as exc:
                errors.append(exc)

        with patch.object(LocMemCache, "get", autospec=True, side_effect=slow_get):
            threads = [threading.Thread(target=push, args=(i,)) for i in range(4)]
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join()

        self.assertEqual(errors, [])
        messages = sorted(item["message"] for item in NotificationStore.list(1))
        self.assertEqual(messages, [f"message {i}" for i in range(4)])


class NotificationTaskTest(TestCase):
    def setUp(self):
        cache.clear()

    def test_send_notification_stores_entry(self):
        send_notification.apply(args=[7, "Booking #3 paid."], kwargs={"event": "booking_paid"})

        items = NotificationStore.list(7)
        self.assertEqual(len(items), 1)
        self.assertEqual(items[0]["message"], "Booking #3 paid.")

    @patch("notifications.tasks.NotificationStore.push")
    def test_send_notification_retries_busy_inbox(self, mock_push):
        mock_push.side_effect = [StorageError("Notification inbox is busy."), {}]

        result = send_notification.apply(args=[7, "hello"])

        self.assertEqual(result.status, "SUCCESS")
        self.assertEqual(mock_push.call_count, 2)

    @patch("notifications.tasks.send_notification.delay")
    def test_notify_queues_task(self, mock_delay):
        notify(7, "hello", event="ping")
        mock_delay.assert_called_once_with(7, "hello", "ping")

    @patch("notifications.tasks.send_notification.delay")
    def test_notify_swallows_broker_errors(self, mock_delay):
        mock_delay.side_effect = ConnectionError("broker down")
        notify(7, "hello")
        self.assertEqual(NotificationStore.list(7), [])


class NotificationAPITest(TestCase):
    def setUp(self):
        cache.clear()
        self.user = User.objects.create_user(username="alice", password="pass1234")
        self.client = APIClient()
        self.client.force_authenticate(user=self.user)

    def test_list_notifications(self):
        NotificationStore.push(self.user.pk, "older")
        NotificationStore.push(self.user.pk, "newer")

        response = self.client.get("/api/notifications/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual([item["message"] for item in response.data], ["newer", "older"])

    def test_requires_authentication(self):
        response = APIClient().get("/api/notifications/")
        self.assertIn(response.status_code, (401, 403))
