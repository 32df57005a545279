import threading
from datetime import timedelta
from decimal import Decimal
from unittest.mock import MagicMock, patch

import requests
from django.contrib.auth import get_user_model
from django.db import IntegrityError, connection
from django.test import TestCase, TransactionTestCase, override_settings
from django.utils import timezone
from rest_framework.test import APIClient

from bookings.models import Booking, Payment
from bookings.services import BookingService, PaymentService
from bookings.utils import gateway_amount, request_gateway_payment, verify_gateway_payment
from courtside.exceptions import (
    Forbidden,
    GatewayError,
    InvalidAmount,
    InvalidState,
    NotFound,
)
from wallets.models import Wallet
from wallets.services import LedgerService, WalletService

User = get_user_model()


def make_user(username, **extra):
    return User.objects.create_user(username=username, password="pass1234", **extra)


def window(hours=1):
    start = timezone.now() + timedelta(days=1)
    return start, start + timedelta(hours=hours)


def make_booking(owner, price="50.00", status=Booking.Status.PENDING):
    start, end = window()
    return Booking.objects.create(
        owner=owner,
        court_id=7,
        start_time=start,
        end_time=end,
        price=Decimal(price),
        status=status,
    )


def make_gateway_payment(booking, **extra):
    fields = {
        "booking": booking,
        "amount": booking.price,
        "status": Payment.Status.PENDING,
        "method": Payment.Method.GATEWAY,
        "authority": f"auth-{booking.pk}",
    }
    fields.update(extra)
    return Payment.objects.create(**fields)


# ============================================================
# Model Tests
# ============================================================


class BookingModelTest(TestCase):
    def setUp(self):
        self.user = make_user("alice")

    def test_create_booking_defaults_to_pending(self):
        booking = make_booking(self.user)
        self.assertEqual(booking.status, "pending")
        self.assertIsNone(booking.coach_id)

    def test_booking_str(self):
        booking = make_booking(self.user)
        self.assertIn(f"Booking {booking.pk}", str(booking))

    def test_allowed_transitions(self):
        booking = make_booking(self.user)
        self.assertTrue(booking.can_transition_to(Booking.Status.PAID))
        self.assertTrue(booking.can_transition_to(Booking.Status.CANCELLED))

        booking.transition_to(Booking.Status.PAID)
        self.assertFalse(booking.can_transition_to(Booking.Status.PENDING))

        booking.transition_to(Booking.Status.CANCELLED)
        booking.refresh_from_db()
        self.assertEqual(booking.status, Booking.Status.CANCELLED)

    def test_cancelled_is_terminal(self):
        booking = make_booking(self.user, status=Booking.Status.CANCELLED)
        for status in (Booking.Status.PENDING, Booking.Status.PAID):
            with self.subTest(status=status):
                with self.assertRaises(InvalidState):
                    booking.transition_to(status)

    def test_negative_price_rejected_by_database(self):
        start, end = window()
        with self.assertRaises(IntegrityError):
            Booking.objects.create(
                owner=self.user,
                court_id=1,
                start_time=start,
                end_time=end,
                price=Decimal("-1.00"),
            )


class PaymentModelTest(TestCase):
    def setUp(self):
        self.user = make_user("alice")
        self.booking = make_booking(self.user)

    def test_one_live_payment_per_booking(self):
        make_gateway_payment(self.booking)
        with self.assertRaises(IntegrityError):
            Payment.objects.create(
                booking=self.booking,
                amount=self.booking.price,
                status=Payment.Status.PAID,
                method=Payment.Method.WALLET,
            )

    def test_failed_payments_do_not_block_a_new_one(self):
        make_gateway_payment(self.booking, status=Payment.Status.FAILED)
        payment = Payment.objects.create(
            booking=self.booking,
            amount=self.booking.price,
            status=Payment.Status.PAID,
            method=Payment.Method.WALLET,
        )
        self.assertEqual(self.booking.payments.count(), 2)
        self.assertEqual(payment.status, "paid")

    def test_get_pending_gateway_payments(self):
        due = make_gateway_payment(self.booking)
        exhausted = make_gateway_payment(make_booking(self.user), verify_attempts=3)
        make_gateway_payment(make_booking(self.user), status=Payment.Status.FAILED)

        pending = Payment.get_pending_gateway_payments(max_attempts=3)

        self.assertIn(due, pending)
        self.assertNotIn(exhausted, pending)
        self.assertEqual(pending.count(), 1)

    def test_mark_settled(self):
        payment = make_gateway_payment(self.booking)
        payment.mark_settled(Payment.Status.PAID, {"data": {"code": 100}})
        payment.refresh_from_db()
        self.assertEqual(payment.status, Payment.Status.PAID)
        self.assertIsNotNone(payment.settled_at)
        self.assertEqual(payment.gateway_response, {"data": {"code": 100}})


# ============================================================
# Booking Service Tests
# ============================================================


class BookingServiceTest(TransactionTestCase):
    def setUp(self):
        self.user = make_user("alice")
        self.other = make_user("bob")

    def test_create_success(self):
        start, end = window()
        booking = BookingService.create(self.user.pk, 3, start, end, "45.5", coach_id=9)

        self.assertEqual(booking.status, Booking.Status.PENDING)
        self.assertEqual(booking.price, Decimal("45.50"))
        self.assertEqual(booking.coach_id, 9)

    def test_create_free_booking(self):
        start, end = window()
        booking = BookingService.create(self.user.pk, 3, start, end, 0)
        self.assertEqual(booking.price, Decimal("0.00"))

    def test_create_negative_price_raises(self):
        start, end = window()
        with self.assertRaises(InvalidAmount):
            BookingService.create(self.user.pk, 3, start, end, "-1")
        self.assertFalse(Booking.objects.exists())

    def test_create_empty_window_raises(self):
        start, _ = window()
        with self.assertRaises(ValueError):
            BookingService.create(self.user.pk, 3, start, start, "10")

    def test_get_for_user_refuses_other_users_booking(self):
        booking = make_booking(self.other)
        with self.assertRaises(Forbidden):
            BookingService.get_for_user(booking.pk, self.user.pk)

    def test_cancel_pending(self):
        booking = make_booking(self.user)
        BookingService.cancel(booking.pk, self.user.pk)
        booking.refresh_from_db()
        self.assertEqual(booking.status, Booking.Status.CANCELLED)

    def test_cancel_paid_requires_refund(self):
        booking = make_booking(self.user, status=Booking.Status.PAID)
        with self.assertRaises(InvalidState):
            BookingService.cancel(booking.pk, self.user.pk)

    def test_cancel_with_gateway_payment_in_flight(self):
        booking = make_booking(self.user)
        make_gateway_payment(booking)
        with self.assertRaises(InvalidState):
            BookingService.cancel(booking.pk, self.user.pk)

    def test_cancel_other_users_booking(self):
        booking = make_booking(self.other)
        with self.assertRaises(Forbidden):
            BookingService.cancel(booking.pk, self.user.pk)

    def test_delete_without_payments(self):
        booking = make_booking(self.user)
        BookingService.delete(booking.pk, self.user.pk)
        self.assertFalse(Booking.objects.filter(pk=booking.pk).exists())

    def test_delete_with_payment_history_raises(self):
        booking = make_booking(self.user)
        make_gateway_payment(booking, status=Payment.Status.FAILED)
        with self.assertRaises(InvalidState):
            BookingService.delete(booking.pk, self.user.pk)
        self.assertTrue(Booking.objects.filter(pk=booking.pk).exists())

    def test_delete_missing_booking(self):
        with self.assertRaises(NotFound):
            BookingService.delete(12345, self.user.pk)

    def test_get_for_user_missing_booking(self):
        with self.assertRaises(NotFound):
            BookingService.get_for_user(12345, self.user.pk)


class RefundTest(TransactionTestCase):
    def setUp(self):
        self.user = make_user("alice")
        self.admin = make_user("admin", is_staff=True)
        WalletService.top_up(self.user.pk, Decimal("100.00"))
        self.booking = make_booking(self.user, "60.00")
        self.payment = WalletService.pay_booking(self.user.pk, self.booking.pk)

    def test_refund_cancels_booking(self):
        payment = BookingService.refund(self.payment.pk, self.user.pk)

        self.assertEqual(payment.status, Payment.Status.REFUNDED)
        self.assertIsNotNone(payment.settled_at)
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.CANCELLED)

    def test_refund_leaves_wallet_balance_unchanged(self):
        BookingService.refund(self.payment.pk, self.user.pk)
        wallet = Wallet.objects.get(owner=self.user)
        self.assertEqual(wallet.balance, Decimal("40.00"))
        self.assertEqual(LedgerService.ledger_balance(wallet.pk), Decimal("40.00"))

    def test_double_refund_raises(self):
        BookingService.refund(self.payment.pk, self.user.pk)
        with self.assertRaises(InvalidState):
            BookingService.refund(self.payment.pk, self.user.pk)

        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.CANCELLED)

    def test_refund_by_admin(self):
        payment = BookingService.refund(self.payment.pk, self.admin.pk, is_admin=True)
        self.assertEqual(payment.status, Payment.Status.REFUNDED)

    def test_refund_by_stranger_forbidden(self):
        stranger = make_user("mallory")
        with self.assertRaises(Forbidden):
            BookingService.refund(self.payment.pk, stranger.pk)
        self.payment.refresh_from_db()
        self.assertEqual(self.payment.status, Payment.Status.PAID)

    def test_refund_pending_payment_raises(self):
        booking = make_booking(self.user)
        pending = make_gateway_payment(booking)
        with self.assertRaises(InvalidState):
            BookingService.refund(pending.pk, self.user.pk)

    def test_refund_missing_payment(self):
        with self.assertRaises(NotFound):
            BookingService.refund(99999, self.user.pk)

    def test_booking_can_be_repaid_only_while_pending(self):
        BookingService.refund(self.payment.pk, self.user.pk)
        with self.assertRaises(InvalidState):
            WalletService.pay_booking(self.user.pk, self.booking.pk)


class ConcurrentSettlementTest(TransactionTestCase):
    """Races settlements on one booking from real threads."""

    def setUp(self):
        self.user = make_user("alice")
        WalletService.top_up(self.user.pk, Decimal("200.00"))
        self.booking = make_booking(self.user, "60.00")

    def run_concurrently(self, func, count):
        """Call ``func`` from ``count`` threads; return results and every error raised."""
        results, errors = [], []
        barrier = threading.Barrier(count)

        def worker():
            try:
                barrier.wait()
                results.append(func())
            except Exception as exc:
                errors.append(exc)
            finally:
                connection.close()

        threads = [threading.Thread(target=worker) for _ in range(count)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        return results, errors

    def assertOnlyInvalidState(self, errors):
        self.assertEqual([exc for exc in errors if not isinstance(exc, InvalidState)], [])

    def test_booking_is_paid_at_most_once(self):
        results, errors = self.run_concurrently(
            lambda: WalletService.pay_booking(self.user.pk, self.booking.pk), 5
        )

        self.assertOnlyInvalidState(errors)
        self.assertEqual(len(results), 1)
        self.assertEqual(len(errors), 4)
        wallet = Wallet.objects.get(owner=self.user)
        self.assertEqual(wallet.balance, Decimal("140.00"))
        self.assertEqual(wallet.balance, LedgerService.ledger_balance(wallet.pk))
        self.assertEqual(self.booking.payments.count(), 1)

    def test_payment_is_refunded_at_most_once(self):
        payment = WalletService.pay_booking(self.user.pk, self.booking.pk)
        results, errors = self.run_concurrently(
            lambda: BookingService.refund(payment.pk, self.user.pk), 5
        )

        self.assertOnlyInvalidState(errors)
        self.assertEqual(len(results), 1)
        self.assertEqual(len(errors), 4)
        wallet = Wallet.objects.get(owner=self.user)
        self.assertEqual(wallet.balance, Decimal("140.00"))
        self.assertEqual(wallet.balance, LedgerService.ledger_balance(wallet.pk))


# ============================================================
# Gateway Tests
# ============================================================


class GatewayClientTest(TestCase):
    @override_settings(PAYMENT_GATEWAY_MERCHANT_ID=None)
    def test_mock_mode_without_merchant(self):
        result = request_gateway_payment(booking_id=1, amount=Decimal("10.00"))
        self.assertTrue(result["success"])
        self.assertTrue(result["authority"].startswith("mock-"))

        verified = verify_gateway_payment(result["authority"], Decimal("10.00"))
        self.assertTrue(verified["success"])

    @override_settings(PAYMENT_GATEWAY_MERCHANT_ID="merchant", PAYMENT_GATEWAY_BASE_URL="https://pg.test")
    @patch("bookings.utils.gateway.requests.post")
    def test_request_success(self, mock_post):
        mock_post.return_value = MagicMock(
            json=MagicMock(return_value={"data": {"code": 100, "authority": "A123"}})
        )

        result = request_gateway_payment(booking_id=5, amount=Decimal("25.00"))

        self.assertTrue(result["success"])
        self.assertEqual(result["authority"], "A123")
        self.assertEqual(result["payment_url"], "https://pg.test/pg/StartPay/A123")
        self.assertEqual(mock_post.call_args.kwargs["json"]["amount"], 25)

    @override_settings(PAYMENT_GATEWAY_MERCHANT_ID="merchant")
    @patch("bookings.utils.gateway.requests.post")
    def test_request_rejected(self, mock_post):
        mock_post.return_value = MagicMock(
            json=MagicMock(return_value={"data": {}, "errors": {"code": -9}})
        )

        result = request_gateway_payment(booking_id=5, amount=Decimal("25.00"))

        self.assertFalse(result["success"])
        self.assertIsNone(result["authority"])

    @override_settings(PAYMENT_GATEWAY_MERCHANT_ID="merchant")
    @patch("bookings.utils.gateway.requests.post")
    def test_verify_timeout(self, mock_post):
        mock_post.side_effect = requests.exceptions.Timeout("slow")

        result = verify_gateway_payment("A123", Decimal("25.00"))

        self.assertFalse(result["success"])
        self.assertEqual(result["response"]["error"], "timeout")

    @override_settings(PAYMENT_GATEWAY_MERCHANT_ID="merchant")
    @patch("bookings.utils.gateway.requests.post")
    def test_verify_connection_error(self, mock_post):
        mock_post.side_effect = requests.exceptions.ConnectionError("down")

        result = verify_gateway_payment("A123", Decimal("25.00"))

        self.assertFalse(result["success"])
        self.assertEqual(result["response"]["error"], "request_error")

    def test_gateway_amount_accepts_whole_units(self):
        self.assertEqual(gateway_amount(Decimal("60.00")), 60)
        self.assertEqual(gateway_amount(150), 150)

    def test_gateway_amount_refuses_fractions(self):
        with self.assertRaises(ValueError):
            gateway_amount(Decimal("60.50"))

    @override_settings(PAYMENT_GATEWAY_MERCHANT_ID="merchant")
    @patch("bookings.utils.gateway.requests.post")
    def test_fractional_amount_is_never_sent(self, mock_post):
        with self.assertRaises(ValueError):
            request_gateway_payment(booking_id=5, amount=Decimal("25.99"))
        with self.assertRaises(ValueError):
            verify_gateway_payment("A123", Decimal("25.99"))
        mock_post.assert_not_called()


class PaymentServiceTest(TransactionTestCase):
    def setUp(self):
        self.user = make_user("alice")
        self.booking = make_booking(self.user, "30.00")

    @patch("bookings.services.payment.request_gateway_payment")
    def test_initiate_creates_pending_payment(self, mock_request):
        mock_request.return_value = {
            "success": True,
            "authority": "A1",
            "payment_url": "https://pg.test/pg/StartPay/A1",
            "response": {"data": {"code": 100}},
        }

        result = PaymentService.initiate_gateway_payment(self.user.pk, self.booking.pk)

        payment = result["payment"]
        self.assertEqual(payment.status, Payment.Status.PENDING)
        self.assertEqual(payment.method, Payment.Method.GATEWAY)
        self.assertEqual(payment.authority, "A1")
        self.assertEqual(payment.amount, Decimal("30.00"))
        self.assertEqual(result["payment_url"], "https://pg.test/pg/StartPay/A1")

    @patch("bookings.services.payment.request_gateway_payment")
    def test_initiate_reuses_pending_payment(self, mock_request):
        existing = make_gateway_payment(self.booking)

        result = PaymentService.initiate_gateway_payment(self.user.pk, self.booking.pk)

        self.assertEqual(result["payment"].pk, existing.pk)
        mock_request.assert_not_called()

    @patch("bookings.services.payment.request_gateway_payment")
    def test_initiate_gateway_failure(self, mock_request):
        mock_request.return_value = {
            "success": False,
            "authority": None,
            "payment_url": None,
            "response": {"error": "timeout"},
        }

        with self.assertRaises(GatewayError):
            PaymentService.initiate_gateway_payment(self.user.pk, self.booking.pk)
        self.assertFalse(Payment.objects.exists())

    def test_initiate_for_paid_booking(self):
        self.booking.transition_to(Booking.Status.PAID)
        with self.assertRaises(InvalidState):
            PaymentService.initiate_gateway_payment(self.user.pk, self.booking.pk)

    def test_initiate_for_other_users_booking(self):
        other = make_user("bob")
        with self.assertRaises(Forbidden):
            PaymentService.initiate_gateway_payment(other.pk, self.booking.pk)

    @patch("bookings.services.payment.verify_gateway_payment")
    def test_verify_success_settles_booking(self, mock_verify):
        mock_verify.return_value = {"success": True, "response": {"data": {"code": 100}}}
        payment = make_gateway_payment(self.booking)

        payment = PaymentService.verify_gateway_payment(payment.pk)

        self.assertEqual(payment.status, Payment.Status.PAID)
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.PAID)
        mock_verify.assert_called_once_with(authority=payment.authority, amount=payment.amount)

    @patch("bookings.services.payment.verify_gateway_payment")
    def test_verify_rejected_marks_failed(self, mock_verify):
        mock_verify.return_value = {"success": False, "response": {"errors": {"code": -51}}}
        payment = make_gateway_payment(self.booking)

        payment = PaymentService.verify_gateway_payment(payment.pk)

        self.assertEqual(payment.status, Payment.Status.FAILED)
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.PENDING)

    @patch("bookings.services.payment.verify_gateway_payment")
    def test_verify_timeout_keeps_pending(self, mock_verify):
        mock_verify.return_value = {"success": False, "response": {"error": "timeout"}}
        payment = make_gateway_payment(self.booking)

        payment = PaymentService.verify_gateway_payment(payment.pk)

        self.assertEqual(payment.status, Payment.Status.PENDING)
        self.assertEqual(payment.verify_attempts, 1)

    @patch("bookings.services.payment.verify_gateway_payment")
    def test_verify_voids_payment_of_cancelled_booking(self, mock_verify):
        payment = make_gateway_payment(self.booking)
        Booking.objects.filter(pk=self.booking.pk).update(status=Booking.Status.CANCELLED)

        payment = PaymentService.verify_gateway_payment(payment.pk)

        self.assertEqual(payment.status, Payment.Status.FAILED)
        mock_verify.assert_not_called()

    def test_verify_wallet_payment_raises(self):
        payment = Payment.objects.create(
            booking=self.booking,
            amount=self.booking.price,
            status=Payment.Status.PAID,
            method=Payment.Method.WALLET,
        )
        with self.assertRaises(InvalidState):
            PaymentService.verify_gateway_payment(payment.pk)

    @patch("bookings.services.payment.request_gateway_payment")
    def test_initiate_refuses_fractional_price(self, mock_request):
        booking = make_booking(self.user, "60.50")

        with self.assertRaises(InvalidAmount):
            PaymentService.initiate_gateway_payment(self.user.pk, booking.pk)

        mock_request.assert_not_called()
        self.assertFalse(Payment.objects.exists())
        booking.refresh_from_db()
        self.assertEqual(booking.status, Booking.Status.PENDING)

    def test_get_for_user_refuses_other_users_payment(self):
        payment = make_gateway_payment(self.booking)
        other = make_user("bob")
        with self.assertRaises(Forbidden):
            PaymentService.get_for_user(payment.pk, other.pk)

    def test_get_for_user_missing_payment(self):
        with self.assertRaises(NotFound):
            PaymentService.get_for_user(12345, self.user.pk)


class ManualPaymentTest(TransactionTestCase):
    def setUp(self):
        self.user = make_user("alice")
        self.admin = make_user("admin", is_staff=True)
        self.booking = make_booking(self.user, "45.00")

    def test_admin_records_manual_payment(self):
        payment = PaymentService.record_manual_payment(
            self.booking.pk, self.admin.pk, is_admin=True
        )

        self.assertEqual(payment.status, Payment.Status.PAID)
        self.assertEqual(payment.method, Payment.Method.MANUAL)
        self.assertEqual(payment.amount, Decimal("45.00"))
        self.assertIsNotNone(payment.settled_at)
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.PAID)

    def test_manual_payment_leaves_wallet_alone(self):
        WalletService.top_up(self.user.pk, Decimal("100.00"))
        PaymentService.record_manual_payment(self.booking.pk, self.admin.pk, is_admin=True)
        self.assertEqual(Wallet.objects.get(owner=self.user).balance, Decimal("100.00"))

    def test_non_admin_cannot_record(self):
        with self.assertRaises(Forbidden):
            PaymentService.record_manual_payment(self.booking.pk, self.user.pk)
        self.assertFalse(Payment.objects.exists())

    def test_paid_booking_raises(self):
        PaymentService.record_manual_payment(self.booking.pk, self.admin.pk, is_admin=True)
        with self.assertRaises(InvalidState):
            PaymentService.record_manual_payment(self.booking.pk, self.admin.pk, is_admin=True)
        self.assertEqual(self.booking.payments.count(), 1)

    def test_gateway_payment_in_flight_raises(self):
        make_gateway_payment(self.booking)
        with self.assertRaises(InvalidState):
            PaymentService.record_manual_payment(self.booking.pk, self.admin.pk, is_admin=True)
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.PENDING)

    def test_missing_booking(self):
        with self.assertRaises(NotFound):
            PaymentService.record_manual_payment(12345, self.admin.pk, is_admin=True)

    def test_manual_payment_can_be_refunded(self):
        payment = PaymentService.record_manual_payment(
            self.booking.pk, self.admin.pk, is_admin=True
        )
        payment = BookingService.refund(payment.pk, self.admin.pk, is_admin=True)
        self.assertEqual(payment.status, Payment.Status.REFUNDED)


# ============================================================
# Celery Task Tests
# ============================================================


class CeleryTaskTest(TransactionTestCase):
    def setUp(self):
        self.user = make_user("alice")
        self.booking = make_booking(self.user, "30.00")

    @patch("bookings.tasks.verify_single_payment.delay")
    def test_verify_pending_payments(self, mock_delay):
        payment = make_gateway_payment(self.booking)
        make_gateway_payment(make_booking(self.user), status=Payment.Status.FAILED)

        from bookings.tasks import verify_pending_payments

        result = verify_pending_payments.apply()

        self.assertEqual(result.get()["dispatched"], 1)
        mock_delay.assert_called_once_with(payment.pk)

    def test_verify_pending_payments_nothing_to_do(self):
        from bookings.tasks import verify_pending_payments

        result = verify_pending_payments.apply()
        self.assertEqual(result.get()["dispatched"], 0)

    @patch("bookings.services.payment.verify_gateway_payment")
    def test_verify_single_payment_task(self, mock_verify):
        mock_verify.return_value = {"success": True, "response": {"data": {"code": 100}}}
        payment = make_gateway_payment(self.booking)

        from bookings.tasks import verify_single_payment

        result = verify_single_payment.apply(args=[payment.pk])

        self.assertEqual(result.get()["status"], Payment.Status.PAID)
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.PAID)

    def test_verify_single_payment_skips_missing(self):
        from bookings.tasks import verify_single_payment

        result = verify_single_payment.apply(args=[424242])
        self.assertEqual(result.get()["status"], "SKIPPED")


# ============================================================
# API Tests
# ============================================================


class BookingAPITest(TestCase):
    def setUp(self):
        self.user = make_user("alice")
        self.client = APIClient()
        self.client.force_authenticate(user=self.user)

    def test_create_booking(self):
        start, end = window()
        response = self.client.post(
            "/api/bookings/",
            {
                "court_id": 4,
                "start_time": start.isoformat(),
                "end_time": end.isoformat(),
                "price": "80.00",
            },
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["status"], "pending")
        self.assertEqual(response.data["price"], "80.00")
        self.assertEqual(response.data["payments"], [])

    def test_create_booking_invalid_window(self):
        start, _ = window()
        response = self.client.post(
            "/api/bookings/",
            {
                "court_id": 4,
                "start_time": start.isoformat(),
                "end_time": (start - timedelta(hours=1)).isoformat(),
                "price": "80.00",
            },
            format="json",
        )
        self.assertEqual(response.status_code, 400)

    def test_create_booking_negative_price(self):
        start, end = window()
        response = self.client.post(
            "/api/bookings/",
            {
                "court_id": 4,
                "start_time": start.isoformat(),
                "end_time": end.isoformat(),
                "price": "-1.00",
            },
            format="json",
        )
        self.assertEqual(response.status_code, 400)

    def test_list_only_own_bookings(self):
        make_booking(self.user)
        make_booking(make_user("bob"))

        response = self.client.get("/api/bookings/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.data), 1)

    def test_retrieve_other_users_booking(self):
        booking = make_booking(make_user("bob"))
        response = self.client.get(f"/api/bookings/{booking.pk}/")
        self.assertEqual(response.status_code, 403)

    def test_retrieve_missing_booking(self):
        response = self.client.get("/api/bookings/12345/")
        self.assertEqual(response.status_code, 404)

    def test_cancel_booking(self):
        booking = make_booking(self.user)
        response = self.client.post(f"/api/bookings/{booking.pk}/cancel")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], "cancelled")

    def test_delete_booking(self):
        booking = make_booking(self.user)
        response = self.client.delete(f"/api/bookings/{booking.pk}/")
        self.assertEqual(response.status_code, 204)

    def test_delete_booking_with_payment(self):
        booking = make_booking(self.user)
        make_gateway_payment(booking)
        response = self.client.delete(f"/api/bookings/{booking.pk}/")
        self.assertEqual(response.status_code, 409)

    @override_settings(PAYMENT_GATEWAY_MERCHANT_ID=None)
    def test_initiate_gateway_payment_in_mock_mode(self):
        booking = make_booking(self.user)
        response = self.client.post(f"/api/bookings/{booking.pk}/gateway/initiate")

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["payment"]["status"], "pending")
        self.assertTrue(response.data["payment"]["authority"].startswith("mock-"))
        self.assertIn("mock-gateway", response.data["payment_url"])

    def test_initiate_gateway_payment_fractional_price(self):
        booking = make_booking(self.user, "60.50")
        response = self.client.post(f"/api/bookings/{booking.pk}/gateway/initiate")
        self.assertEqual(response.status_code, 400)
        self.assertIn("whole-unit", response.data["error"])


class PaymentAPITest(TestCase):
    def setUp(self):
        self.user = make_user("alice")
        self.client = APIClient()
        self.client.force_authenticate(user=self.user)
        WalletService.top_up(self.user.pk, Decimal("100.00"))
        self.booking = make_booking(self.user, "60.00")
        self.payment = WalletService.pay_booking(self.user.pk, self.booking.pk)

    def test_list_payments(self):
        response = self.client.get("/api/payments/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]["method"], "wallet")

    def test_retrieve_payment(self):
        response = self.client.get(f"/api/payments/{self.payment.pk}/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["amount"], "60.00")

    @patch("bookings.views.payment.notify")
    def test_refund(self, mock_notify):
        response = self.client.post(f"/api/payments/{self.payment.pk}/refund")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], "refunded")
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.CANCELLED)
        mock_notify.assert_called_once()
        self.assertEqual(mock_notify.call_args.args[0], self.user.pk)

    @patch("bookings.views.payment.notify")
    def test_double_refund_conflicts(self, mock_notify):
        self.client.post(f"/api/payments/{self.payment.pk}/refund")
        response = self.client.post(f"/api/payments/{self.payment.pk}/refund")
        self.assertEqual(response.status_code, 409)
        self.assertEqual(mock_notify.call_count, 1)

    @patch("bookings.views.payment.notify")
    def test_refund_by_staff(self, mock_notify):
        staff = make_user("staff", is_staff=True)
        client = APIClient()
        client.force_authenticate(user=staff)

        response = client.post(f"/api/payments/{self.payment.pk}/refund")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(mock_notify.call_args.args[0], self.user.pk)

    def test_refund_by_stranger(self):
        client = APIClient()
        client.force_authenticate(user=make_user("mallory"))
        response = client.post(f"/api/payments/{self.payment.pk}/refund")
        self.assertEqual(response.status_code, 403)

    @patch("bookings.views.payment.notify")
    @patch("bookings.services.payment.verify_gateway_payment")
    def test_verify_gateway_payment(self, mock_verify, mock_notify):
        mock_verify.return_value = {"success": True, "response": {"data": {"code": 100}}}
        booking = make_booking(self.user, "20.00")
        payment = make_gateway_payment(booking)

        response = self.client.post(f"/api/payments/{payment.pk}/verify")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], "paid")
        mock_notify.assert_called_once()

    def test_verify_other_users_payment(self):
        booking = make_booking(make_user("bob"))
        payment = make_gateway_payment(booking)
        response = self.client.post(f"/api/payments/{payment.pk}/verify")
        self.assertEqual(response.status_code, 403)

    @patch("bookings.views.payment.notify")
    def test_staff_records_manual_payment(self, mock_notify):
        staff = make_user("staff", is_staff=True)
        client = APIClient()
        client.force_authenticate(user=staff)
        booking = make_booking(self.user, "35.00")

        response = client.post(f"/api/bookings/{booking.pk}/manual-payment")

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["method"], "manual")
        self.assertEqual(response.data["status"], "paid")
        booking.refresh_from_db()
        self.assertEqual(booking.status, Booking.Status.PAID)
        mock_notify.assert_called_once()
        self.assertEqual(mock_notify.call_args.args[0], self.user.pk)

    @patch("bookings.views.payment.notify")
    def test_owner_cannot_record_manual_payment(self, mock_notify):
        booking = make_booking(self.user, "35.00")

        response = self.client.post(f"/api/bookings/{booking.pk}/manual-payment")

        self.assertEqual(response.status_code, 403)
        booking.refresh_from_db()
        self.assertEqual(booking.status, Booking.Status.PENDING)
        mock_notify.assert_not_called()
