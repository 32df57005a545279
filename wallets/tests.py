import threading
from datetime import timedelta
from decimal import Decimal
from io import StringIO

from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.core.management.base import CommandError
from django.db import connection
from django.test import TestCase, TransactionTestCase
from django.utils import timezone
from rest_framework.test import APIClient

from bookings.models import Booking, Payment
from courtside.exceptions import Forbidden, InsufficientFunds, InvalidAmount, InvalidState, NotFound
from wallets.models import ImmutableRecordError, Wallet, WalletTransaction
from wallets.services import LedgerService, WalletService, to_amount

User = get_user_model()


def make_user(username):
    return User.objects.create_user(username=username, password="pass1234")


def make_booking(owner, price, status=Booking.Status.PENDING):
    start = timezone.now() + timedelta(days=1)
    return Booking.objects.create(
        owner=owner,
        court_id=1,
        start_time=start,
        end_time=start + timedelta(hours=1),
        price=Decimal(price),
        status=status,
    )


# ============================================================
# Model Tests
# ============================================================


class WalletModelTest(TestCase):
    def setUp(self):
        self.user = make_user("alice")

    def test_create_wallet(self):
        wallet = Wallet.objects.create(owner=self.user)
        self.assertEqual(wallet.balance, Decimal("0.00"))
        self.assertIsNotNone(wallet.created_at)

    def test_wallet_str(self):
        wallet = Wallet.objects.create(owner=self.user)
        self.assertIn(str(self.user.pk), str(wallet))

    def test_transaction_signed_amount(self):
        wallet = Wallet.objects.create(owner=self.user)
        topup = WalletTransaction(
            wallet=wallet,
            transaction_type=WalletTransaction.TransactionType.TOPUP,
            amount=Decimal("10.00"),
        )
        payment = WalletTransaction(
            wallet=wallet,
            transaction_type=WalletTransaction.TransactionType.PAYMENT,
            amount=Decimal("4.00"),
        )
        self.assertEqual(topup.signed_amount, Decimal("10.00"))
        self.assertEqual(payment.signed_amount, Decimal("-4.00"))
        self.assertTrue(payment.is_debit)

    def test_transaction_is_immutable(self):
        wallet = Wallet.objects.create(owner=self.user)
        tx = WalletTransaction.objects.create(
            wallet=wallet,
            transaction_type=WalletTransaction.TransactionType.TOPUP,
            amount=Decimal("10.00"),
        )
        tx.amount = Decimal("99.00")
        with self.assertRaises(ImmutableRecordError):
            tx.save()


class ToAmountTest(TestCase):
    def test_accepts_positive_values(self):
        self.assertEqual(to_amount("12.5"), Decimal("12.50"))
        self.assertEqual(to_amount(3), Decimal("3.00"))

    def test_rejects_invalid_values(self):
        for value in (0, -1, "abc", None, "NaN", "Infinity", "0.001"):
            with self.subTest(value=value):
                with self.assertRaises(InvalidAmount):
                    to_amount(value)


# ============================================================
# Ledger Tests
# ============================================================


class LedgerServiceTest(TestCase):
    def setUp(self):
        self.user = make_user("alice")
        self.wallet = LedgerService.get_or_create_wallet(self.user.pk)

    def test_get_or_create_wallet_is_lazy_and_unique(self):
        again = LedgerService.get_or_create_wallet(self.user.pk)
        self.assertEqual(again.pk, self.wallet.pk)
        self.assertEqual(Wallet.objects.filter(owner=self.user).count(), 1)

    def test_credit_adjusts_balance(self):
        tx = LedgerService.append_transaction(
            self.wallet.pk, WalletTransaction.TransactionType.TOPUP, Decimal("50.00")
        )
        self.wallet.refresh_from_db()
        self.assertEqual(self.wallet.balance, Decimal("50.00"))
        self.assertEqual(tx.status, WalletTransaction.Status.COMPLETED)

    def test_debit_beyond_balance_raises(self):
        LedgerService.append_transaction(
            self.wallet.pk, WalletTransaction.TransactionType.TOPUP, Decimal("20.00")
        )
        with self.assertRaises(InsufficientFunds):
            LedgerService.append_transaction(
                self.wallet.pk, WalletTransaction.TransactionType.WITHDRAW, Decimal("20.01")
            )
        self.wallet.refresh_from_db()
        self.assertEqual(self.wallet.balance, Decimal("20.00"))
        self.assertEqual(self.wallet.transactions.count(), 1)

    def test_debit_to_exactly_zero(self):
        LedgerService.append_transaction(
            self.wallet.pk, WalletTransaction.TransactionType.TOPUP, Decimal("20.00")
        )
        LedgerService.append_transaction(
            self.wallet.pk, WalletTransaction.TransactionType.WITHDRAW, Decimal("20.00")
        )
        self.wallet.refresh_from_db()
        self.assertEqual(self.wallet.balance, Decimal("0.00"))

    def test_non_completed_entries_do_not_move_balance(self):
        LedgerService.append_transaction(
            self.wallet.pk,
            WalletTransaction.TransactionType.WITHDRAW,
            Decimal("5.00"),
            WalletTransaction.Status.FAILED,
            meta="gateway timeout",
        )
        self.wallet.refresh_from_db()
        self.assertEqual(self.wallet.balance, Decimal("0.00"))
        self.assertEqual(LedgerService.ledger_balance(self.wallet.pk), Decimal("0.00"))

    def test_invalid_amount_raises(self):
        with self.assertRaises(InvalidAmount):
            LedgerService.append_transaction(
                self.wallet.pk, WalletTransaction.TransactionType.TOPUP, Decimal("0")
            )

    def test_unknown_wallet_raises(self):
        with self.assertRaises(NotFound):
            LedgerService.append_transaction(
                999999, WalletTransaction.TransactionType.TOPUP, Decimal("1.00")
            )

    def test_ledger_balance_matches_wallet_balance(self):
        LedgerService.append_transaction(
            self.wallet.pk, WalletTransaction.TransactionType.TOPUP, Decimal("100.00")
        )
        LedgerService.append_transaction(
            self.wallet.pk, WalletTransaction.TransactionType.WITHDRAW, Decimal("30.00")
        )
        LedgerService.append_transaction(
            self.wallet.pk, WalletTransaction.TransactionType.PAYMENT, Decimal("25.50")
        )
        balance, ledger = LedgerService.reconcile(self.wallet.pk)
        self.assertEqual(balance, Decimal("44.50"))
        self.assertEqual(ledger, Decimal("44.50"))


class ReconcileCommandTest(TestCase):
    def setUp(self):
        self.user = make_user("alice")
        WalletService.top_up(self.user.pk, Decimal("10.00"))

    def test_reports_success_when_in_sync(self):
        out = StringIO()
        call_command("reconcile_wallets", stdout=out)
        self.assertIn("All wallets match", out.getvalue())

    def test_fails_when_balance_drifts(self):
        Wallet.objects.filter(owner=self.user).update(balance=Decimal("99.00"))
        out = StringIO()
        with self.assertRaises(CommandError):
            call_command("reconcile_wallets", stdout=out)
        self.assertIn("balance=99.00 ledger=10.00", out.getvalue())


# ============================================================
# Wallet Service Tests
# ============================================================


class WalletServiceTest(TransactionTestCase):
    def setUp(self):
        self.user = make_user("alice")

    def test_top_up_success(self):
        tx = WalletService.top_up(self.user.pk, Decimal("100.00"))

        wallet = Wallet.objects.get(owner=self.user)
        self.assertEqual(wallet.balance, Decimal("100.00"))
        self.assertEqual(tx.transaction_type, WalletTransaction.TransactionType.TOPUP)
        self.assertEqual(tx.status, WalletTransaction.Status.COMPLETED)

    def test_top_up_zero_amount_raises(self):
        with self.assertRaises(InvalidAmount):
            WalletService.top_up(self.user.pk, 0)

    def test_withdraw_success(self):
        WalletService.top_up(self.user.pk, Decimal("100.00"))
        WalletService.withdraw(self.user.pk, Decimal("40.00"))

        self.assertEqual(WalletService.get_balance(self.user.pk), Decimal("60.00"))

    def test_withdraw_insufficient_funds(self):
        WalletService.top_up(self.user.pk, Decimal("10.00"))
        with self.assertRaises(InsufficientFunds):
            WalletService.withdraw(self.user.pk, Decimal("10.01"))

        wallet = Wallet.objects.get(owner=self.user)
        self.assertEqual(wallet.balance, Decimal("10.00"))
        self.assertEqual(wallet.transactions.count(), 1)

    def test_list_transactions_filters(self):
        WalletService.top_up(self.user.pk, Decimal("100.00"))
        WalletService.top_up(self.user.pk, Decimal("5.00"))
        WalletService.withdraw(self.user.pk, Decimal("40.00"))

        self.assertEqual(WalletService.list_transactions(self.user.pk).count(), 3)
        self.assertEqual(
            WalletService.list_transactions(self.user.pk, transaction_type="TOPUP").count(), 2
        )


class PayBookingTest(TransactionTestCase):
    def setUp(self):
        self.user = make_user("alice")
        WalletService.top_up(self.user.pk, Decimal("100.00"))

    def wallet(self):
        return Wallet.objects.get(owner=self.user)

    def test_pay_booking_success(self):
        booking = make_booking(self.user, "60.00")

        payment = WalletService.pay_booking(self.user.pk, booking.pk)

        self.assertEqual(self.wallet().balance, Decimal("40.00"))
        self.assertEqual(payment.status, Payment.Status.PAID)
        self.assertEqual(payment.method, Payment.Method.WALLET)
        self.assertEqual(payment.amount, Decimal("60.00"))

        payments = WalletTransaction.objects.filter(
            wallet=self.wallet(), transaction_type=WalletTransaction.TransactionType.PAYMENT
        )
        self.assertEqual(payments.count(), 1)
        self.assertEqual(payments.get().amount, Decimal("60.00"))
        self.assertEqual(payments.get().meta, f"booking:{booking.pk}")

        booking.refresh_from_db()
        self.assertEqual(booking.status, Booking.Status.PAID)

    def test_pay_booking_insufficient_funds_changes_nothing(self):
        booking = make_booking(self.user, "150.00")

        with self.assertRaises(InsufficientFunds):
            WalletService.pay_booking(self.user.pk, booking.pk)

        self.assertEqual(self.wallet().balance, Decimal("100.00"))
        booking.refresh_from_db()
        self.assertEqual(booking.status, Booking.Status.PENDING)
        self.assertFalse(Payment.objects.filter(booking=booking).exists())

    def test_pay_already_paid_booking_raises(self):
        booking = make_booking(self.user, "60.00")
        WalletService.pay_booking(self.user.pk, booking.pk)

        with self.assertRaises(InvalidState):
            WalletService.pay_booking(self.user.pk, booking.pk)

        self.assertEqual(self.wallet().balance, Decimal("40.00"))
        self.assertEqual(Payment.objects.filter(booking=booking).count(), 1)

    def test_pay_cancelled_booking_raises(self):
        booking = make_booking(self.user, "60.00", status=Booking.Status.CANCELLED)
        with self.assertRaises(InvalidState):
            WalletService.pay_booking(self.user.pk, booking.pk)
        self.assertEqual(self.wallet().balance, Decimal("100.00"))

    def test_pay_other_users_booking_forbidden(self):
        other = make_user("bob")
        booking = make_booking(other, "10.00")
        with self.assertRaises(Forbidden):
            WalletService.pay_booking(self.user.pk, booking.pk)
        self.assertEqual(self.wallet().balance, Decimal("100.00"))

    def test_pay_missing_booking_not_found(self):
        with self.assertRaises(NotFound):
            WalletService.pay_booking(self.user.pk, 424242)

    def test_pay_free_booking_records_no_ledger_entry(self):
        booking = make_booking(self.user, "0.00")
        payment = WalletService.pay_booking(self.user.pk, booking.pk)

        self.assertEqual(payment.amount, Decimal("0.00"))
        self.assertEqual(self.wallet().balance, Decimal("100.00"))
        self.assertEqual(self.wallet().transactions.count(), 1)

    def test_pay_with_pending_gateway_payment_raises(self):
        booking = make_booking(self.user, "10.00")
        Payment.objects.create(
            booking=booking,
            amount=booking.price,
            status=Payment.Status.PENDING,
            method=Payment.Method.GATEWAY,
            authority="mock-123",
        )
        with self.assertRaises(InvalidState):
            WalletService.pay_booking(self.user.pk, booking.pk)
        self.assertEqual(self.wallet().balance, Decimal("100.00"))


class ConcurrentWalletTest(TransactionTestCase):
    """Runs real threads against the database, each on its own connection."""

    def setUp(self):
        self.user = make_user("alice")
        WalletService.top_up(self.user.pk, Decimal("100.00"))

    def run_concurrently(self, calls):
        """Run ``calls`` in parallel; return what succeeded and every error raised."""
        results, errors = [], []
        barrier = threading.Barrier(len(calls))

        def worker(call):
            try:
                barrier.wait()
                results.append(call())
            except Exception as exc:
                errors.append(exc)
            finally:
                connection.close()

        threads = [threading.Thread(target=worker, args=(call,)) for call in calls]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        return results, errors

    def assertOnlyErrors(self, errors, expected):
        unexpected = [exc for exc in errors if not isinstance(exc, expected)]
        self.assertEqual(unexpected, [])

    def assertLedgerConsistent(self):
        wallet = Wallet.objects.get(owner=self.user)
        self.assertGreaterEqual(wallet.balance, Decimal("0.00"))
        self.assertEqual(wallet.balance, LedgerService.ledger_balance(wallet.pk))
        return wallet

    def test_concurrent_withdrawals_never_overdraw(self):
        calls = [lambda: WalletService.withdraw(self.user.pk, Decimal("30.00"))] * 8
        results, errors = self.run_concurrently(calls)

        self.assertOnlyErrors(errors, InsufficientFunds)
        self.assertEqual(len(results) + len(errors), 8)
        wallet = self.assertLedgerConsistent()
        self.assertEqual(wallet.balance, Decimal("100.00") - 30 * len(results))
        # Whatever the interleaving, three withdrawals fit in 100.00.
        self.assertEqual(len(results), 3)

    def test_concurrent_payments_and_withdrawals(self):
        bookings = [make_booking(self.user, "25.00") for _ in range(3)]
        calls = [
            (lambda b=b: WalletService.pay_booking(self.user.pk, b.pk)) for b in bookings
        ] + [lambda: WalletService.withdraw(self.user.pk, Decimal("25.00"))] * 3
        results, errors = self.run_concurrently(calls)

        self.assertOnlyErrors(errors, InsufficientFunds)
        self.assertEqual(len(results), 4)
        wallet = self.assertLedgerConsistent()
        self.assertEqual(wallet.balance, Decimal("0.00"))
        paid = Booking.objects.filter(owner=self.user, status=Booking.Status.PAID).count()
        self.assertEqual(Payment.objects.filter(status=Payment.Status.PAID).count(), paid)
        self.assertEqual(Payment.objects.filter(status=Payment.Status.PENDING).count(), 0)


# ============================================================
# API Tests
# ============================================================


class WalletAPITest(TestCase):
    def setUp(self):
        self.user = make_user("alice")
        self.client = APIClient()
        self.client.force_authenticate(user=self.user)

    def test_get_wallet_creates_it(self):
        response = self.client.get("/api/wallet/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["balance"], "0.00")
        self.assertEqual(response.data["username"], "alice")
        self.assertTrue(Wallet.objects.filter(owner=self.user).exists())

    def test_requires_authentication(self):
        response = APIClient().get("/api/wallet/")
        self.assertIn(response.status_code, (401, 403))

    def test_topup_success(self):
        response = self.client.post("/api/wallet/topup", {"amount": "75.50"}, format="json")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["wallet"]["balance"], "75.50")
        self.assertEqual(response.data["transaction"]["transaction_type"], "topup")
        self.assertEqual(response.data["transaction"]["status"], "completed")

    def test_topup_invalid_amount(self):
        for amount in ("0", "-5", "abc"):
            with self.subTest(amount=amount):
                response = self.client.post(
                    "/api/wallet/topup", {"amount": amount}, format="json"
                )
                self.assertEqual(response.status_code, 400)

    def test_topup_missing_amount(self):
        response = self.client.post("/api/wallet/topup", {}, format="json")
        self.assertEqual(response.status_code, 400)

    def test_withdraw_insufficient_funds(self):
        response = self.client.post("/api/wallet/withdraw", {"amount": "5.00"}, format="json")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["error"], "Insufficient balance.")

    def test_pay_booking(self):
        WalletService.top_up(self.user.pk, Decimal("100.00"))
        booking = make_booking(self.user, "60.00")

        response = self.client.post("/api/wallet/pay", {"booking_id": booking.pk}, format="json")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["wallet"]["balance"], "40.00")
        self.assertEqual(response.data["payment"]["status"], "paid")

    def test_pay_booking_twice_conflicts(self):
        WalletService.top_up(self.user.pk, Decimal("100.00"))
        booking = make_booking(self.user, "60.00")
        self.client.post("/api/wallet/pay", {"booking_id": booking.pk}, format="json")

        response = self.client.post("/api/wallet/pay", {"booking_id": booking.pk}, format="json")
        self.assertEqual(response.status_code, 409)

    def test_pay_missing_booking(self):
        response = self.client.post("/api/wallet/pay", {"booking_id": 999}, format="json")
        self.assertEqual(response.status_code, 404)

    def test_pay_other_users_booking(self):
        booking = make_booking(make_user("bob"), "10.00")
        response = self.client.post("/api/wallet/pay", {"booking_id": booking.pk}, format="json")
        self.assertEqual(response.status_code, 403)

    def test_list_transactions(self):
        WalletService.top_up(self.user.pk, Decimal("100.00"))
        WalletService.withdraw(self.user.pk, Decimal("10.00"))

        response = self.client.get("/api/wallet/transactions/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.data), 2)

        response = self.client.get("/api/wallet/transactions/?type=withdraw")
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]["amount"], "10.00")
