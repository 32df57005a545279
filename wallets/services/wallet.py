import logging
from decimal import Decimal

from django.db import transaction

from bookings.models import Booking, Payment
from courtside.exceptions import Forbidden, InvalidState, NotFound, translate_storage_errors
from wallets.models import Wallet, WalletTransaction
from wallets.services.ledger import LedgerService, to_amount

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("courtside.audit")


class WalletService:
    """
    User-facing wallet operations: top-up, withdraw and paying for a booking.

    Every method is one atomic transaction. Balance changes go through
    ``LedgerService.append_transaction``, which holds the wallet row lock for
    the rest of the enclosing transaction.
    """

    @staticmethod
    def get_wallet(user_id: int) -> Wallet:
        return LedgerService.get_or_create_wallet(user_id)

    @staticmethod
    def get_balance(user_id: int) -> Decimal:
        return LedgerService.get_or_create_wallet(user_id).balance

    @staticmethod
    def list_transactions(user_id: int, transaction_type: str = None, status: str = None):
        wallet = LedgerService.get_or_create_wallet(user_id)
        queryset = wallet.transactions.all()
        if transaction_type:
            queryset = queryset.filter(transaction_type=transaction_type.lower())
        if status:
            queryset = queryset.filter(status=status.lower())
        return queryset

    @staticmethod
    @translate_storage_errors
    @transaction.atomic
    def top_up(user_id: int, amount) -> WalletTransaction:
        """
        Credit the user's wallet.

        Raises:
            InvalidAmount: If amount is not positive.
        """
        amount = to_amount(amount)
        wallet = LedgerService.get_or_create_wallet(user_id)
        tx = LedgerService.append_transaction(
            wallet.pk,
            WalletTransaction.TransactionType.TOPUP,
            amount,
            WalletTransaction.Status.COMPLETED,
        )
        logger.info("Top-up completed: user=%s amount=%s tx=%d", user_id, amount, tx.id)
        return tx

    @staticmethod
    @translate_storage_errors
    @transaction.atomic
    def withdraw(user_id: int, amount) -> WalletTransaction:
        """
        Debit the user's wallet.

        Raises:
            InvalidAmount: If amount is not positive.
            InsufficientFunds: If the balance is lower than amount.
        """
        amount = to_amount(amount)
        wallet = LedgerService.get_or_create_wallet(user_id)
        tx = LedgerService.append_transaction(
            wallet.pk,
            WalletTransaction.TransactionType.WITHDRAW,
            amount,
            WalletTransaction.Status.COMPLETED,
        )
        logger.info("Withdrawal completed: user=%s amount=%s tx=%d", user_id, amount, tx.id)
        return tx

    @staticmethod
    @translate_storage_errors
    @transaction.atomic
    def pay_booking(user_id: int, booking_id: int):
        """
        Settle a pending booking from the owner's wallet.

        Locks the booking row, debits the wallet by the booking price, records a
        ``payment`` ledger entry referencing the booking, creates a PAID wallet
        Payment and moves the booking to PAID. Any failure rolls back all four.

        Returns:
            The created Payment.

        Raises:
            NotFound: If the booking doesn't exist.
            Forbidden: If the booking belongs to another user.
            InvalidState: If the booking is not pending or a gateway payment
                is already in flight for it.
            InsufficientFunds: If the wallet balance is lower than the price.
        """
        booking = Booking.objects.select_for_update().filter(pk=booking_id).first()
        if booking is None:
            raise NotFound("Booking not found.")
        if booking.owner_id != user_id:
            raise Forbidden("Booking belongs to another user.")
        if booking.status != Booking.Status.PENDING:
            raise InvalidState(f"Booking is {booking.status}, not payable.")
        if booking.payments.filter(status=Payment.Status.PENDING).exists():
            raise InvalidState("A gateway payment is already in progress for this booking.")

        wallet = LedgerService.get_or_create_wallet(user_id)
        if booking.price > Decimal("0"):
            LedgerService.append_transaction(
                wallet.pk,
                WalletTransaction.TransactionType.PAYMENT,
                booking.price,
                WalletTransaction.Status.COMPLETED,
                meta=f"booking:{booking.pk}",
            )

        payment = Payment.objects.create(
            booking=booking,
            amount=booking.price,
            status=Payment.Status.PAID,
            method=Payment.Method.WALLET,
        )
        booking.transition_to(Booking.Status.PAID)

        logger.info(
            "Booking paid from wallet: user=%s booking=%d amount=%s payment=%d",
            user_id,
            booking.pk,
            booking.price,
            payment.pk,
        )
        audit_logger.info(
            "user=%s action=wallet_pay booking=%d payment=%d amount=%s",
            user_id,
            booking.pk,
            payment.pk,
            booking.price,
        )
        return payment
