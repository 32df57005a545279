import logging
from decimal import Decimal, InvalidOperation

from django.db import transaction
from django.db.models import Case, DecimalField, F, Sum, When

from courtside.exceptions import InsufficientFunds, InvalidAmount, NotFound
from wallets.models import Wallet, WalletTransaction

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def to_amount(value) -> Decimal:
    """
    Coerce ``value`` into a positive monetary Decimal.

    Raises:
        InvalidAmount: if the value is not a finite number, is not positive,
            or carries more than two decimal places.
    """
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidAmount() from None
    if not amount.is_finite() or amount <= 0:
        raise InvalidAmount()
    if amount != amount.quantize(CENT):
        raise InvalidAmount()
    return amount.quantize(CENT)


class LedgerService:
    """
    Durable record of wallet balances and their transaction history.

    ``append_transaction`` is the only code path allowed to touch
    ``Wallet.balance``. It runs inside ``transaction.atomic`` and takes a
    row-level lock on the wallet with ``select_for_update()``; debits are
    additionally guarded by a conditional update so the balance check and
    the decrement are one statement even on backends that ignore row locks.
    """

    @staticmethod
    def get_or_create_wallet(owner_id: int) -> Wallet:
        wallet, created = Wallet.objects.get_or_create(owner_id=owner_id)
        if created:
            logger.info("Wallet created: owner=%s wallet=%d", owner_id, wallet.pk)
        return wallet

    @staticmethod
    @transaction.atomic
    def append_transaction(
        wallet_id: int,
        transaction_type: str,
        amount,
        status: str = WalletTransaction.Status.COMPLETED,
        meta: str = None,
    ) -> WalletTransaction:
        """
        Record a ledger entry and apply it to the wallet balance.

        Args:
            wallet_id: Primary key of the wallet.
            transaction_type: One of ``WalletTransaction.TransactionType``.
            amount: Positive amount; sign is derived from the type.
            status: Only COMPLETED entries move the balance.
            meta: Optional free-form reference (e.g. ``booking:12``).

        Returns:
            The created WalletTransaction.

        Raises:
            InvalidAmount: If amount is not a positive monetary value.
            InsufficientFunds: If a completed debit exceeds the balance.
            NotFound: If the wallet doesn't exist.
        """
        amount = to_amount(amount)
        if transaction_type not in WalletTransaction.TransactionType.values:
            raise ValueError(f"Unknown transaction type: {transaction_type}")
        if status not in WalletTransaction.Status.values:
            raise ValueError(f"Unknown transaction status: {status}")

        wallet = Wallet.objects.select_for_update().filter(pk=wallet_id).first()
        if wallet is None:
            raise NotFound("Wallet not found.")

        is_debit = transaction_type in WalletTransaction.DEBIT_TYPES
        if status == WalletTransaction.Status.COMPLETED:
            if is_debit:
                updated = Wallet.objects.filter(
                    pk=wallet.pk, balance__gte=amount
                ).update(balance=F("balance") - amount)
                if not updated:
                    logger.warning(
                        "Debit rejected (insufficient balance): wallet=%d balance=%s "
                        "amount=%s type=%s",
                        wallet.pk,
                        wallet.balance,
                        amount,
                        transaction_type,
                    )
                    raise InsufficientFunds()
            else:
                Wallet.objects.filter(pk=wallet.pk).update(balance=F("balance") + amount)

        tx = WalletTransaction.objects.create(
            wallet=wallet,
            transaction_type=transaction_type,
            amount=amount,
            status=status,
            meta=meta,
        )
        wallet.refresh_from_db(fields=["balance"])

        logger.info(
            "Ledger entry: wallet=%d type=%s amount=%s status=%s new_balance=%s tx=%d meta=%s",
            wallet.pk,
            transaction_type,
            amount,
            status,
            wallet.balance,
            tx.id,
            meta,
        )
        return tx

    @staticmethod
    def ledger_balance(wallet_id: int) -> Decimal:
        """Sum of signed COMPLETED entries, i.e. what the balance must equal."""
        signed = Case(
            When(
                transaction_type__in=WalletTransaction.DEBIT_TYPES,
                then=-F("amount"),
            ),
            default=F("amount"),
            output_field=DecimalField(max_digits=14, decimal_places=2),
        )
        total = WalletTransaction.objects.filter(
            wallet_id=wallet_id,
            status=WalletTransaction.Status.COMPLETED,
        ).aggregate(total=Sum(signed))["total"]
        return Decimal(total or 0).quantize(CENT)

    @staticmethod
    def reconcile(wallet_id: int):
        """Return ``(balance, ledger_balance)`` for the wallet."""
        wallet = Wallet.objects.filter(pk=wallet_id).first()
        if wallet is None:
            raise NotFound("Wallet not found.")
        return wallet.balance, LedgerService.ledger_balance(wallet_id)

    @staticmethod
    def mismatched_wallets():
        """Yield ``(wallet, balance, ledger_balance)`` for wallets out of sync."""
        for wallet in Wallet.objects.order_by("pk").iterator():
            expected = LedgerService.ledger_balance(wallet.pk)
            if wallet.balance != expected:
                yield wallet, wallet.balance, expected
