from django.db import models

from courtside.models import BaseModel
from wallets.models.wallet import Wallet


class ImmutableRecordError(Exception):
    """Raised when code tries to rewrite a ledger entry."""


class WalletTransaction(BaseModel):
    """
    Append-only ledger entry for a wallet.

    Only COMPLETED entries move the balance: topups add their amount,
    withdrawals and payments subtract it. ``meta`` holds a free-form
    reference such as ``booking:<id>``.
    """

    class TransactionType(models.TextChoices):
        TOPUP = "topup", "Top-up"
        WITHDRAW = "withdraw", "Withdraw"
        PAYMENT = "payment", "Payment"

    class Status(models.TextChoices):
        COMPLETED = "completed", "Completed"
        PENDING = "pending", "Pending"
        FAILED = "failed", "Failed"

    DEBIT_TYPES = (TransactionType.WITHDRAW, TransactionType.PAYMENT)

    wallet = models.ForeignKey(
        Wallet,
        on_delete=models.PROTECT,
        related_name="transactions",
    )
    transaction_type = models.CharField(
        max_length=10,
        choices=TransactionType.choices,
    )
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    status = models.CharField(
        max_length=10,
        choices=Status.choices,
        default=Status.COMPLETED,
    )
    meta = models.CharField(max_length=255, null=True, blank=True)

    class Meta(BaseModel.Meta):
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gt=0),
                name="wallet_transaction_amount_positive",
            ),
        ]
        indexes = [
            models.Index(fields=["wallet", "status"], name="idx_wallet_tx_status"),
            models.Index(fields=["meta"], name="idx_wallet_tx_meta"),
        ]

    def __str__(self):
        return (
            f"WalletTransaction {self.id} | {self.transaction_type} | "
            f"{self.amount} | {self.status}"
        )

    @property
    def is_debit(self):
        return self.transaction_type in self.DEBIT_TYPES

    @property
    def signed_amount(self):
        return -self.amount if self.is_debit else self.amount

    def save(self, *args, **kwargs):
        if self.pk is not None and not self._state.adding:
            raise ImmutableRecordError("Wallet transactions cannot be modified.")
        super().save(*args, **kwargs)
