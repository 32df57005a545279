from decimal import Decimal

from django.conf import settings
from django.db import models

from courtside.models import BaseModel


class Wallet(BaseModel):
    """
    A user's wallet with a non-negative balance.

    The balance is a cached projection of the ledger: it is only ever changed
    by ``LedgerService.append_transaction``, which locks the row and uses
    conditional ``F()`` updates. The check constraint is the last line that
    keeps a buggy caller from committing a negative balance.
    """

    owner = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="wallet",
    )
    balance = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
    )

    class Meta(BaseModel.Meta):
        constraints = [
            models.CheckConstraint(
                condition=models.Q(balance__gte=0),
                name="wallet_balance_non_negative",
            ),
        ]

    def __str__(self):
        return f"Wallet of user {self.owner_id} (balance={self.balance})"
