from django.db import models


class BaseModel(models.Model):
    """
    Abstract base model providing creation and modification timestamps.

    Wallets, ledger entries, bookings, payments and matches all inherit it,
    so history listings share the same newest-first ordering.
    """

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True
        ordering = ["-created_at", "-id"]
