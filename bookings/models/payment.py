from django.db import models
from django.utils import timezone

from bookings.models.booking import Booking
from courtside.models import BaseModel


class Payment(BaseModel):
    """
    Settlement of exactly one booking.

    Wallet payments are created PAID. Gateway payments start PENDING with the
    gateway authority, and become PAID or FAILED once verified. Only PENDING
    and PAID payments count as live: a booking has at most one of them.
    """

    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        PAID = "paid", "Paid"
        REFUNDED = "refunded", "Refunded"
        FAILED = "failed", "Failed"

    class Method(models.TextChoices):
        WALLET = "wallet", "Wallet"
        GATEWAY = "gateway", "Payment gateway"
        MANUAL = "manual", "Manual"

    LIVE_STATUSES = (Status.PENDING, Status.PAID)

    booking = models.ForeignKey(
        Booking,
        on_delete=models.PROTECT,
        related_name="payments",
    )
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    status = models.CharField(
        max_length=10,
        choices=Status.choices,
        default=Status.PENDING,
    )
    method = models.CharField(
        max_length=10,
        choices=Method.choices,
    )
    authority = models.CharField(
        max_length=64,
        unique=True,
        null=True,
        blank=True,
        help_text="Reference issued by the payment gateway.",
    )
    gateway_response = models.JSONField(
        null=True,
        blank=True,
        help_text="Last response from the payment gateway.",
    )
    verify_attempts = models.PositiveIntegerField(default=0)
    settled_at = models.DateTimeField(null=True, blank=True)

    class Meta(BaseModel.Meta):
        constraints = [
            models.UniqueConstraint(
                fields=["booking"],
                condition=models.Q(status__in=["pending", "paid"]),
                name="uniq_live_payment_per_booking",
            ),
        ]
        indexes = [
            models.Index(fields=["status", "method"], name="idx_payment_status_method"),
        ]

    def __str__(self):
        return f"Payment {self.id} | booking {self.booking_id} | {self.amount} | {self.status}"

    @classmethod
    def get_pending_gateway_payments(cls, max_attempts=3):
        """Return gateway payments still waiting for verification."""
        return cls.objects.filter(
            method=cls.Method.GATEWAY,
            status=cls.Status.PENDING,
            verify_attempts__lt=max_attempts,
        )

    def mark_settled(self, status, response=None):
        self.status = status
        self.settled_at = timezone.now()
        if response is not None:
            self.gateway_response = response
        self.save(update_fields=["status", "settled_at", "gateway_response", "updated_at"])
