from decimal import Decimal

from django.conf import settings
from django.db import models

from courtside.exceptions import InvalidState
from courtside.models import BaseModel


class Booking(BaseModel):
    """
    A reservation of a court (and optionally a coach) for a time window.

    Courts and coaches are managed elsewhere and referenced by id only.
    Status moves PENDING -> PAID on settlement, PAID -> CANCELLED on refund,
    or PENDING -> CANCELLED on a direct cancel. Nothing leaves CANCELLED.
    """

    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        PAID = "paid", "Paid"
        CANCELLED = "cancelled", "Cancelled"

    TRANSITIONS = {
        Status.PENDING: (Status.PAID, Status.CANCELLED),
        Status.PAID: (Status.CANCELLED,),
        Status.CANCELLED: (),
    }

    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="bookings",
    )
    court_id = models.PositiveBigIntegerField(db_index=True)
    coach_id = models.PositiveBigIntegerField(null=True, blank=True, db_index=True)
    start_time = models.DateTimeField()
    end_time = models.DateTimeField()
    price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
    )
    status = models.CharField(
        max_length=10,
        choices=Status.choices,
        default=Status.PENDING,
    )

    class Meta(BaseModel.Meta):
        constraints = [
            models.CheckConstraint(
                condition=models.Q(price__gte=0),
                name="booking_price_non_negative",
            ),
            models.CheckConstraint(
                condition=models.Q(end_time__gt=models.F("start_time")),
                name="booking_window_not_empty",
            ),
        ]
        indexes = [
            models.Index(fields=["owner", "status"], name="idx_booking_owner_status"),
        ]

    def __str__(self):
        return f"Booking {self.id} | court {self.court_id} | {self.price} | {self.status}"

    def can_transition_to(self, status) -> bool:
        return status in self.TRANSITIONS[self.status]

    def transition_to(self, status):
        """
        Move the booking to ``status`` and persist it.

        Callers are expected to hold a row lock on the booking.

        Raises:
            InvalidState: If the transition is not allowed.
        """
        if not self.can_transition_to(status):
            raise InvalidState(f"Booking cannot move from {self.status} to {status}.")
        self.status = status
        self.save(update_fields=["status", "updated_at"])
