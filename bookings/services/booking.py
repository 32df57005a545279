import logging
from decimal import Decimal, InvalidOperation

from django.db import transaction

from bookings.models import Booking, Payment
from courtside.exceptions import (
    Forbidden,
    InvalidAmount,
    InvalidState,
    NotFound,
    translate_storage_errors,
)

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("courtside.audit")


def _lock_booking(booking_id: int) -> Booking:
    booking = Booking.objects.select_for_update().filter(pk=booking_id).first()
    if booking is None:
        raise NotFound("Booking not found.")
    return booking


class BookingService:
    """
    Booking lifecycle: creation, direct cancellation, refunds and deletion.

    Settlement itself lives in ``WalletService.pay_booking`` and
    ``PaymentService``; this class owns the transitions that undo it.
    """

    @staticmethod
    def list_for_user(user_id: int):
        return Booking.objects.filter(owner_id=user_id).prefetch_related("payments")

    @staticmethod
    def get_for_user(booking_id: int, user_id: int) -> Booking:
        booking = Booking.objects.filter(pk=booking_id).first()
        if booking is None:
            raise NotFound("Booking not found.")
        if booking.owner_id != user_id:
            raise Forbidden("Booking belongs to another user.")
        return booking

    @staticmethod
    @translate_storage_errors
    @transaction.atomic
    def create(
        owner_id: int,
        court_id: int,
        start_time,
        end_time,
        price,
        coach_id: int = None,
    ) -> Booking:
        """
        Reserve a court for a time window. The booking starts PENDING.

        Raises:
            InvalidAmount: If price is negative or not a monetary value.
            ValueError: If the time window is empty.
        """
        try:
            price = Decimal(str(price))
        except (InvalidOperation, TypeError, ValueError):
            raise InvalidAmount("Price must be a number.") from None
        if not price.is_finite() or price < 0:
            raise InvalidAmount("Price must not be negative.")
        if end_time <= start_time:
            raise ValueError("End time must be after start time.")

        booking = Booking.objects.create(
            owner_id=owner_id,
            court_id=court_id,
            coach_id=coach_id,
            start_time=start_time,
            end_time=end_time,
            price=price.quantize(Decimal("0.01")),
            status=Booking.Status.PENDING,
        )
        logger.info(
            "Booking created: booking=%d owner=%s court=%s price=%s",
            booking.pk,
            owner_id,
            court_id,
            booking.price,
        )
        return booking

    @staticmethod
    @translate_storage_errors
    @transaction.atomic
    def cancel(booking_id: int, user_id: int) -> Booking:
        """
        Cancel a PENDING booking without any payment side effects.

        Raises:
            NotFound: If the booking doesn't exist.
            Forbidden: If the caller doesn't own it.
            InvalidState: If it is not pending (paid bookings need a refund)
                or a gateway payment is in flight.
        """
        booking = _lock_booking(booking_id)
        if booking.owner_id != user_id:
            raise Forbidden("Booking belongs to another user.")
        if booking.status != Booking.Status.PENDING:
            raise InvalidState(f"Booking is {booking.status}; only pending bookings can be cancelled.")
        if booking.payments.filter(status=Payment.Status.PENDING).exists():
            raise InvalidState("A gateway payment is in progress for this booking.")

        booking.transition_to(Booking.Status.CANCELLED)
        logger.info("Booking cancelled: booking=%d user=%s", booking.pk, user_id)
        return booking

    @staticmethod
    @translate_storage_errors
    @transaction.atomic
    def refund(payment_id: int, user_id: int, is_admin: bool = False) -> Payment:
        """
        Refund a PAID payment and cancel its booking in one transaction.

        Locks the payment row first, then the booking row.

        Raises:
            NotFound: If the payment doesn't exist.
            Forbidden: If the caller is neither the booking owner nor an admin.
            InvalidState: If the payment is already refunded or was never paid.
        """
        payment = (
            Payment.objects.select_for_update()
            .select_related("booking")
            .filter(pk=payment_id)
            .first()
        )
        if payment is None:
            raise NotFound("Payment not found.")
        if not is_admin and payment.booking.owner_id != user_id:
            raise Forbidden("Payment belongs to another user.")
        if payment.status == Payment.Status.REFUNDED:
            raise InvalidState("Payment is already refunded.")
        if payment.status != Payment.Status.PAID:
            raise InvalidState(f"Payment is {payment.status}; only paid payments can be refunded.")

        booking = _lock_booking(payment.booking_id)
        booking.transition_to(Booking.Status.CANCELLED)
        payment.mark_settled(Payment.Status.REFUNDED)

        logger.info(
            "Payment refunded: payment=%d booking=%d amount=%s by=%s",
            payment.pk,
            booking.pk,
            payment.amount,
            user_id,
        )
        audit_logger.info(
            "user=%s action=payment_refund payment=%d booking=%d admin=%s",
            user_id,
            payment.pk,
            booking.pk,
            is_admin,
        )
        return payment

    @staticmethod
    @translate_storage_errors
    @transaction.atomic
    def delete(booking_id: int, user_id: int) -> None:
        """
        Delete a booking that never had a payment recorded against it.

        Raises:
            NotFound: If the booking doesn't exist.
            Forbidden: If the caller doesn't own it.
            InvalidState: If any payment references the booking.
        """
        booking = _lock_booking(booking_id)
        if booking.owner_id != user_id:
            raise Forbidden("Booking belongs to another user.")
        if booking.payments.exists():
            raise InvalidState("Bookings with payment history cannot be deleted.")

        booking.delete()
        audit_logger.info("user=%s action=booking_delete booking=%d", user_id, booking_id)
