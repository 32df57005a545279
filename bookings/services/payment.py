import logging

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from bookings.models import Booking, Payment
from bookings.utils import gateway_amount, request_gateway_payment, verify_gateway_payment
from courtside.exceptions import (
    Forbidden,
    GatewayError,
    InvalidAmount,
    InvalidState,
    NotFound,
    translate_storage_errors,
)

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("courtside.audit")


class PaymentService:
    """
    Booking settlement through the external payment gateway.

    Initiation records a PENDING gateway payment holding the gateway authority.
    Verification runs later (from the API callback or the Celery beat task):
    it locks the payment, asks the gateway, and either settles payment and
    booking to PAID together or marks the payment FAILED so the booking can be
    paid again.
    """

    @staticmethod
    def list_for_user(user_id: int):
        return Payment.objects.filter(booking__owner_id=user_id).select_related("booking")

    @staticmethod
    def get_for_user(payment_id: int, user_id: int) -> Payment:
        payment = Payment.objects.select_related("booking").filter(pk=payment_id).first()
        if payment is None:
            raise NotFound("Payment not found.")
        if payment.booking.owner_id != user_id:
            raise Forbidden("Payment belongs to another user.")
        return payment

    @staticmethod
    @translate_storage_errors
    @transaction.atomic
    def initiate_gateway_payment(user_id: int, booking_id: int) -> dict:
        """
        Start a gateway payment for a pending booking.

        An already pending gateway payment for the booking is returned as is,
        so retried initiations don't open a second authority.

        Returns:
            dict with ``payment`` and ``payment_url``.

        Raises:
            NotFound: If the booking doesn't exist.
            Forbidden: If the caller doesn't own it.
            InvalidState: If the booking is not pending.
            InvalidAmount: If the price is not a whole number of currency
                units, which is all the gateway can charge.
            GatewayError: If the gateway refused to issue an authority.
        """
        booking = Booking.objects.select_for_update().filter(pk=booking_id).first()
        if booking is None:
            raise NotFound("Booking not found.")
        if booking.owner_id != user_id:
            raise Forbidden("Booking belongs to another user.")
        if booking.status != Booking.Status.PENDING:
            raise InvalidState(f"Booking is {booking.status}, not payable.")
        try:
            gateway_amount(booking.price)
        except ValueError:
            raise InvalidAmount(
                "Gateway payments need a whole-unit price; pay this booking from the wallet."
            ) from None

        existing = booking.payments.filter(status=Payment.Status.PENDING).first()
        if existing is not None:
            logger.info(
                "Reusing pending gateway payment: booking=%d payment=%d",
                booking.pk,
                existing.pk,
            )
            return {"payment": existing, "payment_url": None}

        result = request_gateway_payment(booking_id=booking.pk, amount=booking.price)
        if not result["success"]:
            raise GatewayError()

        payment = Payment.objects.create(
            booking=booking,
            amount=booking.price,
            status=Payment.Status.PENDING,
            method=Payment.Method.GATEWAY,
            authority=result["authority"],
            gateway_response=result["response"],
        )
        audit_logger.info(
            "user=%s action=payment_initiate booking=%d payment=%d amount=%s",
            user_id,
            booking.pk,
            payment.pk,
            payment.amount,
        )
        return {"payment": payment, "payment_url": result["payment_url"]}

    @staticmethod
    @translate_storage_errors
    @transaction.atomic
    def verify_gateway_payment(payment_id: int) -> Payment:
        """
        Verify a pending gateway payment and settle its booking.

        On success the payment and its booking both become PAID in this
        transaction. When the gateway reports failure the payment becomes
        FAILED and the booking stays PENDING. Transport errors leave the
        payment PENDING with ``verify_attempts`` incremented, for a later retry.
        A payment whose booking was cancelled meanwhile is voided as FAILED.

        Raises:
            NotFound: If the payment doesn't exist.
            InvalidState: If the payment is not a pending gateway payment.
        """
        payment = Payment.objects.select_for_update().filter(pk=payment_id).first()
        if payment is None:
            raise NotFound("Payment not found.")
        if payment.method != Payment.Method.GATEWAY or payment.status != Payment.Status.PENDING:
            raise InvalidState(f"Payment is {payment.status}; nothing to verify.")

        booking = Booking.objects.select_for_update().get(pk=payment.booking_id)
        if booking.status != Booking.Status.PENDING:
            payment.mark_settled(Payment.Status.FAILED, {"error": f"booking {booking.status}"})
            logger.warning(
                "Gateway payment voided, booking no longer pending: payment=%d booking=%d status=%s",
                payment.pk,
                booking.pk,
                booking.status,
            )
            return payment

        result = verify_gateway_payment(authority=payment.authority, amount=payment.amount)
        response = result["response"]

        if result["success"]:
            payment.mark_settled(Payment.Status.PAID, response)
            booking.transition_to(Booking.Status.PAID)
            logger.info(
                "Gateway payment verified: payment=%d booking=%d amount=%s",
                payment.pk,
                booking.pk,
                payment.amount,
            )
        elif response.get("error") in ("timeout", "request_error"):
            Payment.objects.filter(pk=payment.pk).update(
                verify_attempts=F("verify_attempts") + 1
            )
            payment.refresh_from_db()
            logger.warning(
                "Gateway verification deferred: payment=%d attempts=%d response=%s",
                payment.pk,
                payment.verify_attempts,
                response,
            )
        else:
            payment.mark_settled(Payment.Status.FAILED, response)
            logger.warning(
                "Gateway payment failed: payment=%d booking=%d response=%s",
                payment.pk,
                booking.pk,
                response,
            )
        return payment

    @staticmethod
    @translate_storage_errors
    @transaction.atomic
    def record_manual_payment(booking_id: int, user_id: int, is_admin: bool = False) -> Payment:
        """
        Settle a pending booking paid outside the platform (cash at the club,
        bank transfer). Staff only; no wallet or gateway is involved.

        Raises:
            Forbidden: If the caller is not an admin.
            NotFound: If the booking doesn't exist.
            InvalidState: If the booking is not pending or a gateway payment
                is in flight for it.
        """
        if not is_admin:
            raise Forbidden("Only staff can record manual payments.")

        booking = Booking.objects.select_for_update().filter(pk=booking_id).first()
        if booking is None:
            raise NotFound("Booking not found.")
        if booking.status != Booking.Status.PENDING:
            raise InvalidState(f"Booking is {booking.status}, not payable.")
        if booking.payments.filter(status=Payment.Status.PENDING).exists():
            raise InvalidState("A gateway payment is already in progress for this booking.")

        payment = Payment.objects.create(
            booking=booking,
            amount=booking.price,
            status=Payment.Status.PAID,
            method=Payment.Method.MANUAL,
            settled_at=timezone.now(),
        )
        booking.transition_to(Booking.Status.PAID)

        audit_logger.info(
            "user=%s action=manual_payment booking=%d payment=%d amount=%s",
            user_id,
            booking.pk,
            payment.pk,
            payment.amount,
        )
        return payment
