import logging

from rest_framework import status
from rest_framework.generics import ListAPIView
from rest_framework.response import Response
from rest_framework.views import APIView

from bookings.models import Payment
from bookings.serializers import PaymentSerializer
from bookings.services import BookingService, PaymentService
from courtside.exceptions import MarketplaceError
from notifications.services import notify

logger = logging.getLogger(__name__)


class PaymentListView(ListAPIView):
    """GET /api/payments/ — Payments for the caller's bookings."""

    serializer_class = PaymentSerializer

    def get_queryset(self):
        return PaymentService.list_for_user(self.request.user.pk)


class PaymentDetailView(APIView):
    """GET /api/payments/<id>/ — Retrieve one payment of the caller."""

    def get(self, request, pk, *args, **kwargs):
        try:
            payment = PaymentService.get_for_user(pk, request.user.pk)
        except MarketplaceError as exc:
            return Response({"error": str(exc)}, status=exc.status_code)
        return Response(PaymentSerializer(payment).data)


class RefundPaymentView(APIView):
    """
    POST /api/payments/<id>/refund — Refund a paid payment.

    The booking owner or a staff user may refund; the booking is cancelled.
    """

    def post(self, request, pk, *args, **kwargs):
        try:
            payment = BookingService.refund(
                pk, request.user.pk, is_admin=request.user.is_staff
            )
        except MarketplaceError as exc:
            return Response({"error": str(exc)}, status=exc.status_code)

        notify(
            payment.booking.owner_id,
            f"Payment #{payment.pk} refunded; booking #{payment.booking_id} cancelled.",
            event="payment_refunded",
        )
        return Response(PaymentSerializer(payment).data)


class ManualPaymentView(APIView):
    """POST /api/bookings/<id>/manual-payment — Staff records an offline payment."""

    def post(self, request, pk, *args, **kwargs):
        try:
            payment = PaymentService.record_manual_payment(
                pk, request.user.pk, is_admin=request.user.is_staff
            )
        except MarketplaceError as exc:
            return Response({"error": str(exc)}, status=exc.status_code)

        notify(
            payment.booking.owner_id,
            f"Booking #{payment.booking_id} paid.",
            event="booking_paid",
        )
        return Response(PaymentSerializer(payment).data, status=status.HTTP_201_CREATED)


class InitiateGatewayPaymentView(APIView):
    """POST /api/bookings/<id>/gateway/initiate — Start a gateway payment."""

    def post(self, request, pk, *args, **kwargs):
        try:
            result = PaymentService.initiate_gateway_payment(request.user.pk, pk)
        except MarketplaceError as exc:
            return Response({"error": str(exc)}, status=exc.status_code)

        return Response(
            {
                "payment": PaymentSerializer(result["payment"]).data,
                "payment_url": result["payment_url"],
            },
            status=status.HTTP_201_CREATED,
        )


class VerifyPaymentView(APIView):
    """POST /api/payments/<id>/verify — Verify a pending gateway payment now."""

    def post(self, request, pk, *args, **kwargs):
        try:
            PaymentService.get_for_user(pk, request.user.pk)
            payment = PaymentService.verify_gateway_payment(pk)
        except MarketplaceError as exc:
            return Response({"error": str(exc)}, status=exc.status_code)

        if payment.status == Payment.Status.PAID:
            notify(request.user.pk, f"Booking #{payment.booking_id} paid.", event="booking_paid")
        return Response(PaymentSerializer(payment).data)
