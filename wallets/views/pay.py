import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from bookings.serializers import PaymentSerializer
from courtside.exceptions import MarketplaceError
from notifications.services import notify
from wallets.serializers import PayBookingSerializer, WalletSerializer
from wallets.services import WalletService

logger = logging.getLogger(__name__)


class PayBookingView(APIView):
    """
    POST /api/wallet/pay — Pay one of the caller's bookings from the wallet.

    Request body: {"booking_id": <int>}
    """

    def post(self, request, *args, **kwargs):
        serializer = PayBookingSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        booking_id = serializer.validated_data["booking_id"]

        try:
            payment = WalletService.pay_booking(request.user.pk, booking_id)
        except MarketplaceError as exc:
            return Response({"error": str(exc)}, status=exc.status_code)

        notify(request.user.pk, f"Booking #{booking_id} paid.", event="booking_paid")
        return Response(
            {
                "wallet": WalletSerializer(WalletService.get_wallet(request.user.pk)).data,
                "payment": PaymentSerializer(payment).data,
            },
            status=status.HTTP_200_OK,
        )
