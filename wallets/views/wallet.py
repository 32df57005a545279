import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from courtside.exceptions import MarketplaceError
from wallets.serializers import AmountSerializer, WalletSerializer, WalletTransactionSerializer
from wallets.services import WalletService

logger = logging.getLogger(__name__)


class WalletView(APIView):
    """GET /api/wallet/ — Caller's wallet, created on first access."""

    def get(self, request, *args, **kwargs):
        wallet = WalletService.get_wallet(request.user.pk)
        return Response(WalletSerializer(wallet).data)


class TopUpView(APIView):
    """
    POST /api/wallet/topup — Credit the caller's wallet.

    Request body: {"amount": "<positive decimal>"}
    """

    def post(self, request, *args, **kwargs):
        serializer = AmountSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            tx = WalletService.top_up(request.user.pk, serializer.validated_data["amount"])
        except MarketplaceError as exc:
            return Response({"error": str(exc)}, status=exc.status_code)

        return Response(
            {
                "wallet": WalletSerializer(tx.wallet).data,
                "transaction": WalletTransactionSerializer(tx).data,
            },
            status=status.HTTP_200_OK,
        )


class WithdrawView(APIView):
    """
    POST /api/wallet/withdraw — Debit the caller's wallet.

    Request body: {"amount": "<positive decimal>"}
    """

    def post(self, request, *args, **kwargs):
        serializer = AmountSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            tx = WalletService.withdraw(request.user.pk, serializer.validated_data["amount"])
        except MarketplaceError as exc:
            return Response({"error": str(exc)}, status=exc.status_code)

        return Response(
            {
                "wallet": WalletSerializer(tx.wallet).data,
                "transaction": WalletTransactionSerializer(tx).data,
            },
            status=status.HTTP_200_OK,
        )
