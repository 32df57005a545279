import logging

from rest_framework.generics import ListAPIView

from wallets.serializers import WalletTransactionSerializer
from wallets.services import WalletService

logger = logging.getLogger(__name__)


class TransactionListView(ListAPIView):
    """
    GET /api/wallet/transactions/ — Ledger entries of the caller's wallet.

    Query params:
        - status: Filter by status (completed, pending, failed)
        - type: Filter by type (topup, withdraw, payment)
    """

    serializer_class = WalletTransactionSerializer

    def get_queryset(self):
        return WalletService.list_transactions(
            self.request.user.pk,
            transaction_type=self.request.query_params.get("type"),
            status=self.request.query_params.get("status"),
        )
