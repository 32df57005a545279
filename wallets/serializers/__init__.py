from wallets.serializers.wallet import WalletSerializer
from wallets.serializers.amount import AmountSerializer, PayBookingSerializer
from wallets.serializers.transaction import WalletTransactionSerializer

__all__ = [
    "WalletSerializer",
    "AmountSerializer",
    "PayBookingSerializer",
    "WalletTransactionSerializer",
]
