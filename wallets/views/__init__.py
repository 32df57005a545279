from wallets.views.wallet import TopUpView, WalletView, WithdrawView
from wallets.views.pay import PayBookingView
from wallets.views.transaction import TransactionListView

__all__ = [
    "WalletView",
    "TopUpView",
    "WithdrawView",
    "PayBookingView",
    "TransactionListView",
]
