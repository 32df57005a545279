from django.urls import path

from wallets.views import (
    PayBookingView,
    TopUpView,
    TransactionListView,
    WalletView,
    WithdrawView,
)

urlpatterns = [
    path("", WalletView.as_view(), name="wallet-detail"),
    path("topup", TopUpView.as_view(), name="wallet-topup"),
    path("withdraw", WithdrawView.as_view(), name="wallet-withdraw"),
    path("pay", PayBookingView.as_view(), name="wallet-pay"),
    path("transactions/", TransactionListView.as_view(), name="wallet-transactions"),
]
