from django.contrib import admin

from courtside.admin import ReadOnlyAdminMixin
from wallets.models import Wallet, WalletTransaction


@admin.register(Wallet)
class WalletAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ("id", "owner", "balance", "created_at", "updated_at")
    search_fields = ("owner__username",)
    readonly_fields = ("owner", "balance", "created_at", "updated_at")


@admin.register(WalletTransaction)
class WalletTransactionAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = (
        "id",
        "wallet",
        "transaction_type",
        "amount",
        "status",
        "meta",
        "created_at",
    )
    list_filter = ("transaction_type", "status")
    search_fields = ("wallet__owner__username", "meta")
    readonly_fields = (
        "wallet",
        "transaction_type",
        "amount",
        "status",
        "meta",
        "created_at",
        "updated_at",
    )
