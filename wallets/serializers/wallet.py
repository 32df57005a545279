from rest_framework import serializers

from wallets.models import Wallet


class WalletSerializer(serializers.ModelSerializer):
    """Wallet of the caller; the balance is changed only through the ledger."""

    username = serializers.CharField(source="owner.get_username", read_only=True)

    class Meta:
        model = Wallet
        fields = ("id", "owner", "username", "balance", "created_at", "updated_at")
        read_only_fields = fields
