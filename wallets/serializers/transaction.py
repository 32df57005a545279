from rest_framework import serializers

from wallets.models import WalletTransaction


class WalletTransactionSerializer(serializers.ModelSerializer):
    """Read-only serializer for ledger entries."""

    class Meta:
        model = WalletTransaction
        fields = (
            "id",
            "wallet",
            "transaction_type",
            "amount",
            "status",
            "meta",
            "created_at",
        )
        read_only_fields = fields
