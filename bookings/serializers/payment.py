from rest_framework import serializers

from bookings.models import Payment


class PaymentSerializer(serializers.ModelSerializer):
    """Read-only serializer for payment responses."""

    class Meta:
        model = Payment
        fields = (
            "id",
            "booking",
            "amount",
            "status",
            "method",
            "authority",
            "settled_at",
            "created_at",
        )
        read_only_fields = fields
