from decimal import Decimal

from rest_framework import serializers


class AmountSerializer(serializers.Serializer):
    """Validates top-up and withdraw requests."""

    amount = serializers.DecimalField(max_digits=12, decimal_places=2)

    def validate_amount(self, value):
        if value <= Decimal("0"):
            raise serializers.ValidationError("Amount must be positive.")
        return value


class PayBookingSerializer(serializers.Serializer):
    """Validates wallet payment requests."""

    booking_id = serializers.IntegerField(min_value=1)
