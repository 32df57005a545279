from decimal import Decimal

from rest_framework import serializers

from bookings.models import Booking
from bookings.serializers.payment import PaymentSerializer


class BookingSerializer(serializers.ModelSerializer):
    """Read-only serializer for booking responses."""

    payments = PaymentSerializer(many=True, read_only=True)

    class Meta:
        model = Booking
        fields = (
            "id",
            "owner",
            "court_id",
            "coach_id",
            "start_time",
            "end_time",
            "price",
            "status",
            "payments",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields


class CreateBookingSerializer(serializers.Serializer):
    """Validates reservation requests."""

    court_id = serializers.IntegerField(min_value=1)
    coach_id = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    start_time = serializers.DateTimeField()
    end_time = serializers.DateTimeField()
    price = serializers.DecimalField(max_digits=12, decimal_places=2)

    def validate_price(self, value):
        if value < Decimal("0"):
            raise serializers.ValidationError("Price must not be negative.")
        return value

    def validate(self, attrs):
        if attrs["end_time"] <= attrs["start_time"]:
            raise serializers.ValidationError({"end_time": "End time must be after start time."})
        return attrs
