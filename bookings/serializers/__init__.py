from bookings.serializers.payment import PaymentSerializer
from bookings.serializers.booking import BookingSerializer, CreateBookingSerializer

__all__ = [
    "PaymentSerializer",
    "BookingSerializer",
    "CreateBookingSerializer",
]
