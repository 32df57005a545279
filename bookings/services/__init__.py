from bookings.services.booking import BookingService
from bookings.services.payment import PaymentService

__all__ = ["BookingService", "PaymentService"]
