from bookings.models.booking import Booking
from bookings.models.payment import Payment

__all__ = ["Booking", "Payment"]
