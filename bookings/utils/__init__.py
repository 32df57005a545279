from bookings.utils.gateway import (
    gateway_amount,
    request_gateway_payment,
    verify_gateway_payment,
)

__all__ = ["gateway_amount", "request_gateway_payment", "verify_gateway_payment"]
