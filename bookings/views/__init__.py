from bookings.views.booking import BookingDetailView, BookingListCreateView, CancelBookingView
from bookings.views.payment import (
    InitiateGatewayPaymentView,
    ManualPaymentView,
    PaymentDetailView,
    PaymentListView,
    RefundPaymentView,
    VerifyPaymentView,
)

__all__ = [
    "BookingListCreateView",
    "BookingDetailView",
    "CancelBookingView",
    "PaymentListView",
    "PaymentDetailView",
    "RefundPaymentView",
    "InitiateGatewayPaymentView",
    "ManualPaymentView",
    "VerifyPaymentView",
]
