from django.urls import path

from bookings.views import (
    BookingDetailView,
    BookingListCreateView,
    CancelBookingView,
    InitiateGatewayPaymentView,
    ManualPaymentView,
    PaymentDetailView,
    PaymentListView,
    RefundPaymentView,
    VerifyPaymentView,
)

urlpatterns = [
    path("bookings/", BookingListCreateView.as_view(), name="booking-list"),
    path("bookings/<int:pk>/", BookingDetailView.as_view(), name="booking-detail"),
    path("bookings/<int:pk>/cancel", CancelBookingView.as_view(), name="booking-cancel"),
    path(
        "bookings/<int:pk>/gateway/initiate",
        InitiateGatewayPaymentView.as_view(),
        name="booking-gateway-initiate",
    ),
    path(
        "bookings/<int:pk>/manual-payment",
        ManualPaymentView.as_view(),
        name="booking-manual-payment",
    ),
    path("payments/", PaymentListView.as_view(), name="payment-list"),
    path("payments/<int:pk>/", PaymentDetailView.as_view(), name="payment-detail"),
    path("payments/<int:pk>/refund", RefundPaymentView.as_view(), name="payment-refund"),
    path("payments/<int:pk>/verify", VerifyPaymentView.as_view(), name="payment-verify"),
]
