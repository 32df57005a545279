from django.contrib import admin

from bookings.models import Booking, Payment
from courtside.admin import ReadOnlyAdminMixin


class PaymentInline(ReadOnlyAdminMixin, admin.TabularInline):
    model = Payment
    extra = 0
    fields = ("id", "amount", "status", "method", "authority", "settled_at")
    readonly_fields = fields


@admin.register(Booking)
class BookingAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = (
        "id",
        "owner",
        "court_id",
        "coach_id",
        "start_time",
        "end_time",
        "price",
        "status",
    )
    list_filter = ("status",)
    search_fields = ("owner__username",)
    inlines = (PaymentInline,)


@admin.register(Payment)
class PaymentAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = (
        "id",
        "booking",
        "amount",
        "status",
        "method",
        "verify_attempts",
        "settled_at",
        "created_at",
    )
    list_filter = ("status", "method")
    search_fields = ("authority",)
