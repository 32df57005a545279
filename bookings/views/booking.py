import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from bookings.serializers import BookingSerializer, CreateBookingSerializer
from bookings.services import BookingService
from courtside.exceptions import MarketplaceError

logger = logging.getLogger(__name__)


class BookingListCreateView(APIView):
    """
    GET  /api/bookings/ — List the caller's bookings.
    POST /api/bookings/ — Reserve a court; the booking starts pending.

    Request body: {"court_id", "coach_id"?, "start_time", "end_time", "price"}
    """

    def get(self, request, *args, **kwargs):
        bookings = BookingService.list_for_user(request.user.pk)
        return Response(BookingSerializer(bookings, many=True).data)

    def post(self, request, *args, **kwargs):
        serializer = CreateBookingSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            booking = BookingService.create(owner_id=request.user.pk, **serializer.validated_data)
        except MarketplaceError as exc:
            return Response({"error": str(exc)}, status=exc.status_code)
        except ValueError as exc:
            return Response({"error": str(exc)}, status=status.HTTP_400_BAD_REQUEST)

        return Response(BookingSerializer(booking).data, status=status.HTTP_201_CREATED)


class BookingDetailView(APIView):
    """
    GET    /api/bookings/<id>/ — Retrieve one of the caller's bookings.
    DELETE /api/bookings/<id>/ — Delete a booking without payment history.
    """

    def get(self, request, pk, *args, **kwargs):
        try:
            booking = BookingService.get_for_user(pk, request.user.pk)
        except MarketplaceError as exc:
            return Response({"error": str(exc)}, status=exc.status_code)
        return Response(BookingSerializer(booking).data)

    def delete(self, request, pk, *args, **kwargs):
        try:
            BookingService.delete(pk, request.user.pk)
        except MarketplaceError as exc:
            return Response({"error": str(exc)}, status=exc.status_code)
        return Response(status=status.HTTP_204_NO_CONTENT)


class CancelBookingView(APIView):
    """POST /api/bookings/<id>/cancel — Cancel a pending booking."""

    def post(self, request, pk, *args, **kwargs):
        try:
            booking = BookingService.cancel(pk, request.user.pk)
        except MarketplaceError as exc:
            return Response({"error": str(exc)}, status=exc.status_code)
        return Response(BookingSerializer(booking).data)
