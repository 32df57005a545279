from rest_framework.response import Response
from rest_framework.views import APIView

from notifications.services import NotificationStore


class NotificationListView(APIView):
    """GET /api/notifications/ — Newest-first notifications of the caller."""

    def get(self, request, *args, **kwargs):
        return Response(NotificationStore.list(request.user.pk))
